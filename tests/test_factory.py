"""Tests for BeanFactory: creation, delegates, construction hooks and copies."""

import copy

import pytest
from beans import (
    AddsTagged,
    AttachesResettable,
    Calculator,
    CalculatorDelegate,
    FixedCollection,
    IncompleteDelegate,
    ListBean,
    Named,
    NestedBean,
    NestedConstructor,
    NotAnInterface,
    Person,
    Resettable,
    ResettableDelegate,
    Tagged,
    TypesBean,
    UpperCaseName,
    WrongTypeDelegate,
)
from structlog.testing import capture_logs

from typed_beans import (
    BeanFactory,
    ConstructionDelegate,
    PropertyDelegate,
    ShapeRegistry,
    is_bean,
    new_array,
)
from typed_beans.errors import (
    ImmutableBeanError,
    InvalidDelegateError,
    ShapeIntrospectionError,
    TypeMismatchError,
    UnsupportedBehaviorError,
)
from typed_beans.types import int32


class Recorder(ConstructionDelegate):
    """Appends (label, depth, type) to a shared log from both hooks."""

    def __init__(self, label, log):
        self.label = label
        self.log = log

    def init(self, nesting_depth, this_type, bean):
        self.log.append((self.label, "init", nesting_depth, this_type))

    def init_behaviors(self, nesting_depth, this_type, bean):
        self.log.append((self.label, "init_behaviors", nesting_depth, this_type))


class AddsNonInterface(ConstructionDelegate):
    def additional_types(self, nesting_depth, this_type, primary_type, all_types, initial_values):
        return [NotAnInterface]


@pytest.fixture
def factory():
    """Create a factory with a private registry."""
    return BeanFactory()


class TestCreate:
    """Tests for creating beans."""

    def test_initial_values(self, factory):
        """Test that initial values are readable through accessors."""
        bean = factory.create(TypesBean, initial_values={"integer": 1, "string": "s"})

        assert bean.get_integer() == 1
        assert bean.get_string() == "s"
        assert is_bean(bean)
        assert not is_bean(object())

    def test_not_an_interface(self, factory):
        """Test that only ABC interfaces can be implemented."""
        with pytest.raises(ShapeIntrospectionError):
            factory.create(NotAnInterface)
        with pytest.raises(ShapeIntrospectionError):
            factory.create(TypesBean, NotAnInterface)

    def test_duplicate_interfaces_collapse(self, factory):
        """Test that repeating an interface has no effect."""
        bean = factory.create(Named, Named)

        assert factory.dispatcher_of(bean).shape.interfaces == (Named,)

    def test_shared_registry(self):
        """Test that factories can share introspection results."""
        registry = ShapeRegistry()
        first = BeanFactory(registry).create(TypesBean)
        second = BeanFactory(registry).create(TypesBean)

        assert type(first) is type(second)

    def test_mapping_coerced_to_nested_beans(self, factory):
        """Test that raw mappings become nested beans one level deeper."""
        bean = factory.create(
            NestedBean,
            initial_values={"nested": {"integer": 5}, "mapped": {"a": {"long": 2}}},
        )

        assert isinstance(bean.get_nested(), TypesBean)
        assert bean.get_nested().get_integer() == 5
        assert bean.get_mapped()["a"].get_long() == 2
        assert factory.store_of(bean.get_nested()).nesting_depth == 1

    def test_setter_coerces_mappings(self, factory):
        """Test that setters convert raw mappings in lists as well."""
        bean = factory.create(ListBean)

        bean.set_collection([{"integer": 1}, {"boolean": True}])

        assert bean.get_collection_at(0).get_integer() == 1
        assert bean.get_collection_at(1).is_boolean() is True


class TestInterfaceDelegates:
    """Tests for behavior methods and their delegates."""

    def test_behavior_requires_delegate(self, factory):
        """Test that a bean with an unserved behavior cannot be built."""
        with pytest.raises(UnsupportedBehaviorError, match="add"):
            factory.create(Calculator)

    def test_behavior_dispatch(self, factory):
        """Test that behavior methods reach the delegate."""
        bean = factory.create(
            Calculator, initial_values={"base": 2}, delegates=[CalculatorDelegate()]
        )

        assert bean.add(3) == 5
        assert bean.doubled_base() == 4

    def test_delegate_sees_store(self, factory):
        """Test that an attached delegate reads the bean's values."""
        delegate = CalculatorDelegate()
        bean = factory.create(Calculator, delegates=[delegate])

        bean.set_base(10)

        assert delegate.store is factory.store_of(bean)
        assert bean.add(1) == 11

    def test_incomplete_delegate(self, factory):
        """Test that a delegate missing a behavior method is refused."""
        with pytest.raises(InvalidDelegateError, match="add"):
            factory.create(Calculator, delegates=[IncompleteDelegate()])

    def test_delegate_for_other_interface(self, factory):
        """Test that delegates must match an implemented interface."""
        bean = factory.create(TypesBean)

        with pytest.raises(InvalidDelegateError, match="does not implement"):
            factory.attach(bean, CalculatorDelegate())

    def test_object_without_interface(self, factory):
        """Test that delegates must declare their interface."""
        bean = factory.create(Calculator, delegates=[CalculatorDelegate()])

        with pytest.raises(InvalidDelegateError, match="does not declare"):
            factory.attach(bean, object())

    def test_detach(self, factory):
        """Test that detaching leaves the behavior unsupported."""
        delegate = CalculatorDelegate()
        bean = factory.create(Calculator, delegates=[delegate])

        assert factory.is_attached(bean, Calculator)
        assert factory.detach(bean, Calculator)
        assert not factory.detach(bean, Calculator)
        assert not factory.is_attached(bean, Calculator)
        assert delegate.store is None
        with pytest.raises(UnsupportedBehaviorError):
            bean.add(1)

    def test_is_attached_requires_interface(self, factory):
        """Test that asking about an unimplemented interface is an error."""
        bean = factory.create(TypesBean)

        with pytest.raises(InvalidDelegateError):
            factory.is_attached(bean, Calculator)

    def test_replacement_is_logged(self, factory):
        """Test that replacing a delegate releases the old one and warns."""
        first = CalculatorDelegate()
        bean = factory.create(Calculator, delegates=[first])

        with capture_logs() as logs:
            factory.attach(bean, CalculatorDelegate())

        assert first.store is None
        assert [log["event"] for log in logs] == ["interface_delegate_replaced"]
        assert logs[0]["interface"] == "Calculator"


class TestConstructionDelegates:
    """Tests for construction hooks."""

    def test_init_fills_nested_bean(self, factory):
        """Test a hook that builds nested beans one level deeper."""
        constructor = NestedConstructor(factory)
        factory.register(NestedBean, constructor)

        bean = factory.create(NestedBean)

        assert isinstance(bean.get_nested(), TypesBean)
        assert factory.store_of(bean.get_nested()).nesting_depth == 1
        assert constructor.calls == [(0, NestedBean)]

    def test_vivified_beans_run_hooks_at_depth(self, factory):
        """Test that beans created by paths report their nesting depth."""
        log = []
        factory.register(TypesBean, Recorder("types", log))

        factory.create(NestedBean, initial_values={"nested.integer": 1})

        assert log == [
            ("types", "init", 1, TypesBean),
            ("types", "init_behaviors", 1, TypesBean),
        ]

    def test_hooks_of_ancestors_run(self, factory):
        """Test that hooks registered for a parent interface run for children."""
        log = []
        factory.register(Named, Recorder("named", log))

        factory.create(Person)

        assert [entry[:2] for entry in log] == [("named", "init"), ("named", "init_behaviors")]
        assert log[0][3] is Named

    def test_default_runs_first(self, factory):
        """Test the order of default and registered hooks."""
        log = []
        factory.register(Person, Recorder("person", log))
        factory.register_default(Recorder("default", log))

        factory.create(Person)

        assert [entry[:2] for entry in log] == [
            ("default", "init"),
            ("person", "init"),
            ("default", "init_behaviors"),
            ("person", "init_behaviors"),
        ]

    def test_additional_types(self, factory):
        """Test that a hook can add interfaces to the bean."""
        factory.register(Named, AddsTagged())

        bean = factory.create(Person)
        bean.set_tags(["x"])

        assert isinstance(bean, Tagged)
        assert bean.get_tags() == ["x"]

    def test_additional_types_must_be_interfaces(self, factory):
        """Test that added types are checked."""
        factory.register(TypesBean, AddsNonInterface())

        with pytest.raises(ShapeIntrospectionError):
            factory.create(TypesBean)

    def test_init_behaviors_attaches_delegates(self, factory):
        """Test that delegates attached by init_behaviors satisfy coverage."""
        factory.register(Resettable, AttachesResettable(factory))

        bean = factory.create(TypesBean, Resettable, initial_values={"integer": 3})
        bean.reset()

        assert bean.get_integer() == 0

    def test_register_and_unregister(self, factory):
        """Test managing registered hooks."""
        constructor = NestedConstructor(factory)

        factory.register(NestedBean, constructor)

        assert factory.unregister(NestedBean) is constructor
        assert factory.unregister(NestedBean) is None
        assert factory.create(NestedBean).get_nested() is None

    def test_register_requires_interface(self, factory):
        """Test that hooks can only be registered for interfaces."""
        with pytest.raises(ShapeIntrospectionError):
            factory.register(NotAnInterface, NestedConstructor(factory))

    def test_default_delegate_in_constructor(self):
        """Test passing the default hook at construction."""
        log = []
        factory = BeanFactory(default_delegate=Recorder("default", log))

        factory.create(TypesBean)

        assert log[0] == ("default", "init", 0, TypesBean)


class TestPropertyDelegates:
    """Tests for delegates that serve single properties."""

    def test_intercepts_accessors(self, factory):
        """Test that a property delegate replaces store access."""
        bean = factory.create(Named)
        factory.attach_property(bean, "name", UpperCaseName())

        bean.set_name("ann")

        assert bean.get_name() == "ANN"
        assert bean.greeting() == "Hello, ANN"
        assert factory.is_property_attached(bean, "name")

    def test_detach_restores_store_access(self, factory):
        """Test that detaching goes back to plain storage."""
        bean = factory.create(Named)
        factory.attach_property(bean, "name", UpperCaseName())

        assert factory.detach_property(bean, "name")
        bean.set_name("bob")

        assert bean.get_name() == "bob"

    def test_wrong_type(self, factory):
        """Test that a delegate's declared type must match."""
        bean = factory.create(Named)

        with pytest.raises(InvalidDelegateError):
            factory.attach_property(bean, "name", WrongTypeDelegate())

    def test_indexed_delegate(self, factory):
        """Test that indexed accessors reach an indexed delegate."""
        items = [factory.create(TypesBean, initial_values={"integer": 1})]
        bean = factory.create(ListBean)
        factory.attach_property(bean, "collection", FixedCollection(items))

        replacement = factory.create(TypesBean)
        bean.set_collection_at(0, replacement)

        assert bean.get_collection() is items
        assert bean.get_collection_at(0) is replacement
        assert not factory.store_of(bean).contains("collection")

    def test_indexed_property_needs_indexed_delegate(self, factory):
        """Test that a plain delegate cannot serve an indexed property."""

        class PlainCollection(PropertyDelegate):
            def property_type(self):
                return list[TypesBean]

            def get(self, store, name):
                return []

            def set(self, store, name, value):
                pass

        bean = factory.create(ListBean)

        with pytest.raises(InvalidDelegateError, match="IndexedPropertyDelegate"):
            factory.attach_property(bean, "collection", PlainCollection())


class TestCopies:
    """Tests for copy, copy_as and unmodifiable copies."""

    def test_copy(self, factory):
        """Test that a shallow copy is equal and independent at the top level."""
        bean = factory.create(TypesBean, initial_values={"integer": 1})

        clone = factory.copy(bean)
        clone.set_integer(2)

        assert bean.get_integer() == 1

    def test_copy_keeps_delegates(self, factory):
        """Test that copies get their own copies of delegates."""
        bean = factory.create(Calculator, initial_values={"base": 1}, delegates=[CalculatorDelegate()])

        clone = factory.copy(bean, deep=True)
        clone.set_base(10)

        assert clone.add(1) == 11
        assert bean.add(1) == 2

    def test_copy_keeps_property_delegates(self, factory):
        """Test that property delegates carry over to copies."""
        bean = factory.create(Named)
        factory.attach_property(bean, "name", UpperCaseName())

        clone = factory.copy(bean)
        clone.set_name("zed")

        assert clone.get_name() == "ZED"

    def test_copy_does_not_rerun_hooks(self, factory):
        """Test that construction hooks run only for new beans."""
        log = []
        factory.register(TypesBean, Recorder("types", log))
        bean = factory.create(TypesBean)

        factory.copy(bean, deep=True)

        assert len(log) == 2

    def test_copy_as(self, factory):
        """Test copying with a type check."""
        bean = factory.create(Person, initial_values={"name": "a"})

        assert factory.copy_as(Named, bean) == bean
        with pytest.raises(TypeMismatchError):
            factory.copy_as(ListBean, bean)
        with pytest.raises(TypeMismatchError):
            factory.copy_as(Named, object())

    def test_unmodifiable(self, factory):
        """Test that an unmodifiable copy refuses every setter."""
        bean = factory.create(
            NestedBean, initial_values={"name": "a", "nested.integer": 1, "scores(x)": 1.0}
        )

        frozen = factory.unmodifiable(bean)

        assert frozen == bean
        with pytest.raises(ImmutableBeanError):
            frozen.set_name("b")
        with pytest.raises(ImmutableBeanError):
            frozen.get_nested().set_integer(2)
        with pytest.raises(TypeError):
            frozen.get_scores()["y"] = 2.0
        bean.set_name("b")
        assert frozen.get_name() == "a"

    def test_unmodifiable_containers(self, factory):
        """Test that lists become tuples and arrays become read-only."""
        bean = factory.create(
            ListBean,
            initial_values={"tags": ["a"], "numbers": new_array(int32, 2)},
        )

        frozen = factory.unmodifiable(bean)

        assert frozen.get_tags() == ("a",)
        assert not frozen.get_numbers().flags.writeable
        assert bean.get_numbers().flags.writeable
        with pytest.raises(ImmutableBeanError):
            factory.store_of(frozen).put("numbers[0]", 1)

    def test_copies_of_unmodifiable_beans(self, factory):
        """Test that shallow copies stay frozen and deep copies thaw."""
        frozen = factory.unmodifiable(factory.create(ListBean, initial_values={"tags": ["a"]}))

        with pytest.raises(ImmutableBeanError):
            copy.copy(frozen).set_list_id(1)

        thawed = copy.deepcopy(frozen)
        thawed.set_list_id(1)
        thawed.get_tags().append("b")

        assert thawed.get_tags() == ["a", "b"]

    def test_unmodifiable_as(self, factory):
        """Test the type-checked variant."""
        bean = factory.create(TypesBean)

        assert factory.unmodifiable_as(TypesBean, bean) == bean
        with pytest.raises(TypeMismatchError):
            factory.unmodifiable_as(ListBean, bean)

    def test_frozen_beans_refuse_property_delegates(self, factory):
        """Test that property delegates cannot be attached to a frozen bean."""
        frozen = factory.unmodifiable(factory.create(Named))

        with pytest.raises(ImmutableBeanError):
            factory.attach_property(frozen, "name", UpperCaseName())


class TestBeanIntrospection:
    """Tests for inspecting beans through the factory."""

    def test_proxies_for(self, factory):
        """Test checking which interfaces a bean implements."""
        bean = factory.create(Person)

        assert BeanFactory.proxies_for(bean, Named)
        assert not BeanFactory.proxies_for(bean, Tagged)
        assert not BeanFactory.proxies_for(object(), Named)

    def test_dispatcher_of_non_bean(self, factory):
        """Test that non-beans have no dispatcher."""
        with pytest.raises(TypeMismatchError):
            factory.dispatcher_of("not a bean")

    def test_resettable_delegate_clears(self, factory):
        """Test a delegate that mutates the store."""
        bean = factory.create(
            TypesBean, Resettable, initial_values={"long": 3}, delegates=[ResettableDelegate()]
        )

        bean.reset()

        assert factory.store_of(bean).values == {}
