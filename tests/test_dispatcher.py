"""Tests for synthesized bean classes and method dispatch."""

import copy

import pytest
from beans import Account, ListBean, Named, NestedBean, Person, Tagged, TypesBean

from typed_beans import BeanFactory, DynamicBean, get_dispatcher, new_array
from typed_beans.dispatcher import proxy_class_for
from typed_beans.errors import ArrayBoundsError, TypeMismatchError, UnsupportedBehaviorError
from typed_beans.types import int32


@pytest.fixture
def factory():
    """Create a factory with a private registry."""
    return BeanFactory()


class TestProxyClass:
    """Tests for the classes synthesized for shapes."""

    def test_implements_interfaces(self, factory):
        """Test that beans are instances of every requested interface."""
        bean = factory.create(Named, Tagged)

        assert isinstance(bean, Named)
        assert isinstance(bean, Tagged)
        assert isinstance(bean, DynamicBean)

    def test_inherited_interfaces(self, factory):
        """Test that a derived interface brings its parents."""
        bean = factory.create(Person, Named)

        assert isinstance(bean, Person)
        assert type(bean).__mro__.count(Named) == 1

    def test_class_is_shared(self, factory):
        """Test that beans of one shape share one class."""
        first = factory.create(TypesBean)
        second = factory.create(TypesBean)

        assert type(first) is type(second)
        assert type(first).__name__ == "TypesBeanBean"
        assert proxy_class_for(get_dispatcher(first).shape) is type(first)

    def test_methods_keep_names(self, factory):
        """Test that installed methods carry the declared names."""
        bean = factory.create(TypesBean)

        assert type(bean).get_integer.__name__ == "get_integer"


class TestAccessors:
    """Tests for getters and setters."""

    def test_round_trip(self, factory):
        """Test setting and reading each primitive kind."""
        bean = factory.create(TypesBean)

        bean.set_boolean(True)
        bean.set_byte(-5)
        bean.set_character("x")
        bean.set_integer(42)
        bean.set_float(1.5)
        bean.set_boxed(None)
        bean.set_string("text")

        assert bean.is_boolean() is True
        assert bean.get_byte() == -5
        assert bean.get_character() == "x"
        assert bean.get_integer() == 42
        assert bean.get_float() == 1.5
        assert bean.get_boxed() is None
        assert bean.get_string() == "text"

    def test_defaults(self, factory):
        """Test the values read before anything is set."""
        bean = factory.create(TypesBean)

        assert bean.get_long() == 0
        assert bean.get_double() == 0.0
        assert bean.get_string() is None

    def test_setter_type_checks(self, factory):
        """Test that setters reject values of other types."""
        bean = factory.create(TypesBean)

        with pytest.raises(TypeMismatchError):
            bean.set_integer("42")
        with pytest.raises(TypeMismatchError):
            bean.set_boolean(1)
        with pytest.raises(TypeMismatchError):
            bean.set_byte(200)
        with pytest.raises(TypeMismatchError):
            bean.set_double(1)

    def test_nested_and_mapped(self, factory):
        """Test accessors of nested beans and mapped properties."""
        bean = factory.create(NestedBean)
        nested = factory.create(TypesBean, initial_values={"integer": 3})

        bean.set_nested(nested)
        bean.set_scores({"a": 2.0})

        assert bean.get_nested() is nested
        assert bean.get_scores() == {"a": 2.0}

    def test_sequence_setter_requires_list(self, factory):
        """Test that a tuple is refused for a list property."""
        bean = factory.create(ListBean)

        with pytest.raises(TypeMismatchError):
            bean.set_tags(("a",))


class TestIndexedAccessors:
    """Tests for the _at accessors."""

    def test_set_and_get(self, factory):
        """Test writing elements by index, padding the list."""
        bean = factory.create(ListBean)
        element = factory.create(TypesBean)

        bean.set_collection_at(2, element)

        assert bean.get_collection_at(2) is element
        assert bean.get_collection_at(0) is None
        assert len(bean.get_collection()) == 3

    def test_out_of_range_read(self, factory):
        """Test that reading past the end raises."""
        bean = factory.create(ListBean, initial_values={"collection[0].integer": 1})

        with pytest.raises(ArrayBoundsError):
            bean.get_collection_at(1)

    def test_arrays(self, factory):
        """Test indexed accessors of an array property."""
        bean = factory.create(ListBean, initial_values={"array": new_array(TypesBean, 2)})
        element = factory.create(TypesBean)

        bean.set_array_at(1, element)

        assert bean.get_array_at(1) is element
        with pytest.raises(ArrayBoundsError):
            bean.set_array_at(2, element)

    def test_array_elements_are_independent(self, factory):
        """Test that writing one array slot leaves the others as they were."""
        bean = factory.create(ListBean, initial_values={"array": new_array(TypesBean, 2)})
        first = factory.create(TypesBean, initial_values={"integer": 1})
        second = factory.create(TypesBean, initial_values={"integer": 2})

        bean.set_array_at(0, first)
        assert bean.get_array_at(0) is first
        assert bean.get_array_at(1) is None

        bean.set_array_at(1, second)
        assert bean.get_array_at(0) is first
        assert bean.get_array_at(0).get_integer() == 1
        assert bean.get_array_at(1) is second
        assert len(bean.get_array()) == 2

    def test_unallocated_array(self, factory):
        """Test that writing into an unallocated array raises."""
        bean = factory.create(ListBean)

        with pytest.raises(ArrayBoundsError):
            bean.set_array_at(0, factory.create(TypesBean))

    @pytest.mark.parametrize("index", ["0", 1.0, True, None])
    def test_index_must_be_int(self, factory, index):
        """Test that non-int indices are rejected."""
        bean = factory.create(ListBean)

        with pytest.raises(TypeMismatchError):
            bean.get_collection_at(index)

    def test_negative_index(self, factory):
        """Test that negative indices are rejected."""
        bean = factory.create(ListBean)

        with pytest.raises(ArrayBoundsError):
            bean.set_collection_at(-1, None)


class TestDefaultMethods:
    """Tests for concrete methods declared on interfaces."""

    def test_default_method_uses_accessors(self, factory):
        """Test that a concrete interface method runs against the bean."""
        bean = factory.create(Person, initial_values={"name": "Ann", "age": 30})

        assert bean.greeting() == "Hello, Ann"

    def test_unknown_method(self, factory):
        """Test that invoking an undeclared method raises."""
        dispatcher = get_dispatcher(factory.create(TypesBean))

        with pytest.raises(UnsupportedBehaviorError, match="frobnicate"):
            dispatcher.invoke("frobnicate")


class TestEqualityAndRepr:
    """Tests for equality, hashing and repr()."""

    def test_equal_beans(self, factory):
        """Test that beans with the same values are equal and hash alike."""
        first = factory.create(TypesBean, initial_values={"integer": 5})
        second = factory.create(TypesBean, initial_values={"integer": 5})

        assert first == second
        assert not first != second
        assert hash(first) == hash(second)
        assert len({first, second}) == 1

    def test_unequal_beans(self, factory):
        """Test that values and interfaces both matter."""
        bean = factory.create(TypesBean, initial_values={"integer": 5})

        assert bean != factory.create(TypesBean, initial_values={"integer": 6})
        assert factory.create(TypesBean) != factory.create(ListBean)
        assert bean != {"integer": 5}

    def test_nested_equality(self, factory):
        """Test that nested beans compare by value."""
        first = factory.create(NestedBean, initial_values={"nested.integer": 1})
        second = factory.create(NestedBean, initial_values={"nested.integer": 1})

        assert first == second

    def test_repr(self, factory):
        """Test the primary interface name and sorted values."""
        bean = factory.create(TypesBean, initial_values={"string": "s", "integer": 5})

        assert repr(bean) == "TypesBean: {'integer': 5, 'string': 's'}"

    def test_repr_ignores_properties(self, factory):
        """Test that ignore_in_repr properties are hidden."""
        bean = factory.create(Account, initial_values={"owner": "ann", "secret": "hunter2"})

        assert repr(bean) == "Account: {'owner': 'ann'}"
        assert "hunter2" not in str(bean)


class TestCopyProtocol:
    """Tests for copy.copy() and copy.deepcopy() on beans."""

    def test_shallow_copy_shares_nested(self, factory):
        """Test that a shallow copy shares nested beans."""
        bean = factory.create(NestedBean, initial_values={"nested.integer": 1, "name": "a"})

        clone = copy.copy(bean)
        clone.set_name("b")

        assert clone is not bean
        assert clone.get_nested() is bean.get_nested()
        assert bean.get_name() == "a"

    def test_deep_copy(self, factory):
        """Test that a deep copy is equal but independent."""
        bean = factory.create(NestedBean, initial_values={"nested.integer": 1})

        clone = copy.deepcopy(bean)
        clone.get_nested().set_integer(2)

        assert bean.get_nested().get_integer() == 1
        assert clone.get_nested() is not bean.get_nested()

    def test_deep_copy_keeps_sharing(self, factory):
        """Test that an element held twice is copied once."""
        element = factory.create(TypesBean, initial_values={"integer": 1})
        bean = factory.create(ListBean, initial_values={"collection": [element, element]})

        clone = copy.deepcopy(bean)

        assert clone == bean
        assert clone.get_collection_at(0) is clone.get_collection_at(1)
        assert clone.get_collection_at(0) is not element

    def test_deep_copy_of_arrays(self, factory):
        """Test that arrays are copied rather than shared."""
        bean = factory.create(ListBean, initial_values={"numbers": new_array(int32, 2)})

        clone = copy.deepcopy(bean)
        factory.store_of(clone).put("numbers[0]", 5)

        assert bean.get_numbers().tolist() == [0, 0]
