"""Property values of one bean, addressed by name or by path expression."""

from __future__ import annotations

import copy as copy_module
import types
from collections.abc import Mapping, MutableMapping, MutableSequence, Sequence, Set
from contextlib import contextmanager
from functools import partial
from typing import TYPE_CHECKING, Any, Callable, Iterator

import numpy as np
import structlog

from typed_beans.bean import get_dispatcher, store_of
from typed_beans.builder import StructuredValueBuilder, flatten_values
from typed_beans.errors import (
    ArrayBoundsError,
    ImmutableBeanError,
    InvalidPathError,
    MalformedPathError,
    UnknownPropertyError,
)
from typed_beans.parsing import parse_path
from typed_beans.path import IndexedName, KeyedName, Name, PathExpression, Segment
from typed_beans.primitives import is_primitive_array, strategy_for
from typed_beans.shape import PropertyDescriptor, PropertyShape
from typed_beans.types import (
    ArrayTypeDefinition,
    InterfaceTypeDefinition,
    MapTypeDefinition,
    SequenceTypeDefinition,
    TypeDefinition,
)
from typed_beans.validation import target_type

if TYPE_CHECKING:
    from typed_beans.delegation import PropertyDelegate
    from typed_beans.factory import BeanFactory

logger = structlog.get_logger(__name__)

_MISSING = object()

PathLike = str | PathExpression


class PropertyStore:
    """The values behind one bean.

    Plain names address top-level properties. Structural paths such as
    ``collection[0].boolean`` or ``mapped(key).integer`` create missing
    lists, maps and nested beans on the way to the leaf, and reach into
    existing ones without disturbing their other elements.

    Attributes:
        shape: Properties and dispatch table of the bean's interfaces.
        factory: Factory used to build nested beans.
        nesting_depth: Depth of the owning bean in its bean graph.
        immutable: Whether every mutation raises ImmutableBeanError.
    """

    def __init__(
        self, shape: PropertyShape, factory: BeanFactory, nesting_depth: int = 0
    ) -> None:
        self.shape = shape
        self.factory = factory
        self.validator = factory.validator
        self.nesting_depth = nesting_depth
        self.immutable = False
        self._values: dict[str, Any] = {}
        self._property_delegates: dict[str, PropertyDelegate] = {}

    @property
    def values(self) -> Mapping[str, Any]:
        """Read-only view of the top-level values that are set."""
        return types.MappingProxyType(self._values)

    # Reading

    def get(self, path: PathLike) -> Any:
        """Read the value at a path.

        Unset intermediates read as None. An unset primitive property of an
        existing bean reads as its zero value.

        Raises:
            UnknownPropertyError: If a segment names no declared property.
            InvalidPathError: If the path uses the append form or descends
                through a value that is not a bean.
            ArrayBoundsError: If an index is beyond a sequence or array.
        """
        expr = parse_path(path)
        return self._read(expr.segments, str(expr), probe=False)

    def contains(self, path: PathLike) -> bool:
        """Return whether a value has been set at a path."""
        expr = parse_path(path)
        return self._read(expr.segments, str(expr), probe=True) is not _MISSING

    def is_property_of(self, path: PathLike) -> bool:
        """Return whether a path names declared properties all the way down."""
        try:
            self.validator.resolve(self.shape, parse_path(path))
        except (MalformedPathError, UnknownPropertyError, InvalidPathError):
            return False
        return True

    def copy_values(self, flatten: bool = False) -> dict[str, Any]:
        """Copy the top-level values, or expand them into flat path keys.

        The flattened form is accepted back by `put_all` and by construction.
        """
        if flatten:
            return flatten_values(self)
        return dict(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def _read(self, segments: tuple[Segment, ...], where: str, probe: bool) -> Any:
        segment, rest = segments[0], segments[1:]
        descriptor = self.validator.check_segment(self.shape, segment, where, not rest)
        if isinstance(segment, IndexedName) and segment.is_append:
            raise InvalidPathError(f"Path {where!r} uses the append form, which cannot be read")
        missing = _MISSING if probe else None

        if segment.name not in self._values:
            if isinstance(segment, Name) and not rest and not probe:
                return descriptor.type_def.default_value
            return missing
        value = self._values[segment.name]

        if isinstance(segment, IndexedName):
            if value is None:
                return missing
            index = segment.index
            if index >= len(value):  # type: ignore[operator]
                if probe:
                    return missing
                raise ArrayBoundsError(
                    f"Path {where!r} reads index {index} of {segment.name!r}, "
                    f"which has length {len(value)}"
                )
            if is_primitive_array(descriptor.type_def):
                element = strategy_for(descriptor.element_type.primitive).get_element(  # type: ignore[union-attr]
                    value, index
                )
            else:
                element = value[index]
        elif isinstance(segment, KeyedName):
            if value is None or segment.key not in value:
                return missing
            element = value[segment.key]
        else:
            element = value

        if not rest:
            return element
        if element is None:
            return missing
        nested = store_of(element)
        if nested is None:
            raise InvalidPathError(
                f"Path {where!r} descends into a {type(element).__name__}, which is not a bean"
            )
        return nested._read(rest, where, probe)

    # Writing

    def put(self, path: PathLike, value: Any) -> None:
        """Write a value at a path, creating intermediate structure as needed.

        The whole path and the value are validated before anything changes.

        Raises:
            UnknownPropertyError: If a segment names no declared property.
            InvalidPathError: If the path does not fit the declared types.
            TypeMismatchError: If the value does not fit the addressed type.
            ArrayBoundsError: If an array index is out of range, the array is
                unset, or the append form targets an array.
            ImmutableBeanError: If the bean is unmodifiable.
        """
        self._check_mutable()
        expr = parse_path(path)
        where = str(expr)
        self._walk(expr.segments, value, where, apply=False)
        if expr.is_structural:
            with self.transaction():
                self._walk(expr.segments, value, where, apply=True)
        else:
            self._walk(expr.segments, value, where, apply=True)

    def put_all(self, values: Mapping[PathLike, Any], *, replace: bool = False) -> None:
        """Merge a flat map of path keys into the store, atomically.

        Every entry is checked against the shape first. If applying any entry
        fails, all containers and nested beans reachable from this store are
        restored before the error propagates.

        Args:
            values: Flat map of path expressions to leaf values.
            replace: Clear the existing values before merging.
        """
        self._check_mutable()
        self.validator.validate_initial(self.shape, values)
        with self.transaction():
            StructuredValueBuilder(self).build(values, replace=replace)

    def initialize(self, values: Mapping[PathLike, Any]) -> None:
        """Populate a store that is not yet visible through any bean."""
        self.validator.validate_initial(self.shape, values)
        StructuredValueBuilder(self).build(values)

    def apply_path(
        self,
        path: PathLike,
        value: Any,
        appended: dict[tuple[int, str], Any] | None = None,
    ) -> None:
        """Write one already-validated entry of a bulk map.

        Args:
            path: Path of the entry.
            value: Leaf value.
            appended: Elements created by non-terminal append segments in the
                current bulk call, keyed by (store id, property name).
        """
        self._check_mutable()
        expr = parse_path(path)
        self._walk(expr.segments, value, str(expr), apply=True, appended=appended)

    def remove(self, name: str) -> Any:
        """Unset a top-level property, returning its previous value."""
        self._check_mutable()
        self.shape.require(name)
        return self._values.pop(name, None)

    def clear(self) -> None:
        self._check_mutable()
        self._values.clear()

    def _walk(
        self,
        segments: tuple[Segment, ...],
        value: Any,
        where: str,
        apply: bool,
        appended: dict[tuple[int, str], Any] | None = None,
    ) -> None:
        """Check (apply=False) or perform (apply=True) one write.

        A dry run never mutates anything, so everything `put` can reject is
        rejected before the store changes.
        """
        segment, rest = segments[0], segments[1:]
        leaf = not rest
        descriptor = self.validator.check_segment(self.shape, segment, where, leaf)
        addressed = target_type(descriptor, segment)
        existing, place = self._slot(descriptor, segment, where, leaf, appended)

        if leaf:
            if apply:
                place(self._materialize(addressed, value, where))
            else:
                self.validator.check_value(addressed, value, where)
            return

        if existing is None:
            if not apply:
                self.validator.check_path(self.validator.nested_shape(addressed), rest, value, where)
                return
            existing = self._vivify(addressed, where)
            place(existing)

        # Paths only descend through beans; plain objects are always leaves
        nested = store_of(existing)
        if nested is None:
            raise InvalidPathError(
                f"Path {where!r} descends into a {type(existing).__name__}, which is not a bean"
            )
        nested._check_mutable()
        nested._walk(rest, value, where, apply, appended)

    def _slot(
        self,
        descriptor: PropertyDescriptor,
        segment: Segment,
        where: str,
        leaf: bool,
        appended: dict[tuple[int, str], Any] | None,
    ) -> tuple[Any, Callable[[Any], None]]:
        """Return the current occupant of a segment's slot and a function that fills it.

        Containers are only created when the returned function is called.
        """
        name = segment.name
        type_def = descriptor.type_def
        container = self._values.get(name)

        if isinstance(segment, Name):
            return container, partial(self._values.__setitem__, name)

        if isinstance(segment, KeyedName):
            existing = container.get(segment.key) if container is not None else None

            def place_keyed(item: Any) -> None:
                self._container(name, dict)[segment.key] = item

            return existing, place_keyed

        if isinstance(type_def, ArrayTypeDefinition):
            index = self._array_index(container, segment, where)
            if is_primitive_array(type_def):
                strategy = strategy_for(type_def.element_type.primitive)  # type: ignore[attr-defined]
                return None, partial(strategy.set_element, container, index)
            return container[index], partial(container.__setitem__, index)  # type: ignore[index]

        element_default = type_def.element_type.default_value  # type: ignore[attr-defined]

        if segment.is_append:
            key = (id(self), name)
            shared = not leaf and appended is not None
            existing = appended.get(key) if shared else None  # type: ignore[union-attr]

            def place_appended(item: Any) -> None:
                self._container(name, list).append(item)
                if shared:
                    appended[key] = item  # type: ignore[index]

            return existing, place_appended

        index = segment.index
        existing = container[index] if container is not None and index < len(container) else None

        def place_indexed(item: Any) -> None:
            target = self._container(name, list)
            if index >= len(target):
                target.extend([element_default] * (index + 1 - len(target)))
            target[index] = item

        return existing, place_indexed

    def _array_index(self, array: Any, segment: IndexedName, where: str) -> int:
        if segment.is_append:
            raise ArrayBoundsError(
                f"Path {where!r} appends to array {segment.name!r}; arrays have a fixed length"
            )
        if array is None:
            raise ArrayBoundsError(
                f"Path {where!r} indexes array {segment.name!r}, which has not been allocated"
            )
        if segment.index >= len(array):  # type: ignore[operator]
            raise ArrayBoundsError(
                f"Path {where!r} is out of bounds for array {segment.name!r} "
                f"of length {len(array)}"
            )
        return segment.index  # type: ignore[return-value]

    def _container(self, name: str, kind: type) -> Any:
        container = self._values.get(name)
        if container is None:
            container = kind()
            self._values[name] = container
        return container

    def _vivify(self, type_def: TypeDefinition, where: str) -> Any:
        assert isinstance(type_def, InterfaceTypeDefinition)
        depth = self.nesting_depth + 1
        bean = self.factory.create(type_def.interface, nesting_depth=depth)
        logger.debug(
            "nested_bean_vivified",
            path=where,
            interface=type_def.interface.__qualname__,
            nesting_depth=depth,
        )
        return bean

    def _materialize(self, type_def: TypeDefinition, value: Any, where: str) -> Any:
        """Validate a leaf value and turn raw mappings into nested beans."""
        self.validator.check_value(type_def, value, where)
        return self._coerce(type_def, value)

    def _coerce(self, type_def: TypeDefinition, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(type_def, InterfaceTypeDefinition):
            if isinstance(value, Mapping) and get_dispatcher(value) is None:
                return self.factory.create(
                    type_def.interface,
                    initial_values=value,
                    nesting_depth=self.nesting_depth + 1,
                )
            return value

        if isinstance(type_def, (SequenceTypeDefinition, ArrayTypeDefinition)):
            element = type_def.element_type
            if element.is_primitive or is_primitive_array(type_def) or not _may_coerce(element):
                return value
            items = [self._coerce(element, item) for item in value]
            if all(new is old for new, old in zip(items, value)):
                return value
            if isinstance(value, np.ndarray):
                result = value.copy()
                for index, item in enumerate(items):
                    result[index] = item
                return result
            return items

        if isinstance(type_def, MapTypeDefinition) and _may_coerce(type_def.value_type):
            entries = {key: self._coerce(type_def.value_type, item) for key, item in value.items()}
            if all(entries[key] is item for key, item in value.items()):
                return value
            return entries
        return value

    # Transactions and mutability

    @contextmanager
    def transaction(self) -> Iterator[PropertyStore]:
        """Restore this store and everything reachable from it if the block raises."""
        snapshot = _Snapshot()
        snapshot.capture_store(self)
        try:
            yield self
        except BaseException:
            snapshot.restore()
            logger.debug("store_restored", shape=self.shape.name)
            raise

    def _check_mutable(self) -> None:
        if self.immutable:
            raise ImmutableBeanError(f"{self.shape.name} bean is unmodifiable")

    # Property delegates

    def attach_property(self, name: str, delegate: PropertyDelegate) -> None:
        """Route one property's accessors to a delegate.

        Raises:
            UnknownPropertyError: If the property is not declared.
            InvalidDelegateError: If the delegate's type does not match.
        """
        from typed_beans.delegation import check_property_delegate

        self._check_mutable()
        descriptor = self.shape.require(name)
        check_property_delegate(descriptor, delegate)
        if name in self._property_delegates:
            logger.warning(
                "property_delegate_replaced",
                shape=self.shape.name,
                property=name,
                previous=type(self._property_delegates[name]).__name__,
            )
        self._property_delegates[name] = delegate

    def detach_property(self, name: str) -> bool:
        """Detach a property delegate, returning whether one was attached."""
        self._check_mutable()
        self.shape.require(name)
        return self._property_delegates.pop(name, None) is not None

    def is_property_attached(self, name: str) -> bool:
        self.shape.require(name)
        return name in self._property_delegates

    def property_delegate(self, name: str) -> PropertyDelegate | None:
        return self._property_delegates.get(name)

    # Copies and equality

    def copy_from(
        self,
        source: PropertyStore,
        deep: bool = False,
        immutable: bool = False,
        memo: dict[int, Any] | None = None,
    ) -> None:
        """Fill this (empty) store with another store's values and property delegates."""
        if deep:
            memo = {} if memo is None else memo
            self._values = {
                name: _deep_copy_value(
                    source.shape.require(name).type_def, value, memo, immutable
                )
                for name, value in source._values.items()
            }
        else:
            self._values = dict(source._values)
        self._property_delegates = dict(source._property_delegates)
        self.immutable = immutable

    def hash_code(self) -> int:
        return hash((frozenset(self.shape.interfaces), freeze(self._values)))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PropertyStore):
            return NotImplemented
        return set(self.shape.interfaces) == set(other.shape.interfaces) and values_equal(
            self._values, other._values
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"PropertyStore({self.shape.name}, {self._values!r})"


def _may_coerce(type_def: TypeDefinition) -> bool:
    """Return whether raw values of a type can hold mappings that become beans."""
    if type_def.is_interface:
        return True
    element = getattr(type_def, "element_type", None) or getattr(type_def, "value_type", None)
    return element is not None and _may_coerce(element)


def _is_plain_mapping(value: Any) -> bool:
    return isinstance(value, Mapping) and get_dispatcher(value) is None


def _is_plain_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def values_equal(first: Any, second: Any) -> bool:
    """Compare property values, element-wise for containers and arrays."""
    if isinstance(first, np.ndarray) or isinstance(second, np.ndarray):
        if not (isinstance(first, np.ndarray) and isinstance(second, np.ndarray)):
            return False
        if first.dtype != second.dtype or first.shape != second.shape:
            return False
        if first.dtype == object:
            return all(values_equal(a, b) for a, b in zip(first, second))
        return bool(np.array_equal(first, second))
    if _is_plain_mapping(first) and _is_plain_mapping(second):
        return first.keys() == second.keys() and all(
            values_equal(first[key], second[key]) for key in first
        )
    if _is_plain_sequence(first) and _is_plain_sequence(second):
        return len(first) == len(second) and all(
            values_equal(a, b) for a, b in zip(first, second)
        )
    return bool(first == second)


def freeze(value: Any) -> Any:
    """Return a hashable equivalent of a property value."""
    if isinstance(value, np.ndarray):
        return (str(value.dtype), tuple(freeze(item) for item in value.tolist()))
    if _is_plain_mapping(value):
        return frozenset((key, freeze(item)) for key, item in value.items())
    if _is_plain_sequence(value):
        return tuple(freeze(item) for item in value)
    if isinstance(value, Set):
        return frozenset(freeze(item) for item in value)
    return value


def _deep_copy_value(
    type_def: TypeDefinition, value: Any, memo: dict[int, Any], immutable: bool
) -> Any:
    """Deep-copy a property value; immutable copies get read-only containers."""
    if value is None:
        return None
    if id(value) in memo:
        return memo[id(value)]

    dispatcher = get_dispatcher(value)
    if dispatcher is not None:
        return dispatcher.copy(deep=True, immutable=immutable, memo=memo)

    if isinstance(type_def, ArrayTypeDefinition):
        result = value.copy()
        if value.dtype == object:
            for index, item in enumerate(value):
                result[index] = _deep_copy_value(type_def.element_type, item, memo, immutable)
        if immutable:
            result.flags.writeable = False
    elif isinstance(type_def, SequenceTypeDefinition):
        items = [_deep_copy_value(type_def.element_type, item, memo, immutable) for item in value]
        result = tuple(items) if immutable else items
    elif isinstance(type_def, MapTypeDefinition):
        copied = {
            key: _deep_copy_value(type_def.value_type, item, memo, immutable)
            for key, item in value.items()
        }
        result = types.MappingProxyType(copied) if immutable else copied
    else:
        result = copy_module.deepcopy(value, memo)
    memo[id(value)] = result
    return result


class _Snapshot:
    """Saved contents of stores and containers, restored in place."""

    def __init__(self) -> None:
        self._seen: set[int] = set()
        self._entries: list[tuple[Any, Any]] = []

    def capture_store(self, store: PropertyStore) -> None:
        if id(store) in self._seen:
            return
        self._seen.add(id(store))
        self._entries.append((store._values, dict(store._values)))
        for value in store._values.values():
            self._capture(value)

    def _capture(self, value: Any) -> None:
        nested = store_of(value)
        if nested is not None:
            self.capture_store(nested)
            return
        if id(value) in self._seen:
            return

        if isinstance(value, np.ndarray):
            if not value.flags.writeable:
                return
            self._seen.add(id(value))
            self._entries.append((value, value.copy()))
            items: Any = value if value.dtype == object else ()
        elif isinstance(value, MutableSequence):
            self._seen.add(id(value))
            self._entries.append((value, list(value)))
            items = value
        elif isinstance(value, MutableMapping) and get_dispatcher(value) is None:
            self._seen.add(id(value))
            self._entries.append((value, dict(value)))
            items = value.values()
        else:
            return
        for item in items:
            self._capture(item)

    def restore(self) -> None:
        for target, saved in self._entries:
            if isinstance(target, np.ndarray):
                target[...] = saved
            elif isinstance(target, MutableSequence):
                target[:] = saved
            else:
                target.clear()
                target.update(saved)
