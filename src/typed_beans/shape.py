"""Introspection of interfaces into property shapes and dispatch tables."""

from __future__ import annotations

import inspect
import re
import typing
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Iterable, Sequence

import structlog

from typed_beans.errors import ShapeIntrospectionError, UnknownPropertyError
from typed_beans.types import (
    PrimitiveType,
    PrimitiveTypeDefinition,
    TypeDefinition,
    element_type_of,
    is_interface,
    resolve_annotation,
)

logger = structlog.get_logger(__name__)

_ACCESSOR_PATTERN = re.compile(r"^(get|set|is)_([A-Za-z_][A-Za-z0-9_]*)$")
_INDEXED_SUFFIX = "_at"


class MethodKind(Enum):
    """How an interface method is serviced."""

    GETTER = "getter"
    SETTER = "setter"
    INDEXED_GETTER = "indexed_getter"
    INDEXED_SETTER = "indexed_setter"
    BEHAVIOR = "behavior"


@dataclass(frozen=True)
class DispatchEntry:
    """One row of the dispatch table built for a shape."""

    kind: MethodKind
    method_name: str
    interface: type
    property_name: str | None = None

    @property
    def is_accessor(self) -> bool:
        return self.kind is not MethodKind.BEHAVIOR


@dataclass(frozen=True)
class PropertyDescriptor:
    """A named property derived from an interface's accessors."""

    name: str
    type_def: TypeDefinition
    readable: bool = False
    writable: bool = False
    indexed: bool = False  # has get_<name>_at / set_<name>_at accessors
    declared_by: type | None = None

    @property
    def mapped(self) -> bool:
        return self.type_def.is_mapped

    @property
    def collection(self) -> bool:
        return self.type_def.is_indexable

    @property
    def element_type(self) -> TypeDefinition | None:
        """Return the element (or mapped value) type, if any."""
        return element_type_of(self.type_def)


@dataclass
class PropertyShape:
    """The introspected properties and dispatch table of one or more interfaces."""

    interfaces: tuple[type, ...]
    properties: dict[str, PropertyDescriptor] = field(default_factory=dict)
    dispatch: dict[str, DispatchEntry] = field(default_factory=dict)
    repr_ignored: frozenset[str] = frozenset()
    proxy_class: type | None = None

    @property
    def primary(self) -> type:
        return self.interfaces[0]

    @property
    def name(self) -> str:
        return self.primary.__qualname__

    def get(self, name: str) -> PropertyDescriptor | None:
        """Get a property descriptor by name."""
        return self.properties.get(name)

    def require(self, name: str) -> PropertyDescriptor:
        """Get a property descriptor by name, raising if it is not declared."""
        descriptor = self.properties.get(name)
        if descriptor is None:
            raise UnknownPropertyError(
                f"No property {name!r} is declared by {self.name}"
            )
        return descriptor

    def behaviors(self, interface: type | None = None) -> list[str]:
        """List behavior method names, optionally only those declared by one interface."""
        return [
            entry.method_name
            for entry in self.dispatch.values()
            if entry.kind is MethodKind.BEHAVIOR
            and (interface is None or entry.interface is interface)
        ]

    def implements(self, interface: type) -> bool:
        return interface in self.interfaces

    def __contains__(self, name: str) -> bool:
        return name in self.properties

    def __repr__(self) -> str:
        names = ", ".join(i.__qualname__ for i in self.interfaces)
        return f"PropertyShape({names}; {len(self.properties)} properties)"


def ignore_in_repr(*names: str) -> Callable[[type], type]:
    """Class decorator naming properties left out of a bean's repr()."""

    def decorate(interface: type) -> type:
        interface.__repr_ignored__ = frozenset(names)  # type: ignore[attr-defined]
        return interface

    return decorate


@dataclass
class _AccessorSet:
    """Accessor methods collected for one property name before validation."""

    getter: TypeDefinition | None = None
    boolean_getter: TypeDefinition | None = None
    setter: TypeDefinition | None = None
    indexed_getter: TypeDefinition | None = None
    indexed_setter: TypeDefinition | None = None
    declared_by: type | None = None


def interface_hierarchy(interface: type) -> list[type]:
    """Return the interface and its interface ancestors, most derived first."""
    return [klass for klass in interface.__mro__ if is_interface(klass)]


def _declared_methods(interface: type) -> list[tuple[str, Any, type]]:
    """Return (name, function, declaring interface) for every abstract method."""
    abstract = getattr(interface, "__abstractmethods__", frozenset())
    found: dict[str, tuple[str, Any, type]] = {}
    for klass in reversed(interface_hierarchy(interface)):
        for name, member in vars(klass).items():
            if name not in abstract:
                continue
            if not getattr(member, "__isabstractmethod__", False):
                continue
            found[name] = (name, member, klass)
    return list(found.values())


def _type_hints(function: Any, interface: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(function)
    except Exception as e:  # NameError for unresolved forward references
        raise ShapeIntrospectionError(
            f"Cannot resolve annotations of {interface.__qualname__}.{function.__name__}: {e}"
        ) from e


def _resolve(hints: dict[str, Any], key: str, where: str) -> TypeDefinition:
    if key not in hints:
        raise ShapeIntrospectionError(f"{where} is missing a type annotation for {key!r}")
    try:
        return resolve_annotation(hints[key])
    except ShapeIntrospectionError as e:
        raise ShapeIntrospectionError(f"{where}: {e}") from e


def _classify(name: str, function: Any) -> tuple[MethodKind, str | None, list[str]]:
    """Classify a method by naming convention and arity.

    Returns the kind, the property name for accessors, and the parameter names
    after ``self``.
    """
    if not callable(function):
        return MethodKind.BEHAVIOR, None, []
    signature = inspect.signature(function)
    params = list(signature.parameters.values())[1:]
    if any(
        p.kind not in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
        for p in params
    ):
        return MethodKind.BEHAVIOR, None, []
    param_names = [p.name for p in params]

    match = _ACCESSOR_PATTERN.match(name)
    if match is None:
        return MethodKind.BEHAVIOR, None, param_names
    prefix, suffix = match.groups()
    indexed_name = suffix[: -len(_INDEXED_SUFFIX)] if suffix.endswith(_INDEXED_SUFFIX) else None

    if prefix == "get":
        if not params:
            return MethodKind.GETTER, suffix, param_names
        if len(params) == 1 and indexed_name:
            return MethodKind.INDEXED_GETTER, indexed_name, param_names
    elif prefix == "is":
        if not params:
            return MethodKind.GETTER, suffix, param_names
    elif prefix == "set":
        if len(params) == 1:
            return MethodKind.SETTER, suffix, param_names
        if len(params) == 2 and indexed_name:
            return MethodKind.INDEXED_SETTER, indexed_name, param_names
    return MethodKind.BEHAVIOR, None, param_names


def _check_index_param(hints: dict[str, Any], param: str, where: str) -> None:
    if hints.get(param) is not int:
        raise ShapeIntrospectionError(f"{where} must annotate its index parameter as int")


def _same_type(first: TypeDefinition | None, second: TypeDefinition | None) -> bool:
    return first is None or second is None or first == second


def introspect(interface: type) -> PropertyShape:
    """Introspect a single interface (including inherited declarations).

    Raises:
        ShapeIntrospectionError: If the class is not an interface or declares
            a malformed or ambiguous accessor.
    """
    if not is_interface(interface):
        raise ShapeIntrospectionError(
            f"{getattr(interface, '__qualname__', interface)!r} is not an interface; "
            "interfaces must subclass abc.ABC"
        )

    accessors: dict[str, _AccessorSet] = {}
    dispatch: dict[str, DispatchEntry] = {}

    for name, function, declaring in _declared_methods(interface):
        kind, property_name, params = _classify(name, function)
        dispatch[name] = DispatchEntry(
            kind=kind, method_name=name, interface=declaring, property_name=property_name
        )
        if kind is MethodKind.BEHAVIOR:
            continue

        where = f"{declaring.__qualname__}.{name}"
        hints = _type_hints(function, declaring)
        record = accessors.setdefault(property_name, _AccessorSet(declared_by=declaring))

        if kind is MethodKind.GETTER and name.startswith("is_"):
            record.boolean_getter = _resolve(hints, "return", where)
        elif kind is MethodKind.GETTER:
            record.getter = _resolve(hints, "return", where)
        elif kind is MethodKind.SETTER:
            record.setter = _resolve(hints, params[0], where)
        elif kind is MethodKind.INDEXED_GETTER:
            _check_index_param(hints, params[0], where)
            record.indexed_getter = _resolve(hints, "return", where)
        elif kind is MethodKind.INDEXED_SETTER:
            _check_index_param(hints, params[0], where)
            record.indexed_setter = _resolve(hints, params[1], where)

    properties = {
        name: _build_descriptor(interface, name, record) for name, record in accessors.items()
    }

    ignored: set[str] = set()
    for klass in interface_hierarchy(interface):
        ignored.update(getattr(klass, "__repr_ignored__", ()))

    shape = PropertyShape(
        interfaces=tuple(interface_hierarchy(interface)),
        properties=properties,
        dispatch=dispatch,
        repr_ignored=frozenset(ignored),
    )
    logger.debug(
        "shape_introspected",
        interface=interface.__qualname__,
        properties=list(properties),
        behaviors=shape.behaviors(),
    )
    return shape


def _build_descriptor(interface: type, name: str, record: _AccessorSet) -> PropertyDescriptor:
    where = f"property {name!r} of {interface.__qualname__}"

    boolean = record.boolean_getter
    if boolean is not None and not (
        isinstance(boolean, PrimitiveTypeDefinition) and boolean.primitive is PrimitiveType.BOOLEAN
    ):
        raise ShapeIntrospectionError(f"is_{name}() of {where} must return bool, not {boolean.name}")
    if not _same_type(record.getter, boolean):
        raise ShapeIntrospectionError(
            f"get_{name}() and is_{name}() of {where} disagree: "
            f"{record.getter.name} vs {boolean.name}"  # type: ignore[union-attr]
        )
    read_type = record.getter or boolean
    if not _same_type(read_type, record.setter):
        raise ShapeIntrospectionError(
            f"Getter and setter of {where} disagree: "
            f"{read_type.name} vs {record.setter.name}"  # type: ignore[union-attr]
        )
    type_def = read_type or record.setter
    indexed = record.indexed_getter is not None or record.indexed_setter is not None

    if indexed:
        if type_def is None or not type_def.is_indexable:
            raise ShapeIntrospectionError(
                f"Indexed accessors of {where} need a sequence or array property"
            )
        for element in (record.indexed_getter, record.indexed_setter):
            if element is not None and element != element_type_of(type_def):
                raise ShapeIntrospectionError(
                    f"Indexed accessor element type {element.name} of {where} does not "
                    f"match {type_def.name}"
                )

    return PropertyDescriptor(
        name=name,
        type_def=type_def,  # type: ignore[arg-type]
        readable=read_type is not None,
        writable=record.setter is not None,
        indexed=indexed,
        declared_by=record.declared_by,
    )


def merge_shapes(shapes: Sequence[PropertyShape]) -> PropertyShape:
    """Combine the shapes of several interfaces implemented by one bean.

    Raises:
        ShapeIntrospectionError: If two interfaces declare the same property
            with different types, or the same method with different meaning.
    """
    interfaces: list[type] = []
    properties: dict[str, PropertyDescriptor] = {}
    dispatch: dict[str, DispatchEntry] = {}
    ignored: set[str] = set()

    for shape in shapes:
        for interface in shape.interfaces:
            if interface not in interfaces:
                interfaces.append(interface)
        ignored.update(shape.repr_ignored)

        for name, descriptor in shape.properties.items():
            existing = properties.get(name)
            if existing is None:
                properties[name] = descriptor
                continue
            if existing.type_def != descriptor.type_def:
                raise ShapeIntrospectionError(
                    f"Property {name!r} is declared as {existing.type_def.name} and "
                    f"{descriptor.type_def.name} by different interfaces"
                )
            properties[name] = replace(
                existing,
                readable=existing.readable or descriptor.readable,
                writable=existing.writable or descriptor.writable,
                indexed=existing.indexed or descriptor.indexed,
            )

        for method_name, entry in shape.dispatch.items():
            existing_entry = dispatch.get(method_name)
            if existing_entry is None or existing_entry == entry:
                dispatch[method_name] = entry
                continue
            if existing_entry.is_accessor and entry.is_accessor and (
                existing_entry.kind is entry.kind
                and existing_entry.property_name == entry.property_name
            ):
                continue
            raise ShapeIntrospectionError(
                f"Method {method_name!r} is ambiguous between "
                f"{existing_entry.interface.__qualname__} and {entry.interface.__qualname__}"
            )

    return PropertyShape(
        interfaces=tuple(interfaces),
        properties=properties,
        dispatch=dispatch,
        repr_ignored=frozenset(ignored),
    )


class ShapeRegistry:
    """Memoized shapes per interface and per combination of interfaces.

    An interface's shape never changes after first use, so entries live until
    `invalidate()` is called.
    """

    def __init__(self) -> None:
        self._shapes: dict[type, PropertyShape] = {}
        self._failures: dict[type, ShapeIntrospectionError] = {}
        self._combined: dict[tuple[type, ...], PropertyShape] = {}

    def introspect(self, interface: type) -> PropertyShape:
        """Get the shape of one interface, introspecting it on first use."""
        shape = self._shapes.get(interface)
        if shape is not None:
            return shape
        failure = self._failures.get(interface)
        if failure is not None:
            raise failure
        try:
            shape = introspect(interface)
        except ShapeIntrospectionError as e:
            self._failures[interface] = e
            raise
        self._shapes[interface] = shape
        return shape

    def shape_for(self, interfaces: Iterable[type]) -> PropertyShape:
        """Get the combined shape for a primary interface plus additional ones."""
        key = tuple(interfaces)
        if not key:
            raise ValueError("Must supply at least one interface")
        shape = self._combined.get(key)
        if shape is None:
            if len(key) == 1:
                shape = self.introspect(key[0])
            else:
                shape = merge_shapes([self.introspect(i) for i in key])
            self._combined[key] = shape
        return shape

    def invalidate(self, interface: type | None = None) -> None:
        """Drop memoized shapes for one interface, or for all of them."""
        if interface is None:
            self._shapes.clear()
            self._failures.clear()
            self._combined.clear()
            return
        self._shapes.pop(interface, None)
        self._failures.pop(interface, None)
        for key in [k for k in self._combined if interface in k]:
            del self._combined[key]

    def __contains__(self, interface: type) -> bool:
        return interface in self._shapes

    def __len__(self) -> int:
        return len(self._shapes)
