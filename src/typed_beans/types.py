"""Type definitions for the typed_beans library."""

from __future__ import annotations

import collections.abc
import types
import typing
from abc import ABC
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Generic, NewType, TypeVar

from typed_beans.errors import ShapeIntrospectionError

T = TypeVar("T")


class PrimitiveType(Enum):
    """Built-in primitive kinds supported by the type system."""

    BOOLEAN = "boolean"
    INT8 = "int8"
    INT16 = "int16"
    CHAR = "char"
    INT32 = "int32"
    INT64 = "int64"
    FLOAT32 = "float32"
    FLOAT64 = "float64"


# Annotation markers for the primitive kinds. At runtime they are the identity
# function, so `int8(5) == 5`.
boolean = NewType("boolean", bool)
int8 = NewType("int8", int)
int16 = NewType("int16", int)
char = NewType("char", str)
int32 = NewType("int32", int)
int64 = NewType("int64", int)
float32 = NewType("float32", float)
float64 = NewType("float64", float)

PRIMITIVE_ANNOTATIONS: dict[Any, PrimitiveType] = {
    boolean: PrimitiveType.BOOLEAN,
    int8: PrimitiveType.INT8,
    int16: PrimitiveType.INT16,
    char: PrimitiveType.CHAR,
    int32: PrimitiveType.INT32,
    int64: PrimitiveType.INT64,
    float32: PrimitiveType.FLOAT32,
    float64: PrimitiveType.FLOAT64,
    bool: PrimitiveType.BOOLEAN,
    int: PrimitiveType.INT64,
    float: PrimitiveType.FLOAT64,
}

# Zero value returned when an unset primitive property is read
PRIMITIVE_DEFAULTS: dict[PrimitiveType, Any] = {
    PrimitiveType.BOOLEAN: False,
    PrimitiveType.INT8: 0,
    PrimitiveType.INT16: 0,
    PrimitiveType.CHAR: "\x00",
    PrimitiveType.INT32: 0,
    PrimitiveType.INT64: 0,
    PrimitiveType.FLOAT32: 0.0,
    PrimitiveType.FLOAT64: 0.0,
}


class Array(Generic[T]):
    """Annotation marker for a fixed-size array property, e.g. ``Array[int32]``.

    Values are one-dimensional ``numpy.ndarray`` instances; see
    ``typed_beans.primitives.new_array`` for allocation.
    """


_SEQUENCE_ORIGINS = (
    list,
    collections.abc.Sequence,
    collections.abc.MutableSequence,
    collections.abc.Collection,
)

_MAPPING_ORIGINS = (
    dict,
    collections.abc.Mapping,
    collections.abc.MutableMapping,
)

# ABC subclasses from these modules are library protocols, not bean interfaces
_LIBRARY_MODULES = frozenset({"abc", "os", "io", "typing", "numbers", "contextlib"})


def is_interface(candidate: Any) -> bool:
    """Check whether a class can back a dynamic bean.

    Interfaces are ``abc.ABC`` subclasses declaring abstract accessor stubs.
    """
    return (
        isinstance(candidate, type)
        and issubclass(candidate, ABC)
        and candidate is not ABC
        and candidate.__module__ not in _LIBRARY_MODULES
        and not candidate.__module__.startswith("collections")
    )


@dataclass(frozen=True)
class TypeDefinition:
    """Base class for all declared property types."""

    name: str

    @property
    def is_primitive(self) -> bool:
        """Return whether this type is a primitive kind."""
        return False

    @property
    def is_sequence(self) -> bool:
        """Return whether this type is a growable sequence."""
        return False

    @property
    def is_array(self) -> bool:
        """Return whether this type is a fixed-size array."""
        return False

    @property
    def is_mapped(self) -> bool:
        """Return whether this type is a string-keyed mapping."""
        return False

    @property
    def is_interface(self) -> bool:
        """Return whether this type is a nested bean interface."""
        return False

    @property
    def is_indexable(self) -> bool:
        """Return whether `[n]` path segments apply to this type."""
        return self.is_sequence or self.is_array

    @property
    def default_value(self) -> Any:
        """Return the value read for an unset property of this type."""
        return None


@dataclass(frozen=True)
class PrimitiveTypeDefinition(TypeDefinition):
    """A primitive kind, optionally boxed (nullable)."""

    primitive: PrimitiveType
    nullable: bool = False

    @property
    def is_primitive(self) -> bool:
        return True

    @property
    def default_value(self) -> Any:
        if self.nullable:
            return None
        return PRIMITIVE_DEFAULTS[self.primitive]


@dataclass(frozen=True)
class ReferenceTypeDefinition(TypeDefinition):
    """An opaque reference type checked with isinstance()."""

    python_type: type


@dataclass(frozen=True)
class InterfaceTypeDefinition(TypeDefinition):
    """A nested bean typed by an interface."""

    interface: type

    @property
    def is_interface(self) -> bool:
        return True


@dataclass(frozen=True)
class SequenceTypeDefinition(TypeDefinition):
    """A growable sequence, stored as a list."""

    element_type: TypeDefinition

    @property
    def is_sequence(self) -> bool:
        return True


@dataclass(frozen=True)
class ArrayTypeDefinition(TypeDefinition):
    """A fixed-size array, stored as a one-dimensional numpy array."""

    element_type: TypeDefinition

    @property
    def is_array(self) -> bool:
        return True


@dataclass(frozen=True)
class MapTypeDefinition(TypeDefinition):
    """A string-keyed mapping of values."""

    value_type: TypeDefinition

    @property
    def is_mapped(self) -> bool:
        return True


OBJECT_TYPE = ReferenceTypeDefinition(name="object", python_type=object)


def element_type_of(type_def: TypeDefinition) -> TypeDefinition | None:
    """Return the element type addressed by a bracket or keyed segment."""
    if isinstance(type_def, (SequenceTypeDefinition, ArrayTypeDefinition)):
        return type_def.element_type
    if isinstance(type_def, MapTypeDefinition):
        return type_def.value_type
    return None


def resolve_annotation(annotation: Any) -> TypeDefinition:
    """Resolve an evaluated type annotation to a type definition.

    Raises:
        ShapeIntrospectionError: If the annotation has no supported mapping.
    """
    if annotation is None or annotation is type(None):
        raise ShapeIntrospectionError("Accessor types cannot be None")

    origin = typing.get_origin(annotation)
    args = typing.get_args(annotation)

    if origin is typing.Union or origin is types.UnionType:
        non_none = [a for a in args if a is not type(None)]
        if len(non_none) != 1 or len(non_none) == len(args):
            raise ShapeIntrospectionError(
                f"Only optional unions are supported, got {annotation!r}"
            )
        inner = resolve_annotation(non_none[0])
        if isinstance(inner, PrimitiveTypeDefinition):
            return replace(inner, name=f"{inner.name} | None", nullable=True)
        return inner

    if origin is None:
        try:
            primitive = PRIMITIVE_ANNOTATIONS.get(annotation)
        except TypeError:
            primitive = None
        if primitive is not None:
            return PrimitiveTypeDefinition(name=primitive.value, primitive=primitive)

    if annotation is Any or annotation is object:
        return OBJECT_TYPE

    if origin in _SEQUENCE_ORIGINS or annotation in _SEQUENCE_ORIGINS:
        element = resolve_annotation(args[0]) if args else OBJECT_TYPE
        return SequenceTypeDefinition(name=f"list[{element.name}]", element_type=element)

    if origin is Array or annotation is Array:
        element = resolve_annotation(args[0]) if args else OBJECT_TYPE
        return ArrayTypeDefinition(name=f"Array[{element.name}]", element_type=element)

    if origin in _MAPPING_ORIGINS or annotation in _MAPPING_ORIGINS:
        if args and args[0] is not str:
            raise ShapeIntrospectionError(
                f"Mapped properties must use string keys, got {annotation!r}"
            )
        value = resolve_annotation(args[1]) if args else OBJECT_TYPE
        return MapTypeDefinition(name=f"dict[str, {value.name}]", value_type=value)

    if is_interface(annotation):
        return InterfaceTypeDefinition(name=annotation.__name__, interface=annotation)

    if isinstance(annotation, type):
        return ReferenceTypeDefinition(name=annotation.__name__, python_type=annotation)

    raise ShapeIntrospectionError(f"Unsupported accessor type {annotation!r}")
