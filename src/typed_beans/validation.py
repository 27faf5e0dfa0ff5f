"""Validation of property names, paths and values against a shape."""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping, MutableSequence
from typing import Any

import numpy as np

from typed_beans.bean import get_dispatcher
from typed_beans.errors import InvalidPathError, TypeMismatchError, UnknownPropertyError
from typed_beans.parsing import parse_path
from typed_beans.path import IndexedName, KeyedName, Name, PathExpression, Segment
from typed_beans.primitives import strategy_for
from typed_beans.shape import PropertyDescriptor, PropertyShape, ShapeRegistry
from typed_beans.types import (
    ArrayTypeDefinition,
    InterfaceTypeDefinition,
    MapTypeDefinition,
    PrimitiveTypeDefinition,
    ReferenceTypeDefinition,
    SequenceTypeDefinition,
    TypeDefinition,
)


def split_initial_values(
    values: Mapping[Any, Any],
) -> tuple[dict[Any, Any], dict[Any, Any]]:
    """Separate plain property names from structural path keys.

    Both results keep the caller's insertion order, and every entry lands in
    exactly one of them.

    Returns:
        (simple, structural) dictionaries keyed by the original keys.
    """
    simple: dict[Any, Any] = {}
    structural: dict[Any, Any] = {}
    for key, value in values.items():
        if parse_path(key).is_structural:
            structural[key] = value
        else:
            simple[key] = value
    return simple, structural


def target_type(descriptor: PropertyDescriptor, segment: Segment) -> TypeDefinition:
    """Return the type addressed by a segment: the property, or one element of it."""
    if isinstance(segment, Name):
        return descriptor.type_def
    return descriptor.element_type  # type: ignore[return-value]


class Validator:
    """Checks names, paths and values before they reach a store.

    The same checks run for construction-time initial values and for later
    mutation, so both paths reject the same input with the same error.
    """

    def __init__(self, registry: ShapeRegistry) -> None:
        self.registry = registry

    def check_segment(
        self, shape: PropertyShape, segment: Segment, where: str, leaf: bool
    ) -> PropertyDescriptor:
        """Resolve one segment against a shape.

        Raises:
            UnknownPropertyError: If the segment names no declared property.
            InvalidPathError: If brackets, keys or dotted descent do not fit
                the property's type.
        """
        descriptor = shape.get(segment.name)
        if descriptor is None:
            raise UnknownPropertyError(
                f"No property {segment.name!r} is declared by {shape.name} "
                f"(path {where!r})"
            )
        type_def = descriptor.type_def

        if isinstance(segment, Name):
            if leaf or type_def.is_interface:
                return descriptor
            if type_def.is_indexable:
                raise InvalidPathError(
                    f"Path {where!r} must index {segment.name!r} with brackets "
                    f"before descending into it"
                )
            if type_def.is_mapped:
                raise InvalidPathError(
                    f"Path {where!r} must key {segment.name!r} as {segment.name}(key) "
                    f"before descending into it"
                )
            raise InvalidPathError(
                f"Path {where!r} descends into {segment.name!r}, which is a "
                f"{type_def.name}, not a bean"
            )

        if isinstance(segment, IndexedName) and not type_def.is_indexable:
            raise InvalidPathError(
                f"Path {where!r} uses brackets on {segment.name!r}, which is a "
                f"{type_def.name}, not a sequence or array"
            )
        if isinstance(segment, KeyedName) and not type_def.is_mapped:
            raise InvalidPathError(
                f"Path {where!r} uses a key on {segment.name!r}, which is a "
                f"{type_def.name}, not a mapping"
            )
        if not leaf and not descriptor.element_type.is_interface:  # type: ignore[union-attr]
            raise InvalidPathError(
                f"Path {where!r} descends into elements of {segment.name!r}, which "
                f"are {descriptor.element_type.name}, not beans"  # type: ignore[union-attr]
            )
        return descriptor

    def nested_shape(self, type_def: TypeDefinition) -> PropertyShape:
        """Return the shape of an interface-typed property or element."""
        assert isinstance(type_def, InterfaceTypeDefinition)
        return self.registry.shape_for([type_def.interface])

    def resolve(
        self,
        shape: PropertyShape,
        path: PathExpression | tuple[Segment, ...],
        where: str | None = None,
    ) -> TypeDefinition:
        """Return the declared type a path addresses, checking every segment."""
        segments = path.segments if isinstance(path, PathExpression) else path
        where = where or ".".join(str(s) for s in segments)
        current = shape
        addressed: TypeDefinition | None = None
        for position, segment in enumerate(segments):
            leaf = position == len(segments) - 1
            descriptor = self.check_segment(current, segment, where, leaf)
            addressed = target_type(descriptor, segment)
            if not leaf:
                current = self.nested_shape(addressed)
        assert addressed is not None
        return addressed

    def check_path(
        self,
        shape: PropertyShape,
        path: PathExpression | tuple[Segment, ...],
        value: Any,
        where: str | None = None,
    ) -> None:
        """Validate a path and its leaf value against shapes alone.

        Used where no store holds the intermediate values yet, so container
        bounds are not checked here.
        """
        segments = path.segments if isinstance(path, PathExpression) else path
        where = where or ".".join(str(s) for s in segments)
        self.check_value(self.resolve(shape, segments, where), value, where)

    def check_value(self, type_def: TypeDefinition, value: Any, where: str) -> None:
        """Check that a value is assignable to a declared type.

        Raises:
            TypeMismatchError: If the value does not fit the type.
        """
        if value is None:
            if isinstance(type_def, PrimitiveTypeDefinition) and not type_def.nullable:
                raise TypeMismatchError(
                    f"{where} is a {type_def.name} and cannot be set to None"
                )
            return

        if isinstance(type_def, PrimitiveTypeDefinition):
            strategy_for(type_def.primitive).check(value, where)
        elif isinstance(type_def, InterfaceTypeDefinition):
            self._check_interface(type_def, value, where)
        elif isinstance(type_def, SequenceTypeDefinition):
            if not isinstance(value, MutableSequence):
                self._mismatch(type_def, value, where)
            for index, element in enumerate(value):
                self.check_value(type_def.element_type, element, f"{where}[{index}]")
        elif isinstance(type_def, ArrayTypeDefinition):
            self._check_array(type_def, value, where)
        elif isinstance(type_def, MapTypeDefinition):
            if not isinstance(value, MutableMapping) or get_dispatcher(value) is not None:
                self._mismatch(type_def, value, where)
            for key, element in value.items():
                if not isinstance(key, str):
                    raise TypeMismatchError(f"{where} requires string keys, got {key!r}")
                self.check_value(type_def.value_type, element, f"{where}({key})")
        elif isinstance(type_def, ReferenceTypeDefinition):
            if not isinstance(value, type_def.python_type):
                self._mismatch(type_def, value, where)

    def validate_initial(self, shape: PropertyShape, values: Mapping[Any, Any]) -> None:
        """Validate every entry of a flat initial-value map against a shape."""
        for key, value in values.items():
            path = parse_path(key)
            self.check_path(shape, path, value, str(path))

    def _check_interface(
        self, type_def: InterfaceTypeDefinition, value: Any, where: str
    ) -> None:
        if isinstance(value, type_def.interface):
            return
        if isinstance(value, Mapping) and get_dispatcher(value) is None:
            # A raw mapping becomes the nested bean's initial values
            self.validate_initial(self.nested_shape(type_def), value)
            return
        self._mismatch(type_def, value, where)

    def _check_array(self, type_def: ArrayTypeDefinition, value: Any, where: str) -> None:
        if not isinstance(value, np.ndarray) or value.ndim != 1:
            self._mismatch(type_def, value, where)
        if not value.flags.writeable:
            raise TypeMismatchError(f"{where} requires a writeable array, got a read-only one")
        element = type_def.element_type
        if isinstance(element, PrimitiveTypeDefinition) and not element.nullable:
            strategy = strategy_for(element.primitive)
            if not strategy.matches(value):
                raise TypeMismatchError(
                    f"{where} requires an array of {element.name} ({strategy.dtype}), "
                    f"got dtype {value.dtype}"
                )
            return
        if value.dtype != object:
            raise TypeMismatchError(
                f"{where} requires an object array of {element.name}, got dtype {value.dtype}"
            )
        for index, item in enumerate(value):
            self.check_value(element, item, f"{where}[{index}]")

    def _mismatch(self, type_def: TypeDefinition, value: Any, where: str) -> None:
        raise TypeMismatchError(
            f"{where} requires a {type_def.name}, got {type(value).__name__}: {value!r}"
        )
