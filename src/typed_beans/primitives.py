"""Per-kind strategies for boxed access to fixed-size primitive arrays.

Each strategy is stateless and shared; `strategy_for()` selects one by kind.
These are the only functions that index primitive arrays directly.
"""

from __future__ import annotations

from typing import Any

import numpy as np

from typed_beans.errors import ArrayBoundsError, TypeMismatchError
from typed_beans.types import (
    PRIMITIVE_DEFAULTS,
    ArrayTypeDefinition,
    PrimitiveType,
    PrimitiveTypeDefinition,
    TypeDefinition,
    resolve_annotation,
)


class PrimitiveArrayStrategy:
    """Boxed get/set on a one-dimensional array of a single primitive kind."""

    def __init__(self, kind: PrimitiveType, dtype: Any) -> None:
        self.kind = kind
        self.dtype = np.dtype(dtype)

    def default_value(self) -> Any:
        """Return the zero-equivalent for this kind."""
        return PRIMITIVE_DEFAULTS[self.kind]

    def accepts(self, value: Any) -> bool:
        """Return whether a boxed value is exactly of this kind."""
        raise NotImplementedError

    def check(self, value: Any, where: str) -> Any:
        """Return the value as a plain Python scalar, or raise on a kind mismatch."""
        if not self.accepts(value):
            raise TypeMismatchError(
                f"{where} requires a {self.kind.value} value, "
                f"got {type(value).__name__}: {value!r}"
            )
        return self.box(value)

    def box(self, value: Any) -> Any:
        if isinstance(value, np.generic):
            return value.item()
        return value

    def unbox(self, value: Any) -> Any:
        """Return the representation stored in the array."""
        return value

    def matches(self, array: np.ndarray) -> bool:
        """Return whether an array has this strategy's element dtype."""
        return array.dtype == self.dtype

    def new_array(self, length: int) -> np.ndarray:
        return np.zeros(length, dtype=self.dtype)

    def get_element(self, array: np.ndarray, index: int) -> Any:
        _check_bounds(array, index)
        return self.box(array[index])

    def set_element(self, array: np.ndarray, index: int, value: Any) -> None:
        checked = self.check(value, f"Element {index} of a {self.kind.value} array")
        _check_bounds(array, index)
        array[index] = self.unbox(checked)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.value})"


class BooleanStrategy(PrimitiveArrayStrategy):
    def accepts(self, value: Any) -> bool:
        return isinstance(value, (bool, np.bool_))


class IntegralStrategy(PrimitiveArrayStrategy):
    """Signed integers; Python ints must fit the kind's range."""

    def __init__(self, kind: PrimitiveType, dtype: Any) -> None:
        super().__init__(kind, dtype)
        info = np.iinfo(self.dtype)
        self.min_value = int(info.min)
        self.max_value = int(info.max)

    def accepts(self, value: Any) -> bool:
        if isinstance(value, (bool, np.bool_)):
            return False
        if isinstance(value, np.integer):
            return value.dtype == self.dtype
        if isinstance(value, int):
            return self.min_value <= value <= self.max_value
        return False


class FloatingStrategy(PrimitiveArrayStrategy):
    def accepts(self, value: Any) -> bool:
        if isinstance(value, np.floating):
            return value.dtype == self.dtype
        return isinstance(value, float)


class CharStrategy(PrimitiveArrayStrategy):
    """Single characters, stored as UTF-32 code points."""

    def accepts(self, value: Any) -> bool:
        return isinstance(value, str) and len(value) == 1

    def box(self, value: Any) -> Any:
        if isinstance(value, np.integer):
            return chr(int(value))
        return value

    def unbox(self, value: Any) -> Any:
        return ord(value)


STRATEGIES: dict[PrimitiveType, PrimitiveArrayStrategy] = {
    PrimitiveType.BOOLEAN: BooleanStrategy(PrimitiveType.BOOLEAN, np.bool_),
    PrimitiveType.INT8: IntegralStrategy(PrimitiveType.INT8, np.int8),
    PrimitiveType.INT16: IntegralStrategy(PrimitiveType.INT16, np.int16),
    PrimitiveType.CHAR: CharStrategy(PrimitiveType.CHAR, np.uint32),
    PrimitiveType.INT32: IntegralStrategy(PrimitiveType.INT32, np.int32),
    PrimitiveType.INT64: IntegralStrategy(PrimitiveType.INT64, np.int64),
    PrimitiveType.FLOAT32: FloatingStrategy(PrimitiveType.FLOAT32, np.float32),
    PrimitiveType.FLOAT64: FloatingStrategy(PrimitiveType.FLOAT64, np.float64),
}


def strategy_for(kind: PrimitiveType) -> PrimitiveArrayStrategy:
    """Return the shared strategy for a primitive kind."""
    return STRATEGIES[kind]


def is_primitive_array(type_def: TypeDefinition) -> bool:
    """Return whether an array type holds primitive (unboxed) elements."""
    return (
        isinstance(type_def, ArrayTypeDefinition)
        and isinstance(type_def.element_type, PrimitiveTypeDefinition)
        and not type_def.element_type.nullable
    )


def new_array(element: Any, length: int) -> np.ndarray:
    """Allocate a zero-filled array for an element annotation.

    Primitive kinds get their own dtype; anything else (including boxed
    primitives such as ``int32 | None``) gets an object array of ``None``.

    Args:
        element: Element annotation, e.g. ``int32`` or a bean interface.
        length: Fixed length of the array.

    Returns:
        A new one-dimensional numpy array.
    """
    if length < 0:
        raise ArrayBoundsError(f"Array length must not be negative, got {length}")
    element_type = element if isinstance(element, TypeDefinition) else resolve_annotation(element)
    if isinstance(element_type, PrimitiveTypeDefinition) and not element_type.nullable:
        return strategy_for(element_type.primitive).new_array(length)
    return np.full(length, None, dtype=object)


def _check_bounds(array: np.ndarray, index: int) -> None:
    if index < 0 or index >= len(array):
        raise ArrayBoundsError(
            f"Index {index} is out of bounds for an array of length {len(array)}"
        )
