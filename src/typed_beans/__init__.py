"""Typed Beans - Dynamic, interface-typed property beans addressed by path."""

from typed_beans.bean import DynamicBean, get_dispatcher
from typed_beans.builder import StructuredValueBuilder, flatten_values
from typed_beans.delegation import (
    ConstructionDelegate,
    IndexedPropertyDelegate,
    InterfaceDelegate,
    PropertyDelegate,
)
from typed_beans.dispatcher import DynamicDispatcher
from typed_beans.errors import (
    ArrayBoundsError,
    BeanError,
    ImmutableBeanError,
    InvalidDelegateError,
    InvalidPathError,
    MalformedPathError,
    ShapeIntrospectionError,
    TypeMismatchError,
    UnknownPropertyError,
    UnsupportedBehaviorError,
)
from typed_beans.factory import BeanFactory, is_bean
from typed_beans.parsing import parse_path
from typed_beans.path import IndexedName, KeyedName, Name, PathExpression
from typed_beans.primitives import PrimitiveArrayStrategy, new_array, strategy_for
from typed_beans.shape import PropertyDescriptor, PropertyShape, ShapeRegistry, ignore_in_repr
from typed_beans.store import PropertyStore
from typed_beans.types import (
    Array,
    PrimitiveType,
    boolean,
    char,
    float32,
    float64,
    int8,
    int16,
    int32,
    int64,
)
from typed_beans.validation import Validator

__all__ = [
    # Main API
    "BeanFactory",
    "DynamicBean",
    "DynamicDispatcher",
    "PropertyStore",
    "get_dispatcher",
    "is_bean",
    "ignore_in_repr",
    # Paths
    "PathExpression",
    "Name",
    "IndexedName",
    "KeyedName",
    "parse_path",
    # Shapes and values
    "PropertyShape",
    "PropertyDescriptor",
    "ShapeRegistry",
    "Validator",
    "StructuredValueBuilder",
    "flatten_values",
    "PrimitiveArrayStrategy",
    "strategy_for",
    "new_array",
    # Type markers
    "Array",
    "PrimitiveType",
    "boolean",
    "int8",
    "int16",
    "char",
    "int32",
    "int64",
    "float32",
    "float64",
    # Delegates
    "InterfaceDelegate",
    "PropertyDelegate",
    "IndexedPropertyDelegate",
    "ConstructionDelegate",
    # Errors
    "BeanError",
    "MalformedPathError",
    "UnknownPropertyError",
    "InvalidPathError",
    "ArrayBoundsError",
    "TypeMismatchError",
    "UnsupportedBehaviorError",
    "ShapeIntrospectionError",
    "InvalidDelegateError",
    "ImmutableBeanError",
]

__version__ = "0.1.0"
