"""Exceptions raised by the typed_beans library."""

from __future__ import annotations


class BeanError(Exception):
    """Base class for all typed_beans errors."""


class MalformedPathError(BeanError, SyntaxError):
    """A path expression could not be tokenized or parsed."""


class UnknownPropertyError(BeanError, LookupError):
    """A name does not resolve to a declared property."""


class InvalidPathError(BeanError, ValueError):
    """Bracket or dotted usage is inconsistent with the property's shape."""


class ArrayBoundsError(BeanError, IndexError):
    """An index falls outside a fixed-size array or a sequence being read."""


class TypeMismatchError(BeanError, TypeError):
    """A value is not assignable to the declared property type."""


class UnsupportedBehaviorError(BeanError, NotImplementedError):
    """A non-accessor method has no delegate to service it."""


class ShapeIntrospectionError(BeanError, TypeError):
    """An interface declares an unrecognizable or ambiguous accessor."""


class InvalidDelegateError(BeanError, ValueError):
    """A delegate does not fit the bean or property it is attached to."""


class ImmutableBeanError(BeanError, RuntimeError):
    """A mutation was attempted on an unmodifiable bean."""
