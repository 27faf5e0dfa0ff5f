"""Delegates that supply behavior, property access and construction hooks."""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Iterable, Mapping

import structlog

from typed_beans.errors import (
    InvalidDelegateError,
    ShapeIntrospectionError,
    UnsupportedBehaviorError,
)
from typed_beans.shape import DispatchEntry, PropertyDescriptor, PropertyShape
from typed_beans.types import resolve_annotation

if TYPE_CHECKING:
    from typed_beans.store import PropertyStore

logger = structlog.get_logger(__name__)


class InterfaceDelegate(ABC):
    """Implements the behavior methods one interface declares.

    Behavior methods are looked up on the delegate by name and called with
    the caller's arguments. The delegate can reach the bean's values through
    ``self.store`` while attached.
    """

    store: PropertyStore | None = None

    @abstractmethod
    def declared_interface(self) -> type:
        """Return the interface whose behavior methods this delegate implements."""

    def attach(self, store: PropertyStore) -> None:
        self.store = store

    def detach(self) -> None:
        self.store = None


class PropertyDelegate(ABC):
    """Computes or intercepts one property in place of the store."""

    @abstractmethod
    def property_type(self) -> Any:
        """Return the annotation of the property this delegate serves."""

    @abstractmethod
    def get(self, store: PropertyStore, name: str) -> Any: ...

    @abstractmethod
    def set(self, store: PropertyStore, name: str, value: Any) -> None: ...


class IndexedPropertyDelegate(PropertyDelegate):
    """A property delegate that also serves the indexed accessors."""

    @abstractmethod
    def component_type(self) -> Any:
        """Return the annotation of one element."""

    @abstractmethod
    def get_at(self, store: PropertyStore, name: str, index: int) -> Any: ...

    @abstractmethod
    def set_at(self, store: PropertyStore, name: str, index: int, value: Any) -> None: ...


class ConstructionDelegate:
    """Hooks run while a factory builds a bean of the registered interface.

    Both hooks are optional; override the ones you need.
    """

    def additional_types(
        self,
        nesting_depth: int,
        this_type: type,
        primary_type: type,
        all_types: tuple[type, ...],
        initial_values: Mapping[str, Any] | None,
    ) -> Iterable[type] | None:
        """Return further interfaces the new bean should implement, or None."""
        return None

    def init(self, nesting_depth: int, this_type: type, bean: Any) -> None:
        """Initialize values of a freshly built bean.

        Nested beans created here should be built at ``nesting_depth + 1``.
        """

    def init_behaviors(self, nesting_depth: int, this_type: type, bean: Any) -> None:
        """Attach interface delegates to a freshly built bean."""


def _declared_type(delegate: Any, accessor: str, where: str) -> Any:
    try:
        return resolve_annotation(getattr(delegate, accessor)())
    except ShapeIntrospectionError as e:
        raise InvalidDelegateError(f"{where}: {e}") from e


def check_property_delegate(descriptor: PropertyDescriptor, delegate: Any) -> None:
    """Check that a property delegate serves the property's declared type.

    Raises:
        InvalidDelegateError: If the delegate is not a property delegate or
            its declared types do not match.
    """
    where = f"Delegate {type(delegate).__name__} for property {descriptor.name!r}"
    if not isinstance(delegate, PropertyDelegate):
        raise InvalidDelegateError(f"{where} is not a PropertyDelegate")

    declared = _declared_type(delegate, "property_type", where)
    if declared != descriptor.type_def:
        raise InvalidDelegateError(
            f"{where} serves {declared.name}, but the property is {descriptor.type_def.name}"
        )
    if descriptor.indexed:
        if not isinstance(delegate, IndexedPropertyDelegate):
            raise InvalidDelegateError(
                f"{where} must be an IndexedPropertyDelegate for an indexed property"
            )
        component = _declared_type(delegate, "component_type", where)
        if component != descriptor.element_type:
            raise InvalidDelegateError(
                f"{where} serves elements of {component.name}, "
                f"but the property holds {descriptor.element_type.name}"  # type: ignore[union-attr]
            )


class DelegateMapping:
    """The interface delegates attached to one bean, keyed by interface."""

    def __init__(self, shape: PropertyShape, store: PropertyStore) -> None:
        self.shape = shape
        self.store = store
        self._delegates: dict[type, Any] = {}

    def attach(self, delegate: Any) -> None:
        """Attach a delegate for the interface it declares.

        Raises:
            InvalidDelegateError: If the bean does not implement the interface
                or the delegate lacks one of its behavior methods.
        """
        declared = getattr(delegate, "declared_interface", None)
        if not callable(declared):
            raise InvalidDelegateError(
                f"{type(delegate).__name__} does not declare an interface"
            )
        interface = declared()
        if not self.shape.implements(interface):
            raise InvalidDelegateError(
                f"{self.shape.name} bean does not implement "
                f"{getattr(interface, '__qualname__', interface)!r}"
            )
        missing = [
            name
            for name in self.shape.behaviors(interface)
            if not callable(getattr(delegate, name, None))
        ]
        if missing:
            raise InvalidDelegateError(
                f"{type(delegate).__name__} does not implement {', '.join(missing)} "
                f"of {interface.__qualname__}"
            )

        previous = self._delegates.get(interface)
        if previous is not None:
            logger.warning(
                "interface_delegate_replaced",
                shape=self.shape.name,
                interface=interface.__qualname__,
                previous=type(previous).__name__,
                delegate=type(delegate).__name__,
            )
            self._release(previous)
        if hasattr(delegate, "attach"):
            delegate.attach(self.store)
        self._delegates[interface] = delegate

    def detach(self, interface: type) -> bool:
        """Detach the delegate for an interface, returning whether one was attached."""
        self._require(interface)
        delegate = self._delegates.pop(interface, None)
        if delegate is None:
            return False
        self._release(delegate)
        return True

    def is_attached(self, interface: type) -> bool:
        self._require(interface)
        return interface in self._delegates

    def uncovered(self) -> list[str]:
        """List behavior methods whose interface has no delegate attached."""
        return [
            entry.method_name
            for entry in self.shape.dispatch.values()
            if not entry.is_accessor and entry.interface not in self._delegates
        ]

    def ensure_covered(self) -> None:
        """Raise UnsupportedBehaviorError if any behavior method lacks a delegate."""
        uncovered = self.uncovered()
        if uncovered:
            raise UnsupportedBehaviorError(
                f"{self.shape.name} bean has no delegate for {', '.join(sorted(uncovered))}"
            )

    def invoke(self, entry: DispatchEntry, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
        """Call a behavior method on the delegate for its declaring interface."""
        delegate = self._delegates.get(entry.interface)
        if delegate is None:
            raise UnsupportedBehaviorError(
                f"No delegate is attached for {entry.interface.__qualname__}."
                f"{entry.method_name} on {self.shape.name} bean"
            )
        logger.debug(
            "behavior_delegated",
            method=entry.method_name,
            delegate=type(delegate).__name__,
        )
        return getattr(delegate, entry.method_name)(*args, **kwargs)

    def copy_into(self, other: DelegateMapping) -> None:
        """Attach shallow copies of these delegates to another bean's mapping."""
        for delegate in self._delegates.values():
            other.attach(copy.copy(delegate))

    def _require(self, interface: type) -> None:
        if not self.shape.implements(interface):
            raise InvalidDelegateError(
                f"{self.shape.name} bean does not implement "
                f"{getattr(interface, '__qualname__', interface)!r}"
            )

    def _release(self, delegate: Any) -> None:
        if hasattr(delegate, "detach"):
            delegate.detach()

    def __len__(self) -> int:
        return len(self._delegates)
