"""Factory for dynamic beans."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, TypeVar

import structlog

from typed_beans.bean import DynamicBean, get_dispatcher
from typed_beans.delegation import ConstructionDelegate, PropertyDelegate
from typed_beans.dispatcher import DynamicDispatcher
from typed_beans.errors import ShapeIntrospectionError, TypeMismatchError
from typed_beans.shape import ShapeRegistry, interface_hierarchy
from typed_beans.store import PathLike, PropertyStore
from typed_beans.types import is_interface
from typed_beans.validation import Validator

logger = structlog.get_logger(__name__)

B = TypeVar("B")


class BeanFactory:
    """Creates, copies and manages dynamic beans.

    Configuration is explicit: pass a shared `ShapeRegistry` to reuse
    introspection results between factories, and register construction
    delegates on the factory that should run them.

    Example:
        factory = BeanFactory()
        bean = factory.create(ListBean, initial_values={"collection[0].boolean": True})
        bean.get_collection_at(0).is_boolean()  # True
    """

    def __init__(
        self,
        registry: ShapeRegistry | None = None,
        default_delegate: ConstructionDelegate | None = None,
    ) -> None:
        """Initialize the factory.

        Args:
            registry: Shape registry to use; a private one by default.
            default_delegate: Construction delegate run for every bean, before
                the delegates registered for specific interfaces.
        """
        self.registry = registry or ShapeRegistry()
        self.validator = Validator(self.registry)
        self.default_delegate = default_delegate
        self._construction_delegates: dict[type, ConstructionDelegate] = {}

    # Construction delegates

    def register(self, for_type: type, delegate: ConstructionDelegate) -> None:
        """Run a construction delegate whenever a bean implementing a type is built."""
        if not is_interface(for_type):
            raise ShapeIntrospectionError(f"{for_type!r} is not an interface")
        self._construction_delegates[for_type] = delegate
        logger.debug(
            "construction_delegate_registered",
            interface=for_type.__qualname__,
            delegate=type(delegate).__name__,
        )

    def unregister(self, for_type: type) -> ConstructionDelegate | None:
        """Remove the construction delegate for a type, returning it if there was one."""
        return self._construction_delegates.pop(for_type, None)

    def register_default(self, delegate: ConstructionDelegate | None) -> None:
        self.default_delegate = delegate

    # Creation

    def create(
        self,
        primary: type[B],
        *additional: type,
        initial_values: Mapping[PathLike, Any] | None = None,
        delegates: Iterable[Any] = (),
        nesting_depth: int = 0,
    ) -> B:
        """Create a bean implementing one or more interfaces.

        Args:
            primary: The main interface; it names the bean in repr().
            *additional: Further interfaces the bean implements.
            initial_values: Flat map of path expressions to values.
            delegates: Interface delegates to attach.
            nesting_depth: Depth of the bean in its bean graph; nested beans
                built by the store use their parent's depth plus one.

        Returns:
            The new bean, an instance of every requested interface.

        Raises:
            ShapeIntrospectionError: If a type is not a valid interface.
            UnknownPropertyError, InvalidPathError, TypeMismatchError,
            ArrayBoundsError: If the initial values do not fit the shape.
            InvalidDelegateError: If a delegate does not fit the bean.
            UnsupportedBehaviorError: If a behavior method has no delegate
                once construction hooks have run.
        """
        all_types = self._amend_types((primary, *additional), initial_values, nesting_depth)
        shape = self.registry.shape_for(all_types)

        store = PropertyStore(shape, self, nesting_depth)
        if initial_values:
            store.initialize(initial_values)

        dispatcher = DynamicDispatcher(shape, store, self)
        for delegate in delegates:
            dispatcher.delegates.attach(delegate)

        bean = dispatcher.bean
        self._after_init(bean, all_types, nesting_depth)
        dispatcher.delegates.ensure_covered()
        logger.debug(
            "bean_created",
            interfaces=[t.__qualname__ for t in all_types],
            values=len(store),
            nesting_depth=nesting_depth,
        )
        return bean  # type: ignore[return-value]

    def _amend_types(
        self,
        types: tuple[type, ...],
        initial_values: Mapping[PathLike, Any] | None,
        nesting_depth: int,
    ) -> tuple[type, ...]:
        combined: list[type] = []
        for candidate in types:
            self._add_type(combined, candidate)
        primary = combined[0]
        requested = tuple(combined)

        if self.default_delegate is not None:
            self._add_types(
                combined,
                self.default_delegate.additional_types(
                    nesting_depth, primary, primary, requested, initial_values
                ),
            )
        for this_type, delegate in self._delegates_for(requested):
            self._add_types(
                combined,
                delegate.additional_types(
                    nesting_depth, this_type, primary, requested, initial_values
                ),
            )
        return tuple(combined)

    def _add_types(self, combined: list[type], extra: Iterable[type] | None) -> None:
        for candidate in extra or ():
            self._add_type(combined, candidate)

    def _add_type(self, combined: list[type], candidate: Any) -> None:
        if not is_interface(candidate):
            raise ShapeIntrospectionError(
                f"{candidate!r} is not an interface; beans can only implement abc.ABC subclasses"
            )
        if candidate not in combined:
            combined.append(candidate)

    def _delegates_for(self, types: Iterable[type]) -> list[tuple[type, ConstructionDelegate]]:
        """Return the registered delegates for the types and their ancestors, in order."""
        found: list[tuple[type, ConstructionDelegate]] = []
        seen: set[type] = set()
        for requested in types:
            for interface in interface_hierarchy(requested):
                if interface in seen:
                    continue
                seen.add(interface)
                delegate = self._construction_delegates.get(interface)
                if delegate is not None:
                    found.append((interface, delegate))
        return found

    def _after_init(self, bean: Any, types: tuple[type, ...], nesting_depth: int) -> None:
        hooks: list[tuple[type, ConstructionDelegate]] = []
        if self.default_delegate is not None:
            hooks.append((types[0], self.default_delegate))
        hooks.extend(self._delegates_for(types))
        for this_type, delegate in hooks:
            delegate.init(nesting_depth, this_type, bean)
        for this_type, delegate in hooks:
            delegate.init_behaviors(nesting_depth, this_type, bean)

    # Copies

    def copy(self, bean: B, deep: bool = False) -> B:
        """Copy a bean; a deep copy also copies containers and nested beans."""
        return self.dispatcher_of(bean).copy(deep=deep)  # type: ignore[return-value]

    def copy_as(self, as_type: type[B], bean: Any, deep: bool = False) -> B:
        """Copy a bean, checking that it implements a type first."""
        self._require_type(as_type, bean)
        return self.copy(bean, deep)

    def unmodifiable(self, bean: B) -> B:
        """Return a deep copy whose values can no longer change.

        Any mutation through the copy or its nested beans raises
        `ImmutableBeanError`.
        """
        return self.dispatcher_of(bean).copy(deep=True, immutable=True)  # type: ignore[return-value]

    def unmodifiable_as(self, as_type: type[B], bean: Any) -> B:
        self._require_type(as_type, bean)
        return self.unmodifiable(bean)

    # Delegates on live beans

    def attach(self, bean: Any, *delegates: Any) -> None:
        """Attach interface delegates to a bean."""
        mapping = self.dispatcher_of(bean).delegates
        for delegate in delegates:
            mapping.attach(delegate)

    def detach(self, bean: Any, interface: type) -> bool:
        return self.dispatcher_of(bean).delegates.detach(interface)

    def is_attached(self, bean: Any, interface: type) -> bool:
        return self.dispatcher_of(bean).delegates.is_attached(interface)

    def attach_property(self, bean: Any, name: str, delegate: PropertyDelegate) -> None:
        self.store_of(bean).attach_property(name, delegate)

    def detach_property(self, bean: Any, name: str) -> bool:
        return self.store_of(bean).detach_property(name)

    def is_property_attached(self, bean: Any, name: str) -> bool:
        return self.store_of(bean).is_property_attached(name)

    # Introspection of beans

    @staticmethod
    def dispatcher_of(bean: Any) -> DynamicDispatcher:
        """Return a bean's dispatcher.

        Raises:
            TypeMismatchError: If the object is not a dynamic bean.
        """
        dispatcher = get_dispatcher(bean)
        if dispatcher is None:
            raise TypeMismatchError(
                f"Expected a dynamic bean, got {type(bean).__name__}: {bean!r}"
            )
        return dispatcher

    def store_of(self, bean: Any) -> PropertyStore:
        return self.dispatcher_of(bean).store

    @staticmethod
    def proxies_for(bean: Any, as_type: type) -> bool:
        """Return whether an object is a dynamic bean implementing a type."""
        dispatcher = get_dispatcher(bean)
        return dispatcher is not None and dispatcher.shape.implements(as_type)

    def _require_type(self, as_type: type, bean: Any) -> None:
        if not self.proxies_for(bean, as_type):
            raise TypeMismatchError(
                f"{bean!r} is not a dynamic bean implementing {as_type.__qualname__}"
            )


def is_bean(obj: Any) -> bool:
    """Return whether an object is a dynamic bean."""
    return isinstance(obj, DynamicBean)
