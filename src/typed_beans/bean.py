"""Base class of every synthesized bean class."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from typed_beans.dispatcher import DynamicDispatcher
    from typed_beans.store import PropertyStore


class DynamicBean:
    """An instance whose interface methods are all serviced by a dispatcher.

    Equality, hashing, repr() and the copy protocol go to the dispatcher as
    well, so they reflect the bean's property values.
    """

    _dispatcher: DynamicDispatcher

    def __init__(self, dispatcher: DynamicDispatcher) -> None:
        object.__setattr__(self, "_dispatcher", dispatcher)

    def __eq__(self, other: object) -> bool:
        return self._dispatcher.equals(other)

    def __ne__(self, other: object) -> bool:
        return not self._dispatcher.equals(other)

    def __hash__(self) -> int:
        return self._dispatcher.hash_code()

    def __repr__(self) -> str:
        return self._dispatcher.describe()

    def __copy__(self) -> DynamicBean:
        return self._dispatcher.copy(deep=False)

    def __deepcopy__(self, memo: dict[int, Any]) -> DynamicBean:
        return self._dispatcher.copy(deep=True, memo=memo)


def get_dispatcher(obj: Any) -> DynamicDispatcher | None:
    """Return the dispatcher behind a bean, or None for any other object."""
    if isinstance(obj, DynamicBean):
        return obj._dispatcher
    return None


def store_of(obj: Any) -> PropertyStore | None:
    """Return the property store behind a bean, or None for any other object."""
    dispatcher = get_dispatcher(obj)
    return dispatcher.store if dispatcher is not None else None
