"""Synthesized bean classes and the dispatcher that services their methods."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

from typed_beans.bean import DynamicBean, get_dispatcher
from typed_beans.delegation import DelegateMapping, IndexedPropertyDelegate
from typed_beans.errors import ArrayBoundsError, TypeMismatchError, UnsupportedBehaviorError
from typed_beans.path import IndexedName, Name, PathExpression
from typed_beans.shape import DispatchEntry, MethodKind, PropertyShape
from typed_beans.store import PropertyStore

if TYPE_CHECKING:
    from typed_beans.factory import BeanFactory


def _bind(entry: DispatchEntry) -> Callable[..., Any]:
    """Build the method installed on a bean class for one dispatch entry."""
    method_name = entry.method_name

    if entry.kind is MethodKind.GETTER:

        def method(self: DynamicBean) -> Any:
            return self._dispatcher.invoke(method_name)

    elif entry.kind is MethodKind.SETTER:

        def method(self: DynamicBean, value: Any) -> Any:
            return self._dispatcher.invoke(method_name, value)

    elif entry.kind is MethodKind.INDEXED_GETTER:

        def method(self: DynamicBean, index: int) -> Any:
            return self._dispatcher.invoke(method_name, index)

    elif entry.kind is MethodKind.INDEXED_SETTER:

        def method(self: DynamicBean, index: int, value: Any) -> Any:
            return self._dispatcher.invoke(method_name, index, value)

    else:

        def method(self: DynamicBean, *args: Any, **kwargs: Any) -> Any:
            return self._dispatcher.invoke(method_name, *args, **kwargs)

    method.__name__ = method_name
    declared = getattr(entry.interface, method_name, None)
    method.__doc__ = getattr(declared, "__doc__", None)
    return method


def _bases(interfaces: tuple[type, ...]) -> tuple[type, ...]:
    """Drop interfaces that another listed interface already inherits from."""
    return tuple(
        interface
        for interface in interfaces
        if not any(other is not interface and issubclass(other, interface) for other in interfaces)
    )


def proxy_class_for(shape: PropertyShape) -> type:
    """Return the bean class for a shape, synthesizing it on first use.

    The class subclasses `DynamicBean` and every interface of the shape, with
    each abstract method replaced by a forwarder to the instance's dispatcher.
    Concrete methods of the interfaces are inherited unchanged.
    """
    if shape.proxy_class is None:
        namespace: dict[str, Any] = {
            name: _bind(entry) for name, entry in shape.dispatch.items()
        }
        namespace["__module__"] = shape.primary.__module__
        name = f"{shape.primary.__name__}Bean"
        namespace["__qualname__"] = name
        metaclass = type(shape.primary)
        shape.proxy_class = metaclass(name, (DynamicBean, *_bases(shape.interfaces)), namespace)
    return shape.proxy_class


class DynamicDispatcher:
    """Routes every method of one bean to its store or delegates.

    Accessors read and write the store unless a property delegate is attached
    for the property; behavior methods go to the interface delegate of the
    interface that declares them.
    """

    def __init__(self, shape: PropertyShape, store: PropertyStore, factory: BeanFactory) -> None:
        self.shape = shape
        self.store = store
        self.factory = factory
        self.delegates = DelegateMapping(shape, store)
        self._handlers: dict[MethodKind, Callable[..., Any]] = {
            MethodKind.GETTER: self._get,
            MethodKind.SETTER: self._set,
            MethodKind.INDEXED_GETTER: self._get_at,
            MethodKind.INDEXED_SETTER: self._set_at,
            MethodKind.BEHAVIOR: self._behave,
        }
        self.bean: DynamicBean = proxy_class_for(shape)(self)

    def invoke(self, method_name: str, *args: Any, **kwargs: Any) -> Any:
        """Service one method call made on the bean."""
        entry = self.shape.dispatch.get(method_name)
        if entry is None:
            raise UnsupportedBehaviorError(
                f"{self.shape.name} bean has no method {method_name!r}"
            )
        return self._handlers[entry.kind](entry, *args, **kwargs)

    def _get(self, entry: DispatchEntry) -> Any:
        name = entry.property_name
        delegate = self.store.property_delegate(name)  # type: ignore[arg-type]
        if delegate is not None:
            return delegate.get(self.store, name)
        return self.store.get(PathExpression.of(Name(name)))  # type: ignore[arg-type]

    def _set(self, entry: DispatchEntry, value: Any) -> None:
        name = entry.property_name
        delegate = self.store.property_delegate(name)  # type: ignore[arg-type]
        if delegate is not None:
            delegate.set(self.store, name, value)
            return
        self.store.put(PathExpression.of(Name(name)), value)  # type: ignore[arg-type]

    def _get_at(self, entry: DispatchEntry, index: Any) -> Any:
        name = entry.property_name
        path = PathExpression.of(IndexedName(name, _check_index(index, name)))  # type: ignore[arg-type]
        delegate = self.store.property_delegate(name)  # type: ignore[arg-type]
        if isinstance(delegate, IndexedPropertyDelegate):
            return delegate.get_at(self.store, name, index)
        return self.store.get(path)

    def _set_at(self, entry: DispatchEntry, index: Any, value: Any) -> None:
        name = entry.property_name
        path = PathExpression.of(IndexedName(name, _check_index(index, name)))  # type: ignore[arg-type]
        delegate = self.store.property_delegate(name)  # type: ignore[arg-type]
        if isinstance(delegate, IndexedPropertyDelegate):
            delegate.set_at(self.store, name, index, value)
            return
        self.store.put(path, value)

    def _behave(self, entry: DispatchEntry, *args: Any, **kwargs: Any) -> Any:
        return self.delegates.invoke(entry, args, kwargs)

    def equals(self, other: object) -> bool:
        dispatcher = get_dispatcher(other)
        if dispatcher is None:
            return False
        return dispatcher is self or self.store == dispatcher.store

    def hash_code(self) -> int:
        return self.store.hash_code()

    def describe(self) -> str:
        """Render ``Primary: {name: value, ...}`` with names sorted."""
        shown = {
            name: self.store.values[name]
            for name in sorted(self.store.values)
            if name not in self.shape.repr_ignored
        }
        return f"{self.shape.primary.__name__}: {shown!r}"

    def copy(
        self,
        deep: bool = False,
        immutable: bool | None = None,
        memo: dict[int, Any] | None = None,
    ) -> DynamicBean:
        """Copy the bean with its delegates.

        Args:
            deep: Copy containers and nested beans instead of sharing them.
            immutable: Make the copy unmodifiable. Defaults to keeping the
                source's mutability for shallow copies, and to a mutable
                result for deep ones.
            memo: Objects already copied in this deep copy, by id.
        """
        if immutable is None:
            immutable = self.store.immutable and not deep
        store = PropertyStore(self.shape, self.factory, self.store.nesting_depth)
        clone = DynamicDispatcher(self.shape, store, self.factory)
        if deep or immutable:
            memo = {} if memo is None else memo
            memo[id(self.bean)] = clone.bean
        store.copy_from(self.store, deep=deep or immutable, immutable=immutable, memo=memo)
        self.delegates.copy_into(clone.delegates)
        return clone.bean

    def __repr__(self) -> str:
        return f"DynamicDispatcher({self.shape!r})"


def _check_index(index: Any, name: str) -> int:
    if isinstance(index, bool) or not isinstance(index, int):
        raise TypeMismatchError(
            f"Index of {name!r} must be an int, got {type(index).__name__}"
        )
    if index < 0:
        raise ArrayBoundsError(f"Index of {name!r} must not be negative, got {index}")
    return index
