"""Turning flat path-keyed maps into structured store contents, and back."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

import numpy as np

from typed_beans.bean import store_of
from typed_beans.validation import split_initial_values

if TYPE_CHECKING:
    from typed_beans.store import PathLike, PropertyStore


class StructuredValueBuilder:
    """Applies a flat map of path keys to a store.

    Plain names are assigned first and structural keys afterwards, each group
    in the caller's order, so a structural key can reach into a value (such as
    a pre-sized array) supplied under a plain name in the same map.

    Within one build, non-terminal append keys for the same container share
    one new element: ``collection[].integer`` and ``collection[].boolean``
    both write to the element appended by whichever comes first. Terminal
    append keys (``collection[]``) always append.

    Validation is the caller's job; see `PropertyStore.put_all`.
    """

    def __init__(self, store: PropertyStore) -> None:
        self.store = store

    def build(self, values: Mapping[PathLike, Any], replace: bool = False) -> None:
        """Merge values into the store.

        Args:
            values: Flat map of path expressions to leaf values.
            replace: Clear the store first instead of merging into it.
        """
        if replace:
            self.store.clear()
        simple, structural = split_initial_values(values)
        for key, value in simple.items():
            self.store.apply_path(key, value)

        appended: dict[tuple[int, str], Any] = {}
        for key, value in structural.items():
            self.store.apply_path(key, value, appended)


def flatten_values(store: PropertyStore, prefix: str = "") -> dict[str, Any]:
    """Expand a store into flat path keys.

    Nested beans, including beans held in sequences, arrays and mapped
    properties, become dotted keys; other values are kept as they are. An
    empty nested bean is kept whole so the result rebuilds the same graph.

    Returns:
        A dict accepted by `PropertyStore.put_all` and by construction.
    """
    result: dict[str, Any] = {}
    for name, value in store.values.items():
        _flatten_into(result, f"{prefix}{name}", value)
    return result


def _flatten_into(result: dict[str, Any], key: str, value: Any) -> None:
    nested = store_of(value)
    if nested is not None:
        if len(nested):
            result.update(flatten_values(nested, f"{key}."))
        else:
            result[key] = value
        return

    if isinstance(value, Mapping):
        if any(store_of(item) is not None for item in value.values()):
            for item_key, item in value.items():
                _flatten_into(result, f"{key}({item_key})", item)
            return
    elif isinstance(value, np.ndarray) and value.dtype == object:
        if any(store_of(item) is not None for item in value):
            # Arrays cannot grow from indexed keys; keep the allocation
            result[key] = np.full(len(value), None, dtype=object)
            for index, item in enumerate(value):
                _flatten_into(result, f"{key}[{index}]", item)
            return
    elif isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        if any(store_of(item) is not None for item in value):
            for index, item in enumerate(value):
                _flatten_into(result, f"{key}[{index}]", item)
            return
    result[key] = value
