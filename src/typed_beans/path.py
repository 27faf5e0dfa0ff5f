"""Path expressions addressing properties of a bean graph."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Name:
    """A simple property name, e.g. ``nested``."""

    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class IndexedName:
    """Sequence or array access, e.g. ``collection[0]``.

    An index of None is the append form ``collection[]``.
    """

    name: str
    index: int | None = None

    @property
    def is_append(self) -> bool:
        return self.index is None

    def __str__(self) -> str:
        return f"{self.name}[{'' if self.index is None else self.index}]"


@dataclass(frozen=True)
class KeyedName:
    """Mapped property access, e.g. ``mapped(key)``."""

    name: str
    key: str

    def __str__(self) -> str:
        return f"{self.name}({self.key})"


Segment = Name | IndexedName | KeyedName


@dataclass(frozen=True)
class PathExpression:
    """An ordered, non-empty sequence of segments."""

    segments: tuple[Segment, ...]

    @classmethod
    def of(cls, *segments: Segment) -> PathExpression:
        """Build a path from segments without parsing."""
        if not segments:
            raise ValueError("A path needs at least one segment")
        return cls(segments=tuple(segments))

    @property
    def head(self) -> Segment:
        return self.segments[0]

    @property
    def rest(self) -> PathExpression | None:
        """Return the path after the first segment, or None at a leaf."""
        if len(self.segments) == 1:
            return None
        return PathExpression(self.segments[1:])

    @property
    def is_leaf(self) -> bool:
        return len(self.segments) == 1

    @property
    def depth(self) -> int:
        return len(self.segments)

    @property
    def is_structural(self) -> bool:
        """Return whether the path is anything other than a single plain name."""
        return not (self.is_leaf and isinstance(self.head, Name))

    def __str__(self) -> str:
        return ".".join(str(s) for s in self.segments)
