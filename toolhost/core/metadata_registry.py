"""Attribute Registry — metadata keyed by (declaring type, member name, attribute kind).

Invariants:
    - Exactly one payload per (target, member, key); set() overwrites silently
    - merge() is an ordered union for list payloads, never a destructive overwrite
    - get() on an absent key returns None — absence is a valid "no metadata" result
    - Class-level records use member=None
    - Writes happen at class-definition time only; reads are unsynchronized after that

Design Decisions:
    - Method decorators run before their class exists, so they stash pending marks
      on the function object (stash()); @service flushes them with flush_marks()
      keyed by the class. Marks are copy-on-write so functools.wraps wrappers
      never mutate the wrapped function's list.
    - One module-level registry instance: decorators are module-level syntax and
      have nowhere else to write to. Tests that need isolation build their own.
"""

from collections.abc import Iterable
from typing import Any, Hashable

_MARKS_ATTR = "__toolhost_marks__"


class MetadataRegistry:
    """In-process store of definition-time metadata."""

    def __init__(self) -> None:
        self._records: dict[tuple[type, str | None, Hashable], Any] = {}

    def set(self, target: type, member: str | None, key: Hashable, value: Any) -> None:
        self._records[(target, member, key)] = value

    def merge(
        self, target: type, member: str | None, key: Hashable, values: Iterable[Any],
    ) -> list:
        """Append values not already present, preserving first-seen order."""
        current = list(self._records.get((target, member, key)) or [])
        for value in values:
            if value not in current:
                current.append(value)
        self._records[(target, member, key)] = current
        return current

    def get(self, target: type, member: str | None, key: Hashable) -> Any:
        return self._records.get((target, member, key))

    def resolve(self, target: type, member: str | None, key: Hashable) -> Any:
        """Like get(), but follows the MRO to the class that defines `member`."""
        if member is None:
            for klass in target.__mro__:
                value = self._records.get((klass, None, key))
                if value is not None:
                    return value
            return None
        owner = _defining_class(target, member)
        if owner is None:
            return None
        return self._records.get((owner, member, key))

    def list_members(self, target: type, key: Hashable) -> list[str]:
        """Members of target (inherited included) carrying `key`, in declaration order.

        Base classes come first; a member overridden in a subclass keeps its
        base-class position but is judged by the overriding definition.
        """
        seen: list[str] = []
        for klass in reversed(target.__mro__):
            if klass is object:
                continue
            for name in vars(klass):
                if name not in seen:
                    seen.append(name)
        return [
            name for name in seen
            if self.resolve(target, name, key) is not None
        ]

    def clear(self) -> None:
        self._records.clear()


def _defining_class(target: type, member: str) -> type | None:
    for klass in target.__mro__:
        if member in vars(klass):
            return klass
    return None


# ─── Pending marks (method decorators) ──────────────────────────

def stash(fn: Any, key: Hashable, value: Any, *, merge: bool = False) -> None:
    """Record metadata on a function until its class is decorated with @service."""
    marks = list(getattr(fn, _MARKS_ATTR, ()))
    marks.append((key, value, merge))
    setattr(fn, _MARKS_ATTR, marks)


def pending_marks(fn: Any) -> list[tuple[Hashable, Any, bool]]:
    return list(getattr(fn, _MARKS_ATTR, ()))


def flush_marks(registry: MetadataRegistry, cls: type) -> int:
    """Move pending marks of every function defined on cls into the registry."""
    flushed = 0
    for name, attr in vars(cls).items():
        for key, value, merge in pending_marks(attr):
            if merge:
                registry.merge(cls, name, key, value)
            else:
                registry.set(cls, name, key, value)
            flushed += 1
    return flushed


registry = MetadataRegistry()
