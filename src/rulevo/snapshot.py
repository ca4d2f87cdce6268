"""Immutable register snapshots."""

from __future__ import annotations

from collections.abc import Mapping
from operator import itemgetter
from typing import Any, Dict, Iterator, Optional, Tuple


class RegisterSnapshot(Mapping):
    """
    One binding state (register -> value) reaching a node.

    Snapshots are hashable so that a node's incoming snapshots form a set.
    """

    __slots__ = ("_bindings", "_key", "_hash")

    def __init__(self, bindings: Optional[Dict[int, Any]] = None):
        self._bindings: Dict[int, Any] = dict(bindings or {})
        self._key: Tuple[Tuple[int, Any], ...] = tuple(
            sorted(self._bindings.items(), key=itemgetter(0))
        )
        self._hash = hash(self._key)

    def __getitem__(self, register: int) -> Any:
        return self._bindings[register]

    def __iter__(self) -> Iterator[int]:
        return iter(k for k, _ in self._key)

    def __len__(self) -> int:
        return len(self._key)

    def __hash__(self) -> int:
        return self._hash

    def __eq__(self, other: object) -> bool:
        if isinstance(other, RegisterSnapshot):
            return self._hash == other._hash and self._key == other._key
        if isinstance(other, Mapping):
            return self._bindings == dict(other.items())
        return NotImplemented

    def __repr__(self) -> str:
        inner = ", ".join(f"%{r}={v!r}" for r, v in self._key)
        return f"RegisterSnapshot({{{inner}}})"

    def bind(self, register: int, value: Any) -> "RegisterSnapshot":
        """Return a copy with ``register`` (re)bound to ``value``."""
        if register in self._bindings and self._bindings[register] == value:
            return self
        bindings = dict(self._bindings)
        bindings[register] = value
        return RegisterSnapshot(bindings)


EMPTY_SNAPSHOT = RegisterSnapshot()


__all__ = ["RegisterSnapshot", "EMPTY_SNAPSHOT"]
