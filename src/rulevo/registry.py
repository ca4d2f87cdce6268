"""Predicate table shared by every component."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union


@dataclass(frozen=True)
class Predicate:
    """A predicate name with a fixed arity."""

    name: str
    arity: int

    def __str__(self) -> str:
        return f"{self.name}/{self.arity}"


PredicateLike = Union[Predicate, Tuple[str, int]]


def _coerce_predicate(item: PredicateLike) -> Predicate:
    if isinstance(item, Predicate):
        predicate = item
    else:
        name, arity = item
        predicate = Predicate(str(name), int(arity))
    clean = predicate.name.strip()
    if not clean or not clean.isidentifier():
        raise ValueError(f"Predicate name {predicate.name!r} must be an identifier.")
    if predicate.arity < 0:
        raise ValueError(f"Predicate {predicate.name!r} has a negative arity.")
    return predicate


class PredicateRegistry:
    """
    Read-only table of known predicates.

    Built once from the problem vocabulary and passed by reference to the
    validator, parser, analyzer and search loop. ``extend`` returns a new
    registry instead of modifying this one.
    """

    def __init__(self, predicates: Iterable[PredicateLike] = ()):
        by_name: Dict[str, Predicate] = {}
        order: List[Predicate] = []
        for item in predicates:
            predicate = _coerce_predicate(item)
            existing = by_name.get(predicate.name)
            if existing is not None:
                if existing != predicate:
                    raise ValueError(
                        f"Predicate '{predicate.name}' is already registered "
                        f"with arity {existing.arity}."
                    )
                continue
            by_name[predicate.name] = predicate
            order.append(predicate)
        self._by_name = MappingProxyType(by_name)
        self._order: Tuple[Predicate, ...] = tuple(order)
        self._codes = MappingProxyType({p: code for code, p in enumerate(order)})

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[Predicate]:
        return iter(self._order)

    def __contains__(self, item: object) -> bool:
        if isinstance(item, Predicate):
            return self._by_name.get(item.name) == item
        if isinstance(item, str):
            return item in self._by_name
        return False

    def __getitem__(self, name: str) -> Predicate:
        try:
            return self._by_name[name]
        except KeyError:
            raise KeyError(f"Unknown predicate '{name}'.") from None

    def __repr__(self) -> str:
        inner = ", ".join(str(p) for p in self._order)
        return f"PredicateRegistry([{inner}])"

    def get(self, name: str) -> Optional[Predicate]:
        """Return the predicate registered under ``name`` if present."""
        return self._by_name.get(name)

    def code(self, predicate: Predicate) -> int:
        """Dense integer id of a registered predicate (registration order)."""
        try:
            return self._codes[predicate]
        except KeyError:
            raise KeyError(f"Predicate {predicate} is not registered.") from None

    def names(self) -> List[str]:
        return [p.name for p in self._order]

    def with_arity(self, arity: int) -> List[Predicate]:
        """Predicates whose arity equals ``arity``."""
        return [p for p in self._order if p.arity == arity]

    def extend(self, predicates: Iterable[PredicateLike]) -> "PredicateRegistry":
        """Return a new registry holding these predicates plus ``predicates``."""
        return PredicateRegistry(list(self._order) + list(predicates))


__all__ = ["Predicate", "PredicateLike", "PredicateRegistry"]
