"""
Terms, patterns and facts of the rule diagram IR.

Values compare with plain Python equality everywhere: in constants, facts,
snapshots and unification. ``True`` and ``1`` (or ``1`` and ``1.0``) are
therefore one and the same value, and a ``true`` pattern matches a fact
holding ``1``. Problems that need to tell them apart should use symbols.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from typing import Any, ClassVar, FrozenSet, Iterable, Optional, Tuple, Union

from .enums import TermKind
from .registry import Predicate

_SYMBOL_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*\Z")


def format_value(value: Any) -> str:
    """Render a constant the way the textual notation writes it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f":{value}"
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"Constant {value!r} has no textual form.")
        return f":{value!r}"
    if isinstance(value, str):
        if _SYMBOL_RE.match(value):
            return f":{value}"
        return json.dumps(value)
    raise ValueError(f"Constant {value!r} has no textual form.")


@dataclass(frozen=True)
class Constant:
    """Matches only ``value``."""

    value: Any
    kind: ClassVar[TermKind] = TermKind.CONSTANT

    def __str__(self) -> str:
        return format_value(self.value)


@dataclass(frozen=True)
class Reference:
    """Matches only the value currently bound to ``register``."""

    register: int
    kind: ClassVar[TermKind] = TermKind.REFERENCE

    def __str__(self) -> str:
        return f"%{self.register}"


@dataclass(frozen=True)
class Free:
    """Matches anything and binds it into ``register`` (branch patterns only)."""

    register: int
    kind: ClassVar[TermKind] = TermKind.FREE

    def __str__(self) -> str:
        return f"%{self.register} <- _"


Term = Union[Constant, Reference, Free]
TERM_TYPES = (Constant, Reference, Free)


def const(value: Any) -> Constant:
    return Constant(value)


def ref(register: int) -> Reference:
    return Reference(int(register))


def free(register: int) -> Free:
    return Free(int(register))


@dataclass(frozen=True)
class Pattern:
    """
    A predicate with one term per argument.

    The pass-through pattern has no predicate and no terms; a branch carrying
    it writes no registers and forwards every snapshot along both edges.
    """

    predicate: Optional[Predicate]
    terms: Tuple[Term, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "terms", tuple(self.terms))

    @classmethod
    def passthrough(cls) -> "Pattern":
        return cls(None, ())

    @property
    def is_passthrough(self) -> bool:
        return self.predicate is None

    @property
    def arity(self) -> int:
        return len(self.terms)

    def reads(self) -> FrozenSet[int]:
        """Registers read through ``Reference`` terms."""
        return frozenset(t.register for t in self.terms if isinstance(t, Reference))

    def writes(self) -> FrozenSet[int]:
        """Registers written through ``Free`` terms."""
        return frozenset(t.register for t in self.terms if isinstance(t, Free))

    def registers(self) -> FrozenSet[int]:
        return self.reads() | self.writes()

    def constants(self) -> Tuple[Any, ...]:
        return tuple(t.value for t in self.terms if isinstance(t, Constant))

    def written_before(self, position: int, register: int) -> bool:
        """True when a ``Free`` term left of ``position`` writes ``register``."""
        return any(
            isinstance(t, Free) and t.register == register
            for t in self.terms[:position]
        )

    def with_term(self, position: int, term: Term) -> "Pattern":
        terms = list(self.terms)
        terms[position] = term
        return Pattern(self.predicate, tuple(terms))

    def __str__(self) -> str:
        if self.predicate is None:
            return "*"
        inner = ", ".join(str(t) for t in self.terms)
        return f"{self.predicate.name}({inner})"


@dataclass(frozen=True)
class Fact:
    """A predicate applied to a fully bound tuple of values."""

    predicate: Predicate
    values: Tuple[Any, ...]

    def __post_init__(self):
        object.__setattr__(self, "values", tuple(self.values))
        if len(self.values) != self.predicate.arity:
            raise ValueError(
                f"Fact for {self.predicate} has {len(self.values)} values."
            )

    def as_pattern(self) -> Pattern:
        """All-constant pattern matching exactly this fact."""
        return Pattern(self.predicate, tuple(Constant(v) for v in self.values))

    def __str__(self) -> str:
        inner = ", ".join(format_value(v) for v in self.values)
        return f"{self.predicate.name}({inner})"


def fact(predicate: Predicate, *values: Any) -> Fact:
    return Fact(predicate, values)


def facts(items: Iterable[Tuple[Predicate, Iterable[Any]]]) -> FrozenSet[Fact]:
    """Build a fact set from ``(predicate, values)`` pairs."""
    return frozenset(Fact(p, tuple(v)) for p, v in items)


def sort_facts(items: Iterable[Fact]) -> Tuple[Fact, ...]:
    """Stable order for fact sets whose values may not be mutually comparable."""
    return tuple(sorted(items, key=lambda f: (f.predicate.name, str(f))))


__all__ = [
    "format_value",
    "Constant",
    "Reference",
    "Free",
    "Term",
    "TERM_TYPES",
    "const",
    "ref",
    "free",
    "Pattern",
    "Fact",
    "fact",
    "facts",
    "sort_facts",
]
