"""
Mutation specifications.

Neutral, size-preserving:
 - Replace a constant with a register reference, as long as the incoming
   snapshots always hold that constant in the register (and the inverse).
 - Move a reference to another register holding the same value in every
   incoming snapshot.
 - Change the register a Free term writes, as long as the node's outgoing
   snapshot sets don't change.
 - Replace a constant with another constant, as long as the outgoing snapshot
   sets (or emitted facts, for a leaf) don't change.

Neutral, size-changing:
 - Splice a pass-through node into an edge, and its inverse.
 - Split a node targeted by both edges of one parent into two identical
   nodes, and its inverse.

Behavior-changing:
 - Redirect an edge, replace a term, replace a predicate, graft a prebuilt
   sub-diagram at the root.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Optional, Tuple, Type, Union

from .diagram import Node
from .enums import EdgeKind, MutationClass
from .registry import Predicate
from .terms import Term


@dataclass(frozen=True)
class BindConstant:
    """``Constant(v)`` -> ``Reference(register)``."""

    node: int
    position: int
    register: int
    kind: ClassVar[MutationClass] = MutationClass.NEUTRAL


@dataclass(frozen=True)
class UnbindConstant:
    """``Reference(r)`` -> ``Constant(value)``."""

    node: int
    position: int
    value: Any
    kind: ClassVar[MutationClass] = MutationClass.NEUTRAL


@dataclass(frozen=True)
class RetargetRegister:
    """``Reference(r)`` -> ``Reference(register)``."""

    node: int
    position: int
    register: int
    kind: ClassVar[MutationClass] = MutationClass.NEUTRAL


@dataclass(frozen=True)
class RewriteFreeRegister:
    """``Free(r)`` -> ``Free(register)``."""

    node: int
    position: int
    register: int
    kind: ClassVar[MutationClass] = MutationClass.NEUTRAL


@dataclass(frozen=True)
class ReplaceConstant:
    """``Constant(v)`` -> ``Constant(value)``."""

    node: int
    position: int
    value: Any
    kind: ClassVar[MutationClass] = MutationClass.NEUTRAL


@dataclass(frozen=True)
class SpliceEdge:
    """Insert a pass-through branch on an edge (``node`` is ignored for ROOT)."""

    node: Optional[int]
    edge: EdgeKind
    kind: ClassVar[MutationClass] = MutationClass.SIZE_CHANGING


@dataclass(frozen=True)
class CollapsePassThrough:
    """Remove a pass-through branch whose two edges share one target."""

    node: int
    kind: ClassVar[MutationClass] = MutationClass.SIZE_CHANGING


@dataclass(frozen=True)
class DuplicateNode:
    """Split the common child of ``parent``'s two edges into two copies."""

    parent: int
    kind: ClassVar[MutationClass] = MutationClass.SIZE_CHANGING


@dataclass(frozen=True)
class MergeNodes:
    """Point both edges of ``parent`` at one of its two identical children."""

    parent: int
    kind: ClassVar[MutationClass] = MutationClass.SIZE_CHANGING


@dataclass(frozen=True)
class RedirectEdge:
    node: Optional[int]
    edge: EdgeKind
    target: Optional[int]
    kind: ClassVar[MutationClass] = MutationClass.BEHAVIOR_CHANGING


@dataclass(frozen=True)
class ReplaceTerm:
    node: int
    position: int
    term: Term
    kind: ClassVar[MutationClass] = MutationClass.BEHAVIOR_CHANGING


@dataclass(frozen=True)
class ReplacePredicate:
    """Swap a pattern's predicate; ``terms`` is required when the arity differs."""

    node: int
    predicate: Predicate
    terms: Optional[Tuple[Term, ...]] = None
    kind: ClassVar[MutationClass] = MutationClass.BEHAVIOR_CHANGING


@dataclass(frozen=True)
class Graft:
    """
    Append prebuilt nodes and move the root.

    Child indices inside ``nodes`` are absolute: the first grafted node gets
    index ``base``, which must equal the size of the diagram being mutated.
    """

    base: int
    nodes: Tuple[Node, ...]
    root: int
    kind: ClassVar[MutationClass] = MutationClass.BEHAVIOR_CHANGING


MutationSpec = Union[
    BindConstant,
    UnbindConstant,
    RetargetRegister,
    RewriteFreeRegister,
    ReplaceConstant,
    SpliceEdge,
    CollapsePassThrough,
    DuplicateNode,
    MergeNodes,
    RedirectEdge,
    ReplaceTerm,
    ReplacePredicate,
    Graft,
]

NEUTRAL_MUTATIONS: Tuple[Type, ...] = (
    BindConstant,
    UnbindConstant,
    RetargetRegister,
    RewriteFreeRegister,
    ReplaceConstant,
)
SIZE_CHANGING_MUTATIONS: Tuple[Type, ...] = (
    SpliceEdge,
    CollapsePassThrough,
    DuplicateNode,
    MergeNodes,
)
BEHAVIOR_CHANGING_MUTATIONS: Tuple[Type, ...] = (
    RedirectEdge,
    ReplaceTerm,
    ReplacePredicate,
    Graft,
)
ALL_MUTATIONS: Tuple[Type, ...] = (
    NEUTRAL_MUTATIONS + SIZE_CHANGING_MUTATIONS + BEHAVIOR_CHANGING_MUTATIONS
)


def mutation_name(mutation: Union[MutationSpec, Type]) -> str:
    """Readable name of a mutation or mutation type."""
    cls = mutation if isinstance(mutation, type) else type(mutation)
    return cls.__name__


def preserves_behavior(mutation: MutationSpec) -> bool:
    return mutation.kind != MutationClass.BEHAVIOR_CHANGING


__all__ = [
    "BindConstant",
    "UnbindConstant",
    "RetargetRegister",
    "RewriteFreeRegister",
    "ReplaceConstant",
    "SpliceEdge",
    "CollapsePassThrough",
    "DuplicateNode",
    "MergeNodes",
    "RedirectEdge",
    "ReplaceTerm",
    "ReplacePredicate",
    "Graft",
    "MutationSpec",
    "NEUTRAL_MUTATIONS",
    "SIZE_CHANGING_MUTATIONS",
    "BEHAVIOR_CHANGING_MUTATIONS",
    "ALL_MUTATIONS",
    "mutation_name",
    "preserves_behavior",
]
