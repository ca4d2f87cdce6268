"""Enumerations shared by the diagram IR and the mutation taxonomy."""

from enum import IntEnum


class TermKind(IntEnum):
    """Term variants of a pattern."""

    CONSTANT = 0  # :value
    REFERENCE = 1  # %N
    FREE = 2  # %N <- _


class NodeKind(IntEnum):
    """Node variants of a diagram."""

    BRANCH = 0
    LEAF = 1


class EdgeKind(IntEnum):
    """Edges leaving a branch, plus the pseudo-edge entering the root."""

    ROOT = 0
    MATCH = 1
    REFUTE = 2


class MutationClass(IntEnum):
    """Coarse grouping of mutations by their effect on behavior and size."""

    NEUTRAL = 0
    SIZE_CHANGING = 1
    BEHAVIOR_CHANGING = 2


BRANCH_EDGES = (EdgeKind.MATCH, EdgeKind.REFUTE)


__all__ = [
    "TermKind",
    "NodeKind",
    "EdgeKind",
    "MutationClass",
    "BRANCH_EDGES",
]
