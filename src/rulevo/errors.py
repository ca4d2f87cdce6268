"""Error types raised by diagram construction, evaluation and mutation."""

from __future__ import annotations

from typing import Any, Optional


class RulevoError(Exception):
    """Base class for all rulevo errors."""


class MalformedDiagram(RulevoError, ValueError):
    """A diagram violates a structural invariant and cannot be constructed."""

    def __init__(self, message: str, node: Optional[int] = None):
        if node is not None:
            message = f"node {node}: {message}"
        super().__init__(message)
        self.node = node


class NonTerminating(RulevoError, RuntimeError):
    """Snapshot propagation did not reach a fixpoint within the round ceiling."""

    def __init__(self, rounds: int):
        super().__init__(f"Evaluation did not reach a fixpoint within {rounds} rounds.")
        self.rounds = rounds


class InvalidMutation(RulevoError, ValueError):
    """A mutation's precondition does not hold; the diagram is left untouched."""

    def __init__(self, mutation: Any, reason: str):
        super().__init__(f"{mutation!r}: {reason}")
        self.mutation = mutation
        self.reason = reason


class MalformedProgram(RulevoError, ValueError):
    """The textual diagram notation could not be parsed."""

    def __init__(self, message: str, line: int, column: int):
        super().__init__(f"line {line}, column {column}: {message}")
        self.line = line
        self.column = column


__all__ = [
    "RulevoError",
    "MalformedDiagram",
    "NonTerminating",
    "InvalidMutation",
    "MalformedProgram",
]
