"""Fluent, label-addressed builder for rule diagrams."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple, Union

from .diagram import Branch, Diagram, Leaf, Node
from .enums import EdgeKind
from .errors import MalformedDiagram
from .registry import Predicate, PredicateRegistry
from .terms import TERM_TYPES, Constant, Pattern, Term
from .validator import construct

NodeRef = Union[int, str]


class DiagramBuilder:
    """
    Builds a diagram node by node.

    Nodes get indices in definition order. Edges may name a node by index or
    by label, including labels defined later; they are resolved by
    ``build``. The root is the node labelled ``root`` unless ``set_root``
    chose another one, and the first node otherwise.
    """

    def __init__(self, registry: Optional[PredicateRegistry] = None):
        self.registry = registry
        self._slots: List[Optional[Tuple[str, Pattern, Optional[NodeRef], Optional[NodeRef]]]] = []
        self._labels: Dict[str, int] = {}
        self._root: Optional[NodeRef] = None

    @property
    def last(self) -> int:
        """Index of the most recently reserved or defined node."""
        if not self._slots:
            raise IndexError("No nodes defined yet.")
        return len(self._slots) - 1

    def reserve(self, label: Optional[str] = None) -> int:
        """Claim the next index (optionally labelled) to be filled later via ``at=``."""
        index = len(self._slots)
        self._slots.append(None)
        if label is not None:
            self._label(label, index)
        return index

    def _label(self, label: str, index: int) -> None:
        if label in self._labels and self._labels[label] != index:
            raise MalformedDiagram(f"duplicate label '{label}'")
        self._labels[label] = index

    def _predicate(self, predicate: Union[Predicate, str]) -> Predicate:
        if isinstance(predicate, Predicate):
            return predicate
        if self.registry is None or predicate not in self.registry:
            raise MalformedDiagram(f"unknown predicate '{predicate}'")
        return self.registry[predicate]

    @staticmethod
    def _term(value: Any) -> Term:
        return value if isinstance(value, TERM_TYPES) else Constant(value)

    def _define(
        self,
        kind: str,
        pattern: Pattern,
        match: Optional[NodeRef],
        refute: Optional[NodeRef],
        label: Optional[str],
        at: Optional[int],
    ) -> "DiagramBuilder":
        if at is None:
            at = self.reserve()
        elif not 0 <= at < len(self._slots) or self._slots[at] is not None:
            raise MalformedDiagram(f"index {at} is not a reserved slot")
        if label is not None:
            self._label(label, at)
        self._slots[at] = (kind, pattern, match, refute)
        return self

    def branch(
        self,
        predicate: Union[Predicate, str],
        *terms: Any,
        label: Optional[str] = None,
        match: Optional[NodeRef] = None,
        refute: Optional[NodeRef] = None,
        at: Optional[int] = None,
    ) -> "DiagramBuilder":
        pattern = Pattern(self._predicate(predicate), tuple(self._term(t) for t in terms))
        return self._define("branch", pattern, match, refute, label, at)

    def passthrough(
        self,
        label: Optional[str] = None,
        match: Optional[NodeRef] = None,
        refute: Optional[NodeRef] = None,
        at: Optional[int] = None,
    ) -> "DiagramBuilder":
        return self._define("branch", Pattern.passthrough(), match, refute, label, at)

    def leaf(
        self,
        predicate: Union[Predicate, str],
        *terms: Any,
        label: Optional[str] = None,
        at: Optional[int] = None,
    ) -> "DiagramBuilder":
        pattern = Pattern(self._predicate(predicate), tuple(self._term(t) for t in terms))
        return self._define("leaf", pattern, None, None, label, at)

    def link(self, source: NodeRef, edge: EdgeKind, target: Optional[NodeRef]) -> "DiagramBuilder":
        """Set the ``edge`` of an already defined branch."""
        if edge == EdgeKind.ROOT:
            return self.set_root(target)
        index = self._resolve(source)
        slot = self._slots[index]
        if slot is None or slot[0] != "branch":
            raise MalformedDiagram(f"{source!r} is not a branch")
        kind, pattern, match, refute = slot
        if edge == EdgeKind.MATCH:
            match = target
        else:
            refute = target
        self._slots[index] = (kind, pattern, match, refute)
        return self

    def set_root(self, target: NodeRef) -> "DiagramBuilder":
        self._root = target
        return self

    def _resolve(self, ref: NodeRef) -> int:
        if isinstance(ref, str):
            if ref not in self._labels:
                raise MalformedDiagram(f"undefined label '{ref}'")
            return self._labels[ref]
        return ref

    def index_of(self, label: str) -> int:
        return self._resolve(label)

    def build(self) -> Diagram:
        """Resolve labels and return the validated diagram."""
        nodes: List[Node] = []
        for index, slot in enumerate(self._slots):
            if slot is None:
                raise MalformedDiagram("reserved node was never defined", index)
            kind, pattern, match, refute = slot
            if kind == "leaf":
                nodes.append(Leaf(pattern))
            else:
                nodes.append(
                    Branch(
                        pattern,
                        None if match is None else self._resolve(match),
                        None if refute is None else self._resolve(refute),
                    )
                )
        if self._root is not None:
            root = self._resolve(self._root)
        else:
            root = self._labels.get("root", 0)
        return construct(nodes, root, self.registry)


__all__ = ["DiagramBuilder", "NodeRef"]
