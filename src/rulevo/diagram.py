"""Rule diagram nodes and the immutable diagram value."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, replace
from typing import Any, ClassVar, List, Optional, Set, Tuple, Union

from .enums import EdgeKind, NodeKind
from .terms import Constant, Pattern


@dataclass(frozen=True)
class Branch:
    """Tests a pattern against candidate facts and routes snapshots to children."""

    pattern: Pattern
    match: Optional[int] = None
    refute: Optional[int] = None
    kind: ClassVar[NodeKind] = NodeKind.BRANCH

    @property
    def is_passthrough(self) -> bool:
        return self.pattern.is_passthrough

    def child(self, edge: EdgeKind) -> Optional[int]:
        if edge == EdgeKind.MATCH:
            return self.match
        if edge == EdgeKind.REFUTE:
            return self.refute
        raise ValueError(f"Branches have no {edge.name} edge.")

    def with_child(self, edge: EdgeKind, target: Optional[int]) -> "Branch":
        if edge == EdgeKind.MATCH:
            return replace(self, match=target)
        if edge == EdgeKind.REFUTE:
            return replace(self, refute=target)
        raise ValueError(f"Branches have no {edge.name} edge.")

    def children(self) -> Tuple[Tuple[EdgeKind, Optional[int]], ...]:
        return ((EdgeKind.MATCH, self.match), (EdgeKind.REFUTE, self.refute))

    def with_pattern(self, pattern: Pattern) -> "Branch":
        return replace(self, pattern=pattern)


@dataclass(frozen=True)
class Leaf:
    """Emits one output fact per incoming snapshot."""

    pattern: Pattern
    kind: ClassVar[NodeKind] = NodeKind.LEAF

    is_passthrough: ClassVar[bool] = False

    def children(self) -> Tuple[Tuple[EdgeKind, Optional[int]], ...]:
        return ()

    def with_pattern(self, pattern: Pattern) -> "Leaf":
        return replace(self, pattern=pattern)


Node = Union[Branch, Leaf]


@dataclass(frozen=True)
class Diagram:
    """
    Index-addressed graph of nodes with a single root.

    Diagrams are values: every editing helper returns a new diagram that
    shares the untouched node objects. Helpers do not validate; use
    ``rulevo.validator.construct`` (the mutator does this for every result).
    """

    nodes: Tuple[Node, ...]
    root: int = 0

    def __post_init__(self):
        object.__setattr__(self, "nodes", tuple(self.nodes))

    def __len__(self) -> int:
        return len(self.nodes)

    @property
    def size(self) -> int:
        return len(self.nodes)

    def node(self, index: int) -> Node:
        return self.nodes[index]

    def edge_target(self, node: Optional[int], edge: EdgeKind) -> Optional[int]:
        """Target of ``edge`` leaving ``node`` (``node`` is ignored for ROOT)."""
        if edge == EdgeKind.ROOT:
            return self.root
        owner = self.nodes[node]
        if not isinstance(owner, Branch):
            raise ValueError(f"Node {node} is a leaf and has no outgoing edges.")
        return owner.child(edge)

    def edges(self) -> List[Tuple[Optional[int], EdgeKind, Optional[int]]]:
        """All edges as ``(source, kind, target)``; the root edge has no source."""
        result: List[Tuple[Optional[int], EdgeKind, Optional[int]]] = [
            (None, EdgeKind.ROOT, self.root)
        ]
        for index, node in enumerate(self.nodes):
            for edge, target in node.children():
                result.append((index, edge, target))
        return result

    def parents(self, index: int) -> List[Tuple[Optional[int], EdgeKind]]:
        """Edges entering ``index`` as ``(source, kind)`` pairs."""
        return [
            (source, edge)
            for source, edge, target in self.edges()
            if target == index
        ]

    def with_node(self, index: int, node: Node) -> "Diagram":
        nodes = list(self.nodes)
        nodes[index] = node
        return Diagram(tuple(nodes), self.root)

    def with_edge(
        self, node: Optional[int], edge: EdgeKind, target: Optional[int]
    ) -> "Diagram":
        if edge == EdgeKind.ROOT:
            if target is None:
                raise ValueError("The root edge must have a target.")
            return Diagram(self.nodes, target)
        owner = self.nodes[node]
        if not isinstance(owner, Branch):
            raise ValueError(f"Node {node} is a leaf and has no outgoing edges.")
        return self.with_node(node, owner.with_child(edge, target))

    def with_root(self, root: int) -> "Diagram":
        return Diagram(self.nodes, root)

    def append(self, *nodes: Node) -> "Diagram":
        return Diagram(self.nodes + tuple(nodes), self.root)

    def remove_node(self, index: int) -> "Diagram":
        """Drop an unreferenced node and shift the indices above it down by one."""
        if self.root == index:
            raise ValueError(f"Cannot remove root node {index}.")
        for source, _, target in self.edges():
            if target == index and source != index:
                raise ValueError(f"Node {index} is still referenced by node {source}.")

        def shift(target: Optional[int]) -> Optional[int]:
            if target is None or target < index:
                return target
            return target - 1

        nodes: List[Node] = []
        for position, node in enumerate(self.nodes):
            if position == index:
                continue
            if isinstance(node, Branch):
                node = replace(node, match=shift(node.match), refute=shift(node.refute))
            nodes.append(node)
        return Diagram(tuple(nodes), shift(self.root))

    def registers(self) -> List[int]:
        """Every register mentioned by some term, sorted."""
        found: Set[int] = set()
        for node in self.nodes:
            found |= node.pattern.registers()
        return sorted(found)

    def constants(self) -> List[Any]:
        """Distinct constants appearing in patterns, in order of appearance."""
        seen: List[Any] = []
        for node in self.nodes:
            for term in node.pattern.terms:
                if isinstance(term, Constant) and term.value not in seen:
                    seen.append(term.value)
        return seen

    def reachable(self) -> Set[int]:
        """Indices reachable from the root along edges."""
        seen: Set[int] = set()
        stack = [self.root]
        while stack:
            index = stack.pop()
            if index in seen:
                continue
            seen.add(index)
            for _, target in self.nodes[index].children():
                if target is not None and target not in seen:
                    stack.append(target)
        return seen

    def get_signature(self) -> str:
        """Generate unique signature for this diagram."""
        return hashlib.md5(repr((self.root, self.nodes)).encode()).hexdigest()

    def to_human_readable(self) -> List[str]:
        """One line per node; unreachable nodes are marked."""
        reachable = self.reachable()
        lines = []
        for index, node in enumerate(self.nodes):
            prefix = "✓" if index in reachable else "✗"
            marker = f"n{index} (root)" if index == self.root else f"n{index}"
            if isinstance(node, Leaf):
                lines.append(f"{prefix} {marker}: output {node.pattern}")
            else:
                match = "" if node.match is None else f"n{node.match}"
                refute = "" if node.refute is None else f"n{node.refute}"
                lines.append(f"{prefix} {marker}: {node.pattern} -> [{match}] / [{refute}]")
        return lines


__all__ = ["Branch", "Leaf", "Node", "Diagram"]
