"""Static well-formedness checks for rule diagrams."""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, List, Optional

from .diagram import Branch, Diagram, Leaf, Node
from .errors import MalformedDiagram
from .registry import PredicateRegistry
from .terms import TERM_TYPES, Free, Reference


class DiagramValidator:
    """
    Enforces the structural invariants of a diagram.

    A diagram is well formed when every child index is in range, every
    pattern agrees with its predicate's arity (and with the registry, when
    one is given), leaves carry no ``Free`` terms, and every ``Reference`` is
    definitely bound on all paths from the root that reach it.
    """

    def __init__(self, registry: Optional[PredicateRegistry] = None):
        self.registry = registry

    def bound_registers(self, diagram: Diagram) -> Dict[int, FrozenSet[int]]:
        """
        Registers definitely bound on entry to each reachable node.

        Must-analysis over the possibly cyclic graph: the root starts with no
        bindings, a match edge adds the pattern's ``Free`` registers, a refute
        edge adds nothing, and joins intersect. Unreachable nodes are absent.
        """
        bound: Dict[int, FrozenSet[int]] = {diagram.root: frozenset()}
        pending = [diagram.root]
        while pending:
            index = pending.pop()
            node = diagram.nodes[index]
            if not isinstance(node, Branch):
                continue
            entry = bound[index]
            for target, registers in (
                (node.match, entry | node.pattern.writes()),
                (node.refute, entry),
            ):
                if target is None:
                    continue
                previous = bound.get(target)
                joined = registers if previous is None else previous & registers
                if joined != previous:
                    bound[target] = joined
                    if target not in pending:
                        pending.append(target)
        return bound

    def _check_pattern(self, index: int, node: Node) -> None:
        pattern = node.pattern
        for term in pattern.terms:
            if not isinstance(term, TERM_TYPES):
                raise MalformedDiagram(f"unknown term {term!r}", index)
            if isinstance(term, (Reference, Free)):
                if not isinstance(term.register, int) or term.register < 0:
                    raise MalformedDiagram(f"bad register in {term!r}", index)
        if pattern.predicate is None:
            if isinstance(node, Leaf):
                raise MalformedDiagram("leaf without a predicate", index)
            if pattern.terms:
                raise MalformedDiagram("pass-through pattern with terms", index)
            return
        if len(pattern.terms) != pattern.predicate.arity:
            raise MalformedDiagram(
                f"{pattern.predicate} given {len(pattern.terms)} terms", index
            )
        if self.registry is not None and pattern.predicate not in self.registry:
            raise MalformedDiagram(f"unknown predicate {pattern.predicate}", index)
        if isinstance(node, Leaf):
            for term in pattern.terms:
                if isinstance(term, Free):
                    raise MalformedDiagram("leaf pattern contains a Free term", index)

    def _check_references(self, index: int, node: Node, entry: FrozenSet[int]) -> None:
        live = set(entry)
        for term in node.pattern.terms:
            if isinstance(term, Free):
                live.add(term.register)
            elif isinstance(term, Reference) and term.register not in live:
                raise MalformedDiagram(
                    f"%{term.register} is not bound on every path", index
                )

    def validate(self, diagram: Diagram) -> Diagram:
        """Raise ``MalformedDiagram`` on the first violation, else return the diagram."""
        count = len(diagram.nodes)
        if count == 0:
            raise MalformedDiagram("diagram has no nodes")
        if not isinstance(diagram.root, int) or not 0 <= diagram.root < count:
            raise MalformedDiagram(f"root {diagram.root!r} is out of range")
        for index, node in enumerate(diagram.nodes):
            if not isinstance(node, (Branch, Leaf)):
                raise MalformedDiagram(f"unknown node {node!r}", index)
            for edge, target in node.children():
                if target is not None and not (
                    isinstance(target, int) and 0 <= target < count
                ):
                    raise MalformedDiagram(
                        f"{edge.name.lower()} target {target!r} is out of range", index
                    )
            self._check_pattern(index, node)
        for index, entry in self.bound_registers(diagram).items():
            self._check_references(index, diagram.nodes[index], entry)
        return diagram

    def problems(self, diagram: Diagram) -> List[str]:
        """Return the first violation as a one-element list, or an empty list."""
        try:
            self.validate(diagram)
        except MalformedDiagram as exc:
            return [str(exc)]
        return []

    def is_valid(self, diagram: Diagram) -> bool:
        return not self.problems(diagram)


def construct(
    nodes: Iterable[Node],
    root: int = 0,
    registry: Optional[PredicateRegistry] = None,
) -> Diagram:
    """Build a diagram, raising ``MalformedDiagram`` if it violates an invariant."""
    return DiagramValidator(registry).validate(Diagram(tuple(nodes), root))


def well_formed(diagram: Diagram, registry: Optional[PredicateRegistry] = None) -> bool:
    """Reusable check for components that receive diagrams from elsewhere."""
    return DiagramValidator(registry).is_valid(diagram)


__all__ = ["DiagramValidator", "construct", "well_formed"]
