"""Execution engine for rule diagrams."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

from .diagram import Branch, Diagram, Leaf
from .errors import NonTerminating
from .registry import Predicate
from .snapshot import EMPTY_SNAPSHOT, RegisterSnapshot
from .terms import Constant, Fact, Pattern, Reference

DEFAULT_MAX_ROUNDS = 512

_MISSING = object()

FactIndex = Mapping[Optional[Predicate], Tuple[Fact, ...]]
SnapshotSet = FrozenSet[RegisterSnapshot]


def index_facts(facts: Iterable[Fact]) -> Dict[Predicate, Tuple[Fact, ...]]:
    """Group facts by predicate."""
    grouped: Dict[Predicate, List[Fact]] = defaultdict(list)
    for item in facts:
        grouped[item.predicate].append(item)
    return {predicate: tuple(items) for predicate, items in grouped.items()}


def unify(
    pattern: Pattern, values: Tuple[Any, ...], snapshot: RegisterSnapshot
) -> Optional[RegisterSnapshot]:
    """
    Match ``values`` against ``pattern`` under ``snapshot``.

    Terms are processed left to right, so a ``Free`` term binds a register
    that later ``Reference`` terms of the same pattern can read. Returns the
    extended snapshot, or ``None`` when unification fails.
    """
    current = snapshot
    for term, value in zip(pattern.terms, values):
        if isinstance(term, Constant):
            if term.value != value:
                return None
        elif isinstance(term, Reference):
            if current.get(term.register, _MISSING) != value:
                return None
        else:
            current = current.bind(term.register, value)
    return current


def instantiate(leaf: Leaf, snapshot: RegisterSnapshot) -> Fact:
    """Fill a leaf's output template from a snapshot."""
    values = []
    for term in leaf.pattern.terms:
        if isinstance(term, Constant):
            values.append(term.value)
        else:
            values.append(snapshot[term.register])
    return Fact(leaf.pattern.predicate, tuple(values))


def _propagate(
    node: Branch, index: FactIndex, snapshots: Iterable[RegisterSnapshot]
) -> Tuple[List[RegisterSnapshot], List[RegisterSnapshot]]:
    matched: List[RegisterSnapshot] = []
    refuted: List[RegisterSnapshot] = []
    if node.pattern.is_passthrough:
        for snapshot in snapshots:
            matched.append(snapshot)
            refuted.append(snapshot)
        return matched, refuted
    candidates = index.get(node.pattern.predicate, ())
    for snapshot in snapshots:
        for candidate in candidates:
            extended = unify(node.pattern, candidate.values, snapshot)
            if extended is None:
                refuted.append(snapshot)
            else:
                matched.append(extended)
    return matched, refuted


def propagate(
    node: Branch, facts: Iterable[Fact], snapshots: Iterable[RegisterSnapshot]
) -> Tuple[List[RegisterSnapshot], List[RegisterSnapshot]]:
    """
    Deliveries of one branch step, with multiplicity.

    For each snapshot and each fact of the pattern's predicate, a successful
    unification delivers the extended snapshot on the match edge and a failed
    one delivers the original snapshot on the refute edge. A predicate with no
    candidate facts delivers nothing on either edge.
    """
    return _propagate(node, index_facts(facts), snapshots)


@dataclass(frozen=True)
class Evaluation:
    """Outcome of running one fact set through one diagram."""

    facts: FrozenSet[Fact]
    outputs: FrozenSet[Fact]
    incoming: Mapping[int, SnapshotSet] = field(default_factory=dict)
    outgoing: Mapping[int, Tuple[SnapshotSet, SnapshotSet]] = field(default_factory=dict)
    emitted: Mapping[int, FrozenSet[Fact]] = field(default_factory=dict)
    rounds: int = 0

    def snapshots(self, node: int) -> SnapshotSet:
        """Snapshots that reached ``node`` (empty when it was never reached)."""
        return self.incoming.get(node, frozenset())

    def outgoing_sets(self, node: int) -> Tuple[SnapshotSet, SnapshotSet]:
        return self.outgoing.get(node, (frozenset(), frozenset()))

    def emitted_by(self, node: int) -> FrozenSet[Fact]:
        return self.emitted.get(node, frozenset())


class DiagramExecutor:
    """Executes rule diagrams by round-based snapshot propagation."""

    def __init__(self, max_rounds: int = DEFAULT_MAX_ROUNDS):
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1.")
        self.max_rounds = max_rounds

    def execute(self, diagram: Diagram, facts: Iterable[Fact]) -> Evaluation:
        """
        Run ``facts`` through ``diagram`` until no node's snapshot set changes.

        The root starts with one empty snapshot. Each round processes only the
        snapshots that arrived at a node in the previous round; accumulated
        sets never shrink. Raises ``NonTerminating`` once ``max_rounds`` rounds
        have run without reaching the fixpoint.
        """
        fact_set = frozenset(facts)
        index = index_facts(fact_set)
        incoming: Dict[int, Set[RegisterSnapshot]] = defaultdict(set)
        match_out: Dict[int, Set[RegisterSnapshot]] = defaultdict(set)
        refute_out: Dict[int, Set[RegisterSnapshot]] = defaultdict(set)
        emitted: Dict[int, Set[Fact]] = defaultdict(set)

        incoming[diagram.root].add(EMPTY_SNAPSHOT)
        frontier: Dict[int, Set[RegisterSnapshot]] = {diagram.root: {EMPTY_SNAPSHOT}}
        rounds = 0

        while frontier:
            if rounds >= self.max_rounds:
                raise NonTerminating(self.max_rounds)
            rounds += 1
            deliveries: Dict[int, Set[RegisterSnapshot]] = defaultdict(set)
            for node_index, fresh in frontier.items():
                node = diagram.nodes[node_index]
                if isinstance(node, Leaf):
                    for snapshot in fresh:
                        emitted[node_index].add(instantiate(node, snapshot))
                    continue
                matched, refuted = _propagate(node, index, fresh)
                match_out[node_index].update(matched)
                refute_out[node_index].update(refuted)
                if node.match is not None and matched:
                    deliveries[node.match].update(matched)
                if node.refute is not None and refuted:
                    deliveries[node.refute].update(refuted)

            frontier = {}
            for target, snapshots in deliveries.items():
                new = snapshots - incoming[target]
                if new:
                    incoming[target] |= new
                    frontier[target] = new

        outputs: Set[Fact] = set()
        for produced in emitted.values():
            outputs |= produced

        branch_indices = set(match_out) | set(refute_out)
        return Evaluation(
            facts=fact_set,
            outputs=frozenset(outputs),
            incoming={k: frozenset(v) for k, v in incoming.items()},
            outgoing={
                k: (frozenset(match_out.get(k, ())), frozenset(refute_out.get(k, ())))
                for k in branch_indices
            },
            emitted={k: frozenset(v) for k, v in emitted.items()},
            rounds=rounds,
        )


def evaluate(
    diagram: Diagram, facts: Iterable[Fact], max_rounds: int = DEFAULT_MAX_ROUNDS
) -> FrozenSet[Fact]:
    """Output facts produced by ``diagram`` for the input ``facts``."""
    return DiagramExecutor(max_rounds).execute(diagram, facts).outputs


def snapshot_sets(
    diagram: Diagram, facts: Iterable[Fact], max_rounds: int = DEFAULT_MAX_ROUNDS
) -> Dict[int, SnapshotSet]:
    """Incoming snapshot set of every node reached while evaluating ``facts``."""
    return dict(DiagramExecutor(max_rounds).execute(diagram, facts).incoming)


__all__ = [
    "DEFAULT_MAX_ROUNDS",
    "Evaluation",
    "DiagramExecutor",
    "index_facts",
    "unify",
    "instantiate",
    "propagate",
    "evaluate",
    "snapshot_sets",
]
