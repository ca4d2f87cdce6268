"""
Mutation analysis.

Given a diagram and an example set, enumerates a bounded list of mutations
that are currently applicable: behavior-preserving rewrites checked against
the diagram's snapshot sets, size-changing rewrites, escape grafts that fix
one failing example at a time, and a random sample of behavior-changing moves.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence

from .diagram import Branch, Diagram, Leaf
from .enums import EdgeKind
from .errors import InvalidMutation, NonTerminating
from .executor import DiagramExecutor, Evaluation
from .mutation import (
    BindConstant,
    CollapsePassThrough,
    DuplicateNode,
    Graft,
    MergeNodes,
    MutationSpec,
    RedirectEdge,
    ReplaceConstant,
    ReplacePredicate,
    ReplaceTerm,
    RetargetRegister,
    RewriteFreeRegister,
    SpliceEdge,
    UnbindConstant,
)
from .mutator import DiagramMutator
from .problem import Example
from .registry import PredicateRegistry
from .snapshot import RegisterSnapshot
from .terms import Constant, Free, Pattern, Reference, Term, sort_facts

logger = logging.getLogger(__name__)

ArmCombiner = Callable[[Diagram, int, int], bool]

_MISSING = object()


def same_pattern(diagram: Diagram, first: int, second: int) -> bool:
    """Default arm combiner: two arms can be combined when their patterns agree."""
    return diagram.nodes[first].pattern == diagram.nodes[second].pattern


@dataclass
class Analysis:
    """Evaluations of one diagram plus the mutations found applicable to it."""

    evaluations: List[Optional[Evaluation]]
    candidates: List[MutationSpec] = field(default_factory=list)
    correct: List[bool] = field(default_factory=list)

    @property
    def failing(self) -> List[int]:
        return [i for i, ok in enumerate(self.correct) if not ok]


class DiagramAnalyzer:
    """Enumerates applicable mutations for a diagram on an example set."""

    def __init__(
        self,
        registry: PredicateRegistry,
        executor: Optional[DiagramExecutor] = None,
        mutator: Optional[DiagramMutator] = None,
        combiner: ArmCombiner = same_pattern,
        values: Sequence[Any] = (),
        max_constant_candidates: int = 16,
        behavior_budget: int = 8,
        escape_budget: int = 2,
        fresh_registers: int = 1,
    ):
        """
        Args:
            registry: Predicates available to behavior-changing moves
            executor: Evaluation engine (sets the round ceiling)
            mutator: Engine used to pre-validate candidates
            combiner: Heuristic deciding whether two arms may be combined
            values: Problem values offered as replacement constants
            max_constant_candidates: Cap on constants tried per term
            behavior_budget: Number of random behavior-changing moves
            escape_budget: Number of failing examples to build grafts for
            fresh_registers: Unused registers offered to Free rewrites
        """
        self.registry = registry
        self.executor = executor or DiagramExecutor()
        self.mutator = mutator or DiagramMutator(registry, self.executor)
        self.combiner = combiner
        self.values = list(values)
        self.max_constant_candidates = max_constant_candidates
        self.behavior_budget = behavior_budget
        self.escape_budget = escape_budget
        self.fresh_registers = fresh_registers

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def evaluate(
        self, diagram: Diagram, examples: Sequence[Example]
    ) -> List[Optional[Evaluation]]:
        """One evaluation per example; ``None`` where the run did not terminate."""
        evaluations: List[Optional[Evaluation]] = []
        for example in examples:
            try:
                evaluations.append(self.executor.execute(diagram, example.inputs))
            except NonTerminating:
                evaluations.append(None)
        return evaluations

    def analyze(
        self,
        diagram: Diagram,
        examples: Sequence[Example],
        rng: Optional[random.Random] = None,
        evaluations: Optional[Sequence[Optional[Evaluation]]] = None,
    ) -> Analysis:
        """
        Enumerate applicable mutations of ``diagram``.

        ``evaluations`` may carry the per-example runs already computed by the
        caller (one per example, ``None`` where the run did not terminate);
        the diagram is only evaluated when they are missing.
        """
        rng = rng or random.Random()
        if evaluations is None or len(evaluations) != len(examples):
            evaluations = self.evaluate(diagram, examples)
        evaluations = list(evaluations)
        correct = [
            ev is not None and ev.outputs == ex.outputs
            for ev, ex in zip(evaluations, examples)
        ]
        analysis = Analysis(evaluations=evaluations, correct=correct)

        terminated = [ev for ev in evaluations if ev is not None]
        candidates: List[MutationSpec] = []
        if terminated:
            candidates.extend(self.neutral_candidates(diagram, terminated))
        behavior: List[MutationSpec] = []
        candidates.extend(self.size_candidates(diagram, behavior))

        candidates.extend(
            self.escape_candidates(diagram, examples, evaluations, analysis.failing, rng)
        )

        behavior.extend(self.behavior_candidates(diagram, rng))
        candidates.extend(behavior)
        analysis.candidates = candidates
        logger.debug(
            "Diagram %s: %d candidates, %d failing examples",
            diagram.get_signature()[:8],
            len(candidates),
            len(analysis.failing),
        )
        return analysis

    def candidate_mutations(
        self,
        diagram: Diagram,
        examples: Sequence[Example],
        rng: Optional[random.Random] = None,
    ) -> List[MutationSpec]:
        return self.analyze(diagram, examples, rng).candidates

    # ------------------------------------------------------------------
    # Neutral, size-preserving
    # ------------------------------------------------------------------

    def _constant_pool(self, diagram: Diagram) -> List[Any]:
        pool: List[Any] = []
        for value in self.values + diagram.constants():
            if value not in pool:
                pool.append(value)
        return pool[: self.max_constant_candidates]

    @staticmethod
    def _reaching(evaluations: Sequence[Evaluation]) -> Dict[int, List[RegisterSnapshot]]:
        reaching: Dict[int, List[RegisterSnapshot]] = {}
        for evaluation in evaluations:
            for index, snapshots in evaluation.incoming.items():
                if snapshots:
                    reaching.setdefault(index, []).extend(snapshots)
        return reaching

    @staticmethod
    def _common_bindings(snapshots: Sequence[RegisterSnapshot]) -> Dict[int, Any]:
        """Registers bound to one and the same value in every snapshot."""
        common = dict(snapshots[0])
        for snapshot in snapshots[1:]:
            for register in list(common):
                if snapshot.get(register, _MISSING) != common[register]:
                    del common[register]
        return common

    @staticmethod
    def _agreeing_registers(
        snapshots: Sequence[RegisterSnapshot], register: int
    ) -> List[int]:
        """Registers whose value equals ``register``'s in every snapshot."""
        others = set(snapshots[0]) - {register}
        for snapshot in snapshots:
            value = snapshot.get(register, _MISSING)
            others = {r for r in others if snapshot.get(r, _MISSING) == value}
        return sorted(others)

    def neutral_candidates(
        self, diagram: Diagram, evaluations: Sequence[Evaluation]
    ) -> List[MutationSpec]:
        """Size-preserving rewrites whose preconditions hold on ``evaluations``."""
        pool = self._constant_pool(diagram)
        registers = diagram.registers()
        fresh_start = registers[-1] + 1 if registers else 0
        free_targets = registers + list(
            range(fresh_start, fresh_start + self.fresh_registers)
        )

        proposals: List[MutationSpec] = []
        for index, snapshots in sorted(self._reaching(evaluations).items()):
            pattern = diagram.nodes[index].pattern
            common = self._common_bindings(snapshots)
            for position, term in enumerate(pattern.terms):
                if isinstance(term, Constant):
                    for register, value in sorted(common.items()):
                        if value == term.value:
                            proposals.append(BindConstant(index, position, register))
                    for value in pool:
                        if value != term.value:
                            proposals.append(ReplaceConstant(index, position, value))
                elif isinstance(term, Reference):
                    if term.register in common:
                        proposals.append(
                            UnbindConstant(index, position, common[term.register])
                        )
                    for register in self._agreeing_registers(snapshots, term.register):
                        proposals.append(RetargetRegister(index, position, register))
                else:
                    for register in free_targets:
                        if register != term.register:
                            proposals.append(
                                RewriteFreeRegister(index, position, register)
                            )

        return [
            m for m in proposals if self.mutator.is_applicable(diagram, m, evaluations)
        ]

    # ------------------------------------------------------------------
    # Size-changing
    # ------------------------------------------------------------------

    def size_candidates(
        self, diagram: Diagram, behavior: Optional[List[MutationSpec]] = None
    ) -> List[MutationSpec]:
        """
        Splices, collapses, duplications and merges.

        Arms that the combiner accepts but that are not identical cannot be
        merged neutrally; a redirect of the refute arm is appended to
        ``behavior`` instead.
        """
        proposals: List[MutationSpec] = [SpliceEdge(None, EdgeKind.ROOT)]
        for index, node in enumerate(diagram.nodes):
            if not isinstance(node, Branch):
                continue
            proposals.append(SpliceEdge(index, EdgeKind.MATCH))
            proposals.append(SpliceEdge(index, EdgeKind.REFUTE))
            if node.is_passthrough and node.match == node.refute:
                proposals.append(CollapsePassThrough(index))
            if node.match is None or node.refute is None:
                continue
            if node.match == node.refute:
                if node.match != index:
                    proposals.append(DuplicateNode(index))
            elif diagram.nodes[node.match] == diagram.nodes[node.refute]:
                proposals.append(MergeNodes(index))
            elif behavior is not None and self.combiner(diagram, node.match, node.refute):
                behavior.append(RedirectEdge(index, EdgeKind.REFUTE, node.match))

        return [m for m in proposals if self.mutator.is_applicable(diagram, m)]

    # ------------------------------------------------------------------
    # Escapes
    # ------------------------------------------------------------------

    def escape_candidates(
        self,
        diagram: Diagram,
        examples: Sequence[Example],
        evaluations: Sequence[Optional[Evaluation]],
        failing: Sequence[int],
        rng: random.Random,
    ) -> List[Graft]:
        """
        Up to ``escape_budget`` grafts, trying failing examples in random order.

        Examples that admit no graft do not use up the budget.
        """
        order = list(failing)
        rng.shuffle(order)
        grafts: List[Graft] = []
        for index in order:
            if len(grafts) >= self.escape_budget:
                break
            graft = self.escape_graft(diagram, examples, evaluations, index)
            if graft is not None:
                grafts.append(graft)
        return grafts

    def escape_graft(
        self,
        diagram: Diagram,
        examples: Sequence[Example],
        evaluations: Sequence[Optional[Evaluation]],
        index: int,
    ) -> Optional[Graft]:
        """
        Build a graft that makes ``examples[index]`` correct.

        A new root fans out to a gate chain, one all-constant branch per input
        fact, whose last match emits the desired outputs, and to a route into
        the old root. The old root is reached directly when its outputs on the
        failing input are already wanted; otherwise it sits behind witness
        branches, one per correct example, matching an input fact that the
        failing example lacks. A correct example whose inputs all occur in the
        failing input has no witness and gets its own gate chain instead.
        Returns ``None`` when the grafted diagram does not fix the example
        while keeping every correct example correct, which happens when such a
        subset example wants outputs the failing example does not.
        """
        target = examples[index]
        current = evaluations[index]
        correct = [
            j
            for j, (ev, ex) in enumerate(zip(evaluations, examples))
            if j != index and ev is not None and ev.outputs == ex.outputs
        ]

        base = diagram.size
        nodes: List[Any] = []

        def add(node) -> int:
            nodes.append(node)
            return base + len(nodes) - 1

        def fan_out(targets: List[int]) -> Optional[int]:
            if not targets:
                return None
            head = targets[-1]
            for item in reversed(targets[:-1]):
                head = add(Branch(Pattern.passthrough(), item, head))
            return head

        def lookup(example: Example) -> Optional[int]:
            if not example.outputs:
                return None
            head = fan_out([add(Leaf(f.as_pattern())) for f in sort_facts(example.outputs)])
            for item in reversed(sort_facts(example.inputs)):
                head = add(Branch(item.as_pattern(), head, None))
            return head

        gate = lookup(target)

        if current is not None and current.outputs <= target.outputs:
            old: Optional[int] = diagram.root
        else:
            routes = []
            for j in correct:
                missing = examples[j].inputs - target.inputs
                if missing:
                    witness = sort_facts(missing)[0]
                    routes.append(add(Branch(witness.as_pattern(), diagram.root, None)))
                    continue
                # Every input of example j is also present in the failing input.
                route = lookup(examples[j])
                if route is not None:
                    routes.append(route)
            old = fan_out(routes)

        root = fan_out([t for t in (gate, old) if t is not None])
        if root is None:
            root = add(Branch(Pattern.passthrough()))

        graft = Graft(base, tuple(nodes), root)
        try:
            grafted = self.mutator.apply(diagram, graft)
            if self.executor.execute(grafted, target.inputs).outputs != target.outputs:
                return None
            for j in correct:
                outputs = self.executor.execute(grafted, examples[j].inputs).outputs
                if outputs != examples[j].outputs:
                    return None
        except (InvalidMutation, NonTerminating) as exc:
            logger.debug("Escape graft for example %d rejected: %s", index, exc)
            return None
        return graft

    # ------------------------------------------------------------------
    # Behavior-changing
    # ------------------------------------------------------------------

    def _random_term(
        self,
        diagram: Diagram,
        index: int,
        position: int,
        bound: FrozenSet[int],
        rng: random.Random,
    ) -> Optional[Term]:
        node = diagram.nodes[index]
        readable = set(bound)
        for term in node.pattern.terms[:position]:
            if isinstance(term, Free):
                readable.add(term.register)
        options: List[Term] = [Constant(v) for v in self._constant_pool(diagram)]
        options.extend(Reference(r) for r in sorted(readable))
        if isinstance(node, Branch):
            registers = diagram.registers()
            options.append(Free(registers[-1] + 1 if registers else 0))
            options.extend(Free(r) for r in registers)
        current = node.pattern.terms[position]
        options = [t for t in options if t != current]
        return rng.choice(options) if options else None

    def _random_move(
        self, diagram: Diagram, bound: Dict[int, FrozenSet[int]], rng: random.Random
    ) -> Optional[MutationSpec]:
        branches = [i for i, n in enumerate(diagram.nodes) if isinstance(n, Branch)]
        with_terms = [i for i, n in enumerate(diagram.nodes) if n.pattern.terms]
        patterned = [i for i, n in enumerate(diagram.nodes) if not n.is_passthrough]
        kinds = []
        if branches:
            kinds.append("redirect")
        if with_terms:
            kinds.append("term")
        if patterned:
            kinds.append("predicate")
        if not kinds:
            return None

        choice = rng.choice(kinds)
        if choice == "redirect":
            index = rng.choice(branches)
            edge = rng.choice((EdgeKind.MATCH, EdgeKind.REFUTE))
            target = rng.choice([None] + list(range(diagram.size)))
            return RedirectEdge(index, edge, target)
        if choice == "term":
            index = rng.choice(with_terms)
            position = rng.randrange(len(diagram.nodes[index].pattern.terms))
            term = self._random_term(
                diagram, index, position, bound.get(index, frozenset()), rng
            )
            return None if term is None else ReplaceTerm(index, position, term)
        index = rng.choice(patterned)
        pattern = diagram.nodes[index].pattern
        alternatives = [
            p for p in self.registry.with_arity(pattern.arity) if p != pattern.predicate
        ]
        if not alternatives:
            return None
        return ReplacePredicate(index, rng.choice(alternatives))

    def behavior_candidates(
        self, diagram: Diagram, rng: random.Random
    ) -> List[MutationSpec]:
        """A random sample of well-formed behavior-changing moves."""
        bound = self.mutator.validator.bound_registers(diagram)
        found: List[MutationSpec] = []
        attempts = 0
        while len(found) < self.behavior_budget and attempts < 4 * self.behavior_budget:
            attempts += 1
            move = self._random_move(diagram, bound, rng)
            if move is None or move in found:
                continue
            if self.mutator.is_applicable(diagram, move):
                found.append(move)
        return found


def candidate_mutations(
    diagram: Diagram,
    examples: Sequence[Example],
    registry: PredicateRegistry,
    rng: Optional[random.Random] = None,
    **options: Any,
) -> List[MutationSpec]:
    """Applicable mutations of ``diagram`` using a default analyzer."""
    return DiagramAnalyzer(registry, **options).candidate_mutations(diagram, examples, rng)


__all__ = [
    "ArmCombiner",
    "same_pattern",
    "Analysis",
    "DiagramAnalyzer",
    "candidate_mutations",
]
