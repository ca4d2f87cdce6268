"""Mutation engine: checks preconditions and applies mutation specs to diagrams."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Type

from .diagram import Branch, Diagram, Leaf, Node
from .enums import EdgeKind, MutationClass
from .errors import InvalidMutation, MalformedDiagram, NonTerminating
from .executor import DiagramExecutor, Evaluation, instantiate, propagate
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
from .registry import PredicateRegistry
from .snapshot import RegisterSnapshot
from .terms import Constant, Free, Pattern, Reference, Term
from .validator import DiagramValidator

logger = logging.getLogger(__name__)

_MISSING = object()


class DiagramMutator:
    """
    Applies mutation specs.

    Neutral mutations are only valid relative to a collection of fact sets:
    their preconditions are checked against the evaluations of the unmutated
    diagram on those fact sets, either supplied by the caller or computed
    from ``inputs``. Every result is re-validated before it is returned, and
    any failed check raises ``InvalidMutation`` without producing a diagram.
    """

    def __init__(
        self,
        registry: Optional[PredicateRegistry] = None,
        executor: Optional[DiagramExecutor] = None,
    ):
        self.validator = DiagramValidator(registry)
        self.executor = executor or DiagramExecutor()
        self._handlers: Dict[Type, Callable[..., Diagram]] = {
            BindConstant: self._bind_constant,
            UnbindConstant: self._unbind_constant,
            RetargetRegister: self._retarget_register,
            RewriteFreeRegister: self._rewrite_free_register,
            ReplaceConstant: self._replace_constant,
            SpliceEdge: self._splice_edge,
            CollapsePassThrough: self._collapse_passthrough,
            DuplicateNode: self._duplicate_node,
            MergeNodes: self._merge_nodes,
            RedirectEdge: self._redirect_edge,
            ReplaceTerm: self._replace_term,
            ReplacePredicate: self._replace_predicate,
            Graft: self._graft,
        }

    def evaluations_for(
        self, diagram: Diagram, inputs: Iterable[Iterable[Any]], mutation: Any = None
    ) -> List[Evaluation]:
        """Evaluate ``diagram`` on each fact set, reporting divergence as invalid."""
        evaluations = []
        for facts in inputs:
            try:
                evaluations.append(self.executor.execute(diagram, facts))
            except NonTerminating as exc:
                raise InvalidMutation(mutation, str(exc)) from exc
        return evaluations

    def apply(
        self,
        diagram: Diagram,
        mutation: MutationSpec,
        evaluations: Optional[Sequence[Evaluation]] = None,
        inputs: Iterable[Iterable[Any]] = (),
    ) -> Diagram:
        """
        Apply ``mutation`` to ``diagram`` and return the new diagram.

        Args:
            diagram: Well-formed diagram to mutate (left untouched)
            mutation: Any mutation spec from ``rulevo.mutation``
            evaluations: Evaluations of ``diagram`` on the reference fact sets
            inputs: Reference fact sets, used when ``evaluations`` is None

        Raises:
            InvalidMutation: A precondition fails or the result is malformed
        """
        handler = self._handlers.get(type(mutation))
        if handler is None:
            raise InvalidMutation(mutation, "unknown mutation type")

        if mutation.kind == MutationClass.NEUTRAL:
            if evaluations is None:
                evaluations = self.evaluations_for(diagram, inputs, mutation)
            if not evaluations:
                raise InvalidMutation(
                    mutation, "neutral mutations need at least one reference fact set"
                )
        result = handler(diagram, mutation, evaluations or ())

        try:
            self.validator.validate(result)
        except MalformedDiagram as exc:
            raise InvalidMutation(mutation, str(exc)) from exc
        return result

    def is_applicable(
        self,
        diagram: Diagram,
        mutation: MutationSpec,
        evaluations: Optional[Sequence[Evaluation]] = None,
        inputs: Iterable[Iterable[Any]] = (),
    ) -> bool:
        try:
            self.apply(diagram, mutation, evaluations, inputs)
        except InvalidMutation as exc:
            logger.debug("Rejected %s", exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _node(diagram: Diagram, index: Optional[int], mutation: Any) -> Node:
        if not isinstance(index, int) or not 0 <= index < diagram.size:
            raise InvalidMutation(mutation, f"node {index!r} does not exist")
        return diagram.nodes[index]

    def _branch(self, diagram: Diagram, index: int, mutation: Any) -> Branch:
        node = self._node(diagram, index, mutation)
        if not isinstance(node, Branch):
            raise InvalidMutation(mutation, f"node {index} is a leaf")
        return node

    def _term(
        self, diagram: Diagram, mutation: Any, expected: Type
    ) -> tuple:
        node = self._node(diagram, mutation.node, mutation)
        terms = node.pattern.terms
        if not 0 <= mutation.position < len(terms):
            raise InvalidMutation(mutation, f"position {mutation.position} out of range")
        term = terms[mutation.position]
        if not isinstance(term, expected):
            raise InvalidMutation(
                mutation, f"term {term} is not a {expected.__name__}"
            )
        return node, term

    @staticmethod
    def _reaching(
        evaluations: Sequence[Evaluation], node: int
    ) -> List[RegisterSnapshot]:
        snapshots: List[RegisterSnapshot] = []
        for evaluation in evaluations:
            snapshots.extend(evaluation.snapshots(node))
        return snapshots

    @staticmethod
    def _edit_term(diagram: Diagram, index: int, position: int, term: Term) -> Diagram:
        node = diagram.nodes[index]
        return diagram.with_node(index, node.with_pattern(node.pattern.with_term(position, term)))

    # ------------------------------------------------------------------
    # Neutral, size-preserving
    # ------------------------------------------------------------------

    def _bind_constant(self, diagram, mutation: BindConstant, evaluations) -> Diagram:
        node, term = self._term(diagram, mutation, Constant)
        if node.pattern.written_before(mutation.position, mutation.register):
            raise InvalidMutation(mutation, "register is rebound earlier in the pattern")
        for snapshot in self._reaching(evaluations, mutation.node):
            if snapshot.get(mutation.register, _MISSING) != term.value:
                raise InvalidMutation(
                    mutation, f"%{mutation.register} does not always hold {term}"
                )
        return self._edit_term(
            diagram, mutation.node, mutation.position, Reference(mutation.register)
        )

    def _unbind_constant(self, diagram, mutation: UnbindConstant, evaluations) -> Diagram:
        node, term = self._term(diagram, mutation, Reference)
        if node.pattern.written_before(mutation.position, term.register):
            raise InvalidMutation(mutation, "register is rebound earlier in the pattern")
        for snapshot in self._reaching(evaluations, mutation.node):
            if snapshot.get(term.register, _MISSING) != mutation.value:
                raise InvalidMutation(
                    mutation, f"{term} does not always hold {mutation.value!r}"
                )
        return self._edit_term(
            diagram, mutation.node, mutation.position, Constant(mutation.value)
        )

    def _retarget_register(self, diagram, mutation: RetargetRegister, evaluations) -> Diagram:
        node, term = self._term(diagram, mutation, Reference)
        if mutation.register == term.register:
            raise InvalidMutation(mutation, "register is unchanged")
        pattern = node.pattern
        if pattern.written_before(mutation.position, term.register) or pattern.written_before(
            mutation.position, mutation.register
        ):
            raise InvalidMutation(mutation, "register is rebound earlier in the pattern")
        for snapshot in self._reaching(evaluations, mutation.node):
            current = snapshot.get(term.register, _MISSING)
            if current is _MISSING or snapshot.get(mutation.register, _MISSING) != current:
                raise InvalidMutation(
                    mutation, f"{term} and %{mutation.register} disagree"
                )
        return self._edit_term(
            diagram, mutation.node, mutation.position, Reference(mutation.register)
        )

    def _same_outgoing(
        self, index: int, node: Node, evaluations: Sequence[Evaluation]
    ) -> bool:
        """True when ``node`` produces what node ``index`` produced in every evaluation."""
        for evaluation in evaluations:
            incoming = evaluation.snapshots(index)
            if isinstance(node, Leaf):
                emitted = frozenset(instantiate(node, s) for s in incoming)
                if emitted != evaluation.emitted_by(index):
                    return False
                continue
            matched, refuted = propagate(node, evaluation.facts, incoming)
            if (frozenset(matched), frozenset(refuted)) != evaluation.outgoing_sets(index):
                return False
        return True

    def _rewrite_free_register(
        self, diagram, mutation: RewriteFreeRegister, evaluations
    ) -> Diagram:
        node, term = self._term(diagram, mutation, Free)
        if mutation.register == term.register:
            raise InvalidMutation(mutation, "register is unchanged")
        candidate = node.with_pattern(
            node.pattern.with_term(mutation.position, Free(mutation.register))
        )
        if not self._same_outgoing(mutation.node, candidate, evaluations):
            raise InvalidMutation(mutation, "outgoing snapshot sets would change")
        return diagram.with_node(mutation.node, candidate)

    def _replace_constant(self, diagram, mutation: ReplaceConstant, evaluations) -> Diagram:
        node, term = self._term(diagram, mutation, Constant)
        if term.value == mutation.value:
            raise InvalidMutation(mutation, "constant is unchanged")
        candidate = node.with_pattern(
            node.pattern.with_term(mutation.position, Constant(mutation.value))
        )
        if not self._same_outgoing(mutation.node, candidate, evaluations):
            raise InvalidMutation(mutation, "node output would change")
        return diagram.with_node(mutation.node, candidate)

    # ------------------------------------------------------------------
    # Neutral, size-changing
    # ------------------------------------------------------------------

    def _splice_edge(self, diagram, mutation: SpliceEdge, evaluations) -> Diagram:
        if mutation.edge == EdgeKind.ROOT:
            target = diagram.root
        else:
            target = self._branch(diagram, mutation.node, mutation).child(mutation.edge)
        spliced = diagram.size
        passthrough = Branch(Pattern.passthrough(), target, target)
        return diagram.append(passthrough).with_edge(mutation.node, mutation.edge, spliced)

    def _collapse_passthrough(
        self, diagram, mutation: CollapsePassThrough, evaluations
    ) -> Diagram:
        index = mutation.node
        node = self._branch(diagram, index, mutation)
        if not node.is_passthrough:
            raise InvalidMutation(mutation, "node is not a pass-through")
        if node.match != node.refute:
            raise InvalidMutation(mutation, "pass-through edges lead to different nodes")
        target = node.match
        if target == index:
            raise InvalidMutation(mutation, "pass-through loops onto itself")
        if target is None and diagram.root == index:
            raise InvalidMutation(mutation, "root pass-through has no target")

        result = diagram
        for source, edge in diagram.parents(index):
            if source == index:
                continue
            result = result.with_edge(source, edge, target)
        return result.remove_node(index)

    def _duplicate_node(self, diagram, mutation: DuplicateNode, evaluations) -> Diagram:
        parent = self._branch(diagram, mutation.parent, mutation)
        child = parent.match
        if child is None or parent.refute != child:
            raise InvalidMutation(mutation, "edges do not share a child")
        if child == mutation.parent:
            raise InvalidMutation(mutation, "parent is its own child")
        copy = diagram.size
        return diagram.append(diagram.nodes[child]).with_edge(
            mutation.parent, EdgeKind.REFUTE, copy
        )

    def _merge_nodes(self, diagram, mutation: MergeNodes, evaluations) -> Diagram:
        parent = self._branch(diagram, mutation.parent, mutation)
        kept, dropped = parent.match, parent.refute
        if kept is None or dropped is None or kept == dropped:
            raise InvalidMutation(mutation, "edges do not lead to two distinct nodes")
        if dropped == mutation.parent:
            raise InvalidMutation(mutation, "parent is its own refute child")
        if diagram.nodes[kept] != diagram.nodes[dropped]:
            raise InvalidMutation(mutation, "children are not identical")

        result = diagram.with_edge(mutation.parent, EdgeKind.REFUTE, kept)
        still_used = result.root == dropped or any(
            target == dropped and source != dropped
            for source, _, target in result.edges()
        )
        if still_used:
            return result
        return result.remove_node(dropped)

    # ------------------------------------------------------------------
    # Behavior-changing
    # ------------------------------------------------------------------

    def _redirect_edge(self, diagram, mutation: RedirectEdge, evaluations) -> Diagram:
        target = mutation.target
        if target is not None and not 0 <= target < diagram.size:
            raise InvalidMutation(mutation, f"target {target} does not exist")
        if mutation.edge == EdgeKind.ROOT:
            if target is None:
                raise InvalidMutation(mutation, "the root edge needs a target")
        else:
            self._branch(diagram, mutation.node, mutation)
        return diagram.with_edge(mutation.node, mutation.edge, target)

    def _replace_term(self, diagram, mutation: ReplaceTerm, evaluations) -> Diagram:
        node = self._node(diagram, mutation.node, mutation)
        if not 0 <= mutation.position < len(node.pattern.terms):
            raise InvalidMutation(mutation, f"position {mutation.position} out of range")
        return self._edit_term(diagram, mutation.node, mutation.position, mutation.term)

    def _replace_predicate(self, diagram, mutation: ReplacePredicate, evaluations) -> Diagram:
        node = self._node(diagram, mutation.node, mutation)
        if mutation.predicate is None:
            pattern = Pattern.passthrough()
        elif mutation.terms is not None:
            pattern = Pattern(mutation.predicate, tuple(mutation.terms))
        elif mutation.predicate.arity == node.pattern.arity and not node.is_passthrough:
            pattern = Pattern(mutation.predicate, node.pattern.terms)
        else:
            raise InvalidMutation(mutation, "arity changes and no terms were given")
        return diagram.with_node(mutation.node, node.with_pattern(pattern))

    def _graft(self, diagram, mutation: Graft, evaluations) -> Diagram:
        if mutation.base != diagram.size:
            raise InvalidMutation(
                mutation, f"graft base {mutation.base} != diagram size {diagram.size}"
            )
        grown = diagram.append(*mutation.nodes)
        if not 0 <= mutation.root < grown.size:
            raise InvalidMutation(mutation, f"root {mutation.root} does not exist")
        return grown.with_root(mutation.root)


def apply(
    diagram: Diagram,
    mutation: MutationSpec,
    evaluations: Optional[Sequence[Evaluation]] = None,
    inputs: Iterable[Iterable[Any]] = (),
    registry: Optional[PredicateRegistry] = None,
) -> Diagram:
    """Apply one mutation with a throwaway engine."""
    return DiagramMutator(registry).apply(diagram, mutation, evaluations, inputs)


__all__ = ["DiagramMutator", "apply"]
