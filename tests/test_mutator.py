import pytest

from conftest import BOARD, C, MOVE, OUT, PAIR, PLAYER
from rulevo import (
    BindConstant,
    Branch,
    CollapsePassThrough,
    Constant,
    DiagramExecutor,
    DiagramMutator,
    DuplicateNode,
    EdgeKind,
    Free,
    Graft,
    InvalidMutation,
    Leaf,
    MergeNodes,
    Pattern,
    Predicate,
    RedirectEdge,
    Reference,
    ReplaceConstant,
    ReplacePredicate,
    ReplaceTerm,
    RetargetRegister,
    RewriteFreeRegister,
    SpliceEdge,
    UnbindConstant,
    apply,
    construct,
    evaluate,
    fact,
)


@pytest.fixture
def mutator(registry):
    return DiagramMutator(registry)


@pytest.fixture
def inputs(blank_move, occupied_move):
    return [blank_move, occupied_move]


def assert_same_behavior(before, after, inputs):
    for facts in inputs:
        assert evaluate(before, facts) == evaluate(after, facts)


@pytest.mark.parametrize(
    "node,edge",
    [
        (None, EdgeKind.ROOT),
        (0, EdgeKind.MATCH),
        (2, EdgeKind.MATCH),
        (2, EdgeKind.REFUTE),
        (4, EdgeKind.REFUTE),
    ],
)
def test_splice_then_collapse_is_identity(mutator, scenario, inputs, node, edge):
    spliced = mutator.apply(scenario, SpliceEdge(node, edge))
    assert spliced.size == scenario.size + 1
    assert spliced.nodes[-1].is_passthrough
    assert_same_behavior(scenario, spliced, inputs)

    collapsed = mutator.apply(spliced, CollapsePassThrough(spliced.size - 1))
    assert collapsed == scenario


def test_collapse_rejects_real_branches(mutator, scenario):
    with pytest.raises(InvalidMutation):
        mutator.apply(scenario, CollapsePassThrough(0))


def test_collapse_rejects_split_passthrough(mutator, registry):
    diagram = construct(
        [
            Branch(Pattern.passthrough(), match=1, refute=2),
            Leaf(Pattern(BOARD, (Constant(1), Constant(1), Constant("x")))),
            Leaf(Pattern(BOARD, (Constant(2), Constant(2), Constant("o")))),
        ]
    )
    with pytest.raises(InvalidMutation):
        mutator.apply(diagram, CollapsePassThrough(0))


def fan_diagram():
    return construct(
        [
            Branch(Pattern(C, (Free(0),)), match=1, refute=1),
            Leaf(Pattern(OUT, (Constant(1),))),
        ]
    )


def test_duplicate_then_merge_is_identity(small_registry):
    mutator = DiagramMutator(small_registry)
    diagram = fan_diagram()
    duplicated = mutator.apply(diagram, DuplicateNode(0))
    assert duplicated.size == 3
    assert duplicated.nodes[0].refute == 2
    assert duplicated.nodes[1] == duplicated.nodes[2]
    facts = [{fact(C, 1), fact(C, 2)}, {fact(OUT, 3)}]
    assert_same_behavior(diagram, duplicated, facts)

    merged = mutator.apply(duplicated, MergeNodes(0))
    assert merged == diagram


def test_duplicate_requires_shared_child(mutator, scenario):
    with pytest.raises(InvalidMutation):
        mutator.apply(scenario, DuplicateNode(2))


def test_merge_requires_identical_children(mutator, scenario):
    with pytest.raises(InvalidMutation):
        mutator.apply(scenario, MergeNodes(2))


def test_merge_keeps_node_referenced_elsewhere(small_registry):
    leaf = Leaf(Pattern(OUT, (Constant(1),)))
    diagram = construct(
        [
            Branch(Pattern(C, (Free(0),)), match=1, refute=2),
            leaf,
            leaf,
            Branch(Pattern(C, (Constant(5),)), match=2),
        ]
    )
    merged = DiagramMutator(small_registry).apply(diagram, MergeNodes(0))
    assert merged.size == 4
    assert merged.nodes[0].refute == 1


def test_unbind_and_bind_are_inverse(mutator, scenario, inputs):
    unbound = mutator.apply(scenario, UnbindConstant(3, 2, "x"), inputs=inputs)
    assert unbound.nodes[3].pattern.terms[2] == Constant("x")
    assert_same_behavior(scenario, unbound, inputs)

    rebound = mutator.apply(unbound, BindConstant(3, 2, 0), inputs=inputs)
    assert rebound == scenario


def test_unbind_rejects_wrong_value(mutator, scenario, inputs):
    with pytest.raises(InvalidMutation):
        mutator.apply(scenario, UnbindConstant(3, 2, "o"), inputs=inputs)


def test_bind_rejects_register_with_other_value(mutator, scenario, inputs):
    with pytest.raises(InvalidMutation):
        mutator.apply(scenario, BindConstant(2, 2, 0), inputs=inputs)


def test_bind_rejects_register_written_earlier_in_pattern(small_registry):
    diagram = construct([Branch(Pattern(PAIR, (Free(0), Constant(1))))])
    facts = [{fact(PAIR, 1, 1)}]
    with pytest.raises(InvalidMutation):
        DiagramMutator(small_registry).apply(diagram, BindConstant(0, 1, 0), inputs=facts)


def test_retarget_between_agreeing_registers(mutator, scenario, inputs):
    retargeted = mutator.apply(scenario, RetargetRegister(2, 0, 2), inputs=inputs)
    assert retargeted.nodes[2].pattern.terms[0] == Reference(2)
    assert_same_behavior(scenario, retargeted, inputs)


def test_retarget_rejects_disagreeing_registers(mutator, scenario):
    facts = [{fact(PLAYER, "x"), fact(MOVE, 3, 1), fact(BOARD, 3, 1, "blank")}]
    with pytest.raises(InvalidMutation):
        mutator.apply(scenario, RetargetRegister(2, 0, 2), inputs=facts)


def test_rewrite_free_register_rejects_changed_output(mutator, scenario, inputs):
    with pytest.raises(InvalidMutation):
        mutator.apply(scenario, RewriteFreeRegister(0, 0, 7), inputs=inputs)


def test_rewrite_free_register_on_unreached_node(small_registry):
    diagram = construct(
        [
            Branch(Pattern(C, (Constant(9),)), match=1),
            Branch(Pattern(C, (Free(0),)), match=2),
            Leaf(Pattern(OUT, (Constant(1),))),
        ]
    )
    facts = [{fact(C, 1)}]
    rewritten = DiagramMutator(small_registry).apply(
        diagram, RewriteFreeRegister(1, 0, 4), inputs=facts
    )
    assert rewritten.nodes[1].pattern.terms[0] == Free(4)


def test_replace_constant_checks_outgoing_sets(mutator, scenario, blank_move, occupied_move):
    change = ReplaceConstant(2, 2, "empty")
    with pytest.raises(InvalidMutation):
        mutator.apply(scenario, change, inputs=[blank_move])
    replaced = mutator.apply(scenario, change, inputs=[occupied_move])
    assert replaced.nodes[2].pattern.terms[2] == Constant("empty")
    assert_same_behavior(scenario, replaced, [occupied_move])


def test_neutral_mutation_needs_reference_facts(mutator, scenario):
    with pytest.raises(InvalidMutation):
        mutator.apply(scenario, UnbindConstant(3, 2, "x"))


def test_divergent_reference_run_is_invalid(registry, scenario, inputs):
    mutator = DiagramMutator(registry, DiagramExecutor(max_rounds=1))
    with pytest.raises(InvalidMutation):
        mutator.apply(scenario, UnbindConstant(3, 2, "x"), inputs=inputs)


def test_precomputed_evaluations_are_used(mutator, scenario, inputs):
    evaluations = mutator.evaluations_for(scenario, inputs)
    unbound = mutator.apply(scenario, UnbindConstant(3, 2, "x"), evaluations)
    assert unbound.nodes[3].pattern.terms[2] == Constant("x")


def test_redirect_edge_changes_behavior(mutator, scenario, occupied_move):
    redirected = mutator.apply(scenario, RedirectEdge(2, EdgeKind.REFUTE, None))
    assert evaluate(redirected, occupied_move) == frozenset()


def test_redirect_root_needs_target(mutator, scenario):
    with pytest.raises(InvalidMutation):
        mutator.apply(scenario, RedirectEdge(None, EdgeKind.ROOT, None))


def test_replace_term_validates_result(mutator, scenario):
    with pytest.raises(InvalidMutation):
        mutator.apply(scenario, ReplaceTerm(3, 0, Free(1)))
    with pytest.raises(InvalidMutation):
        mutator.apply(scenario, ReplaceTerm(0, 0, Reference(9)))
    changed = mutator.apply(scenario, ReplaceTerm(3, 2, Constant("o")))
    assert changed.nodes[3].pattern.terms[2] == Constant("o")


def test_replace_predicate(mutator, scenario):
    with pytest.raises(InvalidMutation):
        mutator.apply(scenario, ReplacePredicate(0, MOVE))
    replaced = mutator.apply(
        scenario, ReplacePredicate(0, MOVE, (Free(0), Free(5)))
    )
    assert replaced.nodes[0].pattern.predicate == MOVE
    with pytest.raises(InvalidMutation):
        mutator.apply(scenario, ReplacePredicate(0, Predicate("unknown", 1)))


def test_graft_appends_and_moves_root(mutator, scenario, occupied_move):
    graft = Graft(
        scenario.size,
        (Branch(Pattern.passthrough(), match=0, refute=0),),
        scenario.size,
    )
    grafted = mutator.apply(scenario, graft)
    assert grafted.root == scenario.size
    assert evaluate(grafted, occupied_move) == evaluate(scenario, occupied_move)
    with pytest.raises(InvalidMutation):
        mutator.apply(scenario, Graft(0, graft.nodes, 0))


def test_module_level_apply(registry, scenario):
    spliced = apply(scenario, SpliceEdge(None, EdgeKind.ROOT), registry=registry)
    assert spliced.root == scenario.size


def test_unknown_node_is_invalid(mutator, scenario):
    with pytest.raises(InvalidMutation):
        mutator.apply(scenario, SpliceEdge(42, EdgeKind.MATCH))
    assert not mutator.is_applicable(scenario, MergeNodes(42))
