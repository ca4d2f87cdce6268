import pytest

from conftest import BOARD, C, NEXT_BOARD, OUT, PAIR
from rulevo import (
    EMPTY_SNAPSHOT,
    Branch,
    Constant,
    Diagram,
    DiagramExecutor,
    Free,
    Leaf,
    NonTerminating,
    Pattern,
    Predicate,
    Reference,
    RegisterSnapshot,
    construct,
    evaluate,
    fact,
    propagate,
    snapshot_sets,
)
from rulevo.executor import unify


def test_blank_cell_receives_player_mark(scenario, blank_move):
    assert evaluate(scenario, blank_move) == {fact(NEXT_BOARD, 3, 3, "x")}


def test_occupied_cell_is_copied(scenario, occupied_move):
    assert evaluate(scenario, occupied_move) == {fact(NEXT_BOARD, 3, 3, "o")}


def test_snapshot_sets_of_scenario(scenario, blank_move):
    sets = snapshot_sets(scenario, blank_move)
    assert sets[0] == {EMPTY_SNAPSHOT}
    assert sets[2] == {RegisterSnapshot({0: "x", 1: 3, 2: 3})}
    assert 4 not in sets


def test_refute_fires_once_per_non_matching_fact():
    facts = {fact(C, 1), fact(C, 2), fact(C, 3)}
    node = Branch(Pattern(C, (Constant(2),)))
    matched, refuted = propagate(node, facts, [EMPTY_SNAPSHOT])
    assert len(matched) == 1
    assert len(refuted) == 2


def test_free_term_matches_every_candidate():
    facts = {fact(C, 1), fact(C, 2), fact(C, 3)}
    node = Branch(Pattern(C, (Free(0),)))
    matched, refuted = propagate(node, facts, [EMPTY_SNAPSHOT])
    assert {s[0] for s in matched} == {1, 2, 3}
    assert refuted == []


def test_absent_predicate_delivers_nothing():
    node = Branch(Pattern(C, (Free(0),)))
    matched, refuted = propagate(node, {fact(OUT, 1)}, [EMPTY_SNAPSHOT])
    assert matched == []
    assert refuted == []

    diagram = construct(
        [
            Branch(Pattern(C, (Constant(9),)), match=1, refute=2),
            Leaf(Pattern(OUT, (Constant(1),))),
            Leaf(Pattern(OUT, (Constant(2),))),
        ]
    )
    assert evaluate(diagram, {fact(OUT, 5)}) == frozenset()
    assert evaluate(diagram, {fact(C, 4)}) == {fact(OUT, 2)}


def test_passthrough_forwards_on_both_edges():
    node = Branch(Pattern.passthrough(), match=1, refute=2)
    snapshot = RegisterSnapshot({0: "a"})
    matched, refuted = propagate(node, (), [snapshot])
    assert matched == [snapshot]
    assert refuted == [snapshot]


def test_free_then_reference_unifies_left_to_right():
    diagram = construct(
        [
            Branch(Pattern(PAIR, (Free(0), Reference(0))), match=1),
            Leaf(Pattern(OUT, (Reference(0),))),
        ]
    )
    facts = {fact(PAIR, 1, 1), fact(PAIR, 1, 2), fact(PAIR, 3, 3)}
    assert evaluate(diagram, facts) == {fact(OUT, 1), fact(OUT, 3)}


def test_free_term_rebinds_register():
    diagram = construct(
        [
            Branch(Pattern(C, (Free(0),)), match=1),
            Branch(Pattern(PAIR, (Reference(0), Free(0))), match=2),
            Leaf(Pattern(OUT, (Reference(0),))),
        ]
    )
    facts = {fact(C, 1), fact(PAIR, 1, 5)}
    assert evaluate(diagram, facts) == {fact(OUT, 5)}


def test_cycle_reaches_fixpoint():
    diagram = construct(
        [
            Branch(Pattern.passthrough(), match=0, refute=1),
            Leaf(Pattern(OUT, (Constant(1),))),
        ]
    )
    evaluation = DiagramExecutor().execute(diagram, ())
    assert evaluation.outputs == {fact(OUT, 1)}
    assert evaluation.rounds == 2


def test_transitive_closure_through_cycle():
    edge = Predicate("edge", 2)
    reach = Predicate("reach", 1)
    diagram = Diagram(
        (
            Branch(Pattern(edge, (Constant("a"), Free(0))), match=1),
            Branch(Pattern.passthrough(), match=2, refute=3),
            Leaf(Pattern(reach, (Reference(0),))),
            Branch(Pattern(edge, (Reference(0), Free(0))), match=1),
        )
    )
    construct(diagram.nodes)
    facts = {fact(edge, "a", "b"), fact(edge, "b", "c"), fact(edge, "c", "d")}
    assert evaluate(diagram, facts) == {fact(reach, v) for v in "bcd"}


def test_round_ceiling_raises_nonterminating():
    diagram = construct(
        [
            Branch(Pattern.passthrough(), match=1, refute=1),
            Branch(Pattern.passthrough(), match=2, refute=2),
            Leaf(Pattern(OUT, (Constant(1),))),
        ]
    )
    with pytest.raises(NonTerminating) as info:
        DiagramExecutor(max_rounds=2).execute(diagram, ())
    assert info.value.rounds == 2
    assert evaluate(diagram, ()) == {fact(OUT, 1)}


def test_evaluation_records_outgoing_and_emitted(scenario, occupied_move):
    evaluation = DiagramExecutor().execute(scenario, occupied_move)
    matched, refuted = evaluation.outgoing_sets(2)
    assert matched == frozenset()
    assert refuted == {RegisterSnapshot({0: "x", 1: 3, 2: 3})}
    assert evaluation.emitted_by(5) == {fact(NEXT_BOARD, 3, 3, "o")}
    assert evaluation.emitted_by(3) == frozenset()


def test_invalid_max_rounds():
    with pytest.raises(ValueError):
        DiagramExecutor(max_rounds=0)


def test_board_predicate_has_expected_arity():
    assert BOARD.arity == 3


def test_boolean_and_integer_values_are_equal():
    pattern = Pattern(C, (Constant(True),))
    assert unify(pattern, (1,), EMPTY_SNAPSHOT) == EMPTY_SNAPSHOT
    assert Constant(True) == Constant(1)
    assert fact(C, True) == fact(C, 1)
    assert RegisterSnapshot({0: True}) == RegisterSnapshot({0: 1})
    diagram = construct(
        [
            Branch(Pattern(C, (Constant(True),)), match=1),
            Leaf(Pattern(OUT, (Constant("hit"),))),
        ]
    )
    assert evaluate(diagram, {fact(C, 1)}) == {fact(OUT, "hit")}
