import pytest

from conftest import C, OUT, PAIR
from rulevo import (
    Branch,
    Constant,
    Free,
    Leaf,
    MalformedDiagram,
    MalformedProgram,
    Pattern,
    Predicate,
    PredicateRegistry,
    Reference,
    construct,
    evaluate,
    fact,
    format_diagram,
    parse_diagram,
)
from rulevo.demos import NEXT_BOARD_SOURCE
from rulevo.notation import tokenize

FLAG = Predicate("flag", 0)


@pytest.fixture
def notation_registry():
    return PredicateRegistry([C, PAIR, OUT, FLAG])


def test_scenario_parses_into_expected_nodes(registry, scenario):
    assert scenario.size == 6
    assert scenario.root == 0
    assert scenario.nodes[0] == Branch(
        Pattern(registry["player"], (Free(0),)), match=1, refute=None
    )
    assert isinstance(scenario.nodes[5], Leaf)


def test_round_trip_of_scenario(registry, scenario):
    assert parse_diagram(format_diagram(scenario), registry) == scenario


def test_round_trip_of_mixed_constants(notation_registry):
    diagram = construct(
        [
            Branch(Pattern.passthrough(), match=1, refute=3),
            Branch(Pattern(PAIR, (Free(0), Constant("two words"))), match=2, refute=1),
            Leaf(Pattern(OUT, (Reference(0),))),
            Branch(Pattern(FLAG, ()), match=4),
            Leaf(Pattern(OUT, (Constant(-2),))),
        ],
        root=0,
    )
    text = format_diagram(diagram)
    assert "root: * {n1} {n3}" in text
    assert parse_diagram(text, notation_registry) == diagram


def test_round_trip_with_root_not_first(notation_registry):
    diagram = construct(
        [
            Leaf(Pattern(OUT, (Constant("a"),))),
            Branch(Pattern(C, (Constant(1),)), match=0, refute=1),
        ],
        root=1,
    )
    text = format_diagram(diagram)
    assert text.splitlines()[1].startswith("root:")
    assert parse_diagram(text, notation_registry) == diagram


def test_nested_arms(notation_registry):
    diagram = parse_diagram(
        "root: c(%0 <- _) { output out(%0) } { n: c(:1) {n} {} }", notation_registry
    )
    assert diagram.size == 3
    assert diagram.nodes[1] == Leaf(Pattern(OUT, (Reference(0),)))
    assert diagram.nodes[2] == Branch(Pattern(C, (Constant(1),)), match=2)
    assert evaluate(diagram, {fact(C, 5)}) == {fact(OUT, 5)}


def test_comments_and_whitespace_are_ignored():
    tokens = tokenize("# header\nroot: *  {} {}  # trailing\n")
    assert [t.text for t in tokens[:-1]] == ["root", ":", "*", "{", "}", "{", "}"]
    assert tokens[0].line == 2


def test_syntax_error_reports_position(notation_registry):
    with pytest.raises(MalformedProgram) as info:
        parse_diagram("root: * {} {}\nn1: c(%0 <- _ {} {}", notation_registry)
    assert info.value.line == 2
    assert info.value.column == 15


def test_unknown_predicate_is_a_program_error(notation_registry):
    with pytest.raises(MalformedProgram):
        parse_diagram("root: nope(:1) {} {}", notation_registry)


def test_unbound_reference_is_a_diagram_error(notation_registry):
    with pytest.raises(MalformedDiagram):
        parse_diagram("root: c(%0) {} {}", notation_registry)


def test_duplicate_label(notation_registry):
    with pytest.raises(MalformedProgram):
        parse_diagram("root: * {} {}\nroot: * {} {}", notation_registry)


def test_empty_program(notation_registry):
    with pytest.raises(MalformedProgram):
        parse_diagram("  # nothing\n", notation_registry)


def test_source_mentions_every_node(registry):
    assert NEXT_BOARD_SOURCE.count("output") == 2


def test_round_trip_of_float_and_boolean_constants(notation_registry):
    diagram = construct(
        [
            Branch(Pattern(PAIR, (Constant(1.5), Constant(True))), match=1, refute=2),
            Leaf(Pattern(OUT, (Constant(-2.5e-07),))),
            Leaf(Pattern(OUT, (Constant(False),))),
        ]
    )
    text = format_diagram(diagram)
    assert "pair(:1.5, true)" in text
    parsed = parse_diagram(text, notation_registry)
    assert parsed == diagram
    assert parsed.nodes[0].pattern.terms[1].value is True
    assert isinstance(parsed.nodes[1].pattern.terms[0].value, float)


def test_string_true_is_not_a_boolean(notation_registry):
    diagram = parse_diagram("root: output out(:true)", notation_registry)
    assert diagram.nodes[0].pattern.terms[0] == Constant("true")
