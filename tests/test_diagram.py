import pytest

from conftest import C, OUT, PAIR
from rulevo import (
    Branch,
    Constant,
    Diagram,
    DiagramBuilder,
    DiagramValidator,
    EdgeKind,
    Free,
    Leaf,
    MalformedDiagram,
    Pattern,
    Predicate,
    Reference,
    RegisterSnapshot,
    construct,
    well_formed,
)


def copy_diagram():
    return construct(
        [
            Branch(Pattern(C, (Free(0),)), match=1),
            Leaf(Pattern(OUT, (Reference(0),))),
        ]
    )


def test_construct_accepts_copy_rule():
    diagram = copy_diagram()
    assert diagram.size == 2
    assert diagram.root == 0
    assert well_formed(diagram)


def test_empty_diagram_is_malformed():
    with pytest.raises(MalformedDiagram):
        construct([])


def test_child_out_of_range():
    with pytest.raises(MalformedDiagram) as info:
        construct([Branch(Pattern(C, (Free(0),)), match=5)])
    assert info.value.node == 0


def test_free_term_in_leaf_is_malformed():
    with pytest.raises(MalformedDiagram):
        construct([Leaf(Pattern(OUT, (Free(0),)))])


def test_unbound_reference_is_malformed():
    with pytest.raises(MalformedDiagram):
        construct([Branch(Pattern(C, (Reference(0),)))])


def test_reference_must_be_bound_on_every_path():
    nodes = [
        Branch(Pattern(C, (Free(0),)), match=1, refute=1),
        Leaf(Pattern(OUT, (Reference(0),))),
    ]
    assert not well_formed(Diagram(tuple(nodes)))


def test_free_then_reference_in_one_pattern():
    diagram = construct([Branch(Pattern(PAIR, (Free(0), Reference(0))))])
    assert well_formed(diagram)
    reversed_terms = Diagram((Branch(Pattern(PAIR, (Reference(0), Free(0)))),))
    assert not well_formed(reversed_terms)


def test_arity_and_registry_checks(small_registry):
    with pytest.raises(MalformedDiagram):
        construct([Leaf(Pattern(OUT, (Constant(1), Constant(2))))])
    unknown = Predicate("zzz", 1)
    with pytest.raises(MalformedDiagram):
        construct([Leaf(Pattern(unknown, (Constant(1),)))], registry=small_registry)
    assert well_formed(Diagram((Leaf(Pattern(unknown, (Constant(1),))),)))


def test_passthrough_leaf_is_malformed():
    with pytest.raises(MalformedDiagram):
        construct([Leaf(Pattern.passthrough())])


def test_cycles_are_allowed():
    diagram = construct(
        [
            Branch(Pattern(C, (Free(0),)), match=0, refute=1),
            Leaf(Pattern(OUT, (Constant(1),))),
        ]
    )
    assert DiagramValidator().bound_registers(diagram)[0] == frozenset()


def test_bound_registers_intersect_at_joins():
    diagram = construct(
        [
            Branch(Pattern(C, (Free(0),)), match=1, refute=2),
            Branch(Pattern(C, (Free(1),)), match=2),
            Leaf(Pattern(OUT, (Constant(1),))),
        ]
    )
    bound = DiagramValidator().bound_registers(diagram)
    assert bound[1] == frozenset({0})
    assert bound[2] == frozenset()


def test_remove_node_renumbers():
    diagram = Diagram(
        (
            Branch(Pattern.passthrough(), match=2, refute=2),
            Leaf(Pattern(OUT, (Constant(0),))),
            Leaf(Pattern(OUT, (Constant(1),))),
        )
    )
    smaller = diagram.remove_node(1)
    assert smaller.nodes[0] == Branch(Pattern.passthrough(), match=1, refute=1)
    assert smaller.size == 2
    with pytest.raises(ValueError):
        diagram.remove_node(2)
    with pytest.raises(ValueError):
        diagram.remove_node(0)


def test_reachability_and_readable_form():
    diagram = Diagram(
        (
            Branch(Pattern(C, (Free(0),)), match=2),
            Leaf(Pattern(OUT, (Constant(0),))),
            Leaf(Pattern(OUT, (Reference(0),))),
        )
    )
    assert diagram.reachable() == {0, 2}
    lines = diagram.to_human_readable()
    assert lines[0].startswith("✓ n0 (root)")
    assert lines[1].startswith("✗ n1")


def test_diagrams_are_values():
    assert copy_diagram() == copy_diagram()
    assert hash(copy_diagram()) == hash(copy_diagram())
    assert copy_diagram().get_signature() == copy_diagram().get_signature()
    edited = copy_diagram().with_edge(0, EdgeKind.REFUTE, 1)
    assert edited != copy_diagram()
    assert copy_diagram().nodes[0].refute is None


def test_snapshot_binding():
    snapshot = RegisterSnapshot({0: "x"})
    same = snapshot.bind(0, "x")
    assert same is snapshot
    rebound = snapshot.bind(0, "o")
    assert rebound[0] == "o"
    assert snapshot[0] == "x"
    assert RegisterSnapshot({1: 2, 0: 1}) == RegisterSnapshot({0: 1, 1: 2})


def test_builder_resolves_labels(small_registry):
    diagram = (
        DiagramBuilder(small_registry)
        .leaf("out", Reference(0), label="emit")
        .branch("c", Free(0), label="root", match="emit")
        .build()
    )
    assert diagram.root == 1
    assert diagram.nodes[1].match == 0


def test_builder_undefined_label(small_registry):
    builder = DiagramBuilder(small_registry).branch("c", Free(0), match="missing")
    with pytest.raises(MalformedDiagram):
        builder.build()


def test_builder_reserved_slots(small_registry):
    builder = DiagramBuilder(small_registry)
    root = builder.reserve("root")
    builder.leaf("out", 3)
    builder.passthrough(match=builder.last, refute=builder.last, at=root)
    diagram = builder.build()
    assert diagram.nodes[0].is_passthrough
    assert diagram.nodes[1] == Leaf(Pattern(OUT, (Constant(3),)))
