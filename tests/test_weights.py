import pytest

from rulevo import (
    BindConstant,
    EdgeKind,
    Graft,
    MutationWeights,
    RedirectEdge,
    SpliceEdge,
    default_weights,
)


def test_kind_weight_overrides_group():
    weights = MutationWeights(default_weight=1.0)
    weights.set_group_weight("neutral", 0.25)
    assert weights.resolve_weight(BindConstant) == 0.25
    weights.set_weight(BindConstant, 3.0)
    assert weights.resolve_weight(BindConstant(0, 0, 1)) == 3.0
    weights.set_weight("BindConstant", None)
    assert weights.resolve_weight(BindConstant) == 0.25


def test_default_groups_follow_mutation_classes():
    weights = MutationWeights()
    assert "SpliceEdge" in weights.group_members("size_changing")
    assert "Graft" in weights.group_members("behavior_changing")
    assert "ReplaceConstant" in weights.group_members("neutral")


def test_custom_groups_are_reduced():
    weights = MutationWeights(default_weight=None)
    weights.set_group("edges", [SpliceEdge, RedirectEdge], weight=4.0)
    weights.set_group_weight("size_changing", 2.0)
    assert weights.resolve_weight(SpliceEdge) == 3.0
    assert weights.resolve_weight(SpliceEdge, group_reduce="max") == 4.0
    with pytest.raises(ValueError):
        weights.resolve_weight(SpliceEdge, group_reduce="median")


def test_fallback_to_default():
    weights = MutationWeights(default_weight=None)
    assert weights.resolve_weight(Graft) is None
    assert weights.resolve_weight(Graft, default=0.5) == 0.5


def test_default_profile_favors_grafts():
    weights = default_weights()
    graft = weights.resolve_weight(Graft)
    assert graft > weights.resolve_weight(RedirectEdge)
    assert weights.resolve_weight(RedirectEdge) > weights.resolve_weight(SpliceEdge(None, EdgeKind.ROOT))


def test_rejects_negative_weight():
    with pytest.raises(ValueError):
        MutationWeights().set_weight(Graft, -1.0)
