import random

import numpy as np
import torch

from rulevo import (
    FAST_CONFIG,
    DiagramEvolver,
    DiagramFeatureExtractor,
    DiagramSupervisedGuide,
    Individual,
)
from rulevo.demos import copy_rule_problem, next_board_diagram
from rulevo.problem import blank_diagram


def test_feature_vector_shape(registry, scenario):
    extractor = DiagramFeatureExtractor(registry)
    features = extractor.encode(scenario)
    assert isinstance(features, torch.Tensor)
    assert features.shape == (extractor.feature_dim,)
    assert torch.all(features >= 0)
    assert torch.all(features <= 1)


def test_features_distinguish_diagrams(registry, scenario):
    extractor = DiagramFeatureExtractor(registry)
    spliced = scenario.append(scenario.nodes[0])
    assert not torch.equal(extractor.encode(scenario), extractor.encode(spliced))


def test_untrained_guide_predicts_nan(registry):
    guide = DiagramSupervisedGuide(registry, device="cpu")
    predictions = guide.predict([next_board_diagram()])
    assert predictions.shape == (1,)
    assert np.isnan(predictions).all()
    assert sorted(guide.select([next_board_diagram()] * 3, 2)) in ([0, 1], [0, 2], [1, 2])


def test_guide_trains_after_enough_observations(registry, scenario):
    guide = DiagramSupervisedGuide(registry, min_buffer=4, batch_size=4, epochs=2, device="cpu")
    population = [Individual(scenario, fitness=float(-i)) for i in range(6)]
    guide.observe_population(population)
    assert guide.trained
    assert guide.loss_history
    predictions = guide.predict([scenario])
    assert np.isfinite(predictions).all()
    assert guide.select([scenario, scenario], 1) in ([0], [1])


def test_evolver_with_guide_finds_copy_rule():
    problem = copy_rule_problem()
    guide = DiagramSupervisedGuide(problem.registry(), min_buffer=4, batch_size=8, device="cpu")
    evolver = DiagramEvolver(
        problem.registry(),
        FAST_CONFIG.with_overrides(seed=1),
        supervised_guide=guide,
    )
    best = evolver.run([blank_diagram(problem)], problem.examples, generations=10)
    assert best.perfect


def test_untrained_selection_follows_the_given_rng(registry):
    guide = DiagramSupervisedGuide(registry, device="cpu")
    diagrams = [next_board_diagram()] * 8
    first = guide.select(diagrams, 3, random.Random(42))
    second = guide.select(diagrams, 3, random.Random(42))
    assert first == second
    assert len(set(first)) == 3
