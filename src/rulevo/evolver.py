"""Evolution engine for rule diagrams."""

from __future__ import annotations

import logging
import random
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional, Sequence, Set

import numpy as np

from .analysis import DiagramAnalyzer
from .config import STANDARD_CONFIG, EvolutionConfig
from .diagram import Diagram
from .errors import InvalidMutation
from .evaluator import ExampleEvaluator, ScoreCard, Scorer
from .executor import DiagramExecutor, Evaluation
from .mutation import Graft, MutationSpec, mutation_name
from .mutator import DiagramMutator
from .problem import Example, collect_values
from .registry import PredicateRegistry
from .weights import MutationWeights, default_weights

if TYPE_CHECKING:
    from .supervised import DiagramSupervisedGuide

logger = logging.getLogger(__name__)


@dataclass
class Individual:
    """A diagram in the population with its score and provenance."""

    diagram: Diagram
    fitness: Optional[float] = None
    card: Optional[ScoreCard] = None
    generation: int = 0
    mutation: Optional[MutationSpec] = None

    @property
    def size(self) -> int:
        return self.diagram.size

    @property
    def perfect(self) -> bool:
        return self.card is not None and self.card.perfect

    def get_signature(self) -> str:
        return self.diagram.get_signature()


class DiagramEvolver:
    """
    Evolutionary search over rule diagrams.

    Each generation every survivor is analyzed, a few of its applicable
    mutations are applied (escape grafts always, the rest sampled by weight),
    the offspring are scored on all examples, and the best distinct diagrams
    survive. Ties on fitness go to the smaller diagram.
    """

    def __init__(
        self,
        registry: PredicateRegistry,
        config: Optional[EvolutionConfig] = None,
        scorer: Optional[Scorer] = None,
        weights: Optional[MutationWeights] = None,
        supervised_guide: Optional["DiagramSupervisedGuide"] = None,
        executor: Optional[DiagramExecutor] = None,
    ):
        self.registry = registry
        self.config = config or STANDARD_CONFIG
        self.scorer = scorer
        self.weights = weights or default_weights()
        self.supervised_guide = supervised_guide
        self.executor = executor or DiagramExecutor(self.config.max_rounds)
        self.mutator = DiagramMutator(registry, self.executor)

        self.rng = random.Random(self.config.seed)
        self.np_rng = np.random.default_rng(self.config.seed)
        self.population: List[Individual] = []
        self.generation = 0
        self.diversity_cache: Set[str] = set()
        self.history: List[float] = []

    def set_supervised_guide(self, guide: "DiagramSupervisedGuide"):
        """Attach or replace the supervised guidance model."""
        self.supervised_guide = guide

    def _analyzer(self, examples: Sequence[Example]) -> DiagramAnalyzer:
        return DiagramAnalyzer(
            self.registry,
            executor=self.executor,
            mutator=self.mutator,
            values=collect_values(examples),
            max_constant_candidates=self.config.max_constant_candidates,
            behavior_budget=self.config.behavior_budget,
            escape_budget=self.config.escape_budget,
            fresh_registers=self.config.fresh_registers,
        )

    def _score(self, evaluator: ExampleEvaluator, individuals: List[Individual]):
        def score_one(individual: Individual) -> Individual:
            individual.card = evaluator.score(individual.diagram)
            individual.fitness = individual.card.fitness
            return individual

        pending = [ind for ind in individuals if ind.card is None]
        if self.config.max_workers > 1 and len(pending) > 1:
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
                list(pool.map(score_one, pending))
        else:
            for individual in pending:
                score_one(individual)

    def _sample(self, candidates: List[MutationSpec], count: int) -> List[MutationSpec]:
        """Draw up to ``count`` distinct candidates in proportion to their weights."""
        if not candidates or count <= 0:
            return []
        weights = np.array(
            [self.weights.resolve_weight(m) or 0.0 for m in candidates], dtype=np.float64
        )
        nonzero = int(np.count_nonzero(weights))
        if nonzero == 0:
            return []
        size = min(count, nonzero)
        chosen = self.np_rng.choice(
            len(candidates), size=size, replace=False, p=weights / weights.sum()
        )
        return [candidates[int(i)] for i in chosen]

    def _apply(
        self,
        parent: Individual,
        mutations: Iterable[MutationSpec],
        evaluations: List[Evaluation],
    ) -> List[Individual]:
        children = []
        for mutation in mutations:
            try:
                diagram = self.mutator.apply(parent.diagram, mutation, evaluations)
            except InvalidMutation as exc:
                logger.debug("Skipping %s: %s", mutation_name(mutation), exc.reason)
                continue
            children.append(
                Individual(diagram, generation=self.generation + 1, mutation=mutation)
            )
        return children

    def offspring(
        self, parent: Individual, examples: Sequence[Example], analyzer: DiagramAnalyzer
    ) -> List[Individual]:
        """Analyze ``parent`` and apply a weighted sample of its candidate mutations."""
        known = parent.card.evaluations if parent.card is not None else None
        analysis = analyzer.analyze(parent.diagram, examples, self.rng, known)
        evaluations = [ev for ev in analysis.evaluations if ev is not None]

        if self.config.always_escape:
            escapes = [m for m in analysis.candidates if isinstance(m, Graft)]
            rest = [m for m in analysis.candidates if not isinstance(m, Graft)]
        else:
            escapes, rest = [], list(analysis.candidates)

        count = self.config.offspring_per_individual
        pool_size = 2 * count if self.supervised_guide else count
        children = self._apply(parent, escapes, evaluations)
        sampled = self._apply(parent, self._sample(rest, pool_size), evaluations)

        if self.supervised_guide and len(sampled) > count:
            keep = self.supervised_guide.select(
                [c.diagram for c in sampled], count, self.rng
            )
            sampled = [sampled[i] for i in keep]
        return children + sampled[:count]

    def _select(self, individuals: List[Individual]) -> List[Individual]:
        ranked = sorted(
            individuals,
            key=lambda ind: (
                -(ind.fitness if ind.fitness is not None else -float("inf")),
                ind.size,
            ),
        )
        survivors: List[Individual] = []
        seen: Set[str] = set()
        for individual in ranked:
            sig = individual.get_signature()
            if sig in seen:
                continue
            seen.add(sig)
            survivors.append(individual)
            if len(survivors) >= self.config.population_size:
                break
        return survivors

    def run(
        self,
        initial_population: Iterable[Diagram],
        examples: Sequence[Example],
        generations: Optional[int] = None,
        progress_callback: Optional[Callable[[int, Individual, float], None]] = None,
    ) -> Individual:
        """
        Main evolution loop.

        Args:
            initial_population: Well-formed seed diagrams
            examples: Input/desired-output pairs
            generations: Generation budget (defaults to ``config.max_generations``)
            progress_callback: Optional callback(generation, best_individual, best_fitness)

        Returns:
            The best individual found
        """
        examples = list(examples)
        budget = self.config.max_generations if generations is None else generations
        evaluator = ExampleEvaluator(examples, self.scorer, self.executor)
        analyzer = self._analyzer(examples)

        seeds = []
        for diagram in initial_population:
            self.mutator.validator.validate(diagram)
            seeds.append(Individual(diagram))
        if not seeds:
            raise ValueError("The initial population is empty.")

        self._score(evaluator, seeds)
        self.population = self._select(seeds)
        self.diversity_cache = {ind.get_signature() for ind in self.population}
        self.history = []

        for gen in range(budget):
            self.generation = gen
            best = self.population[0]
            self.history.append(best.fitness)

            if self.supervised_guide:
                self.supervised_guide.observe_population(self.population)

            if progress_callback:
                progress_callback(gen, best, best.fitness)

            if self.config.log_every and gen % self.config.log_every == 0:
                logger.info(
                    "Gen %03d: best fitness=%.3f size=%d population=%d",
                    gen,
                    best.fitness,
                    best.size,
                    len(self.population),
                )

            perfect = next((ind for ind in self.population if ind.perfect), None)
            if perfect is not None:
                logger.info("Gen %03d: all %d examples reproduced", gen, len(examples))
                return perfect

            children: List[Individual] = []
            for parent in self.population:
                for child in self.offspring(parent, examples, analyzer):
                    sig = child.get_signature()
                    if sig not in self.diversity_cache:
                        self.diversity_cache.add(sig)
                        children.append(child)

            self._score(evaluator, children)
            self.population = self._select(self.population + children)

        self.generation = budget
        best = self.population[0]
        logger.info(
            "Finished after %d generations: best fitness=%.3f size=%d",
            budget,
            best.fitness,
            best.size,
        )
        return best


__all__ = ["Individual", "DiagramEvolver"]
