"""Example-set scoring of rule diagrams."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, FrozenSet, List, Optional, Sequence

from .diagram import Diagram
from .errors import NonTerminating
from .executor import DiagramExecutor, Evaluation
from .problem import Example
from .terms import Fact

logger = logging.getLogger(__name__)

Scorer = Callable[[FrozenSet[Fact], FrozenSet[Fact]], float]


def fact_agreement(outputs: FrozenSet[Fact], desired: FrozenSet[Fact]) -> float:
    """Default scorer: minus one per spurious fact, minus two per missing fact."""
    extra = len(outputs - desired)
    missing = len(desired - outputs)
    return -float(extra + 2 * missing)


def nonterminating_penalty(desired: FrozenSet[Fact]) -> float:
    """Score for an example whose evaluation never reached a fixpoint."""
    return -float(2 * len(desired) + 1)


@dataclass(frozen=True)
class ScoreCard:
    """Per-example results of scoring one diagram."""

    fitness: float
    scores: List[float]
    evaluations: List[Optional[Evaluation]]
    correct: List[bool]

    @property
    def perfect(self) -> bool:
        return all(self.correct)

    @property
    def terminated(self) -> bool:
        return all(ev is not None for ev in self.evaluations)


class ExampleEvaluator:
    """
    Evaluates diagrams on every example of a problem,
    aggregating a fitness from a pluggable scorer.
    """

    def __init__(
        self,
        examples: Sequence[Example],
        scorer: Optional[Scorer] = None,
        executor: Optional[DiagramExecutor] = None,
        penalty: Optional[Callable[[FrozenSet[Fact]], float]] = None,
    ):
        """
        Args:
            examples: Input/desired-output pairs
            scorer: score(outputs, desired) -> float, higher is better
            executor: Executor used for every run (sets the round ceiling)
            penalty: Score assigned to an example that raises NonTerminating
        """
        self.examples = list(examples)
        self.scorer = scorer or fact_agreement
        self.executor = executor or DiagramExecutor()
        self.penalty = penalty or nonterminating_penalty

    def score(
        self,
        diagram: Diagram,
        callback: Optional[Callable[[int, Optional[Evaluation], float], None]] = None,
    ) -> ScoreCard:
        """
        Score ``diagram`` on all examples.

        Args:
            diagram: The diagram to evaluate
            callback: Optional callback(example_idx, evaluation, score)

        Returns:
            ScoreCard with the summed fitness
        """
        scores: List[float] = []
        evaluations: List[Optional[Evaluation]] = []
        correct: List[bool] = []

        for idx, example in enumerate(self.examples):
            try:
                evaluation = self.executor.execute(diagram, example.inputs)
            except NonTerminating as exc:
                logger.debug("Example %d did not terminate: %s", idx, exc)
                evaluation = None
                score = self.penalty(example.outputs)
                ok = False
            else:
                score = float(self.scorer(evaluation.outputs, example.outputs))
                ok = evaluation.outputs == example.outputs
            scores.append(score)
            evaluations.append(evaluation)
            correct.append(ok)
            if callback:
                callback(idx, evaluation, score)

        return ScoreCard(
            fitness=sum(scores),
            scores=scores,
            evaluations=evaluations,
            correct=correct,
        )

    def evaluate(self, diagram: Diagram) -> float:
        """Aggregated fitness of ``diagram``."""
        return self.score(diagram).fitness


__all__ = [
    "Scorer",
    "fact_agreement",
    "nonterminating_penalty",
    "ScoreCard",
    "ExampleEvaluator",
]
