"""Problem statements: predicate vocabulary plus input/output examples."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, FrozenSet, Iterable, List, Tuple

from .diagram import Diagram, Leaf
from .registry import Predicate, PredicateRegistry
from .terms import Constant, Fact, Pattern, sort_facts


@dataclass(frozen=True)
class Example:
    """One input fact set and the output facts a correct diagram must produce."""

    inputs: FrozenSet[Fact]
    outputs: FrozenSet[Fact]

    def __post_init__(self):
        object.__setattr__(self, "inputs", frozenset(self.inputs))
        object.__setattr__(self, "outputs", frozenset(self.outputs))


@dataclass
class ProblemStatement:
    """Declared vocabulary and example set handed to the search loop."""

    input_predicates: Tuple[Predicate, ...]
    output_predicates: Tuple[Predicate, ...]
    examples: List[Example] = field(default_factory=list)

    def __post_init__(self):
        self.input_predicates = tuple(self.input_predicates)
        self.output_predicates = tuple(self.output_predicates)
        self.examples = list(self.examples)

    def registry(self) -> PredicateRegistry:
        """Shared registry of every declared predicate."""
        return PredicateRegistry(self.input_predicates + self.output_predicates)

    def validate(self) -> None:
        """Raise ``ValueError`` if an example uses an undeclared predicate."""
        inputs = set(self.input_predicates)
        outputs = set(self.output_predicates)
        for position, example in enumerate(self.examples):
            for item in example.inputs:
                if item.predicate not in inputs:
                    raise ValueError(
                        f"Example {position} input {item} uses an undeclared predicate."
                    )
            for item in example.outputs:
                if item.predicate not in outputs:
                    raise ValueError(
                        f"Example {position} output {item} uses an undeclared predicate."
                    )

    def values(self) -> List[Any]:
        """Every value occurring in the examples, in a stable order."""
        return collect_values(self.examples)


def collect_values(examples: Iterable[Example]) -> List[Any]:
    seen: List[Any] = []
    for example in examples:
        for item in sort_facts(example.inputs | example.outputs):
            for value in item.values:
                if value not in seen:
                    seen.append(value)
    return seen


def blank_diagram(problem: ProblemStatement) -> Diagram:
    """A single leaf emitting the first output predicate filled with one constant."""
    if not problem.output_predicates:
        raise ValueError("Problem declares no output predicates.")
    predicate = problem.output_predicates[0]
    values = problem.values()
    filler = values[0] if values else 0
    leaf = Leaf(Pattern(predicate, tuple(Constant(filler) for _ in range(predicate.arity))))
    return Diagram((leaf,), 0)


__all__ = [
    "Example",
    "ProblemStatement",
    "collect_values",
    "blank_diagram",
]
