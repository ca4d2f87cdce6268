"""Example workflows for quick experimentation."""

from __future__ import annotations

from typing import List, Tuple

from .config import FAST_CONFIG
from .diagram import Diagram
from .evolver import DiagramEvolver
from .executor import evaluate
from .notation import format_diagram, parse_diagram
from .problem import Example, ProblemStatement, blank_diagram
from .registry import Predicate, PredicateRegistry
from .terms import fact, sort_facts

PLAYER = Predicate("player", 1)
MOVE = Predicate("move", 2)
BOARD = Predicate("board", 3)
NEXT_BOARD = Predicate("next_board", 3)

NEXT_BOARD_SOURCE = """
# Apply the current player's move to a blank cell, copy an occupied one.
root: player(%0 <- _) { n1 } {}
n1: move(%1 <- _, %2 <- _) { n2 } {}
n2: board(%1, %2, :blank) { n3 } { n4 }
n3: output next_board(%1, %2, %0)
n4: board(%1, %2, %3 <- _) { n5 } {}
n5: output next_board(%1, %2, %3)
"""


def tic_tac_toe_registry() -> PredicateRegistry:
    return PredicateRegistry([PLAYER, MOVE, BOARD, NEXT_BOARD])


def next_board_diagram() -> Diagram:
    return parse_diagram(NEXT_BOARD_SOURCE, tic_tac_toe_registry())


def example_next_board() -> List[Tuple[str, str]]:
    """Evaluate the hand-written move rule on a blank and an occupied cell."""
    print("=== Tic-tac-toe move rule ===\n")
    diagram = next_board_diagram()
    for line in diagram.to_human_readable():
        print(f"  {line}")

    scenarios = {
        "blank": {fact(PLAYER, "x"), fact(MOVE, 3, 3), fact(BOARD, 3, 3, "blank")},
        "occupied": {fact(PLAYER, "x"), fact(MOVE, 3, 3), fact(BOARD, 3, 3, "o")},
    }
    results = []
    for name, inputs in scenarios.items():
        outputs = ", ".join(str(f) for f in sort_facts(evaluate(diagram, inputs)))
        print(f"\n{name}: {outputs}")
        results.append((name, outputs))
    return results


def copy_rule_problem(count: int = 3) -> ProblemStatement:
    """Learn q(X) from p(X) for ``count`` values."""
    source = Predicate("p", 1)
    target = Predicate("q", 1)
    examples = [
        Example({fact(source, value)}, {fact(target, value)}) for value in range(count)
    ]
    return ProblemStatement((source,), (target,), examples)


def example_copy_rule_search(generations: int = 10) -> Diagram:
    """Evolve a diagram that copies p(X) to q(X) starting from a blank leaf."""
    print("\n=== Copy rule search ===\n")
    problem = copy_rule_problem()
    problem.validate()
    evolver = DiagramEvolver(problem.registry(), FAST_CONFIG.with_overrides(seed=7))

    def progress_callback(gen, best, best_fitness):
        print(f"Generation {gen}: fitness={best_fitness:.1f} size={best.size}")

    best = evolver.run(
        [blank_diagram(problem)],
        problem.examples,
        generations=generations,
        progress_callback=progress_callback,
    )
    print("\n=== Best Diagram Found ===")
    print(f"Fitness: {best.fitness:.1f}")
    print(f"Signature: {best.get_signature()[:16]}...")
    print(format_diagram(best.diagram))
    return best.diagram


def run_all_examples():
    example_next_board()
    example_copy_rule_search()


__all__ = [
    "NEXT_BOARD_SOURCE",
    "tic_tac_toe_registry",
    "next_board_diagram",
    "example_next_board",
    "copy_rule_problem",
    "example_copy_rule_search",
    "run_all_examples",
]
