"""Example workflow: learn a tic-tac-toe move rule with the supervised guide."""

import logging
import random
import sys
from typing import List

import numpy as np
import torch

from rulevo import (
    EvolutionConfig,
    DiagramEvolver,
    DiagramSupervisedGuide,
    Example,
    ProblemStatement,
    blank_diagram,
    evaluate,
    fact,
    format_diagram,
    parse_diagram,
    sort_facts,
)
from rulevo.demos import BOARD, MOVE, NEXT_BOARD, NEXT_BOARD_SOURCE, PLAYER


def build_move_examples() -> List[Example]:
    """One move per example: blank cells take the mark, occupied cells keep theirs."""
    examples: List[Example] = []
    for player, row, col, cell in [
        ("x", 1, 1, "blank"),
        ("o", 1, 2, "blank"),
        ("x", 2, 2, "o"),
        ("o", 3, 1, "x"),
        ("x", 3, 3, "blank"),
    ]:
        inputs = {fact(PLAYER, player), fact(MOVE, row, col), fact(BOARD, row, col, cell)}
        mark = player if cell == "blank" else cell
        examples.append(Example(inputs, {fact(NEXT_BOARD, row, col, mark)}))
    return examples


def notation_demo() -> None:
    """Parse the hand-written rule, print it back and run it."""
    problem = ProblemStatement((PLAYER, MOVE, BOARD), (NEXT_BOARD,), build_move_examples())
    diagram = parse_diagram(NEXT_BOARD_SOURCE, problem.registry())
    print("Parsed rule:")
    print(format_diagram(diagram))
    for example in problem.examples:
        produced = evaluate(diagram, example.inputs)
        status = "ok" if produced == example.outputs else "WRONG"
        print(f"  {', '.join(str(f) for f in sort_facts(produced))} [{status}]")


def main():
    random.seed(42)
    np.random.seed(42)
    torch.manual_seed(42)
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

    problem = ProblemStatement((PLAYER, MOVE, BOARD), (NEXT_BOARD,), build_move_examples())
    problem.validate()
    registry = problem.registry()

    guide = DiagramSupervisedGuide(registry, hidden_layers=[64, 32], min_buffer=32)
    config = EvolutionConfig(population_size=24, offspring_per_individual=6, seed=42)
    evolver = DiagramEvolver(registry, config, supervised_guide=guide)

    def progress_callback(gen, best, best_fitness):
        if gen % 5 == 0:
            guide_estimate = float("nan")
            if guide.trained:
                guide_estimate = float(guide.predict([best.diagram])[0])
            print(
                f"Gen {gen:03d} | fitness={best_fitness:.1f} | size={best.size} "
                f"| guide≈{guide_estimate:.2f}"
            )

    best = evolver.run([blank_diagram(problem)], problem.examples, 40, progress_callback)

    print("\nBest diagram fitness:", best.fitness)
    print("Signature:", best.get_signature()[:16] + "...")
    print("\nReachable nodes:")
    for line in best.diagram.to_human_readable():
        if line.startswith("✓"):
            print("  " + line)

    if guide.loss_history:
        print(
            f"\nGuide trained for {len(guide.loss_history)} epochs, "
            f"last loss={guide.loss_history[-1]:.5f}"
        )


if __name__ == "__main__":
    mode = sys.argv[1].lower() if len(sys.argv) > 1 else "evolution"
    if mode == "notation":
        notation_demo()
    elif mode == "both":
        notation_demo()
        main()
    else:
        main()
