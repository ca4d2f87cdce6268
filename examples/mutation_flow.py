#!/usr/bin/env python3
"""
Inspect candidate mutations of the move rule and check which keep its outputs.
"""

import random
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = ROOT / "src"
if SRC_PATH.exists() and str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from rulevo import (
    DiagramAnalyzer,
    DiagramMutator,
    Example,
    InvalidMutation,
    evaluate,
    fact,
    format_diagram,
    mutation_name,
    preserves_behavior,
)
from rulevo.demos import BOARD, MOVE, NEXT_BOARD, PLAYER, next_board_diagram, tic_tac_toe_registry


def build_examples():
    blank = {fact(PLAYER, "x"), fact(MOVE, 2, 2), fact(BOARD, 2, 2, "blank")}
    occupied = {fact(PLAYER, "o"), fact(MOVE, 1, 3), fact(BOARD, 1, 3, "x")}
    return [
        Example(blank, {fact(NEXT_BOARD, 2, 2, "x")}),
        Example(occupied, {fact(NEXT_BOARD, 1, 3, "x")}),
    ]


def main():
    registry = tic_tac_toe_registry()
    diagram = next_board_diagram()
    examples = build_examples()
    mutator = DiagramMutator(registry)
    analyzer = DiagramAnalyzer(registry, mutator=mutator)

    print("Starting rule:")
    print(format_diagram(diagram))

    analysis = analyzer.analyze(diagram, examples, random.Random(0))
    print(f"\n{len(analysis.candidates)} candidate mutations, failing examples: {analysis.failing}")

    counts = {}
    for mutation in analysis.candidates:
        counts[mutation_name(mutation)] = counts.get(mutation_name(mutation), 0) + 1
    for name, count in sorted(counts.items()):
        print(f"  {name:22s} {count}")

    print("\nBehavior-preserving candidates applied:")
    for mutation in analysis.candidates:
        if not preserves_behavior(mutation):
            continue
        try:
            mutated = mutator.apply(diagram, mutation, analysis.evaluations)
        except InvalidMutation as exc:
            print(f"  rejected {mutation}: {exc}")
            continue
        unchanged = all(
            evaluate(mutated, example.inputs) == evaluate(diagram, example.inputs)
            for example in examples
        )
        print(f"  {mutation_name(mutation):22s} size={mutated.size} same_outputs={unchanged}")


if __name__ == "__main__":
    main()
