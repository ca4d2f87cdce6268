"""Search loop configuration."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from .executor import DEFAULT_MAX_ROUNDS


@dataclass
class EvolutionConfig:
    """Parameters of one evolutionary run."""

    population_size: int = 16
    offspring_per_individual: int = 6
    max_generations: int = 50
    max_rounds: int = DEFAULT_MAX_ROUNDS

    # Analysis
    behavior_budget: int = 8
    escape_budget: int = 2
    max_constant_candidates: int = 16
    fresh_registers: int = 1
    always_escape: bool = True  # escape grafts bypass sampling

    max_workers: int = 1  # >1 scores offspring on a thread pool
    log_every: int = 10
    seed: Optional[int] = None

    def __post_init__(self):
        if self.population_size < 1:
            raise ValueError("population_size must be at least 1.")
        if self.offspring_per_individual < 0:
            raise ValueError("offspring_per_individual must be non-negative.")
        if self.max_rounds < 1:
            raise ValueError("max_rounds must be at least 1.")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1.")

    def with_overrides(self, **changes) -> "EvolutionConfig":
        return replace(self, **changes)


FAST_CONFIG = EvolutionConfig(
    population_size=8,
    offspring_per_individual=4,
    max_generations=20,
    max_rounds=128,
    behavior_budget=4,
)

STANDARD_CONFIG = EvolutionConfig()

THOROUGH_CONFIG = EvolutionConfig(
    population_size=48,
    offspring_per_individual=10,
    max_generations=200,
    behavior_budget=16,
    escape_budget=4,
    max_constant_candidates=32,
    fresh_registers=2,
)


__all__ = ["EvolutionConfig", "FAST_CONFIG", "STANDARD_CONFIG", "THOROUGH_CONFIG"]
