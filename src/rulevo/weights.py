"""Sampling weight profiles for mutation kinds."""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Set, Type, Union

from .enums import MutationClass
from .mutation import ALL_MUTATIONS, Graft, MutationSpec

MutationKey = Union[str, Type, MutationSpec]


class MutationWeights:
    """Optional weights for mutation types and named groups of mutation types."""

    def __init__(self, default_weight: Optional[float] = 1.0):
        self.default_weight = default_weight
        self._kind_weights: Dict[str, float] = {}
        self._groups: Dict[str, Set[str]] = {}
        self._group_weights: Dict[str, float] = {}
        for cls in MutationClass:
            self._groups[cls.name.lower()] = {
                m.__name__ for m in ALL_MUTATIONS if m.kind == cls
            }

    @staticmethod
    def _normalize_kind(key: MutationKey) -> str:
        if isinstance(key, str):
            clean = key.strip()
            if not clean:
                raise ValueError("Mutation name must be a non-empty string.")
            return clean
        cls = key if isinstance(key, type) else type(key)
        return cls.__name__

    @staticmethod
    def _normalize_group(name: str) -> str:
        clean = name.strip().lower()
        if not clean:
            raise ValueError("Group name must be a non-empty string.")
        return clean

    def set_weight(self, key: MutationKey, weight: Optional[float]) -> None:
        """Assign or clear a weight for one mutation type."""
        name = self._normalize_kind(key)
        if weight is None:
            self._kind_weights.pop(name, None)
            return
        if weight < 0:
            raise ValueError("Weights must be non-negative.")
        self._kind_weights[name] = float(weight)

    def get_weight(self, key: MutationKey, default: Optional[float] = None) -> Optional[float]:
        return self._kind_weights.get(self._normalize_kind(key), default)

    def set_group(
        self,
        name: str,
        kinds: Iterable[MutationKey],
        *,
        weight: Optional[float] = None,
    ) -> None:
        """Define or replace a group, optionally setting its weight."""
        group = self._normalize_group(name)
        self._groups[group] = {self._normalize_kind(k) for k in kinds}
        if weight is not None:
            self._group_weights[group] = float(weight)

    def group_members(self, name: str) -> Set[str]:
        return set(self._groups.get(self._normalize_group(name), set()))

    def set_group_weight(self, name: str, weight: Optional[float]) -> None:
        """Assign or clear a group weight (``neutral``, ``size_changing``, ...)."""
        group = self._normalize_group(name)
        if weight is None:
            self._group_weights.pop(group, None)
            return
        self._group_weights[group] = float(weight)

    def get_group_weight(self, name: str, default: Optional[float] = None) -> Optional[float]:
        return self._group_weights.get(self._normalize_group(name), default)

    @staticmethod
    def _reduce_group_weights(weights: Iterable[float], mode: str) -> float:
        items = list(weights)
        if not items:
            raise ValueError("No group weights provided for reduction.")
        key = mode.strip().lower()
        if key == "mean":
            return sum(items) / len(items)
        if key == "min":
            return min(items)
        if key == "max":
            return max(items)
        if key == "sum":
            return sum(items)
        raise ValueError(
            "Unknown group_reduce mode. Use 'mean', 'min', 'max', or 'sum'."
        )

    def resolve_weight(
        self,
        key: MutationKey,
        *,
        default: Optional[float] = None,
        group_reduce: str = "mean",
    ) -> Optional[float]:
        """
        Resolve a weight for a mutation, falling back to group weights or defaults.
        """
        name = self._normalize_kind(key)
        if name in self._kind_weights:
            return self._kind_weights[name]

        group_weights = [
            weight
            for group, members in self._groups.items()
            if name in members and (weight := self._group_weights.get(group)) is not None
        ]
        if group_weights:
            return self._reduce_group_weights(group_weights, group_reduce)

        if default is not None:
            return default
        return self.default_weight


def default_weights() -> MutationWeights:
    """Profile used by the search loop: favor escapes, then behavior moves."""
    weights = MutationWeights(default_weight=1.0)
    weights.set_group_weight("neutral", 1.0)
    weights.set_group_weight("size_changing", 0.5)
    weights.set_group_weight("behavior_changing", 2.0)
    weights.set_weight(Graft, 8.0)
    return weights


__all__ = ["MutationWeights", "default_weights"]
