"""Supervised guidance model for the search loop."""

from __future__ import annotations

import random
from collections import deque
from typing import TYPE_CHECKING, List, Optional, Sequence

import numpy as np
import torch
import torch.nn as nn
import torch.nn.functional as F
import torch.optim as optim

from .diagram import Branch, Diagram, Leaf
from .enums import TermKind
from .registry import PredicateRegistry

if TYPE_CHECKING:
    from .evolver import Individual


class DiagramFeatureExtractor:
    """Encodes diagrams into fixed-length feature vectors."""

    def __init__(self, registry: PredicateRegistry, max_nodes: int = 64, max_registers: int = 16):
        self.registry = registry
        self.max_nodes = max_nodes
        self.max_registers = max_registers
        self.base_features = 8
        self.feature_dim = self.base_features + len(TermKind) + 2 * len(registry)

    def encode(self, diagram: Diagram) -> torch.Tensor:
        """Return a feature vector capturing size, shape, term mix and predicate usage."""
        features = np.zeros(self.feature_dim, dtype=np.float32)
        count = len(diagram.nodes)
        reachable = diagram.reachable()

        branches = sum(1 for n in diagram.nodes if isinstance(n, Branch))
        leaves = count - branches
        passthroughs = sum(1 for n in diagram.nodes if n.is_passthrough)
        open_edges = sum(
            1 for n in diagram.nodes for _, target in n.children() if target is None
        )
        back_edges = sum(
            1
            for i, n in enumerate(diagram.nodes)
            for _, target in n.children()
            if target is not None and target <= i
        )

        features[0] = min(count / self.max_nodes, 1.0)
        features[1] = len(reachable) / count if count else 0.0
        features[2] = branches / count if count else 0.0
        features[3] = leaves / count if count else 0.0
        features[4] = passthroughs / count if count else 0.0
        edge_total = max(2 * branches, 1)
        features[5] = open_edges / edge_total
        features[6] = back_edges / edge_total
        features[7] = min(len(diagram.registers()) / self.max_registers, 1.0)

        ptr = self.base_features
        term_counts = np.zeros(len(TermKind), dtype=np.float32)
        for node in diagram.nodes:
            for term in node.pattern.terms:
                term_counts[int(term.kind)] += 1
        total_terms = term_counts.sum()
        if total_terms:
            term_counts /= total_terms
        features[ptr : ptr + len(TermKind)] = term_counts
        ptr += len(TermKind)

        for offset, predicate in enumerate(self.registry):
            in_branch = sum(
                1
                for n in diagram.nodes
                if isinstance(n, Branch) and n.pattern.predicate == predicate
            )
            in_leaf = sum(
                1
                for n in diagram.nodes
                if isinstance(n, Leaf) and n.pattern.predicate == predicate
            )
            features[ptr + 2 * offset] = in_branch / count if count else 0.0
            features[ptr + 2 * offset + 1] = in_leaf / count if count else 0.0

        return torch.tensor(features, dtype=torch.float32)


class DiagramFitnessModel(nn.Module):
    """Small feed-forward network that predicts diagram fitness."""

    def __init__(self, input_dim: int, hidden_layers: Optional[List[int]] = None):
        super().__init__()
        layers: List[nn.Module] = []
        widths = hidden_layers or [64, 32]
        prev = input_dim
        for width in widths:
            if width <= 0:
                continue
            layers.append(nn.Linear(prev, width))
            layers.append(nn.ReLU())
            prev = width
        layers.append(nn.Linear(prev, 1))
        self.model = nn.Sequential(*layers)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.model(x).squeeze(-1)


class DiagramSupervisedGuide:
    """Learns offspring fitness from past generations and ranks new offspring."""

    def __init__(
        self,
        registry: PredicateRegistry,
        hidden_layers: Optional[List[int]] = None,
        buffer_size: int = 512,
        min_buffer: int = 32,
        batch_size: int = 32,
        epochs: int = 3,
        max_observations: int = 32,
        device: Optional[str] = None,
    ):
        self.feature_extractor = DiagramFeatureExtractor(registry)
        self.model = DiagramFitnessModel(self.feature_extractor.feature_dim, hidden_layers)
        device_name = device or ("cuda" if torch.cuda.is_available() else "cpu")
        self.device = torch.device(device_name)
        self.model.to(self.device)
        self.optimizer = optim.Adam(self.model.parameters(), lr=1e-3)

        self.buffer = deque(maxlen=buffer_size)
        self.targets = deque(maxlen=buffer_size)
        self.min_buffer = min_buffer
        self.batch_size = batch_size
        self.epochs = epochs
        self.max_observations = max_observations

        self.target_mean: Optional[float] = None
        self.target_std: Optional[float] = None
        self.trained = False
        self.loss_history: List[float] = []

    def observe_population(self, population: Sequence["Individual"]):
        """Collect labelled data from scored individuals and train when ready."""
        if not population:
            return

        observed = 0
        for individual in population[: self.max_observations]:
            if individual.fitness is None or not np.isfinite(individual.fitness):
                continue
            self.buffer.append(self.feature_extractor.encode(individual.diagram))
            self.targets.append(float(individual.fitness))
            observed += 1

        if observed and len(self.buffer) >= self.min_buffer:
            self._train_model()

    def _train_model(self):
        """Train the model on buffered diagrams."""
        if len(self.buffer) < self.min_buffer:
            return

        features = torch.stack(list(self.buffer)).to(self.device)
        targets_tensor = torch.tensor(list(self.targets), dtype=torch.float32, device=self.device)

        self.target_mean = float(targets_tensor.mean().item())
        target_std = float(targets_tensor.std().item())
        if not np.isfinite(target_std) or target_std < 1e-6:
            target_std = 1.0
        self.target_std = target_std

        normalized_targets = (targets_tensor - self.target_mean) / target_std

        dataset_size = features.size(0)
        self.model.train()

        for _ in range(self.epochs):
            permutation = torch.randperm(dataset_size, device=self.device)
            for start in range(0, dataset_size, self.batch_size):
                batch_idx = permutation[start : start + self.batch_size]
                predictions = self.model(features[batch_idx])
                loss = F.mse_loss(predictions, normalized_targets[batch_idx])

                self.optimizer.zero_grad()
                loss.backward()
                torch.nn.utils.clip_grad_norm_(self.model.parameters(), 5.0)
                self.optimizer.step()

            self.loss_history.append(float(loss.item()))

        self.model.eval()
        self.trained = True

    def predict(self, diagrams: Sequence[Diagram]) -> np.ndarray:
        """Predicted fitness per diagram; NaN until the model has trained."""
        if not diagrams:
            return np.array([], dtype=np.float32)
        if not self.trained or self.target_mean is None or self.target_std is None:
            return np.full(len(diagrams), np.nan, dtype=np.float32)

        with torch.no_grad():
            stacked = torch.stack([self.feature_extractor.encode(d) for d in diagrams])
            preds = self.model(stacked.to(self.device))
        preds = preds.cpu().numpy()
        preds = preds * (self.target_std + 1e-6) + self.target_mean
        return preds.astype(np.float32)

    def select(
        self,
        diagrams: Sequence[Diagram],
        k: int,
        rng: Optional[random.Random] = None,
    ) -> List[int]:
        """
        Indices of the ``k`` offspring to keep, best predicted first.

        Falls back to a random choice drawn from ``rng`` (the module-level
        generator when omitted) while the model is untrained.
        """
        k = min(k, len(diagrams))
        predictions = self.predict(diagrams)
        if predictions.size == 0 or not np.isfinite(predictions).any():
            return (rng or random).sample(range(len(diagrams)), k)
        order = np.argsort(-np.nan_to_num(predictions, nan=-np.inf), kind="stable")
        return [int(i) for i in order[:k]]


__all__ = [
    "DiagramFeatureExtractor",
    "DiagramFitnessModel",
    "DiagramSupervisedGuide",
]
