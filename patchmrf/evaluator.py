"""Quality metrics for MRF patch selections."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .errors import ShapeMismatchError
from .solver import MRFResult, Potentials


@dataclass
class EvaluationResult:
    """Container for selection metrics."""

    selection_accuracy: Optional[float]
    unary_agreement: float
    total_energy: float


class SelectionEvaluator:
    """Compute core quality metrics for a per-cell candidate selection."""

    def compute_selection_accuracy(self, selected: np.ndarray, truth: np.ndarray) -> float:
        """Fraction of cells whose selected candidate is the known correct one."""
        selected = np.asarray(selected).ravel()
        truth = np.asarray(truth).ravel()
        if selected.shape != truth.shape:
            raise ShapeMismatchError(f"selection has {selected.size} cells, truth has {truth.size}")
        return float(np.mean(selected == truth)) if selected.size else 0.0

    def compute_unary_agreement(self, selected: np.ndarray, unary_cost: np.ndarray) -> float:
        """Fraction of cells where the MRF keeps the locally cheapest candidate."""
        selected = np.asarray(selected).ravel()
        best = np.argmin(np.asarray(unary_cost), axis=1)
        if best.shape != selected.shape:
            raise ShapeMismatchError(f"selection has {selected.size} cells, unary cost has {best.size}")
        return float(np.mean(selected == best)) if selected.size else 0.0

    def assignment_energy(self, selected: np.ndarray, potentials: Potentials) -> float:
        """Negative log of the unnormalized MRF probability of an assignment."""
        selected = np.asarray(selected, dtype=np.int64).ravel()
        node_pot = potentials.node_pot
        if selected.size != node_pot.shape[0]:
            raise ShapeMismatchError(f"selection has {selected.size} cells, MRF has {node_pot.shape[0]}")
        edges = potentials.edges
        with np.errstate(divide="ignore"):
            total = -float(np.sum(np.log(node_pot[np.arange(selected.size), selected])))
            if len(edges):
                pair = potentials.edge_pot[selected[edges[:, 0]], selected[edges[:, 1]], np.arange(len(edges))]
                total -= float(np.sum(np.log(pair)))
        return total

    def evaluate(
        self, result: MRFResult, unary_cost: np.ndarray, truth: Optional[np.ndarray] = None
    ) -> EvaluationResult:
        """Calculate all metrics for one solver result."""
        selected = result.beliefs.selected_index
        return EvaluationResult(
            selection_accuracy=None if truth is None else self.compute_selection_accuracy(selected, truth),
            unary_agreement=self.compute_unary_agreement(selected, unary_cost),
            total_energy=self.assignment_energy(selected, result.potentials),
        )
