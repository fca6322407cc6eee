"""Conversion of unary and pairwise costs into MRF potentials."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import List, Sequence, Tuple

import numpy as np

from .distance import CellBundle, PairwiseDistance
from .errors import InvalidConfigurationError, ShapeMismatchError


def node_potentials(unary_cost: np.ndarray, lambda_node: float) -> np.ndarray:
    """Return `exp(-lambda_node * unary_cost)`, shape `[numCells, K]`."""
    if not np.isfinite(lambda_node) or lambda_node < 0:
        raise InvalidConfigurationError(f"lambda_node must be finite and non-negative, got {lambda_node}")
    cost = np.asarray(unary_cost, dtype=np.float64)
    if not np.all(np.isfinite(cost)):
        raise InvalidConfigurationError("unary costs must be finite")
    return np.exp(-lambda_node * cost)


def _edge_slice(
    edge: Tuple[int, int],
    bundles: Sequence[CellBundle],
    distance: PairwiseDistance,
    patch_shape: Tuple[int, ...],
    overlap: np.ndarray,
    lambda_edge: float,
    n_states: int,
) -> np.ndarray:
    n1, n2 = int(edge[0]), int(edge[1])
    cost = np.asarray(distance(bundles[n1], bundles[n2], patch_shape, overlap), dtype=np.float64)
    if cost.shape != (n_states, n_states):
        raise ShapeMismatchError(
            f"distance for edge ({n1}, {n2}) has shape {cost.shape}, expected {(n_states, n_states)}"
        )
    if lambda_edge == 0:
        return np.ones((n_states, n_states), dtype=np.float64)
    if np.any(np.isnan(cost)):
        raise InvalidConfigurationError(f"distance for edge ({n1}, {n2}) contains NaN")
    return np.exp(-lambda_edge * cost)


def edge_potentials(
    bundles: Sequence[CellBundle],
    edges: np.ndarray,
    distance: PairwiseDistance,
    patch_shape: Tuple[int, ...],
    overlap: np.ndarray,
    lambda_edge: float,
    n_workers: int = 1,
) -> np.ndarray:
    """Return edge potentials `[K, K, numEdges]`, one distance call per edge in edge order.

    Each edge is computed independently, so with `n_workers > 1` the calls
    are spread over a thread pool; the distance function must then be safe
    to call concurrently.
    """
    if not np.isfinite(lambda_edge) or lambda_edge < 0:
        raise InvalidConfigurationError(f"lambda_edge must be finite and non-negative, got {lambda_edge}")
    if n_workers < 1:
        raise InvalidConfigurationError(f"n_workers must be positive, got {n_workers}")
    n_states = bundles[0].patches.shape[0] if bundles else 0
    edge_list = [(int(a), int(b)) for a, b in np.asarray(edges).reshape(-1, 2)]
    if not edge_list:
        return np.zeros((n_states, n_states, 0), dtype=np.float64)

    def compute(edge: Tuple[int, int]) -> np.ndarray:
        return _edge_slice(edge, bundles, distance, patch_shape, overlap, lambda_edge, n_states)

    if n_workers == 1:
        slices: List[np.ndarray] = [compute(edge) for edge in edge_list]
    else:
        with ThreadPoolExecutor(max_workers=n_workers) as pool:
            slices = list(pool.map(compute, edge_list))
    return np.stack(slices, axis=2)


def build_potentials(
    unary_cost: np.ndarray,
    edges: np.ndarray,
    bundles: Sequence[CellBundle],
    distance: PairwiseDistance,
    patch_shape: Tuple[int, ...],
    overlap: np.ndarray,
    lambda_node: float = 1.0,
    lambda_edge: float = 1.0,
    n_workers: int = 1,
) -> Tuple[np.ndarray, np.ndarray]:
    """Return `(node_pot, edge_pot)` for one MRF."""
    node_pot = node_potentials(unary_cost, lambda_node)
    edge_pot = edge_potentials(
        bundles, edges, distance, patch_shape, overlap, lambda_edge, n_workers=n_workers
    )
    return node_pot, edge_pot
