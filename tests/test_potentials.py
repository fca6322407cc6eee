"""Tests for node and edge potential construction."""

from __future__ import annotations

from typing import List, Tuple

import numpy as np
import pytest

from patchmrf.distance import CellBundle, l2_overlap_distance
from patchmrf.errors import InvalidConfigurationError, ShapeMismatchError
from patchmrf.grid import cell_subscripts, grid_adjacency
from patchmrf.potentials import build_potentials, edge_potentials, node_potentials


def _bundles(grid_shape, k: int, voxels: int, seed: int = 0) -> List[CellBundle]:
    rng = np.random.default_rng(seed)
    subs = cell_subscripts(grid_shape)
    return [CellBundle(patches=rng.random((k, voxels)), location=subs[n]) for n in range(len(subs))]


def test_node_potentials_exponentiate() -> None:
    """Node potentials are exp(-lambda * cost)."""
    cost = np.array([[0.0, 1.0], [2.0, 0.5]])
    np.testing.assert_allclose(node_potentials(cost, 2.0), np.exp(-2.0 * cost))
    with pytest.raises(InvalidConfigurationError, match="lambda_node"):
        node_potentials(cost, -1.0)
    with pytest.raises(InvalidConfigurationError, match="finite"):
        node_potentials(np.array([[np.nan, 0.0]]), 1.0)


def test_edge_potentials_call_distance_once_per_edge_in_order() -> None:
    """The callback sees each edge once, in edge-list order, with the cell bundles."""
    grid = (2, 2)
    bundles = _bundles(grid, k=2, voxels=1)
    edges = grid_adjacency(grid)
    calls: List[Tuple[Tuple[int, ...], Tuple[int, ...]]] = []

    def distance(a, b, patch_shape, overlap):
        calls.append((tuple(a.location), tuple(b.location)))
        return np.full((2, 2), float(len(calls)))

    pot = edge_potentials(bundles, edges, distance, (1, 1), np.array([0, 0]), lambda_edge=1.0)
    assert pot.shape == (2, 2, len(edges))
    assert calls == [(tuple(cell_subscripts(grid, [a])[0]), tuple(cell_subscripts(grid, [b])[0])) for a, b in edges]
    for e in range(len(edges)):
        np.testing.assert_allclose(pot[:, :, e], np.exp(-(e + 1.0)))


def test_zero_lambda_edge_gives_uniform_potentials() -> None:
    """lambda_edge = 0 makes every edge potential exactly one."""
    grid = (3, 3)
    bundles = _bundles(grid, k=3, voxels=9)
    edges = grid_adjacency(grid)
    pot = edge_potentials(bundles, edges, l2_overlap_distance, (3, 3), np.array([1, 1]), lambda_edge=0.0)
    np.testing.assert_array_equal(pot, np.ones((3, 3, len(edges))))


def test_thread_pool_matches_serial() -> None:
    """Parallel edge evaluation fills the same slots as the serial loop."""
    grid = (3, 4)
    bundles = _bundles(grid, k=3, voxels=9, seed=4)
    edges = grid_adjacency(grid)
    args = (bundles, edges, l2_overlap_distance, (3, 3), np.array([2, 2]))
    serial = edge_potentials(*args, lambda_edge=0.3)
    pooled = edge_potentials(*args, lambda_edge=0.3, n_workers=4)
    np.testing.assert_array_equal(serial, pooled)


def test_bad_distance_output_raises() -> None:
    """Wrongly shaped or NaN distance matrices are rejected."""
    grid = (1, 2)
    bundles = _bundles(grid, k=2, voxels=1)
    edges = grid_adjacency(grid)
    overlap = np.array([0, 0])
    with pytest.raises(ShapeMismatchError, match="expected"):
        edge_potentials(bundles, edges, lambda a, b, s, o: np.zeros((2, 3)), (1, 1), overlap, 1.0)
    with pytest.raises(InvalidConfigurationError, match="NaN"):
        edge_potentials(bundles, edges, lambda a, b, s, o: np.full((2, 2), np.nan), (1, 1), overlap, 1.0)
    with pytest.raises(InvalidConfigurationError, match="lambda_edge"):
        edge_potentials(bundles, edges, l2_overlap_distance, (1, 1), overlap, -0.5)


def test_build_potentials_pairs_node_and_edge_tables() -> None:
    """build_potentials returns node and edge tables with matching shapes."""
    grid = (2, 3)
    bundles = _bundles(grid, k=3, voxels=4)
    edges = grid_adjacency(grid, 4)
    cost = np.random.default_rng(1).random((6, 3))
    node_pot, edge_pot = build_potentials(
        cost, edges, bundles, l2_overlap_distance, (2, 2), np.array([1, 1]), lambda_node=0.5, lambda_edge=0.1
    )
    np.testing.assert_allclose(node_pot, np.exp(-0.5 * cost))
    assert edge_pot.shape == (3, 3, len(edges))
    assert np.all(edge_pot > 0) and np.all(edge_pot <= 1.0)


def test_zero_lambda_edge_ignores_infinite_distances() -> None:
    """With lambda_edge = 0 an infinite pairwise cost still yields unit potentials."""
    grid = (1, 2)
    bundles = _bundles(grid, k=2, voxels=1)
    edges = grid_adjacency(grid)

    def infinite(a, b, patch_shape, overlap):
        return np.where(np.eye(2, dtype=bool), 0.0, np.inf)

    pot = edge_potentials(bundles, edges, infinite, (1, 1), np.array([0, 0]), lambda_edge=0.0)
    np.testing.assert_array_equal(pot, np.ones((2, 2, 1)))
    weighted = edge_potentials(bundles, edges, infinite, (1, 1), np.array([0, 0]), lambda_edge=1.0)
    np.testing.assert_array_equal(weighted[:, :, 0], np.eye(2))
    with pytest.raises(InvalidConfigurationError, match="lambda_edge"):
        edge_potentials(bundles, edges, infinite, (1, 1), np.array([0, 0]), lambda_edge=np.nan)
