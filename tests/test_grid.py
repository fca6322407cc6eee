"""Tests for grid indexing and adjacency construction."""

from __future__ import annotations

import numpy as np
import pytest

from patchmrf.errors import InvalidConfigurationError
from patchmrf.grid import cell_index, cell_subscripts, grid_adjacency, neighbor_offsets, num_cells


def test_subscripts_are_row_major() -> None:
    """Linear index 4 in a 2x3 grid is row 1, column 1."""
    np.testing.assert_array_equal(cell_subscripts((2, 3), [4]), [[1, 1]])
    np.testing.assert_array_equal(cell_index((2, 3), [[1, 2], [0, 1]]), [5, 1])
    assert num_cells((2, 3, 4)) == 24


def test_full_connectivity_2x2_links_every_pair() -> None:
    """Default 8-connectivity on a 2x2 grid connects all six cell pairs."""
    edges = grid_adjacency((2, 2))
    expected = [[0, 1], [0, 2], [0, 3], [1, 2], [1, 3], [2, 3]]
    np.testing.assert_array_equal(edges, expected)


def test_axis_connectivity_2x2() -> None:
    """4-connectivity drops the diagonals."""
    edges = grid_adjacency((2, 2), connectivity=4)
    np.testing.assert_array_equal(edges, [[0, 1], [0, 2], [1, 3], [2, 3]])


def test_edges_are_unique_and_ordered() -> None:
    """3-d adjacency lists each undirected pair once with n1 < n2."""
    edges = grid_adjacency((3, 3, 3))
    assert np.all(edges[:, 0] < edges[:, 1])
    assert len({tuple(e) for e in edges.tolist()}) == len(edges)
    face_edges = grid_adjacency((3, 3, 3), connectivity=6)
    assert len(face_edges) == 3 * 2 * 3 * 3


def test_single_cell_has_no_edges() -> None:
    """A one-cell grid yields an empty edge list."""
    edges = grid_adjacency((1, 1))
    assert edges.shape == (0, 2)


def test_neighbor_offset_counts() -> None:
    """Valid connectivities are the cumulative shell sizes."""
    assert len(neighbor_offsets(2)) == 8
    assert len(neighbor_offsets(3, 18)) == 18
    with pytest.raises(InvalidConfigurationError, match="connectivity"):
        neighbor_offsets(2, 5)


def test_invalid_grid_shape_raises() -> None:
    """Zero-sized dimensions are rejected."""
    with pytest.raises(InvalidConfigurationError, match="grid shape"):
        grid_adjacency((0, 3))
