"""Tests for MAP decoding and correspondence displacements."""

from __future__ import annotations

import numpy as np
import pytest

from patchmrf.correspondence import correspondence_displacements, reference_shapes
from patchmrf.decoder import decode_map
from patchmrf.errors import InvalidConfigurationError, ShapeMismatchError


def _candidates(n_cells: int, k: int, voxels: int) -> np.ndarray:
    return np.arange(n_cells * k * voxels, dtype=np.float64).reshape(n_cells, k, voxels)


def test_decode_picks_highest_belief() -> None:
    """Selected indices, flat indices and patches agree."""
    belief = np.array([[0.1, 0.7, 0.2], [0.5, 0.2, 0.3]])
    candidates = _candidates(2, 3, 2)
    sel = decode_map(belief, candidates)
    np.testing.assert_array_equal(sel.selected_index, [1, 0])
    np.testing.assert_array_equal(sel.selection_index, [1, 3])
    np.testing.assert_array_equal(sel.patches, [candidates[0, 1], candidates[1, 0]])
    assert sel.primary_index is None
    assert sel.reference_index is None


def test_decode_breaks_ties_towards_lowest_index() -> None:
    """Equal beliefs select the first candidate."""
    belief = np.array([[0.25, 0.25, 0.5, 0.0], [0.4, 0.1, 0.4, 0.1]])
    sel = decode_map(belief, _candidates(2, 4, 1))
    np.testing.assert_array_equal(sel.selected_index, [2, 0])


def test_decode_resolves_correspondence_indices() -> None:
    """Primary and reference indices follow the selection."""
    belief = np.array([[0.1, 0.9], [0.8, 0.2]])
    primary = np.array([[10, 11], [20, 21]])
    sel = decode_map(belief, _candidates(2, 2, 1), primary_idx=primary)
    np.testing.assert_array_equal(sel.primary_index, [11, 20])
    np.testing.assert_array_equal(sel.reference_index, [0, 0])

    reference = np.array([[0, 1], [1, 0]])
    sel = decode_map(belief, _candidates(2, 2, 1), primary_idx=primary, reference_idx=reference)
    np.testing.assert_array_equal(sel.reference_index, [1, 1])


def test_decode_shape_mismatch() -> None:
    """Belief rows must match candidate cells."""
    with pytest.raises(ShapeMismatchError):
        decode_map(np.full((3, 2), 0.5), _candidates(2, 2, 1))
    with pytest.raises(InvalidConfigurationError, match="primary_idx"):
        decode_map(np.full((2, 2), 0.5), _candidates(2, 2, 1), reference_idx=np.zeros((2, 2)))


def test_displacements_single_reference() -> None:
    """Displacement is reference subscript minus source subscript."""
    primary = np.array([[0, 5], [15, 6]])
    disp = correspondence_displacements((1, 2), (4, 4), primary)
    # cell 0 at (0, 0), cell 1 at (0, 1)
    np.testing.assert_array_equal(disp[0], [[0, 0], [1, 1]])
    np.testing.assert_array_equal(disp[1], [[3, 2], [1, 1]])


def test_displacements_with_reference_table_and_selector() -> None:
    """Per-reference grid shapes and a grid selector are honoured."""
    primary = np.array([[2, 3]])
    reference = np.array([[0, 1]])
    disp = correspondence_displacements(
        (3, 3), [(2, 2), (1, 4)], primary, reference_idx=reference, grid_selector=[4]
    )
    # source cell 4 is (1, 1); ref0 idx 2 -> (1, 0); ref1 idx 3 -> (0, 3)
    np.testing.assert_array_equal(disp[0], [[0, -1], [-1, 2]])


def test_reference_shapes_forms() -> None:
    """Single shapes and tables normalize to lists of tuples."""
    assert reference_shapes((4, 5)) == [(4, 5)]
    assert reference_shapes([(2, 2), (3, 3)]) == [(2, 2), (3, 3)]
    assert reference_shapes(np.array([[2, 2], [3, 3]])) == [(2, 2), (3, 3)]


def test_displacement_errors() -> None:
    """Out-of-range indices and mismatched sizes raise."""
    with pytest.raises(InvalidConfigurationError, match="out of range"):
        correspondence_displacements((1, 1), (2, 2), np.array([[4]]))
    with pytest.raises(InvalidConfigurationError, match="reference_idx"):
        correspondence_displacements((1, 1), (2, 2), np.array([[0]]), reference_idx=np.array([[1]]))
    with pytest.raises(ShapeMismatchError, match="grid_selector"):
        correspondence_displacements((2, 2), (2, 2), np.array([[0]]), grid_selector=[0, 1])
