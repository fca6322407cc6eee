"""Pairwise distances between the candidate sets of two neighbouring cells."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

import numpy as np

from .errors import InvalidConfigurationError
from .overlap import patch_stride


@dataclass(frozen=True)
class CellBundle:
    """Everything a distance function may know about one grid cell."""

    patches: np.ndarray
    """Candidate patches, `[K, V]` flattened in row-major order."""

    location: np.ndarray
    """Grid subscript of the cell, `[D]`."""

    displacement: Optional[np.ndarray] = None
    """Per-candidate displacement into the reference grid, `[K, D]` (correspondence mode)."""

    reference: Optional[np.ndarray] = None
    """Per-candidate reference index, `[K]` (correspondence mode)."""


PairwiseDistance = Callable[[CellBundle, CellBundle, Tuple[int, ...], np.ndarray], np.ndarray]


def overlap_regions(
    offset: Sequence[int], patch_shape: Sequence[int]
) -> Optional[Tuple[Tuple[slice, ...], Tuple[slice, ...]]]:
    """Return slices of the shared region of two patches whose origins differ by `offset`.

    The first tuple indexes patch A, the second patch B (whose origin is at
    `origin_A + offset`). Returns None when the patches do not overlap.
    """
    region_a = []
    region_b = []
    for d, p in zip(offset, patch_shape):
        d = int(d)
        p = int(p)
        a0, a1 = max(0, d), min(p, p + d)
        if a1 <= a0:
            return None
        region_a.append(slice(a0, a1))
        region_b.append(slice(a0 - d, a1 - d))
    return tuple(region_a), tuple(region_b)


def _pairwise_ssd(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Sum of squared differences between every row of `a` and every row of `b`."""
    sq_a = np.sum(a * a, axis=1)
    sq_b = np.sum(b * b, axis=1)
    dst = sq_a[:, None] + sq_b[None, :] - 2.0 * (a @ b.T)
    return np.maximum(dst, 0.0)


def l2_overlap_distance(
    cell_a: CellBundle,
    cell_b: CellBundle,
    patch_shape: Tuple[int, ...],
    overlap: np.ndarray,
    normalize: bool = False,
) -> np.ndarray:
    """Return the `[K_a, K_b]` SSD over the geometric overlap of two neighbouring cells."""
    shape = tuple(int(s) for s in patch_shape)
    k_a = cell_a.patches.shape[0]
    k_b = cell_b.patches.shape[0]

    step = np.asarray(cell_b.location) - np.asarray(cell_a.location)
    offset = step * patch_stride(shape, overlap)
    regions = overlap_regions(offset, shape)
    if regions is None:
        return np.zeros((k_a, k_b), dtype=np.float64)

    region_a, region_b = regions
    a = cell_a.patches.astype(np.float64).reshape((k_a,) + shape)[(slice(None),) + region_a]
    b = cell_b.patches.astype(np.float64).reshape((k_b,) + shape)[(slice(None),) + region_b]
    a = a.reshape(k_a, -1)
    b = b.reshape(k_b, -1)

    dst = _pairwise_ssd(a, b)
    if normalize:
        return dst / float(a.shape[1])
    return dst


def correspondence_distance(
    cell_a: CellBundle,
    cell_b: CellBundle,
    patch_shape: Tuple[int, ...],
    overlap: np.ndarray,
    displacement_weight: float = 1.0,
) -> np.ndarray:
    """Penalize neighbouring candidates whose reference displacements disagree."""
    if cell_a.displacement is None or cell_b.displacement is None:
        raise InvalidConfigurationError(
            "correspondence_distance needs displacements; pass primary_idx and reference_grid_shape"
        )
    disp_a = np.asarray(cell_a.displacement, dtype=np.float64)
    disp_b = np.asarray(cell_b.displacement, dtype=np.float64)
    return displacement_weight * _pairwise_ssd(disp_a, disp_b)
