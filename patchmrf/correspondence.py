"""Displacements between source-grid cells and their matches in reference grids."""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import InvalidConfigurationError, ShapeMismatchError
from .grid import cell_subscripts

ReferenceShapes = Union[Sequence[int], Sequence[Sequence[int]], np.ndarray]


def reference_shapes(reference_grid_shape: ReferenceShapes) -> List[Tuple[int, ...]]:
    """Normalize one reference grid shape or a per-reference table into a list of shapes."""
    table = reference_grid_shape
    if isinstance(table, np.ndarray):
        rows = [table] if table.ndim == 1 else list(table)
    elif len(table) and np.ndim(table[0]) > 0:
        rows = list(table)
    else:
        rows = [table]
    shapes = [tuple(int(s) for s in np.asarray(r).ravel()) for r in rows]
    if not shapes or any(not s or min(s) <= 0 for s in shapes):
        raise InvalidConfigurationError(f"malformed reference grid shape: {reference_grid_shape!r}")
    return shapes


def correspondence_displacements(
    source_grid_shape: Sequence[int],
    reference_grid_shape: ReferenceShapes,
    primary_idx: np.ndarray,
    reference_idx: Optional[np.ndarray] = None,
    grid_selector: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Return `[numCells, K, D]` displacements from each cell to each candidate's reference location.

    `primary_idx[n, k]` is the linear index of candidate `k` of cell `n` in the
    reference grid chosen by `reference_idx[n, k]` (the first reference when
    omitted). `grid_selector[n]` is the linear index of cell `n` in the source
    grid (cell `n` itself when omitted).
    """
    primary = np.asarray(primary_idx, dtype=np.int64)
    if primary.ndim != 2:
        raise ShapeMismatchError(f"primary_idx must be [numCells, K], got shape {primary.shape}")
    n_cells, n_states = primary.shape

    shapes = reference_shapes(reference_grid_shape)
    if reference_idx is None:
        reference = np.zeros_like(primary)
    else:
        reference = np.asarray(reference_idx, dtype=np.int64)
    if reference.shape != primary.shape:
        raise ShapeMismatchError(f"reference_idx has shape {reference.shape}, expected {primary.shape}")
    if reference.size and (reference.min() < 0 or reference.max() >= len(shapes)):
        raise InvalidConfigurationError(
            f"reference_idx must lie in [0, {len(shapes)}) for the given reference grid shapes"
        )

    selector = np.arange(n_cells) if grid_selector is None else np.asarray(grid_selector).ravel()
    if selector.size != n_cells:
        raise ShapeMismatchError(f"grid_selector has {selector.size} entries, expected {n_cells}")
    source_subs = cell_subscripts(source_grid_shape, selector)
    n_dims = source_subs.shape[1]

    disp = np.zeros((n_cells, n_states, n_dims), dtype=np.int64)
    for ref, shape in enumerate(shapes):
        mask = reference == ref
        if not np.any(mask):
            continue
        if len(shape) != n_dims:
            raise InvalidConfigurationError(
                f"reference grid {ref} has {len(shape)} dimensions, source grid has {n_dims}"
            )
        idx = primary[mask]
        if idx.min() < 0 or idx.max() >= int(np.prod(shape)):
            raise InvalidConfigurationError(f"primary_idx out of range for reference grid {shape}")
        ref_subs = np.stack(np.unravel_index(idx, shape), axis=1)
        cell_rows = np.nonzero(mask)[0]
        disp[mask] = ref_subs - source_subs[cell_rows]
    return disp
