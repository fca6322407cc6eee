"""Regular N-d grid indexing and neighbourhood structure."""

from __future__ import annotations

from itertools import product
from typing import Optional, Sequence, Tuple

import numpy as np

from .errors import InvalidConfigurationError


def _as_grid_shape(grid_shape: Sequence[int]) -> Tuple[int, ...]:
    shape = tuple(int(s) for s in np.atleast_1d(np.asarray(grid_shape)).ravel())
    if not shape or any(s <= 0 for s in shape):
        raise InvalidConfigurationError(f"grid shape must be non-empty and positive, got {shape}")
    return shape


def num_cells(grid_shape: Sequence[int]) -> int:
    """Number of cells in a grid of the given shape."""
    return int(np.prod(_as_grid_shape(grid_shape)))


def cell_subscripts(grid_shape: Sequence[int], cells: Optional[np.ndarray] = None) -> np.ndarray:
    """Return `[n, D]` row-major subscripts for linear cell indices (all cells by default)."""
    shape = _as_grid_shape(grid_shape)
    if cells is None:
        cells = np.arange(int(np.prod(shape)))
    cells = np.asarray(cells, dtype=np.int64).ravel()
    if cells.size and (cells.min() < 0 or cells.max() >= int(np.prod(shape))):
        raise InvalidConfigurationError(f"cell indices out of range for grid {shape}")
    return np.stack(np.unravel_index(cells, shape), axis=1).astype(np.int64)


def cell_index(grid_shape: Sequence[int], subscripts: np.ndarray) -> np.ndarray:
    """Return linear row-major indices for `[n, D]` subscripts."""
    shape = _as_grid_shape(grid_shape)
    subs = np.atleast_2d(np.asarray(subscripts, dtype=np.int64))
    if subs.shape[1] != len(shape):
        raise InvalidConfigurationError(
            f"subscripts have {subs.shape[1]} dimensions, grid has {len(shape)}"
        )
    return np.ravel_multi_index(tuple(subs.T), shape).astype(np.int64)


def neighbor_offsets(n_dims: int, connectivity: Optional[int] = None) -> np.ndarray:
    """Return the `[connectivity, D]` offsets that define a cell's neighbourhood.

    Offsets are drawn from `{-1, 0, 1}^D`. A connectivity of `2D` keeps only
    axis-aligned neighbours, `3^D - 1` keeps every touching cell, and the
    counts in between admit offsets with up to `m` non-zero components.
    """
    if n_dims < 1:
        raise InvalidConfigurationError("grid must have at least one dimension")
    offsets = np.array([o for o in product((-1, 0, 1), repeat=n_dims) if any(o)], dtype=np.int64)
    order = np.count_nonzero(offsets, axis=1)

    if connectivity is None:
        return offsets

    max_order = 0
    total = 0
    for m in range(1, n_dims + 1):
        total += int(np.sum(order == m))
        if total == connectivity:
            max_order = m
            break
    if max_order == 0:
        raise InvalidConfigurationError(
            f"connectivity {connectivity} is not valid for a {n_dims}-d grid"
        )
    return offsets[order <= max_order]


def grid_adjacency(grid_shape: Sequence[int], connectivity: Optional[int] = None) -> np.ndarray:
    """Return the undirected edge list `[E, 2]` of a grid, `n1 < n2`, sorted."""
    shape = _as_grid_shape(grid_shape)
    offsets = neighbor_offsets(len(shape), connectivity)
    # Keep one direction per undirected pair: first non-zero component positive.
    first_nz = offsets[np.arange(len(offsets)), np.argmax(offsets != 0, axis=1)]
    offsets = offsets[first_nz > 0]

    subs = cell_subscripts(shape)
    dims = np.asarray(shape, dtype=np.int64)
    src_parts = []
    dst_parts = []
    for off in offsets:
        moved = subs + off
        valid = np.all((moved >= 0) & (moved < dims), axis=1)
        if not np.any(valid):
            continue
        src_parts.append(np.flatnonzero(valid))
        dst_parts.append(np.ravel_multi_index(tuple(moved[valid].T), shape))

    if not src_parts:
        return np.zeros((0, 2), dtype=np.int64)

    edges = np.stack([np.concatenate(src_parts), np.concatenate(dst_parts)], axis=1).astype(np.int64)
    order = np.lexsort((edges[:, 1], edges[:, 0]))
    return edges[order]
