"""MAP decoding of node beliefs into selected candidate patches."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .errors import InvalidConfigurationError, ShapeMismatchError


@dataclass
class MAPSelection:
    """Per-cell choice with its patch content and optional correspondence indices."""

    selected_index: np.ndarray  # [numCells], candidate index in [0, K)
    selection_index: np.ndarray  # [numCells], flat index into a [numCells, K] array
    patches: np.ndarray  # [numCells, V]
    primary_index: Optional[np.ndarray] = None
    reference_index: Optional[np.ndarray] = None


def decode_map(
    node_belief: np.ndarray,
    candidates: np.ndarray,
    primary_idx: Optional[np.ndarray] = None,
    reference_idx: Optional[np.ndarray] = None,
) -> MAPSelection:
    """Pick the highest-belief candidate per cell; ties go to the lowest index."""
    belief = np.asarray(node_belief)
    candidates = np.asarray(candidates)
    if belief.ndim != 2 or candidates.ndim != 3:
        raise ShapeMismatchError("node_belief must be [numCells, K] and candidates [numCells, K, V]")
    n_cells, n_states = belief.shape
    if candidates.shape[:2] != (n_cells, n_states):
        raise ShapeMismatchError(
            f"node beliefs cover {belief.shape} cells x states, candidates {candidates.shape[:2]}"
        )
    if reference_idx is not None and primary_idx is None:
        raise InvalidConfigurationError("reference_idx can only be resolved together with primary_idx")

    # np.argmax returns the first maximum.
    selected = np.argmax(belief, axis=1).astype(np.int64)
    rows = np.arange(n_cells)
    flat = np.ravel_multi_index((rows, selected), (n_cells, n_states)).astype(np.int64)
    patches = candidates[rows, selected]

    primary_sel = None
    reference_sel = None
    if primary_idx is not None:
        primary = np.asarray(primary_idx)
        if primary.shape != (n_cells, n_states):
            raise ShapeMismatchError(f"primary_idx has shape {primary.shape}, expected {(n_cells, n_states)}")
        primary_sel = primary.ravel()[flat]
        reference = (
            np.zeros_like(primary) if reference_idx is None else np.asarray(reference_idx)
        )
        if reference.shape != primary.shape:
            raise ShapeMismatchError(
                f"reference_idx has shape {reference.shape}, expected {primary.shape}"
            )
        reference_sel = reference.ravel()[flat]

    return MAPSelection(
        selected_index=selected,
        selection_index=flat,
        patches=patches,
        primary_index=primary_sel,
        reference_index=reference_sel,
    )
