"""Patch geometry helpers: overlap policies, strides and patch-shape guessing."""

from __future__ import annotations

from typing import Sequence, Tuple, Union

import numpy as np

from .errors import InvalidConfigurationError

OverlapSpec = Union[str, int, Sequence[int], np.ndarray]

OVERLAP_KINDS = ("sliding", "discrete", "mrf", "half")


def _named_overlap(kind: str, patch: np.ndarray) -> np.ndarray:
    if kind == "sliding":
        return patch - 1
    if kind == "discrete":
        return np.zeros_like(patch)
    if kind == "mrf":
        return np.ceil((patch - 1) / 2.0).astype(np.int64)
    if kind == "half":
        return patch // 2
    raise InvalidConfigurationError(
        f"unknown overlap kind {kind!r}; expected one of {', '.join(OVERLAP_KINDS)}"
    )


def resolve_overlap(overlap: OverlapSpec, patch_shape: Sequence[int]) -> np.ndarray:
    """Return explicit per-dimension overlap (in voxels) for a named or numeric policy."""
    patch = np.asarray(patch_shape, dtype=np.int64).ravel()
    if patch.size == 0 or np.any(patch <= 0):
        raise InvalidConfigurationError(f"patch shape must be positive, got {tuple(patch)}")

    if isinstance(overlap, str):
        resolved = _named_overlap(overlap.lower(), patch)
    else:
        values = np.asarray(overlap)
        if values.size == 0 or not np.issubdtype(values.dtype, np.number):
            raise InvalidConfigurationError(f"malformed overlap descriptor: {overlap!r}")
        if np.any(values != np.round(values)):
            raise InvalidConfigurationError("overlap must be integral")
        values = values.astype(np.int64).ravel()
        if values.size == 1:
            resolved = np.full_like(patch, int(values[0]))
        elif values.size == patch.size:
            resolved = values
        else:
            raise InvalidConfigurationError(
                f"overlap has {values.size} entries, patch shape has {patch.size} dimensions"
            )

    if np.any(resolved < 0) or np.any(resolved >= patch):
        raise InvalidConfigurationError(
            f"overlap {tuple(resolved)} must satisfy 0 <= overlap < patch size {tuple(patch)}"
        )
    return resolved.astype(np.int64)


def patch_stride(patch_shape: Sequence[int], overlap: np.ndarray) -> np.ndarray:
    """Voxel step between the origins of two grid-adjacent patches."""
    return np.asarray(patch_shape, dtype=np.int64) - np.asarray(overlap, dtype=np.int64)


def guess_patch_shape(n_voxels: int, n_dims: int) -> Tuple[int, ...]:
    """Infer an isotropic patch shape from its voxel count."""
    if n_dims < 1 or n_voxels < 1:
        raise InvalidConfigurationError("cannot guess a patch shape from empty patches")
    side = int(round(n_voxels ** (1.0 / n_dims)))
    for cand in (side - 1, side, side + 1):
        if cand >= 1 and cand**n_dims == n_voxels:
            return (cand,) * n_dims
    raise InvalidConfigurationError(
        f"{n_voxels} voxels do not form an isotropic {n_dims}-d patch; pass patch_shape"
    )
