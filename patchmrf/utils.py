"""Utility helpers for reproducible patch-selection experiments."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np

from .overlap import OverlapSpec, patch_stride, resolve_overlap


def set_random_seed(seed: int = 42) -> np.random.Generator:
    """Create a deterministic numpy random generator."""
    return np.random.default_rng(seed)


def generate_random_image(size: int = 120, seed: int = 42) -> np.ndarray:
    """Generate a purely random RGB image."""
    rng = set_random_seed(seed)
    return rng.integers(0, 256, size=(size, size, 3), dtype=np.uint8)


def generate_gradient_image(size: int = 120) -> np.ndarray:
    """Generate a smooth RGB gradient image."""
    x = np.linspace(0, 255, size, dtype=np.float32)
    y = np.linspace(0, 255, size, dtype=np.float32)
    xv, yv = np.meshgrid(x, y)
    img = np.stack([xv, yv, 0.5 * (xv + yv)], axis=2)
    return np.clip(img, 0, 255).astype(np.uint8)


def generate_natural_like_image(size: int = 120, seed: int = 42) -> np.ndarray:
    """Generate a deterministic texture-rich image resembling a natural scene."""
    rng = set_random_seed(seed)
    base = rng.integers(0, 256, size=(size, size, 3), dtype=np.uint8)
    smooth = cv2.GaussianBlur(base, (0, 0), sigmaX=4, sigmaY=4)
    detail = cv2.Canny(smooth, 60, 120)
    detail_rgb = cv2.cvtColor(detail, cv2.COLOR_GRAY2RGB)
    return cv2.addWeighted(smooth, 0.85, detail_rgb, 0.15, 0)


@dataclass
class SyntheticCase:
    """Noisy candidate set on a 2-d patch grid with known correct choices."""

    candidates: np.ndarray  # [numCells, K, V]
    unary_cost: np.ndarray  # [numCells, K]
    grid_shape: Tuple[int, int]
    patch_shape: Tuple[int, int]
    overlap: np.ndarray
    truth_index: np.ndarray  # [numCells]


def make_synthetic_candidates(
    image: np.ndarray,
    patch_shape: Tuple[int, int] = (5, 5),
    overlap: OverlapSpec = "mrf",
    n_candidates: int = 4,
    noise_sigma: float = 0.25,
    seed: int = 42,
) -> SyntheticCase:
    """Cut a patch grid from `image` and pair each true patch with random distractors.

    Unary costs compare every candidate against a noisy observation of the
    true patch, so with enough noise the locally cheapest candidate is often
    wrong while neighbouring overlaps still identify the right one.
    """
    if n_candidates < 1:
        raise ValueError("n_candidates must be positive")
    gray = cv2.cvtColor(image, cv2.COLOR_RGB2GRAY) if image.ndim == 3 else image
    gray = gray.astype(np.float64) / 255.0
    ph, pw = (int(s) for s in patch_shape)
    height, width = gray.shape
    if height < ph or width < pw:
        raise ValueError("image is smaller than one patch")

    ov = resolve_overlap(overlap, (ph, pw))
    sh, sw = (int(s) for s in patch_stride((ph, pw), ov))
    grid_shape = ((height - ph) // sh + 1, (width - pw) // sw + 1)

    rng = set_random_seed(seed)
    observed = gray + rng.normal(0.0, noise_sigma, size=gray.shape)
    n_cells = grid_shape[0] * grid_shape[1]
    candidates = np.zeros((n_cells, n_candidates, ph * pw), dtype=np.float64)
    unary = np.zeros((n_cells, n_candidates), dtype=np.float64)
    truth = np.zeros(n_cells, dtype=np.int64)

    for cell in range(n_cells):
        r, c = divmod(cell, grid_shape[1])
        y0, x0 = r * sh, c * sw
        options = [gray[y0 : y0 + ph, x0 : x0 + pw]]
        for _ in range(n_candidates - 1):
            y = int(rng.integers(0, height - ph + 1))
            x = int(rng.integers(0, width - pw + 1))
            options.append(gray[y : y + ph, x : x + pw])
        order = rng.permutation(n_candidates)
        stacked = np.stack([options[i].ravel() for i in order])
        target = observed[y0 : y0 + ph, x0 : x0 + pw].ravel()

        candidates[cell] = stacked
        unary[cell] = np.mean((stacked - target[None, :]) ** 2, axis=1)
        truth[cell] = int(np.flatnonzero(order == 0)[0])

    return SyntheticCase(
        candidates=candidates,
        unary_cost=unary,
        grid_shape=grid_shape,
        patch_shape=(ph, pw),
        overlap=ov,
        truth_index=truth,
    )
