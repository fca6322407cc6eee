"""Patch selection on a grid via MRF potentials and loopy belief propagation."""

from __future__ import annotations

import logging
import math
import numbers
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .correspondence import ReferenceShapes, correspondence_displacements
from .decoder import decode_map
from .distance import CellBundle, PairwiseDistance, l2_overlap_distance
from .errors import InvalidConfigurationError, ShapeMismatchError
from .grid import cell_subscripts, grid_adjacency, num_cells
from .lbp import loopy_belief_propagation
from .overlap import OverlapSpec, guess_patch_shape, resolve_overlap
from .potentials import build_potentials

logger = logging.getLogger(__name__)


@dataclass
class MRFConfig:
    """Configuration for the patch MRF solver."""

    lambda_node: float = 1.0
    lambda_edge: float = 1.0
    max_lbp_iters: int = 100
    tolerance: float = 1e-4
    damping: float = 0.0
    connectivity: Optional[int] = None
    n_workers: int = 1
    distance: PairwiseDistance = l2_overlap_distance

    def validate(self) -> None:
        """Raise InvalidConfigurationError for unusable settings."""
        lambdas = (self.lambda_node, self.lambda_edge)
        if not all(math.isfinite(lam) and lam >= 0 for lam in lambdas):
            raise InvalidConfigurationError(
                f"lambdas must be finite and non-negative, got node={self.lambda_node}, edge={self.lambda_edge}"
            )
        if not isinstance(self.max_lbp_iters, numbers.Integral) or self.max_lbp_iters < 1:
            raise InvalidConfigurationError(f"max_lbp_iters must be a positive integer, got {self.max_lbp_iters}")
        if not math.isfinite(self.tolerance) or self.tolerance <= 0:
            raise InvalidConfigurationError(f"tolerance must be finite and positive, got {self.tolerance}")
        if not 0.0 <= self.damping < 1.0:
            raise InvalidConfigurationError(f"damping must be in [0, 1), got {self.damping}")
        if self.n_workers < 1:
            raise InvalidConfigurationError(f"n_workers must be positive, got {self.n_workers}")
        if not callable(self.distance):
            raise InvalidConfigurationError("distance must be callable")


@dataclass
class Beliefs:
    """Posterior beliefs and LBP diagnostics."""

    node_belief: np.ndarray  # [numCells, K]
    edge_belief: np.ndarray  # [K, K, numEdges]
    log_z: float
    selected_index: np.ndarray  # [numCells]
    iterations: int
    converged: bool


@dataclass
class Potentials:
    """The MRF that inference ran on."""

    node_pot: np.ndarray  # [numCells, K]
    edge_pot: np.ndarray  # [K, K, numEdges]
    edges: np.ndarray  # [numEdges, 2]


@dataclass
class MRFResult:
    """Selected patches plus everything needed to inspect the selection."""

    patches: np.ndarray  # [numCells, V]
    beliefs: Beliefs
    potentials: Potentials
    selection_index: np.ndarray  # flat index into [numCells, K]
    selected_primary_idx: Optional[np.ndarray] = None
    selected_reference_idx: Optional[np.ndarray] = None


class PatchMRFSolver:
    """Choose one candidate patch per grid cell with globally consistent neighbours."""

    def __init__(self, config: Optional[MRFConfig] = None) -> None:
        self.config = config if config is not None else MRFConfig()
        self.config.validate()

    def solve(
        self,
        candidates,
        grid_shape: Sequence[int],
        unary_cost: np.ndarray,
        patch_shape: Optional[Sequence[int]] = None,
        overlap: Optional[OverlapSpec] = None,
        *,
        primary_idx: Optional[np.ndarray] = None,
        reference_idx: Optional[np.ndarray] = None,
        reference_grid_shape: Optional[ReferenceShapes] = None,
        grid_selector: Optional[np.ndarray] = None,
        source_grid_shape: Optional[Sequence[int]] = None,
    ) -> MRFResult:
        """Run potential construction, LBP and MAP decoding for one candidate set.

        `candidates` is `[numCells, K, V]`, `[numCells, K, *patch_shape]` or a
        nested `numCells x K` sequence of patch arrays; `unary_cost` is
        `[numCells, K]`. Correspondence mode is enabled when both
        `primary_idx` and `reference_grid_shape` are given.
        """
        grid = tuple(int(s) for s in grid_shape)
        n_cells = num_cells(grid)
        patches, shape = self._prepare_candidates(candidates, len(grid), patch_shape)
        cost = np.asarray(unary_cost, dtype=np.float64)
        self._check_shapes(patches, cost, n_cells)

        if overlap is None:
            logger.info("no overlap given, using 'sliding'")
            overlap = "sliding"
        overlap_vox = resolve_overlap(overlap, shape)
        use_corresp = self._correspondence_mode(primary_idx, reference_idx, reference_grid_shape)

        source_shape = grid if source_grid_shape is None else tuple(int(s) for s in source_grid_shape)
        if grid_selector is None:
            selector = np.arange(n_cells, dtype=np.int64)
        else:
            selector = np.asarray(grid_selector, dtype=np.int64).ravel()
        if selector.size != n_cells:
            raise ShapeMismatchError(f"grid_selector has {selector.size} entries, expected {n_cells}")
        locations = cell_subscripts(source_shape, selector)
        if locations.shape[1] != len(grid):
            raise ShapeMismatchError(
                f"source grid has {locations.shape[1]} dimensions, grid has {len(grid)}"
            )

        displacement = None
        reference = None
        if use_corresp:
            logger.warning("correspondence mode is best-effort and only lightly validated")
            displacement = correspondence_displacements(
                source_shape, reference_grid_shape, primary_idx, reference_idx, selector
            )
            reference = (
                np.zeros(cost.shape, dtype=np.int64)
                if reference_idx is None
                else np.asarray(reference_idx, dtype=np.int64)
            )
        bundles = self._build_bundles(patches, locations, displacement, reference)

        edges = grid_adjacency(grid, self.config.connectivity)
        logger.debug("grid %s: %d cells, %d candidates, %d edges", grid, n_cells, cost.shape[1], len(edges))
        node_pot, edge_pot = build_potentials(
            cost,
            edges,
            bundles,
            self.config.distance,
            shape,
            overlap_vox,
            lambda_node=self.config.lambda_node,
            lambda_edge=self.config.lambda_edge,
            n_workers=self.config.n_workers,
        )

        lbp = loopy_belief_propagation(
            node_pot,
            edge_pot,
            edges,
            max_iters=self.config.max_lbp_iters,
            tolerance=self.config.tolerance,
            damping=self.config.damping,
        )
        selection = decode_map(lbp.node_belief, patches, primary_idx, reference_idx)

        return MRFResult(
            patches=selection.patches,
            beliefs=Beliefs(
                node_belief=lbp.node_belief,
                edge_belief=lbp.edge_belief,
                log_z=lbp.log_z,
                selected_index=selection.selected_index,
                iterations=lbp.iterations,
                converged=lbp.converged,
            ),
            potentials=Potentials(node_pot=node_pot, edge_pot=edge_pot, edges=edges),
            selection_index=selection.selection_index,
            selected_primary_idx=selection.primary_index,
            selected_reference_idx=selection.reference_index,
        )

    @staticmethod
    def _prepare_candidates(
        candidates, n_dims: int, patch_shape: Optional[Sequence[int]]
    ) -> Tuple[np.ndarray, Tuple[int, ...]]:
        """Bring candidates into `[numCells, K, V]` form and settle the patch shape."""
        if isinstance(candidates, np.ndarray):
            arr = candidates
        else:
            cells = [[np.asarray(p) for p in cell] for cell in candidates]
            if not cells or not cells[0]:
                raise ShapeMismatchError("candidate set is empty")
            if patch_shape is None:
                patch_shape = cells[0][0].shape
            try:
                arr = np.stack([np.stack([p.ravel() for p in cell]) for cell in cells])
            except ValueError as exc:
                raise ShapeMismatchError(
                    "every cell needs the same number of equally sized candidates"
                ) from exc

        if arr.ndim < 3:
            raise ShapeMismatchError(f"candidates must be [numCells, K, V], got shape {arr.shape}")
        if arr.ndim > 3:
            if patch_shape is None:
                patch_shape = arr.shape[2:]
            arr = arr.reshape(arr.shape[0], arr.shape[1], int(np.prod(arr.shape[2:])))
        if patch_shape is None:
            patch_shape = guess_patch_shape(arr.shape[2], n_dims)

        shape = tuple(int(s) for s in patch_shape)
        if len(shape) != n_dims:
            raise ShapeMismatchError(f"patch shape {shape} does not match a {n_dims}-d grid")
        if int(np.prod(shape)) != arr.shape[2]:
            raise ShapeMismatchError(f"patch shape {shape} does not hold {arr.shape[2]} voxels")
        return arr, shape

    @staticmethod
    def _check_shapes(patches: np.ndarray, cost: np.ndarray, n_cells: int) -> None:
        if patches.shape[0] != n_cells:
            raise ShapeMismatchError(f"expected {n_cells} cells of candidates, got {patches.shape[0]}")
        if cost.shape != patches.shape[:2]:
            raise ShapeMismatchError(
                f"unary cost has shape {cost.shape}, candidates imply {patches.shape[:2]}"
            )
        if not np.all(np.isfinite(cost)):
            raise InvalidConfigurationError("unary costs contain NaN or inf")

    @staticmethod
    def _correspondence_mode(
        primary_idx: Optional[np.ndarray],
        reference_idx: Optional[np.ndarray],
        reference_grid_shape: Optional[ReferenceShapes],
    ) -> bool:
        if primary_idx is None:
            if reference_idx is not None or reference_grid_shape is not None:
                raise InvalidConfigurationError(
                    "reference_idx and reference_grid_shape require primary_idx"
                )
            return False
        return reference_grid_shape is not None

    @staticmethod
    def _build_bundles(
        patches: np.ndarray,
        locations: np.ndarray,
        displacement: Optional[np.ndarray],
        reference: Optional[np.ndarray],
    ) -> List[CellBundle]:
        bundles: List[CellBundle] = []
        for n in range(patches.shape[0]):
            bundles.append(
                CellBundle(
                    patches=patches[n],
                    location=locations[n],
                    displacement=None if displacement is None else displacement[n],
                    reference=None if reference is None else reference[n],
                )
            )
        return bundles


def solve(
    candidates,
    grid_shape: Sequence[int],
    unary_cost: np.ndarray,
    patch_shape: Optional[Sequence[int]] = None,
    overlap: Optional[OverlapSpec] = None,
    config: Optional[MRFConfig] = None,
    *,
    primary_idx: Optional[np.ndarray] = None,
    reference_idx: Optional[np.ndarray] = None,
    reference_grid_shape: Optional[ReferenceShapes] = None,
    grid_selector: Optional[np.ndarray] = None,
    source_grid_shape: Optional[Sequence[int]] = None,
) -> MRFResult:
    """Functional form of `PatchMRFSolver(config).solve(...)`."""
    return PatchMRFSolver(config).solve(
        candidates,
        grid_shape,
        unary_cost,
        patch_shape,
        overlap,
        primary_idx=primary_idx,
        reference_idx=reference_idx,
        reference_grid_shape=reference_grid_shape,
        grid_selector=grid_selector,
        source_grid_shape=source_grid_shape,
    )
