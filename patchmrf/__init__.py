"""Globally consistent patch selection on N-d grids with loopy belief propagation."""

import logging

from .correspondence import correspondence_displacements
from .decoder import MAPSelection, decode_map
from .distance import CellBundle, correspondence_distance, l2_overlap_distance
from .errors import InferenceError, InvalidConfigurationError, PatchMRFError, ShapeMismatchError
from .evaluator import EvaluationResult, SelectionEvaluator
from .grid import cell_index, cell_subscripts, grid_adjacency, neighbor_offsets
from .lbp import LBPResult, loopy_belief_propagation
from .overlap import guess_patch_shape, resolve_overlap
from .potentials import build_potentials, edge_potentials, node_potentials
from .solver import Beliefs, MRFConfig, MRFResult, PatchMRFSolver, Potentials, solve

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "PatchMRFError",
    "ShapeMismatchError",
    "InvalidConfigurationError",
    "InferenceError",
    "cell_index",
    "cell_subscripts",
    "neighbor_offsets",
    "grid_adjacency",
    "resolve_overlap",
    "guess_patch_shape",
    "CellBundle",
    "l2_overlap_distance",
    "correspondence_distance",
    "node_potentials",
    "edge_potentials",
    "build_potentials",
    "LBPResult",
    "loopy_belief_propagation",
    "MAPSelection",
    "decode_map",
    "correspondence_displacements",
    "MRFConfig",
    "Beliefs",
    "Potentials",
    "MRFResult",
    "PatchMRFSolver",
    "solve",
    "EvaluationResult",
    "SelectionEvaluator",
]
