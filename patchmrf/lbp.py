"""Sum-product loopy belief propagation on a pairwise MRF."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from .errors import InferenceError, InvalidConfigurationError, ShapeMismatchError

logger = logging.getLogger(__name__)

# Smallest normal float64 in log space; messages are clamped here so that
# removing a message from a sum of log messages never computes inf - inf.
_LOG_FLOOR = float(np.log(np.finfo(np.float64).tiny))


@dataclass
class LBPResult:
    """Beliefs and diagnostics returned by loopy belief propagation."""

    node_belief: np.ndarray  # [numNodes, K]
    edge_belief: np.ndarray  # [K, K, numEdges]
    log_z: float
    iterations: int
    converged: bool


def _logsumexp(values: np.ndarray, axis: int) -> np.ndarray:
    peak = np.max(values, axis=axis, keepdims=True)
    peak = np.where(np.isfinite(peak), peak, 0.0)
    with np.errstate(divide="ignore"):
        total = np.log(np.sum(np.exp(values - peak), axis=axis, keepdims=True))
    return np.squeeze(total + peak, axis=axis)


def _normalize_log(values: np.ndarray) -> np.ndarray:
    """Exponentiate and normalize each row of `values` (all trailing axes)."""
    flat = values.reshape(values.shape[0], int(np.prod(values.shape[1:])))
    with np.errstate(invalid="ignore"):
        probs = np.exp(flat - _logsumexp(flat, axis=1)[:, None])
    return probs.reshape(values.shape)


def _incoming(log_msg: np.ndarray, dst: np.ndarray, n_nodes: int) -> np.ndarray:
    """Sum of incoming log messages per node."""
    total = np.zeros((n_nodes, log_msg.shape[1]), dtype=np.float64)
    np.add.at(total, dst, log_msg)
    return total


def _expected_log_rows(p: np.ndarray, log_q: np.ndarray) -> np.ndarray:
    """Per-row sum of `p * log_q` over all trailing axes, with `0 * log 0 = 0`."""
    terms = np.zeros_like(p, dtype=np.float64)
    mask = p > 0
    terms[mask] = p[mask] * log_q[mask]
    return terms.reshape(p.shape[0], int(np.prod(p.shape[1:]))).sum(axis=1)


def _expected_log(p: np.ndarray, log_q: np.ndarray) -> float:
    """Sum of `p * log_q` with the convention `0 * log 0 = 0`."""
    return float(np.sum(_expected_log_rows(p, log_q)))


def bethe_log_partition(
    node_pot: np.ndarray,
    edge_pot: np.ndarray,
    edges: np.ndarray,
    node_belief: np.ndarray,
    edge_belief: np.ndarray,
) -> float:
    """Bethe approximation of log Z at the given beliefs.

    log Z ~ sum_e E[log psi_e] + sum_n E[log phi_n] + sum_e H(b_e) - sum_n (deg_n - 1) H(b_n)
    """
    n_nodes = node_pot.shape[0]
    degree = np.bincount(np.asarray(edges, dtype=np.int64).ravel(), minlength=n_nodes)
    with np.errstate(divide="ignore"):
        log_phi = np.log(node_pot)
        log_psi = np.log(edge_pot)
        log_bn = np.log(node_belief)
        log_be = np.log(edge_belief)

    energy = _expected_log(node_belief, log_phi) + _expected_log(edge_belief, log_psi)
    edge_entropy = -_expected_log(edge_belief, log_be)
    node_entropy = -_expected_log_rows(node_belief, log_bn)
    return float(energy + edge_entropy + np.sum((1 - degree) * node_entropy))


def loopy_belief_propagation(
    node_pot: np.ndarray,
    edge_pot: np.ndarray,
    edges: np.ndarray,
    max_iters: int = 100,
    tolerance: float = 1e-4,
    damping: float = 0.0,
) -> LBPResult:
    """Run synchronous sum-product LBP and return node/edge beliefs and Bethe log Z.

    Messages live in the log domain and are normalized every iteration. The
    loop stops once the largest change of any message falls below
    `tolerance`, or after `max_iters` rounds; beliefs of the last round are
    returned either way.
    """
    if max_iters < 1:
        raise InvalidConfigurationError(f"max_iters must be positive, got {max_iters}")
    if not 0.0 <= damping < 1.0:
        raise InvalidConfigurationError(f"damping must be in [0, 1), got {damping}")

    node_pot = np.asarray(node_pot, dtype=np.float64)
    edge_pot = np.asarray(edge_pot, dtype=np.float64)
    edges = np.asarray(edges, dtype=np.int64).reshape(-1, 2)
    n_nodes, n_states = node_pot.shape
    n_edges = edges.shape[0]
    if edge_pot.shape != (n_states, n_states, n_edges):
        raise ShapeMismatchError(
            f"edge potentials have shape {edge_pot.shape}, expected {(n_states, n_states, n_edges)}"
        )
    for name, pot in (("node", node_pot), ("edge", edge_pot)):
        if not np.all(np.isfinite(pot)) or np.any(pot < 0):
            raise InferenceError(f"{name} potentials must be finite and non-negative")

    with np.errstate(divide="ignore"):
        log_phi = np.log(node_pot)
        log_psi = np.log(np.moveaxis(edge_pot, 2, 0))  # [E, K(n1), K(n2)]

    # Directed edge d < E sends n1 -> n2, d >= E sends n2 -> n1.
    src = np.concatenate([edges[:, 0], edges[:, 1]])
    dst = np.concatenate([edges[:, 1], edges[:, 0]])
    reverse = np.concatenate([np.arange(n_edges) + n_edges, np.arange(n_edges)])
    log_psi_dir = np.concatenate([log_psi, np.transpose(log_psi, (0, 2, 1))], axis=0)

    log_msg = np.full((2 * n_edges, n_states), -np.log(n_states), dtype=np.float64)
    logger.debug("LBP on %d nodes, %d edges, %d states", n_nodes, n_edges, n_states)

    converged = False
    iterations = 0
    for iterations in range(1, max_iters + 1):
        incoming = _incoming(log_msg, dst, n_nodes)
        cavity = log_phi[src] + incoming[src] - log_msg[reverse]
        new = _logsumexp(cavity[:, :, None] + log_psi_dir, axis=1)
        norm = _logsumexp(new, axis=1)
        if not np.all(np.isfinite(norm)):
            bad = int(np.flatnonzero(~np.isfinite(norm))[0])
            raise InferenceError(
                f"message {int(src[bad])} -> {int(dst[bad])} vanished at iteration {iterations}; "
                "check for all-zero potentials"
            )
        new = np.maximum(new - norm[:, None], _LOG_FLOOR)
        if damping > 0.0:
            new = np.log((1.0 - damping) * np.exp(new) + damping * np.exp(log_msg))

        delta = float(np.max(np.abs(np.exp(new) - np.exp(log_msg)))) if new.size else 0.0
        log_msg = new
        if delta < tolerance:
            converged = True
            break

    if converged:
        logger.debug("LBP converged after %d iterations", iterations)
    else:
        logger.warning("LBP stopped at the %d iteration cap without converging", max_iters)

    incoming = _incoming(log_msg, dst, n_nodes)
    node_belief = _normalize_log(log_phi + incoming)

    e_idx = np.arange(n_edges)
    cav1 = log_phi[edges[:, 0]] + incoming[edges[:, 0]] - log_msg[e_idx + n_edges]
    cav2 = log_phi[edges[:, 1]] + incoming[edges[:, 1]] - log_msg[e_idx]
    log_edge = cav1[:, :, None] + cav2[:, None, :] + log_psi
    edge_belief = np.moveaxis(_normalize_log(log_edge), 0, 2)

    if not np.all(np.isfinite(node_belief)) or np.any(node_belief < 0):
        raise InferenceError("belief propagation produced non-finite or negative node beliefs")

    log_z = bethe_log_partition(node_pot, edge_pot, edges, node_belief, edge_belief)
    return LBPResult(
        node_belief=node_belief,
        edge_belief=edge_belief,
        log_z=log_z,
        iterations=iterations,
        converged=converged,
    )
