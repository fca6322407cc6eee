"""Benchmark MRF patch selection quality across grid sizes."""

from __future__ import annotations

import argparse
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List

import sys
import numpy as np

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from patchmrf.evaluator import SelectionEvaluator
from patchmrf.solver import MRFConfig, PatchMRFSolver
from patchmrf.utils import generate_natural_like_image, make_synthetic_candidates


@dataclass
class BenchmarkRow:
    grid: str
    seeds: int
    map_acc_mean: float
    map_acc_min: float
    unary_acc_mean: float
    energy_mean: float
    iters_mean: float
    runtime_mean_sec: float


@dataclass
class CaseResult:
    grid: str
    map_accuracy: float
    unary_accuracy: float
    energy: float
    iterations: int
    runtime_sec: float


def run_case(image_size: int, seed: int, config: MRFConfig, noise: float, n_candidates: int) -> CaseResult:
    image = generate_natural_like_image(size=image_size, seed=seed)
    case = make_synthetic_candidates(
        image, patch_shape=(5, 5), overlap="mrf", n_candidates=n_candidates, noise_sigma=noise, seed=seed
    )
    solver = PatchMRFSolver(config)

    t0 = time.perf_counter()
    result = solver.solve(case.candidates, case.grid_shape, case.unary_cost, case.patch_shape, case.overlap)
    runtime_sec = time.perf_counter() - t0

    evaluator = SelectionEvaluator()
    metrics = evaluator.evaluate(result, case.unary_cost, truth=case.truth_index)
    greedy = np.argmin(case.unary_cost, axis=1)
    return CaseResult(
        grid=f"{case.grid_shape[0]}x{case.grid_shape[1]}",
        map_accuracy=float(metrics.selection_accuracy),
        unary_accuracy=evaluator.compute_selection_accuracy(greedy, case.truth_index),
        energy=metrics.total_energy,
        iterations=result.beliefs.iterations,
        runtime_sec=runtime_sec,
    )


def run_case_multi_seed(
    image_size: int, seeds: List[int], config: MRFConfig, noise: float, n_candidates: int
) -> BenchmarkRow:
    rows = [run_case(image_size, seed, config, noise, n_candidates) for seed in seeds]
    acc = np.array([r.map_accuracy for r in rows], dtype=np.float64)
    return BenchmarkRow(
        grid=rows[0].grid,
        seeds=len(seeds),
        map_acc_mean=float(np.mean(acc)),
        map_acc_min=float(np.min(acc)),
        unary_acc_mean=float(np.mean([r.unary_accuracy for r in rows])),
        energy_mean=float(np.mean([r.energy for r in rows])),
        iters_mean=float(np.mean([r.iterations for r in rows])),
        runtime_mean_sec=float(np.mean([r.runtime_sec for r in rows])),
    )


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run patch MRF benchmark on multiple image sizes.")
    parser.add_argument(
        "--sizes",
        type=int,
        nargs="+",
        default=[32, 62, 92],
        help="Square image sizes in pixels (default: 32 62 92)",
    )
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument(
        "--num-seeds",
        type=int,
        default=1,
        help="Number of seeds to evaluate per size (default: 1)",
    )
    parser.add_argument("--candidates", type=int, default=4, help="Candidates per cell (default: 4)")
    parser.add_argument("--noise", type=float, default=0.25, help="Observation noise sigma (default: 0.25)")
    parser.add_argument("--lambda-node", type=float, default=40.0, help="Unary weight (default: 40)")
    parser.add_argument("--lambda-edge", type=float, default=2.0, help="Pairwise weight (default: 2)")
    parser.add_argument("--max-iters", type=int, default=100, help="LBP iteration cap (default: 100)")
    parser.add_argument("--workers", type=int, default=1, help="Threads for edge potentials (default: 1)")
    return parser.parse_args()


def print_table(rows: List[BenchmarkRow]) -> None:
    header = (
        f"{'Grid':<8}{'Seeds':>7}{'MapMean':>10}{'MapMin':>10}"
        f"{'Unary':>10}{'Energy':>12}{'Iters':>8}{'RtMean(s)':>11}"
    )
    print(header)
    print("-" * len(header))
    for row in rows:
        print(
            f"{row.grid:<8}"
            f"{row.seeds:>7d}"
            f"{row.map_acc_mean:>10.4f}"
            f"{row.map_acc_min:>10.4f}"
            f"{row.unary_acc_mean:>10.4f}"
            f"{row.energy_mean:>12.2f}"
            f"{row.iters_mean:>8.1f}"
            f"{row.runtime_mean_sec:>11.4f}"
        )


def main() -> None:
    args = parse_args()
    seeds = [args.seed + i for i in range(args.num_seeds)]
    config = MRFConfig(
        lambda_node=args.lambda_node,
        lambda_edge=args.lambda_edge,
        max_lbp_iters=args.max_iters,
        n_workers=args.workers,
    )
    rows = [
        run_case_multi_seed(size, seeds=seeds, config=config, noise=args.noise, n_candidates=args.candidates)
        for size in args.sizes
    ]
    print_table(rows)


if __name__ == "__main__":
    main()
