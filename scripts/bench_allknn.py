#!/usr/bin/env python3
"""
Benchmark harness for the all-k-neighbor search engine.

Sweeps search modes and leaf sizes on synthetic data, checks every run
against the brute-force oracle, and reports wall time, prunes and distance
evaluation counts.
"""

import argparse
import json
import time
from pathlib import Path
import sys

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from tqdm import tqdm
from typing import Dict, List

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from neighbor_search import NeighborSearch, brute_force_neighbors, get_metric
from neighbor_search import NearestNeighborSort, FurthestNeighborSort
from neighbor_search.utils.metrics import distance_error, mean_recall

MODES = ("naive", "single", "dual")
SKLEARN_METRICS = {
    "euclidean": "euclidean",
    "manhattan": "manhattan",
    "chebyshev": "chebyshev",
}


def run_one(
    reference: np.ndarray,
    query,
    k: int,
    mode: str,
    leaf_size: int,
    metric_name: str,
    furthest: bool,
    truth_distances: np.ndarray,
    truth_neighbors: np.ndarray,
) -> Dict:
    """Build an engine, search once, and compare against ground truth."""
    sort_policy = FurthestNeighborSort() if furthest else NearestNeighborSort()
    t0 = time.perf_counter()
    searcher = NeighborSearch(
        reference,
        query,
        naive=mode == "naive",
        single_mode=mode == "single",
        leaf_size=leaf_size,
        metric=get_metric(metric_name),
        sort_policy=sort_policy,
    )
    t1 = time.perf_counter()
    neighbors, distances = searcher.search(k)
    t2 = time.perf_counter()

    return {
        "mode": mode,
        "leaf_size": leaf_size,
        "build_s": t1 - t0,
        "time_s": t2 - t1,
        "prunes": searcher.number_of_prunes,
        "base_cases": searcher.number_of_base_cases,
        "evaluations": searcher.number_of_distance_evaluations,
        "recall": mean_recall(neighbors, truth_neighbors),
        "max_distance_error": distance_error(distances, truth_distances),
    }


def run_sklearn_baseline(
    reference: np.ndarray,
    query,
    k: int,
    leaf_size: int,
    metric_name: str,
    truth_distances: np.ndarray,
    truth_neighbors: np.ndarray,
) -> Dict:
    """sklearn's KDTree on the same problem, for timing comparison."""
    from sklearn.neighbors import KDTree

    t0 = time.perf_counter()
    tree = KDTree(reference, leaf_size=leaf_size, metric=metric_name)
    t1 = time.perf_counter()
    if query is None:
        # Ask for one extra neighbor and drop each point's own index
        distances, indices = tree.query(reference, k=k + 1)
        keep = indices != np.arange(reference.shape[0])[:, None]
        indices = np.array([row[mask][:k] for row, mask in zip(indices, keep)])
        distances = np.array([row[mask][:k] for row, mask in zip(distances, keep)])
    else:
        distances, indices = tree.query(query, k=k)
    t2 = time.perf_counter()

    return {
        "mode": "sklearn_kdtree",
        "leaf_size": leaf_size,
        "build_s": t1 - t0,
        "time_s": t2 - t1,
        "prunes": np.nan,
        "base_cases": np.nan,
        "evaluations": np.nan,
        "recall": mean_recall(indices.T, truth_neighbors),
        "max_distance_error": distance_error(distances.T, truth_distances),
    }


def parse_leaf_sizes(value: str) -> List[int]:
    try:
        sizes = [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid leaf size list: {value}") from None
    if not sizes or min(sizes) < 1:
        raise argparse.ArgumentTypeError("Leaf sizes must be positive integers")
    return sizes


def main() -> int:
    parser = argparse.ArgumentParser(description="Benchmark naive/single/dual-tree search")
    parser.add_argument("--n", type=int, default=2000, help="Number of reference points")
    parser.add_argument("--n-queries", type=int, default=0,
                        help="Number of query points (0 = query the reference set)")
    parser.add_argument("--d", type=int, default=3, help="Dimensionality")
    parser.add_argument("--k", type=int, default=5, help="Number of neighbors")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--leaf-sizes", type=parse_leaf_sizes, default=[1, 5, 20, 50],
                        help="Comma separated leaf sizes")
    parser.add_argument("--metric", type=str, default="euclidean", help="Metric name")
    parser.add_argument("--furthest", action="store_true", help="Furthest-neighbor search")
    parser.add_argument("--n-jobs", type=int, default=1,
                        help="Parallel runs (each with its own engine)")
    parser.add_argument("--out", type=str, default=None, help="Optional JSON output path")
    parser.add_argument("--csv", type=str, default=None, help="Optional CSV output path")
    parser.add_argument("--plot", type=str, default=None, help="Optional plot output path")

    args = parser.parse_args()

    if args.n < 2 or args.d < 1 or args.k < 1 or args.n_queries < 0:
        raise ValueError("--n must be >= 2; --d and --k must be positive")

    rng = np.random.default_rng(args.seed)
    reference = rng.standard_normal((args.n, args.d))
    query = rng.standard_normal((args.n_queries, args.d)) if args.n_queries else None

    sort_policy = FurthestNeighborSort() if args.furthest else NearestNeighborSort()
    truth_neighbors, truth_distances = brute_force_neighbors(
        reference, query, args.k, metric=get_metric(args.metric), sort_policy=sort_policy
    )

    jobs = [
        (mode, leaf_size)
        for mode in MODES
        for leaf_size in (args.leaf_sizes if mode != "naive" else args.leaf_sizes[:1])
    ]
    run = delayed(run_one)
    if args.n_jobs == 1:
        rows = [
            run_one(reference, query, args.k, mode, leaf_size, args.metric,
                    args.furthest, truth_distances, truth_neighbors)
            for mode, leaf_size in tqdm(jobs, desc="runs")
        ]
    else:
        rows = Parallel(n_jobs=args.n_jobs)(
            run(reference, query, args.k, mode, leaf_size, args.metric,
                args.furthest, truth_distances, truth_neighbors)
            for mode, leaf_size in jobs
        )

    exact = all(row["max_distance_error"] <= 1e-9 for row in rows)

    if not args.furthest and args.metric in SKLEARN_METRICS:
        rows.append(run_sklearn_baseline(
            reference, query, args.k, args.leaf_sizes[-1], SKLEARN_METRICS[args.metric],
            truth_distances, truth_neighbors,
        ))

    results = pd.DataFrame(rows)

    print("all-k-neighbor benchmark")
    print(
        f"n={args.n} d={args.d} k={args.k} queries={args.n_queries or args.n} "
        f"metric={args.metric} furthest={args.furthest}"
    )
    print(results.to_string(index=False, float_format=lambda v: f"{v:.6g}"))
    print(f"all runs exact: {exact}")

    if args.csv:
        results.to_csv(args.csv, index=False)
        print(f"Wrote table to {args.csv}")

    if args.plot:
        from neighbor_search.utils.visualization import plot_leaf_size_sweep
        plot_leaf_size_sweep(results[results["mode"] != "naive"], save_path=args.plot)
        print(f"Wrote plot to {args.plot}")

    if args.out:
        out_path = Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "config": {
                "n": args.n,
                "n_queries": args.n_queries,
                "d": args.d,
                "k": args.k,
                "seed": args.seed,
                "leaf_sizes": args.leaf_sizes,
                "metric": args.metric,
                "furthest": args.furthest,
            },
            "runs": results.to_dict(orient="records"),
            "exact": exact,
        }
        with out_path.open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        print(f"Wrote results to {out_path}")

    return 0 if exact else 1


if __name__ == "__main__":
    raise SystemExit(main())
