"""
Command line front end: all-k-nearest (or furthest) neighbors of CSV data.

Example::

    python -m neighbor_search --reference ref.csv -k 5 \\
        --neighbors-out neighbors.csv --distances-out distances.csv
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import numpy as np

from .config import SearchConfig
from .engine import NeighborSearch
from .errors import NeighborSearchError
from .utils.log import get_logger

LOGGER = get_logger("cli")


def _load_points(path: str) -> np.ndarray:
    return np.loadtxt(path, delimiter=",", ndmin=2, dtype=np.float64)


def _save(path: str, values: np.ndarray, fmt: str) -> None:
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    np.savetxt(out_path, values, delimiter=",", fmt=fmt)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="neighbor_search",
        description="Exact all-k-nearest (or furthest) neighbor search",
    )
    parser.add_argument("--reference", "-r", required=True,
                        help="CSV file of reference points, one per row")
    parser.add_argument("--query", "-q", default=None,
                        help="CSV file of query points; defaults to the reference set")
    parser.add_argument("-k", type=int, required=True, help="Number of neighbors")
    parser.add_argument("--config", default=None,
                        help="YAML file with search options")
    parser.add_argument("--leaf-size", type=int, default=None,
                        help="Leaf size for tree construction")
    parser.add_argument("--naive", action="store_true", default=None,
                        help="Brute-force search (overrides --single-mode)")
    parser.add_argument("--single-mode", action="store_true", default=None,
                        help="Single-tree instead of dual-tree search")
    parser.add_argument("--furthest", action="store_true", default=None,
                        help="Find furthest instead of nearest neighbors")
    parser.add_argument("--metric", default=None,
                        help="euclidean, sqeuclidean, manhattan or chebyshev")
    parser.add_argument("--neighbors-out", "-n", default=None,
                        help="CSV output for neighbor indices (one row per query)")
    parser.add_argument("--distances-out", "-d", default=None,
                        help="CSV output for neighbor distances (one row per query)")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Debug logging")
    return parser


def resolve_config(args: argparse.Namespace) -> SearchConfig:
    """Environment, then YAML file, then explicit flags."""
    config = SearchConfig.from_yaml(args.config) if args.config else SearchConfig.from_env()
    overrides = {
        "leaf_size": args.leaf_size,
        "naive": args.naive,
        "single_mode": args.single_mode,
        "furthest": args.furthest,
        "metric": args.metric,
    }
    overrides = {key: value for key, value in overrides.items() if value is not None}
    return config.replace(**overrides) if overrides else config


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    try:
        config = resolve_config(args)
        reference = _load_points(args.reference)
        query = _load_points(args.query) if args.query else None
    except (NeighborSearchError, OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    try:
        with NeighborSearch.from_config(reference, query, config=config) as searcher:
            neighbors, distances = searcher.search(args.k)
            LOGGER.info(
                "mode=%s prunes=%d evaluations=%d",
                searcher.mode, searcher.number_of_prunes,
                searcher.number_of_distance_evaluations,
            )
            if searcher.profiler.enabled:
                LOGGER.info("%s", searcher.profiler.format_summary())
    except NeighborSearchError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    if args.neighbors_out:
        _save(args.neighbors_out, neighbors.T, fmt="%d")
    if args.distances_out:
        _save(args.distances_out, distances.T, fmt="%.17g")
    if not args.neighbors_out and not args.distances_out:
        for column in range(neighbors.shape[1]):
            pairs = " ".join(
                f"{i}:{d:.6g}" for i, d in zip(neighbors[:, column], distances[:, column])
            )
            print(f"{column}: {pairs}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
