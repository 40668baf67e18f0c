"""
Evaluation metrics for comparing neighbor search outputs.
"""

import numpy as np
from typing import Dict, List


def recall_at_k(
    retrieved: np.ndarray,
    ground_truth: np.ndarray
) -> float:
    """
    Compute Recall@k for a single query.

    Parameters
    ----------
    retrieved : np.ndarray of shape (k,)
        Indices of retrieved neighbors.
    ground_truth : np.ndarray of shape (k,)
        Indices of true k best neighbors.

    Returns
    -------
    recall : float
        Proportion of true neighbors that were retrieved.
    """
    retrieved_set = set(np.asarray(retrieved).tolist())
    truth_set = set(np.asarray(ground_truth).tolist())

    if len(truth_set) == 0:
        return 1.0

    return len(retrieved_set & truth_set) / len(truth_set)


def mean_recall(
    neighbors: np.ndarray,
    ground_truth: np.ndarray
) -> float:
    """Average Recall@k over the columns of two (k, n_query) matrices."""
    recalls = [
        recall_at_k(neighbors[:, j], ground_truth[:, j])
        for j in range(neighbors.shape[1])
    ]
    return float(np.mean(recalls)) if recalls else 1.0


def distance_error(
    distances: np.ndarray,
    true_distances: np.ndarray
) -> float:
    """Largest absolute difference between two distance matrices."""
    if distances.shape != true_distances.shape:
        raise ValueError(
            f"shape mismatch: {distances.shape} vs {true_distances.shape}"
        )
    if distances.size == 0:
        return 0.0
    return float(np.max(np.abs(distances - true_distances)))


def summarize(values: List[float]) -> Dict[str, float]:
    """Return summary statistics for a list of numeric values."""
    arr = np.asarray(values, dtype=np.float64)
    if arr.size == 0:
        return {"mean": 0.0, "p50": 0.0, "p95": 0.0, "min": 0.0, "max": 0.0}
    return {
        "mean": float(np.mean(arr)),
        "p50": float(np.percentile(arr, 50)),
        "p95": float(np.percentile(arr, 95)),
        "min": float(np.min(arr)),
        "max": float(np.max(arr)),
    }
