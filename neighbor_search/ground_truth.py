"""
Exact brute-force oracle.

Independent of the engine: computes the full distance matrix with the
metric's vectorised ``pairwise`` and sorts each row. Used to check the
engine's output and as the reference in benchmarks. Ties are ordered by
reference index, which is also the order the naive engine mode produces.
"""

import numpy as np
from typing import Optional, Tuple

from .errors import ConfigurationError
from .metrics import BaseMetric, EuclideanDistance
from .sort_policies import NearestNeighborSort


def brute_force_neighbors(
    reference: np.ndarray,
    query: Optional[np.ndarray] = None,
    k: int = 1,
    metric: Optional[BaseMetric] = None,
    sort_policy=None
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Find the k best reference points for every query point.

    Parameters
    ----------
    reference : np.ndarray of shape (n_reference, n_dims)
    query : np.ndarray of shape (n_query, n_dims) or None
        If None, the reference set is queried against itself and each
        point is excluded from its own results.
    k : int
    metric : BaseMetric or None
        Defaults to Euclidean distance.
    sort_policy : ranking policy or None
        Defaults to NearestNeighborSort.

    Returns
    -------
    neighbors : np.ndarray of shape (k, n_query)
    distances : np.ndarray of shape (k, n_query)
    """
    metric = metric if metric is not None else EuclideanDistance()
    sort_policy = sort_policy if sort_policy is not None else NearestNeighborSort()
    reference = np.asarray(reference, dtype=np.float64)
    same_set = query is None
    query = reference if same_set else np.asarray(query, dtype=np.float64)

    if query.shape[1] != reference.shape[1]:
        raise ConfigurationError("query and reference dimensionality differ")
    n_eligible = reference.shape[0] - (1 if same_set else 0)
    if not 1 <= k <= n_eligible:
        raise ConfigurationError(f"k must be in [1, {n_eligible}], got {k}")

    distances = metric.pairwise(query, reference)
    order = sort_policy.argsort(distances, axis=1)

    if same_set:
        n = reference.shape[0]
        keep = order != np.arange(n)[:, None]
        order = order[keep].reshape(n, n - 1)

    order = order[:, :k]
    neighbor_distances = np.take_along_axis(distances, order, axis=1)
    return order.T.copy(), neighbor_distances.T.copy()
