"""
Distance metrics usable by the search engine.

Every metric exposes ``evaluate(a, b)`` for a single pair of points and a
vectorised ``pairwise(A, B)`` that returns a ``(len(A), len(B))`` matrix.
Metrics may carry parameters, so the engine always works with an instance.
"""

import numpy as np
from typing import Optional
from scipy.spatial.distance import cdist


class BaseMetric:
    """Interface shared by all metrics."""

    #: Whether ``d(a, c) <= d(a, b) + d(b, c)`` holds; ball bounds need it.
    satisfies_triangle_inequality = True

    def evaluate(self, a: np.ndarray, b: np.ndarray) -> float:
        raise NotImplementedError

    def pairwise(self, A: np.ndarray, B: np.ndarray) -> np.ndarray:
        A = np.atleast_2d(A)
        B = np.atleast_2d(B)
        out = np.empty((A.shape[0], B.shape[0]), dtype=np.float64)
        for i, a in enumerate(A):
            for j, b in enumerate(B):
                out[i, j] = self.evaluate(a, b)
        return out

    def __call__(self, a: np.ndarray, b: np.ndarray) -> float:
        return self.evaluate(a, b)


class LMetric(BaseMetric):
    """
    Minkowski distance of order ``power``.

    Parameters
    ----------
    power : float
        Order of the norm, ``>= 1``; ``np.inf`` gives the Chebyshev distance.
    take_root : bool, default=True
        If False the ``power``-th root is skipped (e.g. squared Euclidean).
        Ignored for ``power == inf``.
    """

    def __init__(self, power: float, take_root: bool = True):
        if power < 1:
            raise ValueError(f"LMetric power must be >= 1, got {power}")
        self.power = float(power)
        self.take_root = bool(take_root or np.isinf(self.power))
        self.satisfies_triangle_inequality = bool(self.take_root or self.power == 1.0)

    def evaluate(self, a: np.ndarray, b: np.ndarray) -> float:
        diff = np.abs(np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64))
        if np.isinf(self.power):
            return float(np.max(diff)) if diff.size else 0.0
        total = float(np.sum(diff ** self.power))
        if self.take_root:
            return total ** (1.0 / self.power)
        return total

    def pairwise(self, A: np.ndarray, B: np.ndarray) -> np.ndarray:
        A = np.atleast_2d(np.asarray(A, dtype=np.float64))
        B = np.atleast_2d(np.asarray(B, dtype=np.float64))
        if np.isinf(self.power):
            return cdist(A, B, metric='chebyshev')
        if self.power == 1.0:
            return cdist(A, B, metric='cityblock')
        if self.power == 2.0:
            return cdist(A, B, metric='euclidean' if self.take_root else 'sqeuclidean')
        dists = cdist(A, B, metric='minkowski', p=self.power)
        if self.take_root:
            return dists
        return dists ** self.power

    def __repr__(self) -> str:
        return f"{type(self).__name__}(power={self.power}, take_root={self.take_root})"


class ManhattanDistance(LMetric):
    """L1 distance."""

    def __init__(self):
        super().__init__(1.0)


class EuclideanDistance(LMetric):
    """L2 distance."""

    def __init__(self):
        super().__init__(2.0, take_root=True)


class SquaredEuclideanDistance(LMetric):
    """Squared L2 distance. Not a true metric, so only box bounds apply."""

    def __init__(self):
        super().__init__(2.0, take_root=False)


class ChebyshevDistance(LMetric):
    """L-infinity distance."""

    def __init__(self):
        super().__init__(np.inf)


class MahalanobisDistance(BaseMetric):
    """
    Mahalanobis distance ``sqrt((a - b)^T M (a - b))``.

    Parameters
    ----------
    covariance : np.ndarray or None
        Covariance matrix; inverted once at construction.
    inverse_covariance : np.ndarray or None
        Use this matrix ``M`` directly. Takes precedence over ``covariance``.
    take_root : bool, default=True
        Without the root the distance is not a metric and cannot be used
        with ball bounds.
    """

    def __init__(
        self,
        covariance: Optional[np.ndarray] = None,
        inverse_covariance: Optional[np.ndarray] = None,
        take_root: bool = True
    ):
        if inverse_covariance is None:
            if covariance is None:
                raise ValueError("MahalanobisDistance needs a covariance or its inverse")
            inverse_covariance = np.linalg.inv(np.asarray(covariance, dtype=np.float64))
        self.inverse_covariance = np.asarray(inverse_covariance, dtype=np.float64)
        if self.inverse_covariance.ndim != 2 or \
                self.inverse_covariance.shape[0] != self.inverse_covariance.shape[1]:
            raise ValueError("Mahalanobis matrix must be square")
        self.take_root = take_root
        self.satisfies_triangle_inequality = take_root

    @classmethod
    def fit(cls, X: np.ndarray, take_root: bool = True) -> 'MahalanobisDistance':
        """Build the metric from the sample covariance of ``X``."""
        X = np.asarray(X, dtype=np.float64)
        return cls(covariance=np.atleast_2d(np.cov(X, rowvar=False)), take_root=take_root)

    def evaluate(self, a: np.ndarray, b: np.ndarray) -> float:
        diff = np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)
        value = float(diff @ self.inverse_covariance @ diff)
        value = max(value, 0.0)
        return float(np.sqrt(value)) if self.take_root else value

    def pairwise(self, A: np.ndarray, B: np.ndarray) -> np.ndarray:
        A = np.atleast_2d(np.asarray(A, dtype=np.float64))
        B = np.atleast_2d(np.asarray(B, dtype=np.float64))
        dists = cdist(A, B, metric='mahalanobis', VI=self.inverse_covariance)
        if self.take_root:
            return dists
        return dists ** 2


_METRICS = {
    'euclidean': EuclideanDistance,
    'sqeuclidean': SquaredEuclideanDistance,
    'manhattan': ManhattanDistance,
    'chebyshev': ChebyshevDistance,
}


def get_metric(name: str) -> BaseMetric:
    """Instantiate a parameter-free metric by name."""
    try:
        return _METRICS[name.strip().lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown metric: {name}. Available: {sorted(_METRICS)}"
        ) from None
