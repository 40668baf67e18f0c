"""
Bounding regions for tree nodes.

A bound answers two questions for a node: how close and how far can any
point inside it be from a given point (or from any point inside another
bound of the same type). Both answers must be valid for the node's metric,
otherwise pruning stops being exact.
"""

import numpy as np
from typing import Union

from ..errors import ConfigurationError
from ..metrics import BaseMetric, LMetric


class HRectBound:
    """
    Axis-aligned hyper-rectangle.

    Valid for any Minkowski metric: per-dimension gaps are combined with the
    metric's power (and root, if the metric takes one).
    """

    __slots__ = ['lo', 'hi', 'metric']

    def __init__(self, lo: np.ndarray, hi: np.ndarray, metric: LMetric):
        self.lo = np.asarray(lo, dtype=np.float64)
        self.hi = np.asarray(hi, dtype=np.float64)
        self.metric = metric

    @classmethod
    def from_points(cls, points: np.ndarray, metric: LMetric) -> 'HRectBound':
        return cls(points.min(axis=0), points.max(axis=0), metric)

    def _combine(self, gaps: np.ndarray) -> float:
        power = self.metric.power
        if np.isinf(power):
            return float(np.max(gaps)) if gaps.size else 0.0
        total = float(np.sum(gaps ** power))
        if self.metric.take_root:
            return total ** (1.0 / power)
        return total

    def min_distance(self, other: Union['HRectBound', np.ndarray]) -> float:
        if isinstance(other, HRectBound):
            gaps = np.maximum(np.maximum(other.lo - self.hi, self.lo - other.hi), 0.0)
        else:
            point = np.asarray(other, dtype=np.float64)
            gaps = np.maximum(np.maximum(self.lo - point, point - self.hi), 0.0)
        return self._combine(gaps)

    def max_distance(self, other: Union['HRectBound', np.ndarray]) -> float:
        if isinstance(other, HRectBound):
            gaps = np.maximum(np.abs(other.hi - self.lo), np.abs(self.hi - other.lo))
        else:
            point = np.asarray(other, dtype=np.float64)
            gaps = np.maximum(np.abs(point - self.lo), np.abs(self.hi - point))
        return self._combine(gaps)

    def contains(self, point: np.ndarray) -> bool:
        point = np.asarray(point, dtype=np.float64)
        return bool(np.all(point >= self.lo) and np.all(point <= self.hi))

    def __repr__(self) -> str:
        return f"HRectBound(lo={self.lo}, hi={self.hi})"


class BallBound:
    """
    Ball around the centroid of a node's points.

    Relies only on the triangle inequality, so it works with any true
    metric (e.g. Mahalanobis) but not with squared distances.
    """

    __slots__ = ['center', 'radius', 'metric']

    def __init__(self, center: np.ndarray, radius: float, metric: BaseMetric):
        self.center = np.asarray(center, dtype=np.float64)
        self.radius = float(radius)
        self.metric = metric

    @classmethod
    def from_points(cls, points: np.ndarray, metric: BaseMetric) -> 'BallBound':
        center = points.mean(axis=0)
        radius = float(np.max(metric.pairwise(center[None, :], points)))
        return cls(center, radius, metric)

    def min_distance(self, other: Union['BallBound', np.ndarray]) -> float:
        if isinstance(other, BallBound):
            d = self.metric.evaluate(self.center, other.center)
            return max(0.0, d - self.radius - other.radius)
        d = self.metric.evaluate(other, self.center)
        return max(0.0, d - self.radius)

    def max_distance(self, other: Union['BallBound', np.ndarray]) -> float:
        if isinstance(other, BallBound):
            d = self.metric.evaluate(self.center, other.center)
            return d + self.radius + other.radius
        return self.metric.evaluate(other, self.center) + self.radius

    def contains(self, point: np.ndarray) -> bool:
        return self.metric.evaluate(point, self.center) <= self.radius

    def __repr__(self) -> str:
        return f"BallBound(center={self.center}, radius={self.radius})"


def bound_for_metric(metric: BaseMetric):
    """Pick the bound type able to produce valid distance bounds for ``metric``."""
    if isinstance(metric, LMetric):
        return HRectBound
    if getattr(metric, 'satisfies_triangle_inequality', False):
        return BallBound
    raise ConfigurationError(
        f"No tree bound supports {type(metric).__name__}: it is neither a "
        "Minkowski metric nor satisfies the triangle inequality"
    )
