"""
Ranking policies: what "better" means for a neighbor search.

The engine never compares distances directly. Every pruning and insertion
decision goes through one of these policies, so nearest and furthest
neighbor search share the same recursion.
"""

import numpy as np


class NearestNeighborSort:
    """Smaller distances are better."""

    #: Loses every comparison; "nothing found yet".
    worst_distance = np.inf
    best_distance = 0.0

    @staticmethod
    def is_better(value, ref):
        """Strict order; works element-wise on arrays."""
        return value < ref

    @staticmethod
    def combine_worst(a: float, b: float) -> float:
        """Bound covering both children: the worse (larger) of the two."""
        return a if a > b else b

    @staticmethod
    def best_node_to_node_distance(query_node, reference_node) -> float:
        return query_node.min_distance(reference_node)

    @staticmethod
    def best_point_to_node_distance(point: np.ndarray, reference_node) -> float:
        return reference_node.min_distance(point)

    @staticmethod
    def argsort(distances: np.ndarray, axis: int = -1) -> np.ndarray:
        """Stable best-first ordering."""
        return np.argsort(distances, axis=axis, kind='stable')


class FurthestNeighborSort:
    """Larger distances are better."""

    worst_distance = 0.0
    best_distance = np.inf

    @staticmethod
    def is_better(value, ref):
        return value > ref

    @staticmethod
    def combine_worst(a: float, b: float) -> float:
        return a if a < b else b

    @staticmethod
    def best_node_to_node_distance(query_node, reference_node) -> float:
        return query_node.max_distance(reference_node)

    @staticmethod
    def best_point_to_node_distance(point: np.ndarray, reference_node) -> float:
        return reference_node.max_distance(point)

    @staticmethod
    def argsort(distances: np.ndarray, axis: int = -1) -> np.ndarray:
        # Stable descending order: negate rather than reverse, so ties keep
        # their original order.
        return np.argsort(-np.asarray(distances), axis=axis, kind='stable')
