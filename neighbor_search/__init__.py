"""
neighbor_search: exact all-k-nearest / furthest neighbor search

Naive, single-tree and dual-tree strategies over binary space partitioning
trees, with pluggable metrics and ranking policies.
"""

from .engine import NeighborSearch, AllKNN, AllKFN, TreeHandle
from .candidate_list import CandidateList
from .config import SearchConfig
from .errors import NeighborSearchError, ConfigurationError, PreconditionViolation
from .ground_truth import brute_force_neighbors
from .metrics import (
    LMetric,
    ManhattanDistance,
    EuclideanDistance,
    SquaredEuclideanDistance,
    ChebyshevDistance,
    MahalanobisDistance,
    get_metric
)
from .permutation import PermutationMap
from .sort_policies import NearestNeighborSort, FurthestNeighborSort
from .tree import BinarySpaceTree, HRectBound, BallBound

__version__ = '0.1.0'

__all__ = [
    'NeighborSearch',
    'AllKNN',
    'AllKFN',
    'TreeHandle',
    'CandidateList',
    'SearchConfig',
    'NeighborSearchError',
    'ConfigurationError',
    'PreconditionViolation',
    'brute_force_neighbors',
    'LMetric',
    'ManhattanDistance',
    'EuclideanDistance',
    'SquaredEuclideanDistance',
    'ChebyshevDistance',
    'MahalanobisDistance',
    'get_metric',
    'PermutationMap',
    'NearestNeighborSort',
    'FurthestNeighborSort',
    'BinarySpaceTree',
    'HRectBound',
    'BallBound',
]
