"""
Spatial trees and node bounds.
"""

from .bounds import HRectBound, BallBound, bound_for_metric
from .binary_space_tree import BinarySpaceTree, TreeNode, DEFAULT_MAX_DEPTH

__all__ = [
    'HRectBound',
    'BallBound',
    'bound_for_metric',
    'BinarySpaceTree',
    'TreeNode',
    'DEFAULT_MAX_DEPTH',
]
