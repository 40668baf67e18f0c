"""
Binary space partitioning tree used by the single- and dual-tree searches.

The tree keeps its own reordered copy of the data so that every node owns a
contiguous slice ``[begin, begin + count)``. The mapping back to the
caller's order is kept in a :class:`PermutationMap`.

Implementation notes:
- Splits along the dimension of maximum spread, at the midpoint of that
  dimension's extent (both halves are always non-empty)
- A node becomes a leaf at ``leaf_size`` points, when its points cannot be
  split (zero spread), or at ``max_depth``
- Bound type follows the metric (boxes for Minkowski metrics, balls for
  other true metrics)
"""

import logging

import numpy as np
from typing import Iterator, Optional, Union

from ..errors import ConfigurationError
from ..metrics import BaseMetric, EuclideanDistance
from ..permutation import PermutationMap
from ..utils.log import get_logger
from .bounds import bound_for_metric

LOGGER = get_logger("tree")

#: Recursion in both tree construction and search is bounded by this depth.
DEFAULT_MAX_DEPTH = 128


def as_point_set(X, name: str = 'points') -> np.ndarray:
    """Validate and convert a point set to a 2-D float64 array."""
    X = np.asarray(X, dtype=np.float64)
    if X.ndim != 2:
        raise ConfigurationError(
            f"{name} must be a 2-D array of shape (n_points, n_dims), got shape {X.shape}"
        )
    if X.shape[0] == 0:
        raise ConfigurationError(f"{name} is empty")
    return X


class TreeNode:
    """Node in the BinarySpaceTree."""

    __slots__ = ['begin', 'count', 'bound', 'left', 'right', 'depth']

    def __init__(self, begin: int, count: int, bound, depth: int):
        self.begin = begin
        self.count = count
        self.bound = bound
        self.depth = depth
        self.left: Optional[TreeNode] = None
        self.right: Optional[TreeNode] = None

    def is_leaf(self) -> bool:
        return self.left is None

    @property
    def children(self):
        if self.left is None:
            return ()
        return (self.left, self.right)

    @property
    def end(self) -> int:
        return self.begin + self.count

    def indices(self) -> range:
        """Internal (reordered) indices of the points under this node."""
        return range(self.begin, self.begin + self.count)

    def min_distance(self, other: Union['TreeNode', np.ndarray]) -> float:
        if isinstance(other, TreeNode):
            return self.bound.min_distance(other.bound)
        return self.bound.min_distance(other)

    def max_distance(self, other: Union['TreeNode', np.ndarray]) -> float:
        if isinstance(other, TreeNode):
            return self.bound.max_distance(other.bound)
        return self.bound.max_distance(other)

    def __repr__(self) -> str:
        kind = "leaf" if self.is_leaf() else "node"
        return f"TreeNode({kind}, begin={self.begin}, count={self.count}, depth={self.depth})"


class BinarySpaceTree:
    """
    Immutable binary space partitioning tree.

    Parameters
    ----------
    data : np.ndarray
        Dataset of shape (n_points, n_dims). Copied, never modified.
    leaf_size : int, default=20
        Maximum number of points in a leaf node.
    metric : BaseMetric or None
        Metric the node bounds must be valid for. Defaults to Euclidean.
    max_depth : int, default=128
        Nodes at this depth are not split further.
    """

    def __init__(
        self,
        data: np.ndarray,
        leaf_size: int = 20,
        metric: Optional[BaseMetric] = None,
        max_depth: int = DEFAULT_MAX_DEPTH
    ):
        data = as_point_set(data, 'data')
        if leaf_size < 1:
            raise ConfigurationError(f"leaf_size must be >= 1, got {leaf_size}")
        if max_depth < 0:
            raise ConfigurationError(f"max_depth must be >= 0, got {max_depth}")

        self.metric = metric if metric is not None else EuclideanDistance()
        self.leaf_size = int(leaf_size)
        self.max_depth = int(max_depth)
        self._bound_type = bound_for_metric(self.metric)

        self._source = data
        self._order = np.arange(data.shape[0], dtype=np.int64)
        self.root = self._build_tree(0, data.shape[0], depth=0)

        self.data = data[self._order]
        self.data.setflags(write=False)
        self.permutation = PermutationMap(self._order)
        del self._source, self._order

        if LOGGER.isEnabledFor(logging.DEBUG):
            LOGGER.debug(
                "Built tree: n=%d d=%d leaf_size=%d nodes=%d depth=%d bound=%s",
                self.n_points, self.n_dims, self.leaf_size, self.n_nodes(),
                self.depth(), self._bound_type.__name__,
            )

    @classmethod
    def single_node(cls, data: np.ndarray, metric: Optional[BaseMetric] = None) -> 'BinarySpaceTree':
        """Tree whose root is a leaf holding every point (no reordering)."""
        data = as_point_set(data, 'data')
        return cls(data, leaf_size=data.shape[0], metric=metric)

    def _build_tree(self, begin: int, count: int, depth: int) -> TreeNode:
        """Recursively build the tree over ``self._order[begin:begin + count]``."""
        indices = self._order[begin:begin + count]
        points = self._source[indices]
        node = TreeNode(begin, count, self._bound_type.from_points(points, self.metric), depth)

        if count <= self.leaf_size or depth >= self.max_depth:
            return node

        # Split: find dimension with maximum spread
        lo = points.min(axis=0)
        hi = points.max(axis=0)
        spread = hi - lo
        split_dim = int(np.argmax(spread))
        if spread[split_dim] <= 0.0:
            # All points identical, nothing to split
            return node

        split_val = 0.5 * (lo[split_dim] + hi[split_dim])
        left_mask = points[:, split_dim] <= split_val
        n_left = int(np.count_nonzero(left_mask))
        if n_left == 0 or n_left == count:
            return node

        self._order[begin:begin + count] = np.concatenate(
            (indices[left_mask], indices[~left_mask])
        )

        node.left = self._build_tree(begin, n_left, depth + 1)
        node.right = self._build_tree(begin + n_left, count - n_left, depth + 1)
        return node

    @property
    def n_points(self) -> int:
        return self.data.shape[0]

    @property
    def n_dims(self) -> int:
        return self.data.shape[1]

    def nodes(self) -> Iterator[TreeNode]:
        """Pre-order iteration over all nodes."""
        stack = [self.root]
        while stack:
            node = stack.pop()
            yield node
            if not node.is_leaf():
                stack.append(node.right)
                stack.append(node.left)

    def leaves(self) -> Iterator[TreeNode]:
        return (node for node in self.nodes() if node.is_leaf())

    def n_nodes(self) -> int:
        return sum(1 for _ in self.nodes())

    def depth(self) -> int:
        return max(node.depth for node in self.nodes())

    def original_points(self) -> np.ndarray:
        """Data in the caller's original order."""
        return self.data[self.permutation.new_from_old]

    def __repr__(self) -> str:
        return (
            f"BinarySpaceTree(n_points={self.n_points}, n_dims={self.n_dims}, "
            f"leaf_size={self.leaf_size})"
        )
