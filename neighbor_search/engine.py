"""
All-k-neighbor search engine.

For every point of a query set, finds the k points of a reference set that
rank best under a pluggable policy (nearest or furthest). Three exact
strategies are available:

- naive: every query point against every reference point
- single-tree: per query point, a pruned descent of the reference tree
- dual-tree (default): joint descent of the query and reference trees,
  pruning whole node pairs at once

Pruning only drops a subtree when its best possible distance cannot beat
the candidates already held, so all three strategies return the same
neighbors (up to the order of equal distances).
"""

import threading
from typing import List, Optional, Tuple

import numpy as np

from .candidate_list import CandidateList
from .config import SearchConfig
from .errors import ConfigurationError, NeighborSearchError, PreconditionViolation
from .metrics import BaseMetric, EuclideanDistance
from .permutation import PermutationMap
from .sort_policies import NearestNeighborSort, FurthestNeighborSort
from .tree.binary_space_tree import (
    BinarySpaceTree,
    TreeNode,
    DEFAULT_MAX_DEPTH,
    as_point_set,
)
from .utils.log import get_logger
from .utils.profiling import Profiler

LOGGER = get_logger("engine")

# Query rows per metric call in naive mode.
_NAIVE_BLOCK = 256


def _same_metric(a: BaseMetric, b: BaseMetric) -> bool:
    if a is b:
        return True
    if type(a) is not type(b):
        return False
    va, vb = vars(a), vars(b)
    if va.keys() != vb.keys():
        return False
    return all(np.array_equal(va[key], vb[key]) for key in va)


class TreeHandle:
    """
    A tree together with who is responsible for it.

    Owned trees were built by the engine and are dropped when it is closed.
    Borrowed trees belong to the caller; closing the engine only forgets
    its reference to them.
    """

    __slots__ = ['tree', 'owned']

    def __init__(self, tree: BinarySpaceTree, owned: bool):
        self.tree = tree
        self.owned = owned

    @classmethod
    def build(cls, data: np.ndarray, **kwargs) -> 'TreeHandle':
        return cls(BinarySpaceTree(data, **kwargs), owned=True)

    @classmethod
    def borrow(cls, tree: BinarySpaceTree) -> 'TreeHandle':
        return cls(tree, owned=False)

    def release(self) -> None:
        self.tree = None

    def __repr__(self) -> str:
        tag = "Owned" if self.owned else "Borrowed"
        return f"TreeHandle({tag}, {self.tree!r})"


class _SearchState:
    """Everything one ``search`` call mutates; discarded when it returns."""

    __slots__ = ['k', 'candidates', 'bounds', 'worst', 'prunes',
                 'base_cases', 'evaluations']

    def __init__(self, k: int, n_query: int, sort_policy):
        self.k = k
        self.candidates = [CandidateList(k, sort_policy) for _ in range(n_query)]
        # Per-node bound side table; a missing node means "worst sentinel".
        self.bounds = {}
        self.worst = sort_policy.worst_distance
        self.prunes = 0
        self.base_cases = 0
        self.evaluations = 0

    def bound(self, node: TreeNode) -> float:
        return self.bounds.get(node, self.worst)


class NeighborSearch:
    """
    Exact all-k-neighbor search over a reference set.

    Parameters
    ----------
    reference : np.ndarray
        Reference points, shape (n_reference, n_dims).
    query : np.ndarray or None, default=None
        Query points, shape (n_query, n_dims). If None, the reference set is
        also the query set and no point is reported as its own neighbor.
    naive : bool, default=False
        Brute force search. Overrides ``single_mode``.
    single_mode : bool, default=False
        Single-tree search instead of dual-tree search.
    leaf_size : int, default=20
        Leaf size for trees built here; ignored for supplied trees.
    reference_tree : BinarySpaceTree or None
        Pre-built tree over ``reference`` (borrowed, never modified).
    query_tree : BinarySpaceTree or None
        Pre-built tree over ``query`` (borrowed, never modified).
    metric : BaseMetric or None
        Distance metric; may carry parameters. Defaults to the supplied
        tree's metric, else Euclidean.
    sort_policy : ranking policy or None
        NearestNeighborSort (default) or FurthestNeighborSort.
    max_depth : int, default=128
        Depth limit for trees built here.
    profiler : Profiler or None
        Defaults to ``Profiler.from_env()``.

    Notes
    -----
    With ``naive=True`` a supplied tree must be a single leaf holding every
    point; anything else raises :class:`PreconditionViolation`.

    An instance must not run two searches at the same time.
    """

    def __init__(
        self,
        reference: np.ndarray,
        query: Optional[np.ndarray] = None,
        naive: bool = False,
        single_mode: bool = False,
        leaf_size: int = 20,
        reference_tree: Optional[BinarySpaceTree] = None,
        query_tree: Optional[BinarySpaceTree] = None,
        metric: Optional[BaseMetric] = None,
        sort_policy=None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        profiler: Optional[Profiler] = None
    ):
        reference = as_point_set(reference, 'reference')
        self.same_set = query is None
        if self.same_set:
            if query_tree is not None:
                raise ConfigurationError("query_tree given without a query set")
            query = reference
        else:
            query = as_point_set(query, 'query')
            if query.shape[1] != reference.shape[1]:
                raise ConfigurationError(
                    f"Dimensionality mismatch: reference has {reference.shape[1]} "
                    f"dimensions, query has {query.shape[1]}"
                )
        if leaf_size < 1:
            raise ConfigurationError(f"leaf_size must be >= 1, got {leaf_size}")

        if metric is None:
            metric = reference_tree.metric if reference_tree is not None else EuclideanDistance()
        for tree in (reference_tree, query_tree):
            if tree is not None and not _same_metric(tree.metric, metric):
                raise ConfigurationError(
                    f"Supplied tree was built for {tree.metric!r}, not {metric!r}"
                )

        self.metric = metric
        self.sort_policy = sort_policy if sort_policy is not None else NearestNeighborSort()
        self.naive = bool(naive)
        self.single_mode = bool(single_mode) and not self.naive
        self.leaf_size = leaf_size
        self.profiler = profiler if profiler is not None else Profiler.from_env()

        self.number_of_prunes = 0
        self.number_of_base_cases = 0
        self.number_of_distance_evaluations = 0

        self._lock = threading.Lock()
        self._closed = False

        with self.profiler.time("tree_build"):
            self._reference = self._adopt_tree(reference, reference_tree, 'reference', max_depth)
            self._query: Optional[TreeHandle] = None
            if self.same_set:
                self._query_data = self._reference.tree.data
                self._query_permutation = self._reference.tree.permutation
            elif self.single_mode and query_tree is None:
                # Single-tree search never descends a query tree
                self._query_data = query
                self._query_permutation = PermutationMap.identity(query.shape[0])
            else:
                self._query = self._adopt_tree(query, query_tree, 'query', max_depth)
                self._query_data = self._query.tree.data
                self._query_permutation = self._query.tree.permutation

        LOGGER.debug(
            "NeighborSearch ready: mode=%s n_reference=%d n_query=%d same_set=%s "
            "reference_tree=%r",
            self.mode, reference.shape[0], self._query_data.shape[0],
            self.same_set, self._reference,
        )

    @classmethod
    def from_config(
        cls,
        reference: np.ndarray,
        query: Optional[np.ndarray] = None,
        config: Optional[SearchConfig] = None,
        **kwargs
    ) -> 'NeighborSearch':
        """Build an engine from a :class:`SearchConfig` (environment by default)."""
        config = config if config is not None else SearchConfig.from_env()
        options = dict(
            naive=config.naive,
            single_mode=config.single_mode,
            leaf_size=config.leaf_size,
            max_depth=config.max_depth,
            sort_policy=config.sort_policy_instance(),
            profiler=Profiler(config.profile),
        )
        if kwargs.get('reference_tree') is None:
            options['metric'] = config.metric_instance()
        options.update(kwargs)
        return cls(reference, query, **options)

    def _adopt_tree(
        self,
        data: np.ndarray,
        tree: Optional[BinarySpaceTree],
        name: str,
        max_depth: int
    ) -> TreeHandle:
        if tree is None:
            if self.naive:
                return TreeHandle(BinarySpaceTree.single_node(data, metric=self.metric), owned=True)
            return TreeHandle.build(
                data, leaf_size=self.leaf_size, metric=self.metric, max_depth=max_depth
            )

        if tree.n_points != data.shape[0] or tree.n_dims != data.shape[1]:
            raise ConfigurationError(
                f"Supplied {name} tree holds {tree.n_points}x{tree.n_dims} points, "
                f"{name} set is {data.shape[0]}x{data.shape[1]}"
            )
        if self.naive and not tree.root.is_leaf():
            raise PreconditionViolation(
                f"Naive search needs a single-node {name} tree; "
                f"the supplied tree has {tree.n_nodes()} nodes"
            )
        return TreeHandle.borrow(tree)

    @property
    def mode(self) -> str:
        if self.naive:
            return "naive"
        return "single" if self.single_mode else "dual"

    @property
    def reference_tree(self) -> Optional[BinarySpaceTree]:
        return self._reference.tree

    @property
    def query_tree(self) -> Optional[BinarySpaceTree]:
        if self.same_set:
            return self._reference.tree
        return self._query.tree if self._query is not None else None

    @property
    def n_eligible(self) -> int:
        """Reference points a query may receive as neighbors."""
        n = self._reference.tree.n_points
        return n - 1 if self.same_set else n

    def search(self, k: int) -> Tuple[np.ndarray, np.ndarray]:
        """
        Find the k best reference points for every query point.

        Parameters
        ----------
        k : int
            Number of neighbors, ``1 <= k <= n_eligible``.

        Returns
        -------
        neighbors : np.ndarray of shape (k, n_query)
            Column ``j`` holds the original reference indices of query
            ``j``'s neighbors, best first.
        distances : np.ndarray of shape (k, n_query)
            Matching distances.
        """
        if self._closed:
            raise ConfigurationError("search() called on a closed NeighborSearch")
        if isinstance(k, bool) or not isinstance(k, (int, np.integer)):
            raise ConfigurationError(f"k must be an integer, got {k!r}")
        k = int(k)
        if k < 1:
            raise ConfigurationError(f"k must be >= 1, got {k}")
        if k > self.n_eligible:
            raise ConfigurationError(
                f"k={k} exceeds the {self.n_eligible} eligible reference points"
            )
        if not self._lock.acquire(blocking=False):
            raise NeighborSearchError("a search is already running on this instance")

        try:
            state = _SearchState(k, self._query_data.shape[0], self.sort_policy)
            with self.profiler.time("search"):
                if self.naive:
                    self._compute_naive(state)
                elif self.single_mode:
                    self._compute_single(state)
                else:
                    self._compute_dual(state)
            neighbors, distances = self._collect_results(state)
        finally:
            self._lock.release()

        self.number_of_prunes = state.prunes
        self.number_of_base_cases = state.base_cases
        self.number_of_distance_evaluations = state.evaluations
        self.profiler.count("prunes", state.prunes)
        self.profiler.count("base_cases", state.base_cases)
        self.profiler.count("distance_evaluations", state.evaluations)

        LOGGER.debug(
            "search(k=%d) mode=%s: prunes=%d base_cases=%d evaluations=%d",
            k, self.mode, state.prunes, state.base_cases, state.evaluations,
        )
        return neighbors, distances

    def _insert_row(
        self,
        state: _SearchState,
        query_index: int,
        reference_begin: int,
        distances: np.ndarray
    ) -> None:
        """Offer one query point a contiguous run of reference candidates."""
        candidates = state.candidates[query_index]
        is_better = self.sort_policy.is_better
        exclude = query_index - reference_begin if self.same_set else -1

        if candidates.full:
            offsets = np.flatnonzero(is_better(distances, candidates.worst_distance))
        else:
            offsets = range(distances.shape[0])

        for offset in offsets:
            if offset == exclude:
                continue
            distance = float(distances[offset])
            if candidates.full and not is_better(distance, candidates.worst_distance):
                continue
            candidates.try_insert(reference_begin + int(offset), distance)

    def _compute_naive(self, state: _SearchState) -> None:
        reference_data = self._reference.tree.data
        query_data = self._query_data
        for start in range(0, query_data.shape[0], _NAIVE_BLOCK):
            block = self.metric.pairwise(query_data[start:start + _NAIVE_BLOCK], reference_data)
            state.evaluations += block.size
            for offset, row in enumerate(block):
                self._insert_row(state, start + offset, 0, row)
        state.base_cases += 1

    def _compute_single(self, state: _SearchState) -> None:
        root = self._reference.tree.root
        for query_index, point in enumerate(self._query_data):
            bound = self.sort_policy.best_point_to_node_distance(point, root)
            self._single_recursion(state, query_index, point, root, bound)

    def _single_recursion(
        self,
        state: _SearchState,
        query_index: int,
        point: np.ndarray,
        reference_node: TreeNode,
        distance_bound: float
    ) -> None:
        """Descend the reference tree for one query point."""
        policy = self.sort_policy
        candidates = state.candidates[query_index]

        if candidates.full and not policy.is_better(distance_bound, candidates.worst_distance):
            state.prunes += reference_node.count
            return

        if reference_node.is_leaf():
            begin, end = reference_node.begin, reference_node.end
            row = self.metric.pairwise(point[None, :], self._reference.tree.data[begin:end])[0]
            state.base_cases += 1
            state.evaluations += row.shape[0]
            self._insert_row(state, query_index, begin, row)
            return

        left, right = reference_node.left, reference_node.right
        left_bound = policy.best_point_to_node_distance(point, left)
        right_bound = policy.best_point_to_node_distance(point, right)
        if policy.is_better(right_bound, left_bound):
            self._single_recursion(state, query_index, point, right, right_bound)
            self._single_recursion(state, query_index, point, left, left_bound)
        else:
            self._single_recursion(state, query_index, point, left, left_bound)
            self._single_recursion(state, query_index, point, right, right_bound)

    def _compute_dual(self, state: _SearchState) -> None:
        query_root = self.query_tree.root
        reference_root = self._reference.tree.root
        bound = self.sort_policy.best_node_to_node_distance(query_root, reference_root)
        self._dual_recursion(state, query_root, reference_root, bound)

    def _can_prune(self, distance_bound: float, node_bound: float) -> bool:
        # A node still at the worst sentinel has a point with an unfilled list.
        if node_bound == self.sort_policy.worst_distance:
            return False
        return not self.sort_policy.is_better(distance_bound, node_bound)

    def _dual_recursion(
        self,
        state: _SearchState,
        query_node: TreeNode,
        reference_node: TreeNode,
        lower_bound: float
    ) -> None:
        """Descend both trees; ``lower_bound`` is the best distance the pair allows."""
        if self._can_prune(lower_bound, state.bound(query_node)):
            state.prunes += query_node.count * reference_node.count
            return

        if query_node.is_leaf() and reference_node.is_leaf():
            self._base_case(state, query_node, reference_node)
            return

        if query_node.is_leaf():
            self._visit_reference_children(state, query_node, reference_node)
            return

        policy = self.sort_policy
        left, right = query_node.left, query_node.right
        for query_child in (left, right):
            if reference_node.is_leaf():
                bound = policy.best_node_to_node_distance(query_child, reference_node)
                self._dual_recursion(state, query_child, reference_node, bound)
            else:
                self._visit_reference_children(state, query_child, reference_node)
            # A node's bound has to cover every point beneath it.
            state.bounds[query_node] = policy.combine_worst(
                state.bound(left), state.bound(right)
            )

    def _visit_reference_children(
        self,
        state: _SearchState,
        query_node: TreeNode,
        reference_node: TreeNode
    ) -> None:
        """Recurse into both reference children, more promising one first."""
        policy = self.sort_policy
        left, right = reference_node.left, reference_node.right
        left_bound = policy.best_node_to_node_distance(query_node, left)
        right_bound = policy.best_node_to_node_distance(query_node, right)
        if policy.is_better(right_bound, left_bound):
            self._dual_recursion(state, query_node, right, right_bound)
            self._dual_recursion(state, query_node, left, left_bound)
        else:
            self._dual_recursion(state, query_node, left, left_bound)
            self._dual_recursion(state, query_node, right, right_bound)

    def _base_case(
        self,
        state: _SearchState,
        query_node: TreeNode,
        reference_node: TreeNode
    ) -> None:
        """Exact distances between two leaves; refreshes the query leaf's bound."""
        policy = self.sort_policy
        q_begin, q_end = query_node.begin, query_node.end
        r_begin, r_end = reference_node.begin, reference_node.end
        block = self.metric.pairwise(
            self._query_data[q_begin:q_end], self._reference.tree.data[r_begin:r_end]
        )
        state.base_cases += 1
        state.evaluations += block.size

        node_bound = policy.best_distance
        for offset, row in enumerate(block):
            query_index = q_begin + offset
            self._insert_row(state, query_index, r_begin, row)
            node_bound = policy.combine_worst(
                node_bound, state.candidates[query_index].worst_distance
            )
        state.bounds[query_node] = node_bound

    def _collect_results(self, state: _SearchState) -> Tuple[np.ndarray, np.ndarray]:
        """Un-permute candidate lists into (k, n_query) output matrices."""
        k = state.k
        n_query = len(state.candidates)
        neighbors = np.empty((k, n_query), dtype=np.int64)
        distances = np.empty((k, n_query), dtype=np.float64)
        reference_permutation = self._reference.tree.permutation

        for query_index, candidates in enumerate(state.candidates):
            if len(candidates) < k:
                raise NeighborSearchError(
                    f"query {query_index} collected only {len(candidates)} of {k} neighbors"
                )
            column = self._query_permutation.to_original(query_index)
            neighbors[:, column] = reference_permutation.to_original(candidates.indices)
            distances[:, column] = candidates.distances
        return neighbors, distances

    def close(self) -> None:
        """Drop owned trees and forget borrowed ones. Idempotent."""
        if self._closed:
            return
        handles: List[TreeHandle] = [self._reference]
        if self._query is not None:
            handles.append(self._query)
        for handle in handles:
            LOGGER.debug("Releasing %r", handle)
            handle.release()
        self._query_data = None
        self._closed = True

    def __enter__(self) -> 'NeighborSearch':
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(mode={self.mode!r}, same_set={self.same_set}, "
            f"metric={self.metric!r}, sort_policy={type(self.sort_policy).__name__})"
        )


class AllKNN(NeighborSearch):
    """All-k-nearest-neighbors search."""

    def __init__(self, reference: np.ndarray, query: Optional[np.ndarray] = None, **kwargs):
        kwargs['sort_policy'] = NearestNeighborSort()
        super().__init__(reference, query, **kwargs)


class AllKFN(NeighborSearch):
    """All-k-furthest-neighbors search."""

    def __init__(self, reference: np.ndarray, query: Optional[np.ndarray] = None, **kwargs):
        kwargs['sort_policy'] = FurthestNeighborSort()
        super().__init__(reference, query, **kwargs)
