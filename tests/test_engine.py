"""
Tests for the naive, single-tree and dual-tree search engine.
"""

import numpy as np
import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from neighbor_search import (
    AllKFN,
    AllKNN,
    BinarySpaceTree,
    ConfigurationError,
    FurthestNeighborSort,
    NearestNeighborSort,
    NeighborSearch,
    PreconditionViolation,
    brute_force_neighbors,
)
from neighbor_search.metrics import (
    ChebyshevDistance,
    EuclideanDistance,
    MahalanobisDistance,
    ManhattanDistance,
    SquaredEuclideanDistance,
)
from neighbor_search.utils.profiling import Profiler

MODES = {
    "naive": dict(naive=True),
    "single": dict(single_mode=True),
    "dual": dict(),
}
POLICIES = [NearestNeighborSort(), FurthestNeighborSort()]


class CountingMetric(EuclideanDistance):
    """Euclidean distance that records how often it is evaluated."""

    def __init__(self):
        super().__init__()
        self.calls = 0

    def evaluate(self, a, b):
        self.calls += 1
        return super().evaluate(a, b)

    def pairwise(self, A, B):
        self.calls += 1
        return super().pairwise(A, B)


class TestSmallScenario:
    """Hand-checked four point example."""

    @pytest.fixture
    def points(self):
        return np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [5.0, 5.0]])

    @pytest.mark.parametrize("mode", sorted(MODES))
    @pytest.mark.parametrize("leaf_size", [1, 2, 20])
    def test_nearest_two(self, points, mode, leaf_size):
        searcher = NeighborSearch(points, leaf_size=leaf_size, **MODES[mode])
        neighbors, distances = searcher.search(2)

        assert neighbors.shape == (2, 4)
        assert distances.shape == (2, 4)
        assert set(neighbors[:, 0]) == {1, 2}
        np.testing.assert_allclose(distances[:, 0], [1.0, 1.0])
        assert 0 not in neighbors[:, 0]
        assert 3 not in neighbors[:, 0]

    def test_naive_ties_follow_reference_order(self, points):
        neighbors, _ = NeighborSearch(points, naive=True).search(2)
        np.testing.assert_array_equal(neighbors[:, 0], [1, 2])

    @pytest.mark.parametrize("mode", sorted(MODES))
    def test_furthest_one(self, points, mode):
        neighbors, distances = AllKFN(points, leaf_size=1, **MODES[mode]).search(1)
        np.testing.assert_array_equal(neighbors[0], [3, 3, 3, 0])
        np.testing.assert_allclose(distances[0, 0], np.sqrt(50.0))
        np.testing.assert_allclose(distances[0, 3], np.sqrt(50.0))


class TestAgainstBruteForce:
    """All modes agree with an independent all-pairs computation."""

    @pytest.fixture
    def reference(self):
        np.random.seed(42)
        return np.random.randn(180, 3)

    @pytest.fixture
    def query(self):
        np.random.seed(123)
        return np.random.randn(70, 3)

    @pytest.mark.parametrize("policy", POLICIES)
    def test_naive_matches_ground_truth(self, reference, query, policy):
        k = 7
        neighbors, distances = NeighborSearch(
            reference, query, naive=True, sort_policy=policy
        ).search(k)
        true_neighbors, true_distances = brute_force_neighbors(
            reference, query, k, sort_policy=policy
        )
        np.testing.assert_array_equal(neighbors, true_neighbors)
        np.testing.assert_allclose(distances, true_distances, rtol=1e-12, atol=1e-12)

    @pytest.mark.parametrize("policy", POLICIES)
    def test_naive_same_set_matches_ground_truth(self, reference, policy):
        k = 5
        neighbors, distances = NeighborSearch(
            reference, naive=True, sort_policy=policy
        ).search(k)
        true_neighbors, true_distances = brute_force_neighbors(
            reference, None, k, sort_policy=policy
        )
        np.testing.assert_array_equal(neighbors, true_neighbors)
        np.testing.assert_allclose(distances, true_distances, rtol=1e-12, atol=1e-12)

    @pytest.mark.parametrize("policy", POLICIES)
    @pytest.mark.parametrize("mode", ["single", "dual"])
    @pytest.mark.parametrize("leaf_size", [1, 5, 20, 50])
    def test_tree_modes_match_naive(self, reference, query, policy, mode, leaf_size):
        k = 6
        expected = NeighborSearch(reference, query, naive=True, sort_policy=policy).search(k)
        result = NeighborSearch(
            reference, query, leaf_size=leaf_size, sort_policy=policy, **MODES[mode]
        ).search(k)

        np.testing.assert_allclose(result[1], expected[1], rtol=1e-12, atol=1e-12)
        np.testing.assert_array_equal(result[0], expected[0])

    @pytest.mark.parametrize("policy", POLICIES)
    @pytest.mark.parametrize("mode", ["single", "dual"])
    @pytest.mark.parametrize("leaf_size", [1, 5, 20, 50])
    def test_tree_modes_match_naive_same_set(self, reference, policy, mode, leaf_size):
        k = 4
        expected = NeighborSearch(reference, naive=True, sort_policy=policy).search(k)
        result = NeighborSearch(
            reference, leaf_size=leaf_size, sort_policy=policy, **MODES[mode]
        ).search(k)

        np.testing.assert_allclose(result[1], expected[1], rtol=1e-12, atol=1e-12)
        np.testing.assert_array_equal(result[0], expected[0])

    @pytest.mark.parametrize("metric", [
        ManhattanDistance(),
        SquaredEuclideanDistance(),
        ChebyshevDistance(),
    ])
    @pytest.mark.parametrize("mode", sorted(MODES))
    def test_other_minkowski_metrics(self, reference, query, metric, mode):
        k = 3
        neighbors, distances = NeighborSearch(
            reference, query, leaf_size=8, metric=metric, **MODES[mode]
        ).search(k)
        true_neighbors, true_distances = brute_force_neighbors(reference, query, k, metric=metric)
        np.testing.assert_allclose(distances, true_distances, rtol=1e-12, atol=1e-12)
        np.testing.assert_array_equal(neighbors, true_neighbors)

    @pytest.mark.parametrize("policy", POLICIES)
    @pytest.mark.parametrize("mode", sorted(MODES))
    def test_mahalanobis_uses_ball_bounds(self, reference, policy, mode):
        metric = MahalanobisDistance.fit(reference)
        k = 3
        neighbors, distances = NeighborSearch(
            reference, leaf_size=10, metric=metric, sort_policy=policy, **MODES[mode]
        ).search(k)
        true_neighbors, true_distances = brute_force_neighbors(
            reference, None, k, metric=metric, sort_policy=policy
        )
        np.testing.assert_allclose(distances, true_distances, rtol=1e-9, atol=1e-9)
        np.testing.assert_array_equal(neighbors, true_neighbors)


class TestSameSetMode:
    """Reference set queried against itself."""

    @pytest.fixture
    def sample_data(self):
        np.random.seed(9)
        return np.random.randn(120, 2)

    @pytest.mark.parametrize("mode", sorted(MODES))
    def test_never_returns_self(self, sample_data, mode):
        neighbors, distances = NeighborSearch(sample_data, leaf_size=3, **MODES[mode]).search(5)
        for column in range(sample_data.shape[0]):
            assert column not in neighbors[:, column]
        assert np.all(distances > 0.0)

    @pytest.mark.parametrize("mode", sorted(MODES))
    def test_k_one_is_single_best(self, sample_data, mode):
        neighbors, distances = NeighborSearch(sample_data, leaf_size=4, **MODES[mode]).search(1)
        true_neighbors, true_distances = brute_force_neighbors(sample_data, None, 1)
        assert neighbors.shape == (1, sample_data.shape[0])
        np.testing.assert_array_equal(neighbors, true_neighbors)
        np.testing.assert_allclose(distances, true_distances)

    @pytest.mark.parametrize("policy", POLICIES)
    @pytest.mark.parametrize("mode", sorted(MODES))
    def test_k_all_eligible_returns_everything_sorted(self, policy, mode):
        np.random.seed(17)
        data = np.random.randn(30, 2)
        k = data.shape[0] - 1
        neighbors, distances = NeighborSearch(
            data, leaf_size=4, sort_policy=policy, **MODES[mode]
        ).search(k)

        for column in range(data.shape[0]):
            expected = set(range(data.shape[0])) - {column}
            assert set(neighbors[:, column]) == expected
            column_distances = distances[:, column]
            for i in range(k - 1):
                assert not policy.is_better(column_distances[i + 1], column_distances[i])

    def test_duplicate_points_are_still_neighbors(self):
        data = np.array([[0.0, 0.0], [0.0, 0.0], [3.0, 4.0], [0.0, 0.0]])
        for mode in MODES:
            neighbors, distances = NeighborSearch(data, leaf_size=1, **MODES[mode]).search(2)
            assert set(neighbors[:, 0]) == {1, 3}
            np.testing.assert_allclose(distances[:, 0], [0.0, 0.0])

    @pytest.mark.parametrize("mode", sorted(MODES))
    def test_furthest_on_identical_points(self, mode):
        data = np.zeros((6, 2))
        neighbors, distances = AllKFN(data, leaf_size=1, **MODES[mode]).search(3)
        np.testing.assert_allclose(distances, 0.0)
        for column in range(6):
            assert column not in neighbors[:, column]


class TestValidation:
    """Configuration errors are raised before any work."""

    @pytest.fixture
    def sample_data(self):
        np.random.seed(1)
        return np.random.randn(20, 3)

    def test_k_zero(self, sample_data):
        with pytest.raises(ConfigurationError):
            NeighborSearch(sample_data).search(0)

    def test_k_too_large_same_set(self, sample_data):
        searcher = NeighborSearch(sample_data)
        searcher.search(19)
        with pytest.raises(ConfigurationError):
            searcher.search(20)

    def test_k_equal_reference_size_with_query(self, sample_data):
        query = sample_data[:5] + 0.01
        neighbors, _ = NeighborSearch(sample_data, query).search(20)
        assert neighbors.shape == (20, 5)
        with pytest.raises(ConfigurationError):
            NeighborSearch(sample_data, query).search(21)

    def test_k_must_be_integer(self, sample_data):
        searcher = NeighborSearch(sample_data)
        with pytest.raises(ConfigurationError):
            searcher.search(2.5)
        with pytest.raises(ConfigurationError):
            searcher.search(True)

    def test_dimensionality_mismatch(self, sample_data):
        metric = CountingMetric()
        with pytest.raises(ConfigurationError):
            NeighborSearch(sample_data, np.zeros((4, 2)), metric=metric)
        assert metric.calls == 0

    def test_error_is_a_value_error(self, sample_data):
        with pytest.raises(ValueError):
            NeighborSearch(sample_data).search(0)

    def test_bad_leaf_size(self, sample_data):
        with pytest.raises(ConfigurationError):
            NeighborSearch(sample_data, leaf_size=0)

    def test_unboundable_metric(self, sample_data):
        metric = MahalanobisDistance(inverse_covariance=np.eye(3), take_root=False)
        with pytest.raises(ConfigurationError):
            NeighborSearch(sample_data, metric=metric)

    def test_query_tree_without_query(self, sample_data):
        tree = BinarySpaceTree(sample_data)
        with pytest.raises(ConfigurationError):
            NeighborSearch(sample_data, query_tree=tree)

    def test_no_distance_evaluated_on_bad_k(self, sample_data):
        metric = CountingMetric()
        searcher = NeighborSearch(sample_data, metric=metric)
        with pytest.raises(ConfigurationError):
            searcher.search(100)
        assert metric.calls == 0


class TestSuppliedTrees:
    """Borrowed trees and the naive-mode precondition."""

    @pytest.fixture
    def sample_data(self):
        np.random.seed(21)
        return np.random.randn(150, 2)

    def test_borrowed_tree_gives_same_result(self, sample_data):
        tree = BinarySpaceTree(sample_data, leaf_size=7)
        expected = NeighborSearch(sample_data, leaf_size=7).search(3)

        with NeighborSearch(sample_data, reference_tree=tree) as searcher:
            assert searcher.reference_tree is tree
            result = searcher.search(3)
        np.testing.assert_array_equal(result[0], expected[0])
        np.testing.assert_allclose(result[1], expected[1])

        # Closing the engine leaves a borrowed tree intact and reusable
        assert tree.root is not None
        again = NeighborSearch(sample_data, reference_tree=tree, single_mode=True).search(3)
        np.testing.assert_array_equal(again[0], expected[0])

    def test_borrowed_query_tree(self, sample_data):
        query = sample_data[:40] * 0.5
        reference_tree = BinarySpaceTree(sample_data, leaf_size=5)
        query_tree = BinarySpaceTree(query, leaf_size=3)
        result = NeighborSearch(
            sample_data, query, reference_tree=reference_tree, query_tree=query_tree
        ).search(4)
        expected = brute_force_neighbors(sample_data, query, 4)
        np.testing.assert_array_equal(result[0], expected[0])
        np.testing.assert_allclose(result[1], expected[1])

    def test_tree_size_mismatch(self, sample_data):
        tree = BinarySpaceTree(sample_data[:100])
        with pytest.raises(ConfigurationError):
            NeighborSearch(sample_data, reference_tree=tree)

    def test_tree_metric_mismatch(self, sample_data):
        tree = BinarySpaceTree(sample_data, metric=ManhattanDistance())
        with pytest.raises(ConfigurationError):
            NeighborSearch(sample_data, reference_tree=tree, metric=EuclideanDistance())
        # Without an explicit metric the tree's metric is used
        searcher = NeighborSearch(sample_data, reference_tree=tree)
        assert isinstance(searcher.metric, ManhattanDistance)

    def test_naive_rejects_multi_node_tree(self, sample_data):
        tree = BinarySpaceTree(sample_data, leaf_size=10)
        with pytest.raises(PreconditionViolation):
            NeighborSearch(sample_data, naive=True, reference_tree=tree)

    def test_naive_accepts_single_node_tree(self, sample_data):
        tree = BinarySpaceTree.single_node(sample_data)
        result = NeighborSearch(sample_data, naive=True, reference_tree=tree).search(2)
        expected = brute_force_neighbors(sample_data, None, 2)
        np.testing.assert_array_equal(result[0], expected[0])


class TestEngineLifecycle:
    """State handling across calls."""

    @pytest.fixture
    def sample_data(self):
        np.random.seed(31)
        return np.random.randn(400, 2)

    def test_repeated_searches_do_not_leak_bounds(self, sample_data):
        searcher = NeighborSearch(sample_data, leaf_size=10)
        first = searcher.search(1)
        searcher.search(8)
        again = searcher.search(1)
        fresh = NeighborSearch(sample_data, leaf_size=10).search(1)

        np.testing.assert_array_equal(first[0], again[0])
        np.testing.assert_array_equal(again[0], fresh[0])

        wide = searcher.search(8)
        expected = brute_force_neighbors(sample_data, None, 8)
        np.testing.assert_array_equal(wide[0], expected[0])

    def test_dual_tree_prunes(self, sample_data):
        searcher = NeighborSearch(sample_data, leaf_size=10)
        searcher.search(3)
        n = sample_data.shape[0]
        assert searcher.number_of_prunes > 0
        assert searcher.number_of_distance_evaluations < n * n
        assert searcher.number_of_base_cases > 0

    def test_single_tree_prunes(self, sample_data):
        searcher = NeighborSearch(sample_data, leaf_size=10, single_mode=True)
        searcher.search(3)
        assert searcher.number_of_prunes > 0
        assert searcher.number_of_distance_evaluations < sample_data.shape[0] ** 2

    def test_naive_evaluates_everything(self, sample_data):
        searcher = NeighborSearch(sample_data, naive=True)
        searcher.search(3)
        assert searcher.number_of_prunes == 0
        assert searcher.number_of_distance_evaluations == sample_data.shape[0] ** 2

    def test_modes(self, sample_data):
        assert NeighborSearch(sample_data).mode == "dual"
        assert NeighborSearch(sample_data, single_mode=True).mode == "single"
        assert NeighborSearch(sample_data, naive=True, single_mode=True).mode == "naive"

    def test_mode_flags_stored_as_bool(self, sample_data):
        searcher = NeighborSearch(sample_data, naive=0, single_mode=np.bool_(True))
        assert searcher.naive is False
        assert searcher.single_mode is True
        assert searcher.mode == "single"

    def test_single_mode_skips_query_tree(self, sample_data):
        searcher = NeighborSearch(sample_data, sample_data[:10], single_mode=True)
        assert searcher.query_tree is None
        neighbors, _ = searcher.search(1)
        np.testing.assert_array_equal(neighbors[0], np.arange(10))

    def test_same_set_shares_tree(self, sample_data):
        searcher = NeighborSearch(sample_data)
        assert searcher.query_tree is searcher.reference_tree

    def test_close_releases_owned_tree(self, sample_data):
        searcher = NeighborSearch(sample_data)
        searcher.close()
        searcher.close()
        assert searcher.reference_tree is None
        with pytest.raises(ConfigurationError):
            searcher.search(1)

    def test_aliases_fix_policy(self, sample_data):
        assert isinstance(AllKNN(sample_data).sort_policy, NearestNeighborSort)
        searcher = AllKFN(sample_data, sort_policy=NearestNeighborSort())
        assert isinstance(searcher.sort_policy, FurthestNeighborSort)

    def test_profiler_records_phases(self, sample_data):
        profiler = Profiler(True)
        searcher = NeighborSearch(sample_data, profiler=profiler)
        searcher.search(2)
        summary = profiler.summary()
        assert "tree_build" in summary
        assert summary["search"]["count"] == 1
        assert summary["prunes"]["count"] == searcher.number_of_prunes


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
