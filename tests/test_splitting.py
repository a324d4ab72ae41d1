"""Tests for seeded fold partitions."""

import numpy as np
import pytest

from repeated_dml.splitting import (
    is_partition,
    make_folds,
    make_group_folds,
    replication_seeds,
    train_test_pairs,
)


class TestMakeFolds:
    """Test suite for K-fold partitions."""

    @pytest.mark.parametrize("n_folds", [2, 3, 5, 10])
    def test_folds_partition_rows(self, n_folds):
        """Folds are pairwise disjoint and cover every row exactly once."""
        n = 53
        folds = make_folds(n, n_folds, seed=1)

        assert len(folds) == n_folds
        for i in range(n_folds):
            for j in range(i + 1, n_folds):
                assert np.intersect1d(folds[i], folds[j]).size == 0
        assert is_partition(folds, n)

    def test_fold_sizes_balanced(self):
        sizes = [len(f) for f in make_folds(103, 5, seed=0)]
        assert max(sizes) - min(sizes) <= 1
        assert sum(sizes) == 103

    def test_same_seed_same_partition(self):
        a = make_folds(40, 4, seed=123)
        b = make_folds(40, 4, seed=123)
        for fa, fb in zip(a, b):
            np.testing.assert_array_equal(fa, fb)

    def test_different_seeds_redraw_partition(self):
        a = make_folds(200, 5, seed=1)
        b = make_folds(200, 5, seed=2)
        assert any(not np.array_equal(fa, fb) for fa, fb in zip(a, b))

    def test_too_few_folds_raises(self):
        with pytest.raises(ValueError, match="at least 2"):
            make_folds(10, 1)

    def test_more_folds_than_rows_raises(self):
        with pytest.raises(ValueError, match="Cannot split"):
            make_folds(3, 5)


class TestGroupFolds:
    """Test suite for group-aware partitions."""

    def test_groups_never_split(self):
        groups = np.repeat(np.arange(12), 7)
        folds = make_group_folds(groups, 4, seed=0)

        assert is_partition(folds, len(groups))
        owner = {}
        for k, fold in enumerate(folds):
            for g in np.unique(groups[fold]):
                assert owner.setdefault(g, k) == k

    def test_string_labels(self):
        groups = np.array(["ca", "ny", "tx", "ca", "ny", "tx", "wa", "wa"])
        folds = make_group_folds(groups, 2, seed=5)
        assert is_partition(folds, len(groups))

    def test_too_few_groups_raises(self):
        with pytest.raises(ValueError, match="groups"):
            make_group_folds([1, 1, 2, 2], 3)


class TestReplicationSeeds:
    """Seeds drive independent, reproducible partitions."""

    def test_reproducible_streams(self):
        first = [make_folds(30, 3, np.random.default_rng(s)) for s in replication_seeds(7, 4)]
        second = [make_folds(30, 3, np.random.default_rng(s)) for s in replication_seeds(7, 4)]
        for a, b in zip(first, second):
            for fa, fb in zip(a, b):
                np.testing.assert_array_equal(fa, fb)

    def test_replications_differ(self):
        seeds = replication_seeds(7, 2)
        a = make_folds(100, 5, np.random.default_rng(seeds[0]))
        b = make_folds(100, 5, np.random.default_rng(seeds[1]))
        assert any(not np.array_equal(fa, fb) for fa, fb in zip(a, b))

    def test_zero_replications_raises(self):
        with pytest.raises(ValueError):
            replication_seeds(0, 0)


def test_train_test_pairs_are_complements():
    n = 25
    folds = make_folds(n, 5, seed=0)
    for train_idx, test_idx in train_test_pairs(folds, n):
        assert np.intersect1d(train_idx, test_idx).size == 0
        np.testing.assert_array_equal(
            np.sort(np.concatenate([train_idx, test_idx])), np.arange(n)
        )


def test_is_partition_detects_overlap():
    assert not is_partition([np.array([0, 1]), np.array([1, 2])], 3)
    assert not is_partition([np.array([0]), np.array([2])], 3)
    assert not is_partition([], 0)
