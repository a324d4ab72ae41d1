"""
Sample Splitting for Cross-Fitting
==================================

Seeded K-fold partitions and per-replication seed streams.

Each replication receives its own ``numpy.random.SeedSequence`` spawned from
a single root seed. The partition of a replication therefore depends only on
the root seed and the replication index, never on the order in which
replications are executed or on how many workers run them.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
from numpy.typing import NDArray


SeedLike = Union[int, np.random.SeedSequence, np.random.Generator, None]


def replication_seeds(
    random_state: Optional[int],
    n_reps: int,
) -> List[np.random.SeedSequence]:
    """
    Spawn one independent seed sequence per replication.

    Parameters
    ----------
    random_state : int or None
        Root seed. None draws fresh entropy (non-reproducible).
    n_reps : int
        Number of replications S.

    Returns
    -------
    list of SeedSequence
        ``n_reps`` statistically independent child sequences.
    """
    if n_reps < 1:
        raise ValueError(f"n_reps must be at least 1, got {n_reps}")
    return np.random.SeedSequence(random_state).spawn(n_reps)


def _as_generator(seed: SeedLike) -> np.random.Generator:
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


def make_folds(
    n: int,
    n_folds: int,
    seed: SeedLike = None,
) -> List[NDArray]:
    """
    Randomly partition ``range(n)`` into ``n_folds`` test folds.

    Fold sizes differ by at most one. Every index appears in exactly one
    fold.

    Parameters
    ----------
    n : int
        Number of observations.
    n_folds : int
        Number of folds K (at least 2).
    seed : int, SeedSequence, Generator or None
        Source of randomness for the permutation.

    Returns
    -------
    list of ndarray
        K sorted arrays of test indices.
    """
    if n_folds < 2:
        raise ValueError(f"n_folds must be at least 2, got {n_folds}")
    if n < n_folds:
        raise ValueError(
            f"Cannot split {n} observations into {n_folds} folds"
        )

    rng = _as_generator(seed)
    perm = rng.permutation(n)
    return [np.sort(chunk) for chunk in np.array_split(perm, n_folds)]


def make_group_folds(
    groups: Sequence,
    n_folds: int,
    seed: SeedLike = None,
) -> List[NDArray]:
    """
    Randomly partition observations into folds by whole groups.

    All rows sharing a group label (e.g. a state in a state-year panel) land
    in the same fold, so a nuisance model is never trained on rows from the
    group it is evaluated on.

    Parameters
    ----------
    groups : array-like of shape (n,)
        Group label of each observation.
    n_folds : int
        Number of folds K (at least 2).
    seed : int, SeedSequence, Generator or None
        Source of randomness for the group permutation.

    Returns
    -------
    list of ndarray
        K sorted arrays of test indices.
    """
    groups = np.asarray(groups)
    labels, codes = np.unique(groups, return_inverse=True)

    if n_folds < 2:
        raise ValueError(f"n_folds must be at least 2, got {n_folds}")
    if len(labels) < n_folds:
        raise ValueError(
            f"Cannot split {len(labels)} groups into {n_folds} folds"
        )

    rng = _as_generator(seed)
    group_folds = np.array_split(rng.permutation(len(labels)), n_folds)

    folds = []
    for members in group_folds:
        folds.append(np.flatnonzero(np.isin(codes, members)))
    return folds


def train_test_pairs(
    folds: Sequence[NDArray],
    n: int,
) -> List[Tuple[NDArray, NDArray]]:
    """Turn a list of test folds into (train_idx, test_idx) pairs."""
    pairs = []
    for test_idx in folds:
        mask = np.ones(n, dtype=bool)
        mask[test_idx] = False
        pairs.append((np.flatnonzero(mask), test_idx))
    return pairs


def is_partition(folds: Sequence[NDArray], n: int) -> bool:
    """Check that ``folds`` are pairwise disjoint and cover ``range(n)``."""
    if not folds:
        return False
    combined = np.concatenate([np.asarray(f) for f in folds])
    if len(combined) != n:
        return False
    return bool(np.array_equal(np.sort(combined), np.arange(n)))


__all__ = [
    "replication_seeds",
    "make_folds",
    "make_group_folds",
    "train_test_pairs",
    "is_partition",
]
