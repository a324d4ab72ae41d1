"""
Cross-Fitted Residualization
============================

Fits the two nuisance regressions on the training rows of one fold and
returns out-of-sample residuals on its test rows:

    Û = D - m̂(X),   m̂(X) ≈ E[D|X]
    V̂ = Y - ĝ(X),   ĝ(X) ≈ E[Y|X]

Nuisance failures are raised as ``FoldFitError`` and a test fold whose
treatment residual is constant as ``InsufficientDataError``, both tagged
with the replication and fold that produced them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray
from sklearn.base import BaseEstimator

from repeated_dml.estimation import has_variation
from repeated_dml.exceptions import FoldFitError, InsufficientDataError
from repeated_dml.learners import drop_constant_columns, fresh_learner

logger = logging.getLogger(__name__)


@dataclass
class FoldResiduals:
    """
    Out-of-sample residuals for the test rows of one fold.

    Attributes
    ----------
    test_idx : NDArray
        Row indices of the test fold.
    resid_y : NDArray
        Outcome residuals Y - ĝ(X).
    resid_d : NDArray
        Treatment residuals D - m̂(X).
    fold : int
        Fold index within the replication.
    replication : int or None
        Replication index.
    n_covariates : int
        Number of covariates used after dropping constant columns.
    """
    test_idx: NDArray
    resid_y: NDArray
    resid_d: NDArray
    fold: int
    replication: Optional[int] = None
    n_covariates: int = 0

    def __len__(self) -> int:
        return len(self.test_idx)


def _fit_predict(
    learner: BaseEstimator,
    X_train: NDArray,
    y_train: NDArray,
    X_test: NDArray,
    target: str,
    fold: int,
    replication: Optional[int],
) -> NDArray:
    model = fresh_learner(learner)
    try:
        model.fit(X_train, y_train)
        pred = np.asarray(model.predict(X_test), dtype=float).ravel()
    except Exception as exc:
        raise FoldFitError(
            f"{target} model failed: {type(exc).__name__}: {exc}",
            replication=replication,
            fold=fold,
        ) from exc

    if pred.shape[0] != X_test.shape[0]:
        raise FoldFitError(
            f"{target} model returned {pred.shape[0]} predictions "
            f"for {X_test.shape[0]} rows",
            replication=replication,
            fold=fold,
        )
    if not np.all(np.isfinite(pred)):
        raise FoldFitError(
            f"{target} model produced non-finite predictions",
            replication=replication,
            fold=fold,
        )
    return pred


def residualize_fold(
    X: NDArray,
    Y: NDArray,
    D: NDArray,
    train_idx: NDArray,
    test_idx: NDArray,
    learner_m: BaseEstimator,
    learner_g: BaseEstimator,
    fold: int,
    replication: Optional[int] = None,
    drop_constant: bool = True,
) -> FoldResiduals:
    """
    Fit nuisance models on one fold's training rows and residualize its test rows.

    Parameters
    ----------
    X : ndarray of shape (n, p)
        Covariate matrix.
    Y : ndarray of shape (n,)
        Outcome variable.
    D : ndarray of shape (n,)
        Treatment variable.
    train_idx, test_idx : ndarray
        Row indices of the training and test subsets.
    learner_m : BaseEstimator
        Learner for m(X) = E[D|X]; cloned before fitting.
    learner_g : BaseEstimator
        Learner for g(X) = E[Y|X]; cloned before fitting.
    fold : int
        Fold index, used to tag errors.
    replication : int, optional
        Replication index, used to tag errors.
    drop_constant : bool, default True
        Remove covariates that are constant on the training rows.

    Returns
    -------
    FoldResiduals
        Residual pairs for the test rows.

    Raises
    ------
    FoldFitError
        If the design is degenerate or a nuisance model fails.
    InsufficientDataError
        If a test fold of two or more rows yields a constant treatment
        residual.
    """
    if len(train_idx) == 0 or len(test_idx) == 0:
        raise FoldFitError(
            "Empty training or test subset",
            replication=replication,
            fold=fold,
        )

    X_train, X_test = X[train_idx], X[test_idx]

    if drop_constant:
        X_train, X_test, keep = drop_constant_columns(X_train, X_test)
        if not keep.any():
            raise FoldFitError(
                "No covariate varies on the training rows",
                replication=replication,
                fold=fold,
            )

    # Fit treatment regression: m(X) = E[D|X]
    m_hat = _fit_predict(
        learner_m, X_train, D[train_idx], X_test, "treatment", fold, replication
    )
    # Fit outcome regression: g(X) = E[Y|X]
    g_hat = _fit_predict(
        learner_g, X_train, Y[train_idx], X_test, "outcome", fold, replication
    )

    resid_d = D[test_idx] - m_hat
    if len(test_idx) >= 2 and not has_variation(resid_d):
        raise InsufficientDataError(
            "Treatment residuals take fewer than 2 distinct values on the test fold",
            replication=replication,
            fold=fold,
        )

    logger.debug(
        "replication=%s fold=%d: n_train=%d n_test=%d p=%d",
        replication, fold, len(train_idx), len(test_idx), X_train.shape[1],
    )

    return FoldResiduals(
        test_idx=np.asarray(test_idx),
        resid_y=Y[test_idx] - g_hat,
        resid_d=resid_d,
        fold=fold,
        replication=replication,
        n_covariates=X_train.shape[1],
    )


def pool_residuals(
    folds: Sequence[FoldResiduals],
    n: Optional[int] = None,
) -> Tuple[NDArray, NDArray]:
    """
    Collect the residuals of all folds of a replication in row order.

    Parameters
    ----------
    folds : sequence of FoldResiduals
        Residuals of every fold of one replication.
    n : int, optional
        Total number of rows. Defaults to the number of pooled rows.

    Returns
    -------
    resid_y, resid_d : ndarray of shape (n,)
        Outcome and treatment residuals aligned with the original rows.
    """
    if n is None:
        n = sum(len(f) for f in folds)
    resid_y = np.full(n, np.nan)
    resid_d = np.full(n, np.nan)
    for f in folds:
        resid_y[f.test_idx] = f.resid_y
        resid_d[f.test_idx] = f.resid_d
    return resid_y, resid_d


def crossfit_residuals(
    X: NDArray,
    Y: NDArray,
    D: NDArray,
    splits: Sequence[Tuple[NDArray, NDArray]],
    learner_m: BaseEstimator,
    learner_g: BaseEstimator,
    replication: Optional[int] = None,
    drop_constant: bool = True,
) -> List[FoldResiduals]:
    """Residualize every fold of one replication."""
    return [
        residualize_fold(
            X, Y, D, train_idx, test_idx, learner_m, learner_g,
            fold=k, replication=replication, drop_constant=drop_constant,
        )
        for k, (train_idx, test_idx) in enumerate(splits)
    ]


__all__ = [
    "FoldResiduals",
    "residualize_fold",
    "crossfit_residuals",
    "pool_residuals",
]
