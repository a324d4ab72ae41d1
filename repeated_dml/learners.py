"""
Nuisance Learners
=================

Factory for the regressors used to predict the outcome and the treatment
from covariates, and the design cleaning applied before each fit.

The default learner is a cross-validated lasso on standardized covariates,
the confounder-selection device used in the abortion/crime literature
(Belloni, Chernozhukov & Hansen 2014). Any scikit-learn compatible regressor
can be passed instead; it is cloned for every fold.
"""

from __future__ import annotations

import copy
import logging
from typing import Literal, Tuple, Union

import numpy as np
from numpy.typing import NDArray
from sklearn.base import BaseEstimator, clone
from sklearn.ensemble import GradientBoostingRegressor, RandomForestRegressor
from sklearn.linear_model import LassoCV, LinearRegression, RidgeCV
from sklearn.pipeline import make_pipeline
from sklearn.preprocessing import StandardScaler

logger = logging.getLogger(__name__)


# =============================================================================
# Learner Factory
# =============================================================================

LearnerName = Literal["lin", "lasso", "ridge", "rf", "gbm"]
LEARNER_NAMES = ("lin", "lasso", "ridge", "rf", "gbm")

LearnerSpec = Union[str, BaseEstimator]

# Columns whose training-fold variance is below this are treated as constant
VARIANCE_TOL: float = 1e-12


def get_learner(name: str, random_state: int = 42) -> BaseEstimator:
    """
    Get a nuisance learner by name.

    Parameters
    ----------
    name : str
        Learner name: 'lin', 'lasso', 'ridge', 'rf', 'gbm'.
    random_state : int, default 42
        Random state for reproducibility.

    Returns
    -------
    BaseEstimator
        Scikit-learn compatible estimator.
    """
    name = name.lower()

    if name == "lin":
        return LinearRegression()
    elif name == "lasso":
        return make_pipeline(
            StandardScaler(),
            LassoCV(cv=5, random_state=random_state, max_iter=10000),
        )
    elif name == "ridge":
        return make_pipeline(StandardScaler(), RidgeCV(cv=5))
    elif name == "rf":
        return RandomForestRegressor(
            n_estimators=200,
            max_depth=5,
            min_samples_leaf=5,
            random_state=random_state,
            n_jobs=1,
        )
    elif name == "gbm":
        return GradientBoostingRegressor(
            n_estimators=100,
            max_depth=3,
            learning_rate=0.1,
            random_state=random_state,
        )
    else:
        raise ValueError(
            f"Unknown learner: '{name}'. "
            f"Choose from: {', '.join(LEARNER_NAMES)}"
        )


def fresh_learner(learner: BaseEstimator) -> BaseEstimator:
    """
    Unfitted copy of a learner.

    scikit-learn estimators are cloned from their parameters. Objects that
    only implement fit/predict have no parameters to clone from and are
    deep-copied instead, so the caller's instance is never fitted.
    """
    if hasattr(learner, "get_params"):
        return clone(learner)
    return copy.deepcopy(learner)


def resolve_learner(learner: LearnerSpec, random_state: int = 42) -> BaseEstimator:
    """Return a fresh, unfitted learner for a name or an estimator instance."""
    if isinstance(learner, str):
        return get_learner(learner, random_state)
    if not (hasattr(learner, "fit") and hasattr(learner, "predict")):
        raise ValueError(
            f"Learner must be a name or provide fit/predict, got {type(learner).__name__}"
        )
    return fresh_learner(learner)


def learner_label(learner: LearnerSpec) -> str:
    """Short display name for a learner."""
    if isinstance(learner, str):
        return learner.lower()
    return type(learner).__name__


# =============================================================================
# Design Cleaning
# =============================================================================

def constant_columns(X: NDArray, tol: float = VARIANCE_TOL) -> NDArray:
    """Boolean mask of columns with (near) zero variance."""
    X = np.asarray(X, dtype=float)
    if X.shape[0] == 0:
        return np.ones(X.shape[1], dtype=bool)
    return np.var(X, axis=0) <= tol


def drop_constant_columns(
    X_train: NDArray,
    X_test: NDArray,
    tol: float = VARIANCE_TOL,
) -> Tuple[NDArray, NDArray, NDArray]:
    """
    Remove columns that are constant on the training rows.

    Fixed-effect dummies in particular can be all-zero on a training fold
    when every row of their unit fell into the test fold. The mask is
    computed on the training rows only and applied to both sets.

    Returns
    -------
    X_train, X_test : ndarray
        Designs restricted to the kept columns.
    keep : ndarray of bool
        Mask of kept columns.
    """
    keep = ~constant_columns(X_train, tol)
    n_dropped = int((~keep).sum())
    if n_dropped:
        logger.debug("Dropping %d constant covariate column(s)", n_dropped)
    return X_train[:, keep], X_test[:, keep], keep


__all__ = [
    "LEARNER_NAMES",
    "get_learner",
    "fresh_learner",
    "resolve_learner",
    "learner_label",
    "constant_columns",
    "drop_constant_columns",
]
