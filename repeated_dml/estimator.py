"""
Repeated Cross-Fitting Estimator
================================

Double/debiased machine learning for the partially linear model

    Y = θ₀D + g₀(X) + ε,    D = m₀(X) + U,

with S independent repetitions of K-fold cross-fitting.

Algorithm
---------
For each replication s = 1..S (independently, possibly in parallel):
    1. Draw a random K-fold partition from the replication's own seed
    2. For each fold k: fit m̂ and ĝ on the other folds, residualize fold k
    3. Pool the residuals and regress V̂ on Û (with intercept) by OLS,
       giving θ̂ₛ and a heteroskedasticity-robust σ̂ₛ
Then aggregate the S pairs with split-adjusted mean and median variances.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Sequence, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from numpy.typing import NDArray
from sklearn.base import BaseEstimator

from repeated_dml.aggregation import AggregateResult, aggregate
from repeated_dml.diagnostics import residual_diagnostics
from repeated_dml.estimation import ROBUST_COV_TYPES, estimate_coefficient
from repeated_dml.exceptions import DegenerateInputError, RepeatedDMLError
from repeated_dml.learners import LearnerSpec, learner_label, resolve_learner
from repeated_dml.residualize import crossfit_residuals, pool_residuals
from repeated_dml.splitting import (
    make_folds,
    make_group_folds,
    replication_seeds,
    train_test_pairs,
)

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

K_FOLDS: int = 5             # Number of cross-fitting folds
N_REPS: int = 5              # Number of cross-fitting replications
RANDOM_STATE: int = 42       # Root seed for fold partitions
COV_TYPE: str = "HC3"        # Robust covariance for the final OLS

OnError = Literal["raise", "record"]


# =============================================================================
# RESULT CONTAINERS
# =============================================================================

@dataclass
class ReplicationResult:
    """
    Estimate from one replication of K-fold cross-fitting.

    Attributes
    ----------
    replication : int
        Replication index.
    theta : float
        OLS coefficient of outcome residual on treatment residual.
    se : float
        Heteroskedasticity-robust standard error.
    n : int
        Number of pooled residual pairs.
    kappa : float
        Standardized condition number of the treatment residuals.
    r_squared_d : float
        Out-of-sample R²(D|X).
    r_squared_y : float
        Out-of-sample R²(Y|X).
    """
    replication: int
    theta: float
    se: float
    n: int
    kappa: float = np.nan
    r_squared_d: float = np.nan
    r_squared_y: float = np.nan

    def to_dict(self) -> Dict[str, Any]:
        return {
            "replication": self.replication,
            "estimate": self.theta,
            "std_error": self.se,
            "n": self.n,
            "kappa": self.kappa,
            "r_squared_d": self.r_squared_d,
            "r_squared_y": self.r_squared_y,
        }


@dataclass
class ReplicationFailure:
    """A replication aborted by a fold-fitting or estimation error."""
    replication: int
    error: RepeatedDMLError

    @property
    def fold(self) -> Optional[int]:
        return self.error.fold

    def to_dict(self) -> Dict[str, Any]:
        return {
            "replication": self.replication,
            "fold": self.fold,
            "error": type(self.error).__name__,
            "message": self.error.message,
        }


@dataclass
class RepeatedDMLResult:
    """
    Container for a full repeated cross-fitting run.

    Attributes
    ----------
    aggregate : AggregateResult
        Mean and median estimates with split-adjusted standard errors.
    replications : list of ReplicationResult
        Successful replications, ordered by replication index.
    failures : list of ReplicationFailure
        Replications that were aborted (only with ``on_error='record'``).
    n : int
        Sample size.
    n_folds : int
        Number of cross-fitting folds.
    learner : str
        Display name of the nuisance learner(s).
    outcome, treatment : str
        Column names, when fitted from a DataFrame.
    covariates : list of str
        Covariate names, when fitted from a DataFrame.
    """
    aggregate: AggregateResult
    replications: List[ReplicationResult]
    failures: List[ReplicationFailure] = field(default_factory=list)
    n: int = 0
    n_folds: int = K_FOLDS
    learner: str = ""
    outcome: str = "Y"
    treatment: str = "D"
    covariates: List[str] = field(default_factory=list)

    @property
    def n_reps(self) -> int:
        """Number of attempted replications."""
        return len(self.replications) + len(self.failures)

    @property
    def estimates(self) -> NDArray:
        return np.array([r.theta for r in self.replications])

    @property
    def std_errors(self) -> NDArray:
        return np.array([r.se for r in self.replications])

    @property
    def table(self) -> pd.DataFrame:
        """One row per successful replication."""
        return pd.DataFrame(
            [r.to_dict() for r in self.replications],
            columns=[
                "replication", "estimate", "std_error", "n",
                "kappa", "r_squared_d", "r_squared_y",
            ],
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (aggregate record plus run metadata)."""
        out = self.aggregate.to_dict()
        out.update({
            "n": self.n,
            "n_folds": self.n_folds,
            "n_failed": len(self.failures),
            "learner": self.learner,
            "outcome": self.outcome,
            "treatment": self.treatment,
        })
        return out

    def __repr__(self) -> str:
        agg = self.aggregate
        lo, hi = agg.mean_ci
        mlo, mhi = agg.median_ci
        return (
            f"\n"
            f"Repeated DML Results\n"
            f"────────────────────\n"
            f"  Effect of {self.treatment} on {self.outcome}\n"
            f"  Mean:   θ̂ = {agg.mean_estimate:.4f} (SE = {agg.mean_se:.4f})"
            f"  95% CI: [{lo:.4f}, {hi:.4f}]\n"
            f"  Median: θ̂ = {agg.median_estimate:.4f} (SE = {agg.median_se:.4f})"
            f"  95% CI: [{mlo:.4f}, {mhi:.4f}]\n"
            f"\n"
            f"  n = {self.n}, K = {self.n_folds}, S = {agg.n_reps}"
            f" ({len(self.failures)} failed), learner = {self.learner}\n"
        )


# =============================================================================
# SINGLE REPLICATION
# =============================================================================

def run_replication(
    replication: int,
    Y: NDArray,
    D: NDArray,
    X: NDArray,
    seed: np.random.SeedSequence,
    learner_m: BaseEstimator,
    learner_g: BaseEstimator,
    n_folds: int = K_FOLDS,
    cov_type: str = COV_TYPE,
    groups: Optional[NDArray] = None,
    drop_constant: bool = True,
) -> Union[ReplicationResult, ReplicationFailure]:
    """
    Run one replication of K-fold cross-fitting.

    Fold-fitting and estimation errors are returned as a
    ``ReplicationFailure`` instead of raised, so one failed replication
    never discards the results of the others. The caller decides whether
    to re-raise.
    """
    n = len(Y)
    rng = np.random.default_rng(seed)

    if groups is None:
        folds = make_folds(n, n_folds, rng)
    else:
        folds = make_group_folds(groups, n_folds, rng)

    try:
        fold_residuals = crossfit_residuals(
            X, Y, D, train_test_pairs(folds, n), learner_m, learner_g,
            replication=replication, drop_constant=drop_constant,
        )
        resid_y, resid_d = pool_residuals(fold_residuals, n)
        theta, se = estimate_coefficient(
            resid_y, resid_d, cov_type=cov_type, replication=replication
        )
    except RepeatedDMLError as exc:
        return ReplicationFailure(replication=replication, error=exc)

    diag = residual_diagnostics(resid_y, resid_d, Y, D)
    return ReplicationResult(
        replication=replication,
        theta=theta,
        se=se,
        n=n,
        kappa=diag["kappa"],
        r_squared_d=diag["r_squared_d"],
        r_squared_y=diag["r_squared_y"],
    )


# =============================================================================
# ESTIMATOR CLASS
# =============================================================================

class RepeatedDML:
    """
    Double Machine Learning with repeated K-fold cross-fitting.

    Parameters
    ----------
    learner : str or BaseEstimator, default 'lasso'
        Nuisance learner for both treatment and outcome regressions.
        If str, one of: 'lin', 'lasso', 'ridge', 'rf', 'gbm'.
        If BaseEstimator, a scikit-learn compatible regressor.
    learner_m : str or BaseEstimator, optional
        Separate learner for treatment regression m(X) = E[D|X].
        If None, uses `learner`.
    learner_g : str or BaseEstimator, optional
        Separate learner for outcome regression g(X) = E[Y|X].
        If None, uses `learner`.
    n_folds : int, default 5
        Number of folds K for cross-fitting.
    n_reps : int, default 5
        Number of independent replications S (at least 2).
    cov_type : str, default 'HC3'
        Robust covariance type for the per-replication OLS.
    n_jobs : int, default 1
        Number of joblib workers over replications; -1 uses all cores.
    random_state : int or None, default 42
        Root seed; replication s uses the s-th spawned child seed.
    on_error : {'raise', 'record'}, default 'raise'
        'raise' re-raises the failure with the lowest replication index once
        all replications have finished. 'record' keeps failures in the result
        and aggregates the successful replications.
    drop_constant : bool, default True
        Drop covariates that are constant on a training fold.

    Examples
    --------
    >>> from repeated_dml import RepeatedDML
    >>> from repeated_dml.data import simulate_crime_panel
    >>> panel = simulate_crime_panel(random_state=0)
    >>> dml = RepeatedDML(learner='lasso', n_reps=10)
    >>> result = dml.fit(panel, outcome='viol', treatment='efaviol',
    ...                  covariates=['prison', 'police', 'ur', 'inc', 'pov'])
    >>> print(result)
    """

    def __init__(
        self,
        learner: LearnerSpec = "lasso",
        learner_m: Optional[LearnerSpec] = None,
        learner_g: Optional[LearnerSpec] = None,
        n_folds: int = K_FOLDS,
        n_reps: int = N_REPS,
        cov_type: str = COV_TYPE,
        n_jobs: Optional[int] = 1,
        random_state: Optional[int] = RANDOM_STATE,
        on_error: OnError = "raise",
        drop_constant: bool = True,
    ):
        if on_error not in ("raise", "record"):
            raise ValueError(f"on_error must be 'raise' or 'record', got '{on_error}'")
        if n_folds < 2:
            raise ValueError(f"n_folds must be at least 2, got {n_folds}")
        if cov_type not in ROBUST_COV_TYPES:
            raise ValueError(
                f"Unknown cov_type: '{cov_type}'. Choose from: {', '.join(ROBUST_COV_TYPES)}"
            )

        self.learner = learner
        self.learner_m = learner_m if learner_m is not None else learner
        self.learner_g = learner_g if learner_g is not None else learner
        self.n_folds = n_folds
        self.n_reps = n_reps
        self.cov_type = cov_type
        self.n_jobs = n_jobs
        self.random_state = random_state
        self.on_error = on_error
        self.drop_constant = drop_constant

        # Will be populated after fit
        self.result_: Optional[RepeatedDMLResult] = None

    @property
    def _learner_name(self) -> str:
        name_m = learner_label(self.learner_m)
        name_g = learner_label(self.learner_g)
        if name_m == name_g:
            return name_m
        return f"m={name_m}, g={name_g}"

    def fit(
        self,
        data: pd.DataFrame,
        outcome: str,
        treatment: str,
        covariates: Optional[Sequence[str]] = None,
        groups: Optional[str] = None,
    ) -> RepeatedDMLResult:
        """
        Fit on a DataFrame with explicitly named columns.

        Parameters
        ----------
        data : pd.DataFrame
            Observations, one per row.
        outcome : str
            Outcome column.
        treatment : str
            Treatment column.
        covariates : sequence of str, optional
            Covariate columns. Defaults to every numeric column other than
            `outcome`, `treatment` and `groups`.
        groups : str, optional
            Column whose values are kept together when assigning folds.

        Returns
        -------
        RepeatedDMLResult
        """
        reserved = [outcome, treatment] + ([groups] if groups is not None else [])
        missing = [c for c in reserved if c not in data.columns]
        if missing:
            raise ValueError(f"Columns not found in data: {missing}")

        if covariates is None:
            covariates = [
                c for c in data.select_dtypes(include=[np.number, bool]).columns
                if c not in reserved
            ]
        else:
            covariates = list(covariates)
            missing = [c for c in covariates if c not in data.columns]
            if missing:
                raise ValueError(f"Covariate columns not found in data: {missing}")
            overlap = [c for c in covariates if c in (outcome, treatment)]
            if overlap:
                raise ValueError(f"Outcome/treatment listed as covariates: {overlap}")

        if not covariates:
            raise ValueError("No covariate columns to control for")

        used = data[[outcome, treatment] + covariates]
        n_missing = int(used.isna().any(axis=1).sum())
        if n_missing:
            raise ValueError(
                f"{n_missing} row(s) have missing values in the outcome, "
                f"treatment or covariates; drop or impute them first"
            )

        result = self.fit_arrays(
            Y=used[outcome].to_numpy(dtype=float),
            D=used[treatment].to_numpy(dtype=float),
            X=used[covariates].to_numpy(dtype=float),
            groups=data[groups].to_numpy() if groups is not None else None,
        )
        result.outcome = outcome
        result.treatment = treatment
        result.covariates = covariates
        return result

    def fit_arrays(
        self,
        Y: NDArray,
        D: NDArray,
        X: NDArray,
        groups: Optional[NDArray] = None,
    ) -> RepeatedDMLResult:
        """
        Fit on numpy arrays.

        Parameters
        ----------
        Y : array-like of shape (n,)
            Outcome variable.
        D : array-like of shape (n,)
            Treatment variable.
        X : array-like of shape (n, p)
            Covariate matrix.
        groups : array-like of shape (n,), optional
            Group labels kept together when assigning folds.

        Returns
        -------
        RepeatedDMLResult
        """
        # Input validation
        Y = np.asarray(Y, dtype=float).ravel()
        D = np.asarray(D, dtype=float).ravel()
        X = np.asarray(X, dtype=float)

        if X.ndim == 1:
            X = X.reshape(-1, 1)

        n = len(Y)

        if len(D) != n or X.shape[0] != n:
            raise ValueError("Y, D, and X must have the same number of observations")
        if groups is not None:
            groups = np.asarray(groups)
            if len(groups) != n:
                raise ValueError("groups must have one label per observation")
        if self.n_reps < 2:
            raise DegenerateInputError(
                f"n_reps must be at least 2 to aggregate, got {self.n_reps}"
            )

        learner_m = resolve_learner(self.learner_m, self._learner_seed())
        learner_g = resolve_learner(self.learner_g, self._learner_seed())
        seeds = replication_seeds(self.random_state, self.n_reps)

        logger.info(
            "Fitting repeated DML: n=%d, p=%d, K=%d, S=%d, learner=%s",
            n, X.shape[1], self.n_folds, self.n_reps, self._learner_name,
        )

        # Results come back in submission order, i.e. by replication index
        outcomes = Parallel(n_jobs=self.n_jobs)(
            delayed(run_replication)(
                rep, Y, D, X, seed, learner_m, learner_g,
                n_folds=self.n_folds,
                cov_type=self.cov_type,
                groups=groups,
                drop_constant=self.drop_constant,
            )
            for rep, seed in enumerate(seeds)
        )

        replications = [o for o in outcomes if isinstance(o, ReplicationResult)]
        failures = [o for o in outcomes if isinstance(o, ReplicationFailure)]

        for failure in failures:
            logger.warning("Replication %d failed: %s", failure.replication, failure.error)

        if failures and self.on_error == "raise":
            raise failures[0].error

        if len(replications) < 2:
            raise DegenerateInputError(
                f"Only {len(replications)} of {self.n_reps} replications succeeded; "
                f"at least 2 are needed to aggregate"
            )

        agg = aggregate(
            [r.theta for r in replications],
            [r.se for r in replications],
        )

        logger.info(
            "Aggregate: mean=%.4f (SE %.4f), median=%.4f (SE %.4f)",
            agg.mean_estimate, agg.mean_se, agg.median_estimate, agg.median_se,
        )

        self.result_ = RepeatedDMLResult(
            aggregate=agg,
            replications=replications,
            failures=failures,
            n=n,
            n_folds=self.n_folds,
            learner=self._learner_name,
        )
        return self.result_

    def _learner_seed(self) -> int:
        return self.random_state if self.random_state is not None else 0

    def summary(self) -> str:
        """Aggregate estimates plus the per-replication table."""
        if self.result_ is None:
            return "Model not fitted. Call .fit() first."
        return (
            str(self.result_)
            + "\n"
            + self.result_.table.to_string(index=False, float_format="%.4f")
            + "\n"
        )

    def __repr__(self) -> str:
        if self.result_ is None:
            return (
                f"RepeatedDML(learner='{self._learner_name}', "
                f"n_folds={self.n_folds}, n_reps={self.n_reps}) [not fitted]"
            )
        return self.summary()


# =============================================================================
# CONVENIENCE FUNCTION
# =============================================================================

def run_dml(
    data: pd.DataFrame,
    outcome: str,
    treatment: str,
    covariates: Optional[Sequence[str]] = None,
    learner: LearnerSpec = "lasso",
    n_folds: int = K_FOLDS,
    n_reps: int = N_REPS,
    n_jobs: Optional[int] = 1,
    random_state: Optional[int] = RANDOM_STATE,
    groups: Optional[str] = None,
) -> RepeatedDMLResult:
    """
    Run repeated DML estimation (convenience function).

    See ``RepeatedDML`` for the parameters.
    """
    estimator = RepeatedDML(
        learner=learner,
        n_folds=n_folds,
        n_reps=n_reps,
        n_jobs=n_jobs,
        random_state=random_state,
    )
    return estimator.fit(data, outcome, treatment, covariates=covariates, groups=groups)


__all__ = [
    "K_FOLDS",
    "N_REPS",
    "RANDOM_STATE",
    "COV_TYPE",
    "ReplicationResult",
    "ReplicationFailure",
    "RepeatedDMLResult",
    "RepeatedDML",
    "run_replication",
    "run_dml",
]
