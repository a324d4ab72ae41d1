"""
Aggregation Across Replications
===============================

Combines S per-replication estimates (θ̂ₛ, σ̂ₛ) into a single estimate that
accounts for both sampling variance and sample-splitting variance
(Chernozhukov et al. 2018, Definition 3.3):

    θ̄   = mean(θ̂ₛ)
    σ̄²  = mean(σ̂ₛ²) + mean((θ̂ₛ - θ̄)²)

    θ̃   = median(θ̂ₛ)
    σ̃²  = median(σ̂ₛ² + (θ̂ₛ - θ̃)²)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Sequence, Tuple

import numpy as np
from scipy import stats

from repeated_dml.exceptions import DegenerateInputError


Z_ALPHA: float = 1.96        # Critical value for 95% CI (α = 0.05)


@dataclass(frozen=True)
class AggregateResult:
    """
    Aggregate of S cross-fitting replications.

    Attributes
    ----------
    mean_estimate : float
        Mean of the replication estimates.
    mean_se : float
        Standard error of the mean estimate, including split variance.
    median_estimate : float
        Median of the replication estimates.
    median_se : float
        Standard error of the median estimate, including split variance.
    n_reps : int
        Number of replications aggregated.
    """
    mean_estimate: float
    mean_se: float
    median_estimate: float
    median_se: float
    n_reps: int

    @property
    def mean_ci(self) -> Tuple[float, float]:
        """95% confidence interval around the mean estimate."""
        return (
            self.mean_estimate - Z_ALPHA * self.mean_se,
            self.mean_estimate + Z_ALPHA * self.mean_se,
        )

    @property
    def median_ci(self) -> Tuple[float, float]:
        """95% confidence interval around the median estimate."""
        return (
            self.median_estimate - Z_ALPHA * self.median_se,
            self.median_estimate + Z_ALPHA * self.median_se,
        )

    @property
    def mean_pvalue(self) -> float:
        """Two-sided p-value for H₀: θ = 0 using the mean estimate."""
        return _two_sided_pvalue(self.mean_estimate, self.mean_se)

    @property
    def median_pvalue(self) -> float:
        """Two-sided p-value for H₀: θ = 0 using the median estimate."""
        return _two_sided_pvalue(self.median_estimate, self.median_se)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mean_estimate": self.mean_estimate,
            "mean_se": self.mean_se,
            "median_estimate": self.median_estimate,
            "median_se": self.median_se,
            "n_reps": self.n_reps,
        }


def _two_sided_pvalue(theta: float, se: float) -> float:
    if se <= 0 or not np.isfinite(se):
        return np.nan
    return float(2 * stats.norm.sf(np.abs(theta / se)))


def aggregate(
    estimates: Sequence[float],
    std_errors: Sequence[float],
) -> AggregateResult:
    """
    Aggregate replication estimates with split-adjusted variance.

    Parameters
    ----------
    estimates : sequence of float
        Point estimates θ̂ₛ, one per replication.
    std_errors : sequence of float
        Standard errors σ̂ₛ, aligned with ``estimates``.

    Returns
    -------
    AggregateResult

    Raises
    ------
    DegenerateInputError
        If fewer than two replications are given.

    Examples
    --------
    >>> agg = aggregate([1.0, 2.0, 3.0], [0.1, 0.1, 0.1])
    >>> agg.mean_estimate, round(agg.mean_se ** 2, 3)
    (2.0, 0.677)
    """
    theta = np.asarray(estimates, dtype=float).ravel()
    se = np.asarray(std_errors, dtype=float).ravel()

    if theta.shape != se.shape:
        raise ValueError(
            f"Got {theta.size} estimates but {se.size} standard errors"
        )
    if theta.size < 2:
        raise DegenerateInputError(
            f"Aggregation needs at least 2 replications, got {theta.size}"
        )

    var = se ** 2

    mean_theta = float(np.mean(theta))
    mean_var = float(np.mean(var) + np.mean((theta - mean_theta) ** 2))

    median_theta = float(np.median(theta))
    median_var = float(np.median(var + (theta - median_theta) ** 2))

    return AggregateResult(
        mean_estimate=mean_theta,
        mean_se=float(np.sqrt(mean_var)),
        median_estimate=median_theta,
        median_se=float(np.sqrt(median_var)),
        n_reps=int(theta.size),
    )


__all__ = ["Z_ALPHA", "AggregateResult", "aggregate"]
