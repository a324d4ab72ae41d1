"""
Per-Replication Coefficient Estimation
======================================

Final stage of the partialling-out estimator: an OLS regression of the
pooled outcome residuals on the pooled treatment residuals (with intercept),

    V̂ᵢ = α + θ Ûᵢ + εᵢ,

with a heteroskedasticity-robust standard error for θ̂.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np
import statsmodels.api as sm
from numpy.typing import NDArray

from repeated_dml.exceptions import InsufficientDataError


ROBUST_COV_TYPES = ("HC0", "HC1", "HC2", "HC3")

# Relative spread below which treatment residuals count as a single value
DISTINCT_TOL: float = 1e-10


def has_variation(values: NDArray, tol: float = DISTINCT_TOL) -> bool:
    """True if ``values`` spans more than one value up to a relative tolerance."""
    values = np.asarray(values, dtype=float).ravel()
    if values.size < 2:
        return False
    scale = max(1.0, float(np.abs(values).max()))
    return float(np.ptp(values)) > tol * scale


def estimate_coefficient(
    resid_y: NDArray,
    resid_d: NDArray,
    cov_type: str = "HC3",
    replication: Optional[int] = None,
) -> Tuple[float, float]:
    """
    Regress outcome residuals on treatment residuals.

    Parameters
    ----------
    resid_y : array-like of shape (n,)
        Outcome residuals V̂ = Y - ĝ(X).
    resid_d : array-like of shape (n,)
        Treatment residuals Û = D - m̂(X).
    cov_type : str, default 'HC3'
        Heteroskedasticity-robust covariance estimator passed to statsmodels.
    replication : int, optional
        Replication index, used to tag errors.

    Returns
    -------
    theta : float
        Slope coefficient on the treatment residual.
    se : float
        Robust standard error of ``theta``.

    Raises
    ------
    InsufficientDataError
        If the residuals are empty, misaligned, non-finite, or the treatment
        residual takes fewer than two distinct values.
    """
    if cov_type not in ROBUST_COV_TYPES:
        raise ValueError(
            f"Unknown cov_type: '{cov_type}'. Choose from: {', '.join(ROBUST_COV_TYPES)}"
        )

    resid_y = np.asarray(resid_y, dtype=float).ravel()
    resid_d = np.asarray(resid_d, dtype=float).ravel()

    if resid_y.size == 0:
        raise InsufficientDataError("Residual set is empty", replication=replication)
    if resid_y.shape != resid_d.shape:
        raise InsufficientDataError(
            f"Residual lengths differ: {resid_y.size} outcome vs {resid_d.size} treatment",
            replication=replication,
        )
    if not (np.all(np.isfinite(resid_y)) and np.all(np.isfinite(resid_d))):
        raise InsufficientDataError(
            "Residuals contain non-finite values", replication=replication
        )
    if not has_variation(resid_d):
        raise InsufficientDataError(
            "Treatment residuals take fewer than 2 distinct values",
            replication=replication,
        )

    design = sm.add_constant(resid_d, has_constant="add")
    fit = sm.OLS(resid_y, design).fit(cov_type=cov_type)

    theta = float(fit.params[1])
    se = float(fit.bse[1])

    if not np.isfinite(se):
        raise InsufficientDataError(
            f"{cov_type} standard error is undefined for {resid_y.size} observations",
            replication=replication,
        )

    return theta, se


__all__ = ["ROBUST_COV_TYPES", "DISTINCT_TOL", "has_variation", "estimate_coefficient"]
