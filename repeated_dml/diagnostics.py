"""
Residual Diagnostics
====================

Per-replication summaries of how much treatment variation survives the
nuisance regression.

The standardized condition number

    κ = n·Var(D) / Σᵢ Ûᵢ² ≈ 1 / (1 - R²(D|X))

grows as the covariates predict the treatment more closely. A large κ means
the final OLS rests on little residual variation, which inflates the
standard error and any nuisance bias. It is reported next to each estimate
as a continuous gauge, not a pass/fail test.
"""

from typing import Any, Dict

import numpy as np
from numpy.typing import NDArray


def compute_kappa(resid_d: NDArray, D: NDArray) -> float:
    """
    Standardized condition number κ = n·Var(D) / Σ Û².

    Parameters
    ----------
    resid_d : array-like
        Cross-fitted treatment residuals Û = D - m̂(X).
    D : array-like
        Treatment values the residuals were computed from.

    Returns
    -------
    float
        κ, or inf when the residuals carry no variation.
    """
    resid_d = np.asarray(resid_d, dtype=float).ravel()
    D = np.asarray(D, dtype=float).ravel()

    sum_U_sq = np.sum(resid_d ** 2)
    if sum_U_sq < 1e-12:
        return np.inf

    return float(len(resid_d) * np.var(D) / sum_U_sq)


def r_squared(resid: NDArray, target: NDArray) -> float:
    """Out-of-sample R² = 1 - Var(resid) / Var(target)."""
    resid = np.asarray(resid, dtype=float).ravel()
    target = np.asarray(target, dtype=float).ravel()
    var_target = np.var(target)
    if var_target <= 0:
        return np.nan
    return float(1 - np.var(resid) / var_target)


def residual_diagnostics(
    resid_y: NDArray,
    resid_d: NDArray,
    Y: NDArray,
    D: NDArray,
) -> Dict[str, Any]:
    """
    Summaries of one replication's pooled residuals.

    Returns
    -------
    dict
        - kappa: standardized condition number
        - r_squared_d: out-of-sample R²(D|X)
        - r_squared_y: out-of-sample R²(Y|X)
        - resid_d_sd, resid_y_sd: residual standard deviations
    """
    return {
        "kappa": compute_kappa(resid_d, D),
        "r_squared_d": r_squared(resid_d, D),
        "r_squared_y": r_squared(resid_y, Y),
        "resid_d_sd": float(np.std(resid_d)),
        "resid_y_sd": float(np.std(resid_y)),
    }


def describe_conditioning(kappa: float, n: int) -> str:
    """
    Qualitative description of κ relative to the sample size.

    The CI width scales with √(κ/n); the labels below are guidance only.
    """
    if np.isinf(kappa):
        return "undefined (no residual treatment variation)"

    kappa_sqrt_n = kappa / np.sqrt(n)
    if kappa_sqrt_n < 0.15:
        return "favorable conditioning"
    elif kappa_sqrt_n < 0.5:
        return "moderate conditioning"
    return "challenging conditioning"


__all__ = [
    "compute_kappa",
    "r_squared",
    "residual_diagnostics",
    "describe_conditioning",
]
