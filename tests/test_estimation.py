"""Tests for the per-replication OLS on residuals."""

import numpy as np
import pytest

from repeated_dml.estimation import estimate_coefficient
from repeated_dml.exceptions import InsufficientDataError


def _hc3_se(y, x):
    """Direct HC3 standard error of the slope in y = a + b x."""
    Z = np.column_stack([np.ones_like(x), x])
    bread = np.linalg.inv(Z.T @ Z)
    beta = bread @ Z.T @ y
    e = y - Z @ beta
    h = np.einsum("ij,jk,ik->i", Z, bread, Z)
    meat = Z.T @ (Z * (e ** 2 / (1 - h) ** 2)[:, None])
    cov = bread @ meat @ bread
    return beta[1], np.sqrt(cov[1, 1])


@pytest.fixture
def residuals():
    rng = np.random.default_rng(11)
    u = rng.normal(size=250)
    v = 0.8 * u + rng.normal(size=250) * (1 + np.abs(u))
    return v, u


class TestEstimateCoefficient:
    """Test suite for estimate_coefficient."""

    def test_slope_matches_least_squares(self, residuals):
        v, u = residuals
        theta, _ = estimate_coefficient(v, u)
        slope, _ = np.polyfit(u, v, 1)
        assert theta == pytest.approx(slope, rel=1e-10)

    def test_hc3_standard_error(self, residuals):
        v, u = residuals
        theta, se = estimate_coefficient(v, u, cov_type="HC3")
        expected_theta, expected_se = _hc3_se(v, u)
        assert theta == pytest.approx(expected_theta, rel=1e-10)
        assert se == pytest.approx(expected_se, rel=1e-8)

    def test_intercept_does_not_bias_slope(self, residuals):
        v, u = residuals
        theta, _ = estimate_coefficient(v, u)
        shifted, _ = estimate_coefficient(v + 5.0, u)
        assert shifted == pytest.approx(theta, rel=1e-10)

    def test_hc0_smaller_than_hc3(self, residuals):
        v, u = residuals
        _, se0 = estimate_coefficient(v, u, cov_type="HC0")
        _, se3 = estimate_coefficient(v, u, cov_type="HC3")
        assert 0 < se0 < se3

    def test_single_distinct_treatment_residual_raises(self):
        with pytest.raises(InsufficientDataError, match="distinct"):
            estimate_coefficient([1.0, 2.0, 3.0], [0.5, 0.5, 0.5], replication=4)

    def test_empty_residuals_raise(self):
        with pytest.raises(InsufficientDataError, match="empty"):
            estimate_coefficient([], [])

    def test_length_mismatch_raises(self):
        with pytest.raises(InsufficientDataError, match="lengths"):
            estimate_coefficient([1.0, 2.0, 3.0], [1.0, 2.0])

    def test_non_finite_raises(self):
        with pytest.raises(InsufficientDataError, match="non-finite"):
            estimate_coefficient([1.0, np.nan, 3.0], [1.0, 2.0, 3.0])

    def test_error_carries_replication(self):
        with pytest.raises(InsufficientDataError) as excinfo:
            estimate_coefficient([1.0, 2.0], [0.0, 0.0], replication=4)
        assert excinfo.value.replication == 4

    def test_unknown_cov_type(self, residuals):
        v, u = residuals
        with pytest.raises(ValueError, match="cov_type"):
            estimate_coefficient(v, u, cov_type="HC9")

    def test_treatment_residuals_within_rounding_raise(self):
        rng = np.random.default_rng(2)
        u = 0.5 + 1e-15 * rng.normal(size=50)
        assert np.unique(u).size > 1
        with pytest.raises(InsufficientDataError, match="distinct"):
            estimate_coefficient(rng.normal(size=50), u)
