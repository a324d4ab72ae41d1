"""Tests for per-fold nuisance fitting and residualization."""

import pickle

import numpy as np
import pytest
from sklearn.dummy import DummyRegressor
from sklearn.linear_model import LinearRegression

from conftest import FailingLearner, NaNLearner, PlainLinearLearner
from repeated_dml.exceptions import FoldFitError, InsufficientDataError
from repeated_dml.residualize import (
    crossfit_residuals,
    pool_residuals,
    residualize_fold,
)
from repeated_dml.splitting import make_folds, train_test_pairs


def _first_split(n, n_folds=5, seed=0):
    return train_test_pairs(make_folds(n, n_folds, seed), n)[0]


class TestResidualizeFold:
    """Test suite for residualize_fold."""

    def test_residuals_cover_test_rows(self, plr_data):
        Y, D, X = plr_data
        train_idx, test_idx = _first_split(len(Y))

        res = residualize_fold(
            X, Y, D, train_idx, test_idx,
            LinearRegression(), LinearRegression(), fold=0, replication=3,
        )

        assert len(res) == len(test_idx)
        np.testing.assert_array_equal(res.test_idx, test_idx)
        assert res.fold == 0
        assert res.replication == 3
        assert res.n_covariates == X.shape[1]

    def test_residuals_are_observed_minus_prediction(self, plr_data):
        Y, D, X = plr_data
        train_idx, test_idx = _first_split(len(Y))

        res = residualize_fold(
            X, Y, D, train_idx, test_idx,
            LinearRegression(), LinearRegression(), fold=0,
        )

        m = LinearRegression().fit(X[train_idx], D[train_idx])
        g = LinearRegression().fit(X[train_idx], Y[train_idx])
        np.testing.assert_allclose(res.resid_d, D[test_idx] - m.predict(X[test_idx]))
        np.testing.assert_allclose(res.resid_y, Y[test_idx] - g.predict(X[test_idx]))

    def test_learner_not_mutated(self, plr_data):
        """The passed learners are cloned, never fitted in place."""
        Y, D, X = plr_data
        train_idx, test_idx = _first_split(len(Y))
        learner = LinearRegression()

        residualize_fold(X, Y, D, train_idx, test_idx, learner, learner, fold=0)
        assert not hasattr(learner, "coef_")

    def test_constant_column_dropped(self, plr_data):
        Y, D, X = plr_data
        X = np.column_stack([X, np.ones(len(Y))])
        train_idx, test_idx = _first_split(len(Y))

        res = residualize_fold(
            X, Y, D, train_idx, test_idx,
            LinearRegression(), LinearRegression(), fold=0,
        )
        assert res.n_covariates == X.shape[1] - 1

    def test_all_constant_design_raises(self, plr_data):
        Y, D, _ = plr_data
        X = np.ones((len(Y), 3))
        train_idx, test_idx = _first_split(len(Y))

        with pytest.raises(FoldFitError) as excinfo:
            residualize_fold(
                X, Y, D, train_idx, test_idx,
                LinearRegression(), LinearRegression(), fold=2, replication=1,
            )
        assert excinfo.value.fold == 2
        assert excinfo.value.replication == 1

    def test_fit_failure_tagged(self, plr_data):
        Y, D, X = plr_data
        train_idx, test_idx = _first_split(len(Y))

        with pytest.raises(FoldFitError, match="boom") as excinfo:
            residualize_fold(
                X, Y, D, train_idx, test_idx,
                FailingLearner(), LinearRegression(), fold=4, replication=7,
            )
        err = excinfo.value
        assert (err.replication, err.fold) == (7, 4)
        assert isinstance(err.__cause__, RuntimeError)
        assert "replication=7" in str(err)
        assert "fold=4" in str(err)

    def test_non_finite_predictions_raise(self, plr_data):
        Y, D, X = plr_data
        train_idx, test_idx = _first_split(len(Y))

        with pytest.raises(FoldFitError, match="non-finite"):
            residualize_fold(
                X, Y, D, train_idx, test_idx,
                LinearRegression(), NaNLearner(), fold=0,
            )

    def test_constant_treatment_on_test_fold_raises(self, plr_data):
        Y, D, X = plr_data
        train_idx, test_idx = _first_split(len(Y), n_folds=2)
        D = D.copy()
        D[test_idx] = 1.0

        with pytest.raises(InsufficientDataError, match="distinct") as excinfo:
            residualize_fold(
                X, Y, D, train_idx, test_idx,
                DummyRegressor(), LinearRegression(), fold=0, replication=2,
            )
        assert (excinfo.value.replication, excinfo.value.fold) == (2, 0)

    def test_single_row_test_fold_allowed(self, plr_data):
        Y, D, X = plr_data
        n = len(Y)
        res = residualize_fold(
            X, Y, D, np.arange(1, n), np.array([0]),
            DummyRegressor(), LinearRegression(), fold=0,
        )
        assert len(res) == 1

    def test_plain_learner_is_copied(self, plr_data):
        Y, D, X = plr_data
        train_idx, test_idx = _first_split(len(Y))
        learner = PlainLinearLearner()

        res = residualize_fold(X, Y, D, train_idx, test_idx, learner, learner, fold=0)

        m = LinearRegression().fit(X[train_idx], D[train_idx])
        np.testing.assert_allclose(res.resid_d, D[test_idx] - m.predict(X[test_idx]))
        assert not hasattr(learner, "model_")


def test_crossfit_residuals_pool_to_full_sample(plr_data):
    Y, D, X = plr_data
    n = len(Y)
    splits = train_test_pairs(make_folds(n, 4, seed=9), n)

    folds = crossfit_residuals(X, Y, D, splits, LinearRegression(), LinearRegression())
    resid_y, resid_d = pool_residuals(folds, n)

    assert [f.fold for f in folds] == [0, 1, 2, 3]
    assert resid_y.shape == (n,)
    assert np.all(np.isfinite(resid_y))
    assert np.all(np.isfinite(resid_d))
    # Out-of-sample residuals are not the in-sample OLS residuals
    in_sample = D - LinearRegression().fit(X, D).predict(X)
    assert not np.allclose(resid_d, in_sample)


def test_fold_fit_error_survives_pickling():
    err = FoldFitError("treatment model failed", replication=2, fold=3)
    restored = pickle.loads(pickle.dumps(err))

    assert isinstance(restored, FoldFitError)
    assert restored.replication == 2
    assert restored.fold == 3
    assert str(restored) == str(err)
