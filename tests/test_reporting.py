"""Tests for reporting tables."""

import pytest

from conftest import MarkerLearner, make_marked_data, mixed_failure_seed
from repeated_dml import RepeatedDML, format_estimate, replication_table, summary_table, to_latex
from repeated_dml.reporting import results_to_dict


@pytest.fixture
def fitted(plr_data):
    Y, D, X = plr_data
    return {
        "lin": RepeatedDML(learner="lin", n_reps=3).fit_arrays(Y, D, X),
        "ridge": RepeatedDML(learner="ridge", n_reps=3).fit_arrays(Y, D, X),
    }


def test_replication_table(fitted):
    table = replication_table(fitted["lin"])
    assert len(table) == 3
    assert list(table["replication"]) == [0, 1, 2]
    assert (table["status"] == "ok").all()


def test_replication_table_lists_failures():
    Y, D, X = make_marked_data()
    random_state, _ = mixed_failure_seed(12, len(Y), 2)

    result = RepeatedDML(
        learner=MarkerLearner(), n_folds=2, n_reps=12, random_state=random_state,
        on_error="record", drop_constant=False,
    ).fit_arrays(Y, D, X)

    table = replication_table(result)
    assert list(table["replication"]) == list(range(12))
    failed = table[table["status"] != "ok"]
    assert list(failed["replication"]) == [f.replication for f in result.failures]
    assert list(failed["status"].unique()) == ["FoldFitError"]
    assert failed["estimate"].isna().all()


def test_summary_table(fitted):
    df = summary_table(fitted)
    assert list(df["Specification"]) == ["lin", "ridge"]
    assert {"θ̂ (mean)", "SE (mean)", "θ̂ (median)", "SE (median)", "S", "n"} <= set(df.columns)

    df_short = summary_table(list(fitted.values()), include_median=False)
    assert "θ̂ (median)" not in df_short.columns


def test_to_latex_caption_and_label(fitted):
    latex = to_latex(summary_table(fitted), caption="DML estimates", label="tab:dml")
    assert "\\begin{tabular}" in latex
    assert "\\caption{DML estimates}" in latex
    assert "\\label{tab:dml}" in latex


def test_format_estimate():
    assert format_estimate(-0.12345, 0.0456) == "θ̂ = -0.123 (0.046)"


def test_results_to_dict(fitted):
    records = results_to_dict(fitted)
    assert set(records) == {"lin", "ridge"}
    assert records["lin"]["learner"] == "lin"
