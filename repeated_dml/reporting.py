"""
Repeated DML Reporting Functions
================================

Functions for creating summary tables and LaTeX output.
"""

from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Union

import pandas as pd

if TYPE_CHECKING:
    from repeated_dml.estimator import RepeatedDMLResult


def replication_table(result: "RepeatedDMLResult") -> pd.DataFrame:
    """
    Per-replication estimates and standard errors, one row per replication.

    Failed replications (recorded with ``on_error='record'``) appear with
    NaN estimates and their error name, so they are visible rather than
    silently missing.
    """
    table = result.table.copy()
    table["status"] = "ok"

    if result.failures:
        failed = pd.DataFrame([f.to_dict() for f in result.failures])
        failed["status"] = failed["error"]
        failed = failed[["replication", "status"]]
        table = pd.concat([table, failed], ignore_index=True)

    return table.sort_values("replication").reset_index(drop=True)


def summary_table(
    results: Union[Mapping[str, "RepeatedDMLResult"], List["RepeatedDMLResult"]],
    include_median: bool = True,
) -> pd.DataFrame:
    """
    Create a summary table comparing several repeated DML runs.

    Parameters
    ----------
    results : dict or list of RepeatedDMLResult
        Runs to compare. Dict keys label the rows; list entries are labelled
        by their learner.
    include_median : bool, default True
        Whether to include the median estimate and its standard error.

    Returns
    -------
    pd.DataFrame
        Summary table with one row per run.
    """
    if not isinstance(results, Mapping):
        results = {r.learner: r for r in results}

    rows = []
    for label, r in results.items():
        agg = r.aggregate
        lo, hi = agg.mean_ci
        row = {
            "Specification": label,
            "θ̂ (mean)": agg.mean_estimate,
            "SE (mean)": agg.mean_se,
            "95% CI": f"[{lo:.3f}, {hi:.3f}]",
        }
        if include_median:
            row["θ̂ (median)"] = agg.median_estimate
            row["SE (median)"] = agg.median_se
        row["S"] = agg.n_reps
        row["Failed"] = len(r.failures)
        row["n"] = r.n
        rows.append(row)

    return pd.DataFrame(rows)


def to_latex(
    df: pd.DataFrame,
    caption: Optional[str] = None,
    label: Optional[str] = None,
    float_format: str = "%.3f",
) -> str:
    """
    Export a DataFrame to LaTeX table format.

    Parameters
    ----------
    df : pd.DataFrame
        Table to export.
    caption : str, optional
        Table caption.
    label : str, optional
        LaTeX label for referencing.
    float_format : str, default '%.3f'
        Format string for floating point numbers.

    Returns
    -------
    str
        LaTeX table code.
    """
    latex = df.to_latex(
        index=False,
        float_format=float_format,
        escape=False,
    )

    if caption or label:
        lines = latex.split("\n")

        insert_point = len(lines)
        for i, line in enumerate(lines):
            if "\\end{tabular}" in line:
                insert_point = i + 1
                break

        additions = []
        if caption:
            additions.append(f"\\caption{{{caption}}}")
        if label:
            additions.append(f"\\label{{{label}}}")

        for j, add in enumerate(additions):
            lines.insert(insert_point + j, add)

        latex = "\n".join(lines)

    return latex


def format_estimate(theta: float, se: float, digits: int = 3) -> str:
    """
    Format an estimate for text reporting.

    Returns
    -------
    str
        Formatted string like "θ̂ = -0.123 (0.045)"
    """
    return f"θ̂ = {theta:.{digits}f} ({se:.{digits}f})"


def results_to_dict(results: Mapping[str, "RepeatedDMLResult"]) -> Dict[str, Dict]:
    """Aggregate records of several runs, keyed by label."""
    return {label: r.to_dict() for label, r in results.items()}


def print_summary(results: Mapping[str, "RepeatedDMLResult"]) -> None:
    """
    Print a formatted summary of several repeated DML runs to console.

    Parameters
    ----------
    results : dict of RepeatedDMLResult
        Runs to summarize, keyed by label.
    """
    print("\n" + "=" * 70)
    print("REPEATED DML SUMMARY")
    print("=" * 70)

    for i, (label, r) in enumerate(results.items()):
        if i > 0:
            print("-" * 70)

        agg = r.aggregate
        print(f"\n{label} (learner: {r.learner})")
        print(f"  Mean:   {format_estimate(agg.mean_estimate, agg.mean_se, 4)}")
        print(f"  Median: {format_estimate(agg.median_estimate, agg.median_se, 4)}")
        print(f"  S = {agg.n_reps} ({len(r.failures)} failed)  |  K = {r.n_folds}  |  n = {r.n}")

    print("\n" + "=" * 70)

    if len(results) > 1:
        means = [r.aggregate.mean_estimate for r in results.values()]
        print(f"\nθ̂ range: [{min(means):.4f}, {max(means):.4f}]")
        print(f"Estimate spread: {max(means) - min(means):.4f}")
        print("=" * 70 + "\n")


__all__ = [
    "replication_table",
    "summary_table",
    "to_latex",
    "format_estimate",
    "results_to_dict",
    "print_summary",
]
