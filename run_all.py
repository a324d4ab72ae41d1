#!/usr/bin/env python3
"""
================================================================================
MASTER REPLICATION SCRIPT
================================================================================

Reproduces all tables of the abortion and crime analysis with repeated
cross-fitted double machine learning.

Usage:
    python run_all.py

Output:
    All tables are written to results/

Random Seeds:
    All experiments use fixed seeds for reproducibility.
    - Abortion/crime application: RANDOM_STATE = 42 (set in
      abortion_crime_application.py)

================================================================================
"""

import subprocess
import sys
import time
from pathlib import Path

# =============================================================================
# CONFIGURATION
# =============================================================================

REPO_ROOT = Path(__file__).parent.absolute()
NOTEBOOKS_DIR = REPO_ROOT / "notebooks"
RESULTS_DIR = REPO_ROOT / "results"

# Scripts to execute (in order)
EXPERIMENTS = [
    {
        "name": "Abortion and Crime Application",
        "script": "abortion_crime_application.py",
        "outputs": [
            "abortion_crime_baseline.csv",
            "abortion_crime_replications.csv",
            "abortion_crime_summary.csv",
            "abortion_crime_summary.tex",
        ],
        "description": "Repeated cross-fitted DML on a state-year crime panel",
    },
]


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def print_header(text: str, char: str = "=") -> None:
    """Print a formatted header."""
    width = 70
    print("\n" + char * width)
    print(text.center(width))
    print(char * width + "\n")


def run_experiment(experiment: dict) -> bool:
    """
    Run a single experiment script.

    Returns True if successful, False otherwise.
    """
    script_path = NOTEBOOKS_DIR / experiment["script"]

    print(f"Running: {experiment['name']}")
    print(f"   Script: {experiment['script']}")
    print(f"   {experiment['description']}")
    print()

    start_time = time.time()

    try:
        subprocess.run(
            [sys.executable, str(script_path)],
            cwd=str(NOTEBOOKS_DIR),
            check=True,
        )
    except subprocess.CalledProcessError as e:
        elapsed = time.time() - start_time
        print(f"   ✗ Failed after {elapsed:.1f}s")
        print(f"   Exit code: {e.returncode}")
        return False

    elapsed = time.time() - start_time
    print(f"   ✓ Completed in {elapsed:.1f}s")

    missing = [o for o in experiment["outputs"] if not (RESULTS_DIR / o).exists()]
    if missing:
        print(f"   ⚠ Missing outputs: {missing}")
        return False

    print(f"   ✓ All {len(experiment['outputs'])} outputs generated")
    return True


def verify_outputs() -> None:
    """Print summary of all generated outputs."""
    print_header("OUTPUT SUMMARY", "-")

    print("Generated files in results/:\n")

    csvs = sorted(RESULTS_DIR.glob("*.csv"))
    texs = sorted(RESULTS_DIR.glob("*.tex"))

    if csvs:
        print("  Tables (CSV):")
        for f in csvs:
            print(f"    • {f.name}")

    if texs:
        print("\n  Tables (LaTeX):")
        for f in texs:
            print(f"    • {f.name}")


# =============================================================================
# MAIN EXECUTION
# =============================================================================

def main() -> int:
    """
    Main entry point for replication.

    Returns exit code: 0 for success, 1 for failure.
    """
    print_header("REPEATED DML REPLICATION")

    print(f"Repository: {REPO_ROOT}")
    print(f"Results will be saved to: {RESULTS_DIR}")

    RESULTS_DIR.mkdir(exist_ok=True)

    total_start = time.time()
    successes = 0
    failures = 0

    for i, experiment in enumerate(EXPERIMENTS, 1):
        print_header(f"EXPERIMENT {i}/{len(EXPERIMENTS)}", "-")

        if run_experiment(experiment):
            successes += 1
        else:
            failures += 1

    total_elapsed = time.time() - total_start

    print_header("REPLICATION COMPLETE")

    print(f"  Total time: {total_elapsed:.1f}s ({total_elapsed/60:.1f} minutes)")
    print(f"  Experiments: {successes} succeeded, {failures} failed")

    if failures == 0:
        verify_outputs()
        print("\n✓ All tables have been reproduced successfully.\n")
        return 0
    else:
        print("\n✗ Some experiments failed. Check output above for details.\n")
        return 1


if __name__ == "__main__":
    sys.exit(main())
