"""
repeated_dml: Repeated Cross-Fitting for Double Machine Learning
================================================================

Double/debiased machine learning for the partially linear model with S
independent replications of K-fold cross-fitting, aggregated into mean and
median estimates whose standard errors include the variance due to sample
splitting (Chernozhukov et al. 2018).

Quick Start
-----------
>>> from repeated_dml import RepeatedDML
>>> from repeated_dml.data import simulate_crime_panel, build_panel_design, CONTROLS
>>>
>>> panel = simulate_crime_panel(random_state=0)
>>> design = build_panel_design(panel, 'viol', 'efaviol', CONTROLS)
>>>
>>> dml = RepeatedDML(learner='lasso', n_folds=5, n_reps=20)
>>> result = dml.fit(design.data, design.outcome, design.treatment,
...                  covariates=design.covariates, groups=design.groups)
>>> print(result)

Reference
---------
Chernozhukov, V., Chetverikov, D., Demirer, M., Duflo, E., Hansen, C.,
Newey, W. and Robins, J. (2018). "Double/Debiased Machine Learning for
Treatment and Structural Parameters." The Econometrics Journal, 21(1), C1–C68.
"""

import logging

from repeated_dml.aggregation import AggregateResult, aggregate
from repeated_dml.diagnostics import compute_kappa, describe_conditioning
from repeated_dml.estimation import estimate_coefficient
from repeated_dml.estimator import (
    RepeatedDML,
    RepeatedDMLResult,
    ReplicationFailure,
    ReplicationResult,
    run_dml,
)
from repeated_dml.exceptions import (
    DegenerateInputError,
    FoldFitError,
    InsufficientDataError,
    RepeatedDMLError,
)
from repeated_dml.learners import get_learner
from repeated_dml.reporting import (
    format_estimate,
    replication_table,
    summary_table,
    to_latex,
)
from repeated_dml.residualize import FoldResiduals, residualize_fold
from repeated_dml.splitting import make_folds, make_group_folds

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "1.0.0"

__all__ = [
    # Main estimator
    "RepeatedDML",
    "RepeatedDMLResult",
    "ReplicationResult",
    "ReplicationFailure",
    "run_dml",
    # Pipeline stages
    "make_folds",
    "make_group_folds",
    "FoldResiduals",
    "residualize_fold",
    "estimate_coefficient",
    "AggregateResult",
    "aggregate",
    "get_learner",
    # Diagnostics
    "compute_kappa",
    "describe_conditioning",
    # Errors
    "RepeatedDMLError",
    "FoldFitError",
    "InsufficientDataError",
    "DegenerateInputError",
    # Reporting
    "replication_table",
    "summary_table",
    "to_latex",
    "format_estimate",
]
