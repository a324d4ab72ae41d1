"""
Error Taxonomy
==============

Exceptions raised by the repeated cross-fitting pipeline.

Every error carries the replication (and, where relevant, fold) index that
produced it so a failed run can be reproduced from its seed. The classes
define ``__reduce__`` so they keep these identifiers when pickled across
joblib worker processes.
"""

from typing import Optional


class RepeatedDMLError(Exception):
    """Base class for all errors raised by ``repeated_dml``."""

    def __init__(
        self,
        message: str,
        replication: Optional[int] = None,
        fold: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.replication = replication
        self.fold = fold

    def __reduce__(self):
        return (self.__class__, (self.message, self.replication, self.fold))

    def __str__(self) -> str:
        where = []
        if self.replication is not None:
            where.append(f"replication={self.replication}")
        if self.fold is not None:
            where.append(f"fold={self.fold}")
        if where:
            return f"{self.message} [{', '.join(where)}]"
        return self.message


class FoldFitError(RepeatedDMLError):
    """A nuisance model failed to fit or predict on a fold."""


class InsufficientDataError(RepeatedDMLError):
    """Residuals are too few or too degenerate for the final OLS."""


class DegenerateInputError(RepeatedDMLError):
    """Fewer than two replications are available for aggregation."""


__all__ = [
    "RepeatedDMLError",
    "FoldFitError",
    "InsufficientDataError",
    "DegenerateInputError",
]
