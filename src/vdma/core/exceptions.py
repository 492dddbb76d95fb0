"""Exception hierarchy for the pooling engine.

Only :class:`DatasetError` is meant to stop a batch.  The others are
raised by the per-study and per-pool computations and are converted to
audit notes by the orchestrator.
"""

from __future__ import annotations

from typing import Optional


class MetaAnalysisError(Exception):
    """Base class for all errors raised by the engine."""


class InvalidInputError(MetaAnalysisError):
    """A study eligible for an outcome has a missing or malformed field."""

    def __init__(self, study_id: str, outcome: str, reason: str) -> None:
        self.study_id = study_id
        self.outcome = outcome
        self.reason = reason
        super().__init__(f"Study {study_id} excluded from {outcome}: {reason}")


class InsufficientDataError(MetaAnalysisError):
    """Too few studies to perform the requested pooling."""

    def __init__(self, k: int, required: int, context: Optional[str] = None) -> None:
        self.k = k
        self.required = required
        where = f" for {context}" if context else ""
        super().__init__(f"Need at least {required} studies{where}, found {k}")


class DegenerateEffectError(MetaAnalysisError):
    """The pooled effect is undefined, e.g. no events in any arm of any study."""


class DatasetError(MetaAnalysisError):
    """The input dataset or catalog is structurally unusable."""
