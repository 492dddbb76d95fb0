"""Shared fixtures: study and effect builders for the pooling tests."""

import os
from typing import Dict, Optional

import matplotlib
import pytest

os.environ.setdefault("LOG_FORMAT", "text")
matplotlib.use("Agg")

from vdma.core.models import (  # noqa: E402
    BinaryOutcomeData,
    ContinuousOutcomeData,
    EffectMeasure,
    Eligibility,
    StudyEffect,
    StudyRecord,
)
from vdma.meta.catalog import outcome_by_key  # noqa: E402


@pytest.fixture
def gdm():
    return outcome_by_key("gdm")


@pytest.fixture
def birthweight():
    return outcome_by_key("bw")


@pytest.fixture
def make_binary_study():
    """Factory for a trial reporting one binary outcome."""

    def _make(
        study_id: str,
        event_t: Optional[float],
        total_t: Optional[float],
        event_c: Optional[float],
        total_c: Optional[float],
        outcome: str = "gdm",
        flag: Eligibility = Eligibility.MEETS_DEFINITION,
        covariates: Optional[Dict[str, str]] = None,
        year: int = 2020,
    ) -> StudyRecord:
        return StudyRecord(
            study_id=study_id,
            study=f"Trial {study_id}",
            year=year,
            eligibility={outcome: flag},
            binary={
                outcome: BinaryOutcomeData(
                    event_t=event_t, total_t=total_t, event_c=event_c, total_c=total_c
                )
            },
            covariates=covariates or {},
        )

    return _make


@pytest.fixture
def make_continuous_study():
    """Factory for a trial reporting one continuous outcome."""

    def _make(
        study_id: str,
        n_t: float,
        mean_t: float,
        sd_t: float,
        n_c: float,
        mean_c: float,
        sd_c: float,
        outcome: str = "bw",
        flag: Eligibility = Eligibility.MEETS_DEFINITION,
        covariates: Optional[Dict[str, str]] = None,
    ) -> StudyRecord:
        return StudyRecord(
            study_id=study_id,
            study=f"Trial {study_id}",
            year=2020,
            eligibility={outcome: flag},
            continuous={
                outcome: ContinuousOutcomeData(
                    n_t=n_t, mean_t=mean_t, sd_t=sd_t, n_c=n_c, mean_c=mean_c, sd_c=sd_c
                )
            },
            covariates=covariates or {},
        )

    return _make


@pytest.fixture
def make_effect():
    """Factory for a study effect given directly on the pooling scale."""

    def _make(
        study_id: str,
        effect: float,
        variance: float,
        measure: EffectMeasure = EffectMeasure.MD,
        **kwargs,
    ) -> StudyEffect:
        half_width = 1.959964 * variance ** 0.5
        return StudyEffect(
            study_id=study_id,
            label=f"Trial {study_id}",
            measure=measure,
            effect=effect,
            variance=variance,
            ci_lower=effect - half_width,
            ci_upper=effect + half_width,
            n_t=kwargs.pop("n_t", 50.0),
            n_c=kwargs.pop("n_c", 50.0),
            **kwargs,
        )

    return _make
