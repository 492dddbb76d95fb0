"""Per-study effect sizes and their sampling variances.

Binary outcomes are expressed as log risk ratios computed on
continuity-corrected counts; continuous outcomes as raw mean
differences.  Each function returns a :class:`StudyEffect` carrying the
original arm-level numbers so that results can be plotted without going
back to the dataset.
"""

from __future__ import annotations

import math
from typing import Iterable, List, Optional, Tuple

from scipy import stats

from ..config.settings import settings
from ..core.exceptions import InvalidInputError
from ..core.models import EffectMeasure, OutcomeScale, OutcomeSpec, StudyEffect, StudyRecord
from .continuity import apply_continuity_correction, is_double_zero


def _z_crit(alpha: Optional[float] = None) -> float:
    a = settings.alpha if alpha is None else alpha
    return float(stats.norm.ppf(1 - a / 2))


def _require(value: Optional[float], name: str, study: StudyRecord, outcome: OutcomeSpec) -> float:
    if value is None:
        raise InvalidInputError(study.study_id, outcome.key, f"missing {name}")
    value = float(value)
    if not math.isfinite(value):
        raise InvalidInputError(study.study_id, outcome.key, f"non-finite {name}")
    return value


def binary_effect(
    study: StudyRecord,
    outcome: OutcomeSpec,
    increment: Optional[float] = None,
    alpha: Optional[float] = None,
) -> StudyEffect:
    """Log risk ratio and variance for one study.

    ``ln((a/n_t)/(c/n_c))`` with variance ``1/a - 1/n_t + 1/c - 1/n_c``,
    where the counts are continuity corrected when the 2x2 table has an
    empty cell.
    """
    data = study.binary.get(outcome.key)
    if data is None:
        raise InvalidInputError(study.study_id, outcome.key, study.invalid.get(outcome.key, "no event data"))
    event_t = _require(data.event_t, "vitamin D events", study, outcome)
    total_t = _require(data.total_t, "vitamin D total", study, outcome)
    event_c = _require(data.event_c, "control events", study, outcome)
    total_c = _require(data.total_c, "control total", study, outcome)
    if total_t <= 0 or total_c <= 0:
        raise InvalidInputError(study.study_id, outcome.key, "arm total must be positive")
    if event_t > total_t or event_c > total_c:
        raise InvalidInputError(study.study_id, outcome.key, "events exceed arm total")

    counts = apply_continuity_correction(event_t, total_t, event_c, total_c, increment)
    a, n_t, c, n_c = counts.event_t, counts.total_t, counts.event_c, counts.total_c
    log_rr = math.log((a / n_t) / (c / n_c))
    variance = 1.0 / a - 1.0 / n_t + 1.0 / c - 1.0 / n_c
    if variance <= 0:
        # every participant in both arms had the event
        raise InvalidInputError(study.study_id, outcome.key, "log risk ratio has zero variance")

    half_width = _z_crit(alpha) * math.sqrt(variance)
    return StudyEffect(
        study_id=study.study_id,
        label=study.label,
        measure=EffectMeasure.RR,
        effect=log_rr,
        variance=variance,
        ci_lower=log_rr - half_width,
        ci_upper=log_rr + half_width,
        corrected=counts.corrected,
        double_zero=is_double_zero(event_t, event_c),
        n_t=total_t,
        n_c=total_c,
        event_t=event_t,
        event_c=event_c,
    )


def continuous_effect(
    study: StudyRecord,
    outcome: OutcomeSpec,
    alpha: Optional[float] = None,
) -> StudyEffect:
    """Mean difference (vitamin D minus control) and its variance."""
    data = study.continuous.get(outcome.key)
    if data is None:
        raise InvalidInputError(study.study_id, outcome.key, study.invalid.get(outcome.key, "no mean/SD data"))
    n_t = _require(data.n_t, "vitamin D n", study, outcome)
    mean_t = _require(data.mean_t, "vitamin D mean", study, outcome)
    sd_t = _require(data.sd_t, "vitamin D SD", study, outcome)
    n_c = _require(data.n_c, "control n", study, outcome)
    mean_c = _require(data.mean_c, "control mean", study, outcome)
    sd_c = _require(data.sd_c, "control SD", study, outcome)
    if n_t <= 0 or n_c <= 0:
        raise InvalidInputError(study.study_id, outcome.key, "arm size must be positive")
    if sd_t < 0 or sd_c < 0:
        raise InvalidInputError(study.study_id, outcome.key, "negative SD")

    md = mean_t - mean_c
    variance = sd_t ** 2 / n_t + sd_c ** 2 / n_c
    if variance <= 0:
        raise InvalidInputError(study.study_id, outcome.key, "mean difference has zero variance")

    half_width = _z_crit(alpha) * math.sqrt(variance)
    return StudyEffect(
        study_id=study.study_id,
        label=study.label,
        measure=EffectMeasure.MD,
        effect=md,
        variance=variance,
        ci_lower=md - half_width,
        ci_upper=md + half_width,
        n_t=n_t,
        n_c=n_c,
        mean_t=mean_t,
        sd_t=sd_t,
        mean_c=mean_c,
        sd_c=sd_c,
    )


def compute_effect(study: StudyRecord, outcome: OutcomeSpec, alpha: Optional[float] = None) -> StudyEffect:
    if outcome.scale is OutcomeScale.BINARY:
        return binary_effect(study, outcome, alpha=alpha)
    return continuous_effect(study, outcome, alpha=alpha)


def compute_effects(
    studies: Iterable[StudyRecord],
    outcome: OutcomeSpec,
    alpha: Optional[float] = None,
) -> Tuple[List[StudyEffect], List[InvalidInputError]]:
    """Compute effects for every study, collecting exclusions instead of raising.

    Returns:
        The effects of the usable studies, in input order, and the
        :class:`InvalidInputError` raised for each excluded study.
    """
    effects: List[StudyEffect] = []
    excluded: List[InvalidInputError] = []
    for study in studies:
        try:
            effects.append(compute_effect(study, outcome, alpha=alpha))
        except InvalidInputError as exc:
            excluded.append(exc)
    return effects, excluded
