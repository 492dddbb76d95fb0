"""Inverse-variance pooling of study effects.

This module defines the :class:`MetaAnalyzer` class which turns a list
of per-study effects into a random-effects :class:`PooledEstimate`.
Weights are ``1/(v_i + tau²)`` with tau² from the DerSimonian-Laird
estimator, confidence intervals use the standard normal critical value
and risk ratios are back-transformed from the log scale.  The
fixed-effect estimate is kept on the result as a diagnostic only.  The
class also provides Egger's test for funnel-plot asymmetry and a data
frame layout suitable for forest plots.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import stats

from ..config.settings import settings
from ..core.exceptions import DegenerateEffectError, InsufficientDataError
from ..core.models import EffectMeasure, EggerTest, PooledEstimate, StudyEffect
from ..utils.logging import get_logger
from .heterogeneity import Heterogeneity, estimate_heterogeneity

logger = get_logger(__name__)


def back_transform(value: float, measure: EffectMeasure) -> float:
    return math.exp(value) if measure is EffectMeasure.RR else value


class MetaAnalyzer:
    """Pool per-study effects under the random-effects model.

    Args:
        alpha: Two-sided significance level of the confidence intervals;
            defaults to ``settings.alpha``.
    """

    def __init__(self, alpha: Optional[float] = None) -> None:
        self.alpha = settings.alpha if alpha is None else alpha
        self.z_crit = float(stats.norm.ppf(1 - self.alpha / 2))

    def pool(self, effects: Sequence[StudyEffect]) -> PooledEstimate:
        """Compute the pooled effect across a set of studies.

        Raises:
            InsufficientDataError: If no effects are given.
            DegenerateEffectError: If every study of a risk-ratio pool
                had zero events in both arms.
        """
        if not effects:
            raise InsufficientDataError(0, 1)
        measure = effects[0].measure
        if any(e.measure is not measure for e in effects):
            raise ValueError("Cannot pool effects measured on different scales")
        if measure is EffectMeasure.RR and all(e.double_zero for e in effects):
            raise DegenerateEffectError(
                f"All {len(effects)} studies have zero events in both arms; risk ratio is undefined"
            )

        y = np.array([e.effect for e in effects])
        v = np.array([e.variance for e in effects])
        het = estimate_heterogeneity(y, v)
        te, se, weights = self._random_effects(y, v, het.tau2)

        fixed_w = 1.0 / v
        studies = tuple(
            e.model_copy(
                update={
                    "weight_fixed": float(100.0 * fw / fixed_w.sum()),
                    "weight_random": float(100.0 * rw / weights.sum()),
                }
            )
            for e, fw, rw in zip(effects, fixed_w, weights)
        )
        return self._build_estimate(measure, te, se, het, studies)

    def _random_effects(self, y: np.ndarray, v: np.ndarray, tau2: float) -> Tuple[float, float, np.ndarray]:
        weights = 1.0 / (v + tau2)
        pooled_effect = float(np.sum(weights * y) / np.sum(weights))
        pooled_se = float(np.sqrt(1.0 / np.sum(weights)))
        return pooled_effect, pooled_se, weights

    def _build_estimate(
        self,
        measure: EffectMeasure,
        te: float,
        se: float,
        het: Heterogeneity,
        studies: Tuple[StudyEffect, ...],
    ) -> PooledEstimate:
        ci_lower_te = te - self.z_crit * se
        ci_upper_te = te + self.z_crit * se
        z_score = te / se if se > 0 else 0.0
        p_value = float(2 * stats.norm.sf(abs(z_score)))
        total_n = float(sum((s.n_t or 0.0) + (s.n_c or 0.0) for s in studies))
        events_t = events_c = None
        if measure is EffectMeasure.RR:
            events_t = float(sum(s.event_t or 0.0 for s in studies))
            events_c = float(sum(s.event_c or 0.0 for s in studies))
        return PooledEstimate(
            measure=measure,
            k=het.k,
            total_n=total_n,
            events_t=events_t,
            events_c=events_c,
            te=te,
            se=se,
            ci_lower_te=ci_lower_te,
            ci_upper_te=ci_upper_te,
            estimate=back_transform(te, measure),
            ci_lower=back_transform(ci_lower_te, measure),
            ci_upper=back_transform(ci_upper_te, measure),
            z=float(z_score),
            p_value=p_value,
            tau2=het.tau2,
            i2=het.i2,
            q=het.q,
            df=het.df,
            p_q=het.p_q,
            te_fixed=het.te_fixed,
            se_fixed=het.se_fixed,
            alpha=self.alpha,
            studies=studies,
        )

    def publication_bias_test(
        self,
        estimate: PooledEstimate,
        min_studies: Optional[int] = None,
    ) -> EggerTest:
        """Assess funnel-plot asymmetry using Egger's regression test.

        The standardised effect ``y/se`` is regressed on precision
        ``1/se``; a non-zero intercept indicates small-study effects.
        """
        required = settings.egger_min_studies if min_studies is None else min_studies
        required = max(required, 3)
        if estimate.k < required:
            raise InsufficientDataError(estimate.k, required, "Egger's test")
        ses = np.array([s.se for s in estimate.studies])
        effects = np.array([s.effect for s in estimate.studies])
        precision = 1.0 / ses
        if np.ptp(precision) == 0:
            raise DegenerateEffectError("All studies have the same precision; Egger's regression is undefined")
        fit = stats.linregress(precision, effects / ses)
        df = estimate.k - 2
        t_value = float(fit.intercept / fit.intercept_stderr) if fit.intercept_stderr > 0 else 0.0
        p_value = float(2 * stats.t.sf(abs(t_value), df))
        return EggerTest(
            k=estimate.k,
            intercept=float(fit.intercept),
            intercept_se=float(fit.intercept_stderr),
            t_value=t_value,
            df=df,
            p_value=p_value,
            slope=float(fit.slope),
            bias_detected=p_value < 0.10,
        )

    def generate_forest_plot_data(self, estimate: PooledEstimate, label: str = "Pooled (random effects)") -> pd.DataFrame:
        """Create a DataFrame for forest plot visualisation on the natural scale."""
        rows = []
        for s in estimate.studies:
            rows.append({
                "study": s.label,
                "effect": s.estimate,
                "ci_lower": back_transform(s.ci_lower, s.measure),
                "ci_upper": back_transform(s.ci_upper, s.measure),
                "weight": s.weight_random,
                "type": "study",
            })
        rows.append({
            "study": label,
            "effect": estimate.estimate,
            "ci_lower": estimate.ci_lower,
            "ci_upper": estimate.ci_upper,
            "weight": 100.0,
            "type": "pooled",
        })
        return pd.DataFrame(rows)
