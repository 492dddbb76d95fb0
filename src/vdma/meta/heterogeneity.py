"""Between-study heterogeneity: Cochran's Q, DerSimonian-Laird tau² and I²."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
from scipy import stats


@dataclass(frozen=True)
class Heterogeneity:
    """Heterogeneity statistics for one set of study effects.

    ``q`` and ``p_q`` are ``None`` for a single study, where the
    statistic is undefined and tau² and I² are reported as zero.
    """

    k: int
    te_fixed: float
    se_fixed: float
    q: Optional[float]
    df: int
    p_q: Optional[float]
    tau2: float
    i2: float

    @property
    def interpretation(self) -> str:
        if self.i2 < 25:
            return "low heterogeneity"
        if self.i2 < 50:
            return "moderate heterogeneity"
        if self.i2 < 75:
            return "substantial heterogeneity"
        return "considerable heterogeneity"


def cochran_q(effects: np.ndarray, weights: np.ndarray) -> float:
    pooled = np.sum(weights * effects) / np.sum(weights)
    return float(np.sum(weights * (effects - pooled) ** 2))


def dersimonian_laird_tau2(q: float, weights: np.ndarray) -> float:
    """Estimate between-study variance (tau²) using DerSimonian-Laird."""
    df = len(weights) - 1
    c = np.sum(weights) - np.sum(weights ** 2) / np.sum(weights)
    return float(max(0.0, (q - df) / c)) if c > 0 else 0.0


def i_squared(q: float, df: int) -> float:
    """Percentage of variation due to heterogeneity; 0 when Q <= df."""
    if q <= 0 or q <= df:
        return 0.0
    return float(100.0 * (q - df) / q)


def estimate_heterogeneity(effects: Sequence[float], variances: Sequence[float]) -> Heterogeneity:
    """Compute Q, tau² and I² for effects with known sampling variances.

    Args:
        effects: Per-study effects on the pooling scale.
        variances: Matching sampling variances, all strictly positive.

    Raises:
        ValueError: If the inputs are empty, of unequal length, or a
            variance is not positive.
    """
    y = np.asarray(effects, dtype=float)
    v = np.asarray(variances, dtype=float)
    if y.size == 0:
        raise ValueError("No effect sizes provided")
    if y.shape != v.shape:
        raise ValueError("effects and variances must have the same length")
    if np.any(v <= 0) or not np.all(np.isfinite(v)):
        raise ValueError("variances must be positive and finite")

    weights = 1.0 / v
    k = int(y.size)
    te_fixed = float(np.sum(weights * y) / np.sum(weights))
    se_fixed = float(np.sqrt(1.0 / np.sum(weights)))
    if k == 1:
        return Heterogeneity(k=1, te_fixed=te_fixed, se_fixed=se_fixed, q=None, df=0, p_q=None, tau2=0.0, i2=0.0)

    df = k - 1
    q = cochran_q(y, weights)
    return Heterogeneity(
        k=k,
        te_fixed=te_fixed,
        se_fixed=se_fixed,
        q=q,
        df=df,
        p_q=float(stats.chi2.sf(q, df)),
        tau2=dersimonian_laird_tau2(q, weights),
        i2=i_squared(q, df),
    )
