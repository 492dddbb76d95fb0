"""Funnel plot for small-study effects."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

import matplotlib.pyplot as plt
import numpy as np
from scipy import stats

from ..config.settings import settings
from ..core.models import EffectMeasure, PooledEstimate
from ..utils.logging import get_logger

logger = get_logger(__name__)


def funnel_limits(estimate: PooledEstimate, points: int = 100) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Standard errors and the pseudo-CI bounds drawn around ``estimate.te``."""
    ses = np.array([s.se for s in estimate.studies])
    z_crit = stats.norm.ppf(1 - estimate.alpha / 2)
    se_range = np.linspace(0, max(ses.max(), 1e-6) * 1.1, points)
    return se_range, estimate.te - z_crit * se_range, estimate.te + z_crit * se_range


def create_funnel_plot(estimate: PooledEstimate, output_path: Path, title: Optional[str] = None) -> Path:
    """Plot study effects against their standard error.

    The y axis is inverted so the most precise studies sit at the top,
    and the dashed lines mark the pseudo confidence region around the
    random-effects estimate.
    """
    effects = np.array([s.effect for s in estimate.studies])
    ses = np.array([s.se for s in estimate.studies])

    fig, ax = plt.subplots(figsize=(7, 6))
    ax.scatter(effects, ses, s=50, color="steelblue", edgecolors="black", alpha=0.8, zorder=3)

    se_range, lower, upper = funnel_limits(estimate)
    ax.plot(lower, se_range, "k--", linewidth=1)
    ax.plot(upper, se_range, "k--", linewidth=1)
    ax.axvline(estimate.te, color="darkred", linewidth=1, label="Random effects")

    ax.invert_yaxis()
    ax.set_ylabel("Standard error")
    ax.set_xlabel("log(Risk ratio)" if estimate.measure is EffectMeasure.RR else "Mean difference")
    ax.legend(loc="lower right", fontsize=8)
    if title:
        ax.set_title(title, fontsize=11, fontweight="bold")

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=settings.figure_dpi, bbox_inches="tight")
    plt.close(fig)
    logger.info(f"Funnel plot saved to {output_path}")
    return output_path
