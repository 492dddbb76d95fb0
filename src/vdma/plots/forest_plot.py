"""Forest plots of pooled and subgroup results."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Tuple, Union

import matplotlib.pyplot as plt
import pandas as pd

from ..config.settings import settings
from ..core.models import EffectMeasure, PooledEstimate, SubgroupResult
from ..meta.analyzer import MetaAnalyzer
from ..utils.logging import get_logger

logger = get_logger(__name__)

# (label, effect, ci_lower, ci_upper, weight, kind)
Row = Tuple[str, Optional[float], Optional[float], Optional[float], Optional[float], str]


def _rows_for(estimate: PooledEstimate, pooled_label: str) -> List[Row]:
    data = MetaAnalyzer(alpha=estimate.alpha).generate_forest_plot_data(estimate, label=pooled_label)
    studies = data[data["type"] == "study"].sort_values("effect")
    pooled = data[data["type"] == "pooled"]
    return [
        (r.study, r.effect, r.ci_lower, r.ci_upper, r.weight, r.type)
        for r in pd.concat([studies, pooled]).itertuples()
    ]


def forest_rows(result: Union[PooledEstimate, SubgroupResult]) -> List[Row]:
    """Lay out the rows of a forest plot from top to bottom."""
    if isinstance(result, PooledEstimate):
        return _rows_for(result, "Random effects model")
    rows: List[Row] = []
    for level, est in result.levels.items():
        rows.append((level, None, None, None, None, "header"))
        rows.extend(_rows_for(est, f"Subtotal (I² = {est.i2:.0f}%)"))
    rows.extend(_rows_for(result.overall, "Random effects model")[-1:])
    return rows


def create_forest_plot(
    result: Union[PooledEstimate, SubgroupResult],
    output_path: Path,
    title: Optional[str] = None,
) -> Path:
    """Draw a forest plot and save it to ``output_path``.

    Studies are squares sized by their random-effects weight, pooled
    estimates are diamonds.  Risk ratios are drawn on a log axis with the
    null line at 1.
    """
    overall = result if isinstance(result, PooledEstimate) else result.overall
    rows = forest_rows(result)
    n = len(rows)
    fig, ax = plt.subplots(figsize=(10, 0.35 * n + 2))
    for i, (label, effect, lo, hi, weight, kind) in enumerate(rows):
        y = n - i
        if kind == "header":
            ax.text(-0.02, y, label, ha="right", va="center", fontsize=9, fontweight="bold",
                    transform=ax.get_yaxis_transform())
            continue
        if kind == "study":
            ax.hlines(y, lo, hi, colors="black", linewidth=1)
            ax.scatter(effect, y, s=weight * 4 + 10, marker="s", color="steelblue", edgecolors="black", zorder=3)
        else:
            ax.fill([lo, effect, hi, effect], [y, y + 0.3, y, y - 0.3], color="darkred", edgecolor="black")
        ax.text(-0.02, y, label, ha="right", va="center", fontsize=8,
                fontweight="bold" if kind == "pooled" else "normal", transform=ax.get_yaxis_transform())
        ax.text(1.02, y, f"{effect:.2f} [{lo:.2f}, {hi:.2f}]", ha="left", va="center", fontsize=8,
                transform=ax.get_yaxis_transform())

    if overall.measure is EffectMeasure.RR:
        ax.set_xscale("log")
        ax.axvline(1.0, color="gray", linestyle="--", linewidth=1)
        ax.set_xlabel("Risk ratio (log scale)")
    else:
        ax.axvline(0.0, color="gray", linestyle="--", linewidth=1)
        ax.set_xlabel("Mean difference")
    ax.set_yticks([])
    ax.set_ylim(0, n + 1)

    footer = f"Heterogeneity: I² = {overall.i2:.0f}%, τ² = {overall.tau2:.4f}"
    if overall.p_q is not None:
        footer += f", p = {overall.p_q:.3f}"
    if isinstance(result, SubgroupResult) and result.p_between is not None:
        footer += f"\nTest for subgroup differences: χ² = {result.q_between:.2f}, df = {result.df_between}, p = {result.p_between:.3f}"
    ax.text(0.0, -0.08, footer, ha="left", va="top", fontsize=8, transform=ax.transAxes)
    if title:
        ax.set_title(title, fontsize=11, fontweight="bold")

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=settings.figure_dpi, bbox_inches="tight")
    plt.close(fig)
    logger.info(f"Forest plot saved to {output_path}")
    return output_path
