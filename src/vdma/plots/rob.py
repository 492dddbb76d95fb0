"""Risk-of-bias traffic light figure."""

from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt
import pandas as pd
from matplotlib.lines import Line2D

from ..config.settings import settings
from ..meta.catalog import ROB_DOMAINS
from ..utils.logging import get_logger

logger = get_logger(__name__)

# Cochrane tool coding used in the extraction sheet
ROB_COLORS = {1: ("red", "High risk"), 2: ("limegreen", "Low risk"), 3: ("gold", "Unclear risk")}


def create_traffic_light(frame: pd.DataFrame, output_path: Path) -> Path:
    """One dot per trial and risk-of-bias domain, coloured by judgement.

    ``frame`` needs a ``label`` column and the ``rob_*`` domain columns;
    domains a trial was not assessed on are left blank.
    """
    domains = [d for d in ROB_DOMAINS if d in frame.columns]
    if not domains:
        raise ValueError("No risk-of-bias columns found")
    n_trials = len(frame)
    fig, ax = plt.subplots(figsize=(max(6, 0.22 * n_trials + 3), 0.45 * len(domains) + 2))
    for x, (_, row) in enumerate(frame.iterrows()):
        for y, domain in enumerate(reversed(domains)):
            code = row[domain]
            if pd.isna(code) or int(code) not in ROB_COLORS:
                continue
            ax.scatter(x, y, s=40, color=ROB_COLORS[int(code)][0], edgecolors="gray", linewidths=0.5)

    ax.set_xticks(range(n_trials))
    ax.set_xticklabels(frame["label"], rotation=90, fontsize=7)
    ax.set_yticks(range(len(domains)))
    ax.set_yticklabels([ROB_DOMAINS[d] for d in reversed(domains)], fontsize=8)
    ax.set_xlim(-0.5, n_trials - 0.5)
    ax.set_ylim(-0.5, len(domains) - 0.5)
    ax.set_aspect("equal")
    ax.tick_params(length=0)
    handles = [
        Line2D([0], [0], marker="o", color="w", markerfacecolor=color, markersize=7, label=label)
        for color, label in ROB_COLORS.values()
    ]
    ax.legend(handles=handles, title="Risk of bias", fontsize=7, title_fontsize=8,
              loc="upper left", bbox_to_anchor=(1.01, 1.0), frameon=False)

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=settings.figure_dpi, bbox_inches="tight")
    plt.close(fig)
    logger.info(f"Risk-of-bias figure saved to {output_path}")
    return output_path
