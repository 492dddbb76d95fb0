"""Heatmap of which trials contribute to which outcome."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.colors import ListedColormap
from matplotlib.patches import Patch

from ..config.settings import settings
from ..core.models import OutcomeSpec
from ..meta.catalog import OUTCOMES
from ..utils.logging import get_logger

logger = get_logger(__name__)


def contribution_matrix(frame: pd.DataFrame, outcomes: Sequence[OutcomeSpec] = OUTCOMES) -> pd.DataFrame:
    """Trials by outcomes: 1 meets the definition, 0 reported only, NaN not reported."""
    matrix = pd.DataFrame(index=frame["label"])
    for outcome in outcomes:
        if outcome.flag_column in frame.columns:
            matrix[outcome.name] = pd.to_numeric(frame[outcome.flag_column], errors="coerce").to_numpy()
        else:
            matrix[outcome.name] = np.nan
    return matrix


def create_contribution_heatmap(
    frame: pd.DataFrame,
    output_path: Path,
    outcomes: Sequence[OutcomeSpec] = OUTCOMES,
) -> Path:
    """Colour the cells where a trial enters the sensitivity or primary analysis."""
    matrix = contribution_matrix(frame, outcomes)
    colors = ["mediumspringgreen", "seagreen"]
    fig, ax = plt.subplots(figsize=(0.25 * matrix.shape[1] + 3, 0.18 * matrix.shape[0] + 2))
    ax.imshow(np.ma.masked_invalid(matrix.to_numpy()), cmap=ListedColormap(colors), vmin=0, vmax=1, aspect="auto")

    ax.set_xticks(range(matrix.shape[1]))
    ax.set_xticklabels(matrix.columns, rotation=90, fontsize=6)
    ax.set_yticks(range(matrix.shape[0]))
    ax.set_yticklabels(matrix.index, fontsize=6)
    ax.set_xticks(np.arange(-0.5, matrix.shape[1]), minor=True)
    ax.set_yticks(np.arange(-0.5, matrix.shape[0]), minor=True)
    ax.grid(which="minor", color="lightgrey", linewidth=0.5)
    ax.tick_params(which="both", length=0)
    ax.legend(
        handles=[
            Patch(facecolor=colors[0], label="Sensitivity analysis"),
            Patch(facecolor=colors[1], label="Primary analysis (meeting outcome definitions)"),
        ],
        fontsize=7, loc="upper left", bbox_to_anchor=(1.01, 1.0), frameon=False,
    )

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=settings.figure_dpi, bbox_inches="tight")
    plt.close(fig)
    logger.info(f"Contribution heatmap saved to {output_path}")
    return output_path
