"""Descriptive tables of the included trials.

Counts and percentages of trials by a characteristic (overall and by
control type), participants randomised, and the number of outcomes
each trial contributes.  All functions take the flat frame produced by
:func:`vdma.io.loader.records_to_frame`.
"""

from __future__ import annotations

from typing import Dict, Optional, Sequence

import pandas as pd

from ..core.models import OutcomeGroup, OutcomeSpec
from .catalog import OUTCOMES

CONTROL_TYPES: Dict[int, str] = {1: "placebo", 2: "active"}


def tabulate(frame: pd.DataFrame, column: str, by_control: bool = True) -> pd.DataFrame:
    """Number and percentage of trials per value of ``column``.

    Missing values are excluded from the denominator.  With
    ``by_control`` the table also has ``n``/``%`` columns for placebo
    and active control trials.
    """
    if column not in frame.columns:
        raise KeyError(f"Column {column!r} not found")

    def _counts(sub: pd.DataFrame, suffix: str) -> pd.DataFrame:
        counts = sub[column].value_counts(dropna=True).sort_index()
        total = counts.sum()
        pct = counts / total * 100 if total else counts.astype(float)
        return pd.DataFrame({f"n{suffix}": counts, f"%{suffix}": pct.round(1)})

    table = _counts(frame, "")
    if by_control and "control_type" in frame.columns:
        for code, name in CONTROL_TYPES.items():
            table = table.join(_counts(frame[frame["control_type"] == code], f"_{name}"), how="left")
        table = table.fillna(0)
    table.index.name = column
    return table


def participants_summary(frame: pd.DataFrame) -> pd.DataFrame:
    """Sum and distribution of participants randomised, overall and by control type."""
    groups = {"all": frame}
    if "control_type" in frame.columns:
        for code, name in CONTROL_TYPES.items():
            groups[name] = frame[frame["control_type"] == code]
    rows = {}
    for name, sub in groups.items():
        values = sub["n_randomized"].dropna()
        rows[name] = {
            "trials": int(len(sub)),
            "total": float(values.sum()),
            "min": float(values.min()) if len(values) else float("nan"),
            "median": float(values.median()) if len(values) else float("nan"),
            "mean": float(values.mean()) if len(values) else float("nan"),
            "max": float(values.max()) if len(values) else float("nan"),
        }
    return pd.DataFrame.from_dict(rows, orient="index")


def outcomes_per_trial(
    frame: pd.DataFrame,
    outcomes: Sequence[OutcomeSpec] = OUTCOMES,
    group: Optional[OutcomeGroup] = None,
) -> pd.Series:
    """Number of outcomes each trial reported, meeting the definition or not."""
    selected = [o for o in outcomes if group is None or o.group is group]
    columns = [o.flag_column for o in selected if o.flag_column in frame.columns]
    reported = frame[columns].notna().sum(axis=1)
    reported.index = frame["label"] if "label" in frame.columns else frame.index
    reported.name = f"n_{group.value if group else 'all'}_outcomes"
    return reported
