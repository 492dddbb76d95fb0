"""Write batch results to CSV and JSON."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from ..core.models import BatchResult, PooledEstimate, SubgroupResult
from ..utils.logging import get_logger

logger = get_logger(__name__)

RESULT_COLUMNS = [
    "outcome", "variant", "level", "measure", "k", "total_n", "events_t", "events_c",
    "estimate", "ci_lower", "ci_upper", "p_value", "tau2", "i2", "q", "df", "p_q",
    "q_between", "df_between", "p_between",
]


def _estimate_row(outcome: str, variant: str, level: str, est: PooledEstimate) -> Dict[str, Any]:
    return {
        "outcome": outcome,
        "variant": variant,
        "level": level,
        "measure": est.measure.value,
        "k": est.k,
        "total_n": est.total_n,
        "events_t": est.events_t,
        "events_c": est.events_c,
        "estimate": est.estimate,
        "ci_lower": est.ci_lower,
        "ci_upper": est.ci_upper,
        "p_value": est.p_value,
        "tau2": est.tau2,
        "i2": est.i2,
        "q": est.q,
        "df": est.df,
        "p_q": est.p_q,
    }


def results_to_frame(batch: BatchResult) -> pd.DataFrame:
    """One row per pooled estimate.

    Subgroup analyses contribute an ``overall`` row carrying the
    between-level test followed by one row per pooled level.
    """
    rows: List[Dict[str, Any]] = []
    for key, result in batch.results.items():
        if isinstance(result, SubgroupResult):
            overall = _estimate_row(key.outcome, key.variant, "overall", result.overall)
            overall.update(
                q_between=result.q_between,
                df_between=result.df_between,
                p_between=result.p_between,
            )
            rows.append(overall)
            for level, est in result.levels.items():
                rows.append(_estimate_row(key.outcome, key.variant, level, est))
        else:
            rows.append(_estimate_row(key.outcome, key.variant, "overall", result))
    return pd.DataFrame(rows, columns=RESULT_COLUMNS)


def notes_to_frame(batch: BatchResult) -> pd.DataFrame:
    return pd.DataFrame(
        [n.model_dump(mode="json") for n in batch.notes],
        columns=["outcome", "variant", "kind", "message", "level", "study_id"],
    )


def save_results(batch: BatchResult, out_dir: Path) -> Dict[str, Path]:
    """Save the summary table, the audit notes and the full results.

    Returns:
        Mapping of artefact name to the path written.
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    paths = {
        "results": out_dir / "pooled_results.csv",
        "notes": out_dir / "analysis_notes.csv",
        "json": out_dir / "pooled_results.json",
    }
    results_to_frame(batch).to_csv(paths["results"], index=False)
    notes_to_frame(batch).to_csv(paths["notes"], index=False)
    json_data = [
        {"outcome": key.outcome, "variant": key.variant, "result": result.model_dump(mode="json")}
        for key, result in batch.results.items()
    ]
    paths["json"].write_text(json.dumps(json_data, indent=2), encoding="utf-8")
    logger.info(f"Saved {len(batch.results)} results to {out_dir}")
    return paths
