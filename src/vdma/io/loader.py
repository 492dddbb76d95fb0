"""Read the review's wide CSV extraction sheets into study records.

One row is one trial (``vitd_*.csv``) or one vitamin D/control pair of a
multi-arm trial (``vitdpairs_*.csv``).  Outcome columns follow the
``<key>_vitd_event`` / ``<key>_control_sd`` convention exposed by
:attr:`OutcomeSpec.columns`; covariates are stored as integer codes and
re-labelled through :meth:`SubgroupSpec.label_for`.
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from pydantic import ValidationError

from ..core.exceptions import DatasetError
from ..core.models import (
    BinaryOutcomeData,
    ContinuousOutcomeData,
    Eligibility,
    OutcomeScale,
    OutcomeSpec,
    StudyDataset,
    StudyRecord,
    SubgroupSpec,
)
from ..meta.catalog import OUTCOMES, ROB_DOMAINS, SUBGROUPS
from ..utils.logging import get_logger

logger = get_logger(__name__)

REQUIRED_COLUMNS = ("study_id2", "study")


def _value(row: pd.Series, column: str) -> Optional[float]:
    if column not in row.index:
        return None
    raw = row[column]
    if raw is None:
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(value) else value


def _int_value(row: pd.Series, column: str) -> Optional[int]:
    value = _value(row, column)
    return int(value) if value is not None else None


def _study_id(row: pd.Series, dataset: StudyDataset) -> str:
    base = str(row["study_id2"])
    if dataset is StudyDataset.PAIRS and "pair_id" in row.index and not pd.isna(row["pair_id"]):
        return f"{base}.{row['pair_id']}"
    return base


def _validation_reason(error: ValidationError) -> str:
    first = error.errors()[0]
    message = first["msg"].replace("Value error, ", "")
    field = ".".join(str(part) for part in first["loc"])
    return f"{field}: {message}" if field else message


def _outcome_data(row: pd.Series, outcome: OutcomeSpec, study_id: str) -> Tuple[Optional[Any], Optional[str]]:
    """Build the outcome's arm-level data, or the reason it was rejected."""
    values = {name: _value(row, column) for name, column in outcome.columns._asdict().items()}
    if all(v is None for v in values.values()):
        return None, None
    model = BinaryOutcomeData if outcome.scale is OutcomeScale.BINARY else ContinuousOutcomeData
    try:
        return model(**values), None
    except ValidationError as e:
        reason = _validation_reason(e)
        logger.warning(
            f"Invalid {outcome.key} data for study {study_id}: {reason}",
            extra={"outcome": outcome.key, "study_id": study_id, "reason": reason},
        )
        return None, reason


def _check_columns(df: pd.DataFrame, outcomes: Sequence[OutcomeSpec], subgroups: Sequence[SubgroupSpec]) -> None:
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise DatasetError(f"Dataset is missing required columns: {missing}")
    for outcome in outcomes:
        absent = [c for c in [outcome.flag_column, *outcome.columns] if c not in df.columns]
        if absent:
            logger.warning(f"Outcome {outcome.key} has missing columns {absent}; treated as not reported")
    for subgroup in subgroups:
        if subgroup.source_column not in df.columns:
            logger.info(f"Covariate column {subgroup.source_column} absent; {subgroup.key} levels unmapped")


def frame_to_records(
    df: pd.DataFrame,
    outcomes: Sequence[OutcomeSpec] = OUTCOMES,
    subgroups: Sequence[SubgroupSpec] = SUBGROUPS,
    dataset: StudyDataset = StudyDataset.TRIALS,
) -> Dict[str, StudyRecord]:
    """Convert an extraction sheet into records keyed by study id.

    Raises:
        DatasetError: If identifying columns are missing, an id repeats,
            or a row fails record validation.
    """
    _check_columns(df, outcomes, subgroups)
    records: Dict[str, StudyRecord] = {}
    for _, row in df.iterrows():
        study_id = _study_id(row, dataset)
        if study_id in records:
            raise DatasetError(f"Duplicate study id {study_id}")

        eligibility: Dict[str, Eligibility] = {}
        binary: Dict[str, BinaryOutcomeData] = {}
        continuous: Dict[str, ContinuousOutcomeData] = {}
        invalid: Dict[str, str] = {}
        for outcome in outcomes:
            eligibility[outcome.key] = Eligibility.from_code(_value(row, outcome.flag_column))
            data, reason = _outcome_data(row, outcome, study_id)
            if reason is not None:
                invalid[outcome.key] = reason
            if data is None:
                continue
            if outcome.scale is OutcomeScale.BINARY:
                binary[outcome.key] = data
            else:
                continuous[outcome.key] = data

        covariates: Dict[str, str] = {}
        for subgroup in subgroups:
            label = subgroup.label_for(_value(row, subgroup.source_column))
            if label is not None:
                covariates[subgroup.key] = label

        risk_of_bias: Dict[str, int] = {}
        for column in ROB_DOMAINS:
            code = _int_value(row, column)
            if code is not None:
                risk_of_bias[column] = code

        try:
            records[study_id] = StudyRecord(
                study_id=study_id,
                study=str(row["study"]),
                year=_int_value(row, "year"),
                pair_id=str(row["pair_id"]) if "pair_id" in row.index and not pd.isna(row["pair_id"]) else None,
                control_type=_int_value(row, "control_type"),
                n_randomized=_int_value(row, "n_randomized"),
                eligibility=eligibility,
                binary=binary,
                continuous=continuous,
                covariates=covariates,
                risk_of_bias=risk_of_bias,
                invalid=invalid,
            )
        except ValidationError as e:
            raise DatasetError(f"Study {study_id} failed validation: {e}") from e
    logger.info(f"Loaded {len(records)} {dataset.value} records")
    return records


def load_studies(
    path: Path,
    outcomes: Sequence[OutcomeSpec] = OUTCOMES,
    subgroups: Sequence[SubgroupSpec] = SUBGROUPS,
    dataset: StudyDataset = StudyDataset.TRIALS,
) -> Dict[str, StudyRecord]:
    """Read a CSV extraction sheet from ``path``."""
    try:
        df = pd.read_csv(path)
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise DatasetError(f"Cannot read {path}: {e}") from e
    return frame_to_records(df, outcomes, subgroups, dataset)


def records_to_frame(
    studies: Dict[str, StudyRecord],
    outcomes: Sequence[OutcomeSpec] = OUTCOMES,
) -> pd.DataFrame:
    """Flatten records to one row per study for tabulation and figures.

    Eligibility flags are written back with the source coding
    (1 meets definition, 0 reported only, NA not reported).
    """
    flag_codes = {
        Eligibility.MEETS_DEFINITION: 1,
        Eligibility.REPORTED_NOT_MEETING: 0,
        Eligibility.NOT_REPORTED: None,
    }
    rows: List[Dict[str, Any]] = []
    for record in studies.values():
        row: Dict[str, Any] = {
            "study_id": record.study_id,
            "label": record.label,
            "study": record.study,
            "year": record.year,
            "pair_id": record.pair_id,
            "control_type": record.control_type,
            "n_randomized": record.n_randomized,
        }
        for outcome in outcomes:
            row[outcome.flag_column] = flag_codes[record.eligibility_for(outcome.key)]
        row.update(record.covariates)
        row.update(record.risk_of_bias)
        rows.append(row)
    return pd.DataFrame(rows)
