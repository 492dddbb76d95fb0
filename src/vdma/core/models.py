"""Core domain models for trials, outcomes, covariates and pooled results.

Input records (:class:`StudyRecord`) and the static catalog entries
(:class:`OutcomeSpec`, :class:`SubgroupSpec`) are frozen Pydantic models
shared read-only by every computation.  Results (:class:`PooledEstimate`,
:class:`SubgroupResult`) are frozen as well: they are built once by the
pooling code and never modified afterwards.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, NamedTuple, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class OutcomeScale(str, Enum):
    """Measurement scale of an outcome."""

    BINARY = "binary"
    CONTINUOUS = "continuous"


class EffectMeasure(str, Enum):
    """Summary measure pooled for an outcome."""

    RR = "RR"
    MD = "MD"


class OutcomeGroup(str, Enum):
    MATERNAL = "maternal"
    BIRTH = "birth"
    INFANT = "infant"


class StudyDataset(str, Enum):
    """Granularity of the dataset a covariate is defined on."""

    TRIALS = "trials"
    PAIRS = "pairs"


class Eligibility(str, Enum):
    """Whether a trial reported an outcome and met its definition.

    The source data encode this as NA / 0 / 1 in the ``<outcome>_mcri``
    columns.
    """

    NOT_REPORTED = "not_reported"
    REPORTED_NOT_MEETING = "reported_not_meeting"
    MEETS_DEFINITION = "meets_definition"

    @classmethod
    def from_code(cls, value: Optional[float]) -> "Eligibility":
        if value is None or (isinstance(value, float) and math.isnan(value)):
            return cls.NOT_REPORTED
        if int(value) == 1:
            return cls.MEETS_DEFINITION
        if int(value) == 0:
            return cls.REPORTED_NOT_MEETING
        return cls.NOT_REPORTED

    @property
    def reported(self) -> bool:
        return self is not Eligibility.NOT_REPORTED


class BinaryColumns(NamedTuple):
    """Dataset column names holding one binary outcome."""

    event_t: str
    total_t: str
    event_c: str
    total_c: str


class ContinuousColumns(NamedTuple):
    """Dataset column names holding one continuous outcome."""

    n_t: str
    mean_t: str
    sd_t: str
    n_c: str
    mean_c: str
    sd_c: str


class BinaryOutcomeData(BaseModel):
    """Event counts and totals for the vitamin D (t) and control (c) arms."""

    model_config = ConfigDict(frozen=True)

    event_t: Optional[float] = Field(None, ge=0)
    total_t: Optional[float] = Field(None, ge=0)
    event_c: Optional[float] = Field(None, ge=0)
    total_c: Optional[float] = Field(None, ge=0)

    @model_validator(mode="after")
    def _events_within_totals(self) -> "BinaryOutcomeData":
        for event, total, arm in (
            (self.event_t, self.total_t, "vitamin D"),
            (self.event_c, self.total_c, "control"),
        ):
            if event is not None and total is not None and event > total:
                raise ValueError(f"{arm} arm has more events ({event}) than participants ({total})")
        return self


class ContinuousOutcomeData(BaseModel):
    """Sample size, mean and SD for the vitamin D (t) and control (c) arms."""

    model_config = ConfigDict(frozen=True)

    n_t: Optional[float] = Field(None, gt=0)
    mean_t: Optional[float] = None
    sd_t: Optional[float] = Field(None, ge=0)
    n_c: Optional[float] = Field(None, gt=0)
    mean_c: Optional[float] = None
    sd_c: Optional[float] = Field(None, ge=0)


class StudyRecord(BaseModel):
    """One trial (or one intervention/control pair of a multi-arm trial)."""

    model_config = ConfigDict(frozen=True)

    study_id: str
    study: str
    year: Optional[int] = Field(None, ge=1900, le=2100)
    pair_id: Optional[str] = None
    control_type: Optional[int] = None
    n_randomized: Optional[int] = Field(None, ge=0)

    eligibility: Dict[str, Eligibility] = Field(default_factory=dict)
    binary: Dict[str, BinaryOutcomeData] = Field(default_factory=dict)
    continuous: Dict[str, ContinuousOutcomeData] = Field(default_factory=dict)

    # Covariate key -> level label, already re-labelled from source codes
    covariates: Dict[str, str] = Field(default_factory=dict)
    # Risk-of-bias domain -> 1 high, 2 low, 3 unclear
    risk_of_bias: Dict[str, int] = Field(default_factory=dict)
    # Outcome key -> why its extracted numbers were rejected at load time
    invalid: Dict[str, str] = Field(default_factory=dict)

    @property
    def label(self) -> str:
        return f"{self.study} {self.year}" if self.year is not None else self.study

    def eligibility_for(self, outcome: str) -> Eligibility:
        return self.eligibility.get(outcome, Eligibility.NOT_REPORTED)


class OutcomeSpec(BaseModel):
    """Static definition of one outcome of the review."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., description="Column prefix in the dataset, e.g. 'gdm'")
    name: str
    scale: OutcomeScale
    measure: EffectMeasure
    group: OutcomeGroup
    unit: Optional[str] = None
    sensitivity: bool = Field(True, description="Run the reported-at-all sensitivity analysis")

    @model_validator(mode="after")
    def _measure_matches_scale(self) -> "OutcomeSpec":
        expected = EffectMeasure.RR if self.scale is OutcomeScale.BINARY else EffectMeasure.MD
        if self.measure is not expected:
            raise ValueError(f"{self.key}: {self.scale.value} outcomes are pooled as {expected.value}")
        return self

    @property
    def flag_column(self) -> str:
        return f"{self.key}_mcri"

    @property
    def columns(self) -> Union[BinaryColumns, ContinuousColumns]:
        if self.scale is OutcomeScale.BINARY:
            return BinaryColumns(
                event_t=f"{self.key}_vitd_event",
                total_t=f"{self.key}_vitd_total",
                event_c=f"{self.key}_control_event",
                total_c=f"{self.key}_control_total",
            )
        return ContinuousColumns(
            n_t=f"{self.key}_vitd_n",
            mean_t=f"{self.key}_vitd_mean",
            sd_t=f"{self.key}_vitd_sd",
            n_c=f"{self.key}_control_n",
            mean_c=f"{self.key}_control_mean",
            sd_c=f"{self.key}_control_sd",
        )


class SubgroupSpec(BaseModel):
    """A categorical covariate used to partition studies.

    ``codes`` maps the integer codes found in ``source_column`` to level
    labels.  Codes that are present but not listed fall back to
    ``fallback`` when one is defined; missing codes are never mapped.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    title: str
    source_column: str
    levels: Tuple[str, ...]
    codes: Dict[int, str]
    fallback: Optional[str] = None
    dataset: StudyDataset = StudyDataset.TRIALS
    outcomes: Optional[FrozenSet[str]] = Field(
        None, description="Restrict the covariate to these outcome keys"
    )

    @model_validator(mode="after")
    def _labels_are_levels(self) -> "SubgroupSpec":
        labels = set(self.codes.values())
        if self.fallback is not None:
            labels.add(self.fallback)
        unknown = labels - set(self.levels)
        if unknown:
            raise ValueError(f"{self.key}: labels {sorted(unknown)} are not declared levels")
        return self

    @property
    def variant(self) -> str:
        return f"subgroup:{self.key}"

    def label_for(self, code: Optional[float]) -> Optional[str]:
        if code is None or (isinstance(code, float) and math.isnan(code)):
            return None
        label = self.codes.get(int(code))
        return label if label is not None else self.fallback

    def level_of(self, study: StudyRecord) -> Optional[str]:
        level = study.covariates.get(self.key)
        return level if level in self.levels else None

    def applies_to(self, outcome: OutcomeSpec) -> bool:
        return self.outcomes is None or outcome.key in self.outcomes


class StudyEffect(BaseModel):
    """Per-study effect on the pooling scale, kept for forest and funnel plots."""

    model_config = ConfigDict(frozen=True)

    study_id: str
    label: str
    measure: EffectMeasure
    effect: float
    variance: float
    ci_lower: float
    ci_upper: float
    weight_fixed: float = 0.0
    weight_random: float = 0.0
    corrected: bool = False
    double_zero: bool = False

    n_t: Optional[float] = None
    n_c: Optional[float] = None
    event_t: Optional[float] = None
    event_c: Optional[float] = None
    mean_t: Optional[float] = None
    sd_t: Optional[float] = None
    mean_c: Optional[float] = None
    sd_c: Optional[float] = None

    @property
    def se(self) -> float:
        return math.sqrt(self.variance)

    @property
    def estimate(self) -> float:
        return math.exp(self.effect) if self.measure is EffectMeasure.RR else self.effect


class PooledEstimate(BaseModel):
    """Random-effects pooled result for one set of studies.

    ``te``/``ci_lower_te``/``ci_upper_te`` are on the pooling scale (log
    risk ratio or mean difference); ``estimate``/``ci_lower``/``ci_upper``
    are on the natural scale.  ``q`` and ``p_q`` are ``None`` when only
    one study was pooled.
    """

    model_config = ConfigDict(frozen=True)

    measure: EffectMeasure
    k: int = Field(..., ge=1)
    total_n: float
    events_t: Optional[float] = None
    events_c: Optional[float] = None

    te: float
    se: float
    ci_lower_te: float
    ci_upper_te: float
    estimate: float
    ci_lower: float
    ci_upper: float
    z: float
    p_value: float

    tau2: float
    i2: float
    q: Optional[float] = None
    df: int
    p_q: Optional[float] = None

    te_fixed: float
    se_fixed: float
    alpha: float = 0.05

    studies: Tuple[StudyEffect, ...] = ()


class SubgroupResult(BaseModel):
    """Per-level pooled estimates plus the overall pool and between-level test."""

    model_config = ConfigDict(frozen=True)

    covariate: str
    title: str
    levels: Dict[str, PooledEstimate]
    overall: PooledEstimate
    q_total: Optional[float] = None
    q_within: Dict[str, float] = Field(default_factory=dict)
    q_between: Optional[float] = None
    df_between: Optional[int] = None
    p_between: Optional[float] = None
    omitted_levels: Dict[str, str] = Field(default_factory=dict)
    unassigned: Tuple[str, ...] = ()


class EggerTest(BaseModel):
    """Egger's regression test for funnel-plot asymmetry."""

    model_config = ConfigDict(frozen=True)

    k: int
    intercept: float
    intercept_se: float
    t_value: float
    df: int
    p_value: float
    slope: float
    bias_detected: bool


class AnalysisKey(NamedTuple):
    outcome: str
    variant: str


class NoteKind(str, Enum):
    EXCLUDED_STUDY = "excluded_study"
    INSUFFICIENT_DATA = "insufficient_data"
    DEGENERATE = "degenerate"
    OMITTED_LEVEL = "omitted_level"
    UNASSIGNED_STUDY = "unassigned_study"
    MISSING_DATASET = "missing_dataset"


class AnalysisNote(BaseModel):
    """Audit trail entry for anything excluded, omitted or skipped."""

    model_config = ConfigDict(frozen=True)

    outcome: str
    variant: str
    kind: NoteKind
    message: str
    level: Optional[str] = None
    study_id: Optional[str] = None


AnalysisResult = Union[PooledEstimate, SubgroupResult]


@dataclass
class BatchResult:
    """All pooled results of one batch run, keyed by (outcome, variant)."""

    results: Dict[AnalysisKey, AnalysisResult] = field(default_factory=dict)
    notes: List[AnalysisNote] = field(default_factory=list)

    def get(self, outcome: str, variant: str = "primary") -> Optional[AnalysisResult]:
        return self.results.get(AnalysisKey(outcome, variant))

    def notes_for(self, outcome: str, variant: Optional[str] = None) -> List[AnalysisNote]:
        return [
            n for n in self.notes
            if n.outcome == outcome and (variant is None or n.variant == variant)
        ]

    @property
    def skipped(self) -> List[AnalysisNote]:
        return [
            n for n in self.notes
            if n.kind in (NoteKind.INSUFFICIENT_DATA, NoteKind.DEGENERATE, NoteKind.MISSING_DATASET)
        ]
