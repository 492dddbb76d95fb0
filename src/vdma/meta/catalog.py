"""Static catalogs of the review's outcomes and subgroup covariates.

Every analysis the batch runner performs is derived from these two
tables: each outcome is pooled for its primary analysis, for the
sensitivity analysis when it is binary, and once per applicable
subgroup covariate.
"""

from __future__ import annotations

from typing import Dict, Tuple

from ..core.models import (
    EffectMeasure,
    OutcomeGroup,
    OutcomeScale,
    OutcomeSpec,
    StudyDataset,
    SubgroupSpec,
)


def _binary(key: str, name: str, group: OutcomeGroup) -> OutcomeSpec:
    return OutcomeSpec(
        key=key,
        name=name,
        scale=OutcomeScale.BINARY,
        measure=EffectMeasure.RR,
        group=group,
    )


def _continuous(key: str, name: str, group: OutcomeGroup, unit: str) -> OutcomeSpec:
    return OutcomeSpec(
        key=key,
        name=name,
        scale=OutcomeScale.CONTINUOUS,
        measure=EffectMeasure.MD,
        group=group,
        unit=unit,
        sensitivity=False,
    )


BINARY_OUTCOMES: Tuple[OutcomeSpec, ...] = (
    _binary("pe", "Pre-eclampsia", OutcomeGroup.MATERNAL),
    _binary("ght", "Gestational hypertension", OutcomeGroup.MATERNAL),
    _binary("gdm", "Gestational diabetes", OutcomeGroup.MATERNAL),
    _binary("PreLabor", "Preterm labor", OutcomeGroup.MATERNAL),
    _binary("csection", "Cesarean delivery", OutcomeGroup.MATERNAL),
    _binary("MatHosp", "Maternal hospitalization", OutcomeGroup.MATERNAL),
    _binary("MHypercalcem", "Maternal hypercalcemia", OutcomeGroup.MATERNAL),
    _binary("MHypocalcem", "Maternal hypocalcemia", OutcomeGroup.MATERNAL),
    _binary("MHypercalciu", "Maternal hypercalciuria", OutcomeGroup.MATERNAL),
    _binary("iud", "Stillbirth or fetal death", OutcomeGroup.BIRTH),
    _binary("lbw", "Low birthweight (<2500 g)", OutcomeGroup.BIRTH),
    _binary("PretermBirth", "Preterm birth (<37 weeks)", OutcomeGroup.BIRTH),
    _binary("sga", "Small-for-gestational age", OutcomeGroup.BIRTH),
    _binary("CongMal", "Congenital malformation", OutcomeGroup.BIRTH),
    _binary("nicu", "NICU admission", OutcomeGroup.BIRTH),
    _binary("NeoDeath", "Neonatal death", OutcomeGroup.INFANT),
    _binary("NHypercalcem", "Neonatal hypercalcemia", OutcomeGroup.INFANT),
    _binary("NHypocalcem", "Neonatal hypocalcemia", OutcomeGroup.INFANT),
    _binary("RespInf", "Respiratory infections", OutcomeGroup.INFANT),
    _binary("urti", "Upper respiratory tract infections", OutcomeGroup.INFANT),
    _binary("lrti", "Lower respiratory tract infections", OutcomeGroup.INFANT),
    _binary("asthma", "Asthma or recurrent wheeze by 3 years", OutcomeGroup.INFANT),
)

CONTINUOUS_OUTCOMES: Tuple[OutcomeSpec, ...] = (
    _continuous("delivery", "Maternal 25(OH)D at or near delivery", OutcomeGroup.MATERNAL, "nmol/L"),
    _continuous("bw", "Birthweight", OutcomeGroup.BIRTH, "g"),
    _continuous("bl", "Birth length", OutcomeGroup.BIRTH, "cm"),
    _continuous("hc", "Birth head circumference", OutcomeGroup.BIRTH, "cm"),
    _continuous("ga", "Gestational age", OutcomeGroup.BIRTH, "weeks"),
    _continuous("cord", "Cord 25(OH)D", OutcomeGroup.BIRTH, "nmol/L"),
    _continuous("wei", "Weight at 1 year", OutcomeGroup.INFANT, "kg"),
    _continuous("len", "Length at 1 year", OutcomeGroup.INFANT, "cm"),
    _continuous("hc1", "Head circumference at 1 year", OutcomeGroup.INFANT, "cm"),
    _continuous("waz", "Weight-for-age z score at 1 year", OutcomeGroup.INFANT, "z"),
    _continuous("laz", "Length-for-age z score at 1 year", OutcomeGroup.INFANT, "z"),
    _continuous("hcaz", "Head circumference-for-age z score at 1 year", OutcomeGroup.INFANT, "z"),
    _continuous("nbmc", "Neonatal bone mineral content", OutcomeGroup.INFANT, "g"),
    _continuous("nbmd", "Neonatal bone mineral density", OutcomeGroup.INFANT, "g/cm2"),
    _continuous("ibmc", "Infant bone mineral content", OutcomeGroup.INFANT, "g"),
    _continuous("ibmd", "Infant bone mineral density", OutcomeGroup.INFANT, "g/cm2"),
)

OUTCOMES: Tuple[OutcomeSpec, ...] = BINARY_OUTCOMES + CONTINUOUS_OUTCOMES

# Pair-level dose data exist for every binary outcome but only the
# first eleven continuous ones.
_DOSE_OUTCOMES = frozenset(
    [o.key for o in BINARY_OUTCOMES] + [o.key for o in CONTINUOUS_OUTCOMES[:11]]
)

_INTER_TYPE_LEVELS = (
    "Vitamin D alone versus placebo or no intervention",
    "Vitamin D + Ca + vitamins + minerals versus Ca + vitamins + minerals",
    "Vitamin D versus vitamin D of a lower dose",
    "Vitamin D + Ca + vitamins + minerals versus vitamin D of a lower dose + Ca + vitamins + minerals",
)

_HEALTH_LEVELS = (
    "Generally healthy",
    "GDM/GDM risk factors",
    "vitamin D deficiency",
    "vitamin D deficiency + GDM/GDM risk factors",
    "vitamin D deficiency + PE risk factors",
    "vitamin D deficiency + hypocalcaemia",
    "HIV",
)


def _baseline(cutoff: int) -> SubgroupSpec:
    below = f"Baseline vitamin D level <{cutoff} nmol/L"
    above = f"Baseline vitamin D level >={cutoff} nmol/L"
    return SubgroupSpec(
        key=f"bl_vitd{cutoff}",
        title=f"Maternal baseline vitamin D (cutoff {cutoff} nmol/L)",
        source_column=f"baseline_vitd{cutoff}",
        levels=(below, above, "unreported"),
        codes={0: below, 1: above},
        fallback="unreported",
    )


SUBGROUPS: Tuple[SubgroupSpec, ...] = (
    SubgroupSpec(
        key="inter_type",
        title="Intervention type",
        source_column="inter_type",
        levels=_INTER_TYPE_LEVELS,
        codes={1: _INTER_TYPE_LEVELS[0], 2: _INTER_TYPE_LEVELS[1], 3: _INTER_TYPE_LEVELS[2]},
        fallback=_INTER_TYPE_LEVELS[3],
    ),
    SubgroupSpec(
        key="pop_type",
        title="Population type",
        source_column="pop_type",
        levels=("General population", "Population with morbidities"),
        codes={1: "General population"},
        fallback="Population with morbidities",
    ),
    SubgroupSpec(
        key="vitd_range",
        title="Intervention dose",
        source_column="vitd_range",
        levels=(
            "Vitamin D dose <= 600 IU/day",
            "Vitamin D dose > 600, <= 2000 IU/day",
            "Vitamin D dose > 2000 IU/day",
            "other",
        ),
        codes={
            1: "Vitamin D dose <= 600 IU/day",
            2: "Vitamin D dose > 600, <= 2000 IU/day",
            3: "Vitamin D dose > 2000 IU/day",
        },
        fallback="other",
        dataset=StudyDataset.PAIRS,
        outcomes=_DOSE_OUTCOMES,
    ),
    SubgroupSpec(
        key="dose_freq",
        title="Dose frequency",
        source_column="dose_freq",
        levels=("regular", "bolus", "unreported", "other"),
        codes={1: "regular", 2: "bolus", 3: "unreported"},
        fallback="other",
    ),
    SubgroupSpec(
        key="supp_form",
        title="Supplement form",
        source_column="supp_form",
        levels=("vitamin D3", "vitamin D2", "other"),
        codes={3: "vitamin D3", 2: "vitamin D2"},
        fallback="other",
    ),
    SubgroupSpec(
        key="ini_trimester",
        title="Supplementation initiation",
        source_column="ini_trimester",
        levels=("1st trimester", "2nd trimester", "3rd trimester", "other"),
        codes={1: "1st trimester", 2: "2nd trimester", 3: "3rd trimester"},
        fallback="other",
    ),
    _baseline(30),
    _baseline(50),
    SubgroupSpec(
        key="pop_health",
        title="Health condition",
        source_column="pop_health",
        levels=_HEALTH_LEVELS,
        codes={i + 1: label for i, label in enumerate(_HEALTH_LEVELS[:6])},
        fallback="HIV",
        outcomes=frozenset({"gdm"}),
    ),
    SubgroupSpec(
        key="pop_health_collapsed",
        title="Health condition (GDM risk groups collapsed)",
        source_column="pop_health",
        levels=tuple(level for level in _HEALTH_LEVELS if level != "vitamin D deficiency + GDM/GDM risk factors"),
        codes={
            1: "Generally healthy",
            2: "GDM/GDM risk factors",
            3: "vitamin D deficiency",
            4: "GDM/GDM risk factors",
            5: "vitamin D deficiency + PE risk factors",
            6: "vitamin D deficiency + hypocalcaemia",
        },
        fallback="HIV",
        outcomes=frozenset({"gdm"}),
    ),
)

# Cochrane risk-of-bias (RoB 1) domains in display order
ROB_DOMAINS: Dict[str, str] = {
    "rob_seq_gen": "Random sequence generation",
    "rob_alloc_conc": "Allocation concealment",
    "rob_blind_part": "Blinding of participants and personnel",
    "rob_blind_outcome": "Blinding of outcome assessment",
    "rob_incomp_outcome": "Incomplete outcome data",
    "rob_select_report": "Selective reporting",
    "rob_other_bias": "Other bias",
}


def outcome_by_key(key: str) -> OutcomeSpec:
    for outcome in OUTCOMES:
        if outcome.key == key:
            return outcome
    raise KeyError(f"Unknown outcome: {key}. Available: {[o.key for o in OUTCOMES]}")


def subgroup_by_key(key: str) -> SubgroupSpec:
    for subgroup in SUBGROUPS:
        if subgroup.key == key:
            return subgroup
    raise KeyError(f"Unknown subgroup covariate: {key}. Available: {[s.key for s in SUBGROUPS]}")


def subgroups_for(outcome: OutcomeSpec) -> Tuple[SubgroupSpec, ...]:
    return tuple(s for s in SUBGROUPS if s.applies_to(outcome))
