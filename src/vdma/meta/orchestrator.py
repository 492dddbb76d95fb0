"""Batch orchestration of every outcome and analysis variant.

The runner expands the outcome and subgroup catalogs into independent
analysis cells (primary, sensitivity, one per subgroup covariate),
computes each cell and collects the results into a single
:class:`BatchResult` keyed by ``(outcome, variant)``.  A cell that cannot
be computed is skipped with an :class:`AnalysisNote`; only a corrupt
dataset or catalog stops the run.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..config.settings import settings
from ..core.exceptions import DatasetError, DegenerateEffectError, InsufficientDataError
from ..core.models import (
    AnalysisKey,
    AnalysisNote,
    AnalysisResult,
    BatchResult,
    Eligibility,
    NoteKind,
    OutcomeSpec,
    StudyDataset,
    StudyRecord,
    SubgroupSpec,
)
from ..utils.logging import get_logger
from .analyzer import MetaAnalyzer
from .catalog import OUTCOMES, SUBGROUPS
from .effects import compute_effects
from .subgroups import SubgroupPartitioner

logger = get_logger(__name__)

PRIMARY = "primary"
SENSITIVITY = "sensitivity"

StudyMap = Mapping[str, StudyRecord]


@dataclass(frozen=True)
class AnalysisCell:
    """One (outcome, variant) unit of work."""

    outcome: OutcomeSpec
    variant: str
    subgroup: Optional[SubgroupSpec] = None

    @property
    def key(self) -> AnalysisKey:
        return AnalysisKey(self.outcome.key, self.variant)


def is_eligible(study: StudyRecord, outcome: OutcomeSpec, variant: str) -> bool:
    """Primary and subgroup analyses use trials meeting the outcome
    definition; the sensitivity analysis uses every trial reporting it."""
    flag = study.eligibility_for(outcome.key)
    if variant == SENSITIVITY:
        return flag.reported
    return flag is Eligibility.MEETS_DEFINITION


class OutcomeBatchRunner:
    """Compute every analysis cell of the outcome and subgroup catalogs.

    Args:
        outcomes: Outcome catalog; defaults to all 38 review outcomes.
        subgroups: Subgroup covariate catalog.
        analyzer: Pooler shared by all cells.
        min_studies: Minimum eligible studies for a cell to be pooled;
            defaults to ``settings.min_studies``.
        max_workers: Worker threads; 1 computes cells in-line.
    """

    def __init__(
        self,
        outcomes: Sequence[OutcomeSpec] = OUTCOMES,
        subgroups: Sequence[SubgroupSpec] = SUBGROUPS,
        analyzer: Optional[MetaAnalyzer] = None,
        min_studies: Optional[int] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        self.outcomes = tuple(outcomes)
        self.subgroups = tuple(subgroups)
        self.analyzer = analyzer or MetaAnalyzer()
        self.partitioner = SubgroupPartitioner(self.analyzer)
        self.min_studies = settings.min_studies if min_studies is None else min_studies
        self.max_workers = settings.max_workers if max_workers is None else max_workers

    def plan(self) -> List[AnalysisCell]:
        """List the analysis cells in catalog order."""
        cells: List[AnalysisCell] = []
        for outcome in self.outcomes:
            cells.append(AnalysisCell(outcome, PRIMARY))
            if outcome.sensitivity:
                cells.append(AnalysisCell(outcome, SENSITIVITY))
            for subgroup in self.subgroups:
                if subgroup.applies_to(outcome):
                    cells.append(AnalysisCell(outcome, subgroup.variant, subgroup))
        return cells

    def _validate(self, trials: StudyMap, pairs: Optional[StudyMap]) -> None:
        if not self.outcomes:
            raise DatasetError("Outcome catalog is empty")
        keys = [o.key for o in self.outcomes]
        if len(set(keys)) != len(keys):
            raise DatasetError("Outcome catalog contains duplicate keys")
        for name, dataset in (("trials", trials), ("pairs", pairs)):
            if dataset is None:
                continue
            if not isinstance(dataset, Mapping):
                raise DatasetError(f"{name} dataset must map study ids to StudyRecord")
            for study_id, record in dataset.items():
                if not isinstance(record, StudyRecord):
                    raise DatasetError(f"{name} dataset entry {study_id!r} is not a StudyRecord")

    def run(self, trials: StudyMap, pairs: Optional[StudyMap] = None) -> BatchResult:
        """Run all cells against the trial-level (and optional pair-level) data.

        Raises:
            DatasetError: If the catalog or the datasets are unusable.
        """
        self._validate(trials, pairs)
        cells = self.plan()
        logger.info(f"Running {len(cells)} analyses over {len(trials)} studies")

        if self.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                outputs = list(pool.map(lambda cell: self.run_cell(cell, trials, pairs), cells))
        else:
            outputs = [self.run_cell(cell, trials, pairs) for cell in cells]

        batch = BatchResult()
        for cell, (result, notes) in zip(cells, outputs):
            if result is not None:
                batch.results[cell.key] = result
            batch.notes.extend(notes)
        logger.info(f"Batch complete: {len(batch.results)} results, {len(batch.skipped)} skipped")
        return batch

    def run_cell(
        self,
        cell: AnalysisCell,
        trials: StudyMap,
        pairs: Optional[StudyMap] = None,
    ) -> Tuple[Optional[AnalysisResult], List[AnalysisNote]]:
        """Compute one cell, returning its result (or ``None``) and its notes."""
        outcome, variant = cell.outcome, cell.variant
        notes: List[AnalysisNote] = []

        def note(kind: NoteKind, message: str, level: Optional[str] = None, study_id: Optional[str] = None) -> None:
            notes.append(AnalysisNote(
                outcome=outcome.key, variant=variant, kind=kind, message=message, level=level, study_id=study_id,
            ))

        dataset: Optional[StudyMap] = trials
        if cell.subgroup is not None and cell.subgroup.dataset is StudyDataset.PAIRS:
            dataset = pairs
        if dataset is None:
            note(NoteKind.MISSING_DATASET, "No pair-level dataset supplied")
            return None, notes

        eligible = [s for s in dataset.values() if is_eligible(s, outcome, variant)]
        effects, excluded = compute_effects(eligible, outcome, alpha=self.analyzer.alpha)
        for exc in excluded:
            logger.warning(str(exc), extra={"outcome": outcome.key, "variant": variant, "study_id": exc.study_id})
            note(NoteKind.EXCLUDED_STUDY, exc.reason, study_id=exc.study_id)

        if len(effects) < self.min_studies:
            message = f"{len(effects)} usable studies, {self.min_studies} required"
            logger.info(f"Skipping {outcome.key}/{variant}: {message}", extra={"outcome": outcome.key, "variant": variant})
            note(NoteKind.INSUFFICIENT_DATA, message)
            return None, notes

        try:
            if cell.subgroup is None:
                return self.analyzer.pool(effects), notes
            assignments: Dict[str, Optional[str]] = {
                s.study_id: cell.subgroup.level_of(s) for s in eligible
            }
            result = self.partitioner.analyze(effects, assignments, cell.subgroup)
        except DegenerateEffectError as exc:
            logger.info(f"Skipping {outcome.key}/{variant}: {exc}", extra={"outcome": outcome.key, "variant": variant})
            note(NoteKind.DEGENERATE, str(exc))
            return None, notes
        except InsufficientDataError as exc:
            note(NoteKind.INSUFFICIENT_DATA, str(exc))
            return None, notes

        for level, reason in result.omitted_levels.items():
            note(NoteKind.OMITTED_LEVEL, reason, level=level)
        for study_id in result.unassigned:
            note(NoteKind.UNASSIGNED_STUDY, f"No {cell.subgroup.key} level", study_id=study_id)
        return result, notes
