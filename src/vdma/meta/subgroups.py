"""Subgroup analysis: pool each covariate level and test between levels.

Studies are grouped by the level a :class:`SubgroupSpec` assigns them.
Each level with at least one study is pooled on its own, all studies
are pooled together for the overall row, and the between-subgroup
statistic is the part of Cochran's Q not explained within levels::

    Q_between = Q_total - sum(Q_within)

with ``levels_with_data - 1`` degrees of freedom.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Sequence

from scipy import stats

from ..core.exceptions import DegenerateEffectError
from ..core.models import PooledEstimate, StudyEffect, SubgroupResult, SubgroupSpec
from ..utils.logging import get_logger
from .analyzer import MetaAnalyzer
from .heterogeneity import estimate_heterogeneity

logger = get_logger(__name__)


class SubgroupPartitioner:
    """Run the pooling pipeline independently within covariate levels."""

    def __init__(self, analyzer: Optional[MetaAnalyzer] = None) -> None:
        self.analyzer = analyzer or MetaAnalyzer()

    def partition(
        self,
        effects: Sequence[StudyEffect],
        assignments: Mapping[str, Optional[str]],
        spec: SubgroupSpec,
    ) -> Dict[str, List[StudyEffect]]:
        """Group effects by level in the covariate's declared order.

        ``assignments`` maps study ids to a level label, or ``None`` for
        studies without a level; those are left out of every group.
        """
        groups: Dict[str, List[StudyEffect]] = {level: [] for level in spec.levels}
        for effect in effects:
            level = assignments.get(effect.study_id)
            if level in groups:
                groups[level].append(effect)
        return groups

    def analyze(
        self,
        effects: Sequence[StudyEffect],
        assignments: Mapping[str, Optional[str]],
        spec: SubgroupSpec,
    ) -> SubgroupResult:
        """Pool every level of ``spec`` and the overall set of studies.

        Raises:
            InsufficientDataError: If ``effects`` is empty.
            DegenerateEffectError: If the overall pool is degenerate.
        """
        overall = self.analyzer.pool(effects)
        groups = self.partition(effects, assignments, spec)
        unassigned = tuple(e.study_id for e in effects if assignments.get(e.study_id) not in groups)

        levels: Dict[str, PooledEstimate] = {}
        omitted: Dict[str, str] = {}
        for level, members in groups.items():
            if not members:
                omitted[level] = "no studies"
                continue
            try:
                levels[level] = self.analyzer.pool(members)
            except DegenerateEffectError as exc:
                omitted[level] = str(exc)
                logger.info(
                    f"Subgroup level omitted: {spec.key}={level}",
                    extra={"level": level, "reason": str(exc)},
                )

        q_within = {level: est.q or 0.0 for level, est in levels.items()}
        covered = [e for level in levels for e in groups[level]]
        q_total: Optional[float] = None
        if covered:
            q_total = estimate_heterogeneity([e.effect for e in covered], [e.variance for e in covered]).q or 0.0

        q_between = df_between = p_between = None
        if len(levels) >= 2 and q_total is not None:
            q_between = max(0.0, q_total - sum(q_within.values()))
            df_between = len(levels) - 1
            p_between = float(stats.chi2.sf(q_between, df_between))

        return SubgroupResult(
            covariate=spec.key,
            title=spec.title,
            levels=levels,
            overall=overall,
            q_total=q_total,
            q_within=q_within,
            q_between=q_between,
            df_between=df_between,
            p_between=p_between,
            omitted_levels=omitted,
            unassigned=unassigned,
        )
