"""Meta-analysis of vitamin D supplementation trials in pregnancy.

This package contains the per-study effect calculations, the
DerSimonian-Laird random-effects pooler, subgroup partitioning and the
batch runner that computes every outcome and analysis variant of the
review.
"""

from .analyzer import MetaAnalyzer  # noqa: F401
from .orchestrator import OutcomeBatchRunner  # noqa: F401
from .subgroups import SubgroupPartitioner  # noqa: F401

__all__ = ["MetaAnalyzer", "OutcomeBatchRunner", "SubgroupPartitioner"]
