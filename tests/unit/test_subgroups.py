"""Unit tests for subgroup partitioning and the between-level test."""

import pytest
from scipy import stats

from vdma.core.models import SubgroupSpec
from vdma.meta.effects import binary_effect
from vdma.meta.subgroups import SubgroupPartitioner


@pytest.fixture
def spec():
    return SubgroupSpec(
        key="region",
        title="Region",
        source_column="region",
        levels=("A", "B", "C"),
        codes={1: "A", 2: "B", 3: "C"},
    )


@pytest.fixture
def partitioner():
    return SubgroupPartitioner()


@pytest.fixture
def two_level_effects(make_effect):
    effects = [
        make_effect("a1", 0.0, 0.1),
        make_effect("a2", 0.2, 0.1),
        make_effect("b1", 1.0, 0.1),
        make_effect("b2", 1.2, 0.1),
    ]
    assignments = {"a1": "A", "a2": "A", "b1": "B", "b2": "B"}
    return effects, assignments


class TestPartition:
    """Tests for SubgroupPartitioner.partition."""

    def test_groups_follow_declared_order(self, partitioner, spec, two_level_effects) -> None:
        effects, assignments = two_level_effects
        groups = partitioner.partition(effects, assignments, spec)
        assert list(groups) == ["A", "B", "C"]
        assert [e.study_id for e in groups["A"]] == ["a1", "a2"]
        assert groups["C"] == []


class TestAnalyze:
    """Tests for SubgroupPartitioner.analyze."""

    def test_between_level_statistic(self, partitioner, spec, two_level_effects) -> None:
        """Q_total=10.4, Q_within=0.2 per level, so Q_between=10 on 1 df."""
        effects, assignments = two_level_effects
        result = partitioner.analyze(effects, assignments, spec)
        assert set(result.levels) == {"A", "B"}
        assert result.q_within == pytest.approx({"A": 0.2, "B": 0.2})
        assert result.q_total == pytest.approx(10.4)
        assert result.q_between == pytest.approx(10.0)
        assert result.df_between == 1
        assert result.p_between == pytest.approx(stats.chi2.sf(10.0, 1))
        assert result.overall.k == 4

    def test_q_decomposition(self, partitioner, spec, two_level_effects) -> None:
        effects, assignments = two_level_effects
        result = partitioner.analyze(effects, assignments, spec)
        assert result.q_between + sum(result.q_within.values()) == pytest.approx(result.q_total)

    def test_empty_level_is_omitted(self, partitioner, spec, two_level_effects) -> None:
        effects, assignments = two_level_effects
        result = partitioner.analyze(effects, assignments, spec)
        assert "C" not in result.levels
        assert result.omitted_levels == {"C": "no studies"}

    def test_unassigned_study_only_in_overall(self, partitioner, spec, two_level_effects, make_effect) -> None:
        effects, assignments = two_level_effects
        effects = effects + [make_effect("x", 3.0, 0.1)]
        result = partitioner.analyze(effects, {**assignments, "x": None}, spec)
        assert result.unassigned == ("x",)
        assert result.overall.k == 5
        assert result.q_total == pytest.approx(10.4)

    def test_single_level_has_no_between_test(self, partitioner, spec, make_effect) -> None:
        effects = [make_effect("a1", 0.0, 0.1), make_effect("a2", 0.3, 0.2)]
        result = partitioner.analyze(effects, {"a1": "A", "a2": "A"}, spec)
        assert list(result.levels) == ["A"]
        assert result.q_between is None
        assert result.df_between is None
        assert result.p_between is None

    def test_degenerate_level_is_omitted(self, partitioner, spec, gdm, make_binary_study) -> None:
        """A level whose only study has no events in either arm is left out."""
        studies = [
            make_binary_study("a1", 0, 30, 0, 30),
            make_binary_study("b1", 10, 50, 5, 50),
            make_binary_study("b2", 6, 40, 4, 40),
        ]
        effects = [binary_effect(s, gdm) for s in studies]
        result = partitioner.analyze(effects, {"a1": "A", "b1": "B", "b2": "B"}, spec)
        assert list(result.levels) == ["B"]
        assert "zero events" in result.omitted_levels["A"]
        assert result.overall.k == 3
