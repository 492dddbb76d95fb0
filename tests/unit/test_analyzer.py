"""Unit tests for random-effects pooling and Egger's test."""

import math

import pytest
from scipy import stats

from vdma.core.exceptions import DegenerateEffectError, InsufficientDataError
from vdma.core.models import EffectMeasure
from vdma.meta.analyzer import MetaAnalyzer
from vdma.meta.effects import binary_effect, continuous_effect


@pytest.fixture
def analyzer():
    return MetaAnalyzer(alpha=0.05)


class TestPool:
    """Tests for MetaAnalyzer.pool."""

    def test_risk_ratio_with_double_zero_study(self, analyzer, gdm, make_binary_study) -> None:
        """Two RR=2 trials and a double-zero trial pool to an RR between 1 and 2."""
        studies = [
            make_binary_study("A", 10, 50, 5, 50),
            make_binary_study("B", 8, 40, 4, 40),
            make_binary_study("C", 0, 30, 0, 30),
        ]
        result = analyzer.pool([binary_effect(s, gdm) for s in studies])
        assert result.measure is EffectMeasure.RR
        assert result.k == 3
        assert 1.0 < result.estimate < 2.0
        assert result.tau2 == 0.0
        assert result.i2 == 0.0
        assert result.ci_lower < result.estimate < result.ci_upper
        assert result.estimate == pytest.approx(math.exp(result.te))
        assert result.events_t == 18
        assert result.events_c == 9
        assert result.total_n == 240

    def test_mean_difference_without_heterogeneity(self, analyzer, birthweight, make_continuous_study) -> None:
        studies = [
            make_continuous_study("A", 50, 5.0, 1.0, 50, 3.0, 1.0),
            make_continuous_study("B", 100, 6.0, 2.0, 100, 4.0, 2.0),
        ]
        result = analyzer.pool([continuous_effect(s, birthweight) for s in studies])
        assert result.estimate == pytest.approx(2.0)
        assert result.tau2 == pytest.approx(0.0)
        assert result.q == pytest.approx(0.0)
        assert result.events_t is None

    def test_random_effects_with_heterogeneity(self, analyzer, make_effect) -> None:
        """Two studies at 0 and 2 (variance 0.5): tau²=1.5, RE weights 1/2 each."""
        result = analyzer.pool([make_effect("a", 0.0, 0.5), make_effect("b", 2.0, 0.5)])
        assert result.tau2 == pytest.approx(1.5)
        assert result.te == pytest.approx(1.0)
        assert result.se == pytest.approx(1.0)
        assert result.p_value == pytest.approx(2 * stats.norm.sf(1.0))
        assert result.se_fixed == pytest.approx(0.5)
        # random-effects interval is wider than the fixed-effect one
        assert result.ci_upper - result.ci_lower > 2 * analyzer.z_crit * result.se_fixed

    def test_weights_are_percentages(self, analyzer, make_effect) -> None:
        result = analyzer.pool([make_effect("a", 0.1, 0.1), make_effect("b", 0.3, 0.3), make_effect("c", 0.2, 0.2)])
        assert sum(s.weight_random for s in result.studies) == pytest.approx(100.0)
        assert sum(s.weight_fixed for s in result.studies) == pytest.approx(100.0)
        assert result.studies[0].weight_random > result.studies[1].weight_random

    def test_single_study(self, analyzer, make_effect) -> None:
        result = analyzer.pool([make_effect("a", 0.4, 0.04)])
        assert result.k == 1
        assert result.q is None
        assert result.tau2 == 0.0
        assert result.te == pytest.approx(0.4)
        assert result.se == pytest.approx(0.2)

    def test_alpha_controls_interval(self, make_effect) -> None:
        effects = [make_effect("a", 0.1, 0.1), make_effect("b", 0.3, 0.2)]
        wide = MetaAnalyzer(alpha=0.01).pool(effects)
        narrow = MetaAnalyzer(alpha=0.10).pool(effects)
        assert wide.ci_upper - wide.ci_lower > narrow.ci_upper - narrow.ci_lower
        assert narrow.alpha == 0.10

    def test_empty_pool(self, analyzer) -> None:
        with pytest.raises(InsufficientDataError):
            analyzer.pool([])

    def test_mixed_measures(self, analyzer, make_effect) -> None:
        effects = [
            make_effect("a", 0.1, 0.1),
            make_effect("b", 0.1, 0.1, measure=EffectMeasure.RR, event_t=2.0, event_c=1.0),
        ]
        with pytest.raises(ValueError):
            analyzer.pool(effects)

    def test_all_double_zero(self, analyzer, gdm, make_binary_study) -> None:
        studies = [make_binary_study("A", 0, 30, 0, 30), make_binary_study("B", 0, 20, 0, 25)]
        with pytest.raises(DegenerateEffectError):
            analyzer.pool([binary_effect(s, gdm) for s in studies])

    def test_risk_ratios_without_counts(self, analyzer, make_effect) -> None:
        """Log risk ratios given directly, with no arm counts, are pooled."""
        effects = [
            make_effect("a", 0.3, 0.1, measure=EffectMeasure.RR),
            make_effect("b", 0.5, 0.2, measure=EffectMeasure.RR),
        ]
        result = analyzer.pool(effects)
        assert result.k == 2
        assert result.estimate == pytest.approx(math.exp(result.te))
        assert 0.3 < result.te < 0.5

    def test_two_agreeing_mean_differences(self, analyzer, birthweight, make_continuous_study) -> None:
        """(20, 30, 5) vs (22, 28, 6) and (15, 31, 4) vs (14, 29, 5) both give MD = 2."""
        studies = [
            make_continuous_study("A", 20, 30.0, 5.0, 22, 28.0, 6.0),
            make_continuous_study("B", 15, 31.0, 4.0, 14, 29.0, 5.0),
        ]
        result = analyzer.pool([continuous_effect(s, birthweight) for s in studies])
        assert result.measure is EffectMeasure.MD
        assert result.estimate == pytest.approx(2.0)
        assert result.tau2 == pytest.approx(0.0)
        assert result.i2 == pytest.approx(0.0)
        assert result.ci_lower < 2.0 < result.ci_upper
        assert result.se == pytest.approx(result.se_fixed)


class TestPublicationBias:
    """Tests for Egger's regression test."""

    def test_too_few_studies(self, analyzer, make_effect) -> None:
        result = analyzer.pool([make_effect(str(i), 0.1 * i, 0.1 + 0.01 * i) for i in range(5)])
        with pytest.raises(InsufficientDataError):
            analyzer.publication_bias_test(result)

    def test_small_study_effect_detected(self, analyzer, make_effect) -> None:
        """Effects growing with the standard error give an intercept near 1."""
        ses = [0.1, 0.15, 0.2, 0.3, 0.4, 0.5, 0.6, 0.8, 1.0, 1.2]
        effects = [
            make_effect(str(i), 0.1 + se + (0.02 if i % 2 else -0.02), se ** 2)
            for i, se in enumerate(ses)
        ]
        egger = analyzer.publication_bias_test(analyzer.pool(effects), min_studies=10)
        assert egger.k == 10
        assert egger.df == 8
        assert egger.intercept == pytest.approx(1.0, abs=0.2)
        assert egger.bias_detected

    def test_equal_precision(self, analyzer, make_effect) -> None:
        result = analyzer.pool([make_effect(str(i), 0.1 * i, 0.1) for i in range(4)])
        with pytest.raises(DegenerateEffectError):
            analyzer.publication_bias_test(result, min_studies=3)


def test_forest_plot_data(analyzer, gdm, make_binary_study) -> None:
    studies = [make_binary_study("A", 10, 50, 5, 50), make_binary_study("B", 3, 40, 4, 40)]
    result = analyzer.pool([binary_effect(s, gdm) for s in studies])
    frame = analyzer.generate_forest_plot_data(result)
    assert list(frame["type"]) == ["study", "study", "pooled"]
    assert frame.loc[0, "effect"] == pytest.approx(2.0)
    assert frame.loc[2, "effect"] == pytest.approx(result.estimate)
    assert frame.loc[0, "ci_lower"] < 2.0 < frame.loc[0, "ci_upper"]
