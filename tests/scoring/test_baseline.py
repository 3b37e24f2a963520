"""Tests for emotional baselines."""

import pytest

from moodlens.errors import InsufficientDataError
from moodlens.scoring.baseline import EmotionalBaselineManager


@pytest.fixture
def manager():
    return EmotionalBaselineManager()


@pytest.fixture
def baseline(manager):
    return manager.establish_baseline("alice", [5.0, 6.0, 7.0, 6.0, 6.0])


class TestEstablishBaseline:
    def test_summary_statistics(self, baseline):
        assert baseline.average == pytest.approx(6.0)
        assert baseline.minimum == 5.0
        assert baseline.maximum == 7.0
        assert baseline.spread == 2.0
        assert baseline.volatility == pytest.approx(0.4 ** 0.5)
        assert baseline.cyclical_tendency == "low"
        assert baseline.data_points == 5
        assert baseline.version == 1

    def test_confidence_scales_with_consistency(self, baseline):
        expected = 0.75 * (1 - (0.4 ** 0.5) / 5)
        assert baseline.confidence == pytest.approx(expected)

    def test_too_few_scores(self, manager):
        with pytest.raises(InsufficientDataError) as exc_info:
            manager.establish_baseline("alice", [5.0, 6.0])
        assert exc_info.value.available == 2
        assert exc_info.value.required == 5

    def test_minimum_points_validated(self):
        with pytest.raises(ValueError):
            EmotionalBaselineManager(minimum_data_points=1)


class TestUpdateBaseline:
    def test_major_shift_creates_new_version(self, manager, baseline):
        updated = manager.update_baseline(baseline, [9.0, 9.0])

        assert updated is not baseline
        assert updated.version == 2
        assert updated.data_points == 7
        assert updated.average == pytest.approx(48 / 7)
        assert updated.maximum == 9.0
        assert updated.update_reason == "major_shift"
        assert baseline.version == 1

    def test_routine_update(self, manager, baseline):
        assert manager.update_baseline(baseline, [6.2]).update_reason == "routine_update"

    def test_no_new_scores_returns_same_baseline(self, manager, baseline):
        assert manager.update_baseline(baseline, []) is baseline


class TestDeviation:
    def test_significant_decline(self, manager, baseline):
        deviation = manager.analyze_deviation(baseline, 3.0)
        assert deviation.type == "significant_decline"
        assert deviation.significance == "high"
        assert deviation.magnitude == pytest.approx(3.0)
        assert 1.0 <= deviation.percentile_rank < 50

    def test_normal_variation(self, manager, baseline):
        deviation = manager.analyze_deviation(baseline, 6.5)
        assert deviation.type == "normal_variation"
        assert deviation.significance == "low"
        assert deviation.recommended_actions == ("continue_monitoring",)
