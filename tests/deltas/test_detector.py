"""Tests for mood delta detection."""

from datetime import timedelta

import pytest

from moodlens.configuration.settings import DeltaSettings
from moodlens.deltas.detector import DeltaDetector, detect_plateau
from moodlens.errors import InvalidInputError
from moodlens.models.mood import DeltaDirection, DeltaType, MoodObservation


@pytest.fixture
def detector():
    return DeltaDetector()


def _types(deltas):
    return [(d.type, d.window.start_index, d.window.end_index) for d in deltas]


class TestAdjacentDeltas:
    """Sudden and gradual transitions between neighbouring scores."""

    def test_small_step_dropped_large_step_sudden(self, detector):
        deltas = detector.detect_scores([4.0, 4.2, 6.5])

        assert len(deltas) == 1
        delta = deltas[0]
        assert delta.type is DeltaType.SUDDEN
        assert delta.from_score == 4.2
        assert delta.to_score == 6.5
        assert delta.magnitude == pytest.approx(2.3)
        assert delta.direction is DeltaDirection.POSITIVE
        assert (delta.window.start_index, delta.window.end_index) == (1, 2)

    def test_sudden_boundary_is_inclusive(self, detector):
        deltas = detector.detect_scores([4.0, 6.0])
        assert _types(deltas) == [(DeltaType.SUDDEN, 0, 1)]

    def test_just_below_sudden_is_not_sudden(self, detector):
        assert detector.detect_scores([4.0, 5.999]) == []

    @pytest.mark.parametrize("start", [0.3, 2.1, 6.2, 7.9])
    def test_two_point_step_between_one_decimal_scores_is_sudden(self, detector, start):
        end = round(start + 2.0, 1)
        deltas = detector.detect_scores([start, end])

        assert _types(deltas) == [(DeltaType.SUDDEN, 0, 1)]
        assert deltas[0].magnitude == abs(end - start)

    def test_gradual_boundary_between_one_decimal_scores(self, detector):
        deltas = detector.detect_scores([2.1, 3.6, 5.1])
        assert _types(deltas) == [(DeltaType.GRADUAL, 0, 1), (DeltaType.GRADUAL, 1, 2)]

    def test_gradual_needs_a_sustained_run(self, detector):
        deltas = detector.detect_scores([3.0, 4.6, 6.2])
        assert _types(deltas) == [(DeltaType.GRADUAL, 0, 1), (DeltaType.GRADUAL, 1, 2)]

    def test_isolated_mid_size_step_dropped(self, detector):
        assert detector.detect_scores([5.0, 6.6, 6.6]) == []

    def test_magnitude_is_exact_difference(self, detector):
        for delta in detector.detect_scores([1.0, 3.7, 0.4, 9.9]):
            assert delta.magnitude == abs(delta.to_score - delta.from_score)


class TestEpisodes:
    """Repairs, celebrations, declines and plateaus."""

    def test_mood_repair_after_decline(self, detector):
        deltas = detector.detect_scores([6.0, 3.0, 4.5])
        assert _types(deltas) == [
            (DeltaType.DECLINE, 0, 1),
            (DeltaType.SUDDEN, 0, 1),
            (DeltaType.MOOD_REPAIR, 1, 2),
        ]
        repair = deltas[-1]
        assert any("Recovery after a 3.0 point decline" == f for f in repair.factors)

    def test_celebration_needs_high_finish(self, detector):
        deltas = detector.detect_scores([4.0, 6.0, 8.0])
        assert (DeltaType.CELEBRATION, 0, 2) in _types(deltas)

    def test_plateau_covers_whole_window(self, detector):
        deltas = detector.detect_scores([5.0, 5.2, 5.1, 5.0])
        assert _types(deltas) == [(DeltaType.PLATEAU, 0, 3)]

    def test_episodes_can_be_disabled(self):
        detector = DeltaDetector(DeltaSettings(detect_episodes=False))
        deltas = detector.detect_scores([6.0, 3.0, 4.5])
        assert {d.type for d in deltas} == {DeltaType.SUDDEN, DeltaType.MOOD_REPAIR}

    def test_detect_plateau_needs_enough_points(self):
        assert not detect_plateau([5.0, 5.0])
        assert detect_plateau([5.0, 5.0, 5.0])


class TestScoring:
    def test_significance_weights_recent_changes(self, detector):
        delta = detector.detect_scores([4.0, 4.2, 6.5])[0]
        assert delta.significance == pytest.approx(7.59)
        assert delta.confidence == 0.8

    def test_significance_is_clamped(self):
        assert DeltaDetector.significance(10.0, DeltaType.MOOD_REPAIR, 1, 1) == 10.0

    def test_endpoint_confidence_pulls_delta_confidence(self, detector):
        obs = [MoodObservation(score=4.0, confidence=0.2), MoodObservation(score=7.0, confidence=0.9)]
        delta = detector.detect(obs)[0]
        assert delta.confidence == pytest.approx(0.7 * 0.8 + 0.3 * 0.2)

    def test_new_descriptors_become_factors(self, detector):
        obs = [
            MoodObservation(score=3.0, descriptors=("concerned",)),
            MoodObservation(score=6.0, descriptors=("concerned", "hopeful")),
        ]
        delta = detector.detect(obs)[0]
        assert "New emotional expressions: hopeful" in delta.factors


class TestValidation:
    def test_fewer_than_two_observations(self, detector):
        assert detector.detect_scores([]) == []
        assert detector.detect_scores([5.0]) == []

    def test_out_of_range_score_rejected(self, detector):
        with pytest.raises(InvalidInputError):
            detector.detect_scores([5.0, 10.5])

    def test_unordered_timestamps_rejected(self, detector, base_time):
        obs = [
            MoodObservation(score=5.0, timestamp=base_time, memory_id="late"),
            MoodObservation(score=8.0, timestamp=base_time - timedelta(hours=1), memory_id="early"),
        ]
        with pytest.raises(InvalidInputError) as exc_info:
            detector.detect(obs)
        assert exc_info.value.field == "timestamp"

    def test_window_carries_timestamps(self, detector, observation_factory, base_time):
        delta = detector.detect(observation_factory([4.0, 7.0]))[0]
        assert delta.window.start_time == base_time
        assert delta.window.end_time == base_time + timedelta(hours=1)
