"""Tests for mood score calculation."""

import random

import pytest

from moodlens.errors import InvalidSubScoreError
from moodlens.models.mood import ConfidenceAssessment, ConfidenceBand, SubScore, SubScoreType
from moodlens.scoring.calculator import MoodScoreCalculator


@pytest.fixture
def calculator():
    return MoodScoreCalculator()


class TestCalculate:
    """Weighted combination of the five sub-scores."""

    def test_reference_memory_scores_six_point_eight(self, calculator, sub_score_factory):
        subs = sub_score_factory()
        assert calculator.weighted_sum(subs) == pytest.approx(6.75)
        assert calculator.calculate(subs) == 6.8

    def test_input_order_does_not_matter(self, calculator, sub_score_factory):
        subs = sub_score_factory()
        expected = calculator.calculate(subs)
        rng = random.Random(7)
        for _ in range(10):
            shuffled = list(subs)
            rng.shuffle(shuffled)
            assert calculator.calculate(shuffled) == expected

    def test_input_weights_are_ignored(self, calculator, sub_score_factory):
        heavy = sub_score_factory(weight=0.9)
        light = sub_score_factory(weight=0.01)
        assert calculator.calculate(heavy) == calculator.calculate(light)

    def test_extremes_stay_in_range(self, calculator, sub_score_factory):
        top = sub_score_factory({t.value: 10.0 for t in SubScoreType})
        bottom = sub_score_factory({t.value: 0.0 for t in SubScoreType})
        assert calculator.calculate(top) == 10.0
        assert calculator.calculate(bottom) == 0.0

    @pytest.mark.parametrize("value", [-0.1, 10.5, float("nan")])
    def test_out_of_range_sub_score_rejected(self, calculator, sub_score_factory, value):
        subs = sub_score_factory()
        subs[0] = SubScore(type=SubScoreType.SENTIMENT, value=value, weight=0.35)
        with pytest.raises(InvalidSubScoreError) as exc_info:
            calculator.calculate(subs, memory_id="m1")
        assert exc_info.value.memory_id == "m1"
        assert exc_info.value.field == "sentiment"

    def test_missing_type_rejected(self, calculator, sub_score_factory):
        subs = sub_score_factory()[:-1]
        with pytest.raises(InvalidSubScoreError, match="historical"):
            calculator.calculate(subs)

    def test_duplicate_type_rejected(self, calculator, sub_score_factory):
        subs = sub_score_factory()
        subs.append(subs[0])
        with pytest.raises(InvalidSubScoreError, match="Duplicate"):
            calculator.calculate(subs)


class TestWeightsConfiguration:
    def test_weights_must_cover_all_types(self):
        with pytest.raises(InvalidSubScoreError):
            MoodScoreCalculator({"sentiment": 1.0})

    def test_weights_must_sum_to_one(self):
        weights = {t.value: 0.25 for t in SubScoreType}
        with pytest.raises(InvalidSubScoreError):
            MoodScoreCalculator(weights)


class TestDescriptorsAndBuild:
    """Descriptor selection and MoodScore assembly."""

    def test_descriptor_band(self, calculator, sub_score_factory):
        subs = sub_score_factory()
        assert calculator.descriptors(6.8, subs) == ("content", "stable")
        assert calculator.descriptors(8.0, subs)[:2] == ("positive", "uplifted")
        assert calculator.descriptors(1.0, subs) == ("distressed", "struggling")

    def test_expressive_and_engaged_descriptors(self, calculator, sub_score_factory):
        subs = [
            SubScore(type=s.type, value=s.value, weight=s.weight, evidence=("a", "b", "c", "d"))
            for s in sub_score_factory()
        ]
        descriptors = calculator.descriptors(6.8, subs)
        assert "expressive" in descriptors
        assert "engaged" in descriptors
        assert len(descriptors) <= 5

    def test_build_attaches_configured_weights(self, calculator, sub_score_factory):
        assessment = ConfidenceAssessment(overall=0.8, band=ConfidenceBand.HIGH)
        mood = calculator.build(list(reversed(sub_score_factory())), assessment, memory_id="m1")

        assert mood.score == 6.8
        assert [s.type for s in mood.sub_scores] == list(SubScoreType)
        assert sum(s.weight for s in mood.sub_scores) == pytest.approx(1.0)
        assert mood.sub_score(SubScoreType.SENTIMENT).weight == 0.35
        assert mood.warnings == ()

    def test_low_confidence_attaches_warning(self, calculator, sub_score_factory):
        assessment = ConfidenceAssessment(overall=0.3, band=ConfidenceBand.LOW)
        mood = calculator.build(sub_score_factory(), assessment, memory_id="m1")

        assert len(mood.warnings) == 1
        assert mood.warnings[0].subject_id == "m1"
        assert mood.confidence_band is ConfidenceBand.LOW
