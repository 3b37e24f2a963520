"""Tests for confidence assessment."""

import pytest

from moodlens.errors import InvalidInputError
from moodlens.models.mood import ConfidenceBand
from moodlens.scoring.confidence import ConfidenceAssessor, classify_band


@pytest.fixture
def assessor():
    return ConfidenceAssessor()


class TestClassifyBand:
    @pytest.mark.parametrize(
        "value,band",
        [
            (0.75, ConfidenceBand.HIGH),
            (0.9, ConfidenceBand.HIGH),
            (0.74, ConfidenceBand.MEDIUM),
            (0.5, ConfidenceBand.MEDIUM),
            (0.49, ConfidenceBand.LOW),
            (0.0, ConfidenceBand.LOW),
        ],
    )
    def test_band_boundaries(self, value, band):
        assert classify_band(value) is band


class TestFactors:
    """Derived factor values for the reference sub-scores."""

    def test_derived_factors(self, assessor, sub_score_factory):
        factors = assessor.factors(sub_score_factory())

        assert factors["sentiment_clarity"] == pytest.approx(0.44)
        assert factors["context_consistency"] == pytest.approx(0.8)
        assert factors["indicator_alignment"] == pytest.approx(1 - 1.04 / 25)
        assert factors["historical_consistency"] == pytest.approx(0.7)
        assert factors["linguistic_certainty"] == pytest.approx(0.2)

    def test_history_lowers_consistency_when_scores_swing(self, assessor, sub_score_factory):
        steady = assessor.factors(sub_score_factory(), recent_scores=[6.8, 6.8], current_score=6.8)
        swinging = assessor.factors(sub_score_factory(), recent_scores=[1.0, 9.0], current_score=6.8)
        assert steady["historical_consistency"] == pytest.approx(1.0)
        assert swinging["historical_consistency"] < steady["historical_consistency"]

    def test_supplied_factors_override_derived(self, assessor, sub_score_factory):
        factors = assessor.factors(sub_score_factory(), supplied={"linguistic_certainty": 0.9})
        assert factors["linguistic_certainty"] == 0.9

    def test_unknown_supplied_factor_rejected(self, assessor, sub_score_factory):
        with pytest.raises(InvalidInputError):
            assessor.factors(sub_score_factory(), supplied={"vibes": 0.5})

    def test_out_of_range_supplied_factor_rejected(self, assessor, sub_score_factory):
        with pytest.raises(InvalidInputError):
            assessor.factors(sub_score_factory(), supplied={"sentiment_clarity": 1.5})


class TestAssess:
    def test_reference_assessment(self, assessor, sub_score_factory):
        assessment = assessor.assess(sub_score_factory())

        assert assessment.overall == 0.65
        assert assessment.band is ConfidenceBand.MEDIUM
        assert assessment.uncertainty_areas == ("sentiment_clarity", "linguistic_certainty")

    def test_all_supplied_factors_high(self, assessor, sub_score_factory):
        supplied = {
            "sentiment_clarity": 1.0,
            "context_consistency": 1.0,
            "indicator_alignment": 1.0,
            "historical_consistency": 1.0,
            "linguistic_certainty": 1.0,
        }
        assessment = assessor.assess(sub_score_factory(), supplied=supplied)
        assert assessment.overall == 1.0
        assert assessment.band is ConfidenceBand.HIGH
        assert assessment.uncertainty_areas == ()

    @pytest.mark.parametrize("value", [0.745, 0.748, 0.7499])
    def test_band_uses_unrounded_overall(self, assessor, sub_score_factory, value):
        supplied = dict.fromkeys(
            (
                "sentiment_clarity",
                "context_consistency",
                "indicator_alignment",
                "historical_consistency",
                "linguistic_certainty",
            ),
            value,
        )
        assessment = assessor.assess(sub_score_factory(), supplied=supplied)
        assert assessment.overall == 0.75
        assert assessment.band is ConfidenceBand.MEDIUM

    def test_weights_must_cover_every_factor(self):
        with pytest.raises(InvalidInputError):
            ConfidenceAssessor({"sentiment_clarity": 1.0})
