"""Confidence assessment for mood scores.

Five independent factors are combined with the shared weighted-sum
primitive:

- sentiment_clarity (0.30): how far sentiment sits from neutral, and how
  much evidence backs it
- context_consistency (0.25): agreement of relationship and flow scores
- indicator_alignment (0.20): inverted variance of the five sub-scores
- historical_consistency (0.15): inverted variance of recent scores plus
  the current one (0.7 when there is no history)
- linguistic_certainty (0.10): evidence density across dimensions

The classifier may supply measured values for any factor; supplied values
replace the derived ones.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, Mapping, Optional, Sequence

import numpy as np

from moodlens.configuration.settings import (
    DEFAULT_CONFIDENCE_WEIGHTS,
    HIGH_CONFIDENCE_THRESHOLD,
    MEDIUM_CONFIDENCE_THRESHOLD,
)
from moodlens.errors import InvalidInputError
from moodlens.models.mood import ConfidenceAssessment, ConfidenceBand, SubScore, SubScoreType
from moodlens.scoring.weighting import WeightedCombination, round_half_up

logger = logging.getLogger(__name__)

# Largest population variance of values bounded in [0, 10]
MAX_SCORE_VARIANCE = 25.0
NO_HISTORY_CONSISTENCY = 0.7
UNCERTAINTY_FLOOR = 0.5
EVIDENCE_SATURATION = 5


def classify_band(
    confidence: float,
    high: float = HIGH_CONFIDENCE_THRESHOLD,
    medium: float = MEDIUM_CONFIDENCE_THRESHOLD,
) -> ConfidenceBand:
    """Map a confidence value onto the high / medium / low bands."""
    if confidence >= high:
        return ConfidenceBand.HIGH
    if confidence >= medium:
        return ConfidenceBand.MEDIUM
    return ConfidenceBand.LOW


def _clamp_unit(value: float) -> float:
    return min(1.0, max(0.0, value))


class ConfidenceAssessor:
    """Combines confidence factors into an overall value and band."""

    def __init__(
        self,
        weights: Optional[Mapping[str, float]] = None,
        high_threshold: float = HIGH_CONFIDENCE_THRESHOLD,
        medium_threshold: float = MEDIUM_CONFIDENCE_THRESHOLD,
    ) -> None:
        weights = dict(weights) if weights is not None else dict(DEFAULT_CONFIDENCE_WEIGHTS)
        if set(weights) != set(DEFAULT_CONFIDENCE_WEIGHTS):
            raise InvalidInputError(
                f"Confidence weights must cover exactly {sorted(DEFAULT_CONFIDENCE_WEIGHTS)}",
                field="confidence_weights",
            )
        self._combination = WeightedCombination(weights)
        self.high_threshold = high_threshold
        self.medium_threshold = medium_threshold

    # ------------------------------------------------------------------
    # Factor derivation
    # ------------------------------------------------------------------

    @staticmethod
    def sentiment_clarity(sub_scores: Mapping[SubScoreType, SubScore]) -> float:
        sentiment = sub_scores.get(SubScoreType.SENTIMENT)
        if sentiment is None:
            return 0.0
        distance = abs(sentiment.value - 5.0) / 5.0
        support = min(len(sentiment.evidence), EVIDENCE_SATURATION) / EVIDENCE_SATURATION
        return _clamp_unit(0.6 * distance + 0.4 * support)

    @staticmethod
    def context_consistency(sub_scores: Mapping[SubScoreType, SubScore]) -> float:
        relationship = sub_scores.get(SubScoreType.RELATIONSHIP)
        flow = sub_scores.get(SubScoreType.CONVERSATIONAL_FLOW)
        if relationship is None or flow is None:
            return 0.0
        return _clamp_unit(1 - abs(relationship.value - flow.value) / 10)

    @staticmethod
    def indicator_alignment(sub_scores: Mapping[SubScoreType, SubScore]) -> float:
        if not sub_scores:
            return 0.0
        values = np.array([s.value for s in sub_scores.values()], dtype=float)
        return _clamp_unit(1 - float(values.var()) / MAX_SCORE_VARIANCE)

    @staticmethod
    def historical_consistency(
        recent_scores: Optional[Sequence[float]], current_score: Optional[float]
    ) -> float:
        if not recent_scores or current_score is None:
            return NO_HISTORY_CONSISTENCY
        values = np.array(list(recent_scores) + [current_score], dtype=float)
        return _clamp_unit(1 - float(values.var()) / MAX_SCORE_VARIANCE)

    @staticmethod
    def linguistic_certainty(sub_scores: Mapping[SubScoreType, SubScore]) -> float:
        if not sub_scores:
            return 0.0
        density = [
            min(len(s.evidence) / EVIDENCE_SATURATION, 1.0) for s in sub_scores.values()
        ]
        return _clamp_unit(math.fsum(density) / len(density))

    # ------------------------------------------------------------------
    # Assessment
    # ------------------------------------------------------------------

    def factors(
        self,
        sub_scores: Sequence[SubScore],
        *,
        recent_scores: Optional[Sequence[float]] = None,
        current_score: Optional[float] = None,
        supplied: Optional[Mapping[str, float]] = None,
    ) -> Dict[str, float]:
        by_type = {s.type: s for s in sub_scores}
        derived = {
            "sentiment_clarity": self.sentiment_clarity(by_type),
            "context_consistency": self.context_consistency(by_type),
            "indicator_alignment": self.indicator_alignment(by_type),
            "historical_consistency": self.historical_consistency(recent_scores, current_score),
            "linguistic_certainty": self.linguistic_certainty(by_type),
        }
        for name, value in (supplied or {}).items():
            if name not in derived:
                raise InvalidInputError(f"Unknown confidence factor '{name}'", field=name)
            if not 0.0 <= value <= 1.0:
                raise InvalidInputError(
                    f"Confidence factor '{name}' must be within [0, 1], got {value}", field=name
                )
            derived[name] = float(value)
        return derived

    def assess(
        self,
        sub_scores: Sequence[SubScore],
        *,
        recent_scores: Optional[Sequence[float]] = None,
        current_score: Optional[float] = None,
        supplied: Optional[Mapping[str, float]] = None,
    ) -> ConfidenceAssessment:
        """Compute the overall confidence, band and uncertainty areas."""
        factors = self.factors(
            sub_scores,
            recent_scores=recent_scores,
            current_score=current_score,
            supplied=supplied,
        )
        raw = _clamp_unit(self._combination.combine(factors))
        overall = round_half_up(raw, 2)
        uncertain = tuple(name for name in self._combination.names if factors[name] < UNCERTAINTY_FLOOR)
        # Banded before rounding so 0.745 stays below a 0.75 cut
        band = classify_band(raw, self.high_threshold, self.medium_threshold)
        if uncertain:
            logger.debug(f"Confidence {overall:.2f} ({band.value}); uncertain: {', '.join(uncertain)}")
        return ConfidenceAssessment(
            overall=overall,
            band=band,
            factors=factors,
            uncertainty_areas=uncertain,
        )
