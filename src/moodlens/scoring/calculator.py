"""Mood score calculator.

Combines the five dimension sub-scores into one normalized score:

    score = sentiment*0.35 + psychological*0.25 + relationship*0.20
            + conversational_flow*0.15 + historical*0.05

The result is clamped to [0, 10] and rounded to one decimal place. Weights
attach per sub-score type, so the order of the input list is irrelevant.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from moodlens.configuration.settings import DEFAULT_MOOD_WEIGHTS, MEDIUM_CONFIDENCE_THRESHOLD
from moodlens.errors import InvalidSubScoreError, LowConfidenceWarning
from moodlens.models.mood import ConfidenceAssessment, ConfidenceBand, MoodScore, SubScore, SubScoreType
from moodlens.scoring.sub_scorers import SCORE_MAX, SCORE_MIN, validate_raw_score
from moodlens.scoring.weighting import WeightedCombination, round_half_up

logger = logging.getLogger(__name__)

MAX_DESCRIPTORS = 5
EXPRESSIVE_EVIDENCE_COUNT = 3

# (lower bound, descriptors), checked top-down
SCORE_BANDS: Tuple[Tuple[float, Tuple[str, ...]], ...] = (
    (8.0, ("positive", "uplifted")),
    (6.5, ("content", "stable")),
    (4.5, ("neutral", "balanced")),
    (3.0, ("concerned", "unsettled")),
    (SCORE_MIN, ("distressed", "struggling")),
)


class MoodScoreCalculator:
    """Weighted linear combination of the five sub-scores."""

    def __init__(self, weights: Optional[Mapping[str, float]] = None) -> None:
        weights = dict(weights) if weights is not None else dict(DEFAULT_MOOD_WEIGHTS)
        expected = {t.value for t in SubScoreType}
        if set(weights) != expected:
            raise InvalidSubScoreError(
                f"Mood weights must cover exactly {sorted(expected)}, got {sorted(weights)}",
                field="weights",
            )
        self._combination = WeightedCombination(weights, error_cls=InvalidSubScoreError)

    @property
    def weights(self) -> Dict[str, float]:
        return self._combination.weights

    def _by_type(self, sub_scores: Sequence[SubScore], memory_id: Optional[str]) -> Dict[str, float]:
        values: Dict[str, float] = {}
        for sub in sub_scores:
            key = sub.type.value
            if key in values:
                raise InvalidSubScoreError(
                    f"Duplicate {key} sub-score", memory_id=memory_id, field=key
                )
            values[key] = validate_raw_score(sub.value, sub.type, memory_id)
        missing = sorted(set(self._combination.names) - set(values))
        if missing:
            raise InvalidSubScoreError(
                f"Missing sub-scores: {missing}", memory_id=memory_id, field=missing[0]
            )
        return values

    def weighted_sum(self, sub_scores: Sequence[SubScore], memory_id: Optional[str] = None) -> float:
        """Unrounded weighted sum, validated."""
        return self._combination.combine(self._by_type(sub_scores, memory_id))

    def calculate(self, sub_scores: Sequence[SubScore], memory_id: Optional[str] = None) -> float:
        """Return the clamped score rounded to one decimal place.

        Raises:
            InvalidSubScoreError: Value outside [0, 10], duplicate or missing type
        """
        raw = self.weighted_sum(sub_scores, memory_id)
        return round_half_up(min(SCORE_MAX, max(SCORE_MIN, raw)), 1)

    def descriptors(self, score: float, sub_scores: Sequence[SubScore]) -> Tuple[str, ...]:
        """Human-readable descriptors for a score, at most five."""
        result: List[str] = []
        for lower, labels in SCORE_BANDS:
            if score >= lower:
                result.extend(labels)
                break

        by_type = {sub.type: sub for sub in sub_scores}
        sentiment = by_type.get(SubScoreType.SENTIMENT)
        if sentiment and len(sentiment.evidence) > EXPRESSIVE_EVIDENCE_COUNT:
            result.append("expressive")
        flow = by_type.get(SubScoreType.CONVERSATIONAL_FLOW)
        if flow and len(flow.evidence) > EXPRESSIVE_EVIDENCE_COUNT:
            result.append("engaged")

        ordered = list(dict.fromkeys(result))
        return tuple(ordered[:MAX_DESCRIPTORS])

    def build(
        self,
        sub_scores: Sequence[SubScore],
        assessment: ConfidenceAssessment,
        *,
        memory_id: str = "",
        version: int = 1,
    ) -> MoodScore:
        """Assemble an immutable MoodScore with the configured weights attached."""
        score = self.calculate(sub_scores, memory_id or None)
        weights = self.weights
        ordered = sorted(sub_scores, key=lambda s: list(weights).index(s.type.value))
        attached = tuple(replace(sub, weight=weights[sub.type.value]) for sub in ordered)

        warnings: Tuple[LowConfidenceWarning, ...] = ()
        if assessment.band is ConfidenceBand.LOW:
            warnings = (
                LowConfidenceWarning(
                    f"Mood score for '{memory_id}' has low confidence ({assessment.overall:.2f})",
                    subject_id=memory_id,
                    confidence=assessment.overall,
                    threshold=MEDIUM_CONFIDENCE_THRESHOLD,
                ),
            )
            logger.debug(f"Low confidence mood score for {memory_id}: {assessment.overall:.2f}")

        return MoodScore(
            score=score,
            confidence=assessment.overall,
            descriptors=self.descriptors(score, attached),
            sub_scores=attached,
            memory_id=memory_id,
            version=version,
            assessment=assessment,
            warnings=warnings,
        )
