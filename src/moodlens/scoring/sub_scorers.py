"""Per-dimension sub-scorers.

Each scorer turns one classifier ``DimensionSignal`` into a ``SubScore``:

- validates the pre-normalized raw score is within [0, 10]
- keeps the classifier's evidence and adds evidence derived from the
  score band and the strongest indicators
- attaches the dimension weight so the calculator can combine by type

Scorers hold no mutable state and may be shared between threads.
"""

from __future__ import annotations

import math
from typing import Dict, List, Optional, Sequence, Tuple

from moodlens.errors import InvalidSubScoreError
from moodlens.models.memory import DimensionSignal
from moodlens.models.mood import SubScore, SubScoreType
from moodlens.scoring.baseline import EmotionalBaseline

SCORE_MIN = 0.0
SCORE_MAX = 10.0

# Indicators weaker than this are not surfaced as evidence
INDICATOR_EVIDENCE_FLOOR = 0.5
MAX_DERIVED_EVIDENCE = 3


def validate_raw_score(value: float, score_type: SubScoreType, memory_id: Optional[str] = None) -> float:
    """Raise ``InvalidSubScoreError`` unless ``value`` is a finite number in [0, 10]."""
    if not isinstance(value, (int, float)) or isinstance(value, bool) or math.isnan(value):
        raise InvalidSubScoreError(
            f"{score_type.value} sub-score must be numeric, got {value!r}",
            memory_id=memory_id,
            field=score_type.value,
        )
    if not SCORE_MIN <= value <= SCORE_MAX:
        raise InvalidSubScoreError(
            f"{score_type.value} sub-score {value} is outside [0, 10]",
            memory_id=memory_id,
            field=score_type.value,
        )
    return float(value)


class SubScorer:
    """Base scorer: raw score passes through, evidence is enriched."""

    score_type: SubScoreType
    indicator_label: str = "indicator"

    def __init__(self, weight: float) -> None:
        self.weight = weight

    def score(self, signal: DimensionSignal, *, memory_id: Optional[str] = None) -> SubScore:
        raw = validate_raw_score(signal.raw_score, self.score_type, memory_id)
        value = self.adjust(raw)
        return SubScore(
            type=self.score_type,
            value=value,
            weight=self.weight,
            evidence=self.evidence(signal, value),
            raw_score=raw,
        )

    def adjust(self, raw: float) -> float:
        return raw

    def band_evidence(self, value: float) -> Optional[str]:
        return None

    def evidence(self, signal: DimensionSignal, value: float) -> Tuple[str, ...]:
        items: List[str] = list(signal.evidence)
        band = self.band_evidence(value)
        if band:
            items.append(band)
        items.extend(self._indicator_evidence(signal.indicators))
        return _dedupe(items)

    def _indicator_evidence(self, indicators: Dict[str, float]) -> List[str]:
        strong = [
            (name, strength)
            for name, strength in indicators.items()
            if strength >= INDICATOR_EVIDENCE_FLOOR
        ]
        strong.sort(key=lambda item: (-item[1], item[0]))
        return [
            f"{self.indicator_label}: {name} ({strength:.2f})"
            for name, strength in strong[:MAX_DERIVED_EVIDENCE]
        ]


class SentimentScorer(SubScorer):
    score_type = SubScoreType.SENTIMENT
    indicator_label = "sentiment"

    def band_evidence(self, value: float) -> Optional[str]:
        if value >= 7.5:
            return "strong positive sentiment"
        if value >= 6.0:
            return "positive sentiment"
        if value <= 2.5:
            return "strong negative sentiment"
        if value <= 4.0:
            return "negative sentiment"
        return "neutral sentiment"


class PsychologicalScorer(SubScorer):
    """Coping, resilience and stress signals."""

    score_type = SubScoreType.PSYCHOLOGICAL
    indicator_label = "coping"

    def band_evidence(self, value: float) -> Optional[str]:
        if value >= 7.0:
            return "strong coping and resilience"
        if value <= 3.0:
            return "elevated stress markers"
        return None


class RelationshipScorer(SubScorer):
    score_type = SubScoreType.RELATIONSHIP
    indicator_label = "relationship"

    def band_evidence(self, value: float) -> Optional[str]:
        if value >= 7.0:
            return "supportive relationship context"
        if value <= 3.0:
            return "strained relationship context"
        return None


class ConversationalFlowScorer(SubScorer):
    score_type = SubScoreType.CONVERSATIONAL_FLOW
    indicator_label = "flow"

    def band_evidence(self, value: float) -> Optional[str]:
        if value >= 7.0:
            return "engaged conversational flow"
        if value <= 3.0:
            return "disrupted conversational flow"
        return None


class HistoricalScorer(SubScorer):
    """Historical-baseline dimension.

    Without a baseline the raw score passes through. With one, the value is
    ``(1 - blend) * raw + blend * baseline.average``.
    """

    score_type = SubScoreType.HISTORICAL
    indicator_label = "history"

    def __init__(
        self,
        weight: float,
        baseline: Optional[EmotionalBaseline] = None,
        blend: float = 0.3,
    ) -> None:
        super().__init__(weight)
        self.baseline = baseline
        self.blend = blend

    def adjust(self, raw: float) -> float:
        if self.baseline is None:
            return raw
        blended = (1 - self.blend) * raw + self.blend * self.baseline.average
        return min(SCORE_MAX, max(SCORE_MIN, blended))

    def band_evidence(self, value: float) -> Optional[str]:
        if self.baseline is None:
            return None
        diff = value - self.baseline.average
        if diff >= 1.0:
            return f"above personal baseline by {diff:.1f}"
        if diff <= -1.0:
            return f"below personal baseline by {abs(diff):.1f}"
        return "consistent with personal baseline"


def build_scorers(
    weights: Dict[str, float],
    baseline: Optional[EmotionalBaseline] = None,
    historical_blend: float = 0.3,
) -> Dict[SubScoreType, SubScorer]:
    """Create one scorer per dimension carrying its configured weight."""
    return {
        SubScoreType.SENTIMENT: SentimentScorer(weights[SubScoreType.SENTIMENT.value]),
        SubScoreType.PSYCHOLOGICAL: PsychologicalScorer(weights[SubScoreType.PSYCHOLOGICAL.value]),
        SubScoreType.RELATIONSHIP: RelationshipScorer(weights[SubScoreType.RELATIONSHIP.value]),
        SubScoreType.CONVERSATIONAL_FLOW: ConversationalFlowScorer(
            weights[SubScoreType.CONVERSATIONAL_FLOW.value]
        ),
        SubScoreType.HISTORICAL: HistoricalScorer(
            weights[SubScoreType.HISTORICAL.value], baseline=baseline, blend=historical_blend
        ),
    }


def _dedupe(items: Sequence[str]) -> Tuple[str, ...]:
    seen = set()
    ordered = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            ordered.append(item)
    return tuple(ordered)
