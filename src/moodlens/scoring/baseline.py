"""Emotional baseline establishment and deviation analysis.

A baseline summarizes a subject's historical mood scores (mean, range,
volatility) so the historical sub-scorer and review tooling can tell a
normal fluctuation from a significant shift.

Baselines are immutable; ``update_baseline`` returns a new version.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Sequence, Tuple

import numpy as np

from moodlens.errors import InsufficientDataError

logger = logging.getLogger(__name__)

MIN_BASELINE_POINTS = 5
SIGNIFICANT_DEVIATION = 2.0
NOTABLE_DEVIATION = 1.0


def _cyclical_tendency(volatility: float) -> str:
    if volatility > 2.0:
        return "high"
    if volatility > 1.0:
        return "medium"
    return "low"


@dataclass(frozen=True)
class EmotionalBaseline:
    """Historical mood summary for one subject.

    Attributes:
        subject_id: Person or conversation stream the baseline describes
        average: Mean historical mood score
        minimum: Lowest observed score
        maximum: Highest observed score
        volatility: Population standard deviation of the scores
        cyclical_tendency: high / medium / low swing tendency
        confidence: Reliability of the baseline (0-0.95)
        data_points: Number of scores the baseline is built from
        version: Incremented on every update
    """

    subject_id: str
    average: float
    minimum: float
    maximum: float
    volatility: float
    cyclical_tendency: str
    confidence: float
    data_points: int
    version: int = 1
    update_reason: str = "established"
    updated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def spread(self) -> float:
        return self.maximum - self.minimum

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "average": round(self.average, 3),
            "minimum": self.minimum,
            "maximum": self.maximum,
            "spread": round(self.spread, 3),
            "volatility": round(self.volatility, 3),
            "cyclical_tendency": self.cyclical_tendency,
            "confidence": round(self.confidence, 3),
            "data_points": self.data_points,
            "version": self.version,
            "update_reason": self.update_reason,
        }


@dataclass(frozen=True)
class BaselineDeviation:
    """How far one score sits from a baseline."""

    score: float
    magnitude: float
    type: str  # significant_decline, significant_elevation, normal_variation
    percentile_rank: float
    significance: str  # high, medium, low
    recommended_actions: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "magnitude": round(self.magnitude, 3),
            "type": self.type,
            "percentile_rank": round(self.percentile_rank, 1),
            "significance": self.significance,
            "recommended_actions": list(self.recommended_actions),
        }


class EmotionalBaselineManager:
    """Builds and compares against emotional baselines.

    Holds configuration only; baselines are returned to the caller, who owns
    their storage.
    """

    def __init__(self, minimum_data_points: int = MIN_BASELINE_POINTS) -> None:
        if minimum_data_points < 2:
            raise ValueError("minimum_data_points must be at least 2")
        self.minimum_data_points = minimum_data_points

    def establish_baseline(self, subject_id: str, scores: Sequence[float]) -> EmotionalBaseline:
        """Create a baseline from historical scores.

        Raises:
            InsufficientDataError: Fewer than ``minimum_data_points`` scores
        """
        if len(scores) < self.minimum_data_points:
            raise InsufficientDataError(
                f"Baseline for '{subject_id}' needs {self.minimum_data_points} scores, got {len(scores)}",
                available=len(scores),
                required=self.minimum_data_points,
            )

        values = np.asarray(scores, dtype=float)
        volatility = float(values.std())
        base_confidence = min(0.95, 0.5 + len(values) / 20)
        consistency = max(0.3, 1 - volatility / 5)

        baseline = EmotionalBaseline(
            subject_id=subject_id,
            average=float(values.mean()),
            minimum=float(values.min()),
            maximum=float(values.max()),
            volatility=volatility,
            cyclical_tendency=_cyclical_tendency(volatility),
            confidence=base_confidence * consistency,
            data_points=len(values),
        )
        logger.debug(
            f"Established baseline for {subject_id}: avg={baseline.average:.2f} "
            f"volatility={volatility:.2f} n={baseline.data_points}"
        )
        return baseline

    def update_baseline(
        self, baseline: EmotionalBaseline, new_scores: Sequence[float]
    ) -> EmotionalBaseline:
        """Fold new scores into a baseline, weighting by data point count."""
        if not new_scores:
            return baseline

        values = np.asarray(new_scores, dtype=float)
        existing = baseline.data_points
        total = existing + len(values)
        new_average = float(values.mean())

        average = (baseline.average * existing + new_average * len(values)) / total
        combined_variance = (
            baseline.volatility ** 2 * existing + float(values.var()) * len(values)
        ) / total
        volatility = float(np.sqrt(combined_variance))

        shift = abs(new_average - baseline.average)
        if shift >= SIGNIFICANT_DEVIATION:
            reason = "major_shift"
        elif shift >= NOTABLE_DEVIATION:
            reason = "significant_shift"
        else:
            reason = "routine_update"

        return EmotionalBaseline(
            subject_id=baseline.subject_id,
            average=average,
            minimum=min(baseline.minimum, float(values.min())),
            maximum=max(baseline.maximum, float(values.max())),
            volatility=volatility,
            cyclical_tendency=_cyclical_tendency(volatility),
            confidence=min(0.95, baseline.confidence + 0.05),
            data_points=total,
            version=baseline.version + 1,
            update_reason=reason,
        )

    def analyze_deviation(self, baseline: EmotionalBaseline, score: float) -> BaselineDeviation:
        """Compare one score against a baseline."""
        magnitude = abs(score - baseline.average)
        z_score = (score - baseline.average) / max(0.5, baseline.volatility)

        # Rough normal approximation, clipped to [1, 99]
        percentile = 50 + (z_score / 4) * 50
        percentile = min(99.0, percentile) if z_score > 0 else max(1.0, percentile)

        if magnitude >= SIGNIFICANT_DEVIATION:
            if score > baseline.average:
                deviation_type = "significant_elevation"
                actions: Tuple[str, ...] = ("celebrate", "identify_positive_factors", "assess_sustainability")
            else:
                deviation_type = "significant_decline"
                actions = ("monitor", "check_for_triggers", "consider_support")
        else:
            deviation_type = "normal_variation"
            actions = ("continue_monitoring",)

        if magnitude >= SIGNIFICANT_DEVIATION:
            significance = "high"
        elif magnitude >= NOTABLE_DEVIATION:
            significance = "medium"
        else:
            significance = "low"

        return BaselineDeviation(
            score=score,
            magnitude=magnitude,
            type=deviation_type,
            percentile_rank=percentile,
            significance=significance,
            recommended_actions=actions,
        )
