"""Multi-week mood timeline analysis.

Works on the same ``MoodObservation`` sequences as the delta detector but
answers timeline-level questions: overall trend, weekly aggregation,
turning points, velocity and plateaus.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from moodlens.configuration.settings import DeltaSettings
from moodlens.deltas.detector import DeltaDetector, detect_plateau, validate_sequence
from moodlens.errors import InvalidInputError
from moodlens.models.mood import MoodDelta, MoodObservation, MoodTrend, TrendDirection, TurningPoint

logger = logging.getLogger(__name__)

TURNING_POINT_MIN_SWING = 2.0
ACCELERATION_THRESHOLD = 1.0


# =============================================================================
# Trend
# =============================================================================


def classify_trend(scores: Sequence[float], settings: Optional[DeltaSettings] = None) -> MoodTrend:
    """Classify a score sequence as improving, declining, stable or volatile.

    Tie-break first: when the summed rises and summed falls are equal within
    ``trend_tie_tolerance`` the trend is ``stable``, even if the sequence
    swings. Otherwise a sequence whose step sizes vary by at least
    ``volatility_threshold`` and whose direction flips at least twice is
    ``volatile``; then the net change decides.
    """
    settings = settings or DeltaSettings()
    if len(scores) < 2:
        return MoodTrend(TrendDirection.STABLE, 0.0, 0.0, 0.0, 0.0, len(scores))

    diffs = np.diff(np.asarray(scores, dtype=float))
    positive = float(diffs[diffs > 0].sum())
    negative = float(-diffs[diffs < 0].sum())
    net = positive - negative
    volatility = float(diffs.std())

    signs = [s for s in np.sign(diffs) if s != 0]
    alternations = sum(1 for a, b in zip(signs, signs[1:]) if a != b)

    if abs(positive - negative) <= settings.trend_tie_tolerance:
        direction = TrendDirection.STABLE
    elif volatility >= settings.volatility_threshold and alternations >= 2:
        direction = TrendDirection.VOLATILE
    elif net > settings.trend_stable_band:
        direction = TrendDirection.IMPROVING
    elif net < -settings.trend_stable_band:
        direction = TrendDirection.DECLINING
    else:
        direction = TrendDirection.STABLE

    return MoodTrend(
        direction=direction,
        net_change=net,
        positive_total=positive,
        negative_total=negative,
        volatility=volatility,
        sample_size=len(scores),
    )


# =============================================================================
# Aggregation and trajectory helpers
# =============================================================================


def _require_timestamps(observations: Sequence[MoodObservation]) -> None:
    for index, obs in enumerate(observations):
        if obs.timestamp is None:
            raise InvalidInputError(
                f"Observation {index} has no timestamp", memory_id=obs.memory_id, field="timestamp"
            )


def weekly_observations(observations: Sequence[MoodObservation]) -> List[MoodObservation]:
    """Collapse observations into one mean observation per ISO week.

    Each weekly observation is stamped with the Monday of its week.
    """
    _require_timestamps(observations)
    validate_sequence(observations)

    buckets: "OrderedDict[tuple, List[MoodObservation]]" = OrderedDict()
    for obs in observations:
        year, week, _ = obs.timestamp.isocalendar()
        buckets.setdefault((year, week), []).append(obs)

    weekly: List[MoodObservation] = []
    for (year, week), members in buckets.items():
        monday = datetime.fromisocalendar(year, week, 1).replace(tzinfo=members[0].timestamp.tzinfo)
        descriptors: List[str] = []
        for member in members:
            descriptors.extend(d for d in member.descriptors if d not in descriptors)
        confidences = [m.confidence for m in members if m.confidence is not None]
        weekly.append(
            MoodObservation(
                score=float(np.mean([m.score for m in members])),
                timestamp=monday,
                descriptors=tuple(descriptors),
                confidence=float(np.mean(confidences)) if confidences else None,
            )
        )
    return weekly


def _turning_point_type(prev: float, nxt: float) -> str:
    improving = nxt > prev
    if improving and prev < 4 and nxt > 6:
        return "breakthrough"
    if not improving and prev > 6 and nxt < 4:
        return "setback"
    return "realization"


def _describe(point_type: str, score: float) -> str:
    if point_type == "breakthrough":
        return f"Emotional breakthrough with mood improving to {score:.1f}"
    if point_type == "setback":
        return f"Emotional setback with mood declining to {score:.1f}"
    return f"Emotional shift at mood level {score:.1f}"


def identify_turning_points(observations: Sequence[MoodObservation]) -> List[TurningPoint]:
    """Find direction changes and sharp accelerations on a trajectory.

    A direction change counts when the swing through the point totals at
    least 2.0. A same-direction step counts when its rate more than doubles
    with a total change above 2.0.
    """
    validate_sequence(observations)
    points: List[TurningPoint] = []
    for i in range(1, len(observations) - 1):
        prev, curr, nxt = observations[i - 1], observations[i], observations[i + 1]
        before = curr.score - prev.score
        after = nxt.score - curr.score
        swing = abs(before) + abs(after)

        if before * after < 0:
            if swing < TURNING_POINT_MIN_SWING:
                continue
            point_type = _turning_point_type(prev.score, nxt.score)
        elif before != 0 and after != 0:
            acceleration = abs(after / before - 1)
            if not (acceleration > ACCELERATION_THRESHOLD and swing > TURNING_POINT_MIN_SWING):
                continue
            point_type = "breakthrough" if after > 0 else "setback"
        else:
            continue

        factors = [f"Total mood change: {swing:.1f} points"]
        new_descriptors = [d for d in curr.descriptors if d not in prev.descriptors]
        if new_descriptors:
            factors.append(f"New emotions: {', '.join(new_descriptors)}")
        points.append(
            TurningPoint(
                index=i,
                type=point_type,
                magnitude=swing,
                description=_describe(point_type, curr.score),
                timestamp=curr.timestamp,
                factors=tuple(factors),
            )
        )
    return points


def mood_velocity(observations: Sequence[MoodObservation]) -> float:
    """Net mood change per hour between the first and last observation."""
    if len(observations) < 2:
        return 0.0
    _require_timestamps(observations)
    validate_sequence(observations)
    hours = (observations[-1].timestamp - observations[0].timestamp).total_seconds() / 3600
    if hours <= 0:
        return 0.0
    return (observations[-1].score - observations[0].score) / hours


# =============================================================================
# Report
# =============================================================================


@dataclass
class TimelineReport:
    """Everything derived from one historical timeline."""

    trend: MoodTrend
    deltas: List[MoodDelta] = field(default_factory=list)
    turning_points: List[TurningPoint] = field(default_factory=list)
    velocity: float = 0.0
    plateau: bool = False
    weeks: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trend": self.trend.to_dict(),
            "deltas": [d.to_dict() for d in self.deltas],
            "turning_points": [t.to_dict() for t in self.turning_points],
            "velocity": round(self.velocity, 4),
            "plateau": self.plateau,
            "weeks": self.weeks,
        }


class TimelineAnalyzer:
    """Analyzes a subject's mood history across weeks."""

    def __init__(self, settings: Optional[DeltaSettings] = None) -> None:
        self.settings = settings or DeltaSettings()
        self.detector = DeltaDetector(self.settings)

    def analyze(self, observations: Sequence[MoodObservation], *, weekly: bool = True) -> TimelineReport:
        """Trend, deltas and turning points for a timestamped history.

        With ``weekly`` the deltas are detected over ISO-week means, which
        smooths out day-to-day noise in long histories.
        """
        _require_timestamps(observations)
        validate_sequence(observations)

        series = weekly_observations(observations) if weekly else list(observations)
        scores = [o.score for o in series]
        report = TimelineReport(
            trend=classify_trend(scores, self.settings),
            deltas=self.detector.detect(series),
            turning_points=identify_turning_points(series),
            velocity=mood_velocity(observations),
            plateau=detect_plateau(scores, self.settings),
            weeks=len(series) if weekly else 0,
        )
        logger.debug(
            f"Timeline of {len(observations)} observations: {report.trend.direction.value}, "
            f"{len(report.deltas)} deltas"
        )
        return report
