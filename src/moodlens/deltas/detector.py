"""Mood delta detection.

Scans a time-ordered sequence of mood observations for significant
transitions:

- adjacent pairs: ``sudden`` at magnitude >= 2.0, ``gradual`` at
  1.5 <= magnitude < 2.0 when the step belongs to a monotonic run of at
  least two same-direction steps; smaller changes are dropped
- ``mood_repair``: recovery of at least 1.0 within the lookback window
  after a trough that followed a decline
- episodes (optional): ``celebration`` rises, ``decline`` falls and a
  whole-window ``plateau``

The detector holds configuration only, so one instance can scan many
conversations concurrently.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from moodlens.configuration.settings import DeltaSettings
from moodlens.errors import InvalidInputError
from moodlens.models.mood import DeltaType, DeltaWindow, MoodDelta, MoodObservation
from moodlens.scoring.weighting import round_half_up

logger = logging.getLogger(__name__)

# Significance per point of change before type and position weighting
SIGNIFICANCE_SCALE = 2.5

TYPE_WEIGHTS: Dict[DeltaType, float] = {
    DeltaType.MOOD_REPAIR: 1.3,
    DeltaType.SUDDEN: 1.2,
    DeltaType.CELEBRATION: 1.15,
    DeltaType.DECLINE: 1.1,
    DeltaType.GRADUAL: 0.8,
    DeltaType.PLATEAU: 0.5,
}

BASE_CONFIDENCE: Dict[DeltaType, float] = {
    DeltaType.MOOD_REPAIR: 0.8,
    DeltaType.SUDDEN: 0.8,
    DeltaType.CELEBRATION: 0.8,
    DeltaType.DECLINE: 0.8,
    DeltaType.GRADUAL: 0.6,
    DeltaType.PLATEAU: 0.7,
}

STRONG_MAGNITUDE = 3.5
STRONG_MAGNITUDE_BOOST = 0.1
INPUT_CONFIDENCE_SHARE = 0.3

# Absorbs float error in score differences; far below score resolution
THRESHOLD_TOLERANCE = 1e-9

# Output order for deltas sharing a window
_TYPE_ORDER = {t: i for i, t in enumerate(DeltaType)}


def _reaches(change: float, threshold: float) -> bool:
    # One-decimal scores differ by values like 1.9999999999999996 for a 2.0 step
    return change >= threshold - THRESHOLD_TOLERANCE


def _sign(value: float) -> int:
    if value > 0:
        return 1
    if value < 0:
        return -1
    return 0


def validate_sequence(observations: Sequence[MoodObservation]) -> None:
    """Raise ``InvalidInputError`` for out-of-range scores or out-of-order timestamps."""
    previous_time = None
    for index, obs in enumerate(observations):
        if not isinstance(obs.score, (int, float)) or math.isnan(obs.score) or not 0.0 <= obs.score <= 10.0:
            raise InvalidInputError(
                f"Observation {index} has score {obs.score!r} outside [0, 10]",
                memory_id=obs.memory_id,
                field="score",
            )
        if obs.timestamp is not None:
            if previous_time is not None and obs.timestamp < previous_time:
                raise InvalidInputError(
                    f"Observation {index} is earlier than its predecessor; sort by time first",
                    memory_id=obs.memory_id,
                    field="timestamp",
                )
            previous_time = obs.timestamp


class DeltaDetector:
    """Stateless transition detector over ordered mood observations."""

    def __init__(self, settings: Optional[DeltaSettings] = None) -> None:
        self.settings = settings or DeltaSettings()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def detect(self, observations: Sequence[MoodObservation]) -> List[MoodDelta]:
        """Return every significant delta in the sequence.

        Fewer than two observations yield an empty list.

        Raises:
            InvalidInputError: Unordered timestamps or scores outside [0, 10]
        """
        if len(observations) < 2:
            return []
        validate_sequence(observations)

        scores = [float(o.score) for o in observations]
        candidates: List[Tuple[DeltaType, int, int]] = []
        candidates.extend(self._adjacent(scores))
        candidates.extend(self._repairs(scores))
        if self.settings.detect_episodes:
            candidates.extend(self._runs(scores))
            candidates.extend(self._plateau(scores))

        deltas = [self._build(delta_type, start, end, observations) for delta_type, start, end in candidates]
        deltas.sort(key=lambda d: (d.window.start_index, d.window.end_index, _TYPE_ORDER[d.type]))
        logger.debug(f"Detected {len(deltas)} deltas over {len(observations)} observations")
        return deltas

    def detect_scores(self, scores: Sequence[float]) -> List[MoodDelta]:
        """Convenience wrapper for bare score sequences."""
        return self.detect([MoodObservation(score=s) for s in scores])

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------

    def _adjacent(self, scores: Sequence[float]) -> List[Tuple[DeltaType, int, int]]:
        diffs = [b - a for a, b in zip(scores, scores[1:])]
        found = []
        for i, diff in enumerate(diffs):
            magnitude = abs(diff)
            if _reaches(magnitude, self.settings.sudden_threshold):
                found.append((DeltaType.SUDDEN, i, i + 1))
            elif _reaches(magnitude, self.settings.gradual_threshold) and self._sustained(diffs, i):
                found.append((DeltaType.GRADUAL, i, i + 1))
        return found

    @staticmethod
    def _sustained(diffs: Sequence[float], index: int) -> bool:
        direction = _sign(diffs[index])
        if direction == 0:
            return False
        before = index > 0 and _sign(diffs[index - 1]) == direction
        after = index + 1 < len(diffs) and _sign(diffs[index + 1]) == direction
        return before or after

    def _repairs(self, scores: Sequence[float]) -> List[Tuple[DeltaType, int, int]]:
        found = []
        lookback = self.settings.repair_lookback
        for trough in range(1, len(scores) - 1):
            if not scores[trough] < scores[trough - 1]:
                continue
            if scores[trough + 1] < scores[trough]:
                continue  # still falling
            window = scores[trough + 1 : trough + 1 + lookback]
            peak = max(window)
            if _reaches(peak - scores[trough], self.settings.repair_min_recovery):
                peak_index = trough + 1 + window.index(peak)
                found.append((DeltaType.MOOD_REPAIR, trough, peak_index))
        return found

    def _runs(self, scores: Sequence[float]) -> List[Tuple[DeltaType, int, int]]:
        """Celebration and decline episodes over maximal monotonic runs."""
        found = []
        start = 0
        n = len(scores)
        while start < n - 1:
            direction = _sign(scores[start + 1] - scores[start])
            end = start + 1
            while end + 1 < n and direction != 0 and _sign(scores[end + 1] - scores[end]) == direction:
                end += 1
            change = scores[end] - scores[start]
            if (
                direction > 0
                and _reaches(change, self.settings.celebration_threshold)
                and scores[end] > self.settings.celebration_floor
            ):
                found.append((DeltaType.CELEBRATION, start, end))
            elif direction < 0 and _reaches(-change, self.settings.decline_threshold):
                found.append((DeltaType.DECLINE, start, end))
            start = end
        return found

    def _plateau(self, scores: Sequence[float]) -> List[Tuple[DeltaType, int, int]]:
        if detect_plateau(scores, self.settings):
            return [(DeltaType.PLATEAU, 0, len(scores) - 1)]
        return []

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def _build(
        self,
        delta_type: DeltaType,
        start: int,
        end: int,
        observations: Sequence[MoodObservation],
    ) -> MoodDelta:
        first, last = observations[start], observations[end]
        magnitude = abs(last.score - first.score)
        span = len(observations) - 1
        return MoodDelta(
            from_score=first.score,
            to_score=last.score,
            type=delta_type,
            significance=self.significance(magnitude, delta_type, end, span),
            confidence=self.confidence(magnitude, delta_type, first, last),
            window=DeltaWindow(
                start_index=start,
                end_index=end,
                start_time=first.timestamp,
                end_time=last.timestamp,
            ),
            factors=self._factors(delta_type, start, end, observations),
        )

    @staticmethod
    def significance(magnitude: float, delta_type: DeltaType, position: int, span: int) -> float:
        """``magnitude * 2.5 * type weight * position factor``, clamped to [0, 10].

        The position factor rises from 0.9 at the start of the window to
        1.1 at its end, so recent changes weigh slightly more.
        """
        position_factor = 0.9 + 0.2 * (position / span if span else 1.0)
        value = magnitude * SIGNIFICANCE_SCALE * TYPE_WEIGHTS[delta_type] * position_factor
        return round_half_up(min(10.0, max(0.0, value)), 2)

    @staticmethod
    def confidence(
        magnitude: float,
        delta_type: DeltaType,
        first: MoodObservation,
        last: MoodObservation,
    ) -> float:
        value = BASE_CONFIDENCE[delta_type]
        if delta_type is not DeltaType.PLATEAU and magnitude >= STRONG_MAGNITUDE:
            value += STRONG_MAGNITUDE_BOOST
        value = min(1.0, value)
        endpoint = [c for c in (first.confidence, last.confidence) if c is not None]
        if endpoint:
            value = (1 - INPUT_CONFIDENCE_SHARE) * value + INPUT_CONFIDENCE_SHARE * min(endpoint)
        return round_half_up(min(1.0, max(0.0, value)), 2)

    @staticmethod
    def _factors(
        delta_type: DeltaType,
        start: int,
        end: int,
        observations: Sequence[MoodObservation],
    ) -> Tuple[str, ...]:
        first, last = observations[start], observations[end]
        factors: List[str] = []
        if delta_type is DeltaType.PLATEAU:
            variance = float(np.var([o.score for o in observations]))
            factors.append(f"Stable mood, variance {variance:.2f}")
        else:
            factors.append(f"Mood change of {abs(last.score - first.score):.1f} points")

        new_descriptors = [d for d in last.descriptors if d not in first.descriptors]
        if new_descriptors:
            factors.append(f"New emotional expressions: {', '.join(new_descriptors)}")

        if delta_type is DeltaType.MOOD_REPAIR and start > 0:
            drop = observations[start - 1].score - first.score
            factors.append(f"Recovery after a {drop:.1f} point decline")

        span = len(observations) - 1
        if span >= 2 and delta_type is not DeltaType.PLATEAU:
            if end * 3 <= span:
                factors.append("Early-window shift")
            elif end * 3 >= 2 * span:
                factors.append("Late-window shift")
        return tuple(factors)


def detect_plateau(scores: Sequence[float], settings: Optional[DeltaSettings] = None) -> bool:
    """True when the whole window is flat: enough points and low variance."""
    settings = settings or DeltaSettings()
    if len(scores) < settings.plateau_min_points:
        return False
    return float(np.var(np.asarray(scores, dtype=float))) < settings.plateau_variance_threshold
