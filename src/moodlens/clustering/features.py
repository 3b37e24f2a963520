"""Clustering feature extraction.

Builds the five-dimensional ``ClusteringFeatures`` record for a memory from
its raw indicators, its timestamp and its already computed mood score. The
extractor never looks inside mood scoring; the mood score is just one input.

``centroid_features`` builds the representative vector of a group of
memories, used as the cluster "centroid" by the dynamic manager and the
quality assessor.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

import numpy as np

from moodlens.errors import InvalidFeatureError
from moodlens.models.clustering import (
    ClusteringFeatures,
    PsychologicalFeatures,
    RelationshipFeatures,
    StyleFeatures,
    TemporalFeatures,
    ToneFeatures,
)
from moodlens.models.memory import Memory
from moodlens.models.mood import MoodScore

logger = logging.getLogger(__name__)

SUPPORT_SEEKING_STYLES = frozenset(
    {"direct_verbal", "indirect_hint", "emotional_expression", "problem_sharing", "minimal_seeking"}
)
COPING_COMMUNICATION_STYLES = frozenset(
    {"support_seeking", "problem_solving", "emotional_venting", "avoidance", "minimization"}
)
RELATIONSHIP_TYPES = frozenset(
    {
        "romantic",
        "family",
        "close_friend",
        "friend",
        "colleague",
        "acquaintance",
        "professional",
        "therapeutic",
    }
)
SUPPORT_LEVELS = frozenset({"high", "medium", "low"})
SUPPORT_DIRECTIONS = frozenset({"unidirectional", "bidirectional", "balanced"})
DAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

NEUTRAL_MOOD_BAND = 0.5
DEFAULT_TEMPORAL_STABILITY = 0.8


def time_of_day(timestamp: datetime) -> str:
    hour = timestamp.hour
    if 6 <= hour < 12:
        return "morning"
    if 12 <= hour < 18:
        return "afternoon"
    if 18 <= hour < 22:
        return "evening"
    return "night"


def season(timestamp: datetime) -> str:
    month = timestamp.month
    if 3 <= month <= 5:
        return "spring"
    if 6 <= month <= 8:
        return "summer"
    if 9 <= month <= 11:
        return "fall"
    return "winter"


class ClusteringFeatureExtractor:
    """Pure per-memory feature extraction; safe to run on many threads."""

    def extract(self, memory: Memory, mood: MoodScore) -> ClusteringFeatures:
        """Build the feature vector for one memory.

        Raises:
            InvalidFeatureError: An indicator is out of range or a label is unknown
        """
        context = memory.context
        memory_id = memory.memory_id

        # --- tone ---------------------------------------------------------
        tone_in = context.tone
        vector = tuple(
            self._unit(memory_id, f"tone.{name}", getattr(tone_in, name))
            for name in ("positive", "negative", "anxiety", "gratitude", "mixed")
        )
        intensity = self._unit(memory_id, "tone.intensity", tone_in.intensity)
        descriptors = tuple(dict.fromkeys(tone_in.descriptors or mood.descriptors))
        variance = min(1.0, 0.5 * vector[4] + (0.3 if len(descriptors) > 2 else 0.1))
        neutral = abs(mood.score - 5.0) < NEUTRAL_MOOD_BAND
        stability = max(0.0, min(1.0, (0.85 if neutral else 0.8) - 0.2 * variance))
        tone = ToneFeatures(
            sentiment_vector=vector,
            intensity=intensity,
            variance=variance,
            mood_score=mood.score,
            descriptors=descriptors,
            stability=stability,
        )

        # --- communication style -----------------------------------------
        style_in = context.style
        style = StyleFeatures(
            openness=self._unit(memory_id, "style.openness", style_in.openness),
            support_seeking_style=self._label(
                memory_id, "style.support_seeking_style", style_in.support_seeking_style, SUPPORT_SEEKING_STYLES
            ),
            coping_communication=self._label(
                memory_id, "style.coping_communication", style_in.coping_communication, COPING_COMMUNICATION_STYLES
            ),
            intimacy=self._unit(memory_id, "style.intimacy", style_in.intimacy),
            linguistic_patterns=self._strengths(memory_id, "style.linguistic_patterns", style_in.linguistic_patterns),
        )

        # --- relationship -------------------------------------------------
        rel_in = context.relationship
        relationship = RelationshipFeatures(
            relationship_type=self._label(
                memory_id, "relationship.relationship_type", rel_in.relationship_type, RELATIONSHIP_TYPES
            ),
            intimacy=self._unit(memory_id, "relationship.intimacy", rel_in.intimacy),
            safety=self._unit(memory_id, "relationship.safety", rel_in.safety),
            support_level=self._label(memory_id, "relationship.support_level", rel_in.support_level, SUPPORT_LEVELS),
            support_direction=self._label(
                memory_id, "relationship.support_direction", rel_in.support_direction, SUPPORT_DIRECTIONS
            ),
            effectiveness=self._unit(memory_id, "relationship.effectiveness", rel_in.effectiveness),
            reciprocity=self._unit(memory_id, "relationship.reciprocity", rel_in.reciprocity),
            participant_roles=tuple(sorted({p.role for p in memory.participants})),
        )

        # --- psychological ------------------------------------------------
        psych_in = context.psychological
        psychological = PsychologicalFeatures(
            coping_mechanisms=self._strengths(memory_id, "psychological.coping_mechanisms", psych_in.coping_mechanisms),
            resilience=self._strengths(memory_id, "psychological.resilience", psych_in.resilience),
            stress_markers=self._strengths(memory_id, "psychological.stress_markers", psych_in.stress_markers),
            growth=self._strengths(memory_id, "psychological.growth", psych_in.growth),
            support_utilization=self._unit(
                memory_id, "psychological.support_utilization", psych_in.support_utilization
            ),
            emotional_regulation=self._unit(
                memory_id, "psychological.emotional_regulation", psych_in.emotional_regulation
            ),
        )

        # --- temporal -----------------------------------------------------
        timestamp = memory.timestamp
        temporal = TemporalFeatures(
            time_of_day=time_of_day(timestamp),
            day_of_week=DAY_NAMES[timestamp.weekday()],
            season=season(timestamp),
            stability=DEFAULT_TEMPORAL_STABILITY,
            timestamp=timestamp,
        )

        return ClusteringFeatures(
            memory_id=memory_id,
            tone=tone,
            style=style,
            relationship=relationship,
            psychological=psychological,
            temporal=temporal,
        )

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _unit(memory_id: str, name: str, value: float) -> float:
        if not isinstance(value, (int, float)) or isinstance(value, bool) or math.isnan(value):
            raise InvalidFeatureError(f"{name} must be numeric, got {value!r}", memory_id=memory_id, field=name)
        if not 0.0 <= value <= 1.0:
            raise InvalidFeatureError(f"{name}={value} is outside [0, 1]", memory_id=memory_id, field=name)
        return float(value)

    @staticmethod
    def _label(memory_id: str, name: str, value: str, allowed: Iterable[str]) -> str:
        if value not in allowed:
            raise InvalidFeatureError(f"{name}='{value}' is not a known label", memory_id=memory_id, field=name)
        return value

    @classmethod
    def _strengths(cls, memory_id: str, name: str, values: Mapping[str, float]) -> Dict[str, float]:
        return {label: cls._unit(memory_id, f"{name}.{label}", v) for label, v in sorted(values.items())}


# =============================================================================
# Centroid
# =============================================================================


def _mode(values: Sequence[str]) -> str:
    counts = Counter(values)
    return min(counts, key=lambda label: (-counts[label], label))


def _majority_labels(groups: Sequence[Iterable[str]]) -> Tuple[str, ...]:
    """Labels held by at least half the groups, most common first."""
    counts: Counter = Counter()
    for group in groups:
        counts.update(set(group))
    keep = [label for label, n in counts.items() if n * 2 >= len(groups)]
    return tuple(sorted(keep, key=lambda label: (-counts[label], label)))


def _majority_strengths(maps: Sequence[Mapping[str, float]]) -> Dict[str, float]:
    labels = _majority_labels([m.keys() for m in maps])
    result = {}
    for label in sorted(labels):
        held = [m[label] for m in maps if label in m]
        result[label] = float(np.mean(held))
    return result


def _mean(values: Iterable[float]) -> float:
    return float(np.mean(list(values)))


def centroid_features(features: Sequence[ClusteringFeatures], centroid_id: str = "centroid") -> ClusteringFeatures:
    """Representative features of a group.

    Numeric values are averaged, categorical values take the most common
    label (alphabetical on ties) and label sets keep labels held by at
    least half the members.
    """
    if not features:
        raise InvalidFeatureError("Cannot build a centroid from no features", field="features")

    tones = [f.tone for f in features]
    styles = [f.style for f in features]
    rels = [f.relationship for f in features]
    psychs = [f.psychological for f in features]
    temps = [f.temporal for f in features]

    tone = ToneFeatures(
        sentiment_vector=tuple(float(v) for v in np.mean([t.sentiment_vector for t in tones], axis=0)),
        intensity=_mean(t.intensity for t in tones),
        variance=_mean(t.variance for t in tones),
        mood_score=_mean(t.mood_score for t in tones),
        descriptors=_majority_labels([t.descriptors for t in tones]),
        stability=_mean(t.stability for t in tones),
    )
    style = StyleFeatures(
        openness=_mean(s.openness for s in styles),
        support_seeking_style=_mode([s.support_seeking_style for s in styles]),
        coping_communication=_mode([s.coping_communication for s in styles]),
        intimacy=_mean(s.intimacy for s in styles),
        linguistic_patterns=_majority_strengths([s.linguistic_patterns for s in styles]),
    )
    relationship = RelationshipFeatures(
        relationship_type=_mode([r.relationship_type for r in rels]),
        intimacy=_mean(r.intimacy for r in rels),
        safety=_mean(r.safety for r in rels),
        support_level=_mode([r.support_level for r in rels]),
        support_direction=_mode([r.support_direction for r in rels]),
        effectiveness=_mean(r.effectiveness for r in rels),
        reciprocity=_mean(r.reciprocity for r in rels),
        participant_roles=tuple(sorted(_majority_labels([r.participant_roles for r in rels]))),
    )
    psychological = PsychologicalFeatures(
        coping_mechanisms=_majority_strengths([p.coping_mechanisms for p in psychs]),
        resilience=_majority_strengths([p.resilience for p in psychs]),
        stress_markers=_majority_strengths([p.stress_markers for p in psychs]),
        growth=_majority_strengths([p.growth for p in psychs]),
        support_utilization=_mean(p.support_utilization for p in psychs),
        emotional_regulation=_mean(p.emotional_regulation for p in psychs),
    )
    temporal = TemporalFeatures(
        time_of_day=_mode([t.time_of_day for t in temps]),
        day_of_week=_mode([t.day_of_week for t in temps]),
        season=_mode([t.season for t in temps]),
        stability=_mean(t.stability for t in temps),
    )
    return ClusteringFeatures(
        memory_id=centroid_id,
        tone=tone,
        style=style,
        relationship=relationship,
        psychological=psychological,
        temporal=temporal,
    )


def features_by_id(features: Iterable[ClusteringFeatures]) -> Dict[str, ClusteringFeatures]:
    """Index feature vectors by memory id, rejecting duplicates."""
    index: Dict[str, ClusteringFeatures] = {}
    for item in features:
        if item.memory_id in index:
            raise InvalidFeatureError(f"Duplicate features for '{item.memory_id}'", memory_id=item.memory_id)
        index[item.memory_id] = item
    return index


__all__: List[str] = [
    "ClusteringFeatureExtractor",
    "centroid_features",
    "features_by_id",
    "season",
    "time_of_day",
]
