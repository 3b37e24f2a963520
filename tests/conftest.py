"""Shared factories for moodlens tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional, Sequence

import pytest

from moodlens.configuration.settings import AnalysisSettings, ClusteringConstraints
from moodlens.models.clustering import (
    ClusteringFeatures,
    PsychologicalFeatures,
    RelationshipFeatures,
    StyleFeatures,
    TemporalFeatures,
    ToneFeatures,
)
from moodlens.models.memory import Memory
from moodlens.models.mood import MoodObservation, SubScore, SubScoreType

BASE_TIME = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)  # a Monday morning

REFERENCE_SCORES: Dict[str, float] = {
    "sentiment": 8.0,
    "psychological": 6.0,
    "relationship": 7.0,
    "conversational_flow": 5.0,
    "historical": 6.0,
}


def memory_record(
    memory_id: str,
    *,
    scores: Optional[Mapping[str, float]] = None,
    timestamp: Optional[datetime] = None,
    conversation_id: Optional[str] = "conv-1",
    context: Optional[Dict[str, Any]] = None,
    evidence: Sequence[str] = ("classifier evidence",),
) -> Dict[str, Any]:
    """JSON-ready memory record as produced by the classifier."""
    scores = dict(scores or REFERENCE_SCORES)
    return {
        "memory_id": memory_id,
        "timestamp": (timestamp or BASE_TIME).isoformat(),
        "conversation_id": conversation_id,
        "participants": [
            {"participant_id": "alice", "role": "vulnerable_sharer"},
            {"participant_id": "bob", "role": "supporter"},
        ],
        "summary": "Talked through a stressful week",
        "signals": {
            name: {"raw_score": value, "evidence": list(evidence), "indicators": {}}
            for name, value in scores.items()
        },
        "context": context
        or {
            "tone": {"positive": 0.7, "gratitude": 0.4, "intensity": 0.6, "descriptors": ["hopeful", "warm"]},
            "style": {"openness": 0.7, "support_seeking_style": "direct_verbal", "intimacy": 0.6},
            "relationship": {"relationship_type": "close_friend", "intimacy": 0.7, "safety": 0.8},
            "psychological": {
                "coping_mechanisms": {"reframing": 0.7},
                "resilience": {"optimism": 0.6},
                "emotional_regulation": 0.7,
            },
        },
    }


def make_features(
    memory_id: str,
    *,
    sentiment: Sequence[float] = (0.7, 0.1, 0.1, 0.4, 0.1),
    intensity: float = 0.6,
    mood_score: float = 7.0,
    descriptors: Sequence[str] = ("hopeful", "warm"),
    coping: Optional[Mapping[str, float]] = None,
    resilience: Optional[Mapping[str, float]] = None,
    growth: Optional[Mapping[str, float]] = None,
    relationship_type: str = "close_friend",
    support_direction: str = "balanced",
    coping_communication: str = "problem_solving",
    timestamp: Optional[datetime] = None,
) -> ClusteringFeatures:
    """Feature vector with sensible defaults; override only what a test cares about."""
    return ClusteringFeatures(
        memory_id=memory_id,
        tone=ToneFeatures(
            sentiment_vector=tuple(sentiment),
            intensity=intensity,
            variance=0.15,
            mood_score=mood_score,
            descriptors=tuple(descriptors),
            stability=0.77,
        ),
        style=StyleFeatures(
            openness=0.7,
            support_seeking_style="direct_verbal",
            coping_communication=coping_communication,
            intimacy=0.6,
        ),
        relationship=RelationshipFeatures(
            relationship_type=relationship_type,
            intimacy=0.7,
            safety=0.8,
            support_level="medium",
            support_direction=support_direction,
            effectiveness=0.6,
            reciprocity=0.6,
        ),
        psychological=PsychologicalFeatures(
            coping_mechanisms=dict(coping if coping is not None else {"reframing": 0.7}),
            resilience=dict(resilience if resilience is not None else {"optimism": 0.6}),
            stress_markers={},
            growth=dict(growth or {}),
            support_utilization=0.5,
            emotional_regulation=0.7,
        ),
        temporal=TemporalFeatures(
            time_of_day="morning",
            day_of_week="monday",
            season="spring",
            timestamp=timestamp or BASE_TIME,
        ),
    )


def make_sub_scores(values: Optional[Mapping[str, float]] = None, weight: float = 0.2) -> list:
    values = values or REFERENCE_SCORES
    return [
        SubScore(type=SubScoreType(name), value=value, weight=weight, evidence=("evidence",))
        for name, value in values.items()
    ]


def observations(scores: Sequence[float], *, hours: float = 1.0) -> list:
    return [
        MoodObservation(score=score, timestamp=BASE_TIME + timedelta(hours=hours * i), memory_id=f"m{i}")
        for i, score in enumerate(scores)
    ]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def base_time() -> datetime:
    return BASE_TIME


@pytest.fixture
def record_factory():
    return memory_record


@pytest.fixture
def memory_factory():
    def _make(memory_id: str = "m1", **kwargs: Any) -> Memory:
        return Memory.from_dict(memory_record(memory_id, **kwargs))

    return _make


@pytest.fixture
def features_factory():
    return make_features


@pytest.fixture
def sub_score_factory():
    return make_sub_scores


@pytest.fixture
def observation_factory():
    return observations


@pytest.fixture
def constraints() -> ClusteringConstraints:
    return ClusteringConstraints(min_cluster_size=2, max_cluster_size=5, coherence_threshold=0.6)


@pytest.fixture
def settings() -> AnalysisSettings:
    return AnalysisSettings.model_validate(
        {
            "clustering": {"min_cluster_size": 2, "max_cluster_size": 5, "coherence_threshold": 0.6},
            "max_workers": 2,
        }
    )
