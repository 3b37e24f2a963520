"""Clustering records: feature vectors, clusters, snapshots and patterns.

Feature vectors are built once per memory and never mutated. Clusters are
immutable too; the dynamic manager and full re-cluster both produce new
``Cluster`` objects and publish them inside a new ``ClusterSnapshot``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union

from moodlens.errors import LowConfidenceWarning, MoodlensError


# =============================================================================
# Feature vectors
# =============================================================================


SENTIMENT_COMPONENTS: Tuple[str, ...] = ("positive", "negative", "anxiety", "gratitude", "mixed")


@dataclass(frozen=True)
class ToneFeatures:
    """Emotional tone sub-vector.

    Attributes:
        sentiment_vector: [positive, negative, anxiety, gratitude, mixed], unit range
        intensity: Overall emotional intensity (0-1)
        variance: Emotional complexity / mixed feelings (0-1)
        mood_score: The memory's mood score (0-10)
        descriptors: Emotional vocabulary labels
        stability: Emotional consistency (0-1)
    """

    sentiment_vector: Tuple[float, ...]
    intensity: float
    variance: float
    mood_score: float
    descriptors: Tuple[str, ...]
    stability: float


@dataclass(frozen=True)
class StyleFeatures:
    """Communication style sub-vector."""

    openness: float
    support_seeking_style: str
    coping_communication: str
    intimacy: float
    linguistic_patterns: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class RelationshipFeatures:
    """Relationship context sub-vector."""

    relationship_type: str
    intimacy: float
    safety: float
    support_level: str
    support_direction: str
    effectiveness: float
    reciprocity: float
    participant_roles: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PsychologicalFeatures:
    """Psychological indicator sub-vector; label maps hold strengths."""

    coping_mechanisms: Dict[str, float]
    resilience: Dict[str, float]
    stress_markers: Dict[str, float]
    growth: Dict[str, float]
    support_utilization: float
    emotional_regulation: float


@dataclass(frozen=True)
class TemporalFeatures:
    time_of_day: str  # morning, afternoon, evening, night
    day_of_week: str
    season: str
    stability: float = 0.8
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class ClusteringFeatures:
    """Five-dimensional feature vector for one memory."""

    memory_id: str
    tone: ToneFeatures
    style: StyleFeatures
    relationship: RelationshipFeatures
    psychological: PsychologicalFeatures
    temporal: TemporalFeatures

    def same_profile(self, other: "ClusteringFeatures") -> bool:
        """True when every sub-vector matches, regardless of memory id."""
        return (
            self.tone == other.tone
            and self.style == other.style
            and self.relationship == other.relationship
            and self.psychological == other.psychological
            and self.temporal == other.temporal
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "memory_id": self.memory_id,
            "tone": {
                "sentiment_vector": list(self.tone.sentiment_vector),
                "intensity": self.tone.intensity,
                "variance": self.tone.variance,
                "mood_score": self.tone.mood_score,
                "descriptors": list(self.tone.descriptors),
                "stability": self.tone.stability,
            },
            "style": {
                "openness": self.style.openness,
                "support_seeking_style": self.style.support_seeking_style,
                "coping_communication": self.style.coping_communication,
                "intimacy": self.style.intimacy,
                "linguistic_patterns": dict(self.style.linguistic_patterns),
            },
            "relationship": {
                "relationship_type": self.relationship.relationship_type,
                "intimacy": self.relationship.intimacy,
                "safety": self.relationship.safety,
                "support_level": self.relationship.support_level,
                "support_direction": self.relationship.support_direction,
                "effectiveness": self.relationship.effectiveness,
                "reciprocity": self.relationship.reciprocity,
                "participant_roles": list(self.relationship.participant_roles),
            },
            "psychological": {
                "coping_mechanisms": dict(self.psychological.coping_mechanisms),
                "resilience": dict(self.psychological.resilience),
                "stress_markers": dict(self.psychological.stress_markers),
                "growth": dict(self.psychological.growth),
                "support_utilization": self.psychological.support_utilization,
                "emotional_regulation": self.psychological.emotional_regulation,
            },
            "temporal": {
                "time_of_day": self.temporal.time_of_day,
                "day_of_week": self.temporal.day_of_week,
                "season": self.temporal.season,
                "stability": self.temporal.stability,
                "timestamp": self.temporal.timestamp.isoformat() if self.temporal.timestamp else None,
            },
        }


# =============================================================================
# Clusters
# =============================================================================


@dataclass(frozen=True)
class ClusterTheme:
    """Dominant descriptor set summarizing a cluster."""

    primary: str
    secondary: Tuple[str, ...] = ()
    dominant_tone: str = "neutral"
    intensity: float = 0.0

    def labels(self) -> Tuple[str, ...]:
        return (self.primary,) + self.secondary

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primary": self.primary,
            "secondary": list(self.secondary),
            "dominant_tone": self.dominant_tone,
            "intensity": round(self.intensity, 3),
        }


@dataclass(frozen=True)
class Cluster:
    """A committed group of memories.

    Attributes:
        cluster_id: Stable identifier derived from the founding members
        theme: Dominant descriptors of the members
        members: Member memory ids (order irrelevant)
        coherence: Mean pairwise similarity of the members (0-1)
        psychological_significance: Meaningfulness score (0-1)
        provisional: True for singletons spawned by the dynamic manager
        warnings: Low-confidence markers for the review collaborator
    """

    cluster_id: str
    theme: ClusterTheme
    members: FrozenSet[str]
    coherence: float
    psychological_significance: float
    provisional: bool = False
    warnings: Tuple[LowConfidenceWarning, ...] = ()

    def __post_init__(self) -> None:
        if not 0.0 <= self.coherence <= 1.0:
            raise ValueError(f"coherence must be within [0, 1], got {self.coherence}")
        if not 0.0 <= self.psychological_significance <= 1.0:
            raise ValueError(
                f"psychological_significance must be within [0, 1], got {self.psychological_significance}"
            )

    @property
    def size(self) -> int:
        return len(self.members)

    def with_member(self, memory_id: str, coherence: float) -> "Cluster":
        """Return a copy with one more member and updated coherence."""
        return replace(self, members=self.members | {memory_id}, coherence=coherence)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cluster_id": self.cluster_id,
            "theme": self.theme.to_dict(),
            "members": sorted(self.members),
            "size": self.size,
            "coherence": round(self.coherence, 4),
            "psychological_significance": round(self.psychological_significance, 4),
            "provisional": self.provisional,
            "warnings": [w.to_dict() for w in self.warnings],
        }


@dataclass(frozen=True)
class OutlierGroup:
    """Undersized group that could not be merged; flagged for review."""

    group_id: str
    members: FrozenSet[str]
    reason: str
    best_similarity: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "group_id": self.group_id,
            "members": sorted(self.members),
            "reason": self.reason,
            "best_similarity": round(self.best_similarity, 4),
        }


@dataclass(frozen=True)
class ClusteringResult:
    """Outcome of one complete clustering run.

    A run either produces this whole record or raises; partial results are
    never returned. ``diagnostics`` holds step-level conditions such as
    ``InsufficientDataError`` that did not warrant an exception.
    """

    clusters: Tuple[Cluster, ...]
    outliers: Tuple[OutlierGroup, ...] = ()
    diagnostics: Tuple[MoodlensError, ...] = ()
    merges: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.clusters

    def to_dict(self) -> Dict[str, Any]:
        return {
            "clusters": [c.to_dict() for c in self.clusters],
            "outliers": [o.to_dict() for o in self.outliers],
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "merges": self.merges,
        }


@dataclass(frozen=True)
class ClusterSnapshot:
    """Immutable, versioned view of the committed cluster set."""

    generation: int
    clusters: Tuple[Cluster, ...] = ()
    outliers: Tuple[OutlierGroup, ...] = ()
    pending_review: FrozenSet[str] = frozenset()
    created_at: datetime = field(default_factory=datetime.utcnow)

    def get(self, cluster_id: str) -> Optional[Cluster]:
        for cluster in self.clusters:
            if cluster.cluster_id == cluster_id:
                return cluster
        return None

    @property
    def clustered_ids(self) -> FrozenSet[str]:
        ids: set = set()
        for cluster in self.clusters:
            ids.update(cluster.members)
        return frozenset(ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generation": self.generation,
            "clusters": [c.to_dict() for c in self.clusters],
            "outliers": [o.to_dict() for o in self.outliers],
            "pending_review": sorted(self.pending_review),
            "created_at": self.created_at.isoformat(),
        }


# =============================================================================
# Dynamic placement outcomes
# =============================================================================


@dataclass(frozen=True)
class Integrated:
    """New memory joined an existing cluster."""

    memory_id: str
    cluster: Cluster
    similarity: float
    predicted_coherence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": "integrated",
            "memory_id": self.memory_id,
            "cluster_id": self.cluster.cluster_id,
            "similarity": round(self.similarity, 4),
            "predicted_coherence": round(self.predicted_coherence, 4),
        }


@dataclass(frozen=True)
class Spawned:
    """New memory founded a provisional singleton cluster."""

    memory_id: str
    cluster: Cluster
    density: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": "spawned",
            "memory_id": self.memory_id,
            "cluster_id": self.cluster.cluster_id,
            "density": round(self.density, 4),
        }


@dataclass(frozen=True)
class FlaggedForReview:
    """New memory could not be placed; terminal until the next re-cluster."""

    memory_id: str
    reason: str
    best_similarity: float = 0.0
    best_cluster_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": "flagged_for_review",
            "memory_id": self.memory_id,
            "reason": self.reason,
            "best_similarity": round(self.best_similarity, 4),
            "best_cluster_id": self.best_cluster_id,
        }


PlacementOutcome = Union[Integrated, Spawned, FlaggedForReview]


# =============================================================================
# Quality
# =============================================================================


@dataclass(frozen=True)
class IncoherentMember:
    memory_id: str
    similarity: float


@dataclass(frozen=True)
class ClusterQualityReport:
    """Quality metrics for one cluster.

    Attributes:
        overall_coherence: Unweighted mean of the four coherence metrics
        emotional_consistency: Inverted variance of member intensity
        thematic_unity: Share of members carrying the theme's top descriptors
        relationship_consistency: Agreement of relationship type and intimacy
        temporal_coherence: Time-of-day agreement and temporal spread
        psychological_meaningfulness: Depth of the psychological signal
        incoherent_members: Members below the coherence threshold, worst first
        edge_cases: Flags for unusual cluster shapes
    """

    cluster_id: str
    overall_coherence: float
    emotional_consistency: float
    thematic_unity: float
    relationship_consistency: float
    temporal_coherence: float
    psychological_meaningfulness: float
    incoherent_members: Tuple[IncoherentMember, ...] = ()
    edge_cases: Tuple[str, ...] = ()
    strength_areas: Tuple[str, ...] = ()
    improvement_areas: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cluster_id": self.cluster_id,
            "overall_coherence": round(self.overall_coherence, 4),
            "emotional_consistency": round(self.emotional_consistency, 4),
            "thematic_unity": round(self.thematic_unity, 4),
            "relationship_consistency": round(self.relationship_consistency, 4),
            "temporal_coherence": round(self.temporal_coherence, 4),
            "psychological_meaningfulness": round(self.psychological_meaningfulness, 4),
            "incoherent_members": [
                {"memory_id": m.memory_id, "similarity": round(m.similarity, 4)}
                for m in self.incoherent_members
            ],
            "edge_cases": list(self.edge_cases),
            "strength_areas": list(self.strength_areas),
            "improvement_areas": list(self.improvement_areas),
        }


class FeedbackType(str, Enum):
    COHERENCE_ISSUE = "coherence_issue"
    THEME_MISMATCH = "theme_mismatch"
    PSYCHOLOGICAL_INCOHERENCE = "psychological_incoherence"
    POSITIVE_VALIDATION = "positive_validation"


class FeedbackSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class ValidationFeedback:
    """Reviewer or automated feedback about one cluster."""

    cluster_id: str
    type: FeedbackType
    severity: FeedbackSeverity
    description: str
    suggested_action: str = ""
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cluster_id": self.cluster_id,
            "type": self.type.value,
            "severity": self.severity.value,
            "description": self.description,
            "suggested_action": self.suggested_action,
            "created_at": self.created_at.isoformat(),
        }


# =============================================================================
# Patterns
# =============================================================================


class PatternType(str, Enum):
    EMOTIONAL_THEME = "emotional_theme"
    COPING_STYLE = "coping_style"
    RELATIONSHIP_DYNAMIC = "relationship_dynamic"
    PSYCHOLOGICAL_TENDENCY = "psychological_tendency"


@dataclass(frozen=True)
class PatternEvolution:
    """How a pattern develops across its clusters, oldest first."""

    cluster_ids: Tuple[str, ...]
    intensities: Tuple[float, ...]
    trend: str  # increasing, decreasing, stable

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cluster_ids": list(self.cluster_ids),
            "intensities": [round(i, 3) for i in self.intensities],
            "trend": self.trend,
        }


@dataclass(frozen=True)
class Pattern:
    """A theme or dynamic recurring across clusters."""

    type: PatternType
    label: str
    frequency: int
    strength: float
    confidence: float
    cluster_ids: Tuple[str, ...]
    evolution: Optional[PatternEvolution] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "label": self.label,
            "frequency": self.frequency,
            "strength": round(self.strength, 4),
            "confidence": round(self.confidence, 4),
            "cluster_ids": list(self.cluster_ids),
            "evolution": self.evolution.to_dict() if self.evolution else None,
        }


__all__: List[str] = [
    "SENTIMENT_COMPONENTS",
    "Cluster",
    "ClusterQualityReport",
    "ClusterSnapshot",
    "ClusterTheme",
    "ClusteringFeatures",
    "ClusteringResult",
    "FeedbackSeverity",
    "FeedbackType",
    "FlaggedForReview",
    "IncoherentMember",
    "Integrated",
    "OutlierGroup",
    "Pattern",
    "PatternEvolution",
    "PatternType",
    "PlacementOutcome",
    "PsychologicalFeatures",
    "RelationshipFeatures",
    "Spawned",
    "StyleFeatures",
    "TemporalFeatures",
    "ToneFeatures",
    "ValidationFeedback",
]
