"""Memory records consumed from the ingestion/classification collaborator.

A ``Memory`` is created once, upstream, from conversation content and is
never mutated by this package. It carries:

- the five classifier sub-score signals used for mood scoring, and
- the raw tone/style/relationship/psychological indicators used to build
  clustering features.

``AnalyzedMemory`` is the reference pairing a memory with the MoodScore and
ClusteringFeatures computed for it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple

from moodlens.errors import InvalidInputError
from moodlens.models.mood import MoodScore, SubScoreType

if TYPE_CHECKING:
    from moodlens.models.clustering import ClusteringFeatures


@dataclass(frozen=True)
class Participant:
    """Conversation participant and the role they played."""

    participant_id: str
    role: str = "observer"  # vulnerable_sharer, supporter, listener, advisor, observer

    def to_dict(self) -> Dict[str, Any]:
        return {"participant_id": self.participant_id, "role": self.role}


@dataclass(frozen=True)
class DimensionSignal:
    """Classifier output for one mood dimension.

    Attributes:
        raw_score: Pre-normalized score in [0, 10]
        evidence: Evidence strings supplied by the classifier
        indicators: Named indicator strengths in [0, 1]
    """

    raw_score: float
    evidence: Tuple[str, ...] = ()
    indicators: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DimensionSignal":
        return cls(
            raw_score=float(data["raw_score"]),
            evidence=tuple(data.get("evidence", ())),
            indicators={k: float(v) for k, v in data.get("indicators", {}).items()},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "raw_score": self.raw_score,
            "evidence": list(self.evidence),
            "indicators": dict(self.indicators),
        }


@dataclass(frozen=True)
class ClassifierSignals:
    """The five per-dimension signals for one memory.

    ``confidence_factors`` optionally carries classifier-measured values for
    the five confidence factors; missing ones are derived from the signals.
    """

    signals: Dict[SubScoreType, DimensionSignal]
    confidence_factors: Dict[str, float] = field(default_factory=dict)

    def get(self, score_type: SubScoreType) -> Optional[DimensionSignal]:
        return self.signals.get(score_type)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ClassifierSignals":
        signals: Dict[SubScoreType, DimensionSignal] = {}
        for key, value in data.items():
            if key == "confidence_factors":
                continue
            try:
                score_type = SubScoreType(key)
            except ValueError as exc:
                raise InvalidInputError(f"Unknown sub-score type '{key}'", field=key) from exc
            signals[score_type] = DimensionSignal.from_dict(value)
        factors = {k: float(v) for k, v in data.get("confidence_factors", {}).items()}
        return cls(signals=signals, confidence_factors=factors)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {t.value: s.to_dict() for t, s in self.signals.items()}
        if self.confidence_factors:
            payload["confidence_factors"] = dict(self.confidence_factors)
        return payload


@dataclass(frozen=True)
class ToneIndicators:
    """Raw emotional tone indicators (unit range unless noted)."""

    positive: float = 0.0
    negative: float = 0.0
    anxiety: float = 0.0
    gratitude: float = 0.0
    mixed: float = 0.0
    intensity: float = 0.5
    descriptors: Tuple[str, ...] = ()


@dataclass(frozen=True)
class StyleIndicators:
    """Raw communication style indicators."""

    openness: float = 0.5
    support_seeking_style: str = "minimal_seeking"
    coping_communication: str = "problem_solving"
    intimacy: float = 0.5
    linguistic_patterns: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class RelationshipIndicators:
    """Raw relationship context indicators."""

    relationship_type: str = "friend"
    intimacy: float = 0.5
    safety: float = 0.5
    support_level: str = "medium"
    support_direction: str = "balanced"
    effectiveness: float = 0.5
    reciprocity: float = 0.5


@dataclass(frozen=True)
class PsychologicalIndicators:
    """Raw psychological indicators; label maps carry strengths in [0, 1]."""

    coping_mechanisms: Dict[str, float] = field(default_factory=dict)
    resilience: Dict[str, float] = field(default_factory=dict)
    stress_markers: Dict[str, float] = field(default_factory=dict)
    growth: Dict[str, float] = field(default_factory=dict)
    support_utilization: float = 0.5
    emotional_regulation: float = 0.5


@dataclass(frozen=True)
class FeatureContext:
    """Everything the clustering feature extractor needs besides the score."""

    tone: ToneIndicators = field(default_factory=ToneIndicators)
    style: StyleIndicators = field(default_factory=StyleIndicators)
    relationship: RelationshipIndicators = field(default_factory=RelationshipIndicators)
    psychological: PsychologicalIndicators = field(default_factory=PsychologicalIndicators)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FeatureContext":
        tone = dict(data.get("tone", {}))
        if "descriptors" in tone:
            tone["descriptors"] = tuple(tone["descriptors"])
        return cls(
            tone=ToneIndicators(**tone),
            style=StyleIndicators(**data.get("style", {})),
            relationship=RelationshipIndicators(**data.get("relationship", {})),
            psychological=PsychologicalIndicators(**data.get("psychological", {})),
        )


@dataclass(frozen=True)
class Memory:
    """Immutable unit derived from conversation content.

    Attributes:
        memory_id: Unique identifier
        timestamp: When the conversation happened
        participants: Who took part and in which role
        summary: Free-text summary (never parsed by this package)
        signals: Classifier sub-score signals
        context: Raw indicators for clustering features
        conversation_id: Conversation the memory belongs to, if any
    """

    memory_id: str
    timestamp: datetime
    participants: Tuple[Participant, ...] = ()
    summary: str = ""
    signals: ClassifierSignals = field(default_factory=lambda: ClassifierSignals(signals={}))
    context: FeatureContext = field(default_factory=FeatureContext)
    conversation_id: Optional[str] = None

    def __post_init__(self):
        """Validate required fields and pin naive timestamps to UTC."""
        if not self.memory_id:
            raise InvalidInputError("memory_id is required for Memory", field="memory_id")
        if not isinstance(self.timestamp, datetime):
            raise InvalidInputError(
                f"timestamp must be a datetime, got {type(self.timestamp).__name__}",
                memory_id=self.memory_id,
                field="timestamp",
            )
        if self.timestamp.tzinfo is None:
            # Naive stamps are read as UTC so a batch can always be ordered
            object.__setattr__(self, "timestamp", self.timestamp.replace(tzinfo=timezone.utc))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Memory":
        """Create from a classifier/ingestion record."""
        try:
            timestamp = data["timestamp"]
            if isinstance(timestamp, str):
                timestamp = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
            return cls(
                memory_id=str(data["memory_id"]),
                timestamp=timestamp,
                participants=tuple(Participant(**p) for p in data.get("participants", ())),
                summary=data.get("summary", ""),
                signals=ClassifierSignals.from_dict(data.get("signals", {})),
                context=FeatureContext.from_dict(data.get("context", {})),
                conversation_id=data.get("conversation_id"),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidInputError(
                f"Malformed memory record: {exc}",
                memory_id=str(data["memory_id"]) if isinstance(data, Mapping) and data.get("memory_id") else None,
            ) from exc

    def to_dict(self) -> Dict[str, Any]:
        return {
            "memory_id": self.memory_id,
            "timestamp": self.timestamp.isoformat(),
            "participants": [p.to_dict() for p in self.participants],
            "summary": self.summary,
            "conversation_id": self.conversation_id,
            "signals": self.signals.to_dict(),
        }


@dataclass(frozen=True)
class AnalyzedMemory:
    """A memory together with the results computed for it."""

    memory: Memory
    mood_score: MoodScore
    features: Optional["ClusteringFeatures"] = None

    @property
    def memory_id(self) -> str:
        return self.memory.memory_id


__all__: List[str] = [
    "AnalyzedMemory",
    "ClassifierSignals",
    "DimensionSignal",
    "FeatureContext",
    "Memory",
    "Participant",
    "PsychologicalIndicators",
    "RelationshipIndicators",
    "StyleIndicators",
    "ToneIndicators",
]
