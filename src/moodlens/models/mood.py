"""Mood scoring and mood delta records.

These are the structured outputs handed to the external storage
collaborator. All of them are immutable: a re-analysis produces a new
``MoodScore`` with a higher ``version`` rather than mutating the old one,
and deltas are always recomputed from observations rather than edited.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from moodlens.errors import LowConfidenceWarning


class SubScoreType(str, Enum):
    """The five mood dimensions scored per memory."""

    SENTIMENT = "sentiment"
    PSYCHOLOGICAL = "psychological"
    RELATIONSHIP = "relationship"
    CONVERSATIONAL_FLOW = "conversational_flow"
    HISTORICAL = "historical"


class ConfidenceBand(str, Enum):
    """Reliability band consumed by the auto-confirmation collaborator."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DeltaDirection(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class DeltaType(str, Enum):
    """Classified kind of mood transition."""

    MOOD_REPAIR = "mood_repair"
    CELEBRATION = "celebration"
    DECLINE = "decline"
    PLATEAU = "plateau"
    GRADUAL = "gradual"
    SUDDEN = "sudden"


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"
    VOLATILE = "volatile"


@dataclass(frozen=True)
class SubScore:
    """One dimension's contribution to a mood score.

    Attributes:
        type: Dimension this score belongs to
        value: Normalized score in [0, 10]
        weight: Weight of the dimension in the combination
        evidence: Human-readable supporting evidence
        raw_score: Score as received from the classifier before adjustment
    """

    type: SubScoreType
    value: float
    weight: float
    evidence: Tuple[str, ...] = ()
    raw_score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "value": self.value,
            "weight": self.weight,
            "evidence": list(self.evidence),
            "raw_score": self.raw_score,
        }


@dataclass(frozen=True)
class ConfidenceAssessment:
    """Overall confidence with its itemized factors.

    Attributes:
        overall: Weighted confidence in [0, 1]
        band: high / medium / low reliability band
        factors: Individual factor values keyed by factor name
        uncertainty_areas: Factor names that fell below 0.5
    """

    overall: float
    band: ConfidenceBand
    factors: Dict[str, float] = field(default_factory=dict)
    uncertainty_areas: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall": self.overall,
            "band": self.band.value,
            "factors": dict(self.factors),
            "uncertainty_areas": list(self.uncertainty_areas),
        }


@dataclass(frozen=True)
class MoodScore:
    """Normalized mood estimate for one memory.

    Attributes:
        score: Weighted mood score in [0, 10], one decimal place
        confidence: Overall confidence in [0, 1]
        descriptors: Ordered human-readable mood descriptors
        sub_scores: The five weighted sub-scores (weights sum to 1.0)
        memory_id: Memory the score belongs to
        version: Analysis version, incremented on re-analysis
        assessment: Itemized confidence assessment
        warnings: Low-confidence markers for the review collaborator
    """

    score: float
    confidence: float
    descriptors: Tuple[str, ...]
    sub_scores: Tuple[SubScore, ...]
    memory_id: str = ""
    version: int = 1
    assessment: Optional[ConfidenceAssessment] = None
    warnings: Tuple[LowConfidenceWarning, ...] = ()
    computed_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def confidence_band(self) -> Optional[ConfidenceBand]:
        return self.assessment.band if self.assessment else None

    def sub_score(self, score_type: SubScoreType) -> Optional[SubScore]:
        for sub in self.sub_scores:
            if sub.type == score_type:
                return sub
        return None

    def next_version(self, **changes: Any) -> "MoodScore":
        """Produce the re-analysed version of this score."""
        return replace(self, version=self.version + 1, computed_at=datetime.utcnow(), **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "memory_id": self.memory_id,
            "version": self.version,
            "score": self.score,
            "confidence": self.confidence,
            "confidence_band": self.confidence_band.value if self.confidence_band else None,
            "descriptors": list(self.descriptors),
            "sub_scores": [s.to_dict() for s in self.sub_scores],
            "assessment": self.assessment.to_dict() if self.assessment else None,
            "warnings": [w.to_dict() for w in self.warnings],
            "computed_at": self.computed_at.isoformat(),
        }


@dataclass(frozen=True)
class MoodObservation:
    """A scored point on a mood timeline.

    Attributes:
        score: Mood score in [0, 10]
        timestamp: When the underlying memory happened (optional)
        memory_id: Source memory (optional)
        descriptors: Mood descriptors at this point
        confidence: Confidence of the score, when known
    """

    score: float
    timestamp: Optional[datetime] = None
    memory_id: Optional[str] = None
    descriptors: Tuple[str, ...] = ()
    confidence: Optional[float] = None

    @classmethod
    def from_mood_score(cls, mood: MoodScore, timestamp: Optional[datetime] = None) -> "MoodObservation":
        return cls(
            score=mood.score,
            timestamp=timestamp,
            memory_id=mood.memory_id or None,
            descriptors=mood.descriptors,
            confidence=mood.confidence,
        )


@dataclass(frozen=True)
class DeltaWindow:
    """Position of a delta within the analysed sequence."""

    start_index: int
    end_index: int
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_index": self.start_index,
            "end_index": self.end_index,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
        }


@dataclass(frozen=True)
class MoodDelta:
    """A detected transition between two mood scores.

    ``magnitude`` is always exactly ``abs(to_score - from_score)``; it is
    derived in ``__post_init__`` and cannot be set independently.
    """

    from_score: float
    to_score: float
    type: DeltaType
    significance: float
    confidence: float
    window: DeltaWindow
    factors: Tuple[str, ...] = ()
    magnitude: float = field(init=False)
    direction: DeltaDirection = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "magnitude", abs(self.to_score - self.from_score))
        if self.to_score > self.from_score:
            direction = DeltaDirection.POSITIVE
        elif self.to_score < self.from_score:
            direction = DeltaDirection.NEGATIVE
        else:
            direction = DeltaDirection.NEUTRAL
        object.__setattr__(self, "direction", direction)
        if not 0.0 <= self.significance <= 10.0:
            raise ValueError(f"significance must be within [0, 10], got {self.significance}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_score": self.from_score,
            "to_score": self.to_score,
            "magnitude": self.magnitude,
            "direction": self.direction.value,
            "type": self.type.value,
            "significance": self.significance,
            "confidence": self.confidence,
            "window": self.window.to_dict(),
            "factors": list(self.factors),
        }


@dataclass(frozen=True)
class MoodTrend:
    """Overall direction of a multi-week mood timeline."""

    direction: TrendDirection
    net_change: float
    positive_total: float
    negative_total: float
    volatility: float
    sample_size: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction.value,
            "net_change": round(self.net_change, 3),
            "positive_total": round(self.positive_total, 3),
            "negative_total": round(self.negative_total, 3),
            "volatility": round(self.volatility, 3),
            "sample_size": self.sample_size,
        }


@dataclass(frozen=True)
class TurningPoint:
    """Direction change or acceleration on a mood trajectory."""

    index: int
    type: str  # "breakthrough", "setback", "realization"
    magnitude: float
    description: str
    timestamp: Optional[datetime] = None
    factors: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "type": self.type,
            "magnitude": round(self.magnitude, 3),
            "description": self.description,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "factors": list(self.factors),
        }


__all__: List[str] = [
    "ConfidenceAssessment",
    "ConfidenceBand",
    "DeltaDirection",
    "DeltaType",
    "DeltaWindow",
    "MoodDelta",
    "MoodObservation",
    "MoodScore",
    "MoodTrend",
    "SubScore",
    "SubScoreType",
    "TrendDirection",
    "TurningPoint",
]
