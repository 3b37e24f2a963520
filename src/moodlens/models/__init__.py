"""Domain records shared by every moodlens component."""

from moodlens.models.clustering import (
    SENTIMENT_COMPONENTS,
    Cluster,
    ClusteringFeatures,
    ClusteringResult,
    ClusterQualityReport,
    ClusterSnapshot,
    ClusterTheme,
    FeedbackSeverity,
    FeedbackType,
    FlaggedForReview,
    IncoherentMember,
    Integrated,
    OutlierGroup,
    Pattern,
    PatternEvolution,
    PatternType,
    PlacementOutcome,
    PsychologicalFeatures,
    RelationshipFeatures,
    Spawned,
    StyleFeatures,
    TemporalFeatures,
    ToneFeatures,
    ValidationFeedback,
)
from moodlens.models.memory import (
    AnalyzedMemory,
    ClassifierSignals,
    DimensionSignal,
    FeatureContext,
    Memory,
    Participant,
    PsychologicalIndicators,
    RelationshipIndicators,
    StyleIndicators,
    ToneIndicators,
)
from moodlens.models.mood import (
    ConfidenceAssessment,
    ConfidenceBand,
    DeltaDirection,
    DeltaType,
    DeltaWindow,
    MoodDelta,
    MoodObservation,
    MoodScore,
    MoodTrend,
    SubScore,
    SubScoreType,
    TrendDirection,
    TurningPoint,
)

__all__ = [
    # Memory input
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
    # Mood
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
    # Clustering
    "SENTIMENT_COMPONENTS",
    "Cluster",
    "ClusteringFeatures",
    "ClusteringResult",
    "ClusterQualityReport",
    "ClusterSnapshot",
    "ClusterTheme",
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
