"""Mood scoring: sub-scorers, calculator, confidence, baselines and calibration."""

from moodlens.scoring.analyzer import MoodAnalyzer, MoodBatchResult
from moodlens.scoring.baseline import BaselineDeviation, EmotionalBaseline, EmotionalBaselineManager
from moodlens.scoring.calculator import MoodScoreCalculator
from moodlens.scoring.calibration import (
    CalibrationProposal,
    MoodCalibrator,
    ValidationMetrics,
    ValidationRecord,
)
from moodlens.scoring.confidence import ConfidenceAssessor, classify_band
from moodlens.scoring.sub_scorers import (
    ConversationalFlowScorer,
    HistoricalScorer,
    PsychologicalScorer,
    RelationshipScorer,
    SentimentScorer,
    SubScorer,
    build_scorers,
)
from moodlens.scoring.weighting import WeightedCombination, round_half_up

__all__ = [
    "BaselineDeviation",
    "CalibrationProposal",
    "ConfidenceAssessor",
    "ConversationalFlowScorer",
    "EmotionalBaseline",
    "EmotionalBaselineManager",
    "HistoricalScorer",
    "MoodAnalyzer",
    "MoodBatchResult",
    "MoodCalibrator",
    "MoodScoreCalculator",
    "PsychologicalScorer",
    "RelationshipScorer",
    "SentimentScorer",
    "SubScorer",
    "ValidationMetrics",
    "ValidationRecord",
    "WeightedCombination",
    "build_scorers",
    "classify_band",
    "round_half_up",
]
