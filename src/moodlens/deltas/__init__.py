"""Mood delta detection and timeline analysis."""

from moodlens.deltas.detector import TYPE_WEIGHTS, DeltaDetector, detect_plateau, validate_sequence
from moodlens.deltas.timeline import (
    TimelineAnalyzer,
    TimelineReport,
    classify_trend,
    identify_turning_points,
    mood_velocity,
    weekly_observations,
)

__all__ = [
    "TYPE_WEIGHTS",
    "DeltaDetector",
    "TimelineAnalyzer",
    "TimelineReport",
    "classify_trend",
    "detect_plateau",
    "identify_turning_points",
    "mood_velocity",
    "validate_sequence",
    "weekly_observations",
]
