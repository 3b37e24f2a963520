"""Cross-cluster analysis: recurring emotional themes and dynamics."""

from moodlens.analysis.pattern_recognition import PatternRecognitionAnalyzer, cluster_labels, intensity_trend, temporal_midpoint

__all__ = [
    "PatternRecognitionAnalyzer",
    "cluster_labels",
    "intensity_trend",
    "temporal_midpoint",
]
