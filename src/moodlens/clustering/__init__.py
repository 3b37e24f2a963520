"""Tone clustering: features, similarity, engine, dynamic placement and quality."""

from moodlens.clustering.dynamic import DynamicClusterManager, predicted_coherence
from moodlens.clustering.engine import (
    Partition,
    ToneClusteringEngine,
    cluster_id_for,
    coherence_of,
    psychological_significance,
)
from moodlens.clustering.features import ClusteringFeatureExtractor, centroid_features, features_by_id
from moodlens.clustering.feedback import ClusterFeedbackLoop
from moodlens.clustering.quality import ClusterQualityAssessor
from moodlens.clustering.registry import ClusterRegistry, StaleSnapshotError
from moodlens.clustering.similarity import SimilarityCalculator, cosine_similarity, label_overlap
from moodlens.clustering.themes import derive_theme, dominant_tone, theme_share

__all__ = [
    "ClusterFeedbackLoop",
    "ClusterQualityAssessor",
    "ClusterRegistry",
    "ClusteringFeatureExtractor",
    "DynamicClusterManager",
    "Partition",
    "SimilarityCalculator",
    "StaleSnapshotError",
    "ToneClusteringEngine",
    "centroid_features",
    "cluster_id_for",
    "coherence_of",
    "cosine_similarity",
    "derive_theme",
    "dominant_tone",
    "features_by_id",
    "label_overlap",
    "predicted_coherence",
    "psychological_significance",
    "theme_share",
]
