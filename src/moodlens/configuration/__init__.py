"""Configuration loading utilities for moodlens."""

from .settings import (
    DEFAULT_CONFIG_PATH,
    HIGH_CONFIDENCE_THRESHOLD,
    MEDIUM_CONFIDENCE_THRESHOLD,
    AnalysisSettings,
    ClusteringConstraints,
    DeltaSettings,
    DynamicClusteringSettings,
    MoodScoringSettings,
    ReviewPolicy,
    apply_overrides,
    default_settings,
    load_settings,
    save_settings,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "HIGH_CONFIDENCE_THRESHOLD",
    "MEDIUM_CONFIDENCE_THRESHOLD",
    "AnalysisSettings",
    "ClusteringConstraints",
    "DeltaSettings",
    "DynamicClusteringSettings",
    "MoodScoringSettings",
    "ReviewPolicy",
    "apply_overrides",
    "default_settings",
    "load_settings",
    "save_settings",
]
