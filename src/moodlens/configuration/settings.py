"""Typed settings for moodlens analysis runs.

Every weight set and threshold is wrapped in Pydantic models so CLI commands
and services can rely on validated settings. Nothing here reads the
environment: callers load a settings file (or take the defaults) and pass
the resulting objects explicitly into each component, which keeps runs
reproducible and independently testable.
"""

from __future__ import annotations

import json
import math
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from moodlens.errors import InvalidConfigError


DEFAULT_CONFIG_PATH = Path.home() / ".moodlens" / "config.json"

WEIGHT_SUM_TOLERANCE = 1e-6

# Confidence banding contract shared with the auto-confirmation collaborator
HIGH_CONFIDENCE_THRESHOLD = 0.75
MEDIUM_CONFIDENCE_THRESHOLD = 0.50

DEFAULT_MOOD_WEIGHTS: Dict[str, float] = {
    "sentiment": 0.35,
    "psychological": 0.25,
    "relationship": 0.20,
    "conversational_flow": 0.15,
    "historical": 0.05,
}

DEFAULT_CONFIDENCE_WEIGHTS: Dict[str, float] = {
    "sentiment_clarity": 0.30,
    "context_consistency": 0.25,
    "indicator_alignment": 0.20,
    "historical_consistency": 0.15,
    "linguistic_certainty": 0.10,
}

DEFAULT_SIMILARITY_WEIGHTS: Dict[str, float] = {
    "tone": 0.35,
    "style": 0.25,
    "relationship": 0.20,
    "psychological": 0.15,
    "temporal": 0.05,
}


def _check_weight_map(value: Dict[str, float], expected: Dict[str, float]) -> Dict[str, float]:
    if set(value) != set(expected):
        raise ValueError(
            f"weight keys must be exactly {sorted(expected)}, got {sorted(value)}"
        )
    if any(w < 0 for w in value.values()):
        raise ValueError("weights must be non-negative")
    total = math.fsum(value.values())
    if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
        raise ValueError(f"weights must sum to 1.0 (got {total:.6f})")
    return value


class MoodScoringSettings(BaseModel):
    """Weights and bands for mood scoring and confidence assessment."""

    weights: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_MOOD_WEIGHTS))
    confidence_weights: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_CONFIDENCE_WEIGHTS)
    )
    high_confidence_threshold: float = Field(HIGH_CONFIDENCE_THRESHOLD, ge=0.0, le=1.0)
    medium_confidence_threshold: float = Field(MEDIUM_CONFIDENCE_THRESHOLD, ge=0.0, le=1.0)
    historical_blend: float = Field(
        0.3, ge=0.0, le=1.0, description="Baseline share of the historical sub-score"
    )

    @field_validator("weights")
    def _validate_weights(cls, value: Dict[str, float]) -> Dict[str, float]:
        return _check_weight_map(value, DEFAULT_MOOD_WEIGHTS)

    @field_validator("confidence_weights")
    def _validate_confidence_weights(cls, value: Dict[str, float]) -> Dict[str, float]:
        return _check_weight_map(value, DEFAULT_CONFIDENCE_WEIGHTS)

    @model_validator(mode="after")
    def _validate_bands(self) -> "MoodScoringSettings":
        if self.medium_confidence_threshold > self.high_confidence_threshold:
            raise ValueError("medium_confidence_threshold must not exceed high_confidence_threshold")
        return self


class DeltaSettings(BaseModel):
    """Thresholds for mood delta detection and timeline trend analysis."""

    sudden_threshold: float = Field(2.0, gt=0.0, le=10.0)
    gradual_threshold: float = Field(1.5, gt=0.0, le=10.0)
    repair_min_recovery: float = Field(1.0, gt=0.0, le=10.0)
    repair_lookback: int = Field(3, ge=1, le=50, description="Steps scanned after a trough")
    celebration_threshold: float = Field(3.0, gt=0.0, le=10.0)
    celebration_floor: float = Field(7.0, ge=0.0, le=10.0)
    decline_threshold: float = Field(2.5, gt=0.0, le=10.0)
    plateau_variance_threshold: float = Field(0.5, ge=0.0)
    plateau_min_points: int = Field(3, ge=2)
    trend_tie_tolerance: float = Field(0.1, ge=0.0)
    trend_stable_band: float = Field(0.5, ge=0.0)
    volatility_threshold: float = Field(1.5, ge=0.0)
    detect_episodes: bool = True

    @model_validator(mode="after")
    def _validate_order(self) -> "DeltaSettings":
        if self.gradual_threshold > self.sudden_threshold:
            raise ValueError("gradual_threshold must not exceed sudden_threshold")
        return self


class ClusteringConstraints(BaseModel):
    """Constraints for a full clustering run."""

    min_cluster_size: int = Field(3, ge=1)
    max_cluster_size: int = Field(15, ge=1)
    coherence_threshold: float = Field(0.6, ge=0.0, le=1.0)
    meaningfulness_threshold: float = Field(0.7, ge=0.0, le=1.0)
    similarity_weights: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_SIMILARITY_WEIGHTS)
    )

    @field_validator("similarity_weights")
    def _validate_similarity_weights(cls, value: Dict[str, float]) -> Dict[str, float]:
        return _check_weight_map(value, DEFAULT_SIMILARITY_WEIGHTS)

    @model_validator(mode="after")
    def _validate_sizes(self) -> "ClusteringConstraints":
        if self.min_cluster_size > self.max_cluster_size:
            raise ValueError("min_cluster_size must not exceed max_cluster_size")
        return self


class ReviewPolicy(str, Enum):
    """What happens to review-flagged memories on the next full re-cluster."""

    AUTO_RETRY = "auto_retry"
    """Flagged memories are included in the next full re-cluster."""

    REQUIRE_HUMAN_ACTION = "require_human_action"
    """Flagged memories stay out until a reviewer releases them."""


class DynamicClusteringSettings(BaseModel):
    """Thresholds for incremental placement of new memories."""

    integration_threshold: float = Field(0.7, ge=0.0, le=1.0)
    spawn_threshold: float = Field(0.75, ge=0.0, le=1.0)
    density_neighbors: int = Field(2, ge=1, description="Nearest unclustered neighbours used for density")
    review_policy: ReviewPolicy = ReviewPolicy.REQUIRE_HUMAN_ACTION


class AnalysisSettings(BaseModel):
    """Root configuration state."""

    scoring: MoodScoringSettings = Field(default_factory=MoodScoringSettings)
    deltas: DeltaSettings = Field(default_factory=DeltaSettings)
    clustering: ClusteringConstraints = Field(default_factory=ClusteringConstraints)
    dynamic: DynamicClusteringSettings = Field(default_factory=DynamicClusteringSettings)
    max_workers: int = Field(4, ge=1, le=64)
    recluster_timeout_seconds: Optional[float] = Field(30.0, gt=0)


def default_settings() -> AnalysisSettings:
    """Return settings populated with the documented defaults."""

    return AnalysisSettings()


def load_settings(path: Path = DEFAULT_CONFIG_PATH) -> AnalysisSettings:
    """Load settings from disk or raise if invalid."""

    if not path.exists():
        raise FileNotFoundError(f"Settings file not found at {path}")
    try:
        payload = json.loads(path.read_text())
    except json.JSONDecodeError as exc:
        raise InvalidConfigError(f"Settings file is not valid JSON: {exc}") from exc
    try:
        return AnalysisSettings.model_validate(payload)
    except ValidationError as exc:
        raise InvalidConfigError(f"Invalid configuration: {exc}") from exc


def save_settings(settings: AnalysisSettings, path: Path = DEFAULT_CONFIG_PATH) -> None:
    """Persist settings to disk."""

    payload = settings.model_dump(mode="json")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2))


def apply_overrides(settings: AnalysisSettings, overrides: Dict[str, Any]) -> AnalysisSettings:
    """Return new settings with dotted-key overrides applied and revalidated.

    Example:
        >>> apply_overrides(settings, {"clustering.min_cluster_size": 2})
    """

    payload = settings.model_dump(mode="python")
    for key, value in overrides.items():
        _assign(payload, key.split("."), value)
    try:
        return AnalysisSettings.model_validate(payload)
    except ValidationError as exc:
        raise InvalidConfigError(f"Invalid override: {exc}") from exc


def _assign(target: Dict[str, Any], path: list[str], value: Any) -> None:
    head, *tail = path
    if not tail:
        target[head] = value
        return
    child = target.setdefault(head, {})
    if not isinstance(child, dict):
        raise InvalidConfigError(f"Cannot assign nested key under scalar '{head}'")
    _assign(child, tail, value)
