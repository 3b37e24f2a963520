"""Tests for typed analysis settings."""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from moodlens.configuration.settings import (
    AnalysisSettings,
    ClusteringConstraints,
    DeltaSettings,
    MoodScoringSettings,
    ReviewPolicy,
    apply_overrides,
    default_settings,
    load_settings,
    save_settings,
)
from moodlens.errors import InvalidConfigError


class TestDefaults:
    def test_documented_defaults(self):
        settings = default_settings()

        assert settings.scoring.weights == {
            "sentiment": 0.35,
            "psychological": 0.25,
            "relationship": 0.20,
            "conversational_flow": 0.15,
            "historical": 0.05,
        }
        assert settings.deltas.sudden_threshold == 2.0
        assert settings.deltas.gradual_threshold == 1.5
        assert settings.clustering.min_cluster_size == 3
        assert settings.clustering.max_cluster_size == 15
        assert settings.clustering.coherence_threshold == 0.6
        assert settings.clustering.meaningfulness_threshold == 0.7
        assert settings.dynamic.integration_threshold == 0.7
        assert settings.dynamic.spawn_threshold == 0.75
        assert settings.dynamic.review_policy is ReviewPolicy.REQUIRE_HUMAN_ACTION

    def test_instances_do_not_share_weight_maps(self):
        first = MoodScoringSettings()
        second = MoodScoringSettings()
        first.weights["sentiment"] = 0.0

        assert second.weights["sentiment"] == 0.35


class TestValidation:
    def test_weights_must_sum_to_one(self):
        weights = dict(MoodScoringSettings().weights, sentiment=0.5)

        with pytest.raises(ValidationError, match="sum to 1.0"):
            MoodScoringSettings(weights=weights)

    def test_weight_keys_must_match(self):
        with pytest.raises(ValidationError, match="weight keys"):
            MoodScoringSettings(weights={"sentiment": 1.0})

    def test_negative_weight_rejected(self):
        weights = {"tone": 1.2, "style": -0.2, "relationship": 0.0, "psychological": 0.0, "temporal": 0.0}

        with pytest.raises(ValidationError, match="non-negative"):
            ClusteringConstraints(similarity_weights=weights)

    def test_min_size_above_max_rejected(self):
        with pytest.raises(ValidationError, match="min_cluster_size"):
            ClusteringConstraints(min_cluster_size=6, max_cluster_size=5)

    def test_gradual_above_sudden_rejected(self):
        with pytest.raises(ValidationError, match="gradual_threshold"):
            DeltaSettings(gradual_threshold=2.5, sudden_threshold=2.0)

    def test_medium_band_above_high_rejected(self):
        with pytest.raises(ValidationError, match="medium_confidence_threshold"):
            MoodScoringSettings(medium_confidence_threshold=0.8, high_confidence_threshold=0.7)


class TestOverrides:
    def test_nested_override_is_revalidated(self):
        updated = apply_overrides(default_settings(), {"clustering.min_cluster_size": 2, "max_workers": 8})

        assert updated.clustering.min_cluster_size == 2
        assert updated.max_workers == 8

    def test_original_settings_untouched(self):
        settings = default_settings()

        apply_overrides(settings, {"clustering.min_cluster_size": 2})

        assert settings.clustering.min_cluster_size == 3

    def test_enum_override_from_string(self):
        updated = apply_overrides(default_settings(), {"dynamic.review_policy": "auto_retry"})

        assert updated.dynamic.review_policy is ReviewPolicy.AUTO_RETRY

    def test_invalid_override_raises_config_error(self):
        with pytest.raises(InvalidConfigError):
            apply_overrides(default_settings(), {"clustering.min_cluster_size": 99})

    def test_nested_key_under_scalar_rejected(self):
        with pytest.raises(InvalidConfigError, match="max_workers"):
            apply_overrides(default_settings(), {"max_workers.value": 2})


class TestPersistence:
    def test_save_then_load(self, tmp_path):
        path = tmp_path / "nested" / "config.json"
        settings = apply_overrides(default_settings(), {"deltas.sudden_threshold": 2.5})

        save_settings(settings, path)
        loaded = load_settings(path)

        assert loaded == settings
        assert json.loads(path.read_text())["deltas"]["sudden_threshold"] == 2.5

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{")

        with pytest.raises(InvalidConfigError, match="not valid JSON"):
            load_settings(path)

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"max_workers": 0}))

        with pytest.raises(InvalidConfigError):
            load_settings(path)

    def test_partial_file_fills_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"recluster_timeout_seconds": 5}))

        loaded = load_settings(path)

        assert loaded.recluster_timeout_seconds == 5
        assert loaded.clustering == AnalysisSettings().clustering
