"""Tests for cross-cluster pattern recognition."""

from datetime import timedelta

import pytest

from moodlens.analysis.pattern_recognition import (
    PatternRecognitionAnalyzer,
    cluster_labels,
    intensity_trend,
    temporal_midpoint,
)
from moodlens.errors import InvalidInputError
from moodlens.models.clustering import Cluster, ClusterSnapshot, ClusterTheme, PatternType


def make_cluster(cluster_id, members, *, primary="hopeful", secondary=("reframing",), intensity=0.5):
    return Cluster(
        cluster_id=cluster_id,
        theme=ClusterTheme(primary=primary, secondary=secondary, intensity=intensity),
        members=frozenset(members),
        coherence=0.8,
        psychological_significance=0.7,
    )


@pytest.fixture
def features(features_factory, base_time):
    later = base_time + timedelta(days=10)
    store = {
        "a": features_factory("a", timestamp=base_time),
        "b": features_factory("b", timestamp=base_time),
        "c": features_factory("c", timestamp=later),
        "d": features_factory("d", timestamp=later),
    }
    for memory_id in ("e", "f"):
        store[memory_id] = features_factory(
            memory_id,
            descriptors=("tense",),
            coping={"avoidance": 0.6},
            resilience={},
            relationship_type="colleague",
            support_direction="unidirectional",
            coping_communication="emotional_venting",
        )
    return store


@pytest.fixture
def clusters():
    return [
        make_cluster("c1", ["a", "b"], intensity=0.4),
        make_cluster("c2", ["c", "d"], intensity=0.8),
        make_cluster("c3", ["e", "f"], primary="tense", secondary=("avoidance",), intensity=0.7),
    ]


@pytest.fixture
def analyzer():
    return PatternRecognitionAnalyzer()


class TestClusterLabels:
    def test_label_families(self, clusters, features):
        labels = cluster_labels(clusters[0], [features["a"], features["b"]])

        assert labels[PatternType.EMOTIONAL_THEME] == {"hopeful", "reframing"}
        assert labels[PatternType.COPING_STYLE] == {"reframing", "problem_solving"}
        assert labels[PatternType.RELATIONSHIP_DYNAMIC] == {"close_friend", "balanced_support"}
        assert labels[PatternType.PSYCHOLOGICAL_TENDENCY] == {"optimism"}

    def test_fallback_theme_is_not_a_label(self, features):
        cluster = make_cluster("m", ["a"], primary="mixed", secondary=())
        assert cluster_labels(cluster, [features["a"]])[PatternType.EMOTIONAL_THEME] == set()


class TestHelpers:
    def test_intensity_trend(self):
        assert intensity_trend([0.4, 0.8]) == "increasing"
        assert intensity_trend([0.8, 0.4]) == "decreasing"
        assert intensity_trend([0.5, 0.54]) == "stable"
        assert intensity_trend([0.5]) == "stable"

    def test_temporal_midpoint(self, features, base_time):
        assert temporal_midpoint([features["a"], features["c"]]) == base_time + timedelta(days=5)
        assert temporal_midpoint([]) is None


class TestAnalyze:
    """Promotion of recurring labels."""

    def test_recurring_labels_become_patterns(self, analyzer, clusters, features):
        patterns = analyzer.analyze(clusters, features)

        assert [(p.type, p.label) for p in patterns] == [
            (PatternType.EMOTIONAL_THEME, "hopeful"),
            (PatternType.EMOTIONAL_THEME, "reframing"),
            (PatternType.COPING_STYLE, "problem_solving"),
            (PatternType.COPING_STYLE, "reframing"),
            (PatternType.RELATIONSHIP_DYNAMIC, "balanced_support"),
            (PatternType.RELATIONSHIP_DYNAMIC, "close_friend"),
            (PatternType.PSYCHOLOGICAL_TENDENCY, "optimism"),
        ]
        assert all(p.frequency == 2 for p in patterns)
        assert all(p.cluster_ids == ("c1", "c2") for p in patterns)

    def test_strength_confidence_and_evolution(self, analyzer, clusters, features):
        hopeful = analyzer.analyze(clusters, features)[0]

        assert hopeful.strength == pytest.approx(0.6)
        assert hopeful.confidence == pytest.approx(0.8 * 2 / 3)
        assert hopeful.evolution.intensities == (0.4, 0.8)
        assert hopeful.evolution.trend == "increasing"

    def test_evolution_follows_time_not_id(self, analyzer, features):
        clusters = [
            make_cluster("c1", ["c", "d"], intensity=0.8),
            make_cluster("c2", ["a", "b"], intensity=0.4),
        ]
        hopeful = analyzer.analyze(clusters, features)[0]
        assert hopeful.evolution.cluster_ids == ("c2", "c1")
        assert hopeful.evolution.trend == "increasing"

    def test_single_occurrence_is_not_a_pattern(self, analyzer, clusters, features):
        labels = {p.label for p in analyzer.analyze(clusters, features)}
        assert "tense" not in labels
        assert "avoidance" not in labels

    def test_type_filter(self, analyzer, clusters, features):
        patterns = analyzer.analyze(clusters, features, [PatternType.COPING_STYLE])
        assert {p.type for p in patterns} == {PatternType.COPING_STYLE}

    def test_higher_minimum(self, clusters, features):
        assert PatternRecognitionAnalyzer(min_clusters=3).analyze(clusters, features) == []

    def test_minimum_must_be_two(self):
        with pytest.raises(InvalidInputError):
            PatternRecognitionAnalyzer(min_clusters=1)

    def test_missing_features(self, analyzer, clusters):
        with pytest.raises(InvalidInputError):
            analyzer.analyze(clusters, {})

    def test_snapshot_entry_point(self, analyzer, clusters, features):
        snapshot = ClusterSnapshot(generation=3, clusters=tuple(clusters))
        assert analyzer.analyze_snapshot(snapshot, features) == analyzer.analyze(clusters, features)

    def test_no_clusters(self, analyzer):
        assert analyzer.analyze([], {}) == []
