"""Tests for the clustering feedback loop."""

import pytest

from moodlens.clustering.feedback import ClusterFeedbackLoop
from moodlens.configuration.settings import ClusteringConstraints
from moodlens.models.clustering import (
    ClusterQualityReport,
    FeedbackSeverity,
    FeedbackType,
    ValidationFeedback,
)


def make_report(overall=0.9, unity=0.9, meaningfulness=0.9, cluster_id="c1"):
    return ClusterQualityReport(
        cluster_id=cluster_id,
        overall_coherence=overall,
        emotional_consistency=overall,
        thematic_unity=unity,
        relationship_consistency=overall,
        temporal_coherence=overall,
        psychological_meaningfulness=meaningfulness,
    )


def feedback_of(kind, n):
    return [
        ValidationFeedback(cluster_id=f"c{i}", type=kind, severity=FeedbackSeverity.MEDIUM, description="")
        for i in range(n)
    ]


@pytest.fixture
def loop():
    return ClusterFeedbackLoop()


class TestFeedbackFromReport:
    def test_healthy_cluster_gets_positive_validation(self, loop):
        items = loop.feedback_from_report(make_report(), ClusteringConstraints())
        assert [i.type for i in items] == [FeedbackType.POSITIVE_VALIDATION]

    def test_incoherent_cluster(self, loop):
        items = loop.feedback_from_report(make_report(overall=0.3), ClusteringConstraints())
        issue = items[0]
        assert issue.type is FeedbackType.COHERENCE_ISSUE
        assert issue.severity is FeedbackSeverity.HIGH

    def test_theme_and_meaningfulness_issues(self, loop):
        items = loop.feedback_from_report(
            make_report(unity=0.3, meaningfulness=0.2), ClusteringConstraints()
        )
        assert {i.type for i in items} == {FeedbackType.THEME_MISMATCH, FeedbackType.PSYCHOLOGICAL_INCOHERENCE}

    def test_record_report_stores_items(self, loop):
        loop.record_report(make_report(overall=0.5), ClusteringConstraints())
        assert loop.summary()["coherence_issue"] == 1
        assert loop.summary()["positive_validation"] == 0

    def test_window_bounds_ledger(self):
        loop = ClusterFeedbackLoop(window=3)
        for item in feedback_of(FeedbackType.THEME_MISMATCH, 5):
            loop.record(item)
        assert len(loop.feedback) == 3


class TestProposeConstraints:
    def test_repeated_issues_raise_threshold(self, loop):
        proposed = loop.propose_constraints(
            ClusteringConstraints(), feedback_of(FeedbackType.COHERENCE_ISSUE, 3)
        )
        assert proposed.coherence_threshold == pytest.approx(0.65)

    def test_threshold_is_capped(self, loop):
        proposed = loop.propose_constraints(
            ClusteringConstraints(coherence_threshold=0.9), feedback_of(FeedbackType.COHERENCE_ISSUE, 5)
        )
        assert proposed.coherence_threshold == 0.9

    def test_repeated_positives_lower_threshold(self, loop):
        proposed = loop.propose_constraints(
            ClusteringConstraints(), feedback_of(FeedbackType.POSITIVE_VALIDATION, 4)
        )
        assert proposed.coherence_threshold == pytest.approx(0.55)

    def test_theme_mismatches_shrink_max_size(self, loop):
        constraints = ClusteringConstraints(min_cluster_size=3, max_cluster_size=3)
        proposed = loop.propose_constraints(constraints, feedback_of(FeedbackType.THEME_MISMATCH, 3))
        assert proposed.max_cluster_size == 3

        proposed = loop.propose_constraints(ClusteringConstraints(), feedback_of(FeedbackType.THEME_MISMATCH, 3))
        assert proposed.max_cluster_size == 14

    def test_no_feedback_keeps_constraints(self, loop):
        constraints = ClusteringConstraints()
        assert loop.propose_constraints(constraints) == constraints
