"""Tests for the versioned cluster registry."""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace

import pytest

from moodlens.clustering.registry import ClusterRegistry, StaleSnapshotError
from moodlens.errors import InvalidInputError
from moodlens.models.clustering import Cluster, ClusteringResult, ClusterTheme, OutlierGroup


def make_cluster(cluster_id, members, coherence=0.8):
    return Cluster(
        cluster_id=cluster_id,
        theme=ClusterTheme(primary="hopeful"),
        members=frozenset(members),
        coherence=coherence,
        psychological_significance=0.7,
    )


@pytest.fixture
def registry():
    registry = ClusterRegistry()
    registry.commit(
        ClusteringResult(
            clusters=(make_cluster("c1", ["a", "b"]), make_cluster("c2", ["c", "d"])),
            outliers=(OutlierGroup(group_id="o1", members=frozenset({"e"}), reason="alone"),),
        )
    )
    return registry


class TestCommit:
    def test_empty_registry_starts_at_generation_zero(self):
        assert ClusterRegistry().generation == 0

    def test_commit_publishes_new_generation(self, registry):
        snapshot = registry.snapshot
        assert snapshot.generation == 1
        assert {c.cluster_id for c in snapshot.clusters} == {"c1", "c2"}
        assert snapshot.clustered_ids == frozenset({"a", "b", "c", "d"})
        assert snapshot.outliers[0].members == frozenset({"e"})

    def test_readers_keep_their_snapshot(self, registry):
        before = registry.snapshot
        registry.commit(ClusteringResult(clusters=(make_cluster("c3", ["x", "y"]),)))
        assert before.get("c1") is not None
        assert registry.snapshot.get("c1") is None
        assert registry.generation == 2

    def test_stale_commit_rejected(self, registry):
        with pytest.raises(StaleSnapshotError) as exc_info:
            registry.commit(ClusteringResult(clusters=()), expected_generation=0)
        assert exc_info.value.details["current_generation"] == 1
        assert registry.generation == 1

    def test_commit_carries_pending_review(self, registry):
        snapshot = registry.commit(ClusteringResult(clusters=()), pending_review=["z"])
        assert snapshot.pending_review == frozenset({"z"})


class TestUpdates:
    def test_update_cluster(self, registry):
        updated = registry.update_cluster("c1", lambda c: c.with_member("n", 0.75))
        assert updated.members == frozenset({"a", "b", "n"})
        assert registry.snapshot.get("c1") == updated
        assert registry.snapshot.get("c2").members == frozenset({"c", "d"})

    def test_update_unknown_cluster(self, registry):
        with pytest.raises(InvalidInputError):
            registry.update_cluster("nope", lambda c: c)

    def test_update_must_keep_id(self, registry):
        with pytest.raises(InvalidInputError):
            registry.update_cluster("c1", lambda c: replace(c, cluster_id="other"))
        assert registry.generation == 1

    def test_concurrent_updates_are_serialized(self, registry):
        def add(i):
            return registry.update_cluster("c1", lambda c: c.with_member(f"n{i}", c.coherence))

        with ThreadPoolExecutor(max_workers=8) as executor:
            list(executor.map(add, range(20)))

        assert registry.snapshot.get("c1").size == 22
        assert registry.generation == 21

    def test_add_cluster_rejects_duplicates(self, registry):
        registry.add_cluster(make_cluster("p1", ["n"]))
        with pytest.raises(InvalidInputError):
            registry.add_cluster(make_cluster("p1", ["m"]))


class TestReviewAndHistory:
    def test_flag_and_release(self, registry):
        registry.flag_for_review("n1")
        registry.flag_for_review("n2")
        assert registry.snapshot.pending_review == frozenset({"n1", "n2"})
        registry.release_review(["n1"])
        assert registry.snapshot.pending_review == frozenset({"n2"})

    def test_rollback_republishes_old_contents(self, registry):
        registry.commit(ClusteringResult(clusters=(make_cluster("c3", ["x", "y"]),)))
        snapshot = registry.rollback(1)
        assert snapshot.generation == 3
        assert {c.cluster_id for c in snapshot.clusters} == {"c1", "c2"}

    def test_rollback_to_unknown_generation(self, registry):
        with pytest.raises(InvalidInputError):
            registry.rollback(42)

    def test_history_is_bounded(self):
        registry = ClusterRegistry(history=3)
        for _ in range(5):
            registry.flag_for_review("n")
        assert [s.generation for s in registry.history()] == [3, 4, 5]
