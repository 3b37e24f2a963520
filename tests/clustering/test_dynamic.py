"""Tests for incremental placement of new memories."""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace

import pytest

from moodlens.clustering.dynamic import DynamicClusterManager, predicted_coherence
from moodlens.clustering.engine import cluster_id_for
from moodlens.clustering.registry import ClusterRegistry
from moodlens.clustering.similarity import SimilarityCalculator
from moodlens.configuration.settings import (
    ClusteringConstraints,
    DynamicClusteringSettings,
    ReviewPolicy,
)
from moodlens.errors import InvalidInputError
from moodlens.models.clustering import (
    Cluster,
    ClusterSnapshot,
    ClusterTheme,
    FlaggedForReview,
    Integrated,
    Spawned,
)


class TableSimilarity(SimilarityCalculator):
    """Similarity looked up by memory id pair; centroids carry their cluster id."""

    def __init__(self, table, default=0.0):
        super().__init__()
        self.table = {frozenset(pair): value for pair, value in table.items()}
        self.default = default

    def similarity(self, a, b):
        if a.memory_id == b.memory_id:
            return 1.0
        return self.table.get(frozenset((a.memory_id, b.memory_id)), self.default)


def make_cluster(cluster_id="c1", members=("a", "b", "c"), coherence=0.8):
    return Cluster(
        cluster_id=cluster_id,
        theme=ClusterTheme(primary="hopeful"),
        members=frozenset(members),
        coherence=coherence,
        psychological_significance=0.7,
    )


@pytest.fixture
def store(features_factory):
    return {m: features_factory(m) for m in ("a", "b", "c", "x", "y")}


def manager_for(clusters, table, *, default=0.0, settings=None, constraints=None):
    registry = ClusterRegistry(ClusterSnapshot(generation=1, clusters=tuple(clusters)))
    return DynamicClusterManager(
        registry,
        settings=settings,
        constraints=constraints or ClusteringConstraints(),
        similarity=TableSimilarity(table, default),
    )


class TestPredictedCoherence:
    def test_formula(self):
        assert predicted_coherence(0.8, 3, 0.9) == pytest.approx(0.85)

    def test_singleton(self):
        assert predicted_coherence(1.0, 1, 0.5) == pytest.approx(0.5)


class TestPlacement:
    """Integrate, spawn or review."""

    def test_below_integration_threshold_goes_to_review(self, features_factory, store):
        manager = manager_for([make_cluster()], {("n", "c1"): 0.65})

        outcome = manager.place(features_factory("n"), store)

        assert isinstance(outcome, FlaggedForReview)
        assert outcome.best_similarity == pytest.approx(0.65)
        assert outcome.best_cluster_id == "c1"
        snapshot = manager.registry.snapshot
        assert "n" in snapshot.pending_review
        assert snapshot.get("c1").members == frozenset({"a", "b", "c"})

    def test_integrates_into_best_cluster(self, features_factory, store):
        table = {("n", "c1"): 0.9, ("n", "a"): 0.9, ("n", "b"): 0.9, ("n", "c"): 0.9}
        manager = manager_for([make_cluster()], table)

        outcome = manager.place(features_factory("n"), store)

        assert isinstance(outcome, Integrated)
        assert outcome.predicted_coherence == pytest.approx(0.85)
        assert outcome.cluster.members == frozenset({"a", "b", "c", "n"})
        assert outcome.cluster.coherence == pytest.approx(0.85)
        committed = manager.registry.snapshot.get("c1")
        assert committed.members == outcome.cluster.members
        assert manager.registry.generation == 2

    def test_only_the_chosen_cluster_changes(self, features_factory, store):
        other = make_cluster("c2", members=("x", "y"), coherence=0.9)
        table = {("n", "c1"): 0.95, ("n", "c2"): 0.8}
        manager = manager_for([make_cluster(), other], table, default=0.9)

        outcome = manager.place(features_factory("n"), store)

        assert outcome.cluster.cluster_id == "c1"
        assert manager.registry.snapshot.get("c2") == other

    def test_predicted_coherence_gate(self, features_factory, store):
        manager = manager_for([make_cluster(coherence=0.4)], {("n", "c1"): 0.72})
        outcome = manager.place(features_factory("n"), store)
        assert isinstance(outcome, FlaggedForReview)

    @pytest.mark.parametrize("similarity, accepted", [(0.875, True), (0.87, False)])
    def test_predicted_coherence_equal_to_threshold_is_accepted(
        self, features_factory, store, similarity, accepted
    ):
        # (0.5 * 1 + 2 * 0.875) / 3 == 0.75 exactly
        constraints = ClusteringConstraints(min_cluster_size=2, coherence_threshold=0.75)
        table = {("n", "c1"): similarity, ("n", "a"): similarity, ("n", "b"): similarity}
        manager = manager_for(
            [make_cluster(members=("a", "b"), coherence=0.5)], table, constraints=constraints
        )

        outcome = manager.place(features_factory("n"), store)

        if accepted:
            assert isinstance(outcome, Integrated)
            assert outcome.predicted_coherence == 0.75
        else:
            assert isinstance(outcome, FlaggedForReview)

    def test_full_cluster_is_skipped(self, features_factory, store):
        constraints = ClusteringConstraints(min_cluster_size=2, max_cluster_size=3)
        manager = manager_for([make_cluster()], {("n", "c1"): 0.95}, constraints=constraints)
        outcome = manager.place(features_factory("n"), store)
        assert isinstance(outcome, FlaggedForReview)

    def test_falls_through_to_next_candidate(self, features_factory, store):
        full = make_cluster("c1")
        roomy = make_cluster("c2", members=("x", "y"), coherence=0.9)
        constraints = ClusteringConstraints(min_cluster_size=2, max_cluster_size=3)
        table = {("n", "c1"): 0.95, ("n", "c2"): 0.85, ("n", "x"): 0.85, ("n", "y"): 0.85}
        manager = manager_for([full, roomy], table, constraints=constraints)

        outcome = manager.place(features_factory("n"), store)

        assert isinstance(outcome, Integrated)
        assert outcome.cluster.cluster_id == "c2"

    def test_dense_region_spawns_provisional_cluster(self, features_factory, store):
        manager = manager_for([make_cluster()], {("n", "c1"): 0.5, ("n", "u1"): 0.8, ("n", "u2"): 0.9})
        unclustered = [features_factory("u1"), features_factory("u2")]

        outcome = manager.place(features_factory("n"), store, unclustered)

        assert isinstance(outcome, Spawned)
        assert outcome.density == pytest.approx(0.85)
        assert outcome.cluster.provisional
        assert outcome.cluster.members == frozenset({"n"})
        assert outcome.cluster.cluster_id == cluster_id_for(["n"], prefix="provisional")
        assert manager.registry.snapshot.get(outcome.cluster.cluster_id) is not None

    def test_sparse_region_with_no_clusters_goes_to_review(self, features_factory, store):
        manager = manager_for([], {("n", "u1"): 0.3})
        outcome = manager.place(features_factory("n"), store, [features_factory("u1")])
        assert isinstance(outcome, FlaggedForReview)
        assert outcome.best_cluster_id is None

    def test_provisional_cluster_graduates_at_min_size(self, features_factory, store):
        seed = replace(make_cluster("p1", members=("x",), coherence=1.0), provisional=True)
        constraints = ClusteringConstraints(min_cluster_size=2, max_cluster_size=5)
        manager = manager_for([seed], {("n", "p1"): 0.9, ("n", "x"): 0.9}, constraints=constraints)

        outcome = manager.place(features_factory("n"), store)

        assert isinstance(outcome, Integrated)
        assert not outcome.cluster.provisional

    def test_already_clustered_memory_rejected(self, features_factory, store):
        manager = manager_for([make_cluster()], {})
        with pytest.raises(InvalidInputError):
            manager.place(features_factory("a"), store)

    def test_incomplete_store_rejected(self, features_factory):
        manager = manager_for([make_cluster()], {})
        with pytest.raises(InvalidInputError) as exc_info:
            manager.place(features_factory("n"), {"a": features_factory("a")})
        assert exc_info.value.memory_id == "b"

    def test_outcomes_serialize(self, features_factory, store):
        manager = manager_for([make_cluster()], {("n", "c1"): 0.65})
        payload = manager.place(features_factory("n"), store).to_dict()
        assert payload["outcome"] == "flagged_for_review"
        assert payload["best_cluster_id"] == "c1"


class TestConcurrentPlacement:
    def test_no_integration_is_lost(self, features_factory, store):
        manager = manager_for([make_cluster()], {}, default=0.9)
        newcomers = [features_factory(f"n{i}") for i in range(8)]
        full_store = dict(store)
        full_store.update({f.memory_id: f for f in newcomers})

        with ThreadPoolExecutor(max_workers=4) as executor:
            outcomes = list(executor.map(lambda f: manager.place(f, full_store), newcomers))

        assert all(isinstance(o, Integrated) for o in outcomes)
        final = manager.registry.snapshot.get("c1")
        assert final.members == frozenset({"a", "b", "c"} | {f.memory_id for f in newcomers})
        assert manager.registry.generation == 1 + len(newcomers)


class TestReviewPolicy:
    def test_require_human_action_holds_back_flagged(self, features_factory, store):
        manager = manager_for([make_cluster()], {("n", "c1"): 0.65})
        manager.place(features_factory("n"), store)
        assert manager.retry_candidates() == frozenset()

    def test_auto_retry_releases_flagged(self, features_factory, store):
        settings = DynamicClusteringSettings(review_policy=ReviewPolicy.AUTO_RETRY)
        manager = manager_for([make_cluster()], {("n", "c1"): 0.65}, settings=settings)
        manager.place(features_factory("n"), store)
        assert manager.retry_candidates() == frozenset({"n"})
