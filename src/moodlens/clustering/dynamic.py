"""Dynamic cluster manager.

Places one new memory without a full re-cluster:

    evaluate -> integrate | spawn | review

- integrate: the best centroid similarity is above the integration
  threshold, the predicted coherence after insertion stays at or above the
  coherence threshold and the cluster has room
- spawn: no cluster qualifies but the memory sits in a dense region of
  unclustered memories; it founds a provisional singleton cluster
- review: anything else; the memory waits for a reviewer or the next full
  re-cluster, depending on the review policy

Only the chosen cluster is touched. Other clusters' memberships are never
re-evaluated here; a full re-cluster is the only path that reshuffles them.
"""

from __future__ import annotations

import logging
from typing import FrozenSet, List, Mapping, Optional, Sequence, Tuple

from moodlens.clustering.engine import cluster_id_for, pair_count, psychological_significance
from moodlens.clustering.features import centroid_features
from moodlens.clustering.registry import ClusterRegistry
from moodlens.clustering.similarity import SimilarityCalculator
from moodlens.clustering.themes import derive_theme, theme_share
from moodlens.configuration.settings import ClusteringConstraints, DynamicClusteringSettings, ReviewPolicy
from moodlens.errors import InvalidInputError
from moodlens.models.clustering import (
    Cluster,
    ClusteringFeatures,
    ClusterSnapshot,
    FlaggedForReview,
    Integrated,
    PlacementOutcome,
    Spawned,
)

logger = logging.getLogger(__name__)


def predicted_coherence(coherence: float, size: int, similarity: float) -> float:
    """Coherence after adding one member whose similarity to each member is ``similarity``.

    ``(c * P + n * s) / (P + n)`` with ``P = n(n-1)/2`` existing pairs.
    """
    pairs = pair_count(size)
    return (coherence * pairs + size * similarity) / (pairs + size)


class _NoLongerAcceptable(Exception):
    """The cluster changed under its lock and no longer accepts the memory."""


class DynamicClusterManager:
    """Incremental placement of new memories into the committed cluster set."""

    def __init__(
        self,
        registry: ClusterRegistry,
        settings: Optional[DynamicClusteringSettings] = None,
        constraints: Optional[ClusteringConstraints] = None,
        similarity: Optional[SimilarityCalculator] = None,
    ) -> None:
        self.registry = registry
        self.settings = settings or DynamicClusteringSettings()
        self.constraints = constraints or ClusteringConstraints()
        self.similarity = similarity or SimilarityCalculator(self.constraints.similarity_weights)

    # ------------------------------------------------------------------
    # Evaluate
    # ------------------------------------------------------------------

    def _member_features(
        self, cluster: Cluster, store: Mapping[str, ClusteringFeatures]
    ) -> List[ClusteringFeatures]:
        missing = sorted(m for m in cluster.members if m not in store)
        if missing:
            raise InvalidInputError(
                f"Feature store has no features for {missing} in {cluster.cluster_id}",
                memory_id=missing[0],
                field="features",
            )
        return [store[m] for m in sorted(cluster.members)]

    def rank_clusters(
        self,
        features: ClusteringFeatures,
        store: Mapping[str, ClusteringFeatures],
        snapshot: Optional[ClusterSnapshot] = None,
    ) -> List[Tuple[float, Cluster]]:
        """Clusters ordered by centroid similarity, best first."""
        snapshot = snapshot or self.registry.snapshot
        ranked = []
        for cluster in snapshot.clusters:
            centroid = centroid_features(self._member_features(cluster, store), centroid_id=cluster.cluster_id)
            ranked.append((self.similarity.similarity(features, centroid), cluster))
        ranked.sort(key=lambda item: (-item[0], item[1].cluster_id))
        return ranked

    def density(self, features: ClusteringFeatures, unclustered: Sequence[ClusteringFeatures]) -> float:
        """Mean similarity to the nearest unclustered memories."""
        others = [u for u in unclustered if u.memory_id != features.memory_id]
        if not others:
            return 0.0
        scores = sorted((self.similarity.similarity(features, u) for u in others), reverse=True)
        nearest = scores[: self.settings.density_neighbors]
        return sum(nearest) / len(nearest)

    def _accepts(self, cluster: Cluster, similarity: float) -> Optional[float]:
        if similarity <= self.settings.integration_threshold:
            return None
        if cluster.size + 1 > self.constraints.max_cluster_size:
            return None
        predicted = predicted_coherence(cluster.coherence, cluster.size, similarity)
        # Inclusive, like the merge rule in full re-clusters
        if predicted < self.constraints.coherence_threshold:
            return None
        return predicted

    # ------------------------------------------------------------------
    # Place
    # ------------------------------------------------------------------

    def place(
        self,
        features: ClusteringFeatures,
        store: Mapping[str, ClusteringFeatures],
        unclustered: Sequence[ClusteringFeatures] = (),
    ) -> PlacementOutcome:
        """Integrate, spawn or flag one new memory.

        Args:
            features: Features of the new memory
            store: Features of every clustered memory, keyed by memory id
            unclustered: Features of memories not yet in any cluster

        Raises:
            InvalidInputError: The memory is already clustered or the store is incomplete
        """
        memory_id = features.memory_id
        snapshot = self.registry.snapshot
        if memory_id in snapshot.clustered_ids:
            raise InvalidInputError(f"Memory '{memory_id}' is already clustered", memory_id=memory_id)

        ranked = self.rank_clusters(features, store, snapshot)
        for similarity, cluster in ranked:
            if self._accepts(cluster, similarity) is None:
                continue
            try:
                updated = self.registry.update_cluster(
                    cluster.cluster_id,
                    lambda latest, s=similarity: self._integrate(latest, features, s, store),
                )
            except _NoLongerAcceptable:
                continue
            predicted = predicted_coherence(cluster.coherence, cluster.size, similarity)
            logger.debug(f"Integrated {memory_id} into {updated.cluster_id} (similarity {similarity:.3f})")
            return Integrated(
                memory_id=memory_id,
                cluster=updated,
                similarity=similarity,
                predicted_coherence=predicted,
            )

        density = self.density(features, unclustered)
        if density > self.settings.spawn_threshold:
            cluster = self._spawn(features)
            self.registry.add_cluster(cluster)
            logger.debug(f"Spawned {cluster.cluster_id} for {memory_id} (density {density:.3f})")
            return Spawned(memory_id=memory_id, cluster=cluster, density=density)

        best_similarity, best_cluster = ranked[0] if ranked else (0.0, None)
        self.registry.flag_for_review(memory_id)
        reason = (
            "no cluster above the integration threshold keeps coherence and size within constraints"
            if ranked
            else "no committed clusters and too few similar unclustered memories"
        )
        logger.debug(f"Flagged {memory_id} for review (best similarity {best_similarity:.3f})")
        return FlaggedForReview(
            memory_id=memory_id,
            reason=reason,
            best_similarity=best_similarity,
            best_cluster_id=best_cluster.cluster_id if best_cluster else None,
        )

    def _integrate(
        self,
        latest: Cluster,
        features: ClusteringFeatures,
        similarity: float,
        store: Mapping[str, ClusteringFeatures],
    ) -> Cluster:
        # Runs under the cluster's lock against its latest committed version
        if self._accepts(latest, similarity) is None:
            raise _NoLongerAcceptable(latest.cluster_id)
        members = self._member_features(latest, store)
        new_pairs = sum(self.similarity.similarity(features, m) for m in members)
        pairs = pair_count(latest.size)
        coherence = (latest.coherence * pairs + new_pairs) / (pairs + latest.size)
        coherence = min(1.0, max(0.0, coherence))

        all_members = members + [features]
        theme = derive_theme(all_members)
        significance = psychological_significance(coherence, theme.intensity, theme_share(theme, all_members))
        return Cluster(
            cluster_id=latest.cluster_id,
            theme=theme,
            members=latest.members | {features.memory_id},
            coherence=coherence,
            psychological_significance=significance,
            provisional=latest.provisional and latest.size + 1 < self.constraints.min_cluster_size,
            warnings=latest.warnings,
        )

    def _spawn(self, features: ClusteringFeatures) -> Cluster:
        theme = derive_theme([features])
        return Cluster(
            cluster_id=cluster_id_for([features.memory_id], prefix="provisional"),
            theme=theme,
            members=frozenset({features.memory_id}),
            coherence=1.0,
            psychological_significance=psychological_significance(1.0, theme.intensity, theme_share(theme, [features])),
            provisional=True,
        )

    # ------------------------------------------------------------------
    # Review policy
    # ------------------------------------------------------------------

    def retry_candidates(self, snapshot: Optional[ClusterSnapshot] = None) -> FrozenSet[str]:
        """Review-flagged memories the next full re-cluster may include."""
        snapshot = snapshot or self.registry.snapshot
        if self.settings.review_policy is ReviewPolicy.AUTO_RETRY:
            return snapshot.pending_review
        return frozenset()
