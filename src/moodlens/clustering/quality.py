"""Cluster quality assessment.

Scores each cluster on four coherence metrics, each in [0, 1]:

- emotional consistency: inverted variance of member intensity
- thematic unity: share of members carrying one of the theme's labels
- relationship consistency: modal relationship type share and intimacy spread
- temporal coherence: modal time-of-day share and overall time span

Overall coherence is their unweighted mean. Members whose similarity to
the cluster centroid falls below the coherence threshold are listed for
review, least similar first.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np

from moodlens.clustering.features import centroid_features
from moodlens.clustering.similarity import SimilarityCalculator
from moodlens.clustering.themes import member_labels
from moodlens.configuration.settings import ClusteringConstraints
from moodlens.errors import InvalidInputError
from moodlens.models.clustering import Cluster, ClusteringFeatures, ClusterQualityReport, IncoherentMember

logger = logging.getLogger(__name__)

# Largest variance of values bounded in [0, 1]
MAX_UNIT_VARIANCE = 0.25
TEMPORAL_DECAY_DAYS = 30.0
WIDE_SPAN_DAYS = 90.0
STRENGTH_LEVEL = 0.8
IMPROVEMENT_LEVEL = 0.6


def _inverted_variance(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 1.0
    return min(1.0, max(0.0, 1 - float(np.var(values)) / MAX_UNIT_VARIANCE))


def _modal_share(labels: Sequence[str]) -> float:
    if not labels:
        return 0.0
    return Counter(labels).most_common(1)[0][1] / len(labels)


def _span_days(members: Sequence[ClusteringFeatures]) -> float:
    stamps = [f.temporal.timestamp for f in members if f.temporal.timestamp is not None]
    if len(stamps) < 2:
        return 0.0
    return (max(stamps) - min(stamps)).total_seconds() / 86400


class ClusterQualityAssessor:
    """Computes quality reports for committed clusters."""

    def __init__(
        self,
        constraints: Optional[ClusteringConstraints] = None,
        similarity: Optional[SimilarityCalculator] = None,
    ) -> None:
        self.constraints = constraints or ClusteringConstraints()
        self.similarity = similarity or SimilarityCalculator(self.constraints.similarity_weights)

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    @staticmethod
    def emotional_consistency(members: Sequence[ClusteringFeatures]) -> float:
        return _inverted_variance([f.tone.intensity for f in members])

    @staticmethod
    def thematic_unity(cluster: Cluster, members: Sequence[ClusteringFeatures]) -> float:
        if not members:
            return 0.0
        top = set(cluster.theme.labels())
        sharing = sum(1 for f in members if top & set(member_labels(f)))
        return sharing / len(members)

    @staticmethod
    def relationship_consistency(members: Sequence[ClusteringFeatures]) -> float:
        type_share = _modal_share([f.relationship.relationship_type for f in members])
        intimacy = _inverted_variance([f.relationship.intimacy for f in members])
        return 0.5 * type_share + 0.5 * intimacy

    @staticmethod
    def temporal_coherence(members: Sequence[ClusteringFeatures]) -> float:
        time_share = _modal_share([f.temporal.time_of_day for f in members])
        proximity = math.exp(-_span_days(members) / TEMPORAL_DECAY_DAYS)
        return 0.5 * time_share + 0.5 * proximity

    @staticmethod
    def psychological_meaningfulness(
        members: Sequence[ClusteringFeatures], thematic_unity: float
    ) -> float:
        if not members:
            return 0.0
        with_signals = sum(
            1
            for f in members
            if f.psychological.coping_mechanisms or f.psychological.resilience or f.psychological.growth
        )
        regulation = float(np.mean([f.psychological.emotional_regulation for f in members]))
        return 0.4 * (with_signals / len(members)) + 0.3 * regulation + 0.3 * thematic_unity

    # ------------------------------------------------------------------
    # Report
    # ------------------------------------------------------------------

    def incoherent_members(self, members: Sequence[ClusteringFeatures]) -> List[IncoherentMember]:
        """Members below the coherence threshold against the centroid, worst first."""
        if len(members) < 2:
            return []
        centroid = centroid_features(members)
        scored = [
            IncoherentMember(memory_id=f.memory_id, similarity=self.similarity.similarity(f, centroid))
            for f in members
        ]
        flagged = [m for m in scored if m.similarity < self.constraints.coherence_threshold]
        flagged.sort(key=lambda m: (m.similarity, m.memory_id))
        return flagged

    def assess(self, cluster: Cluster, features: Mapping[str, ClusteringFeatures]) -> ClusterQualityReport:
        """Quality report for one cluster.

        Raises:
            InvalidInputError: A member has no feature vector
        """
        missing = sorted(m for m in cluster.members if m not in features)
        if missing:
            raise InvalidInputError(
                f"No features for members {missing} of {cluster.cluster_id}",
                memory_id=missing[0],
                field="features",
            )
        members = [features[m] for m in sorted(cluster.members)]

        metrics: Dict[str, float] = {
            "emotional_consistency": self.emotional_consistency(members),
            "thematic_unity": self.thematic_unity(cluster, members),
            "relationship_consistency": self.relationship_consistency(members),
            "temporal_coherence": self.temporal_coherence(members),
        }
        overall = float(np.mean(list(metrics.values())))
        meaningfulness = self.psychological_meaningfulness(members, metrics["thematic_unity"])

        report = ClusterQualityReport(
            cluster_id=cluster.cluster_id,
            overall_coherence=overall,
            psychological_meaningfulness=meaningfulness,
            incoherent_members=tuple(self.incoherent_members(members)),
            edge_cases=tuple(self._edge_cases(cluster, members, metrics)),
            strength_areas=tuple(name for name, value in metrics.items() if value >= STRENGTH_LEVEL),
            improvement_areas=tuple(name for name, value in metrics.items() if value < IMPROVEMENT_LEVEL),
            **metrics,
        )
        logger.debug(
            f"Quality {cluster.cluster_id}: overall={overall:.3f}, "
            f"{len(report.incoherent_members)} incoherent members"
        )
        return report

    def assess_all(
        self, clusters: Sequence[Cluster], features: Mapping[str, ClusteringFeatures]
    ) -> List[ClusterQualityReport]:
        return [self.assess(cluster, features) for cluster in clusters]

    def _edge_cases(
        self,
        cluster: Cluster,
        members: Sequence[ClusteringFeatures],
        metrics: Mapping[str, float],
    ) -> List[str]:
        flags = []
        if cluster.provisional:
            flags.append("provisional_cluster")
        if cluster.size < self.constraints.min_cluster_size:
            flags.append("below_min_size")
        if cluster.size >= self.constraints.max_cluster_size:
            flags.append("at_max_size")
        if _modal_share([f.relationship.relationship_type for f in members]) < 0.5:
            flags.append("mixed_relationship_types")
        if _span_days(members) > WIDE_SPAN_DAYS:
            flags.append("wide_time_span")
        if metrics["emotional_consistency"] < 0.5:
            flags.append("inconsistent_emotional_intensity")
        if cluster.warnings:
            flags.append("low_meaningfulness")
        return flags
