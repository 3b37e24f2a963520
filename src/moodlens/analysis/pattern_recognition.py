"""Cross-cluster pattern recognition.

Scans a committed cluster set and promotes labels that recur across
clusters to ``Pattern`` records. Four label families are tallied per
cluster:

- emotional_theme: the cluster theme's primary and secondary labels
- coping_style: coping mechanisms shared by a majority of members, plus the
  modal coping communication style
- relationship_dynamic: the modal relationship type and support direction
- psychological_tendency: resilience, stress and growth labels shared by a
  majority of members

A label becomes a pattern only when it appears in at least two distinct
clusters.

Example:
    analyzer = PatternRecognitionAnalyzer()
    for pattern in analyzer.analyze(snapshot.clusters, features):
        print(f"{pattern.type.value}: {pattern.label} x{pattern.frequency}")
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

import numpy as np

from moodlens.clustering.themes import FALLBACK_THEME
from moodlens.errors import InvalidInputError
from moodlens.models.clustering import (
    Cluster,
    ClusteringFeatures,
    ClusterSnapshot,
    Pattern,
    PatternEvolution,
    PatternType,
)

logger = logging.getLogger(__name__)

MIN_CLUSTERS = 2
TREND_TOLERANCE = 0.05


def _majority(groups: Sequence[Iterable[str]]) -> Set[str]:
    counts: Counter = Counter()
    for group in groups:
        counts.update(set(group))
    return {label for label, count in counts.items() if count * 2 >= len(groups)}


def _modal(values: Sequence[str]) -> Optional[str]:
    if not values:
        return None
    counts = Counter(values)
    best = max(counts.values())
    return min(value for value, count in counts.items() if count == best)


def cluster_labels(cluster: Cluster, members: Sequence[ClusteringFeatures]) -> Dict[PatternType, Set[str]]:
    """Labels one cluster contributes to each pattern family."""
    labels: Dict[PatternType, Set[str]] = {
        PatternType.EMOTIONAL_THEME: {label for label in cluster.theme.labels() if label != FALLBACK_THEME},
    }

    coping = _majority([f.psychological.coping_mechanisms for f in members])
    communication = _modal([f.style.coping_communication for f in members])
    if communication:
        coping.add(communication)
    labels[PatternType.COPING_STYLE] = coping

    dynamic: Set[str] = set()
    relationship = _modal([f.relationship.relationship_type for f in members])
    direction = _modal([f.relationship.support_direction for f in members])
    if relationship:
        dynamic.add(relationship)
    if direction:
        dynamic.add(f"{direction}_support")
    labels[PatternType.RELATIONSHIP_DYNAMIC] = dynamic

    tendency: Set[str] = set()
    for attribute in ("resilience", "stress_markers", "growth"):
        tendency |= _majority([getattr(f.psychological, attribute) for f in members])
    labels[PatternType.PSYCHOLOGICAL_TENDENCY] = tendency
    return labels


def temporal_midpoint(members: Sequence[ClusteringFeatures]) -> Optional[datetime]:
    stamps = [f.temporal.timestamp for f in members if f.temporal.timestamp is not None]
    if not stamps:
        return None
    earliest, latest = min(stamps), max(stamps)
    return earliest + (latest - earliest) / 2


def intensity_trend(intensities: Sequence[float]) -> str:
    if len(intensities) < 2:
        return "stable"
    change = intensities[-1] - intensities[0]
    if change > TREND_TOLERANCE:
        return "increasing"
    if change < -TREND_TOLERANCE:
        return "decreasing"
    return "stable"


class PatternRecognitionAnalyzer:
    """Promotes labels recurring across clusters to patterns."""

    def __init__(self, min_clusters: int = MIN_CLUSTERS):
        if min_clusters < 2:
            raise InvalidInputError("A pattern needs at least two clusters", field="min_clusters")
        self.min_clusters = min_clusters

    def analyze(
        self,
        clusters: Sequence[Cluster],
        features: Mapping[str, ClusteringFeatures],
        pattern_types: Optional[Sequence[PatternType]] = None,
    ) -> List[Pattern]:
        """Recognize patterns across ``clusters``.

        Args:
            clusters: Committed clusters to scan
            features: Feature vectors of every member, keyed by memory id
            pattern_types: Optional filter; all families by default

        Returns:
            Patterns ordered by family, then frequency (highest first), then label

        Raises:
            InvalidInputError: A member has no feature vector
        """
        wanted = list(pattern_types) if pattern_types else list(PatternType)
        members_of: Dict[str, List[ClusteringFeatures]] = {}
        occurrences: Dict[Tuple[PatternType, str], List[Cluster]] = defaultdict(list)

        for cluster in sorted(clusters, key=lambda c: c.cluster_id):
            members = self._members(cluster, features)
            members_of[cluster.cluster_id] = members
            for pattern_type, labels in cluster_labels(cluster, members).items():
                if pattern_type not in wanted:
                    continue
                for label in labels:
                    occurrences[(pattern_type, label)].append(cluster)

        patterns = [
            self._build(pattern_type, label, contributing, members_of)
            for (pattern_type, label), contributing in occurrences.items()
            if len(contributing) >= self.min_clusters
        ]
        order = {t: i for i, t in enumerate(PatternType)}
        patterns.sort(key=lambda p: (order[p.type], -p.frequency, p.label))
        logger.info(f"Recognized {len(patterns)} patterns across {len(members_of)} clusters")
        return patterns

    def analyze_snapshot(
        self,
        snapshot: ClusterSnapshot,
        features: Mapping[str, ClusteringFeatures],
        pattern_types: Optional[Sequence[PatternType]] = None,
    ) -> List[Pattern]:
        return self.analyze(snapshot.clusters, features, pattern_types)

    @staticmethod
    def _members(cluster: Cluster, features: Mapping[str, ClusteringFeatures]) -> List[ClusteringFeatures]:
        missing = sorted(m for m in cluster.members if m not in features)
        if missing:
            raise InvalidInputError(
                f"No features for members {missing} of {cluster.cluster_id}",
                memory_id=missing[0],
                field="features",
            )
        return [features[m] for m in sorted(cluster.members)]

    def _build(
        self,
        pattern_type: PatternType,
        label: str,
        contributing: Sequence[Cluster],
        members_of: Mapping[str, Sequence[ClusteringFeatures]],
    ) -> Pattern:
        frequency = len(contributing)
        sizes = np.array([c.size for c in contributing], dtype=float)
        intensities = np.array([c.theme.intensity for c in contributing], dtype=float)
        strength = float(np.dot(sizes, intensities) / sizes.sum())
        coherence = float(np.mean([c.coherence for c in contributing]))
        confidence = coherence * frequency / (frequency + 1)

        # Clusters without timestamps sort after dated ones
        dated = sorted(
            contributing,
            key=lambda c: (
                temporal_midpoint(members_of[c.cluster_id]) is None,
                temporal_midpoint(members_of[c.cluster_id]) or datetime.min,
                c.cluster_id,
            ),
        )
        ordered_intensities = tuple(c.theme.intensity for c in dated)
        evolution = PatternEvolution(
            cluster_ids=tuple(c.cluster_id for c in dated),
            intensities=ordered_intensities,
            trend=intensity_trend(ordered_intensities),
        )
        return Pattern(
            type=pattern_type,
            label=label,
            frequency=frequency,
            strength=min(1.0, max(0.0, strength)),
            confidence=min(1.0, max(0.0, confidence)),
            cluster_ids=evolution.cluster_ids,
            evolution=evolution,
        )
