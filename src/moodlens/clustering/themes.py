"""Cluster theme derivation.

A theme aggregates the dominant tone descriptors and psychological labels
of a cluster's members. Counting is deterministic: labels are ranked by
count, then alphabetically, so the same members always produce the same
theme.
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable, List, Sequence, Tuple

import numpy as np

from moodlens.models.clustering import SENTIMENT_COMPONENTS, ClusteringFeatures, ClusterTheme

SECONDARY_LABELS = 2
FALLBACK_THEME = "mixed"


def member_labels(features: ClusteringFeatures) -> Tuple[str, ...]:
    """Tone descriptors plus coping mechanism labels of one member."""
    labels = list(features.tone.descriptors)
    labels.extend(label for label in features.psychological.coping_mechanisms if label not in labels)
    return tuple(labels)


def ranked_labels(members: Iterable[ClusteringFeatures]) -> List[Tuple[str, int]]:
    counts: Counter = Counter()
    for features in members:
        counts.update(set(member_labels(features)))
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))


def dominant_tone(members: Sequence[ClusteringFeatures]) -> str:
    vectors = np.array([f.tone.sentiment_vector for f in members], dtype=float)
    mean = vectors.mean(axis=0)
    if not mean.any():
        return "neutral"
    return SENTIMENT_COMPONENTS[int(np.argmax(mean))]


def derive_theme(members: Sequence[ClusteringFeatures]) -> ClusterTheme:
    """Theme of a non-empty member set."""
    ranked = ranked_labels(members)
    primary = ranked[0][0] if ranked else FALLBACK_THEME
    secondary = tuple(label for label, _ in ranked[1 : 1 + SECONDARY_LABELS])
    return ClusterTheme(
        primary=primary,
        secondary=secondary,
        dominant_tone=dominant_tone(members),
        intensity=float(np.mean([f.tone.intensity for f in members])),
    )


def theme_share(theme: ClusterTheme, members: Sequence[ClusteringFeatures]) -> float:
    """Fraction of members carrying the theme's primary label."""
    if not members:
        return 0.0
    holders = sum(1 for f in members if theme.primary in member_labels(f))
    return holders / len(members)
