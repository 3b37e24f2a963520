"""Pairwise feature similarity and similarity matrix construction.

Per-dimension similarities are symmetric and bounded in [0, 1]:

- tone: cosine over sentiment vectors, closeness of intensity, mood and
  stability, descriptor overlap; disjoint descriptor sets are penalized
- style: closeness of openness and intimacy, label matches, linguistic
  pattern agreement
- relationship: type match, intimacy/safety closeness, support dynamics
- psychological: coping and resilience overlap, utilization/regulation closeness
- temporal: time of day, weekday, season and stability

Dimensions are combined with the shared weighted-sum primitive (tone 0.35,
style 0.25, relationship 0.20, psychological 0.15, temporal 0.05).
"""

from __future__ import annotations

import logging
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from moodlens.configuration.settings import DEFAULT_SIMILARITY_WEIGHTS
from moodlens.errors import ClusteringTimeoutError, InvalidInputError
from moodlens.models.clustering import (
    ClusteringFeatures,
    PsychologicalFeatures,
    RelationshipFeatures,
    StyleFeatures,
    TemporalFeatures,
    ToneFeatures,
)
from moodlens.scoring.weighting import WeightedCombination

logger = logging.getLogger(__name__)

DISJOINT_TONE_PENALTY = 0.2
LABEL_MISMATCH = 0.3
RELATIONSHIP_TYPE_MISMATCH = 0.2
WEEKDAY_MISMATCH = 0.7
SEASON_MISMATCH = 0.5


def _closeness(a: float, b: float, scale: float = 1.0) -> float:
    return max(0.0, 1.0 - abs(a - b) / scale)


def _match(a: str, b: str, mismatch: float = LABEL_MISMATCH) -> float:
    return 1.0 if a == b else mismatch


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity clamped to [0, 1]; two zero vectors count as identical."""
    if len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 and norm_b == 0.0:
        return 1.0
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return min(1.0, max(0.0, float(va @ vb) / (norm_a * norm_b)))


def label_overlap(a: Sequence[str], b: Sequence[str]) -> float:
    """Shared labels over the larger label set; two empty sets count as identical."""
    set_a, set_b = set(a), set(b)
    if not set_a and not set_b:
        return 1.0
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / max(len(set_a), len(set_b))


def strength_agreement(a: Mapping[str, float], b: Mapping[str, float]) -> float:
    """Mean closeness of strengths over shared labels."""
    if not a and not b:
        return 1.0
    shared = sorted(set(a) & set(b))
    if not shared:
        return 0.0
    return sum(_closeness(a[label], b[label]) for label in shared) / len(shared)


class SimilarityCalculator:
    """Weighted multi-dimensional similarity between feature vectors."""

    def __init__(self, weights: Optional[Mapping[str, float]] = None) -> None:
        weights = dict(weights) if weights is not None else dict(DEFAULT_SIMILARITY_WEIGHTS)
        if set(weights) != set(DEFAULT_SIMILARITY_WEIGHTS):
            raise InvalidInputError(
                f"Similarity weights must cover exactly {sorted(DEFAULT_SIMILARITY_WEIGHTS)}",
                field="similarity_weights",
            )
        self._combination = WeightedCombination(weights)

    # ------------------------------------------------------------------
    # Dimensions
    # ------------------------------------------------------------------

    @staticmethod
    def tone(a: ToneFeatures, b: ToneFeatures) -> float:
        base = (
            cosine_similarity(a.sentiment_vector, b.sentiment_vector) * 0.3
            + _closeness(a.intensity, b.intensity) * 0.25
            + _closeness(a.mood_score, b.mood_score, scale=10.0) * 0.2
            + _closeness(a.stability, b.stability) * 0.15
            + label_overlap(a.descriptors, b.descriptors) * 0.1
        )
        if a.descriptors and b.descriptors and not set(a.descriptors) & set(b.descriptors):
            base *= DISJOINT_TONE_PENALTY
        return base

    @staticmethod
    def style(a: StyleFeatures, b: StyleFeatures) -> float:
        return (
            _closeness(a.openness, b.openness) * 0.25
            + _match(a.support_seeking_style, b.support_seeking_style) * 0.25
            + _match(a.coping_communication, b.coping_communication) * 0.2
            + _closeness(a.intimacy, b.intimacy) * 0.15
            + strength_agreement(a.linguistic_patterns, b.linguistic_patterns) * 0.15
        )

    @staticmethod
    def relationship(a: RelationshipFeatures, b: RelationshipFeatures) -> float:
        support = (
            _match(a.support_level, b.support_level) * 0.3
            + _match(a.support_direction, b.support_direction) * 0.3
            + _closeness(a.effectiveness, b.effectiveness) * 0.2
            + _closeness(a.reciprocity, b.reciprocity) * 0.2
        )
        return (
            _match(a.relationship_type, b.relationship_type, RELATIONSHIP_TYPE_MISMATCH) * 0.3
            + _closeness(a.intimacy, b.intimacy) * 0.25
            + _closeness(a.safety, b.safety) * 0.25
            + support * 0.2
        )

    @staticmethod
    def psychological(a: PsychologicalFeatures, b: PsychologicalFeatures) -> float:
        return (
            label_overlap(list(a.coping_mechanisms), list(b.coping_mechanisms)) * 0.3
            + _closeness(a.support_utilization, b.support_utilization) * 0.25
            + _closeness(a.emotional_regulation, b.emotional_regulation) * 0.25
            + label_overlap(list(a.resilience), list(b.resilience)) * 0.2
        )

    @staticmethod
    def temporal(a: TemporalFeatures, b: TemporalFeatures) -> float:
        return (
            _match(a.time_of_day, b.time_of_day) * 0.2
            + _match(a.day_of_week, b.day_of_week, WEEKDAY_MISMATCH) * 0.2
            + _match(a.season, b.season, SEASON_MISMATCH) * 0.3
            + _closeness(a.stability, b.stability) * 0.3
        )

    # ------------------------------------------------------------------
    # Combined
    # ------------------------------------------------------------------

    def dimensions(self, a: ClusteringFeatures, b: ClusteringFeatures) -> Dict[str, float]:
        return {
            "tone": self.tone(a.tone, b.tone),
            "style": self.style(a.style, b.style),
            "relationship": self.relationship(a.relationship, b.relationship),
            "psychological": self.psychological(a.psychological, b.psychological),
            "temporal": self.temporal(a.temporal, b.temporal),
        }

    def similarity(self, a: ClusteringFeatures, b: ClusteringFeatures) -> float:
        """Weighted similarity in [0, 1]; identical profiles give exactly 1.0."""
        if a is b or a.same_profile(b):
            return 1.0
        value = self._combination.combine(self.dimensions(a, b))
        return min(1.0, max(0.0, value))

    # ------------------------------------------------------------------
    # Matrix
    # ------------------------------------------------------------------

    def _chunk(
        self,
        features: Sequence[ClusteringFeatures],
        pairs: Sequence[Tuple[int, int]],
        cancel_event: Optional[threading.Event],
        deadline: Optional[float],
    ) -> List[Tuple[int, int, float]]:
        _check_budget(cancel_event, deadline)
        return [(i, j, self.similarity(features[i], features[j])) for i, j in pairs]

    def build_matrix(
        self,
        features: Sequence[ClusteringFeatures],
        *,
        max_workers: int = 1,
        chunk_size: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> np.ndarray:
        """Symmetric n x n similarity matrix with a diagonal of exactly 1.0.

        Only the upper triangle is computed; pairs are split into chunks
        and spread over a thread pool. ``deadline`` is a ``time.monotonic()``
        value; when it passes, or ``cancel_event`` is set, the build stops
        at the next chunk boundary and raises ``ClusteringTimeoutError``.
        """
        n = len(features)
        matrix = np.eye(n, dtype=float)
        pairs = [(i, j) for i in range(n) for j in range(i + 1, n)]
        if not pairs:
            return matrix

        if chunk_size is None:
            chunk_size = max(1, math.ceil(len(pairs) / (max(1, max_workers) * 4)))
        chunks = [pairs[k : k + chunk_size] for k in range(0, len(pairs), chunk_size)]
        started = time.monotonic()

        try:
            if max_workers <= 1:
                results = [self._chunk(features, chunk, cancel_event, deadline) for chunk in chunks]
            else:
                with ThreadPoolExecutor(max_workers=max_workers) as executor:
                    futures = [
                        executor.submit(self._chunk, features, chunk, cancel_event, deadline)
                        for chunk in chunks
                    ]
                    try:
                        results = [future.result() for future in futures]
                    except ClusteringTimeoutError:
                        for future in futures:
                            future.cancel()
                        raise
        except ClusteringTimeoutError as exc:
            raise ClusteringTimeoutError(
                "Similarity matrix build was cancelled or ran out of time",
                unprocessed_ids=[f.memory_id for f in features],
                elapsed_seconds=time.monotonic() - started,
                timeout_seconds=exc.timeout_seconds,
            ) from exc

        for chunk_result in results:
            for i, j, value in chunk_result:
                matrix[i, j] = value
                matrix[j, i] = value

        logger.debug(f"Built {n}x{n} similarity matrix from {len(pairs)} pairs in {len(chunks)} chunks")
        return matrix


def _check_budget(cancel_event: Optional[threading.Event], deadline: Optional[float]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ClusteringTimeoutError("Cancelled")
    if deadline is not None and time.monotonic() >= deadline:
        raise ClusteringTimeoutError("Deadline passed")
