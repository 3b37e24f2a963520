"""Tone clustering engine.

Constrained agglomerative clustering over a precomputed similarity matrix:

1. Start with every memory in its own cluster.
2. Repeatedly merge the pair of clusters with the highest average linkage,
   provided the linkage reaches ``coherence_threshold``, the merged
   cluster's coherence (mean pairwise similarity) stays at or above the
   threshold and its size stays within ``max_cluster_size``. Ties go to
   the pair with the lowest member indices.
3. Clusters smaller than ``min_cluster_size`` are merged into the nearest
   neighbour whose union still satisfies both constraints; if none
   qualifies they become outlier groups flagged for review.

The run depends only on the matrix values and their order. It either
returns a complete result or raises; partial clusterings are never
returned.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from moodlens.configuration.settings import ClusteringConstraints
from moodlens.errors import ClusteringTimeoutError, InsufficientDataError, InvalidInputError, LowConfidenceWarning
from moodlens.models.clustering import Cluster, ClusteringFeatures, ClusteringResult, OutlierGroup
from moodlens.clustering.similarity import SimilarityCalculator
from moodlens.clustering.themes import derive_theme, theme_share

logger = logging.getLogger(__name__)

SYMMETRY_TOLERANCE = 1e-9


def cluster_id_for(member_ids: Sequence[str], prefix: str = "cluster") -> str:
    """Stable id derived from the sorted member ids."""
    digest = hashlib.sha256("\n".join(sorted(member_ids)).encode("utf-8")).hexdigest()
    return f"{prefix}-{digest[:16]}"


def pair_count(size: int) -> int:
    return size * (size - 1) // 2


def coherence_of(indices: Sequence[int], matrix: np.ndarray) -> float:
    """Mean pairwise similarity of the given rows; 1.0 for singletons."""
    if len(indices) < 2:
        return 1.0
    idx = np.asarray(sorted(indices))
    block = matrix[np.ix_(idx, idx)]
    upper = block[np.triu_indices(len(idx), k=1)]
    return float(upper.mean())


@dataclass
class Partition:
    """Index-level outcome of the agglomeration."""

    clusters: List[Tuple[int, ...]] = field(default_factory=list)
    outliers: List[Tuple[int, ...]] = field(default_factory=list)
    merges: int = 0


class _Budget:
    def __init__(
        self,
        cancel_event: Optional[threading.Event],
        deadline: Optional[float],
        timeout_seconds: Optional[float],
    ) -> None:
        self.cancel_event = cancel_event
        self.deadline = deadline
        self.timeout_seconds = timeout_seconds
        self.started = time.monotonic()

    def check(self, memory_ids: Sequence[str]) -> None:
        cancelled = self.cancel_event is not None and self.cancel_event.is_set()
        expired = self.deadline is not None and time.monotonic() >= self.deadline
        if cancelled or expired:
            raise ClusteringTimeoutError(
                "Clustering was cancelled" if cancelled else "Clustering exceeded its time budget",
                unprocessed_ids=memory_ids,
                elapsed_seconds=time.monotonic() - self.started,
                timeout_seconds=self.timeout_seconds,
            )


class ToneClusteringEngine:
    """Deterministic constrained hierarchical clustering."""

    def __init__(self, constraints: Optional[ClusteringConstraints] = None) -> None:
        self.constraints = constraints or ClusteringConstraints()

    # ------------------------------------------------------------------
    # Index-level partition
    # ------------------------------------------------------------------

    def partition(
        self,
        matrix: np.ndarray,
        memory_ids: Optional[Sequence[str]] = None,
        *,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
    ) -> Partition:
        """Partition matrix rows into clusters and outlier groups."""
        matrix = self._validated(matrix)
        n = matrix.shape[0]
        ids = list(memory_ids) if memory_ids is not None else [str(i) for i in range(n)]
        budget = _Budget(cancel_event, deadline, timeout_seconds)
        threshold = self.constraints.coherence_threshold
        max_size = self.constraints.max_cluster_size

        # Clusters are keyed by their lowest member index
        members: Dict[int, List[int]] = {i: [i] for i in range(n)}
        intra: Dict[int, float] = {i: 0.0 for i in range(n)}
        cross: Dict[Tuple[int, int], float] = {
            (i, j): float(matrix[i, j]) for i in range(n) for j in range(i + 1, n)
        }

        def union_coherence(a: int, b: int) -> float:
            size = len(members[a]) + len(members[b])
            return (intra[a] + intra[b] + cross[(a, b)]) / pair_count(size)

        def linkage(a: int, b: int) -> float:
            return cross[(a, b)] / (len(members[a]) * len(members[b]))

        def acceptable(a: int, b: int) -> bool:
            return (
                len(members[a]) + len(members[b]) <= max_size
                and union_coherence(a, b) >= threshold
            )

        def merge(a: int, b: int) -> None:
            # a < b; the merged cluster keeps key a
            intra[a] = intra[a] + intra[b] + cross.pop((a, b))
            members[a] = sorted(members[a] + members[b])
            for c in list(members):
                if c in (a, b):
                    continue
                key_ac = (min(a, c), max(a, c))
                key_bc = (min(b, c), max(b, c))
                cross[key_ac] = cross[key_ac] + cross.pop(key_bc)
            del members[b]
            del intra[b]

        merges = 0
        while True:
            budget.check(ids)
            best: Optional[Tuple[float, int, int]] = None
            for (a, b) in sorted(cross):
                link = linkage(a, b)
                if link < threshold or not acceptable(a, b):
                    continue
                if best is None or link > best[0]:
                    best = (link, a, b)
            if best is None:
                break
            merge(best[1], best[2])
            merges += 1

        # Undersized clusters: merge into the nearest acceptable neighbour
        min_size = self.constraints.min_cluster_size
        changed = True
        while changed:
            changed = False
            for key in sorted(members):
                if key not in members or len(members[key]) >= min_size:
                    continue
                budget.check(ids)
                candidates = []
                for other in sorted(members):
                    if other == key:
                        continue
                    a, b = min(key, other), max(key, other)
                    if acceptable(a, b):
                        candidates.append((-linkage(a, b), a, b))
                if candidates:
                    _, a, b = min(candidates)
                    merge(a, b)
                    merges += 1
                    changed = True

        result = Partition(merges=merges)
        for key in sorted(members):
            group = tuple(members[key])
            if len(group) >= min_size:
                result.clusters.append(group)
            else:
                result.outliers.append(group)
        return result

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    def cluster(
        self,
        features: Sequence[ClusteringFeatures],
        matrix: Optional[np.ndarray] = None,
        *,
        similarity: Optional[SimilarityCalculator] = None,
        max_workers: int = 1,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
    ) -> ClusteringResult:
        """Cluster feature vectors into themed clusters.

        With fewer memories than ``min_cluster_size`` the result is empty and
        carries an ``InsufficientDataError`` diagnostic.

        Raises:
            ClusteringTimeoutError: Deadline passed or cancel event set
            InvalidInputError: Matrix shape or values are invalid
        """
        ids = [f.memory_id for f in features]
        if len(set(ids)) != len(ids):
            raise InvalidInputError("Memory ids must be unique within a clustering run", field="memory_id")

        required = self.constraints.min_cluster_size
        if len(features) < required:
            logger.info(f"Skipping clustering: {len(features)} memories, need {required}")
            return ClusteringResult(
                clusters=(),
                diagnostics=(InsufficientDataError(available=len(features), required=required),),
            )

        if matrix is None:
            calculator = similarity or SimilarityCalculator(self.constraints.similarity_weights)
            matrix = calculator.build_matrix(
                features, max_workers=max_workers, cancel_event=cancel_event, deadline=deadline
            )
        elif matrix.shape != (len(features), len(features)):
            raise InvalidInputError(
                f"Matrix shape {matrix.shape} does not match {len(features)} memories", field="matrix"
            )

        partition = self.partition(
            matrix,
            ids,
            cancel_event=cancel_event,
            deadline=deadline,
            timeout_seconds=timeout_seconds,
        )

        clusters = tuple(self._build_cluster(group, features, matrix) for group in partition.clusters)
        outliers = tuple(self._build_outlier(group, features, matrix) for group in partition.outliers)

        logger.info(
            f"Clustered {len(features)} memories into {len(clusters)} clusters "
            f"({len(outliers)} outlier groups, {partition.merges} merges)"
        )
        return ClusteringResult(clusters=clusters, outliers=outliers, merges=partition.merges)

    def _build_cluster(
        self,
        group: Tuple[int, ...],
        features: Sequence[ClusteringFeatures],
        matrix: np.ndarray,
    ) -> Cluster:
        member_features = [features[i] for i in group]
        member_ids = [f.memory_id for f in member_features]
        coherence = min(1.0, max(0.0, coherence_of(group, matrix)))
        theme = derive_theme(member_features)
        significance = psychological_significance(coherence, theme.intensity, theme_share(theme, member_features))
        cluster_id = cluster_id_for(member_ids)

        warnings: Tuple[LowConfidenceWarning, ...] = ()
        if significance < self.constraints.meaningfulness_threshold:
            warnings = (
                LowConfidenceWarning(
                    f"Cluster {cluster_id} is below the meaningfulness threshold ({significance:.2f})",
                    subject_id=cluster_id,
                    confidence=significance,
                    threshold=self.constraints.meaningfulness_threshold,
                ),
            )
        return Cluster(
            cluster_id=cluster_id,
            theme=theme,
            members=frozenset(member_ids),
            coherence=coherence,
            psychological_significance=significance,
            warnings=warnings,
        )

    @staticmethod
    def _build_outlier(
        group: Tuple[int, ...],
        features: Sequence[ClusteringFeatures],
        matrix: np.ndarray,
    ) -> OutlierGroup:
        member_ids = [features[i].memory_id for i in group]
        others = [i for i in range(matrix.shape[0]) if i not in group]
        best = float(matrix[np.ix_(list(group), others)].max()) if others else 0.0
        return OutlierGroup(
            group_id=cluster_id_for(member_ids, prefix="outlier"),
            members=frozenset(member_ids),
            reason="no neighbour keeps coherence and size within constraints",
            best_similarity=best,
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def _validated(matrix: np.ndarray) -> np.ndarray:
        matrix = np.asarray(matrix, dtype=float)
        if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
            raise InvalidInputError(f"Similarity matrix must be square, got shape {matrix.shape}", field="matrix")
        if not np.all(np.isfinite(matrix)) or matrix.min(initial=0.0) < 0.0 or matrix.max(initial=0.0) > 1.0:
            raise InvalidInputError("Similarity values must be within [0, 1]", field="matrix")
        if not np.allclose(matrix, matrix.T, atol=SYMMETRY_TOLERANCE):
            raise InvalidInputError("Similarity matrix must be symmetric", field="matrix")
        return matrix


def psychological_significance(coherence: float, intensity: float, share: float) -> float:
    """``0.4 * coherence + 0.3 * mean intensity + 0.3 * theme share``, in [0, 1]."""
    return min(1.0, max(0.0, 0.4 * coherence + 0.3 * intensity + 0.3 * share))
