"""Versioned cluster registry.

Holds the currently committed ``ClusterSnapshot``. Every change produces a
new immutable snapshot with a higher generation number; readers keep
whatever snapshot they fetched and are never affected by later writes.

Concurrency:
- one lock per cluster serializes membership updates to that cluster
- a registry lock guards the snapshot swap itself, so updates to
  independent clusters proceed concurrently and only the final swap is
  serialized
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from moodlens.errors import InvalidInputError, MoodlensError
from moodlens.models.clustering import Cluster, ClusteringResult, ClusterSnapshot

logger = logging.getLogger(__name__)

DEFAULT_HISTORY = 5


class StaleSnapshotError(MoodlensError):
    """A commit was based on a snapshot that is no longer current."""

    code = "STALE_SNAPSHOT"
    default_message = "The cluster set changed while this update was prepared"


class ClusterRegistry:
    """Single owner of the committed cluster set."""

    def __init__(self, initial: Optional[ClusterSnapshot] = None, history: int = DEFAULT_HISTORY) -> None:
        self._snapshot = initial or ClusterSnapshot(generation=0)
        self._history: List[ClusterSnapshot] = [self._snapshot]
        self._history_limit = history
        self._lock = threading.Lock()
        self._cluster_locks: Dict[str, threading.Lock] = {}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> ClusterSnapshot:
        with self._lock:
            return self._snapshot

    @property
    def generation(self) -> int:
        return self.snapshot.generation

    def history(self) -> List[ClusterSnapshot]:
        with self._lock:
            return list(self._history)

    def cluster_lock(self, cluster_id: str) -> threading.Lock:
        with self._lock:
            lock = self._cluster_locks.get(cluster_id)
            if lock is None:
                lock = threading.Lock()
                self._cluster_locks[cluster_id] = lock
            return lock

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _swap(self, build: Callable[[ClusterSnapshot], ClusterSnapshot]) -> ClusterSnapshot:
        # Caller must hold self._lock
        current = self._snapshot
        updated = build(current)
        updated = replace(updated, generation=current.generation + 1, created_at=datetime.utcnow())
        self._snapshot = updated
        self._history.append(updated)
        if len(self._history) > self._history_limit:
            self._history = self._history[-self._history_limit :]
        return updated

    def commit(
        self,
        result: ClusteringResult,
        *,
        pending_review: Iterable[str] = (),
        expected_generation: Optional[int] = None,
    ) -> ClusterSnapshot:
        """Replace the whole cluster set with a completed clustering run.

        Raises:
            StaleSnapshotError: ``expected_generation`` no longer matches
        """
        with self._lock:
            if expected_generation is not None and self._snapshot.generation != expected_generation:
                raise StaleSnapshotError(
                    details={
                        "expected_generation": expected_generation,
                        "current_generation": self._snapshot.generation,
                    }
                )
            snapshot = self._swap(
                lambda current: ClusterSnapshot(
                    generation=current.generation,
                    clusters=result.clusters,
                    outliers=result.outliers,
                    pending_review=frozenset(pending_review),
                )
            )
            self._cluster_locks = {
                c.cluster_id: self._cluster_locks.get(c.cluster_id) or threading.Lock() for c in result.clusters
            }
        logger.info(f"Committed cluster generation {snapshot.generation} ({len(snapshot.clusters)} clusters)")
        return snapshot

    def update_cluster(self, cluster_id: str, change: Callable[[Cluster], Cluster]) -> Cluster:
        """Apply ``change`` to one cluster under its single-writer lock.

        ``change`` receives the latest committed version of the cluster, so
        concurrent updates to the same cluster are applied one after the
        other and none is lost.
        """
        with self.cluster_lock(cluster_id):
            current = self.snapshot.get(cluster_id)
            if current is None:
                raise InvalidInputError(f"Unknown cluster '{cluster_id}'", field="cluster_id")
            updated = change(current)
            if updated.cluster_id != cluster_id:
                raise InvalidInputError("Cluster updates must keep the cluster id", field="cluster_id")
            with self._lock:
                self._swap(
                    lambda snap: replace(
                        snap,
                        clusters=tuple(updated if c.cluster_id == cluster_id else c for c in snap.clusters),
                    )
                )
        return updated

    def add_cluster(self, cluster: Cluster) -> ClusterSnapshot:
        with self._lock:
            if self._snapshot.get(cluster.cluster_id) is not None:
                raise InvalidInputError(f"Cluster '{cluster.cluster_id}' already exists", field="cluster_id")
            self._cluster_locks.setdefault(cluster.cluster_id, threading.Lock())
            return self._swap(lambda snap: replace(snap, clusters=snap.clusters + (cluster,)))

    def flag_for_review(self, memory_id: str) -> ClusterSnapshot:
        with self._lock:
            return self._swap(lambda snap: replace(snap, pending_review=snap.pending_review | {memory_id}))

    def release_review(self, memory_ids: Iterable[str]) -> ClusterSnapshot:
        """Clear memories from the review queue once a reviewer has acted."""
        released = frozenset(memory_ids)
        with self._lock:
            return self._swap(lambda snap: replace(snap, pending_review=snap.pending_review - released))

    def rollback(self, generation: int) -> ClusterSnapshot:
        """Republish an earlier snapshot's contents as a new generation."""
        with self._lock:
            for old in self._history:
                if old.generation == generation:
                    snapshot = self._swap(lambda _: old)
                    break
            else:
                raise InvalidInputError(f"Generation {generation} is not in history", field="generation")
            self._cluster_locks = {
                c.cluster_id: self._cluster_locks.get(c.cluster_id) or threading.Lock() for c in snapshot.clusters
            }
        logger.warning(f"Rolled back clusters to generation {generation} (now {snapshot.generation})")
        return snapshot
