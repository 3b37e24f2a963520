"""Batch analysis pipeline.

Runs one batch of memories end to end:

1. Mood scoring and clustering-feature extraction, in parallel per memory.
   A memory that fails validation is reported and dropped from the later
   steps; the rest of the batch continues.
2. Delta detection per conversation. Each conversation's memories are
   ordered by time first; conversations run concurrently.
3. A full re-cluster under a wall-clock budget. A completed run is
   committed to the registry as a new snapshot. On timeout the previous
   snapshot stays in place and the report lists the memories that were
   not reprocessed.
4. Quality reports and cross-cluster patterns for the committed clusters.

Failures in one step never discard the results of earlier steps: mood
scores are returned even when clustering times out.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from moodlens.analysis.pattern_recognition import PatternRecognitionAnalyzer
from moodlens.clustering.dynamic import DynamicClusterManager
from moodlens.clustering.engine import ToneClusteringEngine
from moodlens.clustering.features import ClusteringFeatureExtractor
from moodlens.clustering.quality import ClusterQualityAssessor
from moodlens.clustering.registry import ClusterRegistry, StaleSnapshotError
from moodlens.clustering.similarity import SimilarityCalculator
from moodlens.configuration.settings import AnalysisSettings
from moodlens.deltas.detector import DeltaDetector
from moodlens.errors import ClusteringTimeoutError, InvalidInputError, MoodlensError
from moodlens.models.clustering import (
    ClusteringFeatures,
    ClusteringResult,
    ClusterQualityReport,
    ClusterSnapshot,
    Pattern,
    PlacementOutcome,
)
from moodlens.models.memory import AnalyzedMemory, Memory
from moodlens.models.mood import MoodDelta, MoodObservation, MoodScore
from moodlens.scoring.analyzer import MoodAnalyzer
from moodlens.scoring.baseline import EmotionalBaseline

logger = logging.getLogger(__name__)

UNASSIGNED_CONVERSATION = "unassigned"


@dataclass
class BatchReport:
    """Everything one pipeline run produced."""

    scores: Dict[str, MoodScore] = field(default_factory=dict)
    features: Dict[str, ClusteringFeatures] = field(default_factory=dict)
    deltas: Dict[str, List[MoodDelta]] = field(default_factory=dict)
    clustering: Optional[ClusteringResult] = None
    snapshot: Optional[ClusterSnapshot] = None
    committed: bool = False
    quality: List[ClusterQualityReport] = field(default_factory=list)
    patterns: List[Pattern] = field(default_factory=list)
    errors: List[MoodlensError] = field(default_factory=list)
    unprocessed_ids: Tuple[str, ...] = ()
    elapsed_seconds: float = 0.0

    @property
    def timed_out(self) -> bool:
        return any(isinstance(e, ClusteringTimeoutError) for e in self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scores": {memory_id: s.to_dict() for memory_id, s in sorted(self.scores.items())},
            "deltas": {
                conversation: [d.to_dict() for d in deltas]
                for conversation, deltas in sorted(self.deltas.items())
            },
            "clustering": self.clustering.to_dict() if self.clustering else None,
            "snapshot_generation": self.snapshot.generation if self.snapshot else None,
            "committed": self.committed,
            "quality": [q.to_dict() for q in self.quality],
            "patterns": [p.to_dict() for p in self.patterns],
            "errors": [e.to_dict() for e in self.errors],
            "unprocessed_ids": list(self.unprocessed_ids),
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


class BatchAnalysisPipeline:
    """Scores, tracks and clusters batches of memories.

    The pipeline keeps the features of every memory it has seen so that
    later single-memory placements can compare against committed clusters.
    Configuration is fixed per instance; nothing is shared across instances.
    """

    def __init__(
        self,
        settings: Optional[AnalysisSettings] = None,
        registry: Optional[ClusterRegistry] = None,
    ) -> None:
        self.settings = settings or AnalysisSettings()
        self.registry = registry or ClusterRegistry()

        constraints = self.settings.clustering
        self.analyzer = MoodAnalyzer(self.settings.scoring)
        self.extractor = ClusteringFeatureExtractor()
        self.detector = DeltaDetector(self.settings.deltas)
        self.similarity = SimilarityCalculator(constraints.similarity_weights)
        self.engine = ToneClusteringEngine(constraints)
        self.quality = ClusterQualityAssessor(constraints, self.similarity)
        self.patterns = PatternRecognitionAnalyzer()
        self.dynamic = DynamicClusterManager(self.registry, self.settings.dynamic, constraints, self.similarity)

        self._store: Dict[str, ClusteringFeatures] = {}
        self._store_lock = threading.Lock()

    @property
    def feature_store(self) -> Dict[str, ClusteringFeatures]:
        with self._store_lock:
            return dict(self._store)

    def _remember(self, features: Sequence[ClusteringFeatures]) -> None:
        with self._store_lock:
            for f in features:
                self._store[f.memory_id] = f

    # ------------------------------------------------------------------
    # Step 1: scoring and features
    # ------------------------------------------------------------------

    def _process(
        self, memory: Memory, baselines: Mapping[str, EmotionalBaseline]
    ) -> Union[AnalyzedMemory, InvalidInputError]:
        try:
            mood = self.analyzer.analyze(memory, baseline=baselines.get(memory.conversation_id or ""))
            features = self.extractor.extract(memory, mood)
        except InvalidInputError as exc:
            logger.warning(f"Skipping memory {memory.memory_id}: {exc.message}")
            return exc
        return AnalyzedMemory(memory=memory, mood_score=mood, features=features)

    def analyze_memories(
        self,
        memories: Sequence[Memory],
        *,
        baselines: Optional[Mapping[str, EmotionalBaseline]] = None,
    ) -> Tuple[List[AnalyzedMemory], List[InvalidInputError]]:
        """Score and extract features for every memory, isolating failures."""
        baselines = baselines or {}
        seen = set()
        errors: List[InvalidInputError] = []
        unique: List[Memory] = []
        for memory in memories:
            if memory.memory_id in seen:
                errors.append(
                    InvalidInputError(
                        f"Duplicate memory id '{memory.memory_id}' in batch", memory_id=memory.memory_id
                    )
                )
                continue
            seen.add(memory.memory_id)
            unique.append(memory)

        workers = self.settings.max_workers
        if workers > 1 and len(unique) > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                outcomes = list(executor.map(lambda m: self._process(m, baselines), unique))
        else:
            outcomes = [self._process(m, baselines) for m in unique]

        analyzed = [o for o in outcomes if isinstance(o, AnalyzedMemory)]
        errors.extend(o for o in outcomes if isinstance(o, InvalidInputError))
        logger.info(f"Analyzed {len(analyzed)} memories, rejected {len(errors)}")
        return analyzed, errors

    # ------------------------------------------------------------------
    # Step 2: deltas per conversation
    # ------------------------------------------------------------------

    @staticmethod
    def conversation_observations(analyzed: Sequence[AnalyzedMemory]) -> Dict[str, List[MoodObservation]]:
        """Group observations by conversation, each ordered by time."""
        grouped: Dict[str, List[AnalyzedMemory]] = {}
        for item in analyzed:
            key = item.memory.conversation_id or UNASSIGNED_CONVERSATION
            grouped.setdefault(key, []).append(item)
        return {
            key: [
                MoodObservation.from_mood_score(item.mood_score, item.memory.timestamp)
                for item in sorted(items, key=lambda i: (i.memory.timestamp, i.memory_id))
            ]
            for key, items in grouped.items()
        }

    def detect_deltas(
        self, analyzed: Sequence[AnalyzedMemory]
    ) -> Tuple[Dict[str, List[MoodDelta]], List[InvalidInputError]]:
        series = self.conversation_observations(analyzed)

        def run(key: str) -> Union[List[MoodDelta], InvalidInputError]:
            try:
                return self.detector.detect(series[key])
            except InvalidInputError as exc:
                logger.warning(f"Skipping deltas for conversation {key}: {exc.message}")
                return exc

        keys = sorted(series)
        workers = self.settings.max_workers
        if workers > 1 and len(keys) > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                outcomes = list(executor.map(run, keys))
        else:
            outcomes = [run(k) for k in keys]

        deltas: Dict[str, List[MoodDelta]] = {}
        errors: List[InvalidInputError] = []
        for key, outcome in zip(keys, outcomes):
            if isinstance(outcome, InvalidInputError):
                errors.append(outcome)
            else:
                deltas[key] = outcome
        return deltas, errors

    # ------------------------------------------------------------------
    # Step 3: timed re-cluster
    # ------------------------------------------------------------------

    def recluster(
        self,
        features: Sequence[ClusteringFeatures],
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> ClusteringResult:
        """Cluster ``features`` and commit the result.

        Review-flagged memories are held back unless the review policy
        retries them automatically. Retried memories outside this batch are
        pulled from the feature store; any without stored features stay in
        the review queue. An empty result from too little data is returned
        but not committed, so the current clusters survive.

        Raises:
            ClusteringTimeoutError: Budget exceeded; the registry is unchanged
            StaleSnapshotError: The registry changed during the run; the registry is unchanged
        """
        base = self.registry.snapshot
        retry = self.dynamic.retry_candidates(base)
        held_back = base.pending_review - retry
        eligible = [f for f in features if f.memory_id not in held_back]
        if len(eligible) != len(features):
            logger.info(f"Holding back {len(features) - len(eligible)} memories awaiting review")

        in_batch = {f.memory_id for f in features}
        store = self.feature_store
        outside = sorted(retry - in_batch)
        eligible.extend(store[memory_id] for memory_id in outside if memory_id in store)
        unresolved = frozenset(memory_id for memory_id in outside if memory_id not in store)
        if outside:
            logger.info(f"Retrying {len(outside) - len(unresolved)} review-flagged memories from earlier batches")
        if unresolved:
            logger.warning(f"{len(unresolved)} review-flagged memories have no stored features; keeping them queued")
        held_back = held_back | unresolved

        timeout = self.settings.recluster_timeout_seconds
        deadline = time.monotonic() + timeout if timeout else None
        result = self.engine.cluster(
            eligible,
            similarity=self.similarity,
            max_workers=self.settings.max_workers,
            cancel_event=cancel_event,
            deadline=deadline,
            timeout_seconds=timeout,
        )
        if result.is_empty and result.diagnostics:
            logger.info("Clustering produced no clusters; keeping the committed snapshot")
            return result

        # Held-back memories stay queued; retried ones leave the queue
        self.registry.commit(result, pending_review=held_back, expected_generation=base.generation)
        return result

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    def run(
        self,
        memories: Sequence[Memory],
        *,
        baselines: Optional[Mapping[str, EmotionalBaseline]] = None,
        cancel_event: Optional[threading.Event] = None,
        cluster: bool = True,
    ) -> BatchReport:
        """Analyze a batch end to end and return what was produced."""
        started = time.monotonic()
        report = BatchReport()

        analyzed, errors = self.analyze_memories(memories, baselines=baselines)
        report.errors.extend(errors)
        report.scores = {a.memory_id: a.mood_score for a in analyzed}
        report.features = {a.memory_id: a.features for a in analyzed if a.features is not None}
        self._remember(list(report.features.values()))

        report.deltas, delta_errors = self.detect_deltas(analyzed)
        report.errors.extend(delta_errors)

        if cluster:
            ordered = [report.features[a.memory_id] for a in analyzed if a.memory_id in report.features]
            generation = self.registry.generation
            try:
                report.clustering = self.recluster(ordered, cancel_event=cancel_event)
            except ClusteringTimeoutError as exc:
                logger.warning(
                    f"Re-cluster stopped after {exc.elapsed_seconds:.2f}s; "
                    f"{len(exc.unprocessed_ids)} memories not reprocessed"
                )
                report.errors.append(exc)
                report.unprocessed_ids = tuple(exc.unprocessed_ids)
            except StaleSnapshotError as exc:
                logger.warning(
                    f"Re-cluster discarded: clusters changed during the run "
                    f"(generation {exc.details.get('expected_generation')} -> "
                    f"{exc.details.get('current_generation')})"
                )
                report.errors.append(exc)
                report.unprocessed_ids = tuple(sorted(report.features))
            else:
                report.errors.extend(report.clustering.diagnostics)
                report.committed = self.registry.generation > generation

        report.snapshot = self.registry.snapshot
        if report.committed:
            store = self.feature_store
            report.quality = self.quality.assess_all(report.snapshot.clusters, store)
            report.patterns = self.patterns.analyze_snapshot(report.snapshot, store)

        report.elapsed_seconds = time.monotonic() - started
        logger.info(
            f"Batch finished in {report.elapsed_seconds:.2f}s: {len(report.scores)} scored, "
            f"{len(report.snapshot.clusters)} clusters, {len(report.errors)} errors"
        )
        return report

    # ------------------------------------------------------------------
    # Incremental placement
    # ------------------------------------------------------------------

    def place(
        self,
        memory: Memory,
        *,
        baseline: Optional[EmotionalBaseline] = None,
    ) -> Tuple[AnalyzedMemory, PlacementOutcome]:
        """Score one new memory and place it without a full re-cluster.

        Raises:
            InvalidInputError: The memory fails validation
        """
        mood = self.analyzer.analyze(memory, baseline=baseline)
        features = self.extractor.extract(memory, mood)
        store = self.feature_store
        snapshot = self.registry.snapshot
        clustered = snapshot.clustered_ids
        unclustered = [
            f
            for memory_id, f in sorted(store.items())
            if memory_id not in clustered and memory_id != features.memory_id
        ]
        outcome = self.dynamic.place(features, store, unclustered)
        self._remember([features])
        return AnalyzedMemory(memory=memory, mood_score=mood, features=features), outcome
