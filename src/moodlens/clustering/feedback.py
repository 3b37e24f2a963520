"""Quality feedback loop for clustering constraints.

Collects ``ValidationFeedback`` from reviewers and from quality reports,
and proposes adjusted ``ClusteringConstraints`` for the next full
re-cluster. Proposals are returned, never applied: the caller decides
whether to pass them into the next run.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from typing import Dict, List, Optional, Sequence

from moodlens.configuration.settings import ClusteringConstraints
from moodlens.models.clustering import ClusterQualityReport, FeedbackSeverity, FeedbackType, ValidationFeedback

logger = logging.getLogger(__name__)

THRESHOLD_STEP = 0.05
MAX_COHERENCE_THRESHOLD = 0.9
MIN_COHERENCE_THRESHOLD = 0.4
ADJUSTMENT_TRIGGER = 3
POSITIVE_OVERALL = 0.8


class ClusterFeedbackLoop:
    """Feedback ledger with bounded constraint tuning.

    Example:
        >>> loop = ClusterFeedbackLoop()
        >>> for report in reports:
        ...     loop.record_report(report, constraints)
        >>> constraints = loop.propose_constraints(constraints)
    """

    def __init__(self, window: int = 50) -> None:
        self.window = window
        self._feedback: List[ValidationFeedback] = []
        self._lock = threading.Lock()

    def record(self, feedback: ValidationFeedback) -> None:
        with self._lock:
            self._feedback.append(feedback)
            if len(self._feedback) > self.window:
                self._feedback = self._feedback[-self.window :]
        logger.debug(f"Feedback {feedback.type.value} ({feedback.severity.value}) for {feedback.cluster_id}")

    @property
    def feedback(self) -> List[ValidationFeedback]:
        with self._lock:
            return list(self._feedback)

    def summary(self) -> Dict[str, int]:
        counts = Counter(f.type.value for f in self.feedback)
        return {t.value: counts.get(t.value, 0) for t in FeedbackType}

    # ------------------------------------------------------------------
    # Automated feedback
    # ------------------------------------------------------------------

    @staticmethod
    def feedback_from_report(
        report: ClusterQualityReport, constraints: ClusteringConstraints
    ) -> List[ValidationFeedback]:
        """Translate a quality report into feedback items."""
        items: List[ValidationFeedback] = []
        threshold = constraints.coherence_threshold

        if report.overall_coherence < threshold:
            severity = (
                FeedbackSeverity.HIGH
                if report.overall_coherence < threshold - 0.2
                else FeedbackSeverity.MEDIUM
            )
            items.append(
                ValidationFeedback(
                    cluster_id=report.cluster_id,
                    type=FeedbackType.COHERENCE_ISSUE,
                    severity=severity,
                    description=f"Overall coherence {report.overall_coherence:.2f} is below {threshold:.2f}",
                    suggested_action="tighten coherence threshold",
                )
            )
        if report.thematic_unity < 0.5:
            items.append(
                ValidationFeedback(
                    cluster_id=report.cluster_id,
                    type=FeedbackType.THEME_MISMATCH,
                    severity=FeedbackSeverity.MEDIUM,
                    description=f"Only {report.thematic_unity:.0%} of members share the theme",
                    suggested_action="reduce maximum cluster size",
                )
            )
        if report.psychological_meaningfulness < constraints.meaningfulness_threshold:
            items.append(
                ValidationFeedback(
                    cluster_id=report.cluster_id,
                    type=FeedbackType.PSYCHOLOGICAL_INCOHERENCE,
                    severity=FeedbackSeverity.LOW,
                    description=(
                        f"Psychological meaningfulness {report.psychological_meaningfulness:.2f} "
                        f"is below {constraints.meaningfulness_threshold:.2f}"
                    ),
                    suggested_action="review member psychological indicators",
                )
            )
        if not items and report.overall_coherence >= POSITIVE_OVERALL and not report.incoherent_members:
            items.append(
                ValidationFeedback(
                    cluster_id=report.cluster_id,
                    type=FeedbackType.POSITIVE_VALIDATION,
                    severity=FeedbackSeverity.LOW,
                    description="Cluster is coherent and thematically unified",
                )
            )
        return items

    def record_report(self, report: ClusterQualityReport, constraints: ClusteringConstraints) -> List[ValidationFeedback]:
        items = self.feedback_from_report(report, constraints)
        for item in items:
            self.record(item)
        return items

    # ------------------------------------------------------------------
    # Tuning
    # ------------------------------------------------------------------

    def propose_constraints(
        self,
        constraints: ClusteringConstraints,
        feedback: Optional[Sequence[ValidationFeedback]] = None,
    ) -> ClusteringConstraints:
        """Return constraints adjusted for the recorded feedback.

        - repeated coherence issues outnumbering positive validations raise
          the coherence threshold by one step (capped at 0.9)
        - repeated positive validation with no coherence issues lowers it by
          one step (floored at 0.4)
        - repeated theme mismatches shrink the maximum cluster size by one,
          never below the minimum size
        """
        counts = Counter(f.type for f in (feedback if feedback is not None else self.feedback))
        issues = counts[FeedbackType.COHERENCE_ISSUE]
        positives = counts[FeedbackType.POSITIVE_VALIDATION]
        mismatches = counts[FeedbackType.THEME_MISMATCH]

        threshold = constraints.coherence_threshold
        if issues >= ADJUSTMENT_TRIGGER and issues > positives and threshold < MAX_COHERENCE_THRESHOLD:
            threshold = min(MAX_COHERENCE_THRESHOLD, threshold + THRESHOLD_STEP)
        elif positives >= ADJUSTMENT_TRIGGER and issues == 0 and threshold > MIN_COHERENCE_THRESHOLD:
            threshold = max(MIN_COHERENCE_THRESHOLD, threshold - THRESHOLD_STEP)

        max_size = constraints.max_cluster_size
        if mismatches >= ADJUSTMENT_TRIGGER:
            max_size = max(constraints.min_cluster_size, max_size - 1)

        proposed = ClusteringConstraints(
            **{
                **constraints.model_dump(),
                "coherence_threshold": round(threshold, 4),
                "max_cluster_size": max_size,
            }
        )
        if proposed != constraints:
            logger.info(
                f"Proposed constraints: coherence_threshold {constraints.coherence_threshold:.2f} -> "
                f"{proposed.coherence_threshold:.2f}, max_cluster_size "
                f"{constraints.max_cluster_size} -> {proposed.max_cluster_size}"
            )
        return proposed
