"""Mood analysis for memories.

Wires the sub-scorers, the calculator and the confidence assessor together:

    analyzer = MoodAnalyzer(settings.scoring)
    mood = analyzer.analyze(memory)

Batch analysis isolates per-memory validation errors: one malformed memory
is reported in the error list and the rest of the batch still completes.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from moodlens.configuration.settings import MoodScoringSettings
from moodlens.errors import InvalidInputError, InvalidSubScoreError
from moodlens.models.memory import Memory
from moodlens.models.mood import MoodScore, SubScore, SubScoreType
from moodlens.scoring.baseline import EmotionalBaseline
from moodlens.scoring.calculator import MoodScoreCalculator
from moodlens.scoring.confidence import ConfidenceAssessor
from moodlens.scoring.sub_scorers import build_scorers

logger = logging.getLogger(__name__)


@dataclass
class MoodBatchResult:
    """Scores and isolated errors from one batch."""

    scores: Dict[str, MoodScore] = field(default_factory=dict)
    errors: List[InvalidInputError] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.scores)

    @property
    def failed(self) -> int:
        return len(self.errors)


class MoodAnalyzer:
    """Scores one memory at a time; safe to call from many threads."""

    def __init__(self, settings: Optional[MoodScoringSettings] = None) -> None:
        self.settings = settings or MoodScoringSettings()
        self.calculator = MoodScoreCalculator(self.settings.weights)
        self.assessor = ConfidenceAssessor(
            self.settings.confidence_weights,
            high_threshold=self.settings.high_confidence_threshold,
            medium_threshold=self.settings.medium_confidence_threshold,
        )

    def sub_scores(
        self, memory: Memory, baseline: Optional[EmotionalBaseline] = None
    ) -> List[SubScore]:
        """Run the five sub-scorers for a memory."""
        scorers = build_scorers(self.settings.weights, baseline, self.settings.historical_blend)
        results: List[SubScore] = []
        for score_type in SubScoreType:
            signal = memory.signals.get(score_type)
            if signal is None:
                raise InvalidSubScoreError(
                    f"Memory '{memory.memory_id}' has no {score_type.value} signal",
                    memory_id=memory.memory_id,
                    field=score_type.value,
                )
            results.append(scorers[score_type].score(signal, memory_id=memory.memory_id))
        return results

    def analyze(
        self,
        memory: Memory,
        *,
        baseline: Optional[EmotionalBaseline] = None,
        recent_scores: Optional[Sequence[float]] = None,
        previous: Optional[MoodScore] = None,
    ) -> MoodScore:
        """Produce a MoodScore for one memory.

        Args:
            memory: Memory carrying classifier signals
            baseline: Optional emotional baseline for the historical dimension
            recent_scores: Recent mood scores for historical consistency
            previous: Earlier score for this memory; the result becomes its next version

        Raises:
            InvalidSubScoreError: A signal is missing or out of range
        """
        subs = self.sub_scores(memory, baseline)
        current = self.calculator.calculate(subs, memory.memory_id)
        assessment = self.assessor.assess(
            subs,
            recent_scores=recent_scores,
            current_score=current,
            supplied=memory.signals.confidence_factors,
        )
        version = previous.version + 1 if previous is not None else 1
        mood = self.calculator.build(subs, assessment, memory_id=memory.memory_id, version=version)
        logger.debug(
            f"Scored {memory.memory_id}: {mood.score} (confidence {mood.confidence:.2f}, v{version})"
        )
        return mood

    def _analyze_isolated(
        self,
        memory: Memory,
        baselines: Mapping[str, EmotionalBaseline],
    ):
        try:
            return self.analyze(memory, baseline=baselines.get(memory.conversation_id or ""))
        except InvalidInputError as exc:
            logger.warning(f"Skipping memory {memory.memory_id}: {exc.message}")
            return exc

    def analyze_batch(
        self,
        memories: Sequence[Memory],
        *,
        baselines: Optional[Mapping[str, EmotionalBaseline]] = None,
        max_workers: int = 1,
    ) -> MoodBatchResult:
        """Score many memories, collecting per-item errors.

        ``baselines`` maps conversation ids to baselines. With
        ``max_workers > 1`` memories are scored on a thread pool; results
        are keyed by memory id so completion order does not matter.
        """
        baselines = baselines or {}
        result = MoodBatchResult()
        if max_workers > 1 and len(memories) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                outcomes = list(executor.map(lambda m: self._analyze_isolated(m, baselines), memories))
        else:
            outcomes = [self._analyze_isolated(m, baselines) for m in memories]

        for outcome in outcomes:
            if isinstance(outcome, InvalidInputError):
                result.errors.append(outcome)
            else:
                result.scores[outcome.memory_id] = outcome

        logger.info(f"Mood batch complete: {result.succeeded} scored, {result.failed} rejected")
        return result
