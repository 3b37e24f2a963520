"""Mood score calibration against human validation.

Reviewers rate a sample of memories by hand. ``MoodCalibrator`` compares
those ratings with the computed scores and reports how well the two agree
and whether the scores lean high or low. From the same sample it proposes
a replacement mood weight set and adjusted confidence thresholds.

Proposals are returned, never applied in place. ``apply`` builds new
settings with the whole weight set swapped at once, so a reader never sees
a half-updated set.

Example:
    >>> calibrator = MoodCalibrator(settings.scoring)
    >>> records = [ValidationRecord.from_mood_score(score, human=7.0) for score in scores]
    >>> proposal = calibrator.propose(records)
    >>> scoring = calibrator.apply(proposal)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from pydantic import ValidationError

from moodlens.configuration.settings import DEFAULT_MOOD_WEIGHTS, MoodScoringSettings
from moodlens.errors import InsufficientDataError, InvalidConfigError, InvalidInputError
from moodlens.models.mood import MoodScore

logger = logging.getLogger(__name__)

# Concordance bands: (min correlation, max mean absolute error)
HIGH_CONCORDANCE = (0.8, 0.8)
MODERATE_CONCORDANCE = (0.6, 1.2)

BIAS_TOLERANCE = 0.5

# Confident scores this far from the human rating count as overconfident
OVERCONFIDENT_ERROR = 1.5
OVERCONFIDENT_SHARE = 0.3
# Low-confidence scores this close to the human rating count as underconfident
UNDERCONFIDENT_ERROR = 0.5
UNDERCONFIDENT_SHARE = 0.5

THRESHOLD_STEP = 0.05
MAX_HIGH_THRESHOLD = 0.95
MIN_MEDIUM_THRESHOLD = 0.3


class Concordance(str, Enum):
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"


class SystematicBias(str, Enum):
    NONE = "none"
    OVER_ESTIMATION = "over_estimation"
    UNDER_ESTIMATION = "under_estimation"


def _check_score(value: float, name: str, memory_id: str) -> None:
    if not isinstance(value, (int, float)) or math.isnan(value) or not 0.0 <= value <= 10.0:
        raise InvalidInputError(f"{name} must be within [0, 10], got {value!r}", memory_id=memory_id, field=name)


@dataclass(frozen=True)
class ValidationRecord:
    """A computed mood score next to a reviewer's rating of the same memory.

    Attributes:
        memory_id: Memory both ratings belong to
        predicted: Computed mood score in [0, 10]
        human: Reviewer's mood rating in [0, 10]
        confidence: Overall confidence of the computed score, if known
        sub_scores: Sub-score values keyed by dimension name, if known
    """

    memory_id: str
    predicted: float
    human: float
    confidence: Optional[float] = None
    sub_scores: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self):
        _check_score(self.predicted, "predicted", self.memory_id)
        _check_score(self.human, "human", self.memory_id)
        if self.confidence is not None and not 0.0 <= self.confidence <= 1.0:
            raise InvalidInputError(
                f"confidence must be within [0, 1], got {self.confidence!r}",
                memory_id=self.memory_id,
                field="confidence",
            )
        for name, value in self.sub_scores.items():
            if name not in DEFAULT_MOOD_WEIGHTS:
                raise InvalidInputError(f"Unknown sub-score '{name}'", memory_id=self.memory_id, field=name)
            _check_score(value, name, self.memory_id)

    @property
    def error(self) -> float:
        """Signed difference, computed minus human."""
        return self.predicted - self.human

    @classmethod
    def from_mood_score(cls, score: MoodScore, human: float) -> "ValidationRecord":
        return cls(
            memory_id=score.memory_id,
            predicted=score.score,
            human=human,
            confidence=score.confidence,
            sub_scores={s.type.value: s.value for s in score.sub_scores},
        )


@dataclass(frozen=True)
class ValidationMetrics:
    """Agreement between computed scores and human ratings."""

    sample_size: int
    mean_absolute_error: float
    mean_difference: float
    pearson: float
    agreement_rate: float
    concordance: Concordance
    systematic_bias: SystematicBias

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sample_size": self.sample_size,
            "mean_absolute_error": self.mean_absolute_error,
            "mean_difference": self.mean_difference,
            "pearson": self.pearson,
            "agreement_rate": self.agreement_rate,
            "concordance": self.concordance.value,
            "systematic_bias": self.systematic_bias.value,
        }


@dataclass(frozen=True)
class CalibrationProposal:
    """Replacement weights and thresholds suggested by a validation sample.

    Attributes:
        metrics: Agreement of the sample the proposal was derived from
        weights: Complete mood weight set, summing to 1.0
        high_confidence_threshold: Proposed lower bound of the high band
        medium_confidence_threshold: Proposed lower bound of the medium band
        bias_correction: Offset that would cancel the mean difference; 0.0 without bias
        reasons: Why each change was proposed
    """

    metrics: ValidationMetrics
    weights: Dict[str, float]
    high_confidence_threshold: float
    medium_confidence_threshold: float
    bias_correction: float = 0.0
    reasons: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metrics": self.metrics.to_dict(),
            "weights": dict(self.weights),
            "high_confidence_threshold": self.high_confidence_threshold,
            "medium_confidence_threshold": self.medium_confidence_threshold,
            "bias_correction": self.bias_correction,
            "reasons": list(self.reasons),
        }


def _pearson(a: np.ndarray, b: np.ndarray) -> float:
    if len(a) < 2 or float(np.std(a)) == 0.0 or float(np.std(b)) == 0.0:
        return 0.0
    return float(np.corrcoef(a, b)[0, 1])


def _concordance(pearson: float, mae: float) -> Concordance:
    if pearson >= HIGH_CONCORDANCE[0] and mae <= HIGH_CONCORDANCE[1]:
        return Concordance.HIGH
    if pearson >= MODERATE_CONCORDANCE[0] and mae <= MODERATE_CONCORDANCE[1]:
        return Concordance.MODERATE
    return Concordance.LOW


class MoodCalibrator:
    """Validation metrics and bounded weight and threshold proposals.

    Args:
        settings: Scoring settings the proposals start from
        min_samples: Records required before anything is proposed
        agreement_tolerance: Largest difference still counted as agreement
        learning_rate: Share of each weight allowed to move per proposal
    """

    def __init__(
        self,
        settings: Optional[MoodScoringSettings] = None,
        *,
        min_samples: int = 5,
        agreement_tolerance: float = 1.0,
        learning_rate: float = 0.1,
    ) -> None:
        if not 0.0 <= learning_rate <= 1.0:
            raise InvalidConfigError(f"learning_rate must be within [0, 1], got {learning_rate}")
        self.settings = settings or MoodScoringSettings()
        self.min_samples = min_samples
        self.agreement_tolerance = agreement_tolerance
        self.learning_rate = learning_rate

    def validate(self, records: Sequence[ValidationRecord]) -> ValidationMetrics:
        """Measure agreement between computed and human ratings.

        Raises:
            InsufficientDataError: No records were given
        """
        if not records:
            raise InsufficientDataError("No validation records to compare", available=0, required=1)
        predicted = np.array([r.predicted for r in records], dtype=float)
        human = np.array([r.human for r in records], dtype=float)
        errors = predicted - human
        absolute = np.abs(errors)

        mae = float(np.mean(absolute))
        mean_difference = float(np.mean(errors))
        pearson = _pearson(predicted, human)
        if abs(mean_difference) < BIAS_TOLERANCE:
            bias = SystematicBias.NONE
        elif mean_difference > 0:
            bias = SystematicBias.OVER_ESTIMATION
        else:
            bias = SystematicBias.UNDER_ESTIMATION

        return ValidationMetrics(
            sample_size=len(records),
            mean_absolute_error=mae,
            mean_difference=mean_difference,
            pearson=pearson,
            agreement_rate=float(np.mean(absolute <= self.agreement_tolerance)),
            concordance=_concordance(pearson, mae),
            systematic_bias=bias,
        )

    def propose(self, records: Sequence[ValidationRecord]) -> CalibrationProposal:
        """Derive replacement weights and thresholds from a validation sample.

        Raises:
            InsufficientDataError: Fewer than ``min_samples`` records
        """
        if len(records) < self.min_samples:
            raise InsufficientDataError(
                f"Calibration needs at least {self.min_samples} validated memories, got {len(records)}",
                available=len(records),
                required=self.min_samples,
            )
        metrics = self.validate(records)
        reasons: List[str] = []

        weights = self._propose_weights(records, reasons)
        high, medium = self._propose_thresholds(records, reasons)

        bias_correction = 0.0
        if metrics.systematic_bias is not SystematicBias.NONE:
            bias_correction = -metrics.mean_difference
            reasons.append(
                f"Scores show {metrics.systematic_bias.value.replace('_', ' ')} "
                f"of {abs(metrics.mean_difference):.2f} points"
            )

        logger.info(
            f"Calibration over {metrics.sample_size} memories: MAE {metrics.mean_absolute_error:.2f}, "
            f"r {metrics.pearson:.2f} ({metrics.concordance.value}); {len(reasons)} adjustments proposed"
        )
        return CalibrationProposal(
            metrics=metrics,
            weights=weights,
            high_confidence_threshold=high,
            medium_confidence_threshold=medium,
            bias_correction=bias_correction,
            reasons=tuple(reasons),
        )

    def apply(self, proposal: CalibrationProposal) -> MoodScoringSettings:
        """Return new scoring settings carrying the proposal.

        The calibrator's own settings are left as they were.

        Raises:
            InvalidConfigError: The proposal does not form valid settings
        """
        payload = self.settings.model_dump(mode="python")
        payload.update(
            weights=dict(proposal.weights),
            high_confidence_threshold=proposal.high_confidence_threshold,
            medium_confidence_threshold=proposal.medium_confidence_threshold,
        )
        try:
            return MoodScoringSettings.model_validate(payload)
        except ValidationError as exc:
            raise InvalidConfigError(f"Calibration proposal is not valid: {exc}") from exc

    # ------------------------------------------------------------------
    # Proposals
    # ------------------------------------------------------------------

    def _propose_weights(self, records: Sequence[ValidationRecord], reasons: List[str]) -> Dict[str, float]:
        current = dict(self.settings.weights)
        closeness: Dict[str, float] = {}
        for name in current:
            gaps = [abs(r.sub_scores[name] - r.human) for r in records if name in r.sub_scores]
            if gaps:
                closeness[name] = 1.0 - float(np.mean(gaps)) / 10.0
        if len(closeness) != len(current):
            # Weights move relative to each other, so every dimension needs evidence
            return current
        mean_closeness = float(np.mean(list(closeness.values())))
        if mean_closeness <= 0.0:
            return current

        rate = self.learning_rate
        scaled = {
            name: weight * (1.0 - rate + rate * closeness[name] / mean_closeness)
            for name, weight in current.items()
        }
        total = math.fsum(scaled.values())
        proposed = {name: value / total for name, value in scaled.items()}

        for name in current:
            change = proposed[name] - current[name]
            if abs(change) >= 0.005:
                direction = "up" if change > 0 else "down"
                reasons.append(
                    f"{name} weight {direction} to {proposed[name]:.3f}: sub-score sits "
                    f"{(1.0 - closeness[name]) * 10:.2f} points from human ratings on average"
                )
        return proposed

    def _propose_thresholds(self, records: Sequence[ValidationRecord], reasons: List[str]) -> Tuple[float, float]:
        high = self.settings.high_confidence_threshold
        medium = self.settings.medium_confidence_threshold
        rated = [r for r in records if r.confidence is not None]
        if not rated:
            return high, medium

        overconfident = [r for r in rated if r.confidence >= high and abs(r.error) > OVERCONFIDENT_ERROR]
        if len(overconfident) > len(rated) * OVERCONFIDENT_SHARE and high < MAX_HIGH_THRESHOLD:
            high = round(min(MAX_HIGH_THRESHOLD, high + THRESHOLD_STEP), 2)
            reasons.append(
                f"{len(overconfident)} of {len(rated)} high-confidence scores missed by more than "
                f"{OVERCONFIDENT_ERROR} points; high band now starts at {high:.2f}"
            )

        low_band = [r for r in rated if r.confidence < medium]
        close = [r for r in low_band if abs(r.error) <= UNDERCONFIDENT_ERROR]
        if low_band and len(close) > len(low_band) * UNDERCONFIDENT_SHARE and medium > MIN_MEDIUM_THRESHOLD:
            medium = round(max(MIN_MEDIUM_THRESHOLD, medium - THRESHOLD_STEP), 2)
            reasons.append(
                f"{len(close)} of {len(low_band)} low-confidence scores were within "
                f"{UNDERCONFIDENT_ERROR} points; medium band now starts at {medium:.2f}"
            )
        return high, min(medium, high)
