"""Centralized error definitions for moodlens.

This module provides the error taxonomy shared by every analysis step and
the user-facing rendering of those errors.

Propagation policy:
- Per-item validation errors (``InvalidInputError`` and subclasses) reject
  only the offending memory and are reported next to successful results.
- Step-level errors (``InsufficientDataError``, ``ClusteringTimeoutError``)
  abort only the step they occur in; upstream results stay valid.
- ``LowConfidenceWarning`` is never raised by the core; it is attached to
  MoodScore and Cluster outputs for the review collaborator.

Usage:
    from moodlens.errors import InvalidSubScoreError, handle_error

    try:
        score = calculator.calculate(sub_scores)
    except MoodlensError as e:
        print(handle_error(e))
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from moodlens.errors.user_messages import (
    format_error_for_user,
    get_recovery_suggestion,
    get_user_message,
)


# =============================================================================
# Base Error
# =============================================================================


class MoodlensError(Exception):
    """Base exception for all moodlens errors.

    Attributes:
        code: Error code for categorization
        user_message: User-friendly message (optional override)
        recoverable: Whether the caller may retry or skip and continue
        details: Additional error details for debugging
    """

    code: str = "MOODLENS_ERROR"
    default_message: str = "An unexpected analysis error occurred"
    recoverable: bool = True

    def __init__(
        self,
        message: str | None = None,
        *,
        user_message: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.message = message or self.default_message
        self._user_message = user_message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def user_message(self) -> str:
        """Get user-friendly message."""
        if self._user_message:
            return self._user_message
        return get_user_message(self)

    @property
    def recovery_suggestion(self) -> str:
        """Get recovery suggestion."""
        return get_recovery_suggestion(self)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "user_message": self.user_message,
            "recoverable": self.recoverable,
            "details": self.details,
        }


# =============================================================================
# Input Errors
# =============================================================================


class InvalidInputError(MoodlensError):
    """Malformed sub-score, weight set or feature vector.

    Fails fast for the offending memory only; batch callers collect it in
    their error list and keep processing the remaining items.
    """

    code = "INVALID_INPUT"
    default_message = "Invalid analysis input"

    def __init__(
        self,
        message: str | None = None,
        *,
        memory_id: str | None = None,
        field: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.memory_id = memory_id
        self.field = field
        merged = dict(details or {})
        if memory_id is not None:
            merged.setdefault("memory_id", memory_id)
        if field is not None:
            merged.setdefault("field", field)
        super().__init__(message, details=merged)


class InvalidSubScoreError(InvalidInputError):
    """Sub-score outside [0, 10], missing dimension, or bad weight set."""

    code = "INVALID_SUB_SCORE"
    default_message = "Sub-score is out of range or weights are invalid"


class InvalidFeatureError(InvalidInputError):
    """Clustering feature indicator is malformed or out of range."""

    code = "INVALID_FEATURE"
    default_message = "Clustering feature is invalid"


# =============================================================================
# Step-level Errors
# =============================================================================


class InsufficientDataError(MoodlensError):
    """Not enough data for the requested step.

    Clustering reports this as a diagnostic next to an empty cluster set
    rather than raising it.
    """

    code = "INSUFFICIENT_DATA"
    default_message = "Not enough data for this analysis step"

    def __init__(
        self,
        message: str | None = None,
        *,
        available: int = 0,
        required: int = 0,
    ) -> None:
        self.available = available
        self.required = required
        super().__init__(
            message or f"Need at least {required} items, got {available}",
            details={"available": available, "required": required},
        )


class ClusteringTimeoutError(MoodlensError):
    """Batch re-cluster exceeded its time budget or was cancelled.

    The previously committed cluster snapshot is left untouched.

    Attributes:
        unprocessed_ids: Memory ids that were not reprocessed
        elapsed_seconds: Time spent before giving up
        timeout_seconds: Configured budget (None when cancelled explicitly)
    """

    code = "CLUSTERING_TIMEOUT"
    default_message = "Re-clustering exceeded its time budget"

    def __init__(
        self,
        message: str | None = None,
        *,
        unprocessed_ids: Iterable[str] = (),
        elapsed_seconds: float = 0.0,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self.unprocessed_ids: List[str] = sorted(unprocessed_ids)
        self.elapsed_seconds = elapsed_seconds
        self.timeout_seconds = timeout_seconds
        super().__init__(
            message,
            details={
                "unprocessed_count": len(self.unprocessed_ids),
                "elapsed_seconds": round(elapsed_seconds, 3),
                "timeout_seconds": timeout_seconds,
            },
        )


class LowConfidenceWarning(MoodlensError, UserWarning):
    """Non-fatal marker attached to a MoodScore or Cluster.

    Attributes:
        subject_id: Memory or cluster id the warning belongs to
        confidence: The confidence or significance value that triggered it
        threshold: The threshold it fell below
    """

    code = "LOW_CONFIDENCE"
    default_message = "Result confidence is below the review threshold"

    def __init__(
        self,
        message: str | None = None,
        *,
        subject_id: str = "",
        confidence: float = 0.0,
        threshold: float = 0.0,
    ) -> None:
        self.subject_id = subject_id
        self.confidence = confidence
        self.threshold = threshold
        super().__init__(
            message,
            details={
                "subject_id": subject_id,
                "confidence": confidence,
                "threshold": threshold,
            },
        )


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(MoodlensError):
    """Base error for configuration issues."""

    code = "CONFIGURATION_ERROR"
    default_message = "Configuration error"


class InvalidConfigError(ConfigurationError):
    """Configuration file is invalid."""

    code = "INVALID_CONFIG"
    default_message = "Invalid configuration"


# =============================================================================
# Error Handler
# =============================================================================


def handle_error(error: Exception) -> str:
    """Handle an error and return a user-friendly message.

    Args:
        error: The exception to handle

    Returns:
        User-friendly error message with recovery suggestion
    """
    return format_error_for_user(error)


def is_recoverable(error: Exception) -> bool:
    """Check if an error is potentially recoverable."""
    if isinstance(error, MoodlensError):
        return error.recoverable
    return False


__all__ = [
    # Base
    "MoodlensError",
    # Input
    "InvalidInputError",
    "InvalidSubScoreError",
    "InvalidFeatureError",
    # Step-level
    "InsufficientDataError",
    "ClusteringTimeoutError",
    "LowConfidenceWarning",
    # Configuration
    "ConfigurationError",
    "InvalidConfigError",
    # Handlers
    "handle_error",
    "is_recoverable",
]
