"""User-friendly error messages for moodlens.

Human-readable messages and recovery suggestions for every error code, so
CLI output and review tooling never show raw tracebacks.

Privacy Note:
- Messages never include memory summaries or evidence text
- Only identifiers and numeric diagnostics appear in details
"""

from __future__ import annotations

from typing import Any


# =============================================================================
# Error Message Catalog
# =============================================================================

ERROR_MESSAGES: dict[str, str] = {
    # Input errors
    "INVALID_INPUT": "Some analysis input was malformed and was skipped.",
    "INVALID_SUB_SCORE": "A sub-score was outside 0-10 or the weights were invalid.",
    "INVALID_FEATURE": "A clustering feature was malformed and the memory was skipped.",
    # Step-level errors
    "INSUFFICIENT_DATA": "There is not enough data for this analysis step yet.",
    "CLUSTERING_TIMEOUT": "Re-clustering took too long; the previous clusters were kept.",
    "LOW_CONFIDENCE": "This result has low confidence and should be reviewed.",
    "STALE_SNAPSHOT": "The clusters changed while this update was being prepared.",
    # Configuration errors
    "CONFIGURATION_ERROR": "There's a configuration issue.",
    "INVALID_CONFIG": "The configuration is invalid. Check settings.",
    # Generic
    "MOODLENS_ERROR": "An unexpected analysis error occurred. Please try again.",
    "UNKNOWN_ERROR": "Something went wrong. Please try again.",
}


# =============================================================================
# Recovery Suggestions
# =============================================================================

RECOVERY_SUGGESTIONS: dict[str, str] = {
    "INVALID_INPUT": "Check the classifier output for the reported memory id.",
    "INVALID_SUB_SCORE": "Sub-scores must be within 0-10 and weight sets must sum to 1.0.",
    "INVALID_FEATURE": "Unit-range indicators must be within 0-1; check enum labels.",
    "INSUFFICIENT_DATA": "Add more memories (at least min_cluster_size) and rerun.",
    "CLUSTERING_TIMEOUT": "Raise the time budget or re-cluster a smaller batch.",
    "LOW_CONFIDENCE": "Route this result to human review before confirming it.",
    "STALE_SNAPSHOT": "Rerun the re-cluster against the current clusters.",
    "CONFIGURATION_ERROR": "Check config: moodlens config show",
    "INVALID_CONFIG": "Regenerate defaults: moodlens config init --force",
    "MOODLENS_ERROR": "If this persists, please report the issue.",
    "UNKNOWN_ERROR": "Rerun the command with --verbose and report the issue.",
}


# =============================================================================
# Helper Functions
# =============================================================================


def _error_code(error: Any) -> str:
    if hasattr(error, "code"):
        return error.code
    if isinstance(error, str):
        return error
    return type(error).__name__.upper()


def get_user_message(error: Any) -> str:
    """Get user-friendly message for an error or error code."""
    return ERROR_MESSAGES.get(_error_code(error), ERROR_MESSAGES["UNKNOWN_ERROR"])


def get_recovery_suggestion(error: Any) -> str:
    """Get recovery suggestion for an error or error code."""
    return RECOVERY_SUGGESTIONS.get(
        _error_code(error), RECOVERY_SUGGESTIONS["UNKNOWN_ERROR"]
    )


def format_error_for_user(error: Any) -> str:
    """Format a complete user-friendly error message.

    Args:
        error: The error to format

    Returns:
        Complete error message with recovery suggestion
    """
    message = get_user_message(error)
    suggestion = get_recovery_suggestion(error)

    return f"{message}\n\nSuggestion: {suggestion}"


def format_error_for_cli(error: Any) -> str:
    """Format error for CLI output.

    Args:
        error: The error to format

    Returns:
        CLI-formatted error message
    """
    code = getattr(error, "code", "ERROR")
    lines = [
        f"Error [{code}]: {get_user_message(error)}",
        "",
        f"Suggestion: {get_recovery_suggestion(error)}",
    ]

    if getattr(error, "details", None):
        lines.append("")
        lines.append("Details:")
        for key, value in error.details.items():
            # Never echo free text from memories
            if key not in ("summary", "evidence"):
                lines.append(f"  {key}: {value}")

    return "\n".join(lines)


__all__ = [
    "ERROR_MESSAGES",
    "RECOVERY_SUGGESTIONS",
    "get_user_message",
    "get_recovery_suggestion",
    "format_error_for_user",
    "format_error_for_cli",
]
