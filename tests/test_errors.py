"""Tests for the error hierarchy and user-facing messages."""

from __future__ import annotations

import pytest

from moodlens.errors import (
    ClusteringTimeoutError,
    ConfigurationError,
    InsufficientDataError,
    InvalidConfigError,
    InvalidFeatureError,
    InvalidInputError,
    InvalidSubScoreError,
    LowConfidenceWarning,
    MoodlensError,
    handle_error,
    is_recoverable,
)
from moodlens.errors.user_messages import (
    ERROR_MESSAGES,
    RECOVERY_SUGGESTIONS,
    format_error_for_cli,
    get_recovery_suggestion,
    get_user_message,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "error_cls, code",
        [
            (InvalidInputError, "INVALID_INPUT"),
            (InvalidSubScoreError, "INVALID_SUB_SCORE"),
            (InvalidFeatureError, "INVALID_FEATURE"),
            (InsufficientDataError, "INSUFFICIENT_DATA"),
            (ClusteringTimeoutError, "CLUSTERING_TIMEOUT"),
            (LowConfidenceWarning, "LOW_CONFIDENCE"),
            (ConfigurationError, "CONFIGURATION_ERROR"),
            (InvalidConfigError, "INVALID_CONFIG"),
        ],
    )
    def test_codes_have_catalog_entries(self, error_cls, code):
        error = error_cls()

        assert isinstance(error, MoodlensError)
        assert error.code == code
        assert code in ERROR_MESSAGES
        assert code in RECOVERY_SUGGESTIONS

    def test_sub_score_errors_are_input_errors(self):
        assert issubclass(InvalidSubScoreError, InvalidInputError)
        assert issubclass(InvalidFeatureError, InvalidInputError)

    def test_low_confidence_is_a_warning(self):
        assert issubclass(LowConfidenceWarning, UserWarning)


class TestDetails:
    def test_input_error_records_memory_and_field(self):
        error = InvalidInputError("bad value", memory_id="m1", field="sentiment")

        assert error.details == {"memory_id": "m1", "field": "sentiment"}
        assert str(error) == "bad value"

    def test_insufficient_data_default_message(self):
        error = InsufficientDataError(available=1, required=3)

        assert error.message == "Need at least 3 items, got 1"
        assert error.details == {"available": 1, "required": 3}

    def test_timeout_sorts_unprocessed_ids(self):
        error = ClusteringTimeoutError(unprocessed_ids=["m3", "m1", "m2"], elapsed_seconds=1.23456)

        assert error.unprocessed_ids == ["m1", "m2", "m3"]
        assert error.details["unprocessed_count"] == 3
        assert error.details["elapsed_seconds"] == 1.235

    def test_to_dict(self):
        payload = InvalidConfigError("bad weights").to_dict()

        assert payload == {
            "code": "INVALID_CONFIG",
            "message": "bad weights",
            "user_message": ERROR_MESSAGES["INVALID_CONFIG"],
            "recoverable": True,
            "details": {},
        }

    def test_user_message_override(self):
        error = MoodlensError("internal", user_message="Try again later")

        assert error.user_message == "Try again later"


class TestMessages:
    def test_lookup_by_code_string(self):
        assert get_user_message("CLUSTERING_TIMEOUT") == ERROR_MESSAGES["CLUSTERING_TIMEOUT"]
        assert get_recovery_suggestion("CLUSTERING_TIMEOUT") == RECOVERY_SUGGESTIONS["CLUSTERING_TIMEOUT"]

    def test_unknown_error_falls_back(self):
        assert get_user_message(RuntimeError("boom")) == ERROR_MESSAGES["UNKNOWN_ERROR"]

    def test_cli_format_hides_memory_text(self):
        error = InvalidInputError("bad", details={"summary": "private words", "memory_id": "m1"})

        text = format_error_for_cli(error)

        assert text.startswith("Error [INVALID_INPUT]:")
        assert "memory_id: m1" in text
        assert "private words" not in text

    def test_handle_error_includes_suggestion(self):
        text = handle_error(InsufficientDataError(available=0, required=3))

        assert "Suggestion:" in text
        assert RECOVERY_SUGGESTIONS["INSUFFICIENT_DATA"] in text

    def test_is_recoverable(self):
        assert is_recoverable(InvalidInputError())
        assert not is_recoverable(ValueError("plain"))
