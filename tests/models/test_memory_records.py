"""Tests for memory record parsing."""

from datetime import datetime, timezone

import pytest

from moodlens.errors import InvalidInputError
from moodlens.models.memory import Memory


class TestTimestamps:
    def test_naive_iso_string_is_read_as_utc(self, record_factory):
        record = record_factory("m1")
        record["timestamp"] = "2025-03-03T11:00:00"

        memory = Memory.from_dict(record)

        assert memory.timestamp == datetime(2025, 3, 3, 11, 0, tzinfo=timezone.utc)

    def test_zulu_suffix_is_accepted(self, record_factory):
        record = record_factory("m1")
        record["timestamp"] = "2025-03-03T11:00:00Z"

        assert Memory.from_dict(record).timestamp.tzinfo is not None

    def test_naive_and_aware_memories_sort_together(self, memory_factory, base_time):
        naive = memory_factory("naive", timestamp=datetime(2025, 3, 3, 8, 0))
        aware = memory_factory("aware", timestamp=base_time)

        ordered = sorted([aware, naive], key=lambda m: m.timestamp)

        assert [m.memory_id for m in ordered] == ["naive", "aware"]

    def test_unparseable_timestamp_is_invalid_input(self, record_factory):
        record = record_factory("m1")
        record["timestamp"] = "last tuesday"

        with pytest.raises(InvalidInputError) as exc_info:
            Memory.from_dict(record)
        assert exc_info.value.memory_id == "m1"
