"""
Tests for utils.time module - UTC timestamp utilities.

This module tests all time utility functions to ensure:
- All timestamps are timezone-aware (UTC)
- Formats match ISO 8601 with 'Z' suffix
- Cookie-expiry clock (epoch_seconds) follows frozen time
- elapsed_ms never goes negative
"""

import time
from datetime import UTC, datetime

import pytest
from freezegun import freeze_time

from multi_ai.utils.time import (
    elapsed_ms,
    epoch_seconds,
    parse_timestamp,
    utc_now,
    utc_timestamp,
)


class TestUtcNow:
    """Test utc_now() function."""

    def test_has_utc_timezone(self):
        """utc_now() should return timezone-aware datetime with UTC."""
        result = utc_now()
        assert isinstance(result, datetime)
        assert result.tzinfo == UTC

    @freeze_time("2025-11-02 08:30:45")
    def test_frozen_time_returns_expected_datetime(self):
        result = utc_now()
        assert (result.year, result.month, result.day) == (2025, 11, 2)
        assert (result.hour, result.minute, result.second) == (8, 30, 45)


class TestUtcTimestamp:
    """Test utc_timestamp() function."""

    @freeze_time("2025-11-02 08:30:45")
    def test_format_is_iso8601_with_z_suffix(self):
        assert utc_timestamp() == "2025-11-02T08:30:45Z"

    def test_format_length_is_20_characters(self):
        """utc_timestamp() should be exactly 20 characters (YYYY-MM-DDTHH:MM:SSZ)."""
        assert len(utc_timestamp()) == 20

    @freeze_time("2025-12-31 23:59:59")
    def test_end_of_year_formatting(self):
        assert utc_timestamp() == "2025-12-31T23:59:59Z"


class TestParseTimestamp:
    """Test parse_timestamp() function."""

    def test_round_trips_utc_timestamp(self):
        parsed = parse_timestamp("2025-11-02T08:30:45Z")
        assert parsed == datetime(2025, 11, 2, 8, 30, 45, tzinfo=UTC)

    def test_requires_z_suffix(self):
        with pytest.raises(ValueError, match="must end with 'Z'"):
            parse_timestamp("2025-11-02T08:30:45")

    def test_invalid_format(self):
        with pytest.raises(ValueError, match="Invalid ISO 8601"):
            parse_timestamp("not-a-dateZ")


class TestEpochSeconds:
    """Test epoch_seconds() function."""

    @freeze_time("2023-11-14 22:13:20")
    def test_follows_frozen_time(self):
        assert epoch_seconds() == 1_700_000_000

    def test_close_to_system_clock(self):
        assert abs(epoch_seconds() - time.time()) < 5


class TestElapsedMs:
    """Test elapsed_ms() function."""

    def test_measures_elapsed_time(self):
        start = time.monotonic() - 0.25
        assert 250 <= elapsed_ms(start) < 5_000

    def test_never_negative(self):
        assert elapsed_ms(time.monotonic() + 10) == 0
