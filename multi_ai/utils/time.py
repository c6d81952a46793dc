"""
UTC timestamp utilities for multi-ai.

All timestamps MUST be in UTC with explicit timezone markers.

This module provides:
- utc_now(): Current time as timezone-aware datetime
- utc_timestamp(): ISO 8601 timestamp string with 'Z' suffix
- parse_timestamp(): Parse ISO 8601 string to datetime
- epoch_seconds(): Current Unix time, used for cookie expiry checks
- elapsed_ms(): Milliseconds since a monotonic start mark

Examples:
    >>> from multi_ai.utils.time import utc_timestamp, elapsed_ms
    >>> timestamp = utc_timestamp()
    >>> timestamp
    '2025-11-02T08:30:45Z'
    >>> start = time.monotonic()
    >>> elapsed_ms(start)
    0
"""

import time
from datetime import UTC, datetime


def utc_now() -> datetime:
    """
    Return current time in UTC with timezone info.

    Returns:
        datetime: Current UTC time with tzinfo=timezone.utc

    Note:
        NEVER use datetime.now() without timezone parameter.
        NEVER use datetime.utcnow() (deprecated, returns naive datetime).
    """
    return datetime.now(UTC)


def utc_timestamp() -> str:
    """
    Return ISO 8601 timestamp string with 'Z' suffix.

    Format: YYYY-MM-DDTHH:MM:SSZ

    Returns:
        str: ISO 8601 formatted timestamp in UTC

    Example:
        >>> utc_timestamp().endswith('Z')
        True
    """
    return utc_now().strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(timestamp_str: str) -> datetime:
    """
    Parse ISO 8601 timestamp string to timezone-aware datetime.

    Args:
        timestamp_str: ISO 8601 timestamp string ending with 'Z'

    Returns:
        datetime: Timezone-aware datetime in UTC

    Raises:
        ValueError: If timestamp doesn't end with 'Z' or has invalid format

    Examples:
        >>> parse_timestamp('2025-11-02T08:30:45Z').year
        2025

        >>> parse_timestamp('2025-11-02T08:30:45')
        Traceback (most recent call last):
        ...
        ValueError: Timestamp must end with 'Z' (UTC): 2025-11-02T08:30:45
    """
    if not timestamp_str.endswith("Z"):
        raise ValueError(f"Timestamp must end with 'Z' (UTC): {timestamp_str}")

    try:
        return datetime.fromisoformat(timestamp_str.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValueError(f"Invalid ISO 8601 timestamp format: {timestamp_str}") from e


def epoch_seconds() -> float:
    """
    Return the current Unix time in seconds.

    Cookie ``expires`` values are Unix seconds, so expiry filtering compares
    against this rather than a datetime. Derived from utc_now() so that
    freezegun-frozen tests see a consistent clock.
    """
    return utc_now().timestamp()


def elapsed_ms(start: float) -> int:
    """
    Return whole milliseconds elapsed since ``start``.

    Args:
        start: A value previously obtained from time.monotonic()

    Returns:
        int: Elapsed milliseconds (never negative)
    """
    return max(0, int((time.monotonic() - start) * 1000))
