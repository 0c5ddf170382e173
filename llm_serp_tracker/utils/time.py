"""
UTC timestamp utilities for LLM SERP Tracker.

All timestamps are UTC with explicit timezone markers. Run ordering in the
database relies on these strings sorting chronologically.

Examples:
    >>> from llm_serp_tracker.utils.time import utc_now, utc_timestamp
    >>> utc_now().tzinfo
    datetime.timezone.utc
    >>> utc_timestamp()
    '2025-11-02T08:30:45.123456Z'
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """
    Return current time in UTC with timezone info.

    NEVER use datetime.now() without a timezone or datetime.utcnow().
    """
    return datetime.now(UTC)


def utc_timestamp(dt: datetime | None = None) -> str:
    """
    Return an ISO 8601 timestamp string with microseconds and a 'Z' suffix.

    Format: YYYY-MM-DDTHH:MM:SS.ffffffZ

    Microsecond precision keeps two runs started within the same second in
    a stable order when the database sorts by started_at.

    Args:
        dt: Optional timezone-aware datetime. Defaults to utc_now().

    Returns:
        str: ISO 8601 formatted timestamp in UTC

    Raises:
        ValueError: If dt is naive

    Example:
        >>> from datetime import datetime, UTC
        >>> utc_timestamp(datetime(2025, 11, 2, 8, 30, 45, tzinfo=UTC))
        '2025-11-02T08:30:45.000000Z'
    """
    if dt is None:
        dt = utc_now()

    if dt.tzinfo is None:
        raise ValueError(
            "Datetime must be timezone-aware (use UTC). "
            "Got naive datetime. Use utc_now() or ensure dt has tzinfo set."
        )

    return dt.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_timestamp(timestamp_str: str) -> datetime:
    """
    Parse an ISO 8601 timestamp string into a timezone-aware datetime.

    Accepts both the 'Z' suffix and explicit offsets.

    Raises:
        ValueError: If the string is not ISO 8601 or carries no timezone
    """
    try:
        parsed = datetime.fromisoformat(timestamp_str.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValueError(f"Invalid ISO 8601 timestamp: {timestamp_str!r}") from e

    if parsed.tzinfo is None:
        raise ValueError(f"Timestamp must include timezone: {timestamp_str!r}")

    return parsed
