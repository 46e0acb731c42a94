"""UTC helpers.

All stored timestamps are UTC ISO 8601 strings with a Z suffix.
"""

from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return the current UTC datetime, timezone-aware."""
    return datetime.now(UTC)


def format_timestamp(dt: datetime) -> str:
    """Format a datetime as ISO 8601 with microsecond precision and Z suffix.

    Output format: YYYY-MM-DDTHH:MM:SS.ffffffZ
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    utc_dt = dt.astimezone(UTC)
    return utc_dt.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_timestamp(s: str) -> datetime:
    """Parse an ISO 8601 timestamp with Z suffix back to UTC datetime."""
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return datetime.fromisoformat(s)


def now_timestamp() -> str:
    """Current UTC time as a stored timestamp string."""
    return format_timestamp(utc_now())
