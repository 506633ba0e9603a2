"""
UTC instant parsing for the ephemeris server.

Instants arrive as ISO-8601 strings carrying an explicit UTC designation
("Z" or a zero offset). Parsing uses dateutil's strict ISO parser; no
local-timezone inference and no leap-second handling.
"""

from dateutil import parser
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..errors import ValidationError

INVALID_DATETIME = "INPUT.INVALID_DATETIME"


def utc_now() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_instant(value: Optional[str]) -> datetime:
    """
    Parse an ISO-8601 UTC datetime string into an aware UTC datetime.

    Args:
        value: ISO-8601 string with "Z" or "+00:00", or None/empty for now

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        ValidationError: If the string is not ISO-8601 or is not UTC

    Examples:
        >>> parse_instant("2024-03-20T12:00:00Z")
        datetime.datetime(2024, 3, 20, 12, 0, tzinfo=tzutc())
    """
    if value is None or not value.strip():
        return utc_now()

    text = value.strip()
    try:
        dt = parser.isoparse(text)
    except (ValueError, OverflowError) as e:
        raise ValidationError(
            f"Invalid datetime '{text}': {e}",
            code=INVALID_DATETIME,
            title="Invalid datetime",
            tip="Use ISO-8601 in UTC, e.g. 2024-03-20T12:00:00Z"
        )

    if dt.tzinfo is None or dt.utcoffset() != timedelta(0):
        raise ValidationError(
            f"Datetime '{text}' must be UTC (end with 'Z' or '+00:00')",
            code=INVALID_DATETIME,
            title="Invalid datetime",
            tip="Convert local times to UTC before calling."
        )

    return dt.astimezone(timezone.utc)


def truncate_to_minute(instant: datetime) -> datetime:
    """Drop seconds and microseconds; computation works on whole minutes."""
    return instant.replace(second=0, microsecond=0)


def format_instant(instant: datetime) -> str:
    """Format an instant as ISO-8601 with a Z suffix and millisecond precision."""
    instant = instant.astimezone(timezone.utc)
    return instant.strftime("%Y-%m-%dT%H:%M:%S.") + f"{instant.microsecond // 1000:03d}Z"


def format_date(instant: datetime) -> str:
    """UTC calendar date of an instant as YYYY-MM-DD."""
    return instant.astimezone(timezone.utc).strftime("%Y-%m-%d")


def start_of_day(instant: datetime) -> datetime:
    """Midnight UTC at the start of the instant's UTC day."""
    instant = instant.astimezone(timezone.utc)
    return instant.replace(hour=0, minute=0, second=0, microsecond=0)
