"""
Timestamp helpers shared by the store and the client.
"""

from datetime import datetime, timedelta, timezone

# Fixed-width so that string comparison matches chronological order
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

ONE_TICK = timedelta(microseconds=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """
    Render an aware datetime as an ISO-8601 UTC string with microseconds.

    Args:
        value: Timezone-aware datetime

    Returns:
        String like 2025-01-15T10:00:00.000000Z
    """
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 UTC string (Z suffix accepted) into an aware datetime."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def next_timestamp(latest: str | None) -> str:
    """
    Return the current time, bumped past `latest` when the clock has not advanced.

    Args:
        latest: Most recent timestamp already issued for the same sequence, if any

    Returns:
        Formatted timestamp strictly greater than `latest`
    """
    now = utc_now()
    if latest is not None:
        floor = parse_timestamp(latest) + ONE_TICK
        if now < floor:
            now = floor
    return format_timestamp(now)
