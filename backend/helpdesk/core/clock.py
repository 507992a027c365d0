"""
Time helpers.

WHY: Timestamps are stored as naive UTC so SQLite and PostgreSQL round-trip
them identically. Every "now" in the code base goes through utcnow() so
tests and SLA math agree on one clock.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value: datetime) -> str:
    """Render a stored timestamp as ISO-8601 with an explicit UTC suffix."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat() + "Z"
