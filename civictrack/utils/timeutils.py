"""
Timestamp helpers.

All datetimes handled by the SLA code are timezone-aware UTC. Persisted
timestamps are ISO-8601 strings with millisecond precision and a trailing Z.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parse various timestamp formats to timezone-aware datetime (UTC).

    Accepts datetimes, ISO strings (with or without Z) and Firestore
    Timestamp-like objects. Returns None for anything unparseable.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    # Firestore DatetimeWithNanoseconds / protobuf Timestamp
    if hasattr(value, "timestamp"):
        return datetime.fromtimestamp(value.timestamp(), tz=timezone.utc)
    if hasattr(value, "ToDatetime"):
        return value.ToDatetime().replace(tzinfo=timezone.utc)
    return None


def to_iso(value: datetime) -> str:
    """Format a datetime as e.g. 2024-01-15T10:30:00.000Z."""
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")
