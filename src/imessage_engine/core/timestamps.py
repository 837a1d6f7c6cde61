"""
Conversion between Messages database timestamps and datetimes.

macOS Messages stores `message.date` (and friends) as nanoseconds since
the Cocoa reference date, 2001-01-01 00:00:00 UTC. Zero or NULL means
"no timestamp" (e.g. an unread message has date_read = 0).
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Union

# Cocoa epoch: 2001-01-01 00:00:00 UTC
COCOA_EPOCH = datetime(2001, 1, 1, tzinfo=timezone.utc)

NANOS_PER_SECOND = 1_000_000_000
NANOS_PER_MICRO = 1_000

# Rendered in place of a date when the store has no timestamp
UNKNOWN = "Unknown"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def encode(value: datetime) -> int:
    """
    Convert a datetime to Messages store units (ns since 2001-01-01 UTC).

    Naive datetimes are taken as UTC. Integer arithmetic is used
    throughout so no precision is lost at microsecond granularity.

    Args:
        value: The instant to encode

    Returns:
        Nanoseconds since the Cocoa epoch
    """
    delta = _as_utc(value) - COCOA_EPOCH
    seconds = delta.days * 86400 + delta.seconds
    return seconds * NANOS_PER_SECOND + delta.microseconds * NANOS_PER_MICRO


def decode(units: Optional[Union[int, float]]) -> Optional[datetime]:
    """
    Convert Messages store units back to a timezone-aware UTC datetime.

    Returns None (the "unknown" sentinel) for 0 or NULL.
    """
    if not units:
        return None
    micros = int(units) // NANOS_PER_MICRO
    return COCOA_EPOCH + timedelta(microseconds=micros)


def to_iso(units: Optional[Union[int, float]]) -> str:
    """Format store units as ISO-8601, or "Unknown" when there is no timestamp."""
    decoded = decode(units)
    if decoded is None:
        return UNKNOWN
    return decoded.isoformat()
