"""
RFC 3339 timestamps as used by the Google Tasks API.
"""

from datetime import datetime
from datetime import timezone


def parse_rfc3339(text: str) -> datetime:
    """Parse a Google Tasks timestamp (``2012-10-01T10:00:00.000Z``).

    Always returns a timezone-aware datetime.  Values without an offset are
    taken as UTC.  Raises ValueError for anything else.
    """
    value = datetime.fromisoformat(text.strip().replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def format_rfc3339(value: datetime) -> str:
    """Format a datetime the way Google Tasks writes them (UTC, milliseconds)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")
