"""Shared datetime utilities."""

from __future__ import annotations

from datetime import datetime

# git's plain ``iso8601`` format, e.g. ``2026-02-12 10:30:00 +0100``
_GIT_ISO8601 = "%Y-%m-%d %H:%M:%S %z"


def to_local_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive local time; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO 8601 datetime string, returning None on invalid input.

    Handles common variations:
    - Standard ISO format: 2026-02-12T10:30:00
    - With timezone Z suffix: 2026-02-12T10:30:00Z
    - With timezone offset: 2026-02-12T10:30:00+00:00
    - git's non-strict iso8601: 2026-02-12 10:30:00 +0100

    Returns a naive datetime in local time for consistent comparison with
    filesystem modification times.
    """
    if not value or not isinstance(value, str):
        return None
    value = value.strip()
    try:
        return to_local_naive(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        pass
    try:
        return to_local_naive(datetime.strptime(value, _GIT_ISO8601))
    except ValueError:
        return None


def format_iso(value: datetime | None) -> str | None:
    """Serialize a datetime for JSON payloads."""
    return value.isoformat() if value else None
