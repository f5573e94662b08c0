"""Datetime helpers.

Networks report dates in a mix of shapes ("2024-01-15", "2024-01-15 08:00:00.0",
"2024-01-15T08:00:00Z", "Jan 15, 2024"). Everything is normalized to aware
UTC datetimes before it reaches the store.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any

import pendulum

# Strings that look like a calendar date (optionally with a time part).
_DATE_LIKE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}(?:[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?)?(?:Z|[+-]\d{2}:?\d{2})?$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (sqlite returns them naive) and convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: Any) -> datetime | None:
    """Parse a network-reported date/time into an aware UTC datetime.

    Returns None for empty or unparseable values.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    text = str(value).strip()
    if not text:
        return None
    try:
        parsed = pendulum.parse(text, strict=False, tz="UTC")
    except (ValueError, TypeError, OverflowError):
        return None
    if not isinstance(parsed, datetime):
        # Bare times/durations are not meaningful here.
        return None
    return datetime.fromtimestamp(parsed.timestamp(), tz=timezone.utc)


def looks_like_datetime(value: Any) -> bool:
    """True for datetimes and ISO-style date strings."""
    if isinstance(value, datetime):
        return True
    return isinstance(value, str) and bool(_DATE_LIKE_RE.match(value.strip()))
