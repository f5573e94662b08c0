"""Change detection for synced documents.

Decides whether a candidate document differs from the stored one, so that
unchanged records are skipped without a write.

Rules:
- Fast path: when both sides carry network_updated_at and the stored value
  is at least as new as the candidate's, the record is unchanged.
- Bookkeeping fields (updated_at, network_updated_at) are never compared.
- None is the same as "field absent" (rows have a fixed column set).
- A different set of present fields counts as a change.
- dict/list values compare structurally; unordered list fields as sets.
- Date-like values compare by instant, not by representation.
"""

from datetime import datetime
from typing import Any

from affsync.utils.dates import as_utc, looks_like_datetime, parse_datetime

BOOKKEEPING_FIELDS = frozenset({"updated_at", "network_updated_at", "created_at"})
UNORDERED_FIELDS = frozenset({"categories", "search_keywords"})


def comparable_fields(document: dict[str, Any] | None) -> dict[str, Any]:
    """Present (non-None) data fields of a document."""
    if not document:
        return {}
    return {k: v for k, v in document.items() if v is not None and k not in BOOKKEEPING_FIELDS}


def _as_instant(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return as_utc(value)
    return parse_datetime(value)


def values_equal(field: str, new: Any, old: Any) -> bool:
    """Compare one field value."""
    if (isinstance(new, datetime) or isinstance(old, datetime)) or (
        looks_like_datetime(new) and looks_like_datetime(old)
    ):
        new_instant, old_instant = _as_instant(new), _as_instant(old)
        if new_instant is not None and old_instant is not None:
            return new_instant == old_instant
    if field in UNORDERED_FIELDS and isinstance(new, list) and isinstance(old, list):
        try:
            return sorted(new) == sorted(old)
        except TypeError:
            return new == old
    if isinstance(new, bool) or isinstance(old, bool):
        return new is old
    return new == old


def has_changed(candidate: dict[str, Any], existing: dict[str, Any] | None) -> bool:
    """Check whether writing `candidate` over `existing` would change the document."""
    if existing is None:
        return True

    new_ts = candidate.get("network_updated_at")
    old_ts = existing.get("network_updated_at")
    if new_ts is not None and old_ts is not None:
        new_instant, old_instant = _as_instant(new_ts), _as_instant(old_ts)
        if new_instant is not None and old_instant is not None and old_instant >= new_instant:
            return False

    new_fields = comparable_fields(candidate)
    old_fields = comparable_fields(existing)
    if new_fields.keys() != old_fields.keys():
        return True

    return any(not values_equal(name, value, old_fields[name]) for name, value in new_fields.items())
