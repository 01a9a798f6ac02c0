from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from dateutil import parser as dateutil_parser


def parse_datetime(value: str | None) -> Optional[datetime]:
    """Parse a datetime string into a timezone-aware datetime, or None."""
    if not value:
        return None
    try:
        dt = dateutil_parser.parse(value)
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except (ValueError, TypeError, OverflowError):
        return None


def parse_form_datetime(value: str | None) -> Optional[datetime]:
    """Parse an optional form field; blank means absent, garbage raises ValueError."""
    if value is None or not value.strip():
        return None
    parsed = parse_datetime(value.strip())
    if parsed is None:
        raise ValueError(f"Invalid date: {value!r}")
    return parsed
