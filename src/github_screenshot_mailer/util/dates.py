from __future__ import annotations

from datetime import datetime, timezone

from dateutil import parser as date_parser


def parse_timestamp(value: str) -> datetime:
    """
    Parse user-supplied dates like:
    - "2025-01-31"
    - "01/31/2025 14:00"
    - "2025-01-31T14:00:00+02:00"

    Naive values are taken as UTC; the result is always timezone-aware UTC.
    """
    if value is None:
        raise ValueError("parse_timestamp: value is None")
    s = value.strip()
    if not s:
        raise ValueError("parse_timestamp: empty string")
    dt = date_parser.parse(s, dayfirst=False, yearfirst=False)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
