from __future__ import annotations

import datetime as dt
from typing import Any

UTC = dt.timezone.utc

_STATEMENT_FORMATS = ("%Y-%m-%d, %H:%M:%S", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d", "%m/%d/%Y", "%d-%m-%Y")
_EXPIRATION_FORMATS = ("%m/%d/%y", "%m/%d/%Y", "%Y-%m-%d")


def utcnow() -> dt.datetime:
    return dt.datetime.now(UTC)


def ensure_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_datetime(value: Any) -> dt.datetime | None:
    if value is None:
        return None
    if isinstance(value, dt.datetime):
        return value
    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        # Support "Z" suffix and compact offsets like +0100.
        s = s.replace("Z", "+00:00")
        if len(s) > 5 and s[-5] in "+-" and s[-4:].isdigit() and "T" in s:
            s = s[:-2] + ":" + s[-2:]
        try:
            return dt.datetime.fromisoformat(s)
        except ValueError:
            return None
    return None


def parse_statement_datetime(value: Any) -> dt.datetime | None:
    """Parse the date/time shapes found in broker activity statements."""
    if value is None:
        return None
    if isinstance(value, dt.datetime):
        return value
    s = str(value).strip()
    if not s:
        return None
    for fmt in _STATEMENT_FORMATS:
        try:
            return dt.datetime.strptime(s, fmt)
        except ValueError:
            continue
    return parse_datetime(s)


def parse_expiration_date(value: Any) -> dt.date | None:
    if value is None:
        return None
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    s = str(value).strip()
    if not s:
        return None
    for fmt in _EXPIRATION_FORMATS:
        try:
            return dt.datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None
