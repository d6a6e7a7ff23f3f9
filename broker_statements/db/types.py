from __future__ import annotations

import datetime as dt

from sqlalchemy.types import DateTime as _DateTime
from sqlalchemy.types import TypeDecorator

from broker_statements.utils.time import UTC


class UTCDateTime(TypeDecorator):
    """
    Store datetimes as naive UTC and hand back tz-aware UTC values.

    SQLite has no timezone-aware datetime column, so naive values are treated as UTC.
    """

    impl = _DateTime
    cache_ok = True

    def process_bind_param(self, value: dt.datetime | None, dialect):
        if value is None:
            return None
        v = value
        if v.tzinfo is None:
            v = v.replace(tzinfo=UTC)
        return v.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value: dt.datetime | None, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
