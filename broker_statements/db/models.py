from __future__ import annotations

import datetime as dt
from typing import Optional

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from broker_statements.db.types import UTCDateTime
from broker_statements.utils.time import utcnow


class Base(DeclarativeBase):
    pass


class Currency(Base):
    __tablename__ = "currencies"
    __table_args__ = (UniqueConstraint("code", name="uq_currencies_code"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(3), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    symbol: Mapped[str] = mapped_column(String(8), nullable=False, default="$")
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)


class Ticker(Base):
    __tablename__ = "tickers"
    __table_args__ = (UniqueConstraint("symbol", name="uq_tickers_symbol"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(200))
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
