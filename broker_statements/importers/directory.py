from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from broker_statements.core.errors import ResolutionError
from broker_statements.db.models import Currency, Ticker

log = logging.getLogger(__name__)


class CurrencyTickerDirectory(Protocol):
    """
    Get-or-create lookup for currency and ticker identifiers.

    Both calls must be idempotent: the same code/symbol always yields the same id.
    Converters await these sequentially per record; cross-statement locking is
    the implementation's concern (unique constraint + re-read on conflict).
    """

    async def get_or_create_currency_id(self, code: str) -> int: ...

    async def get_or_create_ticker_id(self, symbol: str) -> int: ...


def normalize_currency_code(code: str | None) -> str:
    s = str(code or "").strip().upper()
    if len(s) != 3 or not s.isalpha():
        raise ResolutionError(f"Invalid currency code: {code!r}")
    return s


def normalize_ticker_symbol(symbol: str | None) -> str:
    s = " ".join(str(symbol or "").split()).upper()
    if not s:
        raise ResolutionError("Empty ticker symbol")
    return s


class InMemoryDirectory:
    """Directory kept in process memory; used for dry runs and tests."""

    def __init__(self) -> None:
        self.currencies: dict[str, int] = {}
        self.tickers: dict[str, int] = {}

    async def get_or_create_currency_id(self, code: str) -> int:
        key = normalize_currency_code(code)
        if key not in self.currencies:
            self.currencies[key] = len(self.currencies) + 1
        return self.currencies[key]

    async def get_or_create_ticker_id(self, symbol: str) -> int:
        key = normalize_ticker_symbol(symbol)
        if key not in self.tickers:
            self.tickers[key] = len(self.tickers) + 1
        return self.tickers[key]


class SqlDirectory:
    """
    Directory backed by the `currencies`/`tickers` tables through an AsyncSession.

    Each newly created row is committed right away on the given session, and a
    unique-constraint conflict rolls it back before re-reading. Either one also
    commits or discards whatever else is pending on that session, so pass a
    session that holds no other unflushed work. Database failures surface as
    `ResolutionError` so converters treat them as per-record errors.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self._currency_ids: dict[str, int] = {}
        self._ticker_ids: dict[str, int] = {}

    async def _currency_id(self, code: str) -> int | None:
        result = await self.session.execute(select(Currency.id).where(Currency.code == code))
        return result.scalars().first()

    async def _ticker_id(self, symbol: str) -> int | None:
        result = await self.session.execute(select(Ticker.id).where(Ticker.symbol == symbol))
        return result.scalars().first()

    async def _create(self, row: Currency | Ticker, what: str) -> None:
        self.session.add(row)
        try:
            await self.session.commit()
        except IntegrityError:
            # Another importer created it first; read theirs.
            await self.session.rollback()
            log.debug("%s created concurrently; re-reading", what)

    async def get_or_create_currency_id(self, code: str) -> int:
        key = normalize_currency_code(code)
        if key in self._currency_ids:
            return self._currency_ids[key]
        try:
            cid = await self._currency_id(key)
            if cid is None:
                await self._create(Currency(code=key, name=f"{key} Currency", symbol="$"), f"Currency {key}")
                cid = await self._currency_id(key)
                if cid is not None:
                    log.info("Created currency %s (id=%s)", key, cid)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise ResolutionError(f"Currency {key} could not be resolved: {e}") from e
        if cid is None:
            raise ResolutionError(f"Currency {key} could not be created")
        self._currency_ids[key] = cid
        return cid

    async def get_or_create_ticker_id(self, symbol: str) -> int:
        key = normalize_ticker_symbol(symbol)
        if key in self._ticker_ids:
            return self._ticker_ids[key]
        try:
            tid = await self._ticker_id(key)
            if tid is None:
                await self._create(Ticker(symbol=key, name=key), f"Ticker {key}")
                tid = await self._ticker_id(key)
                if tid is not None:
                    log.info("Created ticker %s (id=%s)", key, tid)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise ResolutionError(f"Ticker {key} could not be resolved: {e}") from e
        if tid is None:
            raise ResolutionError(f"Ticker {key} could not be created")
        self._ticker_ids[key] = tid
        return tid
