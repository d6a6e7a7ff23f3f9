from __future__ import annotations

import asyncio
import datetime as dt
import logging
from typing import Optional

from broker_statements.adapters.ibkr.forex import parse_currency_pair
from broker_statements.core.errors import ConversionCancelled, ConversionError, raise_if_cancelled
from broker_statements.importers.directory import CurrencyTickerDirectory
from broker_statements.importers.domain import BrokerMovement, ConversionBatch, MovementType, StockTrade
from broker_statements.importers.schemas import (
    CashFlowType,
    IbkrCashMovement,
    IbkrForexTrade,
    IbkrStatement,
    IbkrTrade,
)

log = logging.getLogger(__name__)

STOCK_ASSET_CATEGORIES = ("Stocks", "STK")

MOVEMENT_TYPE_BY_FLOW: dict[CashFlowType, MovementType] = {
    "DEPOSIT": "DEPOSIT",
    "WITHDRAWAL": "WITHDRAWAL",
    "FEE": "FEE",
    "COMMISSION": "FEE",
    "INTEREST": "INTERESTS_GAINED",
    "TRADE_SETTLEMENT": "TRADE_SETTLEMENT",
    "FX_TRANSLATION_GAIN": "CONVERSION",
    "FX_TRANSLATION_LOSS": "CONVERSION",
}

# Mappings with no exact target counterpart; logged whenever used.
BEST_GUESS_FLOWS: frozenset[CashFlowType] = frozenset({"COMMISSION", "FX_TRANSLATION_GAIN", "FX_TRANSLATION_LOSS"})


def movement_type_for(flow: CashFlowType) -> MovementType:
    try:
        target = MOVEMENT_TYPE_BY_FLOW[flow]
    except KeyError:
        raise ConversionError(f"No movement type mapping for cash flow type {flow!r}") from None
    if flow in BEST_GUESS_FLOWS:
        log.info("Mapping %s to %s (best guess)", flow, target)
    return target


def _as_datetime(d: dt.date | dt.datetime) -> dt.datetime:
    if isinstance(d, dt.datetime):
        return d
    return dt.datetime(d.year, d.month, d.day)


def stock_trade_price(trade: IbkrTrade) -> float:
    if trade.trade_price is not None:
        return trade.trade_price
    if trade.quantity != 0:
        return abs(trade.proceeds / trade.quantity)
    return 0.0


class IbkrConverter:
    """Maps a parsed IBKR statement onto broker-agnostic domain records."""

    def __init__(self, directory: CurrencyTickerDirectory) -> None:
        self.directory = directory

    async def _movement(self, m: IbkrCashMovement, account_id: int) -> BrokerMovement:
        currency_id = await self.directory.get_or_create_currency_id(m.currency)
        return BrokerMovement(
            timestamp=_as_datetime(m.settle_date),
            broker_account_id=account_id,
            currency_id=currency_id,
            amount=abs(m.amount),
            movement_type=movement_type_for(m.movement_type),
            notes=m.description,
        )

    async def _forex_movement(self, t: IbkrForexTrade, account_id: int) -> BrokerMovement:
        pair = parse_currency_pair(t.currency_pair)
        if not pair.is_valid:
            raise ConversionError(f"Invalid currency pair {t.currency_pair!r}")
        currency_id = await self.directory.get_or_create_currency_id(pair.base_currency)
        from_currency_id = await self.directory.get_or_create_currency_id(pair.quote_currency)
        return BrokerMovement(
            timestamp=t.timestamp,
            broker_account_id=account_id,
            currency_id=currency_id,
            amount=abs(t.quantity),
            commissions=abs(t.commission),
            movement_type="CONVERSION",
            notes=f"Forex: {t.currency_pair}",
            from_currency_id=from_currency_id,
            amount_changed=abs(t.proceeds),
        )

    async def _stock_trade(self, t: IbkrTrade, account_id: int) -> StockTrade:
        currency_id = await self.directory.get_or_create_currency_id(t.currency)
        ticker_id = await self.directory.get_or_create_ticker_id(t.symbol)
        is_buy = t.quantity > 0
        return StockTrade(
            timestamp=t.timestamp,
            broker_account_id=account_id,
            currency_id=currency_id,
            ticker_id=ticker_id,
            quantity=abs(t.quantity),
            price=stock_trade_price(t),
            commissions=abs(t.commission),
            trade_code="BUY_TO_OPEN" if is_buy else "SELL_TO_CLOSE",
            trade_type="LONG" if is_buy else "SHORT",
            notes=t.code,
        )

    def _failed(self, batch: ConversionBatch, what: str, e: Exception) -> None:
        msg = f"Failed to convert {what}: {type(e).__name__}: {e}"
        log.warning("%s", msg)
        batch.errors.append(msg)

    async def convert(
        self,
        statement: IbkrStatement,
        account_id: int,
        session_id: Optional[int] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> ConversionBatch:
        """
        Convert cash movements, forex trades and stock trades.

        Records are converted one at a time in statement order; a failing record is
        logged, noted in `batch.errors` and skipped. Cancellation is checked before
        each record, so a record is either fully converted or not attempted.
        """
        batch = ConversionBatch(session_id=session_id)

        for m in statement.cash_movements:
            raise_if_cancelled(cancel)
            try:
                batch.movements.append(await self._movement(m, account_id))
            except ConversionCancelled:
                raise
            except Exception as e:
                self._failed(batch, f"cash movement {m.currency} {m.settle_date} {m.amount}", e)

        for t in statement.forex_trades:
            raise_if_cancelled(cancel)
            try:
                batch.movements.append(await self._forex_movement(t, account_id))
            except ConversionCancelled:
                raise
            except Exception as e:
                self._failed(batch, f"forex trade {t.currency_pair} {t.timestamp.isoformat()}", e)

        for t in statement.trades:
            raise_if_cancelled(cancel)
            if t.asset_category not in STOCK_ASSET_CATEGORIES:
                log.debug("Skipping %s trade %s; only stocks are converted", t.asset_category, t.symbol)
                continue
            try:
                batch.stock_trades.append(await self._stock_trade(t, account_id))
            except ConversionCancelled:
                raise
            except Exception as e:
                self._failed(batch, f"trade {t.symbol} {t.timestamp.isoformat()}", e)

        log.info(
            "IBKR conversion: %d movements, %d stock trades, %d errors",
            len(batch.movements),
            len(batch.stock_trades),
            len(batch.errors),
        )
        return batch
