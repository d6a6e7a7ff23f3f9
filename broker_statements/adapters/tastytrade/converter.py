from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional

from broker_statements.adapters.tastytrade.adjustments import DetectedAdjustment, find_adjustment, format_adjustment_note
from broker_statements.adapters.tastytrade.option_symbols import extract_ticker
from broker_statements.core.errors import ConversionCancelled, ConversionError, raise_if_cancelled
from broker_statements.importers.directory import CurrencyTickerDirectory
from broker_statements.importers.domain import (
    BrokerMovement,
    ConversionBatch,
    Dividend,
    DividendTax,
    MovementType,
    OptionCode,
    OptionTrade,
    StockTrade,
    TradeCode,
)
from broker_statements.importers.schemas import MoneyMovementSubType, TastytradeTransaction

log = logging.getLogger(__name__)

DEFAULT_MULTIPLIER = 100.0

# None means "not a plain movement" (dividends become ticker-level records).
MOVEMENT_TYPE_BY_SUB_TYPE: dict[MoneyMovementSubType, Optional[MovementType]] = {
    "DEPOSIT": "DEPOSIT",
    "WITHDRAWAL": "WITHDRAWAL",
    "BALANCE_ADJUSTMENT": "FEE",
    "CREDIT_INTEREST": "INTERESTS_GAINED",
    "DEBIT_INTEREST": "INTERESTS_PAID",
    "TRANSFER": "DEPOSIT",
    "LENDING": "LENDING",
    "DIVIDEND": None,
}

TRADE_CODES: dict[str, TradeCode] = {
    "BUY_TO_OPEN": "BUY_TO_OPEN",
    "SELL_TO_OPEN": "SELL_TO_OPEN",
    "BUY_TO_CLOSE": "BUY_TO_CLOSE",
    "SELL_TO_CLOSE": "SELL_TO_CLOSE",
}

OPENING_CODES: tuple[OptionCode, ...] = ("BUY_TO_OPEN", "SELL_TO_OPEN")


def movement_type_for(t: TastytradeTransaction) -> MovementType:
    sub = t.sub_type
    if sub not in MOVEMENT_TYPE_BY_SUB_TYPE:
        raise ConversionError(f"No movement type mapping for money movement {sub!r}")
    if sub == "TRANSFER":
        target: MovementType = "DEPOSIT" if t.value >= 0 else "WITHDRAWAL"
        log.info("Line %d: mapping transfer of %.2f to %s (best guess)", t.line_number, t.value, target)
        return target
    if sub == "BALANCE_ADJUSTMENT":
        log.debug("Line %d: mapping balance adjustment to FEE (best guess)", t.line_number)
    target = MOVEMENT_TYPE_BY_SUB_TYPE[sub]
    if target is None:
        raise ConversionError(f"Money movement {sub!r} is not a broker movement")
    return target


def trade_code_for(t: TastytradeTransaction) -> TradeCode:
    try:
        return TRADE_CODES[t.sub_type]
    except KeyError:
        raise ConversionError(f"Unsupported trade sub type {t.sub_type!r}") from None


class TastytradeConverter:
    """Maps Tastytrade transaction history onto broker-agnostic domain records."""

    def __init__(self, directory: CurrencyTickerDirectory, default_currency: str = "USD") -> None:
        self.directory = directory
        self.default_currency = default_currency

    async def _currency_id(self, t: TastytradeTransaction) -> int:
        # Rows with a blank Currency column are in the account currency.
        return await self.directory.get_or_create_currency_id(t.currency or self.default_currency)

    async def _money_movement(self, t: TastytradeTransaction, account_id: int, batch: ConversionBatch) -> None:
        currency_id = await self._currency_id(t)
        if t.sub_type == "DIVIDEND":
            if not t.symbol:
                raise ConversionError("Dividend without a symbol")
            ticker_id = await self.directory.get_or_create_ticker_id(t.symbol)
            if t.value > 0:
                batch.dividends.append(
                    Dividend(
                        timestamp=t.timestamp,
                        broker_account_id=account_id,
                        currency_id=currency_id,
                        ticker_id=ticker_id,
                        amount=abs(t.value),
                    )
                )
            else:
                batch.dividend_taxes.append(
                    DividendTax(
                        timestamp=t.timestamp,
                        broker_account_id=account_id,
                        currency_id=currency_id,
                        ticker_id=ticker_id,
                        amount=abs(t.value),
                    )
                )
            return

        movement_type = movement_type_for(t)
        if t.sub_type == "BALANCE_ADJUSTMENT":
            # Regulatory fees: a negative value is a fee paid, a positive one a refund.
            amount, fees = 0.0, -t.value
        else:
            amount, fees = abs(t.value), abs(t.fees)
        batch.movements.append(
            BrokerMovement(
                timestamp=t.timestamp,
                broker_account_id=account_id,
                currency_id=currency_id,
                amount=amount,
                commissions=abs(t.commissions),
                fees=fees,
                movement_type=movement_type,
                notes=t.description,
            )
        )

    async def _option_trades(
        self, t: TastytradeTransaction, account_id: int, adjustments: list[DetectedAdjustment]
    ) -> list[OptionTrade]:
        if t.quantity <= 0:
            raise ConversionError(f"Option trade with non-positive quantity {t.quantity}")
        if t.expiration is None or t.call_or_put is None or t.strike is None:
            raise ConversionError("Option trade missing expiration, strike or call/put")
        contracts = int(t.quantity)
        if contracts != t.quantity:
            raise ConversionError(f"Fractional option quantity {t.quantity}")

        currency_id = await self._currency_id(t)
        ticker = t.underlying_symbol or t.root_symbol or extract_ticker(t.symbol or "")
        if not ticker:
            raise ConversionError("Option trade without an underlying symbol")
        ticker_id = await self.directory.get_or_create_ticker_id(ticker)
        code = trade_code_for(t)
        commissions = abs(t.commissions)
        fees = abs(t.fees)
        strike = t.strike
        notes = t.description
        adj = find_adjustment(adjustments, t)
        if adj is not None:
            strike = adj.new_strike
            notes = format_adjustment_note(adj.original_strike, adj.new_strike, adj.impact)

        # One record per contract.
        return [
            OptionTrade(
                timestamp=t.timestamp,
                broker_account_id=account_id,
                currency_id=currency_id,
                ticker_id=ticker_id,
                expiration=t.expiration,
                premium=t.value / t.quantity,
                net_premium=(t.value - commissions - fees) / t.quantity,
                option_type=t.call_or_put,
                code=code,
                strike=strike,
                commissions=commissions / t.quantity,
                fees=fees / t.quantity,
                is_open=code in OPENING_CODES,
                multiplier=t.multiplier or DEFAULT_MULTIPLIER,
                notes=notes,
            )
            for _ in range(contracts)
        ]

    async def _stock_trade(self, t: TastytradeTransaction, account_id: int) -> StockTrade:
        if not t.symbol:
            raise ConversionError("Equity trade without a symbol")
        currency_id = await self._currency_id(t)
        ticker_id = await self.directory.get_or_create_ticker_id(t.symbol)
        code = trade_code_for(t)
        if t.average_price is not None:
            price = abs(t.average_price)
        elif t.quantity:
            price = abs(t.value / t.quantity)
        else:
            price = 0.0
        return StockTrade(
            timestamp=t.timestamp,
            broker_account_id=account_id,
            currency_id=currency_id,
            ticker_id=ticker_id,
            quantity=abs(t.quantity),
            price=price,
            commissions=abs(t.commissions),
            fees=abs(t.fees),
            trade_code=code,
            trade_type="LONG" if code.startswith("BUY") else "SHORT",
            notes=t.description,
        )

    async def _acat_trade(self, t: TastytradeTransaction, account_id: int) -> StockTrade:
        if not t.symbol:
            raise ConversionError("Receive/deliver without a symbol")
        currency_id = await self._currency_id(t)
        ticker_id = await self.directory.get_or_create_ticker_id(t.symbol)
        return StockTrade(
            timestamp=t.timestamp,
            broker_account_id=account_id,
            currency_id=currency_id,
            ticker_id=ticker_id,
            quantity=abs(t.quantity),
            price=0.0,
            commissions=abs(t.commissions),
            fees=abs(t.fees),
            trade_code="BUY_TO_OPEN",
            trade_type="LONG",
            notes=t.description,
        )

    async def _convert_one(
        self,
        t: TastytradeTransaction,
        account_id: int,
        adjustments: list[DetectedAdjustment],
        batch: ConversionBatch,
    ) -> None:
        if t.kind == "MONEY_MOVEMENT":
            await self._money_movement(t, account_id, batch)
        elif t.kind == "TRADE" and t.is_option:
            batch.option_trades.extend(await self._option_trades(t, account_id, adjustments))
        elif t.kind == "TRADE" and t.is_equity:
            batch.stock_trades.append(await self._stock_trade(t, account_id))
        elif t.kind == "RECEIVE_DELIVER" and t.is_equity:
            batch.stock_trades.append(await self._acat_trade(t, account_id))
        else:
            # Option expirations/assignments and special dividend legs are informational.
            log.debug("Line %d: skipping %s %s (%s)", t.line_number, t.kind, t.sub_type, t.instrument_type)

    async def convert(
        self,
        transactions: Iterable[TastytradeTransaction],
        account_id: int,
        session_id: Optional[int] = None,
        adjustments: Optional[Iterable[DetectedAdjustment]] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> ConversionBatch:
        """
        Convert transactions in chronological order.

        `adjustments` should already be validated; option trades that match one by
        ticker, expiration, original strike and type get the adjusted strike.
        """
        batch = ConversionBatch(session_id=session_id)
        adjustments = list(adjustments or [])
        for t in sorted(transactions, key=lambda x: x.timestamp):
            raise_if_cancelled(cancel)
            try:
                await self._convert_one(t, account_id, adjustments, batch)
            except ConversionCancelled:
                raise
            except Exception as e:
                msg = f"Error converting transaction line {t.line_number}: {type(e).__name__}: {e}"
                log.warning("%s", msg)
                batch.errors.append(msg)

        log.info(
            "Tastytrade conversion: %d movements, %d option trades, %d stock trades, %d dividends, %d errors",
            len(batch.movements),
            len(batch.option_trades),
            len(batch.stock_trades),
            len(batch.dividends),
            len(batch.errors),
        )
        return batch
