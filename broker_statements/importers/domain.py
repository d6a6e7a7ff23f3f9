from __future__ import annotations

import datetime as dt
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

MovementType = Literal[
    "DEPOSIT",
    "WITHDRAWAL",
    "FEE",
    "INTERESTS_GAINED",
    "INTERESTS_PAID",
    "LENDING",
    "ACAT_MONEY_TRANSFER",
    "ACAT_SECURITIES_TRANSFER",
    "CONVERSION",
    "TRADE_SETTLEMENT",
]
TradeCode = Literal["BUY_TO_OPEN", "SELL_TO_OPEN", "BUY_TO_CLOSE", "SELL_TO_CLOSE"]
TradeType = Literal["LONG", "SHORT"]
OptionCode = Literal["BUY_TO_OPEN", "SELL_TO_OPEN", "BUY_TO_CLOSE", "SELL_TO_CLOSE", "ASSIGNED", "EXPIRED"]
OptionType = Literal["CALL", "PUT"]


def _resolved_id(v: int) -> int:
    if v is None or int(v) <= 0:
        raise ValueError("identifier must be resolved (positive)")
    return int(v)


class _DomainRecord(BaseModel):
    timestamp: dt.datetime
    broker_account_id: int
    currency_id: int

    @field_validator("currency_id", "broker_account_id")
    @classmethod
    def _ids(cls, v: int) -> int:
        return _resolved_id(v)


class BrokerMovement(_DomainRecord):
    amount: float
    commissions: float = 0.0
    fees: float = 0.0
    movement_type: MovementType
    notes: Optional[str] = None
    from_currency_id: Optional[int] = None
    amount_changed: Optional[float] = None
    ticker_id: Optional[int] = None
    quantity: Optional[float] = None

    @field_validator("from_currency_id", "ticker_id")
    @classmethod
    def _optional_ids(cls, v: Optional[int]) -> Optional[int]:
        return None if v is None else _resolved_id(v)


class StockTrade(_DomainRecord):
    ticker_id: int
    quantity: float
    price: float
    commissions: float = 0.0
    fees: float = 0.0
    trade_code: TradeCode
    trade_type: TradeType
    leverage: float = 1.0
    notes: Optional[str] = None

    @field_validator("ticker_id")
    @classmethod
    def _ticker(cls, v: int) -> int:
        return _resolved_id(v)


class OptionTrade(_DomainRecord):
    ticker_id: int
    expiration: dt.date
    premium: float
    net_premium: float
    option_type: OptionType
    code: OptionCode
    strike: float
    commissions: float = 0.0
    fees: float = 0.0
    is_open: bool
    multiplier: float = 100.0
    notes: Optional[str] = None

    @field_validator("ticker_id")
    @classmethod
    def _ticker(cls, v: int) -> int:
        return _resolved_id(v)


class Dividend(_DomainRecord):
    ticker_id: int
    amount: float

    @field_validator("ticker_id")
    @classmethod
    def _ticker(cls, v: int) -> int:
        return _resolved_id(v)


class DividendTax(_DomainRecord):
    ticker_id: int
    amount: float

    @field_validator("ticker_id")
    @classmethod
    def _ticker(cls, v: int) -> int:
        return _resolved_id(v)


class ConversionBatch(BaseModel):
    session_id: Optional[int] = None
    movements: list[BrokerMovement] = Field(default_factory=list)
    stock_trades: list[StockTrade] = Field(default_factory=list)
    option_trades: list[OptionTrade] = Field(default_factory=list)
    dividends: list[Dividend] = Field(default_factory=list)
    dividend_taxes: list[DividendTax] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def record_count(self) -> int:
        return (
            len(self.movements)
            + len(self.stock_trades)
            + len(self.option_trades)
            + len(self.dividends)
            + len(self.dividend_taxes)
        )

    def summary(self) -> dict[str, object]:
        return {
            "session_id": self.session_id,
            "movements": len(self.movements),
            "stock_trades": len(self.stock_trades),
            "option_trades": len(self.option_trades),
            "dividends": len(self.dividends),
            "dividend_taxes": len(self.dividend_taxes),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }
