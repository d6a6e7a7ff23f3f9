from __future__ import annotations

import datetime as dt
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

SectionKind = Literal[
    "TRADES",
    "DEPOSITS_WITHDRAWALS",
    "OPEN_POSITIONS",
    "FINANCIAL_INSTRUMENTS",
    "CASH_REPORT",
    "EXCHANGE_RATES",
    "FOREX_BALANCES",
    "COLLATERAL_BORROWING",
]

CashFlowType = Literal[
    "DEPOSIT",
    "WITHDRAWAL",
    "COMMISSION",
    "FEE",
    "INTEREST",
    "TRADE_SETTLEMENT",
    "FX_TRANSLATION_GAIN",
    "FX_TRANSLATION_LOSS",
]

TransactionKind = Literal["TRADE", "MONEY_MOVEMENT", "RECEIVE_DELIVER"]
TradeSubType = Literal["BUY_TO_OPEN", "SELL_TO_OPEN", "BUY_TO_CLOSE", "SELL_TO_CLOSE"]
MoneyMovementSubType = Literal[
    "DEPOSIT",
    "WITHDRAWAL",
    "BALANCE_ADJUSTMENT",
    "CREDIT_INTEREST",
    "DEBIT_INTEREST",
    "TRANSFER",
    "LENDING",
    "DIVIDEND",
]

OPTION_INSTRUMENT_TYPES = ("Equity Option", "Future Option")
EQUITY_INSTRUMENT_TYPE = "Equity"


def _none_if_blank(v):
    if v is None:
        return None
    if isinstance(v, str) and v.strip() == "":
        return None
    return v


def _upper(v):
    v = _none_if_blank(v)
    if v is None:
        return None
    return str(v).strip().upper()


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True)


# --- Interactive Brokers activity statement ---


class IbkrTrade(_Record):
    asset_category: str
    currency: str
    symbol: str
    timestamp: dt.datetime
    quantity: float
    trade_price: Optional[float] = None
    close_price: Optional[float] = None
    proceeds: float
    commission: float = 0.0
    basis: Optional[float] = None
    realized_pnl: Optional[float] = None
    realized_pnl_percent: Optional[float] = None
    mtm_pnl: Optional[float] = None
    code: Optional[str] = None

    @field_validator("currency", "symbol")
    @classmethod
    def _codes(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("code", mode="before")
    @classmethod
    def _code_blank_to_none(cls, v):
        return _none_if_blank(v)


class IbkrForexTrade(_Record):
    currency_pair: str
    timestamp: dt.datetime
    quantity: float
    trade_price: float = 0.0
    proceeds: float
    commission: float = 0.0
    code: Optional[str] = None

    @field_validator("code", mode="before")
    @classmethod
    def _code_blank_to_none(cls, v):
        return _none_if_blank(v)


class IbkrCashMovement(_Record):
    currency: str
    settle_date: dt.date
    description: str
    amount: float
    movement_type: CashFlowType

    @field_validator("currency")
    @classmethod
    def _currency(cls, v: str) -> str:
        return v.strip().upper()


class IbkrCashFlow(_Record):
    flow_type: CashFlowType
    currency: str
    amount: float
    amount_base: Optional[float] = None
    description: str = ""

    @field_validator("currency")
    @classmethod
    def _currency(cls, v: str) -> str:
        return v.strip().upper()


class IbkrOpenPosition(_Record):
    asset_category: str
    currency: str
    symbol: str
    quantity: float
    multiplier: float = 1.0
    cost_basis_price: float
    cost_basis_money: float
    close_price: float
    value: float
    unrealized_pnl: float
    unrealized_pnl_percent: float = 0.0


class IbkrInstrument(_Record):
    asset_category: str
    symbol: str
    description: str
    con_id: Optional[str] = None
    security_id: Optional[str] = None
    listing_exchange: Optional[str] = None
    multiplier: Optional[float] = None
    instrument_type: Optional[str] = None
    code: Optional[str] = None

    @field_validator("con_id", "security_id", "listing_exchange", "instrument_type", "code", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        return _none_if_blank(v)


class IbkrExchangeRate(_Record):
    currency: str
    rate: float

    @field_validator("currency")
    @classmethod
    def _currency(cls, v: str) -> str:
        return v.strip().upper()


class IbkrForexBalance(_Record):
    asset_category: str
    currency: str
    description: str
    quantity: float
    cost_price: float
    cost_basis_base: float
    close_price: float
    value_base: float
    unrealized_pnl_base: float
    code: Optional[str] = None


class IbkrStatement(_Record):
    statement_date: dt.datetime
    broker_name: str = "Interactive Brokers"
    trades: list[IbkrTrade] = Field(default_factory=list)
    forex_trades: list[IbkrForexTrade] = Field(default_factory=list)
    cash_movements: list[IbkrCashMovement] = Field(default_factory=list)
    cash_flows: list[IbkrCashFlow] = Field(default_factory=list)
    open_positions: list[IbkrOpenPosition] = Field(default_factory=list)
    instruments: list[IbkrInstrument] = Field(default_factory=list)
    exchange_rates: list[IbkrExchangeRate] = Field(default_factory=list)
    forex_balances: list[IbkrForexBalance] = Field(default_factory=list)

    def rate_table(self) -> dict[str, float]:
        return {r.currency: r.rate for r in self.exchange_rates}


class IbkrParseResult(BaseModel):
    success: bool
    data: Optional[IbkrStatement] = None
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    skipped_sections: list[str] = Field(default_factory=list)


# --- Tastytrade transaction history ---


class TastytradeTransaction(_Record):
    timestamp: dt.datetime
    kind: TransactionKind
    sub_type: str
    action: Optional[str] = None
    symbol: Optional[str] = None
    instrument_type: Optional[str] = None
    description: str = ""
    value: float = 0.0
    quantity: float = 0.0
    average_price: Optional[float] = None
    commissions: float = 0.0
    fees: float = 0.0
    multiplier: Optional[float] = None
    root_symbol: Optional[str] = None
    underlying_symbol: Optional[str] = None
    expiration: Optional[dt.date] = None
    strike: Optional[float] = None
    call_or_put: Optional[Literal["CALL", "PUT"]] = None
    order_number: Optional[str] = None
    currency: Optional[str] = None
    raw_line: str = ""
    line_number: int = 0

    @field_validator("action", "symbol", "instrument_type", "order_number", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        v = _none_if_blank(v)
        return v.strip() if isinstance(v, str) else v

    @field_validator("root_symbol", "underlying_symbol", "call_or_put", mode="before")
    @classmethod
    def _blank_upper(cls, v):
        return _upper(v)

    @field_validator("currency", mode="before")
    @classmethod
    def _currency(cls, v):
        return _upper(v)

    @property
    def is_option(self) -> bool:
        return self.instrument_type in OPTION_INSTRUMENT_TYPES

    @property
    def is_equity(self) -> bool:
        return self.instrument_type == EQUITY_INSTRUMENT_TYPE


class TastytradeParseError(BaseModel):
    line_number: int
    message: str
    raw_line: str = ""
    error_type: Literal["INVALID_DATE", "INVALID_NUMBER", "INVALID_TRANSACTION_TYPE", "MISSING_FIELD"]


class TastytradeParseResult(BaseModel):
    transactions: list[TastytradeTransaction] = Field(default_factory=list)
    errors: list[TastytradeParseError] = Field(default_factory=list)
    processed_lines: int = 0
    skipped_lines: int = 0
