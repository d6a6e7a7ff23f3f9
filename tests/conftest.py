from __future__ import annotations

import datetime as dt
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from broker_statements.core.config import ImportSettings
from broker_statements.importers.directory import InMemoryDirectory
from broker_statements.importers.schemas import TastytradeTransaction


IBKR_STATEMENT = "\n".join(
    [
        "Statement,Header,Field Name,Field Value",
        "Statement,Data,BrokerName,Interactive Brokers LLC",
        'Statement,Data,Period,"January 1, 2024 - January 31, 2024"',
        "Account Information,Header,Field Name,Field Value",
        "Account Information,Data,Name,Jane Q Investor",
        "Account Information,Data,Account,U7654321",
        "Net Asset Value,Header,Asset Class,Prior Total,Current Long",
        "Net Asset Value,Data,Cash,1000,2000",
        "Mark-to-Market Performance Summary,Header,Asset Category,Symbol,Prior Quantity",
        "Mark-to-Market Performance Summary,Data,Stocks,AAPL,0",
        "Trades,Header,Asset Category,Currency,Symbol,Date/Time,Quantity,T. Price,Proceeds,Comm/Fee,Basis,Realized P/L,Realized P/L %,MTM P/L,Code",
        'Trades,Data,Stocks,USD,AAPL,"2024-01-10, 10:30:00",10,185.5,-1855,-1,1856,0,0,-5,O',
        'Trades,Data,Stocks,USD,MSFT,"2024-01-12, 14:00:00",-100,,-4950,-1.5,,,,,C',
        'Trades,Data,Equity and Index Options,USD,AAPL 240119C00190000,"2024-01-15, 11:00:00",1,2.5,-250,-0.65,,,,,O',
        "Trades,SubTotal,Stocks,USD,,,,,,,,,,,",
        "Trades,Header,Asset Category,Currency,Symbol,Date/Time,Quantity,T. Price,Proceeds,Comm in USD,Code",
        'Trades,Data,Forex,USD,GBP.USD,"2024-01-20, 09:15:00",1000,1.25,-1250,-2,',
        "Deposits & Withdrawals,Header,Currency,Settle Date,Description,Amount",
        "Deposits & Withdrawals,Data,USD,2024-01-05,Electronic Fund Transfer,5000",
        "Deposits & Withdrawals,Data,EUR,2024-01-08,Disbursement Initiated by Withdrawal,-200",
        "Deposits & Withdrawals,Data,Total,,,4800",
        "Cash Report,Header,Currency Summary,Currency,Total,Total in Base",
        "Cash Report,Data,Deposits,USD,5000,5000",
        "Cash Report,Data,Withdrawals,EUR,-200,-216",
        "Cash Report,Data,FX Translation Gain/Loss,EUR,-50,-45",
        "Cash Report,Data,Commissions,USD,-4.15,-4.15",
        "Base Currency Exchange Rate,Header,Currency,Rate",
        "Base Currency Exchange Rate,Data,EUR,1.08",
        "Base Currency Exchange Rate,Data,GBP,1.27",
        "Financial Instrument Information,Header,Asset Category,Symbol,Description,Conid,Security ID,Listing Exch,Multiplier,Type,Code",
        "Financial Instrument Information,Data,Stocks,AAPL,APPLE INC,265598,US0378331005,NASDAQ,1,COMMON,",
    ]
)

TASTYTRADE_HEADER = (
    "Date,Type,Sub Type,Action,Symbol,Instrument Type,Description,Value,Quantity,Average Price,"
    "Commissions,Fees,Multiplier,Root Symbol,Underlying Symbol,Expiration Date,Strike Price,Call or Put,Order #,Currency"
)

TASTYTRADE_HISTORY = "\n".join(
    [
        TASTYTRADE_HEADER,
        '2024-01-02T10:00:00+0000,Money Movement,Deposit,,,,ACH DEPOSIT,"10,000.00",0,,0.00,0.00,,,,,,,,USD',
        "2024-01-05T15:30:00+0000,Trade,Sell to Open,SELL_TO_OPEN,AAPL  240621C00190000,Equity Option,Sold 1 AAPL Call 190.00 @ 5.00,500.00,1,500.00,-1.00,-0.14,100,AAPL,AAPL,6/21/24,190,CALL,101,USD",
        "2024-01-05T15:30:00+0000,Trade,Sell to Open,SELL_TO_OPEN,AAPL  240621P00190000,Equity Option,Sold 1 AAPL Put 190.00 @ 4.00,400.00,1,400.00,-1.00,-0.14,100,AAPL,AAPL,6/21/24,190,PUT,101,USD",
        "2024-01-08T14:00:00+0000,Trade,Sell to Open,SELL_TO_OPEN,SPY   240315P00480000,Equity Option,Sold 2 SPY Put 480.00 @ 1.50,300.00,2,150.00,-2.00,-0.26,100,SPY,SPY,3/15/24,480,PUT,102,USD",
        "2024-01-08T14:00:00+0000,Trade,Buy to Open,BUY_TO_OPEN,SPY   240315P00470000,Equity Option,Bought 2 SPY Put 470.00 @ 0.90,-180.00,2,-90.00,-2.00,-0.26,100,SPY,SPY,3/15/24,470,PUT,102,USD",
        "2024-01-10T16:00:00+0000,Trade,Buy to Open,BUY_TO_OPEN,MSFT,Equity,Bought 10 MSFT @ 380.00,-3800.00,10,-380.00,0.00,-0.08,,,MSFT,,,,103,USD",
        "2024-01-15T12:00:00+0000,Money Movement,Dividend,,MSFT,Equity,MICROSOFT CORP cash dividend,7.50,0,,0.00,0.00,,,,,,,,USD",
        "2024-01-15T12:00:00+0000,Money Movement,Dividend,,MSFT,Equity,MICROSOFT CORP non-resident tax,-1.13,0,,0.00,0.00,,,,,,,,USD",
        "2024-01-20T15:00:00+0000,Trade,Buy to Open,BUY_TO_OPEN,XYZ   240621C00050000,Equity Option,Bought 1 XYZ Call 50.00 @ 1.20,-120.00,1,-120.00,-1.00,-0.14,100,XYZ,XYZ,6/21/24,50,CALL,104,USD",
        "",
        "2024-02-01T09:00:00+0000,Receive Deliver,Special Dividend,SELL_TO_CLOSE,XYZ   240621C00050000,Equity Option,Special dividend close,-75.00,1,-75.00,0.00,0.00,100,XYZ,XYZ,6/21/24,50,CALL,,USD",
        "2024-02-01T09:00:00+0000,Receive Deliver,Special Dividend,BUY_TO_OPEN,XYZ   240621C00049250,Equity Option,Special dividend open,75.00,1,75.00,0.00,0.00,100,XYZ,XYZ,6/21/24,49.25,CALL,,USD",
        "2024-01-31T23:00:00+0000,Money Movement,Balance Adjustment,,,,Regulatory fee adjustment,-0.02,0,,0.00,0.00,,,,,,,,USD",
        "2024-01-31T23:30:00+0000,Money Movement,Credit Interest,,,,INTEREST ON CREDIT BALANCE,1.23,0,,0.00,0.00,,,,,,,,USD",
    ]
)


@pytest.fixture()
def directory() -> InMemoryDirectory:
    return InMemoryDirectory()


@pytest.fixture()
def settings() -> ImportSettings:
    return ImportSettings(database_url="sqlite+aiosqlite:///:memory:")


@pytest.fixture()
def ibkr_statement_text() -> str:
    return IBKR_STATEMENT


@pytest.fixture()
def tastytrade_history_text() -> str:
    return TASTYTRADE_HISTORY


def _make_transaction(**overrides) -> TastytradeTransaction:
    """Option leg with sensible defaults; override what the test cares about."""
    base = dict(
        timestamp=dt.datetime(2024, 2, 1, 9, 0, 0, tzinfo=dt.timezone.utc),
        kind="TRADE",
        sub_type="SELL_TO_OPEN",
        symbol="AAPL  240621C00190000",
        instrument_type="Equity Option",
        value=100.0,
        quantity=1.0,
        multiplier=100.0,
        root_symbol="AAPL",
        underlying_symbol="AAPL",
        expiration=dt.date(2024, 6, 21),
        strike=190.0,
        call_or_put="CALL",
        order_number="1",
        line_number=2,
    )
    base.update(overrides)
    return TastytradeTransaction(**base)


@pytest.fixture()
def make_transaction():
    return _make_transaction
