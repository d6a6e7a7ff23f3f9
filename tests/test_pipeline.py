from __future__ import annotations

import asyncio
import datetime as dt

import pytest

from broker_statements import import_ibkr_statement, import_statement, import_tastytrade_statement
from broker_statements.adapters.tastytrade.statement_parser import EXPECTED_HEADERS
from broker_statements.core.config import ImportSettings
from broker_statements.core.errors import ConversionCancelled, PrivacyViolationError, StatementParseError
from broker_statements.core.pipeline import import_file, import_files
from broker_statements.importers.adapters import IbkrStatementAdapter, get_adapter
from broker_statements.importers.schemas import IbkrInstrument, IbkrStatement


@pytest.mark.asyncio
async def test_ibkr_statement_end_to_end(ibkr_statement_text, directory, settings):
    batch = await import_ibkr_statement(ibkr_statement_text, directory, account_id=1, session_id=11, settings=settings)

    assert batch.errors == []
    assert batch.session_id == 11
    assert [m.movement_type for m in batch.movements] == ["DEPOSIT", "WITHDRAWAL", "CONVERSION"]
    assert [(t.trade_code, t.trade_type) for t in batch.stock_trades] == [
        ("BUY_TO_OPEN", "LONG"),
        ("SELL_TO_CLOSE", "SHORT"),
    ]
    assert batch.stock_trades[1].price == pytest.approx(49.5)
    assert batch.option_trades == []
    assert batch.record_count == 5

    assert "EUR FX Translation Gain/Loss: Reclassified from FX translation gain to FX translation loss" in batch.warnings
    assert "Net FX translation impact: -45.00 USD" in batch.warnings
    assert not any("mismatch" in w for w in batch.warnings)
    assert not any("U7654321" in w or "Jane" in w for w in batch.warnings)
    assert set(directory.currencies) == {"USD", "EUR", "GBP"}


@pytest.mark.asyncio
async def test_tastytrade_history_end_to_end(tastytrade_history_text, directory, settings):
    batch = await import_tastytrade_statement(tastytrade_history_text, directory, account_id=2, settings=settings)

    assert batch.errors == []
    assert batch.warnings == []
    assert [m.movement_type for m in batch.movements] == ["DEPOSIT", "FEE", "INTERESTS_GAINED"]
    assert len(batch.option_trades) == 7
    assert len(batch.stock_trades) == 1
    assert len(batch.dividends) == 1
    assert len(batch.dividend_taxes) == 1

    xyz = [o for o in batch.option_trades if o.ticker_id == directory.tickers["XYZ"]]
    assert len(xyz) == 1
    assert xyz[0].strike == pytest.approx(49.25)
    assert xyz[0].notes.startswith("Strike adjusted from 50.00 to 49.25")

    summary = batch.summary()
    assert summary["option_trades"] == 7
    assert summary["dividend_taxes"] == 1


@pytest.mark.asyncio
async def test_line_errors_are_carried_into_the_batch(directory, settings):
    content = "\n".join(
        [
            ",".join(EXPECTED_HEADERS),
            "2024-01-02T10:00:00+0000,Money Movement,Deposit,,,,ok,100,0,,0,0,,,,,,,,USD",
            "garbage,Money Movement,Deposit,,,,bad,100,0,,0,0,,,,,,,,USD",
        ]
    )
    batch = await import_statement("tastytrade", content, directory, account_id=1, settings=settings)
    assert len(batch.movements) == 1
    assert batch.errors == ["Line 3: Invalid date format: 'garbage'"]


@pytest.mark.asyncio
async def test_unreadable_statements_raise(directory, settings):
    with pytest.raises(StatementParseError) as exc:
        await import_ibkr_statement("", directory, account_id=1, settings=settings)
    assert exc.value.errors == ["No statement sections found"]

    with pytest.raises(StatementParseError):
        await import_tastytrade_statement("Date,Type\n2024-01-02,Trade", directory, account_id=1, settings=settings)


@pytest.mark.asyncio
async def test_privacy_violation_blocks_conversion(directory):
    statement = IbkrStatement(
        statement_date=dt.datetime(2024, 1, 31, tzinfo=dt.timezone.utc),
        instruments=[IbkrInstrument(asset_category="Stocks", symbol="XYZ", description="Account U1234567")],
    )
    with pytest.raises(PrivacyViolationError) as exc:
        await IbkrStatementAdapter().convert(statement, directory, account_id=1)
    assert all("U1234567" not in v for v in exc.value.violations)
    assert directory.currencies == {}


@pytest.mark.asyncio
async def test_cancelled_import(ibkr_statement_text, directory, settings):
    cancel = asyncio.Event()
    cancel.set()
    with pytest.raises(ConversionCancelled):
        await import_ibkr_statement(ibkr_statement_text, directory, account_id=1, cancel=cancel, settings=settings)


@pytest.mark.asyncio
async def test_import_file(tmp_path, tastytrade_history_text, directory, settings):
    p = tmp_path / "history.csv"
    p.write_text(tastytrade_history_text, encoding="utf-8")
    batch = await import_file("TASTYTRADE", p, directory, account_id=1, session_id=4, settings=settings)
    assert batch.session_id == 4
    assert batch.record_count == 13


def test_unknown_broker():
    assert get_adapter(" ibkr ").name == "IBKR"
    with pytest.raises(ValueError):
        get_adapter("schwab")


@pytest.mark.asyncio
async def test_import_files_keeps_going_past_bad_files(tmp_path, tastytrade_history_text, directory, settings):
    good = tmp_path / "2024.csv"
    good.write_text(tastytrade_history_text, encoding="utf-8")
    bad = tmp_path / "broken.csv"
    bad.write_text("Date,Type\n2024-01-02,Trade\n", encoding="utf-8")
    missing = tmp_path / "missing.csv"

    result = await import_files("TASTYTRADE", [bad, missing, good], directory, account_id=1, session_id=9, settings=settings)

    assert [f.success for f in result.files] == [False, False, True]
    assert result.files[1].error == f"File not found: {missing}"
    assert result.files[0].error == "Tastytrade history could not be parsed"
    assert result.files[0].details
    assert [f.path for f in result.failed] == [bad, missing]
    assert result.batch.session_id == 9
    assert result.batch.record_count == 13
    assert result.batch.errors == ["broken.csv: Tastytrade history could not be parsed", "missing.csv: File not found"]

    summary = result.summary()
    assert summary["option_trades"] == 7
    assert [f["records"] for f in summary["files"]] == [0, 0, 13]


@pytest.mark.asyncio
async def test_import_files_merges_batches(tmp_path, tastytrade_history_text, directory, settings):
    paths = []
    for name in ("a.csv", "b.csv"):
        p = tmp_path / name
        p.write_text(tastytrade_history_text, encoding="utf-8")
        paths.append(p)

    result = await import_files("TASTYTRADE", paths, directory, account_id=1, settings=settings)

    assert result.failed == []
    assert result.batch.record_count == 26
    assert len(result.batch.option_trades) == 14
    # Both files resolve against the same directory.
    assert result.batch.option_trades[0].ticker_id == result.batch.option_trades[7].ticker_id


@pytest.mark.asyncio
async def test_import_files_stops_on_cancellation(tmp_path, tastytrade_history_text, directory, settings):
    p = tmp_path / "history.csv"
    p.write_text(tastytrade_history_text, encoding="utf-8")
    cancel = asyncio.Event()
    cancel.set()
    with pytest.raises(ConversionCancelled):
        await import_files("TASTYTRADE", [p, p], directory, account_id=1, cancel=cancel, settings=settings)


@pytest.mark.asyncio
async def test_default_currency_setting_reaches_the_converter(directory):
    content = "\n".join(
        [
            ",".join(EXPECTED_HEADERS),
            "2024-01-02T10:00:00+0000,Money Movement,Deposit,,,,ok,100,0,,0,0,,,,,,,,",
        ]
    )
    settings = ImportSettings(database_url="sqlite+aiosqlite:///:memory:", default_currency="CAD")
    batch = await import_tastytrade_statement(content, directory, account_id=1, settings=settings)
    assert batch.movements[0].currency_id == directory.currencies["CAD"]
    assert "USD" not in directory.currencies
