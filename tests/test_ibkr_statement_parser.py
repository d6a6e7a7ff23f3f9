from __future__ import annotations

import datetime as dt

import pytest

from broker_statements.adapters.ibkr.statement_parser import IbkrStatementParser


def test_parses_processable_sections(ibkr_statement_text):
    result = IbkrStatementParser().parse(ibkr_statement_text)

    assert result.success, result.errors
    s = result.data
    assert [t.symbol for t in s.trades] == ["AAPL", "MSFT", "AAPL 240119C00190000"]
    assert s.trades[0].timestamp == dt.datetime(2024, 1, 10, 10, 30)
    assert s.trades[1].trade_price is None
    assert s.trades[1].proceeds == pytest.approx(-4950.0)

    assert len(s.forex_trades) == 1
    assert s.forex_trades[0].currency_pair == "GBP.USD"
    assert s.forex_trades[0].commission == pytest.approx(-2.0)

    assert [(m.currency, m.movement_type) for m in s.cash_movements] == [("USD", "DEPOSIT"), ("EUR", "WITHDRAWAL")]
    assert s.cash_movements[0].settle_date == dt.date(2024, 1, 5)

    assert [f.flow_type for f in s.cash_flows] == ["DEPOSIT", "WITHDRAWAL", "FX_TRANSLATION_GAIN", "COMMISSION"]
    assert s.cash_flows[1].amount_base == pytest.approx(-216.0)
    assert s.rate_table() == {"EUR": pytest.approx(1.08), "GBP": pytest.approx(1.27)}
    assert s.instruments[0].description == "APPLE INC"


def test_skipped_sections_name_only(ibkr_statement_text):
    result = IbkrStatementParser().parse(ibkr_statement_text)
    assert result.skipped_sections == [
        "Privacy: Statement",
        "Privacy: Account Information",
        "Privacy: Net Asset Value",
        "Unknown: Mark-to-Market Performance Summary",
    ]
    dumped = result.model_dump_json()
    assert "U7654321" not in dumped
    assert "Jane Q Investor" not in dumped


def test_privacy_leak_in_instrument_fails_parse():
    text = "\n".join(
        [
            "Financial Instrument Information,Header,Asset Category,Symbol,Description,Conid,Security ID,Listing Exch,Multiplier,Type,Code",
            "Financial Instrument Information,Data,Stocks,XYZ,Custody account U1234567,1,,NYSE,1,COMMON,",
        ]
    )
    result = IbkrStatementParser().parse(text)
    assert not result.success
    assert result.data is None
    assert result.errors == ["Privacy violation: instrument description for XYZ contains account-identifying text"]


def test_bad_row_fails_parse_with_section_and_line():
    text = "\n".join(
        [
            "Deposits & Withdrawals,Header,Currency,Settle Date,Description,Amount",
            "Deposits & Withdrawals,Data,USD,not-a-date,Electronic Fund Transfer,5000",
        ]
    )
    result = IbkrStatementParser().parse(text)
    assert not result.success
    assert result.errors[0].startswith("Deposits & Withdrawals line 2:")


def test_empty_input():
    result = IbkrStatementParser().parse("")
    assert not result.success
    assert result.errors == ["No statement sections found"]


def test_cash_report_without_currency_uses_base():
    text = "\n".join(
        [
            "Cash Report,Header,Currency Summary,Currency,Total,Total in Base",
            "Cash Report,Data,Broker Interest Received,Base Currency Summary,12.5,12.5",
        ]
    )
    result = IbkrStatementParser("EUR").parse(text)
    assert result.success
    assert result.data.cash_flows[0].currency == "EUR"
    assert result.data.cash_flows[0].flow_type == "INTEREST"


def test_parse_file(tmp_path, ibkr_statement_text):
    p = tmp_path / "activity.csv"
    p.write_text(ibkr_statement_text, encoding="utf-8")
    assert IbkrStatementParser().parse_file(p).success
    missing = IbkrStatementParser().parse_file(tmp_path / "nope.csv")
    assert not missing.success
    assert missing.errors[0].startswith("File not found")
