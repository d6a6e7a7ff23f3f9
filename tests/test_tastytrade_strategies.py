from __future__ import annotations

import datetime as dt

from broker_statements.adapters.tastytrade.strategies import (
    classify_legs,
    detect_strategies,
    find_strategies_by_ticker,
    individual_transactions,
    strategy_summary,
    strategy_tickers,
    validate_strategy,
)


def test_straddle_same_strike_and_expiration(make_transaction):
    legs = [
        make_transaction(call_or_put="CALL", strike=190.0, order_number="1"),
        make_transaction(call_or_put="PUT", strike=190.0, order_number="1"),
    ]
    groups = detect_strategies(legs)
    assert len(groups) == 1
    assert groups[0].strategy == "STRADDLE"
    assert groups[0].order_number == "1"
    assert len(groups[0].option_legs) == 2


def test_strangle_two_strikes(make_transaction):
    legs = [make_transaction(call_or_put="CALL", strike=200.0), make_transaction(call_or_put="PUT", strike=180.0)]
    assert classify_legs(legs) == "STRANGLE"


def test_vertical_and_calendar_spreads(make_transaction):
    vertical = [make_transaction(call_or_put="PUT", strike=480.0), make_transaction(call_or_put="PUT", strike=470.0)]
    assert classify_legs(vertical) == "VERTICAL_SPREAD"

    calendar = [
        make_transaction(call_or_put="CALL", strike=190.0, expiration=dt.date(2024, 6, 21)),
        make_transaction(call_or_put="CALL", strike=190.0, expiration=dt.date(2024, 9, 20)),
    ]
    assert classify_legs(calendar) == "CALENDAR_SPREAD"

    diagonal = [
        make_transaction(call_or_put="CALL", strike=190.0, expiration=dt.date(2024, 6, 21)),
        make_transaction(call_or_put="CALL", strike=200.0, expiration=dt.date(2024, 9, 20)),
    ]
    assert classify_legs(diagonal) == "UNKNOWN"


def test_iron_condor_four_distinct_strikes(make_transaction):
    legs = [
        make_transaction(call_or_put="PUT", strike=170.0),
        make_transaction(call_or_put="PUT", strike=180.0),
        make_transaction(call_or_put="CALL", strike=200.0),
        make_transaction(call_or_put="CALL", strike=210.0),
    ]
    assert classify_legs(legs) == "IRON_CONDOR"

    iron_butterfly = legs[:2] + [
        make_transaction(call_or_put="CALL", strike=180.0),
        make_transaction(call_or_put="CALL", strike=210.0),
    ]
    assert classify_legs(iron_butterfly) == "UNKNOWN"


def test_single_leg_and_unknown_shapes(make_transaction):
    assert classify_legs([make_transaction()]) == "SINGLE_LEG"
    assert classify_legs([make_transaction(), make_transaction(), make_transaction()]) == "UNKNOWN"
    covered = [
        make_transaction(),
        make_transaction(instrument_type="Equity", symbol="AAPL", strike=None, call_or_put=None, expiration=None),
    ]
    assert classify_legs(covered) == "UNKNOWN"


def test_future_options_count_as_option_legs(make_transaction):
    legs = [
        make_transaction(instrument_type="Future Option", call_or_put="CALL", strike=5000.0, root_symbol="/ES", underlying_symbol="/ESH4"),
        make_transaction(instrument_type="Future Option", call_or_put="PUT", strike=5000.0, root_symbol="/ES", underlying_symbol="/ESH4"),
    ]
    assert classify_legs(legs) == "STRADDLE"


def test_grouping_summary_and_lookup(make_transaction):
    txs = [
        make_transaction(order_number="1", call_or_put="CALL", strike=190.0),
        make_transaction(order_number="1", call_or_put="PUT", strike=190.0),
        make_transaction(order_number="2", root_symbol="SPY", underlying_symbol="SPY", call_or_put="PUT", strike=480.0),
        make_transaction(order_number=None, kind="MONEY_MOVEMENT", sub_type="DEPOSIT", instrument_type=None),
    ]
    groups = detect_strategies(txs)
    assert strategy_summary(groups) == {"STRADDLE": 1, "SINGLE_LEG": 1}
    assert [g.order_number for g in find_strategies_by_ticker(groups, "spy")] == ["2"]
    assert strategy_tickers(groups) == ["AAPL", "SPY"]
    assert len(individual_transactions(txs)) == 1


def test_validate_strategy_flags_mixed_underlyings(make_transaction):
    groups = detect_strategies(
        [
            make_transaction(order_number="9", call_or_put="CALL"),
            make_transaction(order_number="9", call_or_put="PUT", root_symbol="MSFT", underlying_symbol="MSFT"),
        ]
    )
    assert validate_strategy(groups[0]) == ["Order 9 spans multiple underlyings: AAPL, MSFT"]


def test_validate_strategy_flags_mixed_currencies(make_transaction):
    groups = detect_strategies(
        [
            make_transaction(order_number="12", call_or_put="CALL", currency="USD"),
            make_transaction(order_number="12", call_or_put="PUT", currency="cad"),
        ]
    )
    assert validate_strategy(groups[0]) == ["Order 12 spans multiple currencies: CAD, USD"]
