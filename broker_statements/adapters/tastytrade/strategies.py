from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable, Literal, Optional

from broker_statements.importers.schemas import TastytradeTransaction

log = logging.getLogger(__name__)

StrategyKind = Literal[
    "SINGLE_LEG",
    "STRADDLE",
    "STRANGLE",
    "VERTICAL_SPREAD",
    "CALENDAR_SPREAD",
    "IRON_CONDOR",
    "UNKNOWN",
]


@dataclass(frozen=True)
class StrategyGroup:
    order_number: str
    transactions: tuple[TastytradeTransaction, ...]
    strategy: Optional[StrategyKind] = None

    @property
    def option_legs(self) -> list[TastytradeTransaction]:
        return [t for t in self.transactions if t.is_option]

    @property
    def equity_legs(self) -> list[TastytradeTransaction]:
        return [t for t in self.transactions if t.is_equity]

    def classified(self) -> "StrategyGroup":
        if self.strategy is not None:
            return self
        return replace(self, strategy=classify_legs(self.transactions))


def _distinct(values: Iterable) -> set:
    return {v for v in values if v is not None}


def classify_legs(transactions: Iterable[TastytradeTransaction]) -> StrategyKind:
    """
    Fixed decision table over leg counts and strike/expiration distinctness.

    Anything the table does not name is UNKNOWN; there is no best-effort guess.
    """
    legs = list(transactions)
    options = [t for t in legs if t.is_option]
    equities = [t for t in legs if t.is_equity]
    calls = [t for t in options if t.call_or_put == "CALL"]
    puts = [t for t in options if t.call_or_put == "PUT"]
    strikes = _distinct(t.strike for t in options)
    expirations = _distinct(t.expiration for t in options)

    if equities:
        return "UNKNOWN"
    if len(options) == 1:
        return "SINGLE_LEG"
    if len(options) == 2:
        if len(calls) == 1 and len(puts) == 1:
            if len(strikes) == 1:
                return "STRADDLE"
            if len(strikes) == 2:
                return "STRANGLE"
            return "UNKNOWN"
        if len(calls) == 2 or len(puts) == 2:
            if len(strikes) == 2 and len(expirations) == 1:
                return "VERTICAL_SPREAD"
            if len(strikes) == 1 and len(expirations) == 2:
                return "CALENDAR_SPREAD"
        return "UNKNOWN"
    if len(options) == 4:
        if len(calls) == 2 and len(puts) == 2 and len(strikes) == 4:
            return "IRON_CONDOR"
        return "UNKNOWN"
    return "UNKNOWN"


def group_by_order(transactions: Iterable[TastytradeTransaction]) -> list[StrategyGroup]:
    groups: dict[str, list[TastytradeTransaction]] = {}
    for t in transactions:
        if t.order_number:
            groups.setdefault(t.order_number, []).append(t)
    return [
        StrategyGroup(order_number=order, transactions=tuple(sorted(legs, key=lambda t: t.timestamp)))
        for order, legs in groups.items()
    ]


def detect_strategies(transactions: Iterable[TastytradeTransaction]) -> list[StrategyGroup]:
    detected = [g.classified() for g in group_by_order(transactions)]
    log.debug("Detected %d order groups", len(detected))
    return detected


def individual_transactions(transactions: Iterable[TastytradeTransaction]) -> list[TastytradeTransaction]:
    return [t for t in transactions if not t.order_number]


def validate_strategy(group: StrategyGroup) -> list[str]:
    warnings: list[str] = []
    underlyings = _distinct(t.underlying_symbol or t.root_symbol for t in group.transactions)
    if len(underlyings) > 1:
        warnings.append(
            f"Order {group.order_number} spans multiple underlyings: {', '.join(sorted(underlyings))}"
        )
    currencies = _distinct(t.currency for t in group.transactions)
    if len(currencies) > 1:
        warnings.append(f"Order {group.order_number} spans multiple currencies: {', '.join(sorted(currencies))}")
    return warnings


def strategy_summary(groups: Iterable[StrategyGroup]) -> dict[StrategyKind, int]:
    out: dict[StrategyKind, int] = {}
    for g in groups:
        kind = g.strategy or "UNKNOWN"
        out[kind] = out.get(kind, 0) + 1
    return out


def find_strategies_by_ticker(groups: Iterable[StrategyGroup], ticker: str) -> list[StrategyGroup]:
    needle = ticker.strip().upper()
    return [
        g
        for g in groups
        if any(needle in (t.underlying_symbol, t.root_symbol) for t in g.transactions)
    ]


def strategy_tickers(groups: Iterable[StrategyGroup]) -> list[str]:
    return sorted(
        _distinct(t.underlying_symbol or t.root_symbol for g in groups for t in g.transactions)
    )
