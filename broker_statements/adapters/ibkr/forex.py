from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from broker_statements.importers.schemas import IbkrForexTrade
from broker_statements.utils.money import FX_RATE_TOLERANCE
from broker_statements.utils.time import ensure_utc, utcnow

log = logging.getLogger(__name__)

PAIR_SEPARATOR = "."
COMMISSION_WARNING_RATIO = 0.01
MIN_USUAL_RATE = 0.1
MAX_USUAL_RATE = 100.0


@dataclass(frozen=True)
class ForexPairInfo:
    original: str
    base_currency: str
    quote_currency: str
    is_valid: bool
    parsed: bool


@dataclass(frozen=True)
class ProcessedForexTrade:
    trade: IbkrForexTrade
    pair: ForexPairInfo
    direction: str
    effective_rate: float
    base_amount: float
    quote_amount: float
    notes: tuple[str, ...] = ()


@dataclass(frozen=True)
class ForexProcessingResult:
    trades: list[ProcessedForexTrade]
    exposure: dict[str, float]
    net_conversions: dict[str, float]
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ForexPatterns:
    most_traded_pairs: list[tuple[str, int]]
    average_rates: dict[str, float]
    total_commission: float
    hour_distribution: dict[int, int]


def _is_currency_code(s: str) -> bool:
    return len(s) == 3 and s.isalpha() and s.isascii()


def parse_currency_pair(text: str | None) -> ForexPairInfo:
    """
    Parse "EUR.USD" style pair notation.

    Never raises: anything that is not two three-letter codes around one separator
    comes back with `is_valid=False` so callers can skip or flag the trade.
    """
    original = text or ""
    parts = original.strip().split(PAIR_SEPARATOR)
    if len(parts) != 2:
        return ForexPairInfo(original=original, base_currency="", quote_currency="", is_valid=False, parsed=False)
    base, quote = parts[0].strip().upper(), parts[1].strip().upper()
    ok = _is_currency_code(base) and _is_currency_code(quote)
    return ForexPairInfo(
        original=original,
        base_currency=base if ok else "",
        quote_currency=quote if ok else "",
        is_valid=ok,
        parsed=ok,
    )


def conversion_direction(pair: ForexPairInfo, quantity: float) -> str:
    if quantity > 0:
        return f"Buy {pair.base_currency} with {pair.quote_currency}"
    return f"Sell {pair.base_currency} for {pair.quote_currency}"


def effective_rate(trade: IbkrForexTrade) -> float:
    if trade.quantity != 0:
        return abs(trade.proceeds / trade.quantity)
    return trade.trade_price


def process_forex_trade(trade: IbkrForexTrade) -> ProcessedForexTrade:
    pair = parse_currency_pair(trade.currency_pair)
    rate = effective_rate(trade)
    base_amount = abs(trade.quantity)
    quote_amount = abs(trade.proceeds)

    notes: list[str] = []
    if not pair.is_valid:
        notes.append(f"Invalid currency pair format: {trade.currency_pair}")
    if trade.trade_price and abs(rate - trade.trade_price) > FX_RATE_TOLERANCE:
        notes.append(f"Effective rate {rate:.6f} differs from trade price {trade.trade_price:.6f}")
    if quote_amount > 0 and abs(trade.commission) > quote_amount * COMMISSION_WARNING_RATIO:
        notes.append(f"High commission: {abs(trade.commission):.2f} exceeds 1% of {quote_amount:.2f}")

    return ProcessedForexTrade(
        trade=trade,
        pair=pair,
        direction=conversion_direction(pair, trade.quantity),
        effective_rate=rate,
        base_amount=base_amount,
        quote_amount=quote_amount,
        notes=tuple(notes),
    )


def _add(acc: dict[str, float], key: str, value: float) -> None:
    acc[key] = acc.get(key, 0.0) + value


def process_forex_trades(trades: Iterable[IbkrForexTrade]) -> ForexProcessingResult:
    processed: list[ProcessedForexTrade] = []
    exposure: dict[str, float] = {}
    net_conversions: dict[str, float] = {}
    errors: list[str] = []
    warnings: list[str] = []

    for trade in trades:
        p = process_forex_trade(trade)
        processed.append(p)
        if not p.pair.is_valid:
            errors.append(f"Invalid currency pair: {trade.currency_pair}")
        else:
            sign = 1.0 if trade.quantity > 0 else -1.0
            _add(exposure, p.pair.base_currency, sign * p.base_amount)
            _add(exposure, p.pair.quote_currency, -sign * p.quote_amount)
            _add(net_conversions, p.pair.original.strip().upper(), trade.quantity)
            if p.effective_rate and not (MIN_USUAL_RATE <= p.effective_rate <= MAX_USUAL_RATE):
                warnings.append(f"{trade.currency_pair}: unusual exchange rate {p.effective_rate:.6f}")
        for note in p.notes:
            warnings.append(f"{trade.currency_pair}: {note}")

    log.debug("Processed %d forex trades (%d invalid pairs)", len(processed), len(errors))
    return ForexProcessingResult(
        trades=processed, exposure=exposure, net_conversions=net_conversions, errors=errors, warnings=warnings
    )


def validate_forex_integrity(trades: Iterable[IbkrForexTrade], now: Optional[dt.datetime] = None) -> list[str]:
    issues: list[str] = []
    horizon = (now or utcnow()) + dt.timedelta(hours=24)
    horizon = ensure_utc(horizon)
    for t in trades:
        if t.quantity == 0:
            issues.append(f"{t.currency_pair}: zero quantity")
            continue
        if t.proceeds == 0:
            issues.append(f"{t.currency_pair}: zero proceeds with non-zero quantity")
        if t.trade_price == 0:
            issues.append(f"{t.currency_pair}: zero trade price with non-zero quantity")
        if ensure_utc(t.timestamp) > horizon:
            issues.append(f"{t.currency_pair}: trade dated in the future ({t.timestamp.isoformat()})")
    return issues


def extract_supported_pairs(trades: Iterable[IbkrForexTrade]) -> list[str]:
    pairs = {parse_currency_pair(t.currency_pair) for t in trades}
    return sorted({f"{p.base_currency}.{p.quote_currency}" for p in pairs if p.is_valid})


def analyze_forex_patterns(trades: Iterable[IbkrForexTrade]) -> ForexPatterns:
    trades = list(trades)
    counts: dict[str, int] = {}
    rates: dict[str, list[float]] = {}
    hours: dict[int, int] = {}
    for t in trades:
        pair = parse_currency_pair(t.currency_pair)
        key = f"{pair.base_currency}.{pair.quote_currency}" if pair.is_valid else t.currency_pair
        counts[key] = counts.get(key, 0) + 1
        rates.setdefault(key, []).append(effective_rate(t))
        hours[t.timestamp.hour] = hours.get(t.timestamp.hour, 0) + 1
    most_traded = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return ForexPatterns(
        most_traded_pairs=most_traded,
        average_rates={k: sum(v) / len(v) for k, v in rates.items()},
        total_commission=sum(abs(t.commission) for t in trades),
        hour_distribution=dict(sorted(hours.items())),
    )
