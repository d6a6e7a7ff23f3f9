from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from broker_statements.importers.schemas import TastytradeTransaction
from broker_statements.utils.money import is_close

log = logging.getLogger(__name__)

SPECIAL_DIVIDEND_SUB_TYPE = "Special Dividend"
PAIR_WINDOW_SECONDS = 2.0


@dataclass(frozen=True)
class DetectedAdjustment:
    """
    A strike change caused by a special dividend.

    `dividend_amount` is the per-share dividend (the size of the strike cut);
    `impact` is the dollar value booked on the closing leg.
    """

    ticker: str
    option_type: str
    expiration: Optional[dt.date]
    original_strike: float
    new_strike: float
    strike_delta: float
    dividend_amount: float
    impact: float
    timestamp: dt.datetime
    closing: Optional[TastytradeTransaction] = None
    opening: Optional[TastytradeTransaction] = None

    def matches(self, ticker: Optional[str], expiration: Optional[dt.date], strike: Optional[float], option_type: Optional[str]) -> bool:
        return (
            (ticker or "").upper() == self.ticker
            and expiration == self.expiration
            and strike is not None
            and abs(strike - self.original_strike) < 0.001
            and (option_type or "").upper() == self.option_type
        )


def is_special_dividend(t: TastytradeTransaction) -> bool:
    return t.kind == "RECEIVE_DELIVER" and t.sub_type.strip() == SPECIAL_DIVIDEND_SUB_TYPE


def _group_key(t: TastytradeTransaction) -> tuple[str, str]:
    return (t.timestamp.strftime("%Y-%m-%d %H:%M:%S"), t.root_symbol or "UNKNOWN")


def is_adjustment_pair(closing: TastytradeTransaction, opening: TastytradeTransaction) -> bool:
    if not (is_special_dividend(closing) and is_special_dividend(opening)):
        return False
    if (closing.root_symbol or "") != (opening.root_symbol or ""):
        return False
    if closing.expiration is None or closing.expiration != opening.expiration:
        return False
    if (closing.call_or_put or "") != (opening.call_or_put or ""):
        return False
    if abs((opening.timestamp - closing.timestamp).total_seconds()) > PAIR_WINDOW_SECONDS:
        return False
    if not ((closing.value < 0 < opening.value) or (opening.value < 0 < closing.value)):
        return False
    if closing.strike is None or opening.strike is None or closing.strike == opening.strike:
        return False
    if not is_close(closing.value, -opening.value):
        return False
    return closing.quantity == opening.quantity


def _pairs(lines: list[TastytradeTransaction]) -> list[tuple[TastytradeTransaction, TastytradeTransaction]]:
    closings = [t for t in lines if t.value < 0]
    openings = [t for t in lines if t.value > 0]
    used: set[int] = set()
    out = []
    for closing in closings:
        for opening in openings:
            if id(opening) in used:
                continue
            if is_adjustment_pair(closing, opening):
                out.append((closing, opening))
                used.add(id(opening))
                break
    return out


def _adjustment(closing: TastytradeTransaction, opening: TastytradeTransaction) -> DetectedAdjustment:
    strikes = (closing.strike or 0.0, opening.strike or 0.0)
    original, new = max(strikes), min(strikes)
    delta = new - original
    return DetectedAdjustment(
        ticker=(closing.root_symbol or "UNKNOWN").upper(),
        option_type=closing.call_or_put or "CALL",
        expiration=closing.expiration,
        original_strike=original,
        new_strike=new,
        strike_delta=delta,
        dividend_amount=abs(delta),
        impact=abs(closing.value),
        timestamp=closing.timestamp,
        closing=closing,
        opening=opening,
    )


def detect_adjustments(transactions: Iterable[TastytradeTransaction]) -> list[DetectedAdjustment]:
    groups: dict[tuple[str, str], list[TastytradeTransaction]] = {}
    for t in transactions:
        if is_special_dividend(t):
            groups.setdefault(_group_key(t), []).append(t)
    if not groups:
        return []

    found: list[DetectedAdjustment] = []
    for lines in groups.values():
        for closing, opening in _pairs(lines):
            adj = _adjustment(closing, opening)
            log.debug(
                "Adjustment detected: %s %s exp=%s original=%.2f new=%.2f delta=%.2f (lines %d/%d)",
                adj.ticker,
                adj.option_type,
                adj.expiration,
                adj.original_strike,
                adj.new_strike,
                adj.strike_delta,
                closing.line_number,
                opening.line_number,
            )
            found.append(adj)
    log.info("Found %d special dividend adjustment pair(s)", len(found))
    return found


def format_adjustment_note(original_strike: float, new_strike: float, impact: float) -> str:
    delta = new_strike - original_strike
    return (
        f"Strike adjusted from {original_strike:.2f} to {new_strike:.2f} due to special dividend "
        f"(delta {delta:.2f}, impact: ${impact:.2f})"
    )


def find_adjustment(
    adjustments: Iterable[DetectedAdjustment], t: TastytradeTransaction
) -> Optional[DetectedAdjustment]:
    ticker = t.underlying_symbol or t.root_symbol
    for adj in adjustments:
        if adj.matches(ticker, t.expiration, t.strike, t.call_or_put):
            return adj
    return None
