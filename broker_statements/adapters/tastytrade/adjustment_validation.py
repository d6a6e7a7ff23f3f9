from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from broker_statements.adapters.tastytrade.adjustments import DetectedAdjustment
from broker_statements.utils.money import STRIKE_TOLERANCE

log = logging.getLogger(__name__)

LARGE_ADJUSTMENT_PERCENT = 5.0


@dataclass(frozen=True)
class AdjustmentValidation:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def __add__(self, other: "AdjustmentValidation") -> "AdjustmentValidation":
        return AdjustmentValidation(errors=self.errors + other.errors, warnings=self.warnings + other.warnings)


_OK = AdjustmentValidation()


def _original_strike_positive(adj: DetectedAdjustment) -> AdjustmentValidation:
    if adj.original_strike > 0:
        return _OK
    return AdjustmentValidation(errors=[f"Original strike must be positive, got {adj.original_strike}"])


def _new_strike_positive(adj: DetectedAdjustment) -> AdjustmentValidation:
    if adj.new_strike > 0:
        return _OK
    return AdjustmentValidation(errors=[f"New strike must be positive, got {adj.new_strike}"])


def _dividend_non_negative(adj: DetectedAdjustment) -> AdjustmentValidation:
    if adj.dividend_amount >= 0:
        return _OK
    return AdjustmentValidation(errors=[f"Dividend amount must be non-negative, got {adj.dividend_amount}"])


def _delta_consistent(adj: DetectedAdjustment) -> AdjustmentValidation:
    expected = adj.new_strike - adj.original_strike
    if abs(expected - adj.strike_delta) < STRIKE_TOLERANCE:
        return _OK
    return AdjustmentValidation(
        errors=[f"Strike delta calculation error: expected {expected:.4f}, got {adj.strike_delta:.4f}"]
    )


def _large_adjustment(adj: DetectedAdjustment) -> AdjustmentValidation:
    pct = abs(adj.strike_delta) / adj.original_strike * 100 if adj.original_strike != 0 else 0.0
    if pct > LARGE_ADJUSTMENT_PERCENT:
        return AdjustmentValidation(
            warnings=[f"Unusually large strike adjustment: {pct:.2f}% (delta: {adj.strike_delta:.2f})"]
        )
    return _OK


# Every rule runs; results are concatenated, never short-circuited.
RULES: tuple[Callable[[DetectedAdjustment], AdjustmentValidation], ...] = (
    _original_strike_positive,
    _new_strike_positive,
    _dividend_non_negative,
    _delta_consistent,
    _large_adjustment,
)


def validate_adjustment(adj: DetectedAdjustment) -> AdjustmentValidation:
    result = _OK
    for rule in RULES:
        result = result + rule(adj)
    return result


def validate_and_filter_adjustments(
    adjustments: Iterable[DetectedAdjustment], diagnostics: Optional[list[str]] = None
) -> list[DetectedAdjustment]:
    """
    Keep adjustments that pass every blocking rule.

    Rejected and flagged adjustments are logged with ticker/option type context and,
    when `diagnostics` is given, appended to it as human-readable lines.
    """
    kept: list[DetectedAdjustment] = []
    for adj in adjustments:
        result = validate_adjustment(adj)
        if not result.is_valid:
            msg = f"Adjustment rejected for {adj.ticker} {adj.option_type}: {'; '.join(result.errors)}"
            log.warning("%s", msg)
            if diagnostics is not None:
                diagnostics.append(msg)
            continue
        if result.warnings:
            msg = f"Adjustment flagged for {adj.ticker} {adj.option_type}: {'; '.join(result.warnings)}"
            log.warning("%s", msg)
            if diagnostics is not None:
                diagnostics.append(msg)
        kept.append(adj)
    return kept
