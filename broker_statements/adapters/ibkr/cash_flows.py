from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from broker_statements.importers.schemas import CashFlowType, IbkrCashFlow, IbkrCashMovement
from broker_statements.utils.money import CURRENCY_TOLERANCE, is_close

log = logging.getLogger(__name__)

FX_FLOW_TYPES: tuple[CashFlowType, ...] = ("FX_TRANSLATION_GAIN", "FX_TRANSLATION_LOSS")

MIN_PLAUSIBLE_FX_RATIO = 0.1
MAX_PLAUSIBLE_FX_RATIO = 10.0

_FLOW_LABELS: dict[CashFlowType, str] = {
    "DEPOSIT": "deposit",
    "WITHDRAWAL": "withdrawal",
    "COMMISSION": "commission",
    "FEE": "fee",
    "INTEREST": "interest",
    "TRADE_SETTLEMENT": "trade settlement",
    "FX_TRANSLATION_GAIN": "FX translation gain",
    "FX_TRANSLATION_LOSS": "FX translation loss",
}


@dataclass(frozen=True)
class ClassifiedCashFlow:
    original: IbkrCashFlow
    flow_type: CashFlowType
    base_amount: float
    foreign_amount: Optional[float]
    exchange_rate: Optional[float]
    notes: tuple[str, ...] = ()

    @property
    def currency(self) -> str:
        return self.original.currency

    @property
    def is_fx(self) -> bool:
        return self.flow_type in FX_FLOW_TYPES


@dataclass(frozen=True)
class CashFlowClassification:
    flows: list[ClassifiedCashFlow]
    total_base_flow: float
    breakdown: dict[str, float]
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def totals_by_type(self) -> dict[CashFlowType, float]:
        out: dict[CashFlowType, float] = {}
        for f in self.flows:
            out[f.flow_type] = out.get(f.flow_type, 0.0) + f.base_amount
        return out


def flow_label(flow_type: CashFlowType) -> str:
    return _FLOW_LABELS[flow_type]


def classify_fx_translation(description: str, amount: float) -> CashFlowType:
    d = (description or "").lower()
    has_gain, has_loss = "gain" in d, "loss" in d
    if has_gain and not has_loss:
        return "FX_TRANSLATION_GAIN"
    if has_loss and not has_gain:
        return "FX_TRANSLATION_LOSS"
    # "FX Translation Gain/Loss" or no keyword at all: the sign decides.
    if has_gain or "fx" in d or "translation" in d:
        if amount > 0:
            return "FX_TRANSLATION_GAIN"
        if amount < 0:
            return "FX_TRANSLATION_LOSS"
    return "TRADE_SETTLEMENT"


def resolve_exchange_rate(currency: str, rates: dict[str, float], base_currency: str = "USD") -> Optional[float]:
    c = (currency or "").strip().upper()
    if c in ("USD", base_currency.upper()):
        return 1.0
    return rates.get(c)


def _base_amount(flow: IbkrCashFlow, rate: Optional[float]) -> float:
    if flow.amount_base is not None:
        return flow.amount_base
    if rate is not None:
        return flow.amount * rate
    return 0.0


def classify_cash_flow(
    flow: IbkrCashFlow, rates: dict[str, float], base_currency: str = "USD"
) -> ClassifiedCashFlow:
    notes: list[str] = []
    flow_type = flow.flow_type
    if flow_type in FX_FLOW_TYPES:
        resolved = classify_fx_translation(flow.description, flow.amount)
        if resolved != flow_type:
            notes.append(f"Reclassified from {flow_label(flow_type)} to {flow_label(resolved)}")
        flow_type = resolved

    rate = resolve_exchange_rate(flow.currency, rates, base_currency)
    if rate is None:
        notes.append(f"Missing exchange rate for {flow.currency}")

    base_amount = _base_amount(flow, rate)
    is_fx = flow_type in FX_FLOW_TYPES
    if abs(base_amount) < CURRENCY_TOLERANCE and not is_fx:
        notes.append(f"Small amount {base_amount:.4f} {base_currency}; likely a rounding artifact")

    is_base = flow.currency in ("USD", base_currency.upper())
    return ClassifiedCashFlow(
        original=flow,
        flow_type=flow_type,
        base_amount=base_amount,
        foreign_amount=None if is_base else flow.amount,
        exchange_rate=rate,
        notes=tuple(notes),
    )


def classify_cash_flows(
    flows: Iterable[IbkrCashFlow], rates: dict[str, float], base_currency: str = "USD"
) -> CashFlowClassification:
    """
    Resolve flow kinds, attach exchange rates and sum the cash report.

    Rows are never dropped: missing rates and odd amounts only add notes, and every
    note is surfaced as a warning prefixed with the row's currency and description.
    """
    base_key = base_currency.upper()
    classified: list[ClassifiedCashFlow] = []
    breakdown: dict[str, float] = {}
    warnings: list[str] = []

    for flow in flows:
        c = classify_cash_flow(flow, rates, base_currency)
        classified.append(c)
        if c.foreign_amount is not None:
            breakdown[c.currency] = breakdown.get(c.currency, 0.0) + c.foreign_amount
        else:
            breakdown[base_key] = breakdown.get(base_key, 0.0) + c.base_amount
        for note in c.notes:
            warnings.append(f"{c.currency} {flow.description}: {note}")

    total = sum(c.base_amount for c in classified)
    net_fx = sum(c.base_amount for c in classified if c.is_fx)
    if abs(net_fx) > CURRENCY_TOLERANCE:
        # Currency fluctuation is expected; informational only.
        warnings.append(f"Net FX translation impact: {net_fx:.2f} {base_key}")

    log.debug("Classified %d cash flows; total %.2f %s", len(classified), total, base_key)
    return CashFlowClassification(flows=classified, total_base_flow=total, breakdown=breakdown, warnings=warnings)


def movement_net(
    movements: Iterable[IbkrCashMovement], rates: dict[str, float], base_currency: str = "USD"
) -> float:
    """Net external cash in base currency from the Deposits & Withdrawals feed.

    Deposits count positive, withdrawals negative; rows without a rate are left out.
    """
    net = 0.0
    for m in movements:
        rate = resolve_exchange_rate(m.currency, rates, base_currency)
        if rate is None:
            continue
        if m.movement_type == "DEPOSIT":
            net += abs(m.amount) * rate
        elif m.movement_type == "WITHDRAWAL":
            net -= abs(m.amount) * rate
    return net


def reconcile_cash_flows(
    flows: Iterable[IbkrCashFlow],
    movements: Iterable[IbkrCashMovement],
    rates: dict[str, float],
    base_currency: str = "USD",
) -> list[str]:
    """Compare the movement feed against the cash report; differences are reported, never corrected."""
    flows = list(flows)
    movements = list(movements)
    classification = classify_cash_flows(flows, rates, base_currency)
    warnings: list[str] = []

    expected = movement_net(movements, rates, base_currency)
    reported = sum(
        c.base_amount for c in classification.flows if c.flow_type in ("DEPOSIT", "WITHDRAWAL")
    )
    if not is_close(expected, reported):
        warnings.append(
            f"Deposit/withdrawal mismatch: movements net {expected:.2f}, cash report {reported:.2f} "
            f"(difference {expected - reported:.2f})"
        )

    missing = sorted(
        {
            c.upper()
            for c in [f.currency for f in flows] + [m.currency for m in movements]
            if resolve_exchange_rate(c, rates, base_currency) is None
        }
    )
    for c in missing:
        warnings.append(f"Missing exchange rate for currency: {c}")
    return warnings


def analyze_fx_translation_impact(classification: CashFlowClassification) -> tuple[dict[str, float], float]:
    by_currency: dict[str, float] = {}
    for c in classification.flows:
        if c.is_fx:
            by_currency[c.currency] = by_currency.get(c.currency, 0.0) + c.base_amount
    return by_currency, sum(by_currency.values())


def validate_cash_flow_integrity(flows: Iterable[IbkrCashFlow]) -> list[str]:
    issues: list[str] = []
    for f in flows:
        base = f.amount_base
        if f.amount == 0:
            if not base:
                issues.append(f"Zero amount cash flow: {f.description}")
            continue
        if not base:
            issues.append(f"Missing base currency amount for {f.currency} {f.description}")
            continue
        ratio = abs(base / f.amount)
        if ratio < MIN_PLAUSIBLE_FX_RATIO or ratio > MAX_PLAUSIBLE_FX_RATIO:
            issues.append(f"Unusual FX ratio {ratio:.4f} for {f.currency} {f.description}")
    return issues
