from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from broker_statements.core.errors import PrivacyViolationError
from broker_statements.importers.schemas import IbkrStatement, SectionKind

REDACTED = "[REDACTED FOR PRIVACY]"

# Sections that identify the account holder. Only their names may be surfaced.
PRIVACY_SECTIONS = frozenset(
    {
        "Account Information",
        "Account Info",
        "Statement Header",
        "Statement",
        "Notes",
        "Legal Notes",
        "Location of Customer Assets",
        "Custody Information",
        "Net Asset Value",
        "Account Summary",
        "Change in NAV",
    }
)

KNOWN_SECTIONS: dict[str, SectionKind] = {
    "Trades": "TRADES",
    "Deposits & Withdrawals": "DEPOSITS_WITHDRAWALS",
    "Open Positions": "OPEN_POSITIONS",
    "Financial Instrument Information": "FINANCIAL_INSTRUMENTS",
    "Cash Report": "CASH_REPORT",
    "Base Currency Exchange Rate": "EXCHANGE_RATES",
    "Forex Balances": "FOREX_BALANCES",
    "Collateral for Customer Borrowing": "COLLATERAL_BORROWING",
}

# IBKR account ids (U1234567, DU1234567), any "#" reference, or the word "Account".
_ACCOUNT_TOKEN_RE = re.compile(r"\b(?:DU|U|F|I)\d{5,9}\b|#|\baccount\b", re.IGNORECASE)


@dataclass(frozen=True)
class SectionClassification:
    name: str
    kind: Optional[SectionKind] = None
    skip_reason: Optional[str] = None
    is_privacy: bool = False

    @property
    def should_process(self) -> bool:
        return self.kind is not None


def classify_section(header: str) -> SectionClassification:
    name = (header or "").strip()
    if name in PRIVACY_SECTIONS:
        return SectionClassification(name=name, skip_reason=f"Privacy: {name}", is_privacy=True)
    kind = KNOWN_SECTIONS.get(name)
    if kind is not None:
        return SectionClassification(name=name, kind=kind)
    return SectionClassification(name=name, skip_reason=f"Unknown: {name}")


def should_process_section(header: str) -> bool:
    return classify_section(header).should_process


def skip_reason(header: str) -> Optional[str]:
    return classify_section(header).skip_reason


def sanitize_line_for_logging(line: str, section: SectionClassification | None = None) -> str:
    """Return a loggable version of a statement line; privacy sections are redacted."""
    if section is None:
        fields = (line or "").split(",", 1)
        section = classify_section(fields[0].strip('"'))
    if section.is_privacy:
        return REDACTED
    return line


def contains_account_token(text: str | None) -> bool:
    if not text:
        return False
    return _ACCOUNT_TOKEN_RE.search(text) is not None


def validate_privacy_compliance(statement: IbkrStatement) -> list[str]:
    """
    Re-scan parsed output for account-identifying text.

    Messages name the offending field (and instrument symbol) but never echo the text.
    """
    errors: list[str] = []
    if contains_account_token(statement.broker_name):
        errors.append("Privacy violation: broker name contains account-identifying text")
    for inst in statement.instruments:
        if contains_account_token(inst.description):
            errors.append(f"Privacy violation: instrument description for {inst.symbol} contains account-identifying text")
    return errors


def ensure_privacy_compliance(statement: IbkrStatement) -> None:
    errors = validate_privacy_compliance(statement)
    if errors:
        raise PrivacyViolationError(errors)
