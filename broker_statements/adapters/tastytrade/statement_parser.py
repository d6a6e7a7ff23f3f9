from __future__ import annotations

import csv
import io
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from broker_statements.importers.schemas import (
    TastytradeParseError,
    TastytradeParseResult,
    TastytradeTransaction,
    TransactionKind,
)
from broker_statements.utils.money import parse_amount
from broker_statements.utils.time import parse_datetime, parse_expiration_date

log = logging.getLogger(__name__)

EXPECTED_HEADERS = [
    "Date",
    "Type",
    "Sub Type",
    "Action",
    "Symbol",
    "Instrument Type",
    "Description",
    "Value",
    "Quantity",
    "Average Price",
    "Commissions",
    "Fees",
    "Multiplier",
    "Root Symbol",
    "Underlying Symbol",
    "Expiration Date",
    "Strike Price",
    "Call or Put",
    "Order #",
    "Currency",
]

_TRADE_SUB_TYPES = {
    "buy to open": "BUY_TO_OPEN",
    "sell to open": "SELL_TO_OPEN",
    "buy to close": "BUY_TO_CLOSE",
    "sell to close": "SELL_TO_CLOSE",
}

_MONEY_MOVEMENT_SUB_TYPES = {
    "deposit": "DEPOSIT",
    "withdrawal": "WITHDRAWAL",
    "balance adjustment": "BALANCE_ADJUSTMENT",
    "credit interest": "CREDIT_INTEREST",
    "debit interest": "DEBIT_INTEREST",
    "transfer": "TRANSFER",
    "fully paid stock lending income": "LENDING",
    "lending": "LENDING",
    "dividend": "DIVIDEND",
}


class _LineError(ValueError):
    def __init__(self, error_type: str, message: str) -> None:
        super().__init__(message)
        self.error_type = error_type


def _text(fields: list[str], idx: int) -> Optional[str]:
    s = fields[idx].strip() if idx < len(fields) else ""
    return s or None


def _number(fields: list[str], idx: int, *, optional: bool = False) -> Optional[float]:
    raw = _text(fields, idx)
    if raw is None or raw == "--":
        return None if optional else 0.0
    v = parse_amount(raw)
    if v is None:
        raise _LineError("INVALID_NUMBER", f"Invalid decimal value: {raw!r}")
    return v


def parse_transaction_type(type_col: str, sub_type_col: str) -> tuple[TransactionKind, str]:
    kind = type_col.strip().lower()
    sub = sub_type_col.strip()
    if kind == "trade" and sub.lower() in _TRADE_SUB_TYPES:
        return "TRADE", _TRADE_SUB_TYPES[sub.lower()]
    if kind == "money movement" and sub.lower() in _MONEY_MOVEMENT_SUB_TYPES:
        return "MONEY_MOVEMENT", _MONEY_MOVEMENT_SUB_TYPES[sub.lower()]
    if kind == "receive deliver":
        return "RECEIVE_DELIVER", sub
    raise _LineError("INVALID_TRANSACTION_TYPE", f"Unsupported transaction type: {type_col} / {sub_type_col}")


def validate_headers(headers: list[str]) -> Optional[str]:
    normalized = [h.strip() for h in headers]
    if len(normalized) != len(EXPECTED_HEADERS):
        return f"Expected {len(EXPECTED_HEADERS)} columns, found {len(normalized)}"
    mismatches = [
        f"Column {i}: expected '{expected}', found '{actual}'"
        for i, (actual, expected) in enumerate(zip(normalized, EXPECTED_HEADERS))
        if actual.lower() != expected.lower()
    ]
    if mismatches:
        return "Header mismatches: " + "; ".join(mismatches)
    return None


def _parse_line(fields: list[str], line_number: int, raw_line: str) -> TastytradeTransaction:
    if len(fields) < len(EXPECTED_HEADERS):
        raise _LineError("MISSING_FIELD", f"Expected {len(EXPECTED_HEADERS)} fields, found {len(fields)}")
    timestamp = parse_datetime(fields[0])
    if timestamp is None:
        raise _LineError("INVALID_DATE", f"Invalid date format: {fields[0]!r}")
    kind, sub_type = parse_transaction_type(fields[1], fields[2])
    expiration_raw = _text(fields, 15)
    expiration = parse_expiration_date(expiration_raw)
    if expiration_raw and expiration is None:
        raise _LineError("INVALID_DATE", f"Invalid expiration date format: {expiration_raw!r}")
    return TastytradeTransaction(
        timestamp=timestamp,
        kind=kind,
        sub_type=sub_type,
        action=_text(fields, 3),
        symbol=_text(fields, 4),
        instrument_type=_text(fields, 5),
        description=_text(fields, 6) or "",
        value=_number(fields, 7),
        quantity=_number(fields, 8),
        average_price=_number(fields, 9, optional=True),
        commissions=_number(fields, 10),
        fees=_number(fields, 11),
        multiplier=_number(fields, 12, optional=True),
        root_symbol=_text(fields, 13),
        underlying_symbol=_text(fields, 14),
        expiration=expiration,
        strike=_number(fields, 16, optional=True),
        call_or_put=_text(fields, 17),
        order_number=_text(fields, 18),
        currency=_text(fields, 19),
        raw_line=raw_line,
        line_number=line_number,
    )


def parse_transaction_history(content: str) -> TastytradeParseResult:
    """
    Parse a Tastytrade transaction history CSV.

    Line numbers are 1-based file lines, header and blank lines included. Bad lines
    become errors; the rest of the file is still read.
    """
    raw_lines = (content or "").splitlines()
    header_index = next((i for i, ln in enumerate(raw_lines) if ln.strip()), None)
    if header_index is None:
        return TastytradeParseResult()

    header_line = raw_lines[header_index]
    header_error = validate_headers(next(csv.reader([header_line])))
    if header_error:
        return TastytradeParseResult(
            errors=[
                TastytradeParseError(
                    line_number=header_index + 1, message=header_error, raw_line=header_line, error_type="MISSING_FIELD"
                )
            ],
            skipped_lines=sum(1 for ln in raw_lines if ln.strip()),
        )

    result = TastytradeParseResult()
    for idx in range(header_index + 1, len(raw_lines)):
        raw = raw_lines[idx]
        if not raw.strip():
            result.skipped_lines += 1
            continue
        line_number = idx + 1
        fields = next(csv.reader(io.StringIO(raw)))
        try:
            result.transactions.append(_parse_line(fields, line_number, raw))
            result.processed_lines += 1
        except _LineError as e:
            result.errors.append(
                TastytradeParseError(line_number=line_number, message=str(e), raw_line=raw, error_type=e.error_type)
            )
        except ValidationError as e:
            result.errors.append(
                TastytradeParseError(line_number=line_number, message=str(e), raw_line=raw, error_type="INVALID_NUMBER")
            )

    log.info(
        "Parsed Tastytrade history: %d transactions, %d errors", len(result.transactions), len(result.errors)
    )
    return result


def parse_transaction_file(path: Path) -> TastytradeParseResult:
    return parse_transaction_history(path.read_text(encoding="utf-8-sig"))
