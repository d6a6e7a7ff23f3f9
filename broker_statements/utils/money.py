from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

CURRENCY_TOLERANCE = 0.01
STRIKE_TOLERANCE = 0.001
FX_RATE_TOLERANCE = 0.0001


def _to_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    s = str(value).strip()
    if not s or s == "--":
        return None
    s = s.replace(",", "").replace("$", "")
    # Accounting style negatives: (1,234.56)
    if s.startswith("(") and s.endswith(")"):
        s = "-" + s[1:-1]
    try:
        return Decimal(s)
    except InvalidOperation:
        return None


def parse_amount(value: Any) -> float | None:
    d = _to_decimal(value)
    # NaN and Infinity are not amounts.
    if d is None or not d.is_finite():
        return None
    return float(d)


def is_close(a: float, b: float, tolerance: float = CURRENCY_TOLERANCE) -> bool:
    return abs(a - b) <= tolerance

