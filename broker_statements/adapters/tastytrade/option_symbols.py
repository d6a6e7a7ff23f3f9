from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass
from typing import Iterable, Literal

# OCC-style symbol as exported by Tastytrade: "AAPL  240621C00190000"
_OPTION_SYMBOL_RE = re.compile(r"^([A-Z]+)\s+(\d{6})([CP])(\d{8})$")


class OptionSymbolError(ValueError):
    pass


@dataclass(frozen=True)
class ParsedOptionSymbol:
    ticker: str
    expiration: dt.date
    option_type: Literal["CALL", "PUT"]
    strike: float
    original: str


def parse_option_symbol(symbol: str) -> ParsedOptionSymbol:
    s = (symbol or "").strip()
    m = _OPTION_SYMBOL_RE.match(s)
    if not m:
        raise OptionSymbolError(f"Invalid option symbol format: {symbol!r}")
    ticker, yymmdd, right, strike_raw = m.groups()
    try:
        expiration = dt.date(2000 + int(yymmdd[:2]), int(yymmdd[2:4]), int(yymmdd[4:6]))
    except ValueError as e:
        raise OptionSymbolError(f"Invalid expiration in option symbol {symbol!r}: {e}") from e
    return ParsedOptionSymbol(
        ticker=ticker,
        expiration=expiration,
        option_type="CALL" if right == "C" else "PUT",
        strike=int(strike_raw) / 1000.0,
        original=s,
    )


def is_valid_option_symbol(symbol: str) -> bool:
    try:
        parse_option_symbol(symbol)
    except OptionSymbolError:
        return False
    return True


def extract_ticker(symbol: str) -> str | None:
    try:
        return parse_option_symbol(symbol).ticker
    except OptionSymbolError:
        return None


def parse_option_symbols(symbols: Iterable[str]) -> tuple[list[ParsedOptionSymbol], list[str]]:
    parsed: list[ParsedOptionSymbol] = []
    errors: list[str] = []
    for s in symbols:
        try:
            parsed.append(parse_option_symbol(s))
        except OptionSymbolError as e:
            errors.append(str(e))
    return parsed, errors


def format_option_symbol(ticker: str, expiration: dt.date, option_type: str, strike: float) -> str:
    right = "C" if option_type.upper().startswith("C") else "P"
    return f"{ticker.upper()}  {expiration:%y%m%d}{right}{int(round(strike * 1000)):08d}"
