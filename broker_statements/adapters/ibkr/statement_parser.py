from __future__ import annotations

import csv
import io
import logging
from pathlib import Path
from typing import Callable, Optional

from pydantic import ValidationError

from broker_statements.adapters.ibkr.sections import (
    SectionClassification,
    classify_section,
    sanitize_line_for_logging,
    validate_privacy_compliance,
)
from broker_statements.importers.schemas import (
    CashFlowType,
    IbkrCashFlow,
    IbkrCashMovement,
    IbkrExchangeRate,
    IbkrForexBalance,
    IbkrForexTrade,
    IbkrInstrument,
    IbkrOpenPosition,
    IbkrParseResult,
    IbkrStatement,
    IbkrTrade,
)
from broker_statements.utils.money import parse_amount
from broker_statements.utils.time import parse_statement_datetime, utcnow

log = logging.getLogger(__name__)


class _RowError(ValueError):
    pass


def _field(fields: list[str], idx: int) -> str:
    return fields[idx].strip() if idx < len(fields) else ""


def _amount(fields: list[str], idx: int, *, required: bool = True) -> Optional[float]:
    v = parse_amount(_field(fields, idx))
    if v is None and required:
        raise _RowError(f"column {idx} is not numeric")
    return v


def _when(fields: list[str], idx: int):
    d = parse_statement_datetime(_field(fields, idx))
    if d is None:
        raise _RowError(f"column {idx} is not a date")
    return d


def _movement_type(description: str) -> CashFlowType:
    if "Electronic Fund Transfer" in description or "Deposit" in description:
        return "DEPOSIT"
    if "Withdrawal" in description:
        return "WITHDRAWAL"
    if "Commission" in description:
        return "COMMISSION"
    return "TRADE_SETTLEMENT"


def _cash_report_type(description: str) -> CashFlowType:
    if "FX Translation Gain" in description:
        return "FX_TRANSLATION_GAIN"
    if "FX Translation Loss" in description:
        return "FX_TRANSLATION_LOSS"
    if "Deposit" in description:
        return "DEPOSIT"
    if "Withdrawal" in description:
        return "WITHDRAWAL"
    if "Commission" in description:
        return "COMMISSION"
    if "Interest" in description:
        return "INTEREST"
    if "Fee" in description:
        return "FEE"
    return "TRADE_SETTLEMENT"


class IbkrStatementParser:
    """
    Reader for IBKR "Activity Statement" CSV exports.

    Every line is `Section,Header|Data,...`; a Header line opens a section. Sections
    are classified first and privacy sections are dropped before any row is read,
    so their content never reaches records, errors or logs.
    """

    def __init__(self, base_currency: str = "USD") -> None:
        self.base_currency = base_currency.upper()

    def _trade(self, f: list[str], acc: dict[str, list]) -> None:
        category = _field(f, 2)
        if category == "Forex":
            acc["forex_trades"].append(
                IbkrForexTrade(
                    currency_pair=_field(f, 4),
                    timestamp=_when(f, 5),
                    quantity=_amount(f, 6),
                    trade_price=_amount(f, 7, required=False) or 0.0,
                    proceeds=_amount(f, 8),
                    commission=_amount(f, 9, required=False) or 0.0,
                    code=_field(f, 10),
                )
            )
            return
        acc["trades"].append(
            IbkrTrade(
                asset_category=category,
                currency=_field(f, 3),
                symbol=_field(f, 4),
                timestamp=_when(f, 5),
                quantity=_amount(f, 6),
                trade_price=_amount(f, 7, required=False),
                proceeds=_amount(f, 8),
                commission=_amount(f, 9, required=False) or 0.0,
                basis=_amount(f, 10, required=False),
                realized_pnl=_amount(f, 11, required=False),
                realized_pnl_percent=_amount(f, 12, required=False),
                mtm_pnl=_amount(f, 13, required=False),
                code=_field(f, 14),
            )
        )

    def _movement(self, f: list[str], acc: dict[str, list]) -> None:
        if _field(f, 2).startswith("Total"):
            return
        description = _field(f, 4)
        acc["cash_movements"].append(
            IbkrCashMovement(
                currency=_field(f, 2),
                settle_date=_when(f, 3).date(),
                description=description,
                amount=_amount(f, 5),
                movement_type=_movement_type(description),
            )
        )

    def _cash_flow(self, f: list[str], acc: dict[str, list]) -> None:
        description = _field(f, 2)
        currency = _field(f, 3).upper()
        if len(currency) != 3 or not currency.isalpha():
            currency = self.base_currency
        acc["cash_flows"].append(
            IbkrCashFlow(
                flow_type=_cash_report_type(description),
                currency=currency,
                amount=_amount(f, 4),
                amount_base=_amount(f, 5, required=False),
                description=description,
            )
        )

    def _open_position(self, f: list[str], acc: dict[str, list]) -> None:
        acc["open_positions"].append(
            IbkrOpenPosition(
                asset_category=_field(f, 2),
                currency=_field(f, 3),
                symbol=_field(f, 4),
                quantity=_amount(f, 5),
                multiplier=_amount(f, 6, required=False) or 1.0,
                cost_basis_price=_amount(f, 7),
                cost_basis_money=_amount(f, 8),
                close_price=_amount(f, 9),
                value=_amount(f, 10),
                unrealized_pnl=_amount(f, 11),
                unrealized_pnl_percent=_amount(f, 12, required=False) or 0.0,
            )
        )

    def _instrument(self, f: list[str], acc: dict[str, list]) -> None:
        acc["instruments"].append(
            IbkrInstrument(
                asset_category=_field(f, 2),
                symbol=_field(f, 3),
                description=_field(f, 4),
                con_id=_field(f, 5),
                security_id=_field(f, 6),
                listing_exchange=_field(f, 7),
                multiplier=_amount(f, 8, required=False),
                instrument_type=_field(f, 9),
                code=_field(f, 10),
            )
        )

    def _exchange_rate(self, f: list[str], acc: dict[str, list]) -> None:
        acc["exchange_rates"].append(IbkrExchangeRate(currency=_field(f, 2), rate=_amount(f, 3)))

    def _forex_balance(self, f: list[str], acc: dict[str, list]) -> None:
        acc["forex_balances"].append(
            IbkrForexBalance(
                asset_category=_field(f, 2),
                currency=_field(f, 3),
                description=_field(f, 4),
                quantity=_amount(f, 5),
                cost_price=_amount(f, 6),
                cost_basis_base=_amount(f, 7),
                close_price=_amount(f, 8),
                value_base=_amount(f, 9),
                unrealized_pnl_base=_amount(f, 10),
                code=_field(f, 11),
            )
        )

    def _row_handler(self, section: SectionClassification) -> Optional[Callable[[list[str], dict[str, list]], None]]:
        return {
            "TRADES": self._trade,
            "DEPOSITS_WITHDRAWALS": self._movement,
            "CASH_REPORT": self._cash_flow,
            "OPEN_POSITIONS": self._open_position,
            "FINANCIAL_INSTRUMENTS": self._instrument,
            "EXCHANGE_RATES": self._exchange_rate,
            "FOREX_BALANCES": self._forex_balance,
        }.get(section.kind or "")

    def parse(self, content: str) -> IbkrParseResult:
        acc: dict[str, list] = {
            "trades": [],
            "forex_trades": [],
            "cash_movements": [],
            "cash_flows": [],
            "open_positions": [],
            "instruments": [],
            "exchange_rates": [],
            "forex_balances": [],
        }
        errors: list[str] = []
        skipped: list[str] = []
        section: Optional[SectionClassification] = None

        for line_no, fields in enumerate(csv.reader(io.StringIO(content or "")), start=1):
            if len(fields) < 2 or not any(x.strip() for x in fields):
                continue
            name, row_kind = fields[0].strip(), fields[1].strip()
            if row_kind == "Header":
                if section is None or section.name != name:
                    section = classify_section(name)
                    if section.skip_reason and section.skip_reason not in skipped:
                        skipped.append(section.skip_reason)
                        log.debug("Skipping section: %s", section.skip_reason)
                continue
            if row_kind != "Data" or section is None or section.name != name or not section.should_process:
                continue
            handler = self._row_handler(section)
            if handler is None:
                continue
            try:
                handler(fields, acc)
            except (_RowError, ValidationError, ValueError) as e:
                # Row content stays out of the message; the section is not a privacy one.
                errors.append(f"{section.name} line {line_no}: {e}")
                log.debug("Rejected row: %s", sanitize_line_for_logging(",".join(fields), section))

        if section is None:
            return IbkrParseResult(success=False, errors=["No statement sections found"], skipped_sections=skipped)

        statement = IbkrStatement(statement_date=utcnow(), **acc)
        privacy_errors = validate_privacy_compliance(statement)
        errors.extend(privacy_errors)
        if errors:
            return IbkrParseResult(success=False, errors=errors, skipped_sections=skipped)
        log.info(
            "Parsed IBKR statement: %d trades, %d forex trades, %d movements, %d cash flows (%d sections skipped)",
            len(statement.trades),
            len(statement.forex_trades),
            len(statement.cash_movements),
            len(statement.cash_flows),
            len(skipped),
        )
        return IbkrParseResult(success=True, data=statement, skipped_sections=skipped)

    def parse_file(self, path: Path) -> IbkrParseResult:
        if not path.exists():
            return IbkrParseResult(success=False, errors=[f"File not found: {path}"])
        return self.parse(path.read_text(encoding="utf-8-sig"))
