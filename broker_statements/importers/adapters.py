from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from broker_statements.adapters.ibkr.cash_flows import (
    analyze_fx_translation_impact,
    classify_cash_flows,
    reconcile_cash_flows,
    validate_cash_flow_integrity,
)
from broker_statements.adapters.ibkr.converter import IbkrConverter
from broker_statements.adapters.ibkr.forex import extract_supported_pairs, process_forex_trades, validate_forex_integrity
from broker_statements.adapters.ibkr.sections import ensure_privacy_compliance
from broker_statements.adapters.ibkr.statement_parser import IbkrStatementParser
from broker_statements.adapters.tastytrade.adjustment_validation import validate_and_filter_adjustments
from broker_statements.adapters.tastytrade.adjustments import detect_adjustments
from broker_statements.adapters.tastytrade.converter import TastytradeConverter
from broker_statements.adapters.tastytrade.statement_parser import parse_transaction_history
from broker_statements.adapters.tastytrade.strategies import detect_strategies, strategy_summary, validate_strategy
from broker_statements.core.errors import StatementParseError
from broker_statements.importers.directory import CurrencyTickerDirectory
from broker_statements.importers.domain import ConversionBatch
from broker_statements.importers.schemas import IbkrStatement, TastytradeParseResult

log = logging.getLogger(__name__)


class StatementAdapter(ABC):
    """One broker's statement format: read it, then convert it into a ConversionBatch."""

    name: str = ""

    def __init__(self, base_currency: str = "USD", default_currency: Optional[str] = None) -> None:
        self.base_currency = base_currency.upper()
        self.default_currency = (default_currency or self.base_currency).upper()

    @abstractmethod
    def parse(self, content: str) -> Any:
        """Read statement text; raise StatementParseError when nothing usable can be read."""
        raise NotImplementedError

    @abstractmethod
    async def convert(
        self,
        parsed: Any,
        directory: CurrencyTickerDirectory,
        account_id: int,
        session_id: Optional[int] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> ConversionBatch:
        raise NotImplementedError


class IbkrStatementAdapter(StatementAdapter):
    name = "IBKR"

    def parse(self, content: str) -> IbkrStatement:
        result = IbkrStatementParser(self.base_currency).parse(content)
        if not result.success or result.data is None:
            raise StatementParseError("IBKR statement could not be parsed", result.errors)
        return result.data

    def diagnostics(self, statement: IbkrStatement) -> list[str]:
        rates = statement.rate_table()
        classification = classify_cash_flows(statement.cash_flows, rates, self.base_currency)
        forex = process_forex_trades(statement.forex_trades)
        warnings: list[str] = []
        warnings.extend(classification.warnings)
        warnings.extend(reconcile_cash_flows(statement.cash_flows, statement.cash_movements, rates, self.base_currency))
        warnings.extend(validate_cash_flow_integrity(statement.cash_flows))
        warnings.extend(forex.warnings)
        warnings.extend(validate_forex_integrity(statement.forex_trades))

        fx_by_currency, fx_total = analyze_fx_translation_impact(classification)
        log.info(
            "Cash report: total %.2f %s, by type %s; FX translation %.2f (%s)",
            classification.total_base_flow,
            self.base_currency,
            classification.totals_by_type(),
            fx_total,
            fx_by_currency,
        )
        if statement.forex_trades:
            log.info("Forex: %d trades across %s", len(forex.trades), extract_supported_pairs(statement.forex_trades))
        return warnings

    async def convert(
        self,
        parsed: IbkrStatement,
        directory: CurrencyTickerDirectory,
        account_id: int,
        session_id: Optional[int] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> ConversionBatch:
        ensure_privacy_compliance(parsed)
        diagnostics = self.diagnostics(parsed)
        batch = await IbkrConverter(directory).convert(parsed, account_id, session_id, cancel)
        batch.warnings[:0] = diagnostics
        return batch


class TastytradeStatementAdapter(StatementAdapter):
    name = "TASTYTRADE"

    def parse(self, content: str) -> TastytradeParseResult:
        result = parse_transaction_history(content)
        if result.errors and not result.transactions:
            raise StatementParseError(
                "Tastytrade history could not be parsed",
                [f"line {e.line_number}: {e.message}" for e in result.errors],
            )
        for e in result.errors:
            log.warning("Tastytrade line %d skipped: %s", e.line_number, e.message)
        return result

    async def convert(
        self,
        parsed: TastytradeParseResult,
        directory: CurrencyTickerDirectory,
        account_id: int,
        session_id: Optional[int] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> ConversionBatch:
        transactions = parsed.transactions
        warnings: list[str] = []
        groups = detect_strategies(transactions)
        for g in groups:
            warnings.extend(validate_strategy(g))
        log.info("Order groups by strategy: %s", strategy_summary(groups))

        adjustments = validate_and_filter_adjustments(detect_adjustments(transactions), warnings)
        converter = TastytradeConverter(directory, self.default_currency)
        batch = await converter.convert(transactions, account_id, session_id, adjustments, cancel)
        batch.errors[:0] = [f"Line {e.line_number}: {e.message}" for e in parsed.errors]
        batch.warnings[:0] = warnings
        return batch


ADAPTERS: dict[str, type[StatementAdapter]] = {
    IbkrStatementAdapter.name: IbkrStatementAdapter,
    TastytradeStatementAdapter.name: TastytradeStatementAdapter,
}


def get_adapter(broker: str, base_currency: str = "USD", default_currency: Optional[str] = None) -> StatementAdapter:
    key = broker.strip().upper()
    if key not in ADAPTERS:
        raise ValueError(f"Unsupported broker: {broker!r}. Expected one of {sorted(ADAPTERS)}")
    return ADAPTERS[key](base_currency, default_currency)
