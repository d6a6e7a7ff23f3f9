from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from broker_statements.core.config import ImportSettings, load_settings
from broker_statements.core.errors import ConversionCancelled, StatementImportError
from broker_statements.importers.adapters import get_adapter
from broker_statements.importers.directory import CurrencyTickerDirectory
from broker_statements.importers.domain import ConversionBatch

log = logging.getLogger(__name__)


@dataclass
class FileImportResult:
    path: Path
    success: bool
    batch: Optional[ConversionBatch] = None
    error: Optional[str] = None
    details: list[str] = field(default_factory=list)

    def summary(self) -> dict[str, object]:
        return {
            "path": str(self.path),
            "success": self.success,
            "records": self.batch.record_count if self.batch is not None else 0,
            "error": self.error,
        }


@dataclass
class MultiFileImport:
    """Per-file outcomes plus one batch holding every successfully converted record."""

    files: list[FileImportResult]
    batch: ConversionBatch

    @property
    def failed(self) -> list[FileImportResult]:
        return [f for f in self.files if not f.success]

    def summary(self) -> dict[str, object]:
        out = self.batch.summary()
        out["files"] = [f.summary() for f in self.files]
        return out


async def import_statement(
    broker: str,
    content: str,
    directory: CurrencyTickerDirectory,
    account_id: int,
    session_id: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
    settings: Optional[ImportSettings] = None,
) -> ConversionBatch:
    """
    Parse, classify and convert one statement.

    Unreadable statements and privacy violations raise before anything is converted;
    per-record problems end up in `batch.errors`, data-quality findings in `batch.warnings`.
    """
    settings = settings or load_settings()
    adapter = get_adapter(broker, settings.base_currency, settings.default_currency)
    parsed = adapter.parse(content)
    batch = await adapter.convert(parsed, directory, account_id, session_id, cancel)
    log.info(
        "%s import (session %s): %d records, %d errors, %d warnings",
        adapter.name,
        session_id,
        batch.record_count,
        len(batch.errors),
        len(batch.warnings),
    )
    return batch


async def import_ibkr_statement(
    content: str,
    directory: CurrencyTickerDirectory,
    account_id: int,
    session_id: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
    settings: Optional[ImportSettings] = None,
) -> ConversionBatch:
    return await import_statement("IBKR", content, directory, account_id, session_id, cancel, settings)


async def import_tastytrade_statement(
    content: str,
    directory: CurrencyTickerDirectory,
    account_id: int,
    session_id: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
    settings: Optional[ImportSettings] = None,
) -> ConversionBatch:
    return await import_statement("TASTYTRADE", content, directory, account_id, session_id, cancel, settings)


async def import_file(
    broker: str,
    path: Path,
    directory: CurrencyTickerDirectory,
    account_id: int,
    session_id: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
    settings: Optional[ImportSettings] = None,
) -> ConversionBatch:
    content = path.read_text(encoding="utf-8-sig")
    return await import_statement(broker, content, directory, account_id, session_id, cancel, settings)


def _merge(into: ConversionBatch, batch: ConversionBatch, label: str) -> None:
    into.movements.extend(batch.movements)
    into.stock_trades.extend(batch.stock_trades)
    into.option_trades.extend(batch.option_trades)
    into.dividends.extend(batch.dividends)
    into.dividend_taxes.extend(batch.dividend_taxes)
    into.errors.extend(f"{label}: {e}" for e in batch.errors)
    into.warnings.extend(f"{label}: {w}" for w in batch.warnings)


async def import_files(
    broker: str,
    paths: Iterable[Path],
    directory: CurrencyTickerDirectory,
    account_id: int,
    session_id: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
    settings: Optional[ImportSettings] = None,
) -> MultiFileImport:
    """
    Import several statement files of one broker into a single merged batch.

    Files are imported in the given order with the same directory. A missing,
    unreadable or unparseable file is recorded as failed and the remaining files
    are still imported. Cancellation stops the whole run.
    """
    settings = settings or load_settings()
    merged = ConversionBatch(session_id=session_id)
    results: list[FileImportResult] = []

    for path in paths:
        path = Path(path)
        if not path.is_file():
            log.warning("Statement file not found: %s", path)
            results.append(FileImportResult(path=path, success=False, error=f"File not found: {path}"))
            merged.errors.append(f"{path.name}: File not found")
            continue
        try:
            batch = await import_file(broker, path, directory, account_id, session_id, cancel, settings)
        except ConversionCancelled:
            raise
        except StatementImportError as e:
            details = list(getattr(e, "errors", None) or getattr(e, "violations", None) or [])
            log.warning("Import of %s failed: %s", path, e)
            results.append(FileImportResult(path=path, success=False, error=str(e), details=details))
            merged.errors.append(f"{path.name}: {e}")
            continue
        except (OSError, UnicodeDecodeError) as e:
            log.warning("Could not read %s: %s", path, e)
            results.append(FileImportResult(path=path, success=False, error=f"Could not read file: {e}"))
            merged.errors.append(f"{path.name}: Could not read file")
            continue
        results.append(FileImportResult(path=path, success=True, batch=batch))
        _merge(merged, batch, path.name)

    log.info(
        "%s multi-file import: %d of %d files imported, %d records",
        broker,
        sum(1 for r in results if r.success),
        len(results),
        merged.record_count,
    )
    return MultiFileImport(files=results, batch=merged)
