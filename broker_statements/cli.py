from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv

app = typer.Typer(help="Broker statement import CLI")


def _setup(database_url: Optional[str]):
    load_dotenv()
    from broker_statements.core.config import load_settings

    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return settings, (database_url or settings.database_url)


async def _run_import(
    broker: str,
    paths: list[Path],
    account_id: int,
    session_id: Optional[int],
    database_url: str,
    dry_run: bool,
    settings,
):
    from broker_statements.core.pipeline import import_files
    from broker_statements.db.session import get_engine, get_session_factory, init_db
    from broker_statements.importers.directory import InMemoryDirectory, SqlDirectory

    if dry_run:
        return await import_files(broker, paths, InMemoryDirectory(), account_id, session_id, settings=settings)

    engine = get_engine(database_url)
    await init_db(engine)
    try:
        async with get_session_factory()() as session:
            return await import_files(broker, paths, SqlDirectory(session), account_id, session_id, settings=settings)
    finally:
        await engine.dispose()


def _import(
    broker: str,
    paths: list[Path],
    account_id: int,
    session_id: Optional[int],
    database_url: Optional[str],
    dry_run: bool,
):
    settings, url = _setup(database_url)
    from broker_statements.core.errors import StatementImportError

    try:
        result = asyncio.run(_run_import(broker, paths, account_id, session_id, url, dry_run, settings))
    except StatementImportError as e:
        typer.echo(f"Import failed: {e}", err=True)
        raise typer.Exit(code=2)
    typer.echo(json.dumps(result.summary(), indent=2))
    if result.failed:
        for f in result.failed:
            typer.echo(f"Import failed: {f.path}: {f.error}", err=True)
            for line in f.details:
                typer.echo(f"  {line}", err=True)
        raise typer.Exit(code=2)


@app.command("import-ibkr")
def import_ibkr_cmd(
    paths: list[Path] = typer.Argument(..., dir_okay=False, help="One or more activity statement CSV files"),
    account_id: int = typer.Option(1, help="Broker account id the records belong to"),
    session_id: Optional[int] = typer.Option(None, help="Import session id for resumable imports"),
    database_url: Optional[str] = typer.Option(None, help="Overrides DATABASE_URL / config file"),
    dry_run: bool = typer.Option(False, help="Resolve currencies/tickers in memory only"),
):
    _import("IBKR", paths, account_id, session_id, database_url, dry_run)


@app.command("import-tastytrade")
def import_tastytrade_cmd(
    paths: list[Path] = typer.Argument(..., dir_okay=False, help="One or more transaction history CSV files"),
    account_id: int = typer.Option(1, help="Broker account id the records belong to"),
    session_id: Optional[int] = typer.Option(None, help="Import session id for resumable imports"),
    database_url: Optional[str] = typer.Option(None, help="Overrides DATABASE_URL / config file"),
    dry_run: bool = typer.Option(False, help="Resolve currencies/tickers in memory only"),
):
    _import("TASTYTRADE", paths, account_id, session_id, database_url, dry_run)


@app.command("option-symbol")
def option_symbol_cmd(symbol: str = typer.Argument(..., help='e.g. "AAPL  240621C00190000"')):
    from broker_statements.adapters.tastytrade.option_symbols import OptionSymbolError, parse_option_symbol

    try:
        parsed = parse_option_symbol(symbol)
    except OptionSymbolError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=2)
    typer.echo(
        json.dumps(
            {
                "ticker": parsed.ticker,
                "expiration": parsed.expiration.isoformat(),
                "option_type": parsed.option_type,
                "strike": parsed.strike,
            },
            indent=2,
        )
    )


if __name__ == "__main__":
    app()
