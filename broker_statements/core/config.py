from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional

import yaml

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./data/broker_statements.db"


@dataclass(frozen=True)
class ImportSettings:
    base_currency: str = "USD"
    default_currency: str = "USD"
    database_url: str = DEFAULT_DATABASE_URL
    log_level: str = "INFO"
    source_path: Optional[str] = None


def _candidate_paths() -> list[Path]:
    paths = [Path("broker_statements.yaml")]
    home = Path(os.path.expanduser("~"))
    paths.append(home / ".broker_statements" / "config.yaml")
    return paths


def _currency(value: Any, fallback: str) -> str:
    s = str(value or "").strip().upper()
    return s or fallback


def _from_mapping(data: dict[str, Any], source_path: Optional[str]) -> ImportSettings:
    imports = data.get("imports") if isinstance(data.get("imports"), dict) else {}
    base = _currency(imports.get("base_currency") or data.get("base_currency"), "USD")
    return ImportSettings(
        base_currency=base,
        default_currency=_currency(imports.get("default_currency"), base),
        database_url=str(data.get("database_url") or DEFAULT_DATABASE_URL).strip(),
        log_level=str(data.get("log_level") or "INFO").strip().upper(),
        source_path=source_path,
    )


def _apply_env(settings: ImportSettings) -> ImportSettings:
    overrides: dict[str, Any] = {}
    if os.environ.get("BROKER_STATEMENTS_BASE_CURRENCY"):
        overrides["base_currency"] = _currency(os.environ["BROKER_STATEMENTS_BASE_CURRENCY"], settings.base_currency)
    if os.environ.get("DATABASE_URL"):
        overrides["database_url"] = os.environ["DATABASE_URL"].strip()
    if os.environ.get("BROKER_STATEMENTS_LOG_LEVEL"):
        overrides["log_level"] = os.environ["BROKER_STATEMENTS_LOG_LEVEL"].strip().upper()
    return replace(settings, **overrides) if overrides else settings


def load_settings(path: Optional[Path] = None) -> ImportSettings:
    """
    Load import settings from YAML, then apply environment overrides.

    Lookup order when no explicit path is given:
      - ./broker_statements.yaml
      - ~/.broker_statements/config.yaml
    Missing files fall back to defaults (USD base currency, local SQLite directory).
    """
    candidates = [path] if path is not None else _candidate_paths()
    for p in candidates:
        if p.exists():
            data = yaml.safe_load(p.read_text()) or {}
            if not isinstance(data, dict):
                data = {}
            return _apply_env(_from_mapping(data, str(p)))
    return _apply_env(ImportSettings())
