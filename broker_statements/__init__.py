from __future__ import annotations

__all__ = [
    "ConversionBatch",
    "InMemoryDirectory",
    "SqlDirectory",
    "import_files",
    "import_ibkr_statement",
    "import_tastytrade_statement",
    "import_statement",
]

from broker_statements.core.pipeline import (
    import_files,
    import_ibkr_statement,
    import_statement,
    import_tastytrade_statement,
)
from broker_statements.importers.directory import InMemoryDirectory, SqlDirectory
from broker_statements.importers.domain import ConversionBatch
