from __future__ import annotations

import asyncio


class StatementImportError(Exception):
    pass


class StatementParseError(StatementImportError):
    """Raised when a statement file cannot be read into records at all."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])


class PrivacyViolationError(StatementImportError):
    """Raised when parsed output still carries account-identifying text."""

    def __init__(self, violations: list[str]) -> None:
        super().__init__(f"Privacy compliance failed: {len(violations)} violation(s)")
        self.violations = list(violations)


class ConversionError(StatementImportError):
    """A single record could not be mapped into the domain model."""


class ResolutionError(ConversionError):
    """A currency or ticker could not be resolved to a stored identifier."""


class ConversionCancelled(StatementImportError):
    """Raised between records when the caller requested cancellation."""


def raise_if_cancelled(cancel: asyncio.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise ConversionCancelled("Conversion cancelled by caller")
