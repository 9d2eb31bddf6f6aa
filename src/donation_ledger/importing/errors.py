"""Exceptions raised while importing gateway transactions."""

from typing import Optional


class LedgerImportError(Exception):
    """Base class for import errors that are recorded against a single row."""


class ParseError(LedgerImportError):
    """A row could not be read with the configured column profile."""

    def __init__(self, row_index: int, field: str, message: str):
        self.row_index = row_index
        self.field = field
        super().__init__(f"Row {row_index}: {field}: {message}")


class ClassificationAmbiguity(LedgerImportError):
    """Beneficiary metadata did not resolve; the caller falls back to text rules."""

    def __init__(self, message: str, identifier: Optional[str] = None):
        self.identifier = identifier
        super().__init__(message)


class PersistenceError(LedgerImportError):
    """The ledger rejected or failed a write."""
