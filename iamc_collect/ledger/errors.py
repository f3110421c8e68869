"""Error taxonomy for parsing, importing, validating and storing ledger data."""

from __future__ import annotations


class LedgerError(ValueError):
    """Base class for errors that carry a human-readable message for the agent."""


class ParseError(LedgerError):
    """Agent report text/workbook could not be turned into a report."""


class SchemaError(LedgerError):
    """Master-data JSON payload does not match the supported schema."""


class ValidationError(LedgerError):
    """Pending collections are inconsistent and must not be exported."""


class StorageError(RuntimeError):
    """A stored row does not have the shape its entity mapper expects."""
