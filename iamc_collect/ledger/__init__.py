"""
Agent collection ledger.

Imports society/agent/account data from agent reports or master-data JSON,
records daily collections per lot and exports pending collections to one
handoff file per lot.
"""

from iamc_collect.ledger.errors import (
    LedgerError,
    ParseError,
    SchemaError,
    StorageError,
    ValidationError,
)
from iamc_collect.ledger.models import (
    Account,
    AccountStatus,
    AccountType,
    Agent,
    CollectionEntry,
    CollectionStatus,
    Frequency,
    Lot,
    ParsedReport,
    Society,
)
from iamc_collect.ledger.store import LedgerStore

__all__ = [
    "LedgerError",
    "ParseError",
    "SchemaError",
    "StorageError",
    "ValidationError",
    "Account",
    "AccountStatus",
    "AccountType",
    "Agent",
    "CollectionEntry",
    "CollectionStatus",
    "Frequency",
    "Lot",
    "ParsedReport",
    "Society",
    "LedgerStore",
]
