"""
SQLite store handle for the agent ledger.

One LedgerStore wraps one connection for the lifetime of the process. It is
created once, opened idempotently and passed to every importer/exporter/repo
call. Multi-statement writes go through `transaction()`; nested transactions
become savepoints so an inner failure unwinds only its own statements while an
outer failure unwinds everything.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2
MEMORY_PATH = ":memory:"

SCHEMA = """
CREATE TABLE IF NOT EXISTS app_meta (
  key TEXT PRIMARY KEY NOT NULL,
  value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS societies (
  id TEXT PRIMARY KEY NOT NULL,
  code TEXT NOT NULL UNIQUE,
  name TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS agents (
  id TEXT PRIMARY KEY NOT NULL,
  society_id TEXT NOT NULL REFERENCES societies(id) ON DELETE CASCADE,
  code TEXT NOT NULL,
  name TEXT NOT NULL,
  phone TEXT,
  pin_hash TEXT NOT NULL,
  is_active INTEGER NOT NULL DEFAULT 1,
  UNIQUE (society_id, code)
);

CREATE TABLE IF NOT EXISTS accounts (
  id TEXT PRIMARY KEY NOT NULL,
  society_id TEXT NOT NULL REFERENCES societies(id) ON DELETE CASCADE,
  agent_id TEXT NOT NULL REFERENCES agents(id) ON DELETE CASCADE,
  account_no TEXT NOT NULL,
  account_lot_key TEXT NOT NULL,
  client_name TEXT NOT NULL,
  account_type TEXT NOT NULL,
  frequency TEXT NOT NULL,
  account_head TEXT,
  account_head_code TEXT,
  installment_paise INTEGER NOT NULL DEFAULT 0,
  balance_paise INTEGER NOT NULL DEFAULT 0,
  last_txn_at TEXT,
  opened_at TEXT,
  closes_at TEXT,
  status TEXT NOT NULL DEFAULT 'ACTIVE',
  UNIQUE (society_id, agent_id, account_no, account_lot_key)
);
CREATE INDEX IF NOT EXISTS idx_accounts_scope_accountno ON accounts(society_id, agent_id, account_no);
CREATE INDEX IF NOT EXISTS idx_accounts_scope_lot ON accounts(society_id, agent_id, account_lot_key);

CREATE TABLE IF NOT EXISTS collections (
  id TEXT PRIMARY KEY NOT NULL,
  society_id TEXT NOT NULL REFERENCES societies(id) ON DELETE CASCADE,
  agent_id TEXT NOT NULL REFERENCES agents(id) ON DELETE CASCADE,
  account_id TEXT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
  account_no TEXT NOT NULL,
  collected_paise INTEGER NOT NULL,
  collected_at TEXT NOT NULL,
  collection_date TEXT NOT NULL,
  status TEXT NOT NULL DEFAULT 'PENDING',
  exported_at TEXT,
  remarks TEXT,
  UNIQUE (agent_id, account_id, collection_date)
);
CREATE INDEX IF NOT EXISTS idx_collections_agent_date ON collections(agent_id, collection_date);
CREATE INDEX IF NOT EXISTS idx_collections_status ON collections(status);

CREATE TABLE IF NOT EXISTS exports (
  id TEXT PRIMARY KEY NOT NULL,
  society_id TEXT NOT NULL REFERENCES societies(id) ON DELETE CASCADE,
  agent_id TEXT NOT NULL REFERENCES agents(id) ON DELETE CASCADE,
  exported_at TEXT NOT NULL,
  file_uri TEXT,
  collections_count INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_exports_agent_time ON exports(agent_id, exported_at);
"""

Params = Sequence[Any]


class LedgerStore:
    """Owns the SQLite connection; rows come back as `sqlite3.Row`."""

    def __init__(self, path: Union[str, Path] = MEMORY_PATH):
        self.path = str(path)
        self._conn: Optional[sqlite3.Connection] = None
        self._depth = 0

    def __enter__(self) -> "LedgerStore":
        return self.open()

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> "LedgerStore":
        """Open the connection and apply the schema once; later calls are no-ops."""
        if self._conn is not None:
            return self
        if self.path != MEMORY_PATH:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        self._conn = conn
        self._migrate()
        return self

    def close(self) -> None:
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None
        self._depth = 0

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self.open()
        assert self._conn is not None
        return self._conn

    def _migrate(self) -> None:
        version = self.user_version()
        if version >= SCHEMA_VERSION:
            return
        logger.info("Migrating ledger store %s from schema v%s to v%s", self.path, version, SCHEMA_VERSION)
        with self.transaction():
            for statement in _split_statements(SCHEMA):
                self.execute(statement)
            self.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")

    def user_version(self) -> int:
        row = self._connection().execute("PRAGMA user_version").fetchone()
        return int(row[0]) if row else 0

    def execute(self, sql: str, params: Params = ()) -> int:
        """Run one statement; returns the affected row count."""
        cursor = self._connection().execute(sql, tuple(params))
        return cursor.rowcount

    def query(self, sql: str, params: Params = ()) -> List[sqlite3.Row]:
        return self._connection().execute(sql, tuple(params)).fetchall()

    def query_one(self, sql: str, params: Params = ()) -> Optional[sqlite3.Row]:
        return self._connection().execute(sql, tuple(params)).fetchone()

    @contextmanager
    def transaction(self) -> Iterator["LedgerStore"]:
        conn = self._connection()
        if self._depth == 0:
            conn.execute("BEGIN")
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                conn.execute("ROLLBACK")
                raise
            self._depth -= 1
            conn.execute("COMMIT")
            return

        savepoint = f"sp_{self._depth}"
        conn.execute(f"SAVEPOINT {savepoint}")
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            conn.execute(f"ROLLBACK TO SAVEPOINT {savepoint}")
            conn.execute(f"RELEASE SAVEPOINT {savepoint}")
            raise
        self._depth -= 1
        conn.execute(f"RELEASE SAVEPOINT {savepoint}")


def _split_statements(script: str) -> List[str]:
    return [part.strip() for part in script.split(";") if part.strip()]
