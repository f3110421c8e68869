"""
Data access for the agent ledger.

Every function takes the LedgerStore handle as its first argument. Rows are
mapped to the dataclasses in `models` by strict mappers: a row missing a column
or carrying an unknown enum value raises StorageError instead of leaking a
half-filled object. Multi-statement writes run inside `store.transaction()`.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from iamc_collect.ledger.credentials import DEFAULT_AGENT_PIN, hash_pin, verify_pin
from iamc_collect.ledger.errors import StorageError
from iamc_collect.ledger.lots import lot_key_from_parts, normalize_head_code
from iamc_collect.ledger.models import (
    Account,
    AccountLot,
    AccountStatus,
    AccountType,
    Agent,
    AgentProfile,
    CollectionEntry,
    CollectionStatus,
    CollectionTotals,
    ExportCollectionRow,
    ExportRecord,
    Frequency,
    Lot,
    Society,
)
from iamc_collect.ledger.money import now_iso, to_iso_date
from iamc_collect.ledger.store import LedgerStore

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 50
DEFAULT_LIST_LIMIT = 2000

PIN_UPDATED = "updated"
PIN_NOT_FOUND = "not_found"
PIN_AMBIGUOUS = "ambiguous_agent_code"

_ACTIVE_LOT_SUFFIXES = ("key", "head", "code", "type", "freq")


def new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _require(row: sqlite3.Row, entity: str, *columns: str) -> Dict[str, Any]:
    keys = set(row.keys())
    missing = [c for c in columns if c not in keys]
    if missing:
        raise StorageError(f"{entity} row is missing column(s): {', '.join(missing)}")
    return {k: row[k] for k in keys}


def _enum(enum_cls: Any, value: Any, entity: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise StorageError(f"{entity} row has unknown {enum_cls.__name__} value {value!r}") from exc


def _map_society(row: sqlite3.Row) -> Society:
    data = _require(row, "society", "id", "code", "name")
    return Society(id=data["id"], code=data["code"], name=data["name"])


def _map_agent(row: sqlite3.Row) -> Agent:
    data = _require(row, "agent", "id", "society_id", "code", "name", "is_active")
    return Agent(
        id=data["id"],
        society_id=data["society_id"],
        code=data["code"],
        name=data["name"],
        phone=data.get("phone"),
        is_active=bool(data["is_active"]),
    )


def _map_account(row: sqlite3.Row) -> Account:
    data = _require(
        row,
        "account",
        "id",
        "society_id",
        "agent_id",
        "account_no",
        "account_lot_key",
        "client_name",
        "account_type",
        "frequency",
        "installment_paise",
        "balance_paise",
        "status",
    )
    return Account(
        id=data["id"],
        society_id=data["society_id"],
        agent_id=data["agent_id"],
        account_no=data["account_no"],
        lot_key=data["account_lot_key"],
        client_name=data["client_name"],
        account_type=_enum(AccountType, data["account_type"], "account"),
        frequency=_enum(Frequency, data["frequency"], "account"),
        account_head=data.get("account_head"),
        account_head_code=data.get("account_head_code"),
        installment_paise=int(data["installment_paise"] or 0),
        balance_paise=int(data["balance_paise"] or 0),
        last_txn_at=data.get("last_txn_at"),
        opened_at=data.get("opened_at"),
        closes_at=data.get("closes_at"),
        status=_enum(AccountStatus, data["status"], "account"),
    )


_COLLECTION_COLUMNS = (
    "id",
    "society_id",
    "agent_id",
    "account_id",
    "account_no",
    "collected_paise",
    "collected_at",
    "collection_date",
    "status",
)


def _collection_fields(data: Dict[str, Any], entity: str) -> Dict[str, Any]:
    return dict(
        id=data["id"],
        society_id=data["society_id"],
        agent_id=data["agent_id"],
        account_id=data["account_id"],
        account_no=data["account_no"],
        collected_paise=int(data["collected_paise"]),
        collected_at=data["collected_at"],
        collection_date=data["collection_date"],
        status=_enum(CollectionStatus, data["status"], entity),
        exported_at=data.get("exported_at"),
        remarks=data.get("remarks"),
    )


def _map_collection(row: sqlite3.Row) -> CollectionEntry:
    data = _require(row, "collection", *_COLLECTION_COLUMNS)
    return CollectionEntry(**_collection_fields(data, "collection"))


def _map_export_collection(row: sqlite3.Row) -> ExportCollectionRow:
    entity = "pending collection"
    data = _require(row, entity, *_COLLECTION_COLUMNS, "client_name", "account_type", "frequency")
    return ExportCollectionRow(
        **_collection_fields(data, entity),
        client_name=data["client_name"],
        account_head=data.get("account_head"),
        account_head_code=data.get("account_head_code"),
        account_type=_enum(AccountType, data["account_type"], entity),
        frequency=_enum(Frequency, data["frequency"], entity),
    )


def _map_export(row: sqlite3.Row) -> ExportRecord:
    data = _require(row, "export", "id", "society_id", "agent_id", "exported_at")
    return ExportRecord(
        id=data["id"],
        society_id=data["society_id"],
        agent_id=data["agent_id"],
        exported_at=data["exported_at"],
        file_uri=data.get("file_uri"),
        collections_count=int(data.get("collections_count") or 0),
    )


def _lot_filter(lot: Lot, alias: str = "") -> Tuple[str, List[Any]]:
    """SQL fragment matching one lot; a blank head code only matches NULL or '' codes."""
    prefix = f"{alias}." if alias else ""
    params: List[Any] = [_enum_value(lot.account_type), _enum_value(lot.frequency)]
    clause = f"{prefix}account_type = ? AND {prefix}frequency = ?"
    head_code = normalize_head_code(lot.account_head_code)
    if head_code:
        clause += f" AND {prefix}account_head_code = ?"
        params.append(head_code)
    else:
        clause += f" AND ({prefix}account_head_code IS NULL OR {prefix}account_head_code = '')"
    return clause, params


def _enum_value(value: Any) -> str:
    return str(getattr(value, "value", value))


# ---------------------------------------------------------------------------
# Societies, agents, credentials
# ---------------------------------------------------------------------------


def get_society_by_id(store: LedgerStore, society_id: str) -> Optional[Society]:
    row = store.query_one("SELECT * FROM societies WHERE id = ?", (society_id,))
    return _map_society(row) if row else None


def get_society_by_code(store: LedgerStore, code: str) -> Optional[Society]:
    row = store.query_one("SELECT * FROM societies WHERE code = ?", ((code or "").strip().upper(),))
    return _map_society(row) if row else None


def get_agent_by_id(store: LedgerStore, agent_id: str) -> Optional[Agent]:
    row = store.query_one("SELECT * FROM agents WHERE id = ?", (agent_id,))
    return _map_agent(row) if row else None


def get_agent_by_code(store: LedgerStore, society_id: str, code: str) -> Optional[Agent]:
    row = store.query_one(
        "SELECT * FROM agents WHERE society_id = ? AND code = ?", (society_id, (code or "").strip().upper())
    )
    return _map_agent(row) if row else None


def _profile_from_row(row: sqlite3.Row) -> AgentProfile:
    data = _require(row, "agent profile", "society_id", "society_code", "society_name")
    society = Society(id=data["society_id"], code=data["society_code"], name=data["society_name"])
    return AgentProfile(society=society, agent=_map_agent(row))


_PROFILE_SELECT = """
    SELECT a.*, s.code AS society_code, s.name AS society_name
    FROM agents a
    JOIN societies s ON s.id = a.society_id
"""


def list_agent_profiles(store: LedgerStore) -> List[AgentProfile]:
    rows = store.query(
        _PROFILE_SELECT
        + " WHERE a.is_active = 1 ORDER BY s.name COLLATE NOCASE, a.code COLLATE NOCASE"
    )
    return [_profile_from_row(r) for r in rows]


def _active_agent_rows(
    store: LedgerStore, agent_code: str, society_code: Optional[str]
) -> List[sqlite3.Row]:
    code = (agent_code or "").strip().upper()
    society = (society_code or "").strip().upper()
    if society:
        rows = store.query(
            _PROFILE_SELECT + " WHERE s.code = ? AND a.code = ? AND a.is_active = 1",
            (society, code),
        )
    else:
        rows = store.query(_PROFILE_SELECT + " WHERE a.code = ? AND a.is_active = 1", (code,))
    return rows


def authenticate_agent(
    store: LedgerStore,
    society_code: Optional[str],
    agent_code: str,
    pin: str,
) -> Optional[AgentProfile]:
    """
    Credential lookup.

    With a society code the agent is looked up inside that society. Without one,
    login succeeds only when exactly one active agent (across all societies)
    matches both the code and the PIN.
    """
    rows = _active_agent_rows(store, agent_code, society_code)
    matches = [r for r in rows if verify_pin(r["society_id"], pin, r["pin_hash"])]
    if len(matches) != 1:
        if len(matches) > 1:
            logger.warning("Login for agent %s matched %s societies; society code required", agent_code, len(matches))
        return None
    return _profile_from_row(matches[0])


def update_agent_pin_by_code(
    store: LedgerStore,
    agent_code: str,
    pin: str,
    society_code: Optional[str] = None,
) -> str:
    """Set a new PIN; returns "updated", "not_found" or "ambiguous_agent_code"."""
    rows = _active_agent_rows(store, agent_code, society_code)
    if not rows:
        return PIN_NOT_FOUND
    if len(rows) > 1:
        return PIN_AMBIGUOUS
    agent = _map_agent(rows[0])
    store.execute("UPDATE agents SET pin_hash = ? WHERE id = ?", (hash_pin(agent.society_id, pin), agent.id))
    return PIN_UPDATED


def upsert_society(store: LedgerStore, code: str, name: str) -> Society:
    """Find the society by code (refreshing its name) or create it."""
    code = (code or "").strip().upper()
    name = (name or "").strip()
    row = store.query_one("SELECT * FROM societies WHERE code = ?", (code,))
    if row:
        store.execute("UPDATE societies SET name = ? WHERE id = ?", (name, row["id"]))
        return Society(id=row["id"], code=code, name=name)
    society = Society(id=new_id(), code=code, name=name)
    store.execute("INSERT INTO societies (id, code, name) VALUES (?, ?, ?)", (society.id, society.code, society.name))
    return society


def upsert_agent(
    store: LedgerStore,
    society_id: str,
    code: str,
    name: str,
    phone: Optional[str] = None,
    pin_hash: Optional[str] = None,
    default_pin: str = DEFAULT_AGENT_PIN,
) -> Tuple[Agent, bool]:
    """
    Find the agent by (society, code) or create it; returns (agent, created).

    Existing agents are re-activated and renamed. Their PIN hash only changes
    when `pin_hash` is given and their phone only when `phone` is given. New
    agents without a PIN hash get the hash of `default_pin`.
    """
    row = store.query_one("SELECT * FROM agents WHERE society_id = ? AND code = ?", (society_id, code))
    if row:
        sets = ["name = ?", "is_active = 1"]
        params: List[Any] = [name]
        if phone is not None:
            sets.append("phone = ?")
            params.append(phone)
        if pin_hash:
            sets.append("pin_hash = ?")
            params.append(pin_hash)
        store.execute(f"UPDATE agents SET {', '.join(sets)} WHERE id = ?", [*params, row["id"]])
        updated = store.query_one("SELECT * FROM agents WHERE id = ?", (row["id"],))
        return _map_agent(updated or row), False

    agent = Agent(id=new_id(), society_id=society_id, code=code, name=name, phone=phone, is_active=True)
    store.execute(
        "INSERT INTO agents (id, society_id, code, name, phone, pin_hash, is_active) VALUES (?, ?, ?, ?, ?, ?, 1)",
        (agent.id, society_id, code, name, phone, pin_hash or hash_pin(society_id, default_pin)),
    )
    return agent, True


def list_active_agents(store: LedgerStore, society_id: str) -> List[Agent]:
    rows = store.query(
        "SELECT * FROM agents WHERE society_id = ? AND is_active = 1 ORDER BY code COLLATE NOCASE",
        (society_id,),
    )
    return [_map_agent(r) for r in rows]


def upsert_account(
    store: LedgerStore,
    society_id: str,
    agent_id: str,
    *,
    account_no: str,
    client_name: str,
    account_type: AccountType,
    frequency: Frequency,
    account_head: Optional[str] = None,
    account_head_code: Optional[str] = None,
    installment_paise: int = 0,
    balance_paise: int = 0,
    last_txn_at: Optional[str] = None,
    opened_at: Optional[str] = None,
    closes_at: Optional[str] = None,
    status: Optional[AccountStatus] = None,
) -> Tuple[str, bool]:
    """
    Insert or update one account keyed by (society, agent, account_no, lot key).

    The lot key is always derived from head code, type and frequency. Opening,
    closing and status fields are only overwritten when a value is supplied.
    Returns (account_id, created).
    """
    head_code = normalize_head_code(account_head_code)
    lot_key = lot_key_from_parts(head_code, account_type, frequency)
    existing = store.query_one(
        """
        SELECT id FROM accounts
        WHERE society_id = ? AND agent_id = ? AND account_no = ? AND account_lot_key = ?
        """,
        (society_id, agent_id, account_no, lot_key),
    )
    if existing:
        store.execute(
            """
            UPDATE accounts
            SET client_name = ?, account_type = ?, frequency = ?,
                account_head = ?, account_head_code = ?,
                installment_paise = ?, balance_paise = ?, last_txn_at = ?,
                opened_at = COALESCE(?, opened_at),
                closes_at = COALESCE(?, closes_at),
                status = COALESCE(?, status)
            WHERE id = ?
            """,
            (
                client_name,
                _enum_value(account_type),
                _enum_value(frequency),
                account_head,
                head_code,
                int(installment_paise),
                int(balance_paise),
                last_txn_at,
                opened_at,
                closes_at,
                _enum_value(status) if status is not None else None,
                existing["id"],
            ),
        )
        return existing["id"], False

    account_id = new_id()
    store.execute(
        """
        INSERT INTO accounts (
          id, society_id, agent_id, account_no, account_lot_key, client_name,
          account_type, frequency, account_head, account_head_code,
          installment_paise, balance_paise, last_txn_at, opened_at, closes_at, status
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            account_id,
            society_id,
            agent_id,
            account_no,
            lot_key,
            client_name,
            _enum_value(account_type),
            _enum_value(frequency),
            account_head,
            head_code,
            int(installment_paise),
            int(balance_paise),
            last_txn_at,
            opened_at,
            closes_at,
            _enum_value(status or AccountStatus.ACTIVE),
        ),
    )
    return account_id, True


# ---------------------------------------------------------------------------
# Active lot (app_meta)
# ---------------------------------------------------------------------------


def _active_lot_keys(society_id: str) -> List[str]:
    return [f"active.lot.{society_id}.{suffix}" for suffix in _ACTIVE_LOT_SUFFIXES]


def get_active_lot(store: LedgerStore, society_id: str) -> Optional[Lot]:
    keys = _active_lot_keys(society_id)
    rows = store.query(
        f"SELECT key, value FROM app_meta WHERE key IN ({', '.join('?' for _ in keys)})", keys
    )
    values = {r["key"]: r["value"] for r in rows}
    lot_key, head, code, account_type, frequency = (values.get(k) for k in keys)
    if not lot_key or not account_type or not frequency:
        return None
    try:
        return Lot(
            account_type=AccountType(account_type),
            frequency=Frequency(frequency),
            account_head_code=code or None,
            account_head=head or None,
        )
    except ValueError:
        logger.warning("Ignoring stored active lot with unknown type/frequency: %s/%s", account_type, frequency)
        return None


def save_active_lot(store: LedgerStore, society_id: str, lot: Optional[Lot]) -> None:
    """Persist (or clear, when lot is None) the society's active lot."""
    keys = _active_lot_keys(society_id)
    with store.transaction():
        if lot is None:
            store.execute(f"DELETE FROM app_meta WHERE key IN ({', '.join('?' for _ in keys)})", keys)
            return
        values = (
            lot.key,
            lot.account_head or "",
            lot.account_head_code or "",
            _enum_value(lot.account_type),
            _enum_value(lot.frequency),
        )
        for key, value in zip(keys, values):
            store.execute("INSERT OR REPLACE INTO app_meta (key, value) VALUES (?, ?)", (key, value))


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


def get_account_by_id(store: LedgerStore, account_id: str) -> Optional[Account]:
    row = store.query_one("SELECT * FROM accounts WHERE id = ?", (account_id,))
    return _map_account(row) if row else None


def get_account_count(store: LedgerStore, society_id: str, agent_id: Optional[str] = None) -> int:
    if agent_id:
        row = store.query_one(
            "SELECT COUNT(*) AS count FROM accounts WHERE society_id = ? AND agent_id = ?",
            (society_id, agent_id),
        )
    else:
        row = store.query_one("SELECT COUNT(*) AS count FROM accounts WHERE society_id = ?", (society_id,))
    return int(row["count"]) if row else 0


def get_account_count_by_lot(store: LedgerStore, society_id: str, lot: Lot) -> int:
    clause, params = _lot_filter(lot)
    row = store.query_one(
        f"SELECT COUNT(*) AS count FROM accounts WHERE society_id = ? AND {clause}",
        [society_id, *params],
    )
    return int(row["count"]) if row else 0


def list_accounts(
    store: LedgerStore,
    society_id: str,
    lot: Optional[Lot] = None,
    limit: int = DEFAULT_LIST_LIMIT,
) -> List[Account]:
    sql = "SELECT * FROM accounts WHERE society_id = ?"
    params: List[Any] = [society_id]
    if lot is not None:
        clause, lot_params = _lot_filter(lot)
        sql += f" AND {clause}"
        params.extend(lot_params)
    sql += " ORDER BY client_name ASC LIMIT ?"
    params.append(limit)
    return [_map_account(r) for r in store.query(sql, params)]


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_accounts_by_last_digits(
    store: LedgerStore,
    society_id: str,
    digits: str,
    limit: int = DEFAULT_SEARCH_LIMIT,
) -> List[Account]:
    """Active accounts whose number ends with `digits`, ordered by account number."""
    query = (digits or "").strip()
    if not query:
        return []
    rows = store.query(
        """
        SELECT * FROM accounts
        WHERE society_id = ?
          AND status = 'ACTIVE'
          AND account_no LIKE ? ESCAPE '\\'
        ORDER BY account_no ASC
        LIMIT ?
        """,
        (society_id, "%" + _escape_like(query), limit),
    )
    return [_map_account(r) for r in rows]


def find_active_accounts_by_number(
    store: LedgerStore, society_id: str, agent_id: str, account_no: str
) -> List[Account]:
    """Active accounts of one agent with exactly this number (one per lot)."""
    rows = store.query(
        """
        SELECT * FROM accounts
        WHERE society_id = ?
          AND agent_id = ?
          AND account_no = ?
          AND status = 'ACTIVE'
        ORDER BY account_lot_key ASC
        """,
        (society_id, agent_id, (account_no or "").strip()),
    )
    return [_map_account(r) for r in rows]


def list_account_lots(store: LedgerStore, society_id: str) -> List[AccountLot]:
    rows = store.query(
        """
        SELECT account_head, account_head_code, account_type, frequency, COUNT(*) AS count
        FROM accounts
        WHERE society_id = ?
        GROUP BY account_head, account_head_code, account_type, frequency
        ORDER BY count DESC, account_head_code ASC
        """,
        (society_id,),
    )
    lots: List[AccountLot] = []
    for row in rows:
        data = _require(row, "account lot", "account_type", "frequency", "count")
        lots.append(
            AccountLot(
                account_type=_enum(AccountType, data["account_type"], "account lot"),
                frequency=_enum(Frequency, data["frequency"], "account lot"),
                account_head_code=data.get("account_head_code"),
                account_head=data.get("account_head"),
                count=int(data["count"] or 0),
            )
        )
    return lots


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


def upsert_collection_for_today(
    store: LedgerStore,
    society_id: str,
    agent_id: str,
    account: Account,
    amount_paise: int,
    remarks: Optional[str] = None,
    collected_at: Optional[str] = None,
    collection_date: Optional[str] = None,
) -> CollectionEntry:
    """Record today's collection for an account, overwriting an earlier one from the same day."""
    collected_at = collected_at or now_iso()
    collection_date = collection_date or to_iso_date()

    with store.transaction():
        existing = store.query_one(
            "SELECT id FROM collections WHERE agent_id = ? AND account_id = ? AND collection_date = ?",
            (agent_id, account.id, collection_date),
        )
        if existing:
            collection_id = existing["id"]
            store.execute(
                "UPDATE collections SET collected_paise = ?, collected_at = ?, remarks = ? WHERE id = ?",
                (int(amount_paise), collected_at, remarks, collection_id),
            )
        else:
            collection_id = new_id()
            store.execute(
                """
                INSERT INTO collections (
                  id, society_id, agent_id, account_id, account_no,
                  collected_paise, collected_at, collection_date, status, exported_at, remarks
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'PENDING', NULL, ?)
                """,
                (
                    collection_id,
                    society_id,
                    agent_id,
                    account.id,
                    account.account_no,
                    int(amount_paise),
                    collected_at,
                    collection_date,
                    remarks,
                ),
            )
        row = store.query_one("SELECT * FROM collections WHERE id = ?", (collection_id,))
    if row is None:
        raise StorageError(f"Collection {collection_id} vanished after upsert")
    return _map_collection(row)


def list_collections_for_date(
    store: LedgerStore,
    agent_id: str,
    collection_date: str,
    lot: Optional[Lot] = None,
) -> List[CollectionEntry]:
    sql = """
        SELECT c.* FROM collections c
        JOIN accounts a ON a.id = c.account_id
        WHERE c.agent_id = ? AND c.collection_date = ?
    """
    params: List[Any] = [agent_id, collection_date]
    if lot is not None:
        clause, lot_params = _lot_filter(lot, "a")
        sql += f" AND {clause}"
        params.extend(lot_params)
    sql += " ORDER BY c.collected_at DESC"
    return [_map_collection(r) for r in store.query(sql, params)]


def list_collection_dates(store: LedgerStore, agent_id: str) -> List[str]:
    rows = store.query(
        "SELECT DISTINCT collection_date FROM collections WHERE agent_id = ? ORDER BY collection_date DESC",
        (agent_id,),
    )
    return [r["collection_date"] for r in rows]


def get_collection_for_account_date(
    store: LedgerStore, agent_id: str, account_id: str, collection_date: str
) -> Optional[CollectionEntry]:
    row = store.query_one(
        "SELECT * FROM collections WHERE agent_id = ? AND account_id = ? AND collection_date = ?",
        (agent_id, account_id, collection_date),
    )
    return _map_collection(row) if row else None


def _totals(row: Optional[sqlite3.Row]) -> CollectionTotals:
    if row is None:
        return CollectionTotals()
    return CollectionTotals(count=int(row["count"] or 0), total_paise=int(row["total_paise"] or 0))


def get_collection_totals_for_date(store: LedgerStore, agent_id: str, collection_date: str) -> CollectionTotals:
    row = store.query_one(
        """
        SELECT COUNT(*) AS count, COALESCE(SUM(collected_paise), 0) AS total_paise
        FROM collections
        WHERE agent_id = ? AND collection_date = ?
        """,
        (agent_id, collection_date),
    )
    return _totals(row)


def get_collection_totals_for_date_by_lot(
    store: LedgerStore, agent_id: str, collection_date: str, lot: Lot
) -> CollectionTotals:
    clause, params = _lot_filter(lot, "a")
    row = store.query_one(
        f"""
        SELECT COUNT(*) AS count, COALESCE(SUM(c.collected_paise), 0) AS total_paise
        FROM collections c
        JOIN accounts a ON a.id = c.account_id
        WHERE c.agent_id = ? AND c.collection_date = ? AND {clause}
        """,
        [agent_id, collection_date, *params],
    )
    return _totals(row)


def get_pending_export_counts(store: LedgerStore, agent_id: str) -> int:
    row = store.query_one(
        "SELECT COUNT(*) AS count FROM collections WHERE agent_id = ? AND status = 'PENDING'",
        (agent_id,),
    )
    return int(row["count"]) if row else 0


def list_pending_collections(store: LedgerStore, agent_id: str) -> List[ExportCollectionRow]:
    rows = store.query(
        """
        SELECT c.*, a.client_name, a.account_head, a.account_head_code, a.account_type, a.frequency
        FROM collections c
        JOIN accounts a ON a.id = c.account_id
        WHERE c.agent_id = ? AND c.status = 'PENDING'
        ORDER BY c.collected_at ASC
        """,
        (agent_id,),
    )
    return [_map_export_collection(r) for r in rows]


def list_collection_rows(
    store: LedgerStore, agent_id: str, collection_date: Optional[str] = None
) -> List[ExportCollectionRow]:
    """All collections of the agent (any status) joined with their account fields."""
    sql = """
        SELECT c.*, a.client_name, a.account_head, a.account_head_code, a.account_type, a.frequency
        FROM collections c
        JOIN accounts a ON a.id = c.account_id
        WHERE c.agent_id = ?
    """
    params: List[Any] = [agent_id]
    if collection_date:
        sql += " AND c.collection_date = ?"
        params.append(collection_date)
    sql += " ORDER BY c.collection_date ASC, c.collected_at ASC"
    return [_map_export_collection(r) for r in store.query(sql, params)]


# ---------------------------------------------------------------------------
# Exports and clearing
# ---------------------------------------------------------------------------


def list_exports_for_date(store: LedgerStore, agent_id: str, date_iso: str) -> List[ExportRecord]:
    rows = store.query(
        """
        SELECT * FROM exports
        WHERE agent_id = ? AND substr(exported_at, 1, 10) = ?
        ORDER BY exported_at DESC
        """,
        (agent_id, date_iso),
    )
    return [_map_export(r) for r in rows]


def mark_exported(
    store: LedgerStore,
    society_id: str,
    agent_id: str,
    exported_at: str,
    file_uri: Optional[str],
    collection_ids: Sequence[str],
) -> ExportRecord:
    """Flip the collections to EXPORTED and append one export record, atomically."""
    ids = list(collection_ids)
    record = ExportRecord(
        id=new_id(),
        society_id=society_id,
        agent_id=agent_id,
        exported_at=exported_at,
        file_uri=file_uri,
        collections_count=len(ids),
    )
    with store.transaction():
        for collection_id in ids:
            store.execute(
                "UPDATE collections SET status = 'EXPORTED', exported_at = ? WHERE id = ?",
                (exported_at, collection_id),
            )
        store.execute(
            """
            INSERT INTO exports (id, society_id, agent_id, exported_at, file_uri, collections_count)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (record.id, society_id, agent_id, exported_at, file_uri, record.collections_count),
        )
    return record


def delete_exports_for_agent(store: LedgerStore, society_id: str, agent_id: str) -> int:
    return store.execute("DELETE FROM exports WHERE society_id = ? AND agent_id = ?", (society_id, agent_id))


def clear_all_data(store: LedgerStore) -> None:
    with store.transaction():
        for table in ("collections", "exports", "accounts", "agents", "societies", "app_meta"):
            store.execute(f"DELETE FROM {table}")
    logger.info("Cleared all ledger data in %s", store.path)


def clear_client_data_by_lots(
    store: LedgerStore,
    society_id: str,
    agent_id: str,
    lots: Iterable[Lot],
) -> int:
    """Delete collections then accounts of the given lots for one agent; returns accounts removed."""
    lots = list(lots)
    if not lots:
        return 0
    removed = 0
    with store.transaction():
        for lot in lots:
            clause, params = _lot_filter(lot)
            store.execute(
                f"""
                DELETE FROM collections
                WHERE society_id = ? AND agent_id = ? AND account_id IN (
                  SELECT id FROM accounts WHERE society_id = ? AND agent_id = ? AND {clause}
                )
                """,
                [society_id, agent_id, society_id, agent_id, *params],
            )
            removed += store.execute(
                f"DELETE FROM accounts WHERE society_id = ? AND agent_id = ? AND {clause}",
                [society_id, agent_id, *params],
            )
    logger.info("Cleared %s account(s) across %s lot(s) for agent %s", removed, len(lots), agent_id)
    return removed
