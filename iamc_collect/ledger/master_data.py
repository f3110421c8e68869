"""
Master-data JSON import (schema version 1).

Payload shape::

    {
      "schemaVersion": 1,
      "society": {"code": "...", "name": "..."},
      "agents": [{"code", "name", "phone"?, "pin"?, "pinHash"?}],
      "accounts": [{"accountNo", "clientName", "accountType", "frequency", ...}]
    }

Accounts are assigned to `agentCode` when present, otherwise to the only (or
first) agent listed in the payload, otherwise to the society's single active
agent. Rows that cannot be assigned, or lack an account number or client name,
are skipped with a warning; unknown type/frequency/status values normalize to
SAVINGS/MONTHLY/ACTIVE.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from iamc_collect.ledger import repo
from iamc_collect.ledger.credentials import DEFAULT_AGENT_PIN, hash_pin
from iamc_collect.ledger.errors import SchemaError
from iamc_collect.ledger.models import AccountStatus, AccountType, Frequency
from iamc_collect.ledger.money import rupees_to_paise
from iamc_collect.ledger.store import LedgerStore

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMA_VERSION = 1

LAST_TXN_KEYS = ("lastTxnAt", "lastTxnDate", "lastTrDate")
OPENED_KEYS = ("openedAt", "openingDate")
CLOSES_KEYS = ("closesAt", "closingDate")


@dataclass
class MasterDataImportResult:
    society_code: str
    society_name: str
    agents_upserted: int
    accounts_upserted: int
    accounts_skipped: int = 0


def normalize_master_account_type(value: Any) -> AccountType:
    text = str(value or "").strip().upper()
    if text in ("PIGMY", "PIGMI", "DAILY"):
        return AccountType.PIGMY
    if text == "LOAN":
        return AccountType.LOAN
    return AccountType.SAVINGS


def normalize_master_frequency(value: Any) -> Frequency:
    text = str(value or "").strip().upper()
    if text in ("DAILY", "D"):
        return Frequency.DAILY
    if text in ("WEEKLY", "W"):
        return Frequency.WEEKLY
    return Frequency.MONTHLY


def normalize_master_status(value: Any) -> AccountStatus:
    text = str(value or "").strip().upper()
    return AccountStatus.CLOSED if text == "CLOSED" else AccountStatus.ACTIVE


def _paise_from_any(value: Any) -> int:
    """Already-paise value: rounded, never negative, junk -> 0."""
    if isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number):
        return 0
    return max(0, int(round(number)))


def _first_present(raw: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _text_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def validate_master_data(raw: Any) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise SchemaError("Invalid JSON: expected object")
    if raw.get("schemaVersion") != SUPPORTED_SCHEMA_VERSION:
        raise SchemaError(f"Unsupported schemaVersion (expected {SUPPORTED_SCHEMA_VERSION})")
    society = raw.get("society")
    if not isinstance(society, dict) or not society.get("code") or not society.get("name"):
        raise SchemaError("Missing society.code or society.name")
    for key in ("agents", "accounts"):
        if raw.get(key) is not None and not isinstance(raw[key], list):
            raise SchemaError(f"'{key}' must be a list")
    return raw


def import_master_data(
    store: LedgerStore,
    payload: Any,
    default_pin: str = DEFAULT_AGENT_PIN,
) -> MasterDataImportResult:
    data = validate_master_data(payload)
    society_code = str(data["society"]["code"]).strip().upper()
    society_name = str(data["society"]["name"]).strip()
    agents_raw: List[Any] = data.get("agents") or []
    accounts_raw: List[Any] = data.get("accounts") or []

    agents_upserted = 0
    accounts_upserted = 0
    accounts_skipped = 0

    with store.transaction():
        society = repo.upsert_society(store, society_code, society_name)

        payload_agents: Dict[str, str] = {}
        for raw_agent in agents_raw:
            if not isinstance(raw_agent, dict):
                logger.warning("Skipping agent entry that is not an object: %r", raw_agent)
                continue
            code = str(raw_agent.get("code") or "").strip().upper()
            name = str(raw_agent.get("name") or "").strip()
            if not code or not name:
                logger.warning("Skipping agent without code/name: %r", raw_agent)
                continue
            pin_hash = None
            if raw_agent.get("pinHash"):
                pin_hash = str(raw_agent["pinHash"])
            elif raw_agent.get("pin"):
                pin_hash = hash_pin(society.id, str(raw_agent["pin"]))
            agent, _created = repo.upsert_agent(
                store,
                society.id,
                code,
                name,
                phone=_text_or_none(raw_agent.get("phone")),
                pin_hash=pin_hash,
                default_pin=default_pin,
            )
            payload_agents[code] = agent.id
            agents_upserted += 1

        fallback_agent_id = _fallback_agent_id(store, society.id, payload_agents)

        for raw_account in accounts_raw:
            if not isinstance(raw_account, dict):
                accounts_skipped += 1
                logger.warning("Skipping account entry that is not an object: %r", raw_account)
                continue
            account_no = str(raw_account.get("accountNo") or "").strip()
            client_name = str(raw_account.get("clientName") or "").strip()
            if not account_no or not client_name:
                accounts_skipped += 1
                logger.warning("Skipping account without accountNo/clientName: %r", raw_account)
                continue

            agent_id = _resolve_agent_id(store, society.id, raw_account, payload_agents, fallback_agent_id)
            if agent_id is None:
                accounts_skipped += 1
                logger.warning("Skipping account %s: no agent to assign it to", account_no)
                continue

            if raw_account.get("installmentPaise") is not None:
                installment_paise = _paise_from_any(raw_account["installmentPaise"])
            else:
                installment_paise = rupees_to_paise(
                    _first_present(raw_account, "installmentRupees", "installmentAmount") or 0
                )
            if raw_account.get("balancePaise") is not None:
                balance_paise = _paise_from_any(raw_account["balancePaise"])
            else:
                balance_paise = rupees_to_paise(_first_present(raw_account, "balance", "balanceRupees") or 0)

            repo.upsert_account(
                store,
                society.id,
                agent_id,
                account_no=account_no,
                client_name=client_name,
                account_type=normalize_master_account_type(raw_account.get("accountType") or "SAVINGS"),
                frequency=normalize_master_frequency(raw_account.get("frequency") or "MONTHLY"),
                account_head=_text_or_none(raw_account.get("accountHead")),
                account_head_code=_text_or_none(raw_account.get("accountHeadCode")),
                installment_paise=installment_paise,
                balance_paise=balance_paise,
                last_txn_at=_text_or_none(_first_present(raw_account, *LAST_TXN_KEYS)),
                opened_at=_text_or_none(_first_present(raw_account, *OPENED_KEYS)),
                closes_at=_text_or_none(_first_present(raw_account, *CLOSES_KEYS)),
                status=normalize_master_status(raw_account.get("status") or "ACTIVE"),
            )
            accounts_upserted += 1

    logger.info(
        "Master data for %s: %s agent(s), %s account(s) upserted, %s skipped",
        society.code,
        agents_upserted,
        accounts_upserted,
        accounts_skipped,
    )
    return MasterDataImportResult(
        society_code=society.code,
        society_name=society.name,
        agents_upserted=agents_upserted,
        accounts_upserted=accounts_upserted,
        accounts_skipped=accounts_skipped,
    )


def _fallback_agent_id(store: LedgerStore, society_id: str, payload_agents: Dict[str, str]) -> Optional[str]:
    if payload_agents:
        return next(iter(payload_agents.values()))
    active = repo.list_active_agents(store, society_id)
    if len(active) == 1:
        return active[0].id
    return None


def _resolve_agent_id(
    store: LedgerStore,
    society_id: str,
    raw_account: Dict[str, Any],
    payload_agents: Dict[str, str],
    fallback_agent_id: Optional[str],
) -> Optional[str]:
    code = str(raw_account.get("agentCode") or "").strip().upper()
    if not code:
        return fallback_agent_id
    if code in payload_agents:
        return payload_agents[code]
    agent = repo.get_agent_by_code(store, society_id, code)
    return agent.id if agent else None


def load_master_data_file(path: Union[str, Path]) -> Any:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SchemaError(f"Invalid JSON in {Path(path).name}: {exc}") from exc


def import_master_data_file(
    store: LedgerStore,
    path: Union[str, Path],
    default_pin: str = DEFAULT_AGENT_PIN,
) -> MasterDataImportResult:
    return import_master_data(store, load_master_data_file(path), default_pin=default_pin)
