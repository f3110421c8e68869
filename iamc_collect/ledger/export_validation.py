"""Consistency checks run on pending collections before any export file is written."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence

from iamc_collect.ledger.errors import ValidationError
from iamc_collect.ledger.models import ExportCollectionRow

MAX_CONFLICTS_SHOWN = 3
MAX_LOTS_PER_CONFLICT = 3


@dataclass
class _Seen:
    lot_key: str
    client_name: str
    normalized_client: str


def normalize_client_name(value: str) -> str:
    return " ".join((value or "").split()).upper()


def validate_pending_collections_for_export(rows: Sequence[ExportCollectionRow]) -> None:
    """
    Raise ValidationError when pending collections disagree about who owns an account.

    Inside one lot an account number must always carry one client name. Across
    lots the same account number may appear (a client holding a PIGMY and a LOAN
    account) but must still belong to one client.
    """
    if not rows:
        return

    same_lot_clients: Dict[str, str] = {}
    by_account_no: Dict[str, List[_Seen]] = {}

    for row in rows:
        lot_key = row.lot.key
        normalized = normalize_client_name(row.client_name)
        same_lot_key = f"{lot_key}|{row.account_no}"

        existing = same_lot_clients.get(same_lot_key)
        if existing is not None and existing != normalized:
            raise ValidationError(
                f"Export blocked: Account {row.account_no} in lot {lot_key} has multiple client names. "
                "Please re-import this lot and try again."
            )
        same_lot_clients[same_lot_key] = normalized
        by_account_no.setdefault(row.account_no, []).append(
            _Seen(lot_key=lot_key, client_name=(row.client_name or "").strip(), normalized_client=normalized)
        )

    conflicts: List[str] = []
    for account_no, entries in by_account_no.items():
        if len({e.lot_key for e in entries}) <= 1:
            continue
        if len({e.normalized_client for e in entries}) <= 1:
            continue
        first_by_lot: Dict[str, _Seen] = {}
        for entry in entries:
            first_by_lot.setdefault(entry.lot_key, entry)
        summary = " | ".join(
            f"{e.lot_key}: {e.client_name}" for e in list(first_by_lot.values())[:MAX_LOTS_PER_CONFLICT]
        )
        conflicts.append(f"{account_no} -> {summary}")

    if conflicts:
        preview = "\n".join(conflicts[:MAX_CONFLICTS_SHOWN])
        more = ""
        if len(conflicts) > MAX_CONFLICTS_SHOWN:
            more = f"\n+{len(conflicts) - MAX_CONFLICTS_SHOWN} more conflict(s)"
        raise ValidationError(
            "Export blocked: same account number is linked to different clients across account types.\n"
            f"{preview}{more}"
        )
