"""
Export pending collections to one handoff file per lot.

`export_pending_and_share` writes the files and marks each lot's collections as
exported right after its file is written. `run_export` is the workflow used by
the CLI: it validates the pending rows first and can clear the exported lots
from the local store afterwards.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Sequence, Union

from iamc_collect.ledger import repo
from iamc_collect.ledger.export_files import (
    EXPORT_EXTENSIONS,
    MIME_TYPES,
    build_export_file_name,
    header_lines,
    write_text_export,
    write_workbook_export,
)
from iamc_collect.ledger.export_validation import validate_pending_collections_for_export
from iamc_collect.ledger.lots import lot_file_code
from iamc_collect.ledger.models import AccountType, Agent, ExportCollectionRow, Frequency, Lot, Society
from iamc_collect.ledger.money import format_plain_rupees, now_iso, paise_to_rupees
from iamc_collect.ledger.store import LedgerStore

logger = logging.getLogger(__name__)

SHARE_TITLE = "Export pending collections"


class ExportCategory(str, Enum):
    DAILY = "daily"
    MONTHLY = "monthly"
    LOAN = "loan"


class Sharer(Protocol):
    """Hands a written file to the platform share flow."""

    def is_available(self) -> bool:
        ...

    def share(self, path: Path, mime_type: str, title: str) -> None:
        ...


@dataclass
class ExportFileResult:
    path: Path
    collections: int
    lot: Lot
    lot_key: str
    lot_label: str
    lot_file_code: str
    collection_ids: List[str] = field(default_factory=list)


@dataclass
class ExportOutcome:
    exported_at: str
    files: List[ExportFileResult]
    shared: bool = False

    @property
    def lots(self) -> List[Lot]:
        return [f.lot for f in self.files]


def matches_export_category(row: ExportCollectionRow, category: Union[ExportCategory, str]) -> bool:
    category = ExportCategory(category)
    if category is ExportCategory.LOAN:
        return row.account_type is AccountType.LOAN
    wanted = Frequency.DAILY if category is ExportCategory.DAILY else Frequency.MONTHLY
    return row.account_type is not AccountType.LOAN and row.frequency is wanted


def list_pending_for_export(
    store: LedgerStore,
    agent: Agent,
    category: Optional[Union[ExportCategory, str]] = None,
) -> List[ExportCollectionRow]:
    rows = repo.list_pending_collections(store, agent.id)
    if category:
        rows = [r for r in rows if matches_export_category(r, category)]
    return rows


def _table_rows(rows: Sequence[ExportCollectionRow], text: bool) -> List[list]:
    table = []
    for r in rows:
        amount = format_plain_rupees(r.collected_paise) if text else paise_to_rupees(r.collected_paise)
        table.append(
            [
                r.account_no,
                r.client_name,
                r.account_head or "",
                r.account_head_code or "",
                r.account_type.value,
                r.frequency.value,
                amount,
                r.collected_at,
                r.collection_date,
                r.remarks or "",
            ]
        )
    return table


def export_pending_and_share(
    store: LedgerStore,
    society: Society,
    agent: Agent,
    format: str = "xlsx",
    export_dir: Union[str, Path] = Path("exports"),
    sharer: Optional[Sharer] = None,
    category: Optional[Union[ExportCategory, str]] = None,
    now: Callable[[], str] = now_iso,
) -> Optional[ExportOutcome]:
    """
    Write one file per lot of pending collections; None when nothing is pending.

    Every file of one call carries the same `exported_at` instant. The file is
    shared only when a single lot was exported and the sharer is available.
    """
    fmt = (format or "xlsx").lower()
    if fmt not in EXPORT_EXTENSIONS:
        raise ValueError(f"Unsupported export format: {format!r}")

    exported_at = now()
    rows = list_pending_for_export(store, agent, category)
    if not rows:
        logger.info("No pending collections to export for agent %s", agent.code)
        return None

    groups: "OrderedDict[str, List[ExportCollectionRow]]" = OrderedDict()
    for row in rows:
        groups.setdefault(lot_file_code(row.lot.key), []).append(row)

    out_dir = Path(export_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    results: List[ExportFileResult] = []
    for file_code, items in groups.items():
        lot = items[0].lot
        path = out_dir / build_export_file_name(society.code, agent.code, lot.key, exported_at, fmt)
        header = header_lines(society.name, agent.code, agent.name, exported_at, lot.label, len(items))
        if fmt == "txt":
            write_text_export(path, header, _table_rows(items, text=True))
        else:
            write_workbook_export(path, header, _table_rows(items, text=False))
        logger.info("Wrote %s (%s collection(s))", path.name, len(items))

        ids = [r.id for r in items]
        repo.mark_exported(store, society.id, agent.id, exported_at, str(path), ids)
        results.append(
            ExportFileResult(
                path=path,
                collections=len(items),
                lot=lot,
                lot_key=lot.key,
                lot_label=lot.label,
                lot_file_code=file_code,
                collection_ids=ids,
            )
        )

    shared = False
    if len(results) == 1 and sharer is not None and sharer.is_available():
        sharer.share(results[0].path, MIME_TYPES[fmt], SHARE_TITLE)
        shared = True

    return ExportOutcome(exported_at=exported_at, files=results, shared=shared)


def run_export(
    store: LedgerStore,
    society: Society,
    agent: Agent,
    format: str = "xlsx",
    export_dir: Union[str, Path] = Path("exports"),
    sharer: Optional[Sharer] = None,
    category: Optional[Union[ExportCategory, str]] = None,
    clear_after: bool = False,
    now: Callable[[], str] = now_iso,
) -> Optional[ExportOutcome]:
    """Validate, export and optionally clear the exported lots for this agent."""
    pending = list_pending_for_export(store, agent, category)
    validate_pending_collections_for_export(pending)

    outcome = export_pending_and_share(
        store,
        society,
        agent,
        format=format,
        export_dir=export_dir,
        sharer=sharer,
        category=category,
        now=now,
    )
    if outcome is not None and clear_after:
        repo.clear_client_data_by_lots(store, society.id, agent.id, outcome.lots)
    return outcome
