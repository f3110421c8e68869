"""Import parsed agent reports into the ledger store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Union

from iamc_collect.ledger import repo
from iamc_collect.ledger.credentials import DEFAULT_AGENT_PIN
from iamc_collect.ledger.errors import ParseError
from iamc_collect.ledger.models import Lot, ParsedReport
from iamc_collect.ledger.money import rupees_to_paise
from iamc_collect.ledger.report_excel import parse_agent_report_excel
from iamc_collect.ledger.report_text import parse_agent_report_text
from iamc_collect.ledger.store import LedgerStore

logger = logging.getLogger(__name__)

TEXT_SUFFIXES = {".txt"}
WORKBOOK_SUFFIXES = {".xlsx", ".xlsm"}


@dataclass
class ReportImportResult:
    society_code: str
    society_name: str
    agent_code: str
    agent_name: str
    accounts_upserted: int


def _report_lots(report: ParsedReport) -> Dict[str, Lot]:
    lots: Dict[str, Lot] = {}
    for account in report.accounts:
        lots.setdefault(
            account.lot_key,
            Lot(
                account_type=account.account_type,
                frequency=account.frequency,
                account_head_code=account.account_head_code,
                account_head=account.account_head,
            ),
        )
    return lots


def import_parsed_report(
    store: LedgerStore,
    report: ParsedReport,
    replace_existing: bool = True,
    default_pin: str = DEFAULT_AGENT_PIN,
) -> ReportImportResult:
    """
    Upsert the report's society, agent and accounts in one transaction.

    With `replace_existing` every lot present in the report is wiped for this
    agent first (its accounts and their collections) along with the agent's
    export history. Lots not present in the report are left alone.
    """
    society_name = report.society_name.strip()
    agent_code = report.agent_code.strip().upper()
    agent_name = report.agent_name.strip()

    with store.transaction():
        society = repo.upsert_society(store, report.society_code, society_name)
        agent, created = repo.upsert_agent(store, society.id, agent_code, agent_name, default_pin=default_pin)
        if created:
            logger.info("Created agent %s in society %s", agent.code, society.code)

        if replace_existing:
            lots = _report_lots(report)
            repo.delete_exports_for_agent(store, society.id, agent.id)
            removed = repo.clear_client_data_by_lots(store, society.id, agent.id, lots.values())
            logger.info("Replace mode: removed %s account(s) from lot(s) %s", removed, ", ".join(sorted(lots)))

        for account in report.accounts:
            repo.upsert_account(
                store,
                society.id,
                agent.id,
                account_no=account.account_no,
                client_name=account.client_name,
                account_type=account.account_type,
                frequency=account.frequency,
                account_head=account.account_head,
                account_head_code=account.account_head_code,
                installment_paise=rupees_to_paise(account.installment_rupees),
                balance_paise=rupees_to_paise(account.balance_rupees),
                last_txn_at=report.report_date_iso,
            )

    logger.info(
        "Imported %s account(s) for society %s agent %s",
        len(report.accounts),
        society.code,
        agent.code,
    )
    return ReportImportResult(
        society_code=society.code,
        society_name=society.name,
        agent_code=agent.code,
        agent_name=agent.name,
        accounts_upserted=len(report.accounts),
    )


def parse_agent_report_file(path: Union[str, Path]) -> ParsedReport:
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix in TEXT_SUFFIXES:
        return parse_agent_report_text(path.read_text(encoding="utf-8", errors="replace"))
    if suffix in WORKBOOK_SUFFIXES:
        return parse_agent_report_excel(path)
    raise ParseError(f"Unsupported report file type: {path.name} (expected .txt, .xlsx or .xlsm)")


def import_agent_report_file(
    store: LedgerStore,
    path: Union[str, Path],
    replace_existing: bool = True,
    default_pin: str = DEFAULT_AGENT_PIN,
) -> ReportImportResult:
    report = parse_agent_report_file(path)
    logger.info("Importing %s (%s account rows)", Path(path).name, len(report.accounts))
    return import_parsed_report(store, report, replace_existing=replace_existing, default_pin=default_pin)
