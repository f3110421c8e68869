"""Parse agent report workbooks (.xlsx) into a ParsedReport."""

from __future__ import annotations

import io
import logging
import re
import warnings
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Sequence, Union

import openpyxl

# Suppress openpyxl read_only "no default style" warning (cosmetic)
warnings.filterwarnings("ignore", message=".*default style.*", module="openpyxl")

from iamc_collect.ledger.errors import ParseError
from iamc_collect.ledger.models import AccountType, Frequency, ParsedAccount, ParsedReport
from iamc_collect.ledger.report_text import (
    collapse_spaces,
    make_society_code,
    normalize_account_type,
    normalize_frequency,
    parse_date_iso,
    split_trailing_code,
)

logger = logging.getLogger(__name__)

WorkbookSource = Union[str, Path, bytes, bytearray, BinaryIO]

ABSTRACT_SHEET = "abstract"
HEADER_MARKER = "ac no"
LOOSE_DATE_PATTERN = re.compile(r"(\d{2})[/.-](\d{2})[/.-](\d{4})")
TOTAL_PATTERN = re.compile(r"total", re.IGNORECASE)
NUMERIC_CELL = re.compile(r"^\d+$")

ACCOUNT_HEAD_LABEL = re.compile(r"^account head\s*:\s*", re.IGNORECASE)
AGENT_AC_NO_LABEL = re.compile(r"^agent ac\.?\s*no\s*:\s*", re.IGNORECASE)
AGENT_NAME_LABEL = re.compile(r"^agent name\s*:\s*", re.IGNORECASE)
DATE_LABEL = re.compile(r"^date\s*:-?\s*", re.IGNORECASE)
EMBEDDED_AGENT = re.compile(r"\s*Agent Name:\s*", re.IGNORECASE)

# Positional fallbacks when a header cell is not found by name
ACCOUNT_NO_FALLBACK = 0
NAME_FALLBACK = 1
INSTALLMENT_FALLBACK = 2
BALANCE_FALLBACK = 6
AMOUNT_FALLBACK_CELL = 3

INSTALLMENT_HEADERS = ("inst", "amount")


class ScanState(str, Enum):
    SEEKING_SOCIETY = "seeking_society"
    HEADER_CONTEXT = "header_context"
    IN_TABLE = "in_table"
    DONE = "done"


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%d-%m-%Y")
    if isinstance(value, date):
        return value.strftime("%d-%m-%Y")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _cell(row: Sequence[Any], index: Optional[int]) -> str:
    if index is None or index < 0 or index >= len(row):
        return ""
    return _cell_text(row[index])


def _parse_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", "")
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def normalize_header(value: Any) -> str:
    """Lowercase, dots to spaces, collapse whitespace: 'Ac. No.' -> 'ac no'."""
    text = _cell_text(value).lower().replace(".", " ")
    return " ".join(text.split())


def parse_any_date(text: str) -> Optional[str]:
    """First DD-MM-YYYY, DD/MM/YYYY or DD.MM.YYYY as ISO YYYY-MM-DD; strict dash pattern as fallback."""
    match = LOOSE_DATE_PATTERN.search(text or "")
    if not match:
        return parse_date_iso(text)
    dd, mm, yyyy = match.groups()
    return f"{yyyy}-{mm}-{dd}"


def _is_row_empty(row: Sequence[Any]) -> bool:
    return all(_cell_text(v) == "" for v in row)


def _is_labelled(first: str) -> bool:
    lowered = first.lower()
    return bool(
        "collection list" in lowered
        or "account head" in lowered
        or AGENT_AC_NO_LABEL.match(first)
        or AGENT_NAME_LABEL.match(first)
        or DATE_LABEL.match(first)
        or normalize_header(first) == HEADER_MARKER
    )


def _column_index(headers: List[str], *needles: str) -> Optional[int]:
    """Index of the first header cell containing any of the needles."""
    for idx, header in enumerate(headers):
        if any(needle in header for needle in needles):
            return idx
    return None


def _load_rows(source: WorkbookSource, sheet_name: Optional[str]) -> List[tuple]:
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(bytes(source))
    try:
        wb = openpyxl.load_workbook(source, read_only=True, data_only=True)
    except Exception as exc:
        raise ParseError(f"Could not open workbook: {exc}") from exc
    try:
        names = list(wb.sheetnames)
        if not names:
            raise ParseError("No worksheet found in Excel file")
        if sheet_name is None:
            sheet_name = next((n for n in names if n.strip().lower() != ABSTRACT_SHEET), names[0])
        if sheet_name not in names:
            raise ParseError(f"No worksheet found in Excel file (missing sheet {sheet_name!r})")
        ws = wb[sheet_name]
        return [tuple(r) for r in ws.iter_rows(values_only=True)]
    finally:
        wb.close()


class _SheetScanner:
    def __init__(self) -> None:
        self.state = ScanState.SEEKING_SOCIETY
        self.society_name = ""
        self.report_date_iso: Optional[str] = None
        self.agent_name = ""
        self.agent_code = ""
        self.head = ""
        self.head_code: Optional[str] = None
        self.frequency = Frequency.MONTHLY
        self.account_type = AccountType.SAVINGS
        self.columns: Dict[str, Optional[int]] = {}
        self.found_header = False
        self.accounts: List[ParsedAccount] = []

    def feed(self, row: Sequence[Any]) -> None:
        if self.state is ScanState.DONE:
            return
        if self.state is ScanState.IN_TABLE:
            self._read_data_row(row)
            return
        if _is_row_empty(row):
            return

        first = _cell(row, 0)
        if self.state is ScanState.SEEKING_SOCIETY and first and not _is_labelled(first):
            self.society_name = first
            self.report_date_iso = parse_any_date(first) or self.report_date_iso
            self.state = ScanState.HEADER_CONTEXT
            return

        if not self.report_date_iso:
            self.report_date_iso = parse_any_date(first) or parse_any_date(_cell(row, 1))

        if ACCOUNT_HEAD_LABEL.match(first):
            self._read_account_head(row, ACCOUNT_HEAD_LABEL.sub("", first).strip())
        elif AGENT_AC_NO_LABEL.match(first):
            code = _cell(row, 1) or AGENT_AC_NO_LABEL.sub("", first).strip()
            if code:
                self.agent_code = code
        elif AGENT_NAME_LABEL.match(first):
            self._read_agent(_cell(row, 1) or AGENT_NAME_LABEL.sub("", first).strip())
        elif DATE_LABEL.match(first):
            refined = parse_any_date(first) or parse_any_date(_cell(row, 1))
            if refined:
                self.report_date_iso = refined
        else:
            headers = [normalize_header(v) for v in row]
            if HEADER_MARKER in headers:
                self._read_header(headers)

    def _read_account_head(self, row: Sequence[Any], remainder: str) -> None:
        neighbour = _cell(row, 1)
        head_part = ""
        agent_part = ""
        for candidate in (_cell(row, 2), neighbour, remainder):
            if not candidate or NUMERIC_CELL.match(candidate):
                continue
            parts = EMBEDDED_AGENT.split(candidate, maxsplit=1)
            if not head_part:
                head_part = parts[0].strip()
            if len(parts) > 1 and not agent_part:
                agent_part = parts[1].strip()
        if head_part:
            self.head, self.head_code = split_trailing_code(head_part)
            if not self.head_code and NUMERIC_CELL.match(neighbour):
                self.head_code = neighbour
            self.frequency = normalize_frequency(self.head)
            self.account_type = normalize_account_type(self.head)
        self._read_agent(agent_part)

    def _read_agent(self, agent_part: str) -> None:
        if not agent_part:
            return
        name, code = split_trailing_code(agent_part)
        self.agent_name = name
        if code:
            self.agent_code = code

    def _read_header(self, headers: List[str]) -> None:
        account_no = _column_index(headers, HEADER_MARKER)
        name = _column_index(headers, "name")
        installment = _column_index(headers, *INSTALLMENT_HEADERS)
        balance = _column_index(headers, "balance")
        self.columns = {
            "account_no": ACCOUNT_NO_FALLBACK if account_no is None else account_no,
            "name": NAME_FALLBACK if name is None else name,
            "installment": INSTALLMENT_FALLBACK if installment is None else installment,
            "balance": BALANCE_FALLBACK if balance is None else balance,
            "collection": _column_index(headers, "collection"),
        }
        self.found_header = True
        self.state = ScanState.IN_TABLE
        logger.debug("Header columns resolved: %s", self.columns)

    def _read_data_row(self, row: Sequence[Any]) -> None:
        if _is_row_empty(row) or TOTAL_PATTERN.search(_cell(row, 0)):
            self.state = ScanState.DONE
            return
        account_no = _cell(row, self.columns["account_no"])
        name = collapse_spaces(_cell(row, self.columns["name"]))
        if not account_no or not name:
            logger.debug("Skipping sheet row without account number or name: %r", row)
            return

        installment = None
        for index in (self.columns["installment"], self.columns["collection"], AMOUNT_FALLBACK_CELL):
            if index is None or index >= len(row):
                continue
            installment = _parse_number(row[index])
            if installment is not None:
                break
        balance_index = self.columns["balance"]
        balance = _parse_number(row[balance_index]) if balance_index < len(row) else None

        self.accounts.append(
            ParsedAccount(
                account_no=account_no,
                client_name=name,
                balance_rupees=balance or 0.0,
                installment_rupees=installment or 0.0,
                account_type=self.account_type,
                frequency=self.frequency,
                account_head=self.head,
                account_head_code=self.head_code,
            )
        )

    def finish(self) -> ParsedReport:
        if not self.society_name:
            raise ParseError("Society name not found in Excel")
        if not self.agent_code or not self.agent_name:
            raise ParseError("Agent name/code not found in Excel")
        if not self.found_header:
            raise ParseError("Header row (Ac No) not found in Excel")
        if not self.accounts:
            raise ParseError("No account rows found in Excel")
        return ParsedReport(
            society_name=self.society_name,
            society_code=make_society_code(self.society_name),
            agent_name=self.agent_name,
            agent_code=self.agent_code,
            report_date_iso=self.report_date_iso,
            accounts=self.accounts,
        )


def parse_agent_report_excel(source: WorkbookSource, sheet_name: Optional[str] = None) -> ParsedReport:
    """
    Parse an agent collection-list workbook.

    `source` may be a path, raw bytes or a binary file object. The first sheet not
    named "Abstract" is read unless `sheet_name` is given.
    """
    rows = _load_rows(source, sheet_name)
    if not any(not _is_row_empty(r) for r in rows):
        raise ParseError("Excel sheet is empty")

    scanner = _SheetScanner()
    for row in rows:
        scanner.feed(row)
    report = scanner.finish()
    logger.info(
        "Parsed workbook report for %s agent %s: %s account(s)",
        report.society_code,
        report.agent_code,
        len(report.accounts),
    )
    return report
