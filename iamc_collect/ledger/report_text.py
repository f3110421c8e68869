"""Parse fixed-width agent report text into a ParsedReport."""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import List, Optional, Tuple

from iamc_collect.ledger.errors import ParseError
from iamc_collect.ledger.models import AccountType, Frequency, ParsedAccount, ParsedReport

logger = logging.getLogger(__name__)

FALLBACK_SOCIETY_CODE = "SOCIETY"

DATE_PATTERN = re.compile(r"(\d{2})-(\d{2})-(\d{4})")
SOCIETY_DATE_SPLIT = re.compile(r"\s+Date\s*:-\s*", re.IGNORECASE)
TRAILING_CODE = re.compile(r"(.+?)\s+(\d+)$")
EMBEDDED_AGENT = re.compile(r"\s+Agent Name:\s*", re.IGNORECASE)
ACCOUNT_HEAD_PREFIX = re.compile(r"^Account Head:\s*", re.IGNORECASE)
AGENT_NAME_PREFIX = re.compile(r"^Agent Name:\s*", re.IGNORECASE)
RULE_LINE = re.compile(r"^-{5,}$")
ACCOUNT_ROW = re.compile(r"^(\d{4,})\s+(.+?)\s+(-?\d[\d,]*(?:\.\d+)?)$")
_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


class ScanState(str, Enum):
    SEEKING_SOCIETY = "seeking_society"
    HEADER_CONTEXT = "header_context"
    IN_TABLE = "in_table"


def make_society_code(name: str) -> str:
    """
    Short society code derived from its name.

    >>> make_society_code("Shree Mahalaxmi Co-op Society")
    'SHREEM'
    >>> make_society_code("A B")
    'SOCIETY'
    """
    cleaned = _NON_ALNUM.sub("", name or "").upper()
    if len(cleaned) >= 4:
        return cleaned[:6]
    return FALLBACK_SOCIETY_CODE


def normalize_frequency(text: str) -> Frequency:
    value = (text or "").upper()
    if "DAILY" in value:
        return Frequency.DAILY
    if "WEEKLY" in value:
        return Frequency.WEEKLY
    return Frequency.MONTHLY


def normalize_account_type(text: str) -> AccountType:
    value = (text or "").upper()
    if "PIGMY" in value or "PIGMI" in value:
        return AccountType.PIGMY
    if "LOAN" in value:
        return AccountType.LOAN
    # recurring / deposit heads and anything unrecognised
    return AccountType.SAVINGS


def parse_date_iso(text: str) -> Optional[str]:
    """First DD-MM-YYYY in text as YYYY-MM-DD."""
    match = DATE_PATTERN.search(text or "")
    if not match:
        return None
    dd, mm, yyyy = match.groups()
    return f"{yyyy}-{mm}-{dd}"


def split_trailing_code(text: str) -> Tuple[str, Optional[str]]:
    """'PIGMY DAILY 007' -> ('PIGMY DAILY', '007'); no trailing number -> (text, None)."""
    text = (text or "").strip()
    match = TRAILING_CODE.match(text)
    if not match:
        return text, None
    return match.group(1).strip(), match.group(2).strip()


def collapse_spaces(text: str) -> str:
    return " ".join((text or "").split())


def _parse_amount(raw: str) -> float:
    try:
        return float(raw.replace(",", ""))
    except ValueError:
        return 0.0


class _TextReportScanner:
    """Line-by-line state machine; every line is handled by exactly one transition."""

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
        self.accounts: List[ParsedAccount] = []
        self.skipped_lines = 0

    def feed(self, raw_line: str) -> None:
        line = raw_line.strip()
        if not line:
            return
        if self.state is ScanState.SEEKING_SOCIETY:
            self._read_society(line)
            self.state = ScanState.HEADER_CONTEXT
            return

        lowered = line.lower()
        if lowered.startswith("account head:"):
            self._read_account_head(ACCOUNT_HEAD_PREFIX.sub("", line).strip())
        elif lowered.startswith("agent name:"):
            self._read_agent(AGENT_NAME_PREFIX.sub("", line).strip())
        elif lowered.startswith("ac no"):
            self.state = ScanState.IN_TABLE
        elif RULE_LINE.match(line):
            pass
        elif lowered.startswith("total records"):
            self.state = ScanState.HEADER_CONTEXT
        elif self.state is ScanState.IN_TABLE:
            self._read_row(line)

    def _read_society(self, line: str) -> None:
        if "date" in line.lower():
            self.society_name = SOCIETY_DATE_SPLIT.split(line)[0].strip()
            self.report_date_iso = parse_date_iso(line)
        else:
            self.society_name = line

    def _read_account_head(self, rest: str) -> None:
        parts = EMBEDDED_AGENT.split(rest, maxsplit=1)
        head_part = parts[0].strip()
        if head_part:
            self.head, self.head_code = split_trailing_code(head_part)
            self.frequency = normalize_frequency(self.head)
            self.account_type = normalize_account_type(self.head)
        if len(parts) > 1:
            self._read_agent(parts[1].strip())

    def _read_agent(self, agent_part: str) -> None:
        if not agent_part:
            return
        name, code = split_trailing_code(agent_part)
        self.agent_name = name
        if code:
            self.agent_code = code

    def _read_row(self, line: str) -> None:
        match = ACCOUNT_ROW.match(line)
        if not match:
            self.skipped_lines += 1
            logger.debug("Skipping unmatched table line: %r", line)
            return
        account_no, name, amount_raw = match.groups()
        amount = _parse_amount(amount_raw)
        self.accounts.append(
            ParsedAccount(
                account_no=account_no.strip(),
                client_name=collapse_spaces(name),
                balance_rupees=amount,
                installment_rupees=amount,
                account_type=self.account_type,
                frequency=self.frequency,
                account_head=self.head,
                account_head_code=self.head_code,
            )
        )

    def finish(self) -> ParsedReport:
        if not self.society_name:
            raise ParseError("Society name not found")
        if not self.agent_code or not self.agent_name:
            raise ParseError("Agent name/code not found")
        if not self.accounts:
            raise ParseError("No account rows found")
        return ParsedReport(
            society_name=self.society_name,
            society_code=make_society_code(self.society_name),
            agent_name=self.agent_name,
            agent_code=self.agent_code,
            report_date_iso=self.report_date_iso,
            accounts=self.accounts,
        )


def parse_agent_report_text(text: str) -> ParsedReport:
    """Parse the fixed-width "collection list" report exported by the society back office."""
    scanner = _TextReportScanner()
    for line in (text or "").splitlines():
        scanner.feed(line)
    report = scanner.finish()
    logger.info(
        "Parsed text report for %s agent %s: %s account(s), %s line(s) skipped",
        report.society_code,
        report.agent_code,
        len(report.accounts),
        scanner.skipped_lines,
    )
    return report
