"""Export file names and export file bodies (writing helpers shared with the reader)."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import openpyxl

from iamc_collect.ledger.errors import ParseError
from iamc_collect.ledger.lots import lot_file_code

logger = logging.getLogger(__name__)

FILE_PREFIX = "IAMC"
SHEET_TITLE = "Collections"
EXPORT_EXTENSIONS = ("xlsx", "txt")

MIME_TYPES = {
    "txt": "text/plain",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}

TABLE_COLUMNS = [
    "Account No",
    "Client Name",
    "Account Head",
    "Head Code",
    "Account Type",
    "Frequency",
    "Collected Amount",
    "Collected At",
    "Collection Date",
    "Remarks",
]

HEADER_LABELS = {
    "Society": "society",
    "Agent": "agent",
    "Exported At": "exported_at",
    "Lot": "lot",
    "Collections": "collections",
}

FILE_NAME_PATTERN = re.compile(
    r"^IAMC_(?P<society>[^_]+)_(?P<agent>[^_]+)_(?P<lot>.+)_(?P<date>\d{8})_(?P<time>\d{6})Z\.(?P<ext>xlsx|txt)$",
    re.IGNORECASE,
)
_SEGMENT_UNSAFE = re.compile(r"[^A-Za-z0-9]+")


@dataclass
class ExportFileName:
    society_code: str
    agent_code: str
    lot_code: str
    date_iso: str  # YYYY-MM-DD
    time_iso: str  # HH:MM:SS (UTC)
    extension: str


@dataclass
class ExportView:
    """Export file read back for display: header metadata plus table lines."""

    path: Path
    name: Optional[ExportFileName]
    header: Dict[str, str] = field(default_factory=dict)
    rows: List[Dict[str, str]] = field(default_factory=list)

    @property
    def collections_count(self) -> int:
        raw = self.header.get("collections", "")
        return int(raw) if raw.isdigit() else len(self.rows)


def compact_stamp(iso: str) -> str:
    """
    Filename timestamp from an ISO UTC instant.

    >>> compact_stamp("2026-02-08T18:51:12.345Z")
    '20260208_185112Z'
    """
    date_part = iso[:10].replace("-", "")
    time_part = iso[11:19].replace(":", "")
    if len(date_part) == 8 and len(time_part) == 6 and (date_part + time_part).isdigit():
        return f"{date_part}_{time_part}Z"
    digits = re.sub(r"[^0-9]", "", iso)
    return f"{digits[:8]}_{digits[8:14]}Z"


def file_name_segment(code: str) -> str:
    """Society or agent code with `_` and other separators folded to '-': 'SOC_01' -> 'SOC-01'."""
    cleaned = _SEGMENT_UNSAFE.sub("-", (code or "").strip()).strip("-")
    return cleaned or "NA"


def build_export_file_name(society_code: str, agent_code: str, lot_value: str, exported_at: str, extension: str) -> str:
    society, agent = file_name_segment(society_code), file_name_segment(agent_code)
    return f"{FILE_PREFIX}_{society}_{agent}_{lot_file_code(lot_value)}_{compact_stamp(exported_at)}.{extension}"


def parse_export_file_name(name: str) -> Optional[ExportFileName]:
    match = FILE_NAME_PATTERN.match(Path(name).name)
    if not match:
        return None
    d, t = match.group("date"), match.group("time")
    return ExportFileName(
        society_code=match.group("society"),
        agent_code=match.group("agent"),
        lot_code=match.group("lot"),
        date_iso=f"{d[:4]}-{d[4:6]}-{d[6:]}",
        time_iso=f"{t[:2]}:{t[2:4]}:{t[4:]}",
        extension=match.group("ext").lower(),
    )


def header_lines(society_name: str, agent_code: str, agent_name: str, exported_at: str, lot_label: str, count: int) -> List[str]:
    return [
        f"Society: {society_name}",
        f"Agent: {agent_code} - {agent_name}",
        f"Exported At: {exported_at}",
        f"Lot: {lot_label}",
        f"Collections: {count}",
    ]


def write_text_export(path: Path, header: Sequence[str], rows: Sequence[Sequence[object]]) -> None:
    lines = list(header) + [""]
    lines.append("\t".join(TABLE_COLUMNS))
    lines.extend("\t".join("" if v is None else str(v) for v in row) for row in rows)
    path.write_text("\n".join(lines), encoding="utf-8")


def write_workbook_export(path: Path, header: Sequence[str], rows: Sequence[Sequence[object]]) -> None:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE
    for line in header:
        ws.append([line])
    ws.append([])
    ws.append(TABLE_COLUMNS)
    for row in rows:
        ws.append(list(row))
    wb.save(path)


def _parse_lines(lines: List[List[str]]) -> Tuple[Dict[str, str], List[Dict[str, str]]]:
    header: Dict[str, str] = {}
    rows: List[Dict[str, str]] = []
    in_table = False
    for cells in lines:
        if not any(c.strip() for c in cells):
            continue
        if not in_table:
            if cells[0].strip() == TABLE_COLUMNS[0]:
                in_table = True
                continue
            label, sep, value = cells[0].partition(":")
            if sep and label.strip() in HEADER_LABELS:
                header[HEADER_LABELS[label.strip()]] = value.strip()
            continue
        padded = cells + [""] * (len(TABLE_COLUMNS) - len(cells))
        rows.append({column: padded[i].strip() for i, column in enumerate(TABLE_COLUMNS)})
    if not in_table:
        raise ParseError("Export file has no collections table")
    return header, rows


def _cell_str(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def read_export_file(path: Union[str, Path]) -> ExportView:
    """Read a .txt or .xlsx export written by the exporter."""
    path = Path(path)
    suffix = path.suffix.lower().lstrip(".")
    if suffix == "txt":
        lines = [line.split("\t") for line in path.read_text(encoding="utf-8").splitlines()]
    elif suffix == "xlsx":
        wb = openpyxl.load_workbook(path, data_only=True)
        try:
            ws = wb[SHEET_TITLE] if SHEET_TITLE in wb.sheetnames else wb.worksheets[0]
            lines = [[_cell_str(v) for v in row] for row in ws.iter_rows(values_only=True)]
        finally:
            wb.close()
    else:
        raise ParseError(f"Unsupported export file type: {path.name}")

    header, rows = _parse_lines(lines)
    logger.debug("Read export %s: %s row(s)", path.name, len(rows))
    return ExportView(path=path, name=parse_export_file_name(path.name), header=header, rows=rows)
