"""Lot keys: the (head code, account type, frequency) partition used everywhere."""

from __future__ import annotations

import re
from enum import Enum
from typing import Optional, Union

EnumText = Union[str, Enum]

DEFAULT_LOT_FILE_CODE = "LOT"
_NON_ALNUM_RUN = re.compile(r"[^A-Z0-9]+")


def _text(value: EnumText) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def normalize_head_code(account_head_code: Optional[str]) -> Optional[str]:
    """Trimmed head code, or None when blank."""
    if account_head_code is None:
        return None
    code = str(account_head_code).strip()
    return code or None


def lot_key_from_parts(
    account_head_code: Optional[str],
    account_type: EnumText,
    frequency: EnumText,
) -> str:
    """
    Canonical lot key.

    >>> lot_key_from_parts(" 007 ", "PIGMY", "DAILY")
    '007_PIGMY_DAILY'
    >>> lot_key_from_parts(None, "LOAN", "MONTHLY")
    'LOAN_MONTHLY'
    """
    head_code = normalize_head_code(account_head_code)
    if head_code:
        return f"{head_code}_{_text(account_type)}_{_text(frequency)}"
    return f"{_text(account_type)}_{_text(frequency)}"


def lot_label(
    account_head: Optional[str],
    account_head_code: Optional[str],
    account_type: EnumText,
    frequency: EnumText,
) -> str:
    """Human label: account head (or type) with the head code in brackets."""
    head = (account_head or "").strip()
    base = head or _text(account_type)
    code = normalize_head_code(account_head_code)
    return f"{base} ({code})" if code else base


def lot_file_code(value: str) -> str:
    """Filename-safe lot segment: uppercase, non-alphanumeric runs folded to '_'."""
    cleaned = _NON_ALNUM_RUN.sub("_", (value or "").upper()).strip("_")
    return cleaned or DEFAULT_LOT_FILE_CODE
