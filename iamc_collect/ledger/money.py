"""Integer paise arithmetic and the timestamp/date strings stored in the ledger."""

from __future__ import annotations

import math
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

PAISE_PER_RUPEE = 100


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    try:
        result = Decimal(str(value).strip().replace(",", ""))
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


def rupees_to_paise(value: Any) -> int:
    """Rupees (number or numeric string) to whole paise, rounding half up; junk becomes 0."""
    amount = _to_decimal(value)
    if amount is None:
        return 0
    return int((amount * PAISE_PER_RUPEE).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def paise_to_rupees(paise: Any) -> float:
    amount = _to_decimal(paise)
    if amount is None:
        return 0.0
    return float(amount / PAISE_PER_RUPEE)


def format_plain_rupees(paise: int) -> str:
    """Rupee amount without trailing zeros: 10000 -> '100', 12050 -> '120.5'."""
    amount = Decimal(int(paise)) / PAISE_PER_RUPEE
    text = format(amount.quantize(Decimal("0.01")), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def format_inr(paise: int) -> str:
    """Indian-grouped currency string, e.g. 12345678 -> '₹1,23,456.78'."""
    amount = (Decimal(int(paise)) / PAISE_PER_RUPEE).quantize(Decimal("0.01"))
    sign = "-" if amount < 0 else ""
    whole, frac = format(abs(amount), "f").split(".")
    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ",".join(groups + [tail])
    return f"{sign}₹{whole}.{frac}"


def now_iso(moment: Optional[datetime] = None) -> str:
    """UTC timestamp with millisecond precision: 2026-02-12T10:11:12.345Z."""
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def to_iso_date(value: Optional[date] = None) -> str:
    """Local calendar date as YYYY-MM-DD."""
    value = value or date.today()
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()
