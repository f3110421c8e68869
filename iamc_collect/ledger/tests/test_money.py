"""Unit tests for paise arithmetic and ledger timestamps."""

from __future__ import annotations

import unittest
from datetime import date, datetime, timedelta, timezone

from iamc_collect.ledger.money import (
    format_inr,
    format_plain_rupees,
    now_iso,
    paise_to_rupees,
    rupees_to_paise,
    to_iso_date,
)


class TestRupeesToPaise(unittest.TestCase):
    def test_numbers_and_strings(self) -> None:
        self.assertEqual(rupees_to_paise(150), 15000)
        self.assertEqual(rupees_to_paise("120.50"), 12050)
        self.assertEqual(rupees_to_paise("1,200.50"), 120050)
        self.assertEqual(rupees_to_paise(0.1 + 0.2), 30)

    def test_rounds_half_up(self) -> None:
        self.assertEqual(rupees_to_paise("10.005"), 1001)

    def test_junk_is_zero(self) -> None:
        self.assertEqual(rupees_to_paise(None), 0)
        self.assertEqual(rupees_to_paise("abc"), 0)
        self.assertEqual(rupees_to_paise(float("nan")), 0)
        self.assertEqual(rupees_to_paise(True), 0)


class TestFormatting(unittest.TestCase):
    def test_plain_rupees_drops_trailing_zeros(self) -> None:
        self.assertEqual(format_plain_rupees(10000), "100")
        self.assertEqual(format_plain_rupees(12050), "120.5")
        self.assertEqual(format_plain_rupees(12345), "123.45")
        self.assertEqual(format_plain_rupees(0), "0")

    def test_inr_uses_indian_grouping(self) -> None:
        self.assertEqual(format_inr(12345678), "₹1,23,456.78")
        self.assertEqual(format_inr(99900), "₹999.00")
        self.assertEqual(format_inr(-150000), "-₹1,500.00")

    def test_paise_to_rupees(self) -> None:
        self.assertAlmostEqual(paise_to_rupees(12050), 120.5, places=2)
        self.assertEqual(paise_to_rupees(None), 0.0)


class TestTimestamps(unittest.TestCase):
    def test_now_iso_is_utc_with_milliseconds(self) -> None:
        moment = datetime(2026, 2, 12, 15, 41, 12, 345678, tzinfo=timezone(timedelta(hours=5, minutes=30)))
        self.assertEqual(now_iso(moment), "2026-02-12T10:11:12.345Z")

    def test_to_iso_date(self) -> None:
        self.assertEqual(to_iso_date(date(2026, 1, 19)), "2026-01-19")
        self.assertEqual(to_iso_date(datetime(2026, 1, 19, 23, 0)), "2026-01-19")
        self.assertEqual(len(to_iso_date()), 10)


if __name__ == "__main__":
    unittest.main()
