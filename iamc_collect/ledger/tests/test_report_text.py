"""Unit tests for the fixed-width agent report text parser."""

from __future__ import annotations

import unittest

from iamc_collect.ledger.errors import ParseError
from iamc_collect.ledger.models import AccountType, Frequency
from iamc_collect.ledger.report_text import (
    make_society_code,
    normalize_account_type,
    normalize_frequency,
    parse_agent_report_text,
    split_trailing_code,
)

RULE = "-" * 70

DAILY_REPORT = f"""PRIYADARSHANI MAHILA CREDIT SOCIETY, karanja                 Date :- 19-01-2026
main road - 442203
Agent Wise Client Account Report
Account Head:DAILY PIGMY ACCOUNT  007 Agent Name:Mr.PRAKASH VITHOBA BIRGADE  00100001

{RULE}
Ac No     Name                                       Balance
{RULE}
00700116  BEBITAI MARAOTRAO BHOKRE                    650.00
00700346  HEMANT MANOHAR BOBDE                        200.00
00700990  RAJU SHAMRAO WIRULKAR                       520.00

{RULE}
          Total Records =                                  3
          Total Tr Amount =                          1370.00
{RULE}"""

LONG_NAME_REPORT = f"""PRIYADARSHANI MAHILA CREDIT SOCIETY, karanja                 Date :- 19-01-2026
Agent Wise Client Account Report
Account Head:DAILY PIGMY ACCOUNT  007 Agent Name:Mr.LALIT DNYANESHOWER DHOLE  00100006

{RULE}
Ac No     Name                                       Balance
{RULE}
00704713  NITESH GANPATRAO KALASKAR                   100.00
00704788  SUWARNA NAMDEORAO   DESHMUKH SUWARNA PREM GAKHARE      200.00
00704912  MITHUNSINGH AVTARSINGH BAWARI              5,100.00
"""

COMMA_REPORT = f"""TEST SOCIETY                 Date :- 01-02-2026
Agent Wise Client Account Report
Account Head:MONTHLY RECURRING DEPOSIT  034 Agent Name:Mr.TEST USER  00000001
{RULE}
Ac No     Name                                       Balance
{RULE}
03400001  SAMPLE PERSON                             1,200.50
"""


class TestParseAgentReportText(unittest.TestCase):
    def test_parses_header_agent_and_rows(self) -> None:
        report = parse_agent_report_text(DAILY_REPORT)
        self.assertEqual(report.society_name, "PRIYADARSHANI MAHILA CREDIT SOCIETY, karanja")
        self.assertEqual(report.society_code, "PRIYAD")
        self.assertEqual(report.report_date_iso, "2026-01-19")
        self.assertEqual(report.agent_code, "00100001")
        self.assertEqual(report.agent_name, "Mr.PRAKASH VITHOBA BIRGADE")
        self.assertEqual(len(report.accounts), 3)

        first = report.accounts[0]
        self.assertEqual(first.account_no, "00700116")
        self.assertEqual(first.client_name, "BEBITAI MARAOTRAO BHOKRE")
        self.assertEqual(first.account_head, "DAILY PIGMY ACCOUNT")
        self.assertEqual(first.account_head_code, "007")
        self.assertEqual(first.account_type, AccountType.PIGMY)
        self.assertEqual(first.frequency, Frequency.DAILY)
        self.assertEqual(first.balance_rupees, 650)
        self.assertEqual(first.lot_key, "007_PIGMY_DAILY")

    def test_long_names_are_collapsed(self) -> None:
        report = parse_agent_report_text(LONG_NAME_REPORT)
        self.assertEqual(report.agent_code, "00100006")
        long_name = next(a for a in report.accounts if a.account_no == "00704788")
        self.assertEqual(long_name.client_name, "SUWARNA NAMDEORAO DESHMUKH SUWARNA PREM GAKHARE")
        self.assertEqual(long_name.balance_rupees, 200)

    def test_thousands_separator_in_balance(self) -> None:
        report = parse_agent_report_text(COMMA_REPORT)
        self.assertEqual(report.accounts[0].balance_rupees, 1200.5)
        self.assertEqual(report.accounts[0].account_type, AccountType.SAVINGS)
        self.assertEqual(report.accounts[0].frequency, Frequency.MONTHLY)
        self.assertEqual(report.society_code, "TESTSO")

    def test_separate_agent_line(self) -> None:
        text = "\n".join(
            [
                "SOME SOCIETY",
                "Account Head:LOAN ACCOUNT 021",
                "Agent Name:Mrs.ASHA 00100002",
                "Ac No  Name  Balance",
                "02100001  LOAN CLIENT  15000.00",
            ]
        )
        report = parse_agent_report_text(text)
        self.assertIsNone(report.report_date_iso)
        self.assertEqual(report.agent_name, "Mrs.ASHA")
        self.assertEqual(report.accounts[0].lot_key, "021_LOAN_MONTHLY")

    def test_stray_lines_inside_table_are_skipped(self) -> None:
        text = "\n".join(
            [
                "SOME SOCIETY",
                "Account Head:DAILY PIGMY ACCOUNT 007 Agent Name:Mr.RAVI 00100012",
                "Ac No  Name  Balance",
                "00700001  FIRST CLIENT  100.00",
                "          (WIFE OF LATE R. K.)",
                "Sub Total                 100.00",
                "00700002  SECOND CLIENT  250.00",
            ]
        )
        with self.assertLogs("iamc_collect.ledger.report_text", level="DEBUG") as logs:
            report = parse_agent_report_text(text)
        self.assertEqual([a.account_no for a in report.accounts], ["00700001", "00700002"])
        self.assertEqual([a.client_name for a in report.accounts], ["FIRST CLIENT", "SECOND CLIENT"])
        self.assertEqual(report.accounts[1].balance_rupees, 250.0)
        skipped = [r for r in logs.output if "Skipping unmatched table line" in r]
        self.assertEqual(len(skipped), 2)
        self.assertTrue(any("2 account(s), 2 line(s) skipped" in r for r in logs.output))

    def test_missing_parts_raise(self) -> None:
        with self.assertRaisesRegex(ParseError, "Society name not found"):
            parse_agent_report_text("   \n\n")
        with self.assertRaisesRegex(ParseError, "Agent name/code not found"):
            parse_agent_report_text("SOCIETY\nAc No Name Balance\n00700001  A  10.00")
        with self.assertRaisesRegex(ParseError, "No account rows found"):
            parse_agent_report_text("SOCIETY\nAgent Name:X 001\nAc No Name Balance\n")


class TestHelpers(unittest.TestCase):
    def test_society_code(self) -> None:
        self.assertEqual(make_society_code("Shree Mahalaxmi Co-op Society"), "SHREEM")
        self.assertEqual(make_society_code("A-B"), "SOCIETY")

    def test_head_normalization(self) -> None:
        self.assertEqual(normalize_account_type("DAILY PIGMI"), AccountType.PIGMY)
        self.assertEqual(normalize_account_type("GOLD LOAN"), AccountType.LOAN)
        self.assertEqual(normalize_account_type("RECURRING"), AccountType.SAVINGS)
        self.assertEqual(normalize_frequency("WEEKLY SAVINGS"), Frequency.WEEKLY)
        self.assertEqual(normalize_frequency("anything"), Frequency.MONTHLY)

    def test_split_trailing_code(self) -> None:
        self.assertEqual(split_trailing_code("DAILY PIGMY ACCOUNT  007"), ("DAILY PIGMY ACCOUNT", "007"))
        self.assertEqual(split_trailing_code("LOAN ACCOUNT"), ("LOAN ACCOUNT", None))


if __name__ == "__main__":
    unittest.main()
