"""Unit tests for ledger data access: credentials, accounts, lots, collections, exports."""

from __future__ import annotations

import sqlite3
import unittest
from unittest import mock

from iamc_collect.ledger import repo
from iamc_collect.ledger.credentials import hash_pin
from iamc_collect.ledger.errors import StorageError
from iamc_collect.ledger.models import AccountStatus, AccountType, CollectionStatus, Frequency, Lot
from iamc_collect.ledger.store import LedgerStore

PIGMY_007 = Lot(AccountType.PIGMY, Frequency.DAILY, account_head_code="007", account_head="DAILY PIGMY ACCOUNT")
LOAN_021 = Lot(AccountType.LOAN, Frequency.MONTHLY, account_head_code="021", account_head="LOAN ACCOUNT")
LOAN_NO_CODE = Lot(AccountType.LOAN, Frequency.MONTHLY)


class LedgerTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.store = LedgerStore().open()
        self.society = repo.upsert_society(self.store, "soc001", "Society One")
        self.agent, _ = repo.upsert_agent(self.store, self.society.id, "001", "Agent One")

    def tearDown(self) -> None:
        self.store.close()

    def add_account(self, account_no: str, name: str, lot: Lot, **kwargs):
        account_id, _ = repo.upsert_account(
            self.store,
            self.society.id,
            kwargs.pop("agent_id", self.agent.id),
            account_no=account_no,
            client_name=name,
            account_type=lot.account_type,
            frequency=lot.frequency,
            account_head=lot.account_head,
            account_head_code=lot.account_head_code,
            **kwargs,
        )
        account = repo.get_account_by_id(self.store, account_id)
        assert account is not None
        return account


class TestSocietiesAndAgents(LedgerTestCase):
    def test_upsert_society_uppercases_code_and_refreshes_name(self) -> None:
        self.assertEqual(self.society.code, "SOC001")
        again = repo.upsert_society(self.store, "SOC001", "Society One (Renamed)")
        self.assertEqual(again.id, self.society.id)
        found = repo.get_society_by_code(self.store, " soc001 ")
        assert found is not None
        self.assertEqual(found.name, "Society One (Renamed)")

    def test_upsert_agent_keeps_pin_unless_given(self) -> None:
        agent, created = repo.upsert_agent(self.store, self.society.id, "001", "Agent Renamed", phone="99")
        self.assertFalse(created)
        self.assertEqual(agent.id, self.agent.id)
        self.assertEqual(agent.name, "Agent Renamed")
        self.assertEqual(agent.phone, "99")
        self.assertIsNotNone(repo.authenticate_agent(self.store, "SOC001", "001", "0000"))

        repo.upsert_agent(self.store, self.society.id, "001", "Agent Renamed", pin_hash=hash_pin(self.society.id, "4321"))
        self.assertIsNone(repo.authenticate_agent(self.store, "SOC001", "001", "0000"))
        self.assertIsNotNone(repo.authenticate_agent(self.store, "SOC001", "001", "4321"))

    def test_list_agent_profiles_and_active_agents(self) -> None:
        profiles = repo.list_agent_profiles(self.store)
        self.assertEqual([(p.society.code, p.agent.code) for p in profiles], [("SOC001", "001")])
        self.assertEqual([a.code for a in repo.list_active_agents(self.store, self.society.id)], ["001"])


class TestAuthentication(LedgerTestCase):
    def test_login_with_society_code(self) -> None:
        profile = repo.authenticate_agent(self.store, "soc001", "001", "0000")
        assert profile is not None
        self.assertEqual(profile.agent.id, self.agent.id)
        self.assertEqual(profile.society.name, "Society One")
        self.assertIsNone(repo.authenticate_agent(self.store, "SOC001", "001", "9999"))

    def test_blank_society_with_unique_agent_code(self) -> None:
        profile = repo.authenticate_agent(self.store, "", "001", "0000")
        self.assertIsNotNone(profile)

    def test_blank_society_with_ambiguous_agent_code_fails(self) -> None:
        other = repo.upsert_society(self.store, "SOC002", "Society Two")
        repo.upsert_agent(self.store, other.id, "001", "Agent Elsewhere")
        self.assertIsNone(repo.authenticate_agent(self.store, "", "001", "0000"))
        profile = repo.authenticate_agent(self.store, "SOC002", "001", "0000")
        assert profile is not None
        self.assertEqual(profile.society.code, "SOC002")

    def test_blank_society_picks_the_only_pin_match(self) -> None:
        other = repo.upsert_society(self.store, "SOC002", "Society Two")
        repo.upsert_agent(self.store, other.id, "001", "Agent Elsewhere", pin_hash=hash_pin(other.id, "5555"))
        profile = repo.authenticate_agent(self.store, "", "001", "5555")
        assert profile is not None
        self.assertEqual(profile.society.code, "SOC002")

    def test_update_pin_by_code(self) -> None:
        self.assertEqual(repo.update_agent_pin_by_code(self.store, "001", "2468"), repo.PIN_UPDATED)
        self.assertIsNotNone(repo.authenticate_agent(self.store, "", "001", "2468"))
        self.assertEqual(repo.update_agent_pin_by_code(self.store, "404", "2468"), repo.PIN_NOT_FOUND)

        other = repo.upsert_society(self.store, "SOC002", "Society Two")
        repo.upsert_agent(self.store, other.id, "001", "Agent Elsewhere")
        self.assertEqual(repo.update_agent_pin_by_code(self.store, "001", "1111"), repo.PIN_AMBIGUOUS)
        self.assertEqual(
            repo.update_agent_pin_by_code(self.store, "001", "1111", society_code="SOC002"), repo.PIN_UPDATED
        )


class TestAccounts(LedgerTestCase):
    def test_same_account_number_in_two_lots_is_two_rows(self) -> None:
        pigmy = self.add_account("00700001", "PIGMY CLIENT", PIGMY_007)
        loan = self.add_account("00700001", "LOAN CLIENT", LOAN_021)
        self.assertNotEqual(pigmy.id, loan.id)
        self.assertEqual(pigmy.lot_key, "007_PIGMY_DAILY")
        self.assertEqual(loan.lot_key, "021_LOAN_MONTHLY")
        self.assertEqual(repo.get_account_count(self.store, self.society.id), 2)

    def test_reupsert_updates_in_place_and_keeps_dates(self) -> None:
        first = self.add_account("00700001", "OLD NAME", PIGMY_007, opened_at="2020-01-01", installment_paise=1000)
        second = self.add_account("00700001", "NEW NAME", PIGMY_007, installment_paise=2500)
        self.assertEqual(first.id, second.id)
        self.assertEqual(second.client_name, "NEW NAME")
        self.assertEqual(second.installment_paise, 2500)
        self.assertEqual(second.opened_at, "2020-01-01")
        self.assertEqual(second.status, AccountStatus.ACTIVE)

    def test_search_by_last_digits_skips_closed(self) -> None:
        self.add_account("00700116", "A", PIGMY_007)
        self.add_account("00700216", "B", PIGMY_007, status=AccountStatus.CLOSED)
        self.add_account("00700999", "C", PIGMY_007)
        found = repo.search_accounts_by_last_digits(self.store, self.society.id, "16")
        self.assertEqual([a.account_no for a in found], ["00700116"])
        self.assertEqual(repo.search_accounts_by_last_digits(self.store, self.society.id, "  "), [])

    def test_search_treats_like_wildcards_literally(self) -> None:
        self.add_account("00700116", "A", PIGMY_007)
        self.add_account("0070_16", "B", PIGMY_007)
        self.assertEqual(repo.search_accounts_by_last_digits(self.store, self.society.id, "%"), [])
        found = repo.search_accounts_by_last_digits(self.store, self.society.id, "_16")
        self.assertEqual([a.account_no for a in found], ["0070_16"])

    def test_exact_number_lookup_is_scoped_to_the_agent(self) -> None:
        other, _ = repo.upsert_agent(self.store, self.society.id, "002", "Agent Two")
        for n in range(60):
            self.add_account(f"{n:02d}1234", f"OTHER {n}", PIGMY_007, agent_id=other.id)
        self.add_account("1234", "MINE", PIGMY_007)
        self.add_account("1234", "MINE LOAN", LOAN_021)
        self.add_account("1234", "MINE CLOSED", LOAN_NO_CODE, status=AccountStatus.CLOSED)
        found = repo.find_active_accounts_by_number(self.store, self.society.id, self.agent.id, " 1234 ")
        self.assertEqual([a.lot_key for a in found], ["007_PIGMY_DAILY", "021_LOAN_MONTHLY"])
        self.assertEqual(repo.find_active_accounts_by_number(self.store, self.society.id, self.agent.id, "234"), [])

    def test_lots_listing_and_counts(self) -> None:
        self.add_account("1", "A", PIGMY_007)
        self.add_account("2", "B", PIGMY_007)
        self.add_account("3", "C", LOAN_NO_CODE)
        lots = repo.list_account_lots(self.store, self.society.id)
        self.assertEqual([(lot.key, lot.count) for lot in lots], [("007_PIGMY_DAILY", 2), ("LOAN_MONTHLY", 1)])
        self.assertEqual(repo.get_account_count_by_lot(self.store, self.society.id, LOAN_NO_CODE), 1)
        self.assertEqual([a.account_no for a in repo.list_accounts(self.store, self.society.id, PIGMY_007)], ["1", "2"])

    def test_active_lot_round_trip_and_clear(self) -> None:
        self.assertIsNone(repo.get_active_lot(self.store, self.society.id))
        repo.save_active_lot(self.store, self.society.id, LOAN_021)
        active = repo.get_active_lot(self.store, self.society.id)
        assert active is not None
        self.assertEqual(active.key, "021_LOAN_MONTHLY")
        self.assertEqual(active.account_head, "LOAN ACCOUNT")
        repo.save_active_lot(self.store, self.society.id, None)
        self.assertIsNone(repo.get_active_lot(self.store, self.society.id))

    def test_unknown_enum_in_row_raises_storage_error(self) -> None:
        account = self.add_account("1", "A", PIGMY_007)
        self.store.execute("UPDATE accounts SET account_type = 'BOGUS' WHERE id = ?", (account.id,))
        with self.assertRaises(StorageError):
            repo.get_account_by_id(self.store, account.id)


class TestCollections(LedgerTestCase):
    def test_collect_twice_same_day_updates_in_place(self) -> None:
        account = self.add_account("00700001", "A", PIGMY_007)
        first = repo.upsert_collection_for_today(
            self.store, self.society.id, self.agent.id, account, 10000, collection_date="2026-02-12"
        )
        second = repo.upsert_collection_for_today(
            self.store, self.society.id, self.agent.id, account, 15000, remarks="late", collection_date="2026-02-12"
        )
        self.assertEqual(first.id, second.id)
        self.assertEqual(second.collected_paise, 15000)
        self.assertEqual(second.remarks, "late")
        rows = repo.list_collections_for_date(self.store, self.agent.id, "2026-02-12")
        self.assertEqual(len(rows), 1)

    def test_totals_per_date_and_lot(self) -> None:
        pigmy = self.add_account("1", "A", PIGMY_007)
        loan = self.add_account("2", "B", LOAN_021)
        for account, paise in ((pigmy, 10000), (loan, 25050)):
            repo.upsert_collection_for_today(
                self.store, self.society.id, self.agent.id, account, paise, collection_date="2026-02-12"
            )
        totals = repo.get_collection_totals_for_date(self.store, self.agent.id, "2026-02-12")
        self.assertEqual((totals.count, totals.total_paise), (2, 35050))
        by_lot = repo.get_collection_totals_for_date_by_lot(self.store, self.agent.id, "2026-02-12", LOAN_021)
        self.assertEqual((by_lot.count, by_lot.total_paise), (1, 25050))
        empty = repo.get_collection_totals_for_date(self.store, self.agent.id, "2026-02-13")
        self.assertEqual((empty.count, empty.total_paise), (0, 0))
        self.assertEqual(repo.list_collection_dates(self.store, self.agent.id), ["2026-02-12"])

    def test_mark_exported_flips_status_and_records_export(self) -> None:
        account = self.add_account("1", "A", PIGMY_007)
        entry = repo.upsert_collection_for_today(
            self.store, self.society.id, self.agent.id, account, 10000, collection_date="2026-02-12"
        )
        self.assertEqual(repo.get_pending_export_counts(self.store, self.agent.id), 1)
        pending = repo.list_pending_collections(self.store, self.agent.id)
        self.assertEqual(pending[0].client_name, "A")
        self.assertEqual(pending[0].lot.key, "007_PIGMY_DAILY")

        record = repo.mark_exported(
            self.store, self.society.id, self.agent.id, "2026-02-12T10:11:12.345Z", "/tmp/x.txt", [entry.id]
        )
        self.assertEqual(record.collections_count, 1)
        self.assertEqual(repo.get_pending_export_counts(self.store, self.agent.id), 0)
        stored = repo.get_collection_for_account_date(self.store, self.agent.id, account.id, "2026-02-12")
        assert stored is not None
        self.assertEqual(stored.status, CollectionStatus.EXPORTED)
        self.assertEqual(stored.exported_at, "2026-02-12T10:11:12.345Z")
        exports = repo.list_exports_for_date(self.store, self.agent.id, "2026-02-12")
        self.assertEqual([e.id for e in exports], [record.id])


    def test_mark_exported_rolls_back_when_export_insert_fails(self) -> None:
        account = self.add_account("1", "A", PIGMY_007)
        entry = repo.upsert_collection_for_today(
            self.store, self.society.id, self.agent.id, account, 10000, collection_date="2026-02-12"
        )
        real_execute = self.store.execute

        def fail_on_export_insert(sql, params=()):
            if "INSERT INTO exports" in sql:
                raise sqlite3.OperationalError("disk I/O error")
            return real_execute(sql, params)

        with mock.patch.object(self.store, "execute", side_effect=fail_on_export_insert):
            with self.assertRaises(sqlite3.OperationalError):
                repo.mark_exported(
                    self.store, self.society.id, self.agent.id, "2026-02-12T10:11:12.345Z", None, [entry.id]
                )
        stored = repo.get_collection_for_account_date(self.store, self.agent.id, account.id, "2026-02-12")
        assert stored is not None
        self.assertEqual(stored.status, CollectionStatus.PENDING)
        self.assertIsNone(stored.exported_at)
        self.assertEqual(repo.get_pending_export_counts(self.store, self.agent.id), 1)
        self.assertEqual(repo.list_exports_for_date(self.store, self.agent.id, "2026-02-12"), [])


class TestClearClientDataByLots(LedgerTestCase):
    def test_clears_only_the_given_lot(self) -> None:
        pigmy = self.add_account("00700001", "A", PIGMY_007)
        self.add_account("00700001", "A", LOAN_021)
        repo.upsert_collection_for_today(self.store, self.society.id, self.agent.id, pigmy, 100)

        removed = repo.clear_client_data_by_lots(self.store, self.society.id, self.agent.id, [PIGMY_007])
        self.assertEqual(removed, 1)
        remaining = repo.list_accounts(self.store, self.society.id)
        self.assertEqual([a.lot_key for a in remaining], ["021_LOAN_MONTHLY"])
        self.assertEqual(repo.get_pending_export_counts(self.store, self.agent.id), 0)

    def test_blank_head_code_does_not_match_coded_lots(self) -> None:
        self.add_account("1", "A", LOAN_NO_CODE)
        self.add_account("2", "B", LOAN_021)
        removed = repo.clear_client_data_by_lots(self.store, self.society.id, self.agent.id, [LOAN_NO_CODE])
        self.assertEqual(removed, 1)
        self.assertEqual([a.account_no for a in repo.list_accounts(self.store, self.society.id)], ["2"])

    def test_other_agents_are_untouched(self) -> None:
        other, _ = repo.upsert_agent(self.store, self.society.id, "002", "Agent Two")
        self.add_account("1", "A", PIGMY_007)
        self.add_account("1", "A", PIGMY_007, agent_id=other.id)
        repo.clear_client_data_by_lots(self.store, self.society.id, self.agent.id, [PIGMY_007])
        self.assertEqual(repo.get_account_count(self.store, self.society.id, other.id), 1)
        self.assertEqual(repo.get_account_count(self.store, self.society.id, self.agent.id), 0)

    def test_no_lots_is_a_no_op(self) -> None:
        self.add_account("1", "A", PIGMY_007)
        self.assertEqual(repo.clear_client_data_by_lots(self.store, self.society.id, self.agent.id, []), 0)
        self.assertEqual(repo.get_account_count(self.store, self.society.id), 1)


if __name__ == "__main__":
    unittest.main()
