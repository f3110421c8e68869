"""
Agent ledger command line.

Typical day:
1) `import-report` (or `import-master`) loads the society's client list.
2) `login` signs the agent in; the session is kept in a small JSON file.
3) `collect` records amounts; `totals` shows the day so far.
4) `export` writes one handoff file per lot and marks those collections exported.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

# Ensure repo root on path when run as script.
_REPO_ROOT = Path(__file__).resolve().parent.parent.parent.parent
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from iamc_collect.ledger import repo
from iamc_collect.ledger.errors import LedgerError
from iamc_collect.ledger.export_files import read_export_file
from iamc_collect.ledger.export_pending import ExportCategory, list_pending_for_export, run_export
from iamc_collect.ledger.export_validation import validate_pending_collections_for_export
from iamc_collect.ledger.master_data import import_master_data_file
from iamc_collect.ledger.models import Account, Agent, Lot, Society
from iamc_collect.ledger.money import format_inr, rupees_to_paise, to_iso_date
from iamc_collect.ledger.report_import import import_agent_report_file
from iamc_collect.ledger.reports import summarize_collections, write_collection_summary
from iamc_collect.ledger.session import FileSessionStore, Session
from iamc_collect.ledger.store import LedgerStore
from iamc_collect.ledger_config import LedgerConfig, load_ledger_config, resolve_logging_level
from iamc_collect.load_env import load_env_file
from iamc_collect.paths import OPS_REPORTS_DIR

LOGGER = logging.getLogger("iamc.ledger")


def configure_logging(level_name: str) -> None:
    logging.basicConfig(
        level=resolve_logging_level(level_name),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
    )


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Field-agent collection ledger.")
    p.add_argument("--db", type=Path, default=None, help="SQLite ledger file (default: IAMC_DB_PATH).")
    p.add_argument("--session-file", type=Path, default=None, help="Session JSON (default: IAMC_SESSION_FILE).")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("import-report", help="Import an agent report (.txt, .xlsx, .xlsm).")
    s.add_argument("path", type=Path)
    s.add_argument(
        "--keep-existing",
        action="store_true",
        help="Upsert only; do not wipe the report's lots before importing.",
    )

    s = sub.add_parser("import-master", help="Import a master-data JSON payload (schemaVersion 1).")
    s.add_argument("path", type=Path)

    s = sub.add_parser("login", help="Sign an agent in.")
    s.add_argument("--society", default="", help="Society code (optional when the agent code is unique).")
    s.add_argument("--agent", required=True, help="Agent code.")
    s.add_argument("--pin", required=True)

    sub.add_parser("logout", help="Forget the signed-in agent.")

    s = sub.add_parser("set-pin", help="Change an agent's PIN.")
    s.add_argument("--society", default=None)
    s.add_argument("--agent", required=True)
    s.add_argument("--pin", required=True)

    s = sub.add_parser("lots", help="List lots; optionally pick the active lot.")
    group = s.add_mutually_exclusive_group()
    group.add_argument("--set", dest="set_key", default=None, help="Lot key to make active.")
    group.add_argument("--clear", action="store_true", help="Clear the active lot.")

    s = sub.add_parser("search", help="Find active accounts by trailing digits.")
    s.add_argument("digits")

    s = sub.add_parser("collect", help="Record today's collection for an account.")
    s.add_argument("account_no")
    s.add_argument("amount", help="Amount in rupees, e.g. 150 or 120.50")
    s.add_argument("--lot", default=None, help="Lot key when the account number exists in several lots.")
    s.add_argument("--remarks", default=None)
    s.add_argument("--date", default=None, help="Collection date YYYY-MM-DD (default: today).")

    s = sub.add_parser("totals", help="Collection count and total for a date.")
    s.add_argument("--date", default=None)

    s = sub.add_parser("validate", help="Check pending collections before export.")
    s.add_argument("--category", choices=[c.value for c in ExportCategory], default=None)

    s = sub.add_parser("export", help="Export pending collections, one file per lot.")
    s.add_argument("--format", choices=["xlsx", "txt"], default=None)
    s.add_argument("--category", choices=[c.value for c in ExportCategory], default=None)
    s.add_argument("--out-dir", type=Path, default=None)
    s.add_argument("--clear", action="store_true", help="Delete the exported lots' accounts and collections.")

    s = sub.add_parser("summary", help="Per-date, per-lot collection summary CSV.")
    s.add_argument("--date", default=None)
    s.add_argument("--out", type=Path, default=None)

    s = sub.add_parser("show-export", help="Print an export file's header and rows.")
    s.add_argument("path", type=Path)

    return p.parse_args(argv)


def _require_session(store: LedgerStore, sessions: FileSessionStore) -> Tuple[Society, Agent]:
    session = sessions.load()
    if session is None:
        raise LedgerError("Not signed in. Run `login` first.")
    society = repo.get_society_by_id(store, session.society_id)
    agent = repo.get_agent_by_id(store, session.agent_id)
    if society is None or agent is None or not agent.is_active:
        sessions.clear()
        raise LedgerError("Signed-in agent no longer exists. Run `login` again.")
    return society, agent


def _pick_account(
    store: LedgerStore, society: Society, agent: Agent, account_no: str, lot_key: Optional[str]
) -> Account:
    candidates = repo.find_active_accounts_by_number(store, society.id, agent.id, account_no)
    if lot_key is None and len(candidates) > 1:
        active = repo.get_active_lot(store, society.id)
        lot_key = active.key if active else None
    if lot_key is not None:
        candidates = [a for a in candidates if a.lot_key == lot_key]
    if not candidates:
        raise LedgerError(f"No active account {account_no}" + (f" in lot {lot_key}" if lot_key else ""))
    if len(candidates) > 1:
        lots = ", ".join(a.lot_key for a in candidates)
        raise LedgerError(f"Account {account_no} exists in several lots ({lots}); pass --lot.")
    return candidates[0]


def _cmd_import_report(args: argparse.Namespace, store: LedgerStore, config: LedgerConfig) -> int:
    result = import_agent_report_file(
        store, args.path, replace_existing=not args.keep_existing, default_pin=config.default_pin
    )
    print(
        f"Imported {result.accounts_upserted} account(s) for {result.society_name} ({result.society_code}), "
        f"agent {result.agent_code} - {result.agent_name}"
    )
    return 0


def _cmd_import_master(args: argparse.Namespace, store: LedgerStore, config: LedgerConfig) -> int:
    result = import_master_data_file(store, args.path, default_pin=config.default_pin)
    print(
        f"Imported {result.society_name} ({result.society_code}): {result.agents_upserted} agent(s), "
        f"{result.accounts_upserted} account(s), {result.accounts_skipped} skipped"
    )
    return 0


def _cmd_login(args: argparse.Namespace, store: LedgerStore, sessions: FileSessionStore) -> int:
    profile = repo.authenticate_agent(store, args.society, args.agent, args.pin)
    if profile is None:
        print("ERROR: Invalid credentials (or agent code is ambiguous; pass --society).", file=sys.stderr)
        return 2
    sessions.save(Session(society_id=profile.society.id, agent_id=profile.agent.id))
    print(f"Signed in as {profile.agent.code} - {profile.agent.name} ({profile.society.name})")
    return 0


def _cmd_set_pin(args: argparse.Namespace, store: LedgerStore) -> int:
    if not args.pin.isdigit():
        raise LedgerError("PIN must contain digits only.")
    result = repo.update_agent_pin_by_code(store, args.agent, args.pin, society_code=args.society)
    if result == repo.PIN_UPDATED:
        print("PIN updated.")
        return 0
    if result == repo.PIN_AMBIGUOUS:
        print("ERROR: Agent code exists in several societies; pass --society.", file=sys.stderr)
    else:
        print("ERROR: Agent not found.", file=sys.stderr)
    return 2


def _cmd_lots(args: argparse.Namespace, store: LedgerStore, society: Society) -> int:
    lots = repo.list_account_lots(store, society.id)
    if args.clear:
        repo.save_active_lot(store, society.id, None)
        print("Active lot cleared.")
        return 0
    if args.set_key:
        match = next((lot for lot in lots if lot.key == args.set_key), None)
        if match is None:
            raise LedgerError(f"Unknown lot {args.set_key}")
        repo.save_active_lot(
            store,
            society.id,
            Lot(
                account_type=match.account_type,
                frequency=match.frequency,
                account_head_code=match.account_head_code,
                account_head=match.account_head,
            ),
        )
        print(f"Active lot: {match.key}")
        return 0

    active = repo.get_active_lot(store, society.id)
    for lot in lots:
        marker = "*" if active is not None and active.key == lot.key else " "
        print(f"{marker} {lot.key:<28} {lot.count:>6}  {lot.label}")
    if not lots:
        print("No accounts imported yet.")
    return 0


def _cmd_search(args: argparse.Namespace, store: LedgerStore, society: Society, config: LedgerConfig) -> int:
    accounts = repo.search_accounts_by_last_digits(store, society.id, args.digits, limit=config.search_limit)
    for a in accounts:
        print(f"{a.account_no:<12} {a.client_name:<32} {a.lot_key:<24} inst {format_inr(a.installment_paise)}")
    if not accounts:
        print("No matching accounts.")
    return 0


def _cmd_collect(args: argparse.Namespace, store: LedgerStore, society: Society, agent: Agent) -> int:
    amount_paise = rupees_to_paise(args.amount)
    if amount_paise <= 0:
        raise LedgerError(f"Amount must be a positive rupee value, got {args.amount!r}")
    account = _pick_account(store, society, agent, args.account_no.strip(), args.lot)
    entry = repo.upsert_collection_for_today(
        store,
        society.id,
        agent.id,
        account,
        amount_paise,
        remarks=args.remarks,
        collection_date=args.date,
    )
    print(f"Recorded {format_inr(entry.collected_paise)} for {account.account_no} ({account.client_name}) on {entry.collection_date}")
    return 0


def _cmd_totals(args: argparse.Namespace, store: LedgerStore, agent: Agent) -> int:
    day = args.date or to_iso_date()
    totals = repo.get_collection_totals_for_date(store, agent.id, day)
    pending = repo.get_pending_export_counts(store, agent.id)
    print(f"{day}: {totals.count} collection(s), {format_inr(totals.total_paise)}; {pending} pending export")
    return 0


def _cmd_validate(args: argparse.Namespace, store: LedgerStore, agent: Agent) -> int:
    rows = list_pending_for_export(store, agent, args.category)
    validate_pending_collections_for_export(rows)
    print(f"OK: {len(rows)} pending collection(s) ready to export.")
    return 0


def _cmd_export(
    args: argparse.Namespace, store: LedgerStore, society: Society, agent: Agent, config: LedgerConfig
) -> int:
    outcome = run_export(
        store,
        society,
        agent,
        format=args.format or config.export_format,
        export_dir=args.out_dir or config.export_dir,
        category=args.category,
        clear_after=args.clear,
    )
    if outcome is None:
        print("Nothing to export.")
        return 0
    for f in outcome.files:
        print(f"{f.path}  ({f.collections} collection(s), lot {f.lot_label})")
    if args.clear:
        print(f"Cleared {len(outcome.files)} exported lot(s) from the local ledger.")
    return 0


def _cmd_summary(args: argparse.Namespace, store: LedgerStore, agent: Agent) -> int:
    frame = summarize_collections(repo.list_collection_rows(store, agent.id, args.date))
    if frame.empty:
        print("No collections recorded.")
        return 0
    print(frame.to_string(index=False))
    out = args.out or (OPS_REPORTS_DIR / f"collections_{agent.code}.csv")
    write_collection_summary(frame, out)
    print(f"Wrote {out}")
    return 0


def _cmd_show_export(args: argparse.Namespace) -> int:
    view = read_export_file(args.path)
    if view.name is not None:
        print(
            f"File: society {view.name.society_code}, agent {view.name.agent_code}, lot {view.name.lot_code}, "
            f"{view.name.date_iso} {view.name.time_iso} UTC"
        )
    for key, value in view.header.items():
        print(f"{key}: {value}")
    for row in view.rows:
        print("\t".join(row.values()))
    return 0


def run(args: argparse.Namespace, config: LedgerConfig) -> int:
    if args.command == "show-export":
        return _cmd_show_export(args)

    sessions = FileSessionStore(args.session_file or config.session_file)
    if args.command == "logout":
        sessions.clear()
        print("Signed out.")
        return 0

    with LedgerStore(args.db or config.db_path) as store:
        if args.command == "import-report":
            return _cmd_import_report(args, store, config)
        if args.command == "import-master":
            return _cmd_import_master(args, store, config)
        if args.command == "login":
            return _cmd_login(args, store, sessions)
        if args.command == "set-pin":
            return _cmd_set_pin(args, store)

        society, agent = _require_session(store, sessions)
        if args.command == "lots":
            return _cmd_lots(args, store, society)
        if args.command == "search":
            return _cmd_search(args, store, society, config)
        if args.command == "collect":
            return _cmd_collect(args, store, society, agent)
        if args.command == "totals":
            return _cmd_totals(args, store, agent)
        if args.command == "validate":
            return _cmd_validate(args, store, agent)
        if args.command == "export":
            return _cmd_export(args, store, society, agent, config)
        if args.command == "summary":
            return _cmd_summary(args, store, agent)
    raise LedgerError(f"Unknown command {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    load_env_file()
    args = _parse_args(argv)
    try:
        config = load_ledger_config()
    except ValueError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2
    configure_logging(config.log_level)

    try:
        return run(args, config)
    except LedgerError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2
    except Exception:
        LOGGER.exception("Ledger command %s failed", args.command)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
