"""CLI for recording and querying vitals in a SQLite-backed store."""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from .config import LatestPointerPolicy, get_settings
from .exceptions import VitalStoreError
from .logging import setup_logging
from .models import VitalRecord
from .persistence import SQLiteSnapshot
from .store import VitalSession, VitalStore

DEFAULT_DB_PATH = Path("vitals.db")

_MUTATING_COMMANDS = {"record", "update", "delete"}


def _print_record(record: VitalRecord | None) -> None:
    print(json.dumps(record.to_dict() if record else None, indent=2))


def _run_command(session: VitalSession, args: argparse.Namespace) -> None:
    """Dispatch one subcommand against an owner session."""
    if args.command == "record":
        _print_record(session.record(args.type, args.value, args.timestamp, args.notes))
    elif args.command == "update":
        _print_record(session.update(args.timestamp, args.type, args.value, args.notes))
    elif args.command == "delete":
        session.delete(args.timestamp, args.type)
        print(json.dumps({"deleted": True, "count": session.get_count(args.type)}))
    elif args.command == "get":
        _print_record(session.get_record(args.timestamp, args.type))
    elif args.command == "latest":
        _print_record(session.get_latest(args.type))
    elif args.command == "count":
        print(json.dumps({"vital_type": args.type, "count": session.get_count(args.type)}))
    elif args.command == "history":
        records = session.history(args.type, args.start, args.end)
        print(json.dumps([r.to_dict() for r in records], indent=2))
    elif args.command == "share":
        _print_record(session.share_with(args.recipient, args.type, args.timestamp))
    elif args.command == "check":
        result: dict[str, Any] = {
            "vital_type": args.type,
            "valid_type": session.check_vital_type_validity(args.type),
        }
        if args.value is not None:
            result["valid_value"] = session.check_value_validity(args.type, args.value)
        print(json.dumps(result))


async def _execute(args: argparse.Namespace) -> None:
    settings = get_settings()
    policy = LatestPointerPolicy(args.latest_policy or settings.store.latest_policy)
    snapshot = SQLiteSnapshot(args.db_path)
    store = VitalStore(latest_policy=policy)

    await snapshot.restore(store)
    _run_command(store.session(args.owner), args)

    if args.command in _MUTATING_COMMANDS and settings.store.checkpoint_on_write:
        await snapshot.checkpoint(store)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the vital-store CLI."""
    settings = get_settings()
    default_db = settings.store.persist_path or DEFAULT_DB_PATH

    parser = argparse.ArgumentParser(description="Record and query personal vital signs")
    parser.add_argument(
        "--db-path",
        type=Path,
        default=default_db,
        help=f"Snapshot database path (default: {default_db})",
    )
    parser.add_argument("--owner", required=True, help="Owner identity")
    parser.add_argument(
        "--latest-policy",
        choices=[p.value for p in LatestPointerPolicy],
        help="Override the latest pointer policy",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    record_parser = subparsers.add_parser("record", help="Record a measurement")
    record_parser.add_argument("--type", required=True, help="Vital type")
    record_parser.add_argument("--value", type=int, required=True, help="Measurement value")
    record_parser.add_argument("--timestamp", type=int, required=True, help="Epoch seconds")
    record_parser.add_argument("--notes", help="Optional notes (max 256 characters)")

    update_parser = subparsers.add_parser("update", help="Update an existing measurement")
    update_parser.add_argument("--type", required=True, help="Vital type")
    update_parser.add_argument("--value", type=int, required=True, help="Measurement value")
    update_parser.add_argument("--timestamp", type=int, required=True, help="Epoch seconds")
    update_parser.add_argument("--notes", help="Optional notes (max 256 characters)")

    for name, help_text in [
        ("delete", "Delete a measurement"),
        ("get", "Show a single measurement"),
    ]:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--type", required=True, help="Vital type")
        sub.add_argument("--timestamp", type=int, required=True, help="Epoch seconds")

    for name, help_text in [
        ("latest", "Show the most recent measurement"),
        ("count", "Show the number of stored measurements"),
    ]:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--type", required=True, help="Vital type")

    history_parser = subparsers.add_parser("history", help="List measurements in a window")
    history_parser.add_argument("--type", required=True, help="Vital type")
    history_parser.add_argument("--start", type=int, help="Window start, epoch seconds")
    history_parser.add_argument("--end", type=int, help="Window end, epoch seconds")

    share_parser = subparsers.add_parser("share", help="Hand a measurement to a recipient")
    share_parser.add_argument("--recipient", required=True, help="Recipient identity")
    share_parser.add_argument("--type", required=True, help="Vital type")
    share_parser.add_argument("--timestamp", type=int, required=True, help="Epoch seconds")

    check_parser = subparsers.add_parser("check", help="Validate a vital type and value")
    check_parser.add_argument("--type", required=True, help="Vital type")
    check_parser.add_argument("--value", type=int, help="Value to validate")

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Usage:
        vital-store --owner alice record --type heart_rate --value 72 --timestamp 1700000000
        vital-store --owner alice latest --type heart_rate
        vital-store --owner alice history --type weight --start 1690000000
    """
    settings = get_settings()
    setup_logging(settings.app)

    args = build_parser().parse_args(argv)

    try:
        asyncio.run(_execute(args))
    except VitalStoreError as e:
        print(f"Error ({e.kind.value}): {e}", file=sys.stderr)
        return 1
    return 0


def run() -> None:
    sys.exit(main())
