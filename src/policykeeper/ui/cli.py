# ruff: noqa: T201

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING
from uuid import UUID

from dotenv import load_dotenv

from policykeeper.app import (
    confirm_field,
    confirmed_fields,
    get_policy,
    list_policies,
    list_revisions,
    persist,
    unconfirm_field,
)
from policykeeper.config import ConfigurationError, configure_logging
from policykeeper.domain.confirmation import UNSET
from policykeeper.domain.errors import PersistenceError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from policykeeper.domain.model import PolicyRecord

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Persist and inspect insurance policies")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser("ingest", help="Persist an extracted candidate record")
    ingest.add_argument("--owner", required=True, help="Account that owns the policy")
    ingest.add_argument(
        "--candidate",
        type=Path,
        required=True,
        help="JSON file holding the candidate record (use - for stdin)",
    )
    ingest.add_argument(
        "--artifact",
        type=Path,
        help="Source document the candidate was extracted from",
    )

    listing = subparsers.add_parser("list", help="List the policies of an owner")
    listing.add_argument("--owner", required=True, help="Account that owns the policies")

    show = subparsers.add_parser("show", help="Show one policy with its sub-entities")
    show.add_argument("policy_id", type=str, help="Policy id")

    confirm = subparsers.add_parser("confirm", help="Lock a field against automated ingestion")
    confirm.add_argument("policy_id", type=str, help="Policy id")
    confirm.add_argument("field", type=str, help="Field name, e.g. premium")
    confirm.add_argument("--value", type=str, help="Value to write before locking")
    confirm.add_argument("--by", type=str, help="Who confirmed the field")

    unconfirm = subparsers.add_parser("unconfirm", help="Release a field lock")
    unconfirm.add_argument("policy_id", type=str, help="Policy id")
    unconfirm.add_argument("field", type=str, help="Field name")

    history = subparsers.add_parser("history", help="Show the revision history of a policy")
    history.add_argument("policy_id", type=str, help="Policy id")

    return parser.parse_args(list(argv))


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise ValueError(f"Invalid UUID: {value}") from exc


def _load_candidate(path: Path) -> dict[str, object]:
    raw = sys.stdin.read() if str(path) == "-" else path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Candidate is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Candidate JSON must be an object")
    return payload


def _format_policy(record: PolicyRecord) -> str:
    vigency = f"{record.start_date or '?'} .. {record.end_date or '?'}"
    return (
        f"{record.id}  {record.insurer:<16} {record.policy_number:<20} "
        f"{record.status.value:<12} v{record.version}  {vigency}  premium={record.premium}"
    )


def _print_policy_details(record: PolicyRecord, locked: frozenset[str]) -> None:
    print(_format_policy(record))
    for name, value in record.field_values().items():
        if value is not None:
            marker = " [confirmed]" if name in locked else ""
            print(f"  {name}: {value}{marker}")
    for coverage in record.coverages:
        print(f"  coverage: {coverage.description} (limit={coverage.limit_amount})")
    for installment in record.installments:
        print(
            f"  installment #{installment.number}: {installment.amount} "
            f"due {installment.due_date} [{installment.status.value}]"
        )


def _run(args: argparse.Namespace) -> int:  # noqa: PLR0911
    if args.command == "ingest":
        candidate = _load_candidate(args.candidate)
        artifact = args.artifact.read_bytes() if args.artifact else None
        result = persist(args.owner, candidate, artifact)
        for warning in result.warnings:
            print(f"warning: {warning}", file=sys.stderr)
        if not result.success:
            for error in result.errors:
                print(f"error: {error}", file=sys.stderr)
            return 1
        action = "updated" if result.is_update else "created"
        print(f"{action} {result.policy_id} (version {result.version}, {result.status})")
        return 0

    if args.command == "list":
        for record in list_policies(args.owner):
            print(_format_policy(record))
        return 0

    if args.command == "show":
        policy_id = _parse_uuid(args.policy_id)
        _print_policy_details(get_policy(policy_id), confirmed_fields(policy_id))
        return 0

    if args.command == "confirm":
        lock = confirm_field(
            _parse_uuid(args.policy_id),
            args.field,
            value=args.value if args.value is not None else UNSET,
            confirmed_by=args.by,
        )
        print(f"confirmed {lock.field_name} at {lock.confirmed_at.isoformat()}")
        return 0

    if args.command == "unconfirm":
        removed = unconfirm_field(_parse_uuid(args.policy_id), args.field)
        print(f"unconfirmed {args.field}" if removed else f"{args.field} was not confirmed")
        return 0

    if args.command == "history":
        for revision in list_revisions(_parse_uuid(args.policy_id)):
            fields = ", ".join(revision.changed_fields) or "-"
            print(
                f"v{revision.version}  {revision.recorded_at.isoformat()}  "
                f"{revision.source.value:<12} {fields}"
            )
        return 0

    raise ValueError(f"Unsupported command: {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        code = _run(parsed_args)
    except (ValueError, OSError, ConfigurationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)
    except PersistenceError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    sys.exit(code)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
