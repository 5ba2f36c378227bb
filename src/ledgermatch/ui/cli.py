# ruff: noqa: T201

from __future__ import annotations

import argparse
import csv
import json
import logging
import os
import sys
from dataclasses import fields, is_dataclass
from datetime import UTC, datetime
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from dotenv import load_dotenv
from pydantic import BaseModel

from ledgermatch import app
from ledgermatch.config import configure_logging
from ledgermatch.domain.audit import AuditQuery, to_jsonable
from ledgermatch.domain.errors import InvalidInputError
from ledgermatch.domain.model import (
    AuditAction,
    AuditEntityType,
    SuggestionStatus,
    TransactionSource,
    TransactionStatus,
)
from ledgermatch.domain.reconciliation import DEFAULT_MIN_SCORE, PairRef

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from types import FrameType

log = logging.getLogger(__name__)

DEFAULT_ACTOR = "cli"


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile on-chain anchors against claims")
    parser.add_argument(
        "--actor",
        type=str,
        default=os.getenv("LEDGERMATCH_ACTOR", DEFAULT_ACTOR),
        help="Name recorded in the audit log for changes (default: %(default)s)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    match = subparsers.add_parser("match", help="Generate match suggestions")
    match.add_argument("--token", type=str, help="Only scan anchors of this token")
    match.add_argument(
        "--min-score",
        type=float,
        default=DEFAULT_MIN_SCORE,
        help="Minimum score for a suggestion (default: %(default)s)",
    )

    suggestions = subparsers.add_parser("suggestions", help="List match suggestions")
    suggestions.add_argument(
        "--status",
        type=SuggestionStatus,
        choices=list(SuggestionStatus),
        help="Filter by suggestion status",
    )
    suggestions.add_argument("--min-score", type=float, help="Minimum score")
    suggestions.add_argument("--token", type=str, help="Filter by anchor token")
    _add_paging(suggestions)

    approve = subparsers.add_parser("approve", help="Approve an anchor/claim pair")
    approve.add_argument("anchor_id", type=_parse_uuid)
    approve.add_argument("claim_id", type=_parse_uuid)
    approve.add_argument(
        "--force",
        action="store_true",
        help="Force-reconcile a rejected or unreconciled claim",
    )

    reject = subparsers.add_parser("reject", help="Reject an anchor/claim pair permanently")
    reject.add_argument("anchor_id", type=_parse_uuid)
    reject.add_argument("claim_id", type=_parse_uuid)
    reject.add_argument("--reason", type=str, help="Why the pair does not match")

    batch = subparsers.add_parser("batch-approve", help="Approve several pairs at once")
    batch.add_argument(
        "--pair",
        dest="pairs",
        action="append",
        type=_parse_pair,
        default=[],
        help="ANCHOR_ID:CLAIM_ID (repeatable)",
    )
    batch.add_argument(
        "--file",
        type=Path,
        help='JSON file with [{"anchor_id": ..., "claim_id": ...}, ...]',
    )

    mark = subparsers.add_parser("mark", help="Administratively close a claim")
    mark.add_argument("claim_id", type=_parse_uuid)
    mark.add_argument(
        "status",
        type=TransactionStatus,
        choices=[TransactionStatus.REJECTED, TransactionStatus.UNRECONCILED],
    )
    mark.add_argument("--note", type=str, help="Optional note stored on the claim")

    drift = subparsers.add_parser("drift", help="Balance drift commands")
    drift_sub = drift.add_subparsers(dest="drift_command", required=True)
    drift_sync = drift_sub.add_parser("sync", help="Recompute drift against the chain")
    drift_sync.add_argument("--wallet", type=str, help="Single wallet to recompute")
    drift_sync.add_argument("--token", type=str, help="Token of the single wallet")
    drift_show = drift_sub.add_parser("show", help="Show stored drift rows")
    drift_show.add_argument("--wallet", type=str, help="Only rows for this wallet")

    risk = subparsers.add_parser("risk", help="Wallet risk score commands")
    risk_sub = risk.add_subparsers(dest="risk_command", required=True)
    risk_recalc = risk_sub.add_parser("recalc", help="Recompute risk scores")
    risk_recalc.add_argument("--wallet", type=str, help="Single wallet to recompute")
    risk_show = risk_sub.add_parser("show", help="Show stored risk scores")
    risk_show.add_argument("--wallet", type=str, help="Only this wallet")

    config = subparsers.add_parser("config", help="Matching configuration")
    config_sub = config.add_subparsers(dest="config_command", required=True)
    config_sub.add_parser("show", help="Show the effective configuration")
    config_set = config_sub.add_parser("set", help="Update one configuration section")
    config_set.add_argument(
        "section",
        choices=["weights", "tolerances", "drift_thresholds"],
    )
    config_set.add_argument(
        "values",
        nargs="+",
        type=_parse_assignment,
        metavar="KEY=VALUE",
        help="Fields to change, e.g. amount=50 address=20",
    )

    audit = subparsers.add_parser("audit", help="Query the audit log")
    audit.add_argument("--action", type=AuditAction, choices=list(AuditAction))
    audit.add_argument("--entity-type", type=AuditEntityType, choices=list(AuditEntityType))
    audit.add_argument("--entity-id", type=_parse_uuid)
    audit.add_argument("--by", dest="by_actor", type=str, help="Filter by actor")
    audit.add_argument("--from", dest="from_ms", type=_parse_timestamp_ms, help="Epoch ms or ISO")
    audit.add_argument("--to", dest="to_ms", type=_parse_timestamp_ms, help="Epoch ms or ISO")
    _add_paging(audit)

    claims = subparsers.add_parser("claims", help="Claim intake")
    claims_sub = claims.add_subparsers(dest="claims_command", required=True)
    claims_import = claims_sub.add_parser("import", help="Import claims from CSV or JSON")
    claims_import.add_argument("path", type=Path)

    subparsers.add_parser("stats", help="Ledger summary statistics")

    return parser.parse_args(list(argv))


def _add_paging(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--page", type=int, default=1)
    parser.add_argument("--limit", type=int)


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid UUID: {value}") from exc


def _parse_pair(value: str) -> PairRef:
    anchor, sep, claim = value.partition(":")
    if not sep:
        raise argparse.ArgumentTypeError(f"Expected ANCHOR_ID:CLAIM_ID, got {value}")
    return PairRef(anchor_id=_parse_uuid(anchor), claim_id=_parse_uuid(claim))


def _parse_assignment(value: str) -> tuple[str, Any]:
    key, sep, raw = value.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"Expected KEY=VALUE, got {value}")
    try:
        return key, json.loads(raw)
    except json.JSONDecodeError:
        return key, raw


def _parse_timestamp_ms(value: str) -> int:
    if value.isdigit():
        return int(value)
    try:
        normalized = value.strip()
        if normalized.endswith("Z"):
            normalized = normalized[:-1] + "+00:00"
        dt = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid timestamp: {value}") from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return int(dt.timestamp() * 1000)


def load_claim_rows(path: Path) -> list[dict[str, Any]]:
    """Read claim records from a ``.json`` or ``.csv`` file.

    CSV rows default to source ``csv``; empty cells are treated as missing.
    """

    if path.suffix.lower() == ".json":
        with path.open(encoding="utf-8") as handle:
            payload = json.load(handle)
        rows = payload.get("claims") if isinstance(payload, dict) else payload
        if not isinstance(rows, list):
            raise InvalidInputError(f"{path} must contain a list of claims")
        return [dict(row) for row in rows]

    if path.suffix.lower() == ".csv":
        with path.open(encoding="utf-8", newline="") as handle:
            reader = csv.DictReader(handle)
            records: list[dict[str, Any]] = []
            for row in reader:
                record: dict[str, Any] = {
                    key.strip(): cell.strip()
                    for key, cell in row.items()
                    if key and cell is not None and cell.strip()
                }
                record.setdefault("source", TransactionSource.CSV)
                records.append(record)
        return records

    raise InvalidInputError(f"Unsupported claims file type: {path.suffix or path.name}")


def _load_pairs(path: Path) -> list[PairRef]:
    with path.open(encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, list):
        raise InvalidInputError(f"{path} must contain a list of pairs")
    try:
        return [
            PairRef(anchor_id=UUID(str(item["anchor_id"])), claim_id=UUID(str(item["claim_id"])))
            for item in payload
        ]
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidInputError(f"Malformed pair in {path}: {exc}") from exc


def to_output(value: object) -> Any:
    """Render results as JSON-ready structures."""

    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if is_dataclass(value) and not isinstance(value, type):
        return {item.name: to_output(getattr(value, item.name)) for item in fields(value)}
    if isinstance(value, dict):
        return {str(key): to_output(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_output(item) for item in value]
    return to_jsonable(value)


def _emit(value: object) -> None:
    print(json.dumps(to_output(value), indent=2))


def _run(args: argparse.Namespace) -> object:  # noqa: C901, PLR0911, PLR0912
    actor: str = args.actor
    command: str = args.command
    if command == "match":
        return app.run_matching(token=args.token, min_score=args.min_score)
    if command == "suggestions":
        return app.list_suggestions(
            status=args.status,
            min_score=args.min_score,
            token=args.token,
            page=args.page,
            limit=args.limit,
        )
    if command == "approve":
        return app.approve_match(args.anchor_id, args.claim_id, actor, force=args.force)
    if command == "reject":
        return app.reject_match(args.anchor_id, args.claim_id, actor, args.reason)
    if command == "batch-approve":
        pairs = list(args.pairs)
        if args.file is not None:
            pairs.extend(_load_pairs(args.file))
        return app.batch_approve(pairs, actor)
    if command == "mark":
        return app.mark_claim(args.claim_id, args.status, actor, args.note)
    if command == "drift":
        if args.drift_command == "sync":
            return app.sync_drift(wallet=args.wallet, token=args.token)
        return app.drift_report(wallet=args.wallet)
    if command == "risk":
        if args.risk_command == "recalc":
            return app.recalculate_risk(wallet=args.wallet)
        return app.risk_report(wallet=args.wallet)
    if command == "config":
        if args.config_command == "show":
            return app.show_config().as_dict()
        return app.update_config(actor, **{args.section: dict(args.values)}).as_dict()
    if command == "audit":
        query = AuditQuery(
            action=args.action,
            entity_type=args.entity_type,
            entity_id=args.entity_id,
            actor=args.by_actor,
            from_ms=args.from_ms,
            to_ms=args.to_ms,
            page=args.page,
            limit=args.limit,
        )
        return app.audit_log(query)
    if command == "claims":
        return app.import_claims(load_claim_rows(args.path), actor)
    if command == "stats":
        return app.ledger_stats()
    raise ValueError(f"Unsupported command: {command}")


def main(
    argv: Sequence[str] | None = None,
    *,
    emit: Callable[[object], None] = _emit,
) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        result = _run(parsed_args)
    except (InvalidInputError, ValueError) as exc:
        log.error(f"Invalid input: {exc}")  # noqa: TRY400
        sys.exit(2)
    except Exception:
        log.exception("Fatal error")
        sys.exit(1)
    emit(result)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    """Console-script entry point."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
