#!/usr/bin/env python3
"""Operator CLI for recurring rules and on-demand ledger materialization."""

from __future__ import annotations

import argparse
from datetime import date
from decimal import Decimal, InvalidOperation
import json
import logging
from pathlib import Path
import sys
from typing import Any, Optional, Sequence
from uuid import UUID

# Ensure repository root is importable when script is executed by path.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from recurring.config import RecurringConfig, load_recurring_config
from recurring.coordinator import MaterializationCoordinator, report_as_dict
from recurring.db_adapter import PsycopgRecurringDB, connect
from recurring.entry_editor import RecurringEntryEditor
from recurring.occurrence_calculator import occurrences
from recurring.rule_state import (
    ENTRY_KINDS,
    FREQUENCIES,
    RecurrenceError,
    RecurrenceRule,
    RuleDraft,
)
from recurring.rule_store import RuleStore

logger = logging.getLogger("recurring_cli")


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid date (expected YYYY-MM-DD): {value}") from exc


def _parse_amount(value: str) -> Decimal:
    try:
        return Decimal(value.strip())
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"Invalid amount: {value}") from exc


def _rule_payload(rule: RecurrenceRule) -> dict[str, Any]:
    return {
        "rule_id": str(rule.rule_id),
        "owner_id": str(rule.owner_id),
        "kind": rule.kind,
        "amount": format(rule.amount, "f"),
        "currency": rule.currency,
        "title": rule.title,
        "description": rule.description,
        "category_id": None if rule.category_id is None else str(rule.category_id),
        "account_id": None if rule.account_id is None else str(rule.account_id),
        "start_date": rule.start_date.isoformat(),
        "end_date": None if rule.end_date is None else rule.end_date.isoformat(),
        "frequency": rule.frequency,
        "interval": rule.interval,
        "timezone": rule.timezone,
        "is_active": rule.is_active,
        "last_generated_date": (
            None if rule.last_generated_date is None else rule.last_generated_date.isoformat()
        ),
    }


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Recurring transaction materialization CLI")
    parser.add_argument("--dsn", help="PostgreSQL DSN (optional)")
    parser.add_argument("--host", help="DB host")
    parser.add_argument("--port", help="DB port")
    parser.add_argument("--dbname", help="DB name")
    parser.add_argument("--user", help="DB user")
    parser.add_argument("--password", help="DB password")

    subparsers = parser.add_subparsers(dest="command", required=True)

    materialize_cmd = subparsers.add_parser(
        "materialize",
        help="Materialize active rules into ledger entries for a date window",
    )
    materialize_cmd.add_argument("--owner-id", required=True, type=UUID)
    materialize_cmd.add_argument("--window-start", required=True, type=_parse_date)
    materialize_cmd.add_argument("--window-end", required=True, type=_parse_date)

    create_cmd = subparsers.add_parser("create-rule", help="Create a recurring rule")
    create_cmd.add_argument("--owner-id", required=True, type=UUID)
    create_cmd.add_argument("--kind", required=True, choices=ENTRY_KINDS)
    create_cmd.add_argument("--amount", required=True, type=_parse_amount)
    create_cmd.add_argument("--currency", required=True)
    create_cmd.add_argument("--title", required=True)
    create_cmd.add_argument("--description", default=None)
    create_cmd.add_argument("--category-id", type=UUID, default=None)
    create_cmd.add_argument("--account-id", type=UUID, default=None)
    create_cmd.add_argument("--start-date", required=True, type=_parse_date)
    create_cmd.add_argument("--end-date", type=_parse_date, default=None)
    create_cmd.add_argument("--frequency", required=True, choices=FREQUENCIES)
    create_cmd.add_argument("--interval", type=int, default=1)

    list_cmd = subparsers.add_parser("list-rules", help="List recurring rules for an owner")
    list_cmd.add_argument("--owner-id", required=True, type=UUID)
    list_cmd.add_argument("--active-only", action="store_true")

    deactivate_cmd = subparsers.add_parser("deactivate-rule", help="Deactivate a recurring rule")
    deactivate_cmd.add_argument("--owner-id", required=True, type=UUID)
    deactivate_cmd.add_argument("--rule-id", required=True, type=UUID)

    preview_cmd = subparsers.add_parser(
        "preview",
        help="Compute occurrence dates for one rule without writing",
    )
    preview_cmd.add_argument("--owner-id", required=True, type=UUID)
    preview_cmd.add_argument("--rule-id", required=True, type=UUID)
    preview_cmd.add_argument("--window-start", required=True, type=_parse_date)
    preview_cmd.add_argument("--window-end", required=True, type=_parse_date)

    skip_cmd = subparsers.add_parser("skip-occurrence", help="Skip one materialized occurrence")
    skip_cmd.add_argument("--owner-id", required=True, type=UUID)
    skip_cmd.add_argument("--transaction-id", required=True)

    return parser


def _run_command(args: argparse.Namespace, db: PsycopgRecurringDB, config: RecurringConfig) -> int:
    rules = RuleStore(db, default_timezone=config.default_timezone)

    if args.command == "materialize":
        coordinator = MaterializationCoordinator(
            db,
            leap_day_policy=config.leap_day_policy,
            max_window_days=config.max_window_days,
        )
        report = coordinator.materialize(args.owner_id, args.window_start, args.window_end)
        print(json.dumps(report_as_dict(report), sort_keys=True))
        return 2 if report.has_failures else 0

    if args.command == "create-rule":
        draft = RuleDraft(
            kind=args.kind,
            amount=args.amount,
            currency=args.currency,
            title=args.title,
            description=args.description,
            category_id=args.category_id,
            account_id=args.account_id,
            start_date=args.start_date,
            end_date=args.end_date,
            frequency=args.frequency,
            interval=args.interval,
            timezone=config.default_timezone,
        )
        rule = rules.create_rule(args.owner_id, draft)
        db.commit()
        print(json.dumps(_rule_payload(rule), sort_keys=True))
        return 0

    if args.command == "list-rules":
        listed = rules.list_active_rules(args.owner_id) if args.active_only else rules.list_rules(args.owner_id)
        print(json.dumps({"rules": [_rule_payload(rule) for rule in listed]}, sort_keys=True))
        return 0

    if args.command == "deactivate-rule":
        rules.deactivate_rule(args.owner_id, args.rule_id)
        db.commit()
        print(json.dumps({"rule_id": str(args.rule_id), "is_active": False}, sort_keys=True))
        return 0

    if args.command == "preview":
        rule = rules.get_rule(args.owner_id, args.rule_id)
        if rule is None:
            print(json.dumps({"error": f"rule not found: {args.rule_id}"}, sort_keys=True))
            return 1
        dates = occurrences(
            rule,
            args.window_start,
            args.window_end,
            leap_day_policy=config.leap_day_policy,
        )
        print(json.dumps({"occurrences": [day.isoformat() for day in dates]}, sort_keys=True))
        return 0

    if args.command == "skip-occurrence":
        RecurringEntryEditor(db).skip_occurrence(args.owner_id, args.transaction_id)
        db.commit()
        print(json.dumps({"transaction_id": args.transaction_id, "skipped": True}, sort_keys=True))
        return 0

    raise SystemExit(f"Unsupported command: {args.command}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    config = load_recurring_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )

    try:
        conn = connect(
            config,
            dsn=args.dsn,
            host=args.host,
            port=args.port,
            dbname=args.dbname,
            user=args.user,
            password=args.password,
        )
    except RuntimeError as exc:
        raise SystemExit(str(exc)) from exc
    db = PsycopgRecurringDB(conn)

    try:
        return _run_command(args, db, config)
    except RecurrenceError as exc:
        db.rollback()
        logger.error("Command %s failed: %s", args.command, exc)
        print(json.dumps({"error": str(exc)}, sort_keys=True))
        return 1
    finally:
        conn.close()


if __name__ == "__main__":
    raise SystemExit(main())
