"""Unit tests for scripts/recurring_cli.py."""

from __future__ import annotations

from datetime import date
import importlib.util
import json
from pathlib import Path
import sys
from typing import Any

import pytest

from recurring.coordinator import materialize
from tests.utils.recurring_db import FakeRecurringDB, deterministic_uuid, make_rule

ROOT = Path(__file__).resolve().parents[1]
SCRIPT_PATH = ROOT / "scripts" / "recurring_cli.py"
OWNER = deterministic_uuid("owner")


def _load_cli_module(module_name: str) -> Any:
    spec = importlib.util.spec_from_file_location(module_name, SCRIPT_PATH)
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


class _FakeConnection:
    def __init__(self) -> None:
        self.closed = False

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def cli(monkeypatch: pytest.MonkeyPatch) -> Any:
    for name in ("RECURRING_LEAP_DAY_POLICY", "RECURRING_MAX_WINDOW_DAYS", "RECURRING_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    module = _load_cli_module("recurring_cli_under_test")
    module.fake_db = FakeRecurringDB()
    module.fake_conn = _FakeConnection()
    monkeypatch.setattr(module, "connect", lambda config, **overrides: module.fake_conn)
    monkeypatch.setattr(module, "PsycopgRecurringDB", lambda conn: module.fake_db)
    return module


def _run(cli: Any, capsys: pytest.CaptureFixture[str], *argv: str) -> tuple[int, Any]:
    code = cli.main(list(argv))
    out = capsys.readouterr().out.strip()
    return code, json.loads(out) if out else None


def test_parser_requires_subcommand_and_valid_dates(cli: Any) -> None:
    parser = cli._build_parser()

    with pytest.raises(SystemExit):
        parser.parse_args([])
    with pytest.raises(SystemExit):
        parser.parse_args(
            ["materialize", "--owner-id", str(OWNER), "--window-start", "2024-13-01", "--window-end", "2024-12-31"]
        )
    args = parser.parse_args(
        ["materialize", "--owner-id", str(OWNER), "--window-start", "2024-01-01", "--window-end", "2024-01-31"]
    )
    assert args.window_start == date(2024, 1, 1)
    assert args.owner_id == OWNER


def test_materialize_prints_report_and_closes_connection(cli: Any, capsys: pytest.CaptureFixture[str]) -> None:
    cli.fake_db.add_rule(make_rule(owner_id=OWNER, frequency="monthly"))

    code, payload = _run(
        cli, capsys, "materialize", "--owner-id", str(OWNER), "--window-start", "2024-01-01", "--window-end", "2024-03-31"
    )

    assert code == 0
    assert payload["entries_submitted"] == 3
    assert payload["failed_rules"] == []
    assert len(cli.fake_db.entries) == 3
    assert cli.fake_conn.closed is True


def test_materialize_with_isolated_failures_exits_two(cli: Any, capsys: pytest.CaptureFixture[str]) -> None:
    bad = make_rule(seed="bad", owner_id=OWNER)
    cli.fake_db.add_rule(bad, frequency="hourly")

    code, payload = _run(
        cli, capsys, "materialize", "--owner-id", str(OWNER), "--window-start", "2024-01-01", "--window-end", "2024-01-31"
    )

    assert code == 2
    assert payload["failed_rules"][0]["rule_id"] == str(bad.rule_id)


def test_invalid_window_reports_error_and_rolls_back(cli: Any, capsys: pytest.CaptureFixture[str]) -> None:
    code, payload = _run(
        cli, capsys, "materialize", "--owner-id", str(OWNER), "--window-start", "2024-02-01", "--window-end", "2024-01-01"
    )

    assert code == 1
    assert "is after" in payload["error"]
    assert cli.fake_db.rollback_calls == 1
    assert cli.fake_conn.closed is True


def test_create_and_list_rules(cli: Any, capsys: pytest.CaptureFixture[str]) -> None:
    code, created = _run(
        cli,
        capsys,
        "create-rule",
        "--owner-id",
        str(OWNER),
        "--kind",
        "income",
        "--amount",
        "2500",
        "--currency",
        "eur",
        "--title",
        "Salary",
        "--start-date",
        "2024-01-25",
        "--frequency",
        "monthly",
    )

    assert code == 0
    assert created["amount"] == "2500.00"
    assert created["currency"] == "EUR"
    assert created["timezone"] == "UTC"
    assert cli.fake_db.commit_calls == 1

    code, listed = _run(cli, capsys, "list-rules", "--owner-id", str(OWNER), "--active-only")
    assert code == 0
    assert [rule["rule_id"] for rule in listed["rules"]] == [created["rule_id"]]


def test_create_rule_validation_error_exits_one(cli: Any, capsys: pytest.CaptureFixture[str]) -> None:
    code, payload = _run(
        cli,
        capsys,
        "create-rule",
        "--owner-id",
        str(OWNER),
        "--kind",
        "expense",
        "--amount",
        "10",
        "--currency",
        "usd",
        "--title",
        "Rent",
        "--start-date",
        "2024-01-01",
        "--frequency",
        "monthly",
        "--interval",
        "0",
    )

    assert code == 1
    assert "interval" in payload["error"]
    assert cli.fake_db.rules == {}


def test_deactivate_rule(cli: Any, capsys: pytest.CaptureFixture[str]) -> None:
    rule = make_rule(owner_id=OWNER)
    cli.fake_db.add_rule(rule)

    code, payload = _run(cli, capsys, "deactivate-rule", "--owner-id", str(OWNER), "--rule-id", str(rule.rule_id))

    assert code == 0
    assert payload == {"is_active": False, "rule_id": str(rule.rule_id)}
    assert cli.fake_db.rules[str(rule.rule_id)]["is_active"] is False


def test_preview_does_not_write(cli: Any, capsys: pytest.CaptureFixture[str]) -> None:
    rule = make_rule(owner_id=OWNER, frequency="monthly", start_date=date(2024, 1, 31))
    cli.fake_db.add_rule(rule)

    code, payload = _run(
        cli,
        capsys,
        "preview",
        "--owner-id",
        str(OWNER),
        "--rule-id",
        str(rule.rule_id),
        "--window-start",
        "2024-01-01",
        "--window-end",
        "2024-04-30",
    )

    assert code == 0
    assert payload["occurrences"] == ["2024-01-31", "2024-02-29", "2024-03-31", "2024-04-30"]
    assert cli.fake_db.executed == []

    missing = deterministic_uuid("missing")
    code, payload = _run(
        cli,
        capsys,
        "preview",
        "--owner-id",
        str(OWNER),
        "--rule-id",
        str(missing),
        "--window-start",
        "2024-01-01",
        "--window-end",
        "2024-01-31",
    )
    assert code == 1
    assert "rule not found" in payload["error"]


def test_skip_occurrence(cli: Any, capsys: pytest.CaptureFixture[str]) -> None:
    cli.fake_db.add_rule(make_rule(owner_id=OWNER))
    materialize(cli.fake_db, OWNER, date(2024, 1, 1), date(2024, 1, 31))
    transaction_id = cli.fake_db.entries[0]["transaction_id"]

    code, payload = _run(cli, capsys, "skip-occurrence", "--owner-id", str(OWNER), "--transaction-id", transaction_id)

    assert code == 0
    assert payload == {"skipped": True, "transaction_id": transaction_id}
    assert cli.fake_db.entries[0]["is_recurring_skipped"] is True


def test_connection_settings_error_exits(cli: Any, monkeypatch: pytest.MonkeyPatch) -> None:
    def _missing(config: Any, **overrides: Any) -> Any:
        raise RuntimeError("Missing DB connection settings.")

    monkeypatch.setattr(cli, "connect", _missing)

    with pytest.raises(SystemExit, match="Missing DB connection settings"):
        cli.main(["list-rules", "--owner-id", str(OWNER)])
