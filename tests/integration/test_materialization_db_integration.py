"""DB-backed integration tests for recurring materialization.

Requires a PostgreSQL database migrated to 0001_recurring_schema and the
TEST_DB_* environment variables.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
import uuid

import pytest

from recurring.coordinator import materialize
from recurring.db_adapter import PsycopgRecurringDB
from recurring.entry_editor import RecurringEntryEditor
from recurring.rule_state import RecurrenceStoreError, RuleDraft
from recurring.rule_store import RuleStore


@pytest.fixture
def owner_id(recurring_db: PsycopgRecurringDB):
    owner = uuid.uuid4()
    try:
        yield owner
    finally:
        recurring_db.rollback()
        recurring_db.execute("DELETE FROM ledger_entry WHERE owner_id = :owner_id", {"owner_id": str(owner)})
        recurring_db.execute("DELETE FROM recurring_rule WHERE owner_id = :owner_id", {"owner_id": str(owner)})
        recurring_db.commit()


def _count_entries(db: PsycopgRecurringDB, owner_id: uuid.UUID) -> int:
    row = db.fetch_one(
        "SELECT COUNT(*) AS n FROM ledger_entry WHERE owner_id = :owner_id",
        {"owner_id": str(owner_id)},
    )
    assert row is not None
    return int(row["n"])


def _create_rule(db: PsycopgRecurringDB, owner_id: uuid.UUID, **overrides):
    values = {
        "kind": "expense",
        "amount": Decimal("12.50"),
        "currency": "usd",
        "title": "Streaming",
        "start_date": date(2024, 1, 31),
        "frequency": "monthly",
    }
    values.update(overrides)
    rule = RuleStore(db).create_rule(owner_id, RuleDraft(**values))
    db.commit()
    return rule


def test_materialize_is_idempotent_against_postgres(recurring_db: PsycopgRecurringDB, owner_id: uuid.UUID) -> None:
    _create_rule(recurring_db, owner_id)

    materialize(recurring_db, owner_id, date(2024, 1, 1), date(2024, 6, 30))
    first = _count_entries(recurring_db, owner_id)
    materialize(recurring_db, owner_id, date(2024, 1, 1), date(2024, 6, 30))

    assert first == 6
    assert _count_entries(recurring_db, owner_id) == first

    rows = recurring_db.fetch_all(
        """
        SELECT transaction_date
        FROM ledger_entry
        WHERE owner_id = :owner_id
        ORDER BY transaction_date
        """,
        {"owner_id": str(owner_id)},
    )
    assert rows[1]["transaction_date"] == date(2024, 2, 29)


def test_skipped_occurrence_is_not_recreated(recurring_db: PsycopgRecurringDB, owner_id: uuid.UUID) -> None:
    rule = _create_rule(recurring_db, owner_id, frequency="weekly", start_date=date(2024, 1, 1))
    materialize(recurring_db, owner_id, date(2024, 1, 1), date(2024, 1, 31))
    row = recurring_db.fetch_one(
        """
        SELECT transaction_id
        FROM ledger_entry
        WHERE owner_id = :owner_id
          AND recurring_rule_id = :rule_id
          AND recurrence_occurrence_date = :occurrence
        """,
        {"owner_id": str(owner_id), "rule_id": str(rule.rule_id), "occurrence": date(2024, 1, 15)},
    )
    assert row is not None

    RecurringEntryEditor(recurring_db).skip_occurrence(owner_id, row["transaction_id"])
    recurring_db.commit()
    materialize(recurring_db, owner_id, date(2024, 1, 1), date(2024, 1, 31))

    assert _count_entries(recurring_db, owner_id) == 5


def test_rule_with_entries_cannot_be_deleted(recurring_db: PsycopgRecurringDB, owner_id: uuid.UUID) -> None:
    rule = _create_rule(recurring_db, owner_id)
    materialize(recurring_db, owner_id, date(2024, 1, 1), date(2024, 1, 31))

    with pytest.raises(RecurrenceStoreError):
        recurring_db.execute(
            "DELETE FROM recurring_rule WHERE owner_id = :owner_id AND rule_id = :rule_id",
            {"owner_id": str(owner_id), "rule_id": str(rule.rule_id)},
        )
