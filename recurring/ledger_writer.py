"""Idempotent batched writer for materialized recurring ledger entries."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
import logging
from typing import Any, Optional, Sequence
from uuid import UUID

from recurring.identity import ledger_entry_id, ledger_transaction_id, stable_hash
from recurring.rule_state import RecurrenceRule, RecurringDatabase

logger = logging.getLogger(__name__)

LEDGER_ENTRY_COLUMNS: tuple[str, ...] = (
    "entry_id",
    "transaction_id",
    "owner_id",
    "kind",
    "amount",
    "currency",
    "category_id",
    "account_id",
    "title",
    "description",
    "transaction_date",
    "recurring_rule_id",
    "recurrence_occurrence_date",
    "is_recurring_skipped",
    "row_hash",
)


@dataclass(frozen=True)
class LedgerEntryRow:
    entry_id: UUID
    transaction_id: str
    owner_id: UUID
    kind: str
    amount: Decimal
    currency: str
    category_id: Optional[UUID]
    account_id: Optional[UUID]
    title: str
    description: Optional[str]
    transaction_date: date
    recurring_rule_id: UUID
    recurrence_occurrence_date: date
    is_recurring_skipped: bool
    row_hash: str

    def as_params(self) -> dict[str, Any]:
        return {
            "entry_id": str(self.entry_id),
            "transaction_id": self.transaction_id,
            "owner_id": str(self.owner_id),
            "kind": self.kind,
            "amount": self.amount,
            "currency": self.currency,
            "category_id": None if self.category_id is None else str(self.category_id),
            "account_id": None if self.account_id is None else str(self.account_id),
            "title": self.title,
            "description": self.description,
            "transaction_date": self.transaction_date,
            "recurring_rule_id": str(self.recurring_rule_id),
            "recurrence_occurrence_date": self.recurrence_occurrence_date,
            "is_recurring_skipped": self.is_recurring_skipped,
            "row_hash": self.row_hash,
        }


def build_ledger_entry_row(rule: RecurrenceRule, occurrence_date: date) -> LedgerEntryRow:
    """Build the deterministic ledger payload for one rule occurrence."""
    entry_id = ledger_entry_id(rule.owner_id, rule.rule_id, occurrence_date)
    transaction_id = ledger_transaction_id(entry_id)
    row_hash = stable_hash(
        (
            str(entry_id),
            transaction_id,
            str(rule.owner_id),
            rule.kind,
            rule.amount,
            rule.currency,
            rule.category_id,
            rule.account_id,
            rule.title,
            rule.description,
            occurrence_date,
            str(rule.rule_id),
            occurrence_date,
        )
    )
    return LedgerEntryRow(
        entry_id=entry_id,
        transaction_id=transaction_id,
        owner_id=rule.owner_id,
        kind=rule.kind,
        amount=rule.amount,
        currency=rule.currency,
        category_id=rule.category_id,
        account_id=rule.account_id,
        title=rule.title,
        description=rule.description,
        transaction_date=occurrence_date,
        recurring_rule_id=rule.rule_id,
        recurrence_occurrence_date=occurrence_date,
        is_recurring_skipped=False,
        row_hash=row_hash,
    )


def build_batch_insert(rows: Sequence[LedgerEntryRow]) -> tuple[str, dict[str, Any]]:
    """
    Render one multi-row INSERT that ignores rows already materialized.

    Parameters are suffixed with the row position (``:entry_id_0``,
    ``:entry_id_1``...) so the whole batch is a single statement.
    """
    if not rows:
        raise ValueError("Cannot build a ledger batch insert for zero rows.")
    value_groups: list[str] = []
    params: dict[str, Any] = {}
    for idx, row in enumerate(rows):
        placeholders = ", ".join(f":{column}_{idx}" for column in LEDGER_ENTRY_COLUMNS)
        value_groups.append(f"({placeholders})")
        for column, value in row.as_params().items():
            params[f"{column}_{idx}"] = value
    sql = (
        f"INSERT INTO ledger_entry ({', '.join(LEDGER_ENTRY_COLUMNS)})\n"
        f"VALUES\n    " + ",\n    ".join(value_groups) + "\n"
        "ON CONFLICT DO NOTHING"
    )
    return sql, params


class LedgerEntryWriter:
    """Insert-or-ignore writer keyed by (owner_id, recurring_rule_id, recurrence_occurrence_date)."""

    def __init__(self, db: RecurringDatabase) -> None:
        self._db = db

    def build_rows(
        self,
        rule: RecurrenceRule,
        occurrence_dates: Sequence[date],
    ) -> tuple[LedgerEntryRow, ...]:
        return tuple(build_ledger_entry_row(rule, day) for day in occurrence_dates)

    def insert_ignore_conflicts(self, rows: Sequence[LedgerEntryRow]) -> int:
        """Submit rows as one statement; returns the number of rows submitted."""
        if not rows:
            return 0
        sql, params = build_batch_insert(rows)
        self._db.execute(sql, params)
        logger.debug(
            "Submitted %d ledger entries for rule_id=%s.",
            len(rows),
            rows[0].recurring_rule_id,
        )
        return len(rows)
