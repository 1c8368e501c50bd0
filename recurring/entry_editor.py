"""Edits of materialized recurring entries: scoped updates, skips, rule lookup."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import enum
import logging
from typing import Any, Mapping, Optional
from uuid import UUID

from recurring.rule_state import (
    FINANCIAL_FIELDS,
    SCHEDULE_FIELDS,
    LedgerEntryNotFoundError,
    NotRecurringEntryError,
    RecurrenceRule,
    RecurrenceValidationError,
    RecurringDatabase,
    as_amount,
    as_date,
    as_optional_uuid,
    as_uuid,
)
from recurring.rule_store import RuleStore

logger = logging.getLogger(__name__)


class UpdateScope(str, enum.Enum):
    """How far an edit of one recurring entry reaches."""

    THIS_ONLY = "this-only"
    THIS_AND_FUTURE = "this-and-future"
    RULE_ONLY = "rule-only"


@dataclass(frozen=True)
class EntryRef:
    transaction_id: str
    owner_id: UUID
    recurring_rule_id: Optional[UUID]
    transaction_date: date
    recurrence_occurrence_date: Optional[date]
    is_recurring_skipped: bool


def _entry_params(changes: Mapping[str, Any]) -> dict[str, Any]:
    params: dict[str, Any] = {}
    for name in FINANCIAL_FIELDS:
        if name not in changes:
            continue
        value = changes[name]
        if name == "amount":
            value = as_amount(value)
            if value <= 0:
                raise RecurrenceValidationError(f"amount must be positive (got {value}).")
        elif name in ("category_id", "account_id"):
            parsed = as_optional_uuid(value)
            value = None if parsed is None else str(parsed)
        elif name == "currency":
            value = str(value).strip().upper()
        params[name] = value
    return params


class RecurringEntryEditor:
    """Applies user edits to materialized entries and their originating rules."""

    def __init__(self, db: RecurringDatabase) -> None:
        self._db = db
        self._rules = RuleStore(db)

    def get_entry(self, owner_id: UUID, transaction_id: str) -> EntryRef:
        row = self._db.fetch_one(
            """
            SELECT transaction_id, owner_id, recurring_rule_id, transaction_date,
                   recurrence_occurrence_date, is_recurring_skipped
            FROM ledger_entry
            WHERE owner_id = :owner_id
              AND transaction_id = :transaction_id
            """,
            {"owner_id": str(owner_id), "transaction_id": transaction_id},
        )
        if row is None:
            raise LedgerEntryNotFoundError(f"ledger_entry not found for transaction_id={transaction_id}.")
        occurrence = row.get("recurrence_occurrence_date")
        rule_id = row.get("recurring_rule_id")
        return EntryRef(
            transaction_id=str(row["transaction_id"]),
            owner_id=as_uuid(row["owner_id"]),
            recurring_rule_id=None if rule_id is None else as_uuid(rule_id),
            transaction_date=as_date(row["transaction_date"]),
            recurrence_occurrence_date=None if occurrence is None else as_date(occurrence),
            is_recurring_skipped=bool(row.get("is_recurring_skipped", False)),
        )

    def get_rule_for_entry(self, owner_id: UUID, transaction_id: str) -> Optional[RecurrenceRule]:
        try:
            entry = self.get_entry(owner_id, transaction_id)
        except LedgerEntryNotFoundError:
            return None
        if entry.recurring_rule_id is None:
            return None
        return self._rules.get_rule(owner_id, entry.recurring_rule_id)

    def skip_occurrence(self, owner_id: UUID, transaction_id: str) -> None:
        """
        Mark one occurrence as skipped.

        The row is kept rather than deleted: its (owner, rule, occurrence
        date) key keeps blocking re-creation by later materializations.
        """
        self.get_entry(owner_id, transaction_id)
        self._db.execute(
            """
            UPDATE ledger_entry
            SET is_recurring_skipped = TRUE
            WHERE owner_id = :owner_id
              AND transaction_id = :transaction_id
            """,
            {"owner_id": str(owner_id), "transaction_id": transaction_id},
        )
        logger.info("Skipped recurring occurrence transaction_id=%s.", transaction_id)

    def update_entry(
        self,
        owner_id: UUID,
        transaction_id: str,
        changes: Mapping[str, Any],
        scope: UpdateScope | str,
    ) -> None:
        scope = UpdateScope(scope)
        entry = self.get_entry(owner_id, transaction_id)
        if entry.recurring_rule_id is None:
            raise NotRecurringEntryError(f"transaction_id={transaction_id} is not a recurring entry.")

        if scope is UpdateScope.THIS_ONLY:
            self._update_this_only(entry, changes)
            return

        rule_changes = {
            name: value
            for name, value in changes.items()
            if name in FINANCIAL_FIELDS or name in SCHEDULE_FIELDS
        }
        schedule_changed = any(name in changes for name in SCHEDULE_FIELDS)
        from_occurrence = entry.recurrence_occurrence_date
        if scope is UpdateScope.THIS_AND_FUTURE and schedule_changed:
            rule_changes["start_date"] = self._future_start_date(changes, from_occurrence)

        self._rules.update_rule(owner_id, entry.recurring_rule_id, rule_changes)
        if scope is UpdateScope.RULE_ONLY:
            return

        if schedule_changed:
            # The rule now starts at the edited occurrence, so earlier history
            # cannot re-materialize; later ones follow the new schedule.
            self._db.execute(
                """
                DELETE FROM ledger_entry
                WHERE owner_id = :owner_id
                  AND recurring_rule_id = :rule_id
                  AND recurrence_occurrence_date >= :from_occurrence
                  AND is_recurring_skipped = FALSE
                """,
                {
                    "owner_id": str(owner_id),
                    "rule_id": str(entry.recurring_rule_id),
                    "from_occurrence": from_occurrence,
                },
            )
            logger.info(
                "Cleared occurrences of rule_id=%s from %s after schedule change.",
                entry.recurring_rule_id,
                from_occurrence.isoformat(),
            )
            return

        params = _entry_params(changes)
        if not params:
            return
        assignments = ", ".join(f"{name} = :{name}" for name in params)
        params.update(
            {
                "owner_id": str(owner_id),
                "rule_id": str(entry.recurring_rule_id),
                "from_occurrence": from_occurrence,
            }
        )
        self._db.execute(
            f"""
            UPDATE ledger_entry
            SET {assignments}
            WHERE owner_id = :owner_id
              AND recurring_rule_id = :rule_id
              AND recurrence_occurrence_date >= :from_occurrence
              AND is_recurring_skipped = FALSE
            """,
            params,
        )

    @staticmethod
    def _future_start_date(changes: Mapping[str, Any], from_occurrence: date) -> date:
        """New anchor for a this-and-future schedule change: never before the edited occurrence."""
        if "start_date" not in changes:
            return from_occurrence
        start_date = as_date(changes["start_date"])
        if start_date < from_occurrence:
            raise RecurrenceValidationError(
                f"start_date={start_date.isoformat()} precedes the edited occurrence "
                f"{from_occurrence.isoformat()}; use rule-only to rewrite earlier history."
            )
        return start_date

    def _update_this_only(self, entry: EntryRef, changes: Mapping[str, Any]) -> None:
        params = _entry_params(changes)
        if "transaction_date" in changes:
            # Only the posting date moves; recurrence_occurrence_date keeps the entry's identity.
            params["transaction_date"] = as_date(changes["transaction_date"])
        if not params:
            return
        assignments = ", ".join(f"{name} = :{name}" for name in params)
        params.update({"owner_id": str(entry.owner_id), "transaction_id": entry.transaction_id})
        self._db.execute(
            f"""
            UPDATE ledger_entry
            SET {assignments}
            WHERE owner_id = :owner_id
              AND transaction_id = :transaction_id
            """,
            params,
        )
