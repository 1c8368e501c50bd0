"""Owner-scoped CRUD surface for recurrence rules."""

from __future__ import annotations

from dataclasses import replace
from datetime import date
import logging
from typing import Any, Mapping, Optional, Sequence
import uuid
from uuid import UUID

from recurring.rule_state import (
    FINANCIAL_FIELDS,
    SCHEDULE_FIELDS,
    RecurrenceRule,
    RecurrenceValidationError,
    RecurringDatabase,
    RuleDraft,
    as_amount,
    as_optional_date,
    as_optional_uuid,
    as_whole_number,
    as_date,
    rule_from_row,
    validate_draft,
    validate_rule,
)

logger = logging.getLogger(__name__)

RULE_COLUMNS = """
    rule_id, owner_id, kind, amount, currency, category_id, account_id, title,
    description, start_date, end_date, frequency, interval, timezone, is_active,
    last_generated_date
"""

UPDATABLE_FIELDS: tuple[str, ...] = FINANCIAL_FIELDS + SCHEDULE_FIELDS


def _coerce_change(field_name: str, value: Any) -> Any:
    if field_name == "amount":
        return as_amount(value)
    if field_name == "start_date":
        return as_date(value)
    if field_name == "end_date":
        return as_optional_date(value)
    if field_name in ("category_id", "account_id"):
        return as_optional_uuid(value)
    if field_name == "interval":
        return as_whole_number(value)
    if field_name == "currency":
        return str(value).strip().upper()
    return value


def apply_rule_changes(rule: RecurrenceRule, changes: Mapping[str, Any]) -> RecurrenceRule:
    """Merge a partial update into a rule and re-validate the result."""
    unknown = sorted(set(changes) - set(UPDATABLE_FIELDS))
    if unknown:
        raise RecurrenceValidationError(f"Unsupported rule fields in update: {unknown}.")
    try:
        coerced = {name: _coerce_change(name, value) for name, value in changes.items()}
    except (TypeError, ValueError) as exc:
        raise RecurrenceValidationError(f"Invalid rule update: {exc}") from exc
    updated = replace(rule, **coerced)
    validate_rule(updated)
    return updated


class RuleStore:
    """Persists recurrence rules; every call is scoped to an explicit owner."""

    def __init__(self, db: RecurringDatabase, *, default_timezone: str = "UTC") -> None:
        self._db = db
        self._default_timezone = default_timezone

    def create_rule(self, owner_id: UUID, draft: RuleDraft) -> RecurrenceRule:
        validate_draft(draft)
        rule = RecurrenceRule(
            rule_id=uuid.uuid4(),
            owner_id=owner_id,
            kind=draft.kind,
            amount=as_amount(draft.amount),
            currency=draft.currency.strip().upper(),
            title=draft.title.strip(),
            start_date=draft.start_date,
            frequency=draft.frequency,
            interval=draft.interval,
            end_date=draft.end_date,
            category_id=draft.category_id,
            account_id=draft.account_id,
            description=draft.description,
            timezone=draft.timezone or self._default_timezone,
            is_active=True,
        )
        self._db.execute(
            """
            INSERT INTO recurring_rule (
                rule_id, owner_id, kind, amount, currency, category_id, account_id, title,
                description, start_date, end_date, frequency, interval, timezone, is_active
            ) VALUES (
                :rule_id, :owner_id, :kind, :amount, :currency, :category_id, :account_id, :title,
                :description, :start_date, :end_date, :frequency, :interval, :timezone, TRUE
            )
            """,
            {
                "rule_id": str(rule.rule_id),
                "owner_id": str(owner_id),
                "kind": rule.kind,
                "amount": rule.amount,
                "currency": rule.currency,
                "category_id": None if rule.category_id is None else str(rule.category_id),
                "account_id": None if rule.account_id is None else str(rule.account_id),
                "title": rule.title,
                "description": rule.description,
                "start_date": rule.start_date,
                "end_date": rule.end_date,
                "frequency": rule.frequency,
                "interval": rule.interval,
                "timezone": rule.timezone,
            },
        )
        logger.info(
            "Created recurring rule rule_id=%s owner_id=%s frequency=%s interval=%d.",
            rule.rule_id,
            owner_id,
            rule.frequency,
            rule.interval,
        )
        return rule

    def get_rule(self, owner_id: UUID, rule_id: UUID) -> Optional[RecurrenceRule]:
        row = self._db.fetch_one(
            f"""
            SELECT {RULE_COLUMNS}
            FROM recurring_rule
            WHERE owner_id = :owner_id
              AND rule_id = :rule_id
            """,
            {"owner_id": str(owner_id), "rule_id": str(rule_id)},
        )
        return None if row is None else rule_from_row(row)

    def list_rules(self, owner_id: UUID) -> list[RecurrenceRule]:
        rows = self._db.fetch_all(
            f"""
            SELECT {RULE_COLUMNS}
            FROM recurring_rule
            WHERE owner_id = :owner_id
            ORDER BY start_date ASC, rule_id ASC
            """,
            {"owner_id": str(owner_id)},
        )
        return [rule_from_row(row) for row in rows]

    def list_active_rule_rows(self, owner_id: UUID) -> Sequence[Mapping[str, Any]]:
        """Raw active rows, so callers can coerce and isolate each rule separately."""
        return self._db.fetch_all(
            f"""
            SELECT {RULE_COLUMNS}
            FROM recurring_rule
            WHERE owner_id = :owner_id
              AND is_active = TRUE
            ORDER BY start_date ASC, rule_id ASC
            """,
            {"owner_id": str(owner_id)},
        )

    def list_active_rules(self, owner_id: UUID) -> list[RecurrenceRule]:
        return [rule_from_row(row) for row in self.list_active_rule_rows(owner_id)]

    def update_rule(
        self,
        owner_id: UUID,
        rule_id: UUID,
        changes: Mapping[str, Any],
    ) -> RecurrenceRule:
        current = self.get_rule(owner_id, rule_id)
        if current is None:
            raise RecurrenceValidationError(f"recurring_rule not found for rule_id={rule_id}.")
        updated = apply_rule_changes(current, changes)
        if not changes:
            return updated
        params: dict[str, Any] = {"owner_id": str(owner_id), "rule_id": str(rule_id)}
        assignments: list[str] = []
        for name in UPDATABLE_FIELDS:
            if name not in changes:
                continue
            value = getattr(updated, name)
            if isinstance(value, UUID):
                value = str(value)
            params[name] = value
            assignments.append(f"{name} = :{name}")
        self._db.execute(
            f"""
            UPDATE recurring_rule
            SET {", ".join(assignments)}
            WHERE owner_id = :owner_id
              AND rule_id = :rule_id
            """,
            params,
        )
        logger.info("Updated recurring rule rule_id=%s fields=%s.", rule_id, sorted(changes))
        return updated

    def deactivate_rule(self, owner_id: UUID, rule_id: UUID) -> None:
        """Stop future materialization; already materialized entries are kept."""
        self._db.execute(
            """
            UPDATE recurring_rule
            SET is_active = FALSE
            WHERE owner_id = :owner_id
              AND rule_id = :rule_id
            """,
            {"owner_id": str(owner_id), "rule_id": str(rule_id)},
        )
        logger.info("Deactivated recurring rule rule_id=%s owner_id=%s.", rule_id, owner_id)

    def record_generated_through(self, owner_id: UUID, rule_id: UUID, through_date: date) -> None:
        self._db.execute(
            """
            UPDATE recurring_rule
            SET last_generated_date = GREATEST(COALESCE(last_generated_date, :through_date), :through_date)
            WHERE owner_id = :owner_id
              AND rule_id = :rule_id
            """,
            {"owner_id": str(owner_id), "rule_id": str(rule_id), "through_date": through_date},
        )
