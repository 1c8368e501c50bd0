"""Recurrence rule state, drafts, and error types for the materialization engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional, Protocol, Sequence
from uuid import UUID

FREQUENCY_DAILY = "daily"
FREQUENCY_WEEKLY = "weekly"
FREQUENCY_MONTHLY = "monthly"
FREQUENCY_YEARLY = "yearly"
FREQUENCIES: tuple[str, ...] = (
    FREQUENCY_DAILY,
    FREQUENCY_WEEKLY,
    FREQUENCY_MONTHLY,
    FREQUENCY_YEARLY,
)

ENTRY_KINDS: tuple[str, ...] = ("income", "expense")

AMOUNT_SCALE = Decimal("0.01")
DEFAULT_TIMEZONE = "UTC"

# Fields that alter when a rule fires, as opposed to what it posts.
SCHEDULE_FIELDS: tuple[str, ...] = ("frequency", "interval", "start_date", "end_date")
FINANCIAL_FIELDS: tuple[str, ...] = (
    "kind",
    "amount",
    "currency",
    "category_id",
    "account_id",
    "title",
    "description",
)


class RecurrenceError(RuntimeError):
    """Base error for the recurring materialization engine."""


class RecurrenceValidationError(RecurrenceError, ValueError):
    """Raised when a rule draft, rule update, or window is invalid."""


class RecurrenceStoreError(RecurrenceError):
    """Raised when reading rules or writing ledger entries fails."""


class RecurrenceComputationError(RecurrenceError):
    """Raised when malformed rule data reaches the occurrence calculator."""


class LedgerEntryNotFoundError(RecurrenceError):
    """Raised when a ledger entry lookup for an owner finds nothing."""


class NotRecurringEntryError(RecurrenceError):
    """Raised when a ledger entry has no originating recurrence rule."""


class RecurringDatabase(Protocol):
    """Minimal database protocol required by the recurring engine."""

    def fetch_one(self, sql: str, params: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        """Fetch one row."""

    def fetch_all(self, sql: str, params: Mapping[str, Any]) -> Sequence[Mapping[str, Any]]:
        """Fetch all rows in query order."""

    def execute(self, sql: str, params: Mapping[str, Any]) -> None:
        """Execute a write statement."""


def as_uuid(value: Any) -> UUID:
    if isinstance(value, UUID):
        return value
    return UUID(str(value))


def as_optional_uuid(value: Any) -> Optional[UUID]:
    if value is None or value == "":
        return None
    return as_uuid(value)


def as_date(value: Any) -> date:
    """Coerce DB or CLI values into a calendar date, dropping any time-of-day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if len(text) != 10:
        raise RecurrenceValidationError(f"Invalid date={value!r} (expected YYYY-MM-DD).")
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise RecurrenceValidationError(f"Invalid date={value!r} (expected YYYY-MM-DD).") from exc


def as_optional_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    return as_date(value)


def as_whole_number(value: Any) -> int:
    """Coerce an integral value; fractional or boolean input is rejected."""
    if isinstance(value, bool):
        raise RecurrenceValidationError(f"Invalid integer={value!r}.")
    if isinstance(value, int):
        return value
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise RecurrenceValidationError(f"Invalid integer={value!r}.") from exc
    if not number.is_finite() or number != number.to_integral_value():
        raise RecurrenceValidationError(f"Invalid integer={value!r}.")
    return int(number)


def as_amount(value: Any) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise RecurrenceValidationError(f"Invalid amount={value!r}.") from exc
    return amount.quantize(AMOUNT_SCALE)


@dataclass(frozen=True)
class RecurrenceRule:
    """Immutable persisted recurrence rule."""

    rule_id: UUID
    owner_id: UUID
    kind: str
    amount: Decimal
    currency: str
    title: str
    start_date: date
    frequency: str
    interval: int = 1
    end_date: Optional[date] = None
    category_id: Optional[UUID] = None
    account_id: Optional[UUID] = None
    description: Optional[str] = None
    timezone: str = DEFAULT_TIMEZONE
    is_active: bool = True
    last_generated_date: Optional[date] = None


@dataclass(frozen=True)
class RuleDraft:
    """Caller-supplied rule definition prior to persistence."""

    kind: str
    amount: Decimal
    currency: str
    title: str
    start_date: date
    frequency: str
    interval: int = 1
    end_date: Optional[date] = None
    category_id: Optional[UUID] = None
    account_id: Optional[UUID] = None
    description: Optional[str] = None
    timezone: str = DEFAULT_TIMEZONE


def validate_rule_fields(
    *,
    kind: str,
    amount: Decimal,
    currency: str,
    title: str,
    start_date: date,
    end_date: Optional[date],
    frequency: str,
    interval: int,
) -> None:
    """Reject rule definitions that would violate persisted rule invariants."""
    if kind not in ENTRY_KINDS:
        raise RecurrenceValidationError(f"Invalid kind={kind!r}; expected one of {ENTRY_KINDS}.")
    if frequency not in FREQUENCIES:
        raise RecurrenceValidationError(
            f"Invalid frequency={frequency!r}; expected one of {FREQUENCIES}."
        )
    if isinstance(interval, bool) or not isinstance(interval, int) or interval < 1:
        raise RecurrenceValidationError(f"interval must be an integer >= 1 (got {interval!r}).")
    if amount <= 0:
        raise RecurrenceValidationError(f"amount must be positive (got {amount}).")
    if not currency or not currency.strip():
        raise RecurrenceValidationError("currency must not be blank.")
    if not title or not title.strip():
        raise RecurrenceValidationError("title must not be blank.")
    if end_date is not None and end_date < start_date:
        raise RecurrenceValidationError(
            f"end_date={end_date.isoformat()} precedes start_date={start_date.isoformat()}."
        )


def validate_draft(draft: RuleDraft) -> None:
    validate_rule_fields(
        kind=draft.kind,
        amount=as_amount(draft.amount),
        currency=draft.currency,
        title=draft.title,
        start_date=draft.start_date,
        end_date=draft.end_date,
        frequency=draft.frequency,
        interval=draft.interval,
    )


def validate_rule(rule: RecurrenceRule) -> None:
    validate_rule_fields(
        kind=rule.kind,
        amount=rule.amount,
        currency=rule.currency,
        title=rule.title,
        start_date=rule.start_date,
        end_date=rule.end_date,
        frequency=rule.frequency,
        interval=rule.interval,
    )


def rule_from_row(row: Mapping[str, Any]) -> RecurrenceRule:
    """
    Build a rule from a stored row without enforcing cadence validity.

    Frequency and interval are carried through as stored so that corrupt
    values surface in the calculator, where they are isolated per rule.
    Rows that cannot be coerced at all raise RecurrenceComputationError.
    """
    try:
        interval_raw = row.get("interval")
        return RecurrenceRule(
            rule_id=as_uuid(row["rule_id"]),
            owner_id=as_uuid(row["owner_id"]),
            kind=str(row["kind"]),
            amount=as_amount(row["amount"]),
            currency=str(row["currency"]),
            title=str(row["title"]),
            start_date=as_date(row["start_date"]),
            frequency=str(row["frequency"]),
            interval=1 if interval_raw is None else as_whole_number(interval_raw),
            end_date=as_optional_date(row.get("end_date")),
            category_id=as_optional_uuid(row.get("category_id")),
            account_id=as_optional_uuid(row.get("account_id")),
            description=row.get("description"),
            timezone=str(row.get("timezone") or DEFAULT_TIMEZONE),
            is_active=bool(row.get("is_active", True)),
            last_generated_date=as_optional_date(row.get("last_generated_date")),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise RecurrenceComputationError(
            f"Malformed recurring_rule row (rule_id={row.get('rule_id')!r}): {exc}"
        ) from exc
