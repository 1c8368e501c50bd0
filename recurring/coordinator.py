"""On-demand materialization of recurrence rules into ledger entries."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
from typing import Any, Mapping, Optional
from uuid import UUID

from recurring.ledger_writer import LedgerEntryWriter
from recurring.occurrence_calculator import LEAP_DAY_CLAMP, occurrences
from recurring.rule_state import (
    RecurrenceComputationError,
    RecurrenceRule,
    RecurrenceValidationError,
    RecurringDatabase,
    rule_from_row,
)
from recurring.rule_store import RuleStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleFailure:
    rule_id: Optional[str]
    reason: str


@dataclass(frozen=True)
class MaterializationReport:
    """Outcome of one materialize() call; callers may ignore it."""

    owner_id: UUID
    window_start: date
    window_end: date
    rules_processed: int
    entries_submitted: int
    failed_rules: tuple[RuleFailure, ...]

    @property
    def has_failures(self) -> bool:
        return bool(self.failed_rules)


class MaterializationCoordinator:
    """
    Expand an owner's active rules into ledger entries for a date window.

    Safety under repeated or concurrent calls comes entirely from the
    ledger store's uniqueness constraint on (owner_id, recurring_rule_id,
    recurrence_occurrence_date); no locking happens here. A rule whose
    data cannot be computed is logged and skipped, and the remaining rules
    are still materialized. Store failures propagate to the caller.
    """

    def __init__(
        self,
        db: RecurringDatabase,
        *,
        leap_day_policy: str = LEAP_DAY_CLAMP,
        max_window_days: Optional[int] = None,
    ) -> None:
        self._db = db
        self._rules = RuleStore(db)
        self._writer = LedgerEntryWriter(db)
        self._leap_day_policy = leap_day_policy
        self._max_window_days = max_window_days

    def materialize(self, owner_id: UUID, window_start: date, window_end: date) -> MaterializationReport:
        self._check_window(window_start, window_end)
        logger.info(
            "Materializing recurring rules owner_id=%s window=%s..%s.",
            owner_id,
            window_start.isoformat(),
            window_end.isoformat(),
        )
        rows = self._rules.list_active_rule_rows(owner_id)

        processed = 0
        submitted = 0
        failures: list[RuleFailure] = []
        for row in rows:
            try:
                rule = rule_from_row(row)
                dates = occurrences(
                    rule,
                    window_start,
                    window_end,
                    leap_day_policy=self._leap_day_policy,
                )
            except RecurrenceComputationError as exc:
                rule_id = row.get("rule_id")
                logger.warning(
                    "Skipping recurring rule rule_id=%s during materialization.",
                    rule_id,
                    exc_info=True,
                )
                failures.append(RuleFailure(rule_id=None if rule_id is None else str(rule_id), reason=str(exc)))
                continue

            processed += 1
            if not dates:
                continue
            submitted += self._write_rule_batch(rule, dates)

        report = MaterializationReport(
            owner_id=owner_id,
            window_start=window_start,
            window_end=window_end,
            rules_processed=processed,
            entries_submitted=submitted,
            failed_rules=tuple(failures),
        )
        logger.info(
            "Materialized owner_id=%s rules=%d entries_submitted=%d failed_rules=%d.",
            owner_id,
            report.rules_processed,
            report.entries_submitted,
            len(report.failed_rules),
        )
        return report

    def _check_window(self, window_start: date, window_end: date) -> None:
        if window_start > window_end:
            raise RecurrenceValidationError(
                f"window_start={window_start.isoformat()} is after window_end={window_end.isoformat()}."
            )
        if self._max_window_days is not None:
            span = (window_end - window_start).days + 1
            if span > self._max_window_days:
                raise RecurrenceValidationError(
                    f"Materialization window spans {span} days (max {self._max_window_days})."
                )

    def _write_rule_batch(self, rule: RecurrenceRule, dates: list[date]) -> int:
        begin = getattr(self._db, "begin", None)
        commit = getattr(self._db, "commit", None)
        rollback = getattr(self._db, "rollback", None)
        tx_started = False

        try:
            if callable(begin):
                begin()
                tx_started = True
            rows = self._writer.build_rows(rule, dates)
            count = self._writer.insert_ignore_conflicts(rows)
            self._rules.record_generated_through(rule.owner_id, rule.rule_id, dates[-1])
            if tx_started and callable(commit):
                commit()
            return count
        except Exception:
            if tx_started and callable(rollback):
                rollback()
            raise


def materialize(
    db: RecurringDatabase,
    owner_id: UUID,
    window_start: date,
    window_end: date,
    **options: Any,
) -> MaterializationReport:
    """Convenience wrapper around MaterializationCoordinator.materialize."""
    return MaterializationCoordinator(db, **options).materialize(owner_id, window_start, window_end)


def report_as_dict(report: MaterializationReport) -> Mapping[str, Any]:
    return {
        "owner_id": str(report.owner_id),
        "window_start": report.window_start.isoformat(),
        "window_end": report.window_end.isoformat(),
        "rules_processed": report.rules_processed,
        "entries_submitted": report.entries_submitted,
        "failed_rules": [
            {"rule_id": failure.rule_id, "reason": failure.reason}
            for failure in report.failed_rules
        ],
    }
