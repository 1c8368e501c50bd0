"""Recurring transaction materialization engine package."""

from recurring.coordinator import (
    MaterializationCoordinator,
    MaterializationReport,
    RuleFailure,
    materialize,
)
from recurring.entry_editor import RecurringEntryEditor, UpdateScope
from recurring.ledger_writer import LedgerEntryRow, LedgerEntryWriter, build_ledger_entry_row
from recurring.occurrence_calculator import (
    LEAP_DAY_CLAMP,
    LEAP_DAY_SKIP,
    add_months,
    is_occurrence,
    iter_occurrences,
    occurrences,
)
from recurring.rule_state import (
    LedgerEntryNotFoundError,
    NotRecurringEntryError,
    RecurrenceComputationError,
    RecurrenceError,
    RecurrenceRule,
    RecurrenceStoreError,
    RecurrenceValidationError,
    RuleDraft,
)
from recurring.rule_store import RuleStore

__all__ = [
    "LEAP_DAY_CLAMP",
    "LEAP_DAY_SKIP",
    "LedgerEntryNotFoundError",
    "LedgerEntryRow",
    "LedgerEntryWriter",
    "MaterializationCoordinator",
    "MaterializationReport",
    "NotRecurringEntryError",
    "RecurrenceComputationError",
    "RecurrenceError",
    "RecurrenceRule",
    "RecurrenceStoreError",
    "RecurrenceValidationError",
    "RecurringEntryEditor",
    "RuleDraft",
    "RuleFailure",
    "RuleStore",
    "UpdateScope",
    "add_months",
    "build_ledger_entry_row",
    "is_occurrence",
    "iter_occurrences",
    "materialize",
    "occurrences",
]
