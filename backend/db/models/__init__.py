"""Model module imports for SQLAlchemy metadata registration."""

from __future__ import annotations

import logging

from backend.db.models.ledger_entry import LedgerEntry
from backend.db.models.recurring_rule import RecurringRule

logger = logging.getLogger(__name__)

__all__ = [
    "LedgerEntry",
    "RecurringRule",
]
