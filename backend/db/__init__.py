"""ORM models and migrations backing the recurring rule and ledger entry tables."""

from __future__ import annotations

from backend.db.base import Base
from backend.db.models import LedgerEntry, RecurringRule

__all__ = ["Base", "LedgerEntry", "RecurringRule"]
