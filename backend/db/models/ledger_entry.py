"""Ledger entry model definitions."""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CHAR,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKeyConstraint,
    Index,
    Numeric,
    PrimaryKeyConstraint,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from backend.db.base import Base
from backend.db.enums import entry_kind_enum

logger = logging.getLogger(__name__)


class LedgerEntry(Base):
    """Realized financial entries, including materialized rule occurrences."""

    __tablename__ = "ledger_entry"
    __table_args__ = (
        PrimaryKeyConstraint("entry_id", name="pk_ledger_entry"),
        UniqueConstraint("transaction_id", name="uq_ledger_entry_transaction_id"),
        UniqueConstraint(
            "owner_id",
            "recurring_rule_id",
            "recurrence_occurrence_date",
            name="uq_ledger_entry_owner_rule_occurrence",
        ),
        ForeignKeyConstraint(
            ["recurring_rule_id"],
            ["recurring_rule.rule_id"],
            name="fk_ledger_entry_recurring_rule",
            onupdate="RESTRICT",
            ondelete="RESTRICT",
        ),
        CheckConstraint("amount > 0", name="ck_ledger_entry_amount_pos"),
        CheckConstraint(
            "(recurring_rule_id IS NULL) = (recurrence_occurrence_date IS NULL)",
            name="ck_ledger_entry_recurrence_pair",
        ),
        Index("idx_ledger_entry_owner_date", "owner_id", "transaction_date"),
        Index(
            "idx_ledger_entry_rule_skipped",
            "recurring_rule_id",
            "is_recurring_skipped",
            postgresql_where=text("recurring_rule_id IS NOT NULL"),
        ),
    )

    entry_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    transaction_id: Mapped[str] = mapped_column(Text, nullable=False)
    owner_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    kind: Mapped[str] = mapped_column(entry_kind_enum, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(Text, nullable=False)
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    account_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    recurring_rule_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    recurrence_occurrence_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    is_recurring_skipped: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("FALSE"),
    )
    row_hash: Mapped[str] = mapped_column(CHAR(64), nullable=False)
    created_at_utc: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
