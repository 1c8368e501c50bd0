"""Recurrence rule model definitions."""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    PrimaryKeyConstraint,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from backend.db.base import Base
from backend.db.enums import entry_kind_enum, recurrence_frequency_enum

logger = logging.getLogger(__name__)


class RecurringRule(Base):
    """Declarative recurrence rule; occurrences are materialized on demand."""

    __tablename__ = "recurring_rule"
    __table_args__ = (
        PrimaryKeyConstraint("rule_id", name="pk_recurring_rule"),
        CheckConstraint("amount > 0", name="ck_recurring_rule_amount_pos"),
        CheckConstraint("interval >= 1", name="ck_recurring_rule_interval_pos"),
        CheckConstraint(
            "end_date IS NULL OR end_date >= start_date",
            name="ck_recurring_rule_end_after_start",
        ),
        CheckConstraint(
            "length(btrim(title)) > 0",
            name="ck_recurring_rule_title_not_blank",
        ),
        CheckConstraint(
            "currency = upper(currency)",
            name="ck_recurring_rule_currency_upper",
        ),
        Index("idx_recurring_rule_owner", "owner_id"),
        Index("idx_recurring_rule_owner_active", "owner_id", "is_active"),
    )

    rule_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    owner_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    kind: Mapped[str] = mapped_column(entry_kind_enum, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(Text, nullable=False)
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    account_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    frequency: Mapped[str] = mapped_column(recurrence_frequency_enum, nullable=False)
    interval: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("1"))
    timezone: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("'UTC'"))
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("TRUE"),
    )
    last_generated_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    created_at_utc: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
    updated_at_utc: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
