"""PostgreSQL native enum contracts for the recurring ledger schema."""

from __future__ import annotations

import enum
import logging

from sqlalchemy.dialects.postgresql import ENUM as PGEnum

logger = logging.getLogger(__name__)


class EntryKind(str, enum.Enum):
    """Direction of money for a rule or ledger entry."""

    INCOME = "income"
    EXPENSE = "expense"


class RecurrenceFrequency(str, enum.Enum):
    """Cadence unit of a recurrence rule."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


entry_kind_enum = PGEnum(EntryKind, name="entry_kind_enum", values_callable=_enum_values)
recurrence_frequency_enum = PGEnum(
    RecurrenceFrequency,
    name="recurrence_frequency_enum",
    values_callable=_enum_values,
)
