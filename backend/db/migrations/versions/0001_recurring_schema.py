"""Initial schema for recurrence rules and the ledger entries they materialize."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from alembic import op

logger = logging.getLogger(__name__)

# revision identifiers, used by Alembic.
revision: str = "0001_recurring_schema"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


ENUM_DDL: tuple[str, ...] = (
    "CREATE TYPE entry_kind_enum AS ENUM ('income', 'expense');",
    "CREATE TYPE recurrence_frequency_enum AS ENUM ('daily', 'weekly', 'monthly', 'yearly');",
)

TABLE_DDL: tuple[str, ...] = (
    """
    CREATE TABLE recurring_rule (
        rule_id UUID NOT NULL,
        owner_id UUID NOT NULL,
        kind entry_kind_enum NOT NULL,
        amount NUMERIC(15,2) NOT NULL,
        currency TEXT NOT NULL,
        category_id UUID,
        account_id UUID,
        title TEXT NOT NULL,
        description TEXT,
        start_date DATE NOT NULL,
        end_date DATE,
        frequency recurrence_frequency_enum NOT NULL,
        interval INTEGER NOT NULL DEFAULT 1,
        timezone TEXT NOT NULL DEFAULT 'UTC',
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        last_generated_date DATE,
        created_at_utc TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at_utc TIMESTAMPTZ NOT NULL DEFAULT now(),
        CONSTRAINT pk_recurring_rule PRIMARY KEY (rule_id),
        CONSTRAINT ck_recurring_rule_amount_pos CHECK (amount > 0),
        CONSTRAINT ck_recurring_rule_interval_pos CHECK (interval >= 1),
        CONSTRAINT ck_recurring_rule_end_after_start CHECK (end_date IS NULL OR end_date >= start_date),
        CONSTRAINT ck_recurring_rule_title_not_blank CHECK (length(btrim(title)) > 0),
        CONSTRAINT ck_recurring_rule_currency_upper CHECK (currency = upper(currency))
    );
    """,
    """
    CREATE TABLE ledger_entry (
        entry_id UUID NOT NULL,
        transaction_id TEXT NOT NULL,
        owner_id UUID NOT NULL,
        kind entry_kind_enum NOT NULL,
        amount NUMERIC(15,2) NOT NULL,
        currency TEXT NOT NULL,
        category_id UUID,
        account_id UUID,
        title TEXT NOT NULL,
        description TEXT,
        transaction_date DATE NOT NULL,
        recurring_rule_id UUID,
        recurrence_occurrence_date DATE,
        is_recurring_skipped BOOLEAN NOT NULL DEFAULT FALSE,
        row_hash CHAR(64) NOT NULL,
        created_at_utc TIMESTAMPTZ NOT NULL DEFAULT now(),
        CONSTRAINT pk_ledger_entry PRIMARY KEY (entry_id),
        CONSTRAINT uq_ledger_entry_transaction_id UNIQUE (transaction_id),
        CONSTRAINT uq_ledger_entry_owner_rule_occurrence UNIQUE (owner_id, recurring_rule_id, recurrence_occurrence_date),
        CONSTRAINT fk_ledger_entry_recurring_rule FOREIGN KEY (recurring_rule_id)
            REFERENCES recurring_rule (rule_id) ON UPDATE RESTRICT ON DELETE RESTRICT,
        CONSTRAINT ck_ledger_entry_amount_pos CHECK (amount > 0),
        CONSTRAINT ck_ledger_entry_recurrence_pair CHECK ((recurring_rule_id IS NULL) = (recurrence_occurrence_date IS NULL))
    );
    """,
)

INDEX_DDL: tuple[str, ...] = (
    "CREATE INDEX idx_recurring_rule_owner ON recurring_rule (owner_id);",
    "CREATE INDEX idx_recurring_rule_owner_active ON recurring_rule (owner_id, is_active);",
    "CREATE INDEX idx_ledger_entry_owner_date ON ledger_entry (owner_id, transaction_date);",
    (
        "CREATE INDEX idx_ledger_entry_rule_skipped ON ledger_entry (recurring_rule_id, is_recurring_skipped) "
        "WHERE recurring_rule_id IS NOT NULL;"
    ),
)

TRIGGER_DDL: tuple[str, ...] = (
    """
    CREATE OR REPLACE FUNCTION fn_recurring_rule_set_updated_at()
    RETURNS trigger
    LANGUAGE plpgsql
    AS $$
    BEGIN
        NEW.updated_at_utc := now();
        RETURN NEW;
    END;
    $$;
    """,
    """
    CREATE TRIGGER trg_recurring_rule_updated_at
    BEFORE UPDATE ON recurring_rule
    FOR EACH ROW EXECUTE FUNCTION fn_recurring_rule_set_updated_at();
    """,
)


def _execute_all(statements: Sequence[str]) -> None:
    """Execute an ordered sequence of SQL statements."""

    for statement in statements:
        try:
            op.execute(statement)
        except Exception:
            logger.exception("Migration statement failed.")
            raise


def upgrade() -> None:
    """Apply the recurring schema migration."""

    logger.info("Starting recurring schema migration upgrade.")
    _execute_all(ENUM_DDL)
    _execute_all(TABLE_DDL)
    _execute_all(INDEX_DDL)
    _execute_all(TRIGGER_DDL)
    logger.info("Completed recurring schema migration upgrade.")


def downgrade() -> None:
    """Revert the recurring schema migration."""

    logger.info("Starting recurring schema migration downgrade.")
    _execute_all(
        (
            "DROP TRIGGER IF EXISTS trg_recurring_rule_updated_at ON recurring_rule;",
            "DROP FUNCTION IF EXISTS fn_recurring_rule_set_updated_at();",
            "DROP TABLE IF EXISTS ledger_entry;",
            "DROP TABLE IF EXISTS recurring_rule;",
            "DROP TYPE IF EXISTS recurrence_frequency_enum;",
            "DROP TYPE IF EXISTS entry_kind_enum;",
        )
    )
    logger.info("Completed recurring schema migration downgrade.")
