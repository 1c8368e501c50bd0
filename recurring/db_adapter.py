"""psycopg adapter implementing the recurring engine database protocol."""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional, Sequence

import psycopg
from psycopg.rows import dict_row

from recurring.config import RecurringConfig
from recurring.rule_state import RecurrenceStoreError

_NAMED_PARAM_RE = re.compile(r"(?<!:):([a-zA-Z_][a-zA-Z0-9_]*)")


def convert_named_params(sql: str) -> str:
    """Convert :named params to psycopg %(named)s format."""
    return _NAMED_PARAM_RE.sub(r"%(\1)s", sql)


class PsycopgRecurringDB:
    """Adapter implementing the engine read/write protocol on psycopg."""

    def __init__(self, conn: psycopg.Connection[Any]) -> None:
        self.conn = conn
        self._tx_started = False

    def begin(self) -> None:
        if self._tx_started:
            return
        # Non-autocommit connections open their transaction implicitly.
        if self.conn.autocommit:
            with self.conn.cursor() as cur:
                cur.execute("BEGIN")
        self._tx_started = True

    def commit(self) -> None:
        try:
            self.conn.commit()
        except psycopg.Error as exc:
            raise RecurrenceStoreError(f"Commit failed: {exc}") from exc
        finally:
            self._tx_started = False

    def rollback(self) -> None:
        self.conn.rollback()
        self._tx_started = False

    def fetch_one(self, sql: str, params: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        rows = self.fetch_all(sql, params)
        return rows[0] if rows else None

    def fetch_all(self, sql: str, params: Mapping[str, Any]) -> Sequence[Mapping[str, Any]]:
        converted = convert_named_params(sql)
        try:
            with self.conn.cursor(row_factory=dict_row) as cur:
                cur.execute(converted, dict(params))
                return [dict(row) for row in cur.fetchall()]
        except psycopg.Error as exc:
            raise RecurrenceStoreError(f"Read failed: {exc}") from exc

    def execute(self, sql: str, params: Mapping[str, Any]) -> None:
        converted = convert_named_params(sql)
        try:
            with self.conn.cursor() as cur:
                cur.execute(converted, dict(params))
        except psycopg.Error as exc:
            raise RecurrenceStoreError(f"Write failed: {exc}") from exc


def connect(config: RecurringConfig, **overrides: Optional[str]) -> psycopg.Connection[Any]:
    """Open a psycopg connection from config, with explicit overrides taking precedence."""
    dsn = overrides.get("dsn") or config.db_dsn
    if dsn:
        return psycopg.connect(dsn, autocommit=False)

    host = overrides.get("host") or config.db_host
    port = overrides.get("port") or config.db_port
    dbname = overrides.get("dbname") or config.db_name
    user = overrides.get("user") or config.db_user
    password = overrides.get("password") or config.db_password

    missing = [
        key
        for key, value in (
            ("host", host),
            ("port", port),
            ("dbname", dbname),
            ("user", user),
            ("password", password),
        )
        if not value
    ]
    if missing:
        raise RuntimeError(
            "Missing DB connection settings. Set RECURRING_DB_DSN or DB_HOST/DB_PORT/DB_NAME/DB_USER/"
            f"DB_PASSWORD (missing: {', '.join(missing)})."
        )

    return psycopg.connect(
        host=host,
        port=port,
        dbname=dbname,
        user=user,
        password=password,
        autocommit=False,
    )
