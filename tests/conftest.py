"""Pytest fixtures shared across unit and integration tests."""

from __future__ import annotations

import os
from typing import Any

import psycopg
import pytest

from recurring.db_adapter import PsycopgRecurringDB
from tests.utils.recurring_db import FakeRecurringDB


@pytest.fixture(scope="session")
def pg_conn() -> Any:
    """Session-scoped psycopg connection for integration tests."""
    host = os.getenv("TEST_DB_HOST")
    port = os.getenv("TEST_DB_PORT")
    dbname = os.getenv("TEST_DB_NAME")
    user = os.getenv("TEST_DB_USER")
    password = os.getenv("TEST_DB_PASSWORD")

    if not all([host, port, dbname, user, password]):
        pytest.skip("Integration DB env vars are missing; set TEST_DB_* to run against PostgreSQL")

    conn = psycopg.connect(
        host=host,
        port=port,
        dbname=dbname,
        user=user,
        password=password,
        autocommit=False,
    )
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def recurring_db(pg_conn: Any) -> PsycopgRecurringDB:
    """Recurring engine DB adapter fixture."""
    return PsycopgRecurringDB(pg_conn)


@pytest.fixture
def fake_db() -> FakeRecurringDB:
    return FakeRecurringDB()
