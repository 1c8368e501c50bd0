"""Environment-backed configuration for the recurring materialization engine."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from typing import Optional

from recurring.occurrence_calculator import LEAP_DAY_CLAMP, LEAP_DAY_POLICIES


@dataclass(frozen=True)
class RecurringConfig:
    """Canonical configuration surface for materialization and the operator CLI."""

    db_dsn: Optional[str]
    db_host: Optional[str]
    db_port: Optional[str]
    db_name: Optional[str]
    db_user: Optional[str]
    db_password: Optional[str]
    leap_day_policy: str
    default_timezone: str
    max_window_days: int
    log_level: int


def _read_optional(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _read_choice(name: str, default: str, choices: tuple[str, ...]) -> str:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    normalized = raw.strip().lower()
    if normalized not in choices:
        raise RuntimeError(f"Invalid value for {name}: {raw} (expected one of {', '.join(choices)})")
    return normalized


def _read_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise RuntimeError(f"Invalid integer value for {name}: {raw}") from exc
    if value <= 0:
        raise RuntimeError(f"{name} must be positive: {raw}")
    return value


def _read_log_level(name: str, default: str) -> int:
    raw = (os.getenv(name) or default).strip().upper()
    level = logging.getLevelName(raw)
    if not isinstance(level, int):
        raise RuntimeError(f"Invalid log level for {name}: {raw}")
    return level


def load_recurring_config() -> RecurringConfig:
    """Load and validate engine configuration from environment."""
    return RecurringConfig(
        db_dsn=_read_optional("RECURRING_DB_DSN"),
        db_host=_read_optional("DB_HOST"),
        db_port=_read_optional("DB_PORT"),
        db_name=_read_optional("DB_NAME"),
        db_user=_read_optional("DB_USER"),
        db_password=_read_optional("DB_PASSWORD"),
        leap_day_policy=_read_choice("RECURRING_LEAP_DAY_POLICY", LEAP_DAY_CLAMP, LEAP_DAY_POLICIES),
        default_timezone=_read_optional("RECURRING_DEFAULT_TIMEZONE") or "UTC",
        max_window_days=_read_int("RECURRING_MAX_WINDOW_DAYS", 3660),
        log_level=_read_log_level("RECURRING_LOG_LEVEL", "INFO"),
    )
