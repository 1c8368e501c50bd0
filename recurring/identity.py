"""Deterministic identity primitives for materialized ledger entries."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from hashlib import sha256
import uuid
from typing import Any, Iterable

from recurring.rule_state import AMOUNT_SCALE


def normalize_token(value: Any) -> str:
    """Serialize primitive values deterministically for hashing."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, Decimal):
        return format(value.quantize(AMOUNT_SCALE), "f")
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def stable_hash(tokens: Iterable[Any]) -> str:
    """Compute a stable SHA256 hash over canonical token serialization."""
    preimage = "|".join(normalize_token(token) for token in tokens)
    return sha256(preimage.encode("utf-8")).hexdigest()


def stable_uuid(namespace: str, tokens: Iterable[Any]) -> uuid.UUID:
    """Generate a deterministic UUIDv5 from canonical tokens."""
    name = f"{namespace}|{stable_hash(tokens)}"
    return uuid.uuid5(uuid.NAMESPACE_URL, name)


def ledger_entry_id(owner_id: uuid.UUID, rule_id: uuid.UUID, occurrence_date: date) -> uuid.UUID:
    return stable_uuid("recurring_ledger_entry", (str(owner_id), str(rule_id), occurrence_date))


def ledger_transaction_id(entry_id: uuid.UUID) -> str:
    return f"rtx-{entry_id.hex}"
