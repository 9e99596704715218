"""Pending operation variants held in the replay queue."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"
UPSERT = "UPSERT"
OPERATION_KINDS = (INSERT, UPDATE, DELETE, UPSERT)


@dataclass(frozen=True)
class _Operation:
    entry_id: int
    table: str
    record_id: str
    enqueued_at: str = ""
    attempts: int = 0
    last_error: Optional[str] = None

    kind = ""


@dataclass(frozen=True)
class Insert(_Operation):
    """Replay a locally created record."""

    kind = INSERT


@dataclass(frozen=True)
class Update(_Operation):
    """Replay a local modification."""

    kind = UPDATE


@dataclass(frozen=True)
class Delete(_Operation):
    """Replay a local delete; snapshot is the row as it was before removal."""

    snapshot: dict[str, Any] = field(default_factory=dict)

    kind = DELETE


@dataclass(frozen=True)
class Upsert(_Operation):
    """Replay a natural-key save (budgets)."""

    kind = UPSERT


PendingOperation = Union[Insert, Update, Delete, Upsert]

_VARIANTS: dict[str, type] = {
    INSERT: Insert,
    UPDATE: Update,
    DELETE: Delete,
    UPSERT: Upsert,
}


def operation_from_row(row: dict[str, Any]) -> PendingOperation:
    """Build the typed variant for a queue row.

    Args:
        row: Decoded ``pending_operations`` row (snapshot already parsed).

    Returns:
        Insert, Update, Delete or Upsert instance.
    """
    kind = row["kind"]
    variant = _VARIANTS.get(kind)
    if variant is None:
        raise ValueError(f"Unknown operation kind: {kind!r}")
    common = {
        "entry_id": row["id"],
        "table": row["table_name"],
        "record_id": row["record_id"],
        "enqueued_at": row.get("enqueued_at") or "",
        "attempts": row.get("attempts") or 0,
        "last_error": row.get("last_error"),
    }
    if variant is Delete:
        return Delete(snapshot=row.get("snapshot") or {}, **common)
    return variant(**common)
