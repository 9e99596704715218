"""Pending operations queue (replay log) database operations."""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from typing import Any, Optional

from ...exceptions import ValidationError
from ...models.operations import OPERATION_KINDS, PendingOperation, operation_from_row
from .base import DatabaseMixin, _now_iso

logger = logging.getLogger(__name__)


def _decode_queue_row(row: sqlite3.Row) -> dict[str, Any]:
    entry = dict(row)
    entry["snapshot"] = json.loads(entry["snapshot"]) if entry.get("snapshot") else None
    entry["dead"] = bool(entry.get("dead"))
    return entry


class PendingOperationsMixin(DatabaseMixin):
    """Mixin for the durable, ordered queue of local mutations."""

    def _enqueue(
        self,
        conn: sqlite3.Connection,
        table: str,
        kind: str,
        record_id: str,
        snapshot: Optional[dict[str, Any]] = None,
    ) -> int:
        """Append an entry using an already-open transaction."""
        if kind not in OPERATION_KINDS:
            raise ValidationError(f"Unknown operation kind: {kind!r}")
        cursor = conn.execute(
            """
            INSERT INTO pending_operations (table_name, kind, record_id, snapshot, enqueued_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                table,
                kind,
                record_id,
                json.dumps(snapshot) if snapshot is not None else None,
                _now_iso(),
            ),
        )
        logger.debug("Enqueued %s %s/%s (entry %s)", kind, table, record_id, cursor.lastrowid)
        return int(cursor.lastrowid)

    def enqueue(
        self,
        table: str,
        kind: str,
        record_id: str,
        snapshot: Optional[dict[str, Any]] = None,
    ) -> int:
        """Append a pending operation.

        Args:
            table: Collection the operation targets.
            kind: INSERT, UPDATE, DELETE or UPSERT.
            record_id: Target record id.
            snapshot: Pre-delete row, required for DELETE replay.

        Returns:
            The new entry id (monotonic sequence number).
        """
        with self._connection() as conn:
            return self._enqueue(conn, table, kind, record_id, snapshot)

    def drain(
        self, now: Optional[float] = None, include_waiting: bool = False
    ) -> list[PendingOperation]:
        """Return live queue entries oldest first.

        Ordering uses the auto-increment sequence, so entries written within
        the same clock tick keep their enqueue order.

        Args:
            now: Epoch seconds used for the backoff check (defaults to now).
            include_waiting: Also return entries still inside a backoff window.

        Returns:
            Typed pending operations in FIFO order. Dead letters are excluded.
        """
        conditions = ["dead = 0"]
        params: list[Any] = []
        if not include_waiting:
            conditions.append("(next_attempt_at IS NULL OR next_attempt_at <= ?)")
            params.append(time.time() if now is None else now)

        with self._connection() as conn:
            rows = conn.execute(
                f"""
                SELECT id, table_name, kind, record_id, snapshot, enqueued_at,
                       attempts, last_error, next_attempt_at, dead
                FROM pending_operations
                WHERE {" AND ".join(conditions)}
                ORDER BY id ASC
                """,
                params,
            ).fetchall()
        return [operation_from_row(_decode_queue_row(row)) for row in rows]

    def remove(self, entry_id: int) -> bool:
        """Delete a single entry after successful replay.

        Returns:
            True if deleted, False if not found.
        """
        with self._connection() as conn:
            cursor = conn.execute("DELETE FROM pending_operations WHERE id = ?", (entry_id,))
            return cursor.rowcount > 0

    def record_failure(
        self,
        entry_id: int,
        error: str,
        max_attempts: int = 0,
        backoff_base: float = 2.0,
        backoff_max: float = 300.0,
        now: Optional[float] = None,
    ) -> bool:
        """Record a failed replay and schedule the next attempt.

        Backoff doubles per attempt from ``backoff_base`` and is capped at
        ``backoff_max``. Once attempts reach ``max_attempts`` the entry is
        dead-lettered (``max_attempts=0`` never dead-letters).

        Returns:
            True if the entry is now dead-lettered.
        """
        now = time.time() if now is None else now
        with self._connection() as conn:
            row = conn.execute(
                "SELECT attempts FROM pending_operations WHERE id = ?", (entry_id,)
            ).fetchone()
            if not row:
                return False
            attempts = int(row["attempts"] or 0) + 1
            delay = min(backoff_max, backoff_base * (2 ** (attempts - 1)))
            dead = bool(max_attempts and attempts >= max_attempts)
            conn.execute(
                """
                UPDATE pending_operations
                SET attempts = ?, last_error = ?, next_attempt_at = ?, dead = ?
                WHERE id = ?
                """,
                (attempts, error, now + delay, dead, entry_id),
            )
        if dead:
            logger.warning("Entry %s dead-lettered after %d attempts: %s", entry_id, attempts, error)
        return dead

    def get_pending_operations(self) -> list[dict[str, Any]]:
        """Get every queue row (including dead letters) for display."""
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT id, table_name, kind, record_id, snapshot, enqueued_at,
                       attempts, last_error, next_attempt_at, dead
                FROM pending_operations
                ORDER BY id ASC
                """
            ).fetchall()
            return [_decode_queue_row(row) for row in rows]

    def get_dead_letters(self) -> list[dict[str, Any]]:
        """Get entries that exhausted their retry budget."""
        return [entry for entry in self.get_pending_operations() if entry["dead"]]

    def retry_dead_letters(self) -> int:
        """Reset dead-lettered entries so the next drain retries them.

        Returns:
            Number of entries revived.
        """
        with self._connection() as conn:
            cursor = conn.execute(
                """
                UPDATE pending_operations
                SET dead = 0, attempts = 0, next_attempt_at = NULL
                WHERE dead = 1
                """
            )
            return cursor.rowcount

    def pending_count(self, include_dead: bool = False) -> int:
        """Count queue entries."""
        if include_dead:
            return self._count("pending_operations")
        return self._count("pending_operations", "dead = 0")
