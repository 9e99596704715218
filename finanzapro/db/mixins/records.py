"""Record collection database operations (transactions, categories, budgets, goals, profiles)."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable, Optional

from ...exceptions import NotFoundError, ValidationError
from ...models.operations import DELETE, INSERT, UPDATE, UPSERT
from ...models.records import (
    BUDGETS,
    CATEGORIES,
    COLUMNS,
    PROFILES,
    SYNC_PENDING,
    SYNC_SYNCED,
    SYNCED_COLLECTIONS,
)
from .base import DatabaseMixin, _check_collection, _filter_columns, _now_iso, _row_to_dict

logger = logging.getLogger(__name__)

# Columns a patch may never overwrite
_IMMUTABLE_COLUMNS = ("id", "created_at", "sync_status")

_FILTER_COLUMNS = {
    "type": "type = ?",
    "category_id": "category_id = ?",
    "date_from": "date >= ?",
    "date_to": "date <= ?",
    "month": "month = ?",
    "year": "year = ?",
}


def _check_synced_collection(collection: str) -> None:
    _check_collection(collection)
    if collection not in SYNCED_COLLECTIONS:
        raise ValidationError(f"{collection} is not a replayable collection")


class RecordsMixin(DatabaseMixin):
    """Mixin for CRUD over the synced record collections.

    Every local mutation appends its queue entry inside the same SQL
    transaction as the row change, so a row never changes without a matching
    replay entry.
    """

    _enqueue: Any

    def _select_one(self, conn, collection: str, record_id: str) -> Optional[dict[str, Any]]:
        row = conn.execute(f"SELECT * FROM {collection} WHERE id = ?", (record_id,)).fetchone()
        return _row_to_dict(collection, row)

    def get(self, collection: str, record_id: str) -> Optional[dict[str, Any]]:
        """Get a record by id.

        Returns:
            Record dict or None if absent.
        """
        _check_collection(collection)
        with self._connection() as conn:
            return self._select_one(conn, collection, record_id)

    def create(self, collection: str, record: dict[str, Any]) -> dict[str, Any]:
        """Insert a new local record and queue its INSERT replay.

        Assigns a UUID when ``id`` is missing, stamps ``created_at`` and
        ``updated_at`` and sets ``sync_status`` to pending.

        Args:
            collection: One of the synced collections.
            record: Field values; unknown keys are ignored.

        Returns:
            The stored record.
        """
        _check_synced_collection(collection)
        if not record.get("user_id"):
            raise ValidationError(f"{collection} record requires user_id")

        now = _now_iso()
        data = dict(record)
        data["id"] = data.get("id") or str(uuid.uuid4())
        data["created_at"] = now
        data["updated_at"] = now
        data["sync_status"] = SYNC_PENDING
        row = _filter_columns(collection, data)
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)

        with self._connection() as conn:
            conn.execute(
                f"INSERT INTO {collection} ({columns}) VALUES ({placeholders})",
                tuple(row.values()),
            )
            self._enqueue(conn, collection, INSERT, data["id"])
            return self._select_one(conn, collection, data["id"])

    def update(
        self, collection: str, record_id: str, patch: dict[str, Any], kind: str = UPDATE
    ) -> dict[str, Any]:
        """Merge a patch into an existing record and queue its replay.

        Args:
            collection: One of the synced collections.
            record_id: Target record id.
            patch: Fields to change; ``id``, ``created_at`` and ``sync_status``
                are ignored.
            kind: Queue operation kind (UPDATE, or UPSERT for budgets).

        Returns:
            The updated record.

        Raises:
            NotFoundError: If the record does not exist.
        """
        _check_synced_collection(collection)
        changes = {
            k: v
            for k, v in _filter_columns(collection, patch).items()
            if k not in _IMMUTABLE_COLUMNS
        }
        changes["updated_at"] = _now_iso()
        changes["sync_status"] = SYNC_PENDING
        assignments = ", ".join(f"{column} = ?" for column in changes)

        with self._connection() as conn:
            existing = conn.execute(
                f"SELECT id FROM {collection} WHERE id = ?", (record_id,)
            ).fetchone()
            if not existing:
                raise NotFoundError(collection, record_id)
            conn.execute(
                f"UPDATE {collection} SET {assignments} WHERE id = ?",
                (*changes.values(), record_id),
            )
            self._enqueue(conn, collection, kind, record_id)
            return self._select_one(conn, collection, record_id)

    def delete(self, collection: str, record_id: str) -> Optional[dict[str, Any]]:
        """Remove a record and queue its DELETE replay.

        Idempotent: deleting an absent id returns None and queues nothing.

        Returns:
            The pre-delete snapshot, or None if the record was absent.
        """
        _check_synced_collection(collection)
        with self._connection() as conn:
            snapshot = self._select_one(conn, collection, record_id)
            if snapshot is None:
                return None
            conn.execute(f"DELETE FROM {collection} WHERE id = ?", (record_id,))
            self._enqueue(conn, collection, DELETE, record_id, snapshot)
            return snapshot

    def query(
        self,
        collection: str,
        user_id: str,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        with_category: bool = False,
        **filters: Any,
    ) -> list[dict[str, Any]]:
        """Get a user's records with optional filters.

        Args:
            collection: Collection to read.
            user_id: Owner of the records.
            order_by: Column to sort by; insertion order when omitted.
            descending: Sort descending.
            limit: Maximum rows returned.
            with_category: Attach the referenced category dict as ``category``.
            **filters: Any of type, category_id, date_from, date_to, month,
                year. None values are ignored.

        Returns:
            List of record dicts.
        """
        _check_collection(collection)
        columns = COLUMNS[collection]
        conditions = ["user_id = ?"]
        params: list[Any] = [user_id]

        for name, value in filters.items():
            if value is None:
                continue
            clause = _FILTER_COLUMNS.get(name)
            column = clause.split(" ")[0] if clause else None
            if column is None or column not in columns:
                raise ValidationError(f"Unsupported filter for {collection}: {name}")
            conditions.append(clause)
            params.append(value)

        order_clause = "rowid"
        if order_by:
            if order_by not in columns:
                raise ValidationError(f"Cannot order {collection} by {order_by!r}")
            direction = "DESC" if descending else "ASC"
            order_clause = f"{order_by} {direction}, rowid {direction}"

        query = f"SELECT * FROM {collection} WHERE {' AND '.join(conditions)} ORDER BY {order_clause}"
        if limit is not None:
            query += " LIMIT ?"
            params.append(int(limit))

        with self._connection() as conn:
            rows = conn.execute(query, params).fetchall()
            records = [_row_to_dict(collection, row) for row in rows]

            if with_category and "category_id" in columns:
                cat_rows = conn.execute(
                    "SELECT * FROM categories WHERE user_id = ?", (user_id,)
                ).fetchall()
                by_id = {row["id"]: dict(row) for row in cat_rows}
                for record in records:
                    record["category"] = by_id.get(record.get("category_id"))
        return records

    def bulk_upsert(self, collection: str, records: Iterable[dict[str, Any]]) -> tuple[int, int]:
        """Store records freshly pulled from the remote.

        Rows are marked synced and no queue entries are written: a pull is
        not a local mutation. Existing rows keep their insertion position.

        Returns:
            Tuple of (inserted, updated) counts.
        """
        _check_synced_collection(collection)
        inserted = updated = 0
        now = _now_iso()

        with self._connection() as conn:
            for record in records:
                if not record.get("id"):
                    logger.warning("Skipping pulled %s record without id", collection)
                    continue
                data = dict(record)
                data.setdefault("created_at", now)
                data.setdefault("updated_at", now)
                data["sync_status"] = SYNC_SYNCED
                row = _filter_columns(collection, data)

                if collection == BUDGETS:
                    # Remote wins on the natural key
                    conn.execute(
                        """DELETE FROM budgets
                        WHERE user_id = ? AND category_id IS ? AND month = ? AND year = ?
                        AND id != ?""",
                        (
                            row.get("user_id"),
                            row.get("category_id"),
                            row.get("month"),
                            row.get("year"),
                            row["id"],
                        ),
                    )

                exists = conn.execute(
                    f"SELECT 1 FROM {collection} WHERE id = ?", (row["id"],)
                ).fetchone()
                columns = ", ".join(row)
                placeholders = ", ".join("?" for _ in row)
                assignments = ", ".join(f"{c} = excluded.{c}" for c in row if c != "id")
                conn.execute(
                    f"""INSERT INTO {collection} ({columns}) VALUES ({placeholders})
                    ON CONFLICT(id) DO UPDATE SET {assignments}""",
                    tuple(row.values()),
                )
                if exists:
                    updated += 1
                else:
                    inserted += 1
        logger.debug("bulk_upsert %s: inserted=%d updated=%d", collection, inserted, updated)
        return inserted, updated

    def save_budget(self, record: dict[str, Any]) -> dict[str, Any]:
        """Insert-or-replace a budget on (user, category, month, year).

        Saving the same natural key twice keeps one row carrying the latest
        values. Either way an UPSERT entry is queued.

        Returns:
            The stored budget.
        """
        for key in ("user_id", "month", "year"):
            if record.get(key) is None:
                raise ValidationError(f"budget requires {key}")

        with self._connection() as conn:
            existing = conn.execute(
                """SELECT id FROM budgets
                WHERE user_id = ? AND category_id IS ? AND month = ? AND year = ?""",
                (record["user_id"], record.get("category_id"), record["month"], record["year"]),
            ).fetchone()

            now = _now_iso()
            if existing:
                budget_id = existing["id"]
                changes = {
                    k: v
                    for k, v in _filter_columns(BUDGETS, record).items()
                    if k not in _IMMUTABLE_COLUMNS
                }
                changes["updated_at"] = now
                changes["sync_status"] = SYNC_PENDING
                assignments = ", ".join(f"{column} = ?" for column in changes)
                conn.execute(
                    f"UPDATE budgets SET {assignments} WHERE id = ?",
                    (*changes.values(), budget_id),
                )
            else:
                data = dict(record)
                budget_id = data.get("id") or str(uuid.uuid4())
                data.update(id=budget_id, created_at=now, updated_at=now, sync_status=SYNC_PENDING)
                row = _filter_columns(BUDGETS, data)
                conn.execute(
                    f"INSERT INTO budgets ({', '.join(row)}) VALUES ({', '.join('?' for _ in row)})",
                    tuple(row.values()),
                )
            self._enqueue(conn, BUDGETS, UPSERT, budget_id)
            return self._select_one(conn, BUDGETS, budget_id)

    def hard_delete_many(self, collection: str, record_ids: Iterable[str]) -> int:
        """Delete rows locally without queueing remote deletes.

        Used for local repairs such as category dedup.

        Returns:
            Number of rows deleted.
        """
        _check_synced_collection(collection)
        ids = list(record_ids)
        if not ids:
            return 0
        placeholders = ", ".join("?" for _ in ids)
        with self._connection() as conn:
            cursor = conn.execute(f"DELETE FROM {collection} WHERE id IN ({placeholders})", ids)
            return cursor.rowcount

    def mark_synced(
        self, collection: str, record_id: str, updated_at: Optional[str] = None
    ) -> bool:
        """Flag a record as confirmed by the remote.

        Args:
            collection: Record collection.
            record_id: Record id.
            updated_at: If given, only mark when the row still carries this
                version; a newer local edit stays pending.

        Returns:
            True if a row was marked.
        """
        _check_synced_collection(collection)
        query = f"UPDATE {collection} SET sync_status = ? WHERE id = ?"
        params: list[Any] = [SYNC_SYNCED, record_id]
        if updated_at is not None:
            query += " AND updated_at = ?"
            params.append(updated_at)
        with self._connection() as conn:
            cursor = conn.execute(query, params)
            return cursor.rowcount > 0

    def count(self, collection: str, user_id: Optional[str] = None) -> int:
        """Count records, optionally for one user."""
        _check_collection(collection)
        if user_id is None:
            return self._count(collection)
        column = "id" if collection == PROFILES else "user_id"
        return self._count(collection, f"{column} = ?", (user_id,))

    def count_unsynced(self, user_id: str) -> int:
        """Count a user's records still waiting for remote confirmation."""
        return sum(
            self._count(collection, "user_id = ? AND sync_status = ?", (user_id, SYNC_PENDING))
            for collection in SYNCED_COLLECTIONS
        )

    # =========================================================================
    # Profile
    # =========================================================================

    def get_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        """Get the profile singleton for a user."""
        with self._connection() as conn:
            return self._select_one(conn, PROFILES, user_id)

    def save_profile(self, profile: dict[str, Any]) -> dict[str, Any]:
        """Insert or replace the profile mirrored from the remote."""
        if not profile.get("id"):
            raise ValidationError("profile requires id")
        data = dict(profile)
        data.setdefault("updated_at", _now_iso())
        row = _filter_columns(PROFILES, data)
        assignments = ", ".join(f"{c} = excluded.{c}" for c in row if c != "id")
        with self._connection() as conn:
            conn.execute(
                f"""INSERT INTO profiles ({", ".join(row)}) VALUES ({", ".join("?" for _ in row)})
                ON CONFLICT(id) DO UPDATE SET {assignments}""",
                tuple(row.values()),
            )
            return self._select_one(conn, PROFILES, data["id"])

    def wipe_for_user(self, user_id: str) -> dict[str, int]:
        """Clear a user's rows in every collection plus the whole queue.

        Runs in a single SQL transaction: either everything is removed or
        nothing is.

        Returns:
            Rows deleted per table.
        """
        counts: dict[str, int] = {}
        with self._connection() as conn:
            for collection in SYNCED_COLLECTIONS:
                cursor = conn.execute(f"DELETE FROM {collection} WHERE user_id = ?", (user_id,))
                counts[collection] = cursor.rowcount
            cursor = conn.execute("DELETE FROM profiles WHERE id = ?", (user_id,))
            counts[PROFILES] = cursor.rowcount
            cursor = conn.execute("DELETE FROM pending_operations")
            counts["pending_operations"] = cursor.rowcount
        logger.info("Wiped local data for user %s: %s", user_id, counts)
        return counts

    def get_categories_for_dedup(self, user_id: str) -> list[dict[str, Any]]:
        """Get a user's categories oldest first (created_at, then insertion)."""
        return self.query(CATEGORIES, user_id, order_by="created_at")
