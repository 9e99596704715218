"""Base mixin providing database connection interface.

All mixins inherit from this to access _connection() context manager.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import date, datetime
from typing import Any, Optional

from ...exceptions import ValidationError
from ...models.records import ALL_COLLECTIONS, COLUMNS, JSON_COLUMNS


def _now_iso() -> str:
    """Return current datetime as ISO format string."""
    return datetime.now().isoformat()


def _date_str(dt: date | datetime) -> str:
    """Convert date/datetime to YYYY-MM-DD string."""
    return dt.strftime("%Y-%m-%d")


def _check_collection(collection: str) -> None:
    if collection not in ALL_COLLECTIONS:
        raise ValidationError(f"Unknown collection: {collection!r}")


def _row_to_dict(collection: str, row: Optional[sqlite3.Row]) -> Optional[dict[str, Any]]:
    """Convert a sqlite row to a dict, decoding JSON columns."""
    if row is None:
        return None
    record = dict(row)
    for column in JSON_COLUMNS.get(collection, ()):
        raw = record.get(column)
        record[column] = json.loads(raw) if raw else {}
    return record


def _encode_value(collection: str, column: str, value: Any) -> Any:
    if column in JSON_COLUMNS.get(collection, ()):
        return json.dumps(value or {})
    if isinstance(value, (date, datetime)):
        return _date_str(value) if column in ("date", "deadline") else value.isoformat()
    return value


def _filter_columns(collection: str, record: dict[str, Any]) -> dict[str, Any]:
    """Keep only known columns, encoding values for storage."""
    columns = COLUMNS[collection]
    return {k: _encode_value(collection, k, v) for k, v in record.items() if k in columns}


class DatabaseMixin:
    """Mixin base; the composing Database class provides _connection()."""

    _connection: Any

    def _count(self, table: str, where: str = "", params: tuple = ()) -> int:
        """Count rows in a table with optional WHERE clause.

        Args:
            table: Table name to count from.
            where: Optional WHERE clause (without 'WHERE' keyword).
            params: Parameters for the WHERE clause.

        Returns:
            Number of matching rows.
        """
        query = f"SELECT COUNT(*) as count FROM {table}"
        if where:
            query += f" WHERE {where}"
        with self._connection() as conn:
            row = conn.execute(query, params).fetchone()
            return int(row["count"]) if row else 0
