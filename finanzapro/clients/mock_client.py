"""In-memory remote backend for tests and ``--mock`` mode."""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from pathlib import Path
from typing import Any, Optional, Sequence

from ..exceptions import RemoteError, RemoteNotFoundError

logger = logging.getLogger(__name__)


class MockRemoteClient:
    """Remote client keeping tables in dictionaries.

    Failure injection:
        offline: every call raises RemoteError.
        fail_tables: tables whose calls raise RemoteError.
        fail_ids: record ids whose calls raise RemoteError.
        hang: calls block until ``release()`` (for timeout tests).
        strict_delete: deleting a missing id raises RemoteNotFoundError.
    """

    def __init__(
        self,
        user_id: Optional[str] = "user-1",
        data_path: Optional[Path] = None,
    ):
        self.user_id = user_id
        self.tables: dict[str, dict[str, dict[str, Any]]] = {}
        self.profiles: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, str, Optional[str]]] = []
        self.offline = False
        self.fail_tables: set[str] = set()
        self.fail_ids: set[str] = set()
        self.strict_delete = False
        self.hang = False
        self._release = asyncio.Event()
        self._data_path = data_path
        if data_path is not None:
            self._load()

    # =========================================================================
    # Persistence (mock mode only)
    # =========================================================================

    def _load(self) -> None:
        if self._data_path is None or not self._data_path.exists():
            return
        with open(self._data_path, encoding="utf-8") as f:
            data = json.load(f)
        self.tables = data.get("tables", {})
        self.profiles = data.get("profiles", {})

    def save(self) -> None:
        """Persist tables to the JSON file, if one was configured."""
        if self._data_path is None:
            return
        self._data_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._data_path, "w", encoding="utf-8") as f:
            json.dump({"tables": self.tables, "profiles": self.profiles}, f, indent=2)

    # =========================================================================
    # Test helpers
    # =========================================================================

    def release(self) -> None:
        """Unblock calls held by ``hang``."""
        self.hang = False
        self._release.set()

    def records(self, table: str) -> list[dict[str, Any]]:
        return list(self.tables.get(table, {}).values())

    def calls_for(self, table: str) -> list[tuple[str, str, Optional[str]]]:
        return [call for call in self.calls if call[1] == table]

    async def _enter(self, op: str, table: str, record_id: Optional[str] = None) -> None:
        self.calls.append((op, table, record_id))
        await asyncio.sleep(0)
        if self.hang:
            self._release.clear()
            await self._release.wait()
        if self.offline:
            raise RemoteError("Network unreachable")
        if table in self.fail_tables or (record_id and record_id in self.fail_ids):
            raise RemoteError(f"Injected failure for {op} {table}/{record_id}", status=500)

    # =========================================================================
    # RemoteClientProtocol
    # =========================================================================

    async def fetch_all(
        self, table: str, filters: Optional[dict[str, Any]] = None
    ) -> list[dict[str, Any]]:
        await self._enter("fetch_all", table)
        rows = self.tables.get(table, {}).values()
        filters = filters or {}
        return [
            copy.deepcopy(row)
            for row in rows
            if all(row.get(key) == value for key, value in filters.items())
        ]

    async def create(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        await self._enter("create", table, record.get("id"))
        rows = self.tables.setdefault(table, {})
        if record["id"] in rows:
            raise RemoteError(f"Duplicate key {record['id']} in {table}", status=409)
        rows[record["id"]] = copy.deepcopy(record)
        self.save()
        return copy.deepcopy(record)

    async def update(self, table: str, record_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        await self._enter("update", table, record_id)
        rows = self.tables.setdefault(table, {})
        if record_id not in rows:
            raise RemoteNotFoundError(f"{table}/{record_id} not found", status=404)
        rows[record_id].update(copy.deepcopy(patch))
        self.save()
        return copy.deepcopy(rows[record_id])

    async def delete(self, table: str, record_id: str) -> None:
        await self._enter("delete", table, record_id)
        rows = self.tables.setdefault(table, {})
        if record_id not in rows:
            if self.strict_delete:
                raise RemoteNotFoundError(f"{table}/{record_id} not found", status=404)
            return
        del rows[record_id]
        self.save()

    async def upsert(
        self, table: str, record: dict[str, Any], conflict_key: Sequence[str]
    ) -> dict[str, Any]:
        await self._enter("upsert", table, record.get("id"))
        rows = self.tables.setdefault(table, {})
        key = tuple(record.get(k) for k in conflict_key)
        for existing_id, existing in list(rows.items()):
            if tuple(existing.get(k) for k in conflict_key) == key:
                merged = {**existing, **copy.deepcopy(record), "id": existing_id}
                rows[existing_id] = merged
                self.save()
                return copy.deepcopy(merged)
        rows[record["id"]] = copy.deepcopy(record)
        self.save()
        return copy.deepcopy(record)

    async def fetch_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        await self._enter("fetch_profile", "profiles", user_id)
        profile = self.profiles.get(user_id)
        return copy.deepcopy(profile) if profile else None

    def current_user_id(self) -> Optional[str]:
        return self.user_id
