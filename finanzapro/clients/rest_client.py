"""Remote client for a PostgREST-style backend (e.g. Supabase) over aiohttp."""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import aiohttp

from ..config import RemoteConfig
from ..exceptions import RemoteError, RemoteNotFoundError

logger = logging.getLogger(__name__)


class RestRemoteClient:
    """Async REST client.

    Tables live under ``<base_url>/rest/v1/<table>``; rows are addressed with
    ``eq.`` filters. Use as an async context manager, or call ``close()``.
    """

    def __init__(self, config: RemoteConfig, session: Optional[aiohttp.ClientSession] = None):
        self._config = config
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "RestRemoteClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._config.timeout_seconds)
            )
            self._owns_session = True
        return self._session

    def _headers(self, prefer: str = "return=representation") -> dict[str, str]:
        token = self._config.access_token or self._config.api_key
        return {
            "apikey": self._config.api_key,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Prefer": prefer,
        }

    def _url(self, table: str) -> str:
        return f"{self._config.base_url.rstrip('/')}/rest/v1/{table}"

    async def _request(
        self,
        method: str,
        table: str,
        params: Optional[dict[str, str]] = None,
        json_body: Any = None,
        prefer: str = "return=representation",
    ) -> Any:
        session = self._get_session()
        logger.debug("%s %s params=%s", method, table, params)
        try:
            async with session.request(
                method,
                self._url(table),
                params=params,
                json=json_body,
                headers=self._headers(prefer),
            ) as resp:
                if resp.status == 404:
                    raise RemoteNotFoundError(f"{method} {table}: not found", status=404)
                if resp.status >= 400:
                    text = await resp.text()
                    raise RemoteError(
                        f"{method} {table} failed: HTTP {resp.status}: {text[:200]}",
                        status=resp.status,
                    )
                if resp.status == 204:
                    return None
                return await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise RemoteError(f"{method} {table} failed: {e}") from e

    @staticmethod
    def _first(data: Any, method: str, table: str) -> dict[str, Any]:
        if isinstance(data, list):
            if not data:
                raise RemoteNotFoundError(f"{method} {table}: no row returned", status=404)
            return data[0]
        if isinstance(data, dict):
            return data
        raise RemoteError(f"{method} {table}: unexpected response {data!r}")

    async def fetch_all(
        self, table: str, filters: Optional[dict[str, Any]] = None
    ) -> list[dict[str, Any]]:
        params = {"select": "*"}
        for key, value in (filters or {}).items():
            params[key] = f"eq.{value}"
        data = await self._request("GET", table, params=params)
        return list(data or [])

    async def create(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        data = await self._request("POST", table, json_body=record)
        return self._first(data, "POST", table)

    async def update(self, table: str, record_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        data = await self._request(
            "PATCH", table, params={"id": f"eq.{record_id}"}, json_body=patch
        )
        return self._first(data, "PATCH", table)

    async def delete(self, table: str, record_id: str) -> None:
        try:
            await self._request(
                "DELETE", table, params={"id": f"eq.{record_id}"}, prefer="return=minimal"
            )
        except RemoteNotFoundError:
            logger.debug("DELETE %s/%s: already absent", table, record_id)

    async def upsert(
        self, table: str, record: dict[str, Any], conflict_key: Sequence[str]
    ) -> dict[str, Any]:
        data = await self._request(
            "POST",
            table,
            params={"on_conflict": ",".join(conflict_key)},
            json_body=record,
            prefer="resolution=merge-duplicates,return=representation",
        )
        return self._first(data, "POST", table)

    async def fetch_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        data = await self._request("GET", "profiles", params={"select": "*", "id": f"eq.{user_id}"})
        return data[0] if data else None

    def current_user_id(self) -> Optional[str]:
        return self._config.user_id or None
