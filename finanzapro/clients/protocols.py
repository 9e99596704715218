"""Protocol definitions for client interfaces.

These protocols define the expected interface for real and mock remote
clients, ensuring type safety and interface consistency.
"""

from typing import Any, Optional, Protocol, Sequence


class RemoteClientProtocol(Protocol):
    """Protocol defining the remote backend interface."""

    async def fetch_all(
        self, table: str, filters: Optional[dict[str, Any]] = None
    ) -> list[dict[str, Any]]:
        """Fetch every record of a table matching equality filters."""
        ...

    async def create(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        """Create a record."""
        ...

    async def update(self, table: str, record_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        """Update a record by id."""
        ...

    async def delete(self, table: str, record_id: str) -> None:
        """Delete a record by id. Deleting an absent id must succeed."""
        ...

    async def upsert(
        self, table: str, record: dict[str, Any], conflict_key: Sequence[str]
    ) -> dict[str, Any]:
        """Insert or replace a record on a natural key."""
        ...

    async def fetch_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        """Fetch the profile of a user."""
        ...

    def current_user_id(self) -> Optional[str]:
        """Get the authenticated user id, or None when signed out."""
        ...
