"""Session bootstrap: repair, seed and pull the local mirror.

Steps run in strict order:
1. Deduplicate categories (local repair, nothing queued)
2. Seed the default category catalogue when none exist (queued like any create)
3. Initial pull of every collection plus the profile (online only)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..models.records import (
    BUDGETS,
    CATEGORIES,
    DEFAULT_CATEGORIES,
    GOALS,
    PROFILES,
    TRANSACTIONS,
)
from .sync import PullResult

if TYPE_CHECKING:
    from ..db.database import Database
    from .sync import SyncEngine

logger = logging.getLogger(__name__)

# Dedup only kicks in above the size of the seed catalogue
DEDUP_THRESHOLD = len(DEFAULT_CATEGORIES)

PULL_ORDER = (CATEGORIES, TRANSACTIONS, BUDGETS, GOALS)


class Bootstrapper:
    """Establish a consistent local starting state for a session."""

    def __init__(self, db: Database, engine: SyncEngine):
        self._db = db
        self._engine = engine

    def deduplicate_categories(self, user_id: str) -> int:
        """Hard-delete duplicate (name, type) categories, keeping the earliest.

        Runs only when the user has more categories than the seed catalogue.
        Deletions are not queued: the remote copies are left alone.

        Returns:
            Number of categories removed.
        """
        categories = self._db.get_categories_for_dedup(user_id)
        if len(categories) <= DEDUP_THRESHOLD:
            return 0

        seen: set[tuple[str, str]] = set()
        duplicate_ids = []
        for category in categories:
            key = (category["name"], category["type"])
            if key in seen:
                duplicate_ids.append(category["id"])
            else:
                seen.add(key)

        if not duplicate_ids:
            return 0
        removed = self._db.hard_delete_many(CATEGORIES, duplicate_ids)
        logger.info("Removed %d duplicate categories for user %s", removed, user_id)
        return removed

    def ensure_default_categories(self, user_id: str) -> int:
        """Seed the default catalogue if the user has no categories.

        Returns:
            Number of categories created.
        """
        if self._db.count(CATEGORIES, user_id) > 0:
            return 0
        for category in DEFAULT_CATEGORIES:
            self._db.create(CATEGORIES, {**category, "user_id": user_id})
        logger.info("Created %d default categories", len(DEFAULT_CATEGORIES))
        return len(DEFAULT_CATEGORIES)

    async def initial_pull(self) -> dict[str, PullResult]:
        """Pull every collection and the profile, each independently."""
        results: dict[str, PullResult] = {}
        for collection in PULL_ORDER:
            results[collection] = await self._engine.pull(collection)
        results[PROFILES] = await self._engine.pull_profile()

        failed = [name for name, result in results.items() if not result.success]
        if failed:
            logger.warning("Initial pull incomplete, failed: %s", ", ".join(failed))
        else:
            logger.info("Initial pull complete")
        return results

    async def run(self, user_id: str, online: bool) -> dict[str, PullResult]:
        """Run dedup, seeding and (when online) the initial pull.

        Returns:
            Pull results keyed by collection; empty when offline.
        """
        self.deduplicate_categories(user_id)
        self.ensure_default_categories(user_id)
        if not online:
            logger.info("Offline: skipping initial pull")
            return {}
        return await self.initial_pull()
