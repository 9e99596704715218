"""Tests for session bootstrap (dedup, seeding, initial pull)."""

import pytest

from finanzapro.models.operations import DELETE
from finanzapro.models.records import (
    BUDGETS,
    CATEGORIES,
    DEFAULT_CATEGORIES,
    GOALS,
    PROFILES,
    TRANSACTIONS,
)
from finanzapro.services.bootstrap import DEDUP_THRESHOLD, Bootstrapper
from finanzapro.services.sync import SyncEngine

USER_ID = "user-1"


@pytest.fixture
def bootstrapper(database, mock_remote, sync_config):
    engine = SyncEngine(database, mock_remote, sync_config, user_id=USER_ID)
    return Bootstrapper(database, engine)


def add_category(database, name: str, type: str = "expense") -> dict:
    return database.create(CATEGORIES, {"user_id": USER_ID, "name": name, "type": type})


class TestDeduplicateCategories:
    """Tests for the category dedup repair."""

    def test_keeps_earliest_of_each_name_and_type(self, bootstrapper, database):
        """Only the first-created copy of a duplicated pair survives."""
        for category in DEFAULT_CATEGORIES:
            add_category(database, category["name"], category["type"])
        first_food = database.query(CATEGORIES, USER_ID)[0]
        assert first_food["name"] == "Food"
        add_category(database, "Food")
        add_category(database, "Food")
        add_category(database, "Salary", "income")

        removed = bootstrapper.deduplicate_categories(USER_ID)

        assert removed == 3
        remaining = database.query(CATEGORIES, USER_ID)
        assert len(remaining) == DEDUP_THRESHOLD
        food = [c for c in remaining if c["name"] == "Food"]
        assert [c["id"] for c in food] == [first_food["id"]]

    def test_no_queue_entries_for_repair(self, bootstrapper, database):
        """Dedup deletes are local only and never replayed."""
        for i in range(DEDUP_THRESHOLD):
            add_category(database, f"Cat {i}")
        add_category(database, "Cat 0")

        bootstrapper.deduplicate_categories(USER_ID)

        kinds = [entry["kind"] for entry in database.get_pending_operations()]
        assert DELETE not in kinds

    def test_skipped_at_or_below_threshold(self, bootstrapper, database):
        """A small category list is left alone even with duplicates."""
        add_category(database, "Food")
        add_category(database, "Food")

        assert bootstrapper.deduplicate_categories(USER_ID) == 0
        assert database.count(CATEGORIES, USER_ID) == 2

    def test_same_name_different_type_kept(self, bootstrapper, database):
        for i in range(DEDUP_THRESHOLD):
            add_category(database, f"Cat {i}")
        add_category(database, "Cat 0", "income")

        assert bootstrapper.deduplicate_categories(USER_ID) == 0

    def test_other_users_untouched(self, bootstrapper, database):
        for _ in range(DEDUP_THRESHOLD + 2):
            database.create(CATEGORIES, {"user_id": "user-2", "name": "Same", "type": "expense"})

        assert bootstrapper.deduplicate_categories(USER_ID) == 0
        assert database.count(CATEGORIES, "user-2") == DEDUP_THRESHOLD + 2


class TestEnsureDefaultCategories:
    def test_seeds_catalogue_once(self, bootstrapper, database):
        """An empty user gets the twelve defaults, each queued for replay."""
        assert bootstrapper.ensure_default_categories(USER_ID) == len(DEFAULT_CATEGORIES)
        assert bootstrapper.ensure_default_categories(USER_ID) == 0

        categories = database.query(CATEGORIES, USER_ID)
        assert [c["name"] for c in categories] == [c["name"] for c in DEFAULT_CATEGORIES]
        assert database.pending_count() == len(DEFAULT_CATEGORIES)

    def test_not_seeded_when_user_has_categories(self, bootstrapper, database):
        add_category(database, "Mine")
        assert bootstrapper.ensure_default_categories(USER_ID) == 0
        assert database.count(CATEGORIES, USER_ID) == 1


class TestInitialPull:
    """Tests for the initial pull across collections."""

    async def test_pulls_every_collection_in_order(self, bootstrapper, mock_remote):
        results = await bootstrapper.initial_pull()

        assert list(results) == [CATEGORIES, TRANSACTIONS, BUDGETS, GOALS, PROFILES]
        fetched = [call for call in mock_remote.calls if call[0].startswith("fetch")]
        assert [call[1] for call in fetched] == [CATEGORIES, TRANSACTIONS, BUDGETS, GOALS, PROFILES]

    async def test_failures_are_independent(self, bootstrapper, database, mock_remote):
        """One failing collection does not stop the others."""
        mock_remote.fail_tables = {TRANSACTIONS}
        mock_remote.tables[GOALS] = {
            "goal-1": {"id": "goal-1", "user_id": USER_ID, "name": "Trip", "target_amount": 500}
        }

        results = await bootstrapper.initial_pull()

        assert results[TRANSACTIONS].success is False
        assert results[GOALS].success is True
        assert results[GOALS].inserted == 1
        assert database.get(GOALS, "goal-1")["sync_status"] == "synced"


class TestRun:
    async def test_offline_skips_pull(self, bootstrapper, database, mock_remote):
        results = await bootstrapper.run(USER_ID, online=False)

        assert results == {}
        assert mock_remote.calls == []
        assert database.count(CATEGORIES, USER_ID) == len(DEFAULT_CATEGORIES)

    async def test_online_run_seeds_then_pulls(self, bootstrapper, database, mock_remote):
        mock_remote.tables[CATEGORIES] = {
            "remote-cat": {"id": "remote-cat", "user_id": USER_ID, "name": "Pets", "type": "expense"}
        }

        results = await bootstrapper.run(USER_ID, online=True)

        assert results[CATEGORIES].inserted == 1
        assert database.count(CATEGORIES, USER_ID) == len(DEFAULT_CATEGORIES) + 1
