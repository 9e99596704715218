"""Tests for the DataManager facade."""

import json
from datetime import datetime

import pytest

from finanzapro.exceptions import NotFoundError, ValidationError
from finanzapro.models.records import BUDGETS, CATEGORIES, DEFAULT_CATEGORIES, GOALS, TRANSACTIONS
from finanzapro.services import DataManager

USER_ID = "user-1"


async def first_category(manager: DataManager, type: str = "expense") -> dict:
    categories = await manager.get_categories(type)
    return categories[0]


class TestSession:
    """Tests for session start, resume and teardown."""

    async def test_initialize_seeds_categories(self, manager):
        categories = await manager.get_categories()
        assert len(categories) == len(DEFAULT_CATEGORIES)
        assert [c["name"] for c in categories] == sorted(c["name"] for c in categories)

    async def test_initialize_uses_remote_user(self, database, mock_remote, sync_config):
        manager = DataManager(database, mock_remote, sync_config)
        await manager.initialize()
        assert manager.user_id == USER_ID
        await manager.engine.cancel_scheduled()

    async def test_initialize_without_user(self, database, mock_remote, sync_config):
        mock_remote.user_id = None
        manager = DataManager(database, mock_remote, sync_config)
        with pytest.raises(ValidationError):
            await manager.initialize()

    async def test_calls_require_a_user(self, database, mock_remote, sync_config):
        manager = DataManager(database, mock_remote, sync_config)
        with pytest.raises(ValidationError):
            await manager.get_transactions()

    async def test_resume_skips_bootstrap(self, database, mock_remote, sync_config):
        manager = DataManager(database, mock_remote, sync_config)
        assert manager.resume() == USER_ID
        assert await manager.get_categories() == []
        await manager.engine.cancel_scheduled()

    async def test_initialize_schedules_drain_of_seeded_categories(self, manager, mock_remote):
        await manager.engine.wait_scheduled()
        assert len(mock_remote.records(CATEGORIES)) == len(DEFAULT_CATEGORIES)

    async def test_sync_drains_immediately(self, manager, database, mock_remote):
        await manager.engine.wait_scheduled()
        await manager.create_transaction({"type": "expense", "amount": 5, "date": "2024-01-02"})
        assert manager.engine.has_scheduled_drain

        result = await manager.sync()

        assert result.succeeded == 1
        assert database.pending_count() == 0
        assert not manager.engine.has_scheduled_drain

    async def test_clear_user_data(self, manager, database):
        await manager.create_transaction({"type": "expense", "amount": 5, "date": "2024-01-02"})

        counts = await manager.clear_user_data()

        assert counts[TRANSACTIONS] == 1
        assert counts[CATEGORIES] == len(DEFAULT_CATEGORIES)
        assert database.pending_count(include_dead=True) == 0
        assert manager.user_id is None
        with pytest.raises(ValidationError):
            await manager.get_categories()

    async def test_refresh_offline_rejected(self, offline_manager):
        with pytest.raises(ValidationError):
            await offline_manager.refresh()

    async def test_status(self, manager):
        status = manager.get_status()
        assert status["user_id"] == USER_ID
        assert status["pending_operations"] == len(DEFAULT_CATEGORIES)


class TestTransactions:
    """Tests for transaction CRUD through the facade."""

    async def test_create_returns_pending_record(self, manager, database):
        category = await first_category(manager)

        txn = await manager.create_transaction(
            {
                "type": "expense",
                "amount": "42.129",
                "date": "2024-03-09T10:00:00",
                "category_id": category["id"],
                "description": "  Books ",
            }
        )

        assert txn["sync_status"] == "pending"
        assert txn["user_id"] == USER_ID
        assert txn["amount"] == 42.13
        assert txn["date"] == "2024-03-09"
        assert txn["description"] == "Books"

    @pytest.mark.parametrize(
        "data",
        [
            {"type": "expense", "amount": -3, "date": "2024-03-09"},
            {"type": "transfer", "amount": 3, "date": "2024-03-09"},
            {"type": "expense", "amount": 3, "date": "09/03/2024"},
            {"type": "expense", "date": "2024-03-09"},
        ],
    )
    async def test_create_rejects_invalid_input(self, manager, database, data):
        before = database.pending_count()
        with pytest.raises(ValidationError):
            await manager.create_transaction(data)
        assert database.count(TRANSACTIONS, USER_ID) == 0
        assert database.pending_count() == before

    async def test_get_transactions_filters_and_order(self, manager):
        food = await first_category(manager, "expense")
        salary = await first_category(manager, "income")
        await manager.create_transaction(
            {"type": "expense", "amount": 10, "date": "2024-03-01", "category_id": food["id"]}
        )
        await manager.create_transaction(
            {"type": "income", "amount": 900, "date": "2024-03-15", "category_id": salary["id"]}
        )
        await manager.create_transaction({"type": "expense", "amount": 7, "date": "2024-04-02"})

        march = await manager.get_transactions(month=3, year=2024)
        assert [t["date"] for t in march] == ["2024-03-15", "2024-03-01"]
        assert march[1]["category"]["id"] == food["id"]

        expenses = await manager.get_transactions(type="expense")
        assert [t["amount"] for t in expenses] == [7, 10]

        assert len(await manager.get_transactions(year=2024, limit=2)) == 2
        ranged = await manager.get_transactions(date_from="2024-03-10", date_to="2024-04-30")
        assert len(ranged) == 2

    async def test_month_filter_requires_year(self, manager):
        with pytest.raises(ValidationError):
            await manager.get_transactions(month=3)

    async def test_update(self, manager):
        txn = await manager.create_transaction(
            {"type": "expense", "amount": 10, "date": "2024-03-01"}
        )

        updated = await manager.update_transaction(txn["id"], {"amount": 11.5})

        assert updated["amount"] == 11.5
        assert updated["type"] == "expense"
        assert updated["updated_at"] >= txn["updated_at"]

    async def test_update_validates_patch(self, manager):
        txn = await manager.create_transaction(
            {"type": "expense", "amount": 10, "date": "2024-03-01"}
        )
        with pytest.raises(ValidationError):
            await manager.update_transaction(txn["id"], {"amount": -1})

    async def test_update_unknown_raises(self, manager):
        with pytest.raises(NotFoundError):
            await manager.update_transaction("missing", {"amount": 1})

    async def test_delete_is_idempotent(self, manager, database):
        txn = await manager.create_transaction(
            {"type": "expense", "amount": 10, "date": "2024-03-01"}
        )
        before = database.pending_count()

        snapshot = await manager.delete_transaction(txn["id"])

        assert snapshot["id"] == txn["id"]
        assert await manager.delete_transaction(txn["id"]) is None
        assert database.pending_count() == before + 1
        assert await manager.get_transaction(txn["id"]) is None

    async def test_other_users_records_are_invisible(self, manager, database):
        foreign = database.create(
            TRANSACTIONS,
            {"user_id": "user-2", "type": "expense", "amount": 1, "date": "2024-03-01"},
        )

        assert await manager.get_transaction(foreign["id"]) is None
        assert await manager.delete_transaction(foreign["id"]) is None
        with pytest.raises(NotFoundError):
            await manager.update_transaction(foreign["id"], {"amount": 2})
        assert await manager.get_transactions() == []


class TestCategories:
    async def test_create_and_filter(self, manager):
        created = await manager.create_category({"name": " Pets ", "type": "gasto", "icon": "🐶"})

        assert created["name"] == "Pets"
        assert created["type"] == "expense"
        names = [c["name"] for c in await manager.get_categories("expense")]
        assert "Pets" in names

    async def test_empty_name_rejected(self, manager):
        with pytest.raises(ValidationError):
            await manager.create_category({"name": "  ", "type": "expense"})

    async def test_update_and_delete(self, manager, database):
        category = await first_category(manager)

        renamed = await manager.update_category(category["id"], {"name": "Groceries"})
        assert renamed["name"] == "Groceries"

        await manager.delete_category(category["id"])
        assert database.get(CATEGORIES, category["id"]) is None
        assert await manager.delete_category(category["id"]) is None


class TestBudgets:
    async def test_save_twice_keeps_one_budget(self, manager, database):
        category = await first_category(manager)
        data = {"category_id": category["id"], "month": 3, "year": 2024, "limit_amount": 300}

        first = await manager.save_budget(data)
        second = await manager.save_budget({**data, "limit_amount": 450})

        assert first["id"] == second["id"]
        budgets = await manager.get_budgets(month=3, year=2024)
        assert len(budgets) == 1
        assert budgets[0]["limit_amount"] == 450
        assert budgets[0]["category"]["id"] == category["id"]

    @pytest.mark.parametrize(
        "data",
        [
            {"month": 13, "year": 2024, "limit_amount": 10},
            {"month": 3, "year": 2024, "limit_amount": 0},
            {"month": 3, "year": 2024},
        ],
    )
    async def test_invalid_budget(self, manager, data):
        with pytest.raises(ValidationError):
            await manager.save_budget(data)

    async def test_delete_budget(self, manager, database):
        budget = await manager.save_budget({"month": 1, "year": 2024, "limit_amount": 10})
        assert (await manager.delete_budget(budget["id"]))["id"] == budget["id"]
        assert database.get(BUDGETS, budget["id"]) is None


class TestGoals:
    async def test_goal_lifecycle(self, manager, database):
        goal = await manager.create_goal(
            {"name": "Trip", "target_amount": 1200, "deadline": "2024-12-31"}
        )
        assert goal["current_amount"] == 0

        funded = await manager.add_goal_funds(goal["id"], "150.50")
        funded = await manager.add_goal_funds(goal["id"], 49.5)
        assert funded["current_amount"] == 200

        updated = await manager.update_goal(goal["id"], {"target_amount": 1500})
        assert updated["target_amount"] == 1500
        assert updated["current_amount"] == 200

        assert len(await manager.get_goals()) == 1
        await manager.delete_goal(goal["id"])
        assert database.get(GOALS, goal["id"]) is None

    async def test_funds_must_be_positive(self, manager):
        goal = await manager.create_goal({"name": "Trip", "target_amount": 100})
        with pytest.raises(ValidationError):
            await manager.add_goal_funds(goal["id"], 0)

    async def test_funds_for_unknown_goal(self, manager):
        with pytest.raises(NotFoundError):
            await manager.add_goal_funds("missing", 5)

    async def test_invalid_goal(self, manager):
        with pytest.raises(ValidationError):
            await manager.create_goal({"name": "Trip", "target_amount": -1})


class TestStatistics:
    async def test_month_summary_and_breakdown(self, manager):
        food = await first_category(manager, "expense")
        await manager.create_transaction(
            {"type": "income", "amount": 1000, "date": "2024-05-01"}
        )
        await manager.create_transaction(
            {"type": "expense", "amount": 250, "date": "2024-05-20", "category_id": food["id"]}
        )

        summary = await manager.get_month_summary(5, 2024)
        assert summary["balance"] == 750
        assert summary["transaction_count"] == 2

        breakdown = await manager.get_expenses_by_category(5, 2024)
        assert breakdown[0]["name"] == food["name"]
        assert breakdown[0]["total"] == 250

    async def test_chart_data_months_validated(self, manager):
        with pytest.raises(ValidationError):
            await manager.get_chart_data(0)
        data = await manager.get_chart_data(3)
        assert len(data["labels"]) == 3

    async def test_profile_pulled_on_initialize(self, database, mock_remote, sync_config):
        mock_remote.profiles[USER_ID] = {"id": USER_ID, "email": "ana@example.com"}
        manager = DataManager(database, mock_remote, sync_config)
        await manager.initialize(USER_ID)

        profile = await manager.get_profile()

        assert profile["email"] == "ana@example.com"
        await manager.engine.cancel_scheduled()


class TestImport:
    async def test_csv_import_schedules_sync(self, manager, mock_remote):
        await manager.sync()

        summary = await manager.import_from_csv("Date,Amount\n2024-03-01,-12.50\n")

        assert summary.transactions == 1
        assert manager.engine.has_scheduled_drain
        await manager.engine.wait_scheduled()
        assert len(mock_remote.records(TRANSACTIONS)) == 1

    async def test_json_import(self, manager):
        summary = await manager.import_from_json(
            {"transacciones": [{"monto": 3, "fecha": "2024-03-01", "tipo": "ingreso"}]}
        )
        assert summary.transactions == 1


class TestExport:
    """Tests for the JSON backup export."""

    @staticmethod
    async def snapshot(manager: DataManager) -> set[tuple]:
        names = {c["id"]: c["name"] for c in await manager.get_categories()}
        return {
            (t["type"], t["amount"], t["date"], t["description"], names.get(t["category_id"]))
            for t in await manager.get_transactions()
        }

    async def test_export_strips_local_fields(self, manager):
        await manager.create_transaction(
            {"type": "expense", "amount": 4, "date": "2024-03-01", "description": "Bus"}
        )

        payload = await manager.export_to_json()

        assert datetime.fromisoformat(payload["exported"])
        assert len(payload["categorias"]) == len(DEFAULT_CATEGORIES)
        (txn,) = payload["transacciones"]
        assert "sync_status" not in txn
        assert "category" not in txn
        assert txn["description"] == "Bus"
        json.dumps(payload)

    async def test_backup_restores_into_another_user(
        self, manager, database, mock_remote, sync_config
    ):
        """Importing an export reproduces the same transactions and categories."""
        pets = await manager.create_category({"name": "Pets", "type": "expense", "icon": "🐶"})
        salary = await first_category(manager, "income")
        await manager.create_transaction(
            {
                "type": "expense",
                "amount": 25,
                "date": "2024-02-10",
                "description": "Vet",
                "category_id": pets["id"],
            }
        )
        await manager.create_transaction(
            {
                "type": "income",
                "amount": 900,
                "date": "2024-02-28",
                "description": "February",
                "category_id": salary["id"],
            }
        )
        await manager.create_transaction(
            {
                "type": "expense",
                "amount": 0,
                "date": "2024-03-01",
                "description": "Free trial",
                "category_id": pets["id"],
            }
        )
        payload = json.loads(json.dumps(await manager.export_to_json()))

        restored = DataManager(database, mock_remote, sync_config)
        restored.resume("user-2")
        summary = await restored.import_from_json(payload)

        assert summary.as_dict() == {
            "categories": len(DEFAULT_CATEGORIES) + 1,
            "transactions": 3,
            "errors": 0,
        }
        assert await self.snapshot(restored) == await self.snapshot(manager)
        restored_pets = [c for c in await restored.get_categories() if c["name"] == "Pets"]
        assert restored_pets[0]["icon"] == "🐶"
        assert restored_pets[0]["id"] != pets["id"]
        await restored.engine.cancel_scheduled()
        await restored.engine.wait_scheduled()
