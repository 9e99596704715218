"""Data Manager facade used by the CLI (or any other front end).

Every call reads or writes the local mirror and returns immediately; remote
replay happens later through the sync engine's debounced background drain.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Optional

from ..config import SyncConfig
from ..db.mixins import month_range
from ..exceptions import NotFoundError, ValidationError
from ..models.records import BUDGETS, CATEGORIES, GOALS, TRANSACTIONS, strip_local_fields
from ..models.validation import (
    clean_budget,
    clean_category,
    clean_goal,
    clean_transaction,
    parse_amount,
    parse_date,
    parse_month,
    parse_type,
    parse_year,
)
from .bootstrap import Bootstrapper
from .importer import Importer, ImportSummary
from .sync import DrainResult, PullResult, SyncEngine

if TYPE_CHECKING:
    from ..clients import RemoteClientProtocol
    from ..db.database import Database

logger = logging.getLogger(__name__)


class DataManager:
    """Offline-first API over transactions, categories, budgets and goals.

    Mutations return the locally stored record before any remote
    confirmation and schedule a background drain when online. Reads of
    transactions, categories and budgets schedule one as well.
    """

    def __init__(
        self,
        db: Database,
        remote: RemoteClientProtocol,
        config: Optional[SyncConfig] = None,
        online: bool = True,
    ):
        """Initialize the facade.

        Args:
            db: Local mirror.
            remote: Remote client (real or mock).
            config: Sync engine tuning.
            online: Initial connectivity.
        """
        self._db = db
        self._remote = remote
        self._config = config or SyncConfig()
        self.engine = SyncEngine(db, remote, self._config, online=online)
        self._bootstrapper = Bootstrapper(db, self.engine)

    @property
    def user_id(self) -> Optional[str]:
        return self.engine.user_id

    @property
    def is_online(self) -> bool:
        return self.engine.is_online

    def _require_user(self) -> str:
        user_id = self.engine.user_id
        if not user_id:
            raise ValidationError("No authenticated user; call initialize() first")
        return user_id

    def _request_sync(self) -> None:
        if self.engine.is_online and self.engine.user_id:
            self.engine.schedule_drain()

    def _get_owned(self, collection: str, record_id: str) -> dict[str, Any]:
        record = self._db.get(collection, record_id)
        if record is None or record.get("user_id") != self._require_user():
            raise NotFoundError(collection, record_id)
        return record

    # =========================================================================
    # Session
    # =========================================================================

    async def initialize(self, user_id: Optional[str] = None) -> dict[str, PullResult]:
        """Start a session: bootstrap the local mirror for a user.

        Args:
            user_id: User to act for; defaults to the remote's signed-in user.

        Returns:
            Initial pull results per collection (empty when offline).
        """
        user_id = user_id or self._remote.current_user_id()
        if not user_id:
            raise ValidationError("No authenticated user")
        self.engine.set_user(user_id)
        logger.info("Initializing session for user %s (online=%s)", user_id, self.is_online)
        results = await self._bootstrapper.run(user_id, self.is_online)
        self._request_sync()
        return results

    def resume(self, user_id: Optional[str] = None) -> str:
        """Act for a user whose mirror was bootstrapped earlier (no pull)."""
        user_id = user_id or self._remote.current_user_id()
        if not user_id:
            raise ValidationError("No authenticated user")
        self.engine.set_user(user_id)
        return user_id

    async def refresh(self) -> dict[str, PullResult]:
        """Pull every collection and the profile from the remote."""
        self._require_user()
        if not self.is_online:
            raise ValidationError("Cannot refresh while offline")
        return await self._bootstrapper.initial_pull()

    def set_online(self, online: bool) -> None:
        self.engine.set_online(online)

    async def sync(self) -> DrainResult:
        """Drain the queue now instead of waiting for the debounce."""
        self._require_user()
        await self.engine.cancel_scheduled()
        return await self.engine.drain()

    async def clear_user_data(self) -> dict[str, int]:
        """Wipe the user's local rows and the queue, then forget the user."""
        user_id = self._require_user()
        await self.engine.cancel_scheduled()
        counts = self._db.wipe_for_user(user_id)
        self.engine.set_user(None)
        return counts

    def get_status(self) -> dict[str, Any]:
        return self.engine.get_status()

    def get_pending_operations(self) -> list[dict[str, Any]]:
        """Queue entries (dead letters included) for display."""
        return self._db.get_pending_operations()

    def retry_dead_letters(self) -> int:
        """Give dead-lettered entries a fresh retry budget."""
        revived = self._db.retry_dead_letters()
        if revived:
            logger.info("Revived %d dead-lettered operations", revived)
            self._request_sync()
        return revived

    def close(self) -> None:
        self._db.close()

    # =========================================================================
    # Transactions
    # =========================================================================

    async def get_transactions(
        self,
        type: Optional[str] = None,
        category_id: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        month: Optional[int] = None,
        year: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Get transactions, newest first, each with its ``category`` attached.

        Args:
            type: 'expense' or 'income'.
            category_id: Only this category.
            date_from: Inclusive lower date bound.
            date_to: Inclusive upper date bound.
            month: Calendar month (requires year).
            year: Calendar year; alone it selects the whole year.
            limit: Maximum number returned.
        """
        user_id = self._require_user()
        if type is not None:
            type = parse_type(type)
        if date_from is not None:
            date_from = parse_date(date_from, "date_from")
        if date_to is not None:
            date_to = parse_date(date_to, "date_to")
        if month is not None:
            if year is None:
                raise ValidationError("month filter requires year")
            date_from, date_to = month_range(parse_month(month), parse_year(year))
        elif year is not None:
            year = parse_year(year)
            date_from, date_to = f"{year:04d}-01-01", f"{year:04d}-12-31"

        transactions = self._db.query(
            TRANSACTIONS,
            user_id,
            order_by="date",
            descending=True,
            limit=limit,
            with_category=True,
            type=type,
            category_id=category_id,
            date_from=date_from,
            date_to=date_to,
        )
        self._request_sync()
        return transactions

    async def get_transaction(self, transaction_id: str) -> Optional[dict[str, Any]]:
        user_id = self._require_user()
        record = self._db.get(TRANSACTIONS, transaction_id)
        if record is None or record["user_id"] != user_id:
            return None
        return record

    async def create_transaction(self, data: dict[str, Any]) -> dict[str, Any]:
        """Create a transaction.

        Args:
            data: type, amount (zero or more), date, plus optional category_id,
                description, attachment_url and attachment_name.

        Returns:
            The stored transaction (sync_status 'pending').
        """
        user_id = self._require_user()
        record = clean_transaction(data)
        record["user_id"] = user_id
        created = self._db.create(TRANSACTIONS, record)
        logger.debug("Created transaction %s", created["id"])
        self._request_sync()
        return created

    async def update_transaction(self, transaction_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        self._get_owned(TRANSACTIONS, transaction_id)
        changes = clean_transaction(patch, partial=True)
        changes.pop("user_id", None)
        updated = self._db.update(TRANSACTIONS, transaction_id, changes)
        self._request_sync()
        return updated

    async def delete_transaction(self, transaction_id: str) -> Optional[dict[str, Any]]:
        """Delete a transaction; deleting an unknown id is a no-op returning None."""
        user_id = self._require_user()
        record = self._db.get(TRANSACTIONS, transaction_id)
        if record is None or record["user_id"] != user_id:
            return None
        snapshot = self._db.delete(TRANSACTIONS, transaction_id)
        self._request_sync()
        return snapshot

    # =========================================================================
    # Categories
    # =========================================================================

    async def get_categories(self, type: Optional[str] = None) -> list[dict[str, Any]]:
        """Get categories sorted by name, optionally of one type."""
        user_id = self._require_user()
        if type is not None:
            type = parse_type(type)
        categories = self._db.query(CATEGORIES, user_id, order_by="name", type=type)
        self._request_sync()
        return categories

    async def create_category(self, data: dict[str, Any]) -> dict[str, Any]:
        user_id = self._require_user()
        record = clean_category(data)
        record["user_id"] = user_id
        created = self._db.create(CATEGORIES, record)
        self._request_sync()
        return created

    async def update_category(self, category_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        self._get_owned(CATEGORIES, category_id)
        changes = clean_category(patch, partial=True)
        changes.pop("user_id", None)
        updated = self._db.update(CATEGORIES, category_id, changes)
        self._request_sync()
        return updated

    async def delete_category(self, category_id: str) -> Optional[dict[str, Any]]:
        """Delete a category. Transactions keep their (now dangling) category_id."""
        user_id = self._require_user()
        record = self._db.get(CATEGORIES, category_id)
        if record is None or record["user_id"] != user_id:
            return None
        snapshot = self._db.delete(CATEGORIES, category_id)
        self._request_sync()
        return snapshot

    # =========================================================================
    # Budgets
    # =========================================================================

    async def get_budgets(
        self, month: Optional[int] = None, year: Optional[int] = None
    ) -> list[dict[str, Any]]:
        user_id = self._require_user()
        budgets = self._db.query(
            BUDGETS,
            user_id,
            with_category=True,
            month=parse_month(month) if month is not None else None,
            year=parse_year(year) if year is not None else None,
        )
        self._request_sync()
        return budgets

    async def save_budget(self, data: dict[str, Any]) -> dict[str, Any]:
        """Insert or replace the budget for (category, month, year).

        Saving the same key again keeps a single budget with the new limit.
        """
        user_id = self._require_user()
        record = clean_budget(data)
        record["user_id"] = user_id
        saved = self._db.save_budget(record)
        self._request_sync()
        return saved

    async def delete_budget(self, budget_id: str) -> Optional[dict[str, Any]]:
        user_id = self._require_user()
        record = self._db.get(BUDGETS, budget_id)
        if record is None or record["user_id"] != user_id:
            return None
        snapshot = self._db.delete(BUDGETS, budget_id)
        self._request_sync()
        return snapshot

    # =========================================================================
    # Goals
    # =========================================================================

    async def get_goals(self) -> list[dict[str, Any]]:
        return self._db.query(GOALS, self._require_user())

    async def create_goal(self, data: dict[str, Any]) -> dict[str, Any]:
        user_id = self._require_user()
        record = clean_goal(data)
        record["user_id"] = user_id
        created = self._db.create(GOALS, record)
        self._request_sync()
        return created

    async def update_goal(self, goal_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        self._get_owned(GOALS, goal_id)
        changes = clean_goal(patch, partial=True)
        changes.pop("user_id", None)
        updated = self._db.update(GOALS, goal_id, changes)
        self._request_sync()
        return updated

    async def delete_goal(self, goal_id: str) -> Optional[dict[str, Any]]:
        user_id = self._require_user()
        record = self._db.get(GOALS, goal_id)
        if record is None or record["user_id"] != user_id:
            return None
        snapshot = self._db.delete(GOALS, goal_id)
        self._request_sync()
        return snapshot

    async def add_goal_funds(self, goal_id: str, amount: Any) -> dict[str, Any]:
        """Add money to a goal's current amount.

        The current amount only moves through this call; it is never derived
        from transactions.
        """
        goal = self._get_owned(GOALS, goal_id)
        funds = parse_amount(amount)
        if funds <= 0:
            raise ValidationError("amount must be positive")
        current = round(float(goal.get("current_amount") or 0) + funds, 2)
        updated = self._db.update(GOALS, goal_id, {"current_amount": current})
        self._request_sync()
        return updated

    # =========================================================================
    # Profile and statistics
    # =========================================================================

    async def get_profile(self) -> Optional[dict[str, Any]]:
        return self._db.get_profile(self._require_user())

    async def get_month_summary(
        self, month: Optional[int] = None, year: Optional[int] = None
    ) -> dict[str, Any]:
        """Income, expenses, balance and count for a month (default: current)."""
        today = date.today()
        month = parse_month(month) if month is not None else today.month
        year = parse_year(year) if year is not None else today.year
        return self._db.get_month_summary(self._require_user(), month, year)

    async def get_expenses_by_category(
        self, month: Optional[int] = None, year: Optional[int] = None
    ) -> list[dict[str, Any]]:
        today = date.today()
        month = parse_month(month) if month is not None else today.month
        year = parse_year(year) if year is not None else today.year
        return self._db.get_expenses_by_category(self._require_user(), month, year)

    async def get_chart_data(self, months: int = 6) -> dict[str, list]:
        if months < 1:
            raise ValidationError("months must be at least 1")
        return self._db.get_chart_data(self._require_user(), months)

    # =========================================================================
    # Import
    # =========================================================================

    async def import_from_json(self, payload: dict[str, Any]) -> ImportSummary:
        importer = Importer(self._db, self._require_user(), self._config.show_progress)
        summary = importer.import_json(payload)
        if summary.categories or summary.transactions:
            self._request_sync()
        return summary

    async def import_from_csv(self, text: str) -> ImportSummary:
        importer = Importer(self._db, self._require_user(), self._config.show_progress)
        summary = importer.import_csv(text)
        if summary.transactions:
            self._request_sync()
        return summary

    async def export_to_json(self) -> dict[str, Any]:
        """Build a JSON backup of the user's categories and transactions.

        Records keep their ids, so ``import_from_json`` maps each transaction
        back onto its category when the backup is restored.

        Returns:
            Dict with ``exported`` (ISO timestamp), ``categorias`` and
            ``transacciones``.
        """
        user_id = self._require_user()
        categories = self._db.query(CATEGORIES, user_id, order_by="name")
        transactions = self._db.query(TRANSACTIONS, user_id, order_by="date", descending=True)
        logger.info(
            "Exporting %d categories and %d transactions", len(categories), len(transactions)
        )
        return {
            "exported": datetime.now().isoformat(),
            "categorias": [strip_local_fields(c) for c in categories],
            "transacciones": [strip_local_fields(t) for t in transactions],
        }
