"""Record collections, column layouts and the default category catalogue."""

from __future__ import annotations

from typing import Any

TRANSACTIONS = "transactions"
CATEGORIES = "categories"
BUDGETS = "budgets"
GOALS = "goals"
PROFILES = "profiles"

# Collections that carry sync_status and are replayed through the queue
SYNCED_COLLECTIONS = (TRANSACTIONS, CATEGORIES, BUDGETS, GOALS)
ALL_COLLECTIONS = SYNCED_COLLECTIONS + (PROFILES,)

EXPENSE = "expense"
INCOME = "income"
RECORD_TYPES = (EXPENSE, INCOME)

SYNC_PENDING = "pending"
SYNC_SYNCED = "synced"

# Fields that exist only in the local mirror and are never sent upstream
LOCAL_ONLY_FIELDS = ("sync_status", "category")

BUDGET_CONFLICT_KEY = ("user_id", "category_id", "month", "year")

COLUMNS: dict[str, tuple[str, ...]] = {
    TRANSACTIONS: (
        "id",
        "user_id",
        "category_id",
        "type",
        "amount",
        "date",
        "description",
        "attachment_url",
        "attachment_name",
        "created_at",
        "updated_at",
        "sync_status",
    ),
    CATEGORIES: (
        "id",
        "user_id",
        "name",
        "type",
        "icon",
        "color",
        "created_at",
        "updated_at",
        "sync_status",
    ),
    BUDGETS: (
        "id",
        "user_id",
        "category_id",
        "month",
        "year",
        "limit_amount",
        "created_at",
        "updated_at",
        "sync_status",
    ),
    GOALS: (
        "id",
        "user_id",
        "name",
        "target_amount",
        "current_amount",
        "deadline",
        "icon",
        "color",
        "created_at",
        "updated_at",
        "sync_status",
    ),
    PROFILES: ("id", "email", "display_name", "metadata", "updated_at"),
}

# Columns stored as JSON text
JSON_COLUMNS = {PROFILES: ("metadata",)}

UNCATEGORIZED_NAME = "Uncategorized"
UNCATEGORIZED_COLOR = "#6b7280"
UNCATEGORIZED_ICON = "📦"

DEFAULT_CATEGORIES: tuple[dict[str, str], ...] = (
    # Expenses
    {"name": "Food", "type": EXPENSE, "icon": "🛒", "color": "#ef4444"},
    {"name": "Housing", "type": EXPENSE, "icon": "🏠", "color": "#f97316"},
    {"name": "Transport", "type": EXPENSE, "icon": "🚗", "color": "#eab308"},
    {"name": "Utilities", "type": EXPENSE, "icon": "💡", "color": "#84cc16"},
    {"name": "Entertainment", "type": EXPENSE, "icon": "🎬", "color": "#22c55e"},
    {"name": "Health", "type": EXPENSE, "icon": "🩺", "color": "#14b8a6"},
    # Income
    {"name": "Salary", "type": INCOME, "icon": "💰", "color": "#06b6d4"},
    {"name": "Freelance", "type": INCOME, "icon": "💼", "color": "#3b82f6"},
    {"name": "Investments", "type": INCOME, "icon": "📈", "color": "#6366f1"},
    {"name": "Gifts", "type": INCOME, "icon": "🎁", "color": "#8b5cf6"},
    {"name": "Refunds", "type": INCOME, "icon": "💸", "color": "#a855f7"},
    {"name": "Other Income", "type": INCOME, "icon": "📦", "color": "#ec4899"},
)


def normalize_type(value: str | None) -> str | None:
    """Map a free-form type label to ``expense``/``income``.

    Accepts the English labels and the Spanish ``gasto``/``ingreso`` used by
    backups. Returns None for anything unrecognised.
    """
    if not value:
        return None
    label = value.strip().lower()
    if "income" in label or "ingreso" in label:
        return INCOME
    if "expense" in label or "gasto" in label:
        return EXPENSE
    return None


def strip_local_fields(record: dict[str, Any]) -> dict[str, Any]:
    """Copy of a record without the local-only fields."""
    return {k: v for k, v in record.items() if k not in LOCAL_ONLY_FIELDS}
