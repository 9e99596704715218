"""Data model definitions for FinanzaPro."""

from .operations import (
    DELETE,
    INSERT,
    OPERATION_KINDS,
    UPDATE,
    UPSERT,
    Delete,
    Insert,
    PendingOperation,
    Update,
    Upsert,
    operation_from_row,
)
from .records import (
    ALL_COLLECTIONS,
    BUDGETS,
    CATEGORIES,
    DEFAULT_CATEGORIES,
    EXPENSE,
    GOALS,
    INCOME,
    PROFILES,
    SYNC_PENDING,
    SYNC_SYNCED,
    SYNCED_COLLECTIONS,
    TRANSACTIONS,
    normalize_type,
)

__all__ = [
    # Operations
    "DELETE",
    "INSERT",
    "OPERATION_KINDS",
    "UPDATE",
    "UPSERT",
    "Delete",
    "Insert",
    "PendingOperation",
    "Update",
    "Upsert",
    "operation_from_row",
    # Records
    "ALL_COLLECTIONS",
    "BUDGETS",
    "CATEGORIES",
    "DEFAULT_CATEGORIES",
    "EXPENSE",
    "GOALS",
    "INCOME",
    "PROFILES",
    "SYNC_PENDING",
    "SYNC_SYNCED",
    "SYNCED_COLLECTIONS",
    "TRANSACTIONS",
    "normalize_type",
]
