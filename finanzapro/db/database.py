"""SQLite local mirror for FinanzaPro.

Handles connection management and composes the query mixins for:
- Record collections (transactions, categories, budgets, goals, profiles)
- The pending operations queue replayed by the sync engine
- Dashboard statistics
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from ..exceptions import StorageError
from .mixins import PendingOperationsMixin, RecordsMixin, StatsMixin

__all__ = ["Database"]

logger = logging.getLogger(__name__)


class Database(RecordsMixin, PendingOperationsMixin, StatsMixin):
    """SQLite database manager for the offline-first mirror."""

    def __init__(self, db_path: Path | str):
        """Initialize database connection."""
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        if str(db_path) != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create a persistent database connection."""
        if self._conn is None:
            try:
                self._conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30.0)
                self._conn.row_factory = sqlite3.Row
                self._conn.execute("PRAGMA journal_mode=WAL")
                self._conn.execute("PRAGMA busy_timeout=30000")
            except sqlite3.Error as e:
                self._conn = None
                raise StorageError(f"Cannot open database {self.db_path}: {e}") from e
        return self._conn

    def close(self):
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for a single SQL transaction.

        Commits on success, rolls back on any error. sqlite errors surface as
        StorageError; other exceptions propagate unchanged.
        """
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(str(e)) from e
        except Exception:
            conn.rollback()
            raise

    def _init_schema(self):
        """Create database tables if they don't exist."""
        with self._connection() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS profiles (
                    id TEXT PRIMARY KEY,
                    email TEXT,
                    display_name TEXT,
                    metadata TEXT,
                    updated_at TIMESTAMP
                );
                CREATE TABLE IF NOT EXISTS categories (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    type TEXT NOT NULL,
                    icon TEXT,
                    color TEXT,
                    created_at TIMESTAMP,
                    updated_at TIMESTAMP,
                    sync_status TEXT DEFAULT 'pending'
                );
                CREATE TABLE IF NOT EXISTS transactions (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    category_id TEXT,
                    type TEXT NOT NULL,
                    amount REAL NOT NULL,
                    date DATE NOT NULL,
                    description TEXT,
                    attachment_url TEXT,
                    attachment_name TEXT,
                    created_at TIMESTAMP,
                    updated_at TIMESTAMP,
                    sync_status TEXT DEFAULT 'pending'
                );
                CREATE TABLE IF NOT EXISTS budgets (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    category_id TEXT,
                    month INTEGER NOT NULL,
                    year INTEGER NOT NULL,
                    limit_amount REAL NOT NULL,
                    created_at TIMESTAMP,
                    updated_at TIMESTAMP,
                    sync_status TEXT DEFAULT 'pending'
                );
                CREATE TABLE IF NOT EXISTS goals (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    target_amount REAL NOT NULL,
                    current_amount REAL NOT NULL DEFAULT 0,
                    deadline DATE,
                    icon TEXT,
                    color TEXT,
                    created_at TIMESTAMP,
                    updated_at TIMESTAMP,
                    sync_status TEXT DEFAULT 'pending'
                );
                CREATE TABLE IF NOT EXISTS pending_operations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    table_name TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    record_id TEXT NOT NULL,
                    snapshot TEXT,
                    enqueued_at TIMESTAMP NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_categories_user ON categories(user_id);
                CREATE INDEX IF NOT EXISTS idx_categories_type ON categories(type);
                CREATE INDEX IF NOT EXISTS idx_categories_name ON categories(name);
                CREATE INDEX IF NOT EXISTS idx_transactions_user ON transactions(user_id);
                CREATE INDEX IF NOT EXISTS idx_transactions_category ON transactions(category_id);
                CREATE INDEX IF NOT EXISTS idx_transactions_type ON transactions(type);
                CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(date);
                CREATE INDEX IF NOT EXISTS idx_budgets_user ON budgets(user_id);
                CREATE INDEX IF NOT EXISTS idx_budgets_category ON budgets(category_id);
                CREATE INDEX IF NOT EXISTS idx_budgets_period ON budgets(month, year);
                CREATE UNIQUE INDEX IF NOT EXISTS idx_budgets_natural_key
                    ON budgets(user_id, category_id, month, year);
                CREATE INDEX IF NOT EXISTS idx_goals_user ON goals(user_id);
                CREATE INDEX IF NOT EXISTS idx_goals_deadline ON goals(deadline);
                CREATE INDEX IF NOT EXISTS idx_pending_enqueued ON pending_operations(enqueued_at);
            """)
            self._run_migrations(conn)

    def _run_migrations(self, conn) -> None:
        """Run all schema migrations."""
        # Retry bookkeeping on the queue
        cursor = conn.execute("PRAGMA table_info(pending_operations)")
        columns = {row[1] for row in cursor.fetchall()}
        if "attempts" not in columns:
            conn.execute("ALTER TABLE pending_operations ADD COLUMN attempts INTEGER DEFAULT 0")
        if "last_error" not in columns:
            conn.execute("ALTER TABLE pending_operations ADD COLUMN last_error TEXT")
        if "next_attempt_at" not in columns:
            conn.execute("ALTER TABLE pending_operations ADD COLUMN next_attempt_at REAL")
        if "dead" not in columns:
            conn.execute("ALTER TABLE pending_operations ADD COLUMN dead BOOLEAN DEFAULT 0")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_pending_dead ON pending_operations(dead)")

        # Sync status index on every synced collection
        for table in ["transactions", "categories", "budgets", "goals"]:
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{table}_sync_status ON {table}(sync_status)"
            )
