"""Aggregations over the local transactions mirror."""

from __future__ import annotations

import calendar
from datetime import date
from typing import Any, Optional

from ...models.records import (
    EXPENSE,
    INCOME,
    TRANSACTIONS,
    UNCATEGORIZED_COLOR,
    UNCATEGORIZED_ICON,
    UNCATEGORIZED_NAME,
)
from .base import DatabaseMixin


def month_range(month: int, year: int) -> tuple[str, str]:
    """Return first and last day of a month as YYYY-MM-DD strings."""
    last_day = calendar.monthrange(year, month)[1]
    return f"{year:04d}-{month:02d}-01", f"{year:04d}-{month:02d}-{last_day:02d}"


def _shift_month(month: int, year: int, offset: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + offset
    return index % 12 + 1, index // 12


class StatsMixin(DatabaseMixin):
    """Mixin for dashboard statistics."""

    query: Any

    def get_month_summary(self, user_id: str, month: int, year: int) -> dict[str, Any]:
        """Sum income and expenses for one calendar month.

        Returns:
            Dict with income, expenses, balance and transaction_count.
        """
        start, end = month_range(month, year)
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT type, COALESCE(SUM(amount), 0) AS total, COUNT(*) AS count
                FROM transactions
                WHERE user_id = ? AND date >= ? AND date <= ?
                GROUP BY type
                """,
                (user_id, start, end),
            ).fetchall()

        income = expenses = 0.0
        count = 0
        for row in rows:
            count += row["count"]
            if row["type"] == INCOME:
                income += row["total"]
            else:
                expenses += row["total"]
        return {
            "income": round(income, 2),
            "expenses": round(expenses, 2),
            "balance": round(income - expenses, 2),
            "transaction_count": count,
        }

    def get_expenses_by_category(self, user_id: str, month: int, year: int) -> list[dict[str, Any]]:
        """Group a month's expenses by category, largest total first.

        Transactions without a (known) category are grouped under a
        fallback "Uncategorized" entry.
        """
        start, end = month_range(month, year)
        transactions = self.query(
            TRANSACTIONS,
            user_id,
            type=EXPENSE,
            date_from=start,
            date_to=end,
            with_category=True,
        )

        groups: dict[str, dict[str, Any]] = {}
        for txn in transactions:
            category = txn.get("category") or {}
            key = txn.get("category_id") or "uncategorized"
            group = groups.get(key)
            if group is None:
                group = groups[key] = {
                    "id": key,
                    "name": category.get("name") or UNCATEGORIZED_NAME,
                    "color": category.get("color") or UNCATEGORIZED_COLOR,
                    "icon": category.get("icon") or UNCATEGORIZED_ICON,
                    "total": 0.0,
                    "count": 0,
                }
            group["total"] += float(txn["amount"])
            group["count"] += 1

        for group in groups.values():
            group["total"] = round(group["total"], 2)
        return sorted(groups.values(), key=lambda g: g["total"], reverse=True)

    def get_chart_data(
        self, user_id: str, months: int = 6, today: Optional[date] = None
    ) -> dict[str, list]:
        """Income/expense series for the last ``months`` months, oldest first."""
        today = today or date.today()
        data: dict[str, list] = {"labels": [], "income": [], "expenses": []}
        for offset in range(months - 1, -1, -1):
            month, year = _shift_month(today.month, today.year, -offset)
            summary = self.get_month_summary(user_id, month, year)
            data["labels"].append(f"{calendar.month_abbr[month]} {year}")
            data["income"].append(summary["income"])
            data["expenses"].append(summary["expenses"])
        return data
