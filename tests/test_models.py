"""Tests for record constants, queue operation variants and validation helpers."""

from datetime import date, datetime

import pytest

from finanzapro.exceptions import ValidationError
from finanzapro.models.operations import (
    DELETE,
    INSERT,
    UPSERT,
    Delete,
    Insert,
    Upsert,
    operation_from_row,
)
from finanzapro.models.records import EXPENSE, INCOME, normalize_type
from finanzapro.models.validation import (
    clean_budget,
    clean_goal,
    clean_transaction,
    parse_amount,
    parse_date,
    parse_month,
    parse_year,
)


class TestNormalizeType:
    @pytest.mark.parametrize(
        "label,expected",
        [
            ("expense", EXPENSE),
            ("Gasto", EXPENSE),
            (" INGRESO ", INCOME),
            ("Income", INCOME),
            ("transfer", None),
            ("", None),
            (None, None),
        ],
    )
    def test_labels(self, label, expected):
        assert normalize_type(label) == expected


class TestOperationFromRow:
    def test_builds_variant_per_kind(self):
        row = {"id": 7, "kind": INSERT, "table_name": "transactions", "record_id": "txn-1"}
        op = operation_from_row(row)
        assert isinstance(op, Insert)
        assert op.entry_id == 7
        assert op.attempts == 0

    def test_delete_keeps_snapshot(self):
        row = {
            "id": 1,
            "kind": DELETE,
            "table_name": "goals",
            "record_id": "goal-1",
            "snapshot": {"name": "Trip"},
        }
        op = operation_from_row(row)
        assert isinstance(op, Delete)
        assert op.snapshot == {"name": "Trip"}

    def test_upsert(self):
        row = {"id": 2, "kind": UPSERT, "table_name": "budgets", "record_id": "b-1"}
        assert isinstance(operation_from_row(row), Upsert)

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            operation_from_row({"id": 1, "kind": "MERGE", "table_name": "t", "record_id": "r"})


class TestParsers:
    def test_amount_rounds_to_cents(self):
        assert parse_amount(" 10.456 ") == 10.46
        assert parse_amount(3) == 3.0

    @pytest.mark.parametrize("value", ["abc", None, True, float("nan"), float("inf")])
    def test_amount_rejects(self, value):
        with pytest.raises(ValidationError):
            parse_amount(value)

    def test_date_inputs(self):
        assert parse_date("2024-02-29") == "2024-02-29"
        assert parse_date("2024-02-29T23:59:00Z") == "2024-02-29"
        assert parse_date(date(2024, 1, 2)) == "2024-01-02"
        assert parse_date(datetime(2024, 1, 2, 8, 30)) == "2024-01-02"

    @pytest.mark.parametrize("value", ["", "2023-02-29", "31/01/2024", 20240101])
    def test_date_rejects(self, value):
        with pytest.raises(ValidationError):
            parse_date(value)

    def test_month_and_year_bounds(self):
        assert parse_month("12") == 12
        with pytest.raises(ValidationError):
            parse_month(0)
        with pytest.raises(ValidationError):
            parse_year(1899)


class TestCleaners:
    def test_partial_transaction_only_checks_present_fields(self):
        assert clean_transaction({"description": " x "}, partial=True) == {"description": "x"}

    def test_full_transaction_requires_fields(self):
        with pytest.raises(ValidationError):
            clean_transaction({"type": "expense", "amount": 1})

    def test_zero_amount_is_allowed(self):
        cleaned = clean_transaction({"type": "expense", "amount": "0", "date": "2024-01-01"})
        assert cleaned["amount"] == 0

    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError, match="must not be negative"):
            clean_transaction({"type": "income", "amount": -0.5, "date": "2024-01-01"})

    def test_budget_normalizes(self):
        cleaned = clean_budget({"month": "3", "year": "2024", "limit_amount": "99.999"})
        assert cleaned["month"] == 3
        assert cleaned["year"] == 2024
        assert cleaned["limit_amount"] == 100.0

    def test_goal_defaults_current_amount(self):
        cleaned = clean_goal({"name": "Car", "target_amount": 5000})
        assert cleaned["current_amount"] == 0
        assert "deadline" not in cleaned

    def test_goal_clears_deadline(self):
        assert clean_goal({"deadline": ""}, partial=True)["deadline"] is None

    def test_goal_rejects_negative_current_amount(self):
        with pytest.raises(ValidationError):
            clean_goal({"name": "Car", "target_amount": 5000, "current_amount": -1})
