"""Input validation for facade calls and import rows.

Each ``clean_*`` function returns a normalized copy of the input or raises
ValidationError; nothing is written when validation fails.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any, Optional

from ..exceptions import ValidationError
from .records import RECORD_TYPES, normalize_type


def parse_amount(value: Any, field_name: str = "amount") -> float:
    """Parse a decimal amount, rounded to cents."""
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    try:
        amount = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field_name} must be a number, got {value!r}") from e
    if not math.isfinite(amount):
        raise ValidationError(f"{field_name} must be finite")
    return round(amount, 2)


def parse_date(value: Any, field_name: str = "date") -> str:
    """Parse a calendar date into ``YYYY-MM-DD``.

    Accepts date/datetime objects and ISO strings (a time part is dropped).
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} is required")
    text = value.strip()[:10]
    try:
        return datetime.strptime(text, "%Y-%m-%d").date().isoformat()
    except ValueError as e:
        raise ValidationError(f"{field_name} must be YYYY-MM-DD, got {value!r}") from e


def parse_type(value: Any) -> str:
    record_type = value if value in RECORD_TYPES else normalize_type(value)
    if record_type is None:
        raise ValidationError(f"type must be one of {RECORD_TYPES}, got {value!r}")
    return record_type


def parse_month(value: Any) -> int:
    try:
        month = int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"month must be an integer, got {value!r}") from e
    if not 1 <= month <= 12:
        raise ValidationError(f"month must be between 1 and 12, got {month}")
    return month


def parse_year(value: Any) -> int:
    try:
        year = int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"year must be an integer, got {value!r}") from e
    if not 1900 <= year <= 9999:
        raise ValidationError(f"year out of range: {year}")
    return year


def _require_name(value: Any, field_name: str = "name") -> str:
    name = str(value or "").strip()
    if not name:
        raise ValidationError(f"{field_name} must not be empty")
    return name


def clean_transaction(data: dict[str, Any], partial: bool = False) -> dict[str, Any]:
    """Validate transaction fields.

    Args:
        data: Raw field values.
        partial: Only validate the fields present (for updates).

    Returns:
        Normalized field dict.
    """
    cleaned = dict(data)
    if not partial or "type" in data:
        cleaned["type"] = parse_type(data.get("type"))
    if not partial or "amount" in data:
        if data.get("amount") is None:
            raise ValidationError("amount is required")
        amount = parse_amount(data["amount"])
        if amount < 0:
            raise ValidationError("amount must not be negative")
        cleaned["amount"] = amount
    if not partial or "date" in data:
        cleaned["date"] = parse_date(data.get("date"))
    if "description" in data and data["description"] is not None:
        cleaned["description"] = str(data["description"]).strip()
    return cleaned


def clean_category(data: dict[str, Any], partial: bool = False) -> dict[str, Any]:
    """Validate category fields."""
    cleaned = dict(data)
    if not partial or "name" in data:
        cleaned["name"] = _require_name(data.get("name"))
    if not partial or "type" in data:
        cleaned["type"] = parse_type(data.get("type"))
    return cleaned


def clean_budget(data: dict[str, Any]) -> dict[str, Any]:
    """Validate a budget (always a full record: budgets are saved, not patched)."""
    cleaned = dict(data)
    cleaned["month"] = parse_month(data.get("month"))
    cleaned["year"] = parse_year(data.get("year"))
    if data.get("limit_amount") is None:
        raise ValidationError("limit_amount is required")
    limit = parse_amount(data["limit_amount"], "limit_amount")
    if limit <= 0:
        raise ValidationError("limit_amount must be positive")
    cleaned["limit_amount"] = limit
    return cleaned


def clean_goal(data: dict[str, Any], partial: bool = False) -> dict[str, Any]:
    """Validate goal fields."""
    cleaned = dict(data)
    if not partial or "name" in data:
        cleaned["name"] = _require_name(data.get("name"))
    if not partial or "target_amount" in data:
        if data.get("target_amount") is None:
            raise ValidationError("target_amount is required")
        target = parse_amount(data["target_amount"], "target_amount")
        if target <= 0:
            raise ValidationError("target_amount must be positive")
        cleaned["target_amount"] = target
    if "current_amount" in data or not partial:
        current = parse_amount(data.get("current_amount") or 0, "current_amount")
        if current < 0:
            raise ValidationError("current_amount must not be negative")
        cleaned["current_amount"] = current
    deadline: Optional[Any] = data.get("deadline")
    if deadline:
        cleaned["deadline"] = parse_date(deadline, "deadline")
    elif "deadline" in data:
        cleaned["deadline"] = None
    return cleaned
