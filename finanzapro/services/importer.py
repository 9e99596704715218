"""Import of JSON backups and CSV statements into the local mirror.

Imported rows go through the normal create path, so each one is queued for
replay like a record typed in by hand. Bad rows are counted and skipped.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from tqdm import tqdm

from ..exceptions import ValidationError
from ..models.records import CATEGORIES, EXPENSE, INCOME, TRANSACTIONS, normalize_type
from ..models.validation import clean_category, clean_transaction, parse_amount

if TYPE_CHECKING:
    from ..db.database import Database

logger = logging.getLogger(__name__)

CSV_DEFAULT_DESCRIPTION = "CSV import"

# Header keywords per field, matched as substrings of the lowercased header
CSV_HEADERS = {
    "date": ("date", "fecha"),
    "type": ("type", "tipo"),
    "category": ("category", "categoría", "categoria"),
    "description": ("description", "descripción", "descripcion"),
    "amount": ("amount", "monto", "cantidad"),
}

# Backup field name -> local field name
_BACKUP_CATEGORY_FIELDS = {"nombre": "name", "tipo": "type", "icono": "icon"}
_BACKUP_TRANSACTION_FIELDS = {
    "monto": "amount",
    "fecha": "date",
    "descripcion": "description",
    "tipo": "type",
    "archivo_url": "attachment_url",
    "archivo_nombre": "attachment_name",
}


@dataclass
class ImportSummary:
    """Counts of records created and rows rejected by an import."""

    categories: int = 0
    transactions: int = 0
    errors: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "categories": self.categories,
            "transactions": self.transactions,
            "errors": self.errors,
        }


def _translate(record: dict[str, Any], mapping: dict[str, str]) -> dict[str, Any]:
    """Rename backup fields, keeping English names that are already present."""
    translated = dict(record)
    for source, target in mapping.items():
        if source in record and target not in record:
            translated[target] = record[source]
    return translated


def _category_key(name: Any, record_type: Optional[str]) -> tuple[str, Optional[str]]:
    return str(name or "").strip().lower(), record_type


def _find_header(headers: list[str], field_name: str) -> int:
    for idx, header in enumerate(headers):
        if any(keyword in header for keyword in CSV_HEADERS[field_name]):
            return idx
    return -1


class Importer:
    """Import data for one user into the local mirror."""

    def __init__(self, db: Database, user_id: str, show_progress: bool = False):
        self._db = db
        self._user_id = user_id
        self._show_progress = show_progress

    def _categories_by_key(self) -> dict[tuple[str, Optional[str]], str]:
        by_key: dict[tuple[str, Optional[str]], str] = {}
        for category in self._db.query(CATEGORIES, self._user_id):
            by_key.setdefault(_category_key(category["name"], category["type"]), category["id"])
        return by_key

    def _first_of_type(self, record_type: str) -> Optional[str]:
        categories = self._db.query(CATEGORIES, self._user_id, type=record_type, limit=1)
        return categories[0]["id"] if categories else None

    # =========================================================================
    # JSON backup
    # =========================================================================

    def import_json(self, payload: dict[str, Any]) -> ImportSummary:
        """Import a ``{categorias: [...], transacciones: [...]}`` backup.

        English keys (``categories``/``transactions``) are accepted too.
        Categories are created only when (name, type) is new for the user.

        Returns:
            ImportSummary with created counts and rejected rows.
        """
        if not isinstance(payload, dict):
            raise ValidationError("Backup must be a JSON object")
        summary = ImportSummary()
        backup_categories = payload.get("categorias", payload.get("categories")) or []
        backup_transactions = payload.get("transacciones", payload.get("transactions")) or []
        if not isinstance(backup_categories, list) or not isinstance(backup_transactions, list):
            raise ValidationError("Backup categories and transactions must be lists")

        by_key = self._categories_by_key()
        old_ids: dict[str, str] = {}

        for raw in tqdm(
            backup_categories,
            desc="Importing categories",
            unit="category",
            leave=False,
            disable=not self._show_progress,
        ):
            try:
                if not isinstance(raw, dict):
                    raise ValidationError("category entry must be an object")
                data = _translate(raw, _BACKUP_CATEGORY_FIELDS)
                data = clean_category({k: data.get(k) for k in ("name", "type", "icon", "color")})
                key = _category_key(data["name"], data["type"])
                if key not in by_key:
                    created = self._db.create(CATEGORIES, {**data, "user_id": self._user_id})
                    by_key[key] = created["id"]
                    summary.categories += 1
                if raw.get("id"):
                    old_ids[raw["id"]] = by_key[key]
            except ValidationError as e:
                logger.warning("Skipping backup category %r: %s", raw, e)
                summary.errors += 1

        for raw in tqdm(
            backup_transactions,
            desc="Importing transactions",
            unit="txn",
            leave=False,
            disable=not self._show_progress,
        ):
            try:
                if not isinstance(raw, dict):
                    raise ValidationError("transaction entry must be an object")
                data = _translate(raw, _BACKUP_TRANSACTION_FIELDS)
                record_type = normalize_type(data.get("type"))
                category_id = self._resolve_backup_category(data, record_type, by_key, old_ids)
                record = clean_transaction(
                    {
                        "type": record_type,
                        "amount": data.get("amount"),
                        "date": data.get("date"),
                        "description": data.get("description"),
                    }
                )
                record.update(
                    user_id=self._user_id,
                    category_id=category_id,
                    attachment_url=data.get("attachment_url") or None,
                    attachment_name=data.get("attachment_name") or None,
                )
                self._db.create(TRANSACTIONS, record)
                summary.transactions += 1
            except ValidationError as e:
                logger.warning("Skipping backup transaction: %s", e)
                summary.errors += 1

        logger.info(
            "JSON import: %d categories, %d transactions, %d errors",
            summary.categories,
            summary.transactions,
            summary.errors,
        )
        return summary

    def _resolve_backup_category(
        self,
        data: dict[str, Any],
        record_type: Optional[str],
        by_key: dict[tuple[str, Optional[str]], str],
        old_ids: dict[str, str],
    ) -> Optional[str]:
        """Map a backup transaction's category onto a local category id.

        Order: the backup's own category ids, then the embedded category's
        name and type, then the first local category of the same type.
        """
        category_id = data.get("category_id")
        if category_id in old_ids:
            return old_ids[category_id]

        embedded = data.get("category")
        if isinstance(embedded, dict):
            name = embedded.get("nombre", embedded.get("name"))
            embedded_type = normalize_type(embedded.get("tipo", embedded.get("type"))) or record_type
            match = by_key.get(_category_key(name, embedded_type))
            if match:
                return match

        if category_id and self._db.get(CATEGORIES, category_id):
            return category_id
        if record_type:
            return self._first_of_type(record_type)
        return None

    # =========================================================================
    # CSV
    # =========================================================================

    def import_csv(self, text: str) -> ImportSummary:
        """Import transactions from CSV text.

        The header row is matched flexibly (English or Spanish names). Rows
        without a type take it from the amount's sign (negative = expense);
        the stored amount is always the absolute value.

        Raises:
            ValidationError: If the header lacks a date or amount column.
        """
        summary = ImportSummary()
        rows = list(csv.reader(io.StringIO(text.lstrip("\ufeff"))))
        if len(rows) < 2:
            return summary

        headers = [h.strip().strip('"').lower() for h in rows[0]]
        idx = {name: _find_header(headers, name) for name in CSV_HEADERS}
        if idx["date"] == -1 or idx["amount"] == -1:
            raise ValidationError("Invalid CSV: a date and an amount column are required")

        categories = self._db.query(CATEGORIES, self._user_id)

        def cell(row: list[str], name: str) -> str:
            position = idx[name]
            if position == -1 or position >= len(row):
                return ""
            return row[position].strip()

        for line_no, row in enumerate(
            tqdm(rows[1:], desc="Importing CSV", unit="row", leave=False, disable=not self._show_progress),
            start=2,
        ):
            if not any(value.strip() for value in row):
                continue
            try:
                amount = parse_amount(cell(row, "amount"))
                type_label = cell(row, "type")
                if type_label:
                    record_type = normalize_type(type_label) or EXPENSE
                else:
                    record_type = EXPENSE if amount < 0 else INCOME

                category_id = None
                category_name = cell(row, "category").lower()
                if category_name:
                    for category in categories:
                        if category["name"].lower() == category_name and category["type"] == record_type:
                            category_id = category["id"]
                            break
                if category_id is None:
                    category_id = next(
                        (c["id"] for c in categories if c["type"] == record_type), None
                    )

                description = cell(row, "description") if idx["description"] != -1 else ""
                record = clean_transaction(
                    {
                        "type": record_type,
                        "amount": abs(amount),
                        "date": cell(row, "date"),
                        "description": description or CSV_DEFAULT_DESCRIPTION,
                    }
                )
                record.update(user_id=self._user_id, category_id=category_id)
                self._db.create(TRANSACTIONS, record)
                summary.transactions += 1
            except ValidationError as e:
                logger.warning("Skipping CSV line %d: %s", line_no, e)
                summary.errors += 1

        logger.info("CSV import: %d transactions, %d errors", summary.transactions, summary.errors)
        return summary
