"""Unmatched Item Registry.

Stores invoice lines that could not be associated with a catalog entry.
Items are created as pending; moving them to resolved or ignored is the
job of manual review, never of the ingestion pipeline.
"""

import sqlite3
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from models.inventory import UnmatchedItem, UnmatchedStatus
from storage.db import SQLiteStore, store_errors


class UnmatchedRegistry(SQLiteStore):
    """Unmatched line items backed by SQLite."""

    def add(self, item: UnmatchedItem) -> UnmatchedItem:
        """Record an unmatched item and return it with its id populated."""
        with store_errors("add unmatched item"), self._connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO unmatched_items
                (description, supplier_code, supplier_name, invoice_number, invoice_date,
                 source_file, quantity, unit_of_measure, detected_at, status, line_key)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    item.description,
                    item.supplier_code,
                    item.supplier_name,
                    item.invoice_number,
                    item.invoice_date.isoformat(),
                    item.source_file,
                    str(item.quantity) if item.quantity is not None else None,
                    item.unit_of_measure,
                    item.detected_at.isoformat(),
                    item.status.value,
                    item.line_key,
                ),
            )
            item_id = cursor.lastrowid
        return item.model_copy(update={"id": item_id})

    def list_items(
        self,
        status: Optional[UnmatchedStatus] = None,
        limit: Optional[int] = None,
    ) -> List[UnmatchedItem]:
        """Items newest first, optionally filtered by status."""
        query = "SELECT * FROM unmatched_items"
        params: list = []
        if status is not None:
            query += " WHERE status = ?"
            params.append(status.value)
        query += " ORDER BY detected_at DESC, id DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with store_errors("list unmatched items"), self._connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_item(row) for row in rows]

    def has_line(self, line_key: str) -> bool:
        with store_errors("find unmatched item"), self._connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM unmatched_items WHERE line_key = ?", (line_key,)
            ).fetchone()
        return row is not None

    def list_pending(self, limit: Optional[int] = 50) -> List[UnmatchedItem]:
        return self.list_items(status=UnmatchedStatus.PENDING, limit=limit)

    def count(self, status: Optional[UnmatchedStatus] = None) -> int:
        query = "SELECT COUNT(*) FROM unmatched_items"
        params: list = []
        if status is not None:
            query += " WHERE status = ?"
            params.append(status.value)
        with store_errors("count unmatched items"), self._connection() as conn:
            return conn.execute(query, params).fetchone()[0]


def _row_to_item(row: sqlite3.Row) -> UnmatchedItem:
    return UnmatchedItem(
        id=row["id"],
        description=row["description"],
        supplier_code=row["supplier_code"],
        supplier_name=row["supplier_name"],
        invoice_number=row["invoice_number"],
        invoice_date=date.fromisoformat(row["invoice_date"]),
        source_file=row["source_file"],
        quantity=Decimal(row["quantity"]) if row["quantity"] is not None else None,
        unit_of_measure=row["unit_of_measure"],
        detected_at=datetime.fromisoformat(row["detected_at"]),
        status=UnmatchedStatus(row["status"]),
        line_key=row["line_key"],
    )
