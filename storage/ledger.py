"""Ledger Store.

Append-only store of stock movements. Rows are never updated or deleted:
the schema installs triggers that abort any UPDATE or DELETE.
"""

import sqlite3
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from models.inventory import MovementType, StockMovement
from storage.db import SQLiteStore, store_errors


class LedgerStore(SQLiteStore):
    """Inventory movement ledger backed by SQLite."""

    def append(self, movement: StockMovement, conn: Optional[sqlite3.Connection] = None) -> StockMovement:
        """Append a movement and return it with its id populated.

        Pass the connection of an open transaction to make the append part
        of a larger atomic write.
        """
        with store_errors("append stock movement"), self._connection(conn) as c:
            cursor = c.execute(
                """
                INSERT INTO stock_movements
                (movement_type, catalog_entry_id, quantity, unit, unit_price, total_value,
                 supplier_name, invoice_number, invoice_date, source_file, note,
                 automatic, created_at, line_key)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    movement.movement_type.value,
                    movement.catalog_entry_id,
                    str(movement.quantity),
                    movement.unit,
                    str(movement.unit_price),
                    str(movement.total_value),
                    movement.supplier_name,
                    movement.invoice_number,
                    movement.invoice_date.isoformat(),
                    movement.source_file,
                    movement.note,
                    1 if movement.automatic else 0,
                    movement.created_at.isoformat(),
                    movement.line_key,
                ),
            )
            movement_id = cursor.lastrowid
        return movement.model_copy(update={"id": movement_id})

    def list_movements(
        self,
        catalog_entry_id: Optional[int] = None,
        invoice_number: Optional[str] = None,
    ) -> List[StockMovement]:
        """Movements in insertion order, optionally filtered."""
        query = "SELECT * FROM stock_movements"
        clauses = []
        params = []
        if catalog_entry_id is not None:
            clauses.append("catalog_entry_id = ?")
            params.append(catalog_entry_id)
        if invoice_number is not None:
            clauses.append("invoice_number = ?")
            params.append(invoice_number)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY id"

        with store_errors("list stock movements"), self._connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_movement(row) for row in rows]

    def has_line(self, line_key: str) -> bool:
        """Whether a movement was already posted for this invoice line."""
        with store_errors("find stock movement"), self._connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM stock_movements WHERE line_key = ?", (line_key,)
            ).fetchone()
        return row is not None

    def count(self) -> int:
        with store_errors("count stock movements"), self._connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM stock_movements").fetchone()[0]


def _row_to_movement(row: sqlite3.Row) -> StockMovement:
    return StockMovement(
        id=row["id"],
        movement_type=MovementType(row["movement_type"]),
        catalog_entry_id=row["catalog_entry_id"],
        quantity=Decimal(row["quantity"]),
        unit=row["unit"],
        unit_price=Decimal(row["unit_price"]),
        total_value=Decimal(row["total_value"]),
        supplier_name=row["supplier_name"],
        invoice_number=row["invoice_number"],
        invoice_date=date.fromisoformat(row["invoice_date"]),
        source_file=row["source_file"],
        note=row["note"] or "",
        automatic=bool(row["automatic"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        line_key=row["line_key"],
    )
