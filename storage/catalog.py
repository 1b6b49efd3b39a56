"""Catalog Store.

Read/write access to catalog entries and the supplier codes that map a
supplier's article code to an entry. Quantities are stored as decimal
strings so that no precision is lost between receipts.
"""

import sqlite3
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set, Tuple

from core.errors import StoreError
from models.inventory import CatalogEntry, SupplierCode
from storage.db import SQLiteStore, store_errors


class CatalogStore(SQLiteStore):
    """Product catalog backed by SQLite.

    Example:
        catalog = CatalogStore(db_path)
        flour = catalog.add_entry("Farina 00", unit="kg",
                                  supplier_codes=[("Molino Rossi SRL", "F00-25")])
        catalog.find_by_supplier_code("Molino Rossi SRL", "F00-25")
    """

    # =========================================================================
    # Writes
    # =========================================================================

    def add_entry(
        self,
        name: str,
        unit: str = "pz",
        quantity_on_hand: Decimal = Decimal("0"),
        supplier_codes: Iterable[Tuple[str, str]] = (),
    ) -> CatalogEntry:
        """Create a catalog entry, optionally with its supplier codes."""
        entry = CatalogEntry(name=name, unit=unit, quantity_on_hand=Decimal(quantity_on_hand))
        now = datetime.utcnow().isoformat()

        with store_errors("add catalog entry"), self._connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO catalog_entries (name, unit, quantity_on_hand, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (entry.name, entry.unit, str(entry.quantity_on_hand), now, now),
            )
            entry_id = cursor.lastrowid
            for supplier_name, code in supplier_codes:
                self._insert_supplier_code(conn, entry_id, supplier_name, code)

        return self.get_entry(entry_id)

    def add_supplier_code(self, catalog_entry_id: int, supplier_name: str, code: str) -> None:
        """Map a supplier's article code to a catalog entry."""
        with store_errors("add supplier code"), self._connection() as conn:
            self._insert_supplier_code(conn, catalog_entry_id, supplier_name, code)

    def increment_quantity(
        self,
        catalog_entry_id: int,
        quantity: Decimal,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Decimal:
        """Add quantity to an entry's stock and return the new quantity on hand.

        Pass the connection of an open transaction to make the increment part
        of a larger atomic write.

        Raises:
            StoreError: If the entry does not exist or quantity is not positive
        """
        quantity = Decimal(quantity)
        if quantity <= 0:
            raise StoreError(f"Inbound quantity must be positive, got {quantity}")

        with store_errors("increment quantity"), self._connection(conn) as c:
            row = c.execute(
                "SELECT quantity_on_hand FROM catalog_entries WHERE id = ?",
                (catalog_entry_id,),
            ).fetchone()
            if row is None:
                raise StoreError(f"Catalog entry {catalog_entry_id} not found")

            new_quantity = Decimal(row["quantity_on_hand"]) + quantity
            c.execute(
                "UPDATE catalog_entries SET quantity_on_hand = ?, updated_at = ? WHERE id = ?",
                (str(new_quantity), datetime.utcnow().isoformat(), catalog_entry_id),
            )
        return new_quantity

    # =========================================================================
    # Reads
    # =========================================================================

    def get_entry(self, catalog_entry_id: int) -> Optional[CatalogEntry]:
        with store_errors("get catalog entry"), self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM catalog_entries WHERE id = ?", (catalog_entry_id,)
            ).fetchone()
            if row is None:
                return None
            codes = self._load_supplier_codes(conn, [row["id"]])
        return _row_to_entry(row, codes.get(row["id"], set()))

    def list_entries(self) -> List[CatalogEntry]:
        """All catalog entries ordered by id."""
        with store_errors("list catalog entries"), self._connection() as conn:
            rows = conn.execute("SELECT * FROM catalog_entries ORDER BY id").fetchall()
            codes = self._load_supplier_codes(conn, [row["id"] for row in rows])
        return [_row_to_entry(row, codes.get(row["id"], set())) for row in rows]

    def find_by_supplier_code(self, supplier_name: str, code: str) -> Optional[CatalogEntry]:
        """Exact, case-sensitive lookup of a (supplier, code) pair."""
        with store_errors("find by supplier code"), self._connection() as conn:
            row = conn.execute(
                """
                SELECT catalog_entry_id FROM catalog_supplier_codes
                WHERE supplier_name = ? AND code = ?
                """,
                (supplier_name, code),
            ).fetchone()
        if row is None:
            return None
        return self.get_entry(row["catalog_entry_id"])

    def search_by_name(self, fragment: str) -> List[CatalogEntry]:
        """Entries whose name contains fragment, case-insensitively, ordered by id."""
        needle = fragment.casefold()
        if not needle:
            return []
        return [entry for entry in self.list_entries() if needle in entry.name.casefold()]

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _insert_supplier_code(conn: sqlite3.Connection, catalog_entry_id: int, supplier_name: str, code: str) -> None:
        conn.execute(
            """
            INSERT INTO catalog_supplier_codes (catalog_entry_id, supplier_name, code)
            VALUES (?, ?, ?)
            """,
            (catalog_entry_id, supplier_name, code),
        )

    @staticmethod
    def _load_supplier_codes(conn: sqlite3.Connection, entry_ids: List[int]) -> Dict[int, Set[SupplierCode]]:
        codes: Dict[int, Set[SupplierCode]] = {}
        if not entry_ids:
            return codes
        placeholders = ",".join("?" for _ in entry_ids)
        rows = conn.execute(
            f"""
            SELECT catalog_entry_id, supplier_name, code FROM catalog_supplier_codes
            WHERE catalog_entry_id IN ({placeholders})
            """,
            entry_ids,
        ).fetchall()
        for row in rows:
            codes.setdefault(row["catalog_entry_id"], set()).add(
                SupplierCode(supplier_name=row["supplier_name"], code=row["code"])
            )
        return codes


def _row_to_entry(row: sqlite3.Row, codes: Set[SupplierCode]) -> CatalogEntry:
    return CatalogEntry(
        id=row["id"],
        name=row["name"],
        unit=row["unit"],
        quantity_on_hand=Decimal(row["quantity_on_hand"]),
        supplier_codes=frozenset(codes),
    )
