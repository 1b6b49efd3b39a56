"""Inventory Database Schema and Connection Helpers.

This module owns the SQLite schema used by every store:
- catalog_entries / catalog_supplier_codes: the product catalog
- stock_movements: append-only ledger of inbound receipts
- unmatched_items: lines pending manual reconciliation
- processed_documents: content hashes of fully reconciled invoice files

Movements and unmatched items carry a line_key (document hash and line
position), so a line is recorded at most once however often its file is
delivered.

The schema is created once at process start by init_inventory_db() and
the stores are handed the same database path.
"""

import hashlib
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

from core.config import DEFAULT_DB_PATH
from core.errors import StoreError
from core.observability.logging import get_logger

logger = get_logger(__name__)

PathLike = Union[str, Path]


SCHEMA = """
CREATE TABLE IF NOT EXISTS catalog_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    unit TEXT NOT NULL DEFAULT 'pz',
    quantity_on_hand TEXT NOT NULL DEFAULT '0',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS catalog_supplier_codes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    catalog_entry_id INTEGER NOT NULL,
    supplier_name TEXT NOT NULL,
    code TEXT NOT NULL,
    FOREIGN KEY (catalog_entry_id) REFERENCES catalog_entries(id),
    UNIQUE(supplier_name, code)
);

CREATE INDEX IF NOT EXISTS idx_supplier_codes_entry
ON catalog_supplier_codes(catalog_entry_id);

CREATE TABLE IF NOT EXISTS stock_movements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    movement_type TEXT NOT NULL CHECK(movement_type IN ('inbound')),
    catalog_entry_id INTEGER NOT NULL,
    quantity TEXT NOT NULL,
    unit TEXT NOT NULL,
    unit_price TEXT NOT NULL,
    total_value TEXT NOT NULL,
    supplier_name TEXT NOT NULL,
    invoice_number TEXT NOT NULL,
    invoice_date TEXT NOT NULL,
    source_file TEXT NOT NULL,
    note TEXT,
    automatic INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    line_key TEXT UNIQUE,
    FOREIGN KEY (catalog_entry_id) REFERENCES catalog_entries(id)
);

CREATE INDEX IF NOT EXISTS idx_stock_movements_entry
ON stock_movements(catalog_entry_id);

CREATE INDEX IF NOT EXISTS idx_stock_movements_invoice
ON stock_movements(supplier_name, invoice_number);

CREATE TRIGGER IF NOT EXISTS stock_movements_no_update
BEFORE UPDATE ON stock_movements
BEGIN
    SELECT RAISE(ABORT, 'stock_movements is append-only');
END;

CREATE TRIGGER IF NOT EXISTS stock_movements_no_delete
BEFORE DELETE ON stock_movements
BEGIN
    SELECT RAISE(ABORT, 'stock_movements is append-only');
END;

CREATE TABLE IF NOT EXISTS unmatched_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    description TEXT NOT NULL,
    supplier_code TEXT,
    supplier_name TEXT NOT NULL,
    invoice_number TEXT NOT NULL,
    invoice_date TEXT NOT NULL,
    source_file TEXT NOT NULL,
    quantity TEXT,
    unit_of_measure TEXT,
    detected_at TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK(status IN ('pending', 'resolved', 'ignored')),
    line_key TEXT UNIQUE
);

CREATE INDEX IF NOT EXISTS idx_unmatched_items_status
ON unmatched_items(status, detected_at);

CREATE TABLE IF NOT EXISTS processed_documents (
    content_hash TEXT PRIMARY KEY,
    source_file TEXT NOT NULL,
    supplier_name TEXT NOT NULL,
    invoice_number TEXT NOT NULL,
    processed_at TEXT NOT NULL
);
"""


def init_inventory_db(db_path: PathLike = DEFAULT_DB_PATH) -> None:
    """Initialize all inventory tables.

    Safe to call repeatedly; every statement is IF NOT EXISTS.

    Args:
        db_path: Path to SQLite database file
    """
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    try:
        conn.executescript(SCHEMA)
        conn.commit()
        logger.info("Inventory tables initialized", extra_fields={"db_path": str(db_path)})
    finally:
        conn.close()


def compute_content_hash(data: bytes) -> str:
    """Compute SHA256 hash of document bytes."""
    return hashlib.sha256(data).hexdigest()


def _is_transient(error: sqlite3.Error) -> bool:
    message = str(error).lower()
    return "locked" in message or "busy" in message


@contextmanager
def store_errors(action: str) -> Iterator[None]:
    """Re-raise sqlite errors as StoreError, flagging lock contention as transient."""
    try:
        yield
    except sqlite3.OperationalError as e:
        raise StoreError(f"{action} failed: {e}", transient=_is_transient(e)) from e
    except sqlite3.Error as e:
        raise StoreError(f"{action} failed: {e}") from e


class SQLiteStore:
    """Base class for stores sharing one SQLite database file."""

    def __init__(self, db_path: PathLike = DEFAULT_DB_PATH, timeout: float = 5.0):
        self.db_path = Path(db_path)
        self.timeout = timeout

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction; commit on success, roll back on any error.

        Usage:
            with ledger.transaction() as conn:
                ledger.append(movement, conn=conn)
                catalog.increment_quantity(entry_id, quantity, conn=conn)
        """
        with store_errors("begin transaction"):
            conn = self.connect()
            conn.isolation_level = None
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error:
                conn.close()
                raise
        try:
            yield conn
            with store_errors("commit"):
                conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    @contextmanager
    def _connection(self, conn: sqlite3.Connection = None) -> Iterator[sqlite3.Connection]:
        """Use the caller's connection, or open (and commit/close) a private one."""
        if conn is not None:
            yield conn
            return
        own = self.connect()
        try:
            yield own
            own.commit()
        finally:
            own.close()
