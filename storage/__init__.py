"""Storage - SQLite-backed stores for the inventory pipeline.

Usage:
    from storage import init_inventory_db, CatalogStore, LedgerStore

    init_inventory_db(db_path)
    catalog = CatalogStore(db_path)
    ledger = LedgerStore(db_path)
"""

from storage.db import (
    SQLiteStore,
    init_inventory_db,
    compute_content_hash,
)
from storage.catalog import CatalogStore
from storage.ledger import LedgerStore
from storage.unmatched import UnmatchedRegistry
from storage.documents import DocumentRegistry

__all__ = [
    "SQLiteStore",
    "init_inventory_db",
    "compute_content_hash",
    "CatalogStore",
    "LedgerStore",
    "UnmatchedRegistry",
    "DocumentRegistry",
]
