"""Models Package.

Data models for the invoice intake pipeline:
- Parsed invoice models (invoice, lines, skipped lines)
- Inventory models (catalog entries, stock movements, unmatched items)
- Processing report and service statistics
"""

from models.invoice import (
    Invoice,
    InvoiceLine,
    SkippedLine,
)

from models.inventory import (
    CatalogEntry,
    SupplierCode,
    MovementType,
    StockMovement,
    UnmatchedStatus,
    UnmatchedItem,
    ProcessedDocument,
)

from models.report import (
    ProcessingReport,
    IngestionState,
    IngestionStats,
)

__all__ = [
    # Invoice
    "Invoice",
    "InvoiceLine",
    "SkippedLine",
    # Inventory
    "CatalogEntry",
    "SupplierCode",
    "MovementType",
    "StockMovement",
    "UnmatchedStatus",
    "UnmatchedItem",
    "ProcessedDocument",
    # Reports
    "ProcessingReport",
    "IngestionState",
    "IngestionStats",
]
