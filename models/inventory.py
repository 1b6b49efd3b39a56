"""Inventory models: catalog entries, stock movements and unmatched items.

- CatalogEntry: A stock-keeping unit with its quantity on hand
- StockMovement: Immutable ledger record of an inbound receipt
- UnmatchedItem: An invoice line queued for manual reconciliation
- ProcessedDocument: Content hash of an invoice file already reconciled
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field


class SupplierCode(BaseModel):
    """A supplier's own article code for a catalog entry."""
    model_config = ConfigDict(frozen=True)

    supplier_name: str
    code: str


class CatalogEntry(BaseModel):
    """A product or ingredient in the catalog.

    Attributes:
        id: Database row ID
        name: Display name (matched against invoice descriptions)
        unit: Unit of stock (e.g. "kg", "pz")
        quantity_on_hand: Current stock; only ever increased by ingestion
        supplier_codes: Known (supplier, code) pairs for exact matching
    """
    id: Optional[int] = None
    name: str = Field(..., min_length=1)
    unit: str = Field(default="pz")
    quantity_on_hand: Decimal = Field(default=Decimal("0"), ge=0)
    supplier_codes: FrozenSet[SupplierCode] = Field(default_factory=frozenset)

    model_config = ConfigDict(from_attributes=True)

    def has_supplier_code(self, supplier_name: str, code: str) -> bool:
        return SupplierCode(supplier_name=supplier_name, code=code) in self.supplier_codes


class MovementType(str, Enum):
    """Direction of a stock movement."""
    INBOUND = "inbound"


class StockMovement(BaseModel):
    """An inbound stock movement posted from an invoice line."""
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    movement_type: MovementType = MovementType.INBOUND
    catalog_entry_id: int
    quantity: Decimal = Field(..., gt=0)
    unit: str
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)
    total_value: Decimal = Field(default=Decimal("0"), ge=0)
    supplier_name: str
    invoice_number: str
    invoice_date: date
    source_file: str
    note: str = ""
    automatic: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    line_key: Optional[str] = Field(default=None, description="Document hash and line position")


class UnmatchedStatus(str, Enum):
    """Review status of an unmatched item.

    The pipeline only creates PENDING items; RESOLVED and IGNORED are set
    by manual review.
    """
    PENDING = "pending"
    RESOLVED = "resolved"
    IGNORED = "ignored"


class UnmatchedItem(BaseModel):
    """An invoice line that could not be associated with a catalog entry."""
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    description: str
    supplier_code: Optional[str] = None
    supplier_name: str
    invoice_number: str
    invoice_date: date
    source_file: str
    quantity: Optional[Decimal] = None
    unit_of_measure: Optional[str] = None
    detected_at: datetime = Field(default_factory=datetime.utcnow)
    status: UnmatchedStatus = UnmatchedStatus.PENDING
    line_key: Optional[str] = Field(default=None, description="Document hash and line position")


class ProcessedDocument(BaseModel):
    """A document whose content has already been reconciled."""
    model_config = ConfigDict(frozen=True)

    content_hash: str = Field(..., description="SHA256 of the file bytes")
    source_file: str
    supplier_name: str
    invoice_number: str
    processed_at: datetime = Field(default_factory=datetime.utcnow)
