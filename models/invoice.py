"""Invoice models produced by the document parser.

These models are the explicit, typed form of a supplier invoice: required
and optional fields are declared here instead of being dug out of nested
XML nodes during processing. They are immutable once parsed.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, List

from pydantic import BaseModel, Field, ConfigDict
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


# =============================================================================
# Value Parsers (handle the textual values found in invoice documents)
# =============================================================================

def _parse_decimal(value):
    """Parse decimal from strings like "25.00" or " 3.5 "."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        try:
            return Decimal(s)
        except InvalidOperation:
            raise ValueError(f"Cannot parse decimal: {s}")
    return value


def _parse_date(value):
    """Parse ISO dates (YYYY-MM-DD), the format used by electronic invoices."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        for fmt in ("%Y-%m-%d", "%d/%m/%Y"):
            try:
                return datetime.strptime(s, fmt).date()
            except ValueError:
                continue
        raise ValueError(f"Cannot parse date: {s}")
    return value


DecimalValue = Annotated[Decimal, BeforeValidator(_parse_decimal)]
DateValue = Annotated[date, BeforeValidator(_parse_date)]


# =============================================================================
# Base Model
# =============================================================================

class InvoiceBase(BaseModel):
    """Base model for parsed invoice structures."""
    model_config = ConfigDict(frozen=True)


# =============================================================================
# Invoice Models
# =============================================================================

class InvoiceLine(InvoiceBase):
    """A goods line of a supplier invoice.

    line_total is informational only: stock quantities always come from
    quantity, never from dividing the total by the unit price.
    """
    line_number: Optional[int] = None
    description: str = Field(..., min_length=1)
    quantity: DecimalValue = Field(..., gt=0)
    unit_of_measure: Optional[str] = None
    unit_price: DecimalValue = Field(default=Decimal("0"), ge=0)
    line_total: DecimalValue = Field(default=Decimal("0"), ge=0)
    supplier_code: Optional[str] = None


class SkippedLine(InvoiceBase):
    """A line present in the document that is not a usable goods line."""
    line_number: Optional[int] = None
    description: str = ""
    reason: str


class Invoice(InvoiceBase):
    """A parsed supplier invoice."""
    supplier_name: str = Field(..., min_length=1)
    supplier_vat_number: Optional[str] = None
    invoice_number: str = Field(..., min_length=1)
    invoice_date: DateValue
    document_type: Optional[str] = None
    document_total: Optional[DecimalValue] = None
    source_file: str
    lines: List[InvoiceLine] = Field(default_factory=list)
    skipped_lines: List[SkippedLine] = Field(default_factory=list)

    @property
    def total_lines(self) -> int:
        """Every line of the document, usable or not."""
        return len(self.lines) + len(self.skipped_lines)
