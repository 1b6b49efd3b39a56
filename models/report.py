"""Processing report and service statistics models."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ProcessingReport(BaseModel):
    """Per-invoice summary of line outcomes.

    total_lines always equals matched_count + unmatched_count + error_count.
    """
    model_config = ConfigDict(frozen=True)

    supplier_name: str
    invoice_number: str
    invoice_date: date
    source_file: str
    total_lines: int = Field(..., ge=0)
    matched_count: int = Field(default=0, ge=0)
    unmatched_count: int = Field(default=0, ge=0)
    error_count: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _counts_add_up(self) -> "ProcessingReport":
        outcomes = self.matched_count + self.unmatched_count + self.error_count
        if outcomes != self.total_lines:
            raise ValueError(
                f"Line outcomes ({outcomes}) do not add up to total_lines ({self.total_lines})"
            )
        return self

    @property
    def fully_matched(self) -> bool:
        return self.unmatched_count == 0 and self.error_count == 0


class IngestionState(str, Enum):
    """Lifecycle state of an ingestion service."""
    IDLE = "idle"
    WATCHING = "watching"
    PROCESSING = "processing"
    STOPPED = "stopped"


class IngestionStats(BaseModel):
    """Immutable snapshot of an ingestion service's running statistics."""
    model_config = ConfigDict(frozen=True)

    is_running: bool
    state: IngestionState
    current_file: Optional[str] = None
    documents_processed: int = 0
    items_matched: int = 0
    items_unmatched: int = 0
    items_failed: int = 0
    errors: int = 0
    duplicates_skipped: int = 0
    last_processed_at: Optional[datetime] = None
    watch_folder: str
    processed_folder: str
    quarantine_folder: str
    average_processing_ms: float = 0.0
    p95_processing_ms: float = 0.0
