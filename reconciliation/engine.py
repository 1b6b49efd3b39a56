"""Reconciliation engine: posts invoice lines against the inventory.

Exposes:
- ReconciliationEngine.process(invoice) -> ProcessingReport

Each line resolves to exactly one outcome:
- matched: a StockMovement is appended and the entry's quantity on hand
  is increased, in one transaction (both or neither)
- unmatched: an UnmatchedItem is queued for manual review
- error: the line was skipped by the parser, or matching/persistence failed

A failing line is logged and counted; it never aborts the rest of the
invoice.
"""

from enum import Enum
from pathlib import Path
from typing import Callable, Optional, TypeVar

from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import IngestionMetrics
from core.retry import RetryConfig, run_store_call
from models.inventory import CatalogEntry, StockMovement, UnmatchedItem
from models.invoice import Invoice, InvoiceLine
from models.report import ProcessingReport
from product_matcher.matcher import LineMatcher
from storage.catalog import CatalogStore
from storage.ledger import LedgerStore
from storage.unmatched import UnmatchedRegistry

logger = get_logger(__name__)

T = TypeVar("T")


class LineOutcome(str, Enum):
    MATCHED = "matched"
    UNMATCHED = "unmatched"
    ERROR = "error"


def build_movement_note(invoice: Invoice, line: InvoiceLine) -> str:
    """Audit note carried by an automatically posted movement."""
    parts = [
        f"Automatic import of invoice {invoice.invoice_number}",
        f"description: {line.description}",
    ]
    if line.supplier_code:
        parts.append(f"supplier code: {line.supplier_code}")
    parts.append(f"file: {invoice.source_file}")
    return "; ".join(parts)


def build_movement(
    invoice: Invoice,
    line: InvoiceLine,
    entry: CatalogEntry,
    line_key: Optional[str] = None,
) -> StockMovement:
    return StockMovement(
        catalog_entry_id=entry.id,
        quantity=line.quantity,
        unit=entry.unit,
        unit_price=line.unit_price,
        total_value=line.line_total,
        supplier_name=invoice.supplier_name,
        invoice_number=invoice.invoice_number,
        invoice_date=invoice.invoice_date,
        source_file=invoice.source_file,
        note=build_movement_note(invoice, line),
        line_key=line_key,
    )


def build_unmatched_item(invoice: Invoice, line: InvoiceLine, line_key: Optional[str] = None) -> UnmatchedItem:
    return UnmatchedItem(
        description=line.description,
        supplier_code=line.supplier_code,
        supplier_name=invoice.supplier_name,
        invoice_number=invoice.invoice_number,
        invoice_date=invoice.invoice_date,
        source_file=invoice.source_file,
        quantity=line.quantity,
        unit_of_measure=line.unit_of_measure,
        line_key=line_key,
    )


class ReconciliationEngine:
    """Applies a parsed invoice to the catalog, ledger and unmatched registry.

    The catalog and the ledger must live in the same database: a movement
    and its quantity increment are committed in a single transaction.

    Usage:
        engine = ReconciliationEngine(catalog, ledger, unmatched)
        report = await engine.process(invoice)
        print(report.matched_count, report.unmatched_count, report.error_count)
    """

    def __init__(
        self,
        catalog: CatalogStore,
        ledger: LedgerStore,
        unmatched: UnmatchedRegistry,
        matcher: Optional[LineMatcher] = None,
        retry_config: Optional[RetryConfig] = None,
        metrics: Optional[IngestionMetrics] = None,
    ):
        if Path(catalog.db_path).resolve() != Path(ledger.db_path).resolve():
            raise ValueError(
                f"Catalog ({catalog.db_path}) and ledger ({ledger.db_path}) "
                "must share one database"
            )
        self.catalog = catalog
        self.ledger = ledger
        self.unmatched = unmatched
        self.matcher = matcher or LineMatcher(catalog)
        self.retry_config = retry_config or RetryConfig()
        self.metrics = metrics

    async def process(self, invoice: Invoice, document_key: Optional[str] = None) -> ProcessingReport:
        """Reconcile every line of an invoice.

        Lines are handled sequentially in document order. Per-line failures
        are counted in error_count and never raised.

        With a document_key, each line is keyed by it and its position. A
        line already posted or queued under its key keeps that outcome and is
        not written again, so a re-delivered file only retries the lines
        that failed.

        Args:
            invoice: Parsed invoice
            document_key: Content hash of the source document

        Returns:
            ProcessingReport whose counts add up to the invoice's total lines
        """
        counts = {outcome: 0 for outcome in LineOutcome}

        with with_correlation(
            source_file=invoice.source_file,
            supplier_name=invoice.supplier_name,
            invoice_number=invoice.invoice_number,
            stage="reconcile",
        ):
            for skipped in invoice.skipped_lines:
                logger.warning(
                    f"Line {skipped.line_number} skipped: {skipped.reason}",
                    extra_fields={"description": skipped.description},
                )
                counts[LineOutcome.ERROR] += 1

            for position, line in enumerate(invoice.lines):
                line_key = f"{document_key}:{position}" if document_key else None
                outcome = await self._process_line(invoice, line, line_key)
                counts[outcome] += 1

            report = ProcessingReport(
                supplier_name=invoice.supplier_name,
                invoice_number=invoice.invoice_number,
                invoice_date=invoice.invoice_date,
                source_file=invoice.source_file,
                total_lines=invoice.total_lines,
                matched_count=counts[LineOutcome.MATCHED],
                unmatched_count=counts[LineOutcome.UNMATCHED],
                error_count=counts[LineOutcome.ERROR],
            )
            logger.info(
                f"Reconciled invoice {invoice.invoice_number}: "
                f"{report.matched_count} matched, {report.unmatched_count} unmatched, "
                f"{report.error_count} errors",
                extra_fields={"total_lines": report.total_lines},
            )
        return report

    # =========================================================================
    # Lines
    # =========================================================================

    async def _process_line(self, invoice: Invoice, line: InvoiceLine, line_key: Optional[str] = None) -> LineOutcome:
        try:
            if line_key is not None:
                recorded = await self._with_retry("check line", self._recorded_outcome, line_key)
                if recorded is not None:
                    logger.info(
                        f"Line {line.line_number} already {recorded.value} by an earlier delivery",
                        extra_fields={"line_key": line_key},
                    )
                    return recorded

            result = await self._with_retry("match line", self.matcher.resolve, line, invoice.supplier_name)

            if result.is_match:
                movement = build_movement(invoice, line, result.entry, line_key)
                await self._with_retry("post movement", self._post_movement, movement)
                if self.metrics is not None:
                    self.metrics.record_match(result.match_type.value)
                logger.debug(
                    f"Line {line.line_number} matched '{result.entry.name}'",
                    extra_fields={"match_type": result.match_type.value, "matched_on": result.matched_on},
                )
                return LineOutcome.MATCHED

            await self._with_retry("record unmatched", self.unmatched.add, build_unmatched_item(invoice, line, line_key))
            logger.info(
                f"Line {line.line_number} unmatched: {line.description}",
                extra_fields={"supplier_code": line.supplier_code},
            )
            return LineOutcome.UNMATCHED

        except Exception:
            # Isolated: the remaining lines still run
            logger.exception(
                f"Line {line.line_number} failed: {line.description}",
                extra_fields={"supplier_code": line.supplier_code},
            )
            return LineOutcome.ERROR

    def _recorded_outcome(self, line_key: str) -> Optional[LineOutcome]:
        if self.ledger.has_line(line_key):
            return LineOutcome.MATCHED
        if self.unmatched.has_line(line_key):
            return LineOutcome.UNMATCHED
        return None

    def _post_movement(self, movement: StockMovement) -> StockMovement:
        with self.ledger.transaction() as conn:
            posted = self.ledger.append(movement, conn=conn)
            self.catalog.increment_quantity(movement.catalog_entry_id, movement.quantity, conn=conn)
        return posted

    async def _with_retry(self, action: str, func: Callable[..., T], *args) -> T:
        return await run_store_call(self.retry_config, action, func, *args)
