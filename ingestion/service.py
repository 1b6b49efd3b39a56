"""Ingestion service: watch folder -> parse -> reconcile -> notify -> relocate.

State machine:
    IDLE -> WATCHING -> PROCESSING -> WATCHING ... ; any -> STOPPED

A single worker task drains a queue of stable files, so no two invoices are
ever reconciled concurrently against the catalog. A path stays "in flight"
from the moment it is queued until its processing finishes; repeated
stable events for an in-flight path are ignored.

File fate:
- reconciled (or already fully reconciled, by content hash) -> processed folder
- not an invoice (ParseError) -> quarantine folder
Both moves rename on collision (name_1.xml, name_2.xml, ...).
"""

import asyncio
import shutil
import time
from pathlib import Path
from typing import Callable, Optional, Set

from core.config import IngestionConfig
from core.errors import ParseError, StoreError
from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import IngestionMetrics
from core.retry import RetryConfig, run_store_call
from extraction.parser import DocumentParser
from ingestion.watcher import FolderWatcher
from models.inventory import ProcessedDocument
from models.report import IngestionState, IngestionStats, ProcessingReport
from notifications.notifier import LogNotifier, Notifier, WebhookNotifier
from product_matcher.matcher import LineMatcher
from reconciliation.engine import ReconciliationEngine
from storage.catalog import CatalogStore
from storage.db import compute_content_hash, init_inventory_db
from storage.documents import DocumentRegistry
from storage.ledger import LedgerStore
from storage.unmatched import UnmatchedRegistry

logger = get_logger(__name__)

WatcherFactory = Callable[..., FolderWatcher]

RUNNING_STATES = (IngestionState.WATCHING, IngestionState.PROCESSING)


def unique_destination(folder: Path, name: str) -> Path:
    """A path in folder for name that does not exist yet.

    Examples:
        invoice.xml, then invoice_1.xml, invoice_2.xml, ...
    """
    candidate = folder / name
    if not candidate.exists():
        return candidate
    stem, suffix = Path(name).stem, Path(name).suffix
    counter = 1
    while True:
        candidate = folder / f"{stem}_{counter}{suffix}"
        if not candidate.exists():
            return candidate
        counter += 1


def move_file(path: Path, folder: Path) -> Path:
    """Move path into folder, renaming on collision. Returns the new path."""
    folder.mkdir(parents=True, exist_ok=True)
    destination = unique_destination(folder, path.name)
    shutil.move(str(path), str(destination))
    return destination


def build_notifier(config: IngestionConfig) -> Notifier:
    if config.notify_webhook_url:
        return WebhookNotifier(config.notify_webhook_url, timeout_seconds=config.notify_timeout_seconds)
    return LogNotifier()


class IngestionService:
    """Background intake of supplier invoices dropped into a folder.

    Only one service may watch a given folder.

    Usage:
        service = IngestionService(config, catalog, ledger, unmatched, documents)
        await service.start()
        ...
        print(service.get_stats())
        await service.stop()
    """

    def __init__(
        self,
        config: IngestionConfig,
        catalog: CatalogStore,
        ledger: LedgerStore,
        unmatched: UnmatchedRegistry,
        documents: DocumentRegistry,
        parser: Optional[DocumentParser] = None,
        matcher: Optional[LineMatcher] = None,
        notifier: Optional[Notifier] = None,
        watcher_factory: Optional[WatcherFactory] = None,
        metrics: Optional[IngestionMetrics] = None,
    ):
        self.config = config
        self.watch_folder = Path(config.watch_folder)
        self.processed_folder = Path(config.get_processed_folder())
        self.quarantine_folder = Path(config.get_quarantine_folder())

        self.unmatched = unmatched
        self.documents = documents
        self.parser = parser or DocumentParser()
        self.notifier = notifier or build_notifier(config)
        self.metrics = metrics or IngestionMetrics()
        self.retry_config = RetryConfig(
            max_attempts=config.persist_retries,
            base_delay=config.persist_retry_base_delay,
        )
        self.engine = ReconciliationEngine(
            catalog,
            ledger,
            unmatched,
            matcher=matcher,
            retry_config=self.retry_config,
            metrics=self.metrics,
        )
        self._watcher_factory = watcher_factory or FolderWatcher

        self._state = IngestionState.IDLE
        self._current_file: Optional[str] = None
        self._in_flight: Set[Path] = set()
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._watcher: Optional[FolderWatcher] = None

    @property
    def state(self) -> IngestionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state in RUNNING_STATES

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Create the folders, start the worker and begin watching.

        Files already in the watch folder are picked up as well.
        """
        if self.is_running:
            logger.info("Ingestion already running")
            return

        for folder in (self.watch_folder, self.processed_folder, self.quarantine_folder):
            folder.mkdir(parents=True, exist_ok=True)

        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._run_worker())
        self._state = IngestionState.WATCHING

        self._watcher = self._watcher_factory(
            self.watch_folder,
            self.handle_stable_file,
            debounce_seconds=self.config.debounce_seconds,
            extensions=self.config.normalized_extensions(),
        )
        try:
            self._watcher.start()
        except Exception:
            logger.exception(f"Cannot watch {self.watch_folder}")
            await self.stop()
            raise

        logger.info(
            "Ingestion started",
            extra_fields={
                "watch_folder": str(self.watch_folder),
                "processed_folder": str(self.processed_folder),
                "quarantine_folder": str(self.quarantine_folder),
            },
        )

    async def stop(self) -> None:
        """Stop accepting files; the file being processed runs to completion.

        Queued files that have not started are dropped. They are still in
        the watch folder and are picked up again on the next start.
        """
        if not self.is_running:
            self._state = IngestionState.STOPPED
            return
        self._state = IngestionState.STOPPED

        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

        dropped = 0
        while not self._queue.empty():
            path = self._queue.get_nowait()
            self._in_flight.discard(path)
            dropped += 1
        if dropped:
            logger.info(f"Dropped {dropped} queued file(s); they stay in the watch folder")

        self._queue.put_nowait(None)
        await self._worker
        self._worker = None
        logger.info("Ingestion stopped")

    async def __aenter__(self) -> "IngestionService":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    # =========================================================================
    # Events
    # =========================================================================

    def handle_stable_file(self, path: Path) -> bool:
        """Queue a stable file for processing.

        Returns:
            True if queued; False if the service is not running or the file
            is already in flight
        """
        if not self.is_running:
            logger.debug(f"Ignoring {Path(path).name}: ingestion not running")
            return False

        key = Path(path).resolve()
        if key in self._in_flight:
            logger.debug(f"Ignoring duplicate stable event for {key.name}")
            return False

        self._in_flight.add(key)
        self._queue.put_nowait(key)
        return True

    async def _run_worker(self) -> None:
        while True:
            path = await self._queue.get()
            if path is None:
                break
            try:
                await self.process_file(path)
            except Exception:
                logger.exception(f"Unexpected failure processing {path.name}")
                self.metrics.record_document_failed()
            finally:
                self._in_flight.discard(path)

    # =========================================================================
    # Processing
    # =========================================================================

    async def process_file(self, path: Path) -> Optional[ProcessingReport]:
        """Process one invoice file end to end.

        Args:
            path: File in the watch folder

        Returns:
            ProcessingReport, or None if the file was gone, a duplicate, or
            could not be read or parsed
        """
        path = Path(path)
        started = time.perf_counter()
        if self._state == IngestionState.WATCHING:
            self._state = IngestionState.PROCESSING
        self._current_file = path.name

        try:
            with with_correlation(source_file=path.name, stage="read"):
                return await self._process(path, started)
        finally:
            self._current_file = None
            if self._state == IngestionState.PROCESSING:
                self._state = IngestionState.WATCHING

    async def _process(self, path: Path, started: float) -> Optional[ProcessingReport]:
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            logger.warning(f"{path.name} disappeared before processing")
            return None
        except OSError as e:
            logger.error(f"Cannot read {path.name}: {e}")
            self.metrics.record_document_failed()
            await self._deliver(self.notifier.notify_failure(path.name, e))
            return None

        content_hash = compute_content_hash(data)
        try:
            previous = await run_store_call(
                self.retry_config, "look up processed document", self.documents.get, content_hash
            )
        except StoreError as e:
            logger.error(f"Cannot check {path.name} against processed documents: {e}")
            self.metrics.record_document_failed()
            await self._deliver(self.notifier.notify_failure(path.name, e))
            return None

        if previous is not None:
            logger.warning(
                f"{path.name} was already reconciled; not posting it again",
                extra_fields={"first_seen_as": previous.source_file},
            )
            self.metrics.record_duplicate()
            await self._relocate(path, self.processed_folder)
            return None

        parse_started = time.perf_counter()
        with with_correlation(stage="parse"):
            try:
                invoice = self.parser.parse(data, source_file=path.name)
            except ParseError as e:
                logger.error(f"Rejected document: {e}")
                self.metrics.record_document_failed()
                await self._deliver(self.notifier.notify_failure(path.name, e))
                await self._relocate(path, self.quarantine_folder)
                return None
        self.metrics.record_processing_time("parse", _elapsed_ms(parse_started))

        reconcile_started = time.perf_counter()
        report = await self.engine.process(invoice, document_key=content_hash)
        self.metrics.record_processing_time("reconcile", _elapsed_ms(reconcile_started))

        if report.error_count:
            logger.warning(
                f"{path.name} has {report.error_count} failed line(s); "
                "dropping it in again retries only those lines"
            )
        else:
            await self._record_document(ProcessedDocument(
                content_hash=content_hash,
                source_file=path.name,
                supplier_name=invoice.supplier_name,
                invoice_number=invoice.invoice_number,
            ))

        self.metrics.record_document_processed(
            matched=report.matched_count,
            unmatched=report.unmatched_count,
            failed=report.error_count,
        )

        notify_started = time.perf_counter()
        with with_correlation(stage="notify"):
            await self._deliver(self.notifier.notify_report(report))
        self.metrics.record_processing_time("notify", _elapsed_ms(notify_started))

        await self._relocate(path, self.processed_folder)
        self.metrics.record_processing_time("total", _elapsed_ms(started))
        return report

    async def _record_document(self, document: ProcessedDocument) -> None:
        try:
            await run_store_call(self.retry_config, "record processed document", self.documents.record, document)
        except StoreError as e:
            logger.error(f"Could not record {document.source_file} as processed: {e}")

    async def _deliver(self, notification) -> None:
        """Await a notification; delivery failures are only logged."""
        try:
            await notification
        except Exception as e:
            logger.warning(f"Notification not delivered: {e}")

    async def _relocate(self, path: Path, folder: Path) -> Optional[Path]:
        try:
            destination = await asyncio.to_thread(move_file, path, folder)
        except OSError as e:
            logger.error(f"Cannot move {path.name} to {folder}: {e}")
            return None
        logger.info(f"Moved {path.name} to {destination}")
        return destination

    # =========================================================================
    # Status
    # =========================================================================

    def get_stats(self) -> IngestionStats:
        """Immutable snapshot of the running statistics."""
        summary = self.metrics.get_summary()
        documents = summary["documents"]
        lines = summary["lines"]
        timing = self.metrics.get_timing_stats("total")
        return IngestionStats(
            is_running=self.is_running,
            state=self._state,
            current_file=self._current_file,
            documents_processed=documents["processed"],
            items_matched=lines["matched"],
            items_unmatched=lines["unmatched"],
            items_failed=lines["failed"],
            errors=documents["failed"],
            duplicates_skipped=documents["duplicates"],
            last_processed_at=documents["last_processed_at"],
            watch_folder=str(self.watch_folder),
            processed_folder=str(self.processed_folder),
            quarantine_folder=str(self.quarantine_folder),
            average_processing_ms=timing["average_ms"],
            p95_processing_ms=timing["p95_ms"],
        )


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


def build_service(config: IngestionConfig, **kwargs) -> IngestionService:
    """Initialise the database and wire an IngestionService from config."""
    init_inventory_db(config.db_path)
    return IngestionService(
        config,
        catalog=CatalogStore(config.db_path),
        ledger=LedgerStore(config.db_path),
        unmatched=UnmatchedRegistry(config.db_path),
        documents=DocumentRegistry(config.db_path),
        **kwargs,
    )
