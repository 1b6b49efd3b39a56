"""
Ingestion Service Tests

Validates the file lifecycle end to end:
1. A good invoice is reconciled, reported and moved to processed/
2. A broken invoice is quarantined and reported, catalog untouched
3. Re-delivered content and duplicate stable events never post twice;
   lines that failed are posted when the file is dropped in again
4. Processed names never collide
5. Start/stop lifecycle and immutable statistics snapshots
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from pydantic import ValidationError

from core.config import IngestionConfig
from core.errors import NotificationError, StoreError
from ingestion.service import IngestionService, unique_destination
from models.report import IngestionState
from workers.worker import run_worker

SUPPLIER = "Molino Rossi SRL"


class FakeWatcher:
    """Stands in for FolderWatcher; events are injected by calling the service."""

    def __init__(self, folder, on_stable, debounce_seconds=2.0, extensions=(".xml",)):
        self.folder = folder
        self.on_stable = on_stable
        self.started = False
        self.stopped = False

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True


@pytest.fixture
def watch_folder(tmp_path):
    folder = tmp_path / "inbox"
    folder.mkdir()
    return folder


@pytest.fixture
def notifier():
    return AsyncMock()


@pytest.fixture
def service(watch_folder, db_path, catalog, ledger, unmatched, documents, notifier):
    catalog.add_entry("Farina 00", unit="kg", quantity_on_hand=Decimal("10"))
    config = IngestionConfig(watch_folder=watch_folder, db_path=db_path, persist_retry_base_delay=0)
    return IngestionService(
        config, catalog, ledger, unmatched, documents,
        notifier=notifier,
        watcher_factory=FakeWatcher,
    )


def good_invoice(invoice_xml, number="42"):
    return invoice_xml(
        [
            {"description": "FARINA TIPO 00 KG 25", "quantity": "25"},
            {"description": "ARTICOLO VARIO XYZ", "quantity": "5", "code": "SC-99"},
        ],
        invoice_number=number,
    )


class TestProcessFile:

    def test_reconciles_and_moves_to_processed(self, service, watch_folder, invoice_xml, catalog, notifier):
        path = watch_folder / "IT01_A1.xml"
        path.write_bytes(good_invoice(invoice_xml))

        report = asyncio.run(service.process_file(path))

        assert report.matched_count == 1
        assert report.unmatched_count == 1
        assert not path.exists()
        assert (service.processed_folder / "IT01_A1.xml").exists()
        assert catalog.search_by_name("farina")[0].quantity_on_hand == Decimal("35")
        notifier.notify_report.assert_awaited_once_with(report)
        notifier.notify_failure.assert_not_awaited()

        stats = service.get_stats()
        assert stats.documents_processed == 1
        assert stats.items_matched == 1
        assert stats.items_unmatched == 1
        assert stats.errors == 0
        assert stats.last_processed_at is not None

    def test_parse_failure_is_quarantined(self, service, watch_folder, invoice_xml, ledger, unmatched, notifier):
        """A document without line items is never reconciled."""
        path = watch_folder / "broken.xml"
        path.write_bytes(invoice_xml([], with_lines_container=False))

        assert asyncio.run(service.process_file(path)) is None

        assert (service.quarantine_folder / "broken.xml").exists()
        assert not path.exists()
        assert ledger.count() == 0
        assert unmatched.count() == 0
        notifier.notify_failure.assert_awaited_once()
        assert notifier.notify_failure.await_args.args[0] == "broken.xml"
        notifier.notify_report.assert_not_awaited()

        stats = service.get_stats()
        assert stats.documents_processed == 0
        assert stats.errors == 1

    def test_same_content_is_not_posted_twice(self, service, watch_folder, invoice_xml, ledger):
        data = good_invoice(invoice_xml)
        (watch_folder / "first.xml").write_bytes(data)
        (watch_folder / "copy.xml").write_bytes(data)

        async def scenario():
            await service.process_file(watch_folder / "first.xml")
            return await service.process_file(watch_folder / "copy.xml")

        assert asyncio.run(scenario()) is None
        assert ledger.count() == 1
        assert (service.processed_folder / "copy.xml").exists()
        stats = service.get_stats()
        assert stats.documents_processed == 1
        assert stats.duplicates_skipped == 1

    def test_redelivery_after_failed_lines_posts_them(
        self, service, watch_folder, invoice_xml, catalog, ledger, unmatched
    ):
        data = good_invoice(invoice_xml)
        path = watch_folder / "a.xml"
        path.write_bytes(data)

        with patch.object(catalog, "increment_quantity", side_effect=StoreError("disk I/O error")):
            first = asyncio.run(service.process_file(path))
        assert first.matched_count == 0
        assert first.error_count == 1
        assert ledger.count() == 0

        path.write_bytes(data)
        second = asyncio.run(service.process_file(path))

        assert second is not None
        assert second.matched_count == 1
        assert second.unmatched_count == 1
        assert second.error_count == 0
        assert ledger.count() == 1
        assert unmatched.count() == 1
        assert catalog.search_by_name("farina")[0].quantity_on_hand == Decimal("35")
        assert service.get_stats().duplicates_skipped == 0

        path.write_bytes(data)
        assert asyncio.run(service.process_file(path)) is None
        assert ledger.count() == 1
        assert service.get_stats().duplicates_skipped == 1

    def test_document_registry_failure_is_reported(self, service, watch_folder, invoice_xml, documents, ledger, notifier):
        path = watch_folder / "a.xml"
        path.write_bytes(good_invoice(invoice_xml))

        with patch.object(
            documents, "get", side_effect=StoreError("database is locked", transient=True),
        ) as lookup:
            assert asyncio.run(service.process_file(path)) is None

        assert lookup.call_count == service.retry_config.max_attempts
        assert ledger.count() == 0
        assert path.exists()
        notifier.notify_failure.assert_awaited_once()
        assert notifier.notify_failure.await_args.args[0] == "a.xml"
        notifier.notify_report.assert_not_awaited()
        assert service.get_stats().errors == 1

    def test_document_registry_lock_is_retried(self, service, watch_folder, invoice_xml, documents, ledger):
        path = watch_folder / "a.xml"
        path.write_bytes(good_invoice(invoice_xml))
        real_get = documents.get
        calls = []

        def locked_once(content_hash):
            calls.append(content_hash)
            if len(calls) == 1:
                raise StoreError("database is locked", transient=True)
            return real_get(content_hash)

        with patch.object(documents, "get", side_effect=locked_once):
            report = asyncio.run(service.process_file(path))

        assert report.matched_count == 1
        assert len(calls) == 2
        assert ledger.count() == 1

    def test_rename_on_collision(self, service, watch_folder, invoice_xml):
        service.processed_folder.mkdir(parents=True)
        (service.processed_folder / "invoice.xml").write_bytes(b"older")
        path = watch_folder / "invoice.xml"
        path.write_bytes(good_invoice(invoice_xml))

        asyncio.run(service.process_file(path))

        assert (service.processed_folder / "invoice.xml").read_bytes() == b"older"
        assert (service.processed_folder / "invoice_1.xml").exists()

    def test_notifier_failure_does_not_propagate(self, service, watch_folder, invoice_xml, notifier):
        notifier.notify_report.side_effect = NotificationError("webhook down", status_code=503)
        path = watch_folder / "a.xml"
        path.write_bytes(good_invoice(invoice_xml))

        report = asyncio.run(service.process_file(path))

        assert report is not None
        assert (service.processed_folder / "a.xml").exists()

    def test_missing_file(self, service, watch_folder):
        assert asyncio.run(service.process_file(watch_folder / "gone.xml")) is None
        assert service.get_stats().errors == 0


class TestLifecycle:

    def test_start_creates_folders_and_watches(self, service):
        async def scenario():
            await service.start()
            state = service.state
            watcher = service._watcher
            await service.stop()
            return state, watcher

        state, watcher = asyncio.run(scenario())

        assert state == IngestionState.WATCHING
        assert watcher.started and watcher.stopped
        assert service.processed_folder.is_dir()
        assert service.quarantine_folder.is_dir()
        assert service.state == IngestionState.STOPPED

    def test_duplicate_stable_event_is_ignored(self, service, watch_folder, invoice_xml, ledger):
        path = watch_folder / "a.xml"
        path.write_bytes(good_invoice(invoice_xml))

        async def scenario():
            async with service:
                first = service.handle_stable_file(path)
                second = service.handle_stable_file(path)
                while service.get_stats().documents_processed < 1:
                    await asyncio.sleep(0.01)
            return first, second

        first, second = asyncio.run(asyncio.wait_for(scenario(), timeout=10))

        assert first is True
        assert second is False
        assert ledger.count() == 1

    def test_files_are_processed_in_order(self, service, watch_folder, invoice_xml, notifier):
        for number in ("1", "2", "3"):
            (watch_folder / f"{number}.xml").write_bytes(good_invoice(invoice_xml, number=number))

        async def scenario():
            async with service:
                for number in ("1", "2", "3"):
                    service.handle_stable_file(watch_folder / f"{number}.xml")
                while service.get_stats().documents_processed < 3:
                    await asyncio.sleep(0.01)

        asyncio.run(asyncio.wait_for(scenario(), timeout=10))

        numbers = [call.args[0].invoice_number for call in notifier.notify_report.await_args_list]
        assert numbers == ["1", "2", "3"]

    def test_stopped_service_ignores_events(self, service, watch_folder):
        async def scenario():
            await service.start()
            await service.stop()
            return service.handle_stable_file(watch_folder / "late.xml")

        assert asyncio.run(scenario()) is False
        assert not service.is_running

    def test_restart_after_stop(self, service):
        async def scenario():
            await service.start()
            await service.stop()
            await service.start()
            running = service.is_running
            await service.stop()
            return running

        assert asyncio.run(scenario()) is True

    def test_stats_snapshot_is_immutable(self, service):
        stats = service.get_stats()
        assert stats.is_running is False
        assert stats.state == IngestionState.IDLE
        assert stats.watch_folder == str(service.watch_folder)
        with pytest.raises(ValidationError):
            stats.documents_processed = 99


def test_unique_destination(tmp_path):
    assert unique_destination(tmp_path, "a.xml") == tmp_path / "a.xml"
    (tmp_path / "a.xml").touch()
    (tmp_path / "a_1.xml").touch()
    assert unique_destination(tmp_path, "a.xml") == tmp_path / "a_2.xml"


def test_worker_once_processes_existing_files(tmp_path, invoice_xml):
    inbox = tmp_path / "inbox"
    inbox.mkdir()
    (inbox / "a.xml").write_bytes(good_invoice(invoice_xml))
    (inbox / "notes.txt").write_text("not an invoice")
    config = IngestionConfig(watch_folder=inbox, db_path=tmp_path / "inventory.db")

    asyncio.run(run_worker(config, once=True))

    assert (inbox / "processed" / "a.xml").exists()
    assert (inbox / "notes.txt").exists()
