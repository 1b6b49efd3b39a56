"""
Folder Watcher Tests

Validates stable-file detection:
1. Files already present at start are reported
2. New files are reported once their writes settle
3. Hidden files, other extensions and subfolders are ignored
4. Stopping cancels pending timers
"""

import asyncio
from pathlib import Path

from ingestion.watcher import FolderWatcher

DEBOUNCE = 0.2


def run_watcher(folder, action=None, wait=1.5, debounce=DEBOUNCE):
    """Start a watcher on folder, run action, and collect stable events for wait seconds."""
    stable = []

    async def scenario():
        watcher = FolderWatcher(folder, on_stable=stable.append, debounce_seconds=debounce)
        watcher.start()
        try:
            if action is not None:
                await action(watcher)
            await asyncio.sleep(wait)
        finally:
            watcher.stop()

    asyncio.run(scenario())
    return stable


class TestFolderWatcher:

    def test_reports_existing_files(self, tmp_path):
        (tmp_path / "a.xml").write_bytes(b"<a/>")
        (tmp_path / "b.XML").write_bytes(b"<b/>")

        stable = run_watcher(tmp_path)

        assert sorted(p.name for p in stable) == ["a.xml", "b.XML"]

    def test_ignores_hidden_other_extensions_and_subfolders(self, tmp_path):
        (tmp_path / ".partial.xml").write_bytes(b"<a/>")
        (tmp_path / "notes.txt").write_text("hello")
        (tmp_path / "processed").mkdir()
        (tmp_path / "processed" / "old.xml").write_bytes(b"<a/>")

        assert run_watcher(tmp_path) == []

    def test_reports_new_file_once(self, tmp_path):
        async def write_in_chunks(watcher):
            path = tmp_path / "incoming.xml"
            with open(path, "wb") as f:
                for chunk in (b"<Fattura", b"Elettronica", b"/>"):
                    f.write(chunk)
                    f.flush()
                    await asyncio.sleep(0.05)

        stable = run_watcher(tmp_path, write_in_chunks)

        assert [p.name for p in stable] == ["incoming.xml"]

    def test_repeated_notifications_are_debounced(self, tmp_path):
        path = tmp_path / "a.xml"

        async def touch_repeatedly(watcher):
            path.write_bytes(b"<a/>")
            for _ in range(5):
                watcher.notify_changed(path)
                await asyncio.sleep(0.02)

        stable = run_watcher(tmp_path, touch_repeatedly)

        assert stable == [path]

    def test_stop_cancels_pending_timers(self, tmp_path):
        (tmp_path / "a.xml").write_bytes(b"<a/>")
        stable = []

        async def scenario():
            watcher = FolderWatcher(tmp_path, on_stable=stable.append, debounce_seconds=0.3)
            watcher.start()
            watcher.stop()
            await asyncio.sleep(0.6)
            assert not watcher.is_running

        asyncio.run(scenario())
        assert stable == []

    def test_handler_failure_is_absorbed(self, tmp_path):
        (tmp_path / "a.xml").write_bytes(b"<a/>")
        (tmp_path / "b.xml").write_bytes(b"<b/>")
        seen = []

        def flaky(path: Path):
            seen.append(path.name)
            if path.name == "a.xml":
                raise RuntimeError("handler bug")

        async def scenario():
            with FolderWatcher(tmp_path, on_stable=flaky, debounce_seconds=DEBOUNCE):
                await asyncio.sleep(1.0)

        asyncio.run(scenario())
        assert sorted(seen) == ["a.xml", "b.xml"]

    def test_accepts(self, tmp_path):
        watcher = FolderWatcher(tmp_path, on_stable=lambda p: None, extensions=[".xml"])
        assert watcher.accepts(tmp_path / "invoice.xml")
        assert watcher.accepts(tmp_path / "INVOICE.XML")
        assert not watcher.accepts(tmp_path / ".invoice.xml")
        assert not watcher.accepts(tmp_path / "invoice.pdf")
        assert not watcher.accepts(tmp_path / "sub" / "invoice.xml")
