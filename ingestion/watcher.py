"""Folder watcher with write-completion debounce.

Wraps a watchdog Observer on a single directory (not recursive). Every
create/modify/move-in event for an accepted file (re)starts a per-file
timer on the asyncio loop; when the timer fires and the file's size and
mtime have not changed since the last event, the file is reported stable
exactly once for that burst of writes.

The observer runs on its own thread; events cross into the loop with
call_soon_threadsafe, so timers and the on_stable callback always run on
the loop thread.
"""

import asyncio
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from core.observability.logging import get_logger

logger = get_logger(__name__)

Snapshot = Tuple[int, int]


class _EventHandler(FileSystemEventHandler):
    def __init__(self, watcher: "FolderWatcher"):
        super().__init__()
        self.watcher = watcher

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.notify_changed(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.notify_changed(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.notify_changed(event.dest_path)


class FolderWatcher:
    """Emits stable-file events for a directory.

    Usage:
        watcher = FolderWatcher(folder, on_stable=service.handle_stable_file,
                                debounce_seconds=2.0, extensions=[".xml"])
        watcher.start()   # must be called from the running loop
        ...
        watcher.stop()
    """

    def __init__(
        self,
        folder: Path,
        on_stable: Callable[[Path], None],
        debounce_seconds: float = 2.0,
        extensions: Iterable[str] = (".xml",),
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.folder = Path(folder)
        self.on_stable = on_stable
        self.debounce_seconds = debounce_seconds
        self.extensions = {ext.lower() for ext in extensions}
        self._loop = loop
        self._observer: Optional[Observer] = None
        self._timers: Dict[Path, asyncio.TimerHandle] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def accepts(self, path: Path) -> bool:
        """Direct child of the folder, not hidden, with an accepted extension."""
        path = Path(path)
        if path.name.startswith("."):
            return False
        if path.suffix.lower() not in self.extensions:
            return False
        return path.parent.resolve() == self.folder.resolve()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Start observing and queue the files already present in the folder."""
        if self._running:
            return
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        observer = Observer()
        observer.schedule(_EventHandler(self), str(self.folder), recursive=False)
        observer.start()
        self._observer = observer
        self._running = True
        logger.info(
            f"Watching {self.folder}",
            extra_fields={"debounce_seconds": self.debounce_seconds, "extensions": sorted(self.extensions)},
        )

        self._scan_existing()

    def stop(self) -> None:
        """Stop observing, cancel pending timers and join the observer thread."""
        if not self._running:
            return
        self._running = False
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
        logger.info(f"Stopped watching {self.folder}")

    def __enter__(self) -> "FolderWatcher":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    # =========================================================================
    # Events
    # =========================================================================

    def notify_changed(self, path) -> None:
        """Report a change to path. Safe to call from any thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._touch, Path(path))

    def _scan_existing(self) -> None:
        try:
            existing = sorted(p for p in self.folder.iterdir() if p.is_file())
        except OSError as e:
            logger.error(f"Cannot list {self.folder}: {e}")
            return
        for path in existing:
            self._touch(path)

    def _touch(self, path: Path) -> None:
        if not self._running or not self.accepts(path):
            return
        snapshot = self._snapshot(path)
        if snapshot is None:
            return
        self._schedule(path, snapshot)

    def _schedule(self, path: Path, snapshot: Snapshot) -> None:
        previous = self._timers.pop(path, None)
        if previous is not None:
            previous.cancel()
        self._timers[path] = self._loop.call_later(
            self.debounce_seconds, self._check_stable, path, snapshot
        )

    def _check_stable(self, path: Path, snapshot: Snapshot) -> None:
        self._timers.pop(path, None)
        if not self._running:
            return

        current = self._snapshot(path)
        if current is None:
            # Removed or renamed before it settled
            return
        if current != snapshot:
            self._schedule(path, current)
            return

        try:
            self.on_stable(path)
        except Exception:
            logger.exception(f"Stable-file handler failed for {path.name}")

    @staticmethod
    def _snapshot(path: Path) -> Optional[Snapshot]:
        try:
            stat = path.stat()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error(f"Cannot stat {path}: {e}")
            return None
        return stat.st_size, stat.st_mtime_ns
