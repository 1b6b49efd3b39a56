"""Folder watching and the ingestion service."""

from ingestion.service import IngestionService, build_service, move_file, unique_destination
from ingestion.watcher import FolderWatcher

__all__ = [
    "FolderWatcher",
    "IngestionService",
    "build_service",
    "move_file",
    "unique_destination",
]
