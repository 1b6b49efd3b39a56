"""Worker for the invoice intake service.

Watches the configured folder and reconciles every invoice dropped into it
until interrupted (Ctrl+C / SIGTERM).

Settings come from the INTAKE_* environment variables (see core.config);
command-line options override them.

Run with --once to process the files already in the folder and exit.
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.config import IngestionConfig, load_config
from core.observability.logging import configure_logging, get_logger
from ingestion.service import IngestionService, build_service


logger = get_logger(__name__)


async def run_once(service: IngestionService, extensions) -> None:
    """Process the files currently in the watch folder, oldest name first."""
    for folder in (service.watch_folder, service.processed_folder, service.quarantine_folder):
        folder.mkdir(parents=True, exist_ok=True)
    files = sorted(
        p for p in service.watch_folder.iterdir()
        if p.is_file() and not p.name.startswith(".") and p.suffix.lower() in extensions
    )
    logger.info(f"Processing {len(files)} file(s) from {service.watch_folder}")
    for path in files:
        await service.process_file(path)


async def run_worker(config: IngestionConfig, once: bool = False):
    """Run the ingestion service until interrupted.

    Args:
        config: Service configuration
        once: Process the existing files and return instead of watching
    """
    service = build_service(config)

    if once:
        await run_once(service, config.normalized_extensions())
        logger.info(f"Done: {service.get_stats().model_dump_json()}")
        return

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows: Ctrl+C surfaces as KeyboardInterrupt instead
            pass

    async with service:
        logger.info("Worker running... (Ctrl+C to stop)")
        await stop_event.wait()
        logger.info("Worker interrupted, stopping")

    stats = service.get_stats()
    logger.info(
        f"Processed {stats.documents_processed} invoice(s): "
        f"{stats.items_matched} matched, {stats.items_unmatched} unmatched, {stats.errors} errors"
    )


def main():
    """Entry point for worker with CLI args."""
    parser = argparse.ArgumentParser(description="Supplier invoice intake worker")
    parser.add_argument("--folder", "-f", help="Folder to watch (overrides INTAKE_WATCH_FOLDER)")
    parser.add_argument("--db", help="SQLite database path (overrides INTAKE_DB_PATH)")
    parser.add_argument("--debounce", type=float, help="Seconds a file must be unchanged to be stable")
    parser.add_argument("--webhook", help="Operator webhook URL (overrides INTAKE_NOTIFY_WEBHOOK_URL)")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Process the files already in the folder and exit",
    )

    args = parser.parse_args()
    try:
        config = load_config(
            watch_folder=args.folder,
            db_path=args.db,
            debounce_seconds=args.debounce,
            notify_webhook_url=args.webhook,
        )
    except ValueError as e:
        parser.error(str(e))

    configure_logging(config.get_log_level(), json_format=config.log_json)
    try:
        asyncio.run(run_worker(config, once=args.once))
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")


if __name__ == "__main__":
    main()
