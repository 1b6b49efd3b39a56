"""Configuration for the ingestion service.

Reads settings from environment variables (a `.env` file next to the
repository root is loaded first, if present):

- INTAKE_WATCH_FOLDER: Folder watched for incoming invoices (required)
- INTAKE_PROCESSED_FOLDER: Where reconciled files are moved
- INTAKE_QUARANTINE_FOLDER: Where unparseable files are moved
- INTAKE_DB_PATH: SQLite database with catalog, ledger and unmatched items
- INTAKE_DEBOUNCE_SECONDS: Quiet period before a file counts as stable
- INTAKE_EXTENSIONS: Comma-separated accepted extensions
- INTAKE_NOTIFY_WEBHOOK_URL: Operator webhook (log-only when unset)
- INTAKE_PERSIST_RETRIES: Attempts per line on transient store errors
- INTAKE_LOG_JSON / INTAKE_LOG_LEVEL: Logging output
"""

import logging
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

env_path = Path(__file__).resolve().parents[1] / ".env"
if env_path.exists():
    load_dotenv(env_path)


DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "inventory.db"


class IngestionConfig(BaseModel):
    """Settings for one IngestionService instance.

    Only one service may watch a given folder: the catalog quantities are
    updated without locks on the assumption of a single sequential worker.
    """
    watch_folder: Path = Field(..., description="Folder watched for invoices")
    processed_folder: Optional[Path] = Field(default=None, description="Defaults to <watch>/processed")
    quarantine_folder: Optional[Path] = Field(default=None, description="Defaults to <watch>/quarantine")
    db_path: Path = Field(default=DEFAULT_DB_PATH, description="SQLite database path")

    debounce_seconds: float = Field(default=2.0, gt=0, description="Quiet period before a file is stable")
    extensions: List[str] = Field(default_factory=lambda: [".xml"], description="Accepted file extensions")

    notify_webhook_url: Optional[str] = Field(default=None, description="Operator webhook URL")
    notify_timeout_seconds: float = Field(default=5.0, gt=0)

    persist_retries: int = Field(default=3, ge=1, description="Attempts per line on transient errors")
    persist_retry_base_delay: float = Field(default=0.1, ge=0, description="Base backoff delay in seconds")

    log_json: bool = False
    log_level: str = "INFO"

    def get_processed_folder(self) -> Path:
        return self.processed_folder or self.watch_folder / "processed"

    def get_quarantine_folder(self) -> Path:
        return self.quarantine_folder or self.watch_folder / "quarantine"

    def normalized_extensions(self) -> List[str]:
        """Lowercase extensions, each with a leading dot."""
        result = []
        for ext in self.extensions:
            ext = ext.strip().lower()
            if not ext:
                continue
            result.append(ext if ext.startswith(".") else f".{ext}")
        return result

    def get_log_level(self) -> int:
        level = logging.getLevelName(self.log_level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {self.log_level}")
        return level


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_number(name: str, cast, default):
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return cast(value.strip())
    except ValueError:
        raise ValueError(f"{name} must be a {cast.__name__}, got {value!r}")


def load_config(**overrides) -> IngestionConfig:
    """Build an IngestionConfig from the environment.

    Keyword overrides win over environment values (used by the worker CLI).

    Raises:
        ValueError: If INTAKE_WATCH_FOLDER is missing or a value is malformed
    """
    watch_folder = overrides.pop("watch_folder", None) or os.getenv("INTAKE_WATCH_FOLDER")
    if not watch_folder:
        raise ValueError(
            "INTAKE_WATCH_FOLDER environment variable not set. "
            "Set it to the folder where supplier invoices are dropped"
        )

    values = {
        "watch_folder": Path(watch_folder),
        "processed_folder": os.getenv("INTAKE_PROCESSED_FOLDER") or None,
        "quarantine_folder": os.getenv("INTAKE_QUARANTINE_FOLDER") or None,
        "db_path": os.getenv("INTAKE_DB_PATH") or DEFAULT_DB_PATH,
        "debounce_seconds": _env_number("INTAKE_DEBOUNCE_SECONDS", float, 2.0),
        "notify_webhook_url": os.getenv("INTAKE_NOTIFY_WEBHOOK_URL") or None,
        "persist_retries": _env_number("INTAKE_PERSIST_RETRIES", int, 3),
        "log_json": _env_bool("INTAKE_LOG_JSON"),
        "log_level": os.getenv("INTAKE_LOG_LEVEL", "INFO"),
    }

    extensions = os.getenv("INTAKE_EXTENSIONS")
    if extensions:
        values["extensions"] = [ext for ext in extensions.split(",") if ext.strip()]

    values.update({k: v for k, v in overrides.items() if v is not None})
    config = IngestionConfig(**values)
    config.get_log_level()
    return config
