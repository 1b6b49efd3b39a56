"""API Routes Package."""

from api.routes import health, ingestion

__all__ = [
    "health",
    "ingestion",
]
