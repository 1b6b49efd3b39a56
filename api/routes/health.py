"""Health check endpoint."""

from datetime import datetime
from typing import Dict

from fastapi import APIRouter, Request
from pydantic import BaseModel

from core import __version__


router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str
    services: Dict[str, str]


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint."""
    service = getattr(request.app.state, "ingestion", None)
    if service is None:
        ingestion_status = "unknown"
    else:
        ingestion_status = service.state.value
    return HealthResponse(
        status="healthy",
        timestamp=datetime.utcnow().isoformat(),
        version=__version__,
        services={
            "api": "up",
            "ingestion": ingestion_status,
        }
    )
