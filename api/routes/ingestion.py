"""Ingestion status and control endpoints."""

from typing import List

from fastapi import APIRouter, HTTPException, Query, Request

from core.errors import StoreError
from ingestion.service import IngestionService
from models.inventory import UnmatchedItem
from models.report import IngestionStats


router = APIRouter()


def _service(request: Request) -> IngestionService:
    service = getattr(request.app.state, "ingestion", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Ingestion service not initialised")
    return service


@router.get("/status", response_model=IngestionStats)
async def get_status(request: Request) -> IngestionStats:
    """Current state and cumulative counters."""
    return _service(request).get_stats()


@router.post("/start", response_model=IngestionStats)
async def start_ingestion(request: Request) -> IngestionStats:
    """Start watching the folder (no-op if already running)."""
    service = _service(request)
    try:
        await service.start()
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Cannot start ingestion: {e}")
    return service.get_stats()


@router.post("/stop", response_model=IngestionStats)
async def stop_ingestion(request: Request) -> IngestionStats:
    """Stop watching; the file in progress completes first."""
    service = _service(request)
    await service.stop()
    return service.get_stats()


@router.get("/unmatched", response_model=List[UnmatchedItem])
async def list_unmatched(
    request: Request,
    limit: int = Query(50, ge=1, le=500, description="Maximum items returned"),
) -> List[UnmatchedItem]:
    """Pending unmatched items, newest first."""
    try:
        return _service(request).unmatched.list_pending(limit=limit)
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
