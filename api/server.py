"""FastAPI server for the invoice intake service.

Serves the ingestion status, start/stop controls and the pending unmatched
items. The ingestion service runs inside the application's lifespan.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import health, ingestion
from core import __version__
from core.config import load_config
from core.observability.logging import get_logger
from ingestion.service import IngestionService, build_service

logger = get_logger(__name__)


def create_app(service: Optional[IngestionService] = None, autostart: bool = True) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        service: Ingestion service to expose; built from the environment
            configuration at startup when omitted
        autostart: Start watching when the application starts
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        ingestion_service = service or build_service(load_config())
        app.state.ingestion = ingestion_service
        if autostart:
            await ingestion_service.start()
        logger.info("Intake API starting up")

        yield

        await ingestion_service.stop()
        logger.info("Intake API shutting down")

    app = FastAPI(
        title="Invoice Intake API",
        description="Status and control of the supplier invoice intake service",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(ingestion.router, prefix="/ingestion", tags=["Ingestion"])

    return app


# Default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000)
