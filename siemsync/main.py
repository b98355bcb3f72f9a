"""SIEMSYNC — FastAPI Application Entry Point.

Mimecast SIEM log synchronizer with IP geolocation enrichment.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from siemsync.database import init_db, test_connection
from siemsync.scheduler.jobs import start_scheduler, stop_scheduler
from siemsync.api.sync_routes import router as sync_router
from siemsync.core.logging import get_logger

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("SIEMSYNC starting up...")
    if test_connection():
        init_db()
    else:
        logger.error("Sync store not reachable, scheduled runs will fail")
    start_scheduler()
    yield
    stop_scheduler()
    logger.info("SIEMSYNC shut down")


app = FastAPI(
    title="SIEMSYNC",
    description="Pull Mimecast SIEM logs on a schedule, enrich with IP geolocation, store locally.",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(sync_router)


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "siemsync",
        "version": "1.0.0",
    }
