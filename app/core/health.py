"""Health check endpoints."""

from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.logging import get_logger
from app.features.ingest.worker import get_callsheet_worker

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: Literal["ok", "degraded", "unhealthy"]
    database: Literal["connected", "disconnected"] | None = None
    worker: Literal["running", "stopped"] | None = None
    pending_jobs: int | None = None


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness check; never touches the database."""
    logger.debug("health.check_started")
    return HealthResponse(status="ok")


@router.get("/health/ready", response_model=HealthResponse)
async def readiness_check(
    db: AsyncSession = Depends(get_db),
) -> HealthResponse:
    """Readiness check covering the database and the call-sheet worker.

    A stopped worker means pushes are acknowledged but not persisted, so it
    degrades readiness.

    Args:
        db: Database session dependency.

    Returns:
        Health status with database and worker state.
    """
    logger.debug("health.readiness_check_started")
    worker = get_callsheet_worker()
    worker_state: Literal["running", "stopped"] = "running" if worker.is_running else "stopped"

    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(
            "health.database_disconnected",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return HealthResponse(
            status="unhealthy",
            database="disconnected",
            worker=worker_state,
            pending_jobs=worker.pending,
        )

    return HealthResponse(
        status="ok" if worker.is_running else "degraded",
        database="connected",
        worker=worker_state,
        pending_jobs=worker.pending,
    )
