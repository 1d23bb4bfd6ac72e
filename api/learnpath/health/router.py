"""Health check endpoints."""

from fastapi import APIRouter, Request

from learnpath.config import get_settings
from learnpath.core.database import AsyncCassandraConnection


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, str | bool]:
    """Readiness probe - reports whether the progress engine can serve."""
    settings = get_settings()
    progress_ready = getattr(request.app.state, "progress_service", None) is not None
    return {
        "status": "ready" if progress_ready else "degraded",
        "environment": settings.environment,
        "debug": settings.debug,
        "cassandra": AsyncCassandraConnection.is_connected(),
        "progress_service": progress_ready,
    }


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
