"""Health check endpoints."""

from fastapi import APIRouter, Request, Response, status

from src.config import get_settings
from src.core.database import AsyncCassandraConnection


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request, response: Response) -> dict[str, str | bool]:
    """Readiness probe - services are wired and the store is reachable."""
    settings = get_settings()
    services_ready = bool(
        getattr(request.app.state, "catalog_service", None)
        and getattr(request.app.state, "progress_service", None)
    )
    database_connected = AsyncCassandraConnection.is_connected()

    if not services_ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return {
        "status": "ready" if services_ready else "not_ready",
        "services": services_ready,
        "database": database_connected,
        "environment": settings.environment,
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
