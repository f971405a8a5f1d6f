"""Health check endpoints."""

from typing import Any

from fastapi import APIRouter, Request

from occmetrics.config import get_settings
from occmetrics.core.redis import get_redis


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, Any]:
    """Readiness probe - checks the metrics facade and its cache are wired."""
    settings = get_settings()
    state = request.app.state
    ready = getattr(state, "metrics_service", None) is not None
    sweeper = getattr(state, "cache_sweeper", None)
    return {
        "status": "ready" if ready else "starting",
        "environment": settings.environment,
        "debug": settings.debug,
        "cache_sweeper_running": bool(sweeper and sweeper.running),
        "redis_connected": get_redis() is not None,
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
