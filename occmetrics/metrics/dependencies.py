"""FastAPI dependency injection for metrics."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Request


if TYPE_CHECKING:
    from occmetrics.cache import MetricsCache

    from .service import CachedMetricsService


def get_metrics_service(request: Request) -> CachedMetricsService:
    """Get the cached metrics facade from app state.

    Raises:
        RuntimeError: If the application did not initialize it
    """
    service = getattr(request.app.state, "metrics_service", None)
    if service is None:
        msg = "CachedMetricsService not available in app state"
        raise RuntimeError(msg)
    return service


def get_metrics_cache(request: Request) -> MetricsCache:
    """Get the metrics cache from app state."""
    cache = getattr(request.app.state, "metrics_cache", None)
    if cache is None:
        msg = "MetricsCache not available in app state"
        raise RuntimeError(msg)
    return cache
