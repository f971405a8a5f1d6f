"""Admin API endpoints for cached metrics.

No authorization is applied here; mount behind whatever gateway guards the
admin surface.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Query, Request

from occmetrics.cache import MetricsCache

from .dependencies import get_metrics_cache, get_metrics_service
from .schemas import (
    CacheStatsResponse,
    InvalidateRequest,
    InvalidateResponse,
    MetricsResponse,
)
from .service import CachedMetricsService


# Query parameters that steer the endpoint rather than filter the metrics
CONTROL_PARAMS = frozenset({"force_refresh"})


router = APIRouter(prefix="/v1/admin/metrics", tags=["admin-metrics"])


@router.get(
    "/cache/stats",
    response_model=CacheStatsResponse,
    summary="Get metrics cache statistics",
)
async def get_cache_stats(
    cache: MetricsCache = Depends(get_metrics_cache),
) -> CacheStatsResponse:
    """Entry counts and hit/miss counters of the metrics cache."""
    return CacheStatsResponse(**cache.get_stats())


@router.post(
    "/invalidate",
    response_model=InvalidateResponse,
    summary="Invalidate cached metrics",
    description="Drops the cached metric types affected by a data-change event.",
)
async def invalidate_metrics(
    body: InvalidateRequest,
    service: CachedMetricsService = Depends(get_metrics_service),
) -> InvalidateResponse:
    invalidated = service.invalidate_related_cache(body.event_type)
    return InvalidateResponse(event_type=body.event_type, invalidated=invalidated)


@router.get(
    "/{metric_type}",
    response_model=MetricsResponse,
    summary="Get metrics",
    description="Returns metrics for one type (home, dashboard, questionnaires, "
    "responses, users, analytics). Other query parameters are passed as filters.",
)
async def get_metrics(
    metric_type: str,
    request: Request,
    force_refresh: bool = Query(
        default=False, description="Bypass the cache and recompute"
    ),
    service: CachedMetricsService = Depends(get_metrics_service),
) -> MetricsResponse:
    """Get cached or freshly computed metrics.

    Unknown metric types answer 404; invalid filters answer 422.
    """
    filters = {
        key: value
        for key, value in request.query_params.items()
        if key not in CONTROL_PARAMS
    }
    data = await service.get_metrics_with_cache(metric_type, filters, force_refresh)
    return MetricsResponse(
        metric_type=metric_type,
        filters=filters,
        data=data,
        served_at=datetime.now(UTC),
    )
