"""Pydantic schemas for the metrics admin API."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


# ==============================================================================
# Request Schemas
# ==============================================================================


class InvalidateRequest(BaseModel):
    """Data-change event that should invalidate cached metrics."""

    event_type: str = Field(
        ...,
        description="Change event (user_created, user_updated, response_created, "
        "response_updated) or 'all'",
        examples=["response_created"],
    )


# ==============================================================================
# Response Schemas
# ==============================================================================


class MetricsResponse(BaseModel):
    """Computed (or cached) metrics for one metric type."""

    metric_type: str = Field(description="Metric type served")
    filters: dict[str, Any] = Field(
        default_factory=dict, description="Filters the metrics were computed for"
    )
    data: Any = Field(description="Metric payload")
    served_at: datetime = Field(description="When the response was produced")


class InvalidateResponse(BaseModel):
    """Result of an invalidation request."""

    event_type: str
    invalidated: list[str] = Field(
        default_factory=list, description="Metric types whose entries were dropped"
    )


class CacheStatsResponse(BaseModel):
    """Metrics cache counters."""

    total_entries: int
    valid_entries: int
    expired_entries: int
    hits: int
    misses: int
    hit_rate: float = Field(description="Hit percentage over all lookups")
    by_type: dict[str, int] = Field(
        default_factory=dict, description="Live entries per metric type"
    )
