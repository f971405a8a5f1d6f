"""Cached metrics facade.

Wraps the metric providers with the in-process ``MetricsCache``:
- cache first unless ``force_refresh``
- on a miss, compute with the provider and store the result under the
  type's TTL
- failures are logged and re-raised, never cached

Data-change events invalidate the metric types they can affect.
"""

from typing import Any

import structlog

from occmetrics.cache import MetricsCache
from occmetrics.core.context import MetricContext
from occmetrics.core.errors import UnknownMetricTypeError

from .providers import MetricProvider


logger = structlog.get_logger(__name__)


# Data-change event -> metric types whose cached values it makes stale
EVENT_INVALIDATIONS: dict[str, tuple[str, ...]] = {
    "user_created": ("users", "home"),
    "user_updated": ("users", "home"),
    "response_created": ("responses", "dashboard", "analytics", "home", "questionnaires"),
    "response_updated": ("responses", "dashboard", "analytics", "home", "questionnaires"),
}
INVALIDATE_ALL = "all"


class CachedMetricsService:
    """Metric reads with transparent caching."""

    def __init__(self, cache: MetricsCache, providers: dict[str, MetricProvider]) -> None:
        """Initialize the facade.

        Args:
            cache: Metrics cache instance
            providers: Metric type to provider coroutine
        """
        self.cache = cache
        self.providers = dict(providers)

    @property
    def metric_types(self) -> list[str]:
        return sorted(self.providers)

    async def get_metrics_with_cache(
        self,
        metric_type: str,
        filters: dict[str, Any] | None = None,
        force_refresh: bool = False,
    ) -> Any:
        """Return metrics for ``metric_type``, computing them on a cache miss.

        Raises:
            UnknownMetricTypeError: If no provider serves ``metric_type``
        """
        provider = self.providers.get(metric_type)
        if provider is None:
            raise UnknownMetricTypeError(metric_type, self.metric_types)

        filters = filters or {}
        if not force_refresh:
            cached = self.cache.get(metric_type, filters)
            if cached is not None:
                logger.debug("metrics_cache_hit", metric_type=metric_type, filters=filters)
                return cached

        logger.info(
            "metrics_cache_miss",
            metric_type=metric_type,
            filters=filters,
            force_refresh=force_refresh,
        )

        with MetricContext(metric_type):
            try:
                data = await provider(filters)
            except Exception:
                logger.exception(
                    "metrics_computation_failed",
                    metric_type=metric_type,
                    filters=filters,
                )
                raise

        self.cache.set(metric_type, data, filters)
        return data

    def invalidate_related_cache(self, event_type: str) -> list[str]:
        """Drop cached metrics affected by a data-change event.

        Returns:
            Metric types invalidated (``["all"]`` when everything was cleared)
        """
        if event_type == INVALIDATE_ALL:
            self.cache.clear()
            return [INVALIDATE_ALL]

        tags = EVENT_INVALIDATIONS.get(event_type)
        if tags is None:
            logger.warning("metrics_unknown_change_event", event_type=event_type)
            return []

        removed = sum(self.cache.invalidate(tag) for tag in tags)
        logger.info(
            "metrics_cache_event_invalidation",
            event_type=event_type,
            tags=list(tags),
            removed=removed,
        )
        return list(tags)

    # ==========================================================================
    # Convenience accessors
    # ==========================================================================

    async def get_home_metrics(self, force_refresh: bool = False) -> Any:
        return await self.get_metrics_with_cache("home", {}, force_refresh)

    async def get_dashboard_metrics(
        self, filters: dict[str, Any] | None = None, force_refresh: bool = False
    ) -> Any:
        return await self.get_metrics_with_cache("dashboard", filters, force_refresh)

    async def get_questionnaire_metrics(self, force_refresh: bool = False) -> Any:
        return await self.get_metrics_with_cache("questionnaires", {}, force_refresh)

    async def get_responses_metrics(self, force_refresh: bool = False) -> Any:
        return await self.get_metrics_with_cache("responses", {}, force_refresh)

    async def get_users_metrics(self, force_refresh: bool = False) -> Any:
        return await self.get_metrics_with_cache("users", {}, force_refresh)

    async def get_dashboard_analytics(
        self, filters: dict[str, Any] | None = None, force_refresh: bool = False
    ) -> Any:
        return await self.get_metrics_with_cache("analytics", filters, force_refresh)
