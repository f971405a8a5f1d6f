# Cached metrics facade and metric providers
from .providers import MetricProvider, MetricProviders
from .service import EVENT_INVALIDATIONS, CachedMetricsService
from .subscriptions import CacheInvalidationListener
from .validation import ALL, validate_dashboard_filters


__all__ = [
    "ALL",
    "EVENT_INVALIDATIONS",
    "CacheInvalidationListener",
    "CachedMetricsService",
    "MetricProvider",
    "MetricProviders",
    "validate_dashboard_filters",
]
