# Core infrastructure
from occmetrics.core.context import (
    MetricContext,
    clear_context,
    get_context,
    get_correlation_id,
    get_metric_type,
    get_request_id,
    set_correlation_id,
    set_request_id,
)
from occmetrics.core.errors import (
    ProviderError,
    ProviderErrorKind,
    QueryError,
    QueryTimeoutError,
    StrategyNotFoundError,
    StrategyRegistrationError,
    UnknownMetricTypeError,
    ValidationError,
    classify_provider_error,
    wrap_provider_error,
)
from occmetrics.core.logging import configure_structlog, get_logger


__all__ = [
    "MetricContext",
    "ProviderError",
    "ProviderErrorKind",
    "QueryError",
    "QueryTimeoutError",
    "StrategyNotFoundError",
    "StrategyRegistrationError",
    "UnknownMetricTypeError",
    "ValidationError",
    "classify_provider_error",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_correlation_id",
    "get_logger",
    "get_metric_type",
    "get_request_id",
    "set_correlation_id",
    "set_request_id",
    "wrap_provider_error",
]
