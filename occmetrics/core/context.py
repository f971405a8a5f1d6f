"""Request context management using contextvars.

Each HTTP request (or background job) gets a request ID and an optional
correlation ID; the cached metrics facade additionally records which metric
type is being computed so strategy and provider logs can be attributed to it
without threading the value through every call.
"""

from contextvars import ContextVar, Token
from typing import Any
from uuid import uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
metric_type_var: ContextVar[str | None] = ContextVar("metric_type", default=None)


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid4())


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context.

    Args:
        request_id: Optional request ID. If not provided, generates a new one.

    Returns:
        The request ID that was set.
    """
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


def get_correlation_id() -> str | None:
    """Get the current correlation ID."""
    return correlation_id_var.get()


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation ID for the current context."""
    correlation_id_var.set(correlation_id)


def get_metric_type() -> str | None:
    """Get the metric type currently being computed, if any."""
    return metric_type_var.get()


def get_context() -> dict[str, Any]:
    """Get all non-empty context variables as a dictionary."""
    context: dict[str, Any] = {}

    request_id = get_request_id()
    if request_id:
        context["request_id"] = request_id

    correlation_id = get_correlation_id()
    if correlation_id:
        context["correlation_id"] = correlation_id

    metric_type = get_metric_type()
    if metric_type:
        context["metric_type"] = metric_type

    return context


def clear_context() -> None:
    """Clear all context variables at the end of a request."""
    request_id_var.set("")
    correlation_id_var.set(None)
    metric_type_var.set(None)


class MetricContext:
    """Context manager marking the metric type being computed.

    Usage:
        with MetricContext("dashboard"):
            await provider(filters)  # logs include metric_type="dashboard"
    """

    def __init__(self, metric_type: str) -> None:
        self.metric_type = metric_type
        self._token: Token[str | None] | None = None

    def __enter__(self) -> "MetricContext":
        self._token = metric_type_var.set(self.metric_type)
        return self

    def __exit__(self, *_: object) -> None:
        if self._token is not None:
            metric_type_var.reset(self._token)
            self._token = None
