"""Error taxonomy for query execution and metrics aggregation.

Kinds:
- ValidationError: malformed input, raised before any I/O
- ProviderError: data-access failure, wrapped with strategy and operation
- QueryTimeoutError: deadline exceeded on a provider read
- StrategyNotFoundError / StrategyRegistrationError: factory misuse
- UnknownMetricTypeError: facade asked for a metric it cannot build

``classify_provider_error`` maps arbitrary provider failures onto a
``ProviderErrorKind`` so strategies can decide whether a read is worth
retrying.
"""

from enum import Enum
from typing import Any


class ProviderErrorKind(str, Enum):
    """Classified data-access failure kinds."""

    CONNECTION = "connection_error"
    AUTHENTICATION = "auth_error"
    PERMISSION = "permission_error"
    NOT_FOUND = "not_found"
    VALIDATION = "validation_error"
    RATE_LIMIT = "rate_limit"
    SERVER = "server_error"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown_error"


RETRYABLE_KINDS = frozenset(
    {
        ProviderErrorKind.CONNECTION,
        ProviderErrorKind.RATE_LIMIT,
        ProviderErrorKind.SERVER,
        ProviderErrorKind.TIMEOUT,
    }
)


class QueryError(Exception):
    """Base query/metrics error."""

    def __init__(
        self,
        message: str,
        code: str = "query_error",
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serializable form used in result envelopes and HTTP responses."""
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(QueryError):
    """Invalid query parameters."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, "validation_error", details)


class ProviderError(QueryError):
    """Underlying data provider failed."""

    def __init__(
        self,
        message: str,
        kind: ProviderErrorKind = ProviderErrorKind.UNKNOWN,
        strategy: str | None = None,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.kind = ProviderErrorKind(kind)
        self.strategy = strategy
        self.operation = operation
        super().__init__(
            message,
            "provider_error",
            {
                "kind": self.kind.value,
                "strategy": strategy,
                "operation": operation,
                **(details or {}),
            },
        )

    @property
    def retryable(self) -> bool:
        """Whether re-issuing the same read may succeed."""
        return self.kind in RETRYABLE_KINDS


class QueryTimeoutError(QueryError, TimeoutError):
    """Provider read exceeded its deadline."""

    def __init__(self, timeout: float, strategy: str | None = None):
        self.timeout = timeout
        super().__init__(
            f"Query timeout after {timeout:g}s",
            "timeout",
            {"timeout": timeout, "strategy": strategy},
        )


class StrategyNotFoundError(QueryError):
    """Unregistered strategy type tag."""

    def __init__(self, strategy_type: str, available: list[str]):
        super().__init__(
            f"Unknown query strategy type: {strategy_type}",
            "strategy_not_found",
            {"type": strategy_type, "available_types": available},
        )


class StrategyRegistrationError(QueryError):
    """Attempt to register something that is not a query strategy."""

    def __init__(self, strategy_type: str):
        super().__init__(
            "Strategy must extend BaseQueryStrategy",
            "strategy_registration_error",
            {"type": strategy_type},
        )


class UnknownMetricTypeError(QueryError):
    """Metric type without a registered provider."""

    def __init__(self, metric_type: str, available: list[str]):
        super().__init__(
            f"Unknown metrics type: {metric_type}",
            "unknown_metric_type",
            {"type": metric_type, "available_types": available},
        )


def classify_provider_error(error: BaseException) -> ProviderErrorKind:
    """Map a provider failure onto a ``ProviderErrorKind``.

    Uses the exception's ``code`` attribute when present (PostgREST and
    HTTP-style codes) and falls back to message heuristics.
    """
    if isinstance(error, ProviderError):
        return error.kind
    if isinstance(error, TimeoutError):
        return ProviderErrorKind.TIMEOUT
    if isinstance(error, ConnectionError):
        return ProviderErrorKind.CONNECTION
    if isinstance(error, PermissionError):
        return ProviderErrorKind.PERMISSION

    message = str(error).lower()
    code = str(getattr(error, "code", "") or "")

    if "network" in message or "fetch" in message or "connection" in message:
        return ProviderErrorKind.CONNECTION
    if code == "PGRST301" or "jwt" in message or "unauthorized" in message:
        return ProviderErrorKind.AUTHENTICATION
    if "permission" in message or "policy" in message:
        return ProviderErrorKind.PERMISSION
    if (
        code == "PGRST116"
        or "not found" in message
        or "does not exist" in message
    ):
        return ProviderErrorKind.NOT_FOUND
    if code.startswith("23") or "constraint" in message or "invalid" in message:
        return ProviderErrorKind.VALIDATION
    if code == "429" or "rate limit" in message or "too many requests" in message:
        return ProviderErrorKind.RATE_LIMIT
    if code.startswith("5") or "server error" in message or "internal" in message:
        return ProviderErrorKind.SERVER
    return ProviderErrorKind.UNKNOWN


def wrap_provider_error(
    error: BaseException,
    strategy: str | None = None,
    operation: str | None = None,
) -> ProviderError:
    """Wrap any provider failure into a classified ``ProviderError``."""
    if isinstance(error, ProviderError):
        if error.strategy is None and strategy is not None:
            error.strategy = strategy
            error.details["strategy"] = strategy
        return error
    return ProviderError(
        str(error) or type(error).__name__,
        kind=classify_provider_error(error),
        strategy=strategy,
        operation=operation,
        details={"error_type": type(error).__name__},
    )
