"""Common contract for query strategies.

Execution policy:
- ``validate_params`` raises ``ValidationError`` before any I/O
- provider reads go through ``_read``: bounded by ``timeout`` and retried
  with capped exponential backoff while the failure classifies as retryable
- execution failures are turned into ``QueryResult.failure`` envelopes by
  ``handle_error``; they are not raised
"""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any, ClassVar

import structlog

from occmetrics.config import Settings, get_settings
from occmetrics.core.errors import (
    QueryError,
    QueryTimeoutError,
    ValidationError,
    wrap_provider_error,
)
from occmetrics.provider import DataProvider, ReadRequest, ReadResult

from .models import QueryResult, SubscriptionHandle


logger = structlog.get_logger(__name__)


class BaseQueryStrategy(ABC):
    """Abstract query strategy.

    Options (constructor keyword arguments override strategy defaults, which
    override settings):
        timeout: Seconds allowed for one provider read
        retries: Extra attempts for retryable read failures
        retry_base_delay: First backoff delay in seconds, doubled per attempt
        retry_max_delay: Cap on a single backoff delay in seconds
        cache_ttl: Seconds a caller may cache this strategy's results
        enable_cache: Whether results may be cached at all
        enable_metrics: Whether execution counters are kept and logged
    """

    strategy_type: ClassVar[str] = "base"

    def __init__(
        self,
        provider: DataProvider,
        settings: Settings | None = None,
        **options: Any,
    ) -> None:
        self.provider = provider
        self.settings = settings or get_settings()
        self.options: dict[str, Any] = {
            "timeout": self.settings.query_timeout_seconds,
            "retries": self.settings.query_retries,
            "retry_base_delay": self.settings.query_retry_base_delay_seconds,
            "retry_max_delay": self.settings.query_retry_max_delay_seconds,
            "cache_ttl": self.settings.cache_default_ttl_seconds,
            "enable_cache": True,
            "enable_metrics": True,
            **self.default_options(self.settings),
            **options,
        }
        self.stats = {"executions": 0, "failures": 0, "retries": 0}

    @classmethod
    def default_options(cls, settings: Settings) -> dict[str, Any]:
        """Strategy-specific option defaults."""
        return {}

    @property
    def name(self) -> str:
        return type(self).__name__

    # ==========================================================================
    # Contract
    # ==========================================================================

    @abstractmethod
    async def execute(
        self, params: dict[str, Any], context: dict[str, Any] | None = None
    ) -> QueryResult | SubscriptionHandle:
        """Run the query described by ``params``."""

    def validate_params(self, params: dict[str, Any]) -> bool:
        """Check ``params``; raises ``ValidationError`` when malformed."""
        if not isinstance(params, dict):
            msg = "Query parameters must be a mapping"
            raise ValidationError(msg, {"strategy": self.name})
        return True

    def generate_cache_key(self, params: dict[str, Any]) -> str:
        """Stable key for ``params``; key order never changes the result."""
        serialized = json.dumps(
            params, sort_keys=True, separators=(",", ":"), default=str
        )
        return f"{self.name}_{serialized}"

    async def handle_error(
        self, error: BaseException, context: dict[str, Any] | None = None
    ) -> QueryResult:
        """Classify, log and wrap an execution failure into an envelope."""
        context = context or {}
        if isinstance(error, QueryError):
            query_error = error
        else:
            query_error = wrap_provider_error(
                error, strategy=self.name, operation=context.get("operation")
            )

        self.stats["failures"] += 1
        logger.warning(
            "query_strategy_failed",
            strategy=self.name,
            code=query_error.code,
            error=query_error.message,
            kind=query_error.details.get("kind"),
            operation=context.get("operation"),
        )
        return QueryResult.failure(
            query_error,
            metadata={
                "strategy": self.name,
                "timestamp": datetime.now(UTC).isoformat(),
                "context": context.get("context", {}),
            },
        )

    # ==========================================================================
    # Provider access
    # ==========================================================================

    async def _read(self, request: ReadRequest, operation: str = "read") -> ReadResult:
        """Read with retry, bounded by the ``timeout`` option.

        The deadline covers every attempt; when it fires the in-flight read is
        cancelled and ``QueryTimeoutError`` is raised.
        """
        timeout = self.options.get("timeout")
        if not timeout:
            return await self._read_with_retry(request, operation)
        try:
            return await asyncio.wait_for(
                self._read_with_retry(request, operation), timeout=timeout
            )
        except TimeoutError as e:
            raise QueryTimeoutError(timeout, strategy=self.name) from e

    def retry_delay(self, attempt: int) -> float:
        """Backoff before retry ``attempt + 1``, capped at ``retry_max_delay``."""
        delay = float(self.options.get("retry_base_delay") or 0) * (2**attempt)
        max_delay = self.options.get("retry_max_delay")
        if max_delay is not None:
            delay = min(delay, float(max_delay))
        return delay

    async def _read_with_retry(
        self, request: ReadRequest, operation: str = "read"
    ) -> ReadResult:
        retries = int(self.options.get("retries") or 0)
        attempt = 0

        while True:
            try:
                return await self.provider.read(request)
            except Exception as e:
                error = wrap_provider_error(e, strategy=self.name, operation=operation)
                if not error.retryable or attempt >= retries:
                    raise error from e

                delay = self.retry_delay(attempt)
                attempt += 1
                self.stats["retries"] += 1
                logger.warning(
                    "query_read_retry",
                    strategy=self.name,
                    table=request.table,
                    attempt=attempt,
                    max_retries=retries,
                    delay=delay,
                    kind=error.kind.value,
                )
                await asyncio.sleep(delay)

    # ==========================================================================
    # Bookkeeping
    # ==========================================================================

    def _started(self) -> float:
        self.stats["executions"] += 1
        return time.perf_counter()

    def _elapsed_ms(self, started: float) -> float:
        elapsed = round((time.perf_counter() - started) * 1000, 2)
        if self.options.get("enable_metrics"):
            logger.debug("query_strategy_executed", strategy=self.name, duration_ms=elapsed)
        return elapsed
