"""Change-driven cache invalidation.

Watches the survey collections through the realtime strategy and turns each
row change into the matching invalidation event on the cached facade.
"""

from typing import Any, ClassVar

import structlog

from occmetrics.core.errors import QueryError
from occmetrics.provider import ChangeEvent, ChangeEventType
from occmetrics.queries import QueryStrategyFactory, RealtimeStrategy

from .service import CachedMetricsService


logger = structlog.get_logger(__name__)


class CacheInvalidationListener:
    """Invalidates cached metrics when users or responses change."""

    # Watched table -> invalidation event subject
    WATCHED_TABLES: ClassVar[dict[str, str]] = {
        "users": "user",
        "responses": "response",
        "assessments": "response",
    }

    def __init__(
        self, factory: QueryStrategyFactory, service: CachedMetricsService
    ) -> None:
        self.service = service
        self._strategy = RealtimeStrategy(factory.provider, factory.settings)

    @property
    def active_subscriptions(self) -> int:
        return sum(
            1 for handle in self._strategy.subscriptions.values() if handle.active
        )

    @staticmethod
    def event_name(subject: str, event_type: ChangeEventType) -> str:
        suffix = "created" if event_type == ChangeEventType.INSERT else "updated"
        return f"{subject}_{suffix}"

    async def start(self) -> int:
        """Open one subscription per watched table.

        Returns:
            Number of subscriptions opened
        """
        opened = 0
        for table, subject in self.WATCHED_TABLES.items():
            handle = await self._strategy.execute(
                {
                    "table": table,
                    "callback": self._make_callback(table, subject),
                    "subscription_id": f"metrics-invalidation:{table}",
                }
            )
            if handle.active:
                opened += 1
        logger.info("cache_invalidation_listener_started", subscriptions=opened)
        return opened

    async def stop(self) -> int:
        closed = await self._strategy.unsubscribe_all()
        logger.info("cache_invalidation_listener_stopped", subscriptions=closed)
        return closed

    def _make_callback(self, table: str, subject: str) -> Any:
        def on_change(payload: ChangeEvent | QueryError) -> None:
            if isinstance(payload, QueryError):
                logger.warning(
                    "cache_invalidation_subscription_failed",
                    table=table,
                    error=payload.message,
                )
                return
            self.service.invalidate_related_cache(
                self.event_name(subject, payload.event_type)
            )

        return on_change
