"""Change subscriptions.

Results are pushed to the caller's callback as ``ChangeEvent``s; failures to
open a subscription are pushed to the same callback as a ``QueryError``.
Nothing here touches the metrics cache.
"""

import asyncio
import inspect
import time
from collections.abc import Callable
from typing import Any

import structlog

from occmetrics.config import Settings
from occmetrics.core.errors import ValidationError, wrap_provider_error
from occmetrics.provider import ChangeEvent, ChangeEventType

from .base import BaseQueryStrategy
from .models import SubscriptionHandle
from .paginated import PaginatedStrategy


logger = structlog.get_logger(__name__)


class RealtimeStrategy(BaseQueryStrategy):
    """Opens named change subscriptions and tracks them until unsubscribed.

    Params:
        table: Collection to watch (required)
        callback: Called with each ``ChangeEvent``, or with the error if the
            subscription cannot be opened (required)
        event: INSERT, UPDATE, DELETE or ``*`` (default)
        filters: Equality filters on the changed row
        subscription_id: Defaults to ``<table>_<epoch ms>``
    """

    strategy_type = "realtime"

    @classmethod
    def default_options(cls, settings: Settings) -> dict[str, Any]:
        return {"timeout": 10, "enable_cache": False, "cache_ttl": 0}

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.subscriptions: dict[str, SubscriptionHandle] = {}

    def validate_params(self, params: dict[str, Any]) -> bool:
        super().validate_params(params)

        table = params.get("table")
        if not isinstance(table, str) or not table:
            msg = "Table name is required"
            raise ValidationError(msg, {"table": table})

        if not callable(params.get("callback")):
            msg = "Callback function is required"
            raise ValidationError(msg)

        event = params.get("event", "*")
        if event not in {e.value for e in ChangeEventType}:
            msg = f"Unsupported change event: {event}"
            raise ValidationError(msg, {"event": event})

        return True

    def generate_cache_key(self, params: dict[str, Any]) -> str:
        cacheable = {k: v for k, v in params.items() if k != "callback"}
        return super().generate_cache_key(cacheable)

    async def execute(
        self, params: dict[str, Any], context: dict[str, Any] | None = None
    ) -> SubscriptionHandle:
        self.validate_params(params)
        self._started()

        table: str = params["table"]
        callback: Callable[[Any], Any] = params["callback"]
        subscription_id = (
            params.get("subscription_id") or f"{table}_{int(time.time() * 1000)}"
        )

        if subscription_id in self.subscriptions:
            await self.unsubscribe(subscription_id)

        handle = SubscriptionHandle(subscription_id, table)

        async def on_change(event: ChangeEvent) -> None:
            handle.events_received += 1
            result = callback(event)
            if inspect.isawaitable(result):
                await result

        try:
            unsubscribe = await asyncio.wait_for(
                self.provider.subscribe(
                    table,
                    on_change,
                    ChangeEventType(params.get("event", "*")),
                    PaginatedStrategy.build_filters(params.get("filters")),
                ),
                timeout=self.options["timeout"],
            )
        except Exception as e:
            error = wrap_provider_error(e, strategy=self.name, operation="subscribe")
            self.stats["failures"] += 1
            logger.warning(
                "realtime_subscription_failed",
                subscription_id=subscription_id,
                table=table,
                error=error.message,
            )
            handle.error = error
            result = callback(error)
            if inspect.isawaitable(result):
                await result
            return handle

        handle.attach(unsubscribe)
        self.subscriptions[subscription_id] = handle
        logger.info("realtime_subscribed", subscription_id=subscription_id, table=table)
        return handle

    async def unsubscribe(self, subscription_id: str) -> bool:
        handle = self.subscriptions.pop(subscription_id, None)
        if handle is None:
            return False
        closed = await handle.unsubscribe()
        logger.info("realtime_unsubscribed", subscription_id=subscription_id)
        return closed

    async def unsubscribe_all(self) -> int:
        ids = list(self.subscriptions)
        for subscription_id in ids:
            await self.unsubscribe(subscription_id)
        return len(ids)
