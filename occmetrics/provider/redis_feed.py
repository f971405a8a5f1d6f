"""Change feed over Redis pub/sub.

Writers publish JSON-encoded change events on ``changes:<table>``; every
subscription owns a pubsub connection and a listener task that decodes
messages and forwards the matching ones to its handler.
"""

import asyncio
import contextlib
import inspect
import json

import redis.asyncio as redis

from occmetrics.core.logging import get_logger
from occmetrics.core.redis import change_channel

from .memory import matches_all
from .models import (
    ChangeEvent,
    ChangeEventType,
    ChangeHandler,
    Filter,
    Unsubscribe,
)


logger = get_logger(__name__)


class RedisChangeFeed:
    """ChangeFeed backed by Redis channels."""

    def __init__(self, client: redis.Redis, poll_timeout: float = 1.0) -> None:
        self.client = client
        self.poll_timeout = poll_timeout
        self._tasks: set[asyncio.Task] = set()

    async def publish(self, event: ChangeEvent) -> None:
        channel = change_channel(event.table)
        await self.client.publish(channel, json.dumps(event.to_dict(), default=str))

    async def subscribe(
        self,
        table: str,
        handler: ChangeHandler,
        event_type: ChangeEventType = ChangeEventType.ALL,
        filters: list[Filter] | None = None,
    ) -> Unsubscribe:
        channel = change_channel(table)
        pubsub = self.client.pubsub()
        await pubsub.subscribe(channel)
        logger.info("subscribed_to_channel", table=table, channel=channel)

        task = asyncio.create_task(
            self._listen(pubsub, handler, ChangeEventType(event_type), filters or []),
            name=f"change-feed:{table}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        async def unsubscribe() -> None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
            logger.info("unsubscribed_from_channel", table=table, channel=channel)

        return unsubscribe

    async def _listen(
        self,
        pubsub: redis.client.PubSub,
        handler: ChangeHandler,
        event_type: ChangeEventType,
        filters: list[Filter],
    ) -> None:
        while True:
            message = await pubsub.get_message(
                ignore_subscribe_messages=True, timeout=self.poll_timeout
            )
            if not message or message["type"] != "message":
                continue

            try:
                event = ChangeEvent.from_dict(json.loads(message["data"]))
            except (json.JSONDecodeError, KeyError, ValueError) as e:
                logger.warning("change_event_decode_failed", error=str(e))
                continue

            if event_type is not ChangeEventType.ALL and event.event_type != event_type:
                continue
            if not matches_all(event.row, filters):
                continue

            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("change_handler_failed", table=event.table)
