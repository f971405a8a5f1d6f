"""Data provider contracts.

Query strategies only depend on these protocols; concrete adapters live in
``memory`` (in-process tables) and ``redis_feed`` (change subscriptions over
Redis pub/sub).
"""

from typing import Protocol, runtime_checkable

from .models import (
    ChangeEvent,
    ChangeEventType,
    ChangeHandler,
    Filter,
    ReadRequest,
    ReadResult,
    Unsubscribe,
)


@runtime_checkable
class ChangeFeed(Protocol):
    """Source of row change events."""

    async def subscribe(
        self,
        table: str,
        handler: ChangeHandler,
        event_type: ChangeEventType = ChangeEventType.ALL,
        filters: list[Filter] | None = None,
    ) -> Unsubscribe: ...

    async def publish(self, event: ChangeEvent) -> None: ...


@runtime_checkable
class DataProvider(Protocol):
    """Reads and change subscriptions over named collections."""

    async def read(self, request: ReadRequest) -> ReadResult: ...

    async def subscribe(
        self,
        table: str,
        handler: ChangeHandler,
        event_type: ChangeEventType = ChangeEventType.ALL,
        filters: list[Filter] | None = None,
    ) -> Unsubscribe: ...
