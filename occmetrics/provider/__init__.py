# Data provider contracts and adapters
from .base import ChangeFeed, DataProvider
from .memory import InMemoryDataProvider, LocalChangeFeed, matches_all
from .models import (
    ChangeEvent,
    ChangeEventType,
    ChangeHandler,
    Embed,
    Filter,
    FilterOp,
    OrderBy,
    ReadRequest,
    ReadResult,
    Row,
    Unsubscribe,
    resolve_column,
)
from .redis_feed import RedisChangeFeed


__all__ = [
    "ChangeEvent",
    "ChangeEventType",
    "ChangeFeed",
    "ChangeHandler",
    "DataProvider",
    "Embed",
    "Filter",
    "FilterOp",
    "InMemoryDataProvider",
    "LocalChangeFeed",
    "OrderBy",
    "ReadRequest",
    "ReadResult",
    "RedisChangeFeed",
    "Row",
    "Unsubscribe",
    "matches_all",
    "resolve_column",
]
