# Query strategy layer
from .analytics import AnalyticsStrategy
from .base import BaseQueryStrategy
from .batch import BatchStrategy
from .factory import QueryStrategyFactory
from .models import (
    BatchItemResult,
    PaginationInfo,
    QueryRequest,
    QueryResult,
    SubscriptionHandle,
)
from .paginated import PaginatedStrategy
from .realtime import RealtimeStrategy


__all__ = [
    "AnalyticsStrategy",
    "BaseQueryStrategy",
    "BatchItemResult",
    "BatchStrategy",
    "PaginatedStrategy",
    "PaginationInfo",
    "QueryRequest",
    "QueryResult",
    "QueryStrategyFactory",
    "RealtimeStrategy",
    "SubscriptionHandle",
]
