"""Strategy registry and factory.

The registry maps a type tag to a ``BaseQueryStrategy`` subclass. It is
class-level so strategies registered at startup are visible to every
factory instance.
"""

from typing import Any, ClassVar

import structlog

from occmetrics.config import Settings, get_settings
from occmetrics.core.errors import StrategyNotFoundError, StrategyRegistrationError
from occmetrics.provider import DataProvider

from .analytics import AnalyticsStrategy
from .base import BaseQueryStrategy
from .batch import BatchStrategy
from .models import QueryRequest, QueryResult, SubscriptionHandle
from .paginated import PaginatedStrategy
from .realtime import RealtimeStrategy


logger = structlog.get_logger(__name__)


BUILTIN_STRATEGIES: dict[str, type[BaseQueryStrategy]] = {
    AnalyticsStrategy.strategy_type: AnalyticsStrategy,
    PaginatedStrategy.strategy_type: PaginatedStrategy,
    RealtimeStrategy.strategy_type: RealtimeStrategy,
    BatchStrategy.strategy_type: BatchStrategy,
}


class QueryStrategyFactory:
    """Builds strategies bound to one data provider."""

    _registry: ClassVar[dict[str, type[BaseQueryStrategy]]] = dict(BUILTIN_STRATEGIES)

    def __init__(self, provider: DataProvider, settings: Settings | None = None) -> None:
        self.provider = provider
        self.settings = settings or get_settings()

    @classmethod
    def register_strategy(
        cls, strategy_type: str, strategy_class: type[BaseQueryStrategy]
    ) -> None:
        """Register (or replace) the strategy behind ``strategy_type``."""
        if not (
            isinstance(strategy_class, type)
            and issubclass(strategy_class, BaseQueryStrategy)
        ):
            raise StrategyRegistrationError(strategy_type)

        cls._registry[strategy_type] = strategy_class
        logger.info(
            "query_strategy_registered",
            strategy_type=strategy_type,
            strategy=strategy_class.__name__,
        )

    @classmethod
    def available_strategies(cls) -> list[str]:
        return sorted(cls._registry)

    @classmethod
    def reset_registry(cls) -> None:
        """Restore the built-in strategies only."""
        cls._registry = dict(BUILTIN_STRATEGIES)

    def create_strategy(self, strategy_type: str, **options: Any) -> BaseQueryStrategy:
        strategy_class = self._registry.get(strategy_type)
        if strategy_class is None:
            raise StrategyNotFoundError(strategy_type, self.available_strategies())
        return strategy_class(self.provider, self.settings, **options)

    async def execute(
        self, request: QueryRequest, **options: Any
    ) -> QueryResult | SubscriptionHandle:
        """Create the strategy named by ``request.type`` and run it."""
        strategy = self.create_strategy(request.type, **options)
        return await strategy.execute(request.params, request.context)
