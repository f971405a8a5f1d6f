"""Query request/result envelopes.

Every strategy except ``realtime`` answers with a ``QueryResult``; the
realtime strategy hands back a ``SubscriptionHandle`` instead.
"""

from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from typing import Any

from occmetrics.core.errors import QueryError


@dataclass(frozen=True)
class QueryRequest:
    """Strategy tag plus its parameters and caller context."""

    type: str
    params: dict[str, Any] = field(default_factory=dict)
    context: dict[str, Any] = field(default_factory=dict)


@dataclass
class PaginationInfo:
    """Page bookkeeping; ``page`` and ``total_pages`` are None in cursor mode."""

    page: int | None
    page_size: int
    total_items: int
    total_pages: int | None
    has_next_page: bool
    has_previous_page: bool
    next_cursor: Any = None
    previous_cursor: Any = None


@dataclass
class QueryResult:
    """Uniform strategy outcome."""

    success: bool
    data: Any = None
    error: dict[str, Any] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    pagination: PaginationInfo | None = None

    @classmethod
    def ok(
        cls,
        data: Any,
        metadata: dict[str, Any] | None = None,
        pagination: PaginationInfo | None = None,
    ) -> "QueryResult":
        return cls(success=True, data=data, metadata=metadata or {}, pagination=pagination)

    @classmethod
    def failure(
        cls, error: QueryError, metadata: dict[str, Any] | None = None
    ) -> "QueryResult":
        return cls(success=False, error=error.to_dict(), metadata=metadata or {})

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"success": self.success, "metadata": self.metadata}
        if self.success:
            result["data"] = self.data
        else:
            result["error"] = self.error
        if self.pagination is not None:
            result["pagination"] = asdict(self.pagination)
        return result


@dataclass
class BatchItemResult:
    """Outcome of one sub-query in a batch."""

    index: int
    success: bool
    data: Any = None
    error: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"index": self.index, "success": self.success}
        if self.success:
            result["data"] = self.data
        else:
            result["error"] = self.error
        return result


class SubscriptionHandle:
    """Live change subscription returned by the realtime strategy."""

    def __init__(
        self,
        subscription_id: str,
        table: str,
        unsubscribe: Callable[[], Awaitable[None]] | None = None,
        error: QueryError | None = None,
    ) -> None:
        self.subscription_id = subscription_id
        self.table = table
        self.error = error
        self.events_received = 0
        self._unsubscribe = unsubscribe

    def attach(self, unsubscribe: Callable[[], Awaitable[None]]) -> None:
        """Bind the provider-side unsubscribe once the subscription is open."""
        self._unsubscribe = unsubscribe
        self.error = None

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None

    async def unsubscribe(self) -> bool:
        """Close the subscription. Returns False if it was already closed."""
        if self._unsubscribe is None:
            return False
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        await unsubscribe()
        return True

    def __repr__(self) -> str:
        return (
            f"SubscriptionHandle(id={self.subscription_id!r}, table={self.table!r}, "
            f"active={self.active})"
        )
