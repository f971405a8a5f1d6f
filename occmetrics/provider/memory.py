"""In-process data provider.

Holds collections as lists of dict rows and evaluates ``ReadRequest``s the
way a PostgREST-style backend would: embeds are joined first, then filters,
search, ordering and bounds are applied. Writes publish change events to a
``ChangeFeed`` (``LocalChangeFeed`` unless a Redis feed is supplied).
"""

import copy
import inspect
import re
from datetime import UTC, date, datetime
from itertools import count
from typing import Any

from occmetrics.core.logging import get_logger

from .base import ChangeFeed
from .models import (
    ChangeEvent,
    ChangeEventType,
    ChangeHandler,
    Embed,
    Filter,
    FilterOp,
    ReadRequest,
    ReadResult,
    Row,
    Unsubscribe,
    resolve_column,
)


logger = get_logger(__name__)


# ==============================================================================
# Predicate evaluation
# ==============================================================================


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


def _parse_like(sample: date, text: str) -> date:
    if isinstance(sample, datetime):
        return _as_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    return date.fromisoformat(text[:10])


def _coerce_pair(left: Any, right: Any) -> tuple[Any, Any]:
    """Align ISO strings with dates so range filters work on either form."""
    if isinstance(left, (datetime, date)) and isinstance(right, str):
        right = _parse_like(left, right)
    elif isinstance(left, str) and isinstance(right, (datetime, date)):
        left = _parse_like(right, left)
    if isinstance(left, datetime) and isinstance(right, datetime):
        return _as_utc(left), _as_utc(right)
    return left, right


def _like_to_regex(pattern: str, *, case_insensitive: bool) -> re.Pattern[str]:
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    flags = re.IGNORECASE | re.DOTALL if case_insensitive else re.DOTALL
    return re.compile("".join(parts), flags)


def matches_filter(row: Row, flt: Filter) -> bool:
    """Evaluate one predicate against a row."""
    value = resolve_column(row, flt.column)
    op = FilterOp(flt.op)

    if op is FilterOp.EQ:
        return value == flt.value
    if op is FilterOp.IN:
        return value in flt.value
    if op in (FilterOp.LIKE, FilterOp.ILIKE):
        if value is None:
            return False
        regex = _like_to_regex(
            str(flt.value), case_insensitive=op is FilterOp.ILIKE
        )
        return regex.fullmatch(str(value)) is not None

    if value is None or flt.value is None:
        return False
    try:
        left, right = _coerce_pair(value, flt.value)
        if op is FilterOp.GT:
            return left > right
        if op is FilterOp.GTE:
            return left >= right
        if op is FilterOp.LT:
            return left < right
        return left <= right
    except (TypeError, ValueError):
        return False


def matches_all(row: Row, filters: list[Filter]) -> bool:
    return all(matches_filter(row, f) for f in filters)


def matches_any(row: Row, filters: list[Filter]) -> bool:
    return not filters or any(matches_filter(row, f) for f in filters)


# ==============================================================================
# Change feed
# ==============================================================================


class LocalChangeFeed:
    """Dispatches change events to in-process handlers."""

    def __init__(self) -> None:
        self._ids = count(1)
        # table -> subscription id -> (handler, event type, filters)
        self._subscriptions: dict[
            str, dict[int, tuple[ChangeHandler, ChangeEventType, list[Filter]]]
        ] = {}

    @property
    def subscription_count(self) -> int:
        return sum(len(subs) for subs in self._subscriptions.values())

    async def subscribe(
        self,
        table: str,
        handler: ChangeHandler,
        event_type: ChangeEventType = ChangeEventType.ALL,
        filters: list[Filter] | None = None,
    ) -> Unsubscribe:
        sub_id = next(self._ids)
        self._subscriptions.setdefault(table, {})[sub_id] = (
            handler,
            ChangeEventType(event_type),
            list(filters or []),
        )

        async def unsubscribe() -> None:
            table_subs = self._subscriptions.get(table, {})
            table_subs.pop(sub_id, None)
            if not table_subs:
                self._subscriptions.pop(table, None)

        return unsubscribe

    async def publish(self, event: ChangeEvent) -> None:
        for handler, event_type, filters in list(
            self._subscriptions.get(event.table, {}).values()
        ):
            if event_type is not ChangeEventType.ALL and event_type != event.event_type:
                continue
            if not matches_all(event.row, filters):
                continue
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "change_handler_failed",
                    table=event.table,
                    event_type=event.event_type.value,
                )


# ==============================================================================
# Provider
# ==============================================================================


class InMemoryDataProvider:
    """DataProvider over in-process collections."""

    def __init__(
        self,
        tables: dict[str, list[Row]] | None = None,
        change_feed: ChangeFeed | None = None,
    ) -> None:
        self._tables: dict[str, list[Row]] = {
            name: [dict(row) for row in rows] for name, rows in (tables or {}).items()
        }
        self.change_feed: ChangeFeed = change_feed or LocalChangeFeed()

    def tables(self) -> list[str]:
        return sorted(self._tables)

    def rows(self, table: str) -> list[Row]:
        return [dict(row) for row in self._tables.get(table, [])]

    # --------------------------------------------------------------------------
    # Reads
    # --------------------------------------------------------------------------

    async def read(self, request: ReadRequest) -> ReadResult:
        if request.table not in self._tables:
            msg = f"relation '{request.table}' does not exist"
            raise LookupError(msg)

        rows = [copy.deepcopy(row) for row in self._tables[request.table]]
        for embed in request.embeds:
            rows = self._apply_embed(rows, embed)

        rows = [
            row
            for row in rows
            if matches_all(row, request.filters) and matches_any(row, request.any_of)
        ]
        total = len(rows)

        if request.order is not None:
            rows = self._sort(rows, request.order.column, request.order.ascending)

        start = request.offset or 0
        end = start + request.limit if request.limit is not None else None
        rows = rows[start:end]

        if "*" not in request.select:
            keep = set(request.select) | {embed.name for embed in request.embeds}
            rows = [{k: v for k, v in row.items() if k in keep} for row in rows]

        logger.debug(
            "provider_read",
            table=request.table,
            returned=len(rows),
            total=total,
        )
        return ReadResult(rows=rows, count=total if request.count else None)

    def _apply_embed(self, rows: list[Row], embed: Embed) -> list[Row]:
        index = {
            related.get(embed.foreign_key): related
            for related in self._tables.get(embed.table, [])
        }
        joined = []
        for row in rows:
            related = index.get(row.get(embed.local_key))
            if related is None:
                if embed.inner:
                    continue
                row[embed.name] = None
            elif embed.columns:
                row[embed.name] = {c: related.get(c) for c in embed.columns}
            else:
                row[embed.name] = dict(related)
            joined.append(row)
        return joined

    @staticmethod
    def _sort(rows: list[Row], column: str, ascending: bool) -> list[Row]:
        present = [r for r in rows if resolve_column(r, column) is not None]
        missing = [r for r in rows if resolve_column(r, column) is None]
        present.sort(key=lambda r: resolve_column(r, column), reverse=not ascending)
        return present + missing

    # --------------------------------------------------------------------------
    # Writes
    # --------------------------------------------------------------------------

    async def insert(self, table: str, row: Row) -> Row:
        stored = dict(row)
        self._tables.setdefault(table, []).append(stored)
        await self.change_feed.publish(
            ChangeEvent(table=table, event_type=ChangeEventType.INSERT, new=dict(stored))
        )
        return stored

    async def update(
        self, table: str, row_id: Any, changes: Row, key: str = "id"
    ) -> Row | None:
        for row in self._tables.get(table, []):
            if row.get(key) == row_id:
                old = dict(row)
                row.update(changes)
                await self.change_feed.publish(
                    ChangeEvent(
                        table=table,
                        event_type=ChangeEventType.UPDATE,
                        new=dict(row),
                        old=old,
                    )
                )
                return row
        return None

    async def delete(self, table: str, row_id: Any, key: str = "id") -> bool:
        rows = self._tables.get(table, [])
        for position, row in enumerate(rows):
            if row.get(key) == row_id:
                del rows[position]
                await self.change_feed.publish(
                    ChangeEvent(table=table, event_type=ChangeEventType.DELETE, old=row)
                )
                return True
        return False

    async def subscribe(
        self,
        table: str,
        handler: ChangeHandler,
        event_type: ChangeEventType = ChangeEventType.ALL,
        filters: list[Filter] | None = None,
    ) -> Unsubscribe:
        return await self.change_feed.subscribe(table, handler, event_type, filters)
