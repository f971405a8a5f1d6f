"""Offset and cursor (keyset) pagination over one collection."""

import math
from typing import Any

import structlog

from occmetrics.config import Settings
from occmetrics.core.errors import ValidationError
from occmetrics.provider import (
    Embed,
    Filter,
    FilterOp,
    OrderBy,
    ReadRequest,
    resolve_column,
)

from .base import BaseQueryStrategy
from .models import PaginationInfo, QueryResult


logger = structlog.get_logger(__name__)


FILTER_OPERATORS = frozenset({"eq", "gte", "lte", "like", "ilike"})


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class PaginatedStrategy(BaseQueryStrategy):
    """Paged reads.

    Params:
        table: Collection to read (required)
        select: Column projection, default all
        filters: ``{column: value}``; a list value means ``in``, a
            ``{"operator": op, "value": v}`` mapping applies ``op``
            (eq, gte, lte, like, ilike)
        search_term / search_columns: case-insensitive substring match on
            any of the columns
        order_by: ``{"column": str, "ascending": bool}``, default
            ``created_at`` descending
        page / page_size: Offset mode bounds
        cursor: Switches to keyset mode; rows strictly after the cursor in
            sort order
        embeds: Related collections to join, as ``Embed`` objects or mappings
            of its fields
    """

    strategy_type = "paginated"

    @classmethod
    def default_options(cls, settings: Settings) -> dict[str, Any]:
        return {
            "cache_ttl": 60,
            "default_page_size": settings.pagination_default_page_size,
            "max_page_size": settings.pagination_max_page_size,
        }

    def validate_params(self, params: dict[str, Any]) -> bool:
        super().validate_params(params)

        table = params.get("table")
        if not isinstance(table, str) or not table:
            msg = "Table name is required"
            raise ValidationError(msg, {"table": table})

        page = params.get("page", 1)
        if not _is_int(page) or page < 1:
            msg = "Page must be a positive integer"
            raise ValidationError(msg, {"page": page})

        max_page_size = self.options["max_page_size"]
        page_size = params.get("page_size", self.options["default_page_size"])
        if not _is_int(page_size) or not 1 <= page_size <= max_page_size:
            msg = f"Page size must be between 1 and {max_page_size}"
            raise ValidationError(msg, {"page_size": page_size})

        for column, value in (params.get("filters") or {}).items():
            if isinstance(value, dict):
                operator = value.get("operator")
                if operator not in FILTER_OPERATORS:
                    msg = f"Unsupported filter operator: {operator}"
                    raise ValidationError(msg, {"column": column, "operator": operator})

        order_by = params.get("order_by")
        if order_by is not None and not (
            isinstance(order_by, dict) and isinstance(order_by.get("column"), str)
        ):
            msg = "order_by must name a column"
            raise ValidationError(msg, {"order_by": order_by})

        return True

    @staticmethod
    def build_filters(filters: dict[str, Any] | None) -> list[Filter]:
        """Filter list for a ``{column: value}`` mapping.

        Unset (``None`` or ``""``) values are skipped; pattern operators
        match the value as a substring.
        """
        built = []
        for column, value in (filters or {}).items():
            if value is None or value == "":
                continue
            if isinstance(value, (list, tuple, set)):
                built.append(Filter(column, FilterOp.IN, list(value)))
            elif isinstance(value, dict):
                op = FilterOp(value["operator"])
                operand = value.get("value")
                if op in (FilterOp.LIKE, FilterOp.ILIKE):
                    operand = f"%{operand}%"
                built.append(Filter(column, op, operand))
            else:
                built.append(Filter.eq(column, value))
        return built

    @staticmethod
    def build_embeds(embeds: Any) -> tuple[Embed, ...]:
        return tuple(
            embed if isinstance(embed, Embed) else Embed(**embed)
            for embed in embeds or ()
        )

    def build_request(self, params: dict[str, Any]) -> ReadRequest:
        page_size = params.get("page_size", self.options["default_page_size"])
        order_spec = params.get("order_by") or {}
        order = OrderBy(
            column=order_spec.get("column", "created_at"),
            ascending=bool(order_spec.get("ascending", False)),
        )

        filters = self.build_filters(params.get("filters"))
        any_of = []
        search_term = params.get("search_term")
        if search_term:
            any_of = [
                Filter(column, FilterOp.ILIKE, f"%{search_term}%")
                for column in params.get("search_columns") or []
            ]

        cursor = params.get("cursor")
        if cursor is not None:
            op = FilterOp.GT if order.ascending else FilterOp.LT
            filters.append(Filter(order.column, op, cursor))
            offset = None
        else:
            offset = (params.get("page", 1) - 1) * page_size

        select = params.get("select") or ("*",)
        if isinstance(select, str):
            select = tuple(part.strip() for part in select.split(","))

        return ReadRequest(
            table=params["table"],
            select=tuple(select),
            embeds=self.build_embeds(params.get("embeds")),
            filters=filters,
            any_of=any_of,
            order=order,
            offset=offset,
            limit=page_size,
            count=True,
        )

    async def execute(
        self, params: dict[str, Any], context: dict[str, Any] | None = None
    ) -> QueryResult:
        self.validate_params(params)
        started = self._started()

        request = self.build_request(params)
        cursor = params.get("cursor")
        page = params.get("page", 1)
        page_size = request.limit or self.options["default_page_size"]

        try:
            result = await self._read(request, operation="paginate")
        except Exception as e:
            return await self.handle_error(
                e, {"operation": "paginate", "params": params, "context": context or {}}
            )

        rows = result.rows
        total_items = result.count if result.count is not None else len(rows)
        cursor_mode = cursor is not None
        order_column = request.order.column if request.order else "created_at"

        pagination = PaginationInfo(
            page=None if cursor_mode else page,
            page_size=page_size,
            total_items=total_items,
            total_pages=None if cursor_mode else math.ceil(total_items / page_size),
            has_next_page=(
                len(rows) == page_size
                if cursor_mode
                else page < math.ceil(total_items / page_size)
            ),
            has_previous_page=cursor_mode or page > 1,
            next_cursor=resolve_column(rows[-1], order_column) if rows else None,
            previous_cursor=cursor if cursor_mode else None,
        )

        return QueryResult.ok(
            rows,
            metadata={
                "table": request.table,
                "returned": len(rows),
                "mode": "cursor" if cursor_mode else "offset",
                "duration_ms": self._elapsed_ms(started),
            },
            pagination=pagination,
        )
