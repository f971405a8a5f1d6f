"""Batched reads, concurrent or sequential, with per-item failure isolation."""

import asyncio
from typing import Any

import structlog

from occmetrics.config import Settings
from occmetrics.core.errors import QueryError, ValidationError, wrap_provider_error
from occmetrics.provider import OrderBy, ReadRequest

from .base import BaseQueryStrategy
from .models import BatchItemResult, QueryResult
from .paginated import PaginatedStrategy


logger = structlog.get_logger(__name__)


class BatchStrategy(BaseQueryStrategy):
    """Runs up to ``max_batch_size`` sub-queries.

    Params:
        queries: Sub-queries, each ``{"table", "select"?, "filters"?,
            "order_by"?, "limit"?, "embeds"?}``; filters follow the
            paginated strategy's filter shapes
        parallel: Issue every sub-query at once (default) or await them in
            order

    The envelope's ``data`` holds one ``BatchItemResult`` per input index;
    a failing sub-query never fails the batch.
    """

    strategy_type = "batch"

    @classmethod
    def default_options(cls, settings: Settings) -> dict[str, Any]:
        return {"max_batch_size": settings.batch_max_size}

    def validate_params(self, params: dict[str, Any]) -> bool:
        super().validate_params(params)

        queries = params.get("queries")
        if not isinstance(queries, list) or not queries:
            msg = "Queries array is required and must not be empty"
            raise ValidationError(msg)

        max_size = self.options["max_batch_size"]
        if len(queries) > max_size:
            msg = f"Batch size cannot exceed {max_size}"
            raise ValidationError(msg, {"size": len(queries), "max": max_size})

        for index, query in enumerate(queries):
            if not isinstance(query, dict) or not query.get("table"):
                msg = "Each batch query must name a table"
                raise ValidationError(msg, {"index": index})

        return True

    @staticmethod
    def build_request(query: dict[str, Any]) -> ReadRequest:
        order = None
        if query.get("order_by"):
            order = OrderBy(
                column=query["order_by"]["column"],
                ascending=bool(query["order_by"].get("ascending", False)),
            )

        select = query.get("select") or ("*",)
        if isinstance(select, str):
            select = tuple(part.strip() for part in select.split(","))

        return ReadRequest(
            table=query["table"],
            select=tuple(select),
            embeds=PaginatedStrategy.build_embeds(query.get("embeds")),
            filters=PaginatedStrategy.build_filters(query.get("filters")),
            order=order,
            limit=query.get("limit"),
        )

    async def _run_item(self, index: int, query: dict[str, Any]) -> BatchItemResult:
        try:
            result = await self._read(self.build_request(query), operation="batch_item")
        except Exception as e:
            error = (
                e
                if isinstance(e, QueryError)
                else wrap_provider_error(e, strategy=self.name, operation="batch_item")
            )
            logger.warning(
                "batch_item_failed",
                index=index,
                table=query.get("table"),
                code=error.code,
                error=error.message,
            )
            return BatchItemResult(index=index, success=False, error=error.to_dict())

        return BatchItemResult(
            index=index,
            success=True,
            data={"rows": result.rows, "count": result.count},
        )

    async def execute(
        self, params: dict[str, Any], context: dict[str, Any] | None = None
    ) -> QueryResult:
        self.validate_params(params)
        started = self._started()

        queries: list[dict[str, Any]] = params["queries"]
        parallel = params.get("parallel", True)

        if parallel:
            results = list(
                await asyncio.gather(
                    *(self._run_item(index, query) for index, query in enumerate(queries))
                )
            )
        else:
            results = []
            for index, query in enumerate(queries):
                results.append(await self._run_item(index, query))

        successful = sum(1 for item in results if item.success)
        duration_ms = self._elapsed_ms(started)
        logger.info(
            "batch_query_completed",
            total=len(results),
            successful=successful,
            failed=len(results) - successful,
            parallel=parallel,
            duration_ms=duration_ms,
        )
        return QueryResult.ok(
            results,
            metadata={
                "total_queries": len(results),
                "successful": successful,
                "failed": len(results) - successful,
                "parallel": parallel,
                "duration_ms": duration_ms,
            },
        )
