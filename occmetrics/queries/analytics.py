"""Aggregation strategy over joined survey responses."""

from datetime import UTC, datetime
from typing import Any, ClassVar

import structlog

from occmetrics.analytics import (
    aggregate_by_category,
    build_summary,
    daily_trend,
    demographic_segmentation,
    to_datetime,
)
from occmetrics.config import Settings
from occmetrics.core.errors import ValidationError
from occmetrics.provider import Embed, Filter, FilterOp, ReadRequest, Row

from .base import BaseQueryStrategy
from .models import QueryResult


logger = structlog.get_logger(__name__)


class AnalyticsStrategy(BaseQueryStrategy):
    """Reads responses joined with person and question attributes and
    aggregates them into category stats, a daily trend and demographic
    segments.

    Params:
        date_range: Optional ``{"start": ..., "end": ...}``, both required
        filters: Optional equality filters on person attributes (age, gender,
            education_level, driving_experience) and question attributes
            (category, subcategory)
        include_details: Keep raw answer lists in category stats
    """

    strategy_type = "analytics"

    RESPONSES_TABLE: ClassVar[str] = "responses"
    PERSON_COLUMNS: ClassVar[tuple[str, ...]] = (
        "id",
        "age",
        "gender",
        "education_level",
        "driving_experience",
    )
    QUESTION_COLUMNS: ClassVar[tuple[str, ...]] = ("id", "category", "subcategory", "text")
    FILTER_COLUMNS: ClassVar[dict[str, str]] = {
        "age": "person.age",
        "gender": "person.gender",
        "education_level": "person.education_level",
        "driving_experience": "person.driving_experience",
        "category": "question.category",
        "subcategory": "question.subcategory",
    }

    @classmethod
    def default_options(cls, settings: Settings) -> dict[str, Any]:
        return {"timeout": settings.analytics_timeout_seconds, "cache_ttl": 600}

    def validate_params(self, params: dict[str, Any]) -> bool:
        super().validate_params(params)

        date_range = params.get("date_range")
        if date_range is None:
            return True

        if (
            not isinstance(date_range, dict)
            or not date_range.get("start")
            or not date_range.get("end")
        ):
            msg = "Date range must include both start and end dates"
            raise ValidationError(msg, {"date_range": date_range})

        start = to_datetime(date_range["start"])
        end = to_datetime(date_range["end"])
        if start is None or end is None:
            msg = "Date range bounds must be valid dates"
            raise ValidationError(msg, {"date_range": date_range})
        if start > end:
            msg = "Invalid date range: start date must be before end date"
            raise ValidationError(msg, {"date_range": date_range})

        return True

    def build_request(self, params: dict[str, Any]) -> ReadRequest:
        filters: list[Filter] = []

        date_range = params.get("date_range")
        if date_range:
            filters.append(
                Filter("created_at", FilterOp.GTE, to_datetime(date_range["start"]))
            )
            filters.append(
                Filter("created_at", FilterOp.LTE, to_datetime(date_range["end"]))
            )

        for key, value in (params.get("filters") or {}).items():
            column = self.FILTER_COLUMNS.get(key)
            if column and value not in (None, ""):
                filters.append(Filter.eq(column, value))

        return ReadRequest(
            table=self.RESPONSES_TABLE,
            select=("id", "person_id", "question_id", "value", "created_at"),
            embeds=(
                Embed(
                    "person",
                    "persons",
                    "person_id",
                    columns=self.PERSON_COLUMNS,
                    inner=True,
                ),
                Embed(
                    "question",
                    "questions",
                    "question_id",
                    columns=self.QUESTION_COLUMNS,
                    inner=True,
                ),
            ),
            filters=filters,
        )

    @staticmethod
    def process(rows: list[Row], include_details: bool = False) -> dict[str, Any]:
        """Aggregate joined response rows."""
        category_stats = aggregate_by_category(rows, include_details)
        return {
            "category_stats": category_stats,
            "temporal_trend": daily_trend(rows),
            "segmentation": demographic_segmentation(rows),
            "summary": build_summary(rows, len(category_stats)),
        }

    async def execute(
        self, params: dict[str, Any], context: dict[str, Any] | None = None
    ) -> QueryResult:
        self.validate_params(params)
        started = self._started()

        try:
            result = await self._read(self.build_request(params), operation="analytics")
            analytics = self.process(result.rows, bool(params.get("include_details")))
        except Exception as e:
            return await self.handle_error(
                e, {"operation": "analytics", "params": params, "context": context or {}}
            )

        logger.info(
            "analytics_query_completed",
            records=len(result.rows),
            categories=len(analytics["category_stats"]),
        )
        return QueryResult.ok(
            analytics,
            metadata={
                "total_records": len(result.rows),
                "query_time": datetime.now(UTC).isoformat(),
                "duration_ms": self._elapsed_ms(started),
                "filters": params.get("filters") or {},
                "date_range": params.get("date_range"),
            },
        )
