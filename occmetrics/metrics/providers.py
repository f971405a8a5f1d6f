"""Metric providers: one coroutine per metric type.

Each provider reads through the query strategy factory and hands the rows to
the aggregation engine. Strategy failures come back as envelopes; providers
turn them into raised ``QueryError``s so the cached facade never stores a
failed computation.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import date
from typing import Any, ClassVar

import structlog

from occmetrics.analytics import (
    basic_stats,
    build_snapshot,
    classify_score,
    group_by,
    mean,
    monthly_change,
    risk_distribution,
    to_datetime,
    to_float,
    wellbeing_index,
)
from occmetrics.config import Settings
from occmetrics.core.errors import QueryError, ValidationError
from occmetrics.provider import Embed, Row
from occmetrics.queries import QueryRequest, QueryResult, QueryStrategyFactory

from .validation import ALL, validate_dashboard_filters


logger = structlog.get_logger(__name__)

MetricProvider = Callable[[dict[str, Any]], Awaitable[Any]]

UNSPECIFIED = "unspecified"
COMPLETED = "completed"
PENDING = "pending"
ANALYTICS_CONTROL_KEYS = frozenset({"start_date", "end_date", "include_details"})


def _unwrap(result: QueryResult) -> Any:
    if not result.success:
        raise QueryError(**(result.error or {"message": "Query failed"}))
    return result.data


def _within(rows: list[Row], key: str, start: str | None, end: str | None) -> list[Row]:
    """Rows whose ``key`` date falls in ``[start, end]``; both ends inclusive."""
    if not start and not end:
        return rows
    first = date.fromisoformat(start) if start else None
    last = date.fromisoformat(end) if end else None

    kept = []
    for row in rows:
        moment = to_datetime(row.get(key))
        if moment is None:
            continue
        day = moment.date()
        if (first is None or day >= first) and (last is None or day <= last):
            kept.append(row)
    return kept


def _page_params(filters: dict[str, Any]) -> dict[str, Any]:
    params = {}
    for key in ("page", "page_size"):
        value = filters.get(key)
        if value is None:
            continue
        try:
            params[key] = int(value)
        except (TypeError, ValueError) as e:
            msg = f"{key} must be an integer"
            raise ValidationError(msg, {key: value}) from e
    return params


def _completion_by_user(assessments: list[Row]) -> dict[Any, list[Row]]:
    return group_by(assessments, "user_id")


def _last_answered(rows: list[Row]) -> str | None:
    moments = [m for m in (to_datetime(r.get("answered_at")) for r in rows) if m]
    return max(moments).isoformat() if moments else None


def _segment_stats(
    users: list[Row], completed_ids: set[Any], attribute: str
) -> dict[str, dict[str, Any]]:
    stats = {}
    for segment, members in group_by(
        users, lambda user: user.get(attribute) or UNSPECIFIED
    ).items():
        completed = sum(1 for user in members if user.get("id") in completed_ids)
        stats[segment] = {
            "total": len(members),
            "completed": completed,
            "pending": len(members) - completed,
            "completion_rate": round(completed / len(members) * 100, 1),
        }
    return stats


class MetricProviders:
    """Computes each metric type from fresh reads."""

    RESPONSES_TABLE: ClassVar[str] = "responses"
    ASSESSMENTS_TABLE: ClassVar[str] = "assessments"
    USERS_TABLE: ClassVar[str] = "users"

    USER_EMBED: ClassVar[Embed] = Embed(name="user", table="users", local_key="user_id")
    PERSON_EMBED: ClassVar[Embed] = Embed(
        name="person", table="persons", local_key="person_id", inner=True
    )
    QUESTION_EMBED: ClassVar[Embed] = Embed(
        name="question", table="questions", local_key="question_id", inner=True
    )

    def __init__(
        self, factory: QueryStrategyFactory, settings: Settings | None = None
    ) -> None:
        self.factory = factory
        self.settings = settings or factory.settings

    def as_mapping(self) -> dict[str, MetricProvider]:
        """Metric type to provider coroutine."""
        return {
            "home": self.home,
            "dashboard": self.dashboard,
            "questionnaires": self.questionnaires,
            "responses": self.responses,
            "users": self.users,
            "analytics": self.analytics,
        }

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def _batch(
        self, queries: list[dict[str, Any]], operation: str
    ) -> list[list[Row]]:
        """Run ``queries`` as one batch; any failed item fails the metric."""
        result = await self.factory.execute(
            QueryRequest(
                type="batch",
                params={"queries": queries},
                context={"operation": operation},
            )
        )
        items = _unwrap(result)

        rows = []
        for item in items:
            if not item.success:
                logger.warning(
                    "metric_batch_item_failed",
                    operation=operation,
                    index=item.index,
                    table=queries[item.index]["table"],
                )
                raise QueryError(**item.error)
            rows.append(item.data["rows"])
        return rows

    async def _page(self, params: dict[str, Any], operation: str) -> QueryResult:
        result = await self.factory.execute(
            QueryRequest(type="paginated", params=params, context={"operation": operation})
        )
        _unwrap(result)
        return result

    # ==========================================================================
    # Metric types
    # ==========================================================================

    async def home(self, filters: dict[str, Any]) -> dict[str, Any]:
        """Landing page figures: wellbeing, completion and monthly trend."""
        responses, assessments, users = await self._batch(
            [
                {
                    "table": self.RESPONSES_TABLE,
                    "select": ("person_id", "value", "created_at"),
                },
                {"table": self.ASSESSMENTS_TABLE, "select": ("user_id",)},
                {"table": self.USERS_TABLE, "select": ("id",)},
            ],
            operation="home",
        )

        wellbeing = wellbeing_index(responses)
        trend = monthly_change(responses)
        return {
            "evaluations_completed": len({row.get("user_id") for row in assessments}),
            "active_users": len(users),
            "wellbeing_index": wellbeing["wellbeing_index"],
            "mean_health": wellbeing["mean_health"],
            "monthly_trend": trend["formatted"],
            "monthly_change": trend,
            "total_responses": len(responses),
        }

    async def dashboard(self, filters: dict[str, Any]) -> dict[str, Any]:
        """Full metric snapshot over the filtered population."""
        validated = validate_dashboard_filters(filters)

        assessment_filters = {
            f"user.{field}": validated[field]
            for field in ("department", "shift", "gender")
            if validated.get(field, ALL) != ALL
        }
        response_filters = {}
        if validated.get("gender", ALL) != ALL:
            response_filters["person.gender"] = validated["gender"]

        responses, assessments = await self._batch(
            [
                {
                    "table": self.RESPONSES_TABLE,
                    "embeds": [self.PERSON_EMBED, self.QUESTION_EMBED],
                    "filters": response_filters,
                },
                {
                    "table": self.ASSESSMENTS_TABLE,
                    "embeds": [self.USER_EMBED],
                    "filters": assessment_filters,
                    "order_by": {"column": "answered_at", "ascending": True},
                },
            ],
            operation="dashboard",
        )

        start, end = validated.get("start_date"), validated.get("end_date")
        snapshot = build_snapshot(
            _within(responses, "created_at", start, end),
            _within(assessments, "answered_at", start, end),
            high_risk_threshold=self.settings.high_risk_threshold,
        )
        return {**snapshot.to_dict(), "filters": validated}

    async def questionnaires(self, filters: dict[str, Any]) -> dict[str, Any]:
        """Per-user questionnaire status for one page plus overall totals."""
        page, (users, assessments) = await asyncio.gather(
            self._page(
                {
                    "table": self.USERS_TABLE,
                    "select": ("id", "name", "department", "shift", "created_at"),
                    **_page_params(filters),
                },
                operation="questionnaires",
            ),
            self._batch(
                [
                    {"table": self.USERS_TABLE, "select": ("id",)},
                    {
                        "table": self.ASSESSMENTS_TABLE,
                        "select": ("user_id", "normalized_score", "answered_at"),
                    },
                ],
                operation="questionnaires",
            ),
        )

        by_user = _completion_by_user(assessments)
        questionnaires = []
        for user in page.data:
            taken = by_user.get(user.get("id"), [])
            scores = [
                s
                for s in (to_float(r.get("normalized_score")) for r in taken)
                if s is not None
            ]
            mean_score = round(mean(scores), 2)
            questionnaires.append(
                {
                    "id": user.get("id"),
                    "name": user.get("name"),
                    "department": user.get("department") or UNSPECIFIED,
                    "shift": user.get("shift") or UNSPECIFIED,
                    "status": COMPLETED if taken else PENDING,
                    "created_at": user.get("created_at"),
                    "completed_at": _last_answered(taken),
                    "mean_score": mean_score,
                    "risk_band": classify_score(mean_score).value if taken else None,
                    "total_assessments": len(taken),
                }
            )

        user_ids = {user.get("id") for user in users}
        completed = len(user_ids & set(by_user))
        completed_means = [
            q["mean_score"] for q in questionnaires if q["status"] == COMPLETED
        ]
        return {
            "questionnaires": questionnaires,
            "total_questionnaires": len(user_ids),
            "completed": completed,
            "pending": len(user_ids) - completed,
            "mean_score": round(mean(completed_means), 2),
            "pagination": page.to_dict()["pagination"],
        }

    async def responses(self, filters: dict[str, Any]) -> dict[str, Any]:
        """Latest assessments page, risk distribution and per-question stats."""
        page, (assessments, answers) = await asyncio.gather(
            self._page(
                {
                    "table": self.ASSESSMENTS_TABLE,
                    "embeds": [self.USER_EMBED],
                    "order_by": {"column": "answered_at", "ascending": False},
                    **_page_params(filters),
                },
                operation="responses",
            ),
            self._batch(
                [
                    {"table": self.ASSESSMENTS_TABLE, "select": ("normalized_score",)},
                    {"table": self.RESPONSES_TABLE, "select": ("question_id", "value")},
                ],
                operation="responses",
            ),
        )

        details = []
        for row in page.data:
            user = row.get("user") or {}
            score = to_float(row.get("normalized_score"))
            details.append(
                {
                    "id": row.get("id"),
                    "user": {
                        "name": user.get("name"),
                        "department": user.get("department") or UNSPECIFIED,
                        "shift": user.get("shift") or UNSPECIFIED,
                    },
                    "normalized_score": score,
                    "risk_percentage": to_float(row.get("risk_percentage")),
                    "risk_band": classify_score(score).value if score is not None else None,
                    "answered_at": row.get("answered_at"),
                }
            )

        scores = [row.get("normalized_score") for row in assessments]
        per_question = {
            question_id: basic_stats(to_float(row.get("value")) for row in rows)
            for question_id, rows in group_by(answers, "question_id").items()
        }
        numeric_scores = [s for s in (to_float(v) for v in scores) if s is not None]
        return {
            "responses": details,
            "total_responses": page.pagination.total_items,
            "risk_distribution": risk_distribution(scores),
            "question_stats": per_question,
            "mean_score": round(mean(numeric_scores), 2),
            "pagination": page.to_dict()["pagination"],
        }

    async def users(self, filters: dict[str, Any]) -> dict[str, Any]:
        """User listing page with completion status and segment totals."""
        page, (users, assessments) = await asyncio.gather(
            self._page(
                {"table": self.USERS_TABLE, **_page_params(filters)},
                operation="users",
            ),
            self._batch(
                [
                    {
                        "table": self.USERS_TABLE,
                        "select": ("id", "department", "shift", "gender"),
                    },
                    {
                        "table": self.ASSESSMENTS_TABLE,
                        "select": ("user_id", "answered_at"),
                    },
                ],
                operation="users",
            ),
        )

        by_user = _completion_by_user(assessments)
        listed = []
        for user in page.data:
            taken = by_user.get(user.get("id"), [])
            listed.append(
                {
                    **user,
                    "department": user.get("department") or UNSPECIFIED,
                    "shift": user.get("shift") or UNSPECIFIED,
                    "gender": user.get("gender") or UNSPECIFIED,
                    "assessment_status": COMPLETED if taken else PENDING,
                    "total_assessments": len(taken),
                    "last_assessment": _last_answered(taken),
                }
            )

        completed_ids = {user.get("id") for user in users} & set(by_user)
        return {
            "users": listed,
            "total_users": len(users),
            "active_users": len(completed_ids),
            "pending_users": len(users) - len(completed_ids),
            "by_department": _segment_stats(users, completed_ids, "department"),
            "by_shift": _segment_stats(users, completed_ids, "shift"),
            "by_gender": _segment_stats(users, completed_ids, "gender"),
            "pagination": page.to_dict()["pagination"],
        }

    async def analytics(self, filters: dict[str, Any]) -> dict[str, Any]:
        """Analytics strategy output, with its execution metadata."""
        params: dict[str, Any] = {
            "filters": {k: v for k, v in filters.items() if k not in ANALYTICS_CONTROL_KEYS},
            "include_details": str(filters.get("include_details")).lower()
            in {"1", "true", "yes"},
        }
        if filters.get("start_date") or filters.get("end_date"):
            params["date_range"] = {
                "start": filters.get("start_date"),
                "end": filters.get("end_date"),
            }

        result = await self.factory.execute(
            QueryRequest(
                type="analytics", params=params, context={"operation": "analytics"}
            )
        )
        data = _unwrap(result)
        return {**data, "metadata": result.metadata}
