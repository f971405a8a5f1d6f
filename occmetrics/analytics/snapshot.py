"""Immutable metric snapshot assembled from raw rows.

Two row streams feed a snapshot:
- responses: one row per answered question, joined with ``person`` and
  ``question`` (category breakdown, daily trend, demographic segments)
- assessments: one row per completed questionnaire, joined with ``user``
  and carrying ``normalized_score`` / ``risk_percentage`` (weekly trend,
  workforce segments, risk bands, at-risk listing, indices, correlations)
"""

import copy
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

from .aggregation import aggregate_by_category, build_summary
from .indices import (
    department_safety_index,
    key_correlations,
    safety_behavior_index,
    vulnerability_index,
)
from .risk import at_risk_employees, risk_distribution
from .segmentation import demographic_segmentation, workforce_segmentation
from .statistics import group_by, person_attribute, to_float
from .trends import daily_trend, weekly_trend


@dataclass(frozen=True)
class MetricSnapshot:
    """Aggregated view of a response set. Built once, never mutated."""

    category_stats: dict[str, Any] = field(default_factory=dict)
    temporal_trend: list[dict[str, Any]] = field(default_factory=list)
    weekly_trend: list[dict[str, Any]] = field(default_factory=list)
    segmentation: dict[str, Any] = field(default_factory=dict)
    correlations: dict[str, float] = field(default_factory=dict)
    indices: dict[str, Any] = field(default_factory=dict)
    risk_distribution: dict[str, float] = field(default_factory=dict)
    at_risk: dict[str, Any] = field(default_factory=dict)
    summary: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Detached copy safe to hand out and cache."""
        return copy.deepcopy(asdict(self))


def _share(users: dict[Any, dict[str, Any]], attribute: str, relation: str) -> float:
    if not users:
        return 0
    flagged = sum(1 for row in users.values() if person_attribute(row, attribute, relation))
    return flagged / len(users) * 100


def department_indices(
    assessments: list[dict[str, Any]],
    high_risk_threshold: float = 80,
    relation: str = "user",
) -> dict[str, dict[str, Any]]:
    """Safety index per department from its assessments.

    Shares are computed over distinct users of the department; the incident
    rate is users reporting prior accidents per 100 users.
    """
    by_department = group_by(
        assessments, lambda row: person_attribute(row, "department", relation)
    )
    result: dict[str, dict[str, Any]] = {}

    for department, rows in by_department.items():
        if department in (None, ""):
            continue

        risks = [
            risk
            for risk in (to_float(row.get("risk_percentage")) for row in rows)
            if risk is not None
        ]
        high_risk = (
            sum(1 for r in risks if r >= high_risk_threshold) / len(risks) * 100
            if risks
            else 0
        )

        users: dict[Any, dict[str, Any]] = {}
        for row in rows:
            users.setdefault(row.get("user_id"), row)

        result[str(department)] = department_safety_index(
            high_risk_percentage=high_risk,
            ppe_percentage=_share(users, "uses_ppe", relation),
            training_percentage=_share(users, "safety_training", relation),
            incident_rate=_share(users, "prior_accidents", relation),
        )

    return result


def build_snapshot(
    responses: list[dict[str, Any]] | None = None,
    assessments: list[dict[str, Any]] | None = None,
    *,
    include_details: bool = False,
    high_risk_threshold: float = 80,
    generated_at: datetime | None = None,
) -> MetricSnapshot:
    """Run every aggregation over the given rows and freeze the result."""
    responses = responses or []
    assessments = assessments or []
    generated_at = generated_at or datetime.now(UTC)

    category_stats = aggregate_by_category(responses, include_details)
    scores = [row.get("normalized_score") for row in assessments]

    summary = build_summary(responses, len(category_stats), generated_at)
    summary["total_assessments"] = len(assessments)
    summary["total_users"] = len({row.get("user_id") for row in assessments})

    return MetricSnapshot(
        category_stats=category_stats,
        temporal_trend=daily_trend(responses),
        weekly_trend=weekly_trend(assessments, high_risk_threshold),
        segmentation={
            "demographic": demographic_segmentation(responses),
            "workforce": workforce_segmentation(assessments),
        },
        correlations=key_correlations(assessments),
        indices={
            "safety_behavior": safety_behavior_index(assessments),
            "vulnerability": vulnerability_index(assessments),
            "departments": department_indices(assessments, high_risk_threshold),
        },
        risk_distribution=risk_distribution(scores),
        at_risk=at_risk_employees(assessments),
        summary=summary,
    )
