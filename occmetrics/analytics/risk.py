"""Risk band classification.

Three scales are in use:
- GHQ-12 score bands (per response): low <= 1, moderate <= 3, high <= 6,
  very high above
- risk percentage levels: thresholds at 20/40/60/80, also used to list
  employees by the risk of their latest assessment
- department safety categories derived from the composite safety index
"""

import math
from collections.abc import Iterable
from datetime import datetime
from enum import Enum
from typing import Any

from .statistics import distribution, person_attribute, to_float
from .trends import to_datetime


class RiskBand(str, Enum):
    """GHQ-12 score bands."""

    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    VERY_HIGH = "very_high"


class RiskLevel(str, Enum):
    """Risk percentage levels."""

    VERY_LOW = "very_low"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    VERY_HIGH = "very_high"


class SafetyCategory(str, Enum):
    """Department safety risk categories."""

    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"


SCORE_BAND_LIMITS: tuple[tuple[float, RiskBand], ...] = (
    (1, RiskBand.LOW),
    (3, RiskBand.MODERATE),
    (6, RiskBand.HIGH),
)

PERCENTAGE_LEVEL_FLOORS: tuple[tuple[float, RiskLevel], ...] = (
    (80, RiskLevel.VERY_HIGH),
    (60, RiskLevel.HIGH),
    (40, RiskLevel.MODERATE),
    (20, RiskLevel.LOW),
)

SAFETY_CATEGORY_FLOORS: tuple[tuple[float, SafetyCategory], ...] = (
    (85, SafetyCategory.LOW),
    (70, SafetyCategory.MODERATE),
    (55, SafetyCategory.HIGH),
)

SAFETY_ACTIONS = {
    SafetyCategory.LOW: "Maintain current standards",
    SafetyCategory.MODERATE: "Implement targeted improvements",
    SafetyCategory.HIGH: "Urgent action plan",
    SafetyCategory.CRITICAL: "Immediate intervention required",
}


def classify_score(score: float) -> RiskBand:
    """GHQ-12 band for a single score."""
    for limit, band in SCORE_BAND_LIMITS:
        if score <= limit:
            return band
    return RiskBand.VERY_HIGH


def classify_percentage(percentage: float) -> RiskLevel:
    """Risk level for a 0-100 risk percentage."""
    for floor, level in PERCENTAGE_LEVEL_FLOORS:
        if percentage >= floor:
            return level
    return RiskLevel.VERY_LOW


def classify_safety_score(score: float) -> SafetyCategory:
    """Department safety category for a composite safety index."""
    for floor, category in SAFETY_CATEGORY_FLOORS:
        if score >= floor:
            return category
    return SafetyCategory.CRITICAL


def risk_distribution(scores: Iterable[object]) -> dict[str, float]:
    """Percentage of scores per GHQ-12 band, one decimal.

    Rounding uses the largest-remainder method on tenths of a percent, so
    the bands add up to exactly 100 whenever at least one score is given.
    Non-numeric scores are ignored.
    """
    counts = dict.fromkeys(RiskBand, 0)
    for raw in scores:
        score = to_float(raw)
        if score is not None:
            counts[classify_score(score)] += 1

    total = sum(counts.values())
    if total == 0:
        return {band.value: 0.0 for band in RiskBand}

    exact = {band: counts[band] * 1000 / total for band in RiskBand}
    tenths = {band: math.floor(value) for band, value in exact.items()}
    leftover = 1000 - sum(tenths.values())
    by_remainder = sorted(
        RiskBand, key=lambda band: exact[band] - tenths[band], reverse=True
    )
    for band in by_remainder[:leftover]:
        tenths[band] += 1

    return {band.value: tenths[band] / 10 for band in RiskBand}


# Levels the at-risk listing buckets into; everything under 40 % is "low"
AT_RISK_LEVELS: tuple[RiskLevel, ...] = (
    RiskLevel.VERY_HIGH,
    RiskLevel.HIGH,
    RiskLevel.MODERATE,
    RiskLevel.LOW,
)


def assessment_risk_percentage(row: dict[str, Any]) -> float:
    """Stored risk percentage, or one estimated from the normalized score."""
    percentage = to_float(row.get("risk_percentage"))
    if percentage is not None:
        return percentage
    score = to_float(row.get("normalized_score")) or 0
    return min(100.0, max(0.0, score / 3 * 100))


def at_risk_employees(
    assessments: Iterable[dict[str, Any]],
    relation: str = "user",
    date_key: str = "answered_at",
) -> dict[str, Any]:
    """Employees bucketed by the risk level of their latest assessment.

    Each bucket is sorted by risk percentage, highest first; ``counts``
    holds the share of employees per bucket.
    """
    latest: dict[Any, dict[str, Any]] = {}
    latest_at: dict[Any, datetime | None] = {}
    for row in assessments:
        user_id = row.get("user_id")
        if user_id is None:
            continue
        moment = to_datetime(row.get(date_key))
        if user_id not in latest:
            latest[user_id], latest_at[user_id] = row, moment
            continue
        seen = latest_at[user_id]
        if moment is not None and (seen is None or moment > seen):
            latest[user_id], latest_at[user_id] = row, moment

    buckets: dict[str, list[dict[str, Any]]] = {
        level.value: [] for level in AT_RISK_LEVELS
    }
    for user_id, row in latest.items():
        percentage = assessment_risk_percentage(row)
        level = classify_percentage(percentage)
        if level is RiskLevel.VERY_LOW:
            level = RiskLevel.LOW
        buckets[level.value].append(
            {
                "id": user_id,
                "name": person_attribute(row, "name", relation),
                "position": person_attribute(row, "position", relation),
                "department": person_attribute(row, "department", relation),
                "risk_percentage": round(percentage, 1),
                "normalized_score": round(to_float(row.get("normalized_score")) or 0, 2),
                "answered_at": row.get(date_key),
            }
        )

    for employees in buckets.values():
        employees.sort(key=lambda item: item["risk_percentage"], reverse=True)

    return {"employees": buckets, "counts": distribution(buckets)}
