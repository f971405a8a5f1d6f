"""Temporal trends: daily buckets, ISO-8601 weeks and month-over-month volume.

ISO weeks start on Monday and week 1 is the week holding the year's first
Thursday; labels use the ISO year, so 2024-12-30 belongs to ``2025-W01``.
"""

from datetime import UTC, date, datetime, timedelta
from typing import Any

from .statistics import person_attribute, to_float


MONTHLY_TREND_THRESHOLD = 5.0


def to_datetime(value: Any) -> datetime | None:
    """Parse a timestamp cell into an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def daily_trend(
    rows: list[dict[str, Any]], date_key: str = "created_at"
) -> list[dict[str, Any]]:
    """Responses per calendar day (UTC) with per-category counts, ascending."""
    days: dict[str, dict[str, Any]] = {}

    for row in rows:
        moment = to_datetime(row.get(date_key))
        if moment is None:
            continue
        day = moment.date().isoformat()
        bucket = days.setdefault(day, {"total": 0, "categories": {}})
        bucket["total"] += 1

        category = person_attribute(row, "category", "question")
        bucket["categories"][category] = bucket["categories"].get(category, 0) + 1

    return [{"date": day, **days[day]} for day in sorted(days)]


def iso_week(moment: date) -> tuple[str, date, date]:
    """ISO week label plus its Monday and Sunday."""
    day = moment.date() if isinstance(moment, datetime) else moment
    iso_year, week, weekday = day.isocalendar()
    start = day - timedelta(days=weekday - 1)
    return f"{iso_year}-W{week:02d}", start, start + timedelta(days=6)


def weekly_trend(
    rows: list[dict[str, Any]],
    high_risk_threshold: float = 80,
    date_key: str = "answered_at",
    score_key: str = "normalized_score",
    risk_key: str = "risk_percentage",
) -> list[dict[str, Any]]:
    """Weekly score/risk evolution.

    Rows lacking a timestamp, score or risk percentage are skipped. Each week
    reports the mean score, mean risk percentage and the share of rows whose
    risk is at or above ``high_risk_threshold``.
    """
    weeks: dict[str, dict[str, Any]] = {}

    for row in rows:
        moment = to_datetime(row.get(date_key))
        score = to_float(row.get(score_key))
        risk = to_float(row.get(risk_key))
        if moment is None or score is None or risk is None:
            continue

        label, start, end = iso_week(moment)
        bucket = weeks.setdefault(
            label,
            {
                "week": label,
                "week_start": start.isoformat(),
                "week_end": end.isoformat(),
                "score_total": 0.0,
                "risk_total": 0.0,
                "high_risk": 0,
                "count": 0,
            },
        )
        bucket["score_total"] += score
        bucket["risk_total"] += risk
        bucket["count"] += 1
        if risk >= high_risk_threshold:
            bucket["high_risk"] += 1

    trend = [
        {
            "week": bucket["week"],
            "week_start": bucket["week_start"],
            "week_end": bucket["week_end"],
            "mean_score": round(bucket["score_total"] / bucket["count"], 2),
            "mean_risk": round(bucket["risk_total"] / bucket["count"], 2),
            "high_risk_percentage": round(bucket["high_risk"] / bucket["count"] * 100, 2),
            "total_responses": bucket["count"],
        }
        for bucket in weeks.values()
    ]
    return sorted(trend, key=lambda item: item["week_start"])


def _month_start(day: date, months_back: int = 0) -> datetime:
    month_index = day.year * 12 + (day.month - 1) - months_back
    return datetime(month_index // 12, month_index % 12 + 1, 1, tzinfo=UTC)


def monthly_change(
    rows: list[dict[str, Any]],
    today: date | None = None,
    date_key: str = "created_at",
) -> dict[str, Any]:
    """Current versus previous calendar month response volume.

    A change above +5 % is ``growing``, below -5 % ``declining``, otherwise
    ``stable``. With no rows last month any activity this month counts as
    +100 %.
    """
    today = today or datetime.now(UTC).date()
    current_start = _month_start(today)
    previous_start = _month_start(today, months_back=1)

    current = previous = 0
    for row in rows:
        moment = to_datetime(row.get(date_key))
        if moment is None:
            continue
        if moment >= current_start:
            current += 1
        elif moment >= previous_start:
            previous += 1

    if previous > 0:
        change = (current - previous) / previous * 100
    else:
        change = 100.0 if current > 0 else 0.0

    if change > MONTHLY_TREND_THRESHOLD:
        direction = "growing"
    elif change < -MONTHLY_TREND_THRESHOLD:
        direction = "declining"
    else:
        direction = "stable"

    return {
        "current_month": current,
        "previous_month": previous,
        "change": round(change, 1),
        "direction": direction,
        "formatted": f"{'+' if change >= 0 else ''}{round(change)}%",
    }
