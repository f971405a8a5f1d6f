"""Tests for trends and risk bands.

Tests cover:
- ISO week labelling across the year boundary
- Weekly and daily trends
- Monthly change direction
- Risk band classification and distribution rounding
- At-risk employee listing
"""

from datetime import UTC, date, datetime

import pytest

from occmetrics.analytics import (
    RiskBand,
    RiskLevel,
    SafetyCategory,
    assessment_risk_percentage,
    at_risk_employees,
    classify_percentage,
    classify_safety_score,
    classify_score,
    daily_trend,
    iso_week,
    monthly_change,
    risk_distribution,
    to_datetime,
    weekly_trend,
)


# ==============================================================================
# Timestamps and weeks
# ==============================================================================


class TestWeeks:
    """Tests for to_datetime, iso_week and weekly_trend."""

    def test_to_datetime_normalises_to_utc(self):
        """Test strings, dates and naive datetimes become aware UTC datetimes."""
        assert to_datetime("2025-01-02T10:00:00Z") == datetime(2025, 1, 2, 10, tzinfo=UTC)
        assert to_datetime(date(2025, 1, 2)) == datetime(2025, 1, 2, tzinfo=UTC)
        assert to_datetime(datetime(2025, 1, 2)).tzinfo is UTC
        assert to_datetime("not a date") is None
        assert to_datetime(None) is None

    def test_iso_week_uses_iso_year(self):
        """Test 2024-12-30 belongs to the first ISO week of 2025."""
        label, start, end = iso_week(date(2024, 12, 30))

        assert label == "2025-W01"
        assert start == date(2024, 12, 30)
        assert end == date(2025, 1, 5)

    def test_weekly_trend_groups_by_iso_week(self, joined_assessments):
        """Test assessments bucket into weeks with means and high-risk share."""
        trend = weekly_trend(joined_assessments, high_risk_threshold=80)

        assert [week["week"] for week in trend] == ["2025-W10", "2025-W11"]
        first = trend[0]
        assert first["total_responses"] == 2
        assert first["mean_score"] == 4.5
        assert first["mean_risk"] == 47.5
        assert first["high_risk_percentage"] == 50.0
        assert first["week_start"] == "2025-03-03"
        assert first["week_end"] == "2025-03-09"

    def test_weekly_trend_skips_incomplete_rows(self):
        """Test rows missing a timestamp, score or risk are ignored."""
        rows = [
            {"answered_at": "2025-01-01", "normalized_score": 2},
            {"answered_at": None, "normalized_score": 2, "risk_percentage": 5},
        ]
        assert weekly_trend(rows) == []

    def test_daily_trend(self, joined_responses):
        """Test answers per day with per-category counts, ascending."""
        trend = daily_trend(joined_responses)

        assert [day["date"] for day in trend] == ["2025-03-11", "2025-03-13"]
        assert trend[0]["total"] == 3
        assert trend[0]["categories"] == {"health": 2, "safety": 1}


# ==============================================================================
# Monthly change
# ==============================================================================


class TestMonthlyChange:
    """Tests for monthly_change."""

    @staticmethod
    def _rows(*days: str) -> list[dict]:
        return [{"created_at": f"{day}T09:00:00Z"} for day in days]

    def test_growing(self):
        """Test a 50% increase over last month is growing."""
        rows = self._rows("2025-03-01", "2025-03-02", "2025-03-10", "2025-02-05", "2025-02-20")

        result = monthly_change(rows, today=date(2025, 3, 14))

        assert result["current_month"] == 3
        assert result["previous_month"] == 2
        assert result["change"] == 50.0
        assert result["direction"] == "growing"
        assert result["formatted"] == "+50%"

    def test_declining(self):
        """Test a drop beyond 5% is declining."""
        rows = self._rows("2025-03-01", "2025-02-01", "2025-02-02")

        result = monthly_change(rows, today=date(2025, 3, 14))

        assert result["direction"] == "declining"
        assert result["formatted"] == "-50%"

    def test_no_previous_month(self):
        """Test activity with an empty previous month counts as +100%."""
        result = monthly_change(self._rows("2025-01-10"), today=date(2025, 1, 20))
        assert result["change"] == 100.0

    def test_empty_is_stable(self):
        """Test no rows at all is a stable 0%."""
        result = monthly_change([], today=date(2025, 1, 20))
        assert result["direction"] == "stable"
        assert result["formatted"] == "+0%"

    def test_january_compares_with_december(self):
        """Test the previous month wraps across the year boundary."""
        rows = self._rows("2025-01-03", "2024-12-15")
        result = monthly_change(rows, today=date(2025, 1, 20))
        assert result["previous_month"] == 1
        assert result["direction"] == "stable"


# ==============================================================================
# Risk bands
# ==============================================================================


class TestRiskBands:
    """Tests for classification and risk_distribution."""

    @pytest.mark.parametrize(
        ("score", "band"),
        [
            (0, RiskBand.LOW),
            (1, RiskBand.LOW),
            (2, RiskBand.MODERATE),
            (3, RiskBand.MODERATE),
            (4, RiskBand.HIGH),
            (6, RiskBand.HIGH),
            (7, RiskBand.VERY_HIGH),
            (12, RiskBand.VERY_HIGH),
        ],
    )
    def test_classify_score(self, score, band):
        """Test GHQ-12 band limits are inclusive."""
        assert classify_score(score) is band

    def test_classify_percentage_and_safety(self):
        """Test risk level floors and safety categories."""
        assert classify_percentage(85) is RiskLevel.VERY_HIGH
        assert classify_percentage(40) is RiskLevel.MODERATE
        assert classify_percentage(5) is RiskLevel.VERY_LOW
        assert classify_safety_score(90) is SafetyCategory.LOW
        assert classify_safety_score(10) is SafetyCategory.CRITICAL

    def test_distribution_sums_to_100(self):
        """Test every band gets its share and the shares add up to 100."""
        result = risk_distribution([0, 1, 2, 3, 4, 6, 7, 10])

        assert result == {"low": 25.0, "moderate": 25.0, "high": 25.0, "very_high": 25.0}
        assert sum(result.values()) == pytest.approx(100)

    def test_distribution_largest_remainder(self):
        """Test thirds round so the total is still exactly 100."""
        result = risk_distribution([1, 5, 8])

        assert result == {"low": 33.4, "moderate": 0.0, "high": 33.3, "very_high": 33.3}
        assert round(sum(result.values()), 6) == 100

    def test_distribution_of_nothing(self):
        """Test empty and non-numeric input gives all zeros."""
        expected = {"low": 0.0, "moderate": 0.0, "high": 0.0, "very_high": 0.0}
        assert risk_distribution([]) == expected
        assert risk_distribution(["n/a", None]) == expected


# ==============================================================================
# At-risk employees
# ==============================================================================


class TestAtRiskEmployees:
    """Tests for at_risk_employees."""

    def test_latest_assessment_per_user(self, joined_assessments):
        """Test each user is listed once, by their most recent assessment."""
        result = at_risk_employees(joined_assessments)
        employees = result["employees"]

        assert set(employees) == {"very_high", "high", "moderate", "low"}
        assert employees["very_high"] == []
        assert employees["high"] == []
        assert [item["id"] for item in employees["moderate"]] == ["u2"]
        assert employees["moderate"][0]["risk_percentage"] == 55.0
        assert employees["moderate"][0]["name"] == "Luis"
        assert [item["id"] for item in employees["low"]] == ["u1"]
        assert employees["low"][0]["department"] == "production"

        assert result["counts"]["moderate"] == {"count": 1, "percentage": 50.0}
        assert result["counts"]["very_high"] == {"count": 0, "percentage": 0.0}

    def test_buckets_sorted_highest_first(self):
        """Test thresholds at 80/60/40 and descending order inside a bucket."""
        rows = [
            {"user_id": "a", "risk_percentage": 81},
            {"user_id": "b", "risk_percentage": 95},
            {"user_id": "c", "risk_percentage": 60},
            {"user_id": "d", "risk_percentage": 39.9},
            {"user_id": "e", "risk_percentage": 5},
        ]
        employees = at_risk_employees(rows)["employees"]

        assert [item["id"] for item in employees["very_high"]] == ["b", "a"]
        assert [item["id"] for item in employees["high"]] == ["c"]
        assert employees["moderate"] == []
        assert [item["id"] for item in employees["low"]] == ["d", "e"]

    def test_percentage_falls_back_to_score(self):
        """Test a missing risk percentage is estimated from the score."""
        assert assessment_risk_percentage({"risk_percentage": 42}) == 42
        assert assessment_risk_percentage({"normalized_score": 1.5}) == 50
        assert assessment_risk_percentage({"normalized_score": 9}) == 100

        employees = at_risk_employees([{"user_id": "x", "normalized_score": 2.7}])[
            "employees"
        ]
        assert employees["very_high"][0]["risk_percentage"] == 90.0

    def test_no_assessments(self):
        """Test empty input gives empty buckets and no counts."""
        result = at_risk_employees([])

        assert all(bucket == [] for bucket in result["employees"].values())
        assert result["counts"] == {}
