"""Tests for the metric providers over the seeded survey."""

import pytest

from occmetrics.core.errors import QueryError, ValidationError
from occmetrics.metrics import MetricProviders
from occmetrics.queries import QueryStrategyFactory


@pytest.fixture
def providers(factory) -> MetricProviders:
    return MetricProviders(factory)


class FailingReadProvider:
    """Provider whose reads fail permanently."""

    async def read(self, request):
        msg = "permission denied for table"
        raise PermissionError(msg)

    async def subscribe(self, *args, **kwargs):
        raise NotImplementedError


class TestHome:
    """Tests for the home metrics."""

    @pytest.mark.asyncio
    async def test_home(self, providers):
        """Test headline counts and the wellbeing index."""
        home = await providers.home({})

        assert home["active_users"] == 3
        assert home["evaluations_completed"] == 2
        assert home["total_responses"] == 6
        assert home["wellbeing_index"] == 50
        assert home["mean_health"] == 1.5
        assert home["monthly_trend"] == home["monthly_change"]["formatted"]


class TestDashboard:
    """Tests for the dashboard snapshot."""

    @pytest.mark.asyncio
    async def test_unfiltered(self, providers):
        """Test the snapshot covers every row."""
        dashboard = await providers.dashboard({})

        assert dashboard["summary"]["total_responses"] == 6
        assert dashboard["summary"]["total_assessments"] == 3
        assert dashboard["filters"] == {}
        assert dashboard["indices"]["safety_behavior"] == 55.6
        assert dashboard["correlations"]["seniority_vs_score"] == 0.904
        assert dashboard["at_risk"]["employees"]["moderate"][0]["name"] == "Luis"

    @pytest.mark.asyncio
    async def test_gender_filter_applies_to_both_streams(self, providers):
        """Test gender narrows responses by person and assessments by user."""
        dashboard = await providers.dashboard({"gender": "Female"})

        assert dashboard["filters"] == {"gender": "female"}
        assert dashboard["summary"]["total_responses"] == 3
        assert dashboard["summary"]["total_assessments"] == 1

    @pytest.mark.asyncio
    async def test_department_filter(self, providers):
        """Test a department without assessments yields an empty workforce view."""
        dashboard = await providers.dashboard({"department": "quality"})

        assert dashboard["summary"]["total_assessments"] == 0
        assert dashboard["segmentation"]["workforce"]["by_department"] == {}

    @pytest.mark.asyncio
    async def test_unknown_department_means_all(self, providers):
        """Test an unknown department does not filter."""
        dashboard = await providers.dashboard({"department": "marketing"})

        assert dashboard["filters"] == {"department": "all"}
        assert dashboard["summary"]["total_assessments"] == 3

    @pytest.mark.asyncio
    async def test_date_window(self, providers):
        """Test start_date bounds both streams inclusively."""
        dashboard = await providers.dashboard({"start_date": "2025-03-12"})

        assert dashboard["summary"]["total_responses"] == 3
        assert dashboard["summary"]["total_assessments"] == 1

    @pytest.mark.asyncio
    async def test_invalid_filters(self, providers):
        """Test invalid filters raise before any read."""
        with pytest.raises(ValidationError):
            await providers.dashboard({"start_date": "2025-04-01", "end_date": "2025-03-01"})


class TestListings:
    """Tests for questionnaires, responses and users."""

    @pytest.mark.asyncio
    async def test_questionnaires(self, providers):
        """Test per-user status and overall completion."""
        result = await providers.questionnaires({})

        by_id = {q["id"]: q for q in result["questionnaires"]}
        assert by_id["u2"]["status"] == "completed"
        assert by_id["u2"]["mean_score"] == 6.5
        assert by_id["u2"]["risk_band"] == "very_high"
        assert by_id["u2"]["total_assessments"] == 2
        assert by_id["u3"]["status"] == "pending"
        assert by_id["u3"]["risk_band"] is None
        assert by_id["u3"]["completed_at"] is None
        assert result["total_questionnaires"] == 3
        assert result["completed"] == 2
        assert result["pending"] == 1
        assert result["mean_score"] == 3.75
        assert result["pagination"]["total_items"] == 3

    @pytest.mark.asyncio
    async def test_questionnaires_paging(self, providers):
        """Test page parameters arrive as query-string text."""
        result = await providers.questionnaires({"page": "2", "page_size": "2"})

        assert len(result["questionnaires"]) == 1
        assert result["pagination"]["page"] == 2
        assert result["total_questionnaires"] == 3

    @pytest.mark.asyncio
    async def test_non_integer_page_size(self, providers):
        """Test unparsable page parameters raise a validation error."""
        with pytest.raises(ValidationError) as exc_info:
            await providers.users({"page_size": "ten"})

        assert exc_info.value.details == {"page_size": "ten"}

    @pytest.mark.asyncio
    async def test_responses(self, providers):
        """Test latest assessments, band distribution and question stats."""
        result = await providers.responses({})

        latest = result["responses"][0]
        assert latest["id"] == "a3"
        assert latest["user"] == {"name": "Luis", "department": "production", "shift": "night"}
        assert latest["risk_band"] == "high"
        assert result["total_responses"] == 3
        assert result["risk_distribution"] == {
            "low": 33.4,
            "moderate": 0.0,
            "high": 33.3,
            "very_high": 33.3,
        }
        assert result["question_stats"]["q1"] == {
            "count": 2,
            "sum": 4.0,
            "mean": 2.0,
            "min": 1.0,
            "max": 3.0,
        }
        assert result["mean_score"] == 4.67

    @pytest.mark.asyncio
    async def test_users(self, providers):
        """Test completion per user and per segment."""
        result = await providers.users({})

        assert result["total_users"] == 3
        assert result["active_users"] == 2
        assert result["pending_users"] == 1
        assert result["by_department"]["production"] == {
            "total": 2,
            "completed": 2,
            "pending": 0,
            "completion_rate": 100.0,
        }
        assert result["by_gender"]["female"]["completion_rate"] == 50.0

        luis = next(user for user in result["users"] if user["id"] == "u2")
        assert luis["assessment_status"] == "completed"
        assert luis["total_assessments"] == 2
        assert luis["last_assessment"].startswith("2025-03-12")


class TestAnalytics:
    """Tests for the analytics metric."""

    @pytest.mark.asyncio
    async def test_filters_and_metadata(self, providers):
        """Test filters pass through and strategy metadata is attached."""
        result = await providers.analytics(
            {"gender": "female", "include_details": "false"}
        )

        assert result["metadata"]["total_records"] == 3
        assert "values" not in result["category_stats"]["health"]

    @pytest.mark.asyncio
    async def test_date_range_and_details(self, providers):
        """Test start/end dates become the strategy date range."""
        result = await providers.analytics(
            {"start_date": "2025-03-12", "end_date": "2025-03-14", "include_details": "true"}
        )

        assert result["metadata"]["total_records"] == 3
        assert result["metadata"]["date_range"] == {
            "start": "2025-03-12",
            "end": "2025-03-14",
        }
        assert "values" in result["category_stats"]["health"]

    @pytest.mark.asyncio
    async def test_half_open_range_is_rejected(self, providers):
        """Test a range with only one end is a validation error."""
        with pytest.raises(ValidationError):
            await providers.analytics({"start_date": "2025-03-12"})


class TestFailures:
    """Tests for failing reads."""

    @pytest.mark.asyncio
    async def test_failed_read_raises(self, settings):
        """Test a failed batch item surfaces as a QueryError."""
        providers = MetricProviders(QueryStrategyFactory(FailingReadProvider(), settings))

        with pytest.raises(QueryError) as exc_info:
            await providers.home({})

        assert exc_info.value.code == "provider_error"
        assert exc_info.value.details["kind"] == "permission_error"

    @pytest.mark.asyncio
    async def test_failed_page_raises(self, settings):
        """Test a failed paginated read surfaces as a QueryError."""
        providers = MetricProviders(QueryStrategyFactory(FailingReadProvider(), settings))

        with pytest.raises(QueryError):
            await providers.users({})
