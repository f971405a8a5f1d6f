"""Tests for PaginatedStrategy."""

from datetime import UTC, datetime, timedelta

import pytest

from occmetrics.core.errors import ValidationError
from occmetrics.provider import InMemoryDataProvider
from occmetrics.queries import PaginatedStrategy


START = datetime(2025, 1, 1, tzinfo=UTC)


@pytest.fixture
def items_provider() -> InMemoryDataProvider:
    """25 rows numbered 1..25, created one hour apart."""
    rows = [
        {
            "id": n,
            "n": n,
            "name": f"item {n}",
            "group": "even" if n % 2 == 0 else "odd",
            "created_at": START + timedelta(hours=n),
        }
        for n in range(1, 26)
    ]
    return InMemoryDataProvider({"items": rows})


@pytest.fixture
def strategy(items_provider, settings) -> PaginatedStrategy:
    return PaginatedStrategy(items_provider, settings)


class TestValidation:
    """Tests for parameter validation."""

    @pytest.mark.parametrize(
        "params",
        [
            {},
            {"table": ""},
            {"table": "items", "page": 0},
            {"table": "items", "page": "2"},
            {"table": "items", "page_size": 0},
            {"table": "items", "page_size": 101},
            {"table": "items", "filters": {"n": {"operator": "regex", "value": "."}}},
            {"table": "items", "order_by": "n"},
        ],
    )
    def test_rejects(self, strategy, params):
        """Test malformed params raise before any read."""
        with pytest.raises(ValidationError):
            strategy.validate_params(params)

    def test_accepts_defaults(self, strategy):
        """Test a bare table is enough."""
        assert strategy.validate_params({"table": "items"}) is True

    @pytest.mark.asyncio
    async def test_execute_raises_validation_errors(self, strategy):
        """Test validation errors propagate out of execute."""
        with pytest.raises(ValidationError):
            await strategy.execute({"table": "items", "page": -1})


class TestOffsetMode:
    """Tests for page/page_size reads."""

    @pytest.mark.asyncio
    async def test_middle_page(self, strategy):
        """Test page 2 of 3 with default newest-first ordering."""
        result = await strategy.execute({"table": "items", "page": 2, "page_size": 10})

        assert result.success
        assert [row["n"] for row in result.data] == list(range(15, 5, -1))
        assert result.pagination.total_items == 25
        assert result.pagination.total_pages == 3
        assert result.pagination.has_next_page is True
        assert result.pagination.has_previous_page is True
        assert result.metadata["mode"] == "offset"

    @pytest.mark.asyncio
    async def test_last_page(self, strategy):
        """Test the last page is short and has no next page."""
        result = await strategy.execute(
            {
                "table": "items",
                "page": 3,
                "page_size": 10,
                "order_by": {"column": "n", "ascending": True},
            }
        )

        assert [row["n"] for row in result.data] == [21, 22, 23, 24, 25]
        assert result.pagination.has_next_page is False

    @pytest.mark.asyncio
    async def test_filters_and_search(self, strategy):
        """Test equality, list, operator and search filters combine."""
        result = await strategy.execute(
            {
                "table": "items",
                "filters": {"group": "even", "n": {"operator": "lte", "value": 10}},
                "search_term": "ITEM 1",
                "search_columns": ["name"],
                "select": "id, n",
            }
        )

        assert result.data == [{"id": 10, "n": 10}]

    @pytest.mark.asyncio
    async def test_list_filter(self, strategy):
        """Test a list value filters with 'in'."""
        result = await strategy.execute({"table": "items", "filters": {"n": [1, 3, 99]}})
        assert sorted(row["n"] for row in result.data) == [1, 3]

    @pytest.mark.asyncio
    async def test_pattern_filters_match_substrings(self, strategy):
        """Test like/ilike values match anywhere in the cell."""
        like = await strategy.execute(
            {
                "table": "items",
                "filters": {"name": {"operator": "like", "value": "em 2"}},
            }
        )
        ilike = await strategy.execute(
            {
                "table": "items",
                "filters": {"name": {"operator": "ilike", "value": "ITEM 1"}},
            }
        )

        assert sorted(row["n"] for row in like.data) == [2, 20, 21, 22, 23, 24, 25]
        assert ilike.pagination.total_items == 11

    @pytest.mark.asyncio
    async def test_empty_filter_values_are_ignored(self, strategy):
        """Test blank and None filter values do not narrow the result."""
        result = await strategy.execute(
            {"table": "items", "filters": {"group": "", "name": None}}
        )
        assert result.pagination.total_items == 25

    @pytest.mark.asyncio
    async def test_embeds(self, survey_provider, settings):
        """Test embeds given as mappings are joined."""
        strategy = PaginatedStrategy(survey_provider, settings)
        result = await strategy.execute(
            {
                "table": "assessments",
                "embeds": [{"name": "user", "table": "users", "local_key": "user_id"}],
                "order_by": {"column": "id", "ascending": True},
            }
        )

        assert result.data[0]["user"]["name"] == "Ana"

    @pytest.mark.asyncio
    async def test_provider_failure_is_an_envelope(self, strategy):
        """Test a failed read comes back as a failure result."""
        result = await strategy.execute({"table": "missing"})

        assert result.success is False
        assert result.error["code"] == "provider_error"
        assert result.error["details"]["kind"] == "not_found"
        assert result.pagination is None


class TestCursorMode:
    """Tests for keyset pagination."""

    @pytest.mark.asyncio
    async def test_ascending_cursor(self, strategy):
        """Test rows strictly after the cursor are returned."""
        result = await strategy.execute(
            {
                "table": "items",
                "cursor": 5,
                "page_size": 10,
                "order_by": {"column": "n", "ascending": True},
            }
        )

        assert [row["n"] for row in result.data] == list(range(6, 16))
        assert result.pagination.page is None
        assert result.pagination.total_pages is None
        assert result.pagination.next_cursor == 15
        assert result.pagination.previous_cursor == 5
        assert result.pagination.has_next_page is True
        assert result.metadata["mode"] == "cursor"

    @pytest.mark.asyncio
    async def test_descending_cursor_end(self, strategy):
        """Test a short final slice reports no next page."""
        result = await strategy.execute(
            {"table": "items", "cursor": 3, "order_by": {"column": "n"}}
        )

        assert [row["n"] for row in result.data] == [2, 1]
        assert result.pagination.has_next_page is False
