"""Tests for BatchStrategy."""

import asyncio
import time

import pytest

from occmetrics.core.errors import ValidationError
from occmetrics.provider import ReadRequest, ReadResult
from occmetrics.queries import BatchItemResult, BatchStrategy


class DelayedProvider:
    """Adds a fixed latency to every read of the wrapped provider."""

    def __init__(self, inner, delay: float):
        self.inner = inner
        self.delay = delay

    async def read(self, request: ReadRequest) -> ReadResult:
        await asyncio.sleep(self.delay)
        return await self.inner.read(request)

    async def subscribe(self, *args, **kwargs):
        return await self.inner.subscribe(*args, **kwargs)


QUERIES = [
    {"table": "users", "filters": {"department": "production"}},
    {"table": "missing"},
    {
        "table": "assessments",
        "embeds": [{"name": "user", "table": "users", "local_key": "user_id"}],
        "order_by": {"column": "normalized_score", "ascending": True},
        "limit": 2,
    },
]


class TestValidation:
    """Tests for batch parameter validation."""

    @pytest.mark.parametrize(
        "params",
        [
            {},
            {"queries": []},
            {"queries": "users"},
            {"queries": [{"select": "*"}]},
            {"queries": [{"table": "users"}] * 11},
        ],
    )
    def test_rejects(self, survey_provider, settings, params):
        """Test empty, oversize and table-less batches."""
        with pytest.raises(ValidationError):
            BatchStrategy(survey_provider, settings).validate_params(params)

    def test_max_size_option(self, survey_provider, settings):
        """Test the size limit can be lowered per instance."""
        strategy = BatchStrategy(survey_provider, settings, max_batch_size=2)
        with pytest.raises(ValidationError, match="cannot exceed 2"):
            strategy.validate_params({"queries": QUERIES})


class TestExecute:
    """Tests for concurrent and sequential execution."""

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self, survey_provider, settings):
        """Test one failing sub-query leaves the others intact."""
        result = await BatchStrategy(survey_provider, settings).execute({"queries": QUERIES})

        assert result.success
        assert [item.index for item in result.data] == [0, 1, 2]
        assert [item.success for item in result.data] == [True, False, True]
        assert result.metadata["successful"] == 2
        assert result.metadata["failed"] == 1

        users, missing, assessments = result.data
        assert users.data["count"] == 2
        assert missing.error["details"]["kind"] == "not_found"
        assert [row["id"] for row in assessments.data["rows"]] == ["a1", "a3"]
        assert assessments.data["rows"][0]["user"]["name"] == "Ana"

    @pytest.mark.asyncio
    async def test_item_filters_match_like_paginated(self, survey_provider, settings):
        """Test sub-query pattern filters are substring matches."""
        result = await BatchStrategy(survey_provider, settings).execute(
            {
                "queries": [
                    {
                        "table": "users",
                        "filters": {
                            "name": {"operator": "ilike", "value": "AR"},
                            "shift": "",
                        },
                    }
                ]
            }
        )

        assert [row["id"] for row in result.data[0].data["rows"]] == ["u3"]

    @pytest.mark.asyncio
    async def test_concurrent_is_bounded_by_slowest(self, survey_provider, settings):
        """Test concurrent items overlap instead of adding up."""
        provider = DelayedProvider(survey_provider, delay=0.1)
        strategy = BatchStrategy(provider, settings)

        started = time.perf_counter()
        result = await strategy.execute({"queries": QUERIES})
        elapsed = time.perf_counter() - started

        assert result.metadata["parallel"] is True
        assert elapsed < 0.25

    @pytest.mark.asyncio
    async def test_sequential_keeps_order(self, survey_provider, settings):
        """Test sequential mode awaits items one after another."""
        provider = DelayedProvider(survey_provider, delay=0.05)
        strategy = BatchStrategy(provider, settings)

        started = time.perf_counter()
        result = await strategy.execute({"queries": QUERIES, "parallel": False})
        elapsed = time.perf_counter() - started

        assert [item.success for item in result.data] == [True, False, True]
        assert result.metadata["parallel"] is False
        assert elapsed >= 0.14

    def test_item_to_dict(self):
        """Test item payloads carry either data or error."""
        ok = BatchItemResult(index=0, success=True, data={"rows": []})
        failed = BatchItemResult(index=1, success=False, error={"code": "x"})

        assert ok.to_dict() == {"index": 0, "success": True, "data": {"rows": []}}
        assert failed.to_dict() == {"index": 1, "success": False, "error": {"code": "x"}}
