"""Tests for the in-memory data provider and local change feed."""

from datetime import UTC, datetime

import pytest

from occmetrics.provider import (
    ChangeEvent,
    ChangeEventType,
    Embed,
    Filter,
    FilterOp,
    InMemoryDataProvider,
    LocalChangeFeed,
    OrderBy,
    ReadRequest,
)
from occmetrics.provider.memory import matches_filter


class TestMatchesFilter:
    """Tests for predicate evaluation."""

    def test_dotted_column(self):
        """Test predicates reach into joined rows."""
        row = {"person": {"gender": "female"}}
        assert matches_filter(row, Filter.eq("person.gender", "female"))
        assert not matches_filter(row, Filter.eq("person.age", 30))

    def test_range_against_iso_string(self):
        """Test datetimes compare with ISO strings."""
        row = {"created_at": datetime(2025, 3, 10, tzinfo=UTC)}

        assert matches_filter(row, Filter("created_at", FilterOp.GTE, "2025-03-01"))
        assert not matches_filter(row, Filter("created_at", FilterOp.LT, "2025-03-01T00:00:00Z"))

    def test_ilike(self):
        """Test SQL-style patterns, case-insensitively."""
        row = {"name": "Marta"}
        assert matches_filter(row, Filter("name", FilterOp.ILIKE, "%art%"))
        assert not matches_filter(row, Filter("name", FilterOp.LIKE, "%ART%"))

    def test_range_on_missing_value(self):
        """Test missing values never satisfy range predicates."""
        assert not matches_filter({}, Filter("age", FilterOp.GT, 1))


class TestInMemoryRead:
    """Tests for InMemoryDataProvider.read."""

    @pytest.mark.asyncio
    async def test_embed_filter_and_order(self, survey_provider):
        """Test a joined, filtered and sorted read."""
        result = await survey_provider.read(
            ReadRequest(
                table="assessments",
                embeds=(Embed("user", "users", "user_id"),),
                filters=[Filter.eq("user.department", "production")],
                order=OrderBy("normalized_score", ascending=False),
            )
        )

        assert result.count == 3
        assert [row["id"] for row in result.rows] == ["a2", "a3", "a1"]
        assert result.rows[0]["user"]["name"] == "Luis"

    @pytest.mark.asyncio
    async def test_offset_limit_keep_total(self, survey_provider):
        """Test the count is taken before bounds are applied."""
        result = await survey_provider.read(
            ReadRequest(table="responses", order=OrderBy("id", ascending=True), offset=2, limit=2)
        )

        assert [row["id"] for row in result.rows] == [3, 4]
        assert result.count == 6

    @pytest.mark.asyncio
    async def test_inner_embed_drops_unmatched(self):
        """Test inner embeds drop rows without a related row."""
        provider = InMemoryDataProvider(
            {"responses": [{"id": 1, "person_id": "p1"}, {"id": 2, "person_id": "gone"}],
             "persons": [{"id": "p1"}]}
        )
        result = await provider.read(
            ReadRequest(
                table="responses",
                embeds=(Embed("person", "persons", "person_id", inner=True),),
            )
        )
        assert [row["id"] for row in result.rows] == [1]

    @pytest.mark.asyncio
    async def test_select_and_search(self, survey_provider):
        """Test projections and any-of search predicates."""
        result = await survey_provider.read(
            ReadRequest(
                table="users",
                select=("id",),
                any_of=[
                    Filter("name", FilterOp.ILIKE, "%ana%"),
                    Filter("position", FilterOp.ILIKE, "%inspect%"),
                ],
                order=OrderBy("id", ascending=True),
            )
        )
        assert result.rows == [{"id": "u1"}, {"id": "u3"}]

    @pytest.mark.asyncio
    async def test_reads_are_detached(self, survey_provider):
        """Test mutating a returned row does not change the table."""
        result = await survey_provider.read(ReadRequest(table="users"))
        result.rows[0]["name"] = "changed"

        assert "changed" not in {row["name"] for row in survey_provider.rows("users")}

    @pytest.mark.asyncio
    async def test_unknown_table(self, survey_provider):
        """Test reading a missing collection fails like a missing relation."""
        with pytest.raises(LookupError, match="does not exist"):
            await survey_provider.read(ReadRequest(table="nope"))


class TestChangeFeed:
    """Tests for writes publishing to the local change feed."""

    @pytest.mark.asyncio
    async def test_insert_update_delete_publish(self, survey_provider):
        """Test every write reaches a table subscriber."""
        events: list[ChangeEvent] = []
        await survey_provider.subscribe("users", events.append)

        await survey_provider.insert("users", {"id": "u4", "name": "Rosa"})
        await survey_provider.update("users", "u4", {"name": "Rosa M."})
        await survey_provider.delete("users", "u4")

        assert [e.event_type for e in events] == [
            ChangeEventType.INSERT,
            ChangeEventType.UPDATE,
            ChangeEventType.DELETE,
        ]
        assert events[1].old["name"] == "Rosa"
        assert events[2].row["id"] == "u4"

    @pytest.mark.asyncio
    async def test_event_type_and_filters(self):
        """Test subscribers only see matching events."""
        feed = LocalChangeFeed()
        seen: list[ChangeEvent] = []
        await feed.subscribe(
            "users",
            seen.append,
            ChangeEventType.INSERT,
            [Filter.eq("department", "quality")],
        )

        await feed.publish(ChangeEvent("users", ChangeEventType.INSERT, new={"department": "quality"}))
        await feed.publish(ChangeEvent("users", ChangeEventType.INSERT, new={"department": "safety"}))
        await feed.publish(ChangeEvent("users", ChangeEventType.UPDATE, new={"department": "quality"}))

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        """Test an unsubscribed handler gets nothing more."""
        feed = LocalChangeFeed()
        seen: list[ChangeEvent] = []
        unsubscribe = await feed.subscribe("users", seen.append)
        assert feed.subscription_count == 1

        await unsubscribe()
        await feed.publish(ChangeEvent("users", ChangeEventType.INSERT, new={}))

        assert seen == []
        assert feed.subscription_count == 0

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self):
        """Test one broken handler does not stop delivery."""
        feed = LocalChangeFeed()
        seen: list[ChangeEvent] = []

        async def broken(event: ChangeEvent) -> None:
            msg = "handler bug"
            raise RuntimeError(msg)

        await feed.subscribe("users", broken)
        await feed.subscribe("users", seen.append)
        await feed.publish(ChangeEvent("users", ChangeEventType.INSERT, new={"id": 1}))

        assert len(seen) == 1

    def test_event_dict_round_trip(self):
        """Test events survive the wire format used by the Redis feed."""
        event = ChangeEvent("responses", ChangeEventType.UPDATE, new={"id": 1}, old={"id": 1})
        restored = ChangeEvent.from_dict(event.to_dict())

        assert restored.event_type is ChangeEventType.UPDATE
        assert restored.timestamp == event.timestamp
