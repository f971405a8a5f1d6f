"""Data provider request/response models.

A read is described by a ``ReadRequest``:
- table: collection name
- select: column projection ("*" keeps every column)
- embeds: related collections joined onto each row (person, question, ...)
- filters: conjunctive column predicates
- any_of: disjunctive predicates (free-text search across columns)
- order / offset / limit: sort and bounds

Joined columns are addressed with dotted paths (``person.gender``).
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


Row = dict[str, Any]


class FilterOp(str, Enum):
    """Supported column predicates."""

    EQ = "eq"
    IN = "in"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    ILIKE = "ilike"


class ChangeEventType(str, Enum):
    """Row change kinds carried by a change feed."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ALL = "*"


@dataclass(frozen=True)
class Filter:
    """Single column predicate."""

    column: str
    op: FilterOp
    value: Any

    @classmethod
    def eq(cls, column: str, value: Any) -> "Filter":
        return cls(column, FilterOp.EQ, value)


@dataclass(frozen=True)
class OrderBy:
    """Sort order for a read."""

    column: str = "created_at"
    ascending: bool = False


@dataclass(frozen=True)
class Embed:
    """Related collection joined onto each row under ``name``."""

    name: str
    table: str
    local_key: str
    foreign_key: str = "id"
    columns: tuple[str, ...] = ()
    inner: bool = False


@dataclass
class ReadRequest:
    """Filtered, sorted, bounded read over one collection."""

    table: str
    select: tuple[str, ...] = ("*",)
    embeds: tuple[Embed, ...] = ()
    filters: list[Filter] = field(default_factory=list)
    any_of: list[Filter] = field(default_factory=list)
    order: OrderBy | None = None
    offset: int | None = None
    limit: int | None = None
    count: bool = True


@dataclass
class ReadResult:
    """Rows plus the exact count of matching rows before bounds are applied."""

    rows: list[Row]
    count: int | None = None


@dataclass
class ChangeEvent:
    """Row change delivered to subscribers."""

    table: str
    event_type: ChangeEventType
    new: Row | None = None
    old: Row | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def row(self) -> Row:
        """The row the event refers to (new image, or old one for deletes)."""
        return self.new or self.old or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "event_type": self.event_type.value,
            "new": self.new,
            "old": self.old,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChangeEvent":
        timestamp = data.get("timestamp")
        return cls(
            table=data["table"],
            event_type=ChangeEventType(data.get("event_type", "INSERT")),
            new=data.get("new"),
            old=data.get("old"),
            timestamp=(
                datetime.fromisoformat(timestamp) if timestamp else datetime.now(UTC)
            ),
        )


ChangeHandler = Callable[[ChangeEvent], Awaitable[None] | None]
Unsubscribe = Callable[[], Awaitable[None]]


def resolve_column(row: Row, column: str) -> Any:
    """Read a possibly dotted column path from a row."""
    value: Any = row
    for part in column.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value
