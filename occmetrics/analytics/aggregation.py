"""Category and subcategory aggregation over joined response rows.

Each row carries its answer under ``value`` and the joined question under
``question`` (``category``, ``subcategory``). Answers are parsed as integers;
unparsable answers still count towards ``total`` but not towards the
statistics.
"""

from datetime import UTC, datetime
from typing import Any

from .statistics import mean, parse_int, person_attribute


def _finalize(bucket: dict[str, Any], include_details: bool, *, with_range: bool) -> None:
    numbers = [n for n in (parse_int(v) for v in bucket["values"]) if n is not None]
    bucket["mean"] = mean(numbers)
    if with_range:
        bucket["min"] = min(numbers) if numbers else 0
        bucket["max"] = max(numbers) if numbers else 0
    if not include_details:
        del bucket["values"]


def aggregate_by_category(
    rows: list[dict[str, Any]], include_details: bool = False
) -> dict[str, dict[str, Any]]:
    """Per category: total, mean, min, max and per-subcategory total and mean.

    Raw answer lists are kept under ``values`` only when ``include_details``.
    """
    categories: dict[str, dict[str, Any]] = {}

    for row in rows:
        category = person_attribute(row, "category", "question")
        subcategory = person_attribute(row, "subcategory", "question")
        value = row.get("value")

        bucket = categories.setdefault(
            category, {"total": 0, "values": [], "subcategories": {}}
        )
        bucket["total"] += 1
        bucket["values"].append(value)

        sub_bucket = bucket["subcategories"].setdefault(
            subcategory, {"total": 0, "values": []}
        )
        sub_bucket["total"] += 1
        sub_bucket["values"].append(value)

    for bucket in categories.values():
        for sub_bucket in bucket["subcategories"].values():
            _finalize(sub_bucket, include_details, with_range=False)
        _finalize(bucket, include_details, with_range=True)

    return categories


def build_summary(
    rows: list[dict[str, Any]],
    category_count: int,
    generated_at: datetime | None = None,
    person_key: str = "person_id",
) -> dict[str, Any]:
    """Headline counts for an aggregation run."""
    return {
        "total_responses": len(rows),
        "total_persons": len({row.get(person_key) for row in rows}),
        "categories": category_count,
        "generated_at": (generated_at or datetime.now(UTC)).isoformat(),
    }
