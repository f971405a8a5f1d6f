"""Numeric building blocks shared by the aggregation engine."""

import math
import re
from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from typing import Any


_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def to_float(value: Any) -> float | None:
    """Parse a numeric cell; ``None`` for blanks, booleans and garbage."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    return None if math.isnan(number) else number


def parse_int(value: Any) -> int | None:
    """Integer answer value: numbers truncate, strings use their leading digits."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return None if math.isnan(value) or math.isinf(value) else int(value)
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean, 0 for an empty sequence."""
    return sum(values) / len(values) if values else 0.0


def basic_stats(values: Iterable[Any]) -> dict[str, float | int]:
    """Count, sum, mean, min and max over the numeric values.

    Non-numeric entries are ignored; sum and mean are rounded to 2 decimals.
    """
    numbers = [
        float(v)
        for v in values
        if isinstance(v, (int, float)) and not isinstance(v, bool) and not math.isnan(v)
    ]
    if not numbers:
        return {"count": 0, "sum": 0, "mean": 0, "min": 0, "max": 0}

    total = sum(numbers)
    return {
        "count": len(numbers),
        "sum": round(total, 2),
        "mean": round(total / len(numbers), 2),
        "min": min(numbers),
        "max": max(numbers),
    }


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """Pearson product-moment coefficient.

    r = (nΣxy - ΣxΣy) / sqrt((nΣx² - (Σx)²)(nΣy² - (Σy)²))

    Returns 0 when the series differ in length, are empty, or either has no
    variance.
    """
    if not x or not y or len(x) != len(y):
        return 0.0

    n = len(x)
    sum_x = sum(x)
    sum_y = sum(y)
    sum_xy = sum(a * b for a, b in zip(x, y, strict=True))
    sum_x2 = sum(a * a for a in x)
    sum_y2 = sum(b * b for b in y)

    numerator = n * sum_xy - sum_x * sum_y
    radicand = (n * sum_x2 - sum_x * sum_x) * (n * sum_y2 - sum_y * sum_y)
    if radicand <= 0:
        return 0.0
    denominator = math.sqrt(radicand)
    if denominator == 0:
        return 0.0
    return numerator / denominator


def group_by(
    rows: Iterable[dict[str, Any]],
    key: str | Callable[[dict[str, Any]], Any],
) -> dict[Any, list[dict[str, Any]]]:
    """Group rows by a column name or key function, preserving input order."""
    groups: dict[Any, list[dict[str, Any]]] = defaultdict(list)
    for row in rows:
        group_key = key(row) if callable(key) else row.get(key)
        groups[group_key].append(row)
    return dict(groups)


def distribution(groups: dict[Any, Sequence[Any]]) -> dict[Any, dict[str, float | int]]:
    """Share of each group in the total, as count and 1-decimal percentage."""
    total = sum(len(members) for members in groups.values())
    if total == 0:
        return {}
    return {
        key: {
            "count": len(members),
            "percentage": round(len(members) / total * 100, 1),
        }
        for key, members in groups.items()
    }


def person_attribute(row: dict[str, Any], name: str, relation: str = "person") -> Any:
    """Read an attribute from the row or, failing that, its joined relation."""
    if name in row and row[name] is not None:
        return row[name]
    related = row.get(relation)
    if isinstance(related, dict):
        return related.get(name)
    return None
