"""Dashboard filter validation.

Known keys only: ``department``, ``shift``, ``gender``, ``start_date`` and
``end_date``. Enum values outside the known set fall back to ``all`` rather
than failing; malformed dates and inverted ranges are errors.
"""

from typing import Any

from occmetrics.analytics import to_datetime
from occmetrics.core.errors import ValidationError


ALL = "all"

DEPARTMENTS = frozenset(
    {ALL, "administration", "production", "quality", "operations", "maintenance", "safety"}
)
SHIFTS = frozenset({ALL, "morning", "afternoon", "night", "rotating"})
GENDERS = frozenset({ALL, "male", "female", "other"})

CHOICE_FIELDS: dict[str, frozenset[str]] = {
    "department": DEPARTMENTS,
    "shift": SHIFTS,
    "gender": GENDERS,
}
DATE_FIELDS = ("start_date", "end_date")


def validate_dashboard_filters(filters: Any) -> dict[str, str]:
    """Normalise dashboard filters.

    Args:
        filters: Raw filter mapping (``None`` means no filters)

    Returns:
        Validated filters; dates as ``YYYY-MM-DD``, unknown keys dropped

    Raises:
        ValidationError: If the mapping, a date or the date range is invalid
    """
    if not filters:
        return {}

    if not isinstance(filters, dict):
        msg = "Filters must be a mapping"
        raise ValidationError(msg, {"filters": repr(filters)})

    errors: list[str] = []
    validated: dict[str, str] = {}

    for field, choices in CHOICE_FIELDS.items():
        value = filters.get(field)
        if value is None:
            continue
        if not isinstance(value, str):
            errors.append(f"{field} must be a string")
            continue
        normalized = value.strip().lower()
        validated[field] = normalized if normalized in choices else ALL

    for field in DATE_FIELDS:
        value = filters.get(field)
        if value is None or value == "":
            continue
        moment = to_datetime(value)
        if moment is None:
            errors.append(f"{field} must be a valid date")
            continue
        validated[field] = moment.date().isoformat()

    start, end = validated.get("start_date"), validated.get("end_date")
    if start and end and start > end:
        errors.append("start_date cannot be after end_date")

    if errors:
        msg = "Invalid dashboard filters"
        raise ValidationError(msg, {"errors": errors})

    return validated
