"""Demographic and workforce segmentation.

Every dimension is grouped independently; raw values never leave this
module, only counts and means.
"""

from typing import Any

from .risk import risk_distribution
from .statistics import mean, parse_int, person_attribute, to_float


UNSPECIFIED = "unspecified"

DEMOGRAPHIC_DIMENSIONS = {
    "by_age": "age",
    "by_gender": "gender",
    "by_education": "education_level",
    "by_experience": "driving_experience",
}

WORKFORCE_DIMENSIONS = {
    "by_department": "department",
    "by_shift": "shift",
    "by_gender": "gender",
    "by_position": "position",
}

SENIORITY_BRACKETS: tuple[tuple[float, str], ...] = (
    (1, "0-1"),
    (3, "1-3"),
    (5, "3-5"),
)
SENIORITY_OPEN_BRACKET = "5+"

AGE_BANDS: tuple[tuple[float, str], ...] = (
    (25, "18-25"),
    (35, "26-35"),
    (45, "36-45"),
)
AGE_OPEN_BAND = "46+"


def _segment_key(value: Any) -> str:
    if value is None or value == "":
        return UNSPECIFIED
    return value if isinstance(value, str) else str(value)


def seniority_bracket(years: float) -> str:
    for limit, label in SENIORITY_BRACKETS:
        if years <= limit:
            return label
    return SENIORITY_OPEN_BRACKET


def age_band(age: float) -> str:
    for limit, label in AGE_BANDS:
        if age <= limit:
            return label
    return AGE_OPEN_BAND


# ==============================================================================
# Demographic segmentation (answer values)
# ==============================================================================


def demographic_segmentation(
    rows: list[dict[str, Any]], relation: str = "person"
) -> dict[str, dict[str, dict[str, float | int]]]:
    """Answer count and mean per age, gender, education and experience group."""
    segments: dict[str, dict[str, dict[str, Any]]] = {
        name: {} for name in DEMOGRAPHIC_DIMENSIONS
    }

    for row in rows:
        answer = parse_int(row.get("value"))
        for name, attribute in DEMOGRAPHIC_DIMENSIONS.items():
            key = _segment_key(person_attribute(row, attribute, relation))
            bucket = segments[name].setdefault(key, {"total": 0, "values": []})
            bucket["total"] += 1
            if answer is not None:
                bucket["values"].append(answer)

    return {
        name: {
            key: {"total": bucket["total"], "mean": mean(bucket["values"])}
            for key, bucket in groups.items()
        }
        for name, groups in segments.items()
    }


# ==============================================================================
# Workforce segmentation (scores and risk)
# ==============================================================================


class _Accumulator:
    __slots__ = ("count", "risk_total", "score_total", "scores")

    def __init__(self) -> None:
        self.count = 0
        self.score_total = 0.0
        self.risk_total = 0.0
        self.scores: list[float] = []

    def add(self, score: float | None, risk: float | None) -> None:
        self.count += 1
        if score is not None:
            self.score_total += score
            self.scores.append(score)
        if risk is not None:
            self.risk_total += risk

    def summary(self, *, with_distribution: bool = False) -> dict[str, Any]:
        result: dict[str, Any] = {
            "count": self.count,
            "mean_score": round(self.score_total / self.count, 2) if self.count else 0,
            "mean_risk": round(self.risk_total / self.count, 2) if self.count else 0,
        }
        if with_distribution:
            result["risk_distribution"] = risk_distribution(self.scores)
        return result


def workforce_segmentation(
    rows: list[dict[str, Any]],
    relation: str = "user",
    score_key: str = "normalized_score",
    risk_key: str = "risk_percentage",
) -> dict[str, dict[str, dict[str, Any]]]:
    """Count, mean score and mean risk per workforce segment.

    Categorical dimensions (department, shift, gender, position) only include
    rows carrying the attribute. Seniority brackets and age bands are always
    present, empty ones reporting zeros. Departments also carry their GHQ-12
    band distribution.
    """
    categorical: dict[str, dict[str, _Accumulator]] = {
        name: {} for name in WORKFORCE_DIMENSIONS
    }
    seniority = {label: _Accumulator() for _, label in SENIORITY_BRACKETS}
    seniority[SENIORITY_OPEN_BRACKET] = _Accumulator()
    ages = {label: _Accumulator() for _, label in AGE_BANDS}
    ages[AGE_OPEN_BAND] = _Accumulator()

    for row in rows:
        score = to_float(row.get(score_key))
        risk = to_float(row.get(risk_key))

        for name, attribute in WORKFORCE_DIMENSIONS.items():
            value = person_attribute(row, attribute, relation)
            if value in (None, ""):
                continue
            categorical[name].setdefault(_segment_key(value), _Accumulator()).add(
                score, risk
            )

        years = to_float(person_attribute(row, "seniority_years", relation))
        if years is not None:
            seniority[seniority_bracket(years)].add(score, risk)

        age = to_float(person_attribute(row, "age", relation))
        if age is not None:
            ages[age_band(age)].add(score, risk)

    result = {
        name: {
            key: acc.summary(with_distribution=name == "by_department")
            for key, acc in groups.items()
        }
        for name, groups in categorical.items()
    }
    result["by_seniority"] = {key: acc.summary() for key, acc in seniority.items()}
    result["by_age"] = {key: acc.summary() for key, acc in ages.items()}
    return result
