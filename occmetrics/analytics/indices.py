"""Composite indices.

Department safety index
    Weighted sum of four 0-100 component scores:
    psychological wellbeing (100 - high-risk %) 0.30, PPE compliance 0.25,
    training completion 0.25, inverted incident rate
    (max(0, 100 - rate * 20)) 0.20.

Safety behavior index (ICS)
    Mean over persons of (uses PPE + safety training + reports near misses) / 3,
    booleans as 0/1, scaled by 100.

Vulnerability index (IVP)
    Mean over persons of
    (normalized score + (5 - safety motivation) + prior accident) / 3,
    scaled by 100.

The weights are reproduced as-is from the survey's scoring sheet; they have
no documented rationale and should be treated as provisional.
"""

from typing import Any

from .risk import SAFETY_ACTIONS, classify_safety_score
from .statistics import mean, pearson_correlation, person_attribute, to_float


SAFETY_INDEX_WEIGHTS: dict[str, float] = {
    "psychological": 0.30,
    "ppe_usage": 0.25,
    "training": 0.25,
    "incidents": 0.20,
}

INCIDENT_RATE_PENALTY = 20
MOTIVATION_SCALE_MAX = 5
WELLBEING_SCALE_MAX = 3


def safety_grade(score: float) -> str:
    """Letter grade for a 0-100 safety score."""
    if score >= 85:
        return "A"
    if score >= 70:
        return "B"
    if score >= 55:
        return "C"
    return "D"


def department_safety_index(
    high_risk_percentage: float,
    ppe_percentage: float = 0,
    training_percentage: float = 0,
    incident_rate: float = 0,
) -> dict[str, Any]:
    """Composite safety index for one department.

    Args:
        high_risk_percentage: Share of staff in the high psychosocial risk band.
        ppe_percentage: Share of staff using protective equipment.
        training_percentage: Share of staff with completed safety training.
        incident_rate: Incidents per 100 employees.
    """
    components = {
        "psychological": 100 - high_risk_percentage,
        "ppe_usage": ppe_percentage or 0,
        "training": training_percentage or 0,
        "incidents": max(0, 100 - (incident_rate or 0) * INCIDENT_RATE_PENALTY),
    }
    overall = sum(components[key] * weight for key, weight in SAFETY_INDEX_WEIGHTS.items())
    category = classify_safety_score(overall)

    return {
        "overall_score": round(overall, 2),
        "component_scores": components,
        "weights": dict(SAFETY_INDEX_WEIGHTS),
        "grade": safety_grade(overall),
        "risk_category": {
            "level": category.value,
            "action_required": SAFETY_ACTIONS[category],
        },
    }


def _flag(value: Any) -> int:
    return 1 if value else 0


def safety_behavior_index(rows: list[dict[str, Any]], relation: str = "user") -> float:
    """ICS over rows with all three behavior flags recorded, 1 decimal."""
    values = []
    for row in rows:
        flags = [
            person_attribute(row, name, relation)
            for name in ("uses_ppe", "safety_training", "reports_near_misses")
        ]
        if any(flag is None for flag in flags):
            continue
        values.append(sum(_flag(flag) for flag in flags) / 3)

    return round(mean(values) * 100, 1)


def vulnerability_index(
    rows: list[dict[str, Any]],
    relation: str = "user",
    score_key: str = "normalized_score",
) -> float:
    """IVP over rows with score, motivation and accident history, 1 decimal."""
    values = []
    for row in rows:
        score = to_float(row.get(score_key))
        motivation = to_float(person_attribute(row, "safety_motivation", relation))
        accidents = person_attribute(row, "prior_accidents", relation)
        if score is None or motivation is None or accidents is None:
            continue
        values.append((score + (MOTIVATION_SCALE_MAX - motivation) + _flag(accidents)) / 3)

    return round(mean(values) * 100, 1)


def _answer_values(value: Any) -> list[float]:
    if isinstance(value, dict):
        candidates = value.values()
    elif isinstance(value, (list, tuple)):
        candidates = value
    else:
        candidates = [value]
    return [
        float(v)
        for v in candidates
        if isinstance(v, (int, float)) and not isinstance(v, bool)
    ]


def wellbeing_index(
    rows: list[dict[str, Any]],
    value_key: str = "value",
    person_key: str = "person_id",
) -> dict[str, Any]:
    """Mean answer and the derived 0-100 wellbeing index.

    Answers sit on a 0-3 scale where higher is worse, so the index is
    ``clamp((3 - mean) / 3 * 100)`` rounded to an integer.
    """
    if not rows:
        return {"mean_health": 0, "wellbeing_index": 0, "respondents": 0}

    answers: list[float] = []
    respondents = set()
    for row in rows:
        respondents.add(row.get(person_key))
        answers.extend(_answer_values(row.get(value_key)))

    average = mean(answers)
    index = max(0.0, min(100.0, (WELLBEING_SCALE_MAX - average) / WELLBEING_SCALE_MAX * 100))
    return {
        "mean_health": round(average, 2),
        "wellbeing_index": round(index),
        "respondents": len(respondents),
    }


def key_correlations(
    rows: list[dict[str, Any]],
    relation: str = "user",
    score_key: str = "normalized_score",
) -> dict[str, float]:
    """Seniority vs score and management trust vs job satisfaction, 3 decimals."""
    seniority, scores = [], []
    trust, satisfaction = [], []

    for row in rows:
        years = to_float(person_attribute(row, "seniority_years", relation))
        score = to_float(row.get(score_key))
        if years is not None and score is not None:
            seniority.append(years)
            scores.append(score)

        trust_value = to_float(person_attribute(row, "management_trust", relation))
        satisfaction_value = to_float(person_attribute(row, "job_satisfaction", relation))
        if trust_value is not None and satisfaction_value is not None:
            trust.append(trust_value)
            satisfaction.append(satisfaction_value)

    return {
        "seniority_vs_score": round(pearson_correlation(seniority, scores), 3),
        "management_trust_vs_satisfaction": round(
            pearson_correlation(trust, satisfaction), 3
        ),
    }
