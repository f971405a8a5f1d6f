# Aggregation engine: pure functions over response rows
from .aggregation import aggregate_by_category, build_summary
from .indices import (
    SAFETY_INDEX_WEIGHTS,
    department_safety_index,
    key_correlations,
    safety_behavior_index,
    safety_grade,
    vulnerability_index,
    wellbeing_index,
)
from .risk import (
    AT_RISK_LEVELS,
    RiskBand,
    RiskLevel,
    SafetyCategory,
    assessment_risk_percentage,
    at_risk_employees,
    classify_percentage,
    classify_safety_score,
    classify_score,
    risk_distribution,
)
from .segmentation import (
    age_band,
    demographic_segmentation,
    seniority_bracket,
    workforce_segmentation,
)
from .snapshot import MetricSnapshot, build_snapshot, department_indices
from .statistics import (
    basic_stats,
    distribution,
    group_by,
    mean,
    parse_int,
    pearson_correlation,
    to_float,
)
from .trends import daily_trend, iso_week, monthly_change, to_datetime, weekly_trend


__all__ = [
    "AT_RISK_LEVELS",
    "SAFETY_INDEX_WEIGHTS",
    "MetricSnapshot",
    "RiskBand",
    "RiskLevel",
    "SafetyCategory",
    "age_band",
    "aggregate_by_category",
    "assessment_risk_percentage",
    "at_risk_employees",
    "basic_stats",
    "build_snapshot",
    "build_summary",
    "classify_percentage",
    "classify_safety_score",
    "classify_score",
    "daily_trend",
    "demographic_segmentation",
    "department_indices",
    "department_safety_index",
    "distribution",
    "group_by",
    "iso_week",
    "key_correlations",
    "mean",
    "monthly_change",
    "parse_int",
    "pearson_correlation",
    "risk_distribution",
    "safety_behavior_index",
    "safety_grade",
    "seniority_bracket",
    "to_datetime",
    "to_float",
    "vulnerability_index",
    "weekly_trend",
    "wellbeing_index",
    "workforce_segmentation",
]
