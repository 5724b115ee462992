"""Data models and schemas."""

from repohealth.models.schemas import (
    Category,
    CategoryBreakdown,
    Comparison,
    Confidence,
    CriterionResult,
    CriterionType,
    CustomCriterion,
    Evaluation,
    Grade,
    HealthScore,
    Metric,
    MetricKind,
    RepoRef,
)

__all__ = [
    "Category",
    "CategoryBreakdown",
    "Comparison",
    "Confidence",
    "CriterionResult",
    "CriterionType",
    "CustomCriterion",
    "Evaluation",
    "Grade",
    "HealthScore",
    "Metric",
    "MetricKind",
    "RepoRef",
]
