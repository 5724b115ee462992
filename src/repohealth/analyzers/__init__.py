"""Analyzers for scoring and comparing repository health."""

from repohealth.analyzers.comparison import compare
from repohealth.analyzers.criteria import CriterionEvaluator, load_criteria
from repohealth.analyzers.export import ExportFormat, evaluations_to_csv
from repohealth.analyzers.metrics import MetricCalculator
from repohealth.analyzers.pipeline import EvaluationPipeline
from repohealth.analyzers.scorer import HealthScoreCalculator

__all__ = [
    "CriterionEvaluator",
    "EvaluationPipeline",
    "ExportFormat",
    "HealthScoreCalculator",
    "MetricCalculator",
    "compare",
    "evaluations_to_csv",
    "load_criteria",
]
