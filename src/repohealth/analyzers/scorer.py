"""Overall health score calculation."""

from typing import Iterable

from repohealth.analyzers.aggregator import aggregate
from repohealth.analyzers.definitions import PROFILES, EvaluationProfile
from repohealth.analyzers.thresholds import round_half_up, score_to_grade
from repohealth.models.schemas import (
    Category,
    CategoryBreakdown,
    Grade,
    HealthScore,
    HealthSummary,
    Metric,
)

STRENGTH_FLOOR = 75
IMPROVEMENT_CEILING = 50
SUMMARY_LIMIT = 3

# Summary text by minimum overall score, best first
SUMMARY_TEXTS = [
    (80, "This repository shows excellent health across most categories."),
    (60, "This repository is in good health with some areas for improvement."),
    (40, "This repository has moderate health with several areas needing attention."),
]
LOW_HEALTH_TEXT = "This repository has significant health concerns that should be addressed."
NO_SCORE_TEXT = "Not enough data was available to score this repository; manual review is needed."


class HealthScoreCalculator:
    """Calculates the weighted overall health score.

    Category weights come from the evaluation profile:
    - Activity: 25%
    - Community: 20%
    - Maintenance: 25%
    - Documentation: 15%
    - Security & governance: 15%

    Categories without a score are dropped and the remaining weights are
    renormalized, so a repository is never penalized for data that could
    not be collected.
    """

    def __init__(self, profile: EvaluationProfile = PROFILES["default"]):
        self.profile = profile

    def calculate(self, metrics: Iterable[Metric]) -> HealthScore:
        """Aggregate metrics by category and combine them.

        Args:
            metrics: Scored metrics for one repository.

        Returns:
            HealthScore with the per-category breakdown.
        """
        breakdown = aggregate(metrics, self.profile)
        return self.combine(breakdown)

    def combine(self, breakdown: dict[Category, CategoryBreakdown]) -> HealthScore:
        scored = [b for b in breakdown.values() if b.score is not None and b.weight > 0]
        total_weight = sum(b.weight for b in scored)
        if not scored or total_weight == 0:
            return HealthScore(
                overall_score=None,
                overall_grade=Grade.MANUAL_REVIEW,
                category_breakdown=breakdown,
            )

        overall = sum(b.score * b.weight for b in scored) / total_weight
        overall = round_half_up(overall, 1)
        return HealthScore(
            overall_score=overall,
            overall_grade=score_to_grade(overall, allow_a_plus=True),
            category_breakdown=breakdown,
        )

    def build_summary(self, health_score: HealthScore) -> HealthSummary:
        """Describe the strongest and weakest categories."""
        scored: list[CategoryBreakdown] = [
            b for b in health_score.category_breakdown.values() if b.score is not None
        ]

        strengths = sorted(
            (b for b in scored if b.score >= STRENGTH_FLOOR), key=lambda b: b.score, reverse=True
        )[:SUMMARY_LIMIT]
        improvements = sorted(
            (b for b in scored if b.score < IMPROVEMENT_CEILING), key=lambda b: b.score
        )[:SUMMARY_LIMIT]

        return HealthSummary(
            text=self._summary_text(health_score.overall_score),
            strengths=[self._summary_item(b) for b in strengths],
            improvements=[self._summary_item(b) for b in improvements],
        )

    def _summary_text(self, overall: float | None) -> str:
        if overall is None:
            return NO_SCORE_TEXT
        for floor, text in SUMMARY_TEXTS:
            if overall >= floor:
                return text
        return LOW_HEALTH_TEXT

    def _summary_item(self, breakdown: CategoryBreakdown) -> dict:
        return {
            "category": breakdown.category.value,
            "score": breakdown.score,
            "grade": breakdown.grade.value,
        }
