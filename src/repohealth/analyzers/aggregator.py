"""Roll metrics up into per-category scores."""

from typing import Iterable

from repohealth.analyzers.definitions import EvaluationProfile
from repohealth.analyzers.thresholds import round_half_up, score_to_grade
from repohealth.models.schemas import Category, CategoryBreakdown, Grade, Metric


def aggregate_category(category: Category, metrics: Iterable[Metric], weight: float) -> CategoryBreakdown:
    """Average the scored metrics of one category.

    Metrics awaiting manual review are left out of the mean. A category with
    no scored metric has no score and is itself flagged for manual review.
    """
    metrics = tuple(metrics)
    scores = [m.score for m in metrics if m.score is not None]
    if not scores:
        return CategoryBreakdown(
            category=category,
            score=None,
            grade=Grade.MANUAL_REVIEW,
            weight=weight,
            metrics=metrics,
        )

    score = int(round_half_up(sum(scores) / len(scores)))
    return CategoryBreakdown(
        category=category,
        score=score,
        grade=score_to_grade(score),
        weight=weight,
        metrics=metrics,
    )


def aggregate(metrics: Iterable[Metric], profile: EvaluationProfile) -> dict[Category, CategoryBreakdown]:
    """Build a breakdown for every weighted category in the profile."""
    by_category: dict[Category, list[Metric]] = {category: [] for category in profile.weights}
    for metric in metrics:
        if metric.category in by_category:
            by_category[metric.category].append(metric)

    return {
        category: aggregate_category(category, category_metrics, profile.weights[category])
        for category, category_metrics in by_category.items()
    }
