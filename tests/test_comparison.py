"""Tests for side-by-side comparison and best/worst highlighting."""

from repohealth.analyzers.comparison import OVERALL_ROW_ID, compare
from repohealth.analyzers.thresholds import score_to_grade
from repohealth.models.schemas import (
    Category,
    Confidence,
    Evaluation,
    Grade,
    HealthScore,
    Metric,
    MetricKind,
    RepoRef,
)


def evaluation(name: str, overall: float | None = None, **scores) -> Evaluation:
    """Build an evaluation whose metrics have the given scores (None = manual review)."""
    metrics = []
    for metric_id, score in scores.items():
        metric_id = metric_id.replace("_", "-")
        if score is None:
            metrics.append(Metric(
                id=metric_id, name=metric_id.title(), category=Category.ACTIVITY, kind=MetricKind.NUMERIC,
                grade=Grade.MANUAL_REVIEW, confidence=Confidence.MANUAL_REVIEW,
            ))
        else:
            metrics.append(Metric(
                id=metric_id, name=metric_id.title(), category=Category.ACTIVITY, kind=MetricKind.NUMERIC,
                value=score, score=score, grade=score_to_grade(score), confidence=Confidence.HIGH,
            ))
    owner, repo = name.split("/")
    return Evaluation(
        repository=RepoRef(owner=owner, repo=repo),
        health_score=HealthScore(
            overall_score=overall,
            overall_grade=Grade.MANUAL_REVIEW if overall is None else score_to_grade(overall, True),
        ),
        metrics=tuple(metrics),
    )


def marks(row):
    return [(cell.is_best, cell.is_worst) for cell in row.cells]


class TestHighlighting:
    def test_best_and_worst_marked(self):
        result = compare([evaluation("a/one", commit_frequency=90), evaluation("b/two", commit_frequency=80)])
        assert marks(result.rows[0]) == [(True, False), (False, True)]
        assert result.rows[0].highlighted

    def test_all_equal_not_highlighted(self):
        result = compare([evaluation("a/one", commit_frequency=85), evaluation("b/two", commit_frequency=85)])
        assert marks(result.rows[0]) == [(False, False), (False, False)]
        assert not result.rows[0].highlighted

    def test_ties_share_the_mark(self):
        result = compare([
            evaluation("a/one", license=100),
            evaluation("b/two", license=100),
            evaluation("c/three", license=0),
        ])
        assert marks(result.rows[0]) == [(True, False), (True, False), (False, True)]

    def test_single_scored_repository_not_highlighted(self):
        result = compare([evaluation("a/one", bus_factor=95), evaluation("b/two", bus_factor=None)])
        assert marks(result.rows[0]) == [(False, False), (False, False)]

    def test_null_scores_excluded_from_extremes(self):
        result = compare([
            evaluation("a/one", bus_factor=95),
            evaluation("b/two", bus_factor=None),
            evaluation("c/three", bus_factor=25),
        ])
        row = result.rows[0]
        assert marks(row) == [(True, False), (False, False), (False, True)]
        assert row.cells[1].available
        assert row.cells[1].grade == Grade.MANUAL_REVIEW


class TestRows:
    def test_missing_metric_is_unavailable(self):
        result = compare([
            evaluation("a/one", commit_frequency=90, wiki_presence=100),
            evaluation("b/two", commit_frequency=60),
        ])
        wiki = result.rows[1]
        assert wiki.metric_id == "wiki-presence"
        assert wiki.cells[0].available
        assert not wiki.cells[1].available
        assert not wiki.highlighted

    def test_rows_follow_first_seen_order(self):
        result = compare([
            evaluation("a/one", license=100),
            evaluation("b/two", bus_factor=50, license=0),
        ])
        assert [row.metric_id for row in result.rows] == ["license", "bus-factor"]
        assert result.repositories == ("a/one", "b/two")

    def test_overall_row(self):
        result = compare([
            evaluation("a/one", overall=91.5),
            evaluation("b/two", overall=62.0),
            evaluation("c/three", overall=None),
        ])
        assert result.overall.metric_id == OVERALL_ROW_ID
        assert [cell.score for cell in result.overall.cells] == [91.5, 62.0, None]
        assert marks(result.overall) == [(True, False), (False, True), (False, False)]

    def test_empty_comparison(self):
        result = compare([])
        assert result.rows == ()
        assert result.overall.cells == ()
