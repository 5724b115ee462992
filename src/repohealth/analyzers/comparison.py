"""Side-by-side comparison of evaluated repositories."""

from typing import Sequence

from repohealth.models.schemas import Comparison, ComparisonCell, ComparisonRow, Evaluation

OVERALL_ROW_ID = "overall"


def _highlight(cells: list[ComparisonCell]) -> tuple[ComparisonCell, ...]:
    """Mark the best and worst scores in a row.

    Only cells with a score take part. Nothing is marked unless at least two
    repositories have a score and they are not all equal. Ties share the mark.
    """
    scores = [cell.score for cell in cells if cell.available and cell.score is not None]
    if len(scores) < 2:
        return tuple(cells)

    best, worst = max(scores), min(scores)
    if best == worst:
        return tuple(cells)

    return tuple(
        cell.model_copy(update={"is_best": cell.score == best, "is_worst": cell.score == worst})
        if cell.available and cell.score is not None
        else cell
        for cell in cells
    )


def compare(evaluations: Sequence[Evaluation]) -> Comparison:
    """Compare evaluations metric by metric.

    Rows follow the order in which metric ids are first seen. A repository
    that lacks a metric gets an unavailable (N/A) cell.
    """
    names = tuple(e.repository.full_name for e in evaluations)

    overall = ComparisonRow(
        metric_id=OVERALL_ROW_ID,
        name="Overall Health Score",
        cells=_highlight([
            ComparisonCell(
                repository=e.repository.full_name,
                score=e.health_score.overall_score,
                grade=e.health_score.overall_grade,
            )
            for e in evaluations
        ]),
    )

    metric_names: dict[str, str] = {}
    for evaluation in evaluations:
        for metric in evaluation.metrics:
            metric_names.setdefault(metric.id, metric.name)

    rows = []
    for metric_id, name in metric_names.items():
        cells = []
        for evaluation in evaluations:
            metric = evaluation.metric(metric_id)
            if metric is None:
                cells.append(ComparisonCell(repository=evaluation.repository.full_name, available=False))
            else:
                cells.append(
                    ComparisonCell(
                        repository=evaluation.repository.full_name,
                        score=metric.score,
                        grade=metric.grade,
                    )
                )
        rows.append(ComparisonRow(metric_id=metric_id, name=name, cells=_highlight(cells)))

    return Comparison(repositories=names, overall=overall, rows=tuple(rows))
