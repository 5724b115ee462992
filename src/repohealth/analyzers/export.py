"""Export of evaluations as JSON or CSV."""

import csv
import io
import json
from enum import Enum
from typing import Sequence

from repohealth.models.schemas import Comparison, Evaluation

NOT_AVAILABLE = "N/A"


class ExportFormat(str, Enum):
    """Output file formats."""

    JSON = "json"
    CSV = "csv"


def _format_score(score: float | int | None) -> str:
    if score is None:
        return NOT_AVAILABLE
    if isinstance(score, float):
        return f"{score:.1f}"
    return str(score)


def evaluations_to_csv(evaluations: Sequence[Evaluation]) -> str:
    """Flatten evaluations into one CSV row per repository.

    Columns cover every metric and custom criterion that appears in any of
    the evaluations, in first-seen order. Values a repository lacks, and
    scores that need manual review, are written as N/A.

    Raises:
        ValueError: If there is nothing to export.
    """
    if not evaluations:
        raise ValueError("No evaluations to export")

    metric_names: dict[str, str] = {}
    criterion_names: dict[str, str] = {}
    for evaluation in evaluations:
        for metric in evaluation.metrics:
            metric_names.setdefault(metric.id, metric.name)
        for result in evaluation.criteria:
            criterion_names.setdefault(result.id, result.name)

    header = ["Repository", "Overall Score", "Overall Grade"]
    for name in metric_names.values():
        header.extend([f"{name} - Score", f"{name} - Grade"])
    for name in criterion_names.values():
        header.append(f"{name} - Result")

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)

    for evaluation in evaluations:
        health = evaluation.health_score
        row = [
            evaluation.repository.full_name,
            _format_score(health.overall_score),
            health.overall_grade.value,
        ]
        for metric_id in metric_names:
            metric = evaluation.metric(metric_id)
            if metric is None:
                row.extend([NOT_AVAILABLE, NOT_AVAILABLE])
            else:
                row.extend([_format_score(metric.score), metric.grade.value])

        results = {result.id: result for result in evaluation.criteria}
        for criterion_id in criterion_names:
            result = results.get(criterion_id)
            row.append(result.grade.value if result else NOT_AVAILABLE)

        writer.writerow(row)

    return buffer.getvalue()


def render_evaluation(evaluation: Evaluation, fmt: ExportFormat) -> str:
    if fmt == ExportFormat.CSV:
        return evaluations_to_csv([evaluation])
    return json.dumps(evaluation.model_dump(mode="json"), indent=2, default=str)


def render_comparison(
    comparison: Comparison, evaluations: Sequence[Evaluation], fmt: ExportFormat
) -> str:
    """Render a comparison. CSV holds one row per compared repository."""
    if fmt == ExportFormat.CSV:
        return evaluations_to_csv(evaluations)
    return json.dumps(comparison.model_dump(mode="json"), indent=2, default=str)
