"""Baseline metric definitions, threshold tables and evaluation profiles."""

import math

from pydantic import BaseModel, ConfigDict, Field

from repohealth.analyzers.thresholds import ThresholdTable, higher_is_better, lower_is_better
from repohealth.errors import ConfigurationError
from repohealth.models.schemas import Category, MetricKind

WEIGHT_TOLERANCE = 1e-6


class MetricDefinition(BaseModel):
    """Static description of a metric."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: Category
    kind: MetricKind
    explanation: str
    why_it_matters: str
    data_source: str
    thresholds: str | None = None  # Key into THRESHOLD_TABLES for numeric metrics
    requires: tuple[str, ...] = ()  # Data source resources the metric is computed from


class EvaluationProfile(BaseModel):
    """Category weights and metric selection for one evaluation."""

    model_config = ConfigDict(frozen=True)

    name: str
    weights: dict[Category, float]
    disabled_metrics: frozenset[str] = Field(default_factory=frozenset)

    def is_enabled(self, metric_id: str) -> bool:
        return metric_id not in self.disabled_metrics


THRESHOLD_TABLES: dict[str, ThresholdTable] = {
    # Activity
    "commit-frequency": higher_is_better(20, 5, 1, unit="commits/week", scores={"fair": 50, "poor": 25}),
    "release-cadence": lower_is_better(30, 90, 180, unit="days between releases"),
    "last-activity": lower_is_better(7, 30, 90, unit="days", scores={"fair": 55, "poor": 25}),
    # Community
    "contributor-count": higher_is_better(50, 10, 3, unit="contributors"),
    "new-contributors": higher_is_better(
        5, 2, 1, unit="new contributors", scores={"good": 75, "fair": 55, "poor": 25}
    ),
    "pr-merge-rate": higher_is_better(70, 50, 30, unit="%", scores={"good": 75, "fair": 50, "poor": 25}),
    # Maintenance
    "open-issues-ratio": lower_is_better(20, 40, 60, unit="%", scores={"good": 75, "fair": 50, "poor": 25}),
    "issue-response-time": lower_is_better(
        24, 72, 168, unit="hours", scores={"good": 75, "fair": 50, "poor": 25}
    ),
    "stale-issues-percentage": lower_is_better(
        10, 25, 50, unit="%", scores={"good": 75, "fair": 50, "poor": 25}
    ),
    "average-time-to-close": lower_is_better(
        7, 30, 90, unit="days", scores={"good": 75, "fair": 50, "poor": 25}
    ),
    # Documentation
    "readme-quality": higher_is_better(5, 4, 3, unit="points"),
    # Security & governance
    "bus-factor": higher_is_better(5, 3, 2, unit="contributors", scores={"good": 75, "fair": 50, "poor": 25}),
}


BASELINE_METRICS: tuple[MetricDefinition, ...] = (
    # Activity Metrics (3)
    MetricDefinition(
        id="commit-frequency",
        name="Commit Frequency",
        category=Category.ACTIVITY,
        kind=MetricKind.NUMERIC,
        explanation="Average commits per week over the last 90 days",
        why_it_matters="High commit frequency indicates active development and regular maintenance",
        data_source="GitHub API: /repos/{owner}/{repo}/commits",
        thresholds="commit-frequency",
        requires=("commits",),
    ),
    MetricDefinition(
        id="release-cadence",
        name="Release Cadence",
        category=Category.ACTIVITY,
        kind=MetricKind.NUMERIC,
        explanation="Average days between releases (last 5 releases)",
        why_it_matters="Regular releases indicate mature release processes and active development",
        data_source="GitHub API: /repos/{owner}/{repo}/releases",
        thresholds="release-cadence",
        requires=("releases",),
    ),
    MetricDefinition(
        id="last-activity",
        name="Last Activity",
        category=Category.ACTIVITY,
        kind=MetricKind.NUMERIC,
        explanation="Days since the last push to the repository",
        why_it_matters="Recent activity indicates the project is actively maintained",
        data_source="GitHub API: /repos/{owner}/{repo} (pushed_at)",
        thresholds="last-activity",
        requires=("repo",),
    ),
    # Community Metrics (3)
    MetricDefinition(
        id="contributor-count",
        name="Contributor Count",
        category=Category.COMMUNITY,
        kind=MetricKind.NUMERIC,
        explanation="Total number of unique contributors",
        why_it_matters="More contributors indicates a healthy, diverse community",
        data_source="GitHub API: /repos/{owner}/{repo}/contributors",
        thresholds="contributor-count",
        requires=("contributors",),
    ),
    MetricDefinition(
        id="new-contributors",
        name="New Contributors (90 days)",
        category=Category.COMMUNITY,
        kind=MetricKind.NUMERIC,
        explanation="Number of first-time contributors in the last 90 days",
        why_it_matters="New contributors indicate a growing community and welcoming environment",
        data_source="GitHub API: /repos/{owner}/{repo}/commits",
        thresholds="new-contributors",
        requires=("commits", "contributors"),
    ),
    MetricDefinition(
        id="pr-merge-rate",
        name="PR Merge Rate",
        category=Category.COMMUNITY,
        kind=MetricKind.NUMERIC,
        explanation="Percentage of pull requests that get merged",
        why_it_matters="High merge rate indicates active maintainers and a welcoming contribution process",
        data_source="GitHub API: /repos/{owner}/{repo}/pulls",
        thresholds="pr-merge-rate",
        requires=("pulls",),
    ),
    # Maintenance Metrics (4)
    MetricDefinition(
        id="open-issues-ratio",
        name="Open Issues Ratio",
        category=Category.MAINTENANCE,
        kind=MetricKind.NUMERIC,
        explanation="Percentage of issues currently open",
        why_it_matters="Lower ratio indicates good issue management and responsiveness",
        data_source="GitHub API: /repos/{owner}/{repo}/issues",
        thresholds="open-issues-ratio",
        requires=("issues",),
    ),
    MetricDefinition(
        id="issue-response-time",
        name="Issue Response Time",
        category=Category.MAINTENANCE,
        kind=MetricKind.NUMERIC,
        explanation="Median hours until the first response from someone other than the author",
        why_it_matters="Fast response times indicate active maintainers and good support",
        data_source="GitHub API: /repos/{owner}/{repo}/issues/comments",
        thresholds="issue-response-time",
        requires=("issues", "issue_comments"),
    ),
    MetricDefinition(
        id="stale-issues-percentage",
        name="Stale Issues Percentage",
        category=Category.MAINTENANCE,
        kind=MetricKind.NUMERIC,
        explanation="Percentage of open issues with no activity in 90+ days",
        why_it_matters="Lower percentage indicates active issue triage and maintenance",
        data_source="GitHub API: /repos/{owner}/{repo}/issues",
        thresholds="stale-issues-percentage",
        requires=("issues",),
    ),
    MetricDefinition(
        id="average-time-to-close",
        name="Average Time to Close",
        category=Category.MAINTENANCE,
        kind=MetricKind.NUMERIC,
        explanation="Average days to close issues",
        why_it_matters="Faster closure indicates efficient issue resolution",
        data_source="GitHub API: /repos/{owner}/{repo}/issues",
        thresholds="average-time-to-close",
        requires=("issues",),
    ),
    # Documentation Metrics (3)
    MetricDefinition(
        id="readme-quality",
        name="README Quality Score",
        category=Category.DOCUMENTATION,
        kind=MetricKind.NUMERIC,
        explanation="Score based on README completeness (0-5 points)",
        why_it_matters="A quality README helps users understand and adopt the project",
        data_source="GitHub API: /repos/{owner}/{repo}/readme",
        thresholds="readme-quality",
        requires=("readme",),
    ),
    MetricDefinition(
        id="documentation-directory",
        name="Documentation Directory",
        category=Category.DOCUMENTATION,
        kind=MetricKind.BOOLEAN,
        explanation="Presence of a docs/, doc/ or documentation/ directory",
        why_it_matters="Dedicated docs indicate comprehensive documentation beyond the README",
        data_source="GitHub API: /repos/{owner}/{repo}/contents",
        requires=("contents",),
    ),
    MetricDefinition(
        id="wiki-presence",
        name="Wiki Presence",
        category=Category.DOCUMENTATION,
        kind=MetricKind.BOOLEAN,
        explanation="Whether the repository has its wiki enabled",
        why_it_matters="A wiki provides additional documentation and community knowledge",
        data_source="GitHub API: /repos/{owner}/{repo} (has_wiki)",
        requires=("repo",),
    ),
    # Security & Governance Metrics (5)
    MetricDefinition(
        id="security-policy",
        name="Security Policy",
        category=Category.SECURITY,
        kind=MetricKind.BOOLEAN,
        explanation="Presence of a SECURITY.md file",
        why_it_matters="A security policy shows commitment to handling vulnerabilities responsibly",
        data_source="GitHub API: /repos/{owner}/{repo}/community/profile",
        requires=("community",),
    ),
    MetricDefinition(
        id="code-of-conduct",
        name="Code of Conduct",
        category=Category.SECURITY,
        kind=MetricKind.BOOLEAN,
        explanation="Presence of a CODE_OF_CONDUCT.md file",
        why_it_matters="A code of conduct indicates a welcoming and inclusive community",
        data_source="GitHub API: /repos/{owner}/{repo}/community/profile",
        requires=("community",),
    ),
    MetricDefinition(
        id="contributing-guidelines",
        name="Contributing Guidelines",
        category=Category.SECURITY,
        kind=MetricKind.BOOLEAN,
        explanation="Presence of a CONTRIBUTING.md file",
        why_it_matters="Contributing guidelines help new contributors get started",
        data_source="GitHub API: /repos/{owner}/{repo}/community/profile",
        requires=("community",),
    ),
    MetricDefinition(
        id="license",
        name="License",
        category=Category.SECURITY,
        kind=MetricKind.BOOLEAN,
        explanation="Presence of a LICENSE file",
        why_it_matters="A license clarifies usage rights and protects contributors",
        data_source="GitHub API: /repos/{owner}/{repo}/community/profile",
        requires=("community",),
    ),
    MetricDefinition(
        id="bus-factor",
        name="Bus Factor",
        category=Category.SECURITY,
        kind=MetricKind.NUMERIC,
        explanation="Number of contributors accounting for 50% of commits",
        why_it_matters="A higher bus factor reduces the risk of project abandonment",
        data_source="GitHub API: /repos/{owner}/{repo}/contributors",
        thresholds="bus-factor",
        requires=("contributors",),
    ),
)


PROFILES: dict[str, EvaluationProfile] = {
    "default": EvaluationProfile(
        name="default",
        weights={
            Category.ACTIVITY: 0.25,
            Category.COMMUNITY: 0.20,
            Category.MAINTENANCE: 0.25,
            Category.DOCUMENTATION: 0.15,
            Category.SECURITY: 0.15,
        },
    ),
    "activity": EvaluationProfile(
        name="activity",
        weights={
            Category.ACTIVITY: 0.40,
            Category.COMMUNITY: 0.20,
            Category.MAINTENANCE: 0.20,
            Category.DOCUMENTATION: 0.10,
            Category.SECURITY: 0.10,
        },
    ),
    "community": EvaluationProfile(
        name="community",
        weights={
            Category.ACTIVITY: 0.15,
            Category.COMMUNITY: 0.35,
            Category.MAINTENANCE: 0.25,
            Category.DOCUMENTATION: 0.10,
            Category.SECURITY: 0.15,
        },
    ),
}


def get_definition(metric_id: str) -> MetricDefinition | None:
    for definition in BASELINE_METRICS:
        if definition.id == metric_id:
            return definition
    return None


def get_profile(name: str) -> EvaluationProfile:
    """Look up a built-in profile by name.

    Raises:
        ConfigurationError: If no such profile exists.
    """
    profile = PROFILES.get(name.lower())
    if profile is None:
        supported = ", ".join(PROFILES)
        raise ConfigurationError(f"Unknown profile: {name}. Supported: {supported}", subject=name)
    return profile


def validate_profile(
    profile: EvaluationProfile,
    definitions: tuple[MetricDefinition, ...] = BASELINE_METRICS,
    tables: dict[str, ThresholdTable] = THRESHOLD_TABLES,
) -> None:
    """Check a profile and its metric definitions before any scoring.

    Raises:
        ConfigurationError: On weights that do not sum to 1.0, categories
            without a weight, unknown metrics, or numeric metrics whose
            threshold table is missing or malformed.
    """
    for category, weight in profile.weights.items():
        if not 0 <= weight <= 1 or not math.isfinite(weight):
            raise ConfigurationError(
                f"Weight for {category.value} must be between 0 and 1, got {weight}",
                subject=profile.name,
            )

    total = sum(profile.weights.values())
    if abs(total - 1.0) > WEIGHT_TOLERANCE:
        raise ConfigurationError(
            f"Category weights in profile '{profile.name}' sum to {total:.6f}, expected 1.0",
            subject=profile.name,
        )

    known_ids = [definition.id for definition in definitions]
    duplicates = sorted({metric_id for metric_id in known_ids if known_ids.count(metric_id) > 1})
    if duplicates:
        raise ConfigurationError(f"Duplicate metric id(s): {', '.join(duplicates)}")

    unknown = sorted(profile.disabled_metrics - set(known_ids))
    if unknown:
        raise ConfigurationError(
            f"Profile '{profile.name}' disables unknown metric(s): {', '.join(unknown)}",
            subject=profile.name,
        )

    for definition in definitions:
        if not profile.is_enabled(definition.id):
            continue
        if definition.category not in profile.weights:
            raise ConfigurationError(
                f"Metric '{definition.id}' belongs to category '{definition.category.value}' "
                f"which has no weight in profile '{profile.name}'",
                subject=definition.id,
            )
        if definition.kind != MetricKind.NUMERIC:
            continue
        if definition.thresholds is None or definition.thresholds not in tables:
            raise ConfigurationError(
                f"Metric '{definition.id}' references undefined threshold table "
                f"'{definition.thresholds}'",
                subject=definition.id,
            )
        tables[definition.thresholds].validate_bands(definition.thresholds)
