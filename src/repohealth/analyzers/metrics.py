"""Metric calculation from repository facts."""

import logging
import re
import statistics
from datetime import datetime, timedelta, timezone
from typing import Callable

from repohealth.analyzers.definitions import (
    BASELINE_METRICS,
    THRESHOLD_TABLES,
    EvaluationProfile,
    MetricDefinition,
)
from repohealth.analyzers.thresholds import (
    ThresholdTable,
    is_finite_number,
    round_half_up,
    score_to_grade,
)
from repohealth.errors import ConfigurationError, DataUnavailable
from repohealth.models.facts import RepositoryFacts
from repohealth.models.schemas import Confidence, Grade, Metric, MetricKind

logger = logging.getLogger(__name__)

ACTIVITY_WINDOW_DAYS = 90
RELEASES_CONSIDERED = 5
MIN_RESPONSE_SAMPLES = 5
DOCS_DIRECTORIES = {"docs", "doc", "documentation"}

# README quality checks, one point each (plus one for length)
README_MIN_LENGTH = 500
README_PATTERNS = [
    re.compile(r"##?\s*(install|installation|getting started|setup)", re.IGNORECASE),
    re.compile(r"##?\s*(usage|example|quick start)", re.IGNORECASE),
    re.compile(r"!\[.*\]\(https://(img\.shields\.io|badge)", re.IGNORECASE),
    re.compile(r"##?\s*(table of contents|toc)", re.IGNORECASE),
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _days(delta: timedelta) -> float:
    return delta.total_seconds() / 86400


class MetricCalculator:
    """Turns fetched facts into scored metrics.

    Each metric computation returns ``(value, confidence)`` or raises
    ``DataUnavailable``. Missing resources and ambiguous signals produce a
    metric flagged for manual review instead of a guessed score.
    """

    def __init__(
        self,
        definitions: tuple[MetricDefinition, ...] = BASELINE_METRICS,
        tables: dict[str, ThresholdTable] = THRESHOLD_TABLES,
        clock: Callable[[], datetime] | None = None,
    ):
        self.definitions = definitions
        self.tables = tables
        self._clock = clock or _utcnow

        self._computations = {
            "commit-frequency": self._commit_frequency,
            "release-cadence": self._release_cadence,
            "last-activity": self._last_activity,
            "contributor-count": self._contributor_count,
            "new-contributors": self._new_contributors,
            "pr-merge-rate": self._pr_merge_rate,
            "open-issues-ratio": self._open_issues_ratio,
            "issue-response-time": self._issue_response_time,
            "stale-issues-percentage": self._stale_issues_percentage,
            "average-time-to-close": self._average_time_to_close,
            "readme-quality": self._readme_quality,
            "documentation-directory": self._documentation_directory,
            "wiki-presence": self._wiki_presence,
            "security-policy": self._security_policy,
            "code-of-conduct": self._code_of_conduct,
            "contributing-guidelines": self._contributing_guidelines,
            "license": self._license,
            "bus-factor": self._bus_factor,
        }

    def calculate_all(self, facts: RepositoryFacts, profile: EvaluationProfile) -> list[Metric]:
        """Calculate every metric enabled in the profile."""
        return [
            self.calculate(definition, facts)
            for definition in self.definitions
            if profile.is_enabled(definition.id)
        ]

    def calculate(self, definition: MetricDefinition, facts: RepositoryFacts) -> Metric:
        """Calculate one metric.

        Raises:
            ConfigurationError: If no computation exists for the metric.
        """
        compute = self._computations.get(definition.id)
        if compute is None:
            raise ConfigurationError(
                f"No computation registered for metric '{definition.id}'", subject=definition.id
            )

        missing = facts.missing(definition.requires)
        if missing:
            reasons = "; ".join(f"{resource}: {reason}" for resource, reason in missing.items())
            return self.manual_review(definition, f"Data unavailable ({reasons})")

        try:
            value, confidence = compute(facts)
        except DataUnavailable as e:
            return self.manual_review(definition, e.reason)

        if facts.any_stale(definition.requires):
            confidence = confidence.downgrade()

        return self.build_metric(definition, value, confidence)

    def build_metric(self, definition: MetricDefinition, value, confidence: Confidence) -> Metric:
        """Score a raw value according to the metric's kind."""
        if definition.kind == MetricKind.BOOLEAN:
            passed = bool(value)
            return self._metric(
                definition,
                value=passed,
                score=100 if passed else 0,
                grade=Grade.PASS if passed else Grade.FAIL,
                confidence=confidence,
                explanation=definition.explanation,
            )

        if not is_finite_number(value):
            return self.manual_review(definition, f"Non-numeric value: {value!r}")

        table = self.tables[definition.thresholds]
        band, score = table.score(value)
        return self._metric(
            definition,
            value=value,
            score=score,
            grade=score_to_grade(score),
            confidence=confidence,
            explanation=f"{definition.explanation} ({band})",
            threshold=table.describe(),
        )

    def manual_review(self, definition: MetricDefinition, reason: str) -> Metric:
        """Build a metric that could not be scored."""
        logger.warning(f"Metric {definition.id} needs manual review: {reason}")
        return self._metric(
            definition,
            value=None,
            score=None,
            grade=Grade.MANUAL_REVIEW,
            confidence=Confidence.MANUAL_REVIEW,
            explanation=f"{definition.explanation}. Manual review needed: {reason}",
        )

    def _metric(self, definition: MetricDefinition, **fields) -> Metric:
        fields.setdefault("threshold", {})
        return Metric(
            id=definition.id,
            name=definition.name,
            category=definition.category,
            kind=definition.kind,
            why_it_matters=definition.why_it_matters,
            data_source=definition.data_source,
            calculated_at=self._clock(),
            **fields,
        )

    # --- Activity ---

    def _window_start(self) -> datetime:
        return self._clock() - timedelta(days=ACTIVITY_WINDOW_DAYS)

    def _commit_frequency(self, facts: RepositoryFacts):
        since = self._window_start()
        recent = [c for c in facts.commits if c.authored_at is not None and c.authored_at >= since]
        weeks = ACTIVITY_WINDOW_DAYS / 7
        return round_half_up(len(recent) / weeks, 2), Confidence.HIGH

    def _release_cadence(self, facts: RepositoryFacts):
        published = sorted(
            (r.published_at for r in facts.releases if r.published_at is not None and not r.draft),
            reverse=True,
        )[:RELEASES_CONSIDERED]
        if len(published) < 2:
            raise DataUnavailable(f"Only {len(published)} published release(s); need at least 2")

        intervals = [_days(newer - older) for newer, older in zip(published, published[1:])]
        return round_half_up(statistics.mean(intervals), 1), Confidence.HIGH

    def _last_activity(self, facts: RepositoryFacts):
        pushed_at = facts.repo.pushed_at
        if pushed_at is None:
            raise DataUnavailable("Repository has no recorded push")
        return max(0, int(_days(self._clock() - pushed_at))), Confidence.HIGH

    # --- Community ---

    def _contributor_count(self, facts: RepositoryFacts):
        return len(facts.contributors), Confidence.HIGH

    def _new_contributors(self, facts: RepositoryFacts):
        """Authors whose every commit falls inside the window."""
        since = self._window_start()
        window_commits: dict[str, int] = {}
        for commit in facts.commits:
            if commit.author_login and commit.authored_at is not None and commit.authored_at >= since:
                window_commits[commit.author_login] = window_commits.get(commit.author_login, 0) + 1

        totals = {c.login: c.contributions for c in facts.contributors}
        newcomers = [
            login for login, count in window_commits.items()
            if totals.get(login, count) <= count
        ]
        return len(newcomers), Confidence.MEDIUM

    def _pr_merge_rate(self, facts: RepositoryFacts):
        if not facts.pulls:
            raise DataUnavailable("No pull requests to measure")
        merged = sum(1 for p in facts.pulls if p.merged_at is not None)
        return round_half_up(merged / len(facts.pulls) * 100, 1), Confidence.HIGH

    # --- Maintenance ---

    def _issues_only(self, facts: RepositoryFacts):
        return [i for i in facts.issues if not i.is_pull_request]

    def _open_issues_ratio(self, facts: RepositoryFacts):
        issues = self._issues_only(facts)
        if not issues:
            raise DataUnavailable("No issues to measure")
        open_count = sum(1 for i in issues if i.state == "open")
        return round_half_up(open_count / len(issues) * 100, 1), Confidence.HIGH

    def _issue_response_time(self, facts: RepositoryFacts):
        # Only issues opened inside the comment window have their first reply fetched
        since = self._window_start()
        issues = {
            i.url: i
            for i in self._issues_only(facts)
            if i.url and i.created_at is not None and i.created_at >= since
        }
        first_response: dict[str, datetime] = {}
        for comment in facts.issue_comments:
            issue = issues.get(comment.issue_url)
            if issue is None or comment.created_at is None:
                continue
            if comment.author_login is None or comment.author_login == issue.author_login:
                continue
            current = first_response.get(comment.issue_url)
            if current is None or comment.created_at < current:
                first_response[comment.issue_url] = comment.created_at

        hours = [
            (responded - issues[url].created_at).total_seconds() / 3600
            for url, responded in first_response.items()
        ]
        if not hours:
            raise DataUnavailable("No issues have a response from someone other than the author")

        confidence = Confidence.HIGH if len(hours) >= MIN_RESPONSE_SAMPLES else Confidence.MEDIUM
        return round_half_up(statistics.median(hours), 1), confidence

    def _stale_issues_percentage(self, facts: RepositoryFacts):
        issues = self._issues_only(facts)
        if not issues:
            raise DataUnavailable("No issues to measure")
        open_issues = [i for i in issues if i.state == "open"]
        if not open_issues:
            return 0.0, Confidence.HIGH
        cutoff = self._window_start()
        stale = sum(1 for i in open_issues if (i.updated_at or i.created_at or cutoff) < cutoff)
        return round_half_up(stale / len(open_issues) * 100, 1), Confidence.HIGH

    def _average_time_to_close(self, facts: RepositoryFacts):
        durations = [
            _days(i.closed_at - i.created_at)
            for i in self._issues_only(facts)
            if i.closed_at is not None and i.created_at is not None
        ]
        if not durations:
            raise DataUnavailable("No closed issues to measure")
        return round_half_up(statistics.mean(durations), 1), Confidence.HIGH

    # --- Documentation ---

    def _readme_quality(self, facts: RepositoryFacts):
        text = facts.readme.text
        points = 1 if len(text) > README_MIN_LENGTH else 0
        points += sum(1 for pattern in README_PATTERNS if pattern.search(text))
        return points, Confidence.HIGH

    def _documentation_directory(self, facts: RepositoryFacts):
        found = any(
            entry.type == "dir" and entry.name.lower() in DOCS_DIRECTORIES
            for entry in facts.contents
        )
        return found, Confidence.DEFINITE if found else Confidence.LIKELY

    def _wiki_presence(self, facts: RepositoryFacts):
        return facts.repo.has_wiki, Confidence.DEFINITE

    # --- Security & governance ---

    def _community_file(self, facts: RepositoryFacts, *names: str):
        found = any(facts.community.has_file(name) for name in names)
        return found, Confidence.DEFINITE if found else Confidence.LIKELY

    def _security_policy(self, facts: RepositoryFacts):
        found, confidence = self._community_file(facts, "security")
        if not found and facts.contents is not None:
            found = any(entry.name.lower() == "security.md" for entry in facts.contents)
            if found:
                confidence = Confidence.DEFINITE
        return found, confidence

    def _code_of_conduct(self, facts: RepositoryFacts):
        return self._community_file(facts, "code_of_conduct", "code_of_conduct_file")

    def _contributing_guidelines(self, facts: RepositoryFacts):
        return self._community_file(facts, "contributing")

    def _license(self, facts: RepositoryFacts):
        return self._community_file(facts, "license")

    def _bus_factor(self, facts: RepositoryFacts):
        humans = sorted(
            (c for c in facts.contributors if not c.is_bot and c.contributions > 0),
            key=lambda c: c.contributions,
            reverse=True,
        )
        if not humans:
            return 0, Confidence.LOW

        half = sum(c.contributions for c in humans) * 0.5
        cumulative = 0
        count = 0
        for contributor in humans:
            cumulative += contributor.contributions
            count += 1
            if cumulative >= half:
                break
        return count, Confidence.HIGH
