"""End-to-end evaluation pipeline for repositories."""

import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Sequence

from repohealth.adapters.base import DataSource, FetchError, NotFound, ResourceDescriptor
from repohealth.analyzers.criteria import CriterionEvaluator, validate_criteria
from repohealth.analyzers.definitions import (
    BASELINE_METRICS,
    PROFILES,
    THRESHOLD_TABLES,
    EvaluationProfile,
    validate_profile,
)
from repohealth.analyzers.metrics import ACTIVITY_WINDOW_DAYS, MetricCalculator
from repohealth.analyzers.scorer import HealthScoreCalculator
from repohealth.cache import ResponseCache
from repohealth.models.facts import (
    FACT_PARSERS,
    CommunityProfile,
    Readme,
    RepositoryFacts,
)
from repohealth.models.schemas import CustomCriterion, Evaluation, RepoRef

logger = logging.getLogger(__name__)

# A 404 on these resources is a finding (the file is absent), not missing data
EMPTY_ON_NOT_FOUND = {
    "readme": Readme,
    "contents": tuple,
    "community": CommunityProfile,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EvaluationPipeline:
    """Orchestrates the evaluation of repositories.

    Pipeline stages:
    1. Fetch every resource through the response cache (concurrently)
    2. Parse responses into typed facts
    3. Calculate metrics and evaluate custom criteria
    4. Aggregate categories and the overall score
    5. Save results
    """

    def __init__(
        self,
        source: DataSource,
        cache: ResponseCache | None = None,
        profile: EvaluationProfile = PROFILES["default"],
        data_dir: Path | None = None,
        clock: Callable[[], datetime] | None = None,
        criteria: Sequence[CustomCriterion] = (),
    ) -> None:
        """Initialize the pipeline.

        Args:
            source: Data source the facts are fetched from.
            cache: Response cache. Defaults to an in-memory cache.
            profile: Category weights and disabled metrics.
            data_dir: Directory to save results. Defaults to ./data.
            clock: Returns the current time; injectable for tests.
            criteria: Custom Pass/Fail criteria reported next to the metrics.

        Raises:
            ConfigurationError: If the profile, metric definitions or criteria are invalid.
        """
        validate_profile(profile, BASELINE_METRICS, THRESHOLD_TABLES)
        validate_criteria(criteria)

        self.source = source
        self.cache = cache if cache is not None else ResponseCache(clock=clock)
        self.profile = profile
        self.data_dir = data_dir or Path("data")
        self._clock = clock or _utcnow
        self.calculator = MetricCalculator(clock=self._clock)
        self.scorer = HealthScoreCalculator(profile)
        self.criteria = tuple(criteria)
        self.criterion_evaluator = CriterionEvaluator(clock=self._clock)

    def descriptors(self, repo_ref: RepoRef) -> list[ResourceDescriptor]:
        """Requests needed to evaluate one repository."""
        since = (self._clock() - timedelta(days=ACTIVITY_WINDOW_DAYS)).strftime("%Y-%m-%d")
        return [
            ResourceDescriptor.for_repo(repo_ref, "repo"),
            ResourceDescriptor.for_repo(repo_ref, "commits", since=since),
            ResourceDescriptor.for_repo(repo_ref, "releases"),
            ResourceDescriptor.for_repo(repo_ref, "contributors"),
            ResourceDescriptor.for_repo(repo_ref, "issues", state="all"),
            ResourceDescriptor.for_repo(repo_ref, "pulls", state="all"),
            ResourceDescriptor.for_repo(repo_ref, "issue_comments", since=f"{since}T00:00:00Z"),
            ResourceDescriptor.for_repo(repo_ref, "community"),
            ResourceDescriptor.for_repo(repo_ref, "contents"),
            ResourceDescriptor.for_repo(repo_ref, "readme"),
        ]

    async def gather_facts(self, repo_ref: RepoRef) -> RepositoryFacts:
        """Fetch and parse every resource. A failure only affects its own resource."""
        descriptors = self.descriptors(repo_ref)
        results = await asyncio.gather(
            *(self._fetch(descriptor) for descriptor in descriptors),
            return_exceptions=True,
        )

        fields: dict[str, Any] = {}
        unavailable: dict[str, str] = {}
        stale: set[str] = set()

        for descriptor, result in zip(descriptors, results):
            resource = descriptor.resource
            if isinstance(result, NotFound) and resource in EMPTY_ON_NOT_FOUND:
                fields[resource] = EMPTY_ON_NOT_FOUND[resource]()
            elif isinstance(result, FetchError):
                logger.warning(f"Could not fetch {resource} for {repo_ref.full_name}: {result}")
                unavailable[resource] = str(result)
            elif isinstance(result, BaseException):
                raise result
            else:
                value, was_stale = result
                try:
                    fields[resource] = FACT_PARSERS[resource](value)
                except (TypeError, ValueError, AttributeError) as e:
                    logger.warning(f"Malformed {resource} response for {repo_ref.full_name}: {e}")
                    unavailable[resource] = f"malformed response: {e}"
                    continue
                if was_stale:
                    stale.add(resource)

        return RepositoryFacts(**fields, unavailable=unavailable, stale=frozenset(stale))

    async def _fetch(self, descriptor: ResourceDescriptor) -> tuple[Any, bool]:
        response = await self.cache.fetch(
            descriptor.fingerprint,
            lambda: self.source.fetch(descriptor),
        )
        return response.value, response.stale

    async def evaluate(self, repo_ref: RepoRef, save: bool = False) -> Evaluation:
        """Run the full evaluation on a single repository.

        Args:
            repo_ref: Repository to evaluate.
            save: Whether to save results to disk.

        Returns:
            Complete Evaluation.
        """
        logger.info(f"Evaluating {repo_ref.full_name} with profile '{self.profile.name}'")

        facts = await self.gather_facts(repo_ref)
        metrics = self.calculator.calculate_all(facts, self.profile)
        health_score = self.scorer.calculate(metrics)

        evaluation = Evaluation(
            repository=repo_ref,
            health_score=health_score,
            metrics=tuple(metrics),
            summary=self.scorer.build_summary(health_score),
            criteria=tuple(self.criterion_evaluator.evaluate_all(self.criteria, facts)),
            profile=self.profile.name,
            evaluated_at=self._clock(),
        )

        review_count = sum(1 for m in metrics if m.needs_review)
        logger.info(
            f"{repo_ref.full_name}: {health_score.overall_score} ({health_score.overall_grade.value}), "
            f"{review_count} metric(s) need manual review"
        )

        if save:
            self._save_evaluation(evaluation)
        return evaluation

    async def evaluate_many(self, repo_refs: list[RepoRef], save: bool = False) -> list[Evaluation]:
        """Evaluate several repositories concurrently, preserving order."""
        return list(await asyncio.gather(*(self.evaluate(ref, save=save) for ref in repo_refs)))

    def _save_evaluation(self, evaluation: Evaluation) -> Path:
        """Save an evaluation to disk.

        Args:
            evaluation: The evaluation to save.

        Returns:
            Path to saved file.
        """
        repo = evaluation.repository
        output_dir = self.data_dir / "evaluations" / repo.platform.value / repo.owner
        output_dir.mkdir(parents=True, exist_ok=True)

        filepath = output_dir / f"{repo.repo}.json"
        data = evaluation.model_dump(mode="json")
        filepath.write_text(json.dumps(data, indent=2, default=str))
        logger.debug(f"Saved evaluation to {filepath}")
        return filepath
