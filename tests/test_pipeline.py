"""
Tests for EvaluationPipeline: resource fetching through the cache, failure
isolation per resource, stale fallback and saving results.
"""

import asyncio
import json
from datetime import timedelta

import httpx
import pytest

from repohealth.adapters.base import (
    NetworkError,
    NotFound,
    RateLimited,
    ResourceDescriptor,
    Unauthorized,
)
from repohealth.adapters.github import GitHubSource
from repohealth.analyzers.definitions import PROFILES, EvaluationProfile
from repohealth.analyzers.pipeline import EvaluationPipeline
from repohealth.cache import ResponseCache
from repohealth.errors import ConfigurationError
from repohealth.models.schemas import (
    Category,
    Confidence,
    CriterionType,
    CustomCriterion,
    Grade,
    RepoRef,
)

from conftest import FakeSource

REPO = RepoRef(owner="acme", repo="widget")


@pytest.fixture
def cache(clock):
    return ResponseCache(clock=clock)


@pytest.fixture
def pipeline(source, cache, clock, tmp_path):
    return EvaluationPipeline(source=source, cache=cache, data_dir=tmp_path, clock=clock)


class TestEvaluate:
    def test_healthy_repository(self, pipeline):
        evaluation = asyncio.run(pipeline.evaluate(REPO))

        assert evaluation.repository == REPO
        assert len(evaluation.metrics) == 18
        assert evaluation.profile == "default"
        assert evaluation.health_score.overall_score >= 90
        assert evaluation.health_score.overall_grade in (Grade.A, Grade.A_PLUS)
        assert set(evaluation.health_score.category_breakdown) == set(Category)
        assert evaluation.summary is not None
        assert "excellent" in evaluation.summary.text

    def test_each_resource_fetched_once(self, pipeline, source):
        asyncio.run(pipeline.evaluate(REPO))
        asyncio.run(pipeline.evaluate(REPO))
        assert len(source.calls) == 10
        assert source.calls_for("commits") == 1

    def test_request_parameters(self, pipeline, source):
        asyncio.run(pipeline.evaluate(REPO))
        params = {d.resource: d.params for d in source.calls}
        assert params["commits"] == {"since": "2026-03-03"}
        assert params["issues"] == {"state": "all"}
        assert params["pulls"] == {"state": "all"}

    def test_custom_criteria_reported(self, source, cache, clock, tmp_path):
        criteria = [
            CustomCriterion(id="python", name="Python", type=CriterionType.TECHNOLOGY, logic="language == Python"),
            CustomCriterion(id="docker", name="Docker", type=CriterionType.CAPABILITY, logic="has docker"),
            CustomCriterion(id="review", name="Architecture", type=CriterionType.THEME, automatic=False),
        ]
        pipeline = EvaluationPipeline(source=source, cache=cache, data_dir=tmp_path, clock=clock, criteria=criteria)
        evaluation = asyncio.run(pipeline.evaluate(REPO))

        assert [c.grade for c in evaluation.criteria] == [Grade.PASS, Grade.FAIL, Grade.MANUAL_REVIEW]
        assert evaluation.health_score.overall_score >= 90

    def test_evaluate_many_preserves_order(self, pipeline):
        other = RepoRef(owner="acme", repo="gadget")
        evaluations = asyncio.run(pipeline.evaluate_many([REPO, other]))
        assert [e.repository.repo for e in evaluations] == ["widget", "gadget"]


class TestFailureIsolation:
    def test_failed_resource_only_affects_its_metrics(self, pipeline, source):
        source.responses["pulls"] = NetworkError(None, "connection reset")
        evaluation = asyncio.run(pipeline.evaluate(REPO))

        merge_rate = evaluation.metric("pr-merge-rate")
        assert merge_rate.needs_review
        assert "connection reset" in merge_rate.explanation
        assert not evaluation.metric("contributor-count").needs_review
        assert evaluation.health_score.overall_score is not None

    def test_unauthorized_resource(self, pipeline, source):
        source.responses["community"] = Unauthorized(None, 403)
        evaluation = asyncio.run(pipeline.evaluate(REPO))
        for metric_id in ("security-policy", "code-of-conduct", "contributing-guidelines", "license"):
            assert evaluation.metric(metric_id).needs_review

    def test_missing_readme_is_a_finding(self, pipeline, source):
        source.responses["readme"] = NotFound(None)
        source.responses["contents"] = NotFound(None)
        evaluation = asyncio.run(pipeline.evaluate(REPO))

        readme = evaluation.metric("readme-quality")
        assert readme.value == 0
        assert readme.grade == Grade.F
        assert evaluation.metric("documentation-directory").grade == Grade.FAIL

    def test_missing_repository_needs_review(self, pipeline, source):
        source.responses["repo"] = NotFound(None)
        evaluation = asyncio.run(pipeline.evaluate(REPO))
        assert evaluation.metric("last-activity").needs_review
        assert evaluation.metric("wiki-presence").needs_review

    def test_everything_unavailable(self, cache, clock, tmp_path):
        source = FakeSource({resource: RateLimited(None) for resource in (
            "repo", "commits", "releases", "contributors", "issues", "pulls",
            "issue_comments", "community", "contents", "readme",
        )})
        pipeline = EvaluationPipeline(source=source, cache=cache, data_dir=tmp_path, clock=clock)
        evaluation = asyncio.run(pipeline.evaluate(REPO))

        assert all(m.needs_review for m in evaluation.metrics)
        assert evaluation.health_score.overall_score is None
        assert evaluation.health_score.overall_grade == Grade.MANUAL_REVIEW

    def test_malformed_response(self, pipeline, source):
        source.responses["releases"] = "not a list of releases"
        evaluation = asyncio.run(pipeline.evaluate(REPO))
        assert evaluation.metric("release-cadence").needs_review


def github_handler(payloads, overrides):
    """Serve canned payloads by endpoint path, one page at a time."""
    by_path = {
        ResourceDescriptor.for_repo(REPO, resource).endpoint: resource
        for resource in payloads
    }

    def handler(request):
        resource = by_path[request.url.path]
        if resource in overrides:
            return overrides[resource]
        data = payloads[resource]
        if isinstance(data, list) and "per_page" in request.url.params:
            per_page = int(request.url.params["per_page"])
            start = (int(request.url.params["page"]) - 1) * per_page
            data = data[start:start + per_page]
        return httpx.Response(200, json=data)

    return handler


class TestGitHubResponses:
    def evaluate(self, payloads, clock, overrides):
        async def scenario():
            transport = httpx.MockTransport(github_handler(payloads, overrides))
            async with httpx.AsyncClient(transport=transport) as client:
                source = GitHubSource(token="test-token", client=client)
                pipeline = EvaluationPipeline(source=source, cache=ResponseCache(clock=clock), clock=clock)
                return await pipeline.evaluate(REPO)

        return asyncio.run(scenario())

    def test_no_content_contributors(self, payloads, clock):
        evaluation = self.evaluate(payloads, clock, {"contributors": httpx.Response(204)})
        assert evaluation.metric("contributor-count").value == 0
        assert evaluation.health_score.overall_score is not None

    def test_unreadable_body_only_affects_its_metrics(self, payloads, clock):
        page = httpx.Response(200, text="<html>Proxy error</html>")
        evaluation = self.evaluate(payloads, clock, {"contributors": page})

        contributors = evaluation.metric("contributor-count")
        assert contributors.needs_review
        assert "Unreadable response" in contributors.explanation
        assert evaluation.metric("bus-factor").needs_review
        assert not evaluation.metric("commit-frequency").needs_review
        assert evaluation.health_score.overall_score is not None


class TestStaleFallback:
    def test_rate_limited_refresh_uses_stale_data(self, pipeline, source, clock):
        asyncio.run(pipeline.evaluate(REPO))

        clock.advance(hours=25)
        for resource in list(source.responses):
            source.responses[resource] = RateLimited(None)

        evaluation = asyncio.run(pipeline.evaluate(REPO))
        contributors = evaluation.metric("contributor-count")
        assert contributors.value == 61
        assert contributors.confidence == Confidence.MEDIUM
        assert evaluation.metric("license").confidence == Confidence.LIKELY
        assert pipeline.cache.stats.stale_served > 0


class TestConfiguration:
    def test_duplicate_criteria_rejected(self, source):
        criterion = CustomCriterion(id="x", name="x", type=CriterionType.THEME, automatic=False)
        with pytest.raises(ConfigurationError):
            EvaluationPipeline(source=source, criteria=[criterion, criterion])
        assert source.calls == []

    def test_invalid_profile_rejected_before_fetching(self, source):
        profile = EvaluationProfile(name="broken", weights={Category.ACTIVITY: 0.5})
        with pytest.raises(ConfigurationError):
            EvaluationPipeline(source=source, profile=profile)
        assert source.calls == []

    def test_other_profile_changes_weights(self, source, cache, clock, tmp_path):
        pipeline = EvaluationPipeline(
            source=source, cache=cache, profile=PROFILES["activity"], data_dir=tmp_path, clock=clock
        )
        evaluation = asyncio.run(pipeline.evaluate(REPO))
        assert evaluation.profile == "activity"
        assert evaluation.health_score.category_breakdown[Category.ACTIVITY].weight == 0.40


class TestSave:
    def test_evaluation_written_as_json(self, pipeline, tmp_path):
        asyncio.run(pipeline.evaluate(REPO, save=True))

        path = tmp_path / "evaluations" / "github" / "acme" / "widget.json"
        data = json.loads(path.read_text())
        assert data["repository"]["owner"] == "acme"
        assert len(data["metrics"]) == 18
        assert data["health_score"]["overall_grade"] in ("A", "A+")


class TestCancellation:
    def test_cancelled_evaluation_leaves_cache_consistent(self, pipeline, source, cache):
        async def scenario():
            source.gate = asyncio.Event()
            task = asyncio.create_task(pipeline.evaluate(REPO))
            await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

            source.gate.set()
            return await pipeline.evaluate(REPO)

        evaluation = asyncio.run(scenario())
        assert len(evaluation.metrics) == 18
        assert len(source.calls) == 10
        assert len(cache) == 10
