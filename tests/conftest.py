"""
Shared fixtures for repohealth tests: a controllable clock, an in-memory
data source and raw GitHub-shaped payloads for a healthy repository.
"""

from __future__ import annotations

import asyncio
import base64
from datetime import datetime, timedelta, timezone

import pytest

from repohealth.adapters.base import DataSource, ResourceDescriptor

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def iso(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = NOW):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeSource(DataSource):
    """Serves canned responses per resource.

    A response that is an exception instance is raised instead. When
    ``gate`` is set, every fetch waits for it before answering.
    """

    def __init__(self, responses: dict | None = None):
        self.responses = dict(responses or {})
        self.calls: list[ResourceDescriptor] = []
        self.gate: asyncio.Event | None = None

    def calls_for(self, resource: str) -> int:
        return sum(1 for d in self.calls if d.resource == resource)

    async def fetch(self, descriptor: ResourceDescriptor):
        self.calls.append(descriptor)
        if self.gate is not None:
            await self.gate.wait()
        response = self.responses.get(descriptor.resource, [])
        if isinstance(response, Exception):
            raise response
        return response


def healthy_payloads(now: datetime = NOW) -> dict:
    """Raw responses for an active, well-documented repository."""
    commits = [
        {
            "sha": f"c{i}",
            "author": {"login": f"dev{i % 6}"},
            "commit": {"author": {"date": iso(now - timedelta(days=i % 80, hours=1))}},
        }
        for i in range(300)
    ]
    releases = [
        {"tag_name": f"v1.{i}", "published_at": iso(now - timedelta(days=20 * i + 1)), "draft": False}
        for i in range(6)
    ]
    contributors = [{"login": f"dev{i}", "contributions": 500 - i * 5, "type": "User"} for i in range(60)]
    contributors.append({"login": "dependabot[bot]", "contributions": 5000, "type": "Bot"})

    issues = []
    comments = []
    for n in range(1, 21):
        url = f"https://api.github.com/repos/acme/widget/issues/{n}"
        created = now - timedelta(days=30)
        closed = n > 2
        issues.append({
            "number": n,
            "url": url,
            "state": "closed" if closed else "open",
            "user": {"login": "reporter"},
            "created_at": iso(created),
            "updated_at": iso(now - timedelta(days=1)),
            "closed_at": iso(created + timedelta(days=2)) if closed else None,
        })
        comments.append({"issue_url": url, "user": {"login": "reporter"}, "created_at": iso(created + timedelta(hours=1))})
        comments.append({"issue_url": url, "user": {"login": "dev0"}, "created_at": iso(created + timedelta(hours=4))})

    pulls = [
        {"number": 100 + i, "state": "closed", "created_at": iso(now - timedelta(days=10)),
         "merged_at": iso(now - timedelta(days=9)) if i < 9 else None}
        for i in range(10)
    ]
    readme_text = (
        "# Widget\n\n![CI](https://img.shields.io/badge/ci-passing-green)\n\n"
        "## Table of Contents\n\n## Installation\n\npip install widget\n\n"
        "## Usage\n\n" + "Widget does useful things. " * 30
    )
    return {
        "repo": {
            "full_name": "acme/widget",
            "pushed_at": iso(now - timedelta(days=1)),
            "created_at": iso(now - timedelta(days=2000)),
            "has_wiki": True,
            "archived": False,
            "stargazers_count": 1200,
            "forks_count": 80,
            "language": "Python",
            "topics": ["cli", "Health-Checks"],
            "license": {"key": "mit", "name": "MIT License", "spdx_id": "MIT"},
        },
        "commits": commits,
        "releases": releases,
        "contributors": contributors,
        "issues": issues,
        "pulls": pulls,
        "issue_comments": comments,
        "community": {
            "health_percentage": 100,
            "files": {
                "security": {"url": "x"},
                "code_of_conduct": {"url": "x"},
                "contributing": {"url": "x"},
                "license": {"url": "x"},
                "readme": {"url": "x"},
            },
        },
        "contents": [
            {"name": "docs", "path": "docs", "type": "dir"},
            {"name": "README.md", "path": "README.md", "type": "file"},
        ],
        "readme": {"content": base64.b64encode(readme_text.encode()).decode(), "encoding": "base64"},
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def payloads():
    return healthy_payloads()


@pytest.fixture
def source(payloads):
    return FakeSource(payloads)
