"""Abstract data source and request descriptors."""

import re
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field, field_validator

from repohealth.models.schemas import Platform, RepoRef

# Endpoint templates for every resource the scoring engine consumes
RESOURCE_ENDPOINTS = {
    "repo": "/repos/{owner}/{repo}",
    "commits": "/repos/{owner}/{repo}/commits",
    "releases": "/repos/{owner}/{repo}/releases",
    "contributors": "/repos/{owner}/{repo}/contributors",
    "issues": "/repos/{owner}/{repo}/issues",
    "pulls": "/repos/{owner}/{repo}/pulls",
    "issue_comments": "/repos/{owner}/{repo}/issues/comments",
    "community": "/repos/{owner}/{repo}/community/profile",
    "contents": "/repos/{owner}/{repo}/contents",
    "readme": "/repos/{owner}/{repo}/readme",
}

# Resources returned as paginated lists
PAGINATED_RESOURCES = frozenset(
    {"commits", "releases", "contributors", "issues", "pulls", "issue_comments"}
)


class ResourceDescriptor(BaseModel):
    """Identifies one request against the data source.

    The fingerprint is stable across runs: owner and repo are case-folded
    and parameters are sorted, so equal requests share a cache entry.
    """

    model_config = ConfigDict(frozen=True)

    resource: str
    owner: str
    repo: str
    params: dict[str, str | int] = Field(default_factory=dict)

    @field_validator("resource")
    @classmethod
    def _known_resource(cls, value: str) -> str:
        if value not in RESOURCE_ENDPOINTS:
            raise ValueError(f"Unknown resource: {value}")
        return value

    @classmethod
    def for_repo(cls, repo_ref: RepoRef, resource: str, **params: str | int) -> "ResourceDescriptor":
        return cls(resource=resource, owner=repo_ref.owner, repo=repo_ref.repo, params=params)

    @property
    def endpoint(self) -> str:
        return RESOURCE_ENDPOINTS[self.resource].format(owner=self.owner, repo=self.repo)

    @property
    def paginated(self) -> bool:
        return self.resource in PAGINATED_RESOURCES

    @property
    def fingerprint(self) -> str:
        endpoint = RESOURCE_ENDPOINTS[self.resource].format(
            owner=self.owner.lower(), repo=self.repo.lower()
        )
        if not self.params:
            return endpoint
        query = urlencode(sorted((key, str(value)) for key, value in self.params.items()))
        return f"{endpoint}?{query}"


class FetchError(Exception):
    """Base class for data source failures."""

    def __init__(self, descriptor: ResourceDescriptor | None, message: str) -> None:
        self.descriptor = descriptor
        super().__init__(message)


class NotFound(FetchError):
    """The requested resource does not exist."""

    def __init__(self, descriptor: ResourceDescriptor | None) -> None:
        target = descriptor.endpoint if descriptor else "resource"
        super().__init__(descriptor, f"{target} not found")


class Unauthorized(FetchError):
    """The credentials do not grant access to the resource."""

    def __init__(self, descriptor: ResourceDescriptor | None, status_code: int = 401) -> None:
        self.status_code = status_code
        target = descriptor.endpoint if descriptor else "resource"
        super().__init__(descriptor, f"Not authorized to read {target} (HTTP {status_code})")


class RateLimited(FetchError):
    """The data source refused the request because a rate limit was hit."""

    def __init__(
        self,
        descriptor: ResourceDescriptor | None,
        reset_time: datetime | None = None,
    ) -> None:
        self.reset_time = reset_time
        suffix = f", resets at {reset_time}" if reset_time else ""
        super().__init__(descriptor, f"Rate limit exhausted{suffix}")


class NetworkError(FetchError):
    """Transport failure or unexpected server error."""


class DataSource(ABC):
    """Fetches raw repository facts.

    Implementations return JSON-compatible data (dicts, lists, strings) so
    that responses can be cached verbatim.
    """

    @abstractmethod
    async def fetch(self, descriptor: ResourceDescriptor) -> Any:
        """Fetch one resource.

        Raises:
            RateLimited, NotFound, NetworkError, Unauthorized.
        """
        ...

    async def aclose(self) -> None:
        """Release any resources held by the source."""


def parse_repo_url(url: str) -> RepoRef | None:
    """Parse a repository URL or ``owner/repo`` shorthand into a RepoRef.

    Supports GitHub, GitLab, and Bitbucket URLs.
    """
    if not url:
        return None
    url = url.strip()

    # Bare owner/repo
    match = re.fullmatch(r"([\w.-]+)/([\w.-]+?)(?:\.git)?", url)
    if match:
        return RepoRef(platform=Platform.GITHUB, owner=match.group(1), repo=match.group(2))

    hosts = [
        (Platform.GITHUB, r"github\.com"),
        (Platform.GITLAB, r"gitlab\.com"),
        (Platform.BITBUCKET, r"bitbucket\.org"),
    ]
    for platform, host in hosts:
        patterns = [
            rf"(?:https?://)?(?:www\.)?{host}/([^/]+)/([^/\s]+?)(?:\.git)?(?:/.*)?$",
            rf"git@{host}:([^/]+)/([^/\s]+?)(?:\.git)?$",
            rf"git://{host}/([^/]+)/([^/\s]+?)(?:\.git)?$",
        ]
        for pattern in patterns:
            match = re.match(pattern, url)
            if match:
                return RepoRef(platform=platform, owner=match.group(1), repo=match.group(2))

    return None
