"""Typed views over raw data-source responses.

The data source returns plain JSON so that it can be cached byte-for-byte.
These models are what the scoring engine actually consumes.
"""

import base64
import binascii
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a GitHub ISO-8601 timestamp."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class _Fact(BaseModel):
    model_config = ConfigDict(frozen=True)


class RepoInfo(_Fact):
    """Basic repository information."""

    full_name: str = ""
    description: str | None = None
    default_branch: str = "main"
    pushed_at: datetime | None = None
    created_at: datetime | None = None
    has_wiki: bool = False
    is_archived: bool = False
    stars: int = 0
    forks: int = 0
    language: str | None = None
    topics: tuple[str, ...] = ()
    license_spdx: str | None = None
    license_name: str | None = None

    @classmethod
    def from_api(cls, data: dict) -> "RepoInfo":
        license_info = data.get("license") or {}
        return cls(
            full_name=data.get("full_name", ""),
            description=data.get("description"),
            default_branch=data.get("default_branch") or "main",
            pushed_at=parse_timestamp(data.get("pushed_at")),
            created_at=parse_timestamp(data.get("created_at")),
            has_wiki=bool(data.get("has_wiki", False)),
            is_archived=bool(data.get("archived", False)),
            stars=data.get("stargazers_count", 0),
            forks=data.get("forks_count", 0),
            language=data.get("language"),
            topics=tuple(data.get("topics") or ()),
            license_spdx=license_info.get("spdx_id"),
            license_name=license_info.get("name"),
        )


class CommitRecord(_Fact):
    sha: str = ""
    author_login: str | None = None
    authored_at: datetime | None = None

    @classmethod
    def from_api(cls, data: dict) -> "CommitRecord":
        author = data.get("author") or {}
        commit_author = (data.get("commit") or {}).get("author") or {}
        return cls(
            sha=data.get("sha", ""),
            author_login=author.get("login") or None,
            authored_at=parse_timestamp(commit_author.get("date")),
        )


class ReleaseRecord(_Fact):
    tag_name: str = ""
    published_at: datetime | None = None
    draft: bool = False
    prerelease: bool = False

    @classmethod
    def from_api(cls, data: dict) -> "ReleaseRecord":
        return cls(
            tag_name=data.get("tag_name", ""),
            published_at=parse_timestamp(data.get("published_at")),
            draft=bool(data.get("draft", False)),
            prerelease=bool(data.get("prerelease", False)),
        )


class ContributorRecord(_Fact):
    login: str = ""
    contributions: int = 0
    is_bot: bool = False

    @classmethod
    def from_api(cls, data: dict) -> "ContributorRecord":
        login = data.get("login") or ""
        return cls(
            login=login,
            contributions=data.get("contributions", 0),
            is_bot=data.get("type") == "Bot" or login.endswith("[bot]"),
        )


class IssueRecord(_Fact):
    """An issue or pull request from the issues endpoint."""

    number: int = 0
    url: str = ""
    state: str = "open"
    author_login: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    closed_at: datetime | None = None
    is_pull_request: bool = False

    @classmethod
    def from_api(cls, data: dict) -> "IssueRecord":
        user = data.get("user") or {}
        return cls(
            number=data.get("number", 0),
            url=data.get("url", ""),
            state=data.get("state", "open"),
            author_login=user.get("login"),
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
            closed_at=parse_timestamp(data.get("closed_at")),
            is_pull_request="pull_request" in data,
        )


class PullRecord(_Fact):
    number: int = 0
    state: str = "open"
    created_at: datetime | None = None
    merged_at: datetime | None = None

    @classmethod
    def from_api(cls, data: dict) -> "PullRecord":
        return cls(
            number=data.get("number", 0),
            state=data.get("state", "open"),
            created_at=parse_timestamp(data.get("created_at")),
            merged_at=parse_timestamp(data.get("merged_at")),
        )


class IssueComment(_Fact):
    issue_url: str = ""
    author_login: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_api(cls, data: dict) -> "IssueComment":
        user = data.get("user") or {}
        return cls(
            issue_url=data.get("issue_url", ""),
            author_login=user.get("login"),
            created_at=parse_timestamp(data.get("created_at")),
        )


class CommunityProfile(_Fact):
    """Community health files reported by GitHub."""

    health_percentage: int = 0
    files: frozenset[str] = Field(default_factory=frozenset)

    @classmethod
    def from_api(cls, data: dict) -> "CommunityProfile":
        files = data.get("files") or {}
        return cls(
            health_percentage=data.get("health_percentage") or 0,
            files=frozenset(name for name, entry in files.items() if entry),
        )

    def has_file(self, name: str) -> bool:
        return name in self.files


class ContentEntry(_Fact):
    name: str = ""
    path: str = ""
    type: str = "file"

    @classmethod
    def from_api(cls, data: dict) -> "ContentEntry":
        return cls(
            name=data.get("name", ""),
            path=data.get("path", ""),
            type=data.get("type", "file"),
        )


class Readme(_Fact):
    text: str = ""

    @classmethod
    def from_api(cls, data: dict | str | None) -> "Readme":
        """Decode the README payload (base64 JSON or already-decoded text)."""
        if not data:
            return cls()
        if isinstance(data, str):
            return cls(text=data)
        content = data.get("content", "")
        if data.get("encoding", "base64") != "base64":
            return cls(text=content)
        try:
            return cls(text=base64.b64decode(content).decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError):
            return cls()


class RepositoryFacts(_Fact):
    """Everything fetched for one repository.

    A resource that could not be fetched is ``None`` and its reason is kept
    in ``unavailable``. Resources served from an expired cache entry are
    listed in ``stale``.
    """

    repo: RepoInfo | None = None
    commits: tuple[CommitRecord, ...] | None = None
    releases: tuple[ReleaseRecord, ...] | None = None
    contributors: tuple[ContributorRecord, ...] | None = None
    issues: tuple[IssueRecord, ...] | None = None
    pulls: tuple[PullRecord, ...] | None = None
    issue_comments: tuple[IssueComment, ...] | None = None
    community: CommunityProfile | None = None
    contents: tuple[ContentEntry, ...] | None = None
    readme: Readme | None = None

    unavailable: dict[str, str] = Field(default_factory=dict)
    stale: frozenset[str] = Field(default_factory=frozenset)

    def missing(self, resources: tuple[str, ...]) -> dict[str, str]:
        """Reasons for every listed resource that is not available."""
        reasons = {}
        for resource in resources:
            if getattr(self, resource) is None:
                reasons[resource] = self.unavailable.get(resource, "not fetched")
        return reasons

    def any_stale(self, resources: tuple[str, ...]) -> bool:
        return any(resource in self.stale for resource in resources)


# Parser for each resource's raw payload
FACT_PARSERS = {
    "repo": RepoInfo.from_api,
    "commits": lambda data: tuple(CommitRecord.from_api(item) for item in data),
    "releases": lambda data: tuple(ReleaseRecord.from_api(item) for item in data),
    "contributors": lambda data: tuple(ContributorRecord.from_api(item) for item in data),
    "issues": lambda data: tuple(IssueRecord.from_api(item) for item in data),
    "pulls": lambda data: tuple(PullRecord.from_api(item) for item in data),
    "issue_comments": lambda data: tuple(IssueComment.from_api(item) for item in data),
    "community": CommunityProfile.from_api,
    "contents": lambda data: tuple(ContentEntry.from_api(item) for item in data) if isinstance(data, list) else (),
    "readme": Readme.from_api,
}
