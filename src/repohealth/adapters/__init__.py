"""Data source adapters."""

from repohealth.adapters.base import (
    DataSource,
    FetchError,
    NetworkError,
    NotFound,
    RateLimited,
    ResourceDescriptor,
    Unauthorized,
    parse_repo_url,
)
from repohealth.adapters.github import GitHubSource

__all__ = [
    "DataSource",
    "FetchError",
    "GitHubSource",
    "NetworkError",
    "NotFound",
    "RateLimited",
    "ResourceDescriptor",
    "Unauthorized",
    "parse_repo_url",
]
