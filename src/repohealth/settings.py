"""Runtime configuration read from the environment."""

import os
from datetime import timedelta
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from repohealth.cache.response_cache import DEFAULT_MAX_BYTES, DEFAULT_TTL
from repohealth.errors import ConfigurationError

# Environment variable for each setting
ENV_VARS = {
    "github_token": "GITHUB_TOKEN",
    "cache_max_bytes": "REPOHEALTH_CACHE_MAX_BYTES",
    "cache_ttl_hours": "REPOHEALTH_CACHE_TTL_HOURS",
    "cache_dir": "REPOHEALTH_CACHE_DIR",
    "data_dir": "REPOHEALTH_DATA_DIR",
    "profile": "REPOHEALTH_PROFILE",
}


class Settings(BaseModel):
    """Settings for the CLI and pipeline."""

    model_config = ConfigDict(frozen=True)

    github_token: str | None = None
    cache_max_bytes: int = Field(default=DEFAULT_MAX_BYTES, gt=0)
    cache_ttl_hours: float = Field(default=DEFAULT_TTL.total_seconds() / 3600, gt=0)
    cache_dir: Path | None = None  # None keeps the cache in memory
    data_dir: Path = Path("data")
    profile: str = "default"

    @property
    def cache_ttl(self) -> timedelta:
        return timedelta(hours=self.cache_ttl_hours)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        """Build settings from environment variables, ignoring unset or empty ones.

        Raises:
            ConfigurationError: If a variable holds an invalid value.
        """
        environ = os.environ if environ is None else environ
        values = {
            field: environ[var]
            for field, var in ENV_VARS.items()
            if environ.get(var)
        }
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid environment configuration: {e}") from e
