"""Bounded response cache."""

from .response_cache import (
    DEFAULT_MAX_BYTES,
    DEFAULT_TTL,
    CachedResponse,
    CacheStats,
    ResponseCache,
)
from .storage import CacheEntry, FileStorage, MemoryStorage, Storage

__all__ = [
    "DEFAULT_MAX_BYTES",
    "DEFAULT_TTL",
    "CacheEntry",
    "CacheStats",
    "CachedResponse",
    "FileStorage",
    "MemoryStorage",
    "ResponseCache",
    "Storage",
]
