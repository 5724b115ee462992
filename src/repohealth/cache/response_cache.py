"""Size- and time-bounded cache for data source responses."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Any, Awaitable, Callable

from repohealth.adapters.base import RateLimited
from repohealth.cache.storage import CacheEntry, MemoryStorage, Storage

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 4 * 1024 * 1024
DEFAULT_TTL = timedelta(hours=24)

_MISSING = object()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def serialize(value: Any) -> str:
    """Serialize a JSON-compatible value the way it is stored and measured."""
    return json.dumps(value, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


@dataclass
class CacheStats:
    """Counters describing cache behaviour since creation."""

    hits: int = 0
    misses: int = 0
    writes: int = 0
    evictions: int = 0
    expirations: int = 0
    coalesced: int = 0
    stale_served: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


@dataclass(frozen=True)
class CachedResponse:
    """Result of a fetch through the cache."""

    value: Any
    from_cache: bool = False
    stale: bool = False


class ResponseCache:
    """TTL + LRU cache fronting an asynchronous data source.

    - Entries expire ``ttl`` after they are written; expired entries are
      treated as absent and removed lazily on read or during ``set``.
    - After every ``set`` the least recently accessed entries are evicted
      until the resident bytes fit in ``max_bytes``. The entry just written
      is never evicted by its own ``set``, so an entry larger than the whole
      budget survives until the next write that needs space.
    - ``fetch`` coalesces concurrent requests for the same key onto a single
      loader call and falls back to an expired entry when the loader is
      rate limited.

    Usage:
        cache = ResponseCache(max_bytes=4 * 1024 * 1024)
        response = await cache.fetch(descriptor.fingerprint, lambda: source.fetch(descriptor))
    """

    def __init__(
        self,
        storage: Storage | None = None,
        max_bytes: int = DEFAULT_MAX_BYTES,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the cache.

        Args:
            storage: Backing store. Defaults to an in-memory dictionary.
            max_bytes: Budget for the serialized size of all entries.
            ttl: Lifetime of an entry after it is written.
            clock: Returns the current time; injectable for tests.
        """
        if max_bytes <= 0:
            raise ValueError("max_bytes must be positive")
        if ttl <= timedelta(0):
            raise ValueError("ttl must be positive")

        self.storage = storage if storage is not None else MemoryStorage()
        self.max_bytes = max_bytes
        self.ttl = ttl
        self._clock = clock or _utcnow
        self.stats = CacheStats()

        # In-flight loads by key
        self._inflight: dict[str, asyncio.Future] = {}

    def _now(self) -> datetime:
        return self._clock()

    # --- Synchronous API ---

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or ``default`` if absent or expired.

        A hit refreshes the entry's last access time.
        """
        entry = self._lookup(key, remove_expired=True)
        if entry is None:
            self.stats.misses += 1
            return default

        self.storage.set(key, replace(entry, last_accessed_at=self._now()))
        self.stats.hits += 1
        return json.loads(entry.value)

    def has(self, key: str) -> bool:
        """Check presence without refreshing recency."""
        return self._lookup(key, remove_expired=False) is not None

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def __len__(self) -> int:
        return len(self.storage.keys())

    def peek(self, key: str) -> CacheEntry | None:
        """Return the raw entry, expired or not, without touching it."""
        return self.storage.get(key)

    def set(self, key: str, value: Any) -> CacheEntry:
        """Store a value and evict until the byte budget holds again."""
        serialized = serialize(value)
        now = self._now()
        entry = CacheEntry(
            key=key,
            value=serialized,
            size_bytes=len(serialized.encode("utf-8")),
            created_at=now,
            expires_at=now + self.ttl,
            last_accessed_at=now,
        )
        self.storage.set(key, entry)
        self.stats.writes += 1

        self.sweep()
        self._evict(protected=key)
        return entry

    def delete(self, key: str) -> bool:
        """Remove an entry. Returns whether it existed."""
        existed = self.storage.get(key) is not None
        self.storage.delete(key)
        return existed

    def clear(self) -> None:
        self.storage.clear()

    def sweep(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        now = self._now()
        removed = 0
        for key in self.storage.keys():
            entry = self.storage.get(key)
            if entry is not None and entry.is_expired(now):
                self.storage.delete(key)
                removed += 1
        if removed:
            self.stats.expirations += removed
            logger.debug(f"Swept {removed} expired cache entries")
        return removed

    @property
    def total_bytes(self) -> int:
        """Bytes currently resident in the store."""
        return sum(self.storage.size_of(key) for key in self.storage.keys())

    def _lookup(self, key: str, remove_expired: bool) -> CacheEntry | None:
        entry = self.storage.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._now()):
            if remove_expired:
                self.storage.delete(key)
                self.stats.expirations += 1
                logger.debug(f"Cache entry expired: {key}")
            return None
        return entry

    def _evict(self, protected: str) -> None:
        """Evict least recently used entries until the budget holds."""
        total = self.total_bytes
        if total <= self.max_bytes:
            return

        candidates = [
            entry
            for entry in (self.storage.get(key) for key in self.storage.keys())
            if entry is not None and entry.key != protected
        ]
        candidates.sort(key=lambda e: (e.last_accessed_at, e.created_at))

        for entry in candidates:
            if total <= self.max_bytes:
                break
            self.storage.delete(entry.key)
            total -= entry.size_bytes
            self.stats.evictions += 1
            logger.debug(f"Evicted {entry.key} ({entry.size_bytes} bytes)")

        if total > self.max_bytes:
            logger.info(
                f"Entry {protected} exceeds the cache budget "
                f"({total} > {self.max_bytes} bytes); it will be evicted on the next write"
            )

    # --- Asynchronous fetch-through ---

    async def fetch(self, key: str, loader: Callable[[], Awaitable[Any]]) -> CachedResponse:
        """Return the cached value for ``key`` or load it once.

        Concurrent callers for the same key share one loader call. The shared
        load is shielded from caller cancellation, so an abandoned request
        still completes and populates the cache.

        Raises:
            Whatever the loader raises, except ``RateLimited`` when an
            expired entry can be served instead.
        """
        entry = self._lookup(key, remove_expired=False)
        if entry is not None:
            value = self.get(key, _MISSING)
            if value is not _MISSING:
                return CachedResponse(value=value, from_cache=True)

        task = self._inflight.get(key)
        if task is None:
            self.stats.misses += 1
            stale = self.peek(key)
            task = asyncio.ensure_future(self._load(key, loader, stale))
            self._inflight[key] = task
            task.add_done_callback(partial(self._forget, key))
        else:
            self.stats.coalesced += 1
            logger.debug(f"Coalesced request for {key}")

        return await asyncio.shield(task)

    async def _load(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        stale: CacheEntry | None,
    ) -> CachedResponse:
        try:
            value = await loader()
        except RateLimited:
            if stale is None:
                raise
            self.stats.stale_served += 1
            logger.warning(f"Rate limited; serving stale cache entry for {key}")
            return CachedResponse(value=json.loads(stale.value), from_cache=True, stale=True)

        entry = self.set(key, value)
        return CachedResponse(value=json.loads(entry.value))

    def _forget(self, key: str, task: asyncio.Future) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark the outcome as retrieved even if every caller went away
        if not task.cancelled():
            task.exception()
