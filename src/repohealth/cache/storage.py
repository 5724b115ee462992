"""Backing stores for the response cache."""

from __future__ import annotations

import hashlib
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A cached response and its bookkeeping timestamps."""

    key: str
    value: str  # Serialized JSON
    size_bytes: int
    created_at: datetime
    expires_at: datetime
    last_accessed_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "value": self.value,
            "size_bytes": self.size_bytes,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "last_accessed_at": self.last_accessed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CacheEntry:
        return cls(
            key=data["key"],
            value=data["value"],
            size_bytes=data["size_bytes"],
            created_at=datetime.fromisoformat(data["created_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            last_accessed_at=datetime.fromisoformat(data["last_accessed_at"]),
        )


class Storage(ABC):
    """Key-value store holding cache entries.

    The cache owns TTL and eviction policy; a storage only keeps entries.
    """

    @abstractmethod
    def get(self, key: str) -> CacheEntry | None:
        ...

    @abstractmethod
    def set(self, key: str, entry: CacheEntry) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def size_of(self, key: str) -> int:
        """Bytes charged against the budget for ``key`` (0 if absent)."""
        ...

    @abstractmethod
    def keys(self) -> list[str]:
        ...

    def clear(self) -> None:
        for key in self.keys():
            self.delete(key)


class MemoryStorage(Storage):
    """In-process dictionary storage."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def set(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def size_of(self, key: str) -> int:
        entry = self._entries.get(key)
        return entry.size_bytes if entry else 0

    def keys(self) -> list[str]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()


class FileStorage(Storage):
    """Stores one JSON file per entry under a directory.

    An in-memory index of the entries is loaded at start-up so that eviction
    scans do not touch the disk.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._index: dict[str, CacheEntry] = {}
        self._load()

    def _path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.directory / f"{digest}.json"

    def _load(self) -> None:
        for filepath in sorted(self.directory.glob("*.json")):
            try:
                entry = CacheEntry.from_dict(json.loads(filepath.read_text(encoding="utf-8")))
            except (OSError, ValueError, KeyError) as e:
                logger.warning(f"Could not parse {filepath}: {e}")
                filepath.unlink(missing_ok=True)
                continue
            self._index[entry.key] = entry
        if self._index:
            logger.debug(f"Loaded {len(self._index)} cache entries from {self.directory}")

    def get(self, key: str) -> CacheEntry | None:
        return self._index.get(key)

    def set(self, key: str, entry: CacheEntry) -> None:
        self._path(key).write_text(json.dumps(entry.to_dict()), encoding="utf-8")
        self._index[key] = entry

    def delete(self, key: str) -> None:
        self._index.pop(key, None)
        self._path(key).unlink(missing_ok=True)

    def size_of(self, key: str) -> int:
        entry = self._index.get(key)
        return entry.size_bytes if entry else 0

    def keys(self) -> list[str]:
        return list(self._index)
