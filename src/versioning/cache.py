"""On-disk TTL cache for remote version listings and alias maps.

Each key is one JSON file under ``<data>/cache/<tool>/`` holding the value and
its expiry. Writes go through a temp file and ``os.replace`` so concurrent
readers never see a torn entry.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A single cache entry with TTL."""

    value: Any
    expires_at: float
    created_at: float = field(default_factory=time.time)

    def is_expired(self) -> bool:
        """Check if this entry has expired."""
        return time.time() > self.expires_at


class DiskCache:
    """TTL cache persisted as one JSON file per key."""

    def __init__(self, directory: str, default_ttl: int = 86400):
        """Initialize the cache.

        Args:
            directory: Directory holding the entry files.
            default_ttl: Default time-to-live in seconds. Zero disables caching.
        """
        self._directory = directory
        self._default_ttl = default_ttl

    def _path(self, key: str) -> str:
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)
        return os.path.join(self._directory, f"{safe}.json")

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when absent, expired or unreadable."""
        if self._default_ttl <= 0:
            return None
        path = self._path(key)
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            entry = CacheEntry(
                value=raw["value"], expires_at=float(raw["expires_at"]),
                created_at=float(raw.get("created_at", 0)),
            )
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.debug("Discarding unreadable cache entry %s: %s", path, e)
            return None
        if entry.is_expired():
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store ``value`` (must be JSON-serializable)."""
        effective_ttl = ttl if ttl is not None else self._default_ttl
        if effective_ttl <= 0:
            return
        os.makedirs(self._directory, exist_ok=True)
        now = time.time()
        payload = {"value": value, "expires_at": now + effective_ttl, "created_at": now}
        fd, tmp = tempfile.mkstemp(dir=self._directory, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f)
            os.replace(tmp, self._path(key))
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def invalidate(self, key: str) -> None:
        try:
            os.unlink(self._path(key))
        except FileNotFoundError:
            pass

    def clear(self) -> None:
        """Clear all cached entries."""
        if not os.path.isdir(self._directory):
            return
        for name in os.listdir(self._directory):
            if name.endswith(".json"):
                try:
                    os.unlink(os.path.join(self._directory, name))
                except FileNotFoundError:
                    continue
