"""Key-value store adapter used by the refresh coordinator and the daily job.

The store is process-lifetime and in-memory: cache loss on restart is
tolerable and self-heals on the next fetch. Each uvicorn worker has its own
store, so the advisory lock only coordinates requests within one worker.
"""

import logging
import time
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)

CACHE_KEY = "bsky-stats.cache"
LOCK_KEY = "bsky-stats.lock"
DAILY_KEY = "bsky-stats.daily"


class KVStore(Protocol):
    """Async get/set/delete by key, with optional expiry on set."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_ms: int | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...


class TTLCache:
    """Dict-backed KVStore. Expired entries are dropped lazily on read."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._store: dict[str, tuple[float | None, Any]] = {}
        self._clock = clock

    async def get(self, key: str) -> Any | None:
        if key in self._store:
            expires_at, value = self._store[key]
            if expires_at is None or self._clock() < expires_at:
                return value
            logger.debug("Key %s expired", key)
            del self._store[key]
        return None

    async def set(self, key: str, value: Any, ttl_ms: int | None = None) -> None:
        expires_at = None if ttl_ms is None else self._clock() + ttl_ms / 1000
        self._store[key] = (expires_at, value)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)
