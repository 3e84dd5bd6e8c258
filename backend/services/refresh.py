"""Refresh coordination for the primary stats cache.

Requests read the cached record and return it while fresh. A stale or missing
record is refreshed from upstream by exactly one caller at a time, guarded by
an advisory lock in the same store:

    IDLE -> LOCK_WAIT -> FETCHING -> UPDATING -> IDLE
                                  \\-> ERROR -> IDLE

The lock is a TTL-bound key, so a crashed holder blocks waiters for at most
``lock_ttl_ms``. Waiters poll every ``lock_poll_interval_ms`` and give up with
LockTimeoutError after ``lock_max_attempts`` polls. Check-then-set on the lock
is not atomic; an occasional duplicate upstream fetch is tolerated.
"""

import asyncio
import enum
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Callable

from pydantic import ValidationError

from errors import LockTimeoutError, StatsProxyError, StoreError
from models.stats import CacheRecord, utcnow
from services.cache import CACHE_KEY, LOCK_KEY, KVStore
from services.metrics import GrowthPolicy, compute_cache_record
from services.upstream import StatsSource

logger = logging.getLogger(__name__)


class RefreshState(str, enum.Enum):
    IDLE = "idle"
    LOCK_WAIT = "lock_wait"
    FETCHING = "fetching"
    UPDATING = "updating"
    ERROR = "error"


@contextmanager
def _store_errors(action: str):
    try:
        yield
    except StatsProxyError:
        raise
    except Exception as e:
        raise StoreError(f"Store {action} failed: {e}") from e


class RefreshCoordinator:
    def __init__(
        self,
        store: KVStore,
        upstream: StatsSource,
        policy: GrowthPolicy = GrowthPolicy(),
        *,
        lock_enabled: bool = True,
        lock_ttl_ms: int = 500,
        lock_poll_interval_ms: int = 50,
        lock_max_attempts: int = 40,
        serve_stale_on_error: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.upstream = upstream
        self.policy = policy
        self.lock_enabled = lock_enabled
        self.lock_ttl_ms = lock_ttl_ms
        self.lock_poll_interval_ms = lock_poll_interval_ms
        self.lock_max_attempts = max(1, lock_max_attempts)
        self.serve_stale_on_error = serve_stale_on_error
        self.clock = clock

        # Most recent transition, for diagnostics only
        self.state = RefreshState.IDLE
        self.last_error: str | None = None
        # Last good record seen by this coordinator. Used as the growth
        # baseline and stale fallback when the stored record is gone, e.g.
        # deleted by a holder whose lock expired mid-fetch.
        self._baseline: CacheRecord | None = None

    async def get_or_refresh(self) -> CacheRecord:
        """Return the cached record, refreshing it from upstream when stale."""
        if not self.lock_enabled:
            record = await self._read_cache()
            if record is not None and record.is_fresh(self.clock()):
                return record
            try:
                return await self._refresh(record)
            finally:
                self.state = RefreshState.IDLE

        for attempt in range(1, self.lock_max_attempts + 1):
            record = await self._read_cache()
            if record is not None and record.is_fresh(self.clock()):
                logger.debug("Cache hit, fresh until %s", record.next_update_time.isoformat())
                return record

            token = await self._acquire_lock()
            if token is None:
                self.state = RefreshState.LOCK_WAIT
                logger.debug(
                    "Refresh in progress elsewhere, waiting (attempt %d/%d)",
                    attempt,
                    self.lock_max_attempts,
                )
                await asyncio.sleep(self.lock_poll_interval_ms / 1000)
                continue

            try:
                # Another holder may have refreshed while we waited
                record = await self._read_cache()
                if record is not None and record.is_fresh(self.clock()):
                    return record
                return await self._refresh(record)
            finally:
                await self._release_lock(token)
                self.state = RefreshState.IDLE

        self.state = RefreshState.IDLE
        raise LockTimeoutError(LOCK_KEY, self.lock_max_attempts)

    async def peek(self) -> CacheRecord | None:
        """Current cached record without triggering a refresh."""
        return await self._read_cache()

    async def _refresh(self, stored: CacheRecord | None) -> CacheRecord:
        previous = stored if stored is not None else self._baseline
        if previous is not None:
            self._baseline = previous

        self.state = RefreshState.FETCHING
        try:
            if stored is not None:
                with _store_errors("delete"):
                    await self.store.delete(CACHE_KEY)
            logger.info("Refreshing stats from upstream")
            sample = await self.upstream.fetch_stats()

            self.state = RefreshState.UPDATING
            record = compute_cache_record(sample, previous, self.clock(), self.policy)
            await self._write_cache(record)
            self._baseline = record
        except Exception as e:
            self.state = RefreshState.ERROR
            self.last_error = str(e)
            if previous is None or not self.serve_stale_on_error or not isinstance(e, StatsProxyError):
                raise
            logger.warning(
                "Refresh failed, serving stale stats from %s: %s",
                previous.last_update_time.isoformat(),
                e,
            )
            await self._write_cache(previous)
            return previous

        self.last_error = None
        logger.info(
            "Cached stats: total_users=%d growth=%.3f/s next_update=%s",
            record.total_users,
            record.users_growth_rate_per_second,
            record.next_update_time.isoformat(),
        )
        return record

    async def _read_cache(self) -> CacheRecord | None:
        with _store_errors("read"):
            raw = await self.store.get(CACHE_KEY)
        if raw is None:
            return None
        try:
            return CacheRecord.model_validate(raw)
        except ValidationError:
            logger.warning("Discarding unreadable cache record")
            return None

    async def _write_cache(self, record: CacheRecord) -> None:
        with _store_errors("write"):
            await self.store.set(CACHE_KEY, record.model_dump(mode="json"))

    async def _acquire_lock(self) -> str | None:
        with _store_errors("lock read"):
            if await self.store.get(LOCK_KEY) is not None:
                return None
        token = uuid.uuid4().hex
        with _store_errors("lock write"):
            await self.store.set(LOCK_KEY, token, ttl_ms=self.lock_ttl_ms)
        return token

    async def _release_lock(self, token: str) -> None:
        # Lock self-expires after lock_ttl_ms; release failures are only logged
        try:
            if await self.store.get(LOCK_KEY) == token:
                await self.store.delete(LOCK_KEY)
        except Exception:
            logger.exception("Failed to release refresh lock")
