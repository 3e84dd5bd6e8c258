"""Secondary cache of per-day upstream stats.

Refreshed on a schedule independently of request traffic. Each run fetches
upstream directly (no primary cache, no lock) and replaces the stored list
with the entries dated within the trailing window, both ends inclusive.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any

import pandas as pd
from pydantic import ValidationError

from models.stats import DailyDatum, StatsSample, utcnow
from services.cache import DAILY_KEY, KVStore
from services.upstream import StatsSource

logger = logging.getLogger(__name__)

DAILY_WINDOW_DAYS = 7


def _utc_timestamp(value) -> pd.Timestamp:
    """Naive dates and datetimes are taken as UTC."""
    ts = pd.Timestamp(value)
    return ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")


def parse_daily_data(raw: list[Any]) -> list[DailyDatum]:
    """Validate upstream daily entries one by one, dropping the invalid ones."""
    parsed = []
    for entry in raw:
        try:
            parsed.append(DailyDatum.model_validate(entry))
        except ValidationError as e:
            logger.warning("Dropping invalid daily entry (%d error(s)): %r", e.error_count(), entry)
    return parsed


def filter_daily_window(
    daily_data: list[DailyDatum],
    now: datetime,
    days: int = DAILY_WINDOW_DAYS,
) -> list[DailyDatum]:
    """Keep entries whose date falls within [now - days, now]."""
    if not daily_data:
        return []

    end = _utc_timestamp(now)
    start = end - pd.Timedelta(days=days)

    dates = pd.Series([_utc_timestamp(d.date) for d in daily_data])
    mask = dates.between(start, end, inclusive="both")
    return [datum for datum, keep in zip(daily_data, mask) if keep]


async def refresh_daily_cache(
    store: KVStore,
    upstream: StatsSource,
    now: datetime | None = None,
    days: int = DAILY_WINDOW_DAYS,
) -> list[DailyDatum] | None:
    """Run one scheduled refresh. Returns the stored list, or None if the run failed.

    Errors are logged and swallowed so a missed run never affects request handling.
    """
    try:
        sample: StatsSample = await upstream.fetch_stats()
        now = now or utcnow()
        entries = parse_daily_data(sample.daily_data or [])
        window = filter_daily_window(entries, now, days)
        await store.set(DAILY_KEY, [d.model_dump(mode="json") for d in window])
    except Exception:
        logger.exception("Daily stats refresh failed")
        return None

    logger.info(
        "Daily stats refreshed: kept %d of %d entries (last %d days)",
        len(window),
        len(sample.daily_data or []),
        days,
    )
    return window


async def read_daily_cache(store: KVStore) -> list[dict] | None:
    return await store.get(DAILY_KEY)


async def read_or_refresh_daily(
    store: KVStore,
    upstream: StatsSource,
    days: int = DAILY_WINDOW_DAYS,
    retry_after_ms: int = 60_000,
) -> list[dict]:
    """Cached daily list, running one refresh inline when nothing is stored.

    A failed inline run stores an empty list for ``retry_after_ms`` so
    upstream is not hit again on every request.
    """
    daily = await read_daily_cache(store)
    if daily is not None:
        return daily

    logger.info("Daily cache empty, running refresh inline")
    window = await refresh_daily_cache(store, upstream, days=days)
    if window is None:
        await store.set(DAILY_KEY, [], ttl_ms=retry_after_ms)
        return []
    return [d.model_dump(mode="json") for d in window]


async def run_daily_schedule(
    store: KVStore,
    upstream: StatsSource,
    interval_seconds: float,
    days: int = DAILY_WINDOW_DAYS,
) -> None:
    """Refresh immediately, then every ``interval_seconds`` until cancelled."""
    logger.info("Daily stats job scheduled every %ss", interval_seconds)
    while True:
        await refresh_daily_cache(store, upstream, days=days)
        await asyncio.sleep(interval_seconds)
