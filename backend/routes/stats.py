"""Stats routes: cached aggregate stats and the daily window."""

import logging

from fastapi import APIRouter, Depends

from context import AppContext, get_context
from models.stats import CacheRecord
from services.daily import read_or_refresh_daily

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=CacheRecord)
async def get_stats(ctx: AppContext = Depends(get_context)) -> CacheRecord:
    """Current aggregate stats, refreshed from upstream once the cache goes stale."""
    return await ctx.coordinator.get_or_refresh()


@router.get("/daily")
async def get_daily(ctx: AppContext = Depends(get_context)) -> list[dict]:
    """Per-day stats for the trailing window, as of the last scheduled run."""
    return await read_or_refresh_daily(
        ctx.store,
        ctx.upstream,
        days=ctx.settings.daily_window_days,
        retry_after_ms=ctx.settings.cache_ttl_ms,
    )
