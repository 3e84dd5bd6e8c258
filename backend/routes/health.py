"""Health and readiness check routes."""

import logging

from fastapi import APIRouter, Depends

from context import AppContext, get_context

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/ready")
async def ready(ctx: AppContext = Depends(get_context)) -> dict:
    """Lightweight readiness check — no external calls."""
    return {"status": "ok", "service": "stats-proxy", "commit": ctx.settings.git_sha}


@router.get("/health")
async def health(ctx: AppContext = Depends(get_context)) -> dict:
    """Cache and refresh state. Does not call upstream."""
    coordinator = ctx.coordinator
    result = {
        "status": "ok",
        "service": "stats-proxy",
        "commit": ctx.settings.git_sha,
        "refresh_state": coordinator.state.value,
        "cache": "empty",
    }

    record = await coordinator.peek()
    if record is not None:
        result["cache"] = "fresh" if record.is_fresh(coordinator.clock()) else "stale"
        result["next_update_time"] = record.next_update_time.isoformat()

    if coordinator.last_error:
        result["status"] = "degraded"
        result["last_error"] = coordinator.last_error

    return result
