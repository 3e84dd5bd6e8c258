"""Azure Functions bindings for the hourly daily-stats refresh and the stats endpoints.

The Functions host keeps one context per worker process, built on first use.
"""

import json
import logging

import azure.functions as func

from context import AppContext, build_context
from errors import StatsProxyError
from services.daily import read_daily_cache, refresh_daily_cache

logger = logging.getLogger(__name__)

bp = func.Blueprint()

_context: AppContext | None = None


def _get_context() -> AppContext:
    global _context
    if _context is None:
        _context = build_context()
    return _context


def _json_response(req: func.HttpRequest, body: str, status_code: int = 200) -> func.HttpResponse:
    ctx = _get_context()
    return func.HttpResponse(
        body,
        status_code=status_code,
        mimetype="application/json",
        headers=ctx.settings.cors_headers(req.headers.get("origin")),
    )


@bp.timer_trigger(schedule="0 0 * * * *", arg_name="timer", run_on_startup=True)
async def daily_refresh(timer: func.TimerRequest) -> None:
    """Hourly refresh of the trailing-window daily stats."""
    if timer.past_due:
        logger.warning("Daily refresh timer is past due")
    ctx = _get_context()
    await refresh_daily_cache(ctx.store, ctx.upstream, days=ctx.settings.daily_window_days)


@bp.route(route="stats", methods=["GET", "OPTIONS"])
async def stats(req: func.HttpRequest) -> func.HttpResponse:
    """Cached aggregate stats."""
    if req.method == "OPTIONS":
        return _json_response(req, "", status_code=200)
    try:
        record = await _get_context().coordinator.get_or_refresh()
    except StatsProxyError as e:
        logger.error("Error fetching stats: %s", e)
        return _json_response(req, json.dumps({"error": f"Failed to fetch stats: {e}"}), status_code=e.status_code)
    return _json_response(req, record.model_dump_json())


@bp.route(route="stats/daily", methods=["GET"])
async def daily(req: func.HttpRequest) -> func.HttpResponse:
    """Daily stats from the last timer run."""
    ctx = _get_context()
    return _json_response(req, json.dumps(await read_daily_cache(ctx.store) or []))
