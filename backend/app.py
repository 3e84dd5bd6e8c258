"""FastAPI application entry point for the stats proxy."""

import asyncio
import contextlib
import logging
import sys

from fastapi import FastAPI, Request, Response

from config import settings
from context import AppContext, build_context
from errors import register_error_handlers
from services.daily import run_daily_schedule

# Structured logging: JSON for production, human-readable for local
if settings.is_production:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}',
        stream=sys.stdout,
    )
else:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

logger = logging.getLogger(__name__)


def create_app(context: AppContext | None = None) -> FastAPI:
    context = context or build_context(settings)
    app_settings = context.settings

    app = FastAPI(title="Stats Proxy", version="1.0.0")
    app.state.context = context
    app.state.daily_task = None

    # CORS on every response; preflight answered here for any path
    @app.middleware("http")
    async def add_cors_headers(request: Request, call_next):
        headers = app_settings.cors_headers(request.headers.get("origin"))
        if request.method == "OPTIONS":
            return Response("", status_code=200, headers=headers, media_type="application/json")
        response: Response = await call_next(request)
        response.headers.update(headers)
        response.headers["X-Content-Type-Options"] = "nosniff"
        return response

    # Centralized error handlers
    register_error_handlers(app)

    from routes.health import router as health_router
    from routes.stats import router as stats_router

    app.include_router(stats_router)
    app.include_router(health_router)

    @app.on_event("startup")
    async def _startup() -> None:
        problems = app_settings.validate()
        if problems:
            logger.warning("Configuration problems: %s", "; ".join(problems))
        if app_settings.daily_job_enabled:
            app.state.daily_task = asyncio.create_task(
                run_daily_schedule(
                    context.store,
                    context.upstream,
                    app_settings.daily_job_interval_seconds,
                    days=app_settings.daily_window_days,
                )
            )

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        task = app.state.daily_task
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    return app


app = create_app()
