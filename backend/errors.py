"""Custom exceptions and centralized FastAPI error handlers."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class StatsProxyError(Exception):
    """Base exception with HTTP status code."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class UpstreamFetchError(StatsProxyError):
    """Network failure or non-2xx status from the stats endpoint."""


class UpstreamParseError(StatsProxyError):
    """Upstream body was not JSON or was missing required fields."""


class StoreError(StatsProxyError):
    """Key-value store operation failed."""


class LockTimeoutError(StatsProxyError):
    def __init__(self, key: str, attempts: int):
        super().__init__(f"Timed out waiting for refresh lock {key!r} after {attempts} attempts")
        self.key = key
        self.attempts = attempts


def register_error_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers on the FastAPI app."""

    @app.exception_handler(StatsProxyError)
    async def handle_stats_proxy_error(_request: Request, exc: StatsProxyError):
        logger.error("Error fetching stats: %s", exc)
        return JSONResponse(
            {"error": f"Failed to fetch stats: {exc}"},
            status_code=exc.status_code,
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(_request: Request, exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        return JSONResponse(
            {"error": "Internal server error"},
            status_code=500,
        )
