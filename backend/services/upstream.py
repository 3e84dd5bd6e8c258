"""Client for the upstream aggregate stats endpoint."""

import logging
from typing import Protocol

import httpx
from pydantic import ValidationError

from errors import UpstreamFetchError, UpstreamParseError
from models.stats import StatsSample

logger = logging.getLogger(__name__)


class StatsSource(Protocol):
    async def fetch_stats(self) -> StatsSample: ...


class StatsClient:
    """Fetches and validates one StatsSample per call.

    ``transport`` is passed straight to ``httpx.AsyncClient`` so callers can
    swap in a mock transport.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def fetch_stats(self) -> StatsSample:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                resp = await client.get(self.url)
                resp.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise UpstreamFetchError(
                    f"Upstream returned HTTP {e.response.status_code}"
                ) from e
            except httpx.HTTPError as e:
                raise UpstreamFetchError(f"Upstream request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamParseError(f"Upstream returned invalid JSON: {e}") from e

        try:
            sample = StatsSample.model_validate(data)
        except ValidationError as e:
            raise UpstreamParseError(
                f"Upstream response missing or invalid fields: {e.error_count()} error(s)"
            ) from e

        logger.info(
            "Fetched stats from %s (total_users=%d, updated_at=%s)",
            self.url,
            sample.total_users,
            sample.updated_at.isoformat(),
        )
        return sample
