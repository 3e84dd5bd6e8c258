"""Process-lifetime dependencies, built once at startup and passed explicitly."""

from dataclasses import dataclass

from fastapi import Request

from config import Settings, settings as default_settings
from services.cache import KVStore, TTLCache
from services.metrics import GrowthPolicy
from services.refresh import RefreshCoordinator
from services.upstream import StatsClient, StatsSource


@dataclass
class AppContext:
    settings: Settings
    store: KVStore
    upstream: StatsSource
    coordinator: RefreshCoordinator


def build_context(
    settings: Settings | None = None,
    store: KVStore | None = None,
    upstream: StatsSource | None = None,
) -> AppContext:
    settings = settings or default_settings
    store = store if store is not None else TTLCache()
    upstream = upstream or StatsClient(settings.upstream_url, timeout=settings.upstream_timeout_seconds)

    policy = GrowthPolicy(
        ttl_ms=settings.cache_ttl_ms,
        next_update_basis=settings.next_update_basis,
        default_users_delta=settings.default_users_delta,
        fallback_growth_rate=settings.fallback_growth_rate,
        bias=settings.growth_rate_bias,
    )
    coordinator = RefreshCoordinator(
        store,
        upstream,
        policy,
        lock_enabled=settings.lock_enabled,
        lock_ttl_ms=settings.lock_ttl_ms,
        lock_poll_interval_ms=settings.lock_poll_interval_ms,
        lock_max_attempts=settings.lock_max_attempts,
        serve_stale_on_error=settings.serve_stale_on_error,
    )
    return AppContext(settings=settings, store=store, upstream=upstream, coordinator=coordinator)


def get_context(request: Request) -> AppContext:
    """FastAPI dependency resolving the context attached by create_app()."""
    return request.app.state.context
