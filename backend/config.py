"""Centralized configuration — all env vars in one place."""

import os

NEXT_UPDATE_BASES = ("sample", "fetch")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self):
        self.cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
        self.git_sha: str = os.getenv("GIT_SHA", "unknown")
        self.environment: str = os.getenv("ENVIRONMENT", "local")

        # Upstream stats endpoint
        self.upstream_url: str = os.getenv("STATS_UPSTREAM_URL", "https://bsky-search.jazco.io/stats")
        self.upstream_timeout_seconds: float = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "10"))

        # Primary cache + advisory lock
        self.cache_ttl_ms: int = int(os.getenv("CACHE_TTL_MS", "60000"))
        self.lock_enabled: bool = _env_bool("LOCK_ENABLED", True)
        self.lock_ttl_ms: int = int(os.getenv("LOCK_TTL_MS", "500"))
        self.lock_poll_interval_ms: int = int(os.getenv("LOCK_POLL_INTERVAL_MS", "50"))
        self.lock_max_attempts: int = int(os.getenv("LOCK_MAX_ATTEMPTS", "40"))
        self.next_update_basis: str = os.getenv("NEXT_UPDATE_BASIS", "sample").lower()
        self.serve_stale_on_error: bool = _env_bool("SERVE_STALE_ON_ERROR", True)

        # Growth-rate defaults used when no usable baseline exists
        self.default_users_delta: int = int(os.getenv("DEFAULT_USERS_DELTA", "120"))
        self.fallback_growth_rate: float = float(os.getenv("FALLBACK_GROWTH_RATE", str(2.34 * 60)))
        self.growth_rate_bias: float = float(os.getenv("GROWTH_RATE_BIAS", "0.95"))

        # Daily data job
        self.daily_job_enabled: bool = _env_bool("DAILY_JOB_ENABLED", True)
        self.daily_job_interval_seconds: int = int(os.getenv("DAILY_JOB_INTERVAL_SECONDS", "3600"))
        self.daily_window_days: int = int(os.getenv("DAILY_WINDOW_DAYS", "7"))

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def allow_origin(self, request_origin: str | None) -> str | None:
        """Value for access-control-allow-origin, or None when the origin is not allowed."""
        if "*" in self.cors_origins:
            return "*"
        if request_origin and request_origin in self.cors_origins:
            return request_origin
        return None

    def cors_headers(self, request_origin: str | None) -> dict[str, str]:
        headers = {"access-control-allow-headers": "*"}
        origin = self.allow_origin(request_origin)
        if origin is not None:
            headers["access-control-allow-origin"] = origin
        if origin != "*":
            headers["vary"] = "Origin"
        return headers

    def validate(self) -> list[str]:
        """Return a list of configuration problems (empty when valid)."""
        problems = []
        if not self.upstream_url:
            problems.append("STATS_UPSTREAM_URL is empty")
        if self.next_update_basis not in NEXT_UPDATE_BASES:
            problems.append(
                f"NEXT_UPDATE_BASIS must be one of {NEXT_UPDATE_BASES}, got {self.next_update_basis!r}"
            )
        if self.cache_ttl_ms <= 0:
            problems.append("CACHE_TTL_MS must be positive")
        if self.lock_enabled and self.lock_poll_interval_ms * self.lock_max_attempts <= self.lock_ttl_ms:
            problems.append("LOCK_MAX_ATTEMPTS x LOCK_POLL_INTERVAL_MS should exceed LOCK_TTL_MS")
        return problems


settings = Settings()
