from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from app import create_app
from config import Settings
from context import build_context
from errors import UpstreamFetchError

from conftest import FakeStatsSource, stats_payload

RECORD_FIELDS = {
    "total_users",
    "total_posts",
    "total_follows",
    "total_likes",
    "users_growth_rate_per_second",
    "last_update_time",
    "next_update_time",
}


def _settings() -> Settings:
    settings = Settings()
    settings.daily_job_enabled = False
    settings.cors_origins = ["*"]
    return settings


def _client(source) -> TestClient:
    return TestClient(create_app(build_context(_settings(), upstream=source)))


def _assert_cors(resp):
    assert resp.headers["access-control-allow-origin"] == "*"
    assert resp.headers["access-control-allow-headers"] == "*"


def test_get_stats_returns_cache_record():
    client = _client(FakeStatsSource())

    resp = client.get("/")

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("application/json")
    _assert_cors(resp)
    body = resp.json()
    assert set(body) == RECORD_FIELDS
    assert body["total_users"] == 1000
    assert body["users_growth_rate_per_second"] == pytest.approx(133.38)
    assert body["next_update_time"] == "2024-01-01T00:02:00Z"


def test_fresh_stats_are_not_refetched():
    now = datetime.now(timezone.utc).replace(microsecond=0)
    source = FakeStatsSource(stats_payload(updated_at=now.isoformat()))
    client = _client(source)

    first = client.get("/")
    second = client.get("/")

    assert first.content == second.content
    assert source.calls == 1


def test_options_preflight_on_any_path():
    client = _client(FakeStatsSource())

    for path in ("/", "/daily", "/anything/else"):
        resp = client.options(path)
        assert resp.status_code == 200
        assert resp.content == b""
        _assert_cors(resp)


def test_upstream_failure_on_cold_start_returns_500():
    client = _client(FakeStatsSource(error=UpstreamFetchError("Upstream returned HTTP 502")))

    resp = client.get("/")

    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to fetch stats: Upstream returned HTTP 502"}
    _assert_cors(resp)


def test_daily_runs_refresh_when_cache_empty():
    today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    daily = [
        {"date": (today - timedelta(days=offset)).isoformat(), "num_posts": offset}
        for offset in range(10)
    ]
    source = FakeStatsSource(stats_payload(daily_data=daily))
    client = _client(source)

    resp = client.get("/daily")
    again = client.get("/daily")

    assert resp.status_code == 200
    _assert_cors(resp)
    assert sorted(d["num_posts"] for d in resp.json()) == list(range(7))
    assert again.json() == resp.json()
    assert source.calls == 1


def test_daily_failure_returns_empty_list():
    client = _client(FakeStatsSource(error=UpstreamFetchError("down")))

    resp = client.get("/daily")

    assert resp.status_code == 200
    assert resp.json() == []


def test_unknown_path_and_method():
    client = _client(FakeStatsSource())

    missing = client.get("/nope")
    assert missing.status_code == 404
    _assert_cors(missing)
    assert client.post("/").status_code == 405


def test_ready_and_health():
    source = FakeStatsSource()
    client = _client(source)

    assert client.get("/ready").json()["status"] == "ok"
    assert client.get("/health").json()["cache"] == "empty"

    client.get("/")
    health = client.get("/health").json()
    assert health["cache"] == "stale"
    assert health["refresh_state"] == "idle"
    assert source.calls == 1


def test_bad_daily_entry_does_not_break_stats():
    daily = [{"date": "2024-01-01T00:00:00Z", "num_blocks": None}]
    client = _client(FakeStatsSource(stats_payload(daily_data=daily)))

    resp = client.get("/")

    assert resp.status_code == 200
    assert resp.json()["total_users"] == 1000


def test_failed_daily_refresh_is_not_repeated_per_request():
    source = FakeStatsSource(error=UpstreamFetchError("down"))
    client = _client(source)

    assert client.get("/daily").json() == []
    assert client.get("/daily").json() == []
    assert source.calls == 1


def test_configured_origins_are_echoed_one_at_a_time():
    settings = _settings()
    settings.cors_origins = ["https://a.example", "https://b.example"]
    client = TestClient(create_app(build_context(settings, upstream=FakeStatsSource())))

    allowed = client.get("/ready", headers={"origin": "https://b.example"})
    preflight = client.options("/", headers={"origin": "https://a.example"})
    other = client.get("/ready", headers={"origin": "https://evil.example"})

    assert allowed.headers["access-control-allow-origin"] == "https://b.example"
    assert preflight.headers["access-control-allow-origin"] == "https://a.example"
    assert "access-control-allow-origin" not in other.headers
    assert other.headers["access-control-allow-headers"] == "*"
