import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from models.stats import StatsSample

T0 = datetime(2024, 1, 1, 0, 1, tzinfo=timezone.utc)


def stats_payload(total_users=1000, updated_at="2024-01-01T00:01:00Z", **extra):
    payload = {
        "total_users": total_users,
        "total_posts": 5000,
        "total_follows": 2000,
        "total_likes": 9000,
        "updated_at": updated_at,
    }
    payload.update(extra)
    return payload


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeStatsSource:
    """Returns the given payloads in order, repeating the last one."""

    def __init__(self, *payloads, delay: float = 0, error: Exception | None = None):
        self.payloads = list(payloads) or [stats_payload()]
        self.delay = delay
        self.error = error
        self.calls = 0

    async def fetch_stats(self) -> StatsSample:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        payload = self.payloads[min(self.calls, len(self.payloads)) - 1]
        return StatsSample.model_validate(payload)


@pytest.fixture()
def clock():
    return FakeClock(T0 + timedelta(seconds=5))


@pytest.fixture()
def source():
    return FakeStatsSource()
