"""Growth-rate calculation for the cached stats record.

The growth rate compares the new sample against the previously cached record.
With no previous record the baseline is assumed to be one TTL period old and
to have grown by ``default_users_delta`` users. The result is scaled down by
``bias`` so consumers extrapolating from it undershoot rather than overshoot.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from models.stats import CacheRecord, StatsSample

DEFAULT_TTL_MS = 60_000
DEFAULT_USERS_DELTA = 120
# Used when the sample is not newer than its baseline
FALLBACK_GROWTH_RATE = 2.34 * 60
GROWTH_RATE_BIAS = 0.95


@dataclass(frozen=True)
class GrowthPolicy:
    ttl_ms: int = DEFAULT_TTL_MS
    next_update_basis: str = "sample"
    default_users_delta: int = DEFAULT_USERS_DELTA
    fallback_growth_rate: float = FALLBACK_GROWTH_RATE
    bias: float = GROWTH_RATE_BIAS

    @property
    def ttl(self) -> timedelta:
        return timedelta(milliseconds=self.ttl_ms)


def users_growth_rate(
    sample: StatsSample,
    previous: CacheRecord | None,
    now: datetime,
    policy: GrowthPolicy,
) -> float:
    """Users gained per second between ``previous`` and ``sample``, biased low."""
    baseline_time = previous.last_update_time if previous else now - policy.ttl
    elapsed = (sample.updated_at - baseline_time).total_seconds()

    if previous:
        users_delta = sample.total_users - previous.total_users
    else:
        users_delta = policy.default_users_delta

    raw_rate = users_delta / elapsed if elapsed > 0 else policy.fallback_growth_rate
    return raw_rate * policy.bias


def compute_cache_record(
    sample: StatsSample,
    previous: CacheRecord | None,
    now: datetime,
    policy: GrowthPolicy = GrowthPolicy(),
) -> CacheRecord:
    """Build the next CacheRecord. Pure: same inputs and ``now`` give the same record."""
    last_update_time = sample.updated_at
    anchor = now if policy.next_update_basis == "fetch" else last_update_time

    return CacheRecord(
        total_users=sample.total_users,
        total_posts=sample.total_posts,
        total_follows=sample.total_follows,
        total_likes=sample.total_likes,
        users_growth_rate_per_second=users_growth_rate(sample, previous, now, policy),
        last_update_time=last_update_time,
        next_update_time=anchor + policy.ttl,
    )
