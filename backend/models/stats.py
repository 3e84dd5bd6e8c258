"""Upstream stats sample and the cached record derived from it."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class FollowerPercentile(BaseModel):
    """Follower count at a given percentile of accounts."""
    model_config = ConfigDict(extra="ignore")

    percentile: float
    value: float


class DailyDatum(BaseModel):
    """Per-day activity counters reported by the upstream.

    ``date`` is kept as the upstream's ISO-8601 string so it is served back
    unchanged; it must parse as a date or datetime.
    """
    model_config = ConfigDict(extra="allow")

    date: str
    num_likes: int = Field(default=0, ge=0)
    num_likers: int = Field(default=0, ge=0)
    num_posters: int = Field(default=0, ge=0)
    num_posts: int = Field(default=0, ge=0)
    num_posts_with_images: int = Field(default=0, ge=0)
    num_images: int = Field(default=0, ge=0)
    num_images_with_alt_text: int = Field(default=0, ge=0)
    num_first_time_posters: int = Field(default=0, ge=0)
    num_follows: int = Field(default=0, ge=0)
    num_followers: int = Field(default=0, ge=0)
    num_blocks: int = Field(default=0, ge=0)
    num_blockers: int = Field(default=0, ge=0)

    @field_validator("date")
    @classmethod
    def _iso_date(cls, value: str) -> str:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
        return value


class StatsSample(BaseModel):
    """One snapshot of the upstream aggregate stats.

    Only the totals and ``updated_at`` are required. The optional lists are
    kept loose so a bad entry in them never rejects the whole sample:
    ``daily_data`` stays raw (see ``services.daily.parse_daily_data``) and
    invalid follower percentiles are dropped.
    """
    model_config = ConfigDict(extra="ignore")

    total_users: int
    total_posts: int
    total_follows: int
    total_likes: int
    updated_at: datetime
    follower_percentiles: list[FollowerPercentile] | None = None
    daily_data: list[Any] | None = None

    @field_validator("updated_at")
    @classmethod
    def _updated_at_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @field_validator("daily_data", mode="before")
    @classmethod
    def _daily_list_or_none(cls, value: Any) -> Any:
        if value is not None and not isinstance(value, list):
            logger.warning("Ignoring non-list daily_data from upstream")
            return None
        return value

    @field_validator("follower_percentiles", mode="before")
    @classmethod
    def _drop_bad_percentiles(cls, value: Any) -> Any:
        if value is None:
            return None
        if not isinstance(value, list):
            logger.warning("Ignoring non-list follower_percentiles from upstream")
            return None
        kept = []
        for entry in value:
            try:
                kept.append(FollowerPercentile.model_validate(entry))
            except ValidationError:
                logger.warning("Dropping invalid follower percentile: %r", entry)
        return kept


class CacheRecord(BaseModel):
    """Cached, derived view of the latest sample served to clients."""

    total_users: int
    total_posts: int
    total_follows: int
    total_likes: int
    users_growth_rate_per_second: float
    last_update_time: datetime
    next_update_time: datetime

    @field_validator("last_update_time", "next_update_time")
    @classmethod
    def _times_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @property
    def ttl(self) -> timedelta:
        return self.next_update_time - self.last_update_time

    def is_fresh(self, now: datetime) -> bool:
        return now < self.next_update_time
