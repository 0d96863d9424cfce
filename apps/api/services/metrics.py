"""Creator metrics fetched from Neynar, with derived signals and a TTL cache."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from services.errors import UpstreamError
from services.neynar import NeynarClient, NeynarUser
from services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_WINDOW_DAYS = 45
VIRAL_RECAST_THRESHOLD = 10
VIRAL_LIKE_THRESHOLD = 50
POWER_BADGE_BONUS = 20

# Follower-count buckets standing in for real growth tracking (percent).
GROWTH_BUCKETS = (
    (100, 10.0),
    (1000, 20.0),
    (10000, 30.0),
)
GROWTH_TOP_BUCKET = 40.0


@dataclass(frozen=True)
class PostMetric:
    hash: str
    timestamp: datetime
    likes: int
    recasts: int
    replies: int


@dataclass(frozen=True)
class RawMetrics:
    fid: int
    username: str
    follower_count: int
    following_count: int
    power_badge: bool
    neynar_score: float
    casts: Tuple[PostMetric, ...] = field(default_factory=tuple)
    engagement_rate: float = 0.0
    posting_frequency: float = 0.0
    growth_rate: float = 0.0
    viral_coefficient: float = 0.0
    network_score: float = 0.0
    degraded: bool = False

    @classmethod
    def fallback(cls, fid: int) -> "RawMetrics":
        """Zero-valued snapshot used when the provider cannot be reached."""
        return cls(
            fid=fid,
            username=f"user_{fid}",
            follower_count=0,
            following_count=0,
            power_badge=False,
            neynar_score=0.0,
            degraded=True,
        )


def calculate_engagement_rate(casts: List[PostMetric]) -> float:
    if not casts:
        return 0.0
    total = sum(cast.likes + cast.recasts * 2 + cast.replies * 1.5 for cast in casts)
    return total / len(casts)


def calculate_viral_coefficient(casts: List[PostMetric]) -> float:
    viral = [c for c in casts if c.recasts > VIRAL_RECAST_THRESHOLD or c.likes > VIRAL_LIKE_THRESHOLD]
    return len(viral) / max(len(casts), 1) * 100


def calculate_network_score(follower_count: int, following_count: int, power_badge: bool) -> float:
    follower_ratio = follower_count / max(following_count, 1)
    bonus = POWER_BADGE_BONUS if power_badge else 0
    return min(100.0, follower_ratio * 10 + bonus)


def estimate_growth_rate(follower_count: int) -> float:
    for threshold, rate in GROWTH_BUCKETS:
        if follower_count < threshold:
            return rate
    return GROWTH_TOP_BUCKET


class MetricsFetcher:
    """Fetch a creator's profile and recent casts and derive scoring signals.

    Upstream failures never propagate: once a call has used up its attempt
    budget the fetcher returns ``RawMetrics.fallback(fid)`` with
    ``degraded=True`` so callers can tell it apart from real data.
    """

    def __init__(
        self,
        client: NeynarClient,
        rate_limiter: RateLimiter,
        *,
        cache_ttl_seconds: float = 1800,
        sweep_interval_seconds: float = 300,
        max_pages: int = 5,
        page_size: int = 100,
        max_attempts: int = 3,
        retry_backoff_seconds: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.rate_limiter = rate_limiter
        self.cache_ttl_seconds = cache_ttl_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self.max_pages = max(1, max_pages)
        self.page_size = page_size
        self.max_attempts = max(1, max_attempts)
        self.retry_backoff_seconds = retry_backoff_seconds
        self._clock = clock
        self._now = now
        self._sleep = sleep
        self._cache: Dict[Tuple[int, int], Tuple[RawMetrics, float]] = {}
        self._last_sweep = clock()

    def _get_cached(self, key: Tuple[int, int]) -> Optional[RawMetrics]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        metrics, expires_at = entry
        if expires_at <= self._clock():
            del self._cache[key]
            return None
        return metrics

    def _maybe_sweep(self) -> None:
        now = self._clock()
        if now - self._last_sweep < self.sweep_interval_seconds:
            return
        expired = [key for key, (_, expires_at) in self._cache.items() if expires_at <= now]
        for key in expired:
            del self._cache[key]
        self._last_sweep = now
        if expired:
            logger.debug("Swept %d expired metrics cache entries", len(expired))

    def cache_size(self) -> int:
        return len(self._cache)

    def invalidate(self, fid: int) -> int:
        """Drop every cached window for ``fid``; returns the number of entries removed."""
        keys = [key for key in self._cache if key[0] == fid]
        for key in keys:
            del self._cache[key]
        return len(keys)

    async def _call(self, description: str, func: Callable[[], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            attempt += 1
            await self.rate_limiter.wait()
            try:
                return await func()
            except UpstreamError as exc:
                if attempt >= self.max_attempts:
                    raise
                delay = self.retry_backoff_seconds * (2 ** (attempt - 1))
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                    description,
                    attempt,
                    self.max_attempts,
                    exc,
                    delay,
                )
                await self._sleep(delay)

    async def _fetch_recent_casts(self, fid: int, window_days: int) -> List[PostMetric]:
        cutoff = self._now() - timedelta(days=window_days)
        casts: List[PostMetric] = []
        cursor: Optional[str] = None

        for _ in range(self.max_pages):
            page = await self._call(
                f"Casts page for fid {fid}",
                lambda: self.client.fetch_casts_page(fid, limit=self.page_size, cursor=cursor),
            )
            if not page.casts:
                break
            for cast in page.casts:
                timestamp = cast.timestamp
                if timestamp.tzinfo is None:
                    timestamp = timestamp.replace(tzinfo=timezone.utc)
                if timestamp < cutoff:
                    return casts
                casts.append(
                    PostMetric(
                        hash=cast.hash,
                        timestamp=timestamp,
                        likes=cast.reactions.likes_count,
                        recasts=cast.reactions.recasts_count,
                        replies=cast.replies.count,
                    )
                )
            cursor = page.next_cursor
            if not cursor:
                break
        return casts

    def _build_metrics(self, fid: int, profile: NeynarUser, casts: List[PostMetric], window_days: int) -> RawMetrics:
        return RawMetrics(
            fid=fid,
            username=profile.username,
            follower_count=profile.follower_count,
            following_count=profile.following_count,
            power_badge=profile.power_badge,
            neynar_score=profile.reputation,
            casts=tuple(casts),
            engagement_rate=calculate_engagement_rate(casts),
            posting_frequency=len(casts) / window_days,
            growth_rate=estimate_growth_rate(profile.follower_count),
            viral_coefficient=calculate_viral_coefficient(casts),
            network_score=calculate_network_score(
                profile.follower_count,
                profile.following_count,
                profile.power_badge,
            ),
        )

    async def get_user_metrics(self, fid: int, window_days: int = DEFAULT_WINDOW_DAYS) -> RawMetrics:
        if window_days < 1:
            raise ValueError("window_days must be >= 1")
        self._maybe_sweep()
        key = (fid, window_days)
        cached = self._get_cached(key)
        if cached is not None:
            logger.debug("Metrics cache hit for fid %s (%sd)", fid, window_days)
            return cached

        try:
            profile = await self._call(f"Profile for fid {fid}", lambda: self.client.fetch_user_profile(fid))
            casts = await self._fetch_recent_casts(fid, window_days)
        except UpstreamError as exc:
            logger.error("Falling back to empty metrics for fid %s: %s", fid, exc)
            return RawMetrics.fallback(fid)

        metrics = self._build_metrics(fid, profile, casts, window_days)
        self._cache[key] = (metrics, self._clock() + self.cache_ttl_seconds)
        logger.info(
            "Fetched metrics for fid %s: %d casts, engagement=%.2f",
            fid,
            len(casts),
            metrics.engagement_rate,
        )
        return metrics
