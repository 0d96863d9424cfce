from datetime import datetime, timedelta, timezone

import pytest

from services.errors import UpstreamError
from services.metrics import (
    MetricsFetcher,
    PostMetric,
    RawMetrics,
    calculate_engagement_rate,
    calculate_network_score,
    calculate_viral_coefficient,
    estimate_growth_rate,
)
from services.neynar import NeynarCastsPage
from services.rate_limiter import RateLimiter
from conftest import FakeNeynarClient, neynar_cast, neynar_user

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class ManualClock:
    def __init__(self):
        self.value = 0.0

    def __call__(self):
        return self.value


async def _no_sleep(_seconds):
    return None


def _fetcher(client, clock=None, **kwargs) -> MetricsFetcher:
    clock = clock or ManualClock()
    return MetricsFetcher(
        client,
        RateLimiter(1000, clock=clock, sleep=_no_sleep),
        clock=clock,
        now=lambda: NOW,
        sleep=_no_sleep,
        **kwargs,
    )


def _post(likes=0, recasts=0, replies=0) -> PostMetric:
    return PostMetric(hash="0x1", timestamp=NOW, likes=likes, recasts=recasts, replies=replies)


def test_engagement_rate_weights_recasts_and_replies():
    casts = [_post(likes=10, recasts=2, replies=2), _post(likes=0, recasts=0, replies=0)]
    # (10 + 4 + 3) / 2
    assert calculate_engagement_rate(casts) == pytest.approx(8.5)
    assert calculate_engagement_rate([]) == 0.0


def test_viral_coefficient_counts_share_of_viral_casts():
    casts = [_post(likes=51), _post(recasts=11), _post(likes=50, recasts=10), _post()]
    assert calculate_viral_coefficient(casts) == pytest.approx(50.0)
    assert calculate_viral_coefficient([]) == 0.0


def test_network_score_handles_zero_counts_and_badge_bonus():
    assert calculate_network_score(0, 0, False) == 0
    assert calculate_network_score(50, 10, True) == pytest.approx(70.0)
    assert calculate_network_score(10_000, 1, False) == 100.0


def test_growth_rate_buckets_follow_follower_count():
    assert estimate_growth_rate(0) == 10.0
    assert estimate_growth_rate(500) == 20.0
    assert estimate_growth_rate(5000) == 30.0
    assert estimate_growth_rate(50_000) == 40.0


@pytest.mark.asyncio
async def test_get_user_metrics_derives_signals_from_recent_casts():
    casts = [neynar_cast(i, likes=10, recasts=2, replies=2) for i in range(3)]
    for cast in casts:
        cast["timestamp"] = (NOW - timedelta(days=1)).isoformat()
    old = neynar_cast(99)
    old["timestamp"] = (NOW - timedelta(days=60)).isoformat()
    client = FakeNeynarClient(users={5: neynar_user(5, follower_count=200, following_count=100)}, casts={5: casts + [old]})

    metrics = await _fetcher(client).get_user_metrics(5, 30)

    assert metrics.degraded is False
    assert metrics.username == "creator5"
    assert len(metrics.casts) == 3
    assert metrics.engagement_rate == pytest.approx(17.0)
    assert metrics.posting_frequency == pytest.approx(3 / 30)
    assert metrics.growth_rate == 20.0
    assert metrics.network_score == pytest.approx(20.0)
    assert metrics.neynar_score == pytest.approx(0.8)


@pytest.mark.asyncio
async def test_metrics_are_cached_until_ttl_expires():
    clock = ManualClock()
    client = FakeNeynarClient(users={5: neynar_user(5)})
    fetcher = _fetcher(client, clock=clock, cache_ttl_seconds=100)

    first = await fetcher.get_user_metrics(5)
    second = await fetcher.get_user_metrics(5)
    assert first is second
    assert client.profile_calls == [5]

    clock.value = 101
    await fetcher.get_user_metrics(5)
    assert client.profile_calls == [5, 5]


@pytest.mark.asyncio
async def test_cache_is_keyed_by_window_and_can_be_invalidated():
    client = FakeNeynarClient(users={5: neynar_user(5)})
    fetcher = _fetcher(client)

    await fetcher.get_user_metrics(5, 45)
    await fetcher.get_user_metrics(5, 7)
    assert fetcher.cache_size() == 2

    assert fetcher.invalidate(5) == 2
    assert fetcher.cache_size() == 0


@pytest.mark.asyncio
async def test_expired_entries_are_swept():
    clock = ManualClock()
    client = FakeNeynarClient(users={5: neynar_user(5), 6: neynar_user(6)})
    fetcher = _fetcher(client, clock=clock, cache_ttl_seconds=10, sweep_interval_seconds=60)

    await fetcher.get_user_metrics(5)
    clock.value = 61
    await fetcher.get_user_metrics(6)

    assert fetcher.cache_size() == 1


@pytest.mark.asyncio
async def test_upstream_failure_returns_degraded_fallback_without_caching():
    client = FakeNeynarClient()
    fetcher = _fetcher(client, max_attempts=2)

    metrics = await fetcher.get_user_metrics(9)

    assert metrics == RawMetrics.fallback(9)
    assert metrics.degraded is True
    assert metrics.username == "user_9"
    assert metrics.follower_count == 0
    assert client.profile_calls == [9, 9]
    assert fetcher.cache_size() == 0


@pytest.mark.asyncio
async def test_pagination_follows_cursor_until_page_budget():
    class PagedClient(FakeNeynarClient):
        async def fetch_casts_page(self, fid, *, limit=100, cursor=None):
            self.page_calls.append((fid, cursor))
            page = len(self.page_calls)
            cast = neynar_cast(page)
            cast["timestamp"] = (NOW - timedelta(hours=page)).isoformat()
            return NeynarCastsPage.model_validate({"casts": [cast], "next": {"cursor": f"c{page}"}})

    client = PagedClient(users={5: neynar_user(5)})
    metrics = await _fetcher(client, max_pages=3).get_user_metrics(5)

    assert [cursor for _, cursor in client.page_calls] == [None, "c1", "c2"]
    assert len(metrics.casts) == 3


@pytest.mark.asyncio
async def test_transient_failure_is_retried():
    client = FakeNeynarClient(users={5: neynar_user(5)})
    calls = []
    original = client.fetch_user_profile

    async def flaky(fid):
        calls.append(fid)
        if len(calls) == 1:
            raise UpstreamError("timeout")
        return await original(fid)

    client.fetch_user_profile = flaky
    metrics = await _fetcher(client, max_attempts=3).get_user_metrics(5)

    assert metrics.degraded is False
    assert calls == [5, 5]


@pytest.mark.asyncio
async def test_rejects_empty_window():
    with pytest.raises(ValueError):
        await _fetcher(FakeNeynarClient()).get_user_metrics(5, 0)
