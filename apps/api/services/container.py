"""Process-wide service wiring, built once at startup and shared via app.state."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import Settings
from services.jobs import JobScheduler
from services.metrics import MetricsFetcher
from services.neynar import NeynarClient
from services.notification import (
    LoggingNotificationSink,
    NotificationService,
    NotificationSink,
    WebhookNotificationSink,
)
from services.rate_limiter import RateLimiter
from services.score import ScoreCalculator
from services.score_repository import ScoreRepository
from services.score_service import ScoreService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    rate_limiter: RateLimiter
    neynar_client: NeynarClient
    metrics_fetcher: MetricsFetcher
    repository: ScoreRepository
    calculator: ScoreCalculator
    notifier: NotificationService
    scheduler: JobScheduler
    score_service: ScoreService

    async def aclose(self) -> None:
        await self.scheduler.shutdown()
        await self.neynar_client.aclose()
        sink = self.notifier.sink
        if isinstance(sink, WebhookNotificationSink):
            await sink.aclose()


def build_container(
    settings: Settings,
    session_maker: async_sessionmaker[AsyncSession],
    *,
    neynar_client: Optional[NeynarClient] = None,
    notification_sink: Optional[NotificationSink] = None,
) -> ServiceContainer:
    """Construct every service exactly once and wire dependencies explicitly."""
    if neynar_client is None:
        if not settings.NEYNAR_API_KEY:
            logger.warning("NEYNAR_API_KEY is not configured; metrics will fall back to empty snapshots")
        neynar_client = NeynarClient(
            settings.NEYNAR_API_KEY,
            base_url=settings.NEYNAR_BASE_URL,
            timeout_seconds=settings.NEYNAR_TIMEOUT_SECONDS,
        )
    if notification_sink is None:
        if settings.NOTIFICATION_WEBHOOK_URL:
            notification_sink = WebhookNotificationSink(settings.NOTIFICATION_WEBHOOK_URL)
        else:
            notification_sink = LoggingNotificationSink()

    rate_limiter = RateLimiter(settings.NEYNAR_RATE_LIMIT_PER_MINUTE)
    metrics_fetcher = MetricsFetcher(
        neynar_client,
        rate_limiter,
        cache_ttl_seconds=settings.METRICS_CACHE_TTL_SECONDS,
        sweep_interval_seconds=settings.METRICS_CACHE_SWEEP_SECONDS,
        max_pages=settings.METRICS_MAX_PAGES,
        page_size=settings.METRICS_PAGE_SIZE,
        max_attempts=settings.NEYNAR_MAX_ATTEMPTS,
    )
    repository = ScoreRepository(session_maker)
    calculator = ScoreCalculator(repository)
    notifier = NotificationService(repository, notification_sink)
    scheduler = JobScheduler(
        metrics_fetcher,
        calculator,
        repository,
        notifier,
        window_days=settings.METRICS_WINDOW_DAYS,
        max_workers=settings.JOB_MAX_WORKERS,
        max_attempts=settings.JOB_MAX_ATTEMPTS,
        retry_backoff_seconds=settings.JOB_RETRY_BACKOFF_SECONDS,
        retention_seconds=settings.JOB_RETENTION_MINUTES * 60,
        max_retained=settings.JOB_MAX_RETAINED,
        daily_refresh_hour=settings.DAILY_REFRESH_HOUR,
    )
    score_service = ScoreService(
        repository,
        scheduler,
        request_priority=settings.SCORE_REQUEST_PRIORITY,
        wait_timeout_seconds=settings.SCORE_WAIT_TIMEOUT_SECONDS,
        poll_interval_seconds=settings.SCORE_POLL_INTERVAL_SECONDS,
        share_url_prefix=settings.SHARE_URL_PREFIX,
    )
    return ServiceContainer(
        rate_limiter=rate_limiter,
        neynar_client=neynar_client,
        metrics_fetcher=metrics_fetcher,
        repository=repository,
        calculator=calculator,
        notifier=notifier,
        scheduler=scheduler,
        score_service=score_service,
    )
