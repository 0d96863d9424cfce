"""In-process priority job scheduler for creator score calculations."""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from services.errors import DegradedMetricsError
from services.metrics import DEFAULT_WINDOW_DAYS, MetricsFetcher
from services.notification import NotificationService
from services.score import ScoreCalculator, ScoreResult
from services.score_repository import ScoreRepository

logger = logging.getLogger(__name__)

DAILY_REFRESH_PRIORITY = 0


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


FINISHED_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass
class Job:
    id: str
    creator_fid: int
    priority: int
    created_at: datetime
    status: JobStatus = JobStatus.QUEUED
    attempts: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    result: Optional[ScoreResult] = field(default=None, repr=False)
    error: Optional[str] = None

    @property
    def finished(self) -> bool:
        return self.status in FINISHED_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "fid": self.creator_fid,
            "priority": self.priority,
            "status": self.status.value,
            "attempts": self.attempts,
            "createdAt": self.created_at.isoformat(),
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
        }


def seconds_until_next_run(now: datetime, hour: int) -> float:
    """Seconds from ``now`` until the next occurrence of ``hour``:00."""
    next_run = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if now >= next_run:
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()


class JobScheduler:
    """Priority queue of score jobs drained by a small pool of worker tasks.

    Higher ``priority`` runs first; equal priorities run in submission order.
    Jobs for the same creator never run concurrently, so the find-then-write
    upsert keeps one score per creator per day even with several workers.
    Each job is retried with exponential backoff before it is marked failed.
    """

    def __init__(
        self,
        metrics_fetcher: MetricsFetcher,
        calculator: ScoreCalculator,
        repository: ScoreRepository,
        notifier: Optional[NotificationService] = None,
        *,
        window_days: int = DEFAULT_WINDOW_DAYS,
        max_workers: int = 1,
        max_attempts: int = 3,
        retry_backoff_seconds: float = 1.0,
        retention_seconds: float = 3600,
        max_retained: int = 1000,
        daily_refresh_hour: int = 2,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.metrics_fetcher = metrics_fetcher
        self.calculator = calculator
        self.repository = repository
        self.notifier = notifier
        self.window_days = window_days
        self.max_workers = max(1, max_workers)
        self.max_attempts = max(1, max_attempts)
        self.retry_backoff_seconds = retry_backoff_seconds
        self.retention_seconds = retention_seconds
        self.max_retained = max_retained
        self.daily_refresh_hour = daily_refresh_hour
        self._now = now
        self._sleep = sleep

        self._jobs: Dict[str, Job] = {}
        self._heap: List[Tuple[int, int, str]] = []
        self._sequence = itertools.count()
        self._workers: Set[asyncio.Task] = set()
        self._background: Set[asyncio.Task] = set()
        self._creator_locks: Dict[int, asyncio.Lock] = {}
        self._daily_task: Optional[asyncio.Task] = None

    # Queue

    def enqueue(self, creator_fid: int, priority: int = 0) -> str:
        """Queue a score calculation and wake a worker; must run on the event loop."""
        job = Job(
            id=f"job-{uuid.uuid4().hex}",
            creator_fid=creator_fid,
            priority=priority,
            created_at=self._now(),
        )
        self._jobs[job.id] = job
        heapq.heappush(self._heap, (-priority, next(self._sequence), job.id))
        logger.info("Queued job %s for FID %s (priority %s)", job.id, creator_fid, priority)
        self._evict_finished()
        self._ensure_workers()
        return job.id

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def list_jobs(self) -> List[Dict[str, Any]]:
        return [job.to_dict() for job in self._jobs.values()]

    def pending_count(self) -> int:
        return sum(1 for job in self._jobs.values() if job.status == JobStatus.QUEUED)

    @property
    def is_idle(self) -> bool:
        return not any(not task.done() for task in self._workers)

    async def join(self) -> None:
        """Wait until the workers have drained the queue."""
        while True:
            active = [task for task in self._workers if not task.done()]
            if not active:
                return
            await asyncio.gather(*active, return_exceptions=True)

    # Workers

    def _ensure_workers(self) -> None:
        self._workers = {task for task in self._workers if not task.done()}
        missing = min(self.max_workers, len(self._heap)) - len(self._workers)
        if missing <= 0:
            return
        loop = asyncio.get_running_loop()
        for _ in range(missing):
            self._workers.add(loop.create_task(self._worker_loop()))

    async def _worker_loop(self) -> None:
        while self._heap:
            _, _, job_id = heapq.heappop(self._heap)
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.QUEUED:
                continue
            await self._run_job(job)
        logger.debug("Queue empty, worker going idle")

    async def _run_job(self, job: Job) -> None:
        lock = self._creator_locks.setdefault(job.creator_fid, asyncio.Lock())
        try:
            async with lock:
                job.status = JobStatus.PROCESSING
                job.started_at = self._now()
                logger.info("Processing job %s for FID %s", job.id, job.creator_fid)
                job.result = await self._run_with_retry(job)
            job.status = JobStatus.COMPLETED
            logger.info("Job %s completed: score %s", job.id, job.result.overall_score)
        except asyncio.CancelledError:
            job.status = JobStatus.FAILED
            job.error = "cancelled"
            raise
        except Exception as exc:
            logger.exception("Job %s failed after %d attempt(s)", job.id, job.attempts)
            job.status = JobStatus.FAILED
            job.error = str(exc) or type(exc).__name__
        finally:
            job.finished_at = self._now()
            self._evict_finished()

    async def _run_with_retry(self, job: Job) -> ScoreResult:
        attempt = 0
        while True:
            attempt += 1
            job.attempts = attempt
            try:
                return await self._process(job, final_attempt=attempt >= self.max_attempts)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                if attempt >= self.max_attempts:
                    raise
                delay = self.retry_backoff_seconds * (2 ** (attempt - 1))
                logger.warning(
                    "Job %s attempt %d/%d failed: %s; retrying in %.2fs",
                    job.id,
                    attempt,
                    self.max_attempts,
                    exc,
                    delay,
                )
                await self._sleep(delay)

    async def _process(self, job: Job, *, final_attempt: bool) -> ScoreResult:
        metrics = await self.metrics_fetcher.get_user_metrics(job.creator_fid, self.window_days)
        if metrics.degraded and not final_attempt:
            raise DegradedMetricsError(f"Metrics for FID {job.creator_fid} are unavailable")
        if metrics.degraded:
            logger.warning("Persisting provisional score for FID %s from fallback metrics", job.creator_fid)

        result = await self.calculator.calculate_score(metrics)
        await self.repository.upsert_score(result)
        await self.repository.upsert_profile(metrics)
        if not result.provisional:
            self._dispatch_notification(job.creator_fid, result)
        return result

    def _dispatch_notification(self, fid: int, result: ScoreResult) -> None:
        if self.notifier is None:
            return
        task = asyncio.get_running_loop().create_task(self.notifier.send_score_update_notification(fid, result))
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Notification dispatch failed: %s", exc)

    # Retention

    def _evict_finished(self) -> None:
        cutoff = self._now() - timedelta(seconds=self.retention_seconds)
        finished = [job for job in self._jobs.values() if job.finished]
        expired = {job.id for job in finished if job.finished_at and job.finished_at < cutoff}
        remaining = [job for job in finished if job.id not in expired]
        overflow = len(remaining) - self.max_retained
        if overflow > 0:
            remaining.sort(key=lambda job: job.finished_at or job.created_at)
            expired.update(job.id for job in remaining[:overflow])
        for job_id in expired:
            del self._jobs[job_id]

        active_fids = {job.creator_fid for job in self._jobs.values() if not job.finished}
        for fid in [fid for fid, lock in self._creator_locks.items() if fid not in active_fids and not lock.locked()]:
            del self._creator_locks[fid]

    # Daily refresh

    async def run_daily_refresh(self) -> int:
        """Queue a low-priority recalculation for every known creator."""
        fids = await self.repository.list_creator_fids()
        for fid in fids:
            self.enqueue(fid, DAILY_REFRESH_PRIORITY)
        logger.info("Queued daily refresh jobs for %d creators", len(fids))
        return len(fids)

    async def _daily_refresh_loop(self) -> None:
        while True:
            delay = seconds_until_next_run(self._now(), self.daily_refresh_hour)
            logger.info("Next daily refresh in %.0fs", delay)
            await self._sleep(delay)
            try:
                await self.run_daily_refresh()
            except Exception:
                logger.exception("Daily refresh tick failed")

    def start_daily_refresh(self) -> None:
        if self._daily_task is None or self._daily_task.done():
            self._daily_task = asyncio.get_running_loop().create_task(self._daily_refresh_loop())

    async def shutdown(self) -> None:
        tasks = list(self._workers) + list(self._background)
        if self._daily_task is not None:
            tasks.append(self._daily_task)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._workers.clear()
        self._background.clear()
        self._daily_task = None
