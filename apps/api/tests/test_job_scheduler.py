import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from models.creator_score import CreatorScore
from services.jobs import JobScheduler, JobStatus, seconds_until_next_run
from services.metrics import RawMetrics
from services.score import ScoreCalculator, score_day
from services.score_repository import ScoreRepository
from conftest import StaticMetricsFetcher, make_metrics


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


class RecordingNotifier:
    def __init__(self):
        self.updates = []

    async def send_score_update_notification(self, fid, score):
        self.updates.append((fid, score.overall_score))
        return 0


def _scheduler(session_maker, fetcher, **kwargs):
    repository = ScoreRepository(session_maker)
    kwargs.setdefault("sleep", RecordingSleep())
    scheduler = JobScheduler(
        fetcher,
        ScoreCalculator(repository),
        repository,
        kwargs.pop("notifier", None),
        **kwargs,
    )
    return scheduler, repository


@pytest.mark.asyncio
async def test_jobs_run_highest_priority_first(session_maker):
    fetcher = StaticMetricsFetcher()
    scheduler, _ = _scheduler(session_maker, fetcher)

    scheduler.enqueue(1, 3)
    scheduler.enqueue(2, 9)
    scheduler.enqueue(3, 1)
    await scheduler.join()

    assert fetcher.calls == [2, 1, 3]
    assert scheduler.is_idle


@pytest.mark.asyncio
async def test_equal_priorities_run_in_submission_order(session_maker):
    fetcher = StaticMetricsFetcher()
    scheduler, _ = _scheduler(session_maker, fetcher)

    for fid in (4, 5, 6):
        scheduler.enqueue(fid, 5)
    await scheduler.join()

    assert fetcher.calls == [4, 5, 6]


@pytest.mark.asyncio
async def test_completed_job_persists_score_profile_and_notifies(session_maker):
    notifier = RecordingNotifier()
    scheduler, repository = _scheduler(session_maker, StaticMetricsFetcher(), notifier=notifier)

    job_id = scheduler.enqueue(42, 10)
    await scheduler.join()
    await asyncio.sleep(0)

    job = scheduler.get_job(job_id)
    assert job.status == JobStatus.COMPLETED
    assert job.attempts == 1
    assert job.result.fid == 42
    stored = await repository.get_score_for_day(42, score_day(datetime.now(timezone.utc)))
    assert stored.overall_score == job.result.overall_score
    assert stored.is_provisional is False
    assert (await repository.get_creator(42)).username == "creator42"
    assert notifier.updates == [(42, job.result.overall_score)]
    assert job.to_dict()["status"] == "completed"


@pytest.mark.asyncio
async def test_failing_job_is_retried_with_backoff_then_marked_failed(session_maker):
    class BrokenFetcher(StaticMetricsFetcher):
        async def get_user_metrics(self, fid, window_days=45):
            self.calls.append(fid)
            if fid == 1:
                raise RuntimeError("boom")
            return make_metrics(fid)

    sleep = RecordingSleep()
    fetcher = BrokenFetcher()
    scheduler, _ = _scheduler(session_maker, fetcher, max_attempts=3, retry_backoff_seconds=1.0, sleep=sleep)

    failed_id = scheduler.enqueue(1, 5)
    ok_id = scheduler.enqueue(2, 1)
    await scheduler.join()

    failed = scheduler.get_job(failed_id)
    assert failed.status == JobStatus.FAILED
    assert failed.error == "boom"
    assert failed.attempts == 3
    assert sleep.delays == [1.0, 2.0]
    assert scheduler.get_job(ok_id).status == JobStatus.COMPLETED
    assert fetcher.calls == [1, 1, 1, 2]


@pytest.mark.asyncio
async def test_transient_failure_recovers_on_retry(session_maker):
    class FlakyFetcher(StaticMetricsFetcher):
        async def get_user_metrics(self, fid, window_days=45):
            self.calls.append(fid)
            if len(self.calls) == 1:
                raise RuntimeError("flaky")
            return make_metrics(fid)

    scheduler, _ = _scheduler(session_maker, FlakyFetcher(), max_attempts=2)

    job_id = scheduler.enqueue(7)
    await scheduler.join()

    job = scheduler.get_job(job_id)
    assert job.status == JobStatus.COMPLETED
    assert job.attempts == 2


@pytest.mark.asyncio
async def test_degraded_metrics_retry_then_persist_provisional_score(session_maker):
    fetcher = StaticMetricsFetcher(default=RawMetrics.fallback(11))
    scheduler, repository = _scheduler(session_maker, fetcher, max_attempts=2)

    job_id = scheduler.enqueue(11)
    await scheduler.join()

    job = scheduler.get_job(job_id)
    assert job.status == JobStatus.COMPLETED
    assert job.attempts == 2
    assert job.result.provisional is True
    stored = await repository.get_score_for_day(11, job.result.score_date)
    assert stored.is_provisional is True


@pytest.mark.asyncio
async def test_finished_jobs_are_bounded_by_count(session_maker):
    scheduler, _ = _scheduler(session_maker, StaticMetricsFetcher(), max_retained=2)

    ids = [scheduler.enqueue(fid) for fid in (1, 2, 3)]
    await scheduler.join()

    retained = {job["id"] for job in scheduler.list_jobs()}
    assert len(retained) == 2
    assert ids[2] in retained


@pytest.mark.asyncio
async def test_finished_jobs_expire_after_retention(session_maker):
    clock = {"now": datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)}
    scheduler, _ = _scheduler(
        session_maker,
        StaticMetricsFetcher(),
        retention_seconds=60,
        now=lambda: clock["now"],
    )

    old_id = scheduler.enqueue(1)
    await scheduler.join()
    clock["now"] += timedelta(minutes=5)
    new_id = scheduler.enqueue(2)
    await scheduler.join()

    assert scheduler.get_job(old_id) is None
    assert scheduler.get_job(new_id).status == JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_daily_refresh_enqueues_every_known_creator(session_maker):
    fetcher = StaticMetricsFetcher()
    scheduler, repository = _scheduler(session_maker, fetcher)
    for fid in (3, 1, 2):
        await repository.upsert_profile(make_metrics(fid))

    queued = await scheduler.run_daily_refresh()
    assert scheduler.pending_count() == 3
    await scheduler.join()

    assert queued == 3
    assert sorted(fetcher.calls) == [1, 2, 3]
    assert all(job["priority"] == 0 for job in scheduler.list_jobs())


@pytest.mark.asyncio
async def test_shutdown_cancels_background_tasks(session_maker):
    scheduler, _ = _scheduler(session_maker, StaticMetricsFetcher())
    scheduler.start_daily_refresh()

    await scheduler.shutdown()

    assert scheduler.is_idle


def test_seconds_until_next_run():
    assert seconds_until_next_run(datetime(2026, 3, 1, 1, 0, tzinfo=timezone.utc), 2) == 3600
    assert seconds_until_next_run(datetime(2026, 3, 1, 3, 0, tzinfo=timezone.utc), 2) == 23 * 3600
    assert seconds_until_next_run(datetime(2026, 3, 1, 2, 0, tzinfo=timezone.utc), 2) == 24 * 3600


@pytest.mark.asyncio
async def test_provisional_rescore_keeps_measured_score(session_maker):
    fetcher = StaticMetricsFetcher()
    scheduler, repository = _scheduler(session_maker, fetcher, max_attempts=1)

    measured_id = scheduler.enqueue(7)
    await scheduler.join()
    measured = scheduler.get_job(measured_id).result

    fetcher.overrides[7] = RawMetrics.fallback(7)
    outage_id = scheduler.enqueue(7)
    await scheduler.join()

    assert scheduler.get_job(outage_id).status == JobStatus.COMPLETED
    stored = await repository.get_score_for_day(7, measured.score_date)
    assert stored.overall_score == measured.overall_score
    assert stored.is_provisional is False


@pytest.mark.asyncio
async def test_provisional_scores_send_no_friend_alerts(session_maker):
    notifier = RecordingNotifier()
    fetcher = StaticMetricsFetcher(default=RawMetrics.fallback(12))
    scheduler, _ = _scheduler(session_maker, fetcher, notifier=notifier, max_attempts=1)

    scheduler.enqueue(12)
    await scheduler.join()
    await asyncio.sleep(0)

    assert notifier.updates == []


@pytest.mark.asyncio
async def test_jobs_for_one_creator_are_serialized_across_workers(session_maker):
    scheduler, repository = _scheduler(session_maker, StaticMetricsFetcher(), max_workers=3)

    ids = [scheduler.enqueue(5, priority) for priority in (1, 2, 3, 4)]
    await scheduler.join()

    assert all(scheduler.get_job(job_id).status == JobStatus.COMPLETED for job_id in ids)
    async with session_maker() as db:
        rows = (await db.execute(select(CreatorScore).where(CreatorScore.creator_fid == 5))).scalars().all()
    assert len(rows) == 1
    stored = await repository.get_score_for_day(5, rows[0].score_date)
    assert stored.shareable_id == rows[0].shareable_id


@pytest.mark.asyncio
async def test_job_waiting_on_creator_lock_stays_queued(session_maker):
    release = asyncio.Event()

    class BlockingFetcher(StaticMetricsFetcher):
        async def get_user_metrics(self, fid, window_days=45):
            self.calls.append(fid)
            await release.wait()
            return make_metrics(fid)

    fetcher = BlockingFetcher()
    scheduler, _ = _scheduler(session_maker, fetcher, max_workers=2)

    first = scheduler.enqueue(5, 2)
    second = scheduler.enqueue(5, 1)
    for _ in range(5):
        await asyncio.sleep(0)

    assert scheduler.get_job(first).status == JobStatus.PROCESSING
    assert scheduler.get_job(second).status == JobStatus.QUEUED
    assert scheduler.get_job(second).started_at is None
    assert fetcher.calls == [5]

    release.set()
    await scheduler.join()
    assert scheduler.get_job(second).status == JobStatus.COMPLETED
