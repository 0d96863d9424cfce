"""Calculate-or-return-cached score requests with a bounded wait."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from models.creator import Creator
from models.creator_score import CreatorScore
from services.errors import JobFailure, NotFoundError, ScoreTimeoutError, ValidationError
from services.jobs import JobScheduler, JobStatus
from services.loan import calculate_loan_terms
from services.score import score_day, tier_name
from services.score_repository import ScoreRepository

logger = logging.getLogger(__name__)


def serialize_score(score: CreatorScore) -> Dict[str, Any]:
    valid_until = score.valid_until
    if valid_until is not None and valid_until.tzinfo is None:
        valid_until = valid_until.replace(tzinfo=timezone.utc)
    return {
        "id": score.id,
        "creatorFid": score.creator_fid,
        "overallScore": int(score.overall_score),
        "percentileRank": int(score.percentile_rank),
        "tier": int(score.tier),
        "tierName": tier_name(int(score.tier)),
        "components": {name: round(float(value or 0), 2) for name, value in score.components.items()},
        "scoreDate": score.score_date.isoformat(),
        "validUntil": valid_until.isoformat() if valid_until else None,
        "shareableId": score.shareable_id,
        "provisional": bool(score.is_provisional),
    }


def _with_profile(payload: Dict[str, Any], creator: Optional[Creator]) -> Dict[str, Any]:
    payload["username"] = creator.username if creator else None
    payload["followerCount"] = creator.follower_count if creator else None
    return payload


@dataclass(frozen=True)
class ScoreOutcome:
    """Either a finished score payload or a still-processing job handle."""

    processing: bool
    job_id: Optional[str] = None
    score: Optional[Dict[str, Any]] = None
    loan_terms: Optional[Dict[str, Any]] = None
    share_url: Optional[str] = None


class ScoreService:
    """HTTP-facing score operations.

    ``request_score`` never waits longer than ``wait_timeout_seconds``; when the
    budget runs out it hands back the job id and leaves the job running.
    """

    def __init__(
        self,
        repository: ScoreRepository,
        scheduler: JobScheduler,
        *,
        request_priority: int = 10,
        wait_timeout_seconds: float = 10.0,
        poll_interval_seconds: float = 0.5,
        share_url_prefix: str = "/share",
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.repository = repository
        self.scheduler = scheduler
        self.request_priority = request_priority
        self.wait_timeout_seconds = wait_timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.share_url_prefix = share_url_prefix.rstrip("/")
        self._now = now
        self._clock = clock
        self._sleep = sleep

    def share_url(self, shareable_id: str) -> str:
        return f"{self.share_url_prefix}/{shareable_id}"

    def _is_valid(self, score: CreatorScore) -> bool:
        if score.is_provisional:
            return False
        valid_until = score.valid_until
        if valid_until is None:
            return False
        if valid_until.tzinfo is None:
            valid_until = valid_until.replace(tzinfo=timezone.utc)
        return valid_until > self._now()

    def _completed(self, score: CreatorScore) -> ScoreOutcome:
        payload = serialize_score(score)
        return ScoreOutcome(
            processing=False,
            score=payload,
            loan_terms=calculate_loan_terms(payload["tier"], payload["components"]),
            share_url=self.share_url(score.shareable_id),
        )

    async def _wait_for_score(self, fid: int, job_id: str) -> CreatorScore:
        deadline = self._clock() + self.wait_timeout_seconds
        while True:
            job = self.scheduler.get_job(job_id)
            status = job.status if job is not None else None
            score = await self.repository.get_score_for_day(fid, score_day(self._now()))
            if score is not None and not score.is_provisional:
                return score
            if status == JobStatus.FAILED:
                raise JobFailure(job_id, job.error or "score job failed")
            if score is not None and status in (None, JobStatus.COMPLETED):
                # the job ran out of retries and could only produce a provisional score
                return score
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise ScoreTimeoutError(job_id)
            await self._sleep(min(self.poll_interval_seconds, remaining))

    async def request_score(self, fid: int) -> ScoreOutcome:
        if fid <= 0:
            raise ValidationError("fid must be a positive integer")

        existing = await self.repository.get_score_for_day(fid, score_day(self._now()))
        if existing is not None and self._is_valid(existing):
            return self._completed(existing)

        job_id = self.scheduler.enqueue(fid, self.request_priority)
        try:
            score = await self._wait_for_score(fid, job_id)
        except JobFailure as exc:
            logger.warning("Job %s for FID %s failed while waiting: %s", job_id, fid, exc)
            return ScoreOutcome(processing=True, job_id=job_id)
        except ScoreTimeoutError:
            logger.info("Score for FID %s still processing as %s", fid, job_id)
            return ScoreOutcome(processing=True, job_id=job_id)
        return self._completed(score)

    async def get_score_by_creator(self, fid: int) -> Dict[str, Any]:
        score = await self.repository.get_score_for_day(fid, score_day(self._now()))
        if score is None:
            raise NotFoundError("Score not found")
        creator = await self.repository.get_creator(fid)
        return _with_profile(serialize_score(score), creator)

    async def get_score_by_shareable_id(self, shareable_id: str) -> Dict[str, Any]:
        token = (shareable_id or "").strip()
        if not token:
            raise NotFoundError("Score not found")
        score = await self.repository.get_score_by_shareable_id(token)
        if score is None:
            raise NotFoundError("Score not found")
        creator = await self.repository.get_creator(score.creator_fid)
        payload = _with_profile(serialize_score(score), creator)
        return {
            "score": payload,
            "loanTerms": calculate_loan_terms(payload["tier"], payload["components"]),
        }
