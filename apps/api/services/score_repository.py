"""Persistence helpers for creator scores and creator profiles."""

from __future__ import annotations

import logging
import secrets
import string
from datetime import date
from typing import Callable, List, Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.future import select

from models.creator import Creator
from models.creator_score import CreatorScore
from services.metrics import RawMetrics
from services.score import DEFAULT_PERCENTILE, ScoreResult, round_half_up

logger = logging.getLogger(__name__)

SHAREABLE_ID_LENGTH = 10
SHAREABLE_ID_ALPHABET = string.ascii_letters + string.digits + "_-"
MAX_SHAREABLE_ID_ATTEMPTS = 5


def generate_shareable_id(length: int = SHAREABLE_ID_LENGTH) -> str:
    return "".join(secrets.choice(SHAREABLE_ID_ALPHABET) for _ in range(length))


class ScoreRepository:
    """Reads and writes CreatorScore and Creator rows.

    The scheduler is the only writer; a same-day upsert is a find followed by
    update-or-insert, so callers serialize writes per creator.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        id_factory: Callable[[], str] = generate_shareable_id,
    ) -> None:
        self.session_maker = session_maker
        self.id_factory = id_factory

    async def percentile_rank(self, raw_score: float, score_date: date) -> int:
        async with self.session_maker() as db:
            total = await db.scalar(
                select(func.count()).select_from(CreatorScore).where(CreatorScore.score_date == score_date)
            )
            if not total:
                return DEFAULT_PERCENTILE
            below = await db.scalar(
                select(func.count())
                .select_from(CreatorScore)
                .where(
                    CreatorScore.score_date == score_date,
                    CreatorScore.overall_score < raw_score,
                )
            )
        return round_half_up((below or 0) / total * 100)

    async def _unique_shareable_id(self, db: AsyncSession) -> str:
        for _ in range(MAX_SHAREABLE_ID_ATTEMPTS):
            candidate = self.id_factory()
            taken = await db.scalar(
                select(func.count()).select_from(CreatorScore).where(CreatorScore.shareable_id == candidate)
            )
            if not taken:
                return candidate
            logger.warning("Shareable id collision on %s; re-rolling", candidate)
        raise RuntimeError("Could not allocate a unique shareable id")

    async def upsert_score(self, result: ScoreResult) -> CreatorScore:
        """Create or overwrite the score for ``(fid, score_date)``, keeping its shareable id.

        A provisional result never replaces a measured score for the same day.
        """
        components = result.components
        async with self.session_maker() as db:
            existing = await db.execute(
                select(CreatorScore).where(
                    CreatorScore.creator_fid == result.fid,
                    CreatorScore.score_date == result.score_date,
                )
            )
            row = existing.scalar_one_or_none()
            if row is None:
                row = CreatorScore(
                    creator_fid=result.fid,
                    score_date=result.score_date,
                    shareable_id=await self._unique_shareable_id(db),
                )
                db.add(row)
            elif result.provisional and not row.is_provisional:
                logger.warning(
                    "Keeping measured score for FID %s on %s over provisional recalculation",
                    result.fid,
                    result.score_date,
                )
                return row
            row.overall_score = result.overall_score
            row.percentile_rank = result.percentile_rank
            row.tier = result.tier
            row.engagement = components.engagement
            row.consistency = components.consistency
            row.growth = components.growth
            row.quality = components.quality
            row.network = components.network
            row.valid_until = result.valid_until
            row.is_provisional = result.provisional
            await db.commit()
            await db.refresh(row)
            return row

    async def upsert_profile(self, metrics: RawMetrics) -> Creator:
        async with self.session_maker() as db:
            result = await db.execute(select(Creator).where(Creator.fid == metrics.fid))
            creator = result.scalar_one_or_none()
            if creator is None:
                creator = Creator(fid=metrics.fid)
                db.add(creator)
            elif metrics.degraded:
                # keep the last real profile rather than the zero-valued fallback
                return creator
            creator.username = metrics.username
            creator.follower_count = metrics.follower_count
            creator.following_count = metrics.following_count
            creator.power_badge = metrics.power_badge
            creator.neynar_score = metrics.neynar_score
            await db.commit()
            await db.refresh(creator)
            return creator

    async def get_score_for_day(self, fid: int, score_date: date) -> Optional[CreatorScore]:
        async with self.session_maker() as db:
            result = await db.execute(
                select(CreatorScore).where(
                    CreatorScore.creator_fid == fid,
                    CreatorScore.score_date == score_date,
                )
            )
            return result.scalar_one_or_none()

    async def get_score_by_shareable_id(self, shareable_id: str) -> Optional[CreatorScore]:
        async with self.session_maker() as db:
            result = await db.execute(select(CreatorScore).where(CreatorScore.shareable_id == shareable_id))
            return result.scalar_one_or_none()

    async def get_creator(self, fid: int) -> Optional[Creator]:
        async with self.session_maker() as db:
            result = await db.execute(select(Creator).where(Creator.fid == fid))
            return result.scalar_one_or_none()

    async def list_creator_fids(self) -> List[int]:
        async with self.session_maker() as db:
            result = await db.execute(select(Creator.fid).order_by(Creator.fid))
            return [int(fid) for fid in result.scalars().all()]

    async def similar_scores(
        self,
        fid: int,
        score_date: date,
        *,
        spread: int = 20,
        limit: int = 10,
    ) -> List[CreatorScore]:
        """Other creators' scores for the day within ``spread`` points of ``fid``'s score."""
        own = await self.get_score_for_day(fid, score_date)
        if own is None:
            return []
        async with self.session_maker() as db:
            result = await db.execute(
                select(CreatorScore)
                .where(
                    CreatorScore.creator_fid != fid,
                    CreatorScore.score_date == score_date,
                    CreatorScore.overall_score >= max(0, own.overall_score - spread),
                    CreatorScore.overall_score <= min(100, own.overall_score + spread),
                )
                .order_by(CreatorScore.overall_score.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
