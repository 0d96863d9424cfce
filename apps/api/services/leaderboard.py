"""Leaderboard queries over stored creator scores."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Dict, List, Literal, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.creator import Creator
from models.creator_score import CreatorScore
from services.errors import ValidationError

LeaderboardType = Literal["all", "weekly", "friends"]
LEADERBOARD_TYPES = ("all", "weekly", "friends")
DEFAULT_LIMIT = 100
FRIENDS_LIMIT = 50
FRIENDS_SPREAD = 20
WEEKLY_DAYS = 7


async def get_leaderboard(
    db: AsyncSession,
    board: str,
    today: date,
    fid: Optional[int] = None,
) -> List[Dict[str, Any]]:
    if board not in LEADERBOARD_TYPES:
        raise ValidationError("Invalid leaderboard type. Must be one of: all, weekly, friends")
    if board == "friends" and not fid:
        raise ValidationError("FID required for friends leaderboard")

    query = select(CreatorScore)
    limit = DEFAULT_LIMIT
    if board == "weekly":
        query = query.where(CreatorScore.score_date >= today - timedelta(days=WEEKLY_DAYS))
    elif board == "friends":
        own_result = await db.execute(
            select(CreatorScore).where(
                CreatorScore.creator_fid == fid,
                CreatorScore.score_date == today,
            )
        )
        own = own_result.scalar_one_or_none()
        if own is None:
            return []
        query = query.where(
            CreatorScore.creator_fid != fid,
            CreatorScore.score_date == today,
            CreatorScore.overall_score >= max(0, own.overall_score - FRIENDS_SPREAD),
            CreatorScore.overall_score <= min(100, own.overall_score + FRIENDS_SPREAD),
        )
        limit = FRIENDS_LIMIT
    else:
        query = query.where(CreatorScore.score_date == today)

    result = await db.execute(
        query.order_by(CreatorScore.overall_score.desc(), CreatorScore.updated_at.asc()).limit(limit)
    )
    scores = list(result.scalars().all())

    fids = {score.creator_fid for score in scores}
    creators: Dict[int, Creator] = {}
    if fids:
        creator_result = await db.execute(select(Creator).where(Creator.fid.in_(fids)))
        creators = {creator.fid: creator for creator in creator_result.scalars().all()}

    entries = []
    for score in scores:
        creator = creators.get(score.creator_fid)
        entries.append(
            {
                "fid": score.creator_fid,
                "username": creator.username if creator else f"user_{score.creator_fid}",
                "overallScore": score.overall_score,
                "tier": score.tier,
                "percentileRank": score.percentile_rank,
                "followerCount": creator.follower_count if creator else 0,
                "powerBadge": bool(creator.power_badge) if creator else False,
            }
        )
    return entries
