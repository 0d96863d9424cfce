"""Creator loan waitlist."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.creator import Creator
from models.waitlist import WaitlistEntry
from services.errors import NotFoundError

logger = logging.getLogger(__name__)


async def join_waitlist(db: AsyncSession, fid: int, email: str) -> Dict[str, Any]:
    creator_result = await db.execute(select(Creator).where(Creator.fid == fid))
    if creator_result.scalar_one_or_none() is None:
        db.add(Creator(fid=fid, username=f"user_{fid}"))
        await db.flush()

    existing_result = await db.execute(select(WaitlistEntry).where(WaitlistEntry.fid == fid))
    existing = existing_result.scalar_one_or_none()
    if existing is not None:
        await db.commit()
        return {"position": existing.position, "message": "You are already on the waitlist!"}

    count = await db.scalar(select(func.count()).select_from(WaitlistEntry))
    entry = WaitlistEntry(
        fid=fid,
        email=email.strip().lower(),
        position=int(count or 0) + 1,
        joined_at=datetime.now(timezone.utc),
    )
    db.add(entry)
    await db.commit()
    logger.info("FID %s joined the waitlist at position %s", fid, entry.position)
    return {"position": entry.position, "message": "Successfully joined waitlist!"}


async def get_waitlist_status(db: AsyncSession, fid: int) -> Dict[str, Any]:
    result = await db.execute(select(WaitlistEntry).where(WaitlistEntry.fid == fid))
    entry = result.scalar_one_or_none()
    if entry is None:
        raise NotFoundError("Not on waitlist")

    total = int(await db.scalar(select(func.count()).select_from(WaitlistEntry)) or 0)
    joined_at = entry.joined_at
    if joined_at is not None and joined_at.tzinfo is None:
        joined_at = joined_at.replace(tzinfo=timezone.utc)
    return {
        "onWaitlist": True,
        "position": entry.position,
        "joinedAt": joined_at.isoformat() if joined_at else None,
        "percentile": round(entry.position / total * 100) if total else 0,
        "totalCount": total,
    }
