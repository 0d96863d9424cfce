"""
Leaderboard endpoints.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.deps import error_response
from services.errors import ValidationError
from services.leaderboard import get_leaderboard
from services.score import score_day

router = APIRouter()


@router.get("/{board}")
async def leaderboard(board: str, fid: Optional[int] = None, db: AsyncSession = Depends(get_db)):
    """Top creators today, over the last week, or around a creator's own score."""
    try:
        entries = await get_leaderboard(db, board, score_day(datetime.now(timezone.utc)), fid)
    except ValidationError as exc:
        return error_response(400, str(exc))
    return {"success": True, "data": entries}
