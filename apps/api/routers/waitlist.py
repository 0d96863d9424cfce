"""
Loan waitlist endpoints.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.deps import error_response, parse_fid
from routers.rate_limit import rate_limit
from services.errors import NotFoundError
from services.waitlist import get_waitlist_status, join_waitlist

router = APIRouter()

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class JoinWaitlistRequest(BaseModel):
    fid: int = Field(gt=0)
    email: str = Field(min_length=3, max_length=320, pattern=EMAIL_PATTERN)


@router.post("")
async def join(
    request: JoinWaitlistRequest,
    _rate_limit: None = Depends(rate_limit("waitlist_join", limit=20, window_seconds=3600)),
    db: AsyncSession = Depends(get_db),
):
    """Join the creator loan waitlist (idempotent per fid)."""
    data = await join_waitlist(db, request.fid, request.email)
    return {"success": True, "data": data}


@router.get("/status/{fid}")
async def status(fid: str, db: AsyncSession = Depends(get_db)):
    try:
        parsed_fid = parse_fid(fid)
    except ValueError:
        return error_response(400, "Invalid FID")
    try:
        data = await get_waitlist_status(db, parsed_fid)
    except NotFoundError as exc:
        return error_response(404, str(exc))
    return {"success": True, "data": data}
