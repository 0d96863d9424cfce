"""
Creator challenge endpoints.
"""

import asyncio

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from routers.deps import error_response, get_services, parse_fid
from routers.rate_limit import rate_limit
from services.container import ServiceContainer

router = APIRouter()


class ChallengeRequest(BaseModel):
    challengerFid: int = Field(gt=0)
    targetFid: int = Field(gt=0)


@router.post("")
async def send_challenge(
    request: ChallengeRequest,
    _rate_limit: None = Depends(rate_limit("challenge", limit=30, window_seconds=3600)),
    services: ServiceContainer = Depends(get_services),
):
    """Challenge another known creator to beat your score."""
    if request.challengerFid == request.targetFid:
        return error_response(400, "You cannot challenge yourself")

    repository = services.repository
    challenger, target = await asyncio.gather(
        repository.get_creator(request.challengerFid),
        repository.get_creator(request.targetFid),
    )
    if challenger is None:
        return error_response(404, "Challenger not found")
    if target is None:
        return error_response(404, "Target user not found")

    await services.notifier.send_challenge_notification(challenger.fid, target.fid)
    return {
        "success": True,
        "message": "Challenge sent!",
        "data": {
            "challenger": {"fid": challenger.fid, "username": challenger.username},
            "target": {"fid": target.fid, "username": target.username},
        },
    }


@router.get("/history/{fid}")
async def challenge_history(fid: str):
    """Challenges are delivered as notifications only, so there is no stored history yet."""
    try:
        parse_fid(fid)
    except ValueError:
        return error_response(400, "Invalid FID")
    return {"success": True, "data": {"sent": [], "received": []}}
