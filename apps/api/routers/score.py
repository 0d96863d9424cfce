"""
Creator score endpoints.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config import settings
from routers.deps import error_response, get_services, parse_fid
from routers.rate_limit import rate_limit
from services.container import ServiceContainer
from services.errors import NotFoundError, ValidationError

router = APIRouter()


class CalculateScoreRequest(BaseModel):
    fid: int = Field(gt=0)


@router.post("/calculate")
async def calculate_score(
    request: CalculateScoreRequest,
    _rate_limit: None = Depends(
        rate_limit("score_calculate", limit=settings.SCORE_CALCULATE_RATE_LIMIT_PER_MINUTE, window_seconds=60)
    ),
    services: ServiceContainer = Depends(get_services),
):
    """Return today's score, calculating it first if needed (bounded wait)."""
    try:
        outcome = await services.score_service.request_score(request.fid)
    except ValidationError as exc:
        return error_response(400, str(exc))

    if outcome.processing:
        return JSONResponse(
            status_code=202,
            content={
                "success": True,
                "processing": True,
                "message": "Score calculation is in progress. Please try again in a few seconds.",
                "jobId": outcome.job_id,
            },
        )
    return {
        "success": True,
        "data": {
            "score": outcome.score,
            "loanTerms": outcome.loan_terms,
            "shareUrl": outcome.share_url,
        },
    }


@router.get("/share/{shareable_id}")
async def get_shared_score(shareable_id: str, services: ServiceContainer = Depends(get_services)):
    """Public lookup of a score by its shareable id."""
    try:
        data = await services.score_service.get_score_by_shareable_id(shareable_id)
    except NotFoundError as exc:
        return error_response(404, str(exc))
    return {"success": True, "data": data}


@router.get("/{fid}")
async def get_creator_score(fid: str, services: ServiceContainer = Depends(get_services)):
    """Today's score for a creator, with profile fields."""
    try:
        parsed_fid = parse_fid(fid)
    except ValueError:
        return error_response(400, "Invalid FID")
    try:
        data = await services.score_service.get_score_by_creator(parsed_fid)
    except NotFoundError as exc:
        return error_response(404, str(exc))
    return {"success": True, "data": data}
