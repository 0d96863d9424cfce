"""
Health check endpoints.
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
import redis.asyncio as redis

from config import settings
from database import engine

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """
    Overall service health.
    Database and Redis failures degrade the status instead of failing the probe.
    """
    health_status = {
        "status": "healthy",
        "api": "up",
        "database": "unknown",
        "redis": "unknown",
        "neynar_api_key": "configured" if settings.NEYNAR_API_KEY else "missing",
        "jobs": None,
    }

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        health_status["database"] = "up"
    except Exception as e:
        health_status["database"] = f"down: {str(e)}"
        health_status["status"] = "degraded"

    try:
        r = redis.from_url(settings.REDIS_URL)
        try:
            await r.ping()
        finally:
            await r.aclose()
        health_status["redis"] = "up"
    except Exception as e:
        health_status["redis"] = f"down: {str(e)}"

    services = getattr(request.app.state, "services", None)
    if services is not None:
        health_status["jobs"] = {
            "pending": services.scheduler.pending_count(),
            "idle": services.scheduler.is_idle,
        }

    return health_status


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness probe: the Neynar key must be set and services built."""
    missing = []
    if not settings.NEYNAR_API_KEY:
        missing.append("NEYNAR_API_KEY")
    if getattr(request.app.state, "services", None) is None:
        missing.append("services")

    if missing:
        return JSONResponse(
            status_code=503,
            content={"ready": False, "missing": missing},
        )
    return {"ready": True}


@router.get("/health/live")
async def liveness_check():
    return {"alive": True}
