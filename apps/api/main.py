"""
Creator Score API - FastAPI Backend
Application entry point: service wiring, error envelopes and routing.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from database import Base, async_session_maker, engine
import models  # noqa: F401
from routers import (
    health,
    score,
    jobs,
    leaderboard,
    webhooks,
    waitlist,
    challenge,
    metrics,
)
from services.container import build_container
from services.errors import CreatorScoreError, NotFoundError, UpstreamError, ValidationError

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info("Starting Creator Score API...")
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database schema verified.")
        except Exception as exc:
            logger.warning("Database bootstrap skipped: %s", exc)

    services = build_container(settings, async_session_maker)
    app.state.services = services
    if settings.DAILY_REFRESH_ENABLED:
        services.scheduler.start_daily_refresh()
        logger.info("Daily score refresh enabled at %02d:00 UTC.", settings.DAILY_REFRESH_HOUR)
    yield
    logger.info("Shutting down API...")
    await services.aclose()
    app.state.services = None


app = FastAPI(
    title="Creator Score API",
    description="Farcaster creator scores, leaderboards and loan waitlist",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Invalid request"
    return _error(400, message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(CreatorScoreError)
async def creator_score_error_handler(request: Request, exc: CreatorScoreError):
    if isinstance(exc, ValidationError):
        return _error(400, str(exc))
    if isinstance(exc, NotFoundError):
        return _error(404, str(exc))
    if isinstance(exc, UpstreamError):
        logger.error("Upstream failure on %s: %s", request.url.path, exc)
        return _error(502, "Upstream service unavailable")
    logger.error("Unhandled service error on %s: %s", request.url.path, exc)
    return _error(500, "Internal server error")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s", request.url.path)
    return _error(500, "Internal server error")


app.include_router(health.router, tags=["Health"])
app.include_router(score.router, prefix="/score", tags=["Score"])
app.include_router(jobs.router, prefix="/jobs", tags=["Jobs"])
app.include_router(leaderboard.router, prefix="/leaderboard", tags=["Leaderboard"])
app.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
app.include_router(waitlist.router, prefix="/waitlist", tags=["Waitlist"])
app.include_router(challenge.router, prefix="/challenge", tags=["Challenge"])
app.include_router(metrics.router, prefix="/metrics", tags=["Metrics"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Creator Score API",
        "version": "0.1.0",
        "status": "running"
    }
