"""
Raw Farcaster metrics for a creator.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends

from config import settings
from routers.deps import error_response, get_services, parse_fid
from services.container import ServiceContainer
from services.metrics import PostMetric, RawMetrics

router = APIRouter()

TRENDING_LIMIT = 5


def _cast_engagement(cast: PostMetric) -> float:
    return cast.likes + cast.recasts * 2 + cast.replies * 1.5


def serialize_metrics(metrics: RawMetrics) -> Dict[str, Any]:
    return {
        "followers": metrics.follower_count,
        "following": metrics.following_count,
        "casts": len(metrics.casts),
        "reactions": sum(cast.likes for cast in metrics.casts),
        "replies": sum(cast.replies for cast in metrics.casts),
        "recasts": sum(cast.recasts for cast in metrics.casts),
        "engagementRate": round(metrics.engagement_rate, 2),
        "postingFrequency": round(metrics.posting_frequency, 2),
        "viralCoefficient": round(metrics.viral_coefficient, 2),
        "networkScore": round(metrics.network_score, 2),
        "degraded": metrics.degraded,
        "lastUpdated": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/{fid}")
async def get_metrics(fid: str, services: ServiceContainer = Depends(get_services)):
    """Follower, cast and engagement totals over the metrics window."""
    try:
        parsed_fid = parse_fid(fid)
    except ValueError:
        return error_response(400, "Invalid FID")
    metrics = await services.metrics_fetcher.get_user_metrics(parsed_fid, settings.METRICS_WINDOW_DAYS)
    return {"success": True, "data": {"fid": parsed_fid, "metrics": serialize_metrics(metrics)}}


@router.get("/{fid}/trending")
async def get_trending_casts(fid: str, services: ServiceContainer = Depends(get_services)):
    """The creator's most engaging recent casts."""
    try:
        parsed_fid = parse_fid(fid)
    except ValueError:
        return error_response(400, "Invalid FID")
    metrics = await services.metrics_fetcher.get_user_metrics(parsed_fid, settings.METRICS_WINDOW_DAYS)
    top = sorted(metrics.casts, key=_cast_engagement, reverse=True)[:TRENDING_LIMIT]
    return {
        "success": True,
        "data": {
            "fid": parsed_fid,
            "trendingCasts": [
                {
                    "hash": cast.hash,
                    "reactions": cast.likes,
                    "recasts": cast.recasts,
                    "replies": cast.replies,
                    "timestamp": cast.timestamp.isoformat(),
                }
                for cast in top
            ],
        },
    }
