"""
Provider webhooks that keep creator scores fresh.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, Request

from routers.deps import get_services
from services.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter()

CAST_PRIORITY = 5
SOCIAL_PRIORITY = 10


def _as_fid(value: Any) -> Optional[int]:
    try:
        fid = int(value)
    except (TypeError, ValueError):
        return None
    return fid if fid > 0 else None


def affected_creators(event_type: str, data: Dict[str, Any]) -> List[Tuple[int, int]]:
    """(fid, priority) pairs a webhook event should rescore."""
    candidates: List[Tuple[Any, int]] = []
    if event_type == "cast.created":
        candidates.append((data.get("fid"), CAST_PRIORITY))
    elif event_type in ("follow.created", "follow.deleted"):
        candidates.append((data.get("fid"), SOCIAL_PRIORITY))
        candidates.append((data.get("targetFid"), SOCIAL_PRIORITY))
    elif event_type in ("reaction.created", "reaction.deleted"):
        candidates.append((data.get("castAuthorFid"), SOCIAL_PRIORITY))

    affected = []
    for raw_fid, priority in candidates:
        fid = _as_fid(raw_fid)
        if fid is not None:
            affected.append((fid, priority))
    return affected


@router.post("/neynar")
async def neynar_webhook(request: Request, services: ServiceContainer = Depends(get_services)):
    """Queue rescoring for creators touched by a Neynar event; always acknowledges."""
    try:
        payload = await request.json()
        if not isinstance(payload, dict):
            raise ValueError("webhook payload must be a JSON object")
        event_type = str(payload.get("type") or "")
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        logger.info("Received Neynar webhook: %s", event_type)

        for fid, priority in affected_creators(event_type, data):
            services.metrics_fetcher.invalidate(fid)
            services.scheduler.enqueue(fid, priority)
    except Exception:
        logger.exception("Webhook processing failed")
    return {"success": True}
