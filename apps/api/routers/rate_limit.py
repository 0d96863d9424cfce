"""Per-client request quotas for public endpoints, Redis first with an in-process fallback."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Tuple

from fastapi import HTTPException, Request
import redis.asyncio as redis

from config import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "creator-score:rate"

_local_windows: Dict[str, Tuple[int, float]] = {}
_local_lock = asyncio.Lock()


def reset_local_quotas() -> None:
    _local_windows.clear()


def _client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "anonymous"


async def _take_local(key: str, limit: int, window_seconds: int) -> bool:
    now = time.time()
    async with _local_lock:
        used, window_end = _local_windows.get(key, (0, now + window_seconds))
        if now >= window_end:
            used, window_end = 0, now + window_seconds
        used += 1
        _local_windows[key] = (used, window_end)
    return used <= limit


async def _take_redis(key: str, window_seconds: int) -> int:
    client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        used = await client.incr(key)
        if used == 1:
            await client.expire(key, window_seconds)
        return used
    finally:
        await client.aclose()


def rate_limit(prefix: str, limit: int, window_seconds: int) -> Callable[[Request], Awaitable[None]]:
    """Build a dependency that rejects a client with 429 once it exceeds ``limit`` per window."""

    async def _dependency(request: Request) -> None:
        if getattr(request.app.state, "disable_rate_limits", False):
            return

        key = f"{KEY_PREFIX}:{prefix}:{_client_key(request)}"
        try:
            allowed = await _take_redis(key, window_seconds) <= limit
        except Exception as exc:
            logger.debug("Redis quota check unavailable (%s); using local window", exc)
            allowed = await _take_local(key, limit, window_seconds)

        if not allowed:
            raise HTTPException(status_code=429, detail="Too many requests, please try again later.")

    return _dependency
