"""
Neynar API client for Farcaster profile and cast data.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaError

from services.errors import UpstreamError

logger = logging.getLogger(__name__)

USER_BULK_PATH = "/v2/farcaster/user/bulk"
USER_CASTS_PATH = "/v2/farcaster/feed/user/casts"


class NeynarExperimental(BaseModel):
    neynar_user_score: Optional[float] = None


class NeynarUser(BaseModel):
    fid: int
    username: str
    follower_count: int = Field(ge=0)
    following_count: int = Field(ge=0)
    power_badge: bool = False
    score: Optional[float] = None
    experimental: Optional[NeynarExperimental] = None

    @property
    def reputation(self) -> float:
        if self.score is not None:
            return float(self.score)
        if self.experimental and self.experimental.neynar_user_score is not None:
            return float(self.experimental.neynar_user_score)
        return 0.0


class NeynarBulkUsersResponse(BaseModel):
    users: List[NeynarUser]


class NeynarReactions(BaseModel):
    likes_count: int = Field(ge=0)
    recasts_count: int = Field(ge=0)


class NeynarReplies(BaseModel):
    count: int = Field(ge=0)


class NeynarCast(BaseModel):
    hash: str
    timestamp: datetime
    reactions: NeynarReactions
    replies: NeynarReplies


class NeynarCursor(BaseModel):
    cursor: Optional[str] = None


class NeynarCastsPage(BaseModel):
    casts: List[NeynarCast]
    next: Optional[NeynarCursor] = None

    @property
    def next_cursor(self) -> Optional[str]:
        if self.next is None:
            return None
        return self.next.cursor or None


class NeynarClient:
    """Thin async client over the two Neynar endpoints the scorer needs.

    Every failure mode (transport error, non-2xx status, payload that does
    not match the response schema) is raised as ``UpstreamError``.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.neynar.com",
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"accept": "application/json", "x-api-key": api_key},
            timeout=timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, params: Dict[str, Any]) -> Any:
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Neynar request failed: {exc}", endpoint=path) from exc
        if response.status_code >= 400:
            raise UpstreamError(
                f"Neynar returned HTTP {response.status_code}",
                status_code=response.status_code,
                endpoint=path,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError("Neynar returned a non-JSON body", endpoint=path) from exc

    async def fetch_user_profile(self, fid: int) -> NeynarUser:
        payload = await self._get(USER_BULK_PATH, {"fids": str(fid)})
        try:
            parsed = NeynarBulkUsersResponse.model_validate(payload)
        except SchemaError as exc:
            raise UpstreamError(f"Unexpected user payload for fid {fid}: {exc}", endpoint=USER_BULK_PATH) from exc
        if not parsed.users:
            raise UpstreamError(f"Neynar returned no user for fid {fid}", endpoint=USER_BULK_PATH)
        return parsed.users[0]

    async def fetch_casts_page(
        self,
        fid: int,
        *,
        limit: int = 100,
        cursor: Optional[str] = None,
    ) -> NeynarCastsPage:
        params: Dict[str, Any] = {"fid": fid, "limit": limit}
        if cursor:
            params["cursor"] = cursor
        payload = await self._get(USER_CASTS_PATH, params)
        try:
            return NeynarCastsPage.model_validate(payload)
        except SchemaError as exc:
            raise UpstreamError(f"Unexpected casts payload for fid {fid}: {exc}", endpoint=USER_CASTS_PATH) from exc
