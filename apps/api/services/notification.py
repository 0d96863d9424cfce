"""Creator notifications: friend alerts after a score update and challenges."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Optional, Protocol

import httpx

from services.score import ScoreResult
from services.score_repository import ScoreRepository

logger = logging.getLogger(__name__)

FRIEND_ALERT_MARGIN = 5


@dataclass(frozen=True)
class Notification:
    target_fid: int
    title: str
    body: str
    action_url: Optional[str] = None


class NotificationSink(Protocol):
    async def deliver(self, notification: Notification) -> None:
        ...


class LoggingNotificationSink:
    """Default sink: records notifications in the application log."""

    async def deliver(self, notification: Notification) -> None:
        logger.info(
            "[NOTIFICATION] To FID %s: %s | %s (%s)",
            notification.target_fid,
            notification.title,
            notification.body,
            notification.action_url,
        )


class WebhookNotificationSink:
    """POST each notification as JSON to an external delivery endpoint."""

    def __init__(self, url: str, *, timeout_seconds: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self._client = httpx.AsyncClient(timeout=timeout_seconds, transport=transport)

    async def deliver(self, notification: Notification) -> None:
        response = await self._client.post(self.url, json=asdict(notification))
        response.raise_for_status()

    async def aclose(self) -> None:
        await self._client.aclose()


class NotificationService:
    """Best-effort notification dispatch; delivery failures are logged, never raised."""

    def __init__(self, repository: ScoreRepository, sink: NotificationSink) -> None:
        self.repository = repository
        self.sink = sink

    async def _send(self, notification: Notification) -> bool:
        try:
            await self.sink.deliver(notification)
            return True
        except Exception as exc:
            logger.warning("Failed to send notification to FID %s: %s", notification.target_fid, exc)
            return False

    async def send_score_update_notification(self, fid: int, score: ScoreResult) -> int:
        """Alert nearby scorers who were just overtaken by ``fid``; returns alerts sent."""
        try:
            neighbours = await self.repository.similar_scores(fid, score.score_date)
        except Exception as exc:
            logger.warning("Could not load similar scores for FID %s: %s", fid, exc)
            return 0

        sent = 0
        for neighbour in neighbours:
            if score.overall_score - FRIEND_ALERT_MARGIN < neighbour.overall_score < score.overall_score:
                delivered = await self._send(
                    Notification(
                        target_fid=neighbour.creator_fid,
                        title="Friend Alert! 🎯",
                        body=f"@{fid} just beat your score with {score.overall_score}!",
                        action_url=f"/challenge/{fid}",
                    )
                )
                sent += int(delivered)
        return sent

    async def send_challenge_notification(self, challenger_fid: int, target_fid: int) -> bool:
        challenger = await self.repository.get_creator(challenger_fid)
        handle = challenger.username if challenger else str(challenger_fid)
        return await self._send(
            Notification(
                target_fid=target_fid,
                title="You've been challenged! ⚔️",
                body=f"@{handle} challenged you to beat their Creator Score!",
                action_url="/score/calculate",
            )
        )
