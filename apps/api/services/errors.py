"""Error taxonomy shared by the score services and routers."""

from __future__ import annotations

from typing import Optional


class CreatorScoreError(Exception):
    """Base class for errors raised by the creator score services."""


class UpstreamError(CreatorScoreError):
    """The social-graph API was unreachable, returned non-2xx, or an unexpected payload."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, endpoint: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


class ValidationError(CreatorScoreError):
    """Malformed input rejected at the service boundary."""


class NotFoundError(CreatorScoreError):
    """A score, profile, job or waitlist entry does not exist."""


class ScoreTimeoutError(CreatorScoreError):
    """The bounded wait for a score expired before the job finished."""

    def __init__(self, job_id: str):
        super().__init__(f"Score calculation for {job_id} is still in progress")
        self.job_id = job_id


class JobFailure(CreatorScoreError):
    """A score job exhausted its attempts."""

    def __init__(self, job_id: str, message: str):
        super().__init__(message)
        self.job_id = job_id


class DegradedMetricsError(UpstreamError):
    """Metrics came back as the zero-valued fallback snapshot."""
