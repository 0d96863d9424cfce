"""Routers package."""

from . import (
    health,
    score,
    jobs,
    leaderboard,
    webhooks,
    waitlist,
    challenge,
    metrics,
)
