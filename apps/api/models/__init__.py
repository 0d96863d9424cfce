"""Models package."""

from .creator import Creator
from .creator_score import CreatorScore
from .waitlist import WaitlistEntry
