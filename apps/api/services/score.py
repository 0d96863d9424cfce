"""Creator score calculation: normalization, anti-gaming, distribution shaping, tiers."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, Protocol

from services.metrics import RawMetrics

SCORE_WEIGHTS = {
    "engagement": 0.35,
    "consistency": 0.20,
    "growth": 0.20,
    "quality": 0.15,
    "network": 0.10,
}
OPTIMAL_POSTS_PER_DAY = 2
EXCESSIVE_POSTS_PER_DAY = 10
EXCESSIVE_POSTING_PENALTY = 0.7
LOW_ENGAGEMENT_RATIO = 0.5
LOW_ENGAGEMENT_PENALTY = 0.8
DISTRIBUTION_CUTOFF_PERCENTILE = 80
DISTRIBUTION_CAP = 79
DISTRIBUTION_KNEE = 80
DEFAULT_PERCENTILE = 50

TIER_THRESHOLDS = (
    (90, 6),
    (80, 5),
    (70, 4),
    (60, 3),
    (40, 2),
)
TIER_NAMES = {
    1: "Starter",
    2: "Bronze",
    3: "Silver",
    4: "Gold",
    5: "Platinum",
    6: "Diamond",
}


class PercentileLookup(Protocol):
    async def percentile_rank(self, raw_score: float, score_date: date) -> int:
        ...


@dataclass(frozen=True)
class ScoreComponents:
    engagement: float
    consistency: float
    growth: float
    quality: float
    network: float

    def weighted_sum(self) -> float:
        return sum(getattr(self, name) * weight for name, weight in SCORE_WEIGHTS.items())

    def rounded(self) -> "ScoreComponents":
        return ScoreComponents(**{name: round(value, 2) for name, value in asdict(self).items()})

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class ScoreResult:
    fid: int
    overall_score: int
    percentile_rank: int
    tier: int
    components: ScoreComponents
    raw_score: float
    score_date: date
    valid_until: datetime
    provisional: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fid": self.fid,
            "overallScore": self.overall_score,
            "percentileRank": self.percentile_rank,
            "tier": self.tier,
            "components": self.components.to_dict(),
            "scoreDate": self.score_date.isoformat(),
            "validUntil": self.valid_until.isoformat(),
            "provisional": self.provisional,
        }


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def score_day(now: datetime) -> date:
    """Calendar day (UTC) a score computed at ``now`` belongs to."""
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.date()


def day_end(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc) + timedelta(days=1)


def calculate_tier(score: float) -> int:
    for threshold, tier in TIER_THRESHOLDS:
        if score >= threshold:
            return tier
    return 1


def tier_name(tier: int) -> str:
    return TIER_NAMES.get(tier, TIER_NAMES[1])


def normalize_engagement(engagement_rate: float) -> float:
    return _clamp(min(100.0, math.log10(max(1.0, engagement_rate)) * 25))


def normalize_consistency(posting_frequency: float) -> float:
    deviation = abs(posting_frequency - OPTIMAL_POSTS_PER_DAY)
    return min(100.0, max(0.0, 100 - deviation * 20))


def normalize_growth(growth_rate: float, follower_count: int) -> float:
    # growth_rate is in percent
    base = min(50.0, math.log10(max(1, follower_count)) * 10)
    bonus = min(50.0, max(0.0, growth_rate / 100) * 100)
    return _clamp(base + bonus)


def normalize_quality(viral_coefficient: float, reputation: float) -> float:
    viral = min(50.0, max(0.0, viral_coefficient))
    reputation_score = min(50.0, max(0.0, reputation * 50))
    return _clamp(viral + reputation_score)


def normalize_components(metrics: RawMetrics) -> ScoreComponents:
    return ScoreComponents(
        engagement=normalize_engagement(metrics.engagement_rate),
        consistency=normalize_consistency(metrics.posting_frequency),
        growth=normalize_growth(metrics.growth_rate, metrics.follower_count),
        quality=normalize_quality(metrics.viral_coefficient, metrics.neynar_score),
        network=_clamp(min(100.0, metrics.network_score)),
    )


def apply_diminishing_returns(components: ScoreComponents, metrics: RawMetrics) -> ScoreComponents:
    consistency = components.consistency
    quality = components.quality
    if metrics.posting_frequency > EXCESSIVE_POSTS_PER_DAY:
        consistency *= EXCESSIVE_POSTING_PENALTY
    engagement_ratio = metrics.engagement_rate / max(1.0, metrics.posting_frequency)
    if engagement_ratio < LOW_ENGAGEMENT_RATIO:
        quality *= LOW_ENGAGEMENT_PENALTY
    return ScoreComponents(
        engagement=components.engagement,
        consistency=consistency,
        growth=components.growth,
        quality=quality,
        network=components.network,
    )


def enforce_distribution(score: float, percentile: int) -> float:
    """Only the top fifth of today's scores may go above 79; the excess over 80 is log-compressed."""
    if percentile < DISTRIBUTION_CUTOFF_PERCENTILE:
        return min(score, DISTRIBUTION_CAP)
    if score > DISTRIBUTION_KNEE:
        compressed = math.log(1 + (score - DISTRIBUTION_KNEE)) * 10
        return min(100.0, DISTRIBUTION_KNEE + compressed)
    return score


class ScoreCalculator:
    """Turn raw metrics into a CreatorScore result.

    Pure apart from one percentile lookup against the scores already stored
    for today, which makes results depend on how many creators were scored
    earlier the same day.
    """

    def __init__(
        self,
        percentile_lookup: PercentileLookup,
        *,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.percentile_lookup = percentile_lookup
        self._now = now

    async def calculate_score(self, metrics: RawMetrics) -> ScoreResult:
        components = normalize_components(metrics)
        adjusted = apply_diminishing_returns(components, metrics)
        raw_score = adjusted.weighted_sum()

        today = score_day(self._now())
        percentile = await self.percentile_lookup.percentile_rank(raw_score, today)
        percentile = int(_clamp(percentile))

        final_score = enforce_distribution(raw_score, percentile)
        overall = int(_clamp(round_half_up(final_score)))

        return ScoreResult(
            fid=metrics.fid,
            overall_score=overall,
            percentile_rank=percentile,
            tier=calculate_tier(overall),
            components=adjusted.rounded(),
            raw_score=raw_score,
            score_date=today,
            valid_until=day_end(today),
            provisional=metrics.degraded,
        )
