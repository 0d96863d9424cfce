"""Loan terms offered for each creator score tier."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping

MIN_INTEREST_RATE = 0.05


@dataclass(frozen=True)
class TierBenefit:
    rate: float
    max_amount: int
    grace_period: int
    name: str


TIER_BENEFITS = {
    1: TierBenefit(rate=0.15, max_amount=1000, grace_period=14, name="Starter"),
    2: TierBenefit(rate=0.13, max_amount=2500, grace_period=21, name="Bronze"),
    3: TierBenefit(rate=0.11, max_amount=5000, grace_period=30, name="Silver"),
    4: TierBenefit(rate=0.095, max_amount=7500, grace_period=30, name="Gold"),
    5: TierBenefit(rate=0.08, max_amount=10000, grace_period=45, name="Platinum"),
    6: TierBenefit(rate=0.065, max_amount=15000, grace_period=60, name="Diamond"),
}


def calculate_loan_terms(tier: int, components: Mapping[str, float]) -> Dict[str, Any]:
    """Base terms for the tier, with rate discounts for standout components."""
    info = TIER_BENEFITS.get(tier, TIER_BENEFITS[1])
    adjustment = 0.0
    benefits: List[str] = [
        f"{info.name} Tier Benefits",
        f"Base rate: {info.rate * 100:.1f}% APR",
    ]

    if components.get("consistency", 0) > 80:
        adjustment -= 0.005
        benefits.append("Consistency bonus: -0.5% APR")
    if components.get("engagement", 0) > 85:
        adjustment -= 0.01
        benefits.append("High engagement bonus: -1% APR")
    if components.get("network", 0) > 90:
        adjustment -= 0.005
        benefits.append("Network influence bonus: -0.5% APR")

    return {
        "interestRate": round(max(MIN_INTEREST_RATE, info.rate + adjustment), 4),
        "maxAmount": info.max_amount,
        "gracePeriod": info.grace_period,
        "tier": tier,
        "benefits": benefits,
    }
