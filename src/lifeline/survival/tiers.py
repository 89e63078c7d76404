"""Resource tiers and the capability profile attached to each."""

from __future__ import annotations

from dataclasses import dataclass

from lifeline.types import DEFAULT_THRESHOLDS, ResourceTier, Thresholds

PREMIUM = "premium"
BALANCED = "balanced"
ECONOMY = "economy"


@dataclass(frozen=True)
class CapabilityProfile:
    tier: ResourceTier
    reduced_effort: bool
    routing: str
    slow_scheduler: bool


_PROFILES: dict[ResourceTier, CapabilityProfile] = {
    ResourceTier.AMPLE: CapabilityProfile(ResourceTier.AMPLE, False, PREMIUM, False),
    ResourceTier.REDUCED: CapabilityProfile(ResourceTier.REDUCED, True, BALANCED, True),
    ResourceTier.CRITICAL: CapabilityProfile(ResourceTier.CRITICAL, True, ECONOMY, True),
    ResourceTier.EXHAUSTED: CapabilityProfile(ResourceTier.EXHAUSTED, True, ECONOMY, True),
}


def classify_tier(balance: float, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> ResourceTier:
    """Map a balance to its tier; each tier requires strictly exceeding its threshold."""
    if balance > thresholds.ample:
        return ResourceTier.AMPLE
    if balance > thresholds.reduced:
        return ResourceTier.REDUCED
    if balance > thresholds.critical:
        return ResourceTier.CRITICAL
    return ResourceTier.EXHAUSTED


def can_operate(tier: ResourceTier) -> bool:
    return tier is not ResourceTier.EXHAUSTED


def profile_for_tier(tier: ResourceTier) -> CapabilityProfile:
    return _PROFILES[tier]


def format_balance(value: float) -> str:
    if value >= 1_000_000:
        return f"{value / 1_000_000:.2f}M units"
    if value >= 1_000:
        return f"{value / 1_000:.1f}k units"
    return f"{value:g} units"
