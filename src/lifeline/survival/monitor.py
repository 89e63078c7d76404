"""Balance observation, tier bookkeeping and resource reports."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from lifeline.store import keys
from lifeline.survival.tiers import CapabilityProfile, classify_tier, format_balance, profile_for_tier
from lifeline.types import (
    DEFAULT_THRESHOLDS,
    BalanceSource,
    ComputeProvider,
    ProfileRouting,
    ReasoningClient,
    ResourceTier,
    StateStore,
    Thresholds,
    TierTransition,
    now_iso,
)

MAX_TIER_TRANSITIONS = 50


def read_balance(source: BalanceSource) -> float:
    """Read the balance, treating any failure as an empty balance for this cycle."""
    try:
        return float(source.get_balance())
    except Exception as exc:
        logger.warning("survival.balance.error error={}", exc)
        return 0.0


def stored_tier(store: StateStore) -> ResourceTier | None:
    raw = store.get(keys.CURRENT_TIER)
    if raw is None:
        return None
    try:
        return ResourceTier(raw)
    except ValueError:
        return None


def record_transition(
    store: StateStore,
    from_tier: ResourceTier,
    to_tier: ResourceTier,
    balance: float,
    *,
    cap: int = MAX_TIER_TRANSITIONS,
) -> TierTransition:
    transition = TierTransition(from_tier=from_tier, to_tier=to_tier, timestamp=now_iso(), balance=balance)
    history = [*store.get_tier_transitions(), transition]
    store.set_tier_transitions(history[-cap:])
    logger.info("survival.tier.transition from={} to={} balance={}", from_tier, to_tier, balance)
    return transition


@dataclass(frozen=True)
class TierObservation:
    tier: ResourceTier
    previous: ResourceTier | None
    profile: CapabilityProfile
    transition: TierTransition | None = None

    @property
    def changed(self) -> bool:
        return self.transition is not None


class SurvivalMonitor:
    """Classifies balances and applies the resulting capability profile."""

    def __init__(
        self,
        store: StateStore,
        reasoner: ReasoningClient | None = None,
        *,
        thresholds: Thresholds = DEFAULT_THRESHOLDS,
    ) -> None:
        self._store = store
        self._reasoner = reasoner
        self._thresholds = thresholds

    def observe(self, balance: float, *, apply: bool = True) -> TierObservation:
        """Classify ``balance`` and record the tier; ``apply=False`` leaves the reasoner untouched."""
        tier = classify_tier(balance, self._thresholds)
        previous = stored_tier(self._store)
        transition = None
        if previous is not None and previous is not tier:
            transition = record_transition(self._store, previous, tier, balance)
        profile = profile_for_tier(tier)
        self._store.set(keys.CURRENT_TIER, tier.value)
        self._store.set(keys.LAST_BALANCE, repr(float(balance)))
        if apply:
            self.apply(profile)
        return TierObservation(tier=tier, previous=previous, profile=profile, transition=transition)

    def apply(self, profile: CapabilityProfile) -> None:
        if self._reasoner is not None:
            self._reasoner.set_capability_profile(profile.reduced_effort)
            if isinstance(self._reasoner, ProfileRouting):
                self._reasoner.select_profile(profile.routing)
        if profile.slow_scheduler:
            self._store.set(keys.SCHEDULER_SLOW, "1")
        else:
            self._store.delete(keys.SCHEDULER_SLOW)


@dataclass(frozen=True)
class ResourceStatus:
    balance: float
    tier: ResourceTier
    previous_tier: ResourceTier | None
    tier_changed: bool
    compute_healthy: bool
    checked_at: str


def check_resources(
    balance_source: BalanceSource,
    compute: ComputeProvider,
    store: StateStore,
    *,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> ResourceStatus:
    """Snapshot balance, tier and compute health without touching the reasoner."""
    balance = read_balance(balance_source)
    try:
        compute_healthy = compute.execute("echo ok", timeout_ms=5_000).exit_code == 0
    except Exception as exc:
        logger.warning("survival.compute.unhealthy error={}", exc)
        compute_healthy = False

    tier = classify_tier(balance, thresholds)
    previous = stored_tier(store)
    return ResourceStatus(
        balance=balance,
        tier=tier,
        previous_tier=previous,
        tier_changed=previous is not None and previous is not tier,
        compute_healthy=compute_healthy,
        checked_at=now_iso(),
    )


def format_resource_report(status: ResourceStatus) -> str:
    tier_line = f"Tier: {status.tier}"
    if status.tier_changed:
        tier_line += f" (changed from {status.previous_tier})"
    return "\n".join([
        "=== RESOURCE STATUS ===",
        f"Balance: {format_balance(status.balance)}",
        tier_line,
        f"Compute: {'healthy' if status.compute_healthy else 'UNHEALTHY'}",
        f"Checked: {status.checked_at}",
        "========================",
    ])
