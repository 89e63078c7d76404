from __future__ import annotations

import pytest

from lifeline.errors import InvalidThresholdsError
from lifeline.store import FileStateStore, keys
from lifeline.survival import (
    SurvivalMonitor,
    can_operate,
    check_resources,
    classify_tier,
    format_resource_report,
    profile_for_tier,
)
from lifeline.survival.monitor import read_balance, record_transition
from lifeline.types import ResourceTier, Thresholds

from .conftest import FakeBalance, FakeCompute, RoutingReasoner, ScriptedReasoner


@pytest.mark.parametrize(
    ("balance", "tier"),
    [
        (100_000, ResourceTier.AMPLE),
        (50_001, ResourceTier.AMPLE),
        (50_000, ResourceTier.REDUCED),
        (10_001, ResourceTier.REDUCED),
        (10_000, ResourceTier.CRITICAL),
        (1_001, ResourceTier.CRITICAL),
        (1_000, ResourceTier.EXHAUSTED),
        (0, ResourceTier.EXHAUSTED),
        (-5, ResourceTier.EXHAUSTED),
    ],
)
def test_tiers_require_strictly_exceeding_thresholds(balance: float, tier: ResourceTier) -> None:
    assert classify_tier(balance) is tier


def test_only_exhausted_cannot_operate() -> None:
    assert can_operate(ResourceTier.CRITICAL)
    assert not can_operate(ResourceTier.EXHAUSTED)


def test_thresholds_must_descend() -> None:
    with pytest.raises(InvalidThresholdsError):
        Thresholds(ample=10, reduced=10, critical=1)
    with pytest.raises(InvalidThresholdsError):
        Thresholds(ample=10, reduced=5, critical=-1)


def test_failed_balance_read_counts_as_zero() -> None:
    assert read_balance(FakeBalance(error=RuntimeError("offline"))) == 0.0


def test_tier_change_is_recorded_once(store: FileStateStore) -> None:
    monitor = SurvivalMonitor(store)

    first = monitor.observe(60_000)
    second = monitor.observe(30_000)
    third = monitor.observe(29_000)

    assert not first.changed
    assert second.changed
    assert not third.changed
    transitions = store.get_tier_transitions()
    assert len(transitions) == 1
    assert transitions[0].from_tier is ResourceTier.AMPLE
    assert transitions[0].to_tier is ResourceTier.REDUCED
    assert transitions[0].balance == 30_000


def test_transition_history_is_capped(store: FileStateStore) -> None:
    for idx in range(55):
        source, target = (ResourceTier.AMPLE, ResourceTier.REDUCED) if idx % 2 else (ResourceTier.REDUCED, ResourceTier.AMPLE)
        record_transition(store, source, target, float(idx))

    history = store.get_tier_transitions()

    assert len(history) == 50
    assert history[-1].balance == 54.0


def test_profile_reaches_reasoner_and_scheduler(store: FileStateStore) -> None:
    reasoner = ScriptedReasoner()
    monitor = SurvivalMonitor(store, reasoner)

    monitor.observe(5_000)
    assert reasoner.reduced
    assert store.get(keys.SCHEDULER_SLOW) == "1"
    assert store.get(keys.CURRENT_TIER) == "critical"

    monitor.observe(80_000)
    assert not reasoner.reduced
    assert store.get(keys.SCHEDULER_SLOW) is None


def test_graded_routing_is_selected_when_supported(store: FileStateStore) -> None:
    reasoner = RoutingReasoner()
    monitor = SurvivalMonitor(store, reasoner)

    for balance in (80_000, 20_000, 2_000):
        monitor.observe(balance)

    assert reasoner.profiles == ["premium", "balanced", "economy"]
    assert profile_for_tier(ResourceTier.EXHAUSTED).routing == "economy"


def test_resource_report(store: FileStateStore) -> None:
    store.set(keys.CURRENT_TIER, "ample")
    status = check_resources(FakeBalance(balance=30_000), FakeCompute(), store)

    report = format_resource_report(status)

    assert status.tier is ResourceTier.REDUCED
    assert status.tier_changed
    assert status.compute_healthy
    assert report.startswith("=== RESOURCE STATUS ===")
    assert "Balance: 30.0k units" in report
    assert "changed from ample" in report


def test_resource_report_flags_unhealthy_compute(store: FileStateStore) -> None:
    status = check_resources(FakeBalance(), FakeCompute(error=OSError("no shell")), store)

    assert not status.compute_healthy
    assert "UNHEALTHY" in format_resource_report(status)
