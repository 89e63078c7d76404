"""Lifecycle state machine persisted in the state store."""

from __future__ import annotations

from loguru import logger

from lifeline.errors import LifecycleTransitionError
from lifeline.logging_utils import bind_lifecycle
from lifeline.types import LifecycleState, ResourceTier, StateStore

_ACTIVE = frozenset({LifecycleState.RUNNING, LifecycleState.DEGRADED, LifecycleState.CRITICAL})

ALLOWED_TRANSITIONS: dict[LifecycleState, frozenset[LifecycleState]] = {
    LifecycleState.INITIALIZING: frozenset({LifecycleState.WAKING}),
    LifecycleState.WAKING: frozenset({
        LifecycleState.RUNNING,
        LifecycleState.DEGRADED,
        LifecycleState.CRITICAL,
        LifecycleState.SLEEPING,
        LifecycleState.TERMINATED,
    }),
    LifecycleState.RUNNING: _ACTIVE | {LifecycleState.SLEEPING, LifecycleState.TERMINATED, LifecycleState.WAKING},
    LifecycleState.DEGRADED: _ACTIVE | {LifecycleState.SLEEPING, LifecycleState.TERMINATED, LifecycleState.WAKING},
    LifecycleState.CRITICAL: _ACTIVE | {LifecycleState.SLEEPING, LifecycleState.TERMINATED, LifecycleState.WAKING},
    LifecycleState.SLEEPING: frozenset({LifecycleState.WAKING}),
    LifecycleState.TERMINATED: frozenset(),
}

TIER_STATES: dict[ResourceTier, LifecycleState] = {
    ResourceTier.AMPLE: LifecycleState.RUNNING,
    ResourceTier.REDUCED: LifecycleState.DEGRADED,
    ResourceTier.CRITICAL: LifecycleState.CRITICAL,
    ResourceTier.EXHAUSTED: LifecycleState.TERMINATED,
}


def can_transition(current: LifecycleState, target: LifecycleState) -> bool:
    return current == target or target in ALLOWED_TRANSITIONS[current]


class Lifecycle:
    """Reads and advances the persisted lifecycle record."""

    def __init__(self, store: StateStore) -> None:
        self._store = store

    @property
    def state(self) -> LifecycleState:
        return self._store.get_lifecycle()

    def require(self, target: LifecycleState) -> None:
        """Advance to ``target`` or raise LifecycleTransitionError."""
        current = self.state
        if not can_transition(current, target):
            raise LifecycleTransitionError(f"{current} -> {target} is not allowed")
        if current != target:
            self._store.set_lifecycle(target)
            logger.info("lifecycle.transition from={} to={}", current, target)
        bind_lifecycle(target.value)

    def transition(self, target: LifecycleState) -> bool:
        """Advance to ``target``; illegal transitions are logged and ignored."""
        try:
            self.require(target)
        except LifecycleTransitionError as exc:
            logger.warning("lifecycle.transition.ignored reason={}", exc)
            return False
        return True

    def follow_tier(self, tier: ResourceTier) -> bool:
        return self.transition(TIER_STATES[tier])
