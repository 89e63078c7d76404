"""Turn engine and lifecycle state machine."""

from .cost import estimate_cost
from .lifecycle import ALLOWED_TRANSITIONS, Lifecycle, can_transition
from .loop import EngineLimits, TurnEngine, new_turn_id, sleep_deadline

__all__ = [
    "ALLOWED_TRANSITIONS",
    "EngineLimits",
    "Lifecycle",
    "TurnEngine",
    "can_transition",
    "estimate_cost",
    "new_turn_id",
    "sleep_deadline",
]
