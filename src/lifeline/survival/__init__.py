"""Resource tiers and survival bookkeeping."""

from .monitor import (
    ResourceStatus,
    SurvivalMonitor,
    TierObservation,
    check_resources,
    format_resource_report,
    read_balance,
    record_transition,
)
from .tiers import CapabilityProfile, can_operate, classify_tier, format_balance, profile_for_tier

__all__ = [
    "CapabilityProfile",
    "ResourceStatus",
    "SurvivalMonitor",
    "TierObservation",
    "can_operate",
    "check_resources",
    "classify_tier",
    "format_balance",
    "format_resource_report",
    "profile_for_tier",
    "read_balance",
    "record_transition",
]
