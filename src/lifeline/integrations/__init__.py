"""Adapters to the outside world: reasoning, compute, balance and inbox."""

from .balance import CommandBalanceSource, StaticBalanceSource
from .compute import LocalCompute
from .inbox import INBOX_FILE_NAME, JsonlInbox
from .republic_client import RepublicReasoner

__all__ = [
    "INBOX_FILE_NAME",
    "CommandBalanceSource",
    "JsonlInbox",
    "LocalCompute",
    "RepublicReasoner",
    "StaticBalanceSource",
]
