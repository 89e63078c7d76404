"""Durable state for lifeline."""

from .state import STATE_FILE_NAME, FileStateStore
from .turns import TURN_LOG_NAME, TurnLog

__all__ = ["STATE_FILE_NAME", "TURN_LOG_NAME", "FileStateStore", "TurnLog"]
