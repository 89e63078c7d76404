"""lifeline - a self-sustaining autonomous agent loop."""

from .config import Settings, get_settings
from .runtime import AppRuntime

__version__ = "0.1.0"

__all__ = ["AppRuntime", "Settings", "get_settings"]
