"""Tool catalogue, safety guard and executor."""

from .executor import ToolExecutor
from .guard import GuardVerdict, ProtectedResourcePolicy
from .specs import TOOL_SPECS, ToolKind, ToolSpec, spec_for, tool_rows

__all__ = [
    "TOOL_SPECS",
    "GuardVerdict",
    "ProtectedResourcePolicy",
    "ToolExecutor",
    "ToolKind",
    "ToolSpec",
    "spec_for",
    "tool_rows",
]
