"""Context assembly for reasoning calls."""

from .messages import build_context_messages, format_input, summarize_turns, trim_turns
from .prompts import Identity, build_system_prompt, build_wakeup_prompt

__all__ = [
    "Identity",
    "build_context_messages",
    "build_system_prompt",
    "build_wakeup_prompt",
    "format_input",
    "summarize_turns",
    "trim_turns",
]
