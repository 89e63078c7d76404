"""Message sequence rebuilt from the turn log for each reasoning call."""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

from lifeline.types import PendingInput, ToolCallResult, Turn

DEFAULT_WINDOW = 20
SUMMARY_PREVIEW_CHARS = 120


def trim_turns(turns: Sequence[Turn], limit: int = DEFAULT_WINDOW) -> list[Turn]:
    """Keep the ``limit`` most recent turns, oldest first."""
    if limit <= 0:
        return []
    return list(turns[-limit:])


def _preview(text: str | None, limit: int = SUMMARY_PREVIEW_CHARS) -> str:
    normalized = " ".join((text or "").split())
    if len(normalized) > limit:
        return normalized[:limit] + "..."
    return normalized


def summarize_turns(turns: Sequence[Turn]) -> str:
    """Deterministic digest of turns that fell out of the context window."""
    if not turns:
        return "No previous activity."
    lines = [f"Previous activity summary ({len(turns)} turns):"]
    for index, turn in enumerate(turns):
        tools = ", ".join(call.name for call in turn.tool_calls) or "none"
        errors = sum(1 for call in turn.tool_calls if not call.ok)
        line = f"- turn {index} [{turn.state}] tools: {tools}"
        if errors:
            line += f" ({errors} failed)"
        if turn.input:
            line += f" | input: {_preview(turn.input, 60)}"
        if turn.thinking:
            line += f" | {_preview(turn.thinking)}"
        lines.append(line)
    return "\n".join(lines)


def format_input(content: str, source: str | None) -> str:
    return f"[{source or 'unknown'}] {content}"


def _tool_call_payload(call: ToolCallResult) -> dict[str, Any]:
    return {
        "id": call.id,
        "type": "function",
        "function": {"name": call.name, "arguments": json.dumps(call.arguments, ensure_ascii=False)},
    }


def _tool_result_content(call: ToolCallResult) -> str:
    if call.error is not None:
        return f"Error: {call.error}"
    return call.result


def turn_messages(turn: Turn) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = []
    if turn.input:
        messages.append({"role": "user", "content": format_input(turn.input, turn.input_source)})

    assistant: dict[str, Any] = {"role": "assistant", "content": turn.thinking or ""}
    if turn.tool_calls:
        assistant["tool_calls"] = [_tool_call_payload(call) for call in turn.tool_calls]
    messages.append(assistant)

    for call in turn.tool_calls:
        messages.append({
            "role": "tool",
            "tool_call_id": call.id,
            "name": call.name,
            "content": _tool_result_content(call),
        })
    return messages


def build_context_messages(
    system_prompt: str,
    turns: Sequence[Turn],
    pending: PendingInput | None = None,
    summary: str | None = None,
) -> list[dict[str, Any]]:
    """Assemble system prompt, optional summary, the turn window and the pending input, in that order."""
    messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    if summary:
        messages.append({"role": "user", "content": format_input(summary, "summary")})
    for turn in turns:
        messages.extend(turn_messages(turn))
    if pending is not None:
        messages.append({"role": "user", "content": format_input(pending.content, pending.source)})
    return messages
