"""Reasoning collaborator backed by the republic LLM client."""

from __future__ import annotations

import json
from typing import Any

from loguru import logger
from republic import LLM, Tool

from lifeline.config import Settings
from lifeline.errors import ModelNotConfiguredError, ReasoningError
from lifeline.types import ChatResponse, TokenUsage, ToolCall

MODEL_NOT_CONFIGURED_ERROR = "Model not configured. Set LIFELINE_MODEL (e.g., 'openai:gpt-4o-mini')."


def _parse_arguments(raw: object) -> dict[str, Any]:
    if isinstance(raw, dict):
        return dict(raw)
    if not isinstance(raw, str) or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {"_raw": raw}
    return parsed if isinstance(parsed, dict) else {"_raw": parsed}


def _first_message(response: Any) -> tuple[Any, Any]:
    choices = getattr(response, "choices", None)
    if not choices:
        return None, None
    choice = choices[0]
    return choice, getattr(choice, "message", None)


def extract_text(response: Any) -> str:
    if isinstance(response, str):
        return response
    _, message = _first_message(response)
    if message is None:
        return ""
    return getattr(message, "content", "") or ""


def extract_tool_calls(response: Any) -> tuple[ToolCall, ...]:
    _, message = _first_message(response)
    if message is None:
        return ()
    calls: list[ToolCall] = []
    for idx, tool_call in enumerate(getattr(message, "tool_calls", None) or []):
        function = getattr(tool_call, "function", None)
        if function is None:
            continue
        calls.append(
            ToolCall(
                id=getattr(tool_call, "id", None) or f"call-{idx}",
                name=getattr(function, "name", "") or "",
                arguments=_parse_arguments(getattr(function, "arguments", None)),
            )
        )
    return tuple(calls)


def extract_usage(response: Any) -> TokenUsage:
    usage = getattr(response, "usage", None)
    if usage is None:
        return TokenUsage()
    prompt = int(getattr(usage, "prompt_tokens", 0) or 0)
    completion = int(getattr(usage, "completion_tokens", 0) or 0)
    total = int(getattr(usage, "total_tokens", 0) or prompt + completion)
    return TokenUsage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)


def extract_finish_reason(response: Any) -> str:
    choice, _ = _first_message(response)
    if choice is None:
        return "stop"
    return getattr(choice, "finish_reason", None) or "stop"


class RepublicReasoner:
    """Chat client that switches models with the active capability profile."""

    def __init__(self, settings: Settings) -> None:
        if not settings.model:
            raise ModelNotConfiguredError(MODEL_NOT_CONFIGURED_ERROR)
        self._settings = settings
        self._reduced = False
        self._profile: str | None = None
        self._clients: dict[str, LLM] = {}

    def _client(self, model: str) -> LLM:
        client = self._clients.get(model)
        if client is None:
            client = LLM(
                model=model,
                api_key=self._settings.api_key,
                api_base=self._settings.api_base,
            )
            self._clients[model] = client
        return client

    def current_model(self) -> str:
        if self._profile is not None:
            routed = self._settings.routing_models.get(self._profile)
            if routed:
                return routed
        if self._reduced and self._settings.low_compute_model:
            return self._settings.low_compute_model
        return self._settings.model

    def set_capability_profile(self, reduced: bool) -> None:
        if reduced != self._reduced:
            logger.info("reasoner.profile reduced={}", reduced)
        self._reduced = reduced

    def select_profile(self, profile: str) -> None:
        if profile != self._profile:
            logger.info("reasoner.routing profile={}", profile)
        self._profile = profile

    def chat(self, messages: list[dict[str, Any]], *, tools: list[Tool]) -> ChatResponse:
        model = self.current_model()
        try:
            response = self._client(model).chat.raw(
                messages=messages,
                tools=tools,
                max_tokens=self._settings.max_tokens,
            )
        except Exception as exc:
            raise ReasoningError(f"{model}: {exc!s}") from exc
        return ChatResponse(
            text=extract_text(response),
            tool_calls=extract_tool_calls(response),
            usage=extract_usage(response),
            finish_reason=extract_finish_reason(response),
            model=model,
        )
