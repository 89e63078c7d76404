"""Guarded execution of tool calls requested by the reasoning model."""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from loguru import logger
from pydantic import BaseModel, ValidationError
from republic import Tool, tool_from_model

from lifeline.errors import ToolExecutionError
from lifeline.store import keys
from lifeline.survival.monitor import read_balance
from lifeline.survival.tiers import classify_tier, format_balance
from lifeline.tools.guard import GuardVerdict, ProtectedResourcePolicy
from lifeline.tools.specs import (
    TOOL_SPECS,
    EmptyInput,
    ExecInput,
    ReadFileInput,
    SleepInput,
    ToolKind,
    TransferFundsInput,
    WriteFileInput,
    spec_for,
)
from lifeline.types import (
    DEFAULT_THRESHOLDS,
    BalanceSource,
    ComputeProvider,
    StateStore,
    Thresholds,
    ToolCall,
    ToolCallResult,
    Wallet,
)

MAX_RESULT_CHARS = 16_000


def _shorten_text(text: str, width: int = 30, placeholder: str = "...") -> str:
    """Shorten text to width characters, cutting in the middle of words if needed."""
    if len(text) <= width:
        return text
    available = width - len(placeholder)
    if available <= 0:
        return placeholder
    return text[:available] + placeholder


def _render_params(arguments: dict[str, Any]) -> str:
    params: list[str] = []
    for key, value in arguments.items():
        try:
            rendered = json.dumps(value, ensure_ascii=False)
        except TypeError:
            rendered = repr(value)
        params.append(f"{key}={_shorten_text(rendered)}")
    return ", ".join(params)


class ToolExecutor:
    """Vets each tool call against the protected-resource policy, then runs it under a hard timeout.

    ``execute`` never raises: unknown tools, invalid arguments, refusals, failures
    and timeouts all come back as a ToolCallResult.
    """

    def __init__(
        self,
        *,
        compute: ComputeProvider,
        store: StateStore,
        balance_source: BalanceSource,
        policy: ProtectedResourcePolicy | None = None,
        wallet: Wallet | None = None,
        thresholds: Thresholds = DEFAULT_THRESHOLDS,
        timeout_seconds: float = 30.0,
        agent_name: str = "lifeline",
    ) -> None:
        self._compute = compute
        self._store = store
        self._balance_source = balance_source
        self._policy = policy or ProtectedResourcePolicy()
        self._wallet = wallet
        self._thresholds = thresholds
        self._timeout_seconds = timeout_seconds
        self._agent_name = agent_name
        self._handlers: dict[ToolKind, Callable[[Any], str]] = {
            ToolKind.EXEC: self._run_exec,
            ToolKind.READ_FILE: self._run_read_file,
            ToolKind.WRITE_FILE: self._run_write_file,
            ToolKind.CHECK_BALANCE: self._run_check_balance,
            ToolKind.SYSTEM_SYNOPSIS: self._run_system_synopsis,
            ToolKind.SLEEP: self._run_sleep,
            ToolKind.TRANSFER_FUNDS: self._run_transfer_funds,
        }

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    def model_tools(self) -> list[Tool]:
        """Tool schemas offered to the reasoning model."""
        tools: list[Tool] = []
        for kind, spec in TOOL_SPECS.items():
            tools.append(
                tool_from_model(
                    spec.model,
                    self._sync_handler(kind),
                    name=kind.value,
                    description=spec.description,
                )
            )
        return tools

    def _sync_handler(self, kind: ToolKind) -> Callable[[BaseModel], str]:
        def _handler(params: BaseModel) -> str:
            verdict = self.check(kind, params)
            if not verdict.allowed:
                return f"Blocked: {verdict.reason}"
            return self._handlers[kind](params)

        return _handler

    def check(self, kind: ToolKind, params: BaseModel) -> GuardVerdict:
        if isinstance(params, ExecInput):
            return self._policy.check_command(params.command)
        if isinstance(params, WriteFileInput):
            return self._policy.check_write(params.path)
        if isinstance(params, ReadFileInput):
            return self._policy.check_read(params.path)
        return GuardVerdict(allowed=True)

    async def execute(self, call: ToolCall) -> ToolCallResult:
        started = time.monotonic()

        def _result(text: str, error: str | None = None) -> ToolCallResult:
            duration_ms = int((time.monotonic() - started) * 1000)
            logger.info("tool.call.end name={} duration={}ms ok={}", call.name, duration_ms, error is None)
            return ToolCallResult(
                id=call.id,
                name=call.name,
                arguments=dict(call.arguments),
                result=text[:MAX_RESULT_CHARS],
                duration_ms=duration_ms,
                error=error,
            )

        logger.info("tool.call.start name={} id={} {{ {} }}", call.name, call.id, _render_params(call.arguments))
        spec = spec_for(call.name)
        if spec is None:
            return _result("", error=f"unknown tool: {call.name}")

        try:
            params = spec.model.model_validate(call.arguments)
        except ValidationError as exc:
            return _result("", error=f"invalid arguments: {exc.error_count()} error(s): {exc.errors()[0]['msg']}")

        verdict = self.check(spec.kind, params)
        if not verdict.allowed:
            logger.warning("tool.call.blocked name={} reason={}", call.name, verdict.reason)
            return _result(f"Blocked: {verdict.reason}")

        handler = self._handlers[spec.kind]
        try:
            async with asyncio.timeout(self._timeout_seconds):
                output = await asyncio.to_thread(handler, params)
        except TimeoutError:
            logger.warning("tool.call.timeout name={} timeout={}s", call.name, self._timeout_seconds)
            return _result("", error=f"timed out after {self._timeout_seconds}s")
        except Exception as exc:
            logger.exception("tool.call.error name={}", call.name)
            return _result("", error=str(exc) or exc.__class__.__name__)
        return _result(output)

    # Handlers run on a worker thread.

    def _run_exec(self, params: ExecInput) -> str:
        timeout_ms = min(params.timeout_ms, int(self._timeout_seconds * 1000))
        outcome = self._compute.execute(params.command, timeout_ms=timeout_ms)
        parts = [f"exit_code={outcome.exit_code}"]
        if outcome.stdout:
            parts.append(f"stdout:\n{outcome.stdout}")
        if outcome.stderr:
            parts.append(f"stderr:\n{outcome.stderr}")
        return "\n".join(parts)

    def _run_read_file(self, params: ReadFileInput) -> str:
        return self._compute.read_file(params.path)

    def _run_write_file(self, params: WriteFileInput) -> str:
        self._compute.write_file(params.path, params.content)
        return f"wrote: {params.path} ({len(params.content)} chars)"

    def _run_check_balance(self, _params: EmptyInput) -> str:
        balance = read_balance(self._balance_source)
        tier = classify_tier(balance, self._thresholds)
        return f"balance: {format_balance(balance)}\ntier: {tier}"

    def _run_system_synopsis(self, _params: EmptyInput) -> str:
        lines = [
            f"name: {self._agent_name}",
            f"lifecycle: {self._store.get_lifecycle()}",
            f"tier: {self._store.get(keys.CURRENT_TIER) or 'unknown'}",
            f"turns: {self._store.turn_count()}",
            f"started: {self._store.get(keys.START_TIME) or '-'}",
            f"last heartbeat: {self._store.get(keys.LAST_HEARTBEAT) or '-'}",
        ]
        tasks = self._store.list_tasks()
        if tasks:
            enabled = ", ".join(task.name for task in tasks if task.enabled) or "none"
            lines.append(f"scheduled tasks: {enabled}")
        return "\n".join(lines)

    def _run_sleep(self, params: SleepInput) -> str:
        until = datetime.now(UTC) + timedelta(seconds=params.duration_seconds)
        self._store.set(keys.SLEEP_UNTIL, until.isoformat())
        if params.reason:
            self._store.set(keys.SLEEP_REASON, params.reason)
        return f"sleeping until {until.isoformat()}"

    def _run_transfer_funds(self, params: TransferFundsInput) -> str:
        if self._wallet is None:
            raise ToolExecutionError("transfer_funds is not supported: no wallet configured")
        reference = self._wallet.transfer(params.destination, params.amount, params.memo)
        return f"transferred {format_balance(params.amount)} to {params.destination}: {reference}"
