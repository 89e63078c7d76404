"""The think -> act -> observe -> persist loop."""

from __future__ import annotations

import asyncio
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from loguru import logger

from lifeline.config import Settings
from lifeline.context import (
    Identity,
    build_context_messages,
    build_system_prompt,
    build_wakeup_prompt,
    summarize_turns,
    trim_turns,
)
from lifeline.defense import sanitize_input
from lifeline.engine.cost import estimate_cost
from lifeline.engine.lifecycle import Lifecycle
from lifeline.errors import ReasoningError
from lifeline.store import keys
from lifeline.survival import CapabilityProfile, SurvivalMonitor, can_operate, read_balance
from lifeline.tools import ToolExecutor, tool_rows
from lifeline.tools.specs import ToolKind
from lifeline.types import (
    BalanceSource,
    ChatResponse,
    LifecycleState,
    PendingInput,
    ReasoningClient,
    StateStore,
    ThreatLevel,
    ToolCallResult,
    Turn,
    now_iso,
)

WAKEUP_SOURCE = "wakeup"
HEARTBEAT_SOURCE = "heartbeat"

_id_lock = threading.Lock()
_last_id_ns = 0


def new_turn_id() -> str:
    """Turn ids sort lexicographically in creation order."""
    global _last_id_ns
    with _id_lock:
        stamp = max(time.time_ns(), _last_id_ns + 1)
        _last_id_ns = stamp
    return f"{stamp:020d}-{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True)
class EngineLimits:
    context_window_turns: int = 20
    summary_turns: int = 40
    max_tool_calls_per_turn: int = 10
    max_consecutive_errors: int = 5
    error_backoff_seconds: int = 300
    idle_sleep_seconds: int = 60
    model_timeout_seconds: float = 120.0

    @classmethod
    def from_settings(cls, settings: Settings) -> EngineLimits:
        return cls(
            context_window_turns=settings.context_window_turns,
            summary_turns=settings.summary_turns,
            max_tool_calls_per_turn=settings.max_tool_calls_per_turn,
            max_consecutive_errors=settings.max_consecutive_errors,
            error_backoff_seconds=settings.error_backoff_seconds,
            idle_sleep_seconds=settings.idle_sleep_seconds,
            model_timeout_seconds=settings.model_timeout_seconds,
        )


def sleep_deadline(store: StateStore) -> datetime | None:
    raw = store.get(keys.SLEEP_UNTIL)
    if raw is None:
        return None
    try:
        deadline = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if deadline.tzinfo is None:
        deadline = deadline.replace(tzinfo=UTC)
    return deadline


class TurnEngine:
    """Runs one lifecycle from wake until the agent sleeps or terminates.

    The engine never lets an exception escape an iteration: failures are counted
    and, after ``max_consecutive_errors`` in a row, the engine forces a long sleep.
    """

    def __init__(
        self,
        *,
        store: StateStore,
        reasoner: ReasoningClient,
        executor: ToolExecutor,
        balance_source: BalanceSource,
        monitor: SurvivalMonitor,
        identity: Identity,
        limits: EngineLimits | None = None,
    ) -> None:
        self._store = store
        self._reasoner = reasoner
        self._executor = executor
        self._balance_source = balance_source
        self._monitor = monitor
        self._identity = identity
        self._limits = limits or EngineLimits()
        self._lifecycle = Lifecycle(store)
        self._tools = executor.model_tools()

    @property
    def lifecycle(self) -> Lifecycle:
        return self._lifecycle

    async def run(self, max_turns: int | None = None) -> LifecycleState:
        if self._store.get(keys.START_TIME) is None:
            self._store.set(keys.START_TIME, now_iso())

        self._lifecycle.transition(LifecycleState.WAKING)
        if self._lifecycle.state is LifecycleState.TERMINATED:
            logger.info("engine.run.skip reason=terminated")
            return LifecycleState.TERMINATED

        turn_count = self._store.turn_count()
        is_first_run = turn_count == 0
        last_turns = self._store.recent_turns(1)
        pending: PendingInput | None = PendingInput(
            content=build_wakeup_prompt(
                identity=self._identity,
                balance=read_balance(self._balance_source),
                turn_count=turn_count,
                last_turn=last_turns[-1] if last_turns else None,
            ),
            source=WAKEUP_SOURCE,
        )
        self._lifecycle.transition(LifecycleState.RUNNING)
        logger.info("engine.run.start turns={} first_run={}", turn_count, is_first_run)

        consecutive_errors = 0
        completed = 0
        while True:
            try:
                wake_reason = self._store.get(keys.WAKE_REQUEST)
                if wake_reason is not None:
                    self._store.delete(keys.WAKE_REQUEST)
                    self._store.delete(keys.SLEEP_UNTIL)
                    logger.info("engine.wake reason={}", wake_reason)
                    if pending is None:
                        pending = PendingInput(content=wake_reason, source=HEARTBEAT_SOURCE)
                else:
                    deadline = sleep_deadline(self._store)
                    if deadline is not None and deadline > datetime.now(UTC):
                        logger.info("engine.suspend until={}", deadline.isoformat())
                        self._lifecycle.transition(LifecycleState.SLEEPING)
                        break

                if pending is None:
                    pending = self._next_inbox_input()

                balance = read_balance(self._balance_source)
                observation = self._monitor.observe(balance, apply=False)
                if not can_operate(observation.tier):
                    logger.warning("engine.terminate reason=exhausted balance={}", balance)
                    self._lifecycle.transition(LifecycleState.TERMINATED)
                    break

                current, pending = pending, None
                self._monitor.apply(observation.profile)
                self._lifecycle.follow_tier(observation.tier)
                turn, response = await self._run_turn(current, balance, observation.profile, is_first_run)
            except Exception as exc:
                consecutive_errors += 1
                logger.exception("engine.turn.error count={} error={}", consecutive_errors, exc)
                if consecutive_errors >= self._limits.max_consecutive_errors:
                    self._suspend(self._limits.error_backoff_seconds, "consecutive errors")
                    break
                continue

            consecutive_errors = 0
            completed += 1
            is_first_run = False

            if any(_is_successful_sleep(call) for call in turn.tool_calls):
                logger.info("engine.sleep reason=tool")
                self._lifecycle.transition(LifecycleState.SLEEPING)
                break
            if not turn.tool_calls and response.finish_reason == "stop":
                self._suspend(self._limits.idle_sleep_seconds, "idle")
                break
            if max_turns is not None and completed >= max_turns:
                logger.info("engine.max_turns reached={}", completed)
                self._suspend(self._limits.idle_sleep_seconds, "max turns")
                break

        state = self._lifecycle.state
        logger.info("engine.run.end state={} turns={}", state, completed)
        return state

    def _suspend(self, seconds: int, reason: str) -> None:
        until = datetime.now(UTC) + timedelta(seconds=seconds)
        self._store.set(keys.SLEEP_UNTIL, until.isoformat())
        self._store.set(keys.SLEEP_REASON, reason)
        logger.info("engine.sleep reason={} until={}", reason, until.isoformat())
        self._lifecycle.transition(LifecycleState.SLEEPING)

    def _next_inbox_input(self) -> PendingInput | None:
        message = self._store.next_inbox_message()
        if message is None:
            return None
        self._store.mark_inbox_processed(message.id)
        if message.sender == self._identity.creator_id:
            return PendingInput(content=message.content, source=message.sender)

        sanitized = sanitize_input(message.content, message.sender)
        if sanitized.blocked:
            self._store.set_json(
                keys.LAST_BLOCKED_INPUT,
                {
                    "id": message.id,
                    "sender": message.sender,
                    "detected": sorted(sanitized.detected()),
                    "received_at": message.received_at,
                },
            )
            logger.warning("engine.input.blocked id={} sender={}", message.id, message.sender)
            return None
        if sanitized.threat_level is not ThreatLevel.LOW:
            logger.info("engine.input.flagged id={} threat={}", message.id, sanitized.threat_level)
        return PendingInput(content=sanitized.content, source=message.sender)

    def _context_messages(self, system_prompt: str, pending: PendingInput | None) -> list[dict]:
        window = self._limits.context_window_turns
        recent = self._store.recent_turns(window + self._limits.summary_turns)
        older = recent[:-window] if len(recent) > window else []
        return build_context_messages(
            system_prompt,
            trim_turns(recent, window),
            pending,
            summary=summarize_turns(older) if older else None,
        )

    async def _run_turn(
        self,
        pending: PendingInput | None,
        balance: float,
        profile: CapabilityProfile,
        is_first_run: bool,
    ) -> tuple[Turn, ChatResponse]:
        state = self._lifecycle.state
        system_prompt = build_system_prompt(
            identity=self._identity,
            profile=profile,
            balance=balance,
            state=state,
            model=self._reasoner.current_model(),
            tool_rows=tool_rows(),
            is_first_run=is_first_run,
        )
        messages = self._context_messages(system_prompt, pending)

        try:
            async with asyncio.timeout(self._limits.model_timeout_seconds):
                response = await asyncio.to_thread(self._reasoner.chat, messages, tools=self._tools)
        except TimeoutError as exc:
            raise ReasoningError(f"reasoning call timed out after {self._limits.model_timeout_seconds}s") from exc

        requested = list(response.tool_calls)
        limit = self._limits.max_tool_calls_per_turn
        if len(requested) > limit:
            logger.warning("engine.tools.truncated requested={} limit={}", len(requested), limit)
            requested = requested[:limit]

        results: list[ToolCallResult] = []
        for call in requested:
            results.append(await self._executor.execute(call))

        model = response.model or self._reasoner.current_model()
        turn = Turn(
            id=new_turn_id(),
            timestamp=now_iso(),
            state=state,
            thinking=response.text,
            tool_calls=tuple(results),
            token_usage=response.usage,
            cost=estimate_cost(response.usage, model),
            input=pending.content if pending else None,
            input_source=pending.source if pending else None,
        )
        self._store.append_turn(turn)
        logger.info("engine.turn.persisted id={} tools={} cost={}", turn.id, len(results), turn.cost)
        return turn, response


def _is_successful_sleep(call: ToolCallResult) -> bool:
    return call.name == ToolKind.SLEEP and call.ok and not call.result.startswith("Blocked")
