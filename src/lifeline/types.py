"""Shared data model and collaborator protocols."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

from lifeline.errors import InvalidThresholdsError


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


class LifecycleState(StrEnum):
    INITIALIZING = "initializing"
    WAKING = "waking"
    RUNNING = "running"
    SLEEPING = "sleeping"
    DEGRADED = "degraded"
    CRITICAL = "critical"
    TERMINATED = "terminated"


class ResourceTier(StrEnum):
    """Capability level derived from the resource balance, best first."""

    AMPLE = "ample"
    REDUCED = "reduced"
    CRITICAL = "critical"
    EXHAUSTED = "exhausted"


class ThreatLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Thresholds:
    """Descending balance thresholds separating the four resource tiers."""

    ample: float
    reduced: float
    critical: float

    def __post_init__(self) -> None:
        if not self.ample > self.reduced > self.critical >= 0:
            raise InvalidThresholdsError(
                f"expected ample > reduced > critical >= 0, got {self.ample}/{self.reduced}/{self.critical}"
            )


DEFAULT_THRESHOLDS = Thresholds(ample=50_000, reduced=10_000, critical=1_000)


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class ToolCall:
    """Tool invocation requested by the reasoning model."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolCallResult:
    """Outcome of one guarded tool invocation."""

    id: str
    name: str
    arguments: dict[str, Any]
    result: str
    duration_ms: int
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class Turn:
    """One persisted think -> act -> observe cycle."""

    id: str
    timestamp: str
    state: LifecycleState
    thinking: str
    tool_calls: tuple[ToolCallResult, ...] = ()
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    cost: float = 0.0
    input: str | None = None
    input_source: str | None = None


@dataclass(frozen=True)
class PendingInput:
    content: str
    source: str


@dataclass(frozen=True)
class InboxMessage:
    id: str
    sender: str
    content: str
    received_at: str = field(default_factory=now_iso)
    processed: bool = False


@dataclass(frozen=True)
class TierTransition:
    from_tier: ResourceTier
    to_tier: ResourceTier
    timestamp: str
    balance: float


@dataclass(frozen=True)
class ScheduledTaskRecord:
    name: str
    schedule: str
    task: str
    enabled: bool = True
    last_run: str | None = None
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ExecResult:
    stdout: str
    stderr: str
    exit_code: int


@dataclass(frozen=True)
class ChatResponse:
    """Normalized reply from the reasoning collaborator."""

    text: str
    tool_calls: tuple[ToolCall, ...] = ()
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: str = "stop"
    model: str = ""


class ComputeProvider(Protocol):
    """Runs commands and file I/O; safe to call from the engine and scheduler threads."""

    def execute(self, command: str, timeout_ms: int = 30_000) -> ExecResult: ...

    def write_file(self, path: str, content: str) -> None: ...

    def read_file(self, path: str) -> str: ...


class ReasoningClient(Protocol):
    def chat(self, messages: list[dict[str, Any]], *, tools: list[Any]) -> ChatResponse: ...

    def set_capability_profile(self, reduced: bool) -> None: ...

    def current_model(self) -> str: ...


@runtime_checkable
class ProfileRouting(Protocol):
    """Reasoning collaborators that support graded (three-way) model routing."""

    def select_profile(self, profile: str) -> None: ...


class BalanceSource(Protocol):
    def get_balance(self) -> float: ...


class InboxSource(Protocol):
    def poll(self, cursor: str | None = None) -> tuple[list[InboxMessage], str | None]: ...


class Wallet(Protocol):
    def transfer(self, destination: str, amount: float, memo: str = "") -> str: ...


class StateStore(Protocol):
    """Durable state shared by the turn engine and the background scheduler."""

    def append_turn(self, turn: Turn) -> None: ...

    def recent_turns(self, limit: int) -> list[Turn]: ...

    def turn_count(self) -> int: ...

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def get_json(self, key: str) -> Any: ...

    def set_json(self, key: str, value: Any) -> None: ...

    def get_lifecycle(self) -> LifecycleState: ...

    def set_lifecycle(self, state: LifecycleState) -> None: ...

    def upsert_task(self, record: ScheduledTaskRecord) -> None: ...

    def get_task(self, name: str) -> ScheduledTaskRecord | None: ...

    def list_tasks(self) -> list[ScheduledTaskRecord]: ...

    def mark_task_run(self, name: str, timestamp: str) -> None: ...

    def get_tier_transitions(self) -> list[TierTransition]: ...

    def set_tier_transitions(self, transitions: list[TierTransition]) -> None: ...

    def enqueue_inbox(self, message: InboxMessage) -> bool: ...

    def next_inbox_message(self) -> InboxMessage | None: ...

    def mark_inbox_processed(self, message_id: str) -> None: ...

    def close(self) -> None: ...
