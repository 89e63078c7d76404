from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from lifeline.config import Settings
from lifeline.context import Identity
from lifeline.engine import EngineLimits, TurnEngine
from lifeline.store import FileStateStore
from lifeline.survival import SurvivalMonitor
from lifeline.tools import ProtectedResourcePolicy, ToolExecutor
from lifeline.types import ChatResponse, ExecResult, ToolCall


@dataclass
class FakeCompute:
    outputs: dict[str, ExecResult] = field(default_factory=dict)
    files: dict[str, str] = field(default_factory=dict)
    commands: list[str] = field(default_factory=list)
    delay_seconds: float = 0.0
    error: Exception | None = None

    def execute(self, command: str, timeout_ms: int = 30_000) -> ExecResult:
        self.commands.append(command)
        if self.delay_seconds:
            time.sleep(self.delay_seconds)
        if self.error is not None:
            raise self.error
        return self.outputs.get(command, ExecResult(stdout="ok", stderr="", exit_code=0))

    def write_file(self, path: str, content: str) -> None:
        self.files[path] = content

    def read_file(self, path: str) -> str:
        return self.files[path]


@dataclass
class FakeBalance:
    balance: float = 100_000
    error: Exception | None = None

    def get_balance(self) -> float:
        if self.error is not None:
            raise self.error
        return self.balance


@dataclass
class ScriptedReasoner:
    responses: list[ChatResponse | Exception] = field(default_factory=list)
    calls: list[list[dict[str, Any]]] = field(default_factory=list)
    reduced: bool = False
    model: str = "openai:gpt-4o"

    def chat(self, messages: list[dict[str, Any]], *, tools: list[Any]) -> ChatResponse:
        _ = tools
        self.calls.append(messages)
        if not self.responses:
            return ChatResponse(text="nothing left to do")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def set_capability_profile(self, reduced: bool) -> None:
        self.reduced = reduced

    def current_model(self) -> str:
        return self.model


@dataclass
class RoutingReasoner(ScriptedReasoner):
    profiles: list[str] = field(default_factory=list)

    def select_profile(self, profile: str) -> None:
        self.profiles.append(profile)


def tool_response(*calls: tuple[str, dict[str, Any]], text: str = "") -> ChatResponse:
    return ChatResponse(
        text=text,
        tool_calls=tuple(ToolCall(id=f"call-{idx}", name=name, arguments=args) for idx, (name, args) in enumerate(calls)),
        finish_reason="tool_calls",
    )


@pytest.fixture
def home(tmp_path: Path) -> Path:
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def store(home: Path) -> FileStateStore:
    return FileStateStore(home)


@pytest.fixture
def compute() -> FakeCompute:
    return FakeCompute()


@pytest.fixture
def balance() -> FakeBalance:
    return FakeBalance()


@pytest.fixture
def settings(home: Path) -> Settings:
    return Settings(home=home, _env_file=None)  # type: ignore[call-arg]


@pytest.fixture
def executor(store: FileStateStore, compute: FakeCompute, balance: FakeBalance, home: Path) -> ToolExecutor:
    return ToolExecutor(
        compute=compute,
        store=store,
        balance_source=balance,
        policy=ProtectedResourcePolicy(home=home),
        timeout_seconds=5,
    )


@pytest.fixture
def make_engine(store: FileStateStore, executor: ToolExecutor, balance: FakeBalance):
    def _make(reasoner: ScriptedReasoner, **limits: Any) -> TurnEngine:
        return TurnEngine(
            store=store,
            reasoner=reasoner,
            executor=executor,
            balance_source=balance,
            monitor=SurvivalMonitor(store, reasoner),
            identity=Identity(name="tester", creator_id="creator", genesis_prompt="Stay alive."),
            limits=EngineLimits(**limits),
        )

    return _make
