from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from lifeline.config import Settings
from lifeline.runtime import AppRuntime
from lifeline.store import FileStateStore, keys
from lifeline.types import LifecycleState

from .conftest import FakeBalance, FakeCompute, ScriptedReasoner, tool_response


def _runtime(home: Path, tmp_path: Path, reasoner: ScriptedReasoner | None = None, **overrides) -> AppRuntime:
    settings = Settings(home=home, _env_file=None, **overrides)  # type: ignore[call-arg]
    return AppRuntime(
        settings,
        workspace=tmp_path,
        reasoner=reasoner or ScriptedReasoner(),
        compute=FakeCompute(),
        balance_source=FakeBalance(),
    )


def test_default_schedule_is_synced_and_protected(home: Path, tmp_path: Path) -> None:
    runtime = _runtime(home, tmp_path)
    try:
        names = {task.name for task in runtime.store.list_tasks()}
        assert {"heartbeat_ping", "check_balance", "check_inbox", "check_for_updates", "health_check"} <= names
        assert not runtime.policy.check_write(str(home / "schedule.yml")).allowed
    finally:
        runtime.shutdown()


@pytest.mark.asyncio
async def test_shutdown_order(home: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    runtime = _runtime(home, tmp_path)
    await runtime.run_forever(max_cycles=1)
    order: list[str] = []
    set_lifecycle = runtime.store.set_lifecycle
    close = runtime.store.close

    def _set_lifecycle(state: LifecycleState) -> None:
        order.append(f"lifecycle:{state}")
        set_lifecycle(state)

    def _close() -> None:
        order.append("close")
        close()

    monkeypatch.setattr(runtime.scheduler, "shutdown", lambda: order.append("scheduler"))
    monkeypatch.setattr(runtime.store, "set_lifecycle", _set_lifecycle)
    monkeypatch.setattr(runtime.store, "close", _close)

    runtime.shutdown()
    runtime.shutdown()

    assert order == ["scheduler", "lifecycle:sleeping", "close"]


def test_shutdown_keeps_terminated_state(home: Path, tmp_path: Path) -> None:
    runtime = _runtime(home, tmp_path)
    runtime.store.set_lifecycle(LifecycleState.TERMINATED)

    runtime.shutdown()

    assert FileStateStore(home).get_lifecycle() is LifecycleState.TERMINATED


@pytest.mark.parametrize("release", ["close", "shutdown"])
def test_runtime_that_never_ran_leaves_lifecycle_alone(home: Path, tmp_path: Path, release: str) -> None:
    FileStateStore(home).set_lifecycle(LifecycleState.RUNNING)
    runtime = _runtime(home, tmp_path)

    getattr(runtime, release)()

    assert FileStateStore(home).get_lifecycle() is LifecycleState.RUNNING


def test_context_manager_runs_scheduler(home: Path, tmp_path: Path) -> None:
    runtime = _runtime(home, tmp_path)

    with runtime:
        assert runtime.scheduler.running

    assert not runtime.scheduler.running
    assert FileStateStore(home).get_lifecycle() is LifecycleState.INITIALIZING


def test_store_caches_only_the_context_window(home: Path, tmp_path: Path) -> None:
    runtime = _runtime(home, tmp_path, context_window_turns=4, summary_turns=6)
    try:
        assert runtime.store._turns._cache_size == 11
    finally:
        runtime.close()


@pytest.mark.asyncio
async def test_single_cycle(home: Path, tmp_path: Path) -> None:
    reasoner = ScriptedReasoner()
    runtime = _runtime(home, tmp_path, reasoner)
    try:
        await runtime.run_forever(max_cycles=1)
        assert len(reasoner.calls) == 1
        assert runtime.store.get_lifecycle() is LifecycleState.SLEEPING
    finally:
        runtime.shutdown()


@pytest.mark.asyncio
async def test_wake_request_ends_sleep(home: Path, tmp_path: Path) -> None:
    reasoner = ScriptedReasoner([tool_response(("sleep", {"duration_seconds": 3600}))])
    runtime = _runtime(home, tmp_path, reasoner, sleep_poll_seconds=0.05)
    loop = asyncio.get_running_loop()
    loop.call_later(0.1, runtime.store.set, keys.WAKE_REQUEST, "1 new message(s) from: alice")
    try:
        await asyncio.wait_for(runtime.run_forever(max_cycles=2), timeout=5)
        assert len(reasoner.calls) == 2
        assert runtime.store.get(keys.WAKE_REQUEST) is None
    finally:
        runtime.shutdown()


@pytest.mark.asyncio
async def test_stop_request_interrupts_sleep(home: Path, tmp_path: Path) -> None:
    reasoner = ScriptedReasoner([tool_response(("sleep", {"duration_seconds": 3600}))])
    runtime = _runtime(home, tmp_path, reasoner)
    asyncio.get_running_loop().call_later(0.1, runtime.request_stop)
    try:
        await asyncio.wait_for(runtime.run_forever(), timeout=5)
        assert len(reasoner.calls) == 1
    finally:
        runtime.shutdown()
