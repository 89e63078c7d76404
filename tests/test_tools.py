from __future__ import annotations

from datetime import UTC, datetime

import pytest

from lifeline.store import FileStateStore, keys
from lifeline.tools import TOOL_SPECS, ToolExecutor, ToolKind, spec_for, tool_rows
from lifeline.types import ExecResult, ToolCall

from .conftest import FakeCompute


def _call(name: str, **arguments: object) -> ToolCall:
    return ToolCall(id="call-1", name=name, arguments=dict(arguments))


def test_tool_set_is_closed() -> None:
    assert {kind.value for kind in TOOL_SPECS} == {
        "exec",
        "read_file",
        "write_file",
        "check_balance",
        "system_synopsis",
        "sleep",
        "transfer_funds",
    }
    assert spec_for("browse") is None
    assert any(row.startswith("exec (compute) [dangerous]") for row in tool_rows())


def test_model_tools_cover_every_kind(executor: ToolExecutor) -> None:
    names = [tool.name for tool in executor.model_tools()]

    assert names == [kind.value for kind in ToolKind]


@pytest.mark.asyncio
async def test_unknown_tool_is_reported_not_raised(executor: ToolExecutor) -> None:
    result = await executor.execute(_call("browse", url="https://example.com"))

    assert result.error == "unknown tool: browse"
    assert result.id == "call-1"


@pytest.mark.asyncio
async def test_invalid_arguments_are_reported(executor: ToolExecutor, compute: FakeCompute) -> None:
    result = await executor.execute(_call("exec"))

    assert result.error is not None
    assert result.error.startswith("invalid arguments")
    assert compute.commands == []


@pytest.mark.asyncio
async def test_exec_output(executor: ToolExecutor, compute: FakeCompute) -> None:
    compute.outputs["ls"] = ExecResult(stdout="a.txt\n", stderr="", exit_code=0)

    result = await executor.execute(_call("exec", command="ls"))

    assert result.ok
    assert result.result == "exit_code=0\nstdout:\na.txt\n"
    assert compute.commands == ["ls"]


@pytest.mark.asyncio
async def test_blocked_command_never_reaches_compute(executor: ToolExecutor, compute: FakeCompute) -> None:
    result = await executor.execute(_call("exec", command="rm -rf /"))

    assert result.error is None
    assert result.result.startswith("Blocked:")
    assert compute.commands == []


@pytest.mark.asyncio
async def test_overwriting_durable_state_never_reaches_compute(executor: ToolExecutor, compute: FakeCompute) -> None:
    result = await executor.execute(_call("exec", command="ln -sf /dev/null ~/.lifeline/turns.jsonl"))

    assert result.result == "Blocked: reference to a protected resource"
    assert compute.commands == []


@pytest.mark.asyncio
async def test_blocked_write(executor: ToolExecutor, compute: FakeCompute) -> None:
    result = await executor.execute(_call("write_file", path="soul.md", content="new me"))

    assert result.result.startswith("Blocked:")
    assert compute.files == {}


@pytest.mark.asyncio
async def test_write_and_read(executor: ToolExecutor, compute: FakeCompute) -> None:
    written = await executor.execute(_call("write_file", path="notes.txt", content="hello"))
    read = await executor.execute(_call("read_file", path="notes.txt"))

    assert written.result == "wrote: notes.txt (5 chars)"
    assert read.result == "hello"
    assert compute.files == {"notes.txt": "hello"}


@pytest.mark.asyncio
async def test_handler_failure_becomes_error(executor: ToolExecutor) -> None:
    result = await executor.execute(_call("read_file", path="missing.txt"))

    assert not result.ok
    assert result.result == ""


@pytest.mark.asyncio
async def test_slow_tool_times_out(store: FileStateStore, balance) -> None:
    slow = ToolExecutor(
        compute=FakeCompute(delay_seconds=0.5),
        store=store,
        balance_source=balance,
        timeout_seconds=0.05,
    )

    result = await slow.execute(_call("exec", command="sleep 10"))

    assert result.error == "timed out after 0.05s"


@pytest.mark.asyncio
async def test_sleep_records_deadline(executor: ToolExecutor, store: FileStateStore) -> None:
    before = datetime.now(UTC)

    result = await executor.execute(_call("sleep", duration_seconds=120, reason="nothing to do"))

    deadline = datetime.fromisoformat(store.get(keys.SLEEP_UNTIL) or "")
    assert result.ok
    assert 119 <= (deadline - before).total_seconds() <= 125
    assert store.get(keys.SLEEP_REASON) == "nothing to do"


@pytest.mark.asyncio
async def test_transfer_without_wallet_is_unsupported(executor: ToolExecutor) -> None:
    result = await executor.execute(_call("transfer_funds", destination="lnbc1abc", amount=10))

    assert result.error == "transfer_funds is not supported: no wallet configured"


@pytest.mark.asyncio
async def test_check_balance_and_synopsis(executor: ToolExecutor, store: FileStateStore) -> None:
    store.set(keys.CURRENT_TIER, "ample")

    balance = await executor.execute(_call("check_balance"))
    synopsis = await executor.execute(_call("system_synopsis"))

    assert balance.result == "balance: 100.0k units\ntier: ample"
    assert "tier: ample" in synopsis.result
    assert "turns: 0" in synopsis.result
