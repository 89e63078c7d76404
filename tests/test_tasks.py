from __future__ import annotations

import json
from pathlib import Path

from lifeline.integrations import JsonlInbox
from lifeline.scheduler import TaskContext
from lifeline.scheduler.tasks import check_balance, check_for_updates, check_inbox, health_check, heartbeat_ping
from lifeline.store import FileStateStore, keys
from lifeline.types import ExecResult

from .conftest import FakeBalance, FakeCompute


def _context(store: FileStateStore, **kwargs) -> TaskContext:
    kwargs.setdefault("compute", FakeCompute())
    kwargs.setdefault("balance_source", FakeBalance())
    return TaskContext(store=store, name="tester", **kwargs)


def test_heartbeat_records_status(store: FileStateStore) -> None:
    result = heartbeat_ping(_context(store), {})

    payload = json.loads(store.get(keys.LAST_HEARTBEAT) or "{}")
    assert not result.should_wake
    assert payload["name"] == "tester"
    assert payload["tier"] == "ample"
    assert payload["state"] == "initializing"
    assert store.get(keys.LAST_DISTRESS) is None


def test_heartbeat_raises_distress_when_critical(store: FileStateStore) -> None:
    result = heartbeat_ping(_context(store, balance_source=FakeBalance(balance=5_000)), {})

    assert result.should_wake
    assert result.message.startswith("Distress: critical")
    assert json.loads(store.get(keys.LAST_DISTRESS) or "{}")["level"] == "critical"


def test_balance_check_wakes_only_on_drop_into_distress(store: FileStateStore) -> None:
    source = FakeBalance(balance=80_000)
    ctx = _context(store, balance_source=source)

    assert not check_balance(ctx, {}).should_wake
    source.balance = 20_000
    assert not check_balance(ctx, {}).should_wake
    source.balance = 5_000
    dropped = check_balance(ctx, {})
    assert dropped.should_wake
    assert "critical" in (dropped.message or "")
    assert not check_balance(ctx, {}).should_wake
    assert store.get(keys.PREV_BALANCE_TIER) == "critical"


def test_inbox_poll_enqueues_new_messages_once(store: FileStateStore, tmp_path: Path) -> None:
    inbox = JsonlInbox(tmp_path / "inbox.jsonl")
    inbox.post("alice", "hi")
    inbox.post("bob", "hello")
    ctx = _context(store, inbox=inbox)

    first = check_inbox(ctx, {})
    second = check_inbox(ctx, {})

    assert first.should_wake
    assert first.message == "2 new message(s) from: alice, bob"
    assert not second.should_wake
    assert store.next_inbox_message().sender == "alice"


def test_inbox_without_source_is_quiet(store: FileStateStore) -> None:
    assert not check_inbox(_context(store), {}).should_wake


def test_updates_disabled_without_repo(store: FileStateStore) -> None:
    compute = FakeCompute()

    result = check_for_updates(_context(store, compute=compute), {})

    assert not result.should_wake
    assert compute.commands == []
    assert json.loads(store.get(keys.UPSTREAM_STATUS) or "{}")["status"] == "disabled"


def test_updates_wake_when_behind(store: FileStateStore) -> None:
    compute = FakeCompute()
    compute.outputs["git -C /srv/app rev-list --count HEAD..@{u}"] = ExecResult(stdout="3\n", stderr="", exit_code=0)

    result = check_for_updates(_context(store, compute=compute), {"repo": "/srv/app"})

    assert result.should_wake
    assert compute.commands[0] == "git -C /srv/app fetch --quiet"
    assert json.loads(store.get(keys.UPSTREAM_STATUS) or "{}")["behind"] == 3


def test_health_check(store: FileStateStore) -> None:
    healthy = health_check(_context(store), {})
    failing = health_check(_context(store, compute=FakeCompute(error=OSError("gone"))), {})

    assert not healthy.should_wake
    assert store.get(keys.LAST_HEALTH_CHECK) is not None
    assert failing.should_wake
    assert failing.message == "Health check failed: gone"
