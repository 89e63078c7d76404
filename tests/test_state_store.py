from __future__ import annotations

from pathlib import Path

import pytest

from lifeline.errors import StoreError
from lifeline.store import FileStateStore
from lifeline.store.state import MAX_PROCESSED_INBOX
from lifeline.types import (
    InboxMessage,
    LifecycleState,
    ResourceTier,
    ScheduledTaskRecord,
    TierTransition,
    TokenUsage,
    ToolCallResult,
    Turn,
)


def _turn(idx: int, **kwargs) -> Turn:
    return Turn(
        id=f"{idx:020d}",
        timestamp="2026-01-01T00:00:00+00:00",
        state=LifecycleState.RUNNING,
        thinking=f"thought {idx}",
        **kwargs,
    )


def test_turns_are_returned_oldest_first_within_limit(store: FileStateStore) -> None:
    for idx in range(5):
        store.append_turn(_turn(idx))

    recent = store.recent_turns(3)

    assert [turn.thinking for turn in recent] == ["thought 2", "thought 3", "thought 4"]
    assert store.turn_count() == 5


def test_turn_round_trips_tool_calls_and_usage(home: Path) -> None:
    call = ToolCallResult(id="c1", name="exec", arguments={"command": "ls"}, result="", duration_ms=3, error="boom")
    FileStateStore(home).append_turn(
        _turn(1, tool_calls=(call,), token_usage=TokenUsage(10, 5, 15), cost=2.0, input="hi", input_source="creator")
    )

    reopened = FileStateStore(home).recent_turns(1)[0]

    assert reopened.tool_calls == (call,)
    assert reopened.token_usage == TokenUsage(10, 5, 15)
    assert reopened.input_source == "creator"
    assert not reopened.tool_calls[0].ok


def test_named_records(store: FileStateStore) -> None:
    assert store.get("missing") is None
    store.set("sleep_until", "2026-01-01T00:00:00+00:00")
    assert store.get("sleep_until") == "2026-01-01T00:00:00+00:00"
    store.delete("sleep_until")
    store.delete("sleep_until")
    assert store.get("sleep_until") is None


def test_turn_cache_keeps_only_a_tail(home: Path) -> None:
    store = FileStateStore(home, turn_cache_size=3)
    for idx in range(10):
        store.append_turn(_turn(idx))

    assert store.turn_count() == 10
    assert [turn.thinking for turn in store.recent_turns(2)] == ["thought 8", "thought 9"]
    assert len(store._turns._tail) == 3
    assert [turn.thinking for turn in store.recent_turns(5)][0] == "thought 5"


def test_turn_count_sees_other_writers(home: Path) -> None:
    reader = FileStateStore(home, turn_cache_size=2)
    writer = FileStateStore(home)
    reader.append_turn(_turn(0))
    for idx in range(1, 6):
        writer.append_turn(_turn(idx))

    assert reader.turn_count() == 6
    assert reader.recent_turns(1)[0].thinking == "thought 5"


def test_json_records(store: FileStateStore) -> None:
    store.set_json("last_heartbeat", {"tier": "ample", "note": "café"})

    assert store.get_json("last_heartbeat") == {"tier": "ample", "note": "café"}
    assert store.get_json("missing") is None
    store.set("broken", "{not json")
    assert store.get_json("broken") is None


def test_lifecycle_defaults_to_initializing(store: FileStateStore) -> None:
    assert store.get_lifecycle() is LifecycleState.INITIALIZING
    store.set_lifecycle(LifecycleState.SLEEPING)
    assert store.get_lifecycle() is LifecycleState.SLEEPING


def test_upsert_task_is_idempotent_and_keeps_last_run(store: FileStateStore) -> None:
    record = ScheduledTaskRecord(name="health_check", schedule="*/30 * * * *", task="health_check")
    store.upsert_task(record)
    store.mark_task_run("health_check", "2026-01-01T00:00:00+00:00")
    store.upsert_task(record)
    store.upsert_task(ScheduledTaskRecord(name="health_check", schedule="*/5 * * * *", task="health_check"))

    tasks = store.list_tasks()

    assert len(tasks) == 1
    assert tasks[0].schedule == "*/5 * * * *"
    assert tasks[0].last_run == "2026-01-01T00:00:00+00:00"


def test_inbox_deduplicates_and_keeps_order(store: FileStateStore) -> None:
    assert store.enqueue_inbox(InboxMessage(id="a", sender="x", content="first"))
    assert store.enqueue_inbox(InboxMessage(id="b", sender="y", content="second"))
    assert not store.enqueue_inbox(InboxMessage(id="a", sender="x", content="first"))

    first = store.next_inbox_message()
    assert first is not None and first.id == "a"
    store.mark_inbox_processed("a")
    second = store.next_inbox_message()
    assert second is not None and second.id == "b"
    store.mark_inbox_processed("b")
    assert store.next_inbox_message() is None


def test_processed_inbox_is_pruned(store: FileStateStore) -> None:
    for idx in range(MAX_PROCESSED_INBOX + 5):
        store.enqueue_inbox(InboxMessage(id=str(idx), sender="x", content="hi"))
        store.mark_inbox_processed(str(idx))

    assert len(store._read()["inbox"]) == MAX_PROCESSED_INBOX


def test_tier_transitions_round_trip(store: FileStateStore) -> None:
    transition = TierTransition(ResourceTier.AMPLE, ResourceTier.REDUCED, "2026-01-01T00:00:00+00:00", 30_000)
    store.set_tier_transitions([transition])
    assert store.get_tier_transitions() == [transition]


def test_corrupt_document_is_quarantined(home: Path) -> None:
    (home / "state.json").write_text("{not json", encoding="utf-8")
    store = FileStateStore(home)

    assert store.get("anything") is None
    assert list(home.glob("state.json.*.corrupt"))
    store.set("k", "v")
    assert store.get("k") == "v"


def test_closed_store_rejects_operations(store: FileStateStore) -> None:
    store.close()
    with pytest.raises(StoreError):
        store.set("k", "v")
    with pytest.raises(StoreError):
        store.append_turn(_turn(1))
