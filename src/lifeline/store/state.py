"""File-backed durable state store."""

from __future__ import annotations

import json
import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger

from lifeline.errors import StoreError
from lifeline.store.turns import DEFAULT_CACHE_SIZE, TURN_LOG_NAME, TurnLog
from lifeline.types import (
    InboxMessage,
    LifecycleState,
    ResourceTier,
    ScheduledTaskRecord,
    TierTransition,
    Turn,
)

STATE_FILE_NAME = "state.json"
MAX_PROCESSED_INBOX = 200


def _empty_document() -> dict[str, Any]:
    return {
        "kv": {},
        "lifecycle": LifecycleState.INITIALIZING.value,
        "tasks": {},
        "inbox": [],
        "tier_transitions": [],
    }


class FileStateStore:
    """Turn log plus a JSON state document, shared by the engine and the scheduler.

    Every operation re-reads the document from disk under a lock and writes it
    back through an atomic rename, so a concurrent reader sees either the old or
    the new record and never a partial one.
    """

    def __init__(self, home: Path, *, turn_cache_size: int = DEFAULT_CACHE_SIZE) -> None:
        self.home = home
        self.home.mkdir(parents=True, exist_ok=True)
        self.state_path = home / STATE_FILE_NAME
        self._turns = TurnLog(home / TURN_LOG_NAME, cache_size=turn_cache_size)
        self._lock = threading.RLock()
        self._closed = False

    @property
    def turn_log_path(self) -> Path:
        return self._turns.path

    def _check_open(self) -> None:
        if self._closed:
            raise StoreError("state store is closed")

    def _load(self) -> dict[str, Any]:
        if not self.state_path.exists():
            return _empty_document()
        try:
            with open(self.state_path, encoding="utf-8") as f:
                loaded = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("store.load.error path={} error={}", self.state_path, e)
            self._quarantine()
            return _empty_document()
        if not isinstance(loaded, dict):
            return _empty_document()
        document = _empty_document()
        document.update(loaded)
        return document

    def _quarantine(self) -> None:
        stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
        target = self.state_path.with_suffix(f".json.{stamp}.corrupt")
        try:
            self.state_path.replace(target)
        except OSError as e:
            logger.error("store.quarantine.error path={} error={}", self.state_path, e)

    def _save(self, document: dict[str, Any]) -> None:
        tmp_path = self.state_path.with_suffix(f".json.{os.getpid()}.{threading.get_ident()}.tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(document, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.state_path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise StoreError(f"cannot save state document: {e}") from e

    def _read(self) -> dict[str, Any]:
        with self._lock:
            self._check_open()
            return self._load()

    @contextmanager
    def _update(self) -> Iterator[dict[str, Any]]:
        with self._lock:
            self._check_open()
            document = self._load()
            yield document
            self._save(document)

    # Turn log

    def append_turn(self, turn: Turn) -> None:
        self._check_open()
        self._turns.append(turn)

    def recent_turns(self, limit: int) -> list[Turn]:
        self._check_open()
        return self._turns.recent(limit)

    def turn_count(self) -> int:
        self._check_open()
        return self._turns.count()

    # Named records

    def get(self, key: str) -> str | None:
        value = self._read()["kv"].get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        with self._update() as document:
            document["kv"][key] = value

    def delete(self, key: str) -> None:
        with self._update() as document:
            document["kv"].pop(key, None)

    def get_json(self, key: str) -> Any:
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return None

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value, ensure_ascii=False))

    # Lifecycle

    def get_lifecycle(self) -> LifecycleState:
        raw = self._read().get("lifecycle")
        try:
            return LifecycleState(raw)
        except ValueError:
            return LifecycleState.INITIALIZING

    def set_lifecycle(self, state: LifecycleState) -> None:
        with self._update() as document:
            document["lifecycle"] = state.value

    # Scheduled task records

    def upsert_task(self, record: ScheduledTaskRecord) -> None:
        with self._update() as document:
            existing = document["tasks"].get(record.name) or {}
            last_run = record.last_run or existing.get("last_run")
            document["tasks"][record.name] = {
                "name": record.name,
                "schedule": record.schedule,
                "task": record.task,
                "enabled": record.enabled,
                "last_run": last_run,
                "params": dict(record.params),
            }

    def get_task(self, name: str) -> ScheduledTaskRecord | None:
        raw = self._read()["tasks"].get(name)
        return _task_from_payload(raw)

    def list_tasks(self) -> list[ScheduledTaskRecord]:
        records = [_task_from_payload(raw) for raw in self._read()["tasks"].values()]
        return [record for record in records if record is not None]

    def mark_task_run(self, name: str, timestamp: str) -> None:
        with self._update() as document:
            raw = document["tasks"].get(name)
            if isinstance(raw, dict):
                raw["last_run"] = timestamp

    # Tier transitions

    def get_tier_transitions(self) -> list[TierTransition]:
        transitions: list[TierTransition] = []
        for raw in self._read()["tier_transitions"]:
            try:
                transitions.append(
                    TierTransition(
                        from_tier=ResourceTier(raw["from_tier"]),
                        to_tier=ResourceTier(raw["to_tier"]),
                        timestamp=str(raw["timestamp"]),
                        balance=float(raw["balance"]),
                    )
                )
            except (KeyError, TypeError, ValueError):
                continue
        return transitions

    def set_tier_transitions(self, transitions: list[TierTransition]) -> None:
        with self._update() as document:
            document["tier_transitions"] = [
                {
                    "from_tier": item.from_tier.value,
                    "to_tier": item.to_tier.value,
                    "timestamp": item.timestamp,
                    "balance": item.balance,
                }
                for item in transitions
            ]

    # Inbound message queue

    def enqueue_inbox(self, message: InboxMessage) -> bool:
        """Queue an inbound message; returns False when the id was already seen."""
        with self._update() as document:
            inbox: list[dict[str, Any]] = document["inbox"]
            if any(item.get("id") == message.id for item in inbox):
                return False
            inbox.append(
                {
                    "id": message.id,
                    "sender": message.sender,
                    "content": message.content,
                    "received_at": message.received_at,
                    "processed": False,
                }
            )
            return True

    def next_inbox_message(self) -> InboxMessage | None:
        for raw in self._read()["inbox"]:
            if not raw.get("processed"):
                return InboxMessage(
                    id=str(raw.get("id")),
                    sender=str(raw.get("sender", "")),
                    content=str(raw.get("content", "")),
                    received_at=str(raw.get("received_at", "")),
                )
        return None

    def mark_inbox_processed(self, message_id: str) -> None:
        with self._update() as document:
            inbox: list[dict[str, Any]] = document["inbox"]
            for item in inbox:
                if item.get("id") == message_id:
                    item["processed"] = True
            processed = [item for item in inbox if item.get("processed")]
            overflow = len(processed) - MAX_PROCESSED_INBOX
            if overflow > 0:
                drop = {id(item) for item in processed[:overflow]}
                document["inbox"] = [item for item in inbox if id(item) not in drop]

    def close(self) -> None:
        with self._lock:
            self._closed = True
        logger.info("store.closed path={}", self.home)


def _task_from_payload(raw: object) -> ScheduledTaskRecord | None:
    if not isinstance(raw, dict):
        return None
    name = raw.get("name")
    if not isinstance(name, str) or not name:
        return None
    params = raw.get("params")
    return ScheduledTaskRecord(
        name=name,
        schedule=str(raw.get("schedule", "")),
        task=str(raw.get("task", name)),
        enabled=bool(raw.get("enabled", True)),
        last_run=raw.get("last_run"),
        params=dict(params) if isinstance(params, dict) else {},
    )
