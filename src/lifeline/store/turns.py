"""Append-only turn log."""

from __future__ import annotations

import json
import threading
from collections import deque
from collections.abc import Iterator
from pathlib import Path
from typing import IO, Any

from loguru import logger

from lifeline.types import LifecycleState, TokenUsage, ToolCallResult, Turn

TURN_LOG_NAME = "turns.jsonl"
DEFAULT_CACHE_SIZE = 256


class TurnLog:
    """JSONL file holding one immutable turn per line.

    Only the newest ``cache_size`` turns are kept in memory together with a
    running count; older turns are read back from disk on demand.
    """

    def __init__(self, path: Path, *, cache_size: int = DEFAULT_CACHE_SIZE) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._cache_size = max(1, cache_size)
        self._tail: deque[Turn] = deque(maxlen=self._cache_size)
        self._total = 0
        self._read_offset = 0

    def _reset(self) -> None:
        self._tail.clear()
        self._total = 0
        self._read_offset = 0

    def _parse(self, handle: IO[str]) -> Iterator[Turn]:
        for raw_line in handle:
            line = raw_line.strip()
            if not line:
                continue
            try:
                payload = json.loads(line)
            except json.JSONDecodeError:
                logger.warning("store.turns.skip_line path={}", self.path)
                continue
            turn = self.turn_from_payload(payload)
            if turn is not None:
                yield turn

    def _refresh_locked(self) -> None:
        if not self.path.exists():
            self._reset()
            return

        file_size = self.path.stat().st_size
        if file_size < self._read_offset:
            # The file was truncated or replaced, so cached turns are stale.
            self._reset()

        with self.path.open("r", encoding="utf-8") as handle:
            handle.seek(self._read_offset)
            for turn in self._parse(handle):
                self._tail.append(turn)
                self._total += 1
            self._read_offset = handle.tell()

    def read(self) -> list[Turn]:
        """Every turn in the log, oldest first, straight from disk."""
        with self._lock:
            if not self.path.exists():
                return []
            with self.path.open("r", encoding="utf-8") as handle:
                return list(self._parse(handle))

    def append(self, turn: Turn) -> None:
        with self._lock:
            # Keep cache and offset in sync with writers we have not observed yet.
            self._refresh_locked()
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(self.turn_to_payload(turn), ensure_ascii=False) + "\n")
                handle.flush()
                self._read_offset = handle.tell()
            self._tail.append(turn)
            self._total += 1

    def recent(self, limit: int) -> list[Turn]:
        if limit <= 0:
            return []
        if limit > self._cache_size:
            return self.read()[-limit:]
        with self._lock:
            self._refresh_locked()
            return list(self._tail)[-limit:]

    def count(self) -> int:
        with self._lock:
            self._refresh_locked()
            return self._total

    @staticmethod
    def turn_to_payload(turn: Turn) -> dict[str, Any]:
        return {
            "id": turn.id,
            "timestamp": turn.timestamp,
            "state": turn.state.value,
            "input": turn.input,
            "input_source": turn.input_source,
            "thinking": turn.thinking,
            "tool_calls": [
                {
                    "id": call.id,
                    "name": call.name,
                    "arguments": dict(call.arguments),
                    "result": call.result,
                    "duration_ms": call.duration_ms,
                    "error": call.error,
                }
                for call in turn.tool_calls
            ],
            "token_usage": {
                "prompt_tokens": turn.token_usage.prompt_tokens,
                "completion_tokens": turn.token_usage.completion_tokens,
                "total_tokens": turn.token_usage.total_tokens,
            },
            "cost": turn.cost,
        }

    @staticmethod
    def turn_from_payload(payload: object) -> Turn | None:
        if not isinstance(payload, dict):
            return None
        turn_id = payload.get("id")
        timestamp = payload.get("timestamp")
        if not isinstance(turn_id, str) or not isinstance(timestamp, str):
            return None
        try:
            state = LifecycleState(payload.get("state", LifecycleState.RUNNING))
        except ValueError:
            state = LifecycleState.RUNNING

        calls: list[ToolCallResult] = []
        for item in payload.get("tool_calls") or []:
            if not isinstance(item, dict):
                continue
            arguments = item.get("arguments")
            calls.append(
                ToolCallResult(
                    id=str(item.get("id", "")),
                    name=str(item.get("name", "")),
                    arguments=dict(arguments) if isinstance(arguments, dict) else {},
                    result=str(item.get("result", "")),
                    duration_ms=int(item.get("duration_ms", 0)),
                    error=item.get("error"),
                )
            )

        usage = payload.get("token_usage")
        if not isinstance(usage, dict):
            usage = {}
        return Turn(
            id=turn_id,
            timestamp=timestamp,
            state=state,
            thinking=str(payload.get("thinking") or ""),
            tool_calls=tuple(calls),
            token_usage=TokenUsage(
                prompt_tokens=int(usage.get("prompt_tokens", 0)),
                completion_tokens=int(usage.get("completion_tokens", 0)),
                total_tokens=int(usage.get("total_tokens", 0)),
            ),
            cost=float(payload.get("cost", 0.0)),
            input=payload.get("input"),
            input_source=payload.get("input_source"),
        )
