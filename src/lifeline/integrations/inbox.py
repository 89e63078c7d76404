"""Inbound messages dropped into a JSONL file."""

from __future__ import annotations

import json
import threading
import uuid
from pathlib import Path

from loguru import logger

from lifeline.types import InboxMessage, now_iso

INBOX_FILE_NAME = "inbox.jsonl"


class JsonlInbox:
    """Polls a JSONL file; the cursor is the byte offset already consumed."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()

    def post(self, sender: str, content: str) -> InboxMessage:
        message = InboxMessage(id=uuid.uuid4().hex, sender=sender, content=content, received_at=now_iso())
        payload = {
            "id": message.id,
            "sender": message.sender,
            "content": message.content,
            "received_at": message.received_at,
        }
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(payload, ensure_ascii=False) + "\n")
        return message

    def poll(self, cursor: str | None = None) -> tuple[list[InboxMessage], str | None]:
        if not self.path.exists():
            return [], cursor
        offset = int(cursor) if cursor and cursor.isdigit() else 0
        if self.path.stat().st_size < offset:
            offset = 0

        messages: list[InboxMessage] = []
        with self._lock, self.path.open("r", encoding="utf-8") as handle:
            handle.seek(offset)
            for raw_line in handle:
                line = raw_line.strip()
                if not line:
                    continue
                try:
                    payload = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("inbox.skip_line path={}", self.path)
                    continue
                if not isinstance(payload, dict) or not payload.get("content"):
                    continue
                messages.append(
                    InboxMessage(
                        id=str(payload.get("id") or uuid.uuid4().hex),
                        sender=str(payload.get("sender") or "unknown"),
                        content=str(payload["content"]),
                        received_at=str(payload.get("received_at") or now_iso()),
                    )
                )
            offset = handle.tell()
        return messages, str(offset)
