"""A small SQLite-backed message queue with visibility timeouts.

Semantics follow the usual hosted-queue model: receiving a message hides it
for ``visibility_timeout`` seconds, increments its receive count and hands
out a fresh receipt handle. A message that is not deleted before the
timeout expires becomes visible again and is redelivered. Deleting
requires the receipt handle of the latest delivery.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
import uuid
from typing import Callable, Dict, List, Optional

from .errors import QueueError
from .models import QueueEnvelope, QueueMessage, RawPost, isoformat, utc_now
from .storage import connect


logger = logging.getLogger(__name__)

MAIN_QUEUE = "main"
PRIORITY_QUEUE = "priority"
DEAD_LETTER_QUEUE = "dead-letter"

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS messages (
        id TEXT PRIMARY KEY,
        queue TEXT NOT NULL,
        body TEXT NOT NULL,
        attributes TEXT NOT NULL DEFAULT '{}',
        receive_count INTEGER NOT NULL DEFAULT 0,
        visible_at REAL NOT NULL,
        receipt_handle TEXT,
        sent_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_visible ON messages (queue, visible_at)",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_messages_receipt ON messages (receipt_handle)",
)


class SqliteMessageQueue:
    def __init__(self, path: str, clock: Callable[[], float] = time.time):
        self.path = path
        self.clock = clock
        self._conn = connect(path)
        self._lock = threading.Lock()
        with self._lock, self._conn:
            for statement in _SCHEMA:
                self._conn.execute(statement)

    def close(self) -> None:
        self._conn.close()

    def send(self, queue: str, body: str, attributes: Optional[Dict[str, str]] = None) -> str:
        message_id = uuid.uuid4().hex
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    "INSERT INTO messages (id, queue, body, attributes, visible_at, sent_at) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (message_id, queue, body, json.dumps(attributes or {}), self.clock(), isoformat(utc_now())),
                )
        except sqlite3.Error as exc:
            raise QueueError(f"failed to send message to {queue}: {exc}") from exc
        return message_id

    def enqueue_post(self, post: RawPost, queue: str = MAIN_QUEUE) -> str:
        """Wrap ``post`` in a queue envelope and send it."""
        envelope = QueueEnvelope(post=post, queued_at=isoformat(utc_now()))
        return self.send(queue, envelope.to_json())

    def receive(self, queue: str, max_messages: int = 10, visibility_timeout: float = 30) -> List[QueueMessage]:
        now = self.clock()
        received: List[QueueMessage] = []
        try:
            with self._lock, self._conn:
                rows = self._conn.execute(
                    "SELECT * FROM messages WHERE queue = ? AND visible_at <= ? "
                    "ORDER BY sent_at, rowid LIMIT ?",
                    (queue, now, max_messages),
                ).fetchall()
                for row in rows:
                    handle = uuid.uuid4().hex
                    count = row["receive_count"] + 1
                    self._conn.execute(
                        "UPDATE messages SET receive_count = ?, visible_at = ?, receipt_handle = ? WHERE id = ?",
                        (count, now + visibility_timeout, handle, row["id"]),
                    )
                    received.append(
                        QueueMessage(
                            message_id=row["id"],
                            queue=queue,
                            body=row["body"],
                            receipt_handle=handle,
                            receive_count=count,
                            attributes=json.loads(row["attributes"] or "{}"),
                        )
                    )
        except sqlite3.Error as exc:
            raise QueueError(f"failed to receive from {queue}: {exc}") from exc
        return received

    def delete(self, queue: str, receipt_handle: str) -> bool:
        """Delete a delivered message. Returns False for a stale handle."""
        try:
            with self._lock, self._conn:
                cursor = self._conn.execute(
                    "DELETE FROM messages WHERE queue = ? AND receipt_handle = ?",
                    (queue, receipt_handle),
                )
        except sqlite3.Error as exc:
            raise QueueError(f"failed to delete message from {queue}: {exc}") from exc
        if cursor.rowcount == 0:
            logger.warning("Receipt handle %s on %s is stale; message was redelivered", receipt_handle, queue)
            return False
        return True

    def count(self, queue: str) -> int:
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM messages WHERE queue = ?", (queue,)).fetchone()[0]

    def peek(self, queue: str) -> List[QueueMessage]:
        """Return every message in ``queue`` without changing its state."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM messages WHERE queue = ? ORDER BY sent_at, rowid", (queue,)
            ).fetchall()
        return [
            QueueMessage(
                message_id=row["id"],
                queue=queue,
                body=row["body"],
                receipt_handle=row["receipt_handle"] or "",
                receive_count=row["receive_count"],
                attributes=json.loads(row["attributes"] or "{}"),
            )
            for row in rows
        ]
