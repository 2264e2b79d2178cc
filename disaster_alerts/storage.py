"""SQLite-backed event store.

Events are write-once. The ``(author, text)`` pair carries a unique index
which serves both as the deduplication lookup and as the conditional-put
guard: two concurrent deliveries of the same post cannot both insert.
Every row carries a ``ttl`` (epoch seconds); expired rows are ignored by
lookups and removed by :meth:`EventStore.purge_expired`.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from typing import Callable, List, Optional

from .errors import DuplicateEventError, PersistenceError, StorageError
from .models import Coordinates, DisasterEvent


logger = logging.getLogger(__name__)

AUTHOR_TEXT_INDEX = "idx_events_author_text"

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS events (
        id TEXT PRIMARY KEY,
        author TEXT NOT NULL,
        text TEXT NOT NULL,
        platform TEXT,
        url TEXT,
        location TEXT,
        lat REAL,
        lng REAL,
        event_type TEXT NOT NULL,
        verified INTEGER NOT NULL CHECK (verified IN (0, 1)),
        disaster_score REAL NOT NULL,
        classifier_tier TEXT,
        hazard_source TEXT,
        created_at TEXT NOT NULL,
        processed_at TEXT NOT NULL,
        ttl INTEGER NOT NULL
    )
    """,
    f"CREATE UNIQUE INDEX IF NOT EXISTS {AUTHOR_TEXT_INDEX} ON events (author, text)",
    "CREATE INDEX IF NOT EXISTS idx_events_verified ON events (verified, processed_at)",
)


def connect(path: str) -> sqlite3.Connection:
    """Open a connection shared between threads (callers serialise access)."""
    conn = sqlite3.connect(path, check_same_thread=False, timeout=30)
    conn.row_factory = sqlite3.Row
    if path != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL")
    return conn


def _row_to_event(row: sqlite3.Row) -> DisasterEvent:
    coords = None
    if row["lat"] is not None and row["lng"] is not None:
        coords = Coordinates(lat=row["lat"], lng=row["lng"])
    return DisasterEvent(
        id=row["id"],
        text=row["text"],
        author=row["author"],
        event_type=row["event_type"],
        verified=int(row["verified"]),
        disaster_score=float(row["disaster_score"]),
        created_at=row["created_at"],
        processed_at=row["processed_at"],
        ttl=int(row["ttl"]),
        platform=row["platform"] or "unknown",
        url=row["url"] or "",
        location=row["location"],
        coordinates=coords,
        classifier_tier=row["classifier_tier"],
        hazard_source=row["hazard_source"],
    )


class EventStore:
    """Durable store for :class:`DisasterEvent` records."""

    def __init__(self, path: str, clock: Callable[[], float] = time.time):
        self.path = path
        self.clock = clock
        self._conn = connect(path)
        self._lock = threading.Lock()
        self.create_schema()

    def create_schema(self) -> None:
        with self._lock, self._conn:
            for statement in _SCHEMA:
                self._conn.execute(statement)

    def close(self) -> None:
        self._conn.close()

    def _now(self) -> int:
        return int(self.clock())

    def put_event(self, event: DisasterEvent) -> None:
        """Insert ``event`` unless its (author, text) key is already live.

        Re-putting an event with an id that is already stored is a no-op.

        Raises
        ------
        DuplicateEventError
            Another live event holds the same (author, text) key.
        PersistenceError
            The write failed for any other reason.
        """
        coords = event.coordinates
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    "DELETE FROM events WHERE author = ? AND text = ? AND ttl <= ?",
                    (event.author, event.text, self._now()),
                )
                self._conn.execute(
                    """
                    INSERT INTO events (
                        id, author, text, platform, url, location, lat, lng, event_type,
                        verified, disaster_score, classifier_tier, hazard_source,
                        created_at, processed_at, ttl
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        event.id, event.author, event.text, event.platform, event.url,
                        event.location, coords.lat if coords else None, coords.lng if coords else None,
                        event.event_type, event.verified, event.disaster_score,
                        event.classifier_tier, event.hazard_source,
                        event.created_at, event.processed_at, event.ttl,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            if self.get_event(event.id) is not None:
                logger.debug("Event %s already stored", event.id)
                return
            if "UNIQUE" not in str(exc):
                raise PersistenceError(f"failed to store event {event.id}: {exc}") from exc
            raise DuplicateEventError(f"event for ({event.author!r}, text) already exists") from exc
        except sqlite3.Error as exc:
            raise PersistenceError(f"failed to store event {event.id}: {exc}") from exc
        logger.debug("Stored event %s (verified=%s)", event.id, event.verified)

    def get_event(self, event_id: str) -> Optional[DisasterEvent]:
        try:
            with self._lock:
                row = self._conn.execute("SELECT * FROM events WHERE id = ?", (event_id,)).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to read event {event_id}: {exc}") from exc
        return _row_to_event(row) if row else None

    def find_by_author_text(self, author: str, text: str) -> Optional[DisasterEvent]:
        """Indexed lookup of a live event by its deduplication key."""
        try:
            with self._lock:
                row = self._conn.execute(
                    f"SELECT * FROM events INDEXED BY {AUTHOR_TEXT_INDEX} "
                    "WHERE author = ? AND text = ? AND ttl > ? LIMIT 1",
                    (author, text, self._now()),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"author/text index lookup failed: {exc}") from exc
        return _row_to_event(row) if row else None

    def scan_recent(self, author: str, text: str, since: str) -> Optional[DisasterEvent]:
        """Full scan for a live event with this key processed after ``since``."""
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT * FROM events NOT INDEXED "
                    "WHERE author = ? AND text = ? AND processed_at > ? AND ttl > ? LIMIT 1",
                    (author, text, since, self._now()),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"recent-event scan failed: {exc}") from exc
        return _row_to_event(row) if row else None

    def list_events(self, verified_only: bool = True, limit: int = 100) -> List[DisasterEvent]:
        query = "SELECT * FROM events WHERE ttl > ?"
        params: list = [self._now()]
        if verified_only:
            query += " AND verified = 1"
        query += " ORDER BY processed_at DESC LIMIT ?"
        params.append(limit)
        try:
            with self._lock:
                rows = self._conn.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to list events: {exc}") from exc
        return [_row_to_event(row) for row in rows]

    def count(self) -> int:
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]

    def purge_expired(self) -> int:
        """Delete expired events and return how many were removed."""
        try:
            with self._lock, self._conn:
                cursor = self._conn.execute("DELETE FROM events WHERE ttl <= ?", (self._now(),))
        except sqlite3.Error as exc:
            raise StorageError(f"failed to purge expired events: {exc}") from exc
        if cursor.rowcount:
            logger.info("Purged %d expired events", cursor.rowcount)
        return cursor.rowcount
