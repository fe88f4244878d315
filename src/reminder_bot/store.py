from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from .errors import DuplicateId, NotFound, PersistenceError
from .models import Reminder

logger = logging.getLogger("reminder_bot.store")


class SQLiteStore:
    """Durable reminder table. Thread-safe, with a cached connection."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def _connect(self) -> sqlite3.Connection:
        """Get or create a cached database connection (thread-safe)."""
        with self._lock:
            if self._conn is not None:
                return self._conn
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            try:
                conn = sqlite3.connect(self.db_path, check_same_thread=False)
            except sqlite3.Error as exc:
                raise PersistenceError(f"failed to open database {self.db_path}: {exc}") from exc
            conn.row_factory = sqlite3.Row
            self._conn = conn
            return conn

    def close(self) -> None:
        """Close the cached database connection."""
        with self._lock:
            if self._conn is not None:
                try:
                    self._conn.close()
                except sqlite3.Error as exc:
                    logger.warning("Error closing database: %s", exc)
                self._conn = None

    def bootstrap(self) -> None:
        conn = self._connect()
        with self._lock:
            try:
                conn.executescript(
                    """
                    CREATE TABLE IF NOT EXISTS reminders (
                        id TEXT PRIMARY KEY,
                        due_ts BIGINT NOT NULL,
                        destination TEXT NOT NULL,
                        text TEXT NOT NULL,
                        sent BOOL NOT NULL
                    );

                    CREATE INDEX IF NOT EXISTS reminders_ts ON reminders (due_ts, sent);
                    """
                )
                conn.commit()
            except sqlite3.Error as exc:
                raise PersistenceError(f"failed to create reminders schema: {exc}") from exc

    @staticmethod
    def _row_to_dict(row: sqlite3.Row | None) -> dict[str, Any] | None:
        if row is None:
            return None
        return {k: row[k] for k in row.keys()}

    def add(self, reminder: Reminder) -> None:
        """Insert a new unsent reminder. Raises DuplicateId on key collision."""
        conn = self._connect()
        with self._lock:
            try:
                conn.execute(
                    """
                    INSERT INTO reminders(id, due_ts, destination, text, sent)
                    VALUES(?, ?, ?, ?, 0)
                    """,
                    (reminder.id, reminder.due_ts, reminder.destination, reminder.text),
                )
                conn.commit()
            except sqlite3.IntegrityError as exc:
                conn.rollback()
                raise DuplicateId(f"reminder {reminder.id} already exists") from exc
            except sqlite3.Error as exc:
                conn.rollback()
                raise PersistenceError(f"failed to insert reminder {reminder.id}: {exc}") from exc

    def due_before(self, now: datetime) -> list[Reminder]:
        """Every unsent reminder with ``due <= now``, oldest first."""
        conn = self._connect()
        with self._lock:
            try:
                rows = conn.execute(
                    """
                    SELECT id, due_ts, destination, text, sent
                    FROM reminders
                    WHERE due_ts <= ? AND sent = 0
                    ORDER BY due_ts ASC
                    """,
                    (int(now.timestamp()),),
                ).fetchall()
            except sqlite3.Error as exc:
                raise PersistenceError(f"failed to query due reminders: {exc}") from exc
        return [Reminder.from_row(self._row_to_dict(row)) for row in rows]

    def mark_sent(self, reminder_id: str) -> None:
        """Flag a reminder as sent. Idempotent; raises NotFound for unknown ids."""
        conn = self._connect()
        with self._lock:
            try:
                cursor = conn.execute("UPDATE reminders SET sent = 1 WHERE id = ?", (reminder_id,))
                conn.commit()
            except sqlite3.Error as exc:
                conn.rollback()
                raise PersistenceError(f"failed to mark reminder {reminder_id} sent: {exc}") from exc
        if cursor.rowcount == 0:
            raise NotFound(f"no reminder with id {reminder_id}")

    def get(self, reminder_id: str) -> Reminder | None:
        conn = self._connect()
        with self._lock:
            try:
                row = conn.execute("SELECT * FROM reminders WHERE id = ?", (reminder_id,)).fetchone()
            except sqlite3.Error as exc:
                raise PersistenceError(f"failed to read reminder {reminder_id}: {exc}") from exc
        data = self._row_to_dict(row)
        return Reminder.from_row(data) if data else None

    def list_pending(self, limit: int = 100) -> list[Reminder]:
        conn = self._connect()
        with self._lock:
            try:
                rows = conn.execute(
                    "SELECT * FROM reminders WHERE sent = 0 ORDER BY due_ts ASC LIMIT ?",
                    (limit,),
                ).fetchall()
            except sqlite3.Error as exc:
                raise PersistenceError(f"failed to list pending reminders: {exc}") from exc
        return [Reminder.from_row(self._row_to_dict(row)) for row in rows]

    def pending_count(self) -> int:
        conn = self._connect()
        with self._lock:
            try:
                row = conn.execute("SELECT COUNT(*) FROM reminders WHERE sent = 0").fetchone()
            except sqlite3.Error as exc:
                raise PersistenceError(f"failed to count pending reminders: {exc}") from exc
        return int(row[0])

    def next_due(self) -> datetime | None:
        """Due time of the earliest unsent reminder, if any."""
        conn = self._connect()
        with self._lock:
            try:
                row = conn.execute("SELECT MIN(due_ts) FROM reminders WHERE sent = 0").fetchone()
            except sqlite3.Error as exc:
                raise PersistenceError(f"failed to query next due reminder: {exc}") from exc
        if row is None or row[0] is None:
            return None
        return datetime.fromtimestamp(int(row[0]), tz=UTC)
