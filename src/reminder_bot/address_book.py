"""Read-only mapping from chat user id to SMS destination (msisdn).

Rows are written out of band by an administrator; the bot only looks them up.
Shares the store's SQLite connection.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

from .errors import PersistenceError

logger = logging.getLogger("reminder_bot.address_book")


class AddressBook:
    def __init__(self, store: Any):
        self.store = store
        self._ensure_table()

    def _ensure_table(self) -> None:
        """Create the address_book table if it doesn't exist."""
        conn = self.store._connect()
        with self.store._lock:
            try:
                conn.executescript(
                    """
                    CREATE TABLE IF NOT EXISTS address_book (
                        user_id TEXT PRIMARY KEY,
                        msisdn TEXT NOT NULL
                    );
                    """
                )
                conn.commit()
            except sqlite3.Error as exc:
                raise PersistenceError(f"failed to create address book schema: {exc}") from exc

    def lookup(self, user_id: str) -> str | None:
        """Return the msisdn for ``user_id``, or None when there is no entry."""
        conn = self.store._connect()
        with self.store._lock:
            try:
                row = conn.execute(
                    "SELECT msisdn FROM address_book WHERE user_id = ?",
                    (user_id,),
                ).fetchone()
            except sqlite3.Error as exc:
                raise PersistenceError(f"failed to get msisdn for {user_id}: {exc}") from exc
        return row["msisdn"] if row is not None else None

    def set(self, user_id: str, msisdn: str) -> None:
        """Administrative upsert; not used by the bot's own code paths."""
        conn = self.store._connect()
        with self.store._lock:
            try:
                conn.execute(
                    """
                    INSERT INTO address_book(user_id, msisdn) VALUES(?, ?)
                    ON CONFLICT(user_id) DO UPDATE SET msisdn=excluded.msisdn
                    """,
                    (user_id, msisdn),
                )
                conn.commit()
            except sqlite3.Error as exc:
                conn.rollback()
                raise PersistenceError(f"failed to store msisdn for {user_id}: {exc}") from exc
        logger.info("Address book entry set for %s", user_id)
