from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

LOGGER = logging.getLogger(__name__)


class ReplyState(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    TAGGED = "tagged"


@dataclass(slots=True)
class LedgerEntry:
    account: str
    message_id: str
    state: ReplyState
    reply_id: Optional[str]
    updated_at: datetime


class ReplyLedger:
    """SQLite-backed record of which messages were auto-replied to.

    A row is written as ``pending`` before the reply is sent, moved to
    ``sent`` with the reply id once the API accepts it, and to ``tagged``
    once the sentinel label is applied.
    """

    def __init__(self, db_path: Path):
        self._db_path = db_path
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self._db_path)

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS auto_replies (
                    account TEXT NOT NULL,
                    message_id TEXT NOT NULL,
                    state TEXT NOT NULL,
                    reply_id TEXT,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (account, message_id)
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_auto_replies_account
                ON auto_replies(account)
                """
            )

    def state(self, account: str, message_id: str) -> Optional[LedgerEntry]:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT account, message_id, state, reply_id, updated_at
                FROM auto_replies WHERE account=? AND message_id=?
                """,
                (account, message_id),
            ).fetchone()
        return _entry(row) if row else None

    def mark_pending(self, account: str, message_id: str) -> None:
        self._upsert(account, message_id, ReplyState.PENDING, None)

    def mark_sent(self, account: str, message_id: str, reply_id: str) -> None:
        self._upsert(account, message_id, ReplyState.SENT, reply_id)

    def mark_tagged(self, account: str, message_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE auto_replies SET state=?, updated_at=? WHERE account=? AND message_id=?",
                (ReplyState.TAGGED.value, _now(), account, message_id),
            )
        LOGGER.debug("Marked %s tagged for account %s", message_id, account)

    def clear(self, account: str, message_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM auto_replies WHERE account=? AND message_id=?",
                (account, message_id),
            )

    def recent_entries(self, limit: int = 10, account: Optional[str] = None) -> list[LedgerEntry]:
        query = "SELECT account, message_id, state, reply_id, updated_at FROM auto_replies"
        params: tuple = ()
        if account:
            query += " WHERE account=?"
            params = (account,)
        query += " ORDER BY updated_at DESC LIMIT ?"
        with self._connect() as conn:
            rows = conn.execute(query, params + (limit,)).fetchall()
        return [_entry(row) for row in rows]

    def _upsert(self, account: str, message_id: str, state: ReplyState, reply_id: Optional[str]) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO auto_replies(account, message_id, state, reply_id, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (account, message_id, state.value, reply_id, _now()),
            )
        LOGGER.debug("Recorded %s as %s for account %s", message_id, state.value, account)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _entry(row) -> LedgerEntry:
    return LedgerEntry(row[0], row[1], ReplyState(row[2]), row[3], datetime.fromisoformat(row[4]))
