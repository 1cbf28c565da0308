"""SQLite persistence for assistant sessions, messages and business facts.

* WAL journal so that the summary thread and request threads can read
  while another thread writes.
* One connection shared across threads (``check_same_thread=False``)
  guarded by a write lock; reads go through the same connection.
* Timestamps are stored as fixed-width UTC ISO strings so that string
  comparison in SQL equals chronological comparison.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from admin_assistant.config import DATABASE_PATH
from admin_assistant.models import BusinessFact, ChatMessage, ChatSession

logger = logging.getLogger(__name__)

_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"


def _ts(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(_TS_FORMAT)


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


class ChatStore:
    """Sessions, capped message windows and per-location business facts."""

    def __init__(self, db_path: str | Path | None = None):
        self.db_path = Path(db_path or DATABASE_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.conn = sqlite3.connect(
            str(self.db_path),
            check_same_thread=False,
            timeout=30.0,
            isolation_level="DEFERRED",
        )
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA synchronous=NORMAL")
        self.conn.execute("PRAGMA foreign_keys=ON")

        self._write_lock = threading.Lock()
        self._setup_database()

    def _setup_database(self) -> None:
        with self._write_lock:
            self.conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS chat_sessions (
                    id TEXT PRIMARY KEY,
                    admin_user_id TEXT NOT NULL,
                    local_id TEXT NOT NULL,
                    summary TEXT NOT NULL DEFAULT '',
                    message_count INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    last_message_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_sessions_admin
                    ON chat_sessions(admin_user_id, local_id, last_message_at);

                CREATE TABLE IF NOT EXISTS chat_messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT NOT NULL REFERENCES chat_sessions(id) ON DELETE CASCADE,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    tool_name TEXT,
                    tool_payload TEXT,
                    created_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_messages_session
                    ON chat_messages(session_id, created_at, id);

                CREATE TABLE IF NOT EXISTS business_facts (
                    local_id TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (local_id, key)
                );
                """
            )
            self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    # ── Row mapping ──────────────────────────────────────────────────

    @staticmethod
    def _session(row: sqlite3.Row) -> ChatSession:
        return ChatSession(
            id=row["id"],
            admin_user_id=row["admin_user_id"],
            local_id=row["local_id"],
            summary=row["summary"],
            message_count=row["message_count"],
            created_at=_parse_ts(row["created_at"]),
            last_message_at=_parse_ts(row["last_message_at"]),
        )

    @staticmethod
    def _message(row: sqlite3.Row) -> ChatMessage:
        payload = row["tool_payload"]
        return ChatMessage(
            id=row["id"],
            session_id=row["session_id"],
            role=row["role"],
            content=row["content"],
            tool_name=row["tool_name"],
            tool_payload=json.loads(payload) if payload else None,
            created_at=_parse_ts(row["created_at"]),
        )

    # ── Sessions ─────────────────────────────────────────────────────

    def create_session(self, admin_user_id: str, local_id: str, now: datetime) -> ChatSession:
        session_id = str(uuid.uuid4())
        stamp = _ts(now)
        with self._write_lock:
            self.conn.execute(
                "INSERT INTO chat_sessions (id, admin_user_id, local_id, summary, created_at, last_message_at)"
                " VALUES (?, ?, ?, '', ?, ?)",
                (session_id, admin_user_id, local_id, stamp, stamp),
            )
            self.conn.commit()
        logger.debug("Created chat session %s for admin %s", session_id, admin_user_id)
        return self.get_session(session_id)

    def get_session(self, session_id: str) -> ChatSession | None:
        row = self.conn.execute(
            "SELECT * FROM chat_sessions WHERE id = ?", (session_id,),
        ).fetchone()
        return self._session(row) if row else None

    def find_latest_session(self, admin_user_id: str, local_id: str) -> ChatSession | None:
        row = self.conn.execute(
            "SELECT * FROM chat_sessions WHERE admin_user_id = ? AND local_id = ?"
            " ORDER BY last_message_at DESC LIMIT 1",
            (admin_user_id, local_id),
        ).fetchone()
        return self._session(row) if row else None

    def set_summary(self, session_id: str, summary: str) -> None:
        with self._write_lock:
            self.conn.execute(
                "UPDATE chat_sessions SET summary = ? WHERE id = ?", (summary, session_id),
            )
            self.conn.commit()

    # ── Messages ─────────────────────────────────────────────────────

    def add_message(
        self,
        session_id: str,
        role: str,
        content: str,
        now: datetime,
        *,
        tool_name: str | None = None,
        tool_payload: Any = None,
        cap: int | None = None,
    ) -> int:
        """Insert a message, bump the session clock and trim to *cap* rows."""
        stamp = _ts(now)
        payload = json.dumps(tool_payload, ensure_ascii=False) if tool_payload is not None else None
        with self._write_lock:
            cursor = self.conn.execute(
                "INSERT INTO chat_messages (session_id, role, content, tool_name, tool_payload, created_at)"
                " VALUES (?, ?, ?, ?, ?, ?)",
                (session_id, role, content, tool_name, payload, stamp),
            )
            self.conn.execute(
                "UPDATE chat_sessions SET last_message_at = ?,"
                " message_count = message_count + CASE WHEN ? IN ('user', 'assistant') THEN 1 ELSE 0 END"
                " WHERE id = ?",
                (stamp, role, session_id),
            )
            if cap:
                self.conn.execute(
                    "DELETE FROM chat_messages WHERE session_id = ? AND id NOT IN ("
                    " SELECT id FROM chat_messages WHERE session_id = ?"
                    " ORDER BY created_at DESC, id DESC LIMIT ?)",
                    (session_id, session_id, cap),
                )
            self.conn.commit()
            return cursor.lastrowid

    def list_messages(self, session_id: str, limit: int) -> list[ChatMessage]:
        """The latest *limit* messages of a session, oldest first."""
        rows = self.conn.execute(
            "SELECT * FROM ("
            " SELECT * FROM chat_messages WHERE session_id = ?"
            " ORDER BY created_at DESC, id DESC LIMIT ?"
            ") ORDER BY created_at ASC, id ASC",
            (session_id, limit),
        ).fetchall()
        return [self._message(row) for row in rows]

    def count_user_messages_since(self, local_id: str, since: datetime) -> int:
        row = self.conn.execute(
            "SELECT COUNT(*) FROM chat_messages m JOIN chat_sessions s ON s.id = m.session_id"
            " WHERE s.local_id = ? AND m.role = 'user' AND m.created_at >= ?",
            (local_id, _ts(since)),
        ).fetchone()
        return row[0]

    # ── Business facts ───────────────────────────────────────────────

    def put_fact(self, local_id: str, key: str, value: str, now: datetime) -> None:
        with self._write_lock:
            self.conn.execute(
                "INSERT INTO business_facts (local_id, key, value, updated_at) VALUES (?, ?, ?, ?)"
                " ON CONFLICT(local_id, key) DO UPDATE SET value = excluded.value,"
                " updated_at = excluded.updated_at",
                (local_id, key, value, _ts(now)),
            )
            self.conn.commit()

    def list_facts(self, local_id: str, limit: int) -> list[BusinessFact]:
        rows = self.conn.execute(
            "SELECT * FROM business_facts WHERE local_id = ? ORDER BY updated_at DESC LIMIT ?",
            (local_id, limit),
        ).fetchall()
        return [
            BusinessFact(
                key=row["key"],
                value=row["value"],
                local_id=row["local_id"],
                updated_at=_parse_ts(row["updated_at"]),
            )
            for row in rows
        ]

    # ── Retention ────────────────────────────────────────────────────

    def purge_before(self, cutoff: datetime) -> tuple[int, int]:
        """Delete messages created and sessions last active before *cutoff*.

        Returns ``(messages_deleted, sessions_deleted)``.
        """
        stamp = _ts(cutoff)
        with self._write_lock:
            messages = self.conn.execute(
                "DELETE FROM chat_messages WHERE created_at < ?", (stamp,),
            ).rowcount
            sessions = self.conn.execute(
                "DELETE FROM chat_sessions WHERE last_message_at < ?", (stamp,),
            ).rowcount
            self.conn.commit()
        return messages, sessions
