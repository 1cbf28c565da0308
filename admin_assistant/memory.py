"""Per-admin, per-day conversation sessions on top of :class:`ChatStore`.

A session lives for one local calendar day (``TIME_ZONE``).  The first
message of a day opens a new session; a session whose last message
predates today's local midnight is expired and never reused, even when
the client still sends its id.  Expired rows are removed by the daily
retention sweep, which also runs lazily on the first request of each
day so a process that missed the scheduled sweep still starts clean.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import UTC, date, datetime

from admin_assistant.config import (
    BUSINESS_FACTS_LIMIT,
    SESSION_MESSAGE_CAP,
    SUMMARY_EVERY_MESSAGES,
    TIME_ZONE,
)
from admin_assistant.models import BusinessFact, ChatMessage, ChatSession, SessionTranscript
from admin_assistant.services.store import ChatStore
from admin_assistant.temporal import day_start_in_zone, today_in_zone

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class SessionManager:
    def __init__(
        self,
        store: ChatStore,
        time_zone: str = TIME_ZONE,
        clock: Callable[[], datetime] = _utc_now,
        message_cap: int = SESSION_MESSAGE_CAP,
    ):
        self._store = store
        self._time_zone = time_zone
        self._clock = clock
        self._message_cap = message_cap
        self._last_cleanup_day: date | None = None
        self._cleanup_lock = threading.Lock()

    def now(self) -> datetime:
        return self._clock()

    def _day_start(self) -> datetime:
        return day_start_in_zone(self._clock(), self._time_zone)

    # ── Sessions ─────────────────────────────────────────────────────

    def get_or_create_session(
        self,
        admin_user_id: str,
        local_id: str,
        session_id: str | None = None,
    ) -> ChatSession:
        """Return today's live session for this admin, creating one if needed.

        A provided *session_id* is honoured only when it belongs to the same
        admin and location and is still live today.  Without an id the
        admin's most recent session is reused if it is from today.
        """
        self.ensure_daily_cleanup()
        day_start = self._day_start()

        if session_id:
            existing = self._store.get_session(session_id)
            if existing and (existing.admin_user_id, existing.local_id) != (admin_user_id, local_id):
                logger.warning("Session %s does not belong to admin %s", session_id, admin_user_id)
                existing = None
        else:
            existing = self._store.find_latest_session(admin_user_id, local_id)

        if existing and existing.last_message_at >= day_start:
            return existing
        if existing:
            logger.info("Session %s expired; opening a new one", existing.id)
        return self._store.create_session(admin_user_id, local_id, self._clock())

    def get_session_messages(
        self, admin_user_id: str, local_id: str, session_id: str, limit: int = SESSION_MESSAGE_CAP,
    ) -> SessionTranscript | None:
        """Transcript of a session owned by this admin at this location, else ``None``."""
        self.ensure_daily_cleanup()
        session = self._store.get_session(session_id)
        if session is None or (session.admin_user_id, session.local_id) != (admin_user_id, local_id):
            return None
        messages = [
            message
            for message in self._store.list_messages(session_id, limit)
            if message.role in ("user", "assistant")
        ]
        return SessionTranscript(session_id=session.id, summary=session.summary, messages=messages)

    # ── Messages ─────────────────────────────────────────────────────

    def append_message(
        self,
        session_id: str,
        role: str,
        content: str,
        *,
        tool_name: str | None = None,
        tool_payload: object = None,
    ) -> int:
        return self._store.add_message(
            session_id,
            role,
            content,
            self._clock(),
            tool_name=tool_name,
            tool_payload=tool_payload,
            cap=self._message_cap,
        )

    def get_recent_messages(self, session_id: str, limit: int) -> list[ChatMessage]:
        return [
            message
            for message in self._store.list_messages(session_id, limit)
            if message.role in ("user", "assistant")
        ]

    def count_user_messages_today(self, local_id: str) -> int:
        return self._store.count_user_messages_since(local_id, self._day_start())

    # ── Summary & facts ──────────────────────────────────────────────

    def get_summary(self, session_id: str) -> str:
        session = self._store.get_session(session_id)
        return session.summary if session else ""

    def update_summary(self, session_id: str, summary: str) -> None:
        self._store.set_summary(session_id, summary)

    def should_update_summary(self, session_id: str, every: int = SUMMARY_EVERY_MESSAGES) -> bool:
        session = self._store.get_session(session_id)
        count = session.message_count if session else 0
        return count > 0 and count % every == 0

    def get_facts(self, local_id: str, limit: int = BUSINESS_FACTS_LIMIT) -> list[BusinessFact]:
        return self._store.list_facts(local_id, limit)

    # ── Retention ────────────────────────────────────────────────────

    def ensure_daily_cleanup(self) -> None:
        """Run the retention sweep once per local day, on first use."""
        today = today_in_zone(self._clock(), self._time_zone)
        if self._last_cleanup_day == today:
            return
        with self._cleanup_lock:
            if self._last_cleanup_day == today:
                return
            self.run_retention_sweep()
            self._last_cleanup_day = today

    def run_retention_sweep(self) -> tuple[int, int]:
        """Delete messages and sessions older than today's local start."""
        messages, sessions = self._store.purge_before(self._day_start())
        if messages or sessions:
            logger.info(
                "Retention sweep removed %d message(s) and %d session(s)", messages, sessions,
            )
        return messages, sessions
