"""In-memory session store with TTL expiry.

The store is the single owner of session state. Updates are applied as
key-level merges under a lock, so concurrent signal workers that each read a
snapshot, compute, and write back can never drop each other's results.
"""

from __future__ import annotations

import asyncio
import threading
import time
import uuid
from typing import Any, Callable

from ..errors import SessionNotFoundError, SessionStateError
from ..logging import logger
from .models import Session, SessionStatus, SessionUpdate

DEFAULT_SESSION_TTL_SECONDS = 2 * 60 * 60


class SessionStore:
    def __init__(
        self,
        ttl_seconds: float = DEFAULT_SESSION_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._lock = threading.RLock()

    def create(self, subject_id: int) -> str:
        session_id = str(uuid.uuid4())
        with self._lock:
            self._sessions[session_id] = Session(
                id=session_id,
                subject_id=subject_id,
                created_at=self._clock(),
            )
        logger.info("session_created", session_id=session_id, subject_id=subject_id)
        return session_id

    def _live(self, session_id: str) -> Session | None:
        """Return the stored session, evicting it if expired. Caller holds the lock."""
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if session.is_expired(self._clock(), self.ttl_seconds):
            del self._sessions[session_id]
            logger.info("session_expired", session_id=session_id)
            return None
        return session

    def get(self, session_id: str) -> Session | None:
        """Return a snapshot of the session, or None if unknown or expired."""
        with self._lock:
            session = self._live(session_id)
            return session.snapshot() if session else None

    def require(self, session_id: str) -> Session:
        session = self.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def update(self, session_id: str, update: SessionUpdate) -> Session:
        """Apply ``update`` atomically and return the resulting snapshot.

        Raises:
            SessionNotFoundError: the session is unknown or expired.
            SessionStateError: the session is terminal and the update is not a
                chat append, or the status transition is not allowed.
        """
        with self._lock:
            session = self._live(session_id)
            if session is None:
                raise SessionNotFoundError(session_id, "Session lost")

            if session.status.is_terminal and not update.is_chat_only:
                raise SessionStateError(
                    f"Session {session_id} is {session.status.value}; only chat messages may be added",
                )

            if update.status is not None and update.status != session.status:
                if not session.status.can_transition_to(update.status):
                    raise SessionStateError(
                        f"Cannot move session {session_id} from {session.status.value} to {update.status.value}",
                    )

            if update.error is not None:
                session.error = update.error
            if update.collected_data:
                session.collected_data.update(
                    {key: value for key, value in update.collected_data.items() if value is not None}
                )
            if update.partial_report is not None:
                session.partial_results[update.partial_report.key] = update.partial_report
            if update.category_report is not None:
                session.category_results[update.category_report.category_id] = update.category_report
            if update.final_artifact is not None:
                session.final_artifact = update.final_artifact
            if update.chat_message is not None:
                session.chat_history.append(update.chat_message)
            # Status last so artifacts written in the same update land first.
            if update.status is not None:
                session.status = update.status

            return session.snapshot()

    def delete(self, session_id: str) -> bool:
        with self._lock:
            deleted = self._sessions.pop(session_id, None) is not None
        if deleted:
            logger.info("session_deleted", session_id=session_id)
        return deleted

    def cleanup_expired(self) -> int:
        """Remove every expired session. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [
                session_id
                for session_id, session in self._sessions.items()
                if session.is_expired(now, self.ttl_seconds)
            ]
            for session_id in expired:
                del self._sessions[session_id]
        if expired:
            logger.info("sessions_cleaned", removed=len(expired))
        return len(expired)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            statuses = {status.value: 0 for status in SessionStatus}
            for session in self._sessions.values():
                statuses[session.status.value] += 1
            return {"total": len(self._sessions), "statuses": statuses}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    async def run_sweeper(self, interval_seconds: float) -> None:
        """Sweep expired sessions forever; cancel the task to stop."""
        while True:
            await asyncio.sleep(interval_seconds)
            self.cleanup_expired()
