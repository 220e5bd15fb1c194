"""In-memory registry of chat sessions with idle expiry.

Sessions live only in process memory. Each access refreshes a session's
idle deadline; sessions idle longer than the configured TTL are rejected on
access and removed by a background cleanup thread.

Key features:
- Thread-safe session storage
- Idle TTL expiry with periodic cleanup
- Lazily created global manager for the HTTP host
"""

import logging
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from spreadsheet_chat.config import settings
from spreadsheet_chat.services.chat_session import ChatSession
from spreadsheet_chat.utils.exceptions import (
    SessionExpiredError,
    SessionNotFoundError,
)

logger = logging.getLogger(__name__)


@dataclass
class SessionEntry:
    """A registered session plus its bookkeeping timestamps."""

    session: ChatSession
    created_at: datetime
    last_accessed_at: datetime
    expires_at: datetime

    @property
    def session_id(self) -> str:
        return self.session.session_id


@dataclass
class SessionManagerConfig:
    """Configuration for the session manager."""

    ttl_seconds: int = field(default_factory=lambda: settings.session_ttl_seconds)
    cleanup_interval_seconds: int = 300  # 5 minutes
    enable_auto_cleanup: bool = True


class SessionManager:
    """Thread-safe in-memory session registry with idle TTL."""

    def __init__(
        self,
        config: SessionManagerConfig | None = None,
        session_factory: Callable[[str], ChatSession] | None = None,
    ) -> None:
        """Initialize the session manager.

        Args:
            config: Optional configuration. Uses defaults if not provided.
            session_factory: Builds a ChatSession for a new id. Tests use it
                to inject stub collaborators.
        """
        self.config = config or SessionManagerConfig()
        self._session_factory = session_factory or (
            lambda session_id: ChatSession(session_id=session_id)
        )
        self._sessions: dict[str, SessionEntry] = {}
        self._lock = threading.RLock()
        self._cleanup_thread: threading.Thread | None = None
        self._stop_cleanup = threading.Event()

        if self.config.enable_auto_cleanup:
            self._start_cleanup_thread()

    def _start_cleanup_thread(self) -> None:
        self._stop_cleanup.clear()
        self._cleanup_thread = threading.Thread(
            target=self._cleanup_loop,
            daemon=True,
            name="SessionManagerCleanup",
        )
        self._cleanup_thread.start()
        logger.info("Session manager cleanup thread started")

    def _cleanup_loop(self) -> None:
        while not self._stop_cleanup.wait(self.config.cleanup_interval_seconds):
            try:
                self.cleanup_expired_sessions()
            except Exception as e:
                logger.error(f"Error in session cleanup: {e}")

    def stop_cleanup(self) -> None:
        """Stop the background cleanup thread."""
        self._stop_cleanup.set()
        if self._cleanup_thread and self._cleanup_thread.is_alive():
            self._cleanup_thread.join(timeout=5.0)
            logger.info("Session manager cleanup thread stopped")

    def _deadline(self) -> datetime:
        return datetime.fromtimestamp(time.time() + self.config.ttl_seconds, tz=UTC)

    def create_session(self) -> ChatSession:
        """Create and register a new empty session."""
        session_id = str(uuid.uuid4())
        session = self._session_factory(session_id)
        now = datetime.now(UTC)

        with self._lock:
            self._sessions[session.session_id] = SessionEntry(
                session=session,
                created_at=now,
                last_accessed_at=now,
                expires_at=self._deadline(),
            )

        logger.info(f"Session created: {session.session_id}")
        return session

    def get_entry(self, session_id: str) -> SessionEntry:
        """Get a session entry and refresh its idle deadline.

        Raises:
            SessionNotFoundError: If the session doesn't exist.
            SessionExpiredError: If the session has been idle too long.
        """
        with self._lock:
            entry = self._sessions.get(session_id)

            if entry is None:
                raise SessionNotFoundError(session_id)

            if datetime.now(UTC) > entry.expires_at:
                del self._sessions[session_id]
                raise SessionExpiredError(
                    session_id, ttl_minutes=self.config.ttl_seconds // 60
                )

            entry.last_accessed_at = datetime.now(UTC)
            entry.expires_at = self._deadline()
            return entry

    def get_session(self, session_id: str) -> ChatSession:
        """Get a session by ID.

        Raises:
            SessionNotFoundError: If the session doesn't exist.
            SessionExpiredError: If the session has been idle too long.
        """
        return self.get_entry(session_id).session

    def session_exists(self, session_id: str) -> bool:
        try:
            self.get_entry(session_id)
            return True
        except (SessionNotFoundError, SessionExpiredError):
            return False

    def delete_session(self, session_id: str) -> None:
        """Remove a session.

        Raises:
            SessionNotFoundError: If the session doesn't exist.
        """
        with self._lock:
            if self._sessions.pop(session_id, None) is None:
                raise SessionNotFoundError(session_id)
        logger.info(f"Session deleted: {session_id}")

    def cleanup_expired_sessions(self) -> int:
        """Remove expired sessions from storage.

        Returns:
            Number of sessions cleaned up.
        """
        now = datetime.now(UTC)

        with self._lock:
            expired_ids = [
                session_id
                for session_id, entry in self._sessions.items()
                if now > entry.expires_at
            ]
            for session_id in expired_ids:
                del self._sessions[session_id]

        if expired_ids:
            logger.info(f"Cleaned up {len(expired_ids)} expired sessions")

        return len(expired_ids)

    def get_session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def clear_all(self) -> None:
        """Clear all sessions from storage. Used primarily for testing."""
        with self._lock:
            self._sessions.clear()
        logger.info("All sessions cleared")


# Global session manager instance
_session_manager: SessionManager | None = None


def get_session_manager() -> SessionManager:
    """Get the global session manager instance.

    Creates the instance on first call (lazy initialization).
    """
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager()
    return _session_manager


def reset_session_manager() -> None:
    """Reset the global session manager. Used primarily for testing."""
    global _session_manager
    if _session_manager is not None:
        _session_manager.stop_cleanup()
        _session_manager = None
