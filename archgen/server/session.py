"""
Session Manager for ArchGen Server.

Tracks the live ConversationController of every open stream so that sessions
can be cancelled and counted. Sessions share no graph or conversation state;
the manager only holds references for bookkeeping.

Key responsibilities:
- Enforce the concurrent session limit
- Map session_id to its controller for cancellation
- Evict sessions whose stream finished or never started
- Report counts for the status endpoint
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from archgen.core.settings import get_settings_manager

logger = logging.getLogger(__name__)


class SessionLimitError(Exception):
    """Raised when the concurrent session limit is reached."""
    pass


# ============================================================================
# SESSION DATA CLASS
# ============================================================================

@dataclass
class Session:
    """
    Represents one live stream.

    Attributes:
        session_id: Unique identifier (the controller's run_id).
        controller: The ConversationController driving this stream.
        created_at: Session creation timestamp.
        last_activity: Last activity timestamp.
    """

    session_id: str
    controller: object
    created_at: datetime = field(default_factory=datetime.now)
    last_activity: datetime = field(default_factory=datetime.now)

    def update_activity(self) -> None:
        self.last_activity = datetime.now()

    @property
    def is_running(self) -> bool:
        return not self.controller.state.is_terminal

    def is_stale(self, now: datetime, start_timeout: timedelta) -> bool:
        """
        True when the slot can be reclaimed.

        A session is stale once its controller reached a terminal state, or
        when its stream body was never consumed within ``start_timeout``.
        """
        if not self.is_running:
            return True
        return not self.controller.started and now - self.created_at > start_timeout


# ============================================================================
# SESSION MANAGER
# ============================================================================

class SessionManager:
    """
    Manages live stream sessions.

    Thread-safe via asyncio.Lock for concurrent access.

    Usage:
        manager = get_session_manager()

        # Register on stream start (raises SessionLimitError when full)
        session = await manager.create_session(controller)

        # Cancel from another request
        await manager.cancel_session(session.session_id)

        # Remove when the stream ends
        await manager.remove_session(session.session_id)
    """

    def __init__(self, max_sessions: int = 3, start_timeout_seconds: float = 30):
        """
        Initialize SessionManager.

        Args:
            max_sessions: Maximum number of concurrent sessions.
            start_timeout_seconds: How long a registered session may wait for
                its stream to start before its slot is reclaimed.
        """
        self.max_sessions = max_sessions
        self.start_timeout = timedelta(seconds=start_timeout_seconds)
        self._sessions: Dict[str, Session] = {}
        self._lock = asyncio.Lock()

        logger.debug(
            f"SessionManager initialized (max_sessions={max_sessions}, "
            f"start_timeout={start_timeout_seconds}s)"
        )

    async def create_session(self, controller) -> Session:
        """
        Register a controller as a new session.

        Stale sessions are evicted before the limit is checked.

        Args:
            controller: ConversationController for the stream.

        Returns:
            The created Session.

        Raises:
            SessionLimitError: If max_sessions sessions are already live.
        """
        async with self._lock:
            self._evict_stale()
            if len(self._sessions) >= self.max_sessions:
                raise SessionLimitError(
                    f"Too many concurrent sessions ({len(self._sessions)}/{self.max_sessions})"
                )
            session = Session(session_id=controller.run_id, controller=controller)
            self._sessions[session.session_id] = session
            logger.info(f"Session created: {session.session_id} ({len(self._sessions)}/{self.max_sessions})")
            return session

    def _evict_stale(self) -> List[str]:
        """Drop stale sessions. Caller holds the lock."""
        now = datetime.now()
        evicted = [
            session_id
            for session_id, session in self._sessions.items()
            if session.is_stale(now, self.start_timeout)
        ]
        for session_id in evicted:
            session = self._sessions.pop(session_id)
            logger.warning(
                f"Evicted stale session {session_id} "
                f"(state={session.controller.state.value}, started={session.controller.started})"
            )
        return evicted

    async def get_session(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    async def cancel_session(self, session_id: str) -> bool:
        """
        Request cancellation of a live session.

        Args:
            session_id: Session to cancel.

        Returns:
            True if a cancellation signal was sent.
        """
        session = self._sessions.get(session_id)
        if session is None:
            logger.warning(f"cancel_session: unknown session {session_id}")
            return False
        session.update_activity()
        return session.controller.cancel()

    async def remove_session(self, session_id: str) -> Optional[Session]:
        """
        Remove a session.

        Returns:
            The removed Session, or None if it was already gone.
        """
        async with self._lock:
            session = self._sessions.pop(session_id, None)
            if session:
                logger.info(f"Session removed: {session_id} (state={session.controller.state.value})")
            return session

    async def get_all_sessions(self) -> Dict[str, Session]:
        return dict(self._sessions)

    async def get_session_count(self) -> int:
        return len(self._sessions)

    async def get_active_run_count(self) -> int:
        """Sessions whose controller has not reached a terminal state."""
        return sum(1 for session in self._sessions.values() if session.is_running)


# ============================================================================
# GLOBAL SINGLETON
# ============================================================================

_session_manager: Optional[SessionManager] = None


def get_session_manager() -> SessionManager:
    """
    Get global SessionManager instance (singleton).

    The session limit and start timeout are read from settings on first use.
    """
    global _session_manager
    if _session_manager is None:
        settings = get_settings_manager()
        _session_manager = SessionManager(
            max_sessions=int(settings.get_server_setting("max_concurrent_sessions", 3)),
            start_timeout_seconds=float(settings.get_server_setting("session_start_timeout_seconds", 30)),
        )
    return _session_manager


def reset_session_manager() -> None:
    """
    Reset global SessionManager instance.

    WARNING: Only use in tests.
    """
    global _session_manager
    _session_manager = None


__all__ = [
    "Session",
    "SessionManager",
    "SessionLimitError",
    "get_session_manager",
    "reset_session_manager",
]
