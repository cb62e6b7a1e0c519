"""
Process-wide session registry: create, lookup, idle eviction.

Constructed once at application start and passed explicitly to its consumers.
"""
import logging
import secrets
import threading
import time
from typing import Callable, Dict, List, Optional, Set

from mapplanner.core.sessions.errors import ResourceExhausted, SessionNotFound
from mapplanner.core.sessions.session import Session

logger = logging.getLogger(__name__)

# Attempts at drawing an unused id before giving up
MAX_ID_ATTEMPTS = 16


def _default_id_factory() -> str:
    return secrets.token_urlsafe(9)


class SessionRegistry:
    """Maps session id -> Session. Every operation is serialized by one lock."""

    def __init__(
        self,
        max_sessions: Optional[int] = None,
        id_factory: Optional[Callable[[], str]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sessions: Dict[str, Session] = {}
        # Ids stay reserved after eviction so they are unique for the registry lifetime.
        # Grows by one short string per created session and is released by close().
        self._issued_ids: Set[str] = set()
        self._lock = threading.Lock()
        self._max_sessions = max_sessions
        self._id_factory = id_factory or _default_id_factory
        self._clock = clock
        self._closed = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def _new_id(self) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            candidate = self._id_factory()
            if candidate and candidate not in self._issued_ids:
                return candidate
        raise ResourceExhausted(f"Could not allocate a unique session id after {MAX_ID_ATTEMPTS} attempts")

    def create(self, map_id: str) -> Session:
        """
        Create an empty session bound to map_id and register it.

        Raises:
            ResourceExhausted: id generation failed or max_sessions is reached
        """
        with self._lock:
            if self._closed:
                raise ResourceExhausted("Session registry is closed")
            if self._max_sessions is not None and len(self._sessions) >= self._max_sessions:
                raise ResourceExhausted(f"Session limit reached ({self._max_sessions})")
            session_id = self._new_id()
            session = Session(session_id, map_id, now=self._clock())
            self._issued_ids.add(session_id)
            self._sessions[session_id] = session
        logger.info("Session created: id=%s map=%s", session_id, map_id)
        return session

    def get(self, session_id: str) -> Session:
        """Return the session. Raises SessionNotFound if absent or evicted."""
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None or session.evicted:
            raise SessionNotFound(session_id)
        return session

    def list_sessions(self) -> List[Session]:
        with self._lock:
            return list(self._sessions.values())

    def evict_idle(self, now: float, grace_seconds: float) -> List[str]:
        """
        Remove every session whose peers have been empty for at least grace_seconds.
        A session with at least one peer is never evicted. Returns evicted ids.
        """
        evicted: List[str] = []
        idle: Dict[str, float] = {}
        with self._lock:
            for session_id, session in list(self._sessions.items()):
                if not session.is_idle:
                    continue
                idle_for = session.idle_for(now)
                if idle_for < grace_seconds:
                    continue
                idle[session_id] = idle_for
                session.evicted = True
                del self._sessions[session_id]
                evicted.append(session_id)
        for session_id in evicted:
            logger.info("Session evicted after %.0fs idle: id=%s", idle[session_id], session_id)
        return evicted

    def close(self) -> None:
        """Drop all sessions (process shutdown). Further creates fail."""
        with self._lock:
            for session in self._sessions.values():
                session.evicted = True
            count = len(self._sessions)
            self._sessions.clear()
            self._issued_ids.clear()
            self._closed = True
        logger.info("Session registry closed (%s sessions dropped)", count)
