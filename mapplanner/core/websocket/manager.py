"""
Connection manager: connection table, per-session join/leave, fan-out broadcast.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from mapplanner.core.sessions.errors import AlreadyJoined, SessionNotFound
from mapplanner.core.sessions.session import Session
from mapplanner.core.websocket.connection import Connection
from mapplanner.core.websocket.protocol import SnapshotEvent, encode

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Maps connection_id -> Connection for every joined peer.

    Sessions only hold connection ids; this table is where broadcast looks up
    the socket. A failed delivery drops the peer (implicit leave) and never
    stops delivery to the other peers.
    """

    def __init__(
        self,
        send_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._connections: Dict[str, Connection] = {}
        self._send_timeout = send_timeout
        self._clock = clock

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def open(self, transport: Any) -> Connection:
        """Allocate a handle for a newly accepted transport (not yet joined)."""
        return Connection(transport)

    def is_member(self, connection: Connection) -> bool:
        return self._connections.get(connection.connection_id) is connection

    async def join(self, session: Session, connection: Connection) -> bool:
        """
        Add connection to session.peers and send it the snapshot as its first message.

        The snapshot is sent while holding the session lock, so no broadcast can
        reach the new peer before it. Returns False if the snapshot could not be
        delivered (the peer is dropped again).

        Raises:
            AlreadyJoined: the connection is (or was) a member of a session
            SessionNotFound: the session was evicted before the join completed
        """
        if connection.session_id is not None:
            raise AlreadyJoined(connection.connection_id, connection.session_id)
        connection.session_id = session.id
        async with session.lock:
            if session.evicted:
                connection.session_id = None
                raise SessionNotFound(session.id)
            session.add_peer(connection.connection_id)
            self._connections[connection.connection_id] = connection
            logger.info(
                "Peer joined: connection=%s session=%s peers=%s",
                connection.connection_id, session.id, len(session.peers),
            )
            snapshot = SnapshotEvent(features=session.features.snapshot())
            return await self._deliver(session, connection, encode(snapshot))

    async def leave(self, session: Session, connection: Connection) -> None:
        """Remove connection from session.peers. Idempotent; never raises."""
        self._drop(session, connection.connection_id)

    def _drop(self, session: Session, connection_id: str) -> None:
        removed = session.discard_peer(connection_id, self._clock())
        conn = self._connections.get(connection_id)
        if conn is not None and conn.session_id == session.id:
            del self._connections[connection_id]
        if removed:
            logger.info(
                "Peer left: connection=%s session=%s peers=%s",
                connection_id, session.id, len(session.peers),
            )
            if session.is_idle:
                logger.info("Session %s is idle", session.id)

    async def send(self, session: Session, connection: Connection, message: Dict[str, Any]) -> bool:
        """Direct message to one connection. Same failure policy as broadcast."""
        return await self._deliver(session, connection, message)

    async def broadcast(
        self,
        session: Session,
        message: Dict[str, Any],
        excluding: Optional[Connection] = None,
    ) -> int:
        """
        Deliver message to every peer of session except `excluding`.
        Returns the number of peers that received it.
        """
        excluded_id = excluding.connection_id if excluding is not None else None
        targets: List[Connection] = []
        for connection_id in list(session.peers):
            if connection_id == excluded_id:
                continue
            conn = self._connections.get(connection_id)
            if conn is None:
                logger.warning("Stale peer %s in session %s; dropping", connection_id, session.id)
                self._drop(session, connection_id)
                continue
            targets.append(conn)
        if not targets:
            return 0
        results = await asyncio.gather(
            *(self._deliver(session, conn, message) for conn in targets)
        )
        return sum(1 for ok in results if ok)

    async def _deliver(self, session: Session, connection: Connection, message: Dict[str, Any]) -> bool:
        try:
            if self._send_timeout:
                await asyncio.wait_for(connection.send(message), timeout=self._send_timeout)
            else:
                await connection.send(message)
            return True
        except Exception as e:
            logger.warning(
                "Send to connection %s in session %s failed: %r",
                connection.connection_id, session.id, e,
            )
            connection.closed = True
            self._drop(session, connection.connection_id)
            return False

    async def close_all(self, code: int = 1001, reason: str = "server_shutdown") -> None:
        """Close every joined connection (process shutdown)."""
        connections = list(self._connections.values())
        self._connections.clear()
        for conn in connections:
            try:
                await conn.close(code=code, reason=reason)
            except Exception as e:
                logger.debug("Close connection %s: %s", conn.connection_id, e)
        if connections:
            logger.info("Closed %s connections (%s)", len(connections), reason)
