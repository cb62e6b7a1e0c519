"""
Per-connection sync protocol: decode -> apply to FeatureSet -> broadcast.

States: CONNECTED (joined, awaiting messages) -> CLOSED (terminal).
"""
import logging
from enum import Enum
from typing import Union

from mapplanner.core.sessions.errors import (
    FeatureNotFound,
    ProtocolViolation,
    VersionConflict,
)
from mapplanner.core.sessions.session import Session
from mapplanner.core.websocket.connection import Connection
from mapplanner.core.websocket.manager import ConnectionManager
from mapplanner.core.websocket.protocol import (
    MAX_FRAME_SIZE,
    AckEvent,
    FeatureEvent,
    InboundMessage,
    InsertMessage,
    PingMessage,
    PongEvent,
    RemoveEvent,
    RemoveMessage,
    UpdateMessage,
    encode,
    parse_inbound,
)

logger = logging.getLogger(__name__)

# Close code/reason for a protocol violation
PROTOCOL_VIOLATION_CLOSE_CODE = 4002
PROTOCOL_VIOLATION_CLOSE_REASON = "protocol_violation"


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    CLOSED = "closed"


class SyncProtocolHandler:
    """Applies one joined connection's messages to its session, in order of receipt."""

    def __init__(
        self,
        manager: ConnectionManager,
        session: Session,
        connection: Connection,
        max_frame_size: int = MAX_FRAME_SIZE,
    ) -> None:
        self.manager = manager
        self.session = session
        self.connection = connection
        self.max_frame_size = max_frame_size
        self.state = ConnectionState.CONNECTED

    @property
    def is_closed(self) -> bool:
        return self.state is ConnectionState.CLOSED

    async def handle_raw(self, raw: Union[str, bytes]) -> None:
        """Handle one inbound frame. A malformed frame closes the connection."""
        if self.is_closed:
            return
        if self.connection.closed or not self.manager.is_member(self.connection):
            # Dropped by a failed delivery; nothing from it may touch the session
            await self.close()
            return
        try:
            message = parse_inbound(raw, self.max_frame_size)
        except ProtocolViolation as e:
            await self._reject(e)
            return
        await self.handle(message)

    async def handle(self, message: InboundMessage) -> None:
        """Apply a decoded message. Application and broadcast are atomic per session."""
        if self.is_closed:
            return
        if isinstance(message, PingMessage):
            await self.manager.send(self.session, self.connection, encode(PongEvent()))
            return
        async with self.session.lock:
            try:
                if isinstance(message, InsertMessage):
                    await self._insert(message)
                elif isinstance(message, UpdateMessage):
                    await self._update(message)
                elif isinstance(message, RemoveMessage):
                    await self._remove(message)
                else:
                    raise ProtocolViolation(f"Unsupported message: {type(message).__name__}")
            except (VersionConflict, FeatureNotFound) as e:
                logger.info(
                    "%s from connection %s in session %s: %s",
                    e.code, self.connection.connection_id, self.session.id, e.detail,
                )
                await self.manager.send(self.session, self.connection, e.to_message())
                return
        # Outside the lock: closing leaves the session
        if self.connection.closed:
            await self.close()

    async def _insert(self, message: InsertMessage) -> None:
        feature = self.session.features.insert(message.payload)
        await self.manager.broadcast(
            self.session, encode(FeatureEvent.from_feature("insert", feature)), excluding=self.connection
        )
        await self._ack(feature.id, feature.version, message.ref)

    async def _update(self, message: UpdateMessage) -> None:
        feature = self.session.features.update(message.featureId, message.expectedVersion, message.payload)
        await self.manager.broadcast(
            self.session, encode(FeatureEvent.from_feature("update", feature)), excluding=self.connection
        )
        await self._ack(feature.id, feature.version, message.ref)

    async def _remove(self, message: RemoveMessage) -> None:
        feature = self.session.features.remove(message.featureId)
        await self.manager.broadcast(
            self.session, encode(RemoveEvent(id=feature.id)), excluding=self.connection
        )
        await self._ack(feature.id, None, message.ref)

    async def _ack(self, feature_id: str, version, ref) -> None:
        await self.manager.send(
            self.session, self.connection, encode(AckEvent(id=feature_id, version=version, ref=ref))
        )

    async def _reject(self, error: ProtocolViolation) -> None:
        logger.warning(
            "Protocol violation from connection %s in session %s: %s",
            self.connection.connection_id, self.session.id, error.detail,
        )
        await self.manager.send(self.session, self.connection, error.to_message())
        await self.close(PROTOCOL_VIOLATION_CLOSE_CODE, PROTOCOL_VIOLATION_CLOSE_REASON)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Enter CLOSED: leave the session and close the transport. Idempotent."""
        if self.is_closed:
            return
        self.state = ConnectionState.CLOSED
        await self.manager.leave(self.session, self.connection)
        try:
            await self.connection.close(code=code, reason=reason)
        except Exception as e:
            logger.debug("Close connection %s: %s", self.connection.connection_id, e)
