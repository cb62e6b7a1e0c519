"""
WebSocket route: /ws/session/{session_id}. Accept, look up session, join (snapshot), message loop.
"""
import asyncio
import logging

from fastapi import WebSocket, WebSocketDisconnect

from mapplanner.core.sessions.errors import AlreadyJoined, SessionNotFound
from mapplanner.core.websocket.handler import SyncProtocolHandler

logger = logging.getLogger(__name__)

SESSION_NOT_FOUND_CLOSE_CODE = 4404
RECEIVE_TIMEOUT_CLOSE_CODE = 4008
DELIVERY_FAILED_CLOSE_CODE = 1011


async def websocket_endpoint(websocket: WebSocket, session_id: str) -> None:
    """Join the session's room, then apply this connection's messages until it disconnects."""
    state = websocket.app.state
    registry = state.registry
    manager = state.connection_manager
    settings = state.settings

    await websocket.accept()
    try:
        session = registry.get(session_id)
    except SessionNotFound:
        logger.info("WebSocket for unknown session %s rejected", session_id)
        await websocket.close(code=SESSION_NOT_FOUND_CLOSE_CODE, reason="session_not_found")
        return

    connection = manager.open(websocket)
    try:
        joined = await manager.join(session, connection)
    except (SessionNotFound, AlreadyJoined) as e:
        logger.info("Join of session %s failed: %s", session_id, e.detail)
        await websocket.close(code=SESSION_NOT_FOUND_CLOSE_CODE, reason="session_not_found")
        return
    if not joined:
        return

    handler = SyncProtocolHandler(manager, session, connection, max_frame_size=settings.max_frame_size)
    try:
        while not handler.is_closed:
            if connection.closed:
                await handler.close(DELIVERY_FAILED_CLOSE_CODE, "delivery_failed")
                break
            try:
                message = await asyncio.wait_for(
                    websocket.receive(), timeout=settings.ws_receive_timeout_seconds
                )
            except asyncio.TimeoutError:
                logger.info("WebSocket receive timeout for connection %s", connection.connection_id)
                await handler.close(RECEIVE_TIMEOUT_CLOSE_CODE, "receive_timeout")
                break
            except (WebSocketDisconnect, RuntimeError):
                break
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            await handler.handle_raw(raw)
    finally:
        await manager.leave(session, connection)
        logger.info("WebSocket closed for connection %s", connection.connection_id)
