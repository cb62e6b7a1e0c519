"""
Connection handle: one live client socket, owned by the transport layer.
"""
import uuid
from typing import Any, Dict, Optional


class Connection:
    """
    Wraps a transport object exposing `send_json(obj)` and `close(code, reason)`
    (a Starlette WebSocket in production, a fake in tests).
    """

    def __init__(self, transport: Any, connection_id: Optional[str] = None) -> None:
        self.connection_id = connection_id or uuid.uuid4().hex
        self.transport = transport
        self.session_id: Optional[str] = None
        # Set when the manager dropped this peer (failed delivery); the receive loop stops
        self.closed = False

    def __repr__(self) -> str:
        return f"<Connection id={self.connection_id} session={self.session_id}>"

    async def send(self, message: Dict[str, Any]) -> None:
        await self.transport.send_json(message)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        await self.transport.close(code=code, reason=reason)
