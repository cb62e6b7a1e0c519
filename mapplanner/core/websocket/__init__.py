"""
WebSocket layer: connection table, sync protocol, and the /ws/session/{id} route.

One connection per peer; a connection joins exactly one session for its lifetime.
"""

from mapplanner.core.websocket.connection import Connection
from mapplanner.core.websocket.handler import ConnectionState, SyncProtocolHandler
from mapplanner.core.websocket.manager import ConnectionManager

__all__ = ["Connection", "ConnectionManager", "ConnectionState", "SyncProtocolHandler"]
