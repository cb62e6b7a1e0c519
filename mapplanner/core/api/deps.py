"""
Dependencies: the registry and connection manager live on app.state, built by create_app.
"""
from fastapi import Request

from mapplanner.core.sessions.registry import SessionRegistry
from mapplanner.core.websocket.manager import ConnectionManager


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_connection_manager(request: Request) -> ConnectionManager:
    return request.app.state.connection_manager
