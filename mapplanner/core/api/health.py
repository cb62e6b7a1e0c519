"""
Health check endpoint.

Returns service status and live session/connection counts.
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from mapplanner.core.api.deps import get_connection_manager, get_registry
from mapplanner.core.sessions.registry import SessionRegistry
from mapplanner.core.websocket.manager import ConnectionManager

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
def health(
    registry: SessionRegistry = Depends(get_registry),
    manager: ConnectionManager = Depends(get_connection_manager),
):
    """
    Health check endpoint.

    Returns:
        Service status, session counts and connected peer count
    """
    sessions = registry.list_sessions()
    return {
        "status": "ok",
        "service": "mapplanner",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "sessions": len(sessions),
        "idle_sessions": sum(1 for s in sessions if s.is_idle),
        "connections": manager.connection_count,
    }
