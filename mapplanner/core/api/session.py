"""
Session endpoints: create a planning session for a map, inspect it.
"""
from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from mapplanner.core.api.deps import get_registry
from mapplanner.core.sessions.models import feature_to_dict
from mapplanner.core.sessions.registry import SessionRegistry

router = APIRouter(prefix="/api", tags=["session"])


# Request/Response Models

class SessionCreateRequest(BaseModel):
    """Request to create a session."""
    map: str = Field(..., min_length=1)


class SessionCreateResponse(BaseModel):
    """Response with the id of the created session."""
    id: str


class SessionInfoResponse(BaseModel):
    id: str
    map: str
    createdAt: str
    features: int
    peers: int


class SessionFeaturesResponse(BaseModel):
    features: List[Dict[str, Any]]


# Endpoints
# SessionNotFound -> 404 and ResourceExhausted -> 503 are mapped by the app's exception handlers

@router.post("/session", response_model=SessionCreateResponse)
async def create_session(
    request: SessionCreateRequest,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionCreateResponse:
    """Create a new session for the given map. Returns its id."""
    session = registry.create(request.map)
    return SessionCreateResponse(id=session.id)


@router.get("/session/{session_id}", response_model=SessionInfoResponse)
async def get_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionInfoResponse:
    session = registry.get(session_id)
    return SessionInfoResponse(**session.to_dict())


@router.get("/session/{session_id}/features", response_model=SessionFeaturesResponse)
async def get_session_features(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionFeaturesResponse:
    """Current ordered feature list (same content a joining peer receives)."""
    session = registry.get(session_id)
    async with session.lock:
        features = [feature_to_dict(f) for f in session.features.snapshot()]
    return SessionFeaturesResponse(features=features)
