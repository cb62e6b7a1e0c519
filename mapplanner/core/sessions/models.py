"""
Feature model.

Contract:
- id: unique within a session, assigned by the server on insertion ("f1", "f2", ...)
- payload: opaque JSON object (shape + properties), never interpreted by the server
- version: starts at 1, +1 on every accepted update, never decreases
"""
from typing import Any, Dict
from pydantic import BaseModel, Field


class Feature(BaseModel):
    """Single map annotation."""
    id: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    version: int = Field(1, ge=1)
    model_config = {"extra": "forbid"}


def feature_to_dict(feature: Feature) -> dict:
    """Serialize feature for a JSON frame."""
    return feature.model_dump(mode="json")
