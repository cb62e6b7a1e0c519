"""
Wire messages for the real-time channel (JSON text frames).

Inbound (client -> server), discriminated on `op`:
- insert: payload, optional ref
- update: featureId, expectedVersion, payload, optional ref
- remove: featureId, optional ref
- ping: keep-alive, answered with pong

Outbound (server -> client):
- snapshot: full ordered feature list, first frame after join
- insert | update: id, payload, version (broadcast to other peers)
- remove: id (broadcast to other peers)
- ack: id, version, ref (to the sender of an accepted mutation)
- pong
- errors: {error: VersionConflict | FeatureNotFound | ProtocolViolation, ...}
"""
import json
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from mapplanner.core.sessions.errors import ProtocolViolation
from mapplanner.core.sessions.models import Feature

# Max JSON frame size (bytes)
MAX_FRAME_SIZE = 256 * 1024
MAX_REF_LENGTH = 128
# Deepest object/array nesting accepted inside a frame
MAX_NESTING_DEPTH = 64


# --- Inbound ---

class InsertMessage(BaseModel):
    op: Literal["insert"]
    payload: Dict[str, Any]
    ref: Optional[str] = Field(None, max_length=MAX_REF_LENGTH)


class UpdateMessage(BaseModel):
    op: Literal["update"]
    featureId: str = Field(..., min_length=1)
    expectedVersion: int = Field(..., strict=True)
    payload: Dict[str, Any]
    ref: Optional[str] = Field(None, max_length=MAX_REF_LENGTH)


class RemoveMessage(BaseModel):
    op: Literal["remove"]
    featureId: str = Field(..., min_length=1)
    ref: Optional[str] = Field(None, max_length=MAX_REF_LENGTH)


class PingMessage(BaseModel):
    op: Literal["ping"]


InboundMessage = Annotated[
    Union[InsertMessage, UpdateMessage, RemoveMessage, PingMessage],
    Field(discriminator="op"),
]

_inbound_adapter = TypeAdapter(InboundMessage)


# --- Outbound ---

class SnapshotEvent(BaseModel):
    op: Literal["snapshot"] = "snapshot"
    features: List[Feature]


class FeatureEvent(BaseModel):
    """Insert or update broadcast: the feature's new authoritative state."""
    op: Literal["insert", "update"]
    id: str
    payload: Dict[str, Any]
    version: int

    @classmethod
    def from_feature(cls, op: str, feature: Feature) -> "FeatureEvent":
        return cls(op=op, id=feature.id, payload=feature.payload, version=feature.version)


class RemoveEvent(BaseModel):
    op: Literal["remove"] = "remove"
    id: str


class AckEvent(BaseModel):
    op: Literal["ack"] = "ack"
    id: str
    version: Optional[int] = None
    ref: Optional[str] = None


class PongEvent(BaseModel):
    op: Literal["pong"] = "pong"


def encode(message: BaseModel) -> Dict[str, Any]:
    """Serialize an outbound model to a JSON-ready dict. Unset optional ack fields are left out."""
    if isinstance(message, AckEvent):
        return message.model_dump(mode="json", exclude_none=True)
    return message.model_dump(mode="json")


def _describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def _nesting_depth(value: Any) -> int:
    depth = 0
    stack = [(value, 1)]
    while stack:
        item, level = stack.pop()
        if isinstance(item, dict):
            children = item.values()
        elif isinstance(item, list):
            children = item
        else:
            continue
        depth = max(depth, level)
        if depth > MAX_NESTING_DEPTH:
            break
        stack.extend((child, level + 1) for child in children)
    return depth


def parse_inbound(raw: Union[str, bytes], max_frame_size: int = MAX_FRAME_SIZE) -> InboundMessage:
    """
    Decode one text frame into an inbound message.

    Raises:
        ProtocolViolation: oversized or too deeply nested frame, invalid JSON
            (including NaN/Infinity), non-object, missing or mistyped field,
            unknown op
    """
    size = len(raw) if isinstance(raw, bytes) else len(raw.encode("utf-8"))
    if size > max_frame_size:
        raise ProtocolViolation(f"Frame too large ({size} > {max_frame_size} bytes)")
    try:
        data = json.loads(raw, parse_constant=_reject_constant)
    except RecursionError:
        raise ProtocolViolation(f"Frame nested deeper than {MAX_NESTING_DEPTH} levels") from None
    except ValueError:
        # JSONDecodeError, UnicodeDecodeError and rejected constants
        raise ProtocolViolation("Invalid JSON") from None
    if not isinstance(data, dict):
        raise ProtocolViolation("Message must be a JSON object")
    if _nesting_depth(data) > MAX_NESTING_DEPTH:
        raise ProtocolViolation(f"Frame nested deeper than {MAX_NESTING_DEPTH} levels")
    try:
        return _inbound_adapter.validate_python(data)
    except ValidationError as e:
        raise ProtocolViolation(_describe_validation_error(e)) from None
