"""
Error kinds raised by the session registry and the sync protocol.

- SessionNotFound: unknown or evicted session id
- AlreadyJoined: a connection belongs to exactly one session for its lifetime
- VersionConflict: update rejected, expectedVersion != current version
- FeatureNotFound: update/remove of an id not in the session
- ProtocolViolation: malformed inbound message; the connection is closed
- ResourceExhausted: no session id could be allocated
"""
from typing import Any, Dict, Optional


class SyncError(Exception):
    """Base class for all session/sync errors. `code` is the wire error name."""

    code = "SyncError"

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail or self.code)
        self.detail = detail

    def to_message(self) -> Dict[str, Any]:
        """Error frame sent to the originating connection only."""
        message: Dict[str, Any] = {"error": self.code}
        if self.detail:
            message["detail"] = self.detail
        return message


class SessionNotFound(SyncError):
    code = "SessionNotFound"

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class AlreadyJoined(SyncError):
    code = "AlreadyJoined"

    def __init__(self, connection_id: str, session_id: Optional[str] = None) -> None:
        super().__init__(f"Connection {connection_id} already joined session {session_id}")
        self.connection_id = connection_id
        self.session_id = session_id


class FeatureNotFound(SyncError):
    code = "FeatureNotFound"

    def __init__(self, feature_id: str) -> None:
        super().__init__(f"Feature not found: {feature_id}")
        self.feature_id = feature_id

    def to_message(self) -> Dict[str, Any]:
        message = super().to_message()
        message["id"] = self.feature_id
        return message


class VersionConflict(SyncError):
    """Carries the current authoritative feature so the sender can resolve and retry."""

    code = "VersionConflict"

    def __init__(self, feature: Any, expected_version: int) -> None:
        super().__init__(
            f"Feature {feature.id} is at version {feature.version}, expected {expected_version}"
        )
        self.feature = feature
        self.expected_version = expected_version

    def to_message(self) -> Dict[str, Any]:
        message = super().to_message()
        message["id"] = self.feature.id
        message["feature"] = self.feature.model_dump(mode="json")
        return message


class ProtocolViolation(SyncError):
    code = "ProtocolViolation"


class ResourceExhausted(SyncError):
    code = "ResourceExhausted"
