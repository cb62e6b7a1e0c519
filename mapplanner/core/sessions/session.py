"""
Planning session: identity, owned FeatureSet, and the ids of its connected peers.
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

from mapplanner.core.sessions.feature_set import FeatureSet


class Session:
    """
    A named collaboration room bound to one map.

    peers holds connection ids only; the socket objects live in the
    ConnectionManager's connection table. All mutations of features and peers
    go through `lock`.
    """

    def __init__(self, session_id: str, map_id: str, now: float) -> None:
        self.id = session_id
        self.map_id = map_id
        self.created_at = datetime.now(timezone.utc)
        self.features = FeatureSet()
        self.peers: Set[str] = set()
        # Monotonic time since peers became empty; a fresh session starts idle
        self.idle_since: Optional[float] = now
        self.evicted = False
        self.lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"<Session id={self.id!r} map={self.map_id!r} peers={len(self.peers)}>"

    @property
    def is_idle(self) -> bool:
        return not self.peers

    def add_peer(self, connection_id: str) -> None:
        self.peers.add(connection_id)
        self.idle_since = None

    def discard_peer(self, connection_id: str, now: float) -> bool:
        """Remove a peer id. Returns True if it was present."""
        if connection_id not in self.peers:
            return False
        self.peers.discard(connection_id)
        if not self.peers:
            self.idle_since = now
        return True

    def idle_for(self, now: float) -> float:
        """Seconds the session has had no peers (0.0 while any peer is joined)."""
        if self.peers or self.idle_since is None:
            return 0.0
        return max(0.0, now - self.idle_since)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "map": self.map_id,
            "createdAt": self.created_at.isoformat(),
            "features": len(self.features),
            "peers": len(self.peers),
        }
