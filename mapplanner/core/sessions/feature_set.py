"""
Ordered, mutable feature collection for one session. Pure data, no I/O.
"""
import copy
from typing import Any, Dict, Iterator, List, Optional

from mapplanner.core.sessions.errors import FeatureNotFound, VersionConflict
from mapplanner.core.sessions.models import Feature


class FeatureSet:
    """Insertion-ordered mapping feature id -> Feature, owned by its Session."""

    def __init__(self) -> None:
        self._features: Dict[str, Feature] = {}
        # Never reset, so removed ids are never handed out again
        self._next_seq = 1

    def __len__(self) -> int:
        return len(self._features)

    def __contains__(self, feature_id: object) -> bool:
        return feature_id in self._features

    def __iter__(self) -> Iterator[Feature]:
        return iter(list(self._features.values()))

    def _allocate_id(self) -> str:
        feature_id = f"f{self._next_seq}"
        self._next_seq += 1
        return feature_id

    def get(self, feature_id: str) -> Optional[Feature]:
        """Return the stored feature (not a copy) or None."""
        return self._features.get(feature_id)

    def insert(self, payload: Dict[str, Any]) -> Feature:
        """Store a new feature with a fresh id and version 1. Always succeeds."""
        feature = Feature(id=self._allocate_id(), payload=copy.deepcopy(payload), version=1)
        self._features[feature.id] = feature
        return feature.model_copy(deep=True)

    def update(self, feature_id: str, expected_version: int, payload: Dict[str, Any]) -> Feature:
        """
        Compare-and-swap on version.

        Replaces the payload and bumps version by exactly 1 when expected_version
        matches the current version. The feature keeps its position.

        Raises:
            FeatureNotFound: feature_id is not in the set
            VersionConflict: expected_version does not match; feature unchanged
        """
        current = self._features.get(feature_id)
        if current is None:
            raise FeatureNotFound(feature_id)
        if current.version != expected_version:
            raise VersionConflict(current.model_copy(deep=True), expected_version)
        updated = Feature(
            id=feature_id,
            payload=copy.deepcopy(payload),
            version=current.version + 1,
        )
        self._features[feature_id] = updated
        return updated.model_copy(deep=True)

    def remove(self, feature_id: str) -> Feature:
        """Remove and return the feature. Raises FeatureNotFound if absent."""
        try:
            return self._features.pop(feature_id)
        except KeyError:
            raise FeatureNotFound(feature_id) from None

    def snapshot(self) -> List[Feature]:
        """Full ordered list of deep copies, for a newly joined peer."""
        return [f.model_copy(deep=True) for f in self._features.values()]
