"""
Session data model and registry: Feature, FeatureSet, Session, SessionRegistry.
"""

from mapplanner.core.sessions.feature_set import FeatureSet
from mapplanner.core.sessions.models import Feature
from mapplanner.core.sessions.registry import SessionRegistry
from mapplanner.core.sessions.session import Session

__all__ = ["Feature", "FeatureSet", "Session", "SessionRegistry"]
