"""Models package - re-exports for convenience."""

from backend.hearthere.models.artifacts import ArtifactMap, AudioEntry, ScriptEntry
from backend.hearthere.models.cache import PlaceRecord, SuggestionCacheEntry
from backend.hearthere.models.common import Geo, UnitStatus, location_key
from backend.hearthere.models.context import LocationContext, StopLocationMap, SummaryData
from backend.hearthere.models.document import DocumentStatus, TourDocument
from backend.hearthere.models.session import Session, default_voice_for
from backend.hearthere.models.tour import DirectionStep, Stop, Tour, WalkingDirections

__all__ = [
    # Common
    "Geo",
    "UnitStatus",
    "location_key",
    # Tour
    "DirectionStep",
    "Stop",
    "Tour",
    "WalkingDirections",
    # Context
    "LocationContext",
    "StopLocationMap",
    "SummaryData",
    # Artifacts
    "ArtifactMap",
    "AudioEntry",
    "ScriptEntry",
    # Document
    "DocumentStatus",
    "TourDocument",
    # Session
    "Session",
    "default_voice_for",
    # Cache
    "PlaceRecord",
    "SuggestionCacheEntry",
]
