"""Persisted tour document - the system of record for a generation run."""

from typing import Literal

from pydantic import Field

from backend.hearthere.models.artifacts import ArtifactMap, AudioEntry, ScriptEntry
from backend.hearthere.models.common import CamelModel, utc_now_iso
from backend.hearthere.models.context import LocationContext
from backend.hearthere.models.tour import Tour

DocumentStatus = Literal["generating", "complete", "failed"]


class TourDocument(CamelModel):
    """Audioguide document stored under tour:{tour_id}.

    Created with status "generating"; scripts and audio files are written
    into it one unit at a time as workers finish.
    """

    tour_id: str
    session_id: str | None = None
    original_tour_id: str | None = None
    status: DocumentStatus = "generating"
    title: str = ""
    theme: str = ""
    abstract: str = ""
    duration: int = 0
    language: str = "english"
    voice: str | None = None
    start_location: str | None = None
    tour: Tour | None = None
    area_context: LocationContext | None = None
    scripts: ArtifactMap[ScriptEntry] = Field(default_factory=ArtifactMap[ScriptEntry])
    audio_files: ArtifactMap[AudioEntry] = Field(default_factory=ArtifactMap[AudioEntry])
    created_at: str = Field(default_factory=utc_now_iso)
    completed_at: str | None = None
    failed_at: str | None = None
    error: str | None = None
    error_kind: str | None = None

    def to_record(self) -> dict:
        """Serialize for the cache store (camelCase JSON)."""
        return self.model_dump(mode="json", by_alias=True)
