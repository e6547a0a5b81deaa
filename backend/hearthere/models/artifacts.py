"""Script and audio artifact entries, one per stop plus the intro."""

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

from backend.hearthere.models.common import CamelModel, UnitStatus


class ScriptEntry(CamelModel):
    """Generated narration script for one unit."""

    status: UnitStatus = "pending"
    content: str | None = None
    model_used: str | None = None
    error: str | None = None


class AudioEntry(CamelModel):
    """Synthesized audio for one unit."""

    status: UnitStatus = "pending"
    url: str | None = None
    error: str | None = None


EntryT = TypeVar("EntryT", ScriptEntry, AudioEntry)


class ArtifactMap(BaseModel, Generic[EntryT]):
    """Intro entry plus an index-aligned list of stop entries."""

    intro: EntryT | None = None
    stops: list[EntryT | None] = Field(default_factory=list)

    def stop(self, index: int) -> EntryT | None:
        if 0 <= index < len(self.stops):
            return self.stops[index]
        return None

    def entries(self) -> list[EntryT]:
        """All present entries, intro first."""
        found = [self.intro] if self.intro is not None else []
        found.extend(entry for entry in self.stops if entry is not None)
        return found

    def count_status(self, status: str) -> int:
        return sum(1 for entry in self.entries() if entry.status == status)
