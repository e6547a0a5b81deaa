"""Audioguide session state and its reducers.

Nodes never mutate state directly: they return partial updates which are
folded in through ``apply_update``, one named reducer per field.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from backend.hearthere.models.artifacts import ArtifactMap, AudioEntry, EntryT, ScriptEntry
from backend.hearthere.models.context import LocationContext, StopLocationMap
from backend.hearthere.models.session import DEFAULT_LANGUAGE
from backend.hearthere.models.tour import Tour

Phase = Literal[
    "created",
    "loading",
    "context-ready",
    "scripts-in-flight",
    "scripts-complete",
    "audio-in-flight",
    "complete",
    "failed",
]

StateUpdate = dict[str, Any]


@dataclass
class AudioguideState:
    """State for one audioguide generation run."""

    session_id: str
    tour_id: str
    language: str = DEFAULT_LANGUAGE
    voice: str | None = None
    phase: Phase = "created"

    # Inputs (set by load_tour_data)
    tour: Tour | None = None
    area_context: LocationContext | None = None

    # Set by preload_location_summaries
    location_summaries: dict[str, LocationContext] = field(default_factory=dict)
    stop_location_map: StopLocationMap = field(default_factory=dict)

    # Fan-in targets
    scripts: ArtifactMap[ScriptEntry] = field(default_factory=ArtifactMap[ScriptEntry])
    audio_files: ArtifactMap[AudioEntry] = field(default_factory=ArtifactMap[AudioEntry])

    @property
    def thread_id(self) -> str:
        return f"{self.session_id}_audioguide_{self.tour_id}"

    def context_for_stop(self, index: int) -> LocationContext | None:
        """Area context for a stop, falling back to the tour-level context."""
        key = self.stop_location_map.get(index)
        if key is not None and key in self.location_summaries:
            return self.location_summaries[key]
        return self.area_context

    def to_record(self) -> dict[str, Any]:
        """JSON-safe snapshot for checkpointing."""
        return {
            "sessionId": self.session_id,
            "tourId": self.tour_id,
            "language": self.language,
            "voice": self.voice,
            "phase": self.phase,
            "tour": self.tour.model_dump(mode="json", by_alias=True) if self.tour else None,
            "areaContext": (
                self.area_context.model_dump(mode="json", by_alias=True)
                if self.area_context
                else None
            ),
            "locationSummaries": {
                key: ctx.model_dump(mode="json", by_alias=True)
                for key, ctx in self.location_summaries.items()
            },
            "stopLocationMap": {str(i): key for i, key in self.stop_location_map.items()},
            "scripts": self.scripts.model_dump(mode="json", by_alias=True),
            "audioFiles": self.audio_files.model_dump(mode="json", by_alias=True),
        }


def keep_last(old: Any, new: Any) -> Any:
    """Latest non-None value wins."""
    return old if new is None else new


def merge_artifacts(
    old: ArtifactMap[EntryT], new: ArtifactMap[EntryT] | None
) -> ArtifactMap[EntryT]:
    """Merge an artifact update into the accumulated map.

    The intro is replaced when the update carries one; stops are merged by
    index and None slots in the update leave existing entries alone.
    """
    if new is None:
        return old

    stops = list(old.stops)
    for index, entry in enumerate(new.stops):
        if entry is None:
            continue
        if index >= len(stops):
            stops.extend([None] * (index + 1 - len(stops)))
        stops[index] = entry

    intro = new.intro if new.intro is not None else old.intro
    return old.model_copy(update={"intro": intro, "stops": stops})


REDUCERS: dict[str, Callable[[Any, Any], Any]] = {
    "phase": keep_last,
    "language": keep_last,
    "voice": keep_last,
    "tour": keep_last,
    "area_context": keep_last,
    "location_summaries": keep_last,
    "stop_location_map": keep_last,
    "scripts": merge_artifacts,
    "audio_files": merge_artifacts,
}


def apply_update(state: AudioguideState, update: StateUpdate | None) -> AudioguideState:
    """Fold a partial update into state through the reducer table.

    Raises:
        KeyError: Update names a field with no reducer
    """
    if not update:
        return state
    for name, value in update.items():
        reducer = REDUCERS[name]
        setattr(state, name, reducer(getattr(state, name), value))
    return state


def script_update(index: int, entry: ScriptEntry) -> StateUpdate:
    """Update carrying one script unit; index -1 is the intro."""
    return {"scripts": _single(ArtifactMap[ScriptEntry], index, entry)}


def audio_update(index: int, entry: AudioEntry) -> StateUpdate:
    """Update carrying one audio unit; index -1 is the intro."""
    return {"audio_files": _single(ArtifactMap[AudioEntry], index, entry)}


def _single(map_type: type, index: int, entry: Any) -> Any:
    if index < 0:
        return map_type(intro=entry)
    stops: list[Any] = [None] * (index + 1)
    stops[index] = entry
    return map_type(stops=stops)
