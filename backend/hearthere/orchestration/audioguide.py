"""Audioguide pipeline: graph wiring and top-level run.

load_tour_data -> preload_location_summaries -> fan_out_scripts
    -> generate_script (one branch per unit) -> fan_out_audio
    -> synthesize_audio (one branch per unit) -> END

Units already complete in the persisted document are skipped, so re-running
a crashed session only produces what is missing.
"""

import logging
from functools import partial

from backend.hearthere.errors import CacheUnavailableError, TourValidationError, error_kind
from backend.hearthere.models.artifacts import ArtifactMap, EntryT
from backend.hearthere.models.context import LocationContext
from backend.hearthere.models.document import TourDocument
from backend.hearthere.models.session import Session
from backend.hearthere.models.tour import Tour
from backend.hearthere.orchestration.cancellation import check_cancellation
from backend.hearthere.orchestration.deps import AudioguideDeps
from backend.hearthere.orchestration.engine import CompiledGraph, Send, StateGraph
from backend.hearthere.orchestration.preload import preload_location_summaries
from backend.hearthere.orchestration.state import AudioguideState, StateUpdate, apply_update
from backend.hearthere.orchestration.workers import INTRO, generate_script, synthesize_audio

logger = logging.getLogger(__name__)


def _completed_only(artifacts: ArtifactMap[EntryT]) -> ArtifactMap[EntryT]:
    """Drop every entry that is not complete."""

    def keep(entry: EntryT | None) -> EntryT | None:
        return entry if entry is not None and entry.status == "complete" else None

    return artifacts.model_copy(
        update={"intro": keep(artifacts.intro), "stops": [keep(e) for e in artifacts.stops]}
    )


def _is_complete(artifacts: ArtifactMap[EntryT], index: int) -> bool:
    entry = artifacts.intro if index < 0 else artifacts.stop(index)
    return entry is not None and entry.status == "complete"


def validate_tour(tour: Tour | None) -> Tour:
    """Raise TourValidationError unless the tour can be narrated."""
    if tour is None:
        raise TourValidationError("Tour is required")
    if not tour.stops:
        raise TourValidationError(f"Tour {tour.id} has no stops")
    return tour


async def load_tour_data(deps: AudioguideDeps, state: AudioguideState) -> StateUpdate:
    """Validate inputs and seed state from the persisted document, if any."""
    logger.info(f"[load_tour_data] session={state.session_id} tour_id={state.tour_id}")

    if not state.session_id or not state.tour_id:
        raise TourValidationError("session_id and tour_id are required")

    try:
        document = await deps.documents.get(state.tour_id)
    except CacheUnavailableError as e:
        logger.warning(f"[load_tour_data] Tour document unavailable, starting fresh: {e}")
        document = None

    tour = validate_tour(state.tour or (document.tour if document else None))
    area_context = state.area_context or (document.area_context if document else None)

    if document is None:
        document = TourDocument(
            tour_id=state.tour_id,
            session_id=state.session_id,
            title=tour.title,
            theme=tour.theme,
            abstract=tour.abstract,
            duration=tour.estimated_total_minutes,
            language=state.language,
            voice=state.voice,
            tour=tour,
            area_context=area_context,
        )
        try:
            await deps.documents.create(document)
        except CacheUnavailableError as e:
            logger.warning(f"[load_tour_data] Could not create tour document: {e}")
        return {"tour": tour, "area_context": area_context}

    if document.status != "generating":
        await deps.documents.mark_generating(state.tour_id)

    scripts = _completed_only(document.scripts)
    audio_files = _completed_only(document.audio_files)
    done = scripts.count_status("complete") + audio_files.count_status("complete")
    if done:
        logger.info(f"[load_tour_data] Resuming tour {state.tour_id}: {done} units already complete")

    return {
        "tour": tour,
        "area_context": area_context,
        "scripts": scripts,
        "audio_files": audio_files,
    }


async def fan_out_scripts(deps: AudioguideDeps, state: AudioguideState) -> list[Send]:
    """One script branch per unit still missing: intro first, then stops."""
    units = [INTRO, *range(len(state.tour.stops))]
    sends = [Send("generate_script", i) for i in units if not _is_complete(state.scripts, i)]
    logger.info(f"[fan_out_scripts] {len(sends)} of {len(units)} scripts to generate")
    return sends


async def fan_out_audio(deps: AudioguideDeps, state: AudioguideState) -> list[Send]:
    """One audio branch per produced script whose audio is still missing."""
    units = [INTRO, *range(len(state.tour.stops))]
    sends = [
        Send("synthesize_audio", i)
        for i in units
        if _is_complete(state.scripts, i) and not _is_complete(state.audio_files, i)
    ]
    logger.info(f"[fan_out_audio] {len(sends)} of {len(units)} audio files to synthesize")
    return sends


def build_audioguide_graph(deps: AudioguideDeps) -> CompiledGraph[AudioguideState]:
    graph: StateGraph[AudioguideState] = StateGraph(apply_update)
    graph.add_node("load_tour_data", partial(load_tour_data, deps), phase="loading")
    graph.add_node("preload_location_summaries", partial(preload_location_summaries, deps))
    graph.add_node("fan_out_scripts", partial(fan_out_scripts, deps))
    graph.add_node("generate_script", partial(generate_script, deps), phase="scripts-in-flight")
    graph.add_node("fan_out_audio", partial(fan_out_audio, deps), phase="scripts-complete")
    graph.add_node("synthesize_audio", partial(synthesize_audio, deps), phase="audio-in-flight")

    graph.set_entry("load_tour_data")
    graph.add_edge("load_tour_data", "preload_location_summaries")
    graph.add_edge("preload_location_summaries", "fan_out_scripts")
    graph.add_edge("fan_out_scripts", "generate_script")
    graph.add_edge("generate_script", "fan_out_audio")
    graph.add_edge("fan_out_audio", "synthesize_audio")

    async def before_node(state: AudioguideState, node: str) -> None:
        await check_cancellation(deps.cancellation, state.session_id, node)

    return graph.compile(deps.checkpointer, before_node=before_node)


async def generate_audioguide(
    deps: AudioguideDeps,
    session: Session,
    tour: Tour | None = None,
    area_context: LocationContext | None = None,
) -> AudioguideState:
    """Run the pipeline for one session and tour.

    The tour document is marked complete on success. Any escaping error
    (validation, cancellation, fatal infrastructure) marks it failed with the
    error message and kind, then propagates.
    """
    state = AudioguideState(
        session_id=session.session_id,
        tour_id=session.tour_id,
        language=session.language,
        voice=session.resolved_voice,
        tour=tour,
        area_context=area_context,
    )
    graph = build_audioguide_graph(deps)

    try:
        state = await graph.run(state, thread_id=session.thread_id)
    except Exception as e:
        apply_update(state, {"phase": "failed"})
        logger.error(f"[audioguide] Generation failed for tour {session.tour_id}: {e}")
        await deps.documents.mark_failed(session.tour_id, str(e), error_kind(e))
        raise

    apply_update(state, {"phase": "complete"})
    await deps.documents.mark_complete(session.tour_id)
    logger.info(
        f"[audioguide] Tour {session.tour_id} complete: "
        f"{state.scripts.count_status('complete')} scripts, "
        f"{state.audio_files.count_status('complete')} audio files"
    )
    return state
