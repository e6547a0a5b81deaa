"""Per-unit workers: script generation and speech synthesis.

A unit is the intro (index -1) or one stop. Each worker persists its unit to
the tour document as soon as it finishes. Unit failures are recorded in place
(status "failed") and never abort sibling units; only cancellation propagates.
"""

import logging
import time
from functools import partial

from backend.hearthere.errors import GenerationCancelledError, UnitGenerationError
from backend.hearthere.llm.invoker import generate_text
from backend.hearthere.models.artifacts import AudioEntry, ScriptEntry
from backend.hearthere.models.session import default_voice_for
from backend.hearthere.orchestration.cancellation import check_cancellation, run_cancellable
from backend.hearthere.orchestration.deps import AudioguideDeps
from backend.hearthere.orchestration.prompts import build_intro_prompt, build_stop_prompt
from backend.hearthere.orchestration.state import (
    AudioguideState,
    StateUpdate,
    audio_update,
    script_update,
)
from backend.hearthere.speech.blobs import audio_blob_name
from backend.hearthere.speech.client import truncate_for_tts

logger = logging.getLogger(__name__)

INTRO = -1


def _label(index: int) -> str:
    return "intro" if index < 0 else f"stop {index}"


def build_script_prompt(state: AudioguideState, index: int) -> str:
    tour = state.tour
    if index < 0:
        summaries = state.location_summaries
        if not summaries and state.area_context is not None:
            summaries = {state.area_context.key: state.area_context}
        return build_intro_prompt(tour, summaries, state.language, state.area_context)
    return build_stop_prompt(tour, index, state.context_for_stop(index), state.language)


async def generate_script(deps: AudioguideDeps, state: AudioguideState, index: int) -> StateUpdate:
    """Generate and persist the narration script for one unit."""
    await check_cancellation(deps.cancellation, state.session_id, f"script {_label(index)}")

    started = time.monotonic()
    guard = partial(check_cancellation, deps.cancellation, state.session_id, "script")
    try:
        prompt = build_script_prompt(state, index)
        result = await run_cancellable(
            generate_text(deps.invoker, prompt, guard=guard),
            deps.cancellation,
            state.session_id,
            deps.poll_interval,
        )
        entry = ScriptEntry(status="complete", content=result.value, model_used=result.model_used)
    except GenerationCancelledError:
        raise
    except Exception as e:
        failure = UnitGenerationError("script", index, e)
        logger.error(f"[generate_script] {failure}")
        entry = ScriptEntry(status="failed", error=str(e))

    await deps.documents.write_unit(state.tour_id, "scripts", index, entry)

    latency_ms = (time.monotonic() - started) * 1000
    deps.metrics.record_unit("script", entry.status, latency_ms)
    deps.unit_logger.log_unit(
        state.tour_id,
        "script",
        index,
        entry.status,
        latency_ms,
        model_used=entry.model_used,
        error_reason=entry.error,
    )
    return script_update(index, entry)


async def synthesize_audio(deps: AudioguideDeps, state: AudioguideState, index: int) -> StateUpdate:
    """Synthesize, store and persist audio for one unit with a complete script."""
    script = state.scripts.intro if index < 0 else state.scripts.stop(index)
    if script is None or script.status != "complete" or not script.content:
        logger.info(f"[synthesize_audio] Skipping {_label(index)}: script not complete")
        return {}

    await check_cancellation(deps.cancellation, state.session_id, f"audio {_label(index)}")

    started = time.monotonic()
    voice = state.voice or default_voice_for(state.language)
    guard = partial(check_cancellation, deps.cancellation, state.session_id, "audio")
    backend_used = None
    try:
        text = truncate_for_tts(script.content, deps.tts_max_bytes, deps.tts_truncation_marker)
        result = await run_cancellable(
            deps.speech.invoke(lambda synthesizer: synthesizer.synthesize(text, voice), guard=guard),
            deps.cancellation,
            state.session_id,
            deps.poll_interval,
        )
        backend_used = result.model_used
        url = await deps.blobs.store(audio_blob_name(state.tour_id, index), result.value)
        entry = AudioEntry(status="complete", url=url)
    except GenerationCancelledError:
        raise
    except Exception as e:
        failure = UnitGenerationError("audio", index, e)
        logger.error(f"[synthesize_audio] {failure}")
        entry = AudioEntry(status="failed", error=str(e))

    await deps.documents.write_unit(state.tour_id, "audioFiles", index, entry)

    latency_ms = (time.monotonic() - started) * 1000
    deps.metrics.record_unit("audio", entry.status, latency_ms)
    deps.unit_logger.log_unit(
        state.tour_id,
        "audio",
        index,
        entry.status,
        latency_ms,
        model_used=backend_used,
        error_reason=entry.error,
    )
    return audio_update(index, entry)
