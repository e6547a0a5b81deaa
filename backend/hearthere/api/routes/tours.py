"""Audioguide endpoints - start generation, poll the tour document, cancel."""

import logging
import uuid
from typing import Annotated, Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status

from backend.hearthere.api.deps import (
    get_audioguide_deps,
    get_cancellation_signal,
    get_document_store,
)
from backend.hearthere.cache.documents import TourDocumentStore
from backend.hearthere.errors import CacheUnavailableError, PipelineError
from backend.hearthere.models.common import CamelModel, Geo
from backend.hearthere.models.context import LocationContext
from backend.hearthere.models.document import TourDocument
from backend.hearthere.models.session import DEFAULT_LANGUAGE, Session
from backend.hearthere.models.tour import Tour
from backend.hearthere.orchestration.audioguide import generate_audioguide
from backend.hearthere.orchestration.cancellation import CancellationSignal
from backend.hearthere.orchestration.deps import AudioguideDeps

logger = logging.getLogger(__name__)

router = APIRouter()


class AudioguideRequest(CamelModel):
    """Request body for starting audioguide generation."""

    tour: Tour
    area_context: LocationContext | None = None
    language: str = DEFAULT_LANGUAGE
    voice: str | None = None
    start_location: Geo | None = None
    duration: int | None = None


class AudioguideAccepted(CamelModel):
    tour_id: str
    session_id: str
    original_tour_id: str
    status: str


class CancelResponse(CamelModel):
    session_id: str
    cancelled: bool


@router.post(
    "/sessions/{session_id}/tours/{tour_id}/audioguide",
    response_model=AudioguideAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_audioguide(
    session_id: str,
    tour_id: str,
    request: AudioguideRequest,
    background_tasks: BackgroundTasks,
    documents: Annotated[TourDocumentStore, Depends(get_document_store)],
    deps: Annotated[AudioguideDeps, Depends(get_audioguide_deps)],
) -> AudioguideAccepted:
    """Create a shareable tour document and generate its audioguide in the background."""
    if not request.tour.stops:
        raise HTTPException(status_code=400, detail="Tour has no stops")

    shareable_id = uuid.uuid4().hex
    session = Session(
        session_id=session_id,
        tour_id=shareable_id,
        language=request.language,
        voice=request.voice,
    )
    tour = request.tour
    document = TourDocument(
        tour_id=shareable_id,
        session_id=session_id,
        original_tour_id=tour_id,
        title=tour.title,
        theme=tour.theme,
        abstract=tour.abstract,
        duration=request.duration or tour.estimated_total_minutes,
        language=session.language,
        voice=session.resolved_voice,
        start_location=request.start_location.to_geo_string() if request.start_location else None,
        tour=tour,
        area_context=request.area_context,
    )

    try:
        await documents.create(document)
    except CacheUnavailableError as e:
        raise HTTPException(status_code=503, detail="Tour store unavailable") from e

    background_tasks.add_task(_run_audioguide_background, deps, session, tour, request.area_context)
    logger.info(f"Audioguide generation started: session={session_id} tour={shareable_id}")

    return AudioguideAccepted(
        tour_id=shareable_id,
        session_id=session_id,
        original_tour_id=tour_id,
        status="generating",
    )


async def _run_audioguide_background(
    deps: AudioguideDeps,
    session: Session,
    tour: Tour,
    area_context: LocationContext | None,
) -> None:
    """Run the pipeline; failures are already recorded on the document."""
    try:
        await generate_audioguide(deps, session, tour, area_context)
    except PipelineError as e:
        logger.warning(f"Audioguide {session.tour_id} ended with {e.kind}: {e}")
    except Exception:
        logger.exception(f"Audioguide {session.tour_id} crashed")


@router.get("/tours/{tour_id}")
async def get_tour(
    tour_id: str,
    documents: Annotated[TourDocumentStore, Depends(get_document_store)],
) -> dict[str, Any]:
    """Tour document: generating, complete (all artifacts) or failed (error)."""
    try:
        document = await documents.get(tour_id)
    except CacheUnavailableError as e:
        raise HTTPException(status_code=503, detail="Tour store unavailable") from e
    if document is None:
        raise HTTPException(status_code=404, detail="tour-not-found")
    return document.to_record()


@router.post("/sessions/{session_id}/cancel", response_model=CancelResponse)
async def cancel_session(
    session_id: str,
    signal: Annotated[CancellationSignal, Depends(get_cancellation_signal)],
) -> CancelResponse:
    """Flag a session as cancelled; in-flight generation aborts at its next check."""
    await signal.cancel(session_id)
    logger.info(f"Session {session_id} cancelled")
    return CancelResponse(session_id=session_id, cancelled=True)
