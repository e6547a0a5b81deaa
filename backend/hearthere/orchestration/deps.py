"""Collaborators the audioguide pipeline nodes are wired with."""

from dataclasses import dataclass, field

from backend.hearthere.cache.documents import TourDocumentStore
from backend.hearthere.cache.places import PlaceCache
from backend.hearthere.cache.summaries import SummaryCache
from backend.hearthere.geo.geocoder import ReverseGeocoder
from backend.hearthere.llm.client import TextGenerator
from backend.hearthere.llm.invoker import RetryFallbackInvoker
from backend.hearthere.orchestration.cancellation import (
    DEFAULT_POLL_INTERVAL_SECONDS,
    CancellationSignal,
)
from backend.hearthere.orchestration.engine import Checkpointer
from backend.hearthere.speech.blobs import BlobStore
from backend.hearthere.speech.client import MAX_TTS_BYTES, TRUNCATION_MARKER, SpeechSynthesizer
from backend.hearthere.utils.logging import StructuredUnitLogger
from backend.hearthere.utils.metrics import PrometheusGenerationMetrics, get_metrics


@dataclass
class AudioguideDeps:
    documents: TourDocumentStore
    summaries: SummaryCache
    places: PlaceCache
    invoker: RetryFallbackInvoker[TextGenerator]
    speech: RetryFallbackInvoker[SpeechSynthesizer]
    blobs: BlobStore
    geocoder: ReverseGeocoder
    cancellation: CancellationSignal | None = None
    checkpointer: Checkpointer | None = None
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS
    tts_max_bytes: int = MAX_TTS_BYTES
    tts_truncation_marker: str = TRUNCATION_MARKER
    unit_logger: StructuredUnitLogger = field(default_factory=StructuredUnitLogger)
    metrics: PrometheusGenerationMetrics = field(default_factory=get_metrics)
