"""FastAPI dependencies - process-wide store, caches and pipeline collaborators.

With REDIS_URL set everything is Redis-backed; otherwise an in-memory store
is used (local runs). Tests override these via app.dependency_overrides.
"""

import logging
from functools import lru_cache

from redis.asyncio import Redis

from backend.hearthere.cache.documents import TourDocumentStore
from backend.hearthere.cache.inmemory import InMemoryCacheStore
from backend.hearthere.cache.places import PlaceCache
from backend.hearthere.cache.redis_store import RedisCacheStore
from backend.hearthere.cache.store import CacheStore
from backend.hearthere.cache.suggestions import TourSuggestionCache
from backend.hearthere.cache.summaries import SummaryCache
from backend.hearthere.config import get_settings
from backend.hearthere.geo.geocoder import get_reverse_geocoder
from backend.hearthere.llm.client import get_text_generators
from backend.hearthere.llm.invoker import RetryFallbackInvoker
from backend.hearthere.orchestration.cancellation import (
    CancellationSignal,
    InMemoryCancellationSignal,
    RedisCancellationSignal,
)
from backend.hearthere.orchestration.deps import AudioguideDeps
from backend.hearthere.orchestration.engine import CacheCheckpointer
from backend.hearthere.speech.blobs import LocalBlobStore
from backend.hearthere.speech.client import get_speech_synthesizer

logger = logging.getLogger(__name__)


@lru_cache
def get_redis_client() -> Redis | None:
    settings = get_settings()
    if not settings.redis_url:
        return None
    return Redis.from_url(settings.redis_url, decode_responses=True)


@lru_cache
def get_cache_store() -> CacheStore:
    client = get_redis_client()
    if client is None:
        logger.warning("REDIS_URL not set, using in-memory cache store")
        return InMemoryCacheStore()
    return RedisCacheStore(client, index_settle_seconds=get_settings().index_settle_seconds)


@lru_cache
def get_cancellation_signal() -> CancellationSignal:
    client = get_redis_client()
    if client is None:
        return InMemoryCancellationSignal()
    return RedisCancellationSignal(client)


def get_document_store() -> TourDocumentStore:
    return TourDocumentStore(
        get_cache_store(), ttl_seconds=get_settings().document_ttl_seconds
    )


def get_suggestion_cache() -> TourSuggestionCache:
    settings = get_settings()
    return TourSuggestionCache(
        get_cache_store(),
        radius_meters=settings.suggestion_radius_meters,
        ttl_seconds=settings.suggestion_ttl_seconds,
        limit=settings.suggestion_lookup_limit,
        durations=settings.supported_durations,
    )


@lru_cache
def get_audioguide_deps() -> AudioguideDeps:
    """Wire the pipeline collaborators from settings."""
    settings = get_settings()
    store = get_cache_store()
    primary, fallback = get_text_generators(settings)

    return AudioguideDeps(
        documents=get_document_store(),
        summaries=SummaryCache(store, ttl_seconds=settings.summary_ttl_seconds),
        places=PlaceCache(store, ttl_seconds=settings.place_ttl_seconds),
        invoker=RetryFallbackInvoker(
            primary, fallback, max_retries=settings.generation_max_retries
        ),
        speech=RetryFallbackInvoker(
            get_speech_synthesizer(settings), max_retries=settings.generation_max_retries
        ),
        blobs=LocalBlobStore(settings.blob_root, settings.blob_public_base_url),
        geocoder=get_reverse_geocoder(settings),
        cancellation=get_cancellation_signal(),
        checkpointer=CacheCheckpointer(store, ttl_seconds=settings.checkpoint_ttl_seconds),
        poll_interval=settings.cancellation_poll_interval_ms / 1000,
        tts_max_bytes=settings.tts_max_bytes,
        tts_truncation_marker=settings.tts_truncation_marker,
    )


def get_place_cache() -> PlaceCache:
    return PlaceCache(get_cache_store(), ttl_seconds=get_settings().place_ttl_seconds)
