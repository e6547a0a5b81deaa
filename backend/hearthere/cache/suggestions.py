"""Tour suggestion cache - memoizes generated tour sets per request fingerprint.

A fingerprint is (normalized duration, language, start location). Lookups
match exact duration and language and any start point within a fixed radius
(50 m by default). Requests carrying a free-text customization bypass the
cache in both directions.
"""

import hashlib
import logging
from collections.abc import Sequence
from typing import Any

from backend.hearthere.cache.store import (
    CacheStore,
    FieldType,
    GeoRadius,
    IndexField,
    IndexSpec,
    NumericRange,
    RadiusQuery,
    normalize_tag,
)
from backend.hearthere.errors import CacheUnavailableError
from backend.hearthere.models.cache import SuggestionCacheEntry
from backend.hearthere.models.common import Geo
from backend.hearthere.utils.metrics import PrometheusGenerationMetrics, get_metrics

logger = logging.getLogger(__name__)

SUPPORTED_DURATIONS: tuple[int, ...] = (30, 60, 90, 120, 180)

SUGGESTIONS_INDEX = IndexSpec(
    name="idx:tour_suggestions",
    prefix="toursuggest_cache:",
    fields=(
        IndexField("fingerprint", FieldType.TAG),
        IndexField("duration", FieldType.NUMERIC),
        IndexField("language", FieldType.TAG),
        IndexField("startLocation", FieldType.GEO),
        IndexField("createdAt", FieldType.TEXT),
    ),
)


def normalize_duration(minutes: float, supported: Sequence[int] = SUPPORTED_DURATIONS) -> int:
    """Snap a requested duration to the closest supported value.

    Ties go to the first listed value.
    """
    if not supported:
        raise ValueError("supported durations must not be empty")
    best = supported[0]
    best_distance = abs(minutes - best)
    for candidate in supported[1:]:
        distance = abs(minutes - candidate)
        if distance < best_distance:
            best, best_distance = candidate, distance
    return best


def suggestion_fingerprint(duration: int, language: str, lat: float, lon: float) -> str:
    """Stable fingerprint for (duration, language, location)."""
    raw = f"{duration}|{normalize_tag(language)}|{lon:.5f},{lat:.5f}"
    return hashlib.sha256(raw.encode()).hexdigest()[:32]


def _has_customization(customization: str | None) -> bool:
    return bool(customization and customization.strip())


class TourSuggestionCache:
    """Spatial cache of generated tour suggestions."""

    def __init__(
        self,
        store: CacheStore,
        *,
        radius_meters: float = 50.0,
        ttl_seconds: int = 7 * 24 * 3600,
        limit: int = 10,
        durations: Sequence[int] = SUPPORTED_DURATIONS,
        metrics: PrometheusGenerationMetrics | None = None,
    ) -> None:
        self._store = store
        self._radius_meters = radius_meters
        self._ttl_seconds = ttl_seconds
        self._limit = limit
        self._durations = tuple(durations)
        self._metrics = metrics or get_metrics()

    def key_for(self, fingerprint: str) -> str:
        return f"{SUGGESTIONS_INDEX.prefix}{fingerprint}"

    async def lookup(
        self,
        location: Geo,
        duration_minutes: float,
        language: str,
        customization: str | None = None,
    ) -> list[dict[str, Any]] | None:
        """Return cached tours near location, or None on miss.

        Never raises on cache failure; an unavailable cache is a miss.
        """
        if _has_customization(customization):
            logger.info("Skipping suggestion cache lookup - customization provided")
            return None

        duration = normalize_duration(duration_minutes, self._durations)
        query = RadiusQuery(
            numeric=(NumericRange.exact("duration", duration),),
            tags={"language": language},
            geo=GeoRadius("startLocation", location.lon, location.lat, self._radius_meters),
            limit=self._limit,
        )

        try:
            await self._store.ensure_index(SUGGESTIONS_INDEX)
            records = await self._store.query_radius(SUGGESTIONS_INDEX, query)
        except CacheUnavailableError as e:
            logger.warning("Suggestion cache unavailable, treating as miss: %s", e)
            self._metrics.record_cache_lookup("suggestions", "error")
            return None

        tours: list[dict[str, Any]] = []
        for record in records:
            entry = SuggestionCacheEntry.model_validate(record)
            tours.extend(entry.tours)
            if len(tours) >= self._limit:
                break

        if not tours:
            logger.info(
                "Suggestion cache MISS (duration=%s, language=%s)", duration, language
            )
            self._metrics.record_cache_lookup("suggestions", "miss")
            return None

        logger.info(
            "Suggestion cache HIT: %d tours (duration=%s, language=%s, within %sm)",
            len(tours),
            duration,
            language,
            self._radius_meters,
        )
        self._metrics.record_cache_lookup("suggestions", "hit")
        return tours[: self._limit]

    async def save(
        self,
        location: Geo,
        duration_minutes: float,
        language: str,
        tours: list[dict[str, Any]],
        customization: str | None = None,
    ) -> bool:
        """Store tours under the request fingerprint, replacing any previous entry.

        Returns True if something was written.
        """
        if _has_customization(customization):
            logger.info("Skipping suggestion cache save - customization provided")
            return False
        if not tours:
            return False

        duration = normalize_duration(duration_minutes, self._durations)
        fingerprint = suggestion_fingerprint(duration, language, location.lat, location.lon)
        entry = SuggestionCacheEntry(
            fingerprint=fingerprint,
            duration=duration,
            language=normalize_tag(language),
            start_location=location.to_geo_string(),
            tours=tours,
        )

        try:
            await self._store.ensure_index(SUGGESTIONS_INDEX)
            await self._store.put(
                self.key_for(fingerprint),
                entry.model_dump(mode="json", by_alias=True),
                self._ttl_seconds,
            )
        except CacheUnavailableError as e:
            logger.warning("Failed to cache tour suggestions: %s", e)
            return False

        logger.info("Cached %d tour suggestions under %s", len(tours), fingerprint)
        return True
