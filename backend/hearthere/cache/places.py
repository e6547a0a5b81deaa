"""Point-of-interest cache.

Places are stored under poi_cache:{place_id} with a 7-day TTL, unless the
place is pinned. Re-upserting a place keeps the user-curated fields.
"""

import logging

from backend.hearthere.cache.store import (
    CacheStore,
    FieldType,
    GeoRadius,
    IndexField,
    IndexSpec,
    RadiusQuery,
)
from backend.hearthere.errors import CacheUnavailableError
from backend.hearthere.models.cache import PlaceRecord
from backend.hearthere.models.common import Geo, utc_now_iso
from backend.hearthere.utils.metrics import PrometheusGenerationMetrics, get_metrics

logger = logging.getLogger(__name__)

PLACES_INDEX = IndexSpec(
    name="idx:pois",
    prefix="poi_cache:",
    fields=(
        IndexField("name", FieldType.TEXT),
        IndexField("types", FieldType.TAG),
        IndexField("location", FieldType.GEO),
        IndexField("rating", FieldType.NUMERIC),
        IndexField("primary", FieldType.TAG),
    ),
)

MIN_SUFFICIENT_POIS = 40
WALKING_METERS_PER_MINUTE = 83


def poi_search_radius(duration_minutes: float) -> int:
    """Search radius for a tour of the given length, clamped to 500-3000 m.

    About 40% of a tour is spent walking; the radius is half that distance.
    """
    walking_meters = duration_minutes * 0.4 * WALKING_METERS_PER_MINUTE
    return max(500, min(3000, round(walking_meters / 2)))


class PlaceCache:
    """Cache of places keyed by provider place id."""

    def __init__(
        self,
        store: CacheStore,
        *,
        ttl_seconds: int = 7 * 24 * 3600,
        metrics: PrometheusGenerationMetrics | None = None,
    ) -> None:
        self._store = store
        self._ttl_seconds = ttl_seconds
        self._metrics = metrics or get_metrics()

    def key_for(self, place_id: str) -> str:
        return f"{PLACES_INDEX.prefix}{place_id}"

    def _ttl_for(self, record: PlaceRecord) -> int | None:
        return None if record.pinned else self._ttl_seconds

    async def get(self, place_id: str) -> PlaceRecord | None:
        try:
            raw = await self._store.get(self.key_for(place_id))
        except CacheUnavailableError as e:
            logger.warning("Place cache unavailable for %s: %s", place_id, e)
            return None
        return PlaceRecord.model_validate(raw) if raw else None

    async def upsert(self, place: PlaceRecord) -> bool:
        """Insert or refresh a place, keeping pinned/notes/tags/images."""
        existing = await self.get(place.place_id)
        record = place.model_copy(update={"fetched_at": utc_now_iso()})
        if existing is not None:
            record = record.model_copy(
                update={
                    "pinned": existing.pinned,
                    "notes": existing.notes,
                    "tags": existing.tags,
                    "images": existing.images,
                }
            )

        try:
            await self._store.ensure_index(PLACES_INDEX)
            await self._store.put(
                self.key_for(record.place_id),
                record.model_dump(mode="json", by_alias=True),
                self._ttl_for(record),
            )
        except CacheUnavailableError as e:
            logger.warning("Failed to cache place %s: %s", place.place_id, e)
            return False
        return True

    async def update_location(
        self,
        place_id: str,
        *,
        country: str | None,
        city: str | None,
        neighborhood: str | None,
    ) -> bool:
        """Write resolved location fields onto an existing place.

        Returns False if the place is not cached. Does not touch the TTL.
        """
        key = self.key_for(place_id)
        updated = await self._store.set_path(key, ("country",), country)
        if not updated:
            return False
        await self._store.set_path(key, ("city",), city)
        await self._store.set_path(key, ("neighborhood",), neighborhood)
        return True

    async def set_pinned(self, place_id: str, pinned: bool) -> bool:
        """Pin (no expiry) or unpin (restart the TTL) a cached place."""
        key = self.key_for(place_id)
        try:
            if not await self._store.set_path(key, ("pinned",), pinned):
                return False
            await self._store.expire(key, None if pinned else self._ttl_seconds)
        except CacheUnavailableError as e:
            logger.warning("Failed to update pin for %s: %s", place_id, e)
            return False
        return True

    async def nearby(
        self,
        location: Geo,
        radius_meters: float,
        *,
        primary_only: bool = True,
        limit: int = MIN_SUFFICIENT_POIS,
    ) -> list[PlaceRecord]:
        """Cached places within radius of location."""
        query = RadiusQuery(
            tags={"primary": "true"} if primary_only else {},
            geo=GeoRadius("location", location.lon, location.lat, radius_meters),
            limit=limit,
        )
        try:
            await self._store.ensure_index(PLACES_INDEX)
            records = await self._store.query_radius(PLACES_INDEX, query)
        except CacheUnavailableError as e:
            logger.warning("Place cache unavailable, treating as miss: %s", e)
            self._metrics.record_cache_lookup("places", "error")
            return []
        return [PlaceRecord.model_validate(r) for r in records]

    async def has_sufficient_pois(self, location: Geo, duration_minutes: float) -> bool:
        """True when enough primary places are cached to skip a provider fetch."""
        radius = poi_search_radius(duration_minutes)
        places = await self.nearby(location, radius, limit=MIN_SUFFICIENT_POIS)
        sufficient = len(places) >= MIN_SUFFICIENT_POIS
        self._metrics.record_cache_lookup("places", "hit" if sufficient else "miss")
        logger.info(
            "Found %d primary POIs within %dm (need %d)",
            len(places),
            radius,
            MIN_SUFFICIENT_POIS,
        )
        return sufficient
