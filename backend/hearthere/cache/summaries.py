"""City and neighborhood summary cache (30-day TTL)."""

import logging
from typing import Literal

from backend.hearthere.cache.store import CacheStore
from backend.hearthere.errors import CacheUnavailableError
from backend.hearthere.models.context import SummaryData
from backend.hearthere.utils.metrics import PrometheusGenerationMetrics, get_metrics

logger = logging.getLogger(__name__)

EntityType = Literal["city", "neighborhood"]


def summary_entity_name(entity_type: EntityType, name: str, city: str | None = None) -> str:
    """Cache name for an entity.

    Neighborhood names are scoped by city since different cities reuse them.
    """
    if entity_type == "neighborhood" and city:
        return f"{city}:{name}"
    return name


class SummaryCache:
    """Read-through store for generated area summaries."""

    def __init__(
        self,
        store: CacheStore,
        *,
        ttl_seconds: int = 30 * 24 * 3600,
        metrics: PrometheusGenerationMetrics | None = None,
    ) -> None:
        self._store = store
        self._ttl_seconds = ttl_seconds
        self._metrics = metrics or get_metrics()

    @staticmethod
    def key_for(entity_type: EntityType, entity_name: str) -> str:
        return f"summary_cache:{entity_type}:{entity_name}"

    async def get(self, entity_type: EntityType, entity_name: str) -> SummaryData | None:
        """Cached summary or None; cache failures count as a miss."""
        try:
            raw = await self._store.get(self.key_for(entity_type, entity_name))
        except CacheUnavailableError as e:
            logger.warning("Summary cache unavailable for %s %s: %s", entity_type, entity_name, e)
            self._metrics.record_cache_lookup(f"summary_{entity_type}", "error")
            return None

        if raw is None:
            self._metrics.record_cache_lookup(f"summary_{entity_type}", "miss")
            return None

        self._metrics.record_cache_lookup(f"summary_{entity_type}", "hit")
        return SummaryData.model_validate(raw)

    async def put(self, entity_type: EntityType, entity_name: str, data: SummaryData) -> bool:
        """Cache a summary if it has content. Returns True if written."""
        if data.is_empty:
            return False
        try:
            await self._store.put(
                self.key_for(entity_type, entity_name),
                data.model_dump(mode="json", by_alias=True),
                self._ttl_seconds,
            )
        except CacheUnavailableError as e:
            logger.warning("Failed to cache %s summary for %s: %s", entity_type, entity_name, e)
            return False
        return True
