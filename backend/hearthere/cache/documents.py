"""Tour document store - durable sink the pipeline writes into as units finish.

Writes during fan-out are fine-grained (one field path per unit) so that
concurrent branches never overwrite each other's results.
"""

import logging
from typing import Literal

from backend.hearthere.cache.store import CacheStore, PathSegment
from backend.hearthere.errors import CacheUnavailableError
from backend.hearthere.models.artifacts import AudioEntry, ScriptEntry
from backend.hearthere.models.common import utc_now_iso
from backend.hearthere.models.document import TourDocument

logger = logging.getLogger(__name__)

Section = Literal["scripts", "audioFiles"]


def unit_path(section: Section, index: int) -> tuple[PathSegment, ...]:
    """Field path of one unit; index -1 is the intro."""
    if index < 0:
        return (section, "intro")
    return (section, "stops", index)


class TourDocumentStore:
    """Persists TourDocument records under tour:{tour_id}."""

    def __init__(self, store: CacheStore, *, ttl_seconds: int | None = None) -> None:
        self._store = store
        self._ttl_seconds = ttl_seconds

    @staticmethod
    def key_for(tour_id: str) -> str:
        return f"tour:{tour_id}"

    async def create(self, document: TourDocument) -> None:
        """Write a fresh document with stop slots pre-sized to the tour."""
        stop_count = len(document.tour.stops) if document.tour else 0
        record = document.to_record()
        for section in ("scripts", "audioFiles"):
            stops = record[section]["stops"]
            stops.extend([None] * (stop_count - len(stops)))
        await self._store.put(self.key_for(document.tour_id), record, self._ttl_seconds)

    async def get(self, tour_id: str) -> TourDocument | None:
        """Load a document. Raises CacheUnavailableError if the store is down."""
        raw = await self._store.get(self.key_for(tour_id))
        return TourDocument.model_validate(raw) if raw else None

    async def write_unit(
        self,
        tour_id: str,
        section: Section,
        index: int,
        entry: ScriptEntry | AudioEntry,
    ) -> bool:
        """Persist one completed (or failed) unit. Idempotent per (tour, section, index)."""
        path = unit_path(section, index)
        try:
            written = await self._store.set_path(
                self.key_for(tour_id), path, entry.model_dump(mode="json", by_alias=True)
            )
        except CacheUnavailableError as e:
            logger.warning("Failed to persist %s for tour %s: %s", path, tour_id, e)
            return False

        if not written:
            logger.warning("Tour document %s missing, %s not persisted", tour_id, path)
        return written

    async def mark_generating(self, tour_id: str) -> None:
        """Reopen an existing document for a resumed run."""
        await self._set_fields(tour_id, {"status": "generating", "error": None, "errorKind": None})

    async def mark_complete(self, tour_id: str) -> None:
        await self._set_fields(tour_id, {"status": "complete", "completedAt": utc_now_iso()})

    async def mark_failed(self, tour_id: str, error: str, error_kind: str) -> None:
        await self._set_fields(
            tour_id,
            {
                "status": "failed",
                "error": error,
                "errorKind": error_kind,
                "failedAt": utc_now_iso(),
            },
        )

    async def _set_fields(self, tour_id: str, fields: dict[str, str | None]) -> None:
        key = self.key_for(tour_id)
        try:
            for name, value in fields.items():
                if not await self._store.set_path(key, (name,), value):
                    logger.warning("Tour document %s missing, status not updated", tour_id)
                    return
        except CacheUnavailableError as e:
            logger.error("Failed to update tour %s status: %s", tour_id, e)
