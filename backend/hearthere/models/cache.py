"""Cache entry models for spatially-indexed records."""

from typing import Any

from pydantic import Field

from backend.hearthere.models.common import CamelModel, utc_now_iso


class SuggestionCacheEntry(CamelModel):
    """Cached tour suggestions for one request fingerprint.

    Indexed by duration, language and start point; one entry per fingerprint.
    """

    fingerprint: str
    duration: int
    language: str
    start_location: str  # "lon,lat"
    tours: list[dict[str, Any]] = Field(default_factory=list)
    created_at: str = Field(default_factory=utc_now_iso)


class PlaceRecord(CamelModel):
    """Cached point of interest.

    User-curated fields (pinned, notes, tags, images) survive re-upserts.
    A pinned place never expires.
    """

    place_id: str
    name: str
    types: list[str] = Field(default_factory=list)
    location: str  # "lon,lat"
    rating: float | None = None
    primary: bool = True
    source: str = "places_api"
    fetched_at: str = Field(default_factory=utc_now_iso)
    country: str | None = None
    city: str | None = None
    neighborhood: str | None = None
    pinned: bool = False
    notes: str | None = None
    tags: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)
