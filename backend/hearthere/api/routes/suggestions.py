"""Tour suggestion cache endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from backend.hearthere.api.deps import get_suggestion_cache
from backend.hearthere.cache.suggestions import TourSuggestionCache
from backend.hearthere.models.common import CamelModel, Geo
from backend.hearthere.models.session import DEFAULT_LANGUAGE

router = APIRouter(prefix="/suggestions", tags=["suggestions"])


class SuggestionQuery(CamelModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    duration_minutes: float = Field(..., gt=0)
    language: str = DEFAULT_LANGUAGE
    customization: str | None = None

    @property
    def location(self) -> Geo:
        return Geo(lat=self.latitude, lon=self.longitude)


class SaveSuggestionsRequest(SuggestionQuery):
    tours: list[dict[str, Any]] = Field(..., min_length=1)


class LookupResponse(BaseModel):
    hit: bool
    tours: list[dict[str, Any]]


class SaveResponse(BaseModel):
    saved: bool


@router.post("/lookup", response_model=LookupResponse)
async def lookup_suggestions(
    query: SuggestionQuery,
    cache: Annotated[TourSuggestionCache, Depends(get_suggestion_cache)],
) -> LookupResponse:
    """Cached tours starting near the given point for the normalized duration."""
    tours = await cache.lookup(
        query.location, query.duration_minutes, query.language, query.customization
    )
    return LookupResponse(hit=tours is not None, tours=tours or [])


@router.post("", response_model=SaveResponse)
async def save_suggestions(
    request: SaveSuggestionsRequest,
    cache: Annotated[TourSuggestionCache, Depends(get_suggestion_cache)],
) -> SaveResponse:
    """Cache generated tours under the request fingerprint."""
    saved = await cache.save(
        request.location,
        request.duration_minutes,
        request.language,
        request.tours,
        request.customization,
    )
    return SaveResponse(saved=saved)
