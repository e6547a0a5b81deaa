"""Point-of-interest cache endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from backend.hearthere.api.deps import get_place_cache
from backend.hearthere.cache.places import PlaceCache, poi_search_radius
from backend.hearthere.models.cache import PlaceRecord
from backend.hearthere.models.common import CamelModel, Geo

router = APIRouter(prefix="/places", tags=["places"])


class NearbyQuery(CamelModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    duration_minutes: float = Field(..., gt=0)
    primary_only: bool = True


class NearbyResponse(CamelModel):
    radius_meters: int
    sufficient: bool
    places: list[PlaceRecord]


class PinRequest(BaseModel):
    pinned: bool


class PlaceSaved(BaseModel):
    saved: bool


@router.post("/nearby", response_model=NearbyResponse)
async def nearby_places(
    query: NearbyQuery,
    places: Annotated[PlaceCache, Depends(get_place_cache)],
) -> NearbyResponse:
    """Cached places within walking range for a tour of the given length."""
    location = Geo(lat=query.latitude, lon=query.longitude)
    radius = poi_search_radius(query.duration_minutes)
    found = await places.nearby(location, radius, primary_only=query.primary_only)
    sufficient = await places.has_sufficient_pois(location, query.duration_minutes)
    return NearbyResponse(radius_meters=radius, sufficient=sufficient, places=found)


@router.put("/{place_id}", response_model=PlaceSaved)
async def save_place(
    place_id: str,
    place: PlaceRecord,
    places: Annotated[PlaceCache, Depends(get_place_cache)],
) -> PlaceSaved:
    """Insert or refresh a place; pins, notes, tags and images are preserved."""
    if place.place_id != place_id:
        raise HTTPException(status_code=400, detail="place-id-mismatch")
    return PlaceSaved(saved=await places.upsert(place))


@router.post("/{place_id}/pin", response_model=PlaceRecord)
async def pin_place(
    place_id: str,
    request: PinRequest,
    places: Annotated[PlaceCache, Depends(get_place_cache)],
) -> PlaceRecord:
    """Pin (never expires) or unpin a cached place."""
    if not await places.set_pinned(place_id, request.pinned):
        raise HTTPException(status_code=404, detail="place-not-found")
    place = await places.get(place_id)
    if place is None:
        raise HTTPException(status_code=404, detail="place-not-found")
    return place
