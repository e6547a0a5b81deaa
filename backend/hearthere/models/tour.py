"""Tour input models - the immutable request the pipeline reads."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _TourModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class DirectionStep(_TourModel):
    """One turn-by-turn walking instruction."""

    instruction: str
    distance: str = ""


class WalkingDirections(_TourModel):
    """Walking directions for the leg arriving at a stop."""

    steps: list[DirectionStep] = Field(default_factory=list)


class Stop(_TourModel):
    """A single tour stop.

    Location fields (country/city/neighborhood) are optional; the preload step
    reverse-geocodes stops that lack both city and neighborhood.
    """

    id: str | None = None
    name: str = Field(..., min_length=1)
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    dwell_minutes: int = Field(0, ge=0)
    walk_minutes_from_previous: int = Field(0, ge=0)
    distance_meters: float | None = None
    street_names: list[str] = Field(default_factory=list)
    walking_directions: WalkingDirections | None = None
    country: str | None = None
    city: str | None = None
    neighborhood: str | None = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class Tour(_TourModel):
    """A generated walking tour (ordered stops plus descriptive fields)."""

    id: str
    title: str
    theme: str = ""
    abstract: str = ""
    estimated_total_minutes: int = Field(0, ge=0)
    stops: list[Stop] = Field(default_factory=list)
