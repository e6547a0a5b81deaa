"""Common types shared across all models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

UNKNOWN_SEGMENT = "unknown"

UnitStatus = Literal["pending", "complete", "failed"]


class CamelModel(BaseModel):
    """Base for persisted documents: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Geo(BaseModel):
    """Geographic coordinates (WGS84)."""

    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)

    def to_geo_string(self) -> str:
        """Return RediSearch GEO format: "lon,lat"."""
        return f"{self.lon},{self.lat}"

    @classmethod
    def from_geo_string(cls, value: str) -> "Geo":
        """Parse a "lon,lat" string."""
        lon_str, lat_str = value.split(",", 1)
        return cls(lat=float(lat_str), lon=float(lon_str))


def location_key(country: str | None, city: str | None, neighborhood: str | None) -> str:
    """Build the composite country:city:neighborhood key.

    Missing segments collapse to the "unknown" sentinel.
    """
    return ":".join(
        segment or UNKNOWN_SEGMENT for segment in (country, city, neighborhood)
    )


def utc_now_iso() -> str:
    """Current UTC timestamp in ISO-8601."""
    return datetime.utcnow().isoformat()
