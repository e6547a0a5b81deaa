"""Cache store protocol and query types.

The cache store is a JSON document store with a secondary index supporting
numeric, tag and geo-radius predicates in one query. Two implementations
exist: ``InMemoryCacheStore`` (tests, local runs) and ``RedisCacheStore``
(RedisJSON + RediSearch).
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

# Redis GEO uses this earth radius; keep in-memory distances consistent with it.
EARTH_RADIUS_METERS = 6372797.560856

PathSegment = str | int


class FieldType(str, Enum):
    """Indexed field type."""

    TAG = "TAG"
    NUMERIC = "NUMERIC"
    GEO = "GEO"
    TEXT = "TEXT"


@dataclass(frozen=True)
class IndexField:
    """One indexed JSON field."""

    path: str  # top-level document key, e.g. "duration"
    type: FieldType
    alias: str | None = None

    @property
    def name(self) -> str:
        return self.alias or self.path


@dataclass(frozen=True)
class IndexSpec:
    """Secondary index over documents whose keys share a prefix."""

    name: str
    prefix: str
    fields: tuple[IndexField, ...]


@dataclass(frozen=True)
class NumericRange:
    """Inclusive numeric predicate."""

    field: str
    minimum: float
    maximum: float

    @classmethod
    def exact(cls, field_name: str, value: float) -> "NumericRange":
        return cls(field=field_name, minimum=value, maximum=value)


@dataclass(frozen=True)
class GeoRadius:
    """Geo predicate: stored point within radius_meters of (lon, lat)."""

    field: str
    lon: float
    lat: float
    radius_meters: float


@dataclass(frozen=True)
class RadiusQuery:
    """Conjunction of numeric, tag and geo predicates."""

    numeric: tuple[NumericRange, ...] = ()
    tags: dict[str, str] = field(default_factory=dict)
    geo: GeoRadius | None = None
    limit: int = 10


class CacheStore(Protocol):
    """Async JSON document store with TTL and spatial secondary index.

    All methods raise CacheUnavailableError when the backend is unreachable.
    """

    async def put(self, key: str, record: dict[str, Any], ttl_seconds: int | None) -> None:
        """Store a whole record. ttl_seconds=None stores without expiry."""
        ...

    async def get(self, key: str) -> dict[str, Any] | None:
        """Return the record or None if absent/expired."""
        ...

    async def set_path(self, key: str, path: tuple[PathSegment, ...], value: Any) -> bool:
        """Write one nested field of an existing record.

        List slots up to an integer segment are padded with None. Returns
        False when the record does not exist.
        """
        ...

    async def expire(self, key: str, ttl_seconds: int | None) -> None:
        """Set (or with None, clear) the record's TTL."""
        ...

    async def ensure_index(self, spec: IndexSpec) -> bool:
        """Create the index if missing. Returns True if it was just created."""
        ...

    async def query_radius(self, spec: IndexSpec, query: RadiusQuery) -> list[dict[str, Any]]:
        """Return up to query.limit records matching all predicates."""
        ...


def haversine_meters(lon1: float, lat1: float, lon2: float, lat2: float) -> float:
    """Great-circle distance in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(min(1.0, math.sqrt(a)))


def parse_geo(value: Any) -> tuple[float, float] | None:
    """Parse a "lon,lat" string into (lon, lat); None if malformed."""
    if not isinstance(value, str) or "," not in value:
        return None
    lon_str, lat_str = value.split(",", 1)
    try:
        return float(lon_str), float(lat_str)
    except ValueError:
        return None


def normalize_tag(value: str) -> str:
    """Tag predicates compare case-insensitively."""
    return value.strip().lower()
