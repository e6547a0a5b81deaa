"""In-memory implementation of the CacheStore protocol."""

import copy
import time
from collections.abc import Callable
from typing import Any

from backend.hearthere.cache.store import (
    IndexSpec,
    PathSegment,
    RadiusQuery,
    haversine_meters,
    normalize_tag,
    parse_geo,
)


def _set_nested(container: Any, path: tuple[PathSegment, ...], value: Any) -> None:
    """Walk path inside container, padding lists and creating dicts as needed."""
    node = container
    for depth, segment in enumerate(path):
        last = depth == len(path) - 1
        next_segment = None if last else path[depth + 1]
        empty: Any = [] if isinstance(next_segment, int) else {}

        if isinstance(segment, int):
            while len(node) <= segment:
                node.append(None)
            if last:
                node[segment] = value
            else:
                if node[segment] is None:
                    node[segment] = empty
                node = node[segment]
        else:
            if last:
                node[segment] = value
            else:
                if node.get(segment) is None:
                    node[segment] = empty
                node = node[segment]


class InMemoryCacheStore:
    """Dict-backed store with lazy TTL expiry and brute-force index scans."""

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        """Initialize store.

        Args:
            clock: Injectable time source in seconds (default: time.time)
        """
        self._clock = clock or time.time
        self._records: dict[str, dict[str, Any]] = {}
        self._expires_at: dict[str, float] = {}
        self._indexes: dict[str, IndexSpec] = {}

    def _purge_if_expired(self, key: str) -> None:
        expires_at = self._expires_at.get(key)
        if expires_at is not None and self._clock() >= expires_at:
            self._records.pop(key, None)
            self._expires_at.pop(key, None)

    async def put(self, key: str, record: dict[str, Any], ttl_seconds: int | None) -> None:
        self._records[key] = copy.deepcopy(record)
        await self.expire(key, ttl_seconds)

    async def get(self, key: str) -> dict[str, Any] | None:
        self._purge_if_expired(key)
        record = self._records.get(key)
        return copy.deepcopy(record) if record is not None else None

    async def set_path(self, key: str, path: tuple[PathSegment, ...], value: Any) -> bool:
        self._purge_if_expired(key)
        record = self._records.get(key)
        if record is None:
            return False
        _set_nested(record, path, copy.deepcopy(value))
        return True

    async def expire(self, key: str, ttl_seconds: int | None) -> None:
        if ttl_seconds is None:
            self._expires_at.pop(key, None)
        else:
            self._expires_at[key] = self._clock() + ttl_seconds

    def ttl(self, key: str) -> float | None:
        """Remaining TTL in seconds, or None if the key never expires."""
        expires_at = self._expires_at.get(key)
        if expires_at is None:
            return None
        return expires_at - self._clock()

    async def ensure_index(self, spec: IndexSpec) -> bool:
        if spec.name in self._indexes:
            return False
        self._indexes[spec.name] = spec
        return True

    async def query_radius(self, spec: IndexSpec, query: RadiusQuery) -> list[dict[str, Any]]:
        fields = {f.name: f for f in spec.fields}
        matches: list[dict[str, Any]] = []

        for key in sorted(self._records):
            if not key.startswith(spec.prefix):
                continue
            self._purge_if_expired(key)
            record = self._records.get(key)
            if record is None:
                continue
            if self._matches(record, fields, query):
                matches.append(copy.deepcopy(record))
            if len(matches) >= query.limit:
                break

        return matches

    @staticmethod
    def _matches(record: dict[str, Any], fields: dict, query: RadiusQuery) -> bool:
        for numeric in query.numeric:
            value = record.get(fields[numeric.field].path)
            if not isinstance(value, int | float):
                return False
            if not numeric.minimum <= value <= numeric.maximum:
                return False

        for tag_name, expected in query.tags.items():
            raw = record.get(fields[tag_name].path)
            values = raw if isinstance(raw, list) else [raw]
            if normalize_tag(expected) not in {normalize_tag(str(v)) for v in values if v is not None}:
                return False

        if query.geo is not None:
            point = parse_geo(record.get(fields[query.geo.field].path))
            if point is None:
                return False
            distance = haversine_meters(query.geo.lon, query.geo.lat, point[0], point[1])
            if distance > query.geo.radius_meters:
                return False

        return True
