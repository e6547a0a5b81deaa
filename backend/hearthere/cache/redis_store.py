"""Redis implementation of the CacheStore protocol (RedisJSON + RediSearch)."""

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from typing import Any

from redis.asyncio import Redis
from redis.commands.search.query import Query
from redis.exceptions import RedisError, ResponseError

from backend.hearthere.cache.store import (
    IndexSpec,
    PathSegment,
    RadiusQuery,
    normalize_tag,
)
from backend.hearthere.errors import CacheUnavailableError

logger = logging.getLogger(__name__)

_MISSING_INDEX_MARKERS = ("unknown index name", "no such index")
_INDEX_EXISTS_MARKER = "index already exists"
_TAG_ESCAPE = re.compile(r"([^A-Za-z0-9_])")


def to_json_path(path: tuple[PathSegment, ...]) -> str:
    """Convert ("scripts", "stops", 2) to "$.scripts.stops[2]"."""
    parts = ["$"]
    for segment in path:
        if isinstance(segment, int):
            parts.append(f"[{segment}]")
        else:
            parts.append(f".{segment}")
    return "".join(parts)


def escape_tag(value: str) -> str:
    """Escape RediSearch tag punctuation (spaces, dashes, dots, ...)."""
    return _TAG_ESCAPE.sub(r"\\\1", value)


def build_query_string(spec: IndexSpec, query: RadiusQuery) -> str:
    """Render a RadiusQuery in RediSearch query syntax.

    Example: "@duration:[60 60] @language:{english} @startLocation:[34.77 32.08 50 m]"
    """
    clauses: list[str] = []
    for numeric in query.numeric:
        clauses.append(f"@{numeric.field}:[{numeric.minimum:g} {numeric.maximum:g}]")
    for tag_name, value in query.tags.items():
        clauses.append(f"@{tag_name}:{{{escape_tag(normalize_tag(value))}}}")
    if query.geo is not None:
        geo = query.geo
        clauses.append(f"@{geo.field}:[{geo.lon} {geo.lat} {geo.radius_meters:g} m]")
    return " ".join(clauses) if clauses else "*"


def _is_missing_index(err: ResponseError) -> bool:
    message = str(err).lower()
    return any(marker in message for marker in _MISSING_INDEX_MARKERS)


class RedisCacheStore:
    """RedisJSON document store with RediSearch secondary indexes."""

    def __init__(
        self,
        client: Redis,
        index_settle_seconds: float = 0.1,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize store.

        Args:
            client: redis.asyncio client (decode_responses=True)
            index_settle_seconds: Delay after creating an index before querying it
            sleep_fn: Injectable sleep function (default: asyncio.sleep)
        """
        self._redis = client
        self._settle_seconds = index_settle_seconds
        self._sleep = sleep_fn or asyncio.sleep
        # Indexes created by this process whose first query may still miss
        self._settling: set[str] = set()

    async def put(self, key: str, record: dict[str, Any], ttl_seconds: int | None) -> None:
        try:
            await self._redis.json().set(key, "$", record)
            if ttl_seconds is None:
                await self._redis.persist(key)
            else:
                await self._redis.expire(key, ttl_seconds)
        except RedisError as e:
            raise CacheUnavailableError(f"put {key} failed: {e}") from e

    async def get(self, key: str) -> dict[str, Any] | None:
        try:
            record = await self._redis.json().get(key)
        except RedisError as e:
            raise CacheUnavailableError(f"get {key} failed: {e}") from e
        return record if isinstance(record, dict) else None

    async def set_path(self, key: str, path: tuple[PathSegment, ...], value: Any) -> bool:
        try:
            if not await self._redis.exists(key):
                return False
            await self._pad_lists(key, path)
            await self._redis.json().set(key, to_json_path(path), value)
            return True
        except RedisError as e:
            raise CacheUnavailableError(f"set_path {key} {path} failed: {e}") from e

    async def _pad_lists(self, key: str, path: tuple[PathSegment, ...]) -> None:
        """Make sure every list on the path is long enough for its index."""
        for depth, segment in enumerate(path):
            if not isinstance(segment, int):
                continue
            parent = to_json_path(path[:depth])
            lengths = await self._redis.json().arrlen(key, parent)
            current = lengths[0] if isinstance(lengths, list) else lengths
            if current is None:
                await self._redis.json().set(key, parent, [])
                current = 0
            missing = segment + 1 - current
            if missing > 0:
                await self._redis.json().arrappend(key, parent, *([None] * missing))

    async def expire(self, key: str, ttl_seconds: int | None) -> None:
        try:
            if ttl_seconds is None:
                await self._redis.persist(key)
            else:
                await self._redis.expire(key, ttl_seconds)
        except RedisError as e:
            raise CacheUnavailableError(f"expire {key} failed: {e}") from e

    async def ensure_index(self, spec: IndexSpec) -> bool:
        try:
            info = await self._redis.ft(spec.name).info()
            logger.debug(
                "Index %s exists with %s documents", spec.name, info.get("num_docs", "?")
            )
            return False
        except ResponseError as e:
            if not _is_missing_index(e):
                raise CacheUnavailableError(f"FT.INFO {spec.name} failed: {e}") from e
        except RedisError as e:
            raise CacheUnavailableError(f"FT.INFO {spec.name} failed: {e}") from e

        logger.info("Creating index %s on prefix %s", spec.name, spec.prefix)
        args: list[Any] = ["FT.CREATE", spec.name, "ON", "JSON", "PREFIX", 1, spec.prefix, "SCHEMA"]
        for index_field in spec.fields:
            args.extend([f"$.{index_field.path}", "AS", index_field.name, index_field.type.value])

        try:
            await self._redis.execute_command(*args)
        except ResponseError as e:
            if _INDEX_EXISTS_MARKER in str(e).lower():
                # Lost the creation race to another process
                return False
            raise CacheUnavailableError(f"FT.CREATE {spec.name} failed: {e}") from e
        except RedisError as e:
            raise CacheUnavailableError(f"FT.CREATE {spec.name} failed: {e}") from e

        self._settling.add(spec.name)
        await self._sleep(self._settle_seconds)
        return True

    async def query_radius(self, spec: IndexSpec, query: RadiusQuery) -> list[dict[str, Any]]:
        query_string = build_query_string(spec, query)
        settling = spec.name in self._settling
        self._settling.discard(spec.name)
        logger.debug("FT.SEARCH %s %s", spec.name, query_string)

        try:
            result = await self._redis.ft(spec.name).search(
                Query(query_string).paging(0, query.limit)
            )
        except ResponseError as e:
            if settling or _is_missing_index(e):
                logger.warning("Search on %s failed right after creation: %s", spec.name, e)
                return []
            raise CacheUnavailableError(f"FT.SEARCH {spec.name} failed: {e}") from e
        except RedisError as e:
            raise CacheUnavailableError(f"FT.SEARCH {spec.name} failed: {e}") from e

        records: list[dict[str, Any]] = []
        for doc in result.docs:
            record = await self.get(doc.id)
            if record is not None:
                records.append(record)
        return records

    async def ping(self) -> bool:
        """Connectivity check for health endpoints."""
        try:
            return bool(await self._redis.ping())
        except RedisError:
            return False
