"""Context preload node - resolves stop locations and area summaries.

Runs once per tour before any script is generated:
1. Reverse-geocodes stops lacking both city and neighborhood
2. Groups stops by location key
3. Fetches (or generates and caches) city and neighborhood summaries per key

A failure for one key degrades that key to empty summaries; a failure of the
whole step degrades to empty maps and scripts use the tour-level context.
"""

import asyncio
import logging
from functools import partial

from backend.hearthere.cache.summaries import EntityType, summary_entity_name
from backend.hearthere.errors import CacheUnavailableError, GenerationCancelledError
from backend.hearthere.llm.invoker import generate_text
from backend.hearthere.models.context import LocationContext, StopLocationMap, SummaryData
from backend.hearthere.models.tour import Stop
from backend.hearthere.orchestration.cancellation import check_cancellation, run_cancellable
from backend.hearthere.orchestration.deps import AudioguideDeps
from backend.hearthere.orchestration.prompts import build_summary_prompt, parse_summary
from backend.hearthere.orchestration.state import AudioguideState, StateUpdate

logger = logging.getLogger(__name__)


class SummaryLoader:
    """Read-through summary fetcher for one preload pass.

    Requests for the same entity share one in-flight task, so each entity is
    generated at most once per pass.
    """

    def __init__(self, deps: AudioguideDeps, session_id: str) -> None:
        self._deps = deps
        self._session_id = session_id
        self._inflight: dict[tuple[str, str], asyncio.Future[SummaryData]] = {}
        self.generated: list[tuple[str, str]] = []

    async def load(
        self, entity_type: EntityType, name: str | None, city: str | None = None
    ) -> SummaryData:
        if not name:
            return SummaryData()
        cache_name = summary_entity_name(entity_type, name, city)
        key = (entity_type, cache_name)
        if key not in self._inflight:
            self._inflight[key] = asyncio.ensure_future(
                self._fetch(entity_type, name, city, cache_name)
            )
        return await self._inflight[key]

    def pending(self) -> list[asyncio.Future[SummaryData]]:
        return [future for future in self._inflight.values() if not future.done()]

    async def _fetch(
        self, entity_type: EntityType, name: str, city: str | None, cache_name: str
    ) -> SummaryData:
        cached = await self._deps.summaries.get(entity_type, cache_name)
        if cached is not None:
            logger.info(f"Using cached {entity_type} summary for {cache_name}")
            return cached

        guard = partial(check_cancellation, self._deps.cancellation, self._session_id, "preload")
        prompt = build_summary_prompt(entity_type, name, city)
        try:
            result = await run_cancellable(
                generate_text(self._deps.invoker, prompt, guard=guard),
                self._deps.cancellation,
                self._session_id,
                self._deps.poll_interval,
            )
        except GenerationCancelledError:
            raise
        except Exception as e:
            logger.warning(f"Failed to generate {entity_type} summary for {cache_name}: {e}")
            return SummaryData()

        self.generated.append((entity_type, cache_name))
        data = parse_summary(result.value)
        await self._deps.summaries.put(entity_type, cache_name, data)
        return data


async def resolve_stop_location(
    deps: AudioguideDeps, stop: Stop, session_id: str
) -> tuple[str | None, str | None, str | None]:
    """(country, city, neighborhood) for a stop, reverse-geocoding if needed."""
    if stop.city or stop.neighborhood:
        return stop.country, stop.city, stop.neighborhood

    await check_cancellation(deps.cancellation, session_id, "preload")
    result = await deps.geocoder.reverse(stop.latitude, stop.longitude)

    if stop.id and not result.is_empty:
        try:
            updated = await deps.places.update_location(
                stop.id,
                country=result.country,
                city=result.city,
                neighborhood=result.neighborhood,
            )
            if not updated:
                logger.debug(f"Place {stop.id} not cached; location not written back")
        except CacheUnavailableError as e:
            logger.warning(f"Failed to update cached location for place {stop.id}: {e}")

    return result.country or stop.country, result.city, result.neighborhood


async def _cancel_and_drain(pending: list[asyncio.Future]) -> None:
    for future in pending:
        if not future.done():
            future.cancel()
    await asyncio.gather(*pending, return_exceptions=True)


async def _load_context(
    loader: SummaryLoader, country: str | None, city: str | None, neighborhood: str | None
) -> LocationContext:
    ctx = LocationContext(country=country, city=city, neighborhood=neighborhood)
    try:
        city_data, neighborhood_data = await asyncio.gather(
            loader.load("city", city),
            loader.load("neighborhood", neighborhood, city),
        )
    except GenerationCancelledError:
        raise
    except Exception as e:
        logger.warning(f"Failed to load summaries for {ctx.key}: {e}")
        return ctx
    return ctx.model_copy(update={"city_data": city_data, "neighborhood_data": neighborhood_data})


async def preload_location_summaries(deps: AudioguideDeps, state: AudioguideState) -> StateUpdate:
    """Build stop_location_map and location_summaries for the tour."""
    tour = state.tour
    logger.info(f"[preload] tour_id={state.tour_id} stops={len(tour.stops) if tour else 0}")

    try:
        stop_location_map: StopLocationMap = {}
        locations: dict[str, tuple[str | None, str | None, str | None]] = {}

        for index, stop in enumerate(tour.stops if tour else []):
            if not stop.has_coordinates:
                logger.debug(f"[preload] Stop {index} has no coordinates, skipping")
                continue
            country, city, neighborhood = await resolve_stop_location(
                deps, stop, state.session_id
            )
            key = LocationContext(country=country, city=city, neighborhood=neighborhood).key
            stop_location_map[index] = key
            locations.setdefault(key, (country, city, neighborhood))

        loader = SummaryLoader(deps, state.session_id)
        keys = list(locations)
        tasks = [asyncio.create_task(_load_context(loader, *locations[key])) for key in keys]
        try:
            contexts = await asyncio.gather(*tasks)
        except BaseException:
            await _cancel_and_drain([*tasks, *loader.pending()])
            raise
        location_summaries = dict(zip(keys, contexts))

    except GenerationCancelledError:
        raise
    except Exception as e:
        logger.error(f"[preload] Failed to preload location summaries: {e}", exc_info=True)
        return {"location_summaries": {}, "stop_location_map": {}, "phase": "context-ready"}

    logger.info(
        f"[preload] {len(location_summaries)} distinct locations, "
        f"{len(loader.generated)} summaries generated"
    )
    return {
        "location_summaries": location_summaries,
        "stop_location_map": stop_location_map,
        "phase": "context-ready",
    }
