"""Unit tests for the context preload node."""

import asyncio

import pytest

from backend.hearthere.cache.places import PlaceCache
from backend.hearthere.cache.summaries import SummaryCache
from backend.hearthere.errors import GenerationCancelledError
from backend.hearthere.geo.geocoder import GeocodeResult
from backend.hearthere.models.cache import PlaceRecord
from backend.hearthere.models.context import SummaryData
from backend.hearthere.models.tour import Stop, Tour
from backend.hearthere.orchestration.preload import preload_location_summaries
from backend.hearthere.orchestration.state import AudioguideState

LEV_HAIR_KEY = "Israel:Tel Aviv:Lev HaIr"


def _state(tour: Tour) -> AudioguideState:
    return AudioguideState(session_id="s1", tour_id="t1", tour=tour)


class TestPreload:
    @pytest.mark.asyncio
    async def test_geocodes_and_groups_stops(self, make_deps, make_generator, sample_tour, geocoder) -> None:
        primary = make_generator("primary")
        deps = make_deps(primary=primary)

        update = await preload_location_summaries(deps, _state(sample_tour))

        assert update["phase"] == "context-ready"
        assert update["stop_location_map"] == {0: LEV_HAIR_KEY, 1: LEV_HAIR_KEY, 2: LEV_HAIR_KEY}
        context = update["location_summaries"][LEV_HAIR_KEY]
        assert context.city == "Tel Aviv"
        assert not context.city_data.is_empty
        assert not context.neighborhood_data.is_empty
        assert len(geocoder.calls) == 3
        # One city and one neighborhood summary for the shared location
        assert len(primary.summary_prompts()) == 2

    @pytest.mark.asyncio
    async def test_generated_summaries_are_cached(self, make_deps, sample_tour, store) -> None:
        deps = make_deps()

        await preload_location_summaries(deps, _state(sample_tour))

        cache = SummaryCache(store)
        assert await cache.get("city", "Tel Aviv") is not None
        assert await cache.get("neighborhood", "Tel Aviv:Lev HaIr") is not None

    @pytest.mark.asyncio
    async def test_cache_hit_skips_generation(self, make_deps, make_generator, sample_tour, store) -> None:
        cache = SummaryCache(store)
        await cache.put("city", "Tel Aviv", SummaryData(summary="Cached city."))
        await cache.put("neighborhood", "Tel Aviv:Lev HaIr", SummaryData(summary="Cached hood."))
        primary = make_generator("primary")
        deps = make_deps(primary=primary)

        update = await preload_location_summaries(deps, _state(sample_tour))

        assert primary.summary_prompts() == []
        assert update["location_summaries"][LEV_HAIR_KEY].city_data.summary == "Cached city."

    @pytest.mark.asyncio
    async def test_located_stops_are_not_geocoded(self, make_deps, sample_tour, geocoder) -> None:
        stops = [
            stop.model_copy(update={"country": "Israel", "city": "Jaffa", "neighborhood": None})
            for stop in sample_tour.stops
        ]
        tour = sample_tour.model_copy(update={"stops": stops})

        update = await preload_location_summaries(make_deps(), _state(tour))

        assert geocoder.calls == []
        assert set(update["stop_location_map"].values()) == {"Israel:Jaffa:unknown"}

    @pytest.mark.asyncio
    async def test_stops_without_coordinates_skipped(self, make_deps, geocoder) -> None:
        tour = Tour(
            id="t",
            title="t",
            stops=[Stop(name="Nowhere"), Stop(name="Somewhere", latitude=32.0, longitude=34.8)],
        )

        update = await preload_location_summaries(make_deps(), _state(tour))

        assert list(update["stop_location_map"]) == [1]
        assert geocoder.calls == [(32.0, 34.8)]

    @pytest.mark.asyncio
    async def test_geocoded_location_written_to_cached_place(
        self, make_deps, sample_tour, store
    ) -> None:
        places = PlaceCache(store)
        await places.upsert(PlaceRecord(place_id="place_0", name="Dizengoff", location="34.774,32.0778"))

        await preload_location_summaries(make_deps(), _state(sample_tour))

        place = await places.get("place_0")
        assert (place.city, place.neighborhood) == ("Tel Aviv", "Lev HaIr")
        assert await places.get("place_1") is None

    @pytest.mark.asyncio
    async def test_one_entity_failure_degrades_that_entity(
        self, make_deps, make_generator, sample_tour
    ) -> None:
        def fail_city(prompt: str):
            if "about Tel Aviv." in prompt:
                return ValueError("no city")
            return None

        primary = make_generator("primary", fail_when=fail_city)
        fallback = make_generator("fallback", fail_when=fail_city)
        deps = make_deps(primary=primary, fallback=fallback)

        update = await preload_location_summaries(deps, _state(sample_tour))

        context = update["location_summaries"][LEV_HAIR_KEY]
        assert context.city_data.is_empty
        assert not context.neighborhood_data.is_empty

    @pytest.mark.asyncio
    async def test_distinct_neighborhoods_share_city_summary(
        self, make_deps, make_generator, sample_tour, geocoder
    ) -> None:
        geocoder.results[(32.0636, 34.7740)] = GeocodeResult("Israel", "Tel Aviv", "Neve Tzedek")
        primary = make_generator("primary")
        deps = make_deps(primary=primary)

        update = await preload_location_summaries(deps, _state(sample_tour))

        assert len(update["location_summaries"]) == 2
        city_prompts = [p for p in primary.summary_prompts() if "about Tel Aviv." in p]
        assert len(city_prompts) == 1
        assert len(primary.summary_prompts()) == 3

    @pytest.mark.asyncio
    async def test_step_failure_yields_empty_maps(self, make_deps, sample_tour) -> None:
        class BrokenGeocoder:
            async def reverse(self, latitude: float, longitude: float) -> GeocodeResult:
                raise RuntimeError("geocoder exploded")

        deps = make_deps()
        deps.geocoder = BrokenGeocoder()

        update = await preload_location_summaries(deps, _state(sample_tour))

        assert update == {"location_summaries": {}, "stop_location_map": {}, "phase": "context-ready"}

    @pytest.mark.asyncio
    async def test_cancellation_stops_sibling_summaries(
        self, make_deps, sample_tour, geocoder
    ) -> None:
        geocoder.results[(32.0636, 34.7740)] = GeocodeResult("Israel", "Tel Aviv", "Neve Tzedek")

        class CancelOnCity:
            name = "primary"

            def __init__(self) -> None:
                self.release = asyncio.Event()
                self.finished: list[str] = []

            async def generate(self, prompt: str) -> str:
                if "about Tel Aviv." in prompt:
                    raise GenerationCancelledError()
                await self.release.wait()
                self.finished.append(prompt)
                return '{"summary": "Too late."}'

        generator = CancelOnCity()
        deps = make_deps(primary=generator)

        with pytest.raises(GenerationCancelledError):
            await preload_location_summaries(deps, _state(sample_tour))

        generator.release.set()
        await asyncio.sleep(0.05)
        assert generator.finished == []
