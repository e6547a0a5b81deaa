"""Reverse geocoding: coordinates -> (country, city, neighborhood).

LocationIQ is tried first; Google Geocoding is the fallback. Neither provider
failing is an error: the result simply has null fields.
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from backend.hearthere.config import Settings, get_settings

logger = logging.getLogger(__name__)

LOCATIONIQ_URL = "https://us1.locationiq.com/v1/reverse"
GOOGLE_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

NEIGHBORHOOD_TYPES = {"sublocality", "sublocality_level_1", "neighborhood"}


@dataclass(frozen=True)
class GeocodeResult:
    country: str | None = None
    city: str | None = None
    neighborhood: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.city and not self.neighborhood


class ReverseGeocoder(Protocol):
    async def reverse(self, latitude: float, longitude: float) -> GeocodeResult:
        """Resolve coordinates. Never raises."""
        ...


def _longer(a: str | None, b: str | None) -> str | None:
    if a and b:
        return a if len(a) > len(b) else b
    return a or b or None


def parse_locationiq(data: dict[str, Any]) -> GeocodeResult:
    """Extract location fields from a LocationIQ reverse response.

    Picks the longer of city/town and of suburb/neighbourhood. A lone
    neighborhood is promoted to city.
    """
    address = data.get("address") or {}
    city = _longer(address.get("city"), address.get("town"))
    neighborhood = _longer(address.get("suburb"), address.get("neighbourhood"))

    if not city and neighborhood:
        city, neighborhood = neighborhood, None

    return GeocodeResult(country=address.get("country"), city=city, neighborhood=neighborhood)


def parse_google(data: dict[str, Any]) -> GeocodeResult:
    """Extract location fields from the first Google Geocoding result."""
    results = data.get("results") or []
    if not results or not results[0].get("address_components"):
        return GeocodeResult()

    country = city = neighborhood = None
    for component in results[0]["address_components"]:
        types = set(component.get("types", []))
        if "country" in types:
            country = component.get("long_name")
        if "locality" in types:
            city = component.get("long_name")
        if types & NEIGHBORHOOD_TYPES:
            neighborhood = component.get("long_name")

    return GeocodeResult(country=country, city=city, neighborhood=neighborhood)


class HttpReverseGeocoder:
    """LocationIQ with Google Geocoding fallback."""

    def __init__(
        self,
        locationiq_api_key: str = "",
        google_maps_api_key: str = "",
        *,
        timeout_seconds: float = 4.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize geocoder.

        Args:
            locationiq_api_key: LocationIQ key (provider skipped if empty)
            google_maps_api_key: Google Maps key (provider skipped if empty)
            timeout_seconds: Per-request timeout
            client: Optional httpx client (for testing with mocks)
        """
        self.locationiq_api_key = locationiq_api_key
        self.google_maps_api_key = google_maps_api_key
        self.timeout_seconds = timeout_seconds
        self._client = client

    async def reverse(self, latitude: float, longitude: float) -> GeocodeResult:
        close_client = False
        client = self._client
        if client is None:
            client = httpx.AsyncClient(timeout=self.timeout_seconds)
            close_client = True

        try:
            result = await self._locationiq(client, latitude, longitude)
            if not result.is_empty:
                return result

            logger.info("LocationIQ returned no data for %s,%s, trying Google", latitude, longitude)
            result = await self._google(client, latitude, longitude)
            if not result.is_empty:
                return result

            logger.warning("Reverse geocoding failed for %s,%s", latitude, longitude)
            return GeocodeResult()
        finally:
            if close_client:
                await client.aclose()

    async def _locationiq(
        self, client: httpx.AsyncClient, latitude: float, longitude: float
    ) -> GeocodeResult:
        if not self.locationiq_api_key:
            return GeocodeResult()
        params = {
            "key": self.locationiq_api_key,
            "lat": latitude,
            "lon": longitude,
            "accept-language": "en",
            "format": "json",
        }
        try:
            response = await client.get(LOCATIONIQ_URL, params=params)
            response.raise_for_status()
            return parse_locationiq(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("LocationIQ reverse geocoding failed: %s", e)
            return GeocodeResult()

    async def _google(
        self, client: httpx.AsyncClient, latitude: float, longitude: float
    ) -> GeocodeResult:
        if not self.google_maps_api_key:
            logger.warning("GOOGLE_MAPS_API_KEY is not set; skipping Google reverse geocoding")
            return GeocodeResult()
        params = {
            "latlng": f"{latitude},{longitude}",
            "location_type": "RANGE_INTERPOLATED",
            "key": self.google_maps_api_key,
        }
        try:
            response = await client.get(GOOGLE_GEOCODE_URL, params=params)
            response.raise_for_status()
            return parse_google(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Google reverse geocoding failed: %s", e)
            return GeocodeResult()


class StubReverseGeocoder:
    """Deterministic geocoder returning fixed results per coordinate pair."""

    def __init__(
        self,
        results: dict[tuple[float, float], GeocodeResult] | None = None,
        default: GeocodeResult | None = None,
    ) -> None:
        self.results = results or {}
        self.default = default or GeocodeResult()
        self.calls: list[tuple[float, float]] = []

    async def reverse(self, latitude: float, longitude: float) -> GeocodeResult:
        self.calls.append((latitude, longitude))
        return self.results.get((latitude, longitude), self.default)


def get_reverse_geocoder(settings: Settings | None = None) -> ReverseGeocoder:
    settings = settings or get_settings()
    if not settings.locationiq_api_key and not settings.google_maps_api_key:
        logger.warning("No geocoding keys configured, using stub reverse geocoder")
        return StubReverseGeocoder()
    return HttpReverseGeocoder(
        settings.locationiq_api_key,
        settings.google_maps_api_key,
        timeout_seconds=settings.geocode_timeout_seconds,
    )
