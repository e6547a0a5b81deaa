"""Integration tests for the HTTP API with in-memory collaborators."""

from collections.abc import Iterator
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from backend.hearthere.api.deps import (
    get_audioguide_deps,
    get_cancellation_signal,
    get_document_store,
    get_place_cache,
    get_redis_client,
    get_suggestion_cache,
)
from backend.hearthere.cache.places import PlaceCache
from backend.hearthere.cache.suggestions import TourSuggestionCache
from backend.hearthere.main import app
from backend.hearthere.models.tour import Tour


@pytest.fixture
def client(make_deps, documents, cancellation, store) -> Iterator[TestClient]:
    """Test client with every dependency pointed at the shared in-memory store."""
    deps = make_deps()
    app.dependency_overrides[get_audioguide_deps] = lambda: deps
    app.dependency_overrides[get_document_store] = lambda: documents
    app.dependency_overrides[get_cancellation_signal] = lambda: cancellation
    app.dependency_overrides[get_suggestion_cache] = lambda: TourSuggestionCache(store)
    app.dependency_overrides[get_place_cache] = lambda: PlaceCache(store)
    app.dependency_overrides[get_redis_client] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()


def _body(tour: Tour) -> dict:
    return {
        "tour": tour.model_dump(mode="json", by_alias=True),
        "language": "english",
        "startLocation": {"lat": 32.0778, "lon": 34.7740},
        "duration": 60,
    }


class TestAudioguideRoutes:
    def test_generate_then_fetch_complete_tour(self, client: TestClient, sample_tour: Tour) -> None:
        response = client.post("/sessions/s1/tours/tour_abc/audioguide", json=_body(sample_tour))

        assert response.status_code == 202
        accepted = response.json()
        assert accepted["sessionId"] == "s1"
        assert accepted["originalTourId"] == "tour_abc"
        assert accepted["status"] == "generating"
        tour_id = accepted["tourId"]
        assert tour_id != "tour_abc"

        # TestClient runs background tasks before returning
        document = client.get(f"/tours/{tour_id}").json()
        assert document["status"] == "complete"
        assert document["originalTourId"] == "tour_abc"
        assert document["startLocation"] == "34.774,32.0778"
        assert document["voice"] == "en-GB-Wavenet-B"
        assert document["scripts"]["intro"]["status"] == "complete"
        assert [s["status"] for s in document["audioFiles"]["stops"]] == ["complete"] * 3

    def test_tour_without_stops_rejected(self, client: TestClient) -> None:
        body = {"tour": {"id": "t", "title": "Empty", "stops": []}}

        response = client.post("/sessions/s1/tours/t/audioguide", json=body)

        assert response.status_code == 400

    def test_unknown_tour_is_404(self, client: TestClient) -> None:
        response = client.get("/tours/does-not-exist")

        assert response.status_code == 404
        assert response.json()["detail"] == "tour-not-found"

    def test_cancel_before_generation(self, client: TestClient, sample_tour: Tour) -> None:
        cancel = client.post("/sessions/s1/cancel")
        assert cancel.json() == {"sessionId": "s1", "cancelled": True}

        accepted = client.post(
            "/sessions/s1/tours/tour_abc/audioguide", json=_body(sample_tour)
        ).json()

        document = client.get(f"/tours/{accepted['tourId']}").json()
        assert document["status"] == "failed"
        assert document["errorKind"] == "cancelled"


class TestSuggestionRoutes:
    def test_save_then_lookup(self, client: TestClient) -> None:
        tours = [{"id": "t1", "title": "Bauhaus"}]
        query = {"latitude": 32.0778, "longitude": 34.7740, "durationMinutes": 55}

        miss = client.post("/suggestions/lookup", json=query).json()
        assert miss == {"hit": False, "tours": []}

        saved = client.post("/suggestions", json={**query, "tours": tours}).json()
        assert saved == {"saved": True}

        hit = client.post("/suggestions/lookup", json={**query, "durationMinutes": 62}).json()
        assert hit == {"hit": True, "tours": tours}

    def test_save_requires_tours(self, client: TestClient) -> None:
        body = {"latitude": 32.0, "longitude": 34.0, "durationMinutes": 60, "tours": []}

        assert client.post("/suggestions", json=body).status_code == 422


class TestPlaceRoutes:
    PLACE = {
        "placeId": "p1",
        "name": "Bauhaus Center",
        "location": "34.774,32.0778",
        "types": ["museum"],
    }

    def test_save_then_find_nearby(self, client: TestClient) -> None:
        saved = client.put("/places/p1", json=self.PLACE)
        assert saved.json() == {"saved": True}

        response = client.post(
            "/places/nearby", json={"latitude": 32.0779, "longitude": 34.7741, "durationMinutes": 60}
        )

        data = response.json()
        assert data["radiusMeters"] == 996
        assert data["sufficient"] is False
        assert [p["placeId"] for p in data["places"]] == ["p1"]

    def test_save_rejects_mismatched_id(self, client: TestClient) -> None:
        assert client.put("/places/other", json=self.PLACE).status_code == 400

    def test_pin_keeps_place_on_refresh(self, client: TestClient) -> None:
        client.put("/places/p1", json=self.PLACE)

        pinned = client.post("/places/p1/pin", json={"pinned": True})
        assert pinned.status_code == 200
        assert pinned.json()["pinned"] is True

        client.put("/places/p1", json={**self.PLACE, "name": "Bauhaus Centre"})
        nearby = client.post(
            "/places/nearby", json={"latitude": 32.0778, "longitude": 34.774, "durationMinutes": 30}
        ).json()
        assert nearby["places"][0]["name"] == "Bauhaus Centre"
        assert nearby["places"][0]["pinned"] is True

    def test_pin_unknown_place_is_404(self, client: TestClient) -> None:
        response = client.post("/places/missing/pin", json={"pinned": True})

        assert response.status_code == 404
        assert response.json()["detail"] == "place-not-found"


class TestHealthAndMetrics:
    def test_health(self, client: TestClient) -> None:
        assert client.get("/health").json() == {"status": "ok"}

    def test_healthz_without_redis(self, client: TestClient) -> None:
        data = client.get("/healthz").json()

        assert data["status"] == "ok"
        assert data["components"]["redis"] == "not_configured"

    @patch("backend.hearthere.api.routes.health.check_redis")
    def test_healthz_503_when_redis_down(self, mock_check_redis: AsyncMock, client: TestClient) -> None:
        mock_check_redis.return_value = (False, "error: ConnectionError")

        response = client.get("/healthz")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"

    def test_healthz_pings_redis(self, client: TestClient) -> None:
        redis = AsyncMock()
        redis.ping.side_effect = RedisConnectionError("refused")
        app.dependency_overrides[get_redis_client] = lambda: redis

        response = client.get("/healthz")

        assert response.status_code == 503
        assert response.json()["components"]["redis"] == "error: ConnectionError"

    def test_metrics_exposed(self, client: TestClient, sample_tour: Tour) -> None:
        client.post("/sessions/s1/tours/tour_abc/audioguide", json=_body(sample_tour))

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "generation_attempts_total" in response.text
        assert "unit_latency_ms" in response.text
