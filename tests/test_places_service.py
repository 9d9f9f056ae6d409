"""Tests for parts_radar.services.places_service.

All HTTP calls are mocked — no real Google API requests are made.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from parts_radar.services.places_service import (
    MAX_SEARCH_RADIUS_M,
    PLACES_NEARBY_SEARCH_URL,
    PLACES_TEXT_SEARCH_URL,
    PlacesService,
    haversine_km,
    partner_distances,
)

FAKE_API_KEY = "test-api-key-123"
PATCH_TARGET = "parts_radar.services.places_service.httpx.AsyncClient"


def _places_response() -> dict:
    return {
        "places": [
            {
                "id": "ChIJ-garage",
                "displayName": {"text": "Mitte Auto Service", "languageCode": "de"},
                "formattedAddress": "Invalidenstr. 1, 10115 Berlin",
                "location": {"latitude": 52.531, "longitude": 13.384},
                "primaryType": "car_repair",
                "types": ["car_repair", "point_of_interest"],
                "rating": 4.6,
                "userRatingCount": 212,
                "nationalPhoneNumber": "030 1234567",
                "websiteUri": "https://mitte-auto.example",
            },
            {
                "id": "ChIJ-no-location",
                "displayName": {"text": "Broken Entry"},
            },
        ]
    }


def _make_mock_response(json_data: dict, status_code: int = 200) -> MagicMock:
    """Create a mock httpx.Response."""
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status_code
    resp.json.return_value = json_data
    if status_code >= 400:
        resp.raise_for_status.side_effect = httpx.HTTPStatusError(
            message="error",
            request=MagicMock(),
            response=resp,
        )
    else:
        resp.raise_for_status.return_value = None
    return resp


def _mock_client(resp: MagicMock | None = None, error: Exception | None = None) -> AsyncMock:
    client = AsyncMock(spec=httpx.AsyncClient)
    for method in (client.get, client.post):
        if error is not None:
            method.side_effect = error
        else:
            method.return_value = resp
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


@pytest.fixture
def service() -> PlacesService:
    return PlacesService(api_key=FAKE_API_KEY)


class TestTextSearch:
    async def test_parses_places_and_skips_incomplete(self, service: PlacesService) -> None:
        client = _mock_client(_make_mock_response(_places_response()))

        with patch(PATCH_TARGET, return_value=client):
            results = await service.search_text("auto repair", lat=52.52, lng=13.40, radius_km=10)

        assert len(results) == 1
        place = results[0]
        assert place.place_id == "ChIJ-garage"
        assert place.name == "Mitte Auto Service"
        assert place.lat == 52.531
        assert place.rating == 4.6
        assert place.phone == "030 1234567"

        url = client.post.call_args.args[0]
        kwargs = client.post.call_args.kwargs
        assert url == PLACES_TEXT_SEARCH_URL
        assert kwargs["headers"]["X-Goog-Api-Key"] == FAKE_API_KEY
        assert "places.displayName" in kwargs["headers"]["X-Goog-FieldMask"]
        assert kwargs["json"]["textQuery"] == "auto repair"
        assert kwargs["json"]["locationBias"]["circle"]["radius"] == 10_000

    async def test_second_call_uses_cache(self, service: PlacesService) -> None:
        client = _mock_client(_make_mock_response(_places_response()))

        with patch(PATCH_TARGET, return_value=client):
            first = await service.search_text("Auto Repair")
            second = await service.search_text("  auto repair ")

        assert first == second
        assert client.post.call_count == 1

    async def test_blank_query_makes_no_request(self, service: PlacesService) -> None:
        client = _mock_client(_make_mock_response(_places_response()))
        with patch(PATCH_TARGET, return_value=client):
            assert await service.search_text("   ") == []
        client.post.assert_not_called()


class TestNearbySearch:
    async def test_request_body(self, service: PlacesService) -> None:
        client = _mock_client(_make_mock_response({"places": []}))

        with patch(PATCH_TARGET, return_value=client):
            results = await service.search_nearby(52.52, 13.40, radius_km=500, included_types=["car_repair"])

        assert results == []
        assert client.post.call_args.args[0] == PLACES_NEARBY_SEARCH_URL
        body = client.post.call_args.kwargs["json"]
        assert body["includedTypes"] == ["car_repair"]
        assert body["locationRestriction"]["circle"]["radius"] == MAX_SEARCH_RADIUS_M


class TestFailuresDegrade:
    async def test_http_error_returns_empty(self, service: PlacesService) -> None:
        client = _mock_client(_make_mock_response({}, status_code=403))
        with patch(PATCH_TARGET, return_value=client):
            assert await service.search_text("garage") == []

    async def test_network_error_returns_empty(self, service: PlacesService) -> None:
        client = _mock_client(error=httpx.ConnectError("no route"))
        with patch(PATCH_TARGET, return_value=client):
            assert await service.search_nearby(1.0, 2.0) == []

    async def test_failures_are_not_cached(self, service: PlacesService) -> None:
        failing = _mock_client(error=httpx.ConnectError("no route"))
        working = _mock_client(_make_mock_response(_places_response()))

        with patch(PATCH_TARGET, return_value=failing):
            assert await service.search_text("garage") == []
        with patch(PATCH_TARGET, return_value=working):
            assert len(await service.search_text("garage")) == 1

    async def test_geocode_error_returns_none(self, service: PlacesService) -> None:
        client = _mock_client(error=httpx.ReadTimeout("slow"))
        with patch(PATCH_TARGET, return_value=client):
            assert await service.geocode("Alexanderplatz, Berlin") is None


class TestGeocode:
    async def test_geocode_ok(self, service: PlacesService) -> None:
        data = {
            "status": "OK",
            "results": [{
                "formatted_address": "Alexanderplatz, 10178 Berlin, Germany",
                "geometry": {"location": {"lat": 52.5219, "lng": 13.4132}},
            }],
        }
        client = _mock_client(_make_mock_response(data))

        with patch(PATCH_TARGET, return_value=client):
            point = await service.geocode("Alexanderplatz, Berlin")

        assert point is not None
        assert point.lat == 52.5219
        assert point.formatted_address.startswith("Alexanderplatz")

    def test_zero_results(self, service: PlacesService) -> None:
        assert service._parse_geocode({"status": "ZERO_RESULTS", "results": []}) is None


class TestDistances:
    def test_haversine_known_distance(self) -> None:
        # Berlin -> Hamburg is roughly 255 km
        assert haversine_km(52.52, 13.405, 53.551, 9.993) == pytest.approx(255, abs=5)

    def test_same_point_is_zero(self) -> None:
        assert haversine_km(10.0, 20.0, 10.0, 20.0) == 0

    def test_partner_distances(self) -> None:
        partners = [
            SimpleNamespace(id="near", lat=52.52, lng=13.41),
            SimpleNamespace(id="far", lat=48.137, lng=11.575),
        ]
        distances = partner_distances(partners, 52.52, 13.405)
        assert distances["near"] < 1
        assert distances["far"] > 400
