"""Tests for the TomTom geocode/routing client over httpx.MockTransport."""

from unittest.mock import AsyncMock

import httpx
import pytest

from lastmile.config import GeocodeConfig
from lastmile.services.geocode_client import Coordinates, GeocodeClient, RouteSummary
from lastmile.services.retry_policy import RetryPolicy

CONFIG = GeocodeConfig(
    api_key="test-key",
    geocode_url="https://geo.test/geocode",
    routing_url="https://geo.test/route",
)


def _client(handler, sleep=None) -> GeocodeClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    retry = RetryPolicy(max_attempts=3, base_delay=2.0, max_delay=10.0, sleep=sleep or AsyncMock())
    return GeocodeClient(CONFIG, http=http, retry=retry)


class TestGeocode:
    """Tests for GeocodeClient.geocode."""

    async def test_returns_first_position(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json={"results": [{"position": {"lat": 10.77, "lon": 106.7}}]}
            )

        client = _client(handler)
        coords = await client.geocode("12 Lê Lợi, Quận 1")

        assert coords == Coordinates(lat=10.77, lon=106.7)
        assert seen[0].url.params["key"] == "test-key"
        assert seen[0].url.params["countrySet"] == "VN"
        assert seen[0].url.path.endswith(".json")

    async def test_no_results_is_none(self):
        client = _client(lambda request: httpx.Response(200, json={"results": []}))
        assert await client.geocode("nowhere") is None
        assert client.request_count == 1

    async def test_server_errors_retried_then_none(self):
        sleep = AsyncMock()
        client = _client(lambda request: httpx.Response(503), sleep=sleep)

        assert await client.geocode("12 Lê Lợi") is None
        assert client.request_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [2.0, 4.0]

    async def test_recovers_after_transient_error(self):
        responses = iter([
            httpx.Response(500),
            httpx.Response(200, json={"results": [{"position": {"lat": 1, "lon": 2}}]}),
        ])
        client = _client(lambda request: next(responses))

        assert await client.geocode("12 Lê Lợi") == Coordinates(lat=1.0, lon=2.0)
        assert client.request_count == 2


class TestRoute:
    """Tests for GeocodeClient.route."""

    async def test_converts_units(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={"routes": [{"summary": {"lengthInMeters": 12500, "travelTimeInSeconds": 1801}}]},
            )

        client = _client(handler)
        summary = await client.route(Coordinates(10.7, 106.7), Coordinates(10.8, 106.6))

        assert summary == RouteSummary(distance_km=12.5, travel_minutes=31)
        assert seen[0].url.params["travelMode"] == "car"
        assert seen[0].url.params["traffic"] == "live"
        assert "10.7,106.7:10.8,106.6" in seen[0].url.path

    async def test_no_routes_is_none(self):
        client = _client(lambda request: httpx.Response(200, json={"routes": []}))
        assert await client.route(Coordinates(0, 0), Coordinates(1, 1)) is None


@pytest.mark.asyncio
async def test_context_manager_leaves_injected_client_open():
    http = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    async with GeocodeClient(CONFIG, http=http):
        pass
    assert not http.is_closed
    await http.aclose()
