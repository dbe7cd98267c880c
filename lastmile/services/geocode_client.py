"""Async client for the TomTom search and routing APIs.

Every call is wrapped in an injected RetryPolicy (3 attempts, 2s base,
10s cap by default). Exhausted retries and empty answers both come back as
None; callers treat None as "unknown", never as zero.

Example:
    async with GeocodeClient(config.geocode) as client:
        origin = await client.geocode("12 Lê Lợi, Quận 1")
        dest = await client.geocode("1390 Võ Văn Kiệt, Quận 6")
        summary = await client.route(origin, dest)
"""

import logging
import math
from dataclasses import dataclass
from urllib.parse import quote

import httpx

from lastmile.config import GeocodeConfig
from lastmile.services.retry_policy import RetryPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lon: float


@dataclass(frozen=True)
class RouteSummary:
    """Car route with live traffic.

    Attributes:
        distance_km: Route length in kilometers.
        travel_minutes: Travel time rounded up to whole minutes.
    """

    distance_km: float
    travel_minutes: int


class GeocodeClient:
    """TomTom geocoding and routing with bounded retries.

    Attributes:
        _config: Endpoints, API key and retry budget
        _http: Shared httpx.AsyncClient (owned when created here)
        _retry: RetryPolicy applied to each request
    """

    def __init__(
        self,
        config: GeocodeConfig | None = None,
        http: httpx.AsyncClient | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        self._config = config or GeocodeConfig()
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            timeout=self._config.request_timeout_seconds
        )
        self._retry = retry or RetryPolicy(
            max_attempts=self._config.max_attempts,
            base_delay=self._config.base_delay_seconds,
            max_delay=self._config.max_delay_seconds,
        )
        self._request_count = 0

    @property
    def request_count(self) -> int:
        """HTTP requests sent by this client, retries included."""
        return self._request_count

    async def __aenter__(self) -> "GeocodeClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _get_json(self, url: str, params: dict[str, object]) -> dict:
        self._request_count += 1
        response = await self._http.get(url, params={"key": self._config.api_key, **params})
        response.raise_for_status()
        return response.json()

    async def geocode(self, address: str) -> Coordinates | None:
        """Return coordinates for ``address``, or None when not found."""
        url = f"{self._config.geocode_url}/{quote(address, safe='')}.json"

        async def _attempt() -> Coordinates | None:
            data = await self._get_json(
                url, {"countrySet": self._config.country_set, "limit": 1}
            )
            results = data.get("results") or []
            if not results:
                return None
            position = results[0]["position"]
            return Coordinates(lat=float(position["lat"]), lon=float(position["lon"]))

        try:
            coords = await self._retry.run(_attempt, label="geocode")
        except Exception as e:
            logger.warning(
                "geocode_failed code=E-3002 address=%r error=%s", address, e
            )
            return None
        if coords is None:
            logger.info("geocode_no_result address=%r", address)
        return coords

    async def route(self, origin: Coordinates, destination: Coordinates) -> RouteSummary | None:
        """Return the live-traffic car route between two points, or None."""
        url = (
            f"{self._config.routing_url}/"
            f"{origin.lat},{origin.lon}:{destination.lat},{destination.lon}/json"
        )

        async def _attempt() -> RouteSummary | None:
            data = await self._get_json(url, {"travelMode": "car", "traffic": "live"})
            routes = data.get("routes") or []
            if not routes:
                return None
            summary = routes[0]["summary"]
            return RouteSummary(
                distance_km=summary["lengthInMeters"] / 1000,
                travel_minutes=math.ceil(summary["travelTimeInSeconds"] / 60),
            )

        try:
            summary = await self._retry.run(_attempt, label="route")
        except Exception as e:
            logger.warning("route_failed code=E-3003 error=%s", e)
            return None
        if summary is None:
            logger.info("route_no_result origin=%s destination=%s", origin, destination)
        return summary
