"""Read-through route cache keyed by normalized (origin, destination).

An entry is a hit only when its ``computed_at`` lies within a symmetric
window around now, so slightly future-dated entries are accepted too.
Entries are upserted with ``Session.merge`` and never deleted.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.orm import Session

from lastmile.db.models import RouteCacheEntry
from lastmile.services.geocode_client import Coordinates, GeocodeClient
from lastmile.services.text_normalizer import normalize_cache_key
from lastmile.utils.clock import local_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteResult:
    """Distance and travel time; both None when unknown."""

    distance_km: float | None
    travel_minutes: int | None

    @property
    def known(self) -> bool:
        return self.distance_km is not None and self.travel_minutes is not None


UNKNOWN_ROUTE = RouteResult(distance_km=None, travel_minutes=None)


class RouteCache:
    """Route lookups from the warehouse with a database-backed cache.

    Attributes:
        _db: Session holding route_cache rows
        _geocoder: Client used on cache misses
        _origin_address: Warehouse address, geocoded at most once
        _window: Staleness window applied on both sides of now
    """

    def __init__(
        self,
        db: Session,
        geocoder: GeocodeClient,
        origin_address: str,
        window_hours: float = 1.0,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self._db = db
        self._geocoder = geocoder
        self._origin_address = origin_address
        self._origin_key = normalize_cache_key(origin_address)
        self._window = timedelta(hours=window_hours)
        self._clock = clock
        self._origin: Coordinates | None = None
        self._origin_lock = asyncio.Lock()

    def lookup(self, destination: str, now: datetime | None = None) -> RouteResult | None:
        """Return the cached route if it is inside the window, else None."""
        now = now or self._clock()
        entry = self._db.get(
            RouteCacheEntry, (self._origin_key, normalize_cache_key(destination))
        )
        if entry is None:
            return None
        if abs(entry.computed_at - now) > self._window:
            logger.debug(
                "route_cache_stale destination=%r computed_at=%s",
                destination, entry.computed_at,
            )
            return None
        return RouteResult(entry.distance_km, entry.travel_minutes)

    async def _origin_coordinates(self) -> Coordinates | None:
        async with self._origin_lock:
            if self._origin is None:
                self._origin = await self._geocoder.geocode(self._origin_address)
            return self._origin

    async def get_route(self, destination: str, now: datetime | None = None) -> RouteResult:
        """Distance/time from the warehouse to ``destination``.

        Returns UNKNOWN_ROUTE when geocoding or routing fails.
        """
        now = now or self._clock()
        destination_key = normalize_cache_key(destination)
        if not destination_key:
            return UNKNOWN_ROUTE

        cached = self.lookup(destination, now)
        if cached is not None:
            logger.info("route_cache_hit destination=%r", destination_key)
            return cached
        logger.info("route_cache_miss destination=%r", destination_key)

        origin = await self._origin_coordinates()
        if origin is None:
            return UNKNOWN_ROUTE
        target = await self._geocoder.geocode(destination)
        if target is None:
            return UNKNOWN_ROUTE
        summary = await self._geocoder.route(origin, target)
        if summary is None:
            return UNKNOWN_ROUTE

        self._db.merge(
            RouteCacheEntry(
                origin=self._origin_key,
                destination=destination_key,
                distance_km=summary.distance_km,
                travel_minutes=summary.travel_minutes,
                computed_at=now,
            )
        )
        self._db.commit()
        logger.info(
            "route_cache_store destination=%r distance_km=%.2f travel_minutes=%d",
            destination_key, summary.distance_km, summary.travel_minutes,
        )
        return RouteResult(summary.distance_km, summary.travel_minutes)
