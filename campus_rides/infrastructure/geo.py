"""
Geo Resolver clients.

* ``OsmGeoResolver``          -- Nominatim geocoding + OSRM driving routes
  over a shared ``httpx.AsyncClient``.
* ``StraightLineGeoResolver`` -- offline fallback: understands ``"lat,lng"``
  only and estimates routes from haversine distance at a fixed speed.

Contract
--------
``geocode`` returns ``None`` when nothing matches and ``route`` returns
``None`` when no route exists.  Transport problems (connection errors,
5xx, unparsable bodies) raise ``GeoResolverError``; callers decide whether
that is fatal.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from campus_rides.config import Settings
from campus_rides.domain.distance import haversine_km
from campus_rides.domain.entities import Coordinates, Route

logger = logging.getLogger(__name__)


class GeoResolverError(Exception):
    """The geo service could not be reached or answered garbage."""


class GeoResolver(ABC):
    @abstractmethod
    async def geocode(self, text: str) -> Optional[Coordinates]: ...

    @abstractmethod
    async def route(
        self, origin: Coordinates, destination: Coordinates
    ) -> Optional[Route]: ...

    async def aclose(self) -> None:
        return None


class OsmGeoResolver(GeoResolver):
    def __init__(
        self,
        client: httpx.AsyncClient,
        nominatim_url: str = "https://nominatim.openstreetmap.org",
        osrm_url: str = "https://router.project-osrm.org",
    ):
        self.client = client
        self.nominatim_url = nominatim_url.rstrip("/")
        self.osrm_url = osrm_url.rstrip("/")

    async def _get_json(self, url: str, params: dict) -> object:
        try:
            response = await self.client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise GeoResolverError(f"Request to {url} failed: {exc}") from exc
        if response.status_code >= 500:
            raise GeoResolverError(
                f"{url} answered with status {response.status_code}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise GeoResolverError(f"{url} returned invalid JSON") from exc

    async def geocode(self, text: str) -> Optional[Coordinates]:
        """First Nominatim search hit for *text*, or None."""
        data = await self._get_json(
            f"{self.nominatim_url}/search",
            {"format": "json", "q": text, "limit": 1},
        )
        if not isinstance(data, list) or not data:
            return None
        try:
            lat = float(data[0]["lat"])
            lng = float(data[0]["lon"])
        except (KeyError, TypeError, ValueError):
            logger.warning("Unusable geocoding hit for %r: %r", text, data[0])
            return None
        return Coordinates(lat, lng)

    async def route(
        self, origin: Coordinates, destination: Coordinates
    ) -> Optional[Route]:
        # OSRM expects lng,lat pairs
        path = (
            f"{origin.lng},{origin.lat};{destination.lng},{destination.lat}"
        )
        data = await self._get_json(
            f"{self.osrm_url}/route/v1/driving/{path}", {"overview": "false"}
        )
        routes = data.get("routes") if isinstance(data, dict) else None
        if not routes:
            return None
        try:
            return Route(
                distance_m=round(routes[0]["distance"]),
                duration_s=round(routes[0]["duration"]),
            )
        except (KeyError, TypeError) as exc:
            raise GeoResolverError("OSRM route is missing distance") from exc

    async def aclose(self) -> None:
        await self.client.aclose()


class StraightLineGeoResolver(GeoResolver):
    """Network-free resolver for local development and demos."""

    def __init__(self, speed_kmh: float = 25.0):
        self.speed_kmh = speed_kmh

    async def geocode(self, text: str) -> Optional[Coordinates]:
        return Coordinates.parse(text)

    async def route(
        self, origin: Coordinates, destination: Coordinates
    ) -> Optional[Route]:
        km = haversine_km(origin.lat, origin.lng, destination.lat, destination.lng)
        return Route(
            distance_m=round(km * 1000),
            duration_s=round(km / self.speed_kmh * 3600),
        )


def build_geo_resolver(settings: Settings) -> GeoResolver:
    if settings.geo_backend == "straight_line":
        return StraightLineGeoResolver(settings.straight_line_speed_kmh)
    client = httpx.AsyncClient(
        timeout=settings.geo_timeout_seconds,
        headers={"User-Agent": settings.geo_user_agent},
    )
    return OsmGeoResolver(client, settings.nominatim_url, settings.osrm_url)
