"""
Distance / ETA enrichment on top of the Geo Resolver.

Each helper bounds the resolver call with ``asyncio.wait_for``; a timeout
surfaces as ``GeoResolverError`` just like a transport failure, so callers
handle both with one ``except``.  Whether a failure is fatal is the
caller's decision:

* start ride   -- route duration, failure means eta = 0
* arrived      -- route distance, failure leaves the distance unset
* start trip   -- both legs and the route are required (fare input)
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, TypeVar

from campus_rides.domain.entities import Coordinates, PickupLocation, Ride, Route
from campus_rides.infrastructure.geo import GeoResolver, GeoResolverError

T = TypeVar("T")


async def _bounded(call: Awaitable[T], timeout: float) -> T:
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise GeoResolverError(f"Geo resolver timed out after {timeout}s") from exc


async def resolve_pickup(
    pickup: PickupLocation, geo: GeoResolver, timeout: float
) -> Optional[Coordinates]:
    """Parsed coordinates if the passenger sent them, else geocode the address."""
    if pickup.coordinates is not None:
        return pickup.coordinates
    return await _bounded(geo.geocode(pickup.text), timeout)


async def resolve_destination(
    ride: Ride, geo: GeoResolver, timeout: float
) -> Optional[Coordinates]:
    if ride.destination_coord is not None:
        return ride.destination_coord
    return await _bounded(geo.geocode(ride.destination), timeout)


async def measure_route(
    geo: GeoResolver,
    origin: Coordinates,
    destination: Coordinates,
    timeout: float,
) -> Optional[Route]:
    return await _bounded(geo.route(origin, destination), timeout)
