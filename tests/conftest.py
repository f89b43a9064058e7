"""
Shared test fixtures.

The lifecycle engine runs on the in-memory repositories and a scripted geo
resolver, so tests need no PostgreSQL, Redis or network.  The SQL
repository has its own tests against a throwaway aiosqlite file.
"""

from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from campus_rides.api.app import create_app
from campus_rides.api.middleware import limiter
from campus_rides.domain.entities import Coordinates, Route
from campus_rides.domain.enums import RespondAction
from campus_rides.infrastructure.geo import GeoResolver, GeoResolverError
from campus_rides.services.container import Services, in_memory_services
from campus_rides.services.lifecycle import RideLifecycleEngine

DRIVER = "driver-1"
PASSENGER = "student-1"
PICKUP = "12.9716,77.5946"
DESTINATION = Coordinates(12.9352, 77.6245)


class StubGeoResolver(GeoResolver):
    """Scripted resolver.

    ``routes`` is consumed in call order; once empty, ``default_route`` is
    returned.  Setting ``fail`` makes every call raise ``GeoResolverError``.
    """

    def __init__(
        self,
        addresses: Optional[dict[str, Coordinates]] = None,
        routes: Optional[list[Optional[Route]]] = None,
        default_route: Optional[Route] = Route(1000, 120),
    ):
        self.addresses = addresses or {}
        self.routes = list(routes or [])
        self.default_route = default_route
        self.fail = False
        self.geocode_calls: list[str] = []
        self.route_calls: list[tuple[Coordinates, Coordinates]] = []

    async def geocode(self, text: str) -> Optional[Coordinates]:
        self.geocode_calls.append(text)
        if self.fail:
            raise GeoResolverError("geocoder down")
        return self.addresses.get(text)

    async def route(
        self, origin: Coordinates, destination: Coordinates
    ) -> Optional[Route]:
        self.route_calls.append((origin, destination))
        if self.fail:
            raise GeoResolverError("router down")
        if self.routes:
            return self.routes.pop(0)
        return self.default_route


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def geo() -> StubGeoResolver:
    return StubGeoResolver()


@pytest.fixture
def services(geo) -> Services:
    return in_memory_services(geo)


@pytest.fixture
def engine(services) -> RideLifecycleEngine:
    return services.engine


@pytest_asyncio.fixture
async def client(services) -> AsyncGenerator[AsyncClient, None]:
    limiter.reset()
    app = create_app(services)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ── Helpers ───────────────────────────────────────────────────────────


async def post_ride(engine: RideLifecycleEngine, driver_id: str = DRIVER, **kwargs):
    kwargs.setdefault("destination_coord", DESTINATION)
    return await engine.post_ride(
        driver_id=driver_id,
        origin=kwargs.pop("origin", "Main Gate"),
        destination=kwargs.pop("destination", "Koramangala"),
        phone_number=kwargs.pop("phone_number", "+91-90000-00001"),
        **kwargs,
    )


async def accepted_ride(
    engine: RideLifecycleEngine,
    passenger_id: str = PASSENGER,
    pickup: str = PICKUP,
):
    """A PENDING ride whose seat has been given to *passenger_id*."""
    ride = await post_ride(engine)
    await engine.request_ride(ride.id, passenger_id, "+91-98000-00001", pickup)
    return await engine.respond_to_request(
        ride.id, passenger_id, RespondAction.ACCEPTED, driver_id=DRIVER
    )
