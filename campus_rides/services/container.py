"""
Wiring: builds repositories, geo resolver, locks and services from settings.

The API lifespan calls ``build_services`` on startup and
``Services.aclose`` on shutdown; tests construct ``Services`` directly with
in-memory parts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable

from campus_rides.config import Settings
from campus_rides.domain.pricing import DistanceFare
from campus_rides.infrastructure.geo import GeoResolver, build_geo_resolver
from campus_rides.infrastructure.locks import (
    LocalLockProvider,
    LockProvider,
    RedisLockProvider,
)
from campus_rides.infrastructure.memory import (
    InMemoryDatabase,
    InMemoryReportRepository,
    InMemoryRideRepository,
)
from campus_rides.services.lifecycle import RideLifecycleEngine
from campus_rides.services.moderation import ModerationService


@dataclass
class Services:
    engine: RideLifecycleEngine
    moderation: ModerationService
    closers: list[Callable[[], Awaitable[None]]] = field(default_factory=list)

    async def aclose(self) -> None:
        for close in reversed(self.closers):
            await close()


def in_memory_services(
    geo: GeoResolver, settings: Settings | None = None
) -> Services:
    settings = settings or Settings()
    db = InMemoryDatabase()
    engine = RideLifecycleEngine(
        InMemoryRideRepository(db),
        geo,
        LocalLockProvider(),
        DistanceFare(settings.minimum_fare, settings.rate_per_km),
        settings.geo_timeout_seconds,
    )
    return Services(engine, ModerationService(InMemoryReportRepository(db), engine))


async def build_services(settings: Settings) -> Services:
    geo = build_geo_resolver(settings)
    closers: list[Callable[[], Awaitable[None]]] = [geo.aclose]

    locks: LockProvider
    if settings.lock_backend == "redis":
        from campus_rides.infrastructure.redis_client import close_redis, get_redis

        locks = RedisLockProvider(
            await get_redis(),
            ttl_seconds=settings.lock_ttl_seconds,
            wait_seconds=settings.lock_wait_seconds,
        )
        closers.append(close_redis)
    else:
        locks = LocalLockProvider()

    if settings.storage_backend == "postgres":
        from campus_rides.infrastructure.database import (
            build_engine,
            build_session_factory,
        )
        from campus_rides.infrastructure.repositories import (
            SqlReportRepository,
            SqlRideRepository,
        )

        db_engine = build_engine(settings.database_url)
        session_factory = build_session_factory(db_engine)
        rides = SqlRideRepository(session_factory)
        reports = SqlReportRepository(session_factory)
        closers.append(db_engine.dispose)
    else:
        db = InMemoryDatabase()
        rides = InMemoryRideRepository(db)
        reports = InMemoryReportRepository(db)

    engine = RideLifecycleEngine(
        rides,
        geo,
        locks,
        DistanceFare(settings.minimum_fare, settings.rate_per_km),
        settings.geo_timeout_seconds,
    )
    return Services(engine, ModerationService(reports, engine), closers)
