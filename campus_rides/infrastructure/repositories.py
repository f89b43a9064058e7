"""
Repository Pattern -- abstracts storage so the lifecycle engine stays
storage-agnostic.

Every mutation of a ride goes through ``RideRepository.transaction``: the
ride is loaded locked for update, handed to the caller as a plain domain
entity, and written back only when the ``async with`` block exits without
an exception.  A failure half-way through an operation therefore never
leaves a partially updated ride behind.

Two backends implement the interfaces:

* ``SqlRideRepository`` / ``SqlReportRepository`` -- async SQLAlchemy,
  ``SELECT ... FOR UPDATE`` row locks (this module);
* ``InMemoryRideRepository`` / ``InMemoryReportRepository`` -- per-ride
  ``asyncio.Lock`` (``memory.py``).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from .models import PassengerModel, ReportModel, RideModel
from campus_rides.domain.entities import (
    Coordinates,
    Passenger,
    Report,
    Ride,
    parse_pickup,
)
from campus_rides.domain.enums import (
    ACTIVE_STATUSES,
    PassengerStatus,
    ReportStatus,
    RideStatus,
)
from campus_rides.domain.errors import (
    ActiveRideExistsError,
    ReportNotFoundError,
    RideNotFoundError,
)


# ── Interfaces ────────────────────────────────────────────────────────


class RideRepository(ABC):
    @abstractmethod
    async def add(self, ride: Ride) -> Ride:
        """Insert *ride*; raises ``ActiveRideExistsError`` if the driver
        already has an active ride."""

    @abstractmethod
    async def get(self, ride_id: str) -> Optional[Ride]: ...

    @abstractmethod
    async def list(
        self, *, open_only: bool = False, driver_id: Optional[str] = None
    ) -> list[Ride]: ...

    @abstractmethod
    async def count(self, *, active_only: bool = False) -> int: ...

    @abstractmethod
    def transaction(self, ride_id: str) -> AsyncIterator[Ride]:
        """Async context manager yielding the ride locked for update."""

    @abstractmethod
    async def cancel_active_for_driver(self, driver_id: str) -> int: ...

    @abstractmethod
    async def delete(self, ride_id: str) -> None:
        """Remove *ride_id*; its reports stay with ``ride_id`` cleared.
        Raises ``RideNotFoundError`` if it does not exist."""


class ReportRepository(ABC):
    @abstractmethod
    async def add(self, report: Report) -> Report: ...

    @abstractmethod
    async def get(self, report_id: str) -> Optional[Report]: ...

    @abstractmethod
    async def list(self, *, status: Optional[ReportStatus] = None) -> list[Report]: ...

    @abstractmethod
    async def count(
        self, *, driver_id: str, status: Optional[ReportStatus] = None
    ) -> int: ...

    @abstractmethod
    def transaction(self, report_id: str) -> AsyncIterator[Report]: ...


# ── Row <-> entity mapping ────────────────────────────────────────────


def _coords(lat: Optional[float], lng: Optional[float]) -> Optional[Coordinates]:
    if lat is None or lng is None:
        return None
    return Coordinates(lat, lng)


def _report_to_entity(row: ReportModel) -> Report:
    return Report(
        id=row.id,
        ride_id=row.ride_id,
        reported_by=row.reported_by,
        driver_id=row.driver_id,
        reason=row.reason,
        description=row.description,
        status=ReportStatus(row.status),
        admin_note=row.admin_note,
        reviewed_by=row.reviewed_by,
        reviewed_at=row.reviewed_at,
        created_at=row.created_at,
    )


def _ride_to_entity(row: RideModel) -> Ride:
    return Ride(
        id=row.id,
        driver_id=row.driver_id,
        driver_phone=row.driver_phone,
        origin=row.origin,
        destination=row.destination,
        origin_coord=_coords(row.origin_lat, row.origin_lng),
        destination_coord=_coords(row.destination_lat, row.destination_lng),
        status=RideStatus(row.status),
        seats=row.seats,
        passengers=[
            Passenger(
                user_id=p.user_id,
                phone_number=p.phone_number,
                pickup=parse_pickup(p.pickup_location),
                status=PassengerStatus(p.status),
                eta=p.eta,
                distance_to_pickup=p.distance_to_pickup,
                cancel_reason=p.cancel_reason,
                requested_at=p.requested_at,
            )
            for p in row.passengers
        ],
        driver_location=_coords(row.driver_lat, row.driver_lng),
        start_time=row.start_time,
        arrival_time=row.arrival_time,
        trip_start_time=row.trip_start_time,
        trip_end_time=row.trip_end_time,
        trip_distance=row.trip_distance,
        trip_duration=row.trip_duration,
        price=row.price,
        otp=row.otp,
        reports=tuple(_report_to_entity(r).view() for r in row.reports),
        created_at=row.created_at,
    )


def _apply_ride(row: RideModel, ride: Ride) -> None:
    """Copy the mutable state of *ride* onto *row*."""
    row.driver_phone = ride.driver_phone
    row.origin = ride.origin
    row.destination = ride.destination
    row.origin_lat = ride.origin_coord.lat if ride.origin_coord else None
    row.origin_lng = ride.origin_coord.lng if ride.origin_coord else None
    row.destination_lat = (
        ride.destination_coord.lat if ride.destination_coord else None
    )
    row.destination_lng = (
        ride.destination_coord.lng if ride.destination_coord else None
    )
    row.status = ride.status
    row.seats = ride.seats
    row.driver_lat = ride.driver_location.lat if ride.driver_location else None
    row.driver_lng = ride.driver_location.lng if ride.driver_location else None
    row.start_time = ride.start_time
    row.arrival_time = ride.arrival_time
    row.trip_start_time = ride.trip_start_time
    row.trip_end_time = ride.trip_end_time
    row.trip_distance = ride.trip_distance
    row.trip_duration = ride.trip_duration
    row.price = ride.price
    row.otp = ride.otp

    existing = {p.user_id: p for p in row.passengers}
    for passenger in ride.passengers:
        prow = existing.get(passenger.user_id)
        if prow is None:
            prow = PassengerModel(
                user_id=passenger.user_id,
                requested_at=passenger.requested_at,
            )
            row.passengers.append(prow)
        prow.phone_number = passenger.phone_number
        prow.pickup_location = passenger.pickup.text
        prow.status = passenger.status
        prow.eta = passenger.eta
        prow.distance_to_pickup = passenger.distance_to_pickup
        prow.cancel_reason = passenger.cancel_reason


def _apply_report(row: ReportModel, report: Report) -> None:
    row.status = report.status
    row.admin_note = report.admin_note
    row.reviewed_by = report.reviewed_by
    row.reviewed_at = report.reviewed_at


# ── SQLAlchemy backend ────────────────────────────────────────────────


def _ride_query():
    return select(RideModel).options(
        selectinload(RideModel.passengers), selectinload(RideModel.reports)
    )


class SqlRideRepository(RideRepository):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def add(self, ride: Ride) -> Ride:
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    existing = await session.execute(
                        select(RideModel.id)
                        .where(RideModel.driver_id == ride.driver_id)
                        .where(RideModel.status.in_(sorted(ACTIVE_STATUSES)))
                        .limit(1)
                    )
                    if existing.first() is not None:
                        raise ActiveRideExistsError()
                    row = RideModel(
                        id=ride.id,
                        driver_id=ride.driver_id,
                        created_at=ride.created_at,
                        passengers=[],
                    )
                    _apply_ride(row, ride)
                    session.add(row)
            except IntegrityError as exc:
                # partial unique index lost a race with another process
                raise ActiveRideExistsError() from exc
        return ride

    async def get(self, ride_id: str) -> Optional[Ride]:
        async with self.session_factory() as session:
            result = await session.execute(
                _ride_query().where(RideModel.id == ride_id)
            )
            row = result.scalar_one_or_none()
            return _ride_to_entity(row) if row else None

    async def list(
        self, *, open_only: bool = False, driver_id: Optional[str] = None
    ) -> list[Ride]:
        query = _ride_query().order_by(RideModel.created_at.desc())
        if driver_id:
            query = query.where(RideModel.driver_id == driver_id)
        if open_only:
            query = query.where(RideModel.status == RideStatus.PENDING).where(
                ~RideModel.passengers.any(
                    PassengerModel.status == PassengerStatus.ACCEPTED
                )
            )
        async with self.session_factory() as session:
            result = await session.execute(query)
            return [_ride_to_entity(r) for r in result.scalars().all()]

    async def count(self, *, active_only: bool = False) -> int:
        query = select(func.count()).select_from(RideModel)
        if active_only:
            query = query.where(RideModel.status.in_(sorted(ACTIVE_STATUSES)))
        async with self.session_factory() as session:
            return (await session.execute(query)).scalar_one()

    @asynccontextmanager
    async def transaction(self, ride_id: str) -> AsyncIterator[Ride]:
        """SELECT ... FOR UPDATE; commit on success, rollback on error."""
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    _ride_query()
                    .where(RideModel.id == ride_id)
                    .with_for_update()
                )
                row = result.scalar_one_or_none()
                if row is None:
                    raise RideNotFoundError()
                ride = _ride_to_entity(row)
                yield ride
                _apply_ride(row, ride)

    async def cancel_active_for_driver(self, driver_id: str) -> int:
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(RideModel)
                    .where(RideModel.driver_id == driver_id)
                    .where(RideModel.status.in_(sorted(ACTIVE_STATUSES)))
                    .values(status=RideStatus.CANCELLED)
                )
                return result.rowcount or 0

    async def delete(self, ride_id: str) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(RideModel)
                    .options(selectinload(RideModel.passengers))
                    .where(RideModel.id == ride_id)
                    .with_for_update()
                )
                row = result.scalar_one_or_none()
                if row is None:
                    raise RideNotFoundError()
                await session.execute(
                    update(ReportModel)
                    .where(ReportModel.ride_id == ride_id)
                    .values(ride_id=None)
                )
                await session.delete(row)


class SqlReportRepository(ReportRepository):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def add(self, report: Report) -> Report:
        async with self.session_factory() as session:
            async with session.begin():
                session.add(
                    ReportModel(
                        id=report.id,
                        ride_id=report.ride_id,
                        reported_by=report.reported_by,
                        driver_id=report.driver_id,
                        reason=report.reason,
                        description=report.description,
                        status=report.status,
                        created_at=report.created_at,
                    )
                )
        return report

    async def get(self, report_id: str) -> Optional[Report]:
        async with self.session_factory() as session:
            row = await session.get(ReportModel, report_id)
            return _report_to_entity(row) if row else None

    async def list(self, *, status: Optional[ReportStatus] = None) -> list[Report]:
        query = select(ReportModel).order_by(ReportModel.created_at.desc())
        if status is not None:
            query = query.where(ReportModel.status == status)
        async with self.session_factory() as session:
            result = await session.execute(query)
            return [_report_to_entity(r) for r in result.scalars().all()]

    async def count(
        self, *, driver_id: str, status: Optional[ReportStatus] = None
    ) -> int:
        query = select(func.count()).select_from(ReportModel).where(
            ReportModel.driver_id == driver_id
        )
        if status is not None:
            query = query.where(ReportModel.status == status)
        async with self.session_factory() as session:
            return (await session.execute(query)).scalar_one()

    @asynccontextmanager
    async def transaction(self, report_id: str) -> AsyncIterator[Report]:
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(ReportModel)
                    .where(ReportModel.id == report_id)
                    .with_for_update()
                )
                row = result.scalar_one_or_none()
                if row is None:
                    raise ReportNotFoundError()
                report = _report_to_entity(row)
                yield report
                _apply_report(row, report)
