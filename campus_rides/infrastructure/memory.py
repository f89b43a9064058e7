"""
In-memory repositories.

Used by the test-suite and by single-process deployments
(``STORAGE_BACKEND=memory``).  Both repositories share one
``InMemoryDatabase`` so a ride can project the reports filed against it.

Atomicity: ``transaction`` holds the ride's ``asyncio.Lock`` and works on a
deep copy; the copy replaces the stored ride only if the block exits
cleanly.  Locks exist only for stored records: a lookup of an unknown id
fails before any lock is created.
"""

from __future__ import annotations

import asyncio
import copy
import dataclasses
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from .repositories import ReportRepository, RideRepository
from campus_rides.domain.entities import Report, Ride
from campus_rides.domain.enums import ReportStatus, RideStatus
from campus_rides.domain.errors import (
    ActiveRideExistsError,
    ReportNotFoundError,
    RideNotFoundError,
)


class InMemoryDatabase:
    def __init__(self) -> None:
        self.rides: dict[str, Ride] = {}
        self.reports: dict[str, Report] = {}
        self.ride_locks: dict[str, asyncio.Lock] = {}
        self.report_locks: dict[str, asyncio.Lock] = {}
        # guards the "no active ride" check + insert
        self.insert_lock = asyncio.Lock()

    def ride_lock(self, ride_id: str) -> asyncio.Lock:
        if ride_id not in self.rides:
            raise RideNotFoundError()
        return self.ride_locks.setdefault(ride_id, asyncio.Lock())

    def report_lock(self, report_id: str) -> asyncio.Lock:
        if report_id not in self.reports:
            raise ReportNotFoundError()
        return self.report_locks.setdefault(report_id, asyncio.Lock())


class InMemoryRideRepository(RideRepository):
    def __init__(self, db: Optional[InMemoryDatabase] = None):
        self.db = db or InMemoryDatabase()

    def _project(self, ride: Ride) -> Ride:
        """Detached copy carrying the current report projection."""
        views = tuple(
            r.view() for r in self.db.reports.values() if r.ride_id == ride.id
        )
        return dataclasses.replace(copy.deepcopy(ride), reports=views)

    async def add(self, ride: Ride) -> Ride:
        async with self.db.insert_lock:
            for existing in self.db.rides.values():
                if existing.driver_id == ride.driver_id and existing.is_active:
                    raise ActiveRideExistsError()
            self.db.rides[ride.id] = copy.deepcopy(ride)
        return ride

    async def get(self, ride_id: str) -> Optional[Ride]:
        ride = self.db.rides.get(ride_id)
        return self._project(ride) if ride else None

    async def list(
        self, *, open_only: bool = False, driver_id: Optional[str] = None
    ) -> list[Ride]:
        rides = [
            r
            for r in self.db.rides.values()
            if (not driver_id or r.driver_id == driver_id)
            and (not open_only or r.is_open)
        ]
        # insertion order is posting order; newest first like the SQL backend
        return [self._project(r) for r in reversed(rides)]

    async def count(self, *, active_only: bool = False) -> int:
        return sum(
            1 for r in self.db.rides.values() if not active_only or r.is_active
        )

    @asynccontextmanager
    async def transaction(self, ride_id: str) -> AsyncIterator[Ride]:
        async with self.db.ride_lock(ride_id):
            if ride_id not in self.db.rides:
                # deleted while we waited
                raise RideNotFoundError()
            working = self._project(self.db.rides[ride_id])
            yield working
            self.db.rides[ride_id] = dataclasses.replace(working, reports=())

    async def delete(self, ride_id: str) -> None:
        async with self.db.ride_lock(ride_id):
            if self.db.rides.pop(ride_id, None) is None:
                raise RideNotFoundError()
            self.db.ride_locks.pop(ride_id, None)
            for report in self.db.reports.values():
                if report.ride_id == ride_id:
                    report.ride_id = None

    async def cancel_active_for_driver(self, driver_id: str) -> int:
        cancelled = 0
        for ride_id in [
            r.id for r in self.db.rides.values() if r.driver_id == driver_id
        ]:
            try:
                lock = self.db.ride_lock(ride_id)
            except RideNotFoundError:
                continue
            async with lock:
                ride = self.db.rides.get(ride_id)
                if ride is not None and ride.is_active:
                    ride.status = RideStatus.CANCELLED
                    cancelled += 1
        return cancelled


class InMemoryReportRepository(ReportRepository):
    def __init__(self, db: Optional[InMemoryDatabase] = None):
        self.db = db or InMemoryDatabase()

    async def add(self, report: Report) -> Report:
        self.db.reports[report.id] = copy.deepcopy(report)
        return report

    async def get(self, report_id: str) -> Optional[Report]:
        report = self.db.reports.get(report_id)
        return copy.deepcopy(report) if report else None

    async def list(self, *, status: Optional[ReportStatus] = None) -> list[Report]:
        reports = [
            r
            for r in reversed(list(self.db.reports.values()))
            if status is None or r.status == status
        ]
        return [copy.deepcopy(r) for r in reports]

    async def count(
        self, *, driver_id: str, status: Optional[ReportStatus] = None
    ) -> int:
        return sum(
            1
            for r in self.db.reports.values()
            if r.driver_id == driver_id and (status is None or r.status == status)
        )

    @asynccontextmanager
    async def transaction(self, report_id: str) -> AsyncIterator[Report]:
        async with self.db.report_lock(report_id):
            working = copy.deepcopy(self.db.reports[report_id])
            yield working
            self.db.reports[report_id] = working
