"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Ride``: enforces valid lifecycle transitions
  (PENDING -> STARTED -> ARRIVED -> ON_TRIP -> COMPLETED | CANCELLED).
- ``PickupLocation`` is a tagged union (coordinates | address) parsed once
  when the passenger files the request.
- ``Ride.reports`` is a read-only projection; moderation owns the records.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .enums import (
    ACTIVE_STATUSES,
    RIDE_TRANSITIONS,
    PassengerStatus,
    PickupKind,
    ReportStatus,
    RideStatus,
)
from .errors import InvalidStateTransition, ValidationError


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float

    @classmethod
    def parse(cls, text: str) -> Optional["Coordinates"]:
        """Parse ``"lat,lng"``; returns None if *text* is not a coordinate pair."""
        parts = text.split(",")
        if len(parts) != 2:
            return None
        try:
            lat, lng = float(parts[0].strip()), float(parts[1].strip())
        except ValueError:
            return None
        if not (math.isfinite(lat) and math.isfinite(lng)):
            return None
        if not (-90 <= lat <= 90 and -180 <= lng <= 180):
            return None
        return cls(lat, lng)


@dataclass(frozen=True)
class PickupLocation:
    kind: PickupKind
    text: str
    coordinates: Optional[Coordinates] = None


def parse_pickup(text: Optional[str]) -> PickupLocation:
    """Classify a free-text pickup as coordinates or a geocodable address."""
    cleaned = (text or "").strip()
    if not cleaned:
        raise ValidationError("Pickup location required")
    coords = Coordinates.parse(cleaned)
    if coords is not None:
        return PickupLocation(PickupKind.COORDINATES, cleaned, coords)
    return PickupLocation(PickupKind.ADDRESS, cleaned)


@dataclass(frozen=True)
class Route:
    distance_m: int
    duration_s: int


@dataclass(frozen=True)
class ReportView:
    """What a ride exposes about reports filed against its driver."""

    id: str
    reported_by: str
    reason: str
    status: ReportStatus
    created_at: Optional[datetime] = None


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Passenger:
    user_id: str
    phone_number: str
    pickup: PickupLocation
    status: PassengerStatus = PassengerStatus.REQUESTED
    eta: Optional[int] = None  # seconds
    distance_to_pickup: Optional[int] = None  # meters
    cancel_reason: Optional[str] = None
    requested_at: Optional[datetime] = None


@dataclass
class Ride:
    id: str = ""
    driver_id: str = ""
    driver_phone: str = ""
    origin: str = ""
    destination: str = ""
    origin_coord: Optional[Coordinates] = None
    destination_coord: Optional[Coordinates] = None
    status: RideStatus = RideStatus.PENDING
    seats: int = 1
    passengers: list[Passenger] = field(default_factory=list)
    driver_location: Optional[Coordinates] = None
    start_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None
    trip_start_time: Optional[datetime] = None
    trip_end_time: Optional[datetime] = None
    trip_distance: Optional[int] = None  # meters
    trip_duration: Optional[int] = None  # seconds
    price: Optional[int] = None
    otp: Optional[str] = None
    reports: tuple[ReportView, ...] = ()
    created_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_open(self) -> bool:
        """Still accepting passenger requests."""
        return (
            self.status == RideStatus.PENDING
            and self.accepted_passenger() is None
        )

    def accepted_passenger(self) -> Optional[Passenger]:
        for p in self.passengers:
            if p.status == PassengerStatus.ACCEPTED:
                return p
        return None

    def passenger_for(self, user_id: str) -> Optional[Passenger]:
        for p in self.passengers:
            if p.user_id == user_id:
                return p
        return None

    def transition_to(self, new_status: RideStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        allowed = RIDE_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidStateTransition(
                f"Cannot transition from {self.status.value} to {new_status.value}"
            )
        self.status = new_status

    def reopen(self) -> None:
        """Return an active ride to PENDING after its passenger dropped out."""
        if not self.is_active:
            raise InvalidStateTransition(
                "Cannot cancel a completed or already cancelled ride"
            )
        self.status = RideStatus.PENDING
        # a code issued for the previous passenger must not complete the ride
        self.otp = None

    def complete_with_otp(self) -> None:
        if not self.is_active:
            raise InvalidStateTransition(
                f"Cannot complete a ride in status {self.status.value}"
            )
        self.status = RideStatus.COMPLETED
        self.otp = None


@dataclass
class Report:
    id: str = ""
    ride_id: Optional[str] = None
    reported_by: str = ""
    driver_id: str = ""
    reason: str = ""
    description: str = ""
    status: ReportStatus = ReportStatus.PENDING
    admin_note: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def view(self) -> ReportView:
        return ReportView(
            id=self.id,
            reported_by=self.reported_by,
            reason=self.reason,
            status=self.status,
            created_at=self.created_at,
        )
