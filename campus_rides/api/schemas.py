"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from campus_rides.domain.entities import Coordinates, Passenger, Report, Ride
from campus_rides.domain.enums import (
    PassengerStatus,
    PickupKind,
    ReportStatus,
    RespondAction,
    RideStatus,
)


class CoordinatesModel(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    @classmethod
    def from_entity(cls, coords: Optional[Coordinates]) -> Optional["CoordinatesModel"]:
        return cls(lat=coords.lat, lng=coords.lng) if coords else None

    def to_entity(self) -> Coordinates:
        return Coordinates(self.lat, self.lng)


# ── Requests ──────────────────────────────────────────────────────────


class RideCreateRequest(BaseModel):
    origin: str = Field(..., max_length=255, description="Display text for the start")
    destination: str = Field(..., max_length=255)
    phone_number: str = Field(..., max_length=32)
    origin_coord: Optional[CoordinatesModel] = None
    destination_coord: Optional[CoordinatesModel] = None
    seats: int = Field(1, description="Always 1: one passenger per ride.")


class RideJoinRequest(BaseModel):
    phone_number: str = Field(..., max_length=32)
    pickup_location: str = Field(
        ...,
        max_length=255,
        description='Either "lat,lng" or a free-text address.',
    )


class RespondRequest(BaseModel):
    passenger_id: str
    action: RespondAction


class StartRideRequest(BaseModel):
    driver_latitude: float = Field(..., ge=-90, le=90)
    driver_longitude: float = Field(..., ge=-180, le=180)


class PassengerCancelRequest(BaseModel):
    reason: str = ""


class VerifyOtpRequest(BaseModel):
    otp: str = ""


class ReportDriverRequest(BaseModel):
    reason: str = Field(..., max_length=120)
    description: str = ""
    driver_id: Optional[str] = None


class ReviewRequest(BaseModel):
    admin_note: Optional[str] = None


# ── Responses ─────────────────────────────────────────────────────────


class PassengerResponse(BaseModel):
    user_id: str
    status: PassengerStatus
    phone_number: str
    pickup_location: str
    pickup_kind: PickupKind
    eta: Optional[int] = None
    distance_to_pickup: Optional[int] = None
    cancel_reason: Optional[str] = None
    requested_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, p: Passenger) -> "PassengerResponse":
        return cls(
            user_id=p.user_id,
            status=p.status,
            phone_number=p.phone_number,
            pickup_location=p.pickup.text,
            pickup_kind=p.pickup.kind,
            eta=p.eta,
            distance_to_pickup=p.distance_to_pickup,
            cancel_reason=p.cancel_reason,
            requested_at=p.requested_at,
        )


class RideReportResponse(BaseModel):
    id: str
    reported_by: str
    reason: str
    status: ReportStatus
    created_at: Optional[datetime] = None


class RideResponse(BaseModel):
    id: str
    driver_id: str
    driver_phone: str
    origin: str
    destination: str
    origin_coord: Optional[CoordinatesModel] = None
    destination_coord: Optional[CoordinatesModel] = None
    status: RideStatus
    is_open: bool
    seats: int
    passengers: list[PassengerResponse] = []
    driver_location: Optional[CoordinatesModel] = None
    start_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None
    trip_start_time: Optional[datetime] = None
    trip_end_time: Optional[datetime] = None
    trip_distance: Optional[int] = None
    trip_duration: Optional[int] = None
    price: Optional[int] = None
    reports: list[RideReportResponse] = []
    created_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, ride: Ride) -> "RideResponse":
        return cls(
            id=ride.id,
            driver_id=ride.driver_id,
            driver_phone=ride.driver_phone,
            origin=ride.origin,
            destination=ride.destination,
            origin_coord=CoordinatesModel.from_entity(ride.origin_coord),
            destination_coord=CoordinatesModel.from_entity(ride.destination_coord),
            status=ride.status,
            is_open=ride.is_open,
            seats=ride.seats,
            passengers=[PassengerResponse.from_entity(p) for p in ride.passengers],
            driver_location=CoordinatesModel.from_entity(ride.driver_location),
            start_time=ride.start_time,
            arrival_time=ride.arrival_time,
            trip_start_time=ride.trip_start_time,
            trip_end_time=ride.trip_end_time,
            trip_distance=ride.trip_distance,
            trip_duration=ride.trip_duration,
            price=ride.price,
            reports=[
                RideReportResponse(
                    id=r.id,
                    reported_by=r.reported_by,
                    reason=r.reason,
                    status=r.status,
                    created_at=r.created_at,
                )
                for r in ride.reports
            ],
            created_at=ride.created_at,
        )


class StartRideResponse(BaseModel):
    ride: RideResponse
    eta: int
    eta_minutes: int


class ArrivalResponse(BaseModel):
    message: str = "Arrival confirmed. Passenger has been notified."
    ride: RideResponse
    distance_km: Optional[float] = None


class TripStartResponse(BaseModel):
    message: str = "Trip started to destination"
    ride: RideResponse
    trip_distance_km: float
    trip_duration_minutes: int


class CompletionResponse(BaseModel):
    message: str = "Ride completed at destination"
    ride: RideResponse
    trip_distance_km: Optional[float] = None
    price: int


class MessageRideResponse(BaseModel):
    message: str
    ride: RideResponse


class OtpResponse(BaseModel):
    message: str = "OTP generated"
    otp: str


class ReportResponse(BaseModel):
    id: str
    ride_id: Optional[str] = None
    reported_by: str
    driver_id: str
    reason: str
    description: str
    status: ReportStatus
    admin_note: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @classmethod
    def from_entity(cls, report: Report) -> "ReportResponse":
        return cls.model_validate(report)


class BanResponse(BaseModel):
    message: str = "Driver account has been deleted and all active rides cancelled."
    report: ReportResponse
    cancelled_rides: int


class CascadeResponse(BaseModel):
    driver_id: str
    cancelled_rides: int


class StatsResponse(BaseModel):
    rides: int
    active: int


class DriverSummaryResponse(BaseModel):
    driver_id: str
    total_reports: int
    pending_reports: int

    model_config = {"from_attributes": True}


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
    kind: Optional[str] = None


# documented on every router; bodies come from the LifecycleError handler
ERROR_RESPONSES = {
    status: {"model": ErrorResponse} for status in (400, 403, 404, 409, 503)
}
