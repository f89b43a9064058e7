"""
Ride Lifecycle Engine
=====================

Owns the ride state machine and the guards around each transition::

    PENDING -> STARTED -> ARRIVED -> ON_TRIP -> COMPLETED

with CANCELLED reachable from every non-terminal state, plus the
passenger-cancel reopen (active -> PENDING) and the legacy OTP completion.

Concurrency safety
------------------
* Every mutating operation runs inside ``RideRepository.transaction`` so
  read-check-write is atomic per ride; two concurrent accepts serialise and
  the loser sees the winner's ACCEPTED passenger.
* ``post_ride`` holds a per-driver lock around the "no active ride" check
  and the insert.
* Geo calls happen inside the transaction, bounded by a timeout; if one
  fails fatally the exception aborts the transaction and the stored ride is
  untouched.
"""

from __future__ import annotations

import logging
import math
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from campus_rides.domain.entities import (
    Coordinates,
    Passenger,
    PickupLocation,
    Ride,
    parse_pickup,
)
from campus_rides.domain.enums import PassengerStatus, RespondAction, RideStatus
from campus_rides.domain.errors import (
    ConflictError,
    DuplicateRequestError,
    ForbiddenError,
    InvalidStateTransition,
    PassengerNotFoundError,
    RideNotFoundError,
    SeatTakenError,
    UpstreamUnavailableError,
    ValidationError,
)
from campus_rides.domain.pricing import DistanceFare, PricingStrategy
from campus_rides.infrastructure.geo import GeoResolver, GeoResolverError
from campus_rides.infrastructure.locks import LocalLockProvider, LockProvider
from campus_rides.infrastructure.repositories import RideRepository
from campus_rides.services.enrichment import (
    measure_route,
    resolve_destination,
    resolve_pickup,
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _km(meters: Optional[int]) -> Optional[float]:
    return round(meters / 1000, 2) if meters is not None else None


def _minutes(seconds: int) -> int:
    return math.ceil(seconds / 60)


# ── Results ───────────────────────────────────────────────────────────


@dataclass
class StartRideResult:
    ride: Ride
    eta_seconds: int
    eta_minutes: int


@dataclass
class ArrivalResult:
    ride: Ride
    distance_km: Optional[float]


@dataclass
class TripStartResult:
    ride: Ride
    trip_distance_km: float
    trip_duration_minutes: int


@dataclass
class CompletionResult:
    ride: Ride
    price: int
    trip_distance_km: Optional[float]


@dataclass
class RideStats:
    rides: int
    active: int


# ── Engine ────────────────────────────────────────────────────────────


class RideLifecycleEngine:
    def __init__(
        self,
        rides: RideRepository,
        geo: GeoResolver,
        locks: Optional[LockProvider] = None,
        pricing: Optional[PricingStrategy] = None,
        geo_timeout: float = 8.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.rides = rides
        self.geo = geo
        self.locks = locks or LocalLockProvider()
        self.pricing = pricing or DistanceFare()
        self.geo_timeout = geo_timeout
        self.clock = clock

    # ── Reads ─────────────────────────────────────────────────────

    async def get_ride(self, ride_id: str) -> Ride:
        ride = await self.rides.get(ride_id)
        if ride is None:
            raise RideNotFoundError()
        return ride

    async def list_rides(
        self, *, open_only: bool = False, driver_id: Optional[str] = None
    ) -> list[Ride]:
        return await self.rides.list(open_only=open_only, driver_id=driver_id)

    async def ride_stats(self) -> RideStats:
        return RideStats(
            rides=await self.rides.count(),
            active=await self.rides.count(active_only=True),
        )

    # ── Posting & requests ────────────────────────────────────────

    async def post_ride(
        self,
        driver_id: str,
        origin: str,
        destination: str,
        phone_number: str,
        origin_coord: Optional[Coordinates] = None,
        destination_coord: Optional[Coordinates] = None,
        seats: int = 1,
    ) -> Ride:
        if not driver_id:
            raise ValidationError("Driver ID required")
        if not (origin or "").strip() or not (destination or "").strip():
            raise ValidationError("From and To locations required")
        if not (phone_number or "").strip():
            raise ValidationError("Phone number required")
        if seats != 1:
            raise ValidationError("A ride offers exactly one passenger seat")

        async with self.locks.hold(f"driver:{driver_id}"):
            ride = Ride(
                id=uuid.uuid4().hex,
                driver_id=driver_id,
                driver_phone=phone_number.strip(),
                origin=origin.strip(),
                destination=destination.strip(),
                origin_coord=origin_coord,
                destination_coord=destination_coord,
                seats=seats,
                created_at=self.clock(),
            )
            await self.rides.add(ride)
        logger.info("Ride %s posted by driver %s", ride.id, driver_id)
        return ride

    async def request_ride(
        self,
        ride_id: str,
        passenger_id: str,
        phone_number: str,
        pickup_location: str,
    ) -> Ride:
        if not passenger_id:
            raise ValidationError("Passenger ID required")
        if not (phone_number or "").strip():
            raise ValidationError("Phone number required")
        pickup = parse_pickup(pickup_location)

        async with self.rides.transaction(ride_id) as ride:
            if ride.status != RideStatus.PENDING:
                raise ConflictError(
                    f"Ride is not accepting requests in status {ride.status.value}"
                )
            if ride.passenger_for(passenger_id) is not None:
                raise DuplicateRequestError()
            if ride.accepted_passenger() is not None:
                raise SeatTakenError()
            ride.passengers.append(
                Passenger(
                    user_id=passenger_id,
                    phone_number=phone_number.strip(),
                    pickup=pickup,
                    requested_at=self.clock(),
                )
            )
        logger.info("Passenger %s requested ride %s", passenger_id, ride_id)
        return ride

    async def respond_to_request(
        self,
        ride_id: str,
        passenger_id: str,
        action: RespondAction | str,
        driver_id: Optional[str] = None,
    ) -> Ride:
        """Accept or reject one request.

        Accepting is the single-winner step: the accepted passenger takes the
        only seat and every other REQUESTED entry is rejected in the same
        transaction.  Repeating the same decision is a no-op.
        """
        try:
            action = RespondAction(action)
        except ValueError:
            raise ValidationError("Action must be ACCEPTED or REJECTED") from None

        async with self.rides.transaction(ride_id) as ride:
            if driver_id is not None:
                self._check_driver(ride, driver_id, "respond to requests")
            target = ride.passenger_for(passenger_id)
            if target is None:
                raise PassengerNotFoundError()
            if action == RespondAction.ACCEPTED:
                self._accept(ride, target)
            else:
                self._reject(target)
        return ride

    def _accept(self, ride: Ride, target: Passenger) -> None:
        if target.status == PassengerStatus.ACCEPTED:
            return
        if ride.status != RideStatus.PENDING:
            raise ConflictError("Ride is no longer accepting passengers")
        if ride.accepted_passenger() is not None:
            raise SeatTakenError()
        if target.status != PassengerStatus.REQUESTED:
            raise ConflictError(f"Request is already {target.status.value}")
        target.status = PassengerStatus.ACCEPTED
        for other in ride.passengers:
            if other is not target and other.status == PassengerStatus.REQUESTED:
                other.status = PassengerStatus.REJECTED
        logger.info("Ride %s: passenger %s accepted", ride.id, target.user_id)

    @staticmethod
    def _reject(target: Passenger) -> None:
        if target.status == PassengerStatus.REJECTED:
            return
        if target.status != PassengerStatus.REQUESTED:
            raise ConflictError(f"Request is already {target.status.value}")
        target.status = PassengerStatus.REJECTED

    # ── Driver progression ────────────────────────────────────────

    async def start_ride(
        self,
        ride_id: str,
        driver_id: str,
        driver_lat: Optional[float],
        driver_lng: Optional[float],
    ) -> StartRideResult:
        if driver_lat is None or driver_lng is None:
            raise ValidationError("Driver location required")
        location = Coordinates.parse(f"{driver_lat},{driver_lng}")
        if location is None:
            raise ValidationError("Driver location is not a valid coordinate")

        async with self.rides.transaction(ride_id) as ride:
            self._check_driver(ride, driver_id, "start this ride")
            self._require_status(ride, RideStatus.PENDING, "start")
            passenger = ride.accepted_passenger()
            if passenger is None:
                raise ValidationError("No accepted passenger for this ride")
            if passenger.pickup.coordinates is None:
                raise ValidationError("Invalid passenger pickup location")

            eta = await self._eta_seconds(location, passenger.pickup.coordinates)
            ride.transition_to(RideStatus.STARTED)
            ride.start_time = self.clock()
            ride.driver_location = location
            passenger.eta = eta
        logger.info("Ride %s started, eta %ss", ride_id, eta)
        return StartRideResult(ride=ride, eta_seconds=eta, eta_minutes=_minutes(eta))

    async def mark_arrived(self, ride_id: str, driver_id: str) -> ArrivalResult:
        async with self.rides.transaction(ride_id) as ride:
            self._check_driver(ride, driver_id, "mark arrival")
            self._require_status(ride, RideStatus.STARTED, "mark arrival for")
            passenger = ride.accepted_passenger()
            if passenger is not None and ride.driver_location is not None:
                distance = await self._distance_to_pickup(
                    ride.driver_location, passenger.pickup
                )
                if distance is not None:
                    passenger.distance_to_pickup = distance
            ride.transition_to(RideStatus.ARRIVED)
            ride.arrival_time = self.clock()
        logger.info("Ride %s: driver arrived at pickup", ride_id)
        return ArrivalResult(
            ride=ride,
            distance_km=_km(passenger.distance_to_pickup) if passenger else None,
        )

    async def start_trip(self, ride_id: str, driver_id: str) -> TripStartResult:
        async with self.rides.transaction(ride_id) as ride:
            self._check_driver(ride, driver_id, "start the trip")
            self._require_status(ride, RideStatus.ARRIVED, "start the trip for")
            passenger = ride.accepted_passenger()
            if passenger is None:
                raise ValidationError("No accepted passenger pickup location")

            try:
                pickup = await resolve_pickup(
                    passenger.pickup, self.geo, self.geo_timeout
                )
                if pickup is None:
                    raise ValidationError("Invalid passenger pickup location")
                destination = await resolve_destination(
                    ride, self.geo, self.geo_timeout
                )
                if destination is None:
                    raise ValidationError("Unable to geocode destination address")
                route = await measure_route(
                    self.geo, pickup, destination, self.geo_timeout
                )
            except GeoResolverError as exc:
                logger.warning("Ride %s: trip start aborted: %s", ride_id, exc)
                raise UpstreamUnavailableError(
                    "Routing service unavailable, please retry"
                ) from exc
            if route is None:
                raise ValidationError("Unable to calculate trip distance")

            ride.destination_coord = destination
            ride.trip_distance = route.distance_m
            ride.trip_duration = route.duration_s
            ride.trip_start_time = self.clock()
            ride.transition_to(RideStatus.ON_TRIP)
        logger.info(
            "Ride %s on trip: %dm, %ds", ride_id, route.distance_m, route.duration_s
        )
        return TripStartResult(
            ride=ride,
            trip_distance_km=_km(route.distance_m),
            trip_duration_minutes=_minutes(route.duration_s),
        )

    async def complete_trip(self, ride_id: str, driver_id: str) -> CompletionResult:
        async with self.rides.transaction(ride_id) as ride:
            self._check_driver(ride, driver_id, "complete the trip")
            self._require_status(ride, RideStatus.ON_TRIP, "complete")
            price = self.pricing.calculate(ride.trip_distance)
            ride.transition_to(RideStatus.COMPLETED)
            ride.trip_end_time = self.clock()
            ride.price = price
        logger.info("Ride %s completed, price %d", ride_id, price)
        return CompletionResult(
            ride=ride, price=price, trip_distance_km=_km(ride.trip_distance)
        )

    # ── Cancellation ──────────────────────────────────────────────

    async def cancel_by_passenger(
        self, ride_id: str, passenger_id: str, reason: Optional[str]
    ) -> Ride:
        """Passenger drops out; the ride goes back to PENDING for new requests."""
        if not reason or not reason.strip():
            raise ValidationError("Cancellation reason is required")

        async with self.rides.transaction(ride_id) as ride:
            if not ride.is_active:
                raise InvalidStateTransition(
                    "Cannot cancel a completed or already cancelled ride"
                )
            entry = ride.passenger_for(passenger_id)
            if entry is None:
                raise PassengerNotFoundError("You are not a passenger on this ride")
            if entry.status != PassengerStatus.ACCEPTED:
                raise ValidationError("Only accepted rides can be cancelled")
            entry.status = PassengerStatus.CANCELLED
            entry.cancel_reason = reason.strip()
            ride.reopen()
        logger.info("Ride %s reopened: passenger %s cancelled", ride_id, passenger_id)
        return ride

    async def cancel_by_driver(self, ride_id: str, driver_id: str) -> Ride:
        async with self.rides.transaction(ride_id) as ride:
            self._check_driver(ride, driver_id, "cancel this ride")
            ride.transition_to(RideStatus.CANCELLED)
        logger.info("Ride %s cancelled by driver", ride_id)
        return ride

    async def cascade_cancel_for_banned_driver(self, driver_id: str) -> int:
        count = await self.rides.cancel_active_for_driver(driver_id)
        logger.info("Cancelled %d active rides of banned driver %s", count, driver_id)
        return count

    async def delete_ride(self, ride_id: str) -> None:
        """Remove the ride record; reports filed against it are kept."""
        await self.rides.delete(ride_id)
        logger.info("Ride %s deleted", ride_id)

    # ── OTP completion (legacy) ───────────────────────────────────

    async def generate_otp(
        self, ride_id: str, driver_id: Optional[str] = None
    ) -> str:
        async with self.rides.transaction(ride_id) as ride:
            if driver_id is not None:
                self._check_driver(ride, driver_id, "generate a completion code")
            if not ride.is_active:
                raise InvalidStateTransition(
                    f"Cannot generate a code for a ride in status {ride.status.value}"
                )
            ride.otp = str(100000 + secrets.randbelow(900000))
        return ride.otp

    async def verify_otp(self, ride_id: str, otp: Optional[str]) -> Ride:
        if not otp:
            raise ValidationError("OTP required")
        async with self.rides.transaction(ride_id) as ride:
            if ride.otp is None or not secrets.compare_digest(
                ride.otp.encode(), str(otp).encode()
            ):
                raise ValidationError("Invalid OTP")
            ride.complete_with_otp()
        logger.info("Ride %s completed via OTP", ride_id)
        return ride

    # ── Guards & enrichment ───────────────────────────────────────

    @staticmethod
    def _check_driver(ride: Ride, driver_id: str, action: str) -> None:
        if ride.driver_id != driver_id:
            raise ForbiddenError(f"Only the ride driver can {action}")

    @staticmethod
    def _require_status(ride: Ride, status: RideStatus, action: str) -> None:
        if ride.status != status:
            raise InvalidStateTransition(
                f"Cannot {action} a ride in status {ride.status.value}; "
                f"it must be {status.value}"
            )

    async def _eta_seconds(self, origin: Coordinates, pickup: Coordinates) -> int:
        try:
            route = await measure_route(self.geo, origin, pickup, self.geo_timeout)
        except GeoResolverError as exc:
            logger.warning("ETA unavailable, using 0: %s", exc)
            return 0
        return route.duration_s if route else 0

    async def _distance_to_pickup(
        self, origin: Coordinates, pickup: PickupLocation
    ) -> Optional[int]:
        try:
            point = await resolve_pickup(pickup, self.geo, self.geo_timeout)
            if point is None:
                return None
            route = await measure_route(self.geo, origin, point, self.geo_timeout)
        except GeoResolverError as exc:
            logger.warning("Distance to pickup unavailable: %s", exc)
            return None
        return route.distance_m if route else None
