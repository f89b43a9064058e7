"""
Ride endpoints
==============

POST /api/v1/rides                       -- driver posts a ride (201)
GET  /api/v1/rides                       -- list rides (?open=true, ?driver_id=)
GET  /api/v1/rides/{ride_id}             -- ride with passengers and stage
POST /api/v1/rides/{ride_id}/request     -- passenger asks for the seat
PUT  /api/v1/rides/{ride_id}/response    -- driver accepts / rejects a request
POST /api/v1/rides/{ride_id}/start       -- driver heads to the pickup
POST /api/v1/rides/{ride_id}/arrived     -- driver is at the pickup
POST /api/v1/rides/{ride_id}/start-trip  -- passenger on board
POST /api/v1/rides/{ride_id}/complete    -- destination reached, fare set
POST /api/v1/rides/{ride_id}/cancel-passenger -- accepted passenger drops out
POST /api/v1/rides/{ride_id}/cancel      -- driver withdraws the ride
POST /api/v1/rides/{ride_id}/generate-otp / verify-otp -- legacy completion
POST /api/v1/rides/{ride_id}/report-driver -- file an incident report

Caller identity is resolved by ``get_caller``; guard failures raised by
the engine are mapped to HTTP statuses by the app's exception handler.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from campus_rides.api.dependencies import (
    Caller,
    get_caller,
    get_engine,
    get_moderation,
)
from campus_rides.api.middleware import limiter
from campus_rides.api.schemas import (
    ArrivalResponse,
    CompletionResponse,
    ERROR_RESPONSES,
    MessageRideResponse,
    OtpResponse,
    PassengerCancelRequest,
    ReportDriverRequest,
    ReportResponse,
    RespondRequest,
    RideCreateRequest,
    RideJoinRequest,
    RideResponse,
    StartRideRequest,
    StartRideResponse,
    TripStartResponse,
    VerifyOtpRequest,
)
from campus_rides.config import settings
from campus_rides.services.lifecycle import RideLifecycleEngine
from campus_rides.services.moderation import ModerationService

router = APIRouter(prefix="/rides", tags=["rides"], responses=ERROR_RESPONSES)


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Post a ride (one active ride per driver)",
)
@limiter.limit(settings.rate_limit)
async def post_ride(
    request: Request,
    body: RideCreateRequest,
    caller: Caller = Depends(get_caller),
    engine: RideLifecycleEngine = Depends(get_engine),
):
    ride = await engine.post_ride(
        driver_id=caller.id,
        origin=body.origin,
        destination=body.destination,
        phone_number=body.phone_number,
        origin_coord=body.origin_coord.to_entity() if body.origin_coord else None,
        destination_coord=(
            body.destination_coord.to_entity() if body.destination_coord else None
        ),
        seats=body.seats,
    )
    return RideResponse.from_entity(ride)


@router.get("", response_model=list[RideResponse], summary="List rides")
@limiter.limit(settings.rate_limit)
async def list_rides(
    request: Request,
    open: bool = False,
    driver_id: Optional[str] = None,
    engine: RideLifecycleEngine = Depends(get_engine),
):
    rides = await engine.list_rides(open_only=open, driver_id=driver_id)
    return [RideResponse.from_entity(r) for r in rides]


@router.get("/{ride_id}", response_model=RideResponse, summary="Get a ride")
@limiter.limit(settings.rate_limit)
async def get_ride(
    request: Request,
    ride_id: str,
    engine: RideLifecycleEngine = Depends(get_engine),
):
    return RideResponse.from_entity(await engine.get_ride(ride_id))


@router.post(
    "/{ride_id}/request",
    response_model=RideResponse,
    summary="Request the seat on a ride",
)
@limiter.limit(settings.rate_limit)
async def request_ride(
    request: Request,
    ride_id: str,
    body: RideJoinRequest,
    caller: Caller = Depends(get_caller),
    engine: RideLifecycleEngine = Depends(get_engine),
):
    ride = await engine.request_ride(
        ride_id, caller.id, body.phone_number, body.pickup_location
    )
    return RideResponse.from_entity(ride)


@router.put(
    "/{ride_id}/response",
    response_model=RideResponse,
    summary="Accept or reject a passenger request",
    description=(
        "Accepting a passenger rejects every other pending request. "
        "Only one passenger can hold the seat."
    ),
)
@limiter.limit(settings.rate_limit)
async def respond_to_request(
    request: Request,
    ride_id: str,
    body: RespondRequest,
    caller: Caller = Depends(get_caller),
    engine: RideLifecycleEngine = Depends(get_engine),
):
    ride = await engine.respond_to_request(
        ride_id, body.passenger_id, body.action, driver_id=caller.id
    )
    return RideResponse.from_entity(ride)


@router.post(
    "/{ride_id}/start",
    response_model=StartRideResponse,
    summary="Start driving to the passenger",
)
@limiter.limit(settings.rate_limit)
async def start_ride(
    request: Request,
    ride_id: str,
    body: StartRideRequest,
    caller: Caller = Depends(get_caller),
    engine: RideLifecycleEngine = Depends(get_engine),
):
    result = await engine.start_ride(
        ride_id, caller.id, body.driver_latitude, body.driver_longitude
    )
    return StartRideResponse(
        ride=RideResponse.from_entity(result.ride),
        eta=result.eta_seconds,
        eta_minutes=result.eta_minutes,
    )


@router.post(
    "/{ride_id}/arrived",
    response_model=ArrivalResponse,
    summary="Mark arrival at the pickup",
)
@limiter.limit(settings.rate_limit)
async def mark_arrived(
    request: Request,
    ride_id: str,
    caller: Caller = Depends(get_caller),
    engine: RideLifecycleEngine = Depends(get_engine),
):
    result = await engine.mark_arrived(ride_id, caller.id)
    return ArrivalResponse(
        ride=RideResponse.from_entity(result.ride),
        distance_km=result.distance_km,
    )


@router.post(
    "/{ride_id}/start-trip",
    response_model=TripStartResponse,
    summary="Start the trip to the destination",
)
@limiter.limit(settings.rate_limit)
async def start_trip(
    request: Request,
    ride_id: str,
    caller: Caller = Depends(get_caller),
    engine: RideLifecycleEngine = Depends(get_engine),
):
    result = await engine.start_trip(ride_id, caller.id)
    return TripStartResponse(
        ride=RideResponse.from_entity(result.ride),
        trip_distance_km=result.trip_distance_km,
        trip_duration_minutes=result.trip_duration_minutes,
    )


@router.post(
    "/{ride_id}/complete",
    response_model=CompletionResponse,
    summary="Complete the trip and compute the fare",
)
@limiter.limit(settings.rate_limit)
async def complete_trip(
    request: Request,
    ride_id: str,
    caller: Caller = Depends(get_caller),
    engine: RideLifecycleEngine = Depends(get_engine),
):
    result = await engine.complete_trip(ride_id, caller.id)
    return CompletionResponse(
        ride=RideResponse.from_entity(result.ride),
        trip_distance_km=result.trip_distance_km,
        price=result.price,
    )


@router.post(
    "/{ride_id}/cancel-passenger",
    response_model=MessageRideResponse,
    summary="Passenger cancels an accepted ride",
    description="The ride goes back to PENDING so the driver can take a new passenger.",
)
@limiter.limit(settings.rate_limit)
async def cancel_by_passenger(
    request: Request,
    ride_id: str,
    body: PassengerCancelRequest,
    caller: Caller = Depends(get_caller),
    engine: RideLifecycleEngine = Depends(get_engine),
):
    ride = await engine.cancel_by_passenger(ride_id, caller.id, body.reason)
    return MessageRideResponse(
        message="Trip cancelled successfully. Driver has been notified.",
        ride=RideResponse.from_entity(ride),
    )


@router.post(
    "/{ride_id}/cancel",
    response_model=MessageRideResponse,
    summary="Driver cancels the ride",
)
@limiter.limit(settings.rate_limit)
async def cancel_by_driver(
    request: Request,
    ride_id: str,
    caller: Caller = Depends(get_caller),
    engine: RideLifecycleEngine = Depends(get_engine),
):
    ride = await engine.cancel_by_driver(ride_id, caller.id)
    return MessageRideResponse(
        message="Ride cancelled", ride=RideResponse.from_entity(ride)
    )


@router.post(
    "/{ride_id}/generate-otp",
    response_model=OtpResponse,
    summary="Generate a completion code",
)
@limiter.limit(settings.rate_limit)
async def generate_otp(
    request: Request,
    ride_id: str,
    caller: Caller = Depends(get_caller),
    engine: RideLifecycleEngine = Depends(get_engine),
):
    return OtpResponse(otp=await engine.generate_otp(ride_id, caller.id))


@router.post(
    "/{ride_id}/verify-otp",
    response_model=RideResponse,
    summary="Complete a ride with its code",
)
@limiter.limit(settings.rate_limit)
async def verify_otp(
    request: Request,
    ride_id: str,
    body: VerifyOtpRequest,
    engine: RideLifecycleEngine = Depends(get_engine),
):
    return RideResponse.from_entity(await engine.verify_otp(ride_id, body.otp))


@router.post(
    "/{ride_id}/report-driver",
    status_code=201,
    response_model=ReportResponse,
    summary="Report the driver of a ride",
)
@limiter.limit(settings.rate_limit)
async def report_driver(
    request: Request,
    ride_id: str,
    body: ReportDriverRequest,
    caller: Caller = Depends(get_caller),
    moderation: ModerationService = Depends(get_moderation),
):
    report = await moderation.file_report(
        ride_id, caller.id, body.reason, body.description, driver_id=body.driver_id
    )
    return ReportResponse.from_entity(report)
