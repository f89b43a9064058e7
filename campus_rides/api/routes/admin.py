"""
Admin / moderation endpoints
============================

GET  /api/v1/admin/health                         -- simple health check
GET  /api/v1/admin/stats                          -- ride totals
GET  /api/v1/admin/reports                        -- reports, pending first
PUT  /api/v1/admin/reports/{report_id}/warn       -- warn the driver
PUT  /api/v1/admin/reports/{report_id}/dismiss    -- no action needed
PUT  /api/v1/admin/reports/{report_id}/ban        -- ban + cancel open rides
GET  /api/v1/admin/drivers/{driver_id}              -- report counts for a driver
POST /api/v1/admin/drivers/{driver_id}/cancel-rides -- cascade cancel only
DELETE /api/v1/admin/rides/{ride_id}                -- remove a ride record
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from campus_rides.api.dependencies import (
    Caller,
    get_engine,
    get_moderation,
    require_admin,
)
from campus_rides.api.middleware import limiter
from campus_rides.api.schemas import (
    BanResponse,
    CascadeResponse,
    DriverSummaryResponse,
    ERROR_RESPONSES,
    HealthResponse,
    MessageResponse,
    ReportResponse,
    ReviewRequest,
    StatsResponse,
)
from campus_rides.config import settings
from campus_rides.domain.enums import ReportStatus
from campus_rides.services.lifecycle import RideLifecycleEngine
from campus_rides.services.moderation import ModerationService

router = APIRouter(prefix="/admin", tags=["admin"], responses=ERROR_RESPONSES)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()


@router.get("/stats", response_model=StatsResponse, summary="Ride totals")
@limiter.limit(settings.rate_limit)
async def stats(
    request: Request,
    admin: Caller = Depends(require_admin),
    engine: RideLifecycleEngine = Depends(get_engine),
):
    totals = await engine.ride_stats()
    return StatsResponse(rides=totals.rides, active=totals.active)


@router.get(
    "/reports",
    response_model=list[ReportResponse],
    summary="List reports, pending first",
)
@limiter.limit(settings.rate_limit)
async def list_reports(
    request: Request,
    status: Optional[ReportStatus] = None,
    admin: Caller = Depends(require_admin),
    moderation: ModerationService = Depends(get_moderation),
):
    reports = await moderation.list_reports(status)
    return [ReportResponse.from_entity(r) for r in reports]


@router.put(
    "/reports/{report_id}/warn",
    response_model=ReportResponse,
    summary="Issue a warning to the reported driver",
)
@limiter.limit(settings.rate_limit)
async def warn_driver(
    request: Request,
    report_id: str,
    body: ReviewRequest,
    admin: Caller = Depends(require_admin),
    moderation: ModerationService = Depends(get_moderation),
):
    report = await moderation.warn(report_id, admin.id, body.admin_note)
    return ReportResponse.from_entity(report)


@router.put(
    "/reports/{report_id}/dismiss",
    response_model=ReportResponse,
    summary="Dismiss a report",
)
@limiter.limit(settings.rate_limit)
async def dismiss_report(
    request: Request,
    report_id: str,
    body: ReviewRequest,
    admin: Caller = Depends(require_admin),
    moderation: ModerationService = Depends(get_moderation),
):
    report = await moderation.dismiss(report_id, admin.id, body.admin_note)
    return ReportResponse.from_entity(report)


@router.put(
    "/reports/{report_id}/ban",
    response_model=BanResponse,
    summary="Ban the reported driver",
    description="Closes the report and cancels every open ride of the driver.",
)
@limiter.limit(settings.rate_limit)
async def ban_driver(
    request: Request,
    report_id: str,
    body: ReviewRequest,
    admin: Caller = Depends(require_admin),
    moderation: ModerationService = Depends(get_moderation),
):
    report, cancelled = await moderation.ban_driver(
        report_id, admin.id, body.admin_note
    )
    return BanResponse(
        report=ReportResponse.from_entity(report), cancelled_rides=cancelled
    )


@router.post(
    "/drivers/{driver_id}/cancel-rides",
    response_model=CascadeResponse,
    summary="Cancel every open ride of a driver",
)
@limiter.limit(settings.rate_limit)
async def cancel_driver_rides(
    request: Request,
    driver_id: str,
    admin: Caller = Depends(require_admin),
    engine: RideLifecycleEngine = Depends(get_engine),
):
    cancelled = await engine.cascade_cancel_for_banned_driver(driver_id)
    return CascadeResponse(driver_id=driver_id, cancelled_rides=cancelled)


@router.get(
    "/drivers/{driver_id}",
    response_model=DriverSummaryResponse,
    summary="Report counts for a driver",
)
@limiter.limit(settings.rate_limit)
async def driver_summary(
    request: Request,
    driver_id: str,
    admin: Caller = Depends(require_admin),
    moderation: ModerationService = Depends(get_moderation),
):
    summary = await moderation.driver_summary(driver_id)
    return DriverSummaryResponse.model_validate(summary)


@router.delete(
    "/rides/{ride_id}",
    response_model=MessageResponse,
    summary="Delete a ride record",
    description="Reports filed against the ride are kept with no ride attached.",
)
@limiter.limit(settings.rate_limit)
async def delete_ride(
    request: Request,
    ride_id: str,
    admin: Caller = Depends(require_admin),
    engine: RideLifecycleEngine = Depends(get_engine),
):
    await engine.delete_ride(ride_id)
    return MessageResponse(message="Ride deleted")
