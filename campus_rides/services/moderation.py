"""
Moderation: reports against drivers and their review.

This service is the only writer of report records; rides just project
them.  Banning a driver (reviewing a report as ACCOUNT_DELETED) triggers
the lifecycle engine's cascade that cancels every open ride of that
driver.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from campus_rides.domain.entities import Report
from campus_rides.domain.enums import ReportStatus
from campus_rides.domain.errors import ConflictError, ValidationError
from campus_rides.infrastructure.repositories import ReportRepository
from campus_rides.services.lifecycle import RideLifecycleEngine, utcnow

logger = logging.getLogger(__name__)

_DEFAULT_NOTES = {
    ReportStatus.WARNING_ISSUED: "Warning issued by admin",
    ReportStatus.DISMISSED: "Dismissed by admin",
    ReportStatus.ACCOUNT_DELETED: "Account deleted by admin",
}


@dataclass
class DriverSummary:
    driver_id: str
    total_reports: int
    pending_reports: int


class ModerationService:
    def __init__(
        self,
        reports: ReportRepository,
        engine: RideLifecycleEngine,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.reports = reports
        self.engine = engine
        self.clock = clock

    async def file_report(
        self,
        ride_id: str,
        reported_by: str,
        reason: str,
        description: str,
        driver_id: Optional[str] = None,
    ) -> Report:
        if not (reason or "").strip() or not (description or "").strip():
            raise ValidationError("Reason and description are required")
        ride = await self.engine.get_ride(ride_id)
        report = Report(
            id=uuid.uuid4().hex,
            ride_id=ride.id,
            reported_by=reported_by,
            driver_id=driver_id or ride.driver_id,
            reason=reason.strip(),
            description=description.strip(),
            created_at=self.clock(),
        )
        await self.reports.add(report)
        logger.info("Report %s filed against driver %s", report.id, report.driver_id)
        return report

    async def list_reports(
        self, status: Optional[ReportStatus] = None
    ) -> list[Report]:
        """Pending reports first, each group newest first."""
        reports = await self.reports.list(status=status)
        return sorted(reports, key=lambda r: r.status != ReportStatus.PENDING)

    async def _review(
        self,
        report_id: str,
        admin_id: str,
        outcome: ReportStatus,
        note: Optional[str],
    ) -> Report:
        async with self.reports.transaction(report_id) as report:
            if report.status != ReportStatus.PENDING:
                raise ConflictError("Report has already been reviewed")
            report.status = outcome
            report.admin_note = (note or "").strip() or _DEFAULT_NOTES[outcome]
            report.reviewed_by = admin_id
            report.reviewed_at = self.clock()
        return report

    async def warn(
        self, report_id: str, admin_id: str, note: Optional[str] = None
    ) -> Report:
        return await self._review(
            report_id, admin_id, ReportStatus.WARNING_ISSUED, note
        )

    async def dismiss(
        self, report_id: str, admin_id: str, note: Optional[str] = None
    ) -> Report:
        return await self._review(report_id, admin_id, ReportStatus.DISMISSED, note)

    async def ban_driver(
        self, report_id: str, admin_id: str, note: Optional[str] = None
    ) -> tuple[Report, int]:
        """Close the report as ACCOUNT_DELETED and cancel the driver's rides."""
        report = await self._review(
            report_id, admin_id, ReportStatus.ACCOUNT_DELETED, note
        )
        cancelled = await self.engine.cascade_cancel_for_banned_driver(
            report.driver_id
        )
        logger.info(
            "Driver %s banned by %s (report %s)", report.driver_id, admin_id, report.id
        )
        return report, cancelled

    async def driver_summary(self, driver_id: str) -> DriverSummary:
        return DriverSummary(
            driver_id=driver_id,
            total_reports=await self.reports.count(driver_id=driver_id),
            pending_reports=await self.reports.count(
                driver_id=driver_id, status=ReportStatus.PENDING
            ),
        )
