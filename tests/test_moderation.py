"""Moderation tests: filing and reviewing reports, ban cascade, and the
read-only report projection on rides."""

import pytest

from campus_rides.domain.enums import ReportStatus, RideStatus
from campus_rides.domain.errors import (
    ConflictError,
    ReportNotFoundError,
    RideNotFoundError,
    ValidationError,
)
from tests.conftest import DRIVER, PASSENGER, accepted_ride, post_ride


@pytest.fixture
def moderation(services):
    return services.moderation


async def _report(moderation, ride_id, reason="Rash driving"):
    return await moderation.file_report(
        ride_id, PASSENGER, reason, "Jumped two red lights near the gate"
    )


class TestFiling:
    @pytest.mark.asyncio
    async def test_report_targets_ride_driver(self, engine, moderation):
        ride = await post_ride(engine)
        report = await _report(moderation, ride.id)
        assert report.driver_id == DRIVER
        assert report.status == ReportStatus.PENDING
        assert report.created_at is not None

    @pytest.mark.asyncio
    async def test_ride_projects_reports(self, engine, moderation):
        ride = await post_ride(engine)
        report = await _report(moderation, ride.id)

        projected = (await engine.get_ride(ride.id)).reports
        assert [r.id for r in projected] == [report.id]
        assert projected[0].reason == "Rash driving"
        assert projected[0].status == ReportStatus.PENDING

    @pytest.mark.asyncio
    async def test_projection_survives_lifecycle_writes(self, engine, moderation):
        ride = await accepted_ride(engine)
        await _report(moderation, ride.id)
        started = await engine.start_ride(ride.id, DRIVER, 12.98, 77.60)
        assert len(started.ride.reports) == 1

    @pytest.mark.asyncio
    async def test_reason_and_description_required(self, engine, moderation):
        ride = await post_ride(engine)
        with pytest.raises(ValidationError):
            await moderation.file_report(ride.id, PASSENGER, "Rash driving", " ")
        with pytest.raises(ValidationError):
            await moderation.file_report(ride.id, PASSENGER, "", "details")

    @pytest.mark.asyncio
    async def test_unknown_ride(self, moderation):
        with pytest.raises(RideNotFoundError):
            await _report(moderation, "missing")


class TestReview:
    @pytest.mark.asyncio
    async def test_warn_sets_default_note(self, engine, moderation):
        ride = await post_ride(engine)
        report = await _report(moderation, ride.id)

        reviewed = await moderation.warn(report.id, "admin-1")

        assert reviewed.status == ReportStatus.WARNING_ISSUED
        assert reviewed.admin_note == "Warning issued by admin"
        assert reviewed.reviewed_by == "admin-1"
        assert reviewed.reviewed_at is not None
        assert (await engine.get_ride(ride.id)).status == RideStatus.PENDING

    @pytest.mark.asyncio
    async def test_dismiss_keeps_custom_note(self, engine, moderation):
        ride = await post_ride(engine)
        report = await _report(moderation, ride.id)
        reviewed = await moderation.dismiss(report.id, "admin-1", "Not a violation")
        assert reviewed.status == ReportStatus.DISMISSED
        assert reviewed.admin_note == "Not a violation"

    @pytest.mark.asyncio
    async def test_report_is_reviewed_once(self, engine, moderation):
        ride = await post_ride(engine)
        report = await _report(moderation, ride.id)
        await moderation.dismiss(report.id, "admin-1")
        with pytest.raises(ConflictError, match="already been reviewed"):
            await moderation.warn(report.id, "admin-2")

    @pytest.mark.asyncio
    async def test_unknown_report(self, moderation):
        with pytest.raises(ReportNotFoundError):
            await moderation.warn("missing", "admin-1")

    @pytest.mark.asyncio
    async def test_ban_cancels_active_rides(self, engine, moderation):
        ride = await accepted_ride(engine)
        await engine.start_ride(ride.id, DRIVER, 12.98, 77.60)
        report = await _report(moderation, ride.id)

        reviewed, cancelled = await moderation.ban_driver(report.id, "admin-1")

        assert reviewed.status == ReportStatus.ACCOUNT_DELETED
        assert cancelled == 1
        stored = await engine.get_ride(ride.id)
        assert stored.status == RideStatus.CANCELLED
        assert stored.reports[0].status == ReportStatus.ACCOUNT_DELETED

    @pytest.mark.asyncio
    async def test_listing_puts_pending_first(self, engine, moderation):
        ride = await post_ride(engine)
        first = await _report(moderation, ride.id, "Late")
        second = await _report(moderation, ride.id, "Rude")
        await moderation.dismiss(second.id, "admin-1")
        third = await _report(moderation, ride.id, "Unsafe")

        listed = await moderation.list_reports()
        assert [r.id for r in listed] == [third.id, first.id, second.id]

        dismissed = await moderation.list_reports(ReportStatus.DISMISSED)
        assert [r.id for r in dismissed] == [second.id]


class TestDriverRecord:
    @pytest.mark.asyncio
    async def test_summary_counts_reports(self, engine, moderation):
        ride = await post_ride(engine)
        first = await _report(moderation, ride.id, "Late")
        await _report(moderation, ride.id, "Rude")
        await moderation.warn(first.id, "admin-1")

        summary = await moderation.driver_summary(DRIVER)
        assert (summary.total_reports, summary.pending_reports) == (2, 1)

        other = await moderation.driver_summary("driver-2")
        assert (other.total_reports, other.pending_reports) == (0, 0)

    @pytest.mark.asyncio
    async def test_reports_outlive_deleted_ride(self, engine, moderation):
        ride = await post_ride(engine)
        report = await _report(moderation, ride.id)

        await engine.delete_ride(ride.id)

        kept = await moderation.reports.get(report.id)
        assert kept.ride_id is None
        assert kept.driver_id == DRIVER
        reviewed = await moderation.warn(report.id, "admin-1")
        assert reviewed.status == ReportStatus.WARNING_ISSUED
