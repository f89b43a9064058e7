"""Initial schema: rides, ride passengers and driver reports.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

ACTIVE = ("PENDING", "STARTED", "ARRIVED", "ON_TRIP")


def upgrade() -> None:
    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("driver_id", sa.String(64), nullable=False),
        sa.Column("driver_phone", sa.String(32), nullable=False),
        sa.Column("origin", sa.String(255), nullable=False),
        sa.Column("destination", sa.String(255), nullable=False),
        sa.Column("origin_lat", sa.Float, nullable=True),
        sa.Column("origin_lng", sa.Float, nullable=True),
        sa.Column("destination_lat", sa.Float, nullable=True),
        sa.Column("destination_lng", sa.Float, nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "PENDING",
                "STARTED",
                "ARRIVED",
                "ON_TRIP",
                "COMPLETED",
                "CANCELLED",
                name="ridestatus",
            ),
            default="PENDING",
            nullable=False,
        ),
        sa.Column("seats", sa.Integer, default=1, nullable=False),
        sa.Column("driver_lat", sa.Float, nullable=True),
        sa.Column("driver_lng", sa.Float, nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("arrival_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trip_start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trip_end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trip_distance", sa.Integer, nullable=True),
        sa.Column("trip_duration", sa.Integer, nullable=True),
        sa.Column("price", sa.Integer, nullable=True),
        sa.Column("otp", sa.String(6), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "uq_rides_driver_active",
        "rides",
        ["driver_id"],
        unique=True,
        postgresql_where=sa.text(
            "status IN (" + ", ".join(f"'{s}'" for s in ACTIVE) + ")"
        ),
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_driver", "rides", ["driver_id"])

    # ── ride_passengers ───────────────────────────────────────────────
    op.create_table(
        "ride_passengers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "ride_id", sa.String(32), sa.ForeignKey("rides.id"), nullable=False
        ),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "REQUESTED",
                "ACCEPTED",
                "REJECTED",
                "CANCELLED",
                name="passengerstatus",
            ),
            default="REQUESTED",
            nullable=False,
        ),
        sa.Column("phone_number", sa.String(32), nullable=False),
        sa.Column("pickup_location", sa.String(255), nullable=False),
        sa.Column("eta", sa.Integer, nullable=True),
        sa.Column("distance_to_pickup", sa.Integer, nullable=True),
        sa.Column("cancel_reason", sa.Text, nullable=True),
        sa.Column(
            "requested_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("ride_id", "user_id", name="uq_passenger_per_ride"),
    )
    op.create_index("idx_passengers_ride", "ride_passengers", ["ride_id"])

    # ── reports ───────────────────────────────────────────────────────
    op.create_table(
        "reports",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column(
            "ride_id",
            sa.String(32),
            sa.ForeignKey("rides.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("reported_by", sa.String(64), nullable=False),
        sa.Column("driver_id", sa.String(64), nullable=False),
        sa.Column("reason", sa.String(120), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "PENDING",
                "WARNING_ISSUED",
                "ACCOUNT_DELETED",
                "DISMISSED",
                name="reportstatus",
            ),
            default="PENDING",
            nullable=False,
        ),
        sa.Column("admin_note", sa.Text, nullable=True),
        sa.Column("reviewed_by", sa.String(64), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_reports_status", "reports", ["status"])
    op.create_index("idx_reports_ride", "reports", ["ride_id"])
    op.create_index("idx_reports_driver", "reports", ["driver_id"])


def downgrade() -> None:
    op.drop_table("reports")
    op.drop_table("ride_passengers")
    op.drop_table("rides")
    op.execute("DROP TYPE IF EXISTS reportstatus")
    op.execute("DROP TYPE IF EXISTS passengerstatus")
    op.execute("DROP TYPE IF EXISTS ridestatus")
