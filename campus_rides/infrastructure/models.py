"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``rides``            -- one driver-posted trip offer
* ``ride_passengers``  -- request-to-join entries, one per (ride, user)
* ``reports``          -- incident reports against a ride's driver

Indexes
-------
* **Partial unique** on ``rides.driver_id`` where the status is active:
  enforces one active ride per driver at the database level.
* **B-Tree** on ``status``, ``driver_id``, ``ride_id`` and report ``status``
  for the listing and moderation queries.
"""

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from .database import Base
from campus_rides.domain.enums import (
    ACTIVE_STATUSES,
    PassengerStatus,
    ReportStatus,
    RideStatus,
)

_ACTIVE = [s for s in RideStatus if s in ACTIVE_STATUSES]


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(String(32), primary_key=True)
    driver_id = Column(String(64), nullable=False)
    driver_phone = Column(String(32), nullable=False)

    origin = Column(String(255), nullable=False)
    destination = Column(String(255), nullable=False)
    origin_lat = Column(Float, nullable=True)
    origin_lng = Column(Float, nullable=True)
    destination_lat = Column(Float, nullable=True)
    destination_lng = Column(Float, nullable=True)

    status = Column(Enum(RideStatus), default=RideStatus.PENDING, nullable=False)
    seats = Column(Integer, default=1, nullable=False)

    driver_lat = Column(Float, nullable=True)
    driver_lng = Column(Float, nullable=True)

    start_time = Column(DateTime(timezone=True), nullable=True)
    arrival_time = Column(DateTime(timezone=True), nullable=True)
    trip_start_time = Column(DateTime(timezone=True), nullable=True)
    trip_end_time = Column(DateTime(timezone=True), nullable=True)
    trip_distance = Column(Integer, nullable=True)  # meters
    trip_duration = Column(Integer, nullable=True)  # seconds
    price = Column(Integer, nullable=True)
    otp = Column(String(6), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    passengers = relationship(
        "PassengerModel",
        order_by="PassengerModel.id",
        cascade="all, delete-orphan",
    )
    reports = relationship(
        "ReportModel", order_by="ReportModel.created_at", viewonly=True
    )

    __table_args__ = (
        Index(
            "uq_rides_driver_active",
            "driver_id",
            unique=True,
            postgresql_where=status.in_(_ACTIVE),
            sqlite_where=status.in_(_ACTIVE),
        ),
        Index("idx_rides_status", "status"),
        Index("idx_rides_driver", "driver_id"),
    )


class PassengerModel(Base):
    __tablename__ = "ride_passengers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(String(32), ForeignKey("rides.id"), nullable=False)
    user_id = Column(String(64), nullable=False)
    status = Column(
        Enum(PassengerStatus), default=PassengerStatus.REQUESTED, nullable=False
    )
    phone_number = Column(String(32), nullable=False)
    pickup_location = Column(String(255), nullable=False)
    eta = Column(Integer, nullable=True)  # seconds
    distance_to_pickup = Column(Integer, nullable=True)  # meters
    cancel_reason = Column(Text, nullable=True)
    requested_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("ride_id", "user_id", name="uq_passenger_per_ride"),
        Index("idx_passengers_ride", "ride_id"),
    )


class ReportModel(Base):
    __tablename__ = "reports"

    id = Column(String(32), primary_key=True)
    # cleared when the ride record is deleted
    ride_id = Column(
        String(32), ForeignKey("rides.id", ondelete="SET NULL"), nullable=True
    )
    reported_by = Column(String(64), nullable=False)
    driver_id = Column(String(64), nullable=False)
    reason = Column(String(120), nullable=False)
    description = Column(Text, nullable=False)
    status = Column(
        Enum(ReportStatus), default=ReportStatus.PENDING, nullable=False
    )
    admin_note = Column(Text, nullable=True)
    reviewed_by = Column(String(64), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_reports_status", "status"),
        Index("idx_reports_ride", "ride_id"),
        Index("idx_reports_driver", "driver_id"),
    )
