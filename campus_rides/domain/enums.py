"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    PENDING = "PENDING"
    STARTED = "STARTED"
    ARRIVED = "ARRIVED"
    ON_TRIP = "ON_TRIP"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.PENDING: {RideStatus.STARTED, RideStatus.CANCELLED},
    RideStatus.STARTED: {RideStatus.ARRIVED, RideStatus.CANCELLED},
    RideStatus.ARRIVED: {RideStatus.ON_TRIP, RideStatus.CANCELLED},
    RideStatus.ON_TRIP: {RideStatus.COMPLETED, RideStatus.CANCELLED},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset({RideStatus.COMPLETED, RideStatus.CANCELLED})
ACTIVE_STATUSES = frozenset(set(RideStatus) - TERMINAL_STATUSES)


class PassengerStatus(str, enum.Enum):
    REQUESTED = "REQUESTED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class RespondAction(str, enum.Enum):
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class PickupKind(str, enum.Enum):
    COORDINATES = "COORDINATES"
    ADDRESS = "ADDRESS"


class ReportStatus(str, enum.Enum):
    PENDING = "PENDING"
    WARNING_ISSUED = "WARNING_ISSUED"
    ACCOUNT_DELETED = "ACCOUNT_DELETED"
    DISMISSED = "DISMISSED"


class ErrorKind(str, enum.Enum):
    VALIDATION = "VALIDATION"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    INTERNAL = "INTERNAL"
