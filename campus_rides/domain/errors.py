"""
Error taxonomy shared by the lifecycle engine, moderation and the API.

Every guard failure raises a ``LifecycleError`` subclass carrying an
``ErrorKind``; the HTTP layer maps the kind to a status code once.
"""

from .enums import ErrorKind


class LifecycleError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LifecycleError):
    """Missing or malformed input, or a precondition the caller can fix."""

    kind = ErrorKind.VALIDATION


class InvalidStateTransition(ValidationError):
    """Raised when a ride status change violates the state machine."""


class ForbiddenError(LifecycleError):
    kind = ErrorKind.FORBIDDEN


class NotFoundError(LifecycleError):
    kind = ErrorKind.NOT_FOUND


class RideNotFoundError(NotFoundError):
    def __init__(self, message: str = "Ride not found"):
        super().__init__(message)


class PassengerNotFoundError(NotFoundError):
    def __init__(self, message: str = "Passenger request not found"):
        super().__init__(message)


class ReportNotFoundError(NotFoundError):
    def __init__(self, message: str = "Report not found"):
        super().__init__(message)


class ConflictError(LifecycleError):
    kind = ErrorKind.CONFLICT


class ActiveRideExistsError(ConflictError):
    def __init__(
        self,
        message: str = (
            "You have an active ride in progress. "
            "Please complete it before posting a new ride."
        ),
    ):
        super().__init__(message)


class DuplicateRequestError(ConflictError):
    def __init__(self, message: str = "You already requested this ride"):
        super().__init__(message)


class SeatTakenError(ConflictError):
    def __init__(self, message: str = "Ride seat already taken"):
        super().__init__(message)


class UpstreamUnavailableError(LifecycleError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE
