"""Unit tests for ride entity state transitions and pickup parsing."""

import pytest

from campus_rides.domain.entities import (
    Coordinates,
    Passenger,
    Ride,
    parse_pickup,
)
from campus_rides.domain.enums import PassengerStatus, PickupKind, RideStatus
from campus_rides.domain.errors import InvalidStateTransition, ValidationError


def _passenger(user_id: str, status: PassengerStatus) -> Passenger:
    return Passenger(
        user_id=user_id,
        phone_number="555",
        pickup=parse_pickup("10.0,20.0"),
        status=status,
    )


class TestRideStateMachine:
    def test_initial_status_is_pending(self):
        ride = Ride()
        assert ride.status == RideStatus.PENDING
        assert ride.is_active
        assert ride.is_open

    # ── Valid transitions ─────────────────────────────────────────

    @pytest.mark.parametrize(
        "current, target",
        [
            (RideStatus.PENDING, RideStatus.STARTED),
            (RideStatus.STARTED, RideStatus.ARRIVED),
            (RideStatus.ARRIVED, RideStatus.ON_TRIP),
            (RideStatus.ON_TRIP, RideStatus.COMPLETED),
            (RideStatus.PENDING, RideStatus.CANCELLED),
            (RideStatus.ON_TRIP, RideStatus.CANCELLED),
        ],
    )
    def test_forward_transitions(self, current, target):
        ride = Ride(status=current)
        ride.transition_to(target)
        assert ride.status == target

    # ── Invalid transitions ───────────────────────────────────────

    def test_skipping_arrival_fails(self):
        ride = Ride(status=RideStatus.STARTED)
        with pytest.raises(InvalidStateTransition):
            ride.transition_to(RideStatus.ON_TRIP)

    def test_pending_to_completed_fails(self):
        ride = Ride(status=RideStatus.PENDING)
        with pytest.raises(InvalidStateTransition):
            ride.transition_to(RideStatus.COMPLETED)

    def test_backwards_fails(self):
        ride = Ride(status=RideStatus.ARRIVED)
        with pytest.raises(InvalidStateTransition):
            ride.transition_to(RideStatus.STARTED)

    @pytest.mark.parametrize("terminal", [RideStatus.COMPLETED, RideStatus.CANCELLED])
    def test_terminal_states_are_final(self, terminal):
        ride = Ride(status=terminal)
        assert not ride.is_active
        for target in RideStatus:
            with pytest.raises(InvalidStateTransition):
                ride.transition_to(target)

    def test_error_message_names_both_states(self):
        ride = Ride(status=RideStatus.PENDING)
        with pytest.raises(InvalidStateTransition, match="PENDING to ON_TRIP"):
            ride.transition_to(RideStatus.ON_TRIP)

    # ── Reopen / OTP completion ───────────────────────────────────

    @pytest.mark.parametrize(
        "status", [RideStatus.STARTED, RideStatus.ARRIVED, RideStatus.ON_TRIP]
    )
    def test_reopen_from_active(self, status):
        ride = Ride(status=status, otp="123456")
        ride.reopen()
        assert ride.status == RideStatus.PENDING
        assert ride.otp is None

    def test_reopen_completed_fails(self):
        ride = Ride(status=RideStatus.COMPLETED)
        with pytest.raises(InvalidStateTransition):
            ride.reopen()

    def test_complete_with_otp_clears_code(self):
        ride = Ride(status=RideStatus.STARTED, otp="123456")
        ride.complete_with_otp()
        assert ride.status == RideStatus.COMPLETED
        assert ride.otp is None
        assert ride.price is None

    def test_complete_with_otp_on_cancelled_fails(self):
        ride = Ride(status=RideStatus.CANCELLED, otp="123456")
        with pytest.raises(InvalidStateTransition):
            ride.complete_with_otp()


class TestRideProjection:
    def test_open_until_a_passenger_is_accepted(self):
        ride = Ride(passengers=[_passenger("a", PassengerStatus.REQUESTED)])
        assert ride.is_open
        ride.passengers.append(_passenger("b", PassengerStatus.ACCEPTED))
        assert not ride.is_open
        assert ride.accepted_passenger().user_id == "b"

    def test_started_ride_is_not_open(self):
        assert not Ride(status=RideStatus.STARTED).is_open

    def test_passenger_lookup(self):
        ride = Ride(passengers=[_passenger("a", PassengerStatus.REJECTED)])
        assert ride.passenger_for("a") is not None
        assert ride.passenger_for("z") is None
        assert ride.accepted_passenger() is None


class TestPickupParsing:
    def test_coordinates(self):
        pickup = parse_pickup(" 12.97, 77.59 ")
        assert pickup.kind == PickupKind.COORDINATES
        assert pickup.coordinates == Coordinates(12.97, 77.59)
        assert pickup.text == "12.97, 77.59"

    def test_address(self):
        pickup = parse_pickup("Library, North Campus, Block C")
        assert pickup.kind == PickupKind.ADDRESS
        assert pickup.coordinates is None

    def test_out_of_range_is_an_address(self):
        assert parse_pickup("95.0,20.0").kind == PickupKind.ADDRESS

    def test_non_finite_is_an_address(self):
        assert parse_pickup("nan,20.0").kind == PickupKind.ADDRESS

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_empty_is_rejected(self, text):
        with pytest.raises(ValidationError, match="Pickup location required"):
            parse_pickup(text)
