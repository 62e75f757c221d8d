"""Unit tests for ride and booking state transitions (State Pattern)."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from carpool.domain.entities import Booking, InvalidStateTransition, Ride
from carpool.domain.enums import (
    BookingStatus,
    RideStatus,
    booking_predecessors,
    can_transition_booking,
    ride_predecessors,
)


class TestRideStateMachine:
    def test_initial_status_is_published(self):
        assert Ride().status == RideStatus.PUBLISHED

    # ── Valid transitions ─────────────────────────────────────────

    def test_published_to_in_progress(self):
        ride = Ride(status=RideStatus.PUBLISHED)
        ride.transition_to(RideStatus.IN_PROGRESS)
        assert ride.status == RideStatus.IN_PROGRESS

    def test_in_progress_to_pending_confirmation(self):
        ride = Ride(status=RideStatus.IN_PROGRESS)
        ride.transition_to(RideStatus.COMPLETED_PENDING_CONFIRMATION)
        assert ride.status == RideStatus.COMPLETED_PENDING_CONFIRMATION

    def test_pending_confirmation_to_completed(self):
        ride = Ride(status=RideStatus.COMPLETED_PENDING_CONFIRMATION)
        ride.transition_to(RideStatus.COMPLETED)
        assert ride.status == RideStatus.COMPLETED

    @pytest.mark.parametrize("start", [RideStatus.PUBLISHED, RideStatus.IN_PROGRESS])
    def test_cancel_before_completion(self, start):
        ride = Ride(status=start)
        ride.transition_to(RideStatus.CANCELLED)
        assert ride.status == RideStatus.CANCELLED

    # ── Invalid transitions ───────────────────────────────────────

    def test_published_to_completed_fails(self):
        with pytest.raises(InvalidStateTransition):
            Ride(status=RideStatus.PUBLISHED).transition_to(RideStatus.COMPLETED)

    def test_pending_confirmation_cannot_be_cancelled(self):
        ride = Ride(status=RideStatus.COMPLETED_PENDING_CONFIRMATION)
        with pytest.raises(InvalidStateTransition):
            ride.transition_to(RideStatus.CANCELLED)

    @pytest.mark.parametrize("terminal", [RideStatus.COMPLETED, RideStatus.CANCELLED])
    def test_terminal_states_are_final(self, terminal):
        with pytest.raises(InvalidStateTransition):
            Ride(status=terminal).transition_to(RideStatus.PUBLISHED)

    def test_predecessors_of_cancelled(self):
        assert ride_predecessors(RideStatus.CANCELLED) == {
            RideStatus.PUBLISHED,
            RideStatus.IN_PROGRESS,
        }


class TestBookingStateMachine:
    def test_happy_path_is_monotonic(self):
        booking = Booking(status=BookingStatus.PENDING)
        for nxt in (
            BookingStatus.CONFIRMED,
            BookingStatus.CONFIRMED_PENDING_PASSENGER_CONFIRMATION,
            BookingStatus.CONFIRMED_AND_CREDITED,
        ):
            booking.transition_to(nxt)
        assert booking.status == BookingStatus.CONFIRMED_AND_CREDITED

    def test_no_transition_is_reversed(self):
        booking = Booking(status=BookingStatus.CONFIRMED_AND_CREDITED)
        with pytest.raises(InvalidStateTransition):
            booking.transition_to(BookingStatus.CONFIRMED_PENDING_PASSENGER_CONFIRMATION)

    def test_cancel_only_from_pending_or_confirmed(self):
        assert booking_predecessors(BookingStatus.CANCELLED) == {
            BookingStatus.PENDING,
            BookingStatus.CONFIRMED,
        }
        assert not can_transition_booking(
            BookingStatus.CONFIRMED_PENDING_PASSENGER_CONFIRMATION,
            BookingStatus.CANCELLED,
        )

    def test_credit_only_from_pending_confirmation(self):
        assert booking_predecessors(BookingStatus.CONFIRMED_AND_CREDITED) == {
            BookingStatus.CONFIRMED_PENDING_PASSENGER_CONFIRMATION
        }

    def test_cancelled_cannot_be_settled(self):
        with pytest.raises(InvalidStateTransition):
            Booking(status=BookingStatus.CANCELLED).transition_to(
                BookingStatus.CONFIRMED_AND_CREDITED
            )


class TestEntityHelpers:
    def test_capacity_exact_fit_is_accepted(self):
        ride = Ride(seats_offered=3)
        assert ride.has_capacity_for(seats=1, seats_taken=2)
        assert not ride.has_capacity_for(seats=2, seats_taken=2)

    def test_fare_is_seats_times_price(self):
        assert Booking(seats_booked=3).fare(Decimal("7.50")) == Decimal("22.50")

    def test_token_expiry_handles_naive_timestamps(self):
        past = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(hours=1)
        assert Booking(token_expires_at=past).token_expired()
        assert not Booking(token_expires_at=None).token_expired()
