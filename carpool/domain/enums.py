"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    PUBLISHED = "PUBLISHED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED_PENDING_CONFIRMATION = "COMPLETED_PENDING_CONFIRMATION"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    CONFIRMED_PENDING_PASSENGER_CONFIRMATION = "CONFIRMED_PENDING_PASSENGER_CONFIRMATION"
    CONFIRMED_AND_CREDITED = "CONFIRMED_AND_CREDITED"


class LedgerEntryType(str, enum.Enum):
    BOOKING_DEBIT = "BOOKING_DEBIT"
    BOOKING_REFUND = "BOOKING_REFUND"
    RIDE_PAYOUT = "RIDE_PAYOUT"


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.PUBLISHED: {RideStatus.IN_PROGRESS, RideStatus.CANCELLED},
    RideStatus.IN_PROGRESS: {
        RideStatus.COMPLETED_PENDING_CONFIRMATION,
        RideStatus.CANCELLED,
    },
    RideStatus.COMPLETED_PENDING_CONFIRMATION: {RideStatus.COMPLETED},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
}

BOOKING_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {
        BookingStatus.CONFIRMED_PENDING_PASSENGER_CONFIRMATION,
        BookingStatus.CANCELLED,
    },
    BookingStatus.CONFIRMED_PENDING_PASSENGER_CONFIRMATION: {
        BookingStatus.CONFIRMED_AND_CREDITED
    },
    BookingStatus.CONFIRMED_AND_CREDITED: set(),
    BookingStatus.CANCELLED: set(),
}

# Bookings that hold seats on their ride
ACTIVE_BOOKING_STATUSES: frozenset[BookingStatus] = frozenset(
    {
        BookingStatus.PENDING,
        BookingStatus.CONFIRMED,
        BookingStatus.CONFIRMED_PENDING_PASSENGER_CONFIRMATION,
        BookingStatus.CONFIRMED_AND_CREDITED,
    }
)

CANCELLABLE_BOOKING_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED}
)


def can_transition_ride(current: RideStatus, new: RideStatus) -> bool:
    return new in RIDE_TRANSITIONS.get(RideStatus(current), set())


def can_transition_booking(current: BookingStatus, new: BookingStatus) -> bool:
    return new in BOOKING_TRANSITIONS.get(BookingStatus(current), set())


def booking_predecessors(new: BookingStatus) -> set[BookingStatus]:
    """Statuses from which *new* is reachable in one step."""
    return {
        status
        for status, allowed in BOOKING_TRANSITIONS.items()
        if new in allowed
    }


def ride_predecessors(new: RideStatus) -> set[RideStatus]:
    return {
        status for status, allowed in RIDE_TRANSITIONS.items() if new in allowed
    }
