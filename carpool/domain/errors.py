"""Error codes and the exception carried inside a service transaction.

Business failures are raised as ``CoreError`` while the owning transaction
is open, so leaving ``async with db.begin()`` rolls everything back. The
service boundary then turns them into ``Failure`` values (see ``results``).
Anything that is not a ``CoreError`` is a defect and propagates untouched.

Categories
----------
  VALIDATION: malformed input, duplicate booking
  CAPACITY:   no seats left
  FUNDS:      passenger balance too low
  STATE:      booking / ride not in the expected lifecycle state
  CONFLICT:   lock-wait timeout, deadlock, serialization failure (transient)
  NOT_FOUND:  unknown id or token
"""

from __future__ import annotations

import enum


class ErrorCategory(str, enum.Enum):
    VALIDATION = "VALIDATION"
    CAPACITY = "CAPACITY"
    FUNDS = "FUNDS"
    STATE = "STATE"
    CONFLICT = "CONFLICT"
    NOT_FOUND = "NOT_FOUND"


class ErrorCode(str, enum.Enum):
    SEATS_UNAVAILABLE = "SeatsUnavailable"
    INSUFFICIENT_CREDITS = "InsufficientCredits"
    ALREADY_BOOKED = "AlreadyBooked"
    RIDE_NOT_BOOKABLE = "RideNotBookable"
    NOT_FOUND = "NotFound"
    FORBIDDEN = "Forbidden"
    INVALID_STATE = "InvalidState"
    INVALID_TOKEN = "InvalidToken"
    CONFLICT = "Conflict"
    VALIDATION_ERROR = "ValidationError"

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORIES[self]

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]


_CATEGORIES: dict[ErrorCode, ErrorCategory] = {
    ErrorCode.SEATS_UNAVAILABLE: ErrorCategory.CAPACITY,
    ErrorCode.INSUFFICIENT_CREDITS: ErrorCategory.FUNDS,
    ErrorCode.ALREADY_BOOKED: ErrorCategory.VALIDATION,
    ErrorCode.VALIDATION_ERROR: ErrorCategory.VALIDATION,
    ErrorCode.FORBIDDEN: ErrorCategory.VALIDATION,
    ErrorCode.RIDE_NOT_BOOKABLE: ErrorCategory.STATE,
    ErrorCode.INVALID_STATE: ErrorCategory.STATE,
    ErrorCode.CONFLICT: ErrorCategory.CONFLICT,
    ErrorCode.NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorCode.INVALID_TOKEN: ErrorCategory.NOT_FOUND,
}

_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.SEATS_UNAVAILABLE: 409,
    ErrorCode.INSUFFICIENT_CREDITS: 402,
    ErrorCode.ALREADY_BOOKED: 409,
    ErrorCode.RIDE_NOT_BOOKABLE: 409,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.INVALID_STATE: 409,
    ErrorCode.INVALID_TOKEN: 404,
    ErrorCode.CONFLICT: 409,
    ErrorCode.VALIDATION_ERROR: 422,
}


class CoreError(Exception):
    """Expected business failure raised inside an open transaction."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(message)


class NotFoundError(CoreError):
    def __init__(self, what: str, key: object) -> None:
        super().__init__(ErrorCode.NOT_FOUND, f"{what} not found: {key}")


class InsufficientCreditsError(CoreError):
    def __init__(self, required: object, user_id: int) -> None:
        super().__init__(
            ErrorCode.INSUFFICIENT_CREDITS,
            f"Insufficient credits: user {user_id} needs {required}",
        )


class InvalidStateError(CoreError):
    def __init__(self, detail: str) -> None:
        super().__init__(ErrorCode.INVALID_STATE, detail)


class ForbiddenError(CoreError):
    def __init__(self, detail: str) -> None:
        super().__init__(ErrorCode.FORBIDDEN, detail)


class ConflictError(CoreError):
    def __init__(self, detail: str = "Could not acquire lock, try again") -> None:
        super().__init__(ErrorCode.CONFLICT, detail)


class SeatsUnavailableError(CoreError):
    def __init__(self, ride_id: int, requested: int, left: int) -> None:
        super().__init__(
            ErrorCode.SEATS_UNAVAILABLE,
            f"Only {left} seat(s) left on ride {ride_id}, requested {requested}",
        )


class AlreadyBookedError(CoreError):
    def __init__(self, user_id: int, ride_id: int, booking_id: int) -> None:
        super().__init__(
            ErrorCode.ALREADY_BOOKED,
            f"User {user_id} already holds booking {booking_id} on ride {ride_id}",
        )


class RideNotBookableError(CoreError):
    def __init__(self, detail: str) -> None:
        super().__init__(ErrorCode.RIDE_NOT_BOOKABLE, detail)


class InvalidTokenError(CoreError):
    def __init__(self, detail: str = "Unknown confirmation token") -> None:
        super().__init__(ErrorCode.INVALID_TOKEN, detail)
