"""
Business rule and storage errors raised by the booking core.

Every error carries the HTTP status it maps to and whether the caller may
safely retry the same request. Validation and authorization errors are never
retryable; seat conflicts and storage failures are.
"""

from fastapi import status


class BookingSystemError(Exception):
    """Base class for all errors surfaced to API callers"""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "booking_error"
    retryable = False
    default_detail = "The request could not be processed."

    def __init__(self, detail: str = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {
            "detail": self.detail,
            "error": self.error_code,
            "retryable": self.retryable,
        }


# Segment / schedule errors
class InvalidSegment(BookingSystemError):
    error_code = "invalid_segment"
    default_detail = "Invalid origin or destination for this route."


class InvalidSchedule(BookingSystemError):
    error_code = "invalid_schedule"
    default_detail = "The schedule details are invalid."


class InvalidTravelDate(BookingSystemError):
    error_code = "invalid_travel_date"
    default_detail = "This bus has already departed or the date is too far ahead."


class ScheduleNotFound(BookingSystemError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "schedule_not_found"
    default_detail = "Schedule not found."


class DuplicateSchedule(BookingSystemError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "duplicate_schedule"
    default_detail = "A schedule with this ID already exists."


# Booking errors
class InvalidPassenger(BookingSystemError):
    error_code = "invalid_passenger"
    default_detail = "Passenger details are incomplete."


class InvalidSeat(BookingSystemError):
    error_code = "invalid_seat"
    default_detail = "One or more seats do not exist on this bus."


class TooManySeats(BookingSystemError):
    error_code = "too_many_seats"
    default_detail = "Free ticket bookings are limited to one seat per transaction."


class SeatConflict(BookingSystemError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "seat_conflict"
    retryable = True
    default_detail = "One or more selected seats were just booked. Please refresh and try again."


class EligibilityNotFound(BookingSystemError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "eligibility_not_found"
    default_detail = "Registration number or phone did not match."


class AlreadyClaimed(BookingSystemError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "already_claimed"
    default_detail = "This beneficiary has already claimed their free ticket."


class BookingNotFound(BookingSystemError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "booking_not_found"
    default_detail = "Booking not found."


# Cancellation errors
class WindowClosed(BookingSystemError):
    error_code = "window_closed"
    default_detail = "Cancellation window has closed. Tickets can only be cancelled up to 1 hour before departure."


class AlreadyCancelled(BookingSystemError):
    error_code = "already_cancelled"
    default_detail = "This booking has already been fully cancelled."


class NothingToCancel(BookingSystemError):
    error_code = "nothing_to_cancel"
    default_detail = "Seats selected for cancellation are invalid or already cancelled."


# Access errors
class FeatureDisabled(BookingSystemError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "feature_disabled"
    default_detail = "This feature is currently disabled by the administrator."


class Unauthorized(BookingSystemError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "unauthorized"
    default_detail = "Permission denied."


# User management errors
class InvalidUser(BookingSystemError):
    error_code = "invalid_user"
    default_detail = "The user details are invalid."


class UserNotFound(BookingSystemError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "user_not_found"
    default_detail = "User not found."


class DuplicateUser(BookingSystemError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "duplicate_user"
    default_detail = "A user with this phone number or email already exists."


class DistrictAlreadyAssigned(BookingSystemError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "district_already_assigned"
    default_detail = "One or more districts are already assigned to another sub-admin."


# Storage errors
class StorageUnavailable(BookingSystemError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "storage_unavailable"
    retryable = True
    default_detail = "The booking store is temporarily unavailable. Please try again."
