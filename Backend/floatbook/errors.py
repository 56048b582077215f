"""
Booking domain errors.

Every error carries a stable code, an HTTP status and a message that is safe
to show to the customer. Business-rule errors (sold out, package problems)
are expected outcomes and are logged at WARNING, not as failures.
"""

from typing import Optional

from .core.responses import ErrorCodes


class BookingError(Exception):
    """Base class for errors surfaced to API callers."""
    code: str = ErrorCodes.INTERNAL_ERROR
    status_code: int = 500
    default_message: str = "Something went wrong."

    def __init__(self, message: Optional[str] = None, details: Optional[dict] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class InvalidRequest(BookingError):
    code = ErrorCodes.INVALID_REQUEST
    status_code = 400
    default_message = (
        "Missing required fields: name, date, time, email and contactNumber "
        "are mandatory."
    )


class PackageNotFound(BookingError):
    code = ErrorCodes.PACKAGE_NOT_FOUND
    status_code = 404
    default_message = "Package activation not found."


class PackageNotConfirmed(BookingError):
    code = ErrorCodes.PACKAGE_NOT_CONFIRMED
    status_code = 400
    default_message = "Package is not confirmed yet."


class PackageExpired(BookingError):
    code = ErrorCodes.PACKAGE_EXPIRED
    status_code = 400
    default_message = "This package has expired."


class NoRemainingSessions(BookingError):
    code = ErrorCodes.NO_REMAINING_SESSIONS
    status_code = 400
    default_message = "No remaining sessions."


class SoldOut(BookingError):
    code = ErrorCodes.SOLD_OUT
    status_code = 409
    default_message = "Sold Out: No available sessions."


class DateClosed(SoldOut):
    code = ErrorCodes.DATE_CLOSED
    default_message = "The selected date is closed for bookings."


class CapacityExhausted(BookingError):
    """The ledger refused to take remaining sessions below zero."""
    code = ErrorCodes.CAPACITY_EXHAUSTED
    status_code = 409
    default_message = "No capacity left for this date."


class TransactionFailed(BookingError):
    code = ErrorCodes.TRANSACTION_FAILED
    status_code = 500
    default_message = "Booking could not be completed. Please try again."


class AppointmentNotFound(BookingError):
    code = ErrorCodes.APPOINTMENT_NOT_FOUND
    status_code = 404
    default_message = "Appointment not found."


class InvalidStatus(BookingError):
    code = ErrorCodes.INVALID_STATUS
    status_code = 400
    default_message = "Invalid status value."


class InvalidStatusTransition(BookingError):
    code = ErrorCodes.INVALID_STATUS_TRANSITION
    status_code = 409
    default_message = "Status change not allowed."


class PackageDefinitionNotFound(BookingError):
    code = ErrorCodes.PACKAGE_DEFINITION_NOT_FOUND
    status_code = 404
    default_message = "Associated package not found."
