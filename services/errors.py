class BookingError(Exception):
    """Base for domain errors; each carries a stable code and an HTTP status."""

    code = "BOOKING_ERROR"
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self):
        return {"error": self.message, "code": self.code}


class ValidationError(BookingError):
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class InvalidDateRange(BookingError):
    code = "INVALID_DATE_RANGE"
    default_message = "End date must be after start date"


class InvalidDate(BookingError):
    code = "INVALID_DATE"
    default_message = "Cannot set availability for past dates"


class SpaceNotFound(BookingError):
    code = "SPACE_NOT_FOUND"
    status_code = 404
    default_message = "Space not found"


class NotFound(BookingError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Booking not found"


class Forbidden(BookingError):
    code = "FORBIDDEN"
    status_code = 403
    default_message = "Forbidden"


class BookingOwnSpace(BookingError):
    code = "BOOKING_OWN_SPACE"
    status_code = 403
    default_message = "You cannot book your own space"


class BookingConflict(BookingError):
    code = "BOOKING_CONFLICT"
    default_message = "This space is not available for the selected dates"


class InvalidTransition(BookingError):
    code = "INVALID_TRANSITION"
    default_message = "Booking status transition not allowed"


class AlreadyCancelled(BookingError):
    code = "ALREADY_CANCELLED"
    default_message = "Booking is already cancelled"


class DateAlreadyBooked(BookingError):
    code = "DATE_ALREADY_BOOKED"
    status_code = 409
    default_message = "One or more dates are held by a confirmed booking"
