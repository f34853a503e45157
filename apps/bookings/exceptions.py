"""
Custom exceptions for the booking flow.
Raised in engine.py / confirmation.py and caught in views.py for clean error handling.
"""


class BookingError(Exception):
    """Base exception for all booking flow errors."""
    pass


class IncompleteBookingError(BookingError):
    """
    Raised when a required selection or detail is missing at submission time.
    `errors` maps field name -> user-facing message, in the order the
    wizard asks for them.
    """

    def __init__(self, errors):
        self.errors = dict(errors)
        super().__init__(next(iter(self.errors.values()), 'Booking is incomplete.'))

    @property
    def fields(self):
        return list(self.errors)


class SubmissionError(BookingError):
    """Raised when the hospital service rejects or fails a submission call."""
    pass


class InvalidSlotError(BookingError):
    """Raised when the requested day/time is not a bookable slot in the displayed week."""
    pass


class StaleSelectionError(BookingError):
    """Raised when a selection no longer exists in freshly fetched data."""
    pass


class StaleRevisionError(BookingError):
    """Raised when a form was rendered against an older version of the booking session."""
    pass
