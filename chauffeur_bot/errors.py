"""Error taxonomy for booking session operations."""

from typing import Any, Optional


class BookingError(Exception):
    """Base class for all booking domain errors."""


class AlreadyActiveError(BookingError):
    """A booking intent arrived while the customer already has a pending session."""

    def __init__(self, session: Any) -> None:
        super().__init__(
            f"Customer {session.customer_key} already has pending booking {session.booking_id}"
        )
        self.session = session


class InvalidStateError(BookingError):
    """An operation was invoked outside the phases it is valid from."""


class SessionNotFoundError(InvalidStateError):
    """No session (active or recently confirmed) exists for the booking id."""

    def __init__(self, booking_id: str) -> None:
        super().__init__(f"Booking session {booking_id} not found")
        self.booking_id = booking_id


class PricingUnavailableError(BookingError):
    """The pricing oracle failed or timed out."""


class PersistenceFailureError(BookingError):
    """A durable write to the booking store failed."""

    def __init__(self, booking_id: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Failed to persist booking {booking_id}: {cause}")
        self.booking_id = booking_id
        self.cause = cause


class UnknownFieldError(BookingError, ValueError):
    """A field name outside the booking schema was referenced."""


class FieldValidationError(ValueError):
    """Raised by a single field parser; converted to a ValidationResult by the schema."""
