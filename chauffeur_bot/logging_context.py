"""Per-event logging context: which customer and which booking a log line is about.

The router binds the customer at the start of every inbound event; the state
machine adds the booking id as soon as an operation touches a session. A
filter copies both onto each record so the format in ``config.py`` can show
``[customer booking]`` on every line, including lines from the store and the
pricing oracle that never see the ids themselves.
"""

import logging
from contextvars import ContextVar
from typing import NamedTuple

NO_VALUE = "-"

_customer_key: ContextVar[str] = ContextVar("customer_key", default=NO_VALUE)
_booking_id: ContextVar[str] = ContextVar("booking_id", default=NO_VALUE)


class BookingContext(NamedTuple):
    customer_key: str
    booking_id: str


def bind_customer(customer_key: str) -> None:
    """Start a new event context for the customer; clears any booking id left from a previous event."""
    _customer_key.set(customer_key)
    _booking_id.set(NO_VALUE)


def set_booking_id(booking_id: str) -> None:
    _booking_id.set(booking_id)


def current_context() -> BookingContext:
    return BookingContext(_customer_key.get(), _booking_id.get())


class BookingContextFilter(logging.Filter):
    """Stamps ``customer_key`` and ``booking_id`` onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = current_context()
        record.customer_key = context.customer_key  # type: ignore[attr-defined]
        record.booking_id = context.booking_id  # type: ignore[attr-defined]
        return True


def install_context_filter(handler: logging.Handler) -> None:
    if not any(isinstance(f, BookingContextFilter) for f in handler.filters):
        handler.addFilter(BookingContextFilter())


def get_session_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not any(isinstance(f, BookingContextFilter) for f in logger.filters):
        logger.addFilter(BookingContextFilter())
    return logger
