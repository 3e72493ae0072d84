"""Durable booking store contract."""

from typing import Protocol

from chauffeur_bot.schemas.booking_schema import BookingSession


class BookingStore(Protocol):
    """Keyed collection of session records, indexed by booking id."""

    async def persist(self, session: BookingSession) -> None:
        """Insert or replace the record for ``session.booking_id``."""
        ...

    async def load_active_sessions(self) -> list[BookingSession]:
        """All records still in pending status."""
        ...
