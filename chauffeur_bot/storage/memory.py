"""In-process booking store. Used by the console demo and test fixtures."""

import logging
from typing import Optional

from chauffeur_bot.schemas.booking_schema import BookingSession, BookingStatus

logger = logging.getLogger(__name__)


class InMemoryBookingStore:
    """Keeps serialized records so stored state never aliases live sessions."""

    def __init__(self) -> None:
        self._records: dict[str, dict] = {}

    async def persist(self, session: BookingSession) -> None:
        self._records[session.booking_id] = session.to_record()

    async def load_active_sessions(self) -> list[BookingSession]:
        return [
            BookingSession.from_record(record)
            for record in self._records.values()
            if record["status"] == BookingStatus.PENDING.value
        ]

    def get_record(self, booking_id: str) -> Optional[dict]:
        return self._records.get(booking_id)

    def reset(self) -> None:
        """Clear all records. Used by test fixtures for isolation."""
        self._records.clear()
