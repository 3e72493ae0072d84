"""
Booking store backed by a single JSON document on disk.

Layout: ``{"sessions": {bookingId: record}, "metadata": {...}}``. Writes go
to a temporary file that is renamed over the target, so a crash mid-write
never leaves a truncated document.
"""

import asyncio
import json
import logging
import os
from pathlib import Path

from chauffeur_bot.schemas.booking_schema import BookingSession, BookingStatus

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"


class JsonFileBookingStore:
    def __init__(self, path: str) -> None:
        self._path = Path(path)
        self._write_lock = asyncio.Lock()

    def _read(self) -> dict:
        if not self._path.exists():
            return {"sessions": {}, "metadata": {"version": FORMAT_VERSION}}
        with self._path.open(encoding="utf-8") as fh:
            data = json.load(fh)
        data.setdefault("sessions", {})
        data.setdefault("metadata", {"version": FORMAT_VERSION})
        return data

    def _write(self, data: dict) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2)
        os.replace(tmp, self._path)

    async def persist(self, session: BookingSession) -> None:
        record = session.to_record()
        async with self._write_lock:
            def _update() -> None:
                data = self._read()
                data["sessions"][session.booking_id] = record
                self._write(data)

            await asyncio.to_thread(_update)
        logger.debug("Session %s written to %s", session.booking_id, self._path)

    async def load_active_sessions(self) -> list[BookingSession]:
        data = await asyncio.to_thread(self._read)
        sessions = [
            BookingSession.from_record(record)
            for record in data["sessions"].values()
            if record.get("status") == BookingStatus.PENDING.value
        ]
        logger.info("Loaded %d active sessions from %s", len(sessions), self._path)
        return sessions
