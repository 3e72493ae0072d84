"""
Booking store backed by Redis.

Each session is a JSON string at ``{prefix}:session:{bookingId}``; the set
``{prefix}:sessions:pending`` holds the ids still pending so startup can
rebuild the active map without a full key scan.
"""

import json
import logging
from typing import Optional

import redis.asyncio as redis

from chauffeur_bot.schemas.booking_schema import BookingSession

logger = logging.getLogger(__name__)


class RedisBookingStore:
    def __init__(self, client: redis.Redis, prefix: str = "chauffeur") -> None:
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "chauffeur") -> "RedisBookingStore":
        return cls(redis.from_url(url, decode_responses=True), prefix)

    def _session_key(self, booking_id: str) -> str:
        return f"{self._prefix}:session:{booking_id}"

    @property
    def _pending_key(self) -> str:
        return f"{self._prefix}:sessions:pending"

    async def persist(self, session: BookingSession) -> None:
        payload = json.dumps(session.to_record())
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.set(self._session_key(session.booking_id), payload)
            if session.is_pending:
                pipe.sadd(self._pending_key, session.booking_id)
            else:
                pipe.srem(self._pending_key, session.booking_id)
            await pipe.execute()

    async def get(self, booking_id: str) -> Optional[BookingSession]:
        raw = await self._client.get(self._session_key(booking_id))
        if raw is None:
            return None
        return BookingSession.from_record(json.loads(raw))

    async def load_active_sessions(self) -> list[BookingSession]:
        sessions: list[BookingSession] = []
        for booking_id in await self._client.smembers(self._pending_key):
            session = await self.get(booking_id)
            if session is None:
                logger.warning("Pending index references missing session %s", booking_id)
                continue
            if session.is_pending:
                sessions.append(session)
        return sessions

    async def healthcheck(self) -> bool:
        try:
            return bool(await self._client.ping())
        except redis.RedisError:
            return False
