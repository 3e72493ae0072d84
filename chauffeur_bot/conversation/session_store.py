"""
In-memory map of live booking sessions with best-effort durable mirroring.

The map is the source of truth for live conversations. Every mutation
schedules a background write to the booking store without awaiting it; a
failed write leaves the booking id dirty so the next mutation retries it.
In-memory state is never rolled back because of a storage failure.

Usage:
    store = SessionStore(JsonFileBookingStore("./booking-sessions.json"))
    await store.load()
    store.put(session)
    await store.flush()
"""

import asyncio
from datetime import datetime, timedelta
from typing import Optional

from chauffeur_bot.config import settings
from chauffeur_bot.errors import AlreadyActiveError, PersistenceFailureError
from chauffeur_bot.logging_context import get_session_logger
from chauffeur_bot.schemas.booking_schema import BookingSession, BookingStatus
from chauffeur_bot.storage.base import BookingStore

logger = get_session_logger(__name__)


class SessionStore:
    """Active sessions keyed by booking id, indexed by customer key."""

    def __init__(
        self,
        booking_store: BookingStore,
        alert_threshold: int = settings.guardrails.persistence_alert_threshold,
    ) -> None:
        self._booking_store = booking_store
        self._alert_threshold = alert_threshold
        self._sessions: dict[str, BookingSession] = {}
        self._pending_by_customer: dict[str, str] = {}
        self._dirty: dict[str, BookingSession] = {}
        self._failures: dict[str, int] = {}
        self._tasks: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, booking_id: str) -> bool:
        return booking_id in self._sessions

    @property
    def dirty_ids(self) -> set[str]:
        """Booking ids whose latest state has not reached the booking store."""
        return set(self._dirty)

    def get(self, booking_id: str) -> Optional[BookingSession]:
        return self._sessions.get(booking_id)

    def get_active_by_customer(self, customer_key: str) -> Optional[BookingSession]:
        booking_id = self._pending_by_customer.get(customer_key)
        if booking_id is None:
            return None
        return self._sessions.get(booking_id)

    def sessions_for_customer(self, customer_key: str) -> list[BookingSession]:
        return [s for s in self._sessions.values() if s.customer_key == customer_key]

    def put(self, session: BookingSession) -> None:
        """
        Insert or replace a session and schedule its durable write.

        Raises:
            AlreadyActiveError: If another pending session owns the customer key.
        """
        owner = self._pending_by_customer.get(session.customer_key)
        if session.is_pending and owner is not None and owner != session.booking_id:
            raise AlreadyActiveError(self._sessions[owner])

        self._sessions[session.booking_id] = session
        if session.is_pending:
            self._pending_by_customer[session.customer_key] = session.booking_id
        elif owner == session.booking_id:
            del self._pending_by_customer[session.customer_key]
        self._schedule_persist(session)

    def remove(self, booking_id: str) -> Optional[BookingSession]:
        """Drop a session from the active map. The durable record is kept."""
        session = self._sessions.pop(booking_id, None)
        if session is None:
            return None
        if self._pending_by_customer.get(session.customer_key) == booking_id:
            del self._pending_by_customer[session.customer_key]
        logger.debug("Session %s removed from active map", booking_id)
        return session

    def sweep_expired(self, now: datetime, stale_after: timedelta) -> list[str]:
        """Remove confirmed sessions past their grace window or older than ``stale_after``."""
        expired = []
        for session in list(self._sessions.values()):
            if session.status != BookingStatus.CONFIRMED:
                continue
            past_grace = session.expires_at is not None and now >= session.expires_at
            stale = session.confirmed_at is not None and now - session.confirmed_at >= stale_after
            if past_grace or stale:
                self.remove(session.booking_id)
                expired.append(session.booking_id)
        if expired:
            logger.info("Swept %d confirmed session(s): %s", len(expired), expired)
        return expired

    async def load(self) -> int:
        """Rebuild the active map from the booking store's pending records."""
        loaded = 0
        for session in await self._booking_store.load_active_sessions():
            if session.booking_id in self._sessions:
                continue
            existing = self.get_active_by_customer(session.customer_key)
            if existing is not None:
                logger.warning(
                    "Customer %s has pending sessions %s and %s; keeping the latest",
                    session.customer_key, existing.booking_id, session.booking_id,
                )
                if existing.updated_at >= session.updated_at:
                    continue
                self.remove(existing.booking_id)
            self._sessions[session.booking_id] = session
            self._pending_by_customer[session.customer_key] = session.booking_id
            loaded += 1
        logger.info("Restored %d active session(s) from booking store", loaded)
        return loaded

    async def flush(self) -> None:
        """Wait for all scheduled durable writes to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def _schedule_persist(self, session: BookingSession) -> None:
        self._dirty[session.booking_id] = session
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; %s stays dirty until the next mutation", session.booking_id)
            return
        for pending in list(self._dirty.values()):
            task = loop.create_task(self._persist(pending))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _persist(self, session: BookingSession) -> None:
        booking_id = session.booking_id
        try:
            await self._booking_store.persist(session)
        except Exception as exc:
            failures = self._failures.get(booking_id, 0) + 1
            self._failures[booking_id] = failures
            self._dirty.setdefault(booking_id, session)
            error = PersistenceFailureError(booking_id, exc)
            if failures >= self._alert_threshold:
                logger.error("ALERT: %s (%d consecutive failures)", error, failures)
            else:
                logger.warning("%s; will retry on next mutation", error)
            return
        self._failures.pop(booking_id, None)
        if self._dirty.get(booking_id) is session:
            del self._dirty[booking_id]
