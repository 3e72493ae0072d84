"""Tests for the active session map and its best-effort persistence."""

import logging
from datetime import timedelta

import pytest

from chauffeur_bot.conversation.session_store import SessionStore
from chauffeur_bot.errors import AlreadyActiveError
from chauffeur_bot.schemas.booking_schema import BookingSession, BookingStatus
from chauffeur_bot.storage.memory import InMemoryBookingStore
from tests.conftest import CUSTOMER, START_TIME


def make_session(booking_id: str = "BK1", customer_key: str = CUSTOMER, **kwargs) -> BookingSession:
    return BookingSession(
        booking_id=booking_id,
        customer_key=customer_key,
        created_at=START_TIME,
        updated_at=kwargs.pop("updated_at", START_TIME),
        **kwargs,
    )


class FlakyBookingStore(InMemoryBookingStore):
    """Fails the first ``failures`` writes, then behaves normally."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.attempts = 0

    async def persist(self, session: BookingSession) -> None:
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("disk unavailable")
        await super().persist(session)


class TestPutAndIndex:
    def test_put_indexes_pending_session(self, session_store):
        session = make_session()
        session_store.put(session)
        assert session_store.get("BK1") is session
        assert session_store.get_active_by_customer(CUSTOMER) is session
        assert "BK1" in session_store
        assert len(session_store) == 1

    def test_second_pending_session_rejected(self, session_store):
        session_store.put(make_session("BK1"))
        with pytest.raises(AlreadyActiveError) as exc_info:
            session_store.put(make_session("BK2"))
        assert exc_info.value.session.booking_id == "BK1"
        assert "BK2" not in session_store

    def test_replacing_same_session_allowed(self, session_store):
        session_store.put(make_session("BK1"))
        updated = make_session("BK1", fields={"vehicleType": "SUV"})
        session_store.put(updated)
        assert session_store.get("BK1") is updated

    def test_other_customers_independent(self, session_store):
        session_store.put(make_session("BK1"))
        session_store.put(make_session("BK2", customer_key="+971509999999"))
        assert len(session_store) == 2

    def test_confirming_releases_customer_key(self, session_store):
        session_store.put(make_session("BK1"))
        session_store.put(make_session("BK1", status=BookingStatus.CONFIRMED))
        assert session_store.get_active_by_customer(CUSTOMER) is None
        assert "BK1" in session_store
        session_store.put(make_session("BK2"))
        assert session_store.get_active_by_customer(CUSTOMER).booking_id == "BK2"

    def test_sessions_for_customer(self, session_store):
        session_store.put(make_session("BK1", status=BookingStatus.CONFIRMED))
        session_store.put(make_session("BK2"))
        ids = {s.booking_id for s in session_store.sessions_for_customer(CUSTOMER)}
        assert ids == {"BK1", "BK2"}

    def test_put_without_loop_stays_dirty(self, session_store):
        session_store.put(make_session())
        assert session_store.dirty_ids == {"BK1"}


class TestRemove:
    def test_remove_frees_customer_key(self, session_store):
        session_store.put(make_session("BK1"))
        removed = session_store.remove("BK1")
        assert removed.booking_id == "BK1"
        assert session_store.get_active_by_customer(CUSTOMER) is None
        session_store.put(make_session("BK2"))

    def test_remove_unknown(self, session_store):
        assert session_store.remove("missing") is None


class TestSweep:
    def _confirmed(self, booking_id="BK1", grace=30):
        return make_session(
            booking_id,
            status=BookingStatus.CONFIRMED,
            confirmed_at=START_TIME,
            expires_at=START_TIME + timedelta(seconds=grace),
        )

    def test_keeps_session_inside_grace(self, session_store):
        session_store.put(self._confirmed())
        expired = session_store.sweep_expired(START_TIME + timedelta(seconds=10), timedelta(hours=1))
        assert expired == []
        assert "BK1" in session_store

    def test_removes_after_grace(self, session_store):
        session_store.put(self._confirmed())
        expired = session_store.sweep_expired(START_TIME + timedelta(seconds=30), timedelta(hours=1))
        assert expired == ["BK1"]
        assert "BK1" not in session_store

    def test_removes_stale_without_expiry(self, session_store):
        session = make_session("BK1", status=BookingStatus.CONFIRMED, confirmed_at=START_TIME)
        session_store.put(session)
        assert session_store.sweep_expired(START_TIME + timedelta(minutes=59), timedelta(hours=1)) == []
        assert session_store.sweep_expired(START_TIME + timedelta(hours=1), timedelta(hours=1)) == ["BK1"]

    def test_pending_sessions_never_swept(self, session_store):
        session_store.put(make_session("BK1"))
        assert session_store.sweep_expired(START_TIME + timedelta(days=7), timedelta(hours=1)) == []


class TestPersistence:
    @pytest.mark.asyncio
    async def test_put_writes_record(self, session_store, booking_store):
        session_store.put(make_session())
        await session_store.flush()
        record = booking_store.get_record("BK1")
        assert record["bookingId"] == "BK1"
        assert record["customerKey"] == CUSTOMER
        assert session_store.dirty_ids == set()

    @pytest.mark.asyncio
    async def test_removed_session_record_kept(self, session_store, booking_store):
        session_store.put(make_session(status=BookingStatus.CANCELLED))
        await session_store.flush()
        session_store.remove("BK1")
        assert booking_store.get_record("BK1")["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_failed_write_keeps_memory_and_marks_dirty(self):
        flaky = FlakyBookingStore(failures=1)
        store = SessionStore(flaky, alert_threshold=3)
        store.put(make_session())
        await store.flush()
        assert store.get("BK1") is not None
        assert store.dirty_ids == {"BK1"}
        assert flaky.get_record("BK1") is None

    @pytest.mark.asyncio
    async def test_dirty_session_retried_on_next_mutation(self):
        flaky = FlakyBookingStore(failures=1)
        store = SessionStore(flaky, alert_threshold=3)
        store.put(make_session("BK1"))
        await store.flush()

        store.put(make_session("BK2", customer_key="+971509999999"))
        await store.flush()
        assert flaky.get_record("BK1") is not None
        assert flaky.get_record("BK2") is not None
        assert store.dirty_ids == set()

    @pytest.mark.asyncio
    async def test_alert_after_consecutive_failures(self, caplog):
        flaky = FlakyBookingStore(failures=10)
        store = SessionStore(flaky, alert_threshold=2)
        with caplog.at_level(logging.WARNING):
            store.put(make_session())
            await store.flush()
            assert not any("ALERT" in r.getMessage() for r in caplog.records)
            store.put(make_session())
            await store.flush()
        alerts = [r for r in caplog.records if "ALERT" in r.getMessage()]
        assert alerts
        assert alerts[0].levelno == logging.ERROR

    @pytest.mark.asyncio
    async def test_latest_snapshot_wins(self, session_store, booking_store):
        session_store.put(make_session("BK1"))
        session_store.put(make_session("BK1", fields={"vehicleType": "Van"}))
        await session_store.flush()
        assert booking_store.get_record("BK1")["fields"] == {"vehicleType": "Van"}


class TestLoad:
    @pytest.mark.asyncio
    async def test_restores_pending_sessions_only(self, booking_store):
        await booking_store.persist(make_session("BK1"))
        await booking_store.persist(
            make_session("BK2", customer_key="+971509999999", status=BookingStatus.CONFIRMED)
        )
        store = SessionStore(booking_store)
        assert await store.load() == 1
        assert store.get_active_by_customer(CUSTOMER).booking_id == "BK1"
        assert "BK2" not in store

    @pytest.mark.asyncio
    async def test_keeps_latest_duplicate(self, booking_store):
        await booking_store.persist(make_session("BK1"))
        await booking_store.persist(make_session("BK2", updated_at=START_TIME + timedelta(minutes=5)))
        store = SessionStore(booking_store)
        await store.load()
        assert store.get_active_by_customer(CUSTOMER).booking_id == "BK2"
        assert "BK1" not in store

    @pytest.mark.asyncio
    async def test_restored_session_round_trips(self, booking_store):
        original = make_session("BK1", fields={"vehicleType": "SUV", "passengerCount": 3})
        await booking_store.persist(original)
        store = SessionStore(booking_store)
        await store.load()
        assert store.get("BK1").to_record() == original.to_record()
