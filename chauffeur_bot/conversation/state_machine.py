"""
Booking session state machine.

Drives one customer's booking from intent to confirmation. The phase of a
session is derived from its status, its editing sub-state and whether all
required fields are present. Each operation is only valid from the phases
listed in ``TRANSITIONS``; anything else raises ``InvalidStateError``.

Phases:
    collecting -> awaiting_confirmation -> confirmed
                  awaiting_confirmation <-> editing
    collecting | awaiting_confirmation | editing -> cancelled

Usage:
    machine = BookingStateMachine(SessionStore(InMemoryBookingStore()), RateCardPricingOracle())
    session = await machine.start_booking("+971501234567")
    await machine.supply_booking_type(session.booking_id, BookingType.TRANSFER)
    update = await machine.supply_field(session.booking_id, FieldName.VEHICLE_TYPE, "Sedan")
    assert update.next_field == FieldName.CUSTOMER_NAME
"""

import asyncio
import random
import string
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional, Union

from chauffeur_bot.config import settings
from chauffeur_bot.conversation import field_schema
from chauffeur_bot.conversation.field_schema import RawInput
from chauffeur_bot.conversation.session_store import SessionStore
from chauffeur_bot.errors import (
    AlreadyActiveError,
    InvalidStateError,
    PricingUnavailableError,
    SessionNotFoundError,
)
from chauffeur_bot.logging_context import get_session_logger, set_booking_id
from chauffeur_bot.pricing.distance import estimate_trip_distance
from chauffeur_bot.pricing.fallback import fallback_fare
from chauffeur_bot.pricing.oracle import PricingOracle
from chauffeur_bot.schemas.booking_schema import (
    BookingPhase,
    BookingSession,
    BookingStatus,
    BookingType,
    EditState,
    FareBreakdown,
    FieldName,
    FieldValue,
    Location,
    LogEntry,
    utcnow,
)

logger = get_session_logger(__name__)

_BASE36 = string.digits + string.ascii_uppercase


class BookingTrigger(str, Enum):
    """Operations that act on an existing session."""
    SUPPLY_BOOKING_TYPE = "supply_booking_type"
    SUPPLY_FIELD = "supply_field"
    BEGIN_EDIT = "begin_edit"
    ABANDON_EDIT = "abandon_edit"
    CONFIRM = "confirm"
    CANCEL = "cancel"


TRANSITIONS: dict[BookingTrigger, frozenset[BookingPhase]] = {
    BookingTrigger.SUPPLY_BOOKING_TYPE: frozenset({
        BookingPhase.COLLECTING, BookingPhase.AWAITING_CONFIRMATION, BookingPhase.EDITING,
    }),
    BookingTrigger.SUPPLY_FIELD: frozenset({
        BookingPhase.COLLECTING, BookingPhase.AWAITING_CONFIRMATION, BookingPhase.EDITING,
    }),
    BookingTrigger.BEGIN_EDIT: frozenset({BookingPhase.AWAITING_CONFIRMATION}),
    BookingTrigger.ABANDON_EDIT: frozenset({BookingPhase.EDITING}),
    BookingTrigger.CONFIRM: frozenset({BookingPhase.AWAITING_CONFIRMATION}),
    BookingTrigger.CANCEL: frozenset({
        BookingPhase.COLLECTING, BookingPhase.AWAITING_CONFIRMATION, BookingPhase.EDITING,
    }),
}


@dataclass(frozen=True)
class FieldUpdate:
    """Result of supplying a value for one field."""
    accepted: bool
    field: FieldName
    phase: BookingPhase
    value: Optional[FieldValue] = None
    message: Optional[str] = None
    next_field: Optional[FieldName] = None


@dataclass(frozen=True)
class ConfirmationResult:
    confirmation_id: str
    booking_id: str
    pricing: FareBreakdown


def missing_fields(session: BookingSession) -> list[FieldName]:
    return field_schema.missing_fields(session.booking_type, session.fields)


def next_field(session: BookingSession) -> Optional[FieldName]:
    """First missing required field in schema order, or None when complete."""
    missing = missing_fields(session)
    return missing[0] if missing else None


def phase_of(session: BookingSession) -> BookingPhase:
    if session.status == BookingStatus.CANCELLED:
        return BookingPhase.CANCELLED
    if session.status == BookingStatus.CONFIRMED:
        return BookingPhase.CONFIRMED
    if session.editing is not None:
        return BookingPhase.EDITING
    if not missing_fields(session):
        return BookingPhase.AWAITING_CONFIRMATION
    return BookingPhase.COLLECTING


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"


class BookingStateMachine:
    """
    Operations on booking sessions held in a ``SessionStore``.

    Operations on the same booking are serialized by a per-booking lock.
    Any operation that awaits (fare computation) re-reads the session from
    the store afterwards and re-checks its phase before committing, so a
    session cancelled or swept in the meantime is never resurrected.
    """

    def __init__(
        self,
        store: SessionStore,
        oracle: PricingOracle,
        clock: Callable[[], datetime] = utcnow,
        confirm_grace: timedelta = timedelta(seconds=settings.session.confirm_grace_seconds),
        stale_after: timedelta = timedelta(seconds=settings.session.stale_confirmed_seconds),
    ) -> None:
        self.store = store
        self.oracle = oracle
        self._clock = clock
        self._confirm_grace = confirm_grace
        self._stale_after = stale_after
        self._locks: dict[str, asyncio.Lock] = {}

    # --- Lookup ---

    def get_session(self, booking_id: str) -> BookingSession:
        """
        Raises:
            SessionNotFoundError: If the booking is not in the active map.
        """
        session = self.store.get(booking_id)
        if session is None:
            raise SessionNotFoundError(booking_id)
        return session

    async def get_active_session(self, customer_key: str) -> Optional[BookingSession]:
        """The customer's pending session, after sweeping expired confirmations."""
        self.sweep()
        return self.store.get_active_by_customer(customer_key)

    def sweep(self) -> list[str]:
        expired = self.store.sweep_expired(self._clock(), self._stale_after)
        for booking_id in expired:
            self._locks.pop(booking_id, None)
        return expired

    async def run_sweeper(self, interval_sec: float = settings.session.sweep_interval_seconds) -> None:
        """Periodically remove expired confirmed sessions. Run as a background task."""
        while True:
            await asyncio.sleep(interval_sec)
            self.sweep()

    # --- Operations ---

    async def start_booking(self, customer_key: str) -> BookingSession:
        """
        Open a new session for the customer.

        Raises:
            AlreadyActiveError: If the customer already has a pending session.
        """
        self.sweep()
        active = self.store.get_active_by_customer(customer_key)
        if active is not None:
            raise AlreadyActiveError(active)
        for stale in self.store.sessions_for_customer(customer_key):
            if stale.status == BookingStatus.CONFIRMED:
                self.store.remove(stale.booking_id)
                self._locks.pop(stale.booking_id, None)
                logger.info("Discarded confirmed session %s for new booking", stale.booking_id)

        now = self._clock()
        session = BookingSession(
            booking_id=self._new_booking_id(),
            customer_key=customer_key,
            created_at=now,
            updated_at=now,
        )
        self.store.put(session)
        set_booking_id(session.booking_id)
        logger.info("Booking %s started", session.booking_id)
        return session

    async def supply_booking_type(
        self, booking_id: str, booking_type: Union[BookingType, str]
    ) -> FieldUpdate:
        raw = booking_type.value if isinstance(booking_type, BookingType) else booking_type
        async with self._lock_for(booking_id):
            return await self._supply(
                BookingTrigger.SUPPLY_BOOKING_TYPE, booking_id, FieldName.BOOKING_TYPE, raw
            )

    async def supply_field(
        self, booking_id: str, field_name: Union[FieldName, str], raw_input: RawInput
    ) -> FieldUpdate:
        """
        Validate and store one field value.

        Raises:
            UnknownFieldError: If the field name is not in the schema.
            InvalidStateError: If the session is not accepting this field.
        """
        name = field_schema.get_definition(field_name).name
        async with self._lock_for(booking_id):
            return await self._supply(BookingTrigger.SUPPLY_FIELD, booking_id, name, raw_input)

    async def begin_edit(self, booking_id: str, field_name: Union[FieldName, str]) -> BookingSession:
        name = field_schema.get_definition(field_name).name
        async with self._lock_for(booking_id):
            session = self._require(booking_id, BookingTrigger.BEGIN_EDIT)
            if name not in field_schema.required_fields(session.booking_type):
                raise InvalidStateError(
                    f"{name.value} is not part of a {session.booking_type.value} booking"
                )
            now = self._clock()
            session.editing = EditState(field=name, started_at=now)
            session.updated_at = now
            self.store.put(session)
            logger.info("Booking %s editing %s", booking_id, name.value)
            return session

    async def abandon_edit(self, booking_id: str) -> BookingSession:
        async with self._lock_for(booking_id):
            session = self._require(booking_id, BookingTrigger.ABANDON_EDIT)
            session.editing = None
            session.updated_at = self._clock()
            self.store.put(session)
            return session

    async def confirm(self, booking_id: str) -> ConfirmationResult:
        async with self._lock_for(booking_id):
            session = self._require(booking_id, BookingTrigger.CONFIRM)
            pricing = session.pricing
            if pricing is None:
                pricing = await self._compute_pricing(session.booking_type, dict(session.fields))
                session = self._require(booking_id, BookingTrigger.CONFIRM)
            if pricing is None:
                raise InvalidStateError(f"Booking {booking_id} has no vehicle to price")

            now = self._clock()
            session.pricing = pricing
            session.status = BookingStatus.CONFIRMED
            session.confirmation_id = f"CNF-{uuid.uuid4().hex[:8].upper()}"
            session.confirmed_at = now
            session.expires_at = now + self._confirm_grace
            session.updated_at = now
            self.store.put(session)
            logger.info(
                "Booking %s confirmed as %s (%s %.2f, %s)",
                booking_id, session.confirmation_id, pricing.currency,
                pricing.final_price, pricing.status.value,
            )
            return ConfirmationResult(
                confirmation_id=session.confirmation_id,
                booking_id=booking_id,
                pricing=pricing,
            )

    async def cancel(self, booking_id: str) -> BookingSession:
        async with self._lock_for(booking_id):
            session = self._require(booking_id, BookingTrigger.CANCEL)
            session.status = BookingStatus.CANCELLED
            session.editing = None
            session.updated_at = self._clock()
            self.store.put(session)
            self.store.remove(booking_id)
        self._locks.pop(booking_id, None)
        logger.info("Booking %s cancelled", booking_id)
        return session

    async def record_message(self, booking_id: str, role: str, text: str) -> None:
        session = self.get_session(booking_id)
        session.conversation_log.append(LogEntry(role=role, text=text, timestamp=self._clock()))
        self.store.put(session)

    # --- Internals ---

    def _lock_for(self, booking_id: str) -> asyncio.Lock:
        """
        Raises:
            SessionNotFoundError: If the booking is not in the active map.
        """
        if booking_id not in self.store:
            raise SessionNotFoundError(booking_id)
        set_booking_id(booking_id)
        lock = self._locks.get(booking_id)
        if lock is None:
            lock = self._locks[booking_id] = asyncio.Lock()
        return lock

    def _require(self, booking_id: str, trigger: BookingTrigger) -> BookingSession:
        session = self.get_session(booking_id)
        phase = phase_of(session)
        if phase not in TRANSITIONS[trigger]:
            valid = sorted(p.value for p in TRANSITIONS[trigger])
            raise InvalidStateError(
                f"Cannot {trigger.value} booking {booking_id} in phase '{phase.value}'. "
                f"Valid from: {valid}"
            )
        return session

    def _new_booking_id(self) -> str:
        while True:
            stamp = _to_base36(int(time.time() * 1000))
            suffix = "".join(random.choices(_BASE36, k=4))
            booking_id = f"BK{stamp}{suffix}"
            if booking_id not in self.store:
                return booking_id

    async def _supply(
        self,
        trigger: BookingTrigger,
        booking_id: str,
        name: FieldName,
        raw_input: RawInput,
    ) -> FieldUpdate:
        session = self._require(booking_id, trigger)
        phase = phase_of(session)
        if phase == BookingPhase.EDITING and session.editing.field != name:
            raise InvalidStateError(
                f"Booking {booking_id} is editing {session.editing.field.value}, "
                f"not {name.value}"
            )

        result = field_schema.validate(name, raw_input, session.booking_type)
        if not result.valid:
            return FieldUpdate(
                accepted=False,
                field=name,
                phase=phase,
                message=result.message,
                next_field=session.editing.field if session.editing else next_field(session),
            )

        if phase == BookingPhase.AWAITING_CONFIRMATION:
            if session.fields.get(name) != result.value:
                raise InvalidStateError(
                    f"Booking {booking_id} is awaiting confirmation; use begin_edit to change {name.value}"
                )
            return FieldUpdate(accepted=True, field=name, phase=phase, value=result.value)

        booking_type = session.booking_type
        fields = dict(session.fields)
        fields[name] = result.value
        if name == FieldName.BOOKING_TYPE:
            booking_type = result.value
            applicable = field_schema.required_fields(booking_type)
            fields = {k: v for k, v in fields.items() if k in applicable}
            fields[name] = booking_type.value

        pricing = session.pricing
        if name in field_schema.COST_RELEVANT_FIELDS:
            pricing = await self._compute_pricing(booking_type, fields)
            session = self._require(booking_id, trigger)

        session.booking_type = booking_type
        session.fields = fields
        session.pricing = pricing
        session.editing = None
        session.updated_at = self._clock()
        self.store.put(session)

        new_phase = phase_of(session)
        logger.info("Booking %s: %s accepted (%s)", booking_id, name.value, new_phase.value)
        return FieldUpdate(
            accepted=True,
            field=name,
            phase=new_phase,
            value=fields[name],
            next_field=next_field(session),
        )

    async def _compute_pricing(
        self, booking_type: BookingType, fields: dict[FieldName, FieldValue]
    ) -> Optional[FareBreakdown]:
        """Fare for the given fields, or None until vehicle and booking type are known."""
        vehicle = fields.get(FieldName.VEHICLE_TYPE)
        if vehicle is None or booking_type == BookingType.UNSET:
            return None

        distance_estimated = False
        if booking_type == BookingType.HOURLY:
            hours = fields.get(FieldName.NUMBER_OF_HOURS)
            amount = hours if isinstance(hours, int) else settings.pricing.default_hours
        else:
            pickup = fields.get(FieldName.PICKUP_LOCATION)
            drop = fields.get(FieldName.DROP_LOCATION)
            amount, distance_estimated = estimate_trip_distance(
                pickup if isinstance(pickup, Location) else None,
                drop if isinstance(drop, Location) else None,
                settings.pricing.default_distance_km,
            )

        try:
            fare = await self.oracle.compute_fare(str(vehicle), booking_type, amount)
        except PricingUnavailableError as e:
            logger.warning(f"Live pricing unavailable, using fallback table: {e}")
            fare = self._fallback(str(vehicle), booking_type, amount)
        except Exception:
            logger.exception("Pricing oracle failed; using fallback table")
            fare = self._fallback(str(vehicle), booking_type, amount)

        if booking_type == BookingType.TRANSFER:
            fare = fare.model_copy(update={"distance_estimated": distance_estimated})
        return fare

    @staticmethod
    def _fallback(vehicle: str, booking_type: BookingType, amount: float) -> FareBreakdown:
        return fallback_fare(
            vehicle,
            booking_type,
            amount,
            settings.pricing.default_distance_km,
            settings.pricing.default_hours,
        )
