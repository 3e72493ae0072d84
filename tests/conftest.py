"""Shared test fixtures and helpers."""

import itertools
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from chauffeur_bot.conversation.guardrails import (
    DuplicateEventGuardrail,
    GuardrailPipeline,
    InputLengthGuardrail,
    RateLimitGuardrail,
)
from chauffeur_bot.conversation.router import ConversationRouter
from chauffeur_bot.conversation.session_store import SessionStore
from chauffeur_bot.conversation.state_machine import BookingStateMachine
from chauffeur_bot.errors import PricingUnavailableError
from chauffeur_bot.gateway import ConsoleGateway
from chauffeur_bot.pricing.fallback import compute_base_fare, get_rate_card
from chauffeur_bot.schemas.booking_schema import (
    BookingType,
    FareBreakdown,
    FieldName,
    FieldValue,
    Location,
)
from chauffeur_bot.schemas.message_schema import EventKind, InboundEvent, MediaAttachment
from chauffeur_bot.storage.memory import InMemoryBookingStore

CUSTOMER = "+971501234567"
START_TIME = datetime(2025, 3, 15, 10, 0, tzinfo=timezone.utc)

DUBAI_MALL = Location(name="Dubai Mall", latitude=25.1972, longitude=55.2796)
DXB_AIRPORT = Location(name="DXB Terminal 3", latitude=25.2487, longitude=55.3523)


class FixedClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime = START_TIME) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeOracle:
    """Live oracle over the static rate table, recording every request."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, BookingType, float]] = []

    async def compute_fare(
        self, vehicle_type: str, booking_type: BookingType, distance_or_hours: float
    ) -> FareBreakdown:
        self.calls.append((vehicle_type, booking_type, distance_or_hours))
        return compute_base_fare(get_rate_card(vehicle_type), booking_type, distance_or_hours)


class FailingOracle:
    def __init__(self, error: Exception = PricingUnavailableError("rates service down")) -> None:
        self.error = error
        self.calls = 0

    async def compute_fare(
        self, vehicle_type: str, booking_type: BookingType, distance_or_hours: float
    ) -> FareBreakdown:
        self.calls += 1
        raise self.error


class FakeInference:
    """Returns canned extractions, transcripts and image readings."""

    def __init__(
        self,
        extracted: Optional[dict[FieldName, str]] = None,
        transcript: str = "",
        image_text: str = "",
    ) -> None:
        self.extracted = extracted or {}
        self.transcript = transcript
        self.image_text = image_text
        self.extract_calls: list[str] = []

    async def extract_fields(
        self,
        text: str,
        booking_type: BookingType,
        current_fields: dict[FieldName, FieldValue],
    ) -> dict[FieldName, str]:
        self.extract_calls.append(text)
        return dict(self.extracted)

    async def transcribe(self, media: MediaAttachment) -> str:
        return self.transcript

    async def analyze_image(self, media: MediaAttachment) -> str:
        return self.image_text


class FakePaymentIssuer:
    async def issue(self, confirmation) -> str:
        return f"https://pay.example.com/{confirmation.booking_id}"


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def booking_store():
    return InMemoryBookingStore()


@pytest.fixture
def session_store(booking_store):
    return SessionStore(booking_store, alert_threshold=3)


@pytest.fixture
def oracle():
    return FakeOracle()


@pytest.fixture
def machine(session_store, oracle, clock):
    return BookingStateMachine(
        session_store,
        oracle,
        clock=clock,
        confirm_grace=timedelta(seconds=30),
        stale_after=timedelta(hours=1),
    )


@pytest.fixture
def inference():
    return FakeInference()


@pytest.fixture
def gateway():
    return ConsoleGateway(output=lambda text: None)


@pytest.fixture
def guardrail_pipeline():
    return GuardrailPipeline(
        dedup=DuplicateEventGuardrail(window_sec=30),
        rate_limit=RateLimitGuardrail(max_per_minute=100),
        input_length=InputLengthGuardrail(max_length=200),
    )


@pytest.fixture
def router(machine, inference, gateway, guardrail_pipeline):
    return ConversationRouter(
        machine,
        inference,
        gateway=gateway,
        guardrails=guardrail_pipeline,
        extraction_min_words=5,
    )


_event_ids = itertools.count(1)


def make_event(
    text: Optional[str] = None,
    kind: EventKind = EventKind.TEXT,
    selection_id: Optional[str] = None,
    location: Optional[Location] = None,
    media: Optional[MediaAttachment] = None,
    customer_key: str = CUSTOMER,
    event_id: Optional[str] = None,
) -> InboundEvent:
    """Helper to create an InboundEvent with a fresh id."""
    if selection_id is not None and kind == EventKind.TEXT:
        kind = EventKind.LIST_SELECTION
    if location is not None and kind == EventKind.TEXT:
        kind = EventKind.LOCATION_SHARE
    if media is not None and kind == EventKind.TEXT:
        kind = EventKind.MEDIA
    return InboundEvent(
        event_id=event_id or f"evt-{next(_event_ids)}",
        customer_key=customer_key,
        kind=kind,
        text=text,
        selection_id=selection_id,
        location=location,
        media=media,
    )


TRANSFER_ANSWERS: list[tuple[FieldName, object]] = [
    (FieldName.VEHICLE_TYPE, "Sedan"),
    (FieldName.CUSTOMER_NAME, "Sarah Khan"),
    (FieldName.PICKUP_LOCATION, DUBAI_MALL),
    (FieldName.DROP_LOCATION, DXB_AIRPORT),
    (FieldName.LUGGAGE_INFO, "2"),
    (FieldName.PASSENGER_COUNT, "3"),
    (FieldName.SPECIAL_REQUESTS, "Baby seat"),
]

HOURLY_ANSWERS: list[tuple[FieldName, object]] = [
    (FieldName.VEHICLE_TYPE, "SUV"),
    (FieldName.CUSTOMER_NAME, "Omar Ali"),
    (FieldName.PICKUP_LOCATION, "Atlantis The Palm"),
    (FieldName.NUMBER_OF_HOURS, "4 hours"),
    (FieldName.LUGGAGE_INFO, "skip"),
    (FieldName.PASSENGER_COUNT, "2"),
    (FieldName.SPECIAL_REQUESTS, "none"),
]


async def complete_booking(
    machine: BookingStateMachine,
    booking_type: BookingType = BookingType.TRANSFER,
    customer_key: str = CUSTOMER,
):
    """Start a booking and supply every required field in order."""
    session = await machine.start_booking(customer_key)
    await machine.supply_booking_type(session.booking_id, booking_type)
    answers = TRANSFER_ANSWERS if booking_type == BookingType.TRANSFER else HOURLY_ANSWERS
    for field, raw in answers:
        update = await machine.supply_field(session.booking_id, field, raw)
        assert update.accepted, update.message
    return machine.get_session(session.booking_id)
