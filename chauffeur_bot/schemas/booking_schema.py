"""Booking session, location and fare data models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

NOT_SPECIFIED = "Not specified"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookingType(str, Enum):
    UNSET = "Unset"
    HOURLY = "Hourly"
    TRANSFER = "Transfer"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class BookingPhase(str, Enum):
    """Conversation phase derived from status, editing state and completeness."""
    COLLECTING = "collecting"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    EDITING = "editing"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class FieldName(str, Enum):
    BOOKING_TYPE = "bookingType"
    VEHICLE_TYPE = "vehicleType"
    CUSTOMER_NAME = "customerName"
    PICKUP_LOCATION = "pickupLocation"
    DROP_LOCATION = "dropLocation"
    NUMBER_OF_HOURS = "numberOfHours"
    LUGGAGE_INFO = "luggageInfo"
    PASSENGER_COUNT = "passengerCount"
    SPECIAL_REQUESTS = "specialRequests"


class PricingStatus(str, Enum):
    LIVE = "live"
    FALLBACK = "fallback"


class _CamelModel(BaseModel):
    """Serializes to the camelCase record layout used by the booking store."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Location(_CamelModel):
    """A pickup or drop-off point, typed or shared from the map."""
    name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def __str__(self) -> str:
        return self.name


FieldValue = Union[Location, int, str]


class EditState(_CamelModel):
    field: FieldName
    started_at: datetime = Field(default_factory=utcnow)


class LogEntry(_CamelModel):
    role: str
    text: str
    timestamp: datetime = Field(default_factory=utcnow)


class RateCard(_CamelModel):
    """Per-vehicle tariff used by both live and fallback fare computation."""
    vehicle_type: str
    base_rate: float
    per_km_rate: float
    per_hour_rate: float
    minimum_charge: float
    currency: str = "AED"
    surge_multiplier: float = 1.0
    peak_multiplier: float = 1.2
    weekend_multiplier: float = 1.1
    holiday_multiplier: float = 1.3


class FareBreakdown(_CamelModel):
    """Computed fare for a session, tagged with where the numbers came from."""
    booking_type: BookingType
    vehicle_type: str
    currency: str
    base_rate: float
    per_km_rate: Optional[float] = None
    per_hour_rate: Optional[float] = None
    distance_km: Optional[float] = None
    distance_estimated: bool = False
    hours: Optional[int] = None
    variable_price: float = 0.0
    subtotal: float
    minimum_charge: float
    surge_multiplier: float = 1.0
    applied_factors: list[str] = Field(default_factory=list)
    final_price: float
    status: PricingStatus = PricingStatus.LIVE
    calculated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_estimated(self) -> bool:
        return self.status == PricingStatus.FALLBACK or self.distance_estimated


class BookingSession(_CamelModel):
    """
    One customer's booking conversation from intent to confirmation.

    ``fields`` only accepts keys declared in ``FieldName``; a misspelled key
    fails validation instead of silently creating an untracked field.
    """
    booking_id: str
    customer_key: str
    booking_type: BookingType = BookingType.UNSET
    fields: dict[FieldName, FieldValue] = Field(default_factory=dict)
    status: BookingStatus = BookingStatus.PENDING
    editing: Optional[EditState] = None
    pricing: Optional[FareBreakdown] = None
    conversation_log: list[LogEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    confirmed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    confirmation_id: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == BookingStatus.PENDING

    def get(self, name: FieldName) -> Optional[FieldValue]:
        return self.fields.get(name)

    def to_record(self) -> dict:
        """JSON-shaped record for the booking store."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_record(cls, record: dict) -> "BookingSession":
        return cls.model_validate(record)
