"""
Booking field schema: which details are required per booking type, in what
order, and how raw customer input is validated into stored values.

Usage:
    fields = required_fields(BookingType.TRANSFER)
    result = validate(FieldName.PASSENGER_COUNT, "3 people", BookingType.TRANSFER)
    if result.valid:
        session.fields[FieldName.PASSENGER_COUNT] = result.value
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional, Union

from chauffeur_bot.errors import FieldValidationError, UnknownFieldError
from chauffeur_bot.schemas.booking_schema import (
    NOT_SPECIFIED,
    BookingType,
    FieldName,
    FieldValue,
    Location,
)
from chauffeur_bot.utils import extract_int, is_skip_command

logger = logging.getLogger(__name__)

# Validation thresholds
MIN_NAME_LENGTH = 2
MIN_LOCATION_LENGTH = 3
MIN_HOURS, MAX_HOURS = 1, 24
MIN_PASSENGERS, MAX_PASSENGERS = 1, 20
MAX_LUGGAGE = 10

VEHICLE_TYPES: dict[str, str] = {
    "sedan": "Sedan",
    "suv": "SUV",
    "luxury": "Luxury",
    "van": "Van",
}

RawInput = Union[str, Location]


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one raw answer."""
    valid: bool
    value: Optional[FieldValue] = None
    message: Optional[str] = None


def _text(raw: RawInput) -> str:
    if isinstance(raw, Location):
        return raw.name
    return str(raw).strip()


def _parse_booking_type(raw: RawInput) -> BookingType:
    lower = _text(raw).lower()
    if re.search(r"\bhour(ly|s)?\b", lower):
        return BookingType.HOURLY
    if re.search(r"\b(transfer|airport|from|to)\b", lower):
        return BookingType.TRANSFER
    raise FieldValidationError("Please select either 'Transfer Booking' or 'Hourly Booking'.")


def _parse_vehicle_type(raw: RawInput) -> str:
    lower = _text(raw).lower()
    for key, canonical in VEHICLE_TYPES.items():
        if key in lower:
            return canonical
    raise FieldValidationError(
        "Please select a valid vehicle type (Sedan, SUV, Luxury, or Van)."
    )


def _parse_name(raw: RawInput) -> str:
    value = _text(raw)
    if len(value) < MIN_NAME_LENGTH:
        raise FieldValidationError(
            f"Please provide a valid name (at least {MIN_NAME_LENGTH} characters)."
        )
    return value


def _location_parser(label: str) -> Callable[[RawInput], Location]:
    def parse(raw: RawInput) -> Location:
        if isinstance(raw, Location):
            if len(raw.name.strip()) < MIN_LOCATION_LENGTH and not raw.has_coordinates:
                raise FieldValidationError(f"Please provide a valid {label}.")
            return raw
        value = _text(raw)
        if len(value) < MIN_LOCATION_LENGTH:
            raise FieldValidationError(f"Please provide a valid {label}.")
        return Location(name=value)
    return parse


def _parse_hours(raw: RawInput) -> int:
    hours = extract_int(_text(raw), r"hours?|hrs?|h")
    if hours is None or not MIN_HOURS <= hours <= MAX_HOURS:
        raise FieldValidationError(
            f"Please enter a valid number of hours ({MIN_HOURS}-{MAX_HOURS})."
        )
    return hours


def _parse_luggage(raw: RawInput) -> str:
    count = extract_int(_text(raw))
    if count is None or not 0 <= count <= MAX_LUGGAGE:
        raise FieldValidationError(
            f"Please enter a valid number of luggage pieces (0-{MAX_LUGGAGE})."
        )
    return f"{count} pieces"


def _parse_passengers(raw: RawInput) -> int:
    count = extract_int(_text(raw), r"passengers?|people|persons?|pax")
    if count is None or not MIN_PASSENGERS <= count <= MAX_PASSENGERS:
        raise FieldValidationError(
            f"Please enter a valid number of passengers ({MIN_PASSENGERS}-{MAX_PASSENGERS})."
        )
    return count


def _parse_special_requests(raw: RawInput) -> str:
    value = _text(raw)
    if not value:
        raise FieldValidationError("Please describe your special requests, or reply 'none'.")
    return value


@dataclass(frozen=True)
class FieldDefinition:
    """Schema for a single booking detail."""

    name: FieldName
    display_name: str
    prompt: str
    parser: Callable[[RawInput], FieldValue]
    cost_relevant: bool = False
    skip_default: Optional[FieldValue] = None


FIELD_DEFINITIONS: dict[FieldName, FieldDefinition] = {
    defn.name: defn
    for defn in [
        FieldDefinition(
            name=FieldName.BOOKING_TYPE,
            display_name="Booking Type",
            prompt="What type of booking do you need?",
            parser=_parse_booking_type,
            cost_relevant=True,
        ),
        FieldDefinition(
            name=FieldName.VEHICLE_TYPE,
            display_name="Vehicle Type",
            prompt="Which vehicle would you like?",
            parser=_parse_vehicle_type,
            cost_relevant=True,
        ),
        FieldDefinition(
            name=FieldName.CUSTOMER_NAME,
            display_name="Customer Name",
            prompt="What name should the booking be under?",
            parser=_parse_name,
        ),
        FieldDefinition(
            name=FieldName.PICKUP_LOCATION,
            display_name="Pickup Location",
            prompt="Where should we pick you up? You can type an address or share a location.",
            parser=_location_parser("pickup location"),
            cost_relevant=True,
        ),
        FieldDefinition(
            name=FieldName.DROP_LOCATION,
            display_name="Drop Location",
            prompt="Where are you going? You can type an address or share a location.",
            parser=_location_parser("drop location"),
            cost_relevant=True,
        ),
        FieldDefinition(
            name=FieldName.NUMBER_OF_HOURS,
            display_name="Number of Hours",
            prompt="How many hours do you need the chauffeur (1-24)?",
            parser=_parse_hours,
            cost_relevant=True,
            skip_default=2,
        ),
        FieldDefinition(
            name=FieldName.LUGGAGE_INFO,
            display_name="Luggage Info",
            prompt="How many pieces of luggage will you have?",
            parser=_parse_luggage,
            skip_default="None",
        ),
        FieldDefinition(
            name=FieldName.PASSENGER_COUNT,
            display_name="Passengers",
            prompt="How many passengers will be travelling?",
            parser=_parse_passengers,
            cost_relevant=True,
            skip_default=1,
        ),
        FieldDefinition(
            name=FieldName.SPECIAL_REQUESTS,
            display_name="Special Requests",
            prompt="Do you have any special requests?",
            parser=_parse_special_requests,
            skip_default="None",
        ),
    ]
}

COST_RELEVANT_FIELDS: frozenset[FieldName] = frozenset(
    name for name, defn in FIELD_DEFINITIONS.items() if defn.cost_relevant
)

_LEADING_FIELDS = [
    FieldName.BOOKING_TYPE,
    FieldName.VEHICLE_TYPE,
    FieldName.CUSTOMER_NAME,
    FieldName.PICKUP_LOCATION,
]
_TRAILING_FIELDS = [
    FieldName.LUGGAGE_INFO,
    FieldName.PASSENGER_COUNT,
    FieldName.SPECIAL_REQUESTS,
]
_TYPE_SPECIFIC_FIELDS: dict[BookingType, list[FieldName]] = {
    BookingType.UNSET: [],
    BookingType.TRANSFER: [FieldName.DROP_LOCATION],
    BookingType.HOURLY: [FieldName.NUMBER_OF_HOURS],
}


def get_definition(name: Union[FieldName, str]) -> FieldDefinition:
    try:
        return FIELD_DEFINITIONS[FieldName(name)]
    except ValueError:
        raise UnknownFieldError(f"Unknown field: {name}") from None


def required_fields(booking_type: BookingType) -> list[FieldName]:
    """Ordered required fields for a booking type."""
    return _LEADING_FIELDS + _TYPE_SPECIFIC_FIELDS[booking_type] + _TRAILING_FIELDS


def step_number(name: FieldName, booking_type: BookingType) -> int:
    """1-based position of the field in the booking type's ordered list."""
    return required_fields(booking_type).index(name) + 1


def total_steps(booking_type: BookingType) -> int:
    return len(required_fields(booking_type))


def is_missing(value: Optional[FieldValue]) -> bool:
    """A value is missing if absent, empty, or the "Not specified" sentinel."""
    if value is None:
        return True
    text = value.name if isinstance(value, Location) else str(value)
    text = text.strip()
    return text == "" or text == NOT_SPECIFIED


def missing_fields(
    booking_type: BookingType, fields: dict[FieldName, FieldValue]
) -> list[FieldName]:
    return [name for name in required_fields(booking_type) if is_missing(fields.get(name))]


def validate(
    field_name: Union[FieldName, str], raw_input: RawInput, booking_type: BookingType
) -> ValidationResult:
    """
    Validate a raw answer for one field.

    Skip synonyms resolve to the field's default where it has one; on
    fields without a default they fail like any other invalid answer.

    Raises:
        UnknownFieldError: If the field is not part of the schema.
    """
    defn = get_definition(field_name)
    if booking_type != BookingType.UNSET and defn.name not in required_fields(booking_type):
        return ValidationResult(
            valid=False,
            message=f"{defn.display_name} doesn't apply to a {booking_type.value} booking.",
        )
    if isinstance(raw_input, str) and is_skip_command(raw_input):
        if defn.skip_default is not None:
            return ValidationResult(valid=True, value=defn.skip_default)
        return ValidationResult(
            valid=False,
            message=f"{defn.display_name} is required and can't be skipped.",
        )
    try:
        value = defn.parser(raw_input)
    except FieldValidationError as exc:
        logger.debug("Field '%s' validation failed for %r", defn.name.value, raw_input)
        return ValidationResult(valid=False, message=str(exc))
    return ValidationResult(valid=True, value=value)
