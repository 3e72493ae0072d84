"""
Rule-based field extraction.

Used when no OpenAI key is configured and as the fallback when the model
call fails. Recognizes the phrasings customers use most often:
"from X to Y", "my name is ...", "3 passengers", "2 bags", "4 hours".
"""

import logging
import re

from chauffeur_bot.conversation.field_schema import VEHICLE_TYPES
from chauffeur_bot.schemas.booking_schema import BookingType, FieldName, FieldValue
from chauffeur_bot.schemas.message_schema import MediaAttachment

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(
    r"(?i:\b(?:my name is|name is|call me|i am|i'm))\s+([A-Z][a-zA-Z]+(?:\s+[A-Z][a-zA-Z]+)*)"
)
_ROUTE_RE = re.compile(r"\bfrom\s+(.+?)\s+to\s+([^,.]+)", re.IGNORECASE)
_PICKUP_RE = re.compile(r"\bpick(?:\s*-?\s*up)?\s+(?:at|from)?\s*([^,.]+)", re.IGNORECASE)
_DROP_RE = re.compile(
    r"\b(?:drop(?:\s*-?\s*off)?|destination)\s+(?:at|to|is)?\s*([^,.]+)", re.IGNORECASE
)
_HOURS_RE = re.compile(r"(\d+)\s*(?:hours?|hrs?)\b", re.IGNORECASE)
_PASSENGERS_RE = re.compile(r"(\d+)\s*(?:passengers?|people|persons?|pax)\b", re.IGNORECASE)
_LUGGAGE_RE = re.compile(r"(\d+)\s*(?:bags?|suitcases?|luggage|pieces?)\b", re.IGNORECASE)

SPECIAL_REQUEST_KEYWORDS: dict[str, tuple[str, ...]] = {
    "Baby Seat": ("baby seat", "child seat", "baby"),
    "Wheelchair Access": ("wheelchair", "wheel chair"),
    "Water Bottle": ("water bottle", "water"),
}


class KeywordFieldExtractor:
    """Regex extraction of booking details; never calls out of process."""

    async def extract_fields(
        self,
        text: str,
        booking_type: BookingType,
        current_fields: dict[FieldName, FieldValue],
    ) -> dict[FieldName, str]:
        return self.extract(text)

    def extract(self, text: str) -> dict[FieldName, str]:
        found: dict[FieldName, str] = {}
        lower = text.lower()

        route = _ROUTE_RE.search(text)
        if re.search(r"\bhourly\b", lower) or _HOURS_RE.search(text):
            found[FieldName.BOOKING_TYPE] = BookingType.HOURLY.value
        elif re.search(r"\b(transfer|airport)\b", lower) or route:
            found[FieldName.BOOKING_TYPE] = BookingType.TRANSFER.value

        for key, canonical in VEHICLE_TYPES.items():
            if re.search(rf"\b{key}\b", lower):
                found[FieldName.VEHICLE_TYPE] = canonical
                break

        name = _NAME_RE.search(text)
        if name:
            found[FieldName.CUSTOMER_NAME] = name.group(1).strip()

        if route:
            found[FieldName.PICKUP_LOCATION] = route.group(1).strip()
            found[FieldName.DROP_LOCATION] = route.group(2).strip()
        else:
            pickup = _PICKUP_RE.search(text)
            if pickup:
                found[FieldName.PICKUP_LOCATION] = pickup.group(1).strip()
            drop = _DROP_RE.search(text)
            if drop:
                found[FieldName.DROP_LOCATION] = drop.group(1).strip()

        hours = _HOURS_RE.search(text)
        if hours:
            found[FieldName.NUMBER_OF_HOURS] = hours.group(1)

        passengers = _PASSENGERS_RE.search(text)
        if passengers:
            found[FieldName.PASSENGER_COUNT] = passengers.group(1)

        luggage = _LUGGAGE_RE.search(text)
        if luggage:
            found[FieldName.LUGGAGE_INFO] = luggage.group(1)

        requests = [
            label
            for label, keywords in SPECIAL_REQUEST_KEYWORDS.items()
            if any(keyword in lower for keyword in keywords)
        ]
        if requests:
            found[FieldName.SPECIAL_REQUESTS] = ", ".join(requests)

        logger.debug("Keyword extraction found %s", [name.value for name in found])
        return found

    async def transcribe(self, media: MediaAttachment) -> str:
        logger.info("Voice transcription unavailable without a language model")
        return ""

    async def analyze_image(self, media: MediaAttachment) -> str:
        logger.info("Image reading unavailable without a language model")
        return ""
