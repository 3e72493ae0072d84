"""
Field extraction, voice transcription and image reading with OpenAI.

The chat model receives the required fields for the booking type and
returns a JSON object holding only the details the customer explicitly
mentioned. Any API or parse failure falls back to keyword extraction so a
flaky model never blocks a booking.
"""

import base64
import json
import logging
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from chauffeur_bot.config import settings
from chauffeur_bot.conversation.field_schema import FIELD_DEFINITIONS, VEHICLE_TYPES, required_fields
from chauffeur_bot.inference.keyword import KeywordFieldExtractor
from chauffeur_bot.schemas.booking_schema import BookingType, FieldName, FieldValue
from chauffeur_bot.schemas.message_schema import MediaAttachment

logger = logging.getLogger(__name__)

FIELD_HINTS: dict[FieldName, str] = {
    FieldName.BOOKING_TYPE: "exactly 'Transfer' or 'Hourly'",
    FieldName.VEHICLE_TYPE: f"exactly one of {', '.join(VEHICLE_TYPES.values())}",
    FieldName.CUSTOMER_NAME: "the guest's full name",
    FieldName.PICKUP_LOCATION: "pickup address or landmark",
    FieldName.DROP_LOCATION: "drop-off address or landmark",
    FieldName.NUMBER_OF_HOURS: "whole number of hours, 1-24",
    FieldName.LUGGAGE_INFO: "number of luggage pieces",
    FieldName.PASSENGER_COUNT: "number of passengers",
    FieldName.SPECIAL_REQUESTS: "special requests such as baby seat or water",
}

IMAGE_PROMPT = (
    "This image was sent to a chauffeur booking assistant. It may be a screenshot of a chat, "
    "a flight itinerary, a hotel confirmation or a map. Write the booking details it shows as "
    "one short message in the customer's voice, for example: "
    "'Transfer from Dubai Mall to DXB Terminal 3, 3 passengers, 2 bags, my name is Sarah Khan'. "
    "Include only details that are visible: guest name, pickup, drop-off, date and time, "
    "vehicle, passengers, luggage and special requests. "
    "If the image holds no booking details, reply with NONE."
)


class OpenAIFieldExtractor:
    """Language inference backed by the OpenAI chat, vision and audio APIs."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: str = settings.model.llm_model,
        temperature: float = settings.model.llm_temperature,
        transcription_model: str = settings.model.transcription_model,
        vision_model: str = settings.model.vision_model,
        fallback: Optional[KeywordFieldExtractor] = None,
    ) -> None:
        self.client = client or AsyncOpenAI(api_key=settings.model.openai_api_key)
        self.model = model
        self.temperature = temperature
        self.transcription_model = transcription_model
        self.vision_model = vision_model
        self.fallback = fallback or KeywordFieldExtractor()

    def _build_extraction_prompt(
        self, booking_type: BookingType, current_fields: dict[FieldName, FieldValue]
    ) -> str:
        if booking_type == BookingType.UNSET:
            wanted = list(FIELD_DEFINITIONS)
        else:
            wanted = required_fields(booking_type)
        lines = "\n".join(f"- {name.value}: {FIELD_HINTS[name]}" for name in wanted)
        known = ", ".join(name.value for name in current_fields) or "none"
        return (
            "You extract chauffeur booking details from a customer's message.\n\n"
            f"Fields:\n{lines}\n\n"
            f"Already collected: {known}.\n\n"
            "Rules:\n"
            "1. Only extract information that is explicitly mentioned.\n"
            "2. Omit any field that is not mentioned. Never guess.\n"
            "3. Return all values as strings.\n"
            "4. Return a JSON object; {} if nothing is found.\n\n"
            'Example: {"vehicleType": "Sedan", "pickupLocation": "Dubai Mall"}'
        )

    def _parse_extraction(self, content: Optional[str]) -> dict[FieldName, str]:
        data = json.loads(content or "{}")
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
        found: dict[FieldName, str] = {}
        for key, value in data.items():
            try:
                name = FieldName(key)
            except ValueError:
                logger.debug("Ignoring unknown field '%s' from model output", key)
                continue
            if value is None or str(value).strip() == "":
                continue
            found[name] = str(value).strip()
        return found

    async def extract_fields(
        self,
        text: str,
        booking_type: BookingType,
        current_fields: dict[FieldName, FieldValue],
    ) -> dict[FieldName, str]:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self._build_extraction_prompt(booking_type, current_fields)},
                    {"role": "user", "content": text},
                ],
                response_format={"type": "json_object"},
                temperature=self.temperature,
            )
            found = self._parse_extraction(response.choices[0].message.content)
        except (OpenAIError, ValueError) as e:
            logger.warning(f"Model extraction failed, using keyword extraction: {e}")
            return self.fallback.extract(text)
        logger.info("Extracted %d field(s) from free text", len(found))
        return found

    async def transcribe(self, media: MediaAttachment) -> str:
        if media.data is None:
            logger.warning("Audio attachment has no payload to transcribe")
            return ""
        try:
            result = await self.client.audio.transcriptions.create(
                model=self.transcription_model,
                file=(media.filename, media.data, media.mime_type),
            )
        except OpenAIError as e:
            logger.error(f"Transcription failed: {e}")
            return ""
        return result.text.strip()

    async def analyze_image(self, media: MediaAttachment) -> str:
        if media.data is None:
            logger.warning("Image attachment has no payload to analyze")
            return ""
        encoded = base64.b64encode(media.data).decode("utf-8")
        content = [{"type": "text", "text": IMAGE_PROMPT}]
        if media.caption:
            content.append({"type": "text", "text": f"Caption from the customer: {media.caption}"})
        content.append(
            {"type": "image_url", "image_url": {"url": f"data:{media.mime_type};base64,{encoded}"}}
        )
        try:
            response = await self.client.chat.completions.create(
                model=self.vision_model,
                messages=[{"role": "user", "content": content}],
                max_tokens=300,
                temperature=self.temperature,
            )
        except OpenAIError as e:
            logger.error(f"Image analysis failed: {e}")
            return ""
        text = (response.choices[0].message.content or "").strip()
        if text.upper() == "NONE":
            return ""
        logger.info("Image analyzed (%d chars)", len(text))
        return text
