"""Language inference contract: free-text field extraction, voice transcription and image reading."""

from typing import Protocol

from chauffeur_bot.schemas.booking_schema import BookingType, FieldName, FieldValue
from chauffeur_bot.schemas.message_schema import MediaAttachment


class LanguageInferenceService(Protocol):
    async def extract_fields(
        self,
        text: str,
        booking_type: BookingType,
        current_fields: dict[FieldName, FieldValue],
    ) -> dict[FieldName, str]:
        """Booking details explicitly mentioned in ``text``, as raw strings.

        Values are unvalidated; callers run them through the field schema.
        """
        ...

    async def transcribe(self, media: MediaAttachment) -> str:
        """Transcript of an audio attachment, or an empty string."""
        ...

    async def analyze_image(self, media: MediaAttachment) -> str:
        """Booking details read from an image, phrased as a customer message, or an empty string."""
        ...
