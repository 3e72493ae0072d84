"""Inbound chat events and outbound prompts exchanged with the messaging gateway."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from chauffeur_bot.schemas.booking_schema import Location, utcnow


class EventKind(str, Enum):
    TEXT = "text"
    LIST_SELECTION = "list_selection"
    BUTTON_TAP = "button_tap"
    LOCATION_SHARE = "location_share"
    MEDIA = "media"


class MediaAttachment(BaseModel):
    """Audio, image or document received from the customer."""
    mime_type: str
    data: Optional[bytes] = None
    url: Optional[str] = None
    caption: Optional[str] = None
    filename: str = "media"

    @property
    def is_audio(self) -> bool:
        return self.mime_type.startswith("audio/")

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")


class InboundEvent(BaseModel):
    """A single message or interactive reply delivered by the gateway."""
    event_id: str
    customer_key: str
    kind: EventKind
    text: Optional[str] = None
    selection_id: Optional[str] = None
    location: Optional[Location] = None
    media: Optional[MediaAttachment] = None
    received_at: datetime = Field(default_factory=utcnow)


class PromptKind(str, Enum):
    TEXT = "text"
    LIST = "list"
    BUTTONS = "buttons"


class PromptOption(BaseModel):
    id: str
    title: str
    description: Optional[str] = None


class OutboundPrompt(BaseModel):
    """A text, list menu or button message for the gateway to render."""
    kind: PromptKind = PromptKind.TEXT
    body: str
    header: Optional[str] = None
    footer: Optional[str] = None
    options: list[PromptOption] = Field(default_factory=list)
    button_text: Optional[str] = None

    @classmethod
    def text(cls, body: str) -> "OutboundPrompt":
        return cls(kind=PromptKind.TEXT, body=body)
