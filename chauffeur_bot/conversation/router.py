"""
Conversation router: turns inbound chat events into state machine operations
and the prompts to send back.

Every event passes the guardrail pipeline first. Text commands, menu and
button selections, shared locations and voice notes are then mapped onto
the active booking session according to its phase. Any unexpected error
is logged and answered with a generic recovery message, so one bad event
never leaves a customer without a reply.

Selection ids:
    action:start | action:confirm | action:edit | action:cancel | action:back
    edit:<fieldName>
    <fieldName>:<value>
"""

import re
from typing import Optional, Protocol

from chauffeur_bot.config import settings
from chauffeur_bot.conversation.field_schema import get_definition, is_missing, missing_fields
from chauffeur_bot.conversation.guardrails import GuardrailPipeline
from chauffeur_bot.conversation.state_machine import (
    BookingStateMachine,
    ConfirmationResult,
    next_field,
    phase_of,
)
from chauffeur_bot.errors import AlreadyActiveError, InvalidStateError, UnknownFieldError
from chauffeur_bot.gateway import MessagingGateway
from chauffeur_bot.inference.base import LanguageInferenceService
from chauffeur_bot.logging_context import bind_customer, get_session_logger, set_booking_id
from chauffeur_bot.prompts import prompt_templates as templates
from chauffeur_bot.schemas.booking_schema import BookingPhase, BookingSession, FieldName, Location
from chauffeur_bot.schemas.message_schema import EventKind, InboundEvent, MediaAttachment, OutboundPrompt
from chauffeur_bot.utils import is_skip_command, normalize_phone

logger = get_session_logger(__name__)

BOOK_COMMANDS = frozenset({"book", "!book", "/book", "new booking", "start booking"})
CANCEL_COMMANDS = frozenset({"cancel", "!cancel", "/cancel", "cancel booking"})
STATUS_COMMANDS = frozenset({"status", "!status", "/status"})
HELP_COMMANDS = frozenset({"help", "!help", "/help", "hi", "hello", "hey", "menu"})
CONFIRM_WORDS = frozenset({"confirm", "yes", "y", "ok", "okay", "confirm booking"})
EDIT_WORDS = frozenset({"edit", "change", "modify", "edit booking"})

BOOKING_INTENT = re.compile(r"\b(book|booking|chauffeur|ride|transfer|pick\s*up|airport)\b")

LOCATION_FIELDS = (FieldName.PICKUP_LOCATION, FieldName.DROP_LOCATION)


class PaymentLinkIssuer(Protocol):
    async def issue(self, confirmation: ConfirmationResult) -> str:
        """Payment URL for a confirmed booking."""
        ...


class ConversationRouter:
    """Maps inbound events onto the booking state machine."""

    def __init__(
        self,
        machine: BookingStateMachine,
        inference: LanguageInferenceService,
        gateway: Optional[MessagingGateway] = None,
        guardrails: Optional[GuardrailPipeline] = None,
        payment_issuer: Optional[PaymentLinkIssuer] = None,
        extraction_min_words: int = settings.model.extraction_min_words,
    ) -> None:
        self.machine = machine
        self.inference = inference
        self.gateway = gateway
        self.guardrails = guardrails or GuardrailPipeline()
        self.payment_issuer = payment_issuer
        self.extraction_min_words = extraction_min_words

    async def dispatch(self, event: InboundEvent) -> list[OutboundPrompt]:
        """Handle an event and send the resulting prompts through the gateway."""
        prompts = await self.handle(event)
        if self.gateway is not None:
            customer_key = normalize_phone(event.customer_key)
            for prompt in prompts:
                await self.gateway.send(customer_key, prompt)
        return prompts

    async def handle(self, event: InboundEvent) -> list[OutboundPrompt]:
        customer_key = normalize_phone(event.customer_key)
        bind_customer(customer_key)

        failures = self.guardrails.check_event(event)
        if failures:
            failure = failures[0]
            logger.info("Event %s stopped by guardrail: %s", event.event_id, failure.violation_type)
            if failure.severity == "drop":
                return []
            return [OutboundPrompt.text(failure.message)]

        try:
            prompts = await self._route(event, customer_key)
        except (InvalidStateError, UnknownFieldError) as e:
            logger.info(f"Rejected out-of-phase event {event.event_id}: {e}")
            prompts = await self._recover(customer_key)
        except Exception:
            logger.exception("Unhandled error processing event %s", event.event_id)
            return [OutboundPrompt.text(templates.GENERIC_ERROR)]

        await self._log_replies(customer_key, prompts)
        return prompts

    # --- Event kinds ---

    async def _route(self, event: InboundEvent, customer_key: str) -> list[OutboundPrompt]:
        session = await self.machine.get_active_session(customer_key)
        if session is not None:
            set_booking_id(session.booking_id)
            await self.machine.record_message(session.booking_id, "customer", _describe(event))

        if event.kind == EventKind.TEXT:
            return await self._on_text(customer_key, session, event.text or "")
        if event.kind in (EventKind.LIST_SELECTION, EventKind.BUTTON_TAP):
            return await self._on_selection(customer_key, session, event.selection_id or "")
        if event.kind == EventKind.LOCATION_SHARE and event.location is not None:
            return await self._on_location(session, event.location)
        if event.kind == EventKind.MEDIA and event.media is not None:
            return await self._on_media(customer_key, session, event.media)
        logger.warning("Event %s of kind %s carried no payload", event.event_id, event.kind.value)
        return [self._next_prompt(session) if session else templates.render_welcome()]

    async def _on_text(
        self, customer_key: str, session: Optional[BookingSession], text: str
    ) -> list[OutboundPrompt]:
        text = text.strip()
        lower = text.lower()

        if lower in CANCEL_COMMANDS:
            if session is None:
                return [templates.render_no_session()]
            return await self._cancel(session)
        if lower in STATUS_COMMANDS:
            if session is None:
                return [templates.render_no_session()]
            return [templates.render_status(session)]
        if lower in BOOK_COMMANDS:
            return await self._start(customer_key)

        if session is None:
            if lower and lower not in HELP_COMMANDS and BOOKING_INTENT.search(lower):
                prompts = await self._start(customer_key)
                if self._is_free_text(text):
                    session = await self.machine.get_active_session(customer_key)
                    return await self._apply_free_text(session, text)
                return prompts
            return [templates.render_welcome()]

        phase = phase_of(session)
        if phase == BookingPhase.EDITING:
            return await self._supply(session, session.editing.field, text)
        if phase == BookingPhase.AWAITING_CONFIRMATION:
            if lower in CONFIRM_WORDS:
                return await self._confirm(session)
            if lower in EDIT_WORDS:
                return [templates.render_edit_menu(session)]
            return [templates.render_summary(session)]

        if lower in CONFIRM_WORDS or lower in EDIT_WORDS:
            return [templates.render_details_still_needed(), self._next_prompt(session)]
        if is_skip_command(text) or not self._is_free_text(text):
            return await self._supply(session, next_field(session), text)
        return await self._apply_free_text(session, text)

    async def _on_selection(
        self, customer_key: str, session: Optional[BookingSession], selection_id: str
    ) -> list[OutboundPrompt]:
        if selection_id == "action:start":
            return await self._start(customer_key)
        if session is None:
            return [templates.render_no_session()]

        prefix, _, value = selection_id.partition(":")
        if prefix == "action":
            if value == "confirm":
                return await self._confirm(session)
            if value == "cancel":
                return await self._cancel(session)
            if value == "edit":
                if phase_of(session) == BookingPhase.EDITING:
                    session = await self.machine.abandon_edit(session.booking_id)
                if phase_of(session) == BookingPhase.AWAITING_CONFIRMATION:
                    return [templates.render_edit_menu(session)]
                return [self._next_prompt(session)]
            if value == "back":
                if phase_of(session) == BookingPhase.EDITING:
                    session = await self.machine.abandon_edit(session.booking_id)
                return [self._next_prompt(session)]
        elif prefix == "edit":
            if phase_of(session) == BookingPhase.EDITING:
                await self.machine.abandon_edit(session.booking_id)
            session = await self.machine.begin_edit(session.booking_id, value)
            return [self._next_prompt(session)]
        else:
            try:
                field = FieldName(prefix)
            except ValueError:
                field = None
            if field is not None and value:
                if field == FieldName.BOOKING_TYPE:
                    update = await self.machine.supply_booking_type(session.booking_id, value)
                    return self._after_update(session.booking_id, field, update.accepted, update.message)
                return await self._supply(session, field, value)

        logger.warning("Unrecognized selection id %r", selection_id)
        return [self._next_prompt(session)]

    async def _on_location(
        self, session: Optional[BookingSession], location: Location
    ) -> list[OutboundPrompt]:
        if session is None:
            return [templates.render_location_received(location)]
        phase = phase_of(session)
        if phase == BookingPhase.EDITING and session.editing.field in LOCATION_FIELDS:
            return await self._supply(session, session.editing.field, location)
        if phase == BookingPhase.COLLECTING:
            for field in missing_fields(session.booking_type, session.fields):
                if field in LOCATION_FIELDS:
                    return await self._supply(session, field, location)
        return [templates.render_location_received(location), self._next_prompt(session)]

    async def _on_media(
        self, customer_key: str, session: Optional[BookingSession], media: MediaAttachment
    ) -> list[OutboundPrompt]:
        if media.is_audio:
            text = await self.inference.transcribe(media)
            if not text:
                return [templates.render_untranscribed_audio()]
            logger.info("Voice note transcribed (%d chars)", len(text))
        elif media.is_image:
            text = await self.inference.analyze_image(media)
            if not text:
                return [templates.render_unread_image()]
            logger.info("Image read as booking details (%d chars)", len(text))
        else:
            return [templates.render_unsupported_media()]
        return await self._on_text(customer_key, session, text)

    # --- Operations ---

    async def _start(self, customer_key: str) -> list[OutboundPrompt]:
        try:
            session = await self.machine.start_booking(customer_key)
        except AlreadyActiveError as exc:
            return [templates.render_resume(exc.session), self._next_prompt(exc.session)]
        return [self._next_prompt(session)]

    async def _supply(self, session: BookingSession, field: FieldName, raw) -> list[OutboundPrompt]:
        update = await self.machine.supply_field(session.booking_id, field, raw)
        return self._after_update(session.booking_id, field, update.accepted, update.message)

    def _after_update(
        self, booking_id: str, field: FieldName, accepted: bool, message: Optional[str]
    ) -> list[OutboundPrompt]:
        session = self.machine.get_session(booking_id)
        if not accepted:
            return [templates.render_validation_error(message), templates.render_field_prompt(session, field)]
        return [self._next_prompt(session)]

    async def _apply_free_text(self, session: BookingSession, text: str) -> list[OutboundPrompt]:
        """Fill every missing field the inference service finds, in schema order."""
        extracted = await self.inference.extract_fields(text, session.booking_type, dict(session.fields))
        session = self.machine.get_session(session.booking_id)
        applied: list[str] = []
        for field in FieldName:
            raw = extracted.get(field)
            if raw is None or not is_missing(session.get(field)):
                continue
            if phase_of(session) != BookingPhase.COLLECTING:
                break
            update = await self.machine.supply_field(session.booking_id, field, raw)
            session = self.machine.get_session(session.booking_id)
            if update.accepted:
                applied.append(get_definition(field).display_name)
            else:
                logger.debug("Extracted %s rejected: %s", field.value, update.message)

        if not applied:
            return await self._supply(session, next_field(session), text)
        noted = OutboundPrompt.text(f"Got it! I've noted: {', '.join(applied)}.")
        return [noted, self._next_prompt(session)]

    async def _confirm(self, session: BookingSession) -> list[OutboundPrompt]:
        result = await self.machine.confirm(session.booking_id)
        link = None
        if self.payment_issuer is not None:
            try:
                link = await self.payment_issuer.issue(result)
            except Exception:
                logger.exception("Payment link generation failed for %s", result.booking_id)
        return [templates.render_confirmed(result.confirmation_id, result.booking_id, result.pricing, link)]

    async def _cancel(self, session: BookingSession) -> list[OutboundPrompt]:
        await self.machine.cancel(session.booking_id)
        return [templates.render_cancelled(session.booking_id)]

    # --- Helpers ---

    def _is_free_text(self, text: str) -> bool:
        return len(text.split()) >= self.extraction_min_words

    def _next_prompt(self, session: BookingSession) -> OutboundPrompt:
        phase = phase_of(session)
        if phase == BookingPhase.EDITING:
            return templates.render_field_prompt(session, session.editing.field)
        if phase == BookingPhase.AWAITING_CONFIRMATION:
            return templates.render_summary(session)
        return templates.render_field_prompt(session, next_field(session))

    async def _recover(self, customer_key: str) -> list[OutboundPrompt]:
        session = await self.machine.get_active_session(customer_key)
        notice = OutboundPrompt.text("That option isn't available right now.")
        if session is None:
            return [notice, templates.render_no_session()]
        return [notice, self._next_prompt(session)]

    async def _log_replies(self, customer_key: str, prompts: list[OutboundPrompt]) -> None:
        session = await self.machine.get_active_session(customer_key)
        if session is None:
            return
        for prompt in prompts:
            await self.machine.record_message(session.booking_id, "assistant", prompt.body)


def _describe(event: InboundEvent) -> str:
    if event.kind == EventKind.TEXT:
        return event.text or ""
    if event.kind in (EventKind.LIST_SELECTION, EventKind.BUTTON_TAP):
        return f"[selected] {event.selection_id}"
    if event.kind == EventKind.LOCATION_SHARE and event.location is not None:
        return f"[location] {event.location.name}"
    if event.media is not None:
        return f"[media] {event.media.mime_type}"
    return f"[{event.kind.value}]"
