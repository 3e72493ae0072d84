"""Wiring of the booking assistant's collaborators from configuration."""

import logging
from datetime import timedelta
from typing import Optional

from chauffeur_bot.config import AppConfig, settings
from chauffeur_bot.conversation.guardrails import (
    DuplicateEventGuardrail,
    GuardrailPipeline,
    InputLengthGuardrail,
    RateLimitGuardrail,
)
from chauffeur_bot.conversation.router import ConversationRouter, PaymentLinkIssuer
from chauffeur_bot.conversation.session_store import SessionStore
from chauffeur_bot.conversation.state_machine import BookingStateMachine
from chauffeur_bot.gateway import MessagingGateway
from chauffeur_bot.inference import LanguageInferenceService, create_inference_service
from chauffeur_bot.pricing import PricingOracle, RateCardPricingOracle
from chauffeur_bot.storage import BookingStore, create_booking_store

logger = logging.getLogger(__name__)


async def build_router(
    gateway: Optional[MessagingGateway] = None,
    config: AppConfig = settings,
    booking_store: Optional[BookingStore] = None,
    oracle: Optional[PricingOracle] = None,
    inference: Optional[LanguageInferenceService] = None,
    payment_issuer: Optional[PaymentLinkIssuer] = None,
) -> ConversationRouter:
    """Build a router over a session store restored from the booking store."""
    store = SessionStore(
        booking_store or create_booking_store(config.storage),
        alert_threshold=config.guardrails.persistence_alert_threshold,
    )
    restored = await store.load()
    machine = BookingStateMachine(
        store,
        oracle or RateCardPricingOracle(),
        confirm_grace=timedelta(seconds=config.session.confirm_grace_seconds),
        stale_after=timedelta(seconds=config.session.stale_confirmed_seconds),
    )
    guardrails = GuardrailPipeline(
        dedup=DuplicateEventGuardrail(config.guardrails.dedup_window_sec),
        rate_limit=RateLimitGuardrail(config.guardrails.max_messages_per_minute),
        input_length=InputLengthGuardrail(config.guardrails.max_input_length),
    )
    logger.info(
        "Booking assistant ready (%s store, %d restored session(s))",
        config.storage.backend, restored,
    )
    return ConversationRouter(
        machine,
        inference or create_inference_service(config.model),
        gateway=gateway,
        guardrails=guardrails,
        payment_issuer=payment_issuer,
        extraction_min_words=config.model.extraction_min_words,
    )
