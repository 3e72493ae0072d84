"""Tests for import chains and module integrity.

Ensures all public modules can be imported without errors and
that re-exports from __init__.py files work correctly.
"""


class TestSchemaImports:
    def test_import_booking_schema(self):
        from chauffeur_bot.schemas.booking_schema import (
            BookingPhase, BookingSession, BookingStatus, BookingType, FieldName,
        )
        assert BookingType.TRANSFER == "Transfer"
        assert FieldName.PASSENGER_COUNT == "passengerCount"
        assert BookingStatus.PENDING == "pending"
        assert BookingPhase.EDITING == "editing"
        assert BookingSession is not None

    def test_import_message_schema(self):
        from chauffeur_bot.schemas.message_schema import EventKind, OutboundPrompt, PromptKind
        assert EventKind.LOCATION_SHARE == "location_share"
        assert OutboundPrompt.text("hi").kind == PromptKind.TEXT


class TestConversationImports:
    def test_import_conversation_package(self):
        from chauffeur_bot.conversation import (
            BookingStateMachine, BookingTrigger, GuardrailPipeline, SessionStore,
        )
        assert len(BookingTrigger) == 6
        assert BookingStateMachine is not None
        assert GuardrailPipeline is not None
        assert SessionStore is not None

    def test_import_router(self):
        from chauffeur_bot.conversation.router import ConversationRouter
        assert callable(ConversationRouter.handle)

    def test_import_field_schema(self):
        from chauffeur_bot.conversation.field_schema import FIELD_DEFINITIONS
        assert len(FIELD_DEFINITIONS) == 9


class TestPricingImports:
    def test_import_pricing_package(self):
        from chauffeur_bot.pricing import RateCardPricingOracle, fallback_fare
        assert callable(fallback_fare)
        assert RateCardPricingOracle is not None

    def test_default_rate_table(self):
        from chauffeur_bot.pricing.fallback import DEFAULT_RATE_CARDS
        assert set(DEFAULT_RATE_CARDS) == {"Sedan", "SUV", "Luxury", "Van"}


class TestStorageAndInferenceImports:
    def test_import_storage_package(self):
        from chauffeur_bot.storage import (
            InMemoryBookingStore, JsonFileBookingStore, RedisBookingStore, create_booking_store,
        )
        assert callable(create_booking_store)
        assert InMemoryBookingStore and JsonFileBookingStore and RedisBookingStore

    def test_import_inference_package(self):
        from chauffeur_bot.inference import KeywordFieldExtractor, create_inference_service
        assert callable(create_inference_service)
        assert KeywordFieldExtractor is not None


class TestConfigImport:
    def test_import_config(self):
        from chauffeur_bot.config import settings
        assert settings.business.name is not None
        assert settings.model.llm_model is not None
        assert settings.guardrails.max_messages_per_minute >= 1


class TestConsoleDemo:
    def test_console_session_imports(self):
        from console_demo import ConsoleSession
        session = ConsoleSession()
        assert session.customer_key == "+971501234567"
        assert set(session.SCENARIOS) == {"transfer", "hourly", "edit"}
