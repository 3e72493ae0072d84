"""
Centralized configuration with environment variable overrides.

Business values, session timings, pricing defaults, guardrail thresholds
and model settings are configurable here. Nothing is hardcoded in the
state machine, router or pricing logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from chauffeur_bot.logging_context import install_context_filter

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class BusinessConfig:
    """Business-specific settings loaded from environment or defaults."""

    name: str = os.getenv("BUSINESS_NAME", "VIP Chauffeur Service")
    support_line: str = os.getenv("SUPPORT_LINE", "+971 4 000 0000")
    timezone: str = os.getenv("BUSINESS_TIMEZONE", "Asia/Dubai")


@dataclass(frozen=True)
class SessionConfig:
    """Booking session lifetimes."""

    confirm_grace_seconds: int = _safe_int("CONFIRM_GRACE_SECONDS", "30")
    stale_confirmed_seconds: int = _safe_int("STALE_CONFIRMED_SECONDS", "3600")
    sweep_interval_seconds: int = _safe_int("SWEEP_INTERVAL_SECONDS", "300")


@dataclass(frozen=True)
class PricingConfig:
    """Fare computation defaults and live-oracle limits."""

    default_distance_km: float = _safe_float("DEFAULT_ESTIMATED_DISTANCE", "25")
    default_hours: int = _safe_int("DEFAULT_BOOKING_HOURS", "2")
    oracle_timeout_sec: float = _safe_float("PRICING_TIMEOUT", "5.0")
    cache_ttl_sec: float = _safe_float("PRICING_CACHE_TTL", "300")
    rates_file: str = os.getenv("PRICING_RATES_FILE", "")


@dataclass(frozen=True)
class GuardrailConfig:
    """Thresholds for inbound event filtering and operational alerts."""

    dedup_window_sec: float = _safe_float("DEDUP_WINDOW_SECONDS", "30")
    max_messages_per_minute: int = _safe_int("MAX_MESSAGES_PER_MINUTE", "20")
    max_input_length: int = _safe_int("MAX_INPUT_LENGTH", "1000")
    persistence_alert_threshold: int = _safe_int("PERSISTENCE_ALERT_THRESHOLD", "5")


@dataclass(frozen=True)
class ModelConfig:
    """Language inference model settings."""

    llm_model: str = os.getenv("LLM_MODEL", "gpt-4o-mini")
    llm_temperature: float = _safe_float("LLM_TEMPERATURE", "0.1")
    transcription_model: str = os.getenv("TRANSCRIPTION_MODEL", "whisper-1")
    vision_model: str = os.getenv("VISION_MODEL", "gpt-4o")
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    extraction_min_words: int = _safe_int("EXTRACTION_MIN_WORDS", "5")


@dataclass(frozen=True)
class StorageConfig:
    """Durable booking store backend selection."""

    backend: str = os.getenv("BOOKING_STORE", "json")
    sessions_file: str = os.getenv("BOOKING_SESSIONS_FILE", "./booking-sessions.json")
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    redis_prefix: str = os.getenv("REDIS_PREFIX", "chauffeur")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    business: BusinessConfig = field(default_factory=BusinessConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    guardrails: GuardrailConfig = field(default_factory=GuardrailConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


STORAGE_BACKENDS = ("memory", "json", "redis")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if not 0.0 <= config.model.llm_temperature <= 2.0:
        raise ValueError(
            f"LLM_TEMPERATURE must be between 0.0 and 2.0, got {config.model.llm_temperature}"
        )
    if config.session.confirm_grace_seconds < 0:
        raise ValueError(
            f"CONFIRM_GRACE_SECONDS must be >= 0, got {config.session.confirm_grace_seconds}"
        )
    if config.session.stale_confirmed_seconds < config.session.confirm_grace_seconds:
        raise ValueError(
            "STALE_CONFIRMED_SECONDS must be >= CONFIRM_GRACE_SECONDS, "
            f"got {config.session.stale_confirmed_seconds}"
        )
    if config.session.sweep_interval_seconds < 1:
        raise ValueError(
            f"SWEEP_INTERVAL_SECONDS must be >= 1, got {config.session.sweep_interval_seconds}"
        )
    if config.pricing.default_distance_km <= 0:
        raise ValueError(
            "DEFAULT_ESTIMATED_DISTANCE must be > 0, "
            f"got {config.pricing.default_distance_km}"
        )
    if not 1 <= config.pricing.default_hours <= 24:
        raise ValueError(
            f"DEFAULT_BOOKING_HOURS must be between 1 and 24, got {config.pricing.default_hours}"
        )
    if config.pricing.oracle_timeout_sec <= 0:
        raise ValueError(
            f"PRICING_TIMEOUT must be > 0, got {config.pricing.oracle_timeout_sec}"
        )
    if config.guardrails.dedup_window_sec < 0:
        raise ValueError(
            f"DEDUP_WINDOW_SECONDS must be >= 0, got {config.guardrails.dedup_window_sec}"
        )
    if config.guardrails.max_messages_per_minute < 1:
        raise ValueError(
            "MAX_MESSAGES_PER_MINUTE must be >= 1, "
            f"got {config.guardrails.max_messages_per_minute}"
        )
    if config.guardrails.max_input_length < 1:
        raise ValueError(
            f"MAX_INPUT_LENGTH must be >= 1, got {config.guardrails.max_input_length}"
        )
    if config.model.extraction_min_words < 1:
        raise ValueError(
            f"EXTRACTION_MIN_WORDS must be >= 1, got {config.model.extraction_min_words}"
        )
    if config.storage.backend not in STORAGE_BACKENDS:
        raise ValueError(
            f"BOOKING_STORE must be one of {STORAGE_BACKENDS}, got {config.storage.backend!r}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] [%(customer_key)s %(booking_id)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for handler in logging.getLogger().handlers:
        install_context_filter(handler)
    logger.info("Configuration loaded for '%s'", config.business.name)
    return config


# Singleton instance
settings = load_config()
