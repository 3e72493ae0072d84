from chauffeur_bot.config import StorageConfig
from chauffeur_bot.storage.base import BookingStore
from chauffeur_bot.storage.json_file import JsonFileBookingStore
from chauffeur_bot.storage.memory import InMemoryBookingStore
from chauffeur_bot.storage.redis_store import RedisBookingStore


def create_booking_store(config: StorageConfig) -> BookingStore:
    """Build the configured booking store backend."""
    if config.backend == "redis":
        return RedisBookingStore.from_url(config.redis_url, config.redis_prefix)
    if config.backend == "json":
        return JsonFileBookingStore(config.sessions_file)
    return InMemoryBookingStore()


__all__ = [
    "BookingStore",
    "InMemoryBookingStore",
    "JsonFileBookingStore",
    "RedisBookingStore",
    "create_booking_store",
]
