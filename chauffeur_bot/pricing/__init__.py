from chauffeur_bot.pricing.distance import estimate_trip_distance, haversine_km
from chauffeur_bot.pricing.fallback import DEFAULT_RATE_CARDS, fallback_fare, get_rate_card
from chauffeur_bot.pricing.oracle import PricingOracle, RateCardPricingOracle

__all__ = [
    "PricingOracle",
    "RateCardPricingOracle",
    "DEFAULT_RATE_CARDS",
    "fallback_fare",
    "get_rate_card",
    "estimate_trip_distance",
    "haversine_km",
]
