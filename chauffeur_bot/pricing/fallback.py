"""Static rate table and the fallback fare used when live pricing is unreachable."""

import logging
from typing import Optional

from chauffeur_bot.schemas.booking_schema import (
    BookingType,
    FareBreakdown,
    PricingStatus,
    RateCard,
)

logger = logging.getLogger(__name__)

DEFAULT_RATE_CARDS: dict[str, RateCard] = {
    "Sedan": RateCard(
        vehicle_type="Sedan",
        base_rate=120,
        per_km_rate=3,
        per_hour_rate=25,
        minimum_charge=120,
    ),
    "SUV": RateCard(
        vehicle_type="SUV",
        base_rate=180,
        per_km_rate=4,
        per_hour_rate=35,
        minimum_charge=180,
    ),
    "Luxury": RateCard(
        vehicle_type="Luxury",
        base_rate=350,
        per_km_rate=8,
        per_hour_rate=60,
        minimum_charge=350,
    ),
    "Van": RateCard(
        vehicle_type="Van",
        base_rate=220,
        per_km_rate=5,
        per_hour_rate=40,
        minimum_charge=220,
    ),
}


def get_rate_card(vehicle_type: str) -> RateCard:
    """Rate card for a vehicle, defaulting to Sedan for unknown types."""
    return DEFAULT_RATE_CARDS.get(vehicle_type, DEFAULT_RATE_CARDS["Sedan"])


def compute_base_fare(
    card: RateCard,
    booking_type: BookingType,
    distance_or_hours: float,
    status: PricingStatus = PricingStatus.LIVE,
) -> FareBreakdown:
    """Base + distance (Transfer) or base + hours (Hourly), floored at the minimum charge."""
    if booking_type == BookingType.HOURLY:
        hours = int(distance_or_hours)
        variable = hours * card.per_hour_rate
        subtotal = card.base_rate + variable
        return FareBreakdown(
            booking_type=BookingType.HOURLY,
            vehicle_type=card.vehicle_type,
            currency=card.currency,
            base_rate=card.base_rate,
            per_hour_rate=card.per_hour_rate,
            hours=hours,
            variable_price=variable,
            subtotal=subtotal,
            minimum_charge=card.minimum_charge,
            final_price=max(subtotal, card.minimum_charge),
            status=status,
        )
    distance = round(float(distance_or_hours), 1)
    variable = round(distance * card.per_km_rate, 2)
    subtotal = card.base_rate + variable
    return FareBreakdown(
        booking_type=BookingType.TRANSFER,
        vehicle_type=card.vehicle_type,
        currency=card.currency,
        base_rate=card.base_rate,
        per_km_rate=card.per_km_rate,
        distance_km=distance,
        variable_price=variable,
        subtotal=subtotal,
        minimum_charge=card.minimum_charge,
        final_price=max(subtotal, card.minimum_charge),
        status=status,
    )


def fallback_fare(
    vehicle_type: str,
    booking_type: BookingType,
    distance_or_hours: Optional[float],
    default_distance_km: float,
    default_hours: int,
) -> FareBreakdown:
    """Fare from the static table with no surge, tagged as a fallback estimate."""
    card = get_rate_card(vehicle_type)
    amount = distance_or_hours
    if amount is None:
        amount = default_hours if booking_type == BookingType.HOURLY else default_distance_km
    fare = compute_base_fare(card, booking_type, amount, status=PricingStatus.FALLBACK)
    logger.info(
        "Fallback %s pricing for %s: %s %.2f",
        fare.booking_type.value, card.vehicle_type, fare.currency, fare.final_price,
    )
    return fare
