"""
Live fare computation.

``RateCardPricingOracle`` loads the active rate card for a vehicle (cached
for a few minutes), computes the base fare and applies surge factors for
peak hours, weekends and public holidays. Any failure surfaces as
``PricingUnavailableError`` so the state machine can fall back to the
static table.
"""

import asyncio
import json
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, Optional, Protocol
from zoneinfo import ZoneInfo

from chauffeur_bot.config import settings
from chauffeur_bot.errors import PricingUnavailableError
from chauffeur_bot.pricing.fallback import DEFAULT_RATE_CARDS, compute_base_fare
from chauffeur_bot.schemas.booking_schema import BookingType, FareBreakdown, RateCard

logger = logging.getLogger(__name__)

RateLoader = Callable[[str], Awaitable[Optional[RateCard]]]

# (month, day)
PUBLIC_HOLIDAYS: frozenset[tuple[int, int]] = frozenset({(1, 1), (12, 2)})
PEAK_WINDOWS = (("07:00", "09:00"), ("17:00", "19:00"))


class PricingOracle(Protocol):
    async def compute_fare(
        self, vehicle_type: str, booking_type: BookingType, distance_or_hours: float
    ) -> FareBreakdown:
        """Return a fare breakdown or raise PricingUnavailableError."""
        ...


def is_peak_hour(now: datetime) -> bool:
    """Weekday 07:00-09:00 and 17:00-19:00."""
    if now.weekday() >= 5:
        return False
    current = now.strftime("%H:%M")
    return any(start <= current <= end for start, end in PEAK_WINDOWS)


def is_weekend(now: datetime) -> bool:
    return now.weekday() >= 5


def is_holiday(now: datetime) -> bool:
    return (now.month, now.day) in PUBLIC_HOLIDAYS


def apply_surge(fare: FareBreakdown, card: RateCard, now: datetime) -> FareBreakdown:
    """Multiply the base fare by the surge factors active at ``now``."""
    multiplier = card.surge_multiplier
    factors: list[str] = []
    if is_peak_hour(now):
        multiplier *= card.peak_multiplier
        factors.append("Peak Hour")
    if is_weekend(now):
        multiplier *= card.weekend_multiplier
        factors.append("Weekend")
    if is_holiday(now):
        multiplier *= card.holiday_multiplier
        factors.append("Holiday")
    return fare.model_copy(update={
        "surge_multiplier": round(multiplier, 4),
        "applied_factors": factors,
        "final_price": round(fare.final_price * multiplier, 2),
    })


async def load_default_rate(vehicle_type: str) -> Optional[RateCard]:
    """Rate card from the configured JSON rates file, or the built-in table."""
    rates_file = settings.pricing.rates_file
    if not rates_file:
        return DEFAULT_RATE_CARDS.get(vehicle_type)

    def _read() -> dict:
        return json.loads(Path(rates_file).read_text(encoding="utf-8"))

    data = await asyncio.to_thread(_read)
    record = data.get(vehicle_type)
    if record is None:
        return None
    return RateCard.model_validate({"vehicleType": vehicle_type, **record})


class RateCardPricingOracle:
    """Pricing oracle backed by a rate-card source with TTL caching."""

    def __init__(
        self,
        rate_loader: RateLoader = load_default_rate,
        timeout_sec: float = settings.pricing.oracle_timeout_sec,
        cache_ttl_sec: float = settings.pricing.cache_ttl_sec,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._rate_loader = rate_loader
        self._timeout = timeout_sec
        self._cache_ttl = cache_ttl_sec
        self._cache: dict[str, tuple[float, RateCard]] = {}
        self._tz = ZoneInfo(settings.business.timezone)
        self._clock = clock or (lambda: datetime.now(self._tz))

    async def _get_rate_card(self, vehicle_type: str) -> RateCard:
        cached = self._cache.get(vehicle_type)
        if cached and time.monotonic() - cached[0] < self._cache_ttl:
            return cached[1]
        try:
            card = await asyncio.wait_for(self._rate_loader(vehicle_type), self._timeout)
        except asyncio.TimeoutError:
            raise PricingUnavailableError(
                f"Rate lookup for {vehicle_type} timed out after {self._timeout}s"
            ) from None
        except Exception as exc:
            raise PricingUnavailableError(f"Rate lookup for {vehicle_type} failed: {exc}") from exc
        if card is None:
            raise PricingUnavailableError(f"No active rate card for {vehicle_type}")
        self._cache[vehicle_type] = (time.monotonic(), card)
        logger.debug("Rate card loaded for %s", vehicle_type)
        return card

    async def compute_fare(
        self, vehicle_type: str, booking_type: BookingType, distance_or_hours: float
    ) -> FareBreakdown:
        if booking_type == BookingType.UNSET:
            raise PricingUnavailableError("Booking type is required for pricing")
        card = await self._get_rate_card(vehicle_type)
        fare = compute_base_fare(card, booking_type, distance_or_hours)
        return apply_surge(fare, card, self._clock())

    def clear_cache(self) -> None:
        self._cache.clear()
