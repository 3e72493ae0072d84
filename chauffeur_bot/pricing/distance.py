"""Trip distance estimation from pickup and drop-off locations."""

import math
from typing import Optional

from chauffeur_bot.schemas.booking_schema import Location

EARTH_RADIUS_KM = 6371.0


def haversine_km(origin: Location, destination: Location) -> float:
    """Great-circle distance between two coordinates, rounded to 0.1 km."""
    lat1, lon1 = math.radians(origin.latitude), math.radians(origin.longitude)
    lat2, lon2 = math.radians(destination.latitude), math.radians(destination.longitude)
    d_lat = lat2 - lat1
    d_lon = lon2 - lon1
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_KM * c, 1)


def estimate_trip_distance(
    pickup: Optional[Location],
    drop: Optional[Location],
    default_km: float,
) -> tuple[float, bool]:
    """
    Distance for a transfer and whether it is an estimate.

    Without coordinates for both ends the configured default distance is
    used; that figure is an approximation, never a measured route.
    """
    if pickup is not None and drop is not None and pickup.has_coordinates and drop.has_coordinates:
        return haversine_km(pickup, drop), False
    return default_km, True
