import math
from numbers import Real
from typing import Any, Optional

# Earth radius in kilometers
EARTH_RADIUS_KM = 6371


def _is_coordinate(value: Any, bound: float) -> bool:
    # bool is an int subclass; a True latitude is a data bug, not 1 degree
    if isinstance(value, bool) or not isinstance(value, Real):
        return False
    if math.isnan(value):
        return False
    return -bound <= value <= bound


def is_valid_coordinates(lat: Any, lon: Any) -> bool:
    """Return True when lat/lon are numbers within [-90, 90] and [-180, 180]."""
    return _is_coordinate(lat, 90) and _is_coordinate(lon, 180)


def haversine_distance(lat1: Any, lon1: Any, lat2: Any, lon2: Any) -> Optional[float]:
    """Calculate the great-circle distance between two points
    on the Earth (specified in decimal degrees) using the Haversine formula.

    Invalid input never raises: a non-numeric or out-of-range coordinate
    yields None, which callers treat as "distance unknown".

    Args:
        lat1: Latitude of the first point.
        lon1: Longitude of the first point.
        lat2: Latitude of the second point.
        lon2: Longitude of the second point.

    Returns:
        The distance in kilometers rounded to 2 decimals, or None.
    """
    if not is_valid_coordinates(lat1, lon1) or not is_valid_coordinates(lat2, lon2):
        return None

    # Convert decimal degrees to radians
    lat1_rad, lon1_rad, lat2_rad, lon2_rad = map(math.radians, [lat1, lon1, lat2, lon2])

    # Haversine formula
    dlon = lon2_rad - lon1_rad
    dlat = lat2_rad - lat1_rad
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    distance = EARTH_RADIUS_KM * c
    return round(distance, 2)


def is_within_radius(lat1: Any, lon1: Any, lat2: Any, lon2: Any, max_distance_km: float) -> bool:
    """Check whether two points are at most `max_distance_km` apart.

    An unknown distance is never within the radius.
    """
    distance = haversine_distance(lat1, lon1, lat2, lon2)
    if distance is None:
        return False
    return distance <= max_distance_km


def format_distance(distance_km: Optional[float]) -> str:
    """Render a distance for display ("850 m", "1.5 km", "12 km")."""
    if distance_km is None or isinstance(distance_km, bool) or not isinstance(distance_km, Real):
        return "unknown distance"
    if math.isnan(distance_km):
        return "unknown distance"

    if distance_km < 1:
        return f"{round(distance_km * 1000)} m"
    if distance_km < 10:
        return f"{distance_km:.1f} km"
    return f"{round(distance_km)} km"
