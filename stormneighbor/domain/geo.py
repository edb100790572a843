"""
Great-circle distance helpers
"""
import math

EARTH_RADIUS_MILES = 3959.0


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance in miles between two (lat, lon) points in degrees.

    Non-numeric input is not validated here; NaN propagates to the result.
    """
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(max(0.0, 1 - a)))
    return EARTH_RADIUS_MILES * c


def within_radius(
    center_lat: float,
    center_lon: float,
    lat: float,
    lon: float,
    radius_miles: float,
) -> bool:
    """Check whether (lat, lon) lies within radius_miles of the center"""
    return haversine_miles(center_lat, center_lon, lat, lon) <= radius_miles
