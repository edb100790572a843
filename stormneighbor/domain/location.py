"""
Location resolution - decides how a user's feed is scoped
"""
from .models import LocationMode, ResolvedLocation, User

DEFAULT_RADIUS_MILES = 10.0


def effective_radius(radius_miles) -> float:
    """User radius preference, falling back to the default when unset or non-positive"""
    try:
        radius = float(radius_miles)
    except (TypeError, ValueError):
        return DEFAULT_RADIUS_MILES
    if radius != radius or radius <= 0:  # NaN or non-positive
        return DEFAULT_RADIUS_MILES
    return radius


def resolve_location(user: User) -> ResolvedLocation:
    """
    Resolve the effective location of a user

    - Geographic mode: coordinates present and show_city_only is off
    - City mode: show_city_only is on, or coordinates are missing, and a city is known
    - All mode: no usable coordinates and no city; every active post is visible
    """
    if user.has_coordinates and not user.show_city_only:
        return ResolvedLocation(
            mode=LocationMode.GEOGRAPHIC,
            latitude=float(user.latitude),
            longitude=float(user.longitude),
            radius_miles=effective_radius(user.location_radius_miles),
            city=user.location_city,
            state=user.address_state,
        )

    if user.location_city:
        return ResolvedLocation(
            mode=LocationMode.CITY,
            city=user.location_city,
            state=user.address_state,
        )

    return ResolvedLocation(mode=LocationMode.ALL)
