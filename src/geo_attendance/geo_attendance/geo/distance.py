"""Great-circle distance and travel speed.

Spherical Earth approximation (haversine), no altitude term.
"""

from __future__ import annotations

import math

from ..core.constants import EARTH_RADIUS_METERS
from ..core.exceptions import GeospatialError


def _is_real(value) -> bool:
    # bool is an int subclass
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_coordinates(latitude: float, longitude: float) -> None:
    """Raise GeospatialError unless both values are finite real numbers within range."""
    if not (_is_real(latitude) and _is_real(longitude)):
        raise GeospatialError(f"Invalid coordinates: ({latitude!r}, {longitude!r})")
    lat = float(latitude)
    lon = float(longitude)

    if not math.isfinite(lat) or not math.isfinite(lon):
        raise GeospatialError(f"Coordinates must be finite numbers: ({latitude!r}, {longitude!r})")
    if lat < -90 or lat > 90:
        raise GeospatialError(f"Invalid latitude: {lat}. Must be between -90 and 90 degrees")
    if lon < -180 or lon > 180:
        raise GeospatialError(f"Invalid longitude: {lon}. Must be between -180 and 180 degrees")


def distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in meters between two points."""
    validate_coordinates(lat1, lon1)
    validate_coordinates(lat2, lon2)

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # clamp: rounding can push a a hair above 1 for antipodal points
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def speed(distance_meters: float, elapsed_minutes: float) -> float:
    """Travel speed in km/h; 0 when no time has elapsed."""
    if elapsed_minutes <= 0:
        return 0.0
    return (distance_meters / 1000) / (elapsed_minutes / 60)
