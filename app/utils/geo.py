"""
Great-circle distance and GPS verification of site visits.
"""
import math
from typing import NamedTuple, Optional

from app.models.enums import LocationVerification

EARTH_RADIUS_METERS = 6_371_000.0


class Coordinates(NamedTuple):
    """A latitude/longitude pair in decimal degrees."""
    latitude: float
    longitude: float

    @classmethod
    def from_pair(cls, latitude: Optional[float], longitude: Optional[float]) -> Optional["Coordinates"]:
        """Return ``None`` unless both components are present."""
        if latitude is None or longitude is None:
            return None
        return cls(float(latitude), float(longitude))


def haversine_distance(a: Coordinates, b: Coordinates) -> float:
    """
    Great-circle distance in meters between two points.

    Symmetric, and exactly 0 for identical points.
    """
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lat = lat2 - lat1
    d_lon = math.radians(b.longitude - a.longitude)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_METERS * c


def classify_distance(
    distance_m: float,
    verified_max_m: float,
    minor_max_m: float,
) -> LocationVerification:
    """Map a distance to its verification bucket (inclusive upper bounds)."""
    if distance_m <= verified_max_m:
        return LocationVerification.VERIFICADA
    if distance_m <= minor_max_m:
        return LocationVerification.DISCREPANCIA_MENOR
    return LocationVerification.DISCREPANCIA_MAYOR


def verify_location(
    reference: Optional[Coordinates],
    observed: Optional[Coordinates],
    verified_max_m: float,
    minor_max_m: float,
):
    """
    Compare an observed position with the site reference.

    Returns a ``(distance_m, verification)`` tuple. Missing coordinates on
    either side yield ``(None, NO_VERIFICABLE)``.
    """
    if reference is None or observed is None:
        return None, LocationVerification.NO_VERIFICABLE
    distance = haversine_distance(reference, observed)
    return distance, classify_distance(distance, verified_max_m, minor_max_m)
