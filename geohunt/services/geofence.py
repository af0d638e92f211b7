"""
Service: geofence.py
- Distance grand-cercle (haversine, terre sphérique R = 6 371 000 m).
- Test d'appartenance à la zone circulaire d'un indice (borne incluse).

Coordonnées invalides (NaN) : la distance vaut NaN et toute comparaison est
fausse, donc le test échoue fermé.
"""
from __future__ import annotations

from math import atan2, cos, isfinite, radians, sin, sqrt
from typing import NamedTuple, Optional

EARTH_RADIUS_M = 6371000.0


class GeoPoint(NamedTuple):
    lat: float
    lng: float


def usable_point(point: Optional[GeoPoint]) -> Optional[GeoPoint]:
    """Le point s'il a des coordonnées finies, sinon None (position absente)."""
    if point is None or not (isfinite(point.lat) and isfinite(point.lng)):
        return None
    return point


def haversine_meters(lat_a: float, lng_a: float, lat_b: float, lng_b: float) -> float:
    """Return distance in metres using haversine formula."""
    d_lat = radians(lat_b - lat_a)
    d_lng = radians(lng_b - lng_a)
    lat1 = radians(lat_a)
    lat2 = radians(lat_b)
    a = sin(d_lat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(d_lng / 2) ** 2
    # arrondi flottant : a peut dépasser 1 d'un ulp aux antipodes
    if a > 1.0:
        a = 1.0
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_M * c


def distance_to(point: Optional[GeoPoint], center: GeoPoint) -> float:
    """Distance point → centre; NaN si le point est inconnu."""
    if point is None:
        return float("nan")
    return haversine_meters(point.lat, point.lng, center.lat, center.lng)


def within_fence(point: Optional[GeoPoint], center: GeoPoint, radius_meters: float) -> bool:
    return distance_to(point, center) <= radius_meters
