"""Greece bounding box and great-circle helpers."""

from __future__ import annotations

import math

EARTH_RADIUS_KM = 6371.0

MIN_LATITUDE = 34.0
MAX_LATITUDE = 42.0
MIN_LONGITUDE = 19.0
MAX_LONGITUDE = 30.0

# Nominatim viewbox order: left, top, right, bottom
GREECE_VIEWBOX = f"{MIN_LONGITUDE:g},{MAX_LATITUDE:g},{MAX_LONGITUDE:g},{MIN_LATITUDE:g}"


def in_greece(lat: float | None, lon: float | None) -> bool:
    if lat is None or lon is None:
        return False
    return MIN_LATITUDE <= lat <= MAX_LATITUDE and MIN_LONGITUDE <= lon <= MAX_LONGITUDE


def clamp_to_greece(lat: float, lon: float) -> tuple[float, float]:
    return (
        min(max(lat, MIN_LATITUDE), MAX_LATITUDE),
        min(max(lon, MIN_LONGITUDE), MAX_LONGITUDE),
    )


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))
