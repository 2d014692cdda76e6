"""
Overlap offsetter: spread coincident markers around a small circle.

The tracker lives for one refresh cycle. The caller creates one per batch (or
calls reset() at the start of each scrape) and passes it explicitly to the
resolver. It is not thread-safe; offsetting within a batch is serialized.
"""

from __future__ import annotations

import math
from typing import Optional

from firemap_geo.spatial import clamp_to_greece, in_greece

DEFAULT_STEP_DEGREES = 0.01
DEFAULT_DIRECTIONS = 8


def fan_out(lat: float, lon: float, count: int,
            step: float = DEFAULT_STEP_DEGREES,
            directions: int = DEFAULT_DIRECTIONS) -> tuple[float, float]:
    """Position of the count-th marker (0-based) placed on the same spot."""
    if count <= 0:
        return lat, lon
    distance = step * count
    angle = 2 * math.pi * count / directions
    return lat + distance * math.sin(angle), lon + distance * math.cos(angle)


def group_key_for(region: Optional[str], municipality: Optional[str]) -> str:
    region = (region or "").strip()
    municipality = (municipality or "").strip()
    if region and municipality:
        return f"{region}-{municipality}".lower()
    if region or municipality:
        return (region or municipality).lower()
    return "unknown"


class ActiveCoordinateTracker:
    """Per-cycle record of the coordinates already issued for each group."""

    def __init__(self, step: float = DEFAULT_STEP_DEGREES,
                 directions: int = DEFAULT_DIRECTIONS):
        self.step = step
        self.directions = max(directions, 1)
        self._issued: dict[str, list[tuple[float, float]]] = {}

    def offset(self, group_key: str, lat: float, lon: float) -> tuple[float, float]:
        """First call for a group returns the input; later calls fan out."""
        issued = self._issued.setdefault(group_key, [])
        new_lat, new_lon = fan_out(lat, lon, len(issued), self.step, self.directions)
        if in_greece(lat, lon):
            new_lat, new_lon = clamp_to_greece(new_lat, new_lon)
        issued.append((new_lat, new_lon))
        return new_lat, new_lon

    def issued(self, group_key: str) -> list[tuple[float, float]]:
        return list(self._issued.get(group_key, ()))

    def reset(self) -> None:
        self._issued.clear()

    def __len__(self) -> int:
        return sum(len(v) for v in self._issued.values())
