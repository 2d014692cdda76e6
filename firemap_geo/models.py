"""
Pydantic models used across the engine for validation and serialization.
These are pure data objects with no I/O.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from firemap_geo.spatial import in_greece


# ── Enums ──────────────────────────────────────────────────────────────

class ResolutionSource(str, Enum):
    CACHE = "cache"
    DATASET_EXACT = "dataset_exact"
    DATASET_PARTIAL = "dataset_partial"
    EXTERNAL = "external_geocoder"
    REGIONAL_APPROXIMATION = "regional_approximation"
    DEFAULT = "default"


class WarningType(str, Enum):
    WILDFIRE = "wildfire"
    EVACUATION = "evacuation"
    FLOOD = "flood"
    SMOKE = "smoke"
    EMERGENCY = "emergency"


def _blank_if_none(v):
    return "" if v is None else v


# ── Inputs ─────────────────────────────────────────────────────────────

class LocationQuery(BaseModel):
    """A fire-incident place description: region / municipality / specific location."""
    region: str = ""
    municipality: str = ""
    specific_location: str = Field("", alias="specificLocation")

    model_config = {"populate_by_name": True}

    @field_validator("region", "municipality", "specific_location", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return _blank_if_none(v)

    @property
    def is_empty(self) -> bool:
        return not (self.region.strip() or self.municipality.strip() or self.specific_location.strip())


class IncidentRecord(BaseModel):
    """An incident as produced by the fire-service scraper."""
    status: str = ""
    category: str = ""
    region: str = ""
    municipality: str = ""
    location: str = ""
    start_date: Optional[str] = None
    last_update: Optional[str] = None

    model_config = {"populate_by_name": True, "extra": "allow"}

    @field_validator("status", "category", "region", "municipality", "location", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return _blank_if_none(v)

    def to_query(self) -> LocationQuery:
        return LocationQuery(
            region=self.region,
            municipality=self.municipality,
            specific_location=self.location,
        )


class GeocodedIncident(IncidentRecord):
    latitude: float
    longitude: float
    is_geocoded: bool = False
    geocoding_source: str = ""


# ── Gazetteer ──────────────────────────────────────────────────────────

class GazetteerEntry(BaseModel):
    """One settlement from the bundled dataset (or a runtime addition)."""
    country: str = ""
    section: str = ""
    region: str = ""
    sub_region: str = ""
    municipality: str = ""
    settlement_name: str = Field("", alias="city")
    population: int = 0
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    has_geolocation: bool = False
    settlement_type: str = ""
    # Latin-script spellings ("Patras", "Patra") the record is also known by
    aliases: tuple[str, ...] = ()

    model_config = {"populate_by_name": True, "extra": "ignore", "frozen": True}

    @field_validator(
        "country", "section", "region", "sub_region", "municipality",
        "settlement_name", "settlement_type", mode="before",
    )
    @classmethod
    def text_fields(cls, v):
        return "" if v is None else str(v).strip()

    @field_validator("aliases", mode="before")
    @classmethod
    def parse_aliases(cls, v):
        if not v:
            return ()
        if isinstance(v, str):
            v = [v]
        return tuple(str(a).strip() for a in v if a and str(a).strip())

    @field_validator("population", mode="before")
    @classmethod
    def parse_population(cls, v):
        """Population arrives as a number, a numeric string, or nothing."""
        if v is None or v == "":
            return 0
        if isinstance(v, str):
            try:
                return int(float(v.replace(",", "").strip()))
            except ValueError:
                return 0
        return v

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def parse_coordinate(cls, v):
        """Coordinates can arrive as JSON strings or JSON numbers."""
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, str):
            v = v.strip().replace(",", ".")
            if not v:
                return None
            try:
                return float(v)
            except ValueError:
                return None
        return v

    @field_validator("has_geolocation")
    @classmethod
    def require_coordinates(cls, v: bool, info: ValidationInfo) -> bool:
        """A geolocated entry must carry coordinates inside Greece."""
        if not v:
            return False
        return in_greece(info.data.get("latitude"), info.data.get("longitude"))

    @property
    def coordinates(self) -> Optional[tuple[float, float]]:
        if not self.has_geolocation:
            return None
        return self.latitude, self.longitude


# ── Geocoding models ─────────────────────────────────────────────────

class GeocodeHit(BaseModel):
    """First in-bounds result of an external geocoder search."""
    query: str
    latitude: float
    longitude: float
    display_name: Optional[str] = None
    municipality: Optional[str] = None
    region: Optional[str] = None
    raw: Optional[dict] = None


class ResolvedLocation(BaseModel):
    latitude: float
    longitude: float
    source: ResolutionSource
    source_description: str
    is_geocoded: bool = True
    location_name: Optional[str] = None
    municipality: Optional[str] = None
    region: Optional[str] = None
    matched_key: Optional[str] = None
    # Only set when a dataset hit was cross-checked against the geocoder
    verified: Optional[bool] = None
    verification_distance_km: Optional[float] = None


# ── Alert models ─────────────────────────────────────────────────────

class AlertLocations(BaseModel):
    """Place names pulled out of a 112 alert text."""
    danger_zones: list[str] = Field(default_factory=list)
    safe_zones: list[str] = Field(default_factory=list)
    route_locations: list[str] = Field(default_factory=list)
    fire_locations: list[str] = Field(default_factory=list)
    regional_context: Optional[str] = None
    language: str = "el"
    is_activation: bool = False
    warning_type: WarningType = WarningType.EMERGENCY

    @property
    def primary_locations(self) -> list[str]:
        """Danger zones first, then fire locations, without duplicates."""
        seen: set[str] = set()
        out = []
        for name in [*self.danger_zones, *self.fire_locations]:
            if name not in seen:
                seen.add(name)
                out.append(name)
        return out


class AlertResolution(BaseModel):
    parsed: AlertLocations
    locations: list[ResolvedLocation] = Field(default_factory=list)


# ── API request/response models ───────────────────────────────────────

class IncidentBatchRequest(BaseModel):
    incidents: list[IncidentRecord]


class AlertRequest(BaseModel):
    text: str = Field(..., min_length=1)
    tokens: Optional[list[str]] = None
    regional_context: Optional[str] = None


class HealthResponse(BaseModel):
    status: str = "ok"
    gazetteer_version: int = 0
    gazetteer_keys: int = 0
    gazetteer_entries: int = 0
    runtime_additions: int = 0
    cache_entries: int = 0
