"""
Central configuration loaded from environment variables with sensible defaults.
Every component takes an explicit config object and falls back to get_settings().
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

PACKAGE_DIR = Path(__file__).resolve().parent
DATA_DIR = PACKAGE_DIR / "data"

_DAY = 24 * 3600


@dataclass(frozen=True)
class GeocodingConfig:
    nominatim_url: str = os.getenv("NOMINATIM_URL", "https://nominatim.openstreetmap.org")
    user_agent: str = os.getenv("NOMINATIM_USER_AGENT", "FireIncidentsMapApplication/1.0")
    # Nominatim asks for at most one request per second
    min_delay_seconds: float = float(os.getenv("GEOCODER_MIN_DELAY", "1.1"))
    max_retries: int = int(os.getenv("GEOCODER_MAX_RETRIES", "3"))
    backoff_base: float = float(os.getenv("GEOCODER_BACKOFF_BASE", "2.0"))
    request_timeout: float = float(os.getenv("GEOCODER_TIMEOUT", "20"))
    result_limit: int = int(os.getenv("GEOCODER_RESULT_LIMIT", "3"))
    accept_language: str = os.getenv("GEOCODER_LANGUAGE", "el")
    country_codes: str = os.getenv("GEOCODER_COUNTRY_CODES", "gr")
    max_variations: int = int(os.getenv("GEOCODER_MAX_VARIATIONS", "12"))
    max_general_variations: int = int(os.getenv("GEOCODER_MAX_GENERAL_VARIATIONS", "6"))
    query_cache_size: int = int(os.getenv("GEOCODER_QUERY_CACHE_SIZE", "2048"))
    query_cache_ttl_seconds: int = int(os.getenv("GEOCODER_QUERY_CACHE_TTL", "3600"))


@dataclass(frozen=True)
class GazetteerConfig:
    dataset_path: str = os.getenv(
        "GAZETTEER_DATASET", str(DATA_DIR / "greek_settlements.json")
    )
    # Empty means "next to the dataset"
    additions_path: str = os.getenv("GAZETTEER_ADDITIONS", "")
    persist_additions: bool = os.getenv("GAZETTEER_PERSIST_ADDITIONS", "true").lower() == "true"

    @property
    def resolved_additions_path(self) -> Path:
        if self.additions_path:
            return Path(self.additions_path)
        dataset = Path(self.dataset_path)
        return dataset.with_name(f"{dataset.stem}_additions.json")


@dataclass(frozen=True)
class CacheConfig:
    max_entries: int = int(os.getenv("RESULT_CACHE_MAX_ENTRIES", "5000"))
    # TTLs in seconds, by confidence of the source
    dataset_exact_ttl: int = int(os.getenv("CACHE_TTL_DATASET_EXACT", str(30 * _DAY)))
    dataset_partial_ttl: int = int(os.getenv("CACHE_TTL_DATASET_PARTIAL", str(30 * _DAY)))
    external_ttl: int = int(os.getenv("CACHE_TTL_EXTERNAL", str(7 * _DAY)))
    approximation_ttl: int = int(os.getenv("CACHE_TTL_APPROXIMATION", str(30 * 60)))


@dataclass(frozen=True)
class ResolverConfig:
    default_latitude: float = float(os.getenv("DEFAULT_LATITUDE", "38.2"))
    default_longitude: float = float(os.getenv("DEFAULT_LONGITUDE", "23.8"))
    verification_mode: str = os.getenv("VERIFICATION_MODE", "off")  # off | foreground | background
    verification_max_km: float = float(os.getenv("VERIFICATION_MAX_KM", "50.0"))
    fuzzy_threshold: float = float(os.getenv("FUZZY_THRESHOLD", "0.4"))
    offset_step_degrees: float = float(os.getenv("OFFSET_STEP_DEGREES", "0.01"))
    offset_directions: int = int(os.getenv("OFFSET_DIRECTIONS", "8"))
    alert_concurrency: int = int(os.getenv("ALERT_CONCURRENCY", "3"))


@dataclass(frozen=True)
class APIConfig:
    host: str = os.getenv("API_HOST", "0.0.0.0")
    port: int = int(os.getenv("API_PORT", "8000"))
    max_batch_size: int = int(os.getenv("API_MAX_BATCH_SIZE", "500"))


@dataclass(frozen=True)
class Settings:
    geocoding: GeocodingConfig = field(default_factory=GeocodingConfig)
    gazetteer: GazetteerConfig = field(default_factory=GazetteerConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    env: str = os.getenv("APP_ENV", "development")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
