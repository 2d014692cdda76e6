"""
Result cache: resolved coordinates keyed by a sanitized form of the input.

Lifetimes depend on how much the source is trusted: administrative geography
from the dataset rarely changes, an area-level approximation is only kept
for a refresh or two. Expiry is passive and handled by cachetools.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from cachetools import TLRUCache

from firemap_geo.config import CacheConfig, get_settings
from firemap_geo.models import LocationQuery, ResolutionSource, ResolvedLocation
from firemap_geo.normalize import sanitize_cache_part

logger = logging.getLogger(__name__)


def incident_cache_key(query: LocationQuery) -> str:
    parts = (query.region, query.municipality, query.specific_location)
    return "geocode_" + "_".join(sanitize_cache_part(p) for p in parts)


def alert_cache_key(token: str, regional_context: Optional[str] = None) -> str:
    return f"alert_{sanitize_cache_part(token)}_{sanitize_cache_part(regional_context)}"


class ResolutionCache:
    """Thread-safe TTL cache of ResolvedLocation values, TTL chosen per source."""

    def __init__(self, config: Optional[CacheConfig] = None,
                 timer: Callable[[], float] = time.monotonic):
        self.config = config or get_settings().cache
        self._lock = threading.Lock()
        self._cache: TLRUCache = TLRUCache(
            maxsize=self.config.max_entries,
            ttu=lambda _key, value, now: now + self.ttl_for(value.source),
            timer=timer,
        )

    def ttl_for(self, source: ResolutionSource) -> int:
        return {
            ResolutionSource.DATASET_EXACT: self.config.dataset_exact_ttl,
            ResolutionSource.DATASET_PARTIAL: self.config.dataset_partial_ttl,
            ResolutionSource.EXTERNAL: self.config.external_ttl,
            ResolutionSource.REGIONAL_APPROXIMATION: self.config.approximation_ttl,
        }.get(source, 0)

    def get(self, key: str) -> Optional[ResolvedLocation]:
        with self._lock:
            return self._cache.get(key)

    def put(self, key: str, location: ResolvedLocation) -> bool:
        """Store a result. Default and cache-sourced results are never stored."""
        if self.ttl_for(location.source) <= 0:
            return False
        with self._lock:
            self._cache[key] = location
        logger.debug("Cached %s (%s, ttl %ds)", key, location.source.value,
                     self.ttl_for(location.source))
        return True

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            self._cache.expire()
            return len(self._cache)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
