"""
External geocoder client (OpenStreetMap Nominatim) with rate limiting,
query variations and Greece-bounded result parsing.

Strategy:
  1. Every request waits on one shared rate limiter (Nominatim allows about
     one request per second), so concurrency never raises the request rate.
  2. Requests are restricted to Greece (countrycodes + bounded viewbox) and
     results outside the bounding box are discarded anyway.
  3. 429 responses and transport errors back off exponentially; anything
     else that goes wrong is logged and reported as "no result".
  4. A free-text address is tried as an ordered list of variations (country
     appended, settlement-type qualifiers, prefixes and dashes removed) until
     one hits.
  5. Alert tokens with a regional context try context-biased variations first
     ("{token}, {unit synonym}, Greece") and accept the first hit.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Optional

import httpx
from cachetools import TTLCache

from firemap_geo.config import GeocodingConfig, get_settings
from firemap_geo.models import GeocodeHit
from firemap_geo.normalize import normalize, split_compound, strip_admin_prefix
from firemap_geo.regions import find_region, find_regional_unit, regional_unit_variants
from firemap_geo.spatial import GREECE_VIEWBOX, in_greece

logger = logging.getLogger(__name__)

SETTLEMENT_QUALIFIERS = ("village", "town", "settlement", "municipality", "hamlet", "neighbourhood")
CONTEXT_QUALIFIERS = ("", "village", "town", "settlement")
_COUNTRY_NAMES = {"GREECE", "ΕΛΛΑΔΑ", "ΕΛΛΑΣ", "HELLAS"}
_ADDRESS_MUNICIPALITY_FIELDS = ("municipality", "city", "town", "village")

_PUNCTUATION_RE = re.compile(r"[^\w\s,]")
_WHITESPACE_RE = re.compile(r"\s+")


# ── Query variations ──────────────────────────────────────────────────

def _clean_part(part: str) -> str:
    """Drop the administrative prefix, dashes and punctuation from one address part."""
    text = strip_admin_prefix(part.strip())
    text = re.sub(r"\s*[-–—]\s*", " ", text)
    text = _PUNCTUATION_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def _dedupe(queries: list[str], limit: Optional[int]) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for q in queries:
        q = _WHITESPACE_RE.sub(" ", q).strip(" ,")
        key = normalize(q)
        if q and key not in seen:
            seen.add(key)
            out.append(q)
    return out[:limit] if limit else out


def build_query_variations(base_text: str, limit: Optional[int] = None) -> list[str]:
    """
    Ordered query strings for a free-text address, original first:
      - the text as given
      - with "Greece" appended
      - with a settlement-type qualifier after the most specific part
      - with administrative prefixes, dashes and punctuation removed
      - each side of a compound first part on its own
    """
    text = _WHITESPACE_RE.sub(" ", base_text or "").strip(" ,")
    if not text:
        return []

    parts = [p.strip() for p in text.split(",") if p.strip()]
    if parts and normalize(parts[-1]) in _COUNTRY_NAMES:
        parts = parts[:-1]
    if not parts:
        return []

    head, rest = parts[0], parts[1:]
    variations = [text, ", ".join([*parts, "Greece"])]

    for qualifier in SETTLEMENT_QUALIFIERS:
        variations.append(", ".join([f"{head} {qualifier}", *rest, "Greece"]))
    variations.append(", ".join([f"{head} χωριό", *rest, "Ελλάδα"]))

    cleaned = [c for c in (_clean_part(p) for p in parts) if c]
    if cleaned:
        variations.append(", ".join([*cleaned, "Greece"]))
        variations.append(f"{cleaned[0]}, Greece")

    sides = split_compound(strip_admin_prefix(head))
    if len(sides) > 1:
        cleaned_rest = [c for c in (_clean_part(p) for p in rest) if c]
        for side in sides:
            variations.append(", ".join([_clean_part(side), *cleaned_rest, "Greece"]))

    return _dedupe(variations, limit)


def build_context_variations(token: str, regional_context: Optional[str],
                             limit: Optional[int] = None) -> list[str]:
    """'{token}, {variant}, Greece' for every synonym of the regional unit."""
    token = (token or "").replace("_", " ").strip()
    if not token or not regional_context:
        return []
    variations = []
    for variant in regional_unit_variants(regional_context):
        for qualifier in CONTEXT_QUALIFIERS:
            name = f"{token} {qualifier}" if qualifier else token
            variations.append(f"{name}, {variant}, Greece")
    return _dedupe(variations, limit)


def hit_matches_context(hit: GeocodeHit, regional_context: Optional[str]) -> bool:
    """Does a geocoder hit lie in the regional unit (or at least the region) named?"""
    if not regional_context:
        return False
    haystack = " ".join(
        normalize(s) for s in (hit.display_name, hit.municipality, hit.region) if s
    )
    if any(normalize(v) in haystack for v in regional_unit_variants(regional_context)):
        return True
    unit = find_regional_unit(regional_context)
    hit_region = find_region(hit.region)
    return unit is not None and hit_region is not None and hit_region.key == unit.region


# ── Rate Limiter ───────────────────────────────────────────────────────

class RateLimiter:
    """Enforces a minimum delay between consecutive calls across all tasks."""

    def __init__(self, min_interval: float = 1.1):
        self._interval = max(min_interval, 0.0)
        self._lock = asyncio.Lock()
        self._last_call: Optional[float] = None

    async def acquire(self):
        async with self._lock:
            loop = asyncio.get_running_loop()
            if self._last_call is not None:
                elapsed = loop.time() - self._last_call
                if elapsed < self._interval:
                    await asyncio.sleep(self._interval - elapsed)
            self._last_call = loop.time()


# ── Geocoder ──────────────────────────────────────────────────────────

class NominatimClient:
    """Forward geocoding against Nominatim, bounded to Greece."""

    def __init__(
        self,
        config: Optional[GeocodingConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.settings = config or get_settings().geocoding
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None
        self.rate_limiter = rate_limiter or RateLimiter(self.settings.min_delay_seconds)
        self._memo: TTLCache = TTLCache(
            maxsize=self.settings.query_cache_size,
            ttl=self.settings.query_cache_ttl_seconds,
        )
        self.request_count = 0

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _params(self, query: str) -> dict:
        return {
            "q": query,
            "format": "json",
            "limit": min(max(self.settings.result_limit, 1), 3),
            "countrycodes": self.settings.country_codes,
            "addressdetails": 1,
            "accept-language": self.settings.accept_language,
            "viewbox": GREECE_VIEWBOX,
            "bounded": 1,
        }

    async def search(self, query: str) -> Optional[GeocodeHit]:
        """
        Single search. Returns the first in-bounds result, or None on no
        result, upstream failure or exhausted retries.
        """
        query = _WHITESPACE_RE.sub(" ", query or "").strip()
        if not query:
            return None
        if query in self._memo:
            logger.debug("Nominatim memo hit for '%s'", query)
            return self._memo[query]

        for attempt in range(self.settings.max_retries):
            await self.rate_limiter.acquire()
            self.request_count += 1
            try:
                resp = await self._client.get(
                    f"{self.settings.nominatim_url}/search",
                    params=self._params(query),
                    headers={
                        "User-Agent": self.settings.user_agent,
                        "Accept": "application/json",
                    },
                    timeout=self.settings.request_timeout,
                )
                resp.raise_for_status()
                payload = resp.json()

            except httpx.HTTPStatusError as e:
                if e.response.status_code == 429:
                    wait = self.settings.backoff_base ** (attempt + 1)
                    logger.warning("Nominatim rate limited, backing off %.1fs", wait)
                    await asyncio.sleep(wait)
                    continue
                logger.error("Nominatim HTTP error for '%s': %s", query, e)
                return None

            except httpx.RequestError as e:
                wait = self.settings.backoff_base ** (attempt + 1)
                logger.warning("Nominatim request error (attempt %d/%d): %s, backing off %.1fs",
                               attempt + 1, self.settings.max_retries, e, wait)
                await asyncio.sleep(wait)
                continue

            except ValueError as e:
                logger.warning("Nominatim returned malformed JSON for '%s': %s", query, e)
                return None

            hit = self._first_in_bounds(query, payload)
            if hit is None:
                logger.debug("Nominatim: no in-bounds result for '%s'", query)
                return None
            self._memo[query] = hit
            return hit

        logger.error("Nominatim: all %d retries exhausted for '%s'",
                     self.settings.max_retries, query)
        return None

    @staticmethod
    def _first_in_bounds(query: str, payload) -> Optional[GeocodeHit]:
        if not isinstance(payload, list):
            logger.warning("Nominatim: unexpected response shape %s for '%s'",
                           type(payload).__name__, query)
            return None

        for item in payload:
            if not isinstance(item, dict):
                continue
            try:
                lat = float(item["lat"])
                lon = float(item["lon"])
            except (KeyError, TypeError, ValueError):
                continue
            if not in_greece(lat, lon):
                logger.debug("Nominatim: discarding out-of-bounds (%.4f, %.4f) for '%s'",
                             lat, lon, query)
                continue

            address = item.get("address") or {}
            municipality = next(
                (address[f] for f in _ADDRESS_MUNICIPALITY_FIELDS if address.get(f)), None
            )
            return GeocodeHit(
                query=query,
                latitude=lat,
                longitude=lon,
                display_name=item.get("display_name"),
                municipality=municipality,
                region=address.get("state") or "Greece",
                raw=item,
            )
        return None

    async def search_with_variations(self, base_text: str) -> Optional[GeocodeHit]:
        """Try each query variation in order, stopping at the first hit."""
        for query in build_query_variations(base_text, self.settings.max_variations):
            hit = await self.search(query)
            if hit is not None:
                logger.debug("Geocoded '%s' via variation '%s'", base_text, query)
                return hit
        logger.debug("No variation of '%s' geocoded", base_text)
        return None

    async def search_with_context(
        self, token: str, regional_context: Optional[str] = None,
    ) -> Optional[GeocodeHit]:
        """
        Context-biased variations first, accepted on the first hit. Then the
        general variations: a hit inside the regional context wins
        immediately, otherwise the first general hit is the fallback.
        """
        token = (token or "").replace("_", " ").strip()
        if not token:
            return None

        for query in build_context_variations(token, regional_context, self.settings.max_variations):
            hit = await self.search(query)
            if hit is not None:
                logger.debug("Geocoded '%s' with context via '%s'", token, query)
                return hit

        fallback: Optional[GeocodeHit] = None
        for query in build_query_variations(token, self.settings.max_general_variations):
            hit = await self.search(query)
            if hit is None:
                continue
            if not regional_context or hit_matches_context(hit, regional_context):
                return hit
            if fallback is None:
                fallback = hit
        return fallback
