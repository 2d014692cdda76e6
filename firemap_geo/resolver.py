"""
Resolver: turns a place description into a coordinate through a fallback chain.

Per query the resolver walks a small state machine:

    CACHE_CHECK → DATASET_LOOKUP → EXTERNAL_GEOCODE → REGIONAL_APPROXIMATION → DEFAULT

Each state either produces a location (→ DONE) or hands over to the next.
Two inputs share the chain:
  - fire incidents: region / municipality / specific location
  - 112 alert tokens: one hashtag place name plus the alert's regional unit

Results are cached by a sanitized key before offsetting; the caller's
ActiveCoordinateTracker then spreads coincident markers. Coordinates found
by the external geocoder are written back into the gazetteer so the next
lookup of the same place is a dataset hit.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Iterable, Optional

from firemap_geo.alerts import filter_regional_units, parse_alert
from firemap_geo.cache import ResolutionCache, alert_cache_key, incident_cache_key
from firemap_geo.config import ResolverConfig, Settings, get_settings
from firemap_geo.gazetteer import GazetteerIndex
from firemap_geo.geocode import NominatimClient
from firemap_geo.matcher import DatasetMatch, DatasetMatcher, MatchKind, RegionFilter
from firemap_geo.models import (
    AlertResolution,
    GeocodedIncident,
    GeocodeHit,
    IncidentRecord,
    LocationQuery,
    ResolutionSource,
    ResolvedLocation,
)
from firemap_geo.normalize import normalize, strip_region_prefix
from firemap_geo.offsets import ActiveCoordinateTracker, group_key_for
from firemap_geo.regions import REGIONS, find_region, find_regional_unit, regional_unit_variants
from firemap_geo.spatial import haversine_km, in_greece

logger = logging.getLogger(__name__)

# Incident category words that say what burned, not where
ADDRESS_STOPLIST = {
    normalize(term) for term in (
        "ΔΑΣΙΚΗ ΠΥΡΚΑΓΙΑ", "ΔΑΣΙΚΕΣ ΠΥΡΚΑΓΙΕΣ", "ΑΣΤΙΚΗ ΠΥΡΚΑΓΙΑ", "ΑΣΤΙΚΕΣ ΠΥΡΚΑΓΙΕΣ",
        "ΠΑΡΟΧΕΣ ΒΟΗΘΕΙΑΣ", "ΚΤΙΡΙΟ", "ΔΑΣΟΣ", "ΥΠΑΙΘΡΟΣ",
        "FOREST", "FOREST FIRE", "URBAN FIRE", "BUILDING",
    )
}

VERIFICATION_MODES = ("off", "foreground", "background")
_GEOCODED_FIELDS = {"latitude", "longitude", "is_geocoded", "geocoding_source"}


class ResolutionState(str, Enum):
    CACHE_CHECK = "cache_check"
    DATASET_LOOKUP = "dataset_lookup"
    EXTERNAL_GEOCODE = "external_geocode"
    REGIONAL_APPROXIMATION = "regional_approximation"
    DEFAULT = "default"
    DONE = "done"


_NEXT_STATE = {
    ResolutionState.CACHE_CHECK: ResolutionState.DATASET_LOOKUP,
    ResolutionState.DATASET_LOOKUP: ResolutionState.EXTERNAL_GEOCODE,
    ResolutionState.EXTERNAL_GEOCODE: ResolutionState.REGIONAL_APPROXIMATION,
    ResolutionState.REGIONAL_APPROXIMATION: ResolutionState.DEFAULT,
    ResolutionState.DEFAULT: ResolutionState.DONE,
}

StepHandler = Callable[[], Awaitable[Optional[ResolvedLocation]]]


def best_address(query: LocationQuery) -> str:
    """Non-empty fields, most specific first, category words dropped, then 'Greece'."""
    parts = []
    for field in (query.specific_location, query.municipality, query.region):
        text = (field or "").strip()
        if not text or normalize(text) in ADDRESS_STOPLIST:
            continue
        if text not in parts:
            parts.append(text)
    if not parts:
        return ""
    return ", ".join([*parts, "Greece"])


class LocationResolver:
    def __init__(
        self,
        gazetteer: GazetteerIndex,
        geocoder: NominatimClient,
        cache: Optional[ResolutionCache] = None,
        config: Optional[ResolverConfig] = None,
    ):
        self.config = config or get_settings().resolver
        if self.config.verification_mode not in VERIFICATION_MODES:
            raise ValueError(f"Unknown verification mode: {self.config.verification_mode!r}")
        self.gazetteer = gazetteer
        self.geocoder = geocoder
        self.cache = cache or ResolutionCache()
        self.matcher = DatasetMatcher(gazetteer, self.config.fuzzy_threshold)
        self._background: set[asyncio.Task] = set()

    @classmethod
    def create(cls, settings: Optional[Settings] = None) -> "LocationResolver":
        """Load the gazetteer and wire up the default collaborators. Raises GazetteerLoadError."""
        settings = settings or get_settings()
        return cls(
            GazetteerIndex.from_config(settings.gazetteer),
            NominatimClient(settings.geocoding),
            ResolutionCache(settings.cache),
            settings.resolver,
        )

    async def aclose(self) -> None:
        for task in list(self._background):
            task.cancel()
        await self.geocoder.aclose()

    def new_tracker(self) -> ActiveCoordinateTracker:
        return ActiveCoordinateTracker(self.config.offset_step_degrees, self.config.offset_directions)

    def stats(self) -> dict:
        return {**self.gazetteer.stats(), "cache_entries": len(self.cache)}

    # ── State machine ──

    async def _run_chain(
        self, label: str, handlers: dict[ResolutionState, StepHandler],
    ) -> tuple[ResolvedLocation, ResolutionState]:
        state = ResolutionState.CACHE_CHECK
        while state is not ResolutionState.DONE:
            handler = handlers.get(state)
            result = await handler() if handler else None
            if result is not None:
                logger.debug("'%s': %s succeeded", label, state.value)
                return result, state
            logger.debug("'%s': %s found nothing", label, state.value)
            state = _NEXT_STATE[state]
        # DEFAULT always answers, so this is unreachable
        raise RuntimeError(f"Fallback chain for '{label}' ended without a result")

    def _default(self, **fields) -> ResolvedLocation:
        return ResolvedLocation(
            latitude=self.config.default_latitude,
            longitude=self.config.default_longitude,
            source=ResolutionSource.DEFAULT,
            source_description="default fallback",
            is_geocoded=False,
            **fields,
        )

    def _from_cache(self, key: str) -> Optional[ResolvedLocation]:
        cached = self.cache.get(key)
        if cached is None:
            return None
        return cached.model_copy(update={
            "source": ResolutionSource.CACHE,
            "source_description": "cache",
        })

    def _store(self, key: str, location: ResolvedLocation, state: ResolutionState) -> None:
        if state is not ResolutionState.CACHE_CHECK:
            self.cache.put(key, location)

    @staticmethod
    def _apply_offset(
        location: ResolvedLocation, tracker: Optional[ActiveCoordinateTracker], group_key: str,
    ) -> ResolvedLocation:
        if tracker is None or location.source is ResolutionSource.DEFAULT:
            return location
        lat, lon = tracker.offset(group_key, location.latitude, location.longitude)
        if (lat, lon) == (location.latitude, location.longitude):
            return location
        return location.model_copy(update={"latitude": lat, "longitude": lon})

    # ── Dataset step ──

    async def _dataset_lookup(
        self, descriptor: str, region_filter: RegionFilter, region: str, verify_query: str,
        **fields,
    ) -> Optional[ResolvedLocation]:
        if not descriptor.strip():
            return None

        match = self.matcher.match(descriptor, region_filter, region)
        if match is None:
            match = await self._verified_first_part(descriptor, region_filter, region, verify_query)
        if match is None:
            match = self.matcher.match_fuzzy(descriptor, region_filter)
        if match is None:
            return None

        location = self._from_match(match, **fields)
        return await self._maybe_verify(location, verify_query)

    async def _verified_first_part(
        self, descriptor: str, region_filter: RegionFilter, region: str, verify_query: str,
    ) -> Optional[DatasetMatch]:
        candidate = self.matcher.match_first_part(descriptor, region_filter, region)
        if candidate is None or not verify_query:
            return candidate
        hit = await self.geocoder.search(verify_query)
        if hit is None:
            # no second opinion available: some answer beats none
            return candidate
        distance = haversine_km(candidate.latitude, candidate.longitude, hit.latitude, hit.longitude)
        if distance > self.config.verification_max_km:
            logger.warning("Rejecting first-part match %s for '%s': %.1f km from geocoder result",
                           candidate.entry.settlement_name, descriptor, distance)
            return None
        return candidate

    @staticmethod
    def _from_match(match: DatasetMatch, **fields) -> ResolvedLocation:
        if match.kind is MatchKind.EXACT:
            source, label = ResolutionSource.DATASET_EXACT, "dataset exact"
        else:
            source, label = ResolutionSource.DATASET_PARTIAL, "dataset partial"
        entry = match.entry
        if not fields.get("location_name"):
            fields["location_name"] = entry.settlement_name
        return ResolvedLocation(
            latitude=entry.latitude,
            longitude=entry.longitude,
            source=source,
            source_description=f"{label}: {match.key}",
            municipality=entry.municipality or None,
            region=entry.region or None,
            matched_key=str(match.key),
            **fields,
        )

    async def _maybe_verify(self, location: ResolvedLocation, query: str) -> ResolvedLocation:
        mode = self.config.verification_mode
        if mode == "off" or not query:
            return location
        if mode == "background":
            task = asyncio.create_task(self._verify(location, query))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            return location
        return await self._verify(location, query)

    async def _verify(self, location: ResolvedLocation, query: str) -> ResolvedLocation:
        hit = await self.geocoder.search(query)
        if hit is None:
            return location
        distance = haversine_km(location.latitude, location.longitude, hit.latitude, hit.longitude)
        verified = distance <= self.config.verification_max_km
        if not verified:
            logger.warning("Dataset result for '%s' is %.1f km from the geocoder's answer",
                           query, distance)
        return location.model_copy(update={
            "verified": verified,
            "verification_distance_km": round(distance, 3),
        })

    # ── External step ──

    def _accept_hit(self, hit: Optional[GeocodeHit]) -> Optional[GeocodeHit]:
        if hit is None or not in_greece(hit.latitude, hit.longitude):
            return None
        return hit

    async def _write_back(self, *, name: str, region: str, hit: GeocodeHit, municipality: str = "") -> None:
        if not name.strip():
            return
        entry = self.gazetteer.add_runtime_location(
            name=name,
            region=region,
            latitude=hit.latitude,
            longitude=hit.longitude,
            municipality=municipality,
            persist=False,
        )
        if entry is not None:
            await asyncio.to_thread(self.gazetteer.persist)

    @staticmethod
    def _from_hit(hit: GeocodeHit, **fields) -> ResolvedLocation:
        fields.setdefault("municipality", hit.municipality)
        fields.setdefault("region", hit.region)
        return ResolvedLocation(
            latitude=hit.latitude,
            longitude=hit.longitude,
            source=ResolutionSource.EXTERNAL,
            source_description=f"external geocoder: {hit.query}",
            **fields,
        )

    # ── Regional approximation ──

    async def _approximate(self, region_text: str, names: Iterable[str]) -> Optional[ResolvedLocation]:
        for name in names:
            hit = self._accept_hit(await self.geocoder.search(f"{name}, Greece"))
            if hit is not None:
                return self._approximation(region_text, hit.latitude, hit.longitude)
        return None

    @staticmethod
    def _approximation(region_text: str, lat: float, lon: float) -> ResolvedLocation:
        return ResolvedLocation(
            latitude=lat,
            longitude=lon,
            source=ResolutionSource.REGIONAL_APPROXIMATION,
            source_description=f"regional approximation: {region_text} center",
            region=region_text,
        )

    # ══════════════════════════════════════════════════════════════════
    # Incidents
    # ══════════════════════════════════════════════════════════════════

    async def resolve(
        self, query: LocationQuery, tracker: Optional[ActiveCoordinateTracker] = None,
    ) -> ResolvedLocation:
        """Resolve one incident description. Never raises for lookup problems."""
        fields = {
            "location_name": query.specific_location or None,
            "municipality": query.municipality or None,
            "region": query.region or None,
        }
        if query.is_empty:
            logger.debug("Empty location query, using the default coordinate")
            return self._default(**fields)

        key = incident_cache_key(query)
        address = best_address(query)
        descriptor = query.municipality.strip() or query.specific_location.strip()
        region = query.region.strip()

        async def cache_check():
            return self._from_cache(key)

        async def dataset_lookup():
            return await self._dataset_lookup(
                descriptor, RegionFilter.for_region(region), region, address,
                location_name=query.specific_location or None,
            )

        async def external_geocode():
            if not address:
                return None
            hit = self._accept_hit(await self.geocoder.search_with_variations(address))
            if hit is None:
                return None
            await self._write_back(name=descriptor, region=region or _learned_region(hit, ""), hit=hit,
                                   municipality=query.municipality)
            return self._from_hit(
                hit,
                location_name=query.specific_location or None,
                municipality=query.municipality or hit.municipality,
                region=region or hit.region,
            )

        async def regional_approximation():
            if not region:
                return None
            known = find_region(region)
            if known is not None:
                return self._approximation(region, known.latitude, known.longitude)
            return await self._approximate(region, regional_unit_variants(strip_region_prefix(region)))

        async def default():
            return self._default(**fields)

        location, state = await self._run_chain(key, {
            ResolutionState.CACHE_CHECK: cache_check,
            ResolutionState.DATASET_LOOKUP: dataset_lookup,
            ResolutionState.EXTERNAL_GEOCODE: external_geocode,
            ResolutionState.REGIONAL_APPROXIMATION: regional_approximation,
            ResolutionState.DEFAULT: default,
        })
        self._store(key, location, state)
        logger.info("Resolved %s -> (%.5f, %.5f) via %s",
                    key, location.latitude, location.longitude, location.source_description)
        return self._apply_offset(location, tracker, group_key_for(query.region, query.municipality))

    async def resolve_incidents(
        self,
        records: Iterable[IncidentRecord],
        tracker: Optional[ActiveCoordinateTracker] = None,
    ) -> list[GeocodedIncident]:
        """Resolve a scrape batch sequentially, fanning out coincident incidents."""
        tracker = tracker or self.new_tracker()
        out = []
        for record in records:
            location = await self.resolve(record.to_query(), tracker)
            data = {k: v for k, v in record.model_dump().items() if k not in _GEOCODED_FIELDS}
            out.append(GeocodedIncident(
                **data,
                latitude=location.latitude,
                longitude=location.longitude,
                is_geocoded=location.is_geocoded,
                geocoding_source=location.source_description,
            ))
        geocoded = sum(1 for i in out if i.is_geocoded)
        logger.info("Resolved %d incidents (%d geocoded)", len(out), geocoded)
        return out

    # ══════════════════════════════════════════════════════════════════
    # Alert tokens
    # ══════════════════════════════════════════════════════════════════

    async def _resolve_token(self, token: str, regional_context: Optional[str]) -> ResolvedLocation:
        token = (token or "").replace("_", " ").lstrip("#").strip()
        context = (regional_context or "").replace("_", " ").lstrip("#").strip() or None
        fields = {"location_name": token or None}
        if not token:
            return self._default(**fields)

        key = alert_cache_key(token, context)
        region_filter = RegionFilter.for_context(context)
        region = region_filter.names[0] if region_filter else ""

        async def cache_check():
            return self._from_cache(key)

        async def dataset_lookup():
            return await self._dataset_lookup(
                token, region_filter, region, f"{token}, Greece", location_name=token,
            )

        async def external_geocode():
            hit = self._accept_hit(await self.geocoder.search_with_context(token, context))
            if hit is None:
                return None
            await self._write_back(name=token, region=_learned_region(hit, region), hit=hit,
                                   municipality=hit.municipality or "")
            return self._from_hit(hit, location_name=token)

        async def regional_approximation():
            if not context:
                return None
            location = await self._approximate(context, regional_unit_variants(context))
            if location is not None:
                return location
            unit = find_regional_unit(context)
            known = REGIONS[unit.region] if unit is not None else find_region(context)
            if known is not None:
                return self._approximation(context, known.latitude, known.longitude)
            return None

        async def default():
            return self._default(**fields)

        location, state = await self._run_chain(key, {
            ResolutionState.CACHE_CHECK: cache_check,
            ResolutionState.DATASET_LOOKUP: dataset_lookup,
            ResolutionState.EXTERNAL_GEOCODE: external_geocode,
            ResolutionState.REGIONAL_APPROXIMATION: regional_approximation,
            ResolutionState.DEFAULT: default,
        })
        self._store(key, location, state)
        logger.info("Resolved alert token '%s' -> (%.5f, %.5f) via %s",
                    token, location.latitude, location.longitude, location.source_description)
        return location

    async def resolve_token(
        self,
        token: str,
        regional_context: Optional[str] = None,
        tracker: Optional[ActiveCoordinateTracker] = None,
    ) -> ResolvedLocation:
        location = await self._resolve_token(token, regional_context)
        return self._apply_offset(location, tracker, _coordinate_group(location))

    async def _resolve_tokens(self, tokens: list[str], context: Optional[str]) -> list[ResolvedLocation]:
        semaphore = asyncio.Semaphore(max(self.config.alert_concurrency, 1))

        async def bounded(token: str) -> ResolvedLocation:
            async with semaphore:
                return await self._resolve_token(token, context)

        return list(await asyncio.gather(*(bounded(t) for t in tokens)))

    async def resolve_alert(
        self,
        text: str,
        tokens: Optional[list[str]] = None,
        regional_context: Optional[str] = None,
        tracker: Optional[ActiveCoordinateTracker] = None,
    ) -> AlertResolution:
        """
        Parse an alert and resolve its danger and fire zones (or the tokens
        supplied by the caller). Safe zones are only used, and labelled as
        such, when none of those resolves. Default-fallback points are left out.
        """
        parsed = parse_alert(text)
        context = regional_context or parsed.regional_context
        if tokens:
            primary = filter_regional_units(t.replace("_", " ").lstrip("#").strip() for t in tokens)
            primary = [t for t in dict.fromkeys(primary) if t]
        else:
            primary = parsed.primary_locations

        located = [r for r in await self._resolve_tokens(primary, context)
                   if r.source is not ResolutionSource.DEFAULT]

        if not located and parsed.safe_zones:
            logger.info("No danger zone resolved, falling back to %d safe zones", len(parsed.safe_zones))
            located = [
                r.model_copy(update={"source_description": f"SAFE ZONE: {r.source_description}"})
                for r in await self._resolve_tokens(parsed.safe_zones, context)
                if r.source is not ResolutionSource.DEFAULT
            ]

        tracker = tracker or self.new_tracker()
        located = [self._apply_offset(r, tracker, _coordinate_group(r)) for r in located]
        return AlertResolution(parsed=parsed, locations=located)


def _coordinate_group(location: ResolvedLocation) -> str:
    """Alert points are fanned out only when they land on the same spot."""
    return f"{location.latitude:.4f},{location.longitude:.4f}"


def _learned_region(hit: GeocodeHit, fallback: str) -> str:
    """The hit's region when it names a Greek region, else `fallback`."""
    if hit.region and find_region(hit.region) is not None:
        return hit.region
    return fallback
