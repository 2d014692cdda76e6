"""
Tests for the result cache and the overlap offsetter.
"""

from __future__ import annotations

import math

import pytest

from firemap_geo.cache import ResolutionCache, alert_cache_key, incident_cache_key
from firemap_geo.config import CacheConfig
from firemap_geo.models import LocationQuery, ResolutionSource, ResolvedLocation
from firemap_geo.offsets import ActiveCoordinateTracker, fan_out, group_key_for


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def resolved(source: ResolutionSource, lat: float = 38.1536, lon: float = 23.9631) -> ResolvedLocation:
    return ResolvedLocation(latitude=lat, longitude=lon, source=source, source_description=source.value)


class TestCacheKeys:
    def test_incident_key(self):
        query = LocationQuery(region="Περιφέρεια Αττικής", municipality="Δήμος Μαραθώνος")
        assert incident_cache_key(query) == "geocode_περιφέρεια_αττικής_δήμος_μαραθώνος_unknown"

    def test_incident_key_ignores_punctuation(self):
        a = LocationQuery(region="Αττικής", municipality="Δ. Μαραθώνος", specific_location="Βαρνάβας")
        b = LocationQuery(region="Αττικής", municipality="Δ Μαραθώνος", specific_location="Βαρνάβας!")
        assert incident_cache_key(a) == incident_cache_key(b)

    def test_alert_key(self):
        assert alert_cache_key("Νέα_Μάκρη", "Ανατολικής_Αττικής") == "alert_νέα_μάκρη_ανατολικής_αττικής"
        assert alert_cache_key("Βαρνάβας") == "alert_βαρνάβας_unknown"


class TestResolutionCache:
    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def cache(self, clock):
        return ResolutionCache(CacheConfig(), timer=clock)

    def test_put_and_get(self, cache):
        location = resolved(ResolutionSource.DATASET_EXACT)
        assert cache.put("geocode_a", location) is True
        assert cache.get("geocode_a") == location
        assert "geocode_a" in cache
        assert len(cache) == 1

    def test_ttl_by_source(self, cache):
        day = 24 * 3600
        assert cache.ttl_for(ResolutionSource.DATASET_EXACT) == 30 * day
        assert cache.ttl_for(ResolutionSource.DATASET_PARTIAL) == 30 * day
        assert cache.ttl_for(ResolutionSource.EXTERNAL) == 7 * day
        assert cache.ttl_for(ResolutionSource.REGIONAL_APPROXIMATION) == 30 * 60
        assert cache.ttl_for(ResolutionSource.DEFAULT) == 0

    def test_approximation_expires_first(self, cache, clock):
        cache.put("exact", resolved(ResolutionSource.DATASET_EXACT))
        cache.put("approx", resolved(ResolutionSource.REGIONAL_APPROXIMATION))

        clock.now = 30 * 60 - 1
        assert "approx" in cache

        clock.now = 30 * 60
        assert cache.get("approx") is None
        assert cache.get("exact") is not None
        assert len(cache) == 1

    def test_default_and_cache_results_not_stored(self, cache):
        assert cache.put("d", resolved(ResolutionSource.DEFAULT)) is False
        assert cache.put("c", resolved(ResolutionSource.CACHE)) is False
        assert len(cache) == 0

    def test_clear(self, cache):
        cache.put("exact", resolved(ResolutionSource.DATASET_EXACT))
        cache.clear()
        assert cache.get("exact") is None

    def test_max_entries(self, clock):
        cache = ResolutionCache(CacheConfig(max_entries=2), timer=clock)
        for i in range(3):
            cache.put(f"k{i}", resolved(ResolutionSource.EXTERNAL))
        assert len(cache) == 2
        assert "k0" not in cache


class TestFanOut:
    def test_first_marker_unchanged(self):
        assert fan_out(38.0, 23.0, 0) == (38.0, 23.0)

    def test_spiral(self):
        lat, lon = fan_out(38.0, 23.0, 1)
        assert lat == pytest.approx(38.0 + 0.01 * math.sin(math.pi / 4))
        assert lon == pytest.approx(23.0 + 0.01 * math.cos(math.pi / 4))

        lat, lon = fan_out(38.0, 23.0, 2)
        assert lat == pytest.approx(38.02)
        assert lon == pytest.approx(23.0)


class TestGroupKey:
    def test_both_parts(self):
        assert group_key_for("Αττικής", "Μαραθώνος") == "αττικής-μαραθώνος"

    def test_one_part(self):
        assert group_key_for("", "Μαραθώνος") == "μαραθώνος"
        assert group_key_for("Αττικής", None) == "αττικής"

    def test_neither(self):
        assert group_key_for(None, "  ") == "unknown"


class TestActiveCoordinateTracker:
    def test_three_markers_on_one_spot(self):
        tracker = ActiveCoordinateTracker()
        positions = [tracker.offset("αττικής-μαραθώνος", 38.1536, 23.9631) for _ in range(3)]
        assert positions[0] == (38.1536, 23.9631)
        assert len(set(positions)) == 3
        assert tracker.issued("αττικής-μαραθώνος") == positions
        assert len(tracker) == 3

    def test_groups_are_independent(self):
        tracker = ActiveCoordinateTracker()
        tracker.offset("a", 38.0, 23.0)
        assert tracker.offset("b", 38.0, 23.0) == (38.0, 23.0)

    def test_reset(self):
        tracker = ActiveCoordinateTracker()
        tracker.offset("a", 38.0, 23.0)
        tracker.offset("a", 38.0, 23.0)
        tracker.reset()
        assert len(tracker) == 0
        assert tracker.offset("a", 38.0, 23.0) == (38.0, 23.0)

    def test_stays_inside_greece(self):
        tracker = ActiveCoordinateTracker(step=0.5)
        tracker.offset("edge", 41.99, 29.99)
        for _ in range(4):
            lat, lon = tracker.offset("edge", 41.99, 29.99)
            assert lat <= 42.0
            assert lon <= 30.0
